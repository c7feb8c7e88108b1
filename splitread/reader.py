from collections.abc import Iterator
from enum import Enum
from types import TracebackType
from typing import Self

from prefect.logging import get_logger

from splitread.boundary import resolve_boundary
from splitread.codecs import Codec
from splitread.config import ReaderConfig
from splitread.cursor import CompressedCursor
from splitread.decoders import LineDecoder, decoder_from_spec
from splitread.filesystem import FileSystem, LocalFileSystem
from splitread.splits.contracts import ResolvedBoundary, Split
from splitread.type_hints import CompressedOffset, Record


class ReaderState(Enum):
    UNOPENED = "unopened"
    READING = "reading"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class SplitRecordReader:
    """Pull-based reader producing ``(position, record)`` pairs for one split.

    Keys are compressed-stream positions, not sequence numbers: every record
    read out of the same block shares the position reached after loading it.

    Usage::

        with SplitRecordReader(config).open(split) as reader:
            for position, record in reader:
                ...
    """

    def __init__(
        self,
        config: ReaderConfig | None = None,
        *,
        fs: FileSystem | None = None,
        codec: Codec | None = None,
    ) -> None:
        self.config = config or ReaderConfig()
        self._fs = fs or LocalFileSystem()
        self._codec = codec
        self.state = ReaderState.UNOPENED
        self.split: Split | None = None
        self.boundary: ResolvedBoundary | None = None
        self._cursor: CompressedCursor | None = None
        self._decoder: LineDecoder | None = None
        self._pos = CompressedOffset(0)
        self._last_position = CompressedOffset(0)

        self.lines_read = 0
        self.records_emitted = 0
        self.malformed_lines = 0

    def open(self, split: Split) -> Self:
        if self.state is not ReaderState.UNOPENED:
            msg = f"Reader already used (state {self.state.value})"
            raise ValueError(msg)

        logger = get_logger()
        cursor = CompressedCursor.open(split.file_path, fs=self._fs, codec=self._codec)
        try:
            file_size = self._fs.stat(split.file_path).size
            boundary = resolve_boundary(split, cursor, file_size)
            decoder = decoder_from_spec(self.config.decoder)
        except BaseException:
            cursor.close()
            raise

        self.split = split
        self.boundary = boundary
        self._cursor = cursor
        self._decoder = decoder
        self._pos = boundary.effective_start
        self.state = ReaderState.READING

        if not boundary.begins_at_format_header:
            if boundary.effective_start >= split.end:
                # The previous split drains the block this one would start in.
                logger.info(
                    "Split %s [%d..%d) holds no block start (next boundary %d)",
                    split.file_path,
                    split.start,
                    split.end,
                    boundary.effective_start,
                )
                self.state = ReaderState.EXHAUSTED
            else:
                cursor.skip_one_record()

        self._last_position = cursor.position()
        logger.info(
            "Opened split %s [%d..%d): effective start %d, drain limit %d",
            split.file_path,
            split.start,
            split.end,
            boundary.effective_start,
            boundary.drain_limit,
        )
        return self

    def _require_cursor(self) -> CompressedCursor:
        if self.state is ReaderState.CLOSED:
            msg = "I/O operation on closed reader"
            raise ValueError(msg)
        if self._cursor is None:
            msg = "Reader has not been opened"
            raise ValueError(msg)
        return self._cursor

    def _decode(self, line: bytes) -> Record | None:
        max_bytes = self.config.max_line_bytes
        if max_bytes is not None and len(line) > max_bytes:
            get_logger().warning(
                "Skipping %d-byte line at position %d (limit %d)",
                len(line),
                self._pos,
                max_bytes,
            )
            return None
        raw_line = line.decode(self.config.encoding, errors="replace")
        raw_line = raw_line.rstrip("\n").rstrip("\r")
        assert self._decoder is not None  # for type checker
        return self._decoder.decode_line(raw_line)

    def next(self) -> tuple[int, Record] | None:
        cursor = self._require_cursor()
        if self.state is ReaderState.EXHAUSTED:
            return None
        assert self.boundary is not None  # for type checker

        # The codec hands out whole blocks, so the position only moves past
        # the drain limit once the block that starts there has been loaded.
        while self._pos <= self.boundary.drain_limit:
            key = self._pos
            line = cursor.read_line()
            if not line:
                self._exhaust()
                return None

            self.lines_read += 1
            self._pos = cursor.position()
            self._last_position = self._pos

            record = self._decode(line)
            if record is None:
                self.malformed_lines += 1
                continue

            self.records_emitted += 1
            return key, record

        self._exhaust()
        return None

    def _exhaust(self) -> None:
        self.state = ReaderState.EXHAUSTED
        assert self.split is not None  # for type checker
        get_logger().info(
            "Split %s [%d..%d) exhausted at %d: read=%d emitted=%d malformed=%d",
            self.split.file_path,
            self.split.start,
            self.split.end,
            self._last_position,
            self.lines_read,
            self.records_emitted,
            self.malformed_lines,
        )

    def current_position(self) -> int:
        if self._cursor is not None and not self._cursor.closed:
            self._last_position = self._cursor.position()
        return self._last_position

    def progress(self) -> float:
        """Fraction of the split consumed; exceeds 1.0 while draining the last block."""
        if self.boundary is None:
            return 0.0
        length = self.boundary.effective_length
        if length <= 0:
            return 0.0 if self.state is ReaderState.READING else 1.0
        return (self.current_position() - self.boundary.effective_start) / length

    def close(self) -> None:
        if self.state is ReaderState.CLOSED:
            return
        if self._cursor is not None:
            self._last_position = self._cursor.position()
            self._cursor.close()
        self.state = ReaderState.CLOSED

    def __iter__(self) -> Iterator[tuple[int, Record]]:
        while (item := self.next()) is not None:
            yield item

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
