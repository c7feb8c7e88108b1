from pathlib import Path
from types import TracebackType

from prefect.logging import get_logger

from splitread.codecs import Codec, codec_for_path
from splitread.codecs.contracts import BlockStream
from splitread.errors import SeekError, SplitIOError
from splitread.filesystem import FileSystem, LocalFileSystem
from splitread.type_hints import CompressedOffset, DecompressedOffset


class CompressedCursor:
    """Line reader over a block stream that reports compressed positions.

    Blocks are pulled from the codec one at a time and only when the buffered
    data holds no complete line, so ``position()`` is always the raw offset
    just past the last block whose data has been (at least partly) handed out.
    """

    def __init__(self, stream: BlockStream) -> None:
        self._stream = stream
        self._buffer = bytearray()
        self._buffer_pos = DecompressedOffset(0)
        self._closed = False

    @classmethod
    def open(
        cls,
        path: Path,
        *,
        fs: FileSystem | None = None,
        codec: Codec | None = None,
    ) -> "CompressedCursor":
        fs = fs or LocalFileSystem()
        codec = codec or codec_for_path(path)
        raw = fs.open(path)
        try:
            stream = codec.open(raw, path)
        except SplitIOError:
            raw.close()
            raise
        except OSError as exc:
            raw.close()
            msg = f"Cannot read {codec.name} header of {path}: {exc}"
            raise SplitIOError(msg) from exc
        return cls(stream)

    @property
    def header_size(self) -> CompressedOffset:
        return self._stream.header_size

    @property
    def closed(self) -> bool:
        return self._closed

    def position(self) -> CompressedOffset:
        return self._stream.tell()

    def next_boundary(self, target: int) -> CompressedOffset | None:
        return self._stream.find_boundary(target)

    def seek_to_boundary(self, target: int) -> CompressedOffset:
        try:
            boundary = self._stream.find_boundary(target)
        except SplitIOError as exc:
            msg = f"Failed looking for a block boundary at or after {target}: {exc}"
            raise SeekError(msg) from exc
        if boundary is None:
            msg = f"No block boundary at or after offset {target}"
            raise SeekError(msg)
        self._stream.seek(boundary)
        self._buffer.clear()
        self._buffer_pos = DecompressedOffset(0)
        get_logger().debug("Seeked to block boundary %d (target %d)", boundary, target)
        return boundary

    def _fill(self) -> bool:
        block = self._stream.read_block()
        if not block:
            return False
        del self._buffer[: self._buffer_pos]
        self._buffer_pos = DecompressedOffset(0)
        self._buffer += block
        return True

    def read_line(self) -> bytes:
        """Next line including its newline; the last line may lack one. b"" at EOF."""
        while True:
            nl = self._buffer.find(b"\n", self._buffer_pos)
            if nl != -1:
                line = bytes(self._buffer[self._buffer_pos : nl + 1])
                self._buffer_pos = DecompressedOffset(nl + 1)
                return line
            if not self._fill():
                line = bytes(self._buffer[self._buffer_pos :])
                self._buffer.clear()
                self._buffer_pos = DecompressedOffset(0)
                return line

    def skip_one_record(self) -> int:
        """Drop everything up to and including the next newline.

        A block boundary is not a line boundary, so after seeking into the
        middle of a file the first (possibly partial) line belongs to the
        previous split.
        """
        return len(self.read_line())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._stream.close()

    def __enter__(self) -> "CompressedCursor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
