import gzip
import zlib
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from splitread.codecs.contracts import BlockStream, Codec
from splitread.errors import SplitIOError
from splitread.type_hints import CompressedOffset

# gzip magic + deflate method
GZIP_MAGIC = b"\x1f\x8b\x08"

# Reserved FLG bits (5..7) are always zero in a real member header.
_RESERVED_FLAGS = 0xE0

_READ_CHUNK = 64 * 1024
_SCAN_CHUNK = 256 * 1024


class BlockGzipStream(BlockStream):
    """Concatenated gzip members, one member per block.

    There is no file header, so ``header_size`` is 0 and the first record of
    the zero split is keyed 0.
    """

    def __init__(self, raw: BinaryIO, path: Path) -> None:
        self._raw = raw
        self._path = path
        self.header_size = CompressedOffset(raw.tell())

    def tell(self) -> CompressedOffset:
        return CompressedOffset(self._raw.tell())

    def _inflate_member(self) -> bytes | None:
        """Inflate the member at the current offset; None at end of file.

        Leaves the raw stream just past the member. Raises zlib.error or
        EOFError on a damaged member.
        """
        d = zlib.decompressobj(16 + zlib.MAX_WBITS)
        out: list[bytes] = []
        started = False
        while not d.eof:
            chunk = self._raw.read(_READ_CHUNK)
            if not chunk:
                if not started:
                    return None
                msg = "gzip member ends before its trailer"
                raise EOFError(msg)
            started = True
            out.append(d.decompress(chunk))
        if d.unused_data:
            self._raw.seek(-len(d.unused_data), 1)
        return b"".join(out)

    def read_block(self) -> bytes:
        # Empty members carry no data; keep going until one does.
        while True:
            try:
                data = self._inflate_member()
            except (zlib.error, EOFError) as exc:
                msg = f"Corrupt gzip member in {self._path} near {self._raw.tell()}"
                raise SplitIOError(msg) from exc
            if data is None:
                return b""
            if data:
                return data

    def _is_member_start(self, offset: int) -> bool:
        self._raw.seek(offset)
        head = self._raw.read(len(GZIP_MAGIC) + 1)
        if head[: len(GZIP_MAGIC)] != GZIP_MAGIC or len(head) <= len(GZIP_MAGIC):
            return False
        if head[-1] & _RESERVED_FLAGS:
            return False
        self._raw.seek(offset)
        try:
            return self._inflate_member() is not None
        except (zlib.error, EOFError):
            return False

    def find_boundary(self, offset: int) -> CompressedOffset | None:
        here = self._raw.tell()
        try:
            return self._scan_for_member(max(offset, self.header_size))
        finally:
            self._raw.seek(here)

    def _scan_for_member(self, offset: int) -> CompressedOffset | None:
        pos = offset
        while True:
            self._raw.seek(pos)
            chunk = self._raw.read(_SCAN_CHUNK)
            j = chunk.find(GZIP_MAGIC)
            if j == -1:
                if len(chunk) < _SCAN_CHUNK:
                    return None
                # Magic may straddle the chunk edge.
                pos += len(chunk) - (len(GZIP_MAGIC) - 1)
                continue
            candidate = pos + j
            if self._is_member_start(candidate):
                return CompressedOffset(candidate)
            pos = candidate + 1

    def seek(self, boundary: CompressedOffset) -> None:
        self._raw.seek(boundary)

    def close(self) -> None:
        self._raw.close()


@dataclass(frozen=True, slots=True)
class BlockGzipCodec(Codec):
    name: str = "block-gzip"
    suffixes: tuple[str, ...] = (".gz", ".bgz")

    def open(self, raw: BinaryIO, path: Path) -> BlockGzipStream:
        return BlockGzipStream(raw, path)


def write_block_gzip(path: Path, blocks: Iterable[bytes]) -> list[int]:
    """Write each chunk as its own gzip member; returns member offsets."""
    offsets: list[int] = []
    with Path(path).open("wb") as out:
        for block in blocks:
            offsets.append(out.tell())
            out.write(gzip.compress(block, mtime=0))
    return offsets
