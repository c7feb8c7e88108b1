"""lzop container support.

Layout of an lzop file::

    magic (9) | header fields | header checksum (4) [| extra field]
    block*    | u32 0 (end marker)

    block := u32 uncompressed_len | u32 compressed_len
             [| u32 adler32(uncompressed)] [| u32 crc32(uncompressed)]
             [| u32 adler32(compressed)]   [| u32 crc32(compressed)]
             | payload

Compressed checksums are only present when the payload is actually
compressed (compressed_len < uncompressed_len); otherwise the payload is the
raw data. All integers are big-endian.

Blocks are the only positions where decompression can start, so split
readers seek between them. A sidecar ``<file>.index`` holding the big-endian
u64 offset of every block makes that lookup a bisection; without one the
block headers are walked from the start of the data.
"""

import struct
import zlib
from bisect import bisect_left
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import BinaryIO, ClassVar

import lzo
from prefect.logging import get_logger

from splitread.codecs.contracts import BlockStream, Codec
from splitread.errors import SplitIOError
from splitread.type_hints import CompressedOffset

LZOP_MAGIC = b"\x89LZO\x00\r\n\x1a\n"

F_ADLER32_D = 0x0001
F_ADLER32_C = 0x0002
F_H_EXTRA_FIELD = 0x0040
F_CRC32_D = 0x0100
F_CRC32_C = 0x0200
F_H_FILTER = 0x0800
F_H_CRC32 = 0x1000

M_LZO1X_1 = 1
M_LZO1X_1_15 = 2
M_LZO1X_999 = 3
_SUPPORTED_METHODS = {M_LZO1X_1, M_LZO1X_1_15, M_LZO1X_999}

# Format version that introduced version_needed, level and mtime_high.
_VERSION_0940 = 0x0940

_WRITER_VERSION = 0x1030
_WRITER_LIB_VERSION = 0x20A0

INDEX_SUFFIX = ".index"


def index_path_for(path: Path) -> Path:
    return Path(f"{path}{INDEX_SUFFIX}")


@dataclass(frozen=True, slots=True)
class LzopHeader:
    version: int
    lib_version: int
    method: int
    level: int
    flags: int
    mode: int
    mtime: int
    name: str
    # Bytes occupied by the header, magic included: the offset of the first block.
    size: int


def _read_exact(raw: BinaryIO, n: int, what: str) -> bytes:
    data = raw.read(n)
    if len(data) != n:
        msg = f"Truncated lzop {what}: wanted {n} bytes, got {len(data)}"
        raise SplitIOError(msg)
    return data


class _HeaderReader:
    """Reads header fields while keeping the bytes that the checksum covers."""

    def __init__(self, raw: BinaryIO) -> None:
        self.raw = raw
        self.covered = bytearray()

    def unpack(self, fmt: str) -> int:
        data = _read_exact(self.raw, struct.calcsize(fmt), "header")
        self.covered += data
        return struct.unpack(fmt, data)[0]

    def take(self, n: int) -> bytes:
        data = _read_exact(self.raw, n, "header")
        self.covered += data
        return data


def read_header(raw: BinaryIO) -> LzopHeader:
    magic = raw.read(len(LZOP_MAGIC))
    if magic != LZOP_MAGIC:
        msg = f"Not an lzop stream (magic {magic!r})"
        raise SplitIOError(msg)

    r = _HeaderReader(raw)
    version = r.unpack(">H")
    lib_version = r.unpack(">H")
    if version >= _VERSION_0940:
        r.unpack(">H")  # version needed to extract
    method = r.unpack(">B")
    level = r.unpack(">B") if version >= _VERSION_0940 else 0
    flags = r.unpack(">I")
    if flags & F_H_FILTER:
        r.unpack(">I")
    mode = r.unpack(">I")
    mtime = r.unpack(">I")
    if version >= _VERSION_0940:
        mtime |= r.unpack(">I") << 32
    name = r.take(r.unpack(">B")).decode("utf-8", errors="replace")

    expected = struct.unpack(">I", _read_exact(raw, 4, "header checksum"))[0]
    covered = bytes(r.covered)
    actual = zlib.crc32(covered) if flags & F_H_CRC32 else zlib.adler32(covered)
    if actual != expected:
        msg = f"lzop header checksum mismatch: {actual:#010x} != {expected:#010x}"
        raise SplitIOError(msg)

    if flags & F_H_EXTRA_FIELD:
        extra_len = struct.unpack(">I", _read_exact(raw, 4, "extra field"))[0]
        _read_exact(raw, extra_len + 4, "extra field")

    if method not in _SUPPORTED_METHODS:
        msg = f"Unsupported lzop compression method {method}"
        raise SplitIOError(msg)

    return LzopHeader(
        version=version,
        lib_version=lib_version,
        method=method,
        level=level,
        flags=flags,
        mode=mode,
        mtime=mtime,
        name=name,
        size=raw.tell(),
    )


def _checksum_fields(flags: int, *, compressed: bool) -> int:
    n = bool(flags & F_ADLER32_D) + bool(flags & F_CRC32_D)
    if compressed:
        n += bool(flags & F_ADLER32_C) + bool(flags & F_CRC32_C)
    return n


def walk_block_offsets(raw: BinaryIO, header: LzopHeader) -> list[int]:
    """Offsets of every block, found by hopping over block headers."""
    offsets: list[int] = []
    pos = header.size
    while True:
        raw.seek(pos)
        lengths = raw.read(8)
        if len(lengths) < 8:  # noqa: PLR2004 - two u32 length fields
            break
        u_len, c_len = struct.unpack(">II", lengths)
        if u_len == 0:
            break
        offsets.append(pos)
        n_checksums = _checksum_fields(header.flags, compressed=c_len < u_len)
        pos += 8 + 4 * n_checksums + c_len
    return offsets


def read_lzo_index(path: Path) -> list[int]:
    data = path.read_bytes()
    if len(data) % 8:
        msg = f"Corrupt lzo index {path}: size {len(data)} is not a multiple of 8"
        raise SplitIOError(msg)
    return [off for (off,) in struct.iter_unpack(">q", data)]


def write_lzo_index(path: Path, offsets: list[int]) -> Path:
    out = index_path_for(path)
    tmp = out.with_name(f"{out.name}.tmp")
    tmp.write_bytes(b"".join(struct.pack(">q", off) for off in offsets))
    tmp.replace(out)
    return out


def build_lzo_index(path: Path) -> Path:
    logger = get_logger()
    with Path(path).open("rb") as raw:
        header = read_header(raw)
        offsets = walk_block_offsets(raw, header)
    out = write_lzo_index(path, offsets)
    logger.info("Indexed %d lzo blocks of %s into %s", len(offsets), path, out)
    return out


class LzopBlockStream(BlockStream):
    def __init__(
        self,
        raw: BinaryIO,
        path: Path,
        header: LzopHeader,
        index: list[int] | None,
    ) -> None:
        self._raw = raw
        self._path = path
        self.header = header
        self.header_size = CompressedOffset(header.size)
        self._offsets = index

    def tell(self) -> CompressedOffset:
        return CompressedOffset(self._raw.tell())

    def read_block(self) -> bytes:
        first = self._raw.read(4)
        if len(first) == 0:
            # Missing end marker; treat as end of data.
            return b""
        if len(first) < 4:  # noqa: PLR2004 - u32 length field
            msg = f"Truncated lzop block header in {self._path}"
            raise SplitIOError(msg)
        u_len = struct.unpack(">I", first)[0]
        if u_len == 0:
            return b""
        c_len = struct.unpack(">I", _read_exact(self._raw, 4, "block header"))[0]

        flags = self.header.flags
        compressed = c_len < u_len
        adler_d = crc_d = None
        if flags & F_ADLER32_D:
            adler_d = struct.unpack(">I", _read_exact(self._raw, 4, "checksum"))[0]
        if flags & F_CRC32_D:
            crc_d = struct.unpack(">I", _read_exact(self._raw, 4, "checksum"))[0]
        if compressed:
            n_skip = bool(flags & F_ADLER32_C) + bool(flags & F_CRC32_C)
            _read_exact(self._raw, 4 * n_skip, "checksum")

        payload = _read_exact(self._raw, c_len, "block")
        if compressed:
            try:
                data = lzo.decompress(payload, False, u_len)  # noqa: FBT003 - positional-only C API
            except lzo.error as exc:
                msg = f"Corrupt lzo block in {self._path}: {exc}"
                raise SplitIOError(msg) from exc
        else:
            data = payload

        if adler_d is not None and zlib.adler32(data) != adler_d:
            msg = f"Adler-32 mismatch in lzo block of {self._path}"
            raise SplitIOError(msg)
        if crc_d is not None and zlib.crc32(data) != crc_d:
            msg = f"CRC-32 mismatch in lzo block of {self._path}"
            raise SplitIOError(msg)
        return data

    def _block_offsets(self) -> list[int]:
        if self._offsets is None:
            logger = get_logger()
            here = self._raw.tell()
            self._offsets = walk_block_offsets(self._raw, self.header)
            self._raw.seek(here)
            logger.info(
                "No lzo index for %s, walked %d block headers",
                self._path,
                len(self._offsets),
            )
        return self._offsets

    def find_boundary(self, offset: int) -> CompressedOffset | None:
        offsets = self._block_offsets()
        i = bisect_left(offsets, offset)
        if i == len(offsets):
            return None
        return CompressedOffset(offsets[i])

    def seek(self, boundary: CompressedOffset) -> None:
        self._raw.seek(boundary)

    def close(self) -> None:
        self._raw.close()


@dataclass(frozen=True, slots=True)
class LzopCodec(Codec):
    name: str = "lzop"
    suffixes: tuple[str, ...] = (".lzo",)

    def open(self, raw: BinaryIO, path: Path) -> LzopBlockStream:
        header = read_header(raw)
        idx_path = index_path_for(path)
        index = read_lzo_index(idx_path) if idx_path.exists() else None
        return LzopBlockStream(raw, path, header, index)


class LzopWriter:
    """Writes an lzop file block by block; optionally emits the ``.index`` sidecar."""

    DEFAULT_BLOCK_SIZE: ClassVar[int] = 256 * 1024

    def __init__(
        self,
        path: Path,
        block_size: int = DEFAULT_BLOCK_SIZE,
        *,
        write_index: bool = False,
    ) -> None:
        if block_size <= 0:
            msg = "block_size must be a positive integer"
            raise ValueError(msg)
        self.path = Path(path)
        self.block_size = block_size
        self.write_index = write_index
        self.block_offsets: list[int] = []
        self._pending = bytearray()
        self._out = self.path.open("wb")
        self.header_size = self._write_header()

    def _write_header(self) -> int:
        fields = struct.pack(
            ">HHHBBIIIIB",
            _WRITER_VERSION,
            _WRITER_LIB_VERSION,
            _VERSION_0940,
            M_LZO1X_1,
            1,
            F_ADLER32_D,
            0o100644,
            0,
            0,
            0,
        )
        self._out.write(LZOP_MAGIC)
        self._out.write(fields)
        self._out.write(struct.pack(">I", zlib.adler32(fields)))
        return self._out.tell()

    def write(self, data: bytes) -> None:
        self._pending += data
        while len(self._pending) >= self.block_size:
            self._flush_block(bytes(self._pending[: self.block_size]))
            del self._pending[: self.block_size]

    def end_block(self) -> None:
        """Close the current block early, even if it is short."""
        if self._pending:
            self._flush_block(bytes(self._pending))
            self._pending.clear()

    def _flush_block(self, data: bytes) -> None:
        self.block_offsets.append(self._out.tell())
        packed = lzo.compress(data, 1, False)  # noqa: FBT003 - positional-only C API
        payload = packed if len(packed) < len(data) else data
        block_header = struct.pack(">III", len(data), len(payload), zlib.adler32(data))
        self._out.write(block_header)
        self._out.write(payload)

    def close(self) -> None:
        if self._out.closed:
            return
        self.end_block()
        self._out.write(struct.pack(">I", 0))
        self._out.close()
        if self.write_index:
            write_lzo_index(self.path, self.block_offsets)

    def __enter__(self) -> "LzopWriter":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
