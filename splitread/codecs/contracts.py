from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from splitread.type_hints import CompressedOffset


@runtime_checkable
class BlockStream(Protocol):
    """Decompressed view of a block-compressed file.

    ``tell`` reports compressed bytes consumed from the raw file, which is the
    offset just past the last block handed out by ``read_block``.
    """

    header_size: CompressedOffset

    def tell(self) -> CompressedOffset: ...

    # Decompressed payload of the next block, b"" once the data is exhausted.
    def read_block(self) -> bytes: ...

    # Nearest block boundary >= offset, or None. Does not move the stream.
    def find_boundary(self, offset: int) -> CompressedOffset | None: ...

    # `boundary` must be a value returned by find_boundary.
    def seek(self, boundary: CompressedOffset) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class Codec(Protocol):
    name: str
    suffixes: tuple[str, ...]

    # Consumes the format header; the returned stream sits at the first block.
    def open(self, raw: BinaryIO, path: Path) -> BlockStream: ...
