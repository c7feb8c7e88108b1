import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

import pytest

from splitread.codecs import LzopWriter, write_block_gzip
from splitread.codecs.contracts import BlockStream, Codec
from splitread.type_hints import CompressedOffset


@dataclass
class WrittenFile:
    path: Path
    block_offsets: list[int]
    header_size: int
    records: list[dict[str, str]] = field(default_factory=list)


def json_lines(n: int) -> tuple[bytes, list[dict[str, str]]]:
    records = [
        {"id": str(i), "msg": f"event number {i} " + "x" * (i % 17)} for i in range(n)
    ]
    data = b"".join(
        json.dumps({"id": i, "msg": r["msg"]}).encode() + b"\n"
        for i, r in enumerate(records)
    )
    return data, records


@pytest.fixture
def write_lzo(tmp_path: Path) -> Callable[..., WrittenFile]:
    def _write(
        blocks: Sequence[bytes],
        name: str = "data.lzo",
        *,
        write_index: bool = False,
    ) -> WrittenFile:
        path = tmp_path / name
        with LzopWriter(path, block_size=1 << 20, write_index=write_index) as w:
            for block in blocks:
                w.write(block)
                w.end_block()
        return WrittenFile(path, w.block_offsets, w.header_size)

    return _write


@pytest.fixture
def lzo_json_file(tmp_path: Path) -> WrittenFile:
    data, records = json_lines(300)
    path = tmp_path / "events.json.lzo"
    # Small blocks so that most lines straddle a block boundary somewhere.
    with LzopWriter(path, block_size=211) as w:
        w.write(data)
    return WrittenFile(path, w.block_offsets, w.header_size, records)


@pytest.fixture
def gzip_json_file(tmp_path: Path) -> WrittenFile:
    data, records = json_lines(300)
    path = tmp_path / "events.json.gz"
    chunks = [data[i : i + 307] for i in range(0, len(data), 307)]
    offsets = write_block_gzip(path, chunks)
    return WrittenFile(path, offsets, 0, records)


class FakeBlockStream(BlockStream):
    """Blocks at fixed raw offsets of a placeholder file."""

    def __init__(
        self,
        raw: BinaryIO,
        header_size: int,
        blocks: dict[int, bytes],
    ) -> None:
        self._raw = raw
        self._blocks = blocks
        self._offsets = sorted(blocks)
        self._size = raw.seek(0, 2)
        raw.seek(header_size)
        self.header_size = CompressedOffset(header_size)

    def tell(self) -> CompressedOffset:
        return CompressedOffset(self._raw.tell())

    def read_block(self) -> bytes:
        here = self._raw.tell()
        if here not in self._blocks:
            return b""
        i = self._offsets.index(here)
        nxt = self._offsets[i + 1] if i + 1 < len(self._offsets) else self._size
        self._raw.seek(nxt)
        return self._blocks[here]

    def find_boundary(self, offset: int) -> CompressedOffset | None:
        for off in self._offsets:
            if off >= offset:
                return CompressedOffset(off)
        return None

    def seek(self, boundary: CompressedOffset) -> None:
        self._raw.seek(boundary)

    def close(self) -> None:
        self._raw.close()


@dataclass(frozen=True)
class FakeCodec(Codec):
    header_size: int
    blocks: dict[int, bytes]
    name: str = "fake"
    suffixes: tuple[str, ...] = (".fake",)

    def open(self, raw: BinaryIO, path: Path) -> FakeBlockStream:  # noqa: ARG002
        return FakeBlockStream(raw, self.header_size, self.blocks)


@pytest.fixture
def fake_file(tmp_path: Path) -> tuple[Path, FakeCodec]:
    """40-byte header; blocks at 40, 130 and 210 of a 300-byte file."""
    path = tmp_path / "placeholder.fake"
    path.write_bytes(b"\0" * 300)
    codec = FakeCodec(
        header_size=40,
        blocks={
            40: b"a1\na2\nb-par",
            130: b"tial\nb1\nb2\n",
            210: b"c1\n",
        },
    )
    return path, codec
