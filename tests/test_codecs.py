import io
import struct
import zlib

import pytest

from splitread.codecs import (
    BlockGzipCodec,
    LzopCodec,
    build_lzo_index,
    codec_for_path,
)
from splitread.codecs.lzop import (
    LZOP_MAGIC,
    index_path_for,
    read_header,
    read_lzo_index,
    walk_block_offsets,
)
from splitread.errors import SplitIOError


class TestLzop:
    def test_header_size_is_first_block_offset(self, write_lzo):
        written = write_lzo([b"one\n", b"two\n"])
        with written.path.open("rb") as raw:
            header = read_header(raw)
        assert header.size == written.header_size == 38
        assert written.block_offsets[0] == header.size

    def test_blocks_round_trip(self, write_lzo):
        blocks = [b"alpha\nbe", b"ta\n" * 500, b"gamma\n"]
        written = write_lzo(blocks)
        with written.path.open("rb") as raw:
            stream = LzopCodec().open(raw, written.path)
            assert stream.tell() == written.header_size
            got = []
            while block := stream.read_block():
                got.append(block)
            stream.close()
        assert got == blocks

    def test_walk_matches_writer_offsets(self, write_lzo):
        written = write_lzo([b"a" * 100, b"b\n" * 300, b"c"])
        with written.path.open("rb") as raw:
            header = read_header(raw)
            assert walk_block_offsets(raw, header) == written.block_offsets

    def test_index_sidecar(self, write_lzo):
        written = write_lzo([b"x\n"] * 4, write_index=True)
        assert read_lzo_index(index_path_for(written.path)) == written.block_offsets

    def test_build_index(self, write_lzo):
        written = write_lzo([b"x\n", b"y\n", b"z\n"])
        out = build_lzo_index(written.path)
        assert out == index_path_for(written.path)
        assert read_lzo_index(out) == written.block_offsets

    @pytest.mark.parametrize("with_index", [False, True])
    def test_find_boundary(self, write_lzo, with_index):
        written = write_lzo([b"1\n", b"2\n", b"3\n"], write_index=with_index)
        first, second, third = written.block_offsets
        with written.path.open("rb") as raw:
            stream = LzopCodec().open(raw, written.path)
            here = stream.tell()
            assert stream.find_boundary(0) == first
            assert stream.find_boundary(first) == first
            assert stream.find_boundary(first + 1) == second
            assert stream.find_boundary(third) == third
            assert stream.find_boundary(third + 1) is None
            # Looking does not move the stream.
            assert stream.tell() == here

    def test_bad_magic(self):
        with pytest.raises(SplitIOError, match="Not an lzop stream"):
            read_header(io.BytesIO(b"definitely not lzop"))

    def test_truncated_header(self):
        with pytest.raises(SplitIOError, match="Truncated"):
            read_header(io.BytesIO(LZOP_MAGIC + b"\x10"))

    def test_header_checksum_mismatch(self, write_lzo):
        written = write_lzo([b"x\n"])
        data = bytearray(written.path.read_bytes())
        data[len(LZOP_MAGIC) + 12] ^= 0xFF  # inside the mode field
        with pytest.raises(SplitIOError, match="checksum"):
            read_header(io.BytesIO(bytes(data)))

    def test_corrupt_block_checksum(self, write_lzo):
        written = write_lzo([b"hello\n"])
        data = bytearray(written.path.read_bytes())
        off = written.block_offsets[0]
        _, _, adler = struct.unpack(">III", data[off : off + 12])
        assert adler == zlib.adler32(b"hello\n")
        data[off + 8 : off + 12] = struct.pack(">I", adler ^ 1)
        with pytest.raises(SplitIOError, match="Adler-32"):
            stream = LzopCodec().open(io.BytesIO(bytes(data)), written.path)
            stream.read_block()


class TestBlockGzip:
    def test_members_are_blocks(self, gzip_json_file):
        with gzip_json_file.path.open("rb") as raw:
            stream = BlockGzipCodec().open(raw, gzip_json_file.path)
            assert stream.header_size == 0
            ends = []
            while stream.read_block():
                ends.append(stream.tell())
        assert ends[:-1] == gzip_json_file.block_offsets[1:]
        assert ends[-1] == gzip_json_file.path.stat().st_size

    def test_find_boundary_scans_forward(self, gzip_json_file):
        offsets = gzip_json_file.block_offsets
        with gzip_json_file.path.open("rb") as raw:
            stream = BlockGzipCodec().open(raw, gzip_json_file.path)
            assert stream.find_boundary(0) == 0
            assert stream.find_boundary(1) == offsets[1]
            assert stream.find_boundary(offsets[2] - 1) == offsets[2]
            assert stream.find_boundary(offsets[-1] + 1) is None
            assert stream.tell() == 0

    def test_corrupt_member(self, tmp_path):
        path = tmp_path / "bad.gz"
        path.write_bytes(b"\x1f\x8b\x08\x00" + b"\x00" * 40)
        with path.open("rb") as raw:
            stream = BlockGzipCodec().open(raw, path)
            with pytest.raises(SplitIOError, match="Corrupt gzip member"):
                stream.read_block()


@pytest.mark.parametrize(
    ("name", "codec_type"),
    [
        ("a.lzo", LzopCodec),
        ("a.json.LZO", LzopCodec),
        ("a.gz", BlockGzipCodec),
        ("a.bgz", BlockGzipCodec),
    ],
)
def test_codec_for_path(tmp_path, name, codec_type):
    assert isinstance(codec_for_path(tmp_path / name), codec_type)


def test_codec_for_unknown_suffix(tmp_path):
    with pytest.raises(ValueError, match="No block codec"):
        codec_for_path(tmp_path / "a.txt")
