from pathlib import Path

from .block_gzip import BlockGzipCodec, write_block_gzip
from .contracts import BlockStream, Codec
from .lzop import LzopCodec, LzopWriter, build_lzo_index

CODECS: tuple[Codec, ...] = (LzopCodec(), BlockGzipCodec())


def codec_for_path(path: Path) -> Codec:
    suffix = Path(path).suffix.lower()
    for codec in CODECS:
        if suffix in codec.suffixes:
            return codec
    msg = f"No block codec registered for {path} (suffix {suffix!r})"
    raise ValueError(msg)


__all__ = [
    "CODECS",
    "BlockGzipCodec",
    "BlockStream",
    "Codec",
    "LzopCodec",
    "LzopWriter",
    "build_lzo_index",
    "codec_for_path",
    "write_block_gzip",
]
