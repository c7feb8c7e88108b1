from dataclasses import dataclass, field
from pathlib import Path

from platformdirs import user_cache_dir, user_data_dir

from splitread.decoders import DecoderSpec


@dataclass(frozen=True, slots=True)
class CachePathsConfig:
    data_root: Path = field(default_factory=lambda: Path(user_data_dir("splitread")))
    cache_root: Path = field(default_factory=lambda: Path(user_cache_dir("splitread")))


@dataclass(frozen=True, slots=True)
class ReaderConfig:
    decoder: DecoderSpec = field(default_factory=DecoderSpec)
    encoding: str = "utf-8"
    # Lines longer than this are dropped as malformed; None disables the check.
    max_line_bytes: int | None = 16 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class WriterConfig:
    workers: int | None = None
    # Don't cut splits smaller than this; tiny splits waste per-process overhead.
    min_bytes_per_split: int = 8 * 1024 * 1024
    reader: ReaderConfig = field(default_factory=ReaderConfig)
