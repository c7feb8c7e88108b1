from dataclasses import dataclass
from pathlib import Path

from splitread.config import ReaderConfig
from splitread.splits.contracts import Split

POSITION_FIELD = "position"
FIELDS_FIELD = "fields"


@dataclass(frozen=True, slots=True)
class WriterJobCtx:
    part_id: int
    split: Split
    parquet_out_dir: Path
    reader_config: ReaderConfig


@dataclass(frozen=True, slots=True)
class WriterResult:
    part_id: int
    out_path: Path
    n_read: int
    n_emitted: int
    n_malformed: int
    start: int
    end: int
    effective_start: int
    begins_at_format_header: bool
