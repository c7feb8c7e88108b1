from .contracts import FIELDS_FIELD, POSITION_FIELD, WriterJobCtx, WriterResult
from .writer_worker import (
    RECORD_SCHEMA,
    SplitWriterWorker,
    extract_records,
    iter_parquet_records,
)

__all__ = [
    "FIELDS_FIELD",
    "POSITION_FIELD",
    "RECORD_SCHEMA",
    "SplitWriterWorker",
    "WriterJobCtx",
    "WriterResult",
    "extract_records",
    "iter_parquet_records",
]
