import os
from collections.abc import Callable, Iterator
from multiprocessing import Pool
from pathlib import Path

import pyarrow as pa
import pyarrow.parquet as pq
from prefect.logging import get_logger
from rich.progress import Progress

from splitread.config import WriterConfig
from splitread.io_utils import SPLITS_DONE, SPLITS_TOTAL, make_split_progress
from splitread.parquet.contracts import (
    FIELDS_FIELD,
    POSITION_FIELD,
    WriterJobCtx,
    WriterResult,
)
from splitread.reader import SplitRecordReader
from splitread.splits import plan_splits
from splitread.type_hints import Record

RECORD_SCHEMA = pa.schema(
    [
        pa.field(POSITION_FIELD, pa.int64(), nullable=False),
        pa.field(FIELDS_FIELD, pa.map_(pa.string(), pa.string())),
    ],
)


class SplitWriterWorker:
    def __init__(self, writer_ctx: WriterJobCtx) -> None:
        self.split = writer_ctx.split
        self.reader_config = writer_ctx.reader_config
        self.part_id = writer_ctx.part_id
        self.out_path = (
            writer_ctx.parquet_out_dir / f"part-{writer_ctx.part_id:05d}.parquet"
        )

    def read_split_and_write(self) -> WriterResult:
        positions: list[int] = []
        fields: list[list[tuple[str, str]]] = []

        with SplitRecordReader(self.reader_config).open(self.split) as reader:
            for position, record in reader:
                positions.append(position)
                fields.append(list(record.items()))
            boundary = reader.boundary
            assert boundary is not None  # for type checker

        # Always write a file (even if empty) so downstream expects consistent parts
        table = pa.Table.from_pydict(
            {POSITION_FIELD: positions, FIELDS_FIELD: fields},
            schema=RECORD_SCHEMA,
        )
        pq.write_table(table, self.out_path)

        return WriterResult(
            part_id=self.part_id,
            out_path=self.out_path,
            n_read=reader.lines_read,
            n_emitted=reader.records_emitted,
            n_malformed=reader.malformed_lines,
            start=self.split.start,
            end=self.split.end,
            effective_start=boundary.effective_start,
            begins_at_format_header=boundary.begins_at_format_header,
        )


def _run_job(ctx: WriterJobCtx) -> WriterResult:
    # Top-level function so it is picklable on all platforms.
    return SplitWriterWorker(ctx).read_split_and_write()


def extract_records(
    *,
    input_path: Path,
    parquet_out_dir: Path,
    config: WriterConfig,
    progress_factory: Callable[[], Progress] = make_split_progress,
) -> list[WriterResult]:
    """Decode every record of ``input_path`` into one Parquet part per split."""
    logger = get_logger()
    workers = config.workers
    if workers is None:
        workers = os.cpu_count() or 8
    workers = max(1, int(workers))

    input_path = input_path.resolve()
    parquet_out_dir = parquet_out_dir.resolve()

    size = input_path.stat().st_size
    if size == 0:
        msg = f"Empty file: {input_path}"
        raise ValueError(msg)

    if parquet_out_dir.exists():
        logger.info("Deleting stale parquet parts in %s", parquet_out_dir)
        for f in parquet_out_dir.glob("part-*.parquet"):
            f.unlink()
    parquet_out_dir.mkdir(parents=True, exist_ok=True)

    max_splits = max(1, size // config.min_bytes_per_split)
    splits = plan_splits(input_path, min(workers, max_splits))
    jobs = [
        WriterJobCtx(part_id, split, parquet_out_dir, config.reader)
        for part_id, split in enumerate(splits)
    ]

    logger.info(
        "Split extraction: file=%s size=%d bytes splits=%d workers=%d out=%s",
        input_path,
        size,
        len(jobs),
        workers,
        parquet_out_dir,
    )

    results: list[WriterResult] = []
    with progress_factory() as progress:
        task_id = progress.add_task(
            f"Reading {input_path.name}",
            total=size,
            **{SPLITS_DONE: 0, SPLITS_TOTAL: len(jobs)},
        )

        def _record(res: WriterResult) -> None:
            results.append(res)
            progress.update(
                task_id,
                advance=res.end - res.start,
                **{SPLITS_DONE: len(results)},
            )
            logger.info(
                "Wrote part=%d read=%d emitted=%d malformed=%d range=[%d..%d) -> %s",
                res.part_id,
                res.n_read,
                res.n_emitted,
                res.n_malformed,
                res.start,
                res.end,
                res.out_path,
            )

        if len(jobs) == 1:
            _record(_run_job(jobs[0]))
        else:
            with Pool(processes=min(workers, len(jobs))) as pool:
                for res in pool.imap_unordered(_run_job, jobs, chunksize=1):
                    _record(res)

    results.sort(key=lambda r: r.part_id)
    missing = [r.out_path for r in results if not Path(r.out_path).exists()]
    if missing:
        msg = f"Some part files were not written: {missing[:5]}"
        raise RuntimeError(msg)

    logger.info(
        "Done: parts=%d total_read=%d total_emitted=%d total_malformed=%d out=%s",
        len(results),
        sum(r.n_read for r in results),
        sum(r.n_emitted for r in results),
        sum(r.n_malformed for r in results),
        parquet_out_dir,
    )
    return results


def iter_parquet_records(parquet_out_dir: Path) -> Iterator[tuple[int, Record]]:
    """Read parts back in split order."""
    for part in sorted(parquet_out_dir.glob("part-*.parquet")):
        table = pq.read_table(part)
        for row in table.to_pylist():
            yield row[POSITION_FIELD], dict(row[FIELDS_FIELD])
