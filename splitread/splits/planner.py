import math
from pathlib import Path

from prefect.logging import get_logger

from splitread.codecs import Codec
from splitread.cursor import CompressedCursor
from splitread.filesystem import FileSystem, LocalFileSystem
from splitread.splits.contracts import Split


def plan_splits(
    path: Path,
    n_splits: int,
    *,
    fs: FileSystem | None = None,
    codec: Codec | None = None,
) -> list[Split]:
    """Tile ``path`` into at most ``n_splits`` contiguous byte ranges.

    Trailing ranges that lie wholly after the last block boundary are
    dropped: nothing can be read from them, and the split before them
    already drains to end of file.
    """
    logger = get_logger()
    fs = fs or LocalFileSystem()
    if n_splits <= 0:
        msg = "n_splits must be a positive integer"
        raise ValueError(msg)

    size = fs.stat(path).size
    if size == 0:
        msg = f"Empty file: {path}"
        raise ValueError(msg)

    step = math.ceil(size / n_splits)
    splits: list[Split] = []
    start = 0
    while start < size:
        length = min(step, size - start)
        splits.append(Split(file_path=Path(path), start=start, length=length))
        start += length

    with CompressedCursor.open(path, fs=fs, codec=codec) as cursor:
        last_boundary = cursor.next_boundary(splits[-1].start)
        while len(splits) > 1 and last_boundary is None:
            dropped = splits.pop()
            logger.debug(
                "Dropping split [%d..%d) of %s: no block boundary in range",
                dropped.start,
                dropped.end,
                path,
            )
            last_boundary = cursor.next_boundary(splits[-1].start)

    return splits


def split_locations(split: Split, fs: FileSystem | None = None) -> frozenset[str]:
    """Hosts holding any byte of ``split``; empty when unknown."""
    logger = get_logger()
    fs = fs or LocalFileSystem()
    try:
        return fs.block_locations(split.file_path, split.start, split.length)
    except OSError:
        logger.exception("Could not get block locations for %s", split.file_path)
        return frozenset()
