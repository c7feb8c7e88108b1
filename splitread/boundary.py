from prefect.logging import get_logger

from splitread.cursor import CompressedCursor
from splitread.splits.contracts import ResolvedBoundary, Split
from splitread.type_hints import CompressedOffset


def resolve_boundary(
    split: Split,
    cursor: CompressedCursor,
    file_size: int,
) -> ResolvedBoundary:
    """Decide where ``split`` really starts and positions ``cursor`` there.

    A split at offset zero starts right after the format header, which the
    codec consumed on open. Any other split starts at the first block
    boundary at or after its start. In both cases the absolute end stays
    ``split.start + split.length``; reading then continues up to the first
    boundary at or after that end (the drain limit), so the block holding the
    end offset is read by this split and the next split skips into it.

    The zero split's first key is the header size, which is only non-zero
    for codecs that carry a file header (lzop). Headerless codecs such as
    multi-member gzip report ``begins_at_format_header`` with a first key
    of 0.
    """
    logger = get_logger()

    if split.start == 0:
        h = cursor.position()
        effective_start = h
        begins_at_format_header = True
    else:
        effective_start = cursor.seek_to_boundary(split.start)
        begins_at_format_header = False

    drain_limit = cursor.next_boundary(split.end)
    if drain_limit is None:
        drain_limit = CompressedOffset(file_size)

    resolved = ResolvedBoundary(
        effective_start=effective_start,
        effective_length=split.end - effective_start,
        begins_at_format_header=begins_at_format_header,
        drain_limit=drain_limit,
    )
    logger.debug(
        "Resolved split %s [%d..%d) -> start=%d length=%d header=%s drain_limit=%d",
        split.file_path,
        split.start,
        split.end,
        resolved.effective_start,
        resolved.effective_length,
        resolved.begins_at_format_header,
        resolved.drain_limit,
    )
    return resolved
