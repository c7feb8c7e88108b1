from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

SPLITS_DONE = "splits_done"
SPLITS_TOTAL = "splits_total"


def make_split_progress() -> Progress:
    """Bar over the compressed input size, plus a finished-splits counter.

    Tasks must be added with ``splits_done`` and ``splits_total`` fields.
    """
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        "[progress.percentage]{task.percentage:>3.1f}%",
        "•",
        DownloadColumn(),
        "•",
        TextColumn(
            f"{{task.fields[{SPLITS_DONE}]}}/{{task.fields[{SPLITS_TOTAL}]}} splits",
        ),
        "•",
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        transient=True,
    )
