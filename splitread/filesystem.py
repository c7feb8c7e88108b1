import socket
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from prefect.logging import get_logger

from splitread.errors import SplitIOError


@dataclass(frozen=True, slots=True)
class FileStatus:
    path: Path
    size: int
    mtime_ns: int


@runtime_checkable
class FileSystem(Protocol):
    def open(self, path: Path) -> BinaryIO: ...

    def stat(self, path: Path) -> FileStatus: ...

    # Best-effort: an empty set means "no locality preference".
    def block_locations(
        self,
        path: Path,
        start: int,
        length: int,
    ) -> frozenset[str]: ...


@dataclass(frozen=True, slots=True)
class LocalFileSystem(FileSystem):
    buffering: int = 1024 * 1024

    def open(self, path: Path) -> BinaryIO:
        try:
            return Path(path).open("rb", buffering=self.buffering)
        except OSError as exc:
            msg = f"Cannot open {path}: {exc}"
            raise SplitIOError(msg) from exc

    def stat(self, path: Path) -> FileStatus:
        try:
            st = Path(path).stat()
        except OSError as exc:
            msg = f"Cannot stat {path}: {exc}"
            raise SplitIOError(msg) from exc
        return FileStatus(path=Path(path), size=st.st_size, mtime_ns=st.st_mtime_ns)

    def block_locations(self, path: Path, start: int, length: int) -> frozenset[str]:
        logger = get_logger()
        try:
            size = Path(path).stat().st_size
        except OSError:
            logger.exception("Could not look up block locations for %s", path)
            return frozenset()

        # Every byte of a local file lives on this host.
        if start >= size or length <= 0:
            return frozenset()
        return frozenset({socket.gethostname()})
