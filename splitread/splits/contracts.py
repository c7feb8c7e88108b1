from dataclasses import dataclass
from pathlib import Path

from beartype import beartype

from splitread.type_hints import CompressedOffset, NonNegativeInt


@beartype
@dataclass(frozen=True, slots=True)
class Split:
    """A contiguous byte range ``[start, start + length)`` of one file."""

    file_path: Path
    start: NonNegativeInt
    length: NonNegativeInt

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True, slots=True)
class ResolvedBoundary:
    effective_start: CompressedOffset
    # Can be <= 0 when the split holds no block start or is shorter than the header.
    effective_length: int
    begins_at_format_header: bool
    # Reading continues while the cursor is at or before this offset.
    drain_limit: CompressedOffset

    @property
    def effective_end(self) -> int:
        return self.effective_start + self.effective_length
