from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from splitread.type_hints import Record

# Field name used by decoders that keep the whole line.
LINE_FIELD = "line"


@runtime_checkable
class LineDecoder(Protocol):
    # Returns None (after logging why) when the line cannot be decoded.
    def decode_line(self, raw_line: str) -> Record | None: ...


@dataclass(frozen=True, slots=True)
class DecoderSpec:
    """Configuration-supplied identifier plus constructor arguments."""

    name: str = "json"
    options: dict[str, Any] = field(default_factory=dict)
