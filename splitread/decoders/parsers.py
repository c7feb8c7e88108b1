import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

from prefect.logging import get_logger

from splitread.decoders.contracts import LINE_FIELD, LineDecoder
from splitread.type_hints import Record


def _reject_constant(name: str) -> Any:
    msg = f"Non-finite number {name} is not valid JSON"
    raise ValueError(msg)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    # Numbers, booleans and nested containers keep their JSON spelling.
    return json.dumps(value, ensure_ascii=False, allow_nan=False)


@dataclass(frozen=True, slots=True)
class JsonLineDecoder(LineDecoder):
    """One JSON object per line; every value becomes its textual form."""

    def decode_line(self, raw_line: str) -> Record | None:
        logger = get_logger()
        try:
            obj = json.loads(raw_line, parse_constant=_reject_constant)
        except json.JSONDecodeError:
            logger.warning("Could not json-decode line: %r", raw_line, exc_info=True)
            return None
        except RecursionError:
            # Nesting deeper than the interpreter's recursion limit.
            logger.warning("Could not json-decode line: %.200r", raw_line)
            return None
        except ValueError:
            logger.warning("Could not parse field into number: %r", raw_line)
            return None

        if not isinstance(obj, dict):
            logger.warning(
                "Expected a JSON object, got %s: %r",
                type(obj).__name__,
                raw_line,
            )
            return None

        try:
            return {str(k): _as_text(v) for k, v in obj.items()}
        except (ValueError, RecursionError):
            logger.warning("Could not render field as text: %.200r", raw_line)
            return None


@dataclass(frozen=True, slots=True)
class TextLineDecoder(LineDecoder):
    field_name: str = LINE_FIELD

    def decode_line(self, raw_line: str) -> Record | None:
        return {self.field_name: raw_line}


@dataclass(frozen=True, slots=True)
class DelimitedLineDecoder(LineDecoder):
    """Fixed columns split on a delimiter, e.g. tab-separated access logs.

    Columns listed in ``int_fields`` must hold integers; their values are
    normalised (``"007"`` -> ``"7"``).
    """

    _DEFAULT_DELIMITER: ClassVar[str] = "\t"

    field_names: Sequence[str]
    delimiter: str = _DEFAULT_DELIMITER
    int_fields: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not self.field_names:
            msg = "DelimitedLineDecoder needs at least one field name"
            raise ValueError(msg)
        unknown = set(self.int_fields) - set(self.field_names)
        if unknown:
            msg = f"int_fields not among field_names: {sorted(unknown)}"
            raise ValueError(msg)

    def decode_line(self, raw_line: str) -> Record | None:
        logger = get_logger()
        values = raw_line.split(self.delimiter)
        if len(values) != len(self.field_names):
            logger.warning(
                "Expected %d fields, got %d: %r",
                len(self.field_names),
                len(values),
                raw_line,
            )
            return None

        record: Record = {}
        for name, value in zip(self.field_names, values, strict=True):
            if name in self.int_fields:
                try:
                    value = str(int(value))  # noqa: PLW2901 - normalised in place
                except ValueError:
                    logger.warning(
                        "Could not parse field %r into number: %r",
                        name,
                        raw_line,
                    )
                    return None
            record[name] = value
        return record
