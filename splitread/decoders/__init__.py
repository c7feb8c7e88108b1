from collections.abc import Callable

from .contracts import LINE_FIELD, DecoderSpec, LineDecoder
from .parsers import DelimitedLineDecoder, JsonLineDecoder, TextLineDecoder

DECODERS: dict[str, Callable[..., LineDecoder]] = {
    "json": JsonLineDecoder,
    "text": TextLineDecoder,
    "delimited": DelimitedLineDecoder,
}


def decoder_from_spec(spec: DecoderSpec) -> LineDecoder:
    try:
        factory = DECODERS[spec.name]
    except KeyError:
        msg = f"Unknown decoder {spec.name!r}; expected one of {sorted(DECODERS)}"
        raise ValueError(msg) from None
    return factory(**spec.options)


__all__ = [
    "DECODERS",
    "LINE_FIELD",
    "DecoderSpec",
    "DelimitedLineDecoder",
    "JsonLineDecoder",
    "LineDecoder",
    "TextLineDecoder",
    "decoder_from_spec",
]
