"""Decoders for the URL a model hands back.

Replicate models disagree on output shape: some return a bare URL, some a
list of URLs, some an object wrapping either. Each known shape gets its own
decoder and they are tried in order; an output none of them understands is
a permanent failure rather than a guess.
"""
from typing import Any, Callable, Optional

from utils.errors import ResultShapeError

_NESTED_KEYS = ("output", "video", "url", "audio")


def _decode_string(output: Any) -> Optional[str]:
    if isinstance(output, str) and output.strip():
        return output.strip()
    return None


def _decode_first_item(output: Any) -> Optional[str]:
    if isinstance(output, (list, tuple)) and output:
        return _decode_string(output[0])
    return None


def _decode_nested(output: Any) -> Optional[str]:
    if not isinstance(output, dict):
        return None
    for key in _NESTED_KEYS:
        value = output.get(key)
        url = _decode_string(value) or _decode_first_item(value) or _decode_nested(value)
        if url:
            return url
    return None


OUTPUT_DECODERS: tuple[tuple[str, Callable[[Any], Optional[str]]], ...] = (
    ("string", _decode_string),
    ("list", _decode_first_item),
    ("nested", _decode_nested),
)


def extract_url(output: Any, model_id: str = "model") -> str:
    for _shape, decode in OUTPUT_DECODERS:
        url = decode(output)
        if url:
            return url
    raise ResultShapeError(
        f"{model_id} returned no usable URL (output type: {type(output).__name__})"
    )
