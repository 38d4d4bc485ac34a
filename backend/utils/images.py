import base64
import binascii
import re
from dataclasses import dataclass

from utils.errors import InputValidationError

_DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>image/(?:png|jpeg|jpg|webp|gif));base64,(?P<payload>.+)$",
    re.DOTALL,
)


@dataclass
class ImagePayload:
    data_uri: str
    mime_type: str
    data: bytes


def _looks_like_image(data: bytes) -> bool:
    if not data:
        return False
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return True
    if data.startswith(b"\xff\xd8\xff"):
        return True
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return True
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return True
    return False


def parse_image_data_uri(value) -> ImagePayload:
    """Validate a base64 image data URI coming from the browser capture.

    The media-type prefix and the decoded magic bytes must both say "image";
    anything else is rejected before it can reach a model.
    """
    if not isinstance(value, str) or not value:
        raise InputValidationError("imageBase64 is required")

    match = _DATA_URI_PATTERN.match(value.strip())
    if not match:
        raise InputValidationError("Invalid image format")

    try:
        data = base64.b64decode(match.group("payload"), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise InputValidationError(f"Invalid image encoding: {exc}") from exc

    if not _looks_like_image(data):
        raise InputValidationError("Invalid image format")

    mime_type = match.group("mime")
    if mime_type == "image/jpg":
        mime_type = "image/jpeg"
    return ImagePayload(data_uri=value.strip(), mime_type=mime_type, data=data)
