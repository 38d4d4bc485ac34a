import base64

import pytest

from utils.errors import InputValidationError
from utils.images import parse_image_data_uri

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def test_jpeg_data_uri(image_uri):
    payload = parse_image_data_uri(image_uri)

    assert payload.mime_type == "image/jpeg"
    assert payload.data.startswith(b"\xff\xd8\xff")


def test_png_data_uri():
    uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()

    assert parse_image_data_uri(uri).mime_type == "image/png"


@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "/9j/4AAQSkZJRg==",
        "data:text/plain;base64,aGVsbG8=",
        "data:image/jpeg;base64,",
        "data:image/jpeg;base64," + base64.b64encode(b"not an image at all").decode(),
        "data:image/png;base64," + base64.b64encode(b"\xff\xd8\xff\xe0jpeg bytes").decode()[:3],
        {"image": "x"},
    ],
)
def test_rejects_non_images(value):
    with pytest.raises(InputValidationError):
        parse_image_data_uri(value)
