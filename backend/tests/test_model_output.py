import pytest

from utils.errors import ResultShapeError
from utils.model_output import extract_url

URL = "https://replicate.delivery/out.mp4"


@pytest.mark.parametrize(
    "output",
    [
        URL,
        f"  {URL}  ",
        [URL, "https://replicate.delivery/second.mp4"],
        {"output": [URL]},
        {"output": URL},
        {"video": URL},
        {"output": {"url": URL}},
    ],
)
def test_known_shapes_decode(output):
    assert extract_url(output) == URL


@pytest.mark.parametrize("output", [None, "", [], [None], {"output": []}, {"status": "ok"}, 42])
def test_unknown_shapes_fail_loudly(output):
    with pytest.raises(ResultShapeError) as excinfo:
        extract_url(output, "bytedance/seedance-1-pro-fast")
    assert "bytedance/seedance-1-pro-fast" in str(excinfo.value)
