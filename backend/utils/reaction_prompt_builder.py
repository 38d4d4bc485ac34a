import re
from typing import Literal

Mode = Literal["seedance", "avatar"]
DEFAULT_MODE: Mode = "seedance"

_MODE_ALIASES: dict[str, Mode] = {
    # Direct image-to-video
    "seedance": "seedance",
    "i2v": "seedance",
    "video": "seedance",
    "clip": "seedance",

    # Speech first, then a talking avatar
    "avatar": "avatar",
    "talking": "avatar",
    "talking_head": "avatar",
    "speech": "avatar",
    "tts": "avatar",
}

_PALETTES = {
    "upbeat": "teal/cyan",
    "sleepy": "indigo/navy",
}
DEFAULT_PALETTE = "lilac/gray"
LINE_MAX_LENGTH = 120


def normalize_mode(mode: str | None) -> Mode:
    """Normalize mode input to 'seedance' or 'avatar'."""
    normalized = (mode or "").strip().lower()
    return _MODE_ALIASES.get(normalized, DEFAULT_MODE)


def sanitize_line(line: str) -> str:
    return re.sub(r"[\r\n]+", " ", line or "").replace('"', "'").strip()[:LINE_MAX_LENGTH]


def palette_for_mood(mood: str | None) -> str:
    return _PALETTES.get((mood or "").strip().lower(), DEFAULT_PALETTE)


def create_reaction_prompt(line: str, mood: str | None) -> str:
    """Prompt for the 5-second vertical reaction clip."""
    return (
        f"Vertical 5s reaction clip. Animated {palette_for_mood(mood)} gradient. "
        f'Kinetic captions: "{sanitize_line(line)}". Rounded bold font with outline. '
        "Subtle sparkles. Wholesome vibe."
    )


def create_avatar_prompt(line: str, mood: str | None) -> str:
    return (
        f"The person in the photo says: \"{sanitize_line(line)}\". "
        f"Natural lip sync, playful expression, soft {palette_for_mood(mood)} lighting."
    )
