import re
from typing import Literal

Tone = Literal["compliment", "roast", "coach"]
Mood = Literal["upbeat", "sleepy", "neutral"]

CAPTION_PROMPT = "Describe the person's visible expression, posture, and outfit briefly (max 12 words)."
CAPTION_MAX_LENGTH = 160
MESSAGE_MAX_LENGTH = 160
DEFAULT_CAPTION = "uncertain appearance"
DEFAULT_INTENSITY = 1
FALLBACK_MESSAGE = "You've got this, coffee and curiosity should help."

TONE_RULES: dict[str, str] = {
    "compliment": "Wholesome, short hype compliment (max 12 words). Be clever, not boring.",
    "roast": "Savage, witty, 12 words max. PG-13. Mock outfit, vibe, or confidence.",
    "coach": "Chaotic life coach wisdom. Sound delusional but motivational.",
}
DEFAULT_TONE_RULE = TONE_RULES["coach"]

ABSURDITY_LEVELS = ("none", "subtle", "noticeable", "bold")

_UPBEAT_WORDS = re.compile(r"smil|happy|cheerful|confident|grin|laugh", re.IGNORECASE)
_SLEEPY_WORDS = re.compile(r"tired|sleepy|messy|yawn|exhausted", re.IGNORECASE)

_PUNCTUATION = ",.!?;:"


def tone_rule(tone: str | None) -> str:
    return TONE_RULES.get((tone or "").strip().lower(), DEFAULT_TONE_RULE)


def clamp_intensity(intensity) -> int:
    try:
        level = int(float(intensity))
    except (TypeError, ValueError):
        return DEFAULT_INTENSITY
    return max(0, min(len(ABSURDITY_LEVELS) - 1, level))


def absurdity_level(intensity) -> str:
    return ABSURDITY_LEVELS[clamp_intensity(intensity)]


def join_model_text(output) -> str:
    """Language models on Replicate stream tokens, so output is usually a list."""
    if output is None:
        return ""
    if isinstance(output, (list, tuple)):
        return "".join(str(part) for part in output)
    return str(output)


def clean_caption(raw: str) -> str:
    caption = re.sub(r"\s+", " ", raw or "").strip()[:CAPTION_MAX_LENGTH].strip()
    return caption or DEFAULT_CAPTION


def normalize_message(raw: str) -> str:
    text = re.sub(r"\s+", " ", raw or "").strip()
    text = text.strip("\"'“”").strip()
    text = re.sub(rf"\s+([{re.escape(_PUNCTUATION)}])", r"\1", text)
    # one space after punctuation, leaving "...", "?!" and decimals alone
    text = re.sub(rf"([{re.escape(_PUNCTUATION)}])(?=[^\s\d{re.escape(_PUNCTUATION)}\"'”)])", r"\1 ", text)
    return text[:MESSAGE_MAX_LENGTH].strip()


def detect_mood(caption: str) -> Mood:
    if _UPBEAT_WORDS.search(caption or ""):
        return "upbeat"
    if _SLEEPY_WORDS.search(caption or ""):
        return "sleepy"
    return "neutral"


def create_message_prompt(caption: str, tone: str | None, intensity) -> str:
    """
    Build the single instruction sent to the text model.
    The model must answer with one short line about what the mirror sees.
    """
    return f"""SYSTEM: You are Blue Mirror, a witty, self-aware AI mirror.
RULES:
- Output one short, clever line (12 words or fewer)
- PG-13 humor, never cruel
- Focus on outfit, expression, or energy
- Reply with the line only, no quotes or preamble
STYLE: Internet-native, sarcastic but smart
TONE: {tone_rule(tone)}
ABSURDITY: {absurdity_level(intensity)}

USER:
Based on this image: "{caption}\""""
