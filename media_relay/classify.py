import enum, re
from typing import Optional

URL_RE = re.compile(r"(https?://\S+)", re.IGNORECASE)
INSTAGRAM_RE = re.compile(r"^https?://(www\.)?(instagram\.com|instagr\.am)/.+", re.IGNORECASE)
YOUTUBE_RE = re.compile(r"^https?://(www\.|m\.|music\.)?(youtube\.com|youtu\.be)/.+", re.IGNORECASE)

MIN_QUERY_LENGTH = 3


class MessageKind(enum.Enum):
    PLATFORM_A = "instagram"
    PLATFORM_B = "youtube"
    URL = "url"
    SEARCH = "search"
    NONE = "none"


def extract_url(text: str) -> Optional[str]:
    m = URL_RE.search(text or "")
    return m.group(1) if m else None


def classify(text: str, min_query_length: int = MIN_QUERY_LENGTH) -> MessageKind:
    """Classify a free-text message; first match wins.

    Pending-state expectations are resolved by the caller before this runs.
    """
    text = (text or "").strip()
    if INSTAGRAM_RE.match(text):
        return MessageKind.PLATFORM_A
    if YOUTUBE_RE.match(text):
        return MessageKind.PLATFORM_B
    if URL_RE.search(text):
        return MessageKind.URL
    if len(text) >= min_query_length:
        return MessageKind.SEARCH
    return MessageKind.NONE
