"""Small text helpers shared by extraction, enrichment and storage."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import math
import random
import re
import string
import time

STANDARD_CATEGORIES: tuple[str, ...] = (
    "Politics",
    "Sports",
    "Business",
    "Entertainment",
    "General",
)

WORDS_PER_MINUTE = 200

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%A, %B %d, %Y",
    "%a, %b %d, %Y",
)


def count_words(text: str) -> int:
    return len(text.split())


def estimate_read_minutes(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE)


def standardize_category(value: str | None) -> str:
    """Map a free-form category label onto the standard set.

    Unknown labels become "General".
    """
    lowered = (value or "").lower()
    if "politic" in lowered:
        return "Politics"
    if "sport" in lowered:
        return "Sports"
    if "business" in lowered or "economy" in lowered:
        return "Business"
    if "entertainment" in lowered:
        return "Entertainment"
    return "General"


def infer_category_from_url(url: str) -> str:
    lowered = url.lower()
    if "politic" in lowered or "politik" in lowered:
        return "Politics"
    return standardize_category(lowered)


def title_similarity(a: str, b: str) -> float:
    """Word-overlap ratio between two titles.

    Counts the words of ``a`` (with repeats) that also appear in ``b``, divided
    by the larger word count. Comparison is case-insensitive.
    """
    words_a = a.lower().split()
    words_b = b.lower().split()
    longest = max(len(words_a), len(words_b))
    if longest == 0:
        return 0.0
    vocab_b = set(words_b)
    common = sum(1 for word in words_a if word in vocab_b)
    return common / longest


def split_sentences(text: str) -> list[str]:
    return [part.strip() for part in _SENTENCE_SPLIT_RE.split(text) if part.strip()]


def parse_datetime(value: str | None, default: datetime | None = None) -> datetime | None:
    """Parse a date string from page markup.

    Tries ISO 8601 first, then RFC 2822, then a handful of common formats.
    Naive results are taken as UTC.

    Returns:
        The parsed datetime, or ``default`` when nothing matches
    """
    if not value:
        return default
    text = value.strip()
    if not text:
        return default

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None

    if parsed is None:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            parsed = None

    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def generate_document_id() -> str:
    """Process-unique id of the form ``article_<epoch ms>_<9 random chars>``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"article_{int(time.time() * 1000)}_{suffix}"
