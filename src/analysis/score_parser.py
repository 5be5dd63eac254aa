"""Scary score extraction from free-form analysis text.

Providers answer in prose, so the score is recovered heuristically. Rules are
tried in order and the first match wins:

1. Empty text or text carrying an error keyword has no score.
2. An explicit "Score" label followed by a number (``Score: 7``,
   ``**Scary Score** - 6.5``, ``score #9``).
3. A ``<number>/10`` fraction anywhere in the text.
4. The first standalone number of at most 10 that does not directly follow
   a ``<digit>. `` sequence.

Candidates above 10 are rejected. Fractional values are kept as-is.
"""

import re

from src.analysis.constants import MAX_SCORE
from src.analysis.validation import contains_error_keyword

_LABELED_SCORE = re.compile(r"Score[:\s*\-#]*(\d+(?:\.\d+)?)", re.IGNORECASE)
_OUT_OF_TEN = re.compile(r"(\d+(?:\.\d+)?)\s*/\s*10")
_STANDALONE_NUMBER = re.compile(r"(?<!\d\.\s)\b(\d+(?:\.\d+)?)")


def _first_in_range(pattern: re.Pattern[str], text: str) -> float | None:
    match = pattern.search(text)
    if match is None:
        return None
    value = float(match.group(1))
    return value if value <= MAX_SCORE else None


def parse_score(text: str | None) -> float | None:
    """Extract a 0-10 score from analysis text.

    Args:
        text: Raw analysis text returned by a provider.

    Returns:
        The score, or None if no acceptable number is found.
    """
    if text is None or not text.strip():
        return None
    if contains_error_keyword(text):
        return None

    score = _first_in_range(_LABELED_SCORE, text)
    if score is not None:
        return score

    score = _first_in_range(_OUT_OF_TEN, text)
    if score is not None:
        return score

    for match in _STANDALONE_NUMBER.finditer(text):
        value = float(match.group(1))
        if value <= MAX_SCORE:
            return value

    return None
