"""Invalid-analysis taxonomy.

A stored analysis is invalid when it is missing, when it is the mock
placeholder, or when it is a provider error message that leaked into storage.
Ingestion self-heal, the event consumer's idempotency guard and the repair
sweep all decide with :func:`is_invalid_analysis`.
"""

from src.analysis.constants import ERROR_KEYWORDS, MOCK_ANALYSIS_PREFIX

_LOWERED_KEYWORDS = tuple(keyword.lower() for keyword in ERROR_KEYWORDS)


def contains_error_keyword(text: str) -> bool:
    """Check text for any error keyword, case-insensitively."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in _LOWERED_KEYWORDS)


def is_mock_analysis(text: str | None) -> bool:
    """Check whether text is the fallback placeholder."""
    return bool(text) and text.startswith(MOCK_ANALYSIS_PREFIX)


def is_invalid_analysis(text: str | None) -> bool:
    """Return True if the analysis must be (re)generated.

    Args:
        text: Stored analysis text, possibly None or empty.

    Returns:
        True for empty/whitespace text, mock placeholders and error messages.
    """
    if text is None or not text.strip():
        return True
    if is_mock_analysis(text):
        return True
    return contains_error_keyword(text)
