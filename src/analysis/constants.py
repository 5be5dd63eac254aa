"""Shared analysis constants."""

# Prefix marking a placeholder analysis produced when every provider failed.
MOCK_ANALYSIS_PREFIX = "MOCK ANALYSIS:"

MOCK_ANALYSIS_TEXT = f"{MOCK_ANALYSIS_PREFIX} This story is spine-chilling! (Score: 8.5/10)"

# Substrings (matched case-insensitively) that mark analysis text as an
# error message rather than real output.
ERROR_KEYWORDS: tuple[str, ...] = (
    "Error:",
    "Exception:",
    "429",
    "RESOURCE_EXHAUSTED",
    "Quota",
)

# Response body substrings that classify a failed call as quota exhaustion.
QUOTA_BODY_MARKERS: tuple[str, ...] = (
    "quota",
    "limit",
    "resource_exhausted",
    "limit_exceeded",
)

QUOTA_STATUS_CODES: frozenset[int] = frozenset({429, 403})

MAX_SCORE = 10.0
