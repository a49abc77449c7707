"""Token-usage extraction.

Usage arrives from two unrelated sources and the two are never merged:

- the ``usage`` object of the final ``result`` envelope on stdout, where
  every counter is reported (missing sub-keys count as ``0``), and
- free-text lines on stderr, where only the counters that actually
  appear are reported and the rest stay absent.
"""

from __future__ import annotations

import re
from typing import Any, Final

from cli_relay.core.types import TokenUsage

USAGE_FIELDS: Final[tuple[str, ...]] = (
    "input_tokens",
    "output_tokens",
    "cache_creation_input_tokens",
    "cache_read_input_tokens",
)

# Each entry: (TokenUsage field, pattern with the count in group 1)
TOKEN_PATTERNS: Final[list[tuple[str, re.Pattern[str]]]] = [
    ("input_tokens", re.compile(r"Input tokens?:\s*(\d+)", re.IGNORECASE)),
    ("output_tokens", re.compile(r"Output tokens?:\s*(\d+)", re.IGNORECASE)),
    (
        "cache_creation_input_tokens",
        re.compile(r"Cache creation input tokens?:\s*(\d+)", re.IGNORECASE),
    ),
    (
        "cache_read_input_tokens",
        re.compile(r"Cache read input tokens?:\s*(\d+)", re.IGNORECASE),
    ),
]


def _count(value: Any) -> int:
    # Counters are JSON integers; anything else (bool included) counts as 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def usage_from_result(usage: dict[str, Any] | None) -> TokenUsage:
    """Build a fully populated usage record from a ``result`` envelope.

    Args:
        usage: The envelope's ``usage`` object, possibly empty or None.

    Returns:
        TokenUsage with all four counters set; missing ones are ``0``.
    """
    usage = usage or {}
    return TokenUsage(**{name: _count(usage.get(name)) for name in USAGE_FIELDS})


def parse_token_usage(text: str) -> TokenUsage | None:
    """Search free text for token counters.

    Each pattern is searched independently; the first occurrence wins.

    Args:
        text: Arbitrary stderr text.

    Returns:
        TokenUsage with only the matched counters set, or None if nothing
        matched.
    """
    found: dict[str, int] = {}
    for name, pattern in TOKEN_PATTERNS:
        match = pattern.search(text)
        if match:
            found[name] = int(match.group(1))

    if not found:
        return None
    return TokenUsage(**found)


def cache_hit_rate(usage: TokenUsage) -> float:
    """Percentage of prompt tokens served from cache, one decimal place.

    ``cache_read / (input + cache_read) * 100``; 0.0 when nothing was read
    from cache or the denominator is zero.
    """
    cache_read = usage.cache_read_input_tokens or 0
    denominator = (usage.input_tokens or 0) + cache_read
    if cache_read <= 0 or denominator <= 0:
        return 0.0
    return round(cache_read / denominator * 100, 1)
