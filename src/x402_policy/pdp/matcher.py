"""Pattern matching for allowlist/denylist values and pricing routes.

Patterns are literal strings, optionally ending in a single ``*`` wildcard:

    "agent-7"      matches only "agent-7"
    "agent-*"      matches any value starting with "agent-"
    "*"            matches everything

When several patterns match a value, the one with the longest literal
prefix is authoritative (most-specific-wins). An exact literal beats a
wildcard pattern with the same prefix.
"""

from __future__ import annotations

__all__ = [
    "is_wildcard",
    "literal_prefix",
    "match_pattern",
    "matching_patterns",
    "most_specific_match",
    "pattern_syntax_error",
]

from typing import Iterable

from x402_policy.constants import WILDCARD


def is_wildcard(pattern: str) -> bool:
    """True if the pattern ends with the wildcard character."""
    return pattern.endswith(WILDCARD)


def literal_prefix(pattern: str) -> str:
    """Literal part of a pattern ("agent-*" -> "agent-")."""
    return pattern[:-1] if is_wildcard(pattern) else pattern


def match_pattern(pattern: str, value: str) -> bool:
    """Check a single value against a single pattern.

    Args:
        pattern: Literal value or trailing-wildcard pattern.
        value: Request attribute value.

    Returns:
        True on literal equality, or when the pattern's literal prefix is a
        prefix of the value.
    """
    if is_wildcard(pattern):
        return value.startswith(pattern[:-1])
    return pattern == value


def matching_patterns(patterns: Iterable[str], value: str) -> list[str]:
    """All patterns matching value, in input order."""
    return [p for p in patterns if match_pattern(p, value)]


def _specificity(pattern: str) -> tuple[int, bool]:
    return len(literal_prefix(pattern)), not is_wildcard(pattern)


def most_specific_match(patterns: Iterable[str], value: str) -> str | None:
    """Return the authoritative matching pattern, or None if none match.

    Example:
        >>> most_specific_match(["/api/*", "/api/admin/*"], "/api/admin/x")
        '/api/admin/*'
    """
    best: str | None = None
    for pattern in patterns:
        if not match_pattern(pattern, value):
            continue
        # Strictly greater: on ties the earliest pattern wins (stable)
        if best is None or _specificity(pattern) > _specificity(best):
            best = pattern
    return best


def pattern_syntax_error(pattern: str) -> str | None:
    """Describe what is wrong with a pattern, or None if it is well formed."""
    if pattern == "":
        return "empty value"
    if WILDCARD in pattern[:-1]:
        return f"wildcard '{WILDCARD}' is only allowed as the last character"
    return None
