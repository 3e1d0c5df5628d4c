"""
Utility functions for Agentic Copilot.

Provides helpers for text processing, domains and general utilities.
"""

from typing import Any
from urllib.parse import urlparse


# Words never mined as domain patterns
PATTERN_STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "this", "that", "these", "those",
})

# Words never treated as planning entities
ENTITY_STOP_WORDS = PATTERN_STOP_WORDS | frozenset({
    "a", "an", "is", "are", "was", "were", "be", "been",
    "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "can",
    "go", "get", "find", "search",
})


def truncate_text(text: str, max_chars: int, suffix: str = "...") -> str:
    """Truncate text to a maximum number of characters.

    Args:
        text: Text to truncate
        max_chars: Maximum number of characters
        suffix: Suffix to add when truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_chars:
        return text
    return text[:max_chars - len(suffix)] + suffix


def normalize_domain(domain: str) -> str:
    """Normalize a domain key: lowercase, no leading www., no trailing slash.

    Args:
        domain: Hostname as typed or reported by the page

    Returns:
        Normalized domain key (e.g., "example.com")
    """
    key = domain.lower()
    if key.startswith("www."):
        key = key[4:]
    if key.endswith("/"):
        key = key[:-1]
    return key


def parse_hostname(url: str) -> str:
    """Extract the lowercased hostname from a URL.

    Args:
        url: Full URL (scheme optional)

    Returns:
        Hostname, or "" if the URL has none
    """
    if not url:
        return ""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    return (parsed.hostname or "").lower()


def significant_words(text: str, stop_words: frozenset = PATTERN_STOP_WORDS, min_length: int = 4) -> list[str]:
    """Lowercased whitespace tokens that are long enough and not stop words."""
    return [
        word for word in text.lower().split()
        if len(word) >= min_length and word not in stop_words
    ]


def dedupe(items: list[Any]) -> list[Any]:
    """Drop duplicates while preserving first-seen order."""
    return list(dict.fromkeys(items))
