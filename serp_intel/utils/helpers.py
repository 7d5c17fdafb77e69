"""General-purpose helper utilities for SERP intelligence."""

import math
from typing import Optional
from urllib.parse import urlparse


def extract_domain(url: str) -> Optional[str]:
    """Extract the bare host from a URL or domain string.

    The host is lower-cased and a leading ``www.`` is stripped, so
    ``https://WWW.Example.com/page`` and ``example.com`` compare equal.

    Args:
        url: Full URL or bare domain.

    Returns:
        Host name, or None when nothing host-like can be parsed.

    Examples:
        >>> extract_domain("https://www.example.com/blog")
        'example.com'
        >>> extract_domain("example.com")
        'example.com'
    """
    if not url:
        return None
    url = url.strip()
    try:
        parsed = urlparse(url if "://" in url else "https://" + url)
        host = parsed.hostname or ""
    except ValueError:
        return None
    host = host.lower().removeprefix("www.")
    return host or None


def keyword_key(keyword: str) -> str:
    """Case-insensitive identity key for a keyword."""
    return keyword.strip().lower()


def format_number(n: int | float) -> str:
    """Format a number with human-readable suffixes.

    Args:
        n: Numeric value.

    Returns:
        Formatted string (e.g. 1500 -> '1.5K', 2500000 -> '2.5M').

    Examples:
        >>> format_number(1500)
        '1.5K'
        >>> format_number(999)
        '999'
    """
    abs_n = abs(n)
    sign = "-" if n < 0 else ""
    if abs_n >= 1_000_000_000:
        return f"{sign}{abs_n / 1_000_000_000:.1f}B"
    if abs_n >= 1_000_000:
        return f"{sign}{abs_n / 1_000_000:.1f}M"
    if abs_n >= 1_000:
        return f"{sign}{abs_n / 1_000:.1f}K"
    if isinstance(n, float):
        return f"{sign}{abs_n:.1f}"
    return f"{sign}{abs_n}"


def mask_secret(value: str) -> str:
    """Mask an API key for display, keeping a short prefix and suffix."""
    if not value:
        return ""
    if len(value) <= 12:
        return value[:2] + "..."
    return value[:8] + "..." + value[-4:]


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (2.5 -> 3), unlike the builtin ``round``."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor
