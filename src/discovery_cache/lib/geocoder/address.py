"""Address normalization for geocode cache keys.

Business addresses are typed by hand, so the same place shows up with
different casing, spacing, and comma styles.  Normalizing before lookup keeps
those variants on a single cache entry.
"""

import re

_WHITESPACE_RE = re.compile(r"\s+")
_COMMA_RE = re.compile(r"\s*,\s*")


def normalize_address_key(address: str | None) -> str:
    """Normalize a free-text address into a geocode cache key.

    - Trim and lowercase
    - Collapse whitespace runs to a single space
    - Remove spacing around commas

    Args:
        address: Raw address text.

    Returns:
        Normalized key, or empty string for blank input.
    """
    if not address:
        return ""
    key = _WHITESPACE_RE.sub(" ", address.strip().lower())
    return _COMMA_RE.sub(",", key)
