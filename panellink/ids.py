"""Panel id generation and shape validation.

Ids are drawn from ``ALPHABET`` through nanoid, which reads ``os.urandom``.
Uniqueness is not guaranteed here; the engine checks the store and retries.
"""

import re

from nanoid import generate

__all__ = ["ALPHABET", "generate_panel_id", "is_valid_panel_id"]

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"

_ID_PATTERN = re.compile(r"[A-Za-z0-9]+")


def generate_panel_id(length: int = 16) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


def is_valid_panel_id(value: object, length: int = 16) -> bool:
    """Return True when ``value`` has the exact length and charset of a panel id."""
    if not isinstance(value, str) or len(value) != length:
        return False
    return _ID_PATTERN.fullmatch(value) is not None
