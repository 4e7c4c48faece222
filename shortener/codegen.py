"""Short code generation and input validation.

Generated codes map cryptographically random bytes onto a 62-character
alphabet, one byte per character. With the default length of 8 that is
62^8 (about 2.2e14) possible codes, so collisions are rare enough that a
small, fixed retry budget suffices.
"""

import secrets

from shortener.exceptions import InvalidCodeError

__all__ = [
    "ALPHABET",
    "MIN_ALIAS_LENGTH",
    "MIN_URL_LENGTH",
    "MAX_URL_LENGTH",
    "generate_short_code",
    "is_valid_url",
    "normalize_alias",
]

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

MIN_ALIAS_LENGTH = 3
MIN_URL_LENGTH = 10
MAX_URL_LENGTH = 2083

_ALLOWED_SCHEMES = ("http://", "https://")
_ALIAS_CHARS = frozenset(ALPHABET)


def generate_short_code(length: int = 8) -> str:
    if length <= 0:
        raise ValueError(f"length must be a positive integer, got {length!r}")
    return "".join(ALPHABET[byte % len(ALPHABET)] for byte in secrets.token_bytes(length))


def is_valid_url(url: str) -> bool:
    """Only http(s) destinations; blocks javascript:, data:, file: and friends."""
    if not url.startswith(_ALLOWED_SCHEMES):
        return False
    return MIN_URL_LENGTH <= len(url) <= MAX_URL_LENGTH


def normalize_alias(alias: str, max_length: int = 16) -> str:
    code = alias.lower()
    if not MIN_ALIAS_LENGTH <= len(code) <= max_length:
        raise InvalidCodeError(details=f"Code must be {MIN_ALIAS_LENGTH}-{max_length} alphanumeric characters")
    if not all(c in _ALIAS_CHARS for c in code):
        raise InvalidCodeError(details=f"Code must be {MIN_ALIAS_LENGTH}-{max_length} alphanumeric characters")
    return code
