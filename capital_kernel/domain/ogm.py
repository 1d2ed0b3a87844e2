"""
OGM structured communication (``capital_kernel.domain.ogm``).

Responsibility
--------------
Generation, validation, formatting and extraction of Belgian structured
payment references ("gestructureerde mededeling", OGM).  A code is ten base
digits (3-digit coop prefix + 7-digit sequence) followed by two mod-97
check digits, written ``+++AAA/BBBB/CCCCC+++``.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.  Sequence allocation
lives in ``capital_kernel.services.ogm_allocator``.

Invariants enforced
-------------------
* Check digits are ``base mod 97``, with 0 mapped to 97 (never ``00``).
* Sequences are limited to 1..9,999,999; larger values are rejected rather
  than silently widened.
"""

from __future__ import annotations

import re

from capital_kernel.exceptions import (
    InvalidOgmChecksumError,
    InvalidOgmFormatError,
    OgmSequenceOutOfRangeError,
)

PREFIX_LENGTH = 3
SEQUENCE_LENGTH = 7
BASE_LENGTH = PREFIX_LENGTH + SEQUENCE_LENGTH
CODE_LENGTH = BASE_LENGTH + 2
MAX_SEQUENCE = 10**SEQUENCE_LENGTH - 1

OGM_PATTERN = re.compile(r"\+\+\+\d{3}/\d{4}/\d{5}\+\+\+")

_NON_DIGITS = re.compile(r"\D")
_PREFIX_PATTERN = re.compile(r"[0-9]{3}")


def check_digits(base: str) -> int:
    """Return the mod-97 check value for a 10-digit base (1..97)."""
    remainder = int(base) % 97
    return remainder or 97


def format_ogm(raw: str) -> str:
    """
    Format 12 raw digits as ``+++AAA/BBBB/CCCCC+++``.

    Input that does not reduce to 12 digits is returned unchanged.
    """
    cleaned = parse_ogm(raw)
    if len(cleaned) != CODE_LENGTH:
        return raw
    return f"+++{cleaned[:3]}/{cleaned[3:7]}/{cleaned[7:]}+++"


def parse_ogm(formatted: str) -> str:
    """Strip formatting characters, leaving only digits."""
    return _NON_DIGITS.sub("", formatted)


def generate(prefix: str, sequence: int) -> str:
    """
    Generate a formatted OGM code.

    Args:
        prefix: 3-digit coop prefix, e.g. ``"001"``.
        sequence: Positive sequence number, zero-padded to 7 digits.

    Returns:
        Code formatted as ``+++AAA/BBBB/CCCCC+++``.

    Raises:
        InvalidOgmFormatError: If the prefix is not exactly 3 digits.
        OgmSequenceOutOfRangeError: If sequence is outside 1..9,999,999.
    """
    if not isinstance(prefix, str) or not _PREFIX_PATTERN.fullmatch(prefix):
        raise InvalidOgmFormatError(str(prefix), "prefix must be exactly 3 digits")
    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise OgmSequenceOutOfRangeError(sequence)
    if sequence < 1 or sequence > MAX_SEQUENCE:
        raise OgmSequenceOutOfRangeError(sequence)

    base = f"{prefix}{sequence:0{SEQUENCE_LENGTH}d}"
    return format_ogm(f"{base}{check_digits(base):02d}")


def check(code: str) -> str:
    """
    Validate ``code`` and return its 12 raw digits.

    Raises:
        InvalidOgmFormatError: If the code does not reduce to exactly 12 digits.
        InvalidOgmChecksumError: If the check digits do not match.
    """
    if not isinstance(code, str):
        raise InvalidOgmFormatError(str(code), "not a string")
    digits = parse_ogm(code)
    if len(digits) != CODE_LENGTH:
        raise InvalidOgmFormatError(code, f"expected {CODE_LENGTH} digits, got {len(digits)}")

    expected = check_digits(digits[:BASE_LENGTH])
    actual = int(digits[BASE_LENGTH:])
    if expected != actual:
        raise InvalidOgmChecksumError(code, expected=expected, actual=actual)
    return digits


def validate(code: str) -> bool:
    """Return True if ``code`` is a structurally valid OGM with matching check digits."""
    try:
        check(code)
    except (InvalidOgmFormatError, InvalidOgmChecksumError):
        return False
    return True


def sequence_of(code: str) -> int:
    """Return the 7-digit sequence embedded in a valid OGM code."""
    digits = check(code)
    return int(digits[PREFIX_LENGTH:BASE_LENGTH])


def prefix_of(code: str) -> str:
    """Return the 3-digit coop prefix embedded in a valid OGM code."""
    return check(code)[:PREFIX_LENGTH]


def extract(text: str | None) -> str | None:
    """Return the first ``+++ddd/dddd/ddddd+++`` token in ``text``, if any."""
    if not text:
        return None
    match = OGM_PATTERN.search(text)
    return match.group(0) if match else None
