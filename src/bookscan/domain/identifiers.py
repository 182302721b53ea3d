# src/bookscan/domain/identifiers.py
"""
Identifier predicate for scanned and typed book numbers.

Decoder output is never trusted: the controller runs every raw string through
``parse_identifier`` and drops anything that returns ``None``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from bookscan.domain.ports import InvalidIdentifierError

DEFAULT_PREFIXES: tuple[str, ...] = ("978", "979")

_IDENTIFIER_LENGTH = 13
_SEPARATORS = re.compile(r"[\s\-]")
_DIGITS = re.compile(r"\d{13}")


def normalize_identifier(raw: str) -> str:
    """Entfernt Leerzeichen und Bindestriche (manuelle ISBN-Eingabe)."""
    return _SEPARATORS.sub("", raw or "")


def has_valid_checksum(identifier: str) -> bool:
    """ISBN-13 / EAN-13 mod-10 check digit."""
    if not _DIGITS.fullmatch(identifier):
        return False
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(identifier[:12]))
    return (10 - total % 10) % 10 == int(identifier[12])


def is_valid_identifier(
    identifier: str,
    prefixes: Iterable[str] = DEFAULT_PREFIXES,
    verify_checksum: bool = False,
) -> bool:
    if len(identifier) != _IDENTIFIER_LENGTH or not _DIGITS.fullmatch(identifier):
        return False
    if not any(identifier.startswith(p) for p in prefixes):
        return False
    return not verify_checksum or has_valid_checksum(identifier)


def parse_identifier(
    raw: str,
    prefixes: Iterable[str] = DEFAULT_PREFIXES,
    verify_checksum: bool = False,
) -> str | None:
    """Returns the normalized identifier, or None if the text is not a valid one."""
    candidate = normalize_identifier(raw)
    if is_valid_identifier(candidate, prefixes=prefixes, verify_checksum=verify_checksum):
        return candidate
    return None


def require_identifier(
    raw: str,
    prefixes: Iterable[str] = DEFAULT_PREFIXES,
    verify_checksum: bool = False,
) -> str:
    """Like ``parse_identifier``, but raises InvalidIdentifierError for typed input."""
    identifier = parse_identifier(raw, prefixes=prefixes, verify_checksum=verify_checksum)
    if identifier is None:
        raise InvalidIdentifierError(raw)
    return identifier
