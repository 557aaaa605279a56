"""Validation of instrument symbols received from API callers."""

from __future__ import annotations

import re

from pattern_signals.utils.errors import BadRequest

_SYMBOL_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9/.\-]{0,19}$")


def clean_symbol(value: str) -> str:
    """Return ``value`` stripped and upper-cased, rejecting malformed symbols."""
    cleaned = value.strip().upper()
    if not _SYMBOL_PATTERN.match(cleaned):
        raise BadRequest(
            f"Invalid symbol '{value}'",
            details={"expected": "1-20 characters among A-Z, 0-9, '/', '.', '-'"},
        )
    return cleaned


__all__ = ["clean_symbol"]
