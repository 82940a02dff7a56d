"""Normalisation and validation of trading pair identifiers.

Users type pairs in the ``BASE/QUOTE`` form (``btc/usdt``, `` ETH/USDT``).
Binance wants ``BTCUSDT`` for REST calls and ``btcusdt`` for stream names,
so every conversion lives here.
"""

from __future__ import annotations

import re

PAIR_PATTERN = re.compile(r"^[A-Z0-9]{2,}/[A-Z0-9]{3,}$")
_DISALLOWED = re.compile(r"[^A-Z0-9/]")


def normalize_pair(raw: str | None) -> str:
    """Trim, upper-case and strip characters outside ``[A-Z0-9/]``."""

    return _DISALLOWED.sub("", str(raw or "").strip().upper())


def is_valid_pair(symbol: str) -> bool:
    """Return ``True`` when ``symbol`` is already a well formed pair."""

    return bool(PAIR_PATTERN.match(symbol or ""))


def base_asset(symbol: str) -> str:
    return symbol.split("/", 1)[0]


def to_exchange_symbol(symbol: str) -> str:
    """``BTC/USDT`` -> ``BTCUSDT``."""

    return symbol.replace("/", "").upper()


def to_stream_symbol(symbol: str) -> str:
    """``BTC/USDT`` -> ``btcusdt``."""

    return symbol.replace("/", "").lower()


__all__ = [
    "PAIR_PATTERN",
    "base_asset",
    "is_valid_pair",
    "normalize_pair",
    "to_exchange_symbol",
    "to_stream_symbol",
]
