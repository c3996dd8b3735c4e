"""
Classification of errors raised by the wallet.

Wallets do not all report failures the same way: some set a structured
``code``, others only a message. Structured codes are checked first and
message patterns are the fallback.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from satsgo.constants import ERR_INSUFFICIENT_FUNDS, WALLET_UNAVAILABLE_CODES

NO_WALLET_PATTERN = re.compile(r"no wallet available.*install.*wallet", re.IGNORECASE | re.DOTALL)
INSUFFICIENT_FUNDS_PATTERN = re.compile(r"insufficient funds", re.IGNORECASE)

# Exception class names wallets use for insufficient funds
_INSUFFICIENT_FUNDS_TYPES = frozenset({"WERR_INSUFFICIENT_FUNDS", "InsufficientFundsError"})


@dataclass(frozen=True)
class WalletUnavailable:
    reason: str


@dataclass(frozen=True)
class InsufficientFunds:
    shortfall: int | None = None


@dataclass(frozen=True)
class Unrelated:
    pass


ErrorClassification = WalletUnavailable | InsufficientFunds | Unrelated


def _field(error: Any, *names: str) -> Any:
    """First non-empty attribute or mapping key among ``names``."""
    for name in names:
        if isinstance(error, Mapping):
            value = error.get(name)
        else:
            value = getattr(error, name, None)
        if value not in (None, ""):
            return value
    return None


def error_code(error: Any) -> str:
    code = _field(error, "code")
    return str(code) if code is not None else ""


def error_message(error: Any) -> str:
    message = _field(error, "message", "description")
    if message is not None:
        return str(message)
    if isinstance(error, BaseException):
        return str(error)
    return ""


def shortfall_of(error: Any) -> int | None:
    value = _field(error, "more_satoshis_needed", "moreSatoshisNeeded")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def classify_error(error: Any) -> ErrorClassification:
    """
    Label an error raised by the wallet.

    Rules, in order:
    1. wallet-unavailable codes (not connected, authentication failed, locked)
    2. a "no wallet available ... install a wallet" message
    3. the insufficient-funds code, exception type or message
    4. anything else is unrelated
    """
    code = error_code(error)
    message = error_message(error)

    if code in WALLET_UNAVAILABLE_CODES:
        return WalletUnavailable(reason=code)

    if NO_WALLET_PATTERN.search(message):
        return WalletUnavailable(reason=message)

    shortfall = shortfall_of(error)
    if (
        code == ERR_INSUFFICIENT_FUNDS
        or type(error).__name__ in _INSUFFICIENT_FUNDS_TYPES
        or INSUFFICIENT_FUNDS_PATTERN.search(message)
    ):
        return InsufficientFunds(shortfall=shortfall)

    return Unrelated()
