"""
Exception types raised by satsgo and its HTTP adapters.
"""

from __future__ import annotations

from typing import Any


class SatsGoError(Exception):
    """Base class for satsgo errors."""


class KeyDerivationFailure(SatsGoError):
    """A fee recipient's one-time key could not be derived. Never retried."""


class TransactionParseError(SatsGoError):
    pass


class PurchaseServiceError(SatsGoError):
    """The purchase service failed or returned an unusable response."""


class MessageRelayError(SatsGoError):
    pass


class WalletError(SatsGoError):
    """
    Error reported by the wallet collaborator.

    Carries the wallet's structured ``code`` when one was provided so the
    error classifier can key off it.
    """

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class InsufficientFundsError(WalletError):
    """The wallet cannot fund the action; ``more_satoshis_needed`` is the shortfall."""

    def __init__(
        self,
        message: str = "Insufficient funds",
        more_satoshis_needed: int | None = None,
        total_satoshis_needed: int | None = None,
    ):
        super().__init__(message, code="INSUFFICIENT_FUNDS")
        self.more_satoshis_needed = more_satoshis_needed
        self.total_satoshis_needed = total_satoshis_needed
