"""
satsgo - Funded actions for BRC-100 wallets

Wraps a wallet so every action pays its fees, notifies fee recipients and
walks the user through topping up when funds run out.
"""

__version__ = "0.1.0"

from satsgo.classifier import (
    ErrorClassification,
    InsufficientFunds,
    Unrelated,
    WalletUnavailable,
    classify_error,
)
from satsgo.config import (
    FundingMode,
    FundingOptions,
    GoConfig,
    MonetizationOptions,
    WalletUnavailableOptions,
    WalletUnavailablePolicy,
)
from satsgo.errors import (
    InsufficientFundsError,
    KeyDerivationFailure,
    MessageRelayError,
    PurchaseServiceError,
    SatsGoError,
    TransactionParseError,
    WalletError,
)
from satsgo.funding import FundingOutcome, FundingSession, FundingState
from satsgo.orchestrator import CallState, FundedWallet
from satsgo.prompts import CardPaymentProcessor, CardPaymentResult, FundingPrompter, HeadlessPrompter
from satsgo.shop import HTTPPurchaseService, PurchaseService
from satsgo.wallet import HTTPWalletClient, WalletInterface

__all__ = [
    "CallState",
    "CardPaymentProcessor",
    "CardPaymentResult",
    "ErrorClassification",
    "FundedWallet",
    "FundingMode",
    "FundingOptions",
    "FundingOutcome",
    "FundingPrompter",
    "FundingSession",
    "FundingState",
    "GoConfig",
    "HTTPPurchaseService",
    "HTTPWalletClient",
    "HeadlessPrompter",
    "InsufficientFunds",
    "InsufficientFundsError",
    "KeyDerivationFailure",
    "MessageRelayError",
    "MonetizationOptions",
    "PurchaseService",
    "PurchaseServiceError",
    "SatsGoError",
    "TransactionParseError",
    "Unrelated",
    "WalletError",
    "WalletInterface",
    "WalletUnavailable",
    "WalletUnavailableOptions",
    "WalletUnavailablePolicy",
    "classify_error",
]
