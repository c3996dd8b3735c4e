"""
Wallet collaborators.

Available implementations:
- HTTPWalletClient: local BRC-100 wallet over JSON/HTTP
"""

from satsgo.wallet.base import WALLET_METHODS, WalletInterface
from satsgo.wallet.http import HTTPWalletClient

__all__ = [
    "HTTPWalletClient",
    "WALLET_METHODS",
    "WalletInterface",
]
