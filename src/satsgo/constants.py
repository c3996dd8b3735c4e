"""
Protocol constants for funded wallet actions.

The base fee recipient is fixed by the library and is not part
of the user configuration.
"""

from __future__ import annotations

# Wallet error codes we react to
ERR_INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
ERR_WALLET_NOT_CONNECTED = "WALLET_NOT_CONNECTED"
ERR_AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
ERR_WALLET_LOCKED = "WALLET_LOCKED"

WALLET_UNAVAILABLE_CODES = frozenset(
    {ERR_WALLET_NOT_CONNECTED, ERR_AUTHENTICATION_FAILED, ERR_WALLET_LOCKED}
)

# Reserved key-derivation protocol for fee outputs: [security level, protocol name]
FEE_PROTOCOL_ID: tuple[int, str] = (2, "3241645161d8")

# Base fee recipient (compressed secp256k1 identity key) and amount
BASE_FEE_IDENTITY = "02c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5"
BASE_FEE_SATS = 10

IDENTITY_KEY_LENGTH = 66

DEVELOPER_FEE_DESCRIPTION = "Fee to developer"
BASE_FEE_DESCRIPTION = "Transaction Fee"

# Random bytes per half of the derivation nonce
NONCE_BYTES = 32

# Payment notifications
MESSAGE_RELAY_URL = "https://messagebox.babbage.systems"
PAYMENT_MAILBOX = "payment_inbox"

# Local BRC-100 JSON wallet substrate
DEFAULT_WALLET_URL = "http://localhost:3321"
NO_WALLET_MESSAGE = (
    "No wallet available over any communication substrate. Install a BSV wallet today!"
)

# Purchase service
SHOP_URL = "https://satoshi-shop.babbage.systems"
EXTERNAL_BUY_URL = "https://satoshis.babbage.systems"
PAYMENT_TERMS_ACCEPTANCE = "I Accept"
PURCHASE_ACKNOWLEDGED = "bitcoin-payment-acknowledged"

# Offered top-up amounts in USD
USD_PURCHASE_OPTIONS: tuple[int, ...] = (1, 2, 5, 10)

# Funding session timing (seconds)
COMPLETION_POLL_INTERVAL = 2.0
COMPLETION_POLL_MAX_ATTEMPTS = 150  # ~5 minutes at the default interval
SUCCESS_PAUSE = 2.0

# Deferred-signature entries older than this are dropped (seconds)
PENDING_SIGNATURE_TTL = 3600.0
