"""
One-time key derivation for fee recipients.

Every fee output of an action pays a key derived from the action's shared
nonce and the recipient's identity, under a protocol id reserved for fee
outputs so it never collides with keys the application derives itself.
"""

from __future__ import annotations

import base64
import secrets

from loguru import logger

from satsgo.constants import FEE_PROTOCOL_ID, NONCE_BYTES
from satsgo.errors import KeyDerivationFailure
from satsgo.models import DerivationNonce
from satsgo.script import p2pkh_locking_script, validate_public_key
from satsgo.wallet.base import WalletInterface


def create_derivation_nonce() -> DerivationNonce:
    """Fresh random prefix/suffix pair for one action."""
    return DerivationNonce(
        prefix=base64.b64encode(secrets.token_bytes(NONCE_BYTES)).decode("ascii"),
        suffix=base64.b64encode(secrets.token_bytes(NONCE_BYTES)).decode("ascii"),
    )


class KeyDeriver:
    """Derives recipient public keys and locking scripts through the wallet."""

    def __init__(self, wallet: WalletInterface):
        self.wallet = wallet

    async def derive(
        self, nonce: DerivationNonce, counterparty: str, origin: str | None = None
    ) -> bytes:
        """
        Ask the wallet for the recipient's one-time public key.

        Returns:
            Compressed public key bytes

        Raises:
            KeyDerivationFailure: If the wallet returns no usable key
        """
        result = await self.wallet.get_public_key(
            {
                "protocolID": list(FEE_PROTOCOL_ID),
                "keyID": nonce.key_id,
                "counterparty": counterparty,
            },
            origin,
        )
        pubkey_hex = result.get("publicKey") if isinstance(result, dict) else None
        try:
            return validate_public_key(pubkey_hex)
        except KeyDerivationFailure:
            logger.error(f"Key derivation for counterparty {counterparty[:16]}... failed")
            raise

    async def locking_script(
        self, nonce: DerivationNonce, counterparty: str, origin: str | None = None
    ) -> str:
        """P2PKH locking script (hex) paying the recipient's one-time key."""
        pubkey = await self.derive(nonce, counterparty, origin)
        return p2pkh_locking_script(pubkey).hex()
