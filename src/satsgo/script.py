"""
Locking-script helpers for fee outputs.
"""

from __future__ import annotations

import hashlib

from coincurve import PublicKey

from satsgo.errors import KeyDerivationFailure


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def validate_public_key(pubkey_hex: str | None) -> bytes:
    """
    Parse a hex public key returned by the wallet.

    Returns the compressed 33-byte encoding.

    Raises:
        KeyDerivationFailure: If the key is empty or not a point on secp256k1
    """
    if pubkey_hex is None or not pubkey_hex.strip():
        raise KeyDerivationFailure("Wallet returned an empty public key")

    try:
        key = PublicKey(bytes.fromhex(pubkey_hex.strip()))
    except ValueError as e:
        raise KeyDerivationFailure(f"Wallet returned a malformed public key: {e}") from e

    return key.format(compressed=True)


def p2pkh_locking_script(pubkey_bytes: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG"""
    return b"\x76\xa9\x14" + hash160(pubkey_bytes) + b"\x88\xac"
