"""
Test configuration for satsgo tests.
"""

from __future__ import annotations

import hashlib
from unittest.mock import AsyncMock

import pytest
from coincurve import PrivateKey

from satsgo.config import GoConfig, MonetizationOptions
from satsgo.transaction import encode_varint


def pubkey_for(seed: str) -> str:
    """Deterministic compressed public key (hex) for a seed string."""
    return PrivateKey(hashlib.sha256(seed.encode()).digest()).public_key.format().hex()


def build_raw_tx(outputs: list[tuple[int, bytes]]) -> bytes:
    """Serialize a one-input transaction paying ``outputs`` (value, script)."""
    tx = b"\x01\x00\x00\x00"
    tx += encode_varint(1)
    tx += b"\x11" * 32 + b"\x00\x00\x00\x00" + encode_varint(0) + b"\xff\xff\xff\xff"
    tx += encode_varint(len(outputs))
    for value, script in outputs:
        tx += value.to_bytes(8, "little") + encode_varint(len(script)) + script
    tx += b"\x00\x00\x00\x00"
    return tx


@pytest.fixture
def developer_identity() -> str:
    return pubkey_for("developer")


@pytest.fixture
def caller_script() -> str:
    """Locking script of the caller's own output."""
    return "76a914" + "ab" * 20 + "88ac"


@pytest.fixture
def action_args(caller_script: str) -> dict:
    """createAction arguments with a single caller output."""
    return {
        "description": "post a message",
        "outputs": [
            {"satoshis": 1000, "lockingScript": caller_script, "outputDescription": "message"}
        ],
    }


@pytest.fixture
def mock_wallet():
    """
    Mock wallet deriving a distinct key per (keyID, counterparty).

    create_action succeeds with an empty result unless a test overrides it.
    """
    wallet = AsyncMock()

    async def get_public_key(args, origin=None):
        if args.get("identityKey"):
            return {"publicKey": pubkey_for("wallet-identity")}
        return {"publicKey": pubkey_for(f"{args['keyID']}|{args['counterparty']}")}

    wallet.get_public_key = AsyncMock(side_effect=get_public_key)
    wallet.create_action = AsyncMock(return_value={})
    wallet.sign_action = AsyncMock(return_value={})
    wallet.abort_action = AsyncMock(return_value={"aborted": True})
    wallet.create_hmac = AsyncMock(return_value={"hmac": list(b"\x01" * 32)})
    wallet.close = AsyncMock()
    return wallet


@pytest.fixture
def config() -> GoConfig:
    """Config with no pauses so funding tests run instantly."""
    return GoConfig(completion_poll_interval=0.0, success_pause=0.0)


@pytest.fixture
def monetized_config(developer_identity: str) -> GoConfig:
    return GoConfig(
        completion_poll_interval=0.0,
        success_pause=0.0,
        monetization=MonetizationOptions(developer_identity=developer_identity, developer_fee_sats=50),
    )


@pytest.fixture
def make_pubkey():
    return pubkey_for


@pytest.fixture
def make_tx():
    return build_raw_tx
