"""
Base wallet interface (BRC-100).

Arguments and results travel as plain dicts in the wallet's camelCase JSON
shape; satsgo only looks inside the few fields it needs and passes the rest
through untouched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Args = dict[str, Any]
Result = dict[str, Any]

# python method name -> wire name
WALLET_METHODS: dict[str, str] = {
    "create_action": "createAction",
    "sign_action": "signAction",
    "abort_action": "abortAction",
    "list_actions": "listActions",
    "internalize_action": "internalizeAction",
    "list_outputs": "listOutputs",
    "relinquish_output": "relinquishOutput",
    "get_public_key": "getPublicKey",
    "reveal_counterparty_key_linkage": "revealCounterpartyKeyLinkage",
    "reveal_specific_key_linkage": "revealSpecificKeyLinkage",
    "encrypt": "encrypt",
    "decrypt": "decrypt",
    "create_hmac": "createHmac",
    "verify_hmac": "verifyHmac",
    "create_signature": "createSignature",
    "verify_signature": "verifySignature",
    "acquire_certificate": "acquireCertificate",
    "list_certificates": "listCertificates",
    "prove_certificate": "proveCertificate",
    "relinquish_certificate": "relinquishCertificate",
    "discover_by_identity_key": "discoverByIdentityKey",
    "discover_by_attributes": "discoverByAttributes",
    "is_authenticated": "isAuthenticated",
    "wait_for_authentication": "waitForAuthentication",
    "get_height": "getHeight",
    "get_header_for_height": "getHeaderForHeight",
    "get_network": "getNetwork",
    "get_version": "getVersion",
}


class WalletInterface(ABC):
    """
    Abstract wallet interface.

    Every operation takes the call arguments and an optional originator
    domain, and returns the wallet's result.
    """

    # Transactions

    @abstractmethod
    async def create_action(self, args: Args, origin: str | None = None) -> Result:
        """Build (and unless deferred, sign) a transaction"""

    @abstractmethod
    async def sign_action(self, args: Args, origin: str | None = None) -> Result:
        """Sign a transaction previously returned as signable"""

    @abstractmethod
    async def abort_action(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def list_actions(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def internalize_action(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def list_outputs(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def relinquish_output(self, args: Args, origin: str | None = None) -> Result: ...

    # Keys and cryptography

    @abstractmethod
    async def get_public_key(self, args: Args, origin: str | None = None) -> Result:
        """Return {"publicKey": hex} for the given derivation arguments"""

    @abstractmethod
    async def reveal_counterparty_key_linkage(
        self, args: Args, origin: str | None = None
    ) -> Result: ...

    @abstractmethod
    async def reveal_specific_key_linkage(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def encrypt(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def decrypt(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def create_hmac(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def verify_hmac(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def create_signature(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def verify_signature(self, args: Args, origin: str | None = None) -> Result: ...

    # Certificates and discovery

    @abstractmethod
    async def acquire_certificate(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def list_certificates(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def prove_certificate(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def relinquish_certificate(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def discover_by_identity_key(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def discover_by_attributes(self, args: Args, origin: str | None = None) -> Result: ...

    # Authentication and chain info

    @abstractmethod
    async def is_authenticated(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def wait_for_authentication(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def get_height(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def get_header_for_height(self, args: Args, origin: str | None = None) -> Result: ...

    @abstractmethod
    async def get_network(self, args: Args, origin: str | None = None) -> Result:
        """Return {"network": "mainnet" | "testnet"}"""

    @abstractmethod
    async def get_version(self, args: Args, origin: str | None = None) -> Result: ...

    async def close(self) -> None:
        """Release any connections held by the wallet"""
        pass
