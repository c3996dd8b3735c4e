"""
Wallet client for a local BRC-100 wallet speaking JSON over HTTP.

Each operation is a POST to ``<base_url>/<wireName>`` with the arguments as
the JSON body and the originator in the ``Originator`` header.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from satsgo.constants import DEFAULT_WALLET_URL, ERR_INSUFFICIENT_FUNDS, NO_WALLET_MESSAGE
from satsgo.errors import InsufficientFundsError, WalletError
from satsgo.wallet.base import WALLET_METHODS, Args, Result, WalletInterface

DEFAULT_WALLET_TIMEOUT = 60.0


def _normalize_code(raw: str | None) -> str | None:
    """WERR_INSUFFICIENT_FUNDS / ERR_INSUFFICIENT_FUNDS -> INSUFFICIENT_FUNDS"""
    if not raw:
        return None
    for prefix in ("WERR_", "ERR_"):
        if raw.startswith(prefix):
            return raw[len(prefix) :]
    return raw


def wallet_error_from_response(data: Any, status_code: int) -> WalletError:
    """Build the exception matching a wallet's JSON error body."""
    if not isinstance(data, dict):
        return WalletError(f"Wallet request failed with HTTP {status_code}")

    code = _normalize_code(data.get("code") or data.get("name"))
    message = str(data.get("message") or data.get("description") or f"HTTP {status_code}")

    if code == ERR_INSUFFICIENT_FUNDS:
        return InsufficientFundsError(
            message,
            more_satoshis_needed=data.get("moreSatoshisNeeded"),
            total_satoshis_needed=data.get("totalSatoshisNeeded"),
        )
    return WalletError(message, code=code, details=data)


class HTTPWalletClient(WalletInterface):
    """
    Talks to a wallet listening on localhost (MetaNet desktop and compatibles).

    A wallet that cannot be reached raises the "No wallet available" error,
    which the error classifier reports as wallet-unavailable.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_WALLET_URL,
        timeout: float = DEFAULT_WALLET_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _call(self, method: str, args: Args, origin: str | None) -> Result:
        wire_name = WALLET_METHODS[method]
        headers = {"Accept": "application/json"}
        if origin:
            headers["Originator"] = origin

        try:
            response = await self.client.post(f"{self.base_url}/{wire_name}", json=args, headers=headers)
        except httpx.ConnectError as e:
            logger.debug(f"Wallet not reachable at {self.base_url}: {e}")
            raise WalletError(NO_WALLET_MESSAGE) from e
        except httpx.HTTPError as e:
            logger.error(f"Wallet call failed: {wire_name} - {e}")
            raise WalletError(f"Wallet call {wire_name} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error or (isinstance(data, dict) and data.get("isError")):
            raise wallet_error_from_response(data, response.status_code)

        if not isinstance(data, dict):
            raise WalletError(f"Wallet returned a non-object result for {wire_name}")
        return data

    async def create_action(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("create_action", args, origin)

    async def sign_action(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("sign_action", args, origin)

    async def abort_action(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("abort_action", args, origin)

    async def list_actions(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("list_actions", args, origin)

    async def internalize_action(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("internalize_action", args, origin)

    async def list_outputs(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("list_outputs", args, origin)

    async def relinquish_output(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("relinquish_output", args, origin)

    async def get_public_key(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("get_public_key", args, origin)

    async def reveal_counterparty_key_linkage(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("reveal_counterparty_key_linkage", args, origin)

    async def reveal_specific_key_linkage(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("reveal_specific_key_linkage", args, origin)

    async def encrypt(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("encrypt", args, origin)

    async def decrypt(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("decrypt", args, origin)

    async def create_hmac(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("create_hmac", args, origin)

    async def verify_hmac(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("verify_hmac", args, origin)

    async def create_signature(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("create_signature", args, origin)

    async def verify_signature(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("verify_signature", args, origin)

    async def acquire_certificate(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("acquire_certificate", args, origin)

    async def list_certificates(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("list_certificates", args, origin)

    async def prove_certificate(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("prove_certificate", args, origin)

    async def relinquish_certificate(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("relinquish_certificate", args, origin)

    async def discover_by_identity_key(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("discover_by_identity_key", args, origin)

    async def discover_by_attributes(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("discover_by_attributes", args, origin)

    async def is_authenticated(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("is_authenticated", args, origin)

    async def wait_for_authentication(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("wait_for_authentication", args, origin)

    async def get_height(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("get_height", args, origin)

    async def get_header_for_height(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("get_header_for_height", args, origin)

    async def get_network(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("get_network", args, origin)

    async def get_version(self, args: Args, origin: str | None = None) -> Result:
        return await self._call("get_version", args, origin)

    async def close(self) -> None:
        await self.client.aclose()
