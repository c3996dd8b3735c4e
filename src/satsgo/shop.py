"""
Purchase service collaborator: buys satoshis for the user's wallet.

A purchase runs in three calls: ``start_shopping`` returns a quote (rate,
limits, expiry) and any earlier purchases still awaiting delivery,
``initiate_buy`` reserves an amount and returns a card-payment handle, and
``complete_buy`` reports whether the satoshis have been delivered.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from satsgo.constants import PAYMENT_TERMS_ACCEPTANCE, SHOP_URL
from satsgo.errors import PurchaseServiceError, WalletError
from satsgo.models import PurchaseCompletion, PurchaseInitiation, Quote
from satsgo.wallet.base import WalletInterface

DEFAULT_SHOP_TIMEOUT = 30.0


class PurchaseService(ABC):
    """Interface of the satoshi purchase service."""

    @abstractmethod
    async def start_shopping(self) -> Quote:
        """Get a quote and the references of undelivered purchases"""

    @abstractmethod
    async def initiate_buy(
        self, satoshis: int, quote_id: str | None, terms_acceptance: str = PAYMENT_TERMS_ACCEPTANCE
    ) -> PurchaseInitiation:
        """Reserve a purchase and obtain its payment-confirmation handle"""

    @abstractmethod
    async def complete_buy(self, reference: str) -> PurchaseCompletion:
        """Check (and trigger) delivery of a paid purchase"""

    async def close(self) -> None:
        pass


class HTTPPurchaseService(PurchaseService):
    """
    Purchase service client over HTTP JSON.

    Satoshis are delivered to the wallet's identity key, which is looked up
    once and sent with every request.
    """

    def __init__(
        self,
        wallet: WalletInterface,
        shop_url: str = SHOP_URL,
        timeout: float = DEFAULT_SHOP_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.wallet = wallet
        self.shop_url = shop_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._identity_key: str | None = None

    async def _identity(self) -> str:
        if self._identity_key is None:
            result = await self.wallet.get_public_key({"identityKey": True})
            self._identity_key = str(result["publicKey"])
        return self._identity_key

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            identity = await self._identity()
        except (WalletError, KeyError) as e:
            logger.error(f"Wallet identity key unavailable for {endpoint}: {e}")
            raise PurchaseServiceError(f"{endpoint} failed: wallet identity key unavailable") from e

        body = {"identityKey": identity, **payload}
        try:
            response = await self.client.post(f"{self.shop_url}/{endpoint}", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Purchase service call failed: {endpoint} - {e}")
            raise PurchaseServiceError(f"{endpoint} failed: {e}") from e
        except ValueError as e:
            raise PurchaseServiceError(f"{endpoint} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise PurchaseServiceError(f"{endpoint} returned a non-object response")
        if data.get("status") == "error":
            raise PurchaseServiceError(str(data.get("description") or f"{endpoint} failed"))
        return data

    async def start_shopping(self) -> Quote:
        data = await self._post("startShopping", {})
        try:
            return Quote.model_validate(data)
        except ValidationError as e:
            raise PurchaseServiceError(f"Invalid quote: {e}") from e

    async def initiate_buy(
        self, satoshis: int, quote_id: str | None, terms_acceptance: str = PAYMENT_TERMS_ACCEPTANCE
    ) -> PurchaseInitiation:
        data = await self._post(
            "initiateBuy",
            {
                "numberOfSatoshis": satoshis,
                "quoteId": quote_id,
                "customerAcceptsPaymentTerms": terms_acceptance,
            },
        )
        try:
            return PurchaseInitiation.model_validate(data)
        except ValidationError as e:
            raise PurchaseServiceError(f"Invalid purchase initiation: {e}") from e

    async def complete_buy(self, reference: str) -> PurchaseCompletion:
        data = await self._post("completeBuy", {"reference": reference})
        try:
            return PurchaseCompletion.model_validate(data)
        except ValidationError as e:
            raise PurchaseServiceError(f"Invalid purchase status: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()
