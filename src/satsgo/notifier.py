"""
Payment notifications for fee recipients.

Once a transaction paying a fee output is final, the recipient is sent a
payment token through a message relay so their wallet can derive the key and
pick up the output. Delivery is best-effort: the payment is already
committed on-chain, so failures are logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
import secrets
from abc import ABC, abstractmethod

import httpx
from loguru import logger

from satsgo.constants import MESSAGE_RELAY_URL, PAYMENT_MAILBOX
from satsgo.errors import MessageRelayError
from satsgo.models import PaymentToken
from satsgo.wallet.base import WalletInterface

DEFAULT_RELAY_TIMEOUT = 30.0

# Key-derivation protocol the relay uses for message ids
MESSAGE_ID_PROTOCOL: tuple[int, str] = (1, "messagebox")


class MessageRelay(ABC):
    """Store-and-forward message relay."""

    @abstractmethod
    async def send_message(self, recipient: str, mailbox: str, body: str) -> None:
        """Deliver ``body`` to ``recipient``'s ``mailbox``."""

    async def close(self) -> None:
        pass


class HTTPMessageRelay(MessageRelay):
    """
    Message relay client over HTTP.

    Message ids are an HMAC of the body computed by the wallet against the
    recipient, so the recipient can check the message came from us.
    """

    def __init__(
        self,
        wallet: WalletInterface,
        relay_url: str = MESSAGE_RELAY_URL,
        timeout: float = DEFAULT_RELAY_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.wallet = wallet
        self.relay_url = relay_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _message_id(self, recipient: str, body: str) -> str:
        try:
            result = await self.wallet.create_hmac(
                {
                    "data": list(body.encode("utf-8")),
                    "protocolID": list(MESSAGE_ID_PROTOCOL),
                    "keyID": "1",
                    "counterparty": recipient,
                }
            )
            return bytes(result["hmac"]).hex()
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Wallet HMAC unusable for message id, using random id: {e}")
            return secrets.token_hex(32)

    async def send_message(self, recipient: str, mailbox: str, body: str) -> None:
        message = {
            "recipient": recipient,
            "messageBox": mailbox,
            "messageId": await self._message_id(recipient, body),
            "body": body,
        }
        try:
            response = await self.client.post(f"{self.relay_url}/sendMessage", json={"message": message})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MessageRelayError(f"Relay rejected message to {recipient[:16]}...: {e}") from e

        data = response.json() if response.content else {}
        if isinstance(data, dict) and data.get("status") == "error":
            raise MessageRelayError(data.get("description") or "Relay reported an error")

    async def close(self) -> None:
        await self.client.aclose()


class PaymentNotifier:
    """Sends payment tokens in the background without blocking the caller."""

    def __init__(self, relay: MessageRelay, mailbox: str = PAYMENT_MAILBOX):
        self.relay = relay
        self.mailbox = mailbox
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def send(self, recipient: str, token: PaymentToken) -> asyncio.Task[None]:
        """Schedule delivery of ``token`` to ``recipient`` and return immediately."""
        task = asyncio.create_task(self._deliver(recipient, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, recipient: str, token: PaymentToken) -> None:
        try:
            await self.relay.send_message(recipient, self.mailbox, token.to_body())
            logger.info(
                f"Sent payment token for output {token.output_index} "
                f"({token.amount} sats) to {recipient[:16]}..."
            )
        except Exception as e:
            logger.warning(f"Failed to notify {recipient[:16]}... of payment: {e}")

    async def drain(self) -> None:
        """Wait for all scheduled notifications to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def close(self) -> None:
        await self.drain()
        await self.relay.close()
