"""
User-facing collaborators of the funding flow.

satsgo never renders anything itself. A host application supplies a
FundingPrompter (dialogs, status text, amount buttons) and a
CardPaymentProcessor (card entry and confirmation); the funding session
drives them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from loguru import logger

from satsgo.config import FundingOptions, WalletUnavailableOptions
from satsgo.models import PurchaseOption, Quote


@dataclass(frozen=True)
class CardPaymentResult:
    succeeded: bool
    error: str | None = None


class FundingPrompter(ABC):
    """Presents the recovery dialogues and reports the user's choices."""

    @abstractmethod
    async def show_status(self, message: str, error: bool = False) -> None:
        """Show a line of status text in the funding dialogue"""

    @abstractmethod
    async def choose_amount(
        self, options: list[PurchaseOption], needed: int, quote: Quote
    ) -> PurchaseOption | None:
        """Let the user pick a purchase option; None means cancel"""

    @abstractmethod
    async def offer_retry(self, message: str) -> bool:
        """After a failed step, ask whether to try it again; False means cancel"""

    @abstractmethod
    async def show_wallet_unavailable(self, options: WalletUnavailableOptions) -> None:
        """Tell the user a wallet must be installed, connected or unlocked"""

    @abstractmethod
    async def external_funding(self, options: FundingOptions, description: str | None) -> bool:
        """Point the user at an external top-up site; True once they ask to retry"""

    async def close(self) -> None:
        """Tear down whatever the prompter is showing"""
        pass


class CardPaymentProcessor(ABC):
    """Collects card details and confirms a payment."""

    @abstractmethod
    async def confirm_payment(self, handle: str, usd: int) -> CardPaymentResult:
        """Confirm the payment identified by ``handle`` for ``usd`` dollars"""


class HeadlessPrompter(FundingPrompter):
    """
    Prompter for environments without a user.

    Logs what would have been shown and declines every choice, so funding
    resolves to cancel and the original error reaches the caller.
    """

    async def show_status(self, message: str, error: bool = False) -> None:
        if error:
            logger.warning(message)
        else:
            logger.info(message)

    async def choose_amount(
        self, options: list[PurchaseOption], needed: int, quote: Quote
    ) -> PurchaseOption | None:
        return None

    async def offer_retry(self, message: str) -> bool:
        return False

    async def show_wallet_unavailable(self, options: WalletUnavailableOptions) -> None:
        logger.warning(f"{options.title}: {options.message} ({options.cta_href})")

    async def external_funding(self, options: FundingOptions, description: str | None) -> bool:
        return False
