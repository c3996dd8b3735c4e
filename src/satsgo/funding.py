"""
Funding session: interactive top-up after an insufficient-funds error.

Protocol:
1. Load a quote from the purchase service
2. Complete purchases that were paid earlier but never delivered
3. Offer purchase amounts (USD options converted at the quoted rate)
4. Reserve the chosen amount and confirm the card payment
5. Poll until the satoshis are delivered
6. Back to 3 while a shortfall remains, otherwise resolve to retry

The user can cancel in any state. Service failures are shown as status text
and are only retried when the user asks for it.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Iterable
from enum import Enum

import httpx
from loguru import logger

from satsgo.config import FundingOptions
from satsgo.constants import (
    COMPLETION_POLL_INTERVAL,
    COMPLETION_POLL_MAX_ATTEMPTS,
    SUCCESS_PAUSE,
    USD_PURCHASE_OPTIONS,
)
from satsgo.errors import PurchaseServiceError
from satsgo.models import PurchaseOption, Quote
from satsgo.prompts import CardPaymentProcessor, FundingPrompter
from satsgo.shop import PurchaseService

SERVICE_ERRORS = (PurchaseServiceError, httpx.HTTPError, ConnectionError, TimeoutError)


class FundingState(str, Enum):
    """Funding session states."""

    LOADING_QUOTE = "loading_quote"
    RECOVERING_PENDING = "recovering_pending"
    SELECTING_AMOUNT = "selecting_amount"
    AWAITING_PAYMENT = "awaiting_payment"
    POLLING_COMPLETION = "polling_completion"
    RESOLVED = "resolved"


class FundingOutcome(str, Enum):
    RETRY = "retry"
    CANCEL = "cancel"
    TIMEOUT = "timeout"  # delivery polling gave up


def purchase_options(
    quote: Quote, needed: int, usd_options: Iterable[int] = USD_PURCHASE_OPTIONS
) -> list[PurchaseOption]:
    """
    Purchase options to offer for the current shortfall.

    Options outside the quote's limits are dropped. Options smaller than the
    shortfall are dropped too, except that the largest allowed option is kept
    when none covers it.
    """
    allowed = [
        PurchaseOption(usd=usd, satoshis=math.ceil(usd * quote.rate)) for usd in usd_options
    ]
    allowed = [
        o for o in allowed if quote.minimum_satoshis <= o.satoshis <= quote.maximum_satoshis
    ]
    if not allowed:
        return []

    sufficient = [o for o in allowed if o.satoshis >= needed]
    return sufficient or [max(allowed, key=lambda o: o.satoshis)]


class FundingSession:
    """
    One top-up dialogue for one failed action.

    ``run()`` resolves exactly once; later calls return the same outcome.
    ``cancel()`` may be called at any time, e.g. from a close button, and
    stops whatever the session is waiting on.
    """

    def __init__(
        self,
        shop: PurchaseService,
        prompter: FundingPrompter,
        card_processor: CardPaymentProcessor,
        needed_satoshis: int,
        description: str | None = None,
        poll_interval: float = COMPLETION_POLL_INTERVAL,
        poll_max_attempts: int | None = COMPLETION_POLL_MAX_ATTEMPTS,
        success_pause: float = SUCCESS_PAUSE,
        usd_options: Iterable[int] = USD_PURCHASE_OPTIONS,
    ):
        self.shop = shop
        self.prompter = prompter
        self.card_processor = card_processor
        self.needed_satoshis = max(0, needed_satoshis)
        self.description = description
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self.success_pause = success_pause
        self.usd_options = tuple(usd_options)

        self.state = FundingState.LOADING_QUOTE
        self.history: list[FundingState] = [self.state]
        self.quote: Quote | None = None
        self.current_reference: str | None = None
        self.outcome: FundingOutcome | None = None

        self._cancelled = asyncio.Event()
        self._lock = asyncio.Lock()

    def cancel(self) -> None:
        """Request cancellation from any state."""
        if self.outcome is None:
            logger.info("Funding session cancelled by user")
        self._cancelled.set()

    async def run(self) -> FundingOutcome:
        """Drive the session until it resolves."""
        async with self._lock:
            if self.outcome is not None:
                return self.outcome

            logger.info(f"Starting funding session for {self.needed_satoshis:,} sats")
            driver = asyncio.create_task(self._drive())
            cancel_wait = asyncio.create_task(self._cancelled.wait())
            try:
                await asyncio.wait({driver, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (driver, cancel_wait):
                    if not task.done():
                        task.cancel()
                await asyncio.gather(driver, cancel_wait, return_exceptions=True)

            if driver.done() and not driver.cancelled():
                try:
                    outcome = driver.result()
                except Exception:
                    self._resolve(FundingOutcome.CANCEL)
                    raise
            else:
                outcome = FundingOutcome.CANCEL

            self._resolve(outcome)
            return outcome

    def _resolve(self, outcome: FundingOutcome) -> None:
        self.outcome = outcome
        self._enter(FundingState.RESOLVED)
        logger.info(f"Funding session resolved: {outcome.value}")

    def _enter(self, state: FundingState) -> None:
        if state == self.state:
            return
        logger.debug(f"Funding session: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _reduce_needed(self, satoshis: int) -> None:
        self.needed_satoshis = max(0, self.needed_satoshis - satoshis)

    async def _status(self, message: str, error: bool = False) -> None:
        await self.prompter.show_status(message, error=error)

    async def _drive(self) -> FundingOutcome:
        quote = await self._load_quote()
        if quote is None:
            return FundingOutcome.CANCEL
        self.quote = quote

        await self._recover_pending(quote)
        if self.needed_satoshis <= 0:
            await self._status(
                f"You now have enough satoshis to {self.description or 'complete this action'}."
            )
            await asyncio.sleep(self.success_pause)
            return FundingOutcome.RETRY

        if self.needed_satoshis > quote.maximum_satoshis:
            await self._status(
                f"Your current limit of {quote.maximum_satoshis:,} satoshis prevents you from "
                f"being able to retry this action. Please pursue other funding options for "
                f"your wallet. An additional {self.needed_satoshis:,} satoshis are required.",
                error=True,
            )

        while True:
            self._enter(FundingState.SELECTING_AMOUNT)
            options = purchase_options(quote, self.needed_satoshis, self.usd_options)
            if not options:
                await self._status(
                    "You are unable to purchase more satoshis at this time. "
                    "Please pursue other funding options for your wallet.",
                    error=True,
                )
                return FundingOutcome.CANCEL

            choice = await self.prompter.choose_amount(options, self.needed_satoshis, quote)
            if choice is None:
                return FundingOutcome.CANCEL

            self._enter(FundingState.AWAITING_PAYMENT)
            reference = await self._pay(quote, choice)
            if reference is None:
                continue  # failure already shown, user picks again or cancels

            self._enter(FundingState.POLLING_COMPLETION)
            delivered = await self._poll_completion(reference)
            if delivered is None:
                return FundingOutcome.CANCEL
            if delivered is FundingOutcome.TIMEOUT:
                return FundingOutcome.TIMEOUT

            self._reduce_needed(delivered)
            await self._status(f"Success! +{delivered:,} satoshis added")
            if self.needed_satoshis <= 0:
                await asyncio.sleep(self.success_pause)
                return FundingOutcome.RETRY
            await self._status(f"You now need {self.needed_satoshis:,} more satoshis.")

    async def _load_quote(self) -> Quote | None:
        while True:
            self._enter(FundingState.LOADING_QUOTE)
            await self._status("Loading purchase options…")
            try:
                return await self.shop.start_shopping()
            except SERVICE_ERRORS as e:
                logger.warning(f"Could not load purchase quote: {e}")
                await self._status(f"Connection failed: {e}", error=True)
                if not await self.prompter.offer_retry("Could not reach the purchase service. Try again?"):
                    return None

    async def _recover_pending(self, quote: Quote) -> None:
        if not quote.pending_references:
            return

        self._enter(FundingState.RECOVERING_PENDING)
        await self._status("Processing previous purchases…")
        for reference in quote.pending_references:
            try:
                result = await self.shop.complete_buy(reference)
            except SERVICE_ERRORS as e:
                logger.warning(f"Failed to complete pending purchase {reference}: {e}")
                await self._status(
                    f"Prior purchase with reference {reference} could not be processed.", error=True
                )
                continue

            if result.acknowledged and result.satoshis:
                self._reduce_needed(result.satoshis)
                await self._status(f"Processed prior purchase of {result.satoshis:,} satoshis.")
            else:
                await self._status(f"Prior purchase with reference {reference} is still pending.")

    async def _pay(self, quote: Quote, choice: PurchaseOption) -> str | None:
        """Reserve the purchase and confirm the card payment; returns the reference."""
        await self._status("Preparing payment…")
        try:
            initiation = await self.shop.initiate_buy(choice.satoshis, quote.quote_id)
        except SERVICE_ERRORS as e:
            logger.warning(f"Purchase initiation failed: {e}")
            await self._status(f"Error: {e}", error=True)
            return None

        self.current_reference = initiation.reference
        await self._status("Confirming with your bank…")
        try:
            result = await self.card_processor.confirm_payment(initiation.payment_handle, choice.usd)
        except Exception as e:
            logger.warning(f"Card payment raised: {e}")
            await self._status(f"Payment failed: {e}", error=True)
            return None

        if not result.succeeded:
            await self._status(f"Payment failed: {result.error or 'declined'}", error=True)
            return None

        await self._status("Payment successful! Delivering satoshis…")
        return initiation.reference

    async def _poll_completion(self, reference: str) -> int | FundingOutcome | None:
        """
        Poll delivery of a paid purchase.

        Returns the delivered satoshis, FundingOutcome.TIMEOUT when the attempt
        limit is hit, or None when the user gives up after an error.
        """
        attempts = 0
        while True:
            if self.poll_max_attempts is not None and attempts >= self.poll_max_attempts:
                logger.error(f"Purchase {reference} not delivered after {attempts} checks")
                await self._status(
                    "Delivery is taking longer than expected. Your purchase will be "
                    "completed the next time you top up.",
                    error=True,
                )
                return FundingOutcome.TIMEOUT
            attempts += 1

            try:
                result = await self.shop.complete_buy(reference)
            except SERVICE_ERRORS as e:
                logger.warning(f"Delivery check for {reference} failed: {e}")
                await self._status(f"Delivery failed: {e}", error=True)
                if not await self.prompter.offer_retry("Check delivery again?"):
                    return None
                attempts = 0
                continue

            if result.acknowledged and result.satoshis:
                return result.satoshis

            await self._status("Delivering satoshis…")
            await asyncio.sleep(self.poll_interval)


async def run_external_funding(
    prompter: FundingPrompter, options: FundingOptions, description: str | None
) -> FundingOutcome:
    """Send the user to an external top-up site and wait for retry or cancel."""
    retry = await prompter.external_funding(options, description)
    return FundingOutcome.RETRY if retry else FundingOutcome.CANCEL
