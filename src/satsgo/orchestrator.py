"""
FundedWallet: a drop-in wallet that pays fees and recovers from funding errors.

Wraps any WalletInterface:
1. create_action adds fee outputs, then creates the action
2. Fee recipients are notified once the transaction is final, immediately
   or after sign_action for deferred signatures
3. Insufficient funds opens a funding session; after a successful top-up the
   action is retried exactly once
4. Wallet-unavailable errors show a notice and then either raise or suspend
   the call, depending on configuration
5. Every other error reaches the caller untouched
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from satsgo.classifier import InsufficientFunds, WalletUnavailable, classify_error
from satsgo.config import FundingMode, GoConfig, WalletUnavailablePolicy
from satsgo.errors import TransactionParseError
from satsgo.funding import FundingOutcome, FundingSession, run_external_funding
from satsgo.hydrator import FeeOutputHydrator, HydratedAction
from satsgo.models import PaymentToken
from satsgo.notifier import HTTPMessageRelay, MessageRelay, PaymentNotifier
from satsgo.prompts import CardPaymentProcessor, FundingPrompter, HeadlessPrompter
from satsgo.shop import HTTPPurchaseService, PurchaseService
from satsgo.tracker import PendingSignatureTracker, entries_for, match_outputs
from satsgo.wallet.base import Args, Result, WalletInterface
from satsgo.wallet.http import HTTPWalletClient

# Results returned by read-only operations configured to degrade when no wallet is present
READ_ONLY_PLACEHOLDERS: dict[str, Result] = {
    "list_outputs": {"totalOutputs": 0, "outputs": []},
    "list_actions": {"totalActions": 0, "actions": []},
    "is_authenticated": {"authenticated": False},
    "get_version": {"version": "unknown"},
    "get_height": {"height": 0},
    "get_network": {"network": "mainnet"},
}


class CallState(str, Enum):
    """States of one create_action call."""

    START = "start"
    FUNDING = "funding"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"
    # Terminal: the wallet is unavailable and the call waits forever. Only the
    # host application can end it, by cancelling the awaiting task.
    SUSPENDED = "suspended"


@dataclass
class ActionCall:
    """Bookkeeping for one create_action call."""

    description: str | None = None
    state: CallState = CallState.START
    attempts: int = 0
    funding_outcome: FundingOutcome | None = None
    history: list[CallState] = field(default_factory=lambda: [CallState.START])

    def enter(self, state: CallState) -> None:
        logger.debug(f"Action call: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class FundedWallet(WalletInterface):
    """
    Wallet wrapper adding fee outputs, payment notifications and funding recovery.
    """

    def __init__(
        self,
        wallet: WalletInterface | None = None,
        config: GoConfig | None = None,
        prompter: FundingPrompter | None = None,
        card_processor: CardPaymentProcessor | None = None,
        shop: PurchaseService | None = None,
        relay: MessageRelay | None = None,
    ):
        """
        Initialize the wrapper.

        Args:
            wallet: Wallet to wrap (default: local HTTP wallet)
            config: Wrapper configuration
            prompter: Presents recovery dialogues (default: headless, declines everything)
            card_processor: Confirms card payments during funding sessions
            shop: Purchase service (default: HTTP client for config.shop_url)
            relay: Message relay for payment tokens (default: HTTP relay at config.message_relay_url)
        """
        self._owns_wallet = wallet is None
        self.wallet = wallet or HTTPWalletClient()
        self.config = config or GoConfig()
        self.prompter = prompter or HeadlessPrompter()
        self.card_processor = card_processor
        self.shop = shop or HTTPPurchaseService(self.wallet, self.config.shop_url)
        self.notifier = PaymentNotifier(
            relay or HTTPMessageRelay(self.wallet, self.config.message_relay_url)
        )
        self.tracker = PendingSignatureTracker(ttl=self.config.pending_signature_ttl)
        self.hydrator = FeeOutputHydrator(self.wallet, self.config.fee_schedule())

        self.last_call: ActionCall | None = None
        self.funding_session: FundingSession | None = None
        self.suspended_calls = 0

        if (
            self.config.show_prompts
            and self.config.funding_mode == FundingMode.SHOP
            and card_processor is None
        ):
            logger.warning("No card payment processor configured, funding sessions will cancel")

    # ------------------------------------------------------------------
    # create_action / sign_action
    # ------------------------------------------------------------------

    async def create_action(self, args: Args, origin: str | None = None) -> Result:
        call = ActionCall(description=args.get("description"))
        self.last_call = call

        try:
            action = await self.hydrator.hydrate(args, origin)
        except Exception as e:
            call.enter(CallState.FAILED)
            await self._on_passthrough_error(e, "create_action")
            raise

        call.attempts += 1
        try:
            result = await self.hydrator.submit(action, origin)
        except Exception as e:
            error = e
        else:
            call.enter(CallState.DONE)
            self._after_create(action, result)
            return result

        classification = classify_error(error)

        if isinstance(classification, WalletUnavailable):
            await self._wallet_unavailable(classification, call)
            call.enter(CallState.FAILED)
            raise error

        if not isinstance(classification, InsufficientFunds):
            call.enter(CallState.FAILED)
            raise error

        call.enter(CallState.FUNDING)
        try:
            outcome = await self._fund(classification, action)
        except Exception as e:
            logger.error(f"Funding failed, giving up on the action: {e}")
            outcome = FundingOutcome.CANCEL
        call.funding_outcome = outcome
        if outcome != FundingOutcome.RETRY:
            call.enter(CallState.FAILED)
            raise error

        # Single retry with the already hydrated action; its errors go to the caller
        call.enter(CallState.RETRYING)
        logger.info("Retrying action after funding")
        call.attempts += 1
        try:
            result = await self.hydrator.submit(action, origin)
        except Exception:
            call.enter(CallState.FAILED)
            raise
        call.enter(CallState.DONE)
        self._after_create(action, result)
        return result

    def _after_create(self, action: HydratedAction, result: Result) -> None:
        """Notify fee recipients now, or remember them until the action is signed."""
        if not action.injected:
            return

        tx = result.get("tx")
        signable = result.get("signableTransaction") or {}
        if tx:
            try:
                tokens = match_outputs(entries_for(action.injected), tx)
            except TransactionParseError as e:
                logger.error(f"Cannot read created transaction, fee recipients not notified: {e}")
                return
            self._notify(tokens)
        elif signable.get("reference"):
            self.tracker.record(signable["reference"], action.injected)
        else:
            logger.warning("Action result has no transaction, fee recipients not notified")

    async def sign_action(self, args: Args, origin: str | None = None) -> Result:
        result = await self._passthrough("sign_action", args, origin)

        reference = args.get("reference")
        tx = result.get("tx")
        if reference and tx and reference in self.tracker:
            try:
                tokens = self.tracker.resolve(reference, tx)
            except TransactionParseError as e:
                logger.error(f"Cannot read signed transaction, fee recipients not notified: {e}")
                return result
            self._notify(tokens)
        return result

    async def abort_action(self, args: Args, origin: str | None = None) -> Result:
        result = await self._passthrough("abort_action", args, origin)
        reference = args.get("reference")
        if reference:
            self.tracker.discard(reference)
        return result

    def _notify(self, tokens: list[tuple[str, PaymentToken]]) -> None:
        for identity, token in tokens:
            self.notifier.send(identity, token)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _estimate_shortfall(self, classification: InsufficientFunds, action: HydratedAction) -> int:
        if classification.shortfall is not None and classification.shortfall > 0:
            return classification.shortfall
        # Wallet did not say how much is missing; ask for at least the action's total
        return max(1, action.requested_satoshis())

    async def _fund(self, classification: InsufficientFunds, action: HydratedAction) -> FundingOutcome:
        if not self.config.show_prompts:
            return FundingOutcome.CANCEL

        if self.config.funding_mode == FundingMode.EXTERNAL:
            return await run_external_funding(self.prompter, self.config.funding, action.description)

        if self.card_processor is None:
            await self.prompter.show_status("Card payments are not available.", error=True)
            return FundingOutcome.CANCEL

        session = FundingSession(
            shop=self.shop,
            prompter=self.prompter,
            card_processor=self.card_processor,
            needed_satoshis=self._estimate_shortfall(classification, action),
            description=action.description,
            poll_interval=self.config.completion_poll_interval,
            poll_max_attempts=self.config.completion_poll_max_attempts,
            success_pause=self.config.success_pause,
        )
        self.funding_session = session
        outcome = await session.run()
        if outcome == FundingOutcome.TIMEOUT:
            logger.warning("Funding session timed out waiting for delivery")
        return outcome

    async def _wallet_unavailable(self, classification: WalletUnavailable, call: ActionCall | None = None) -> None:
        """
        Show the wallet-unavailable notice, then suspend if so configured.

        Returns normally under the RAISE policy; the caller re-raises.
        """
        logger.warning(f"Wallet unavailable: {classification.reason}")
        if not self.config.show_prompts:
            return

        await self.prompter.show_wallet_unavailable(self.config.wallet_unavailable)
        if self.config.wallet_unavailable_policy == WalletUnavailablePolicy.SUSPEND:
            if call is not None:
                call.enter(CallState.SUSPENDED)
            await self._suspend()

    async def _suspend(self) -> None:
        """Wait forever. The only exit is cancellation of the awaiting task."""
        self.suspended_calls += 1
        try:
            await asyncio.Event().wait()
        finally:
            self.suspended_calls -= 1

    async def _on_passthrough_error(self, error: Exception, method: str) -> Result | None:
        """
        Apply the wallet-unavailable policy to a failed call.

        Returns a placeholder result when ``method`` is configured to degrade,
        otherwise None and the caller re-raises.
        """
        classification = classify_error(error)
        if not isinstance(classification, WalletUnavailable):
            return None

        if method in self.config.read_only_fallbacks:
            logger.info(f"{method}: wallet unavailable, returning placeholder result")
            return copy.deepcopy(READ_ONLY_PLACEHOLDERS[method])

        await self._wallet_unavailable(classification)
        return None

    async def _passthrough(self, method: str, args: Args, origin: str | None) -> Result:
        try:
            return await getattr(self.wallet, method)(args, origin)
        except Exception as e:
            placeholder = await self._on_passthrough_error(e, method)
            if placeholder is not None:
                return placeholder
            raise

    async def close(self) -> None:
        """Flush notifications and close the collaborators this wrapper created."""
        await self.notifier.close()
        await self.shop.close()
        await self.prompter.close()
        if self._owns_wallet:
            await self.wallet.close()

    # ------------------------------------------------------------------
    # Pass-throughs
    # ------------------------------------------------------------------

    async def list_actions(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("list_actions", args, origin)

    async def internalize_action(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("internalize_action", args, origin)

    async def list_outputs(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("list_outputs", args, origin)

    async def relinquish_output(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("relinquish_output", args, origin)

    async def get_public_key(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("get_public_key", args, origin)

    async def reveal_counterparty_key_linkage(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("reveal_counterparty_key_linkage", args, origin)

    async def reveal_specific_key_linkage(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("reveal_specific_key_linkage", args, origin)

    async def encrypt(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("encrypt", args, origin)

    async def decrypt(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("decrypt", args, origin)

    async def create_hmac(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("create_hmac", args, origin)

    async def verify_hmac(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("verify_hmac", args, origin)

    async def create_signature(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("create_signature", args, origin)

    async def verify_signature(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("verify_signature", args, origin)

    async def acquire_certificate(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("acquire_certificate", args, origin)

    async def list_certificates(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("list_certificates", args, origin)

    async def prove_certificate(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("prove_certificate", args, origin)

    async def relinquish_certificate(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("relinquish_certificate", args, origin)

    async def discover_by_identity_key(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("discover_by_identity_key", args, origin)

    async def discover_by_attributes(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("discover_by_attributes", args, origin)

    async def is_authenticated(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("is_authenticated", args, origin)

    async def wait_for_authentication(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("wait_for_authentication", args, origin)

    async def get_height(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("get_height", args, origin)

    async def get_header_for_height(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("get_header_for_height", args, origin)

    async def get_network(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("get_network", args, origin)

    async def get_version(self, args: Args, origin: str | None = None) -> Result:
        return await self._passthrough("get_version", args, origin)

