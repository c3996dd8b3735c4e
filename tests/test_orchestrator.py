"""
Tests for FundedWallet.

Tests:
- Fee outputs and immediate payment notifications
- Deferred signatures resolved by sign_action
- Funding recovery with a single retry
- Wallet-unavailable policies and read-only fallbacks
- Pass-through of unrelated errors and other operations
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from fakes import ApprovingCard, FakeShop, RecordingRelay, ScriptedPrompter

from satsgo.config import FundingMode, GoConfig, WalletUnavailablePolicy
from satsgo.constants import BASE_FEE_IDENTITY, NO_WALLET_MESSAGE
from satsgo.errors import InsufficientFundsError, KeyDerivationFailure, WalletError
from satsgo.funding import FundingOutcome
from satsgo.orchestrator import CallState, FundedWallet


@pytest.fixture
def relay() -> RecordingRelay:
    return RecordingRelay()


@pytest.fixture
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


@pytest.fixture
def shop() -> FakeShop:
    return FakeShop()


@pytest.fixture
def card() -> ApprovingCard:
    return ApprovingCard()


@pytest.fixture
def funded(mock_wallet, config, prompter, card, shop, relay) -> FundedWallet:
    return FundedWallet(
        mock_wallet, config, prompter=prompter, card_processor=card, shop=shop, relay=relay
    )


def finalize(make_tx, args: dict) -> list[int]:
    """Transaction paying every output of the submitted action."""
    return list(make_tx([(o["satoshis"], bytes.fromhex(o["lockingScript"])) for o in args["outputs"]]))


class TestImmediateNotification:
    """Actions the wallet signs and finalizes right away."""

    @pytest.mark.asyncio
    async def test_base_fee_recipient_notified(self, funded, mock_wallet, action_args, relay, make_tx) -> None:
        mock_wallet.create_action = AsyncMock(
            side_effect=lambda args, origin: {"txid": "aa" * 32, "tx": finalize(make_tx, args)}
        )

        result = await funded.create_action(action_args, "app.example")
        await funded.notifier.drain()

        assert result["txid"] == "aa" * 32
        assert len(relay.sent) == 1
        recipient, mailbox, body = relay.sent[0]
        assert recipient == BASE_FEE_IDENTITY
        assert mailbox == "payment_inbox"
        token = json.loads(body)
        assert token["outputIndex"] == 1
        assert token["amount"] == 10
        assert funded.last_call.state == CallState.DONE
        assert funded.last_call.attempts == 1

    @pytest.mark.asyncio
    async def test_developer_and_base_notified(
        self, mock_wallet, monetized_config, action_args, relay, make_tx, developer_identity
    ) -> None:
        funded = FundedWallet(mock_wallet, monetized_config, relay=relay, shop=FakeShop())
        mock_wallet.create_action = AsyncMock(
            side_effect=lambda args, origin: {"tx": finalize(make_tx, args)}
        )

        await funded.create_action(action_args)
        await funded.notifier.drain()

        assert [r for r, _, _ in relay.sent] == [developer_identity, BASE_FEE_IDENTITY]

    @pytest.mark.asyncio
    async def test_relay_failure_does_not_fail_action(self, mock_wallet, config, action_args, make_tx) -> None:
        funded = FundedWallet(mock_wallet, config, relay=RecordingRelay(fail=True), shop=FakeShop())
        mock_wallet.create_action = AsyncMock(
            side_effect=lambda args, origin: {"txid": "bb" * 32, "tx": finalize(make_tx, args)}
        )

        result = await funded.create_action(action_args)
        await funded.notifier.drain()

        assert result["txid"] == "bb" * 32

    @pytest.mark.asyncio
    async def test_unparseable_tx_does_not_fail_action(self, funded, mock_wallet, action_args, relay) -> None:
        mock_wallet.create_action = AsyncMock(return_value={"txid": "cc" * 32, "tx": [1, 2, 3, 4, 5]})

        result = await funded.create_action(action_args)

        assert result["txid"] == "cc" * 32
        assert relay.sent == []

    @pytest.mark.asyncio
    async def test_action_without_outputs(self, funded, mock_wallet, relay) -> None:
        args = {"description": "spend only", "inputs": [{"outpoint": "aa" * 32 + ".0"}]}
        mock_wallet.create_action = AsyncMock(return_value={"txid": "dd" * 32})

        await funded.create_action(args)

        mock_wallet.create_action.assert_awaited_once_with(args, None)
        assert "outputs" not in args
        mock_wallet.get_public_key.assert_not_called()
        assert relay.sent == []


class TestDeferredSignature:
    """Actions returned as signable transactions."""

    @pytest.mark.asyncio
    async def test_notified_after_sign(self, funded, mock_wallet, action_args, relay, make_tx) -> None:
        submitted: dict = {}

        def create(args, origin):
            submitted.update(args)
            return {"signableTransaction": {"reference": "ref-A", "tx": [0]}}

        mock_wallet.create_action = AsyncMock(side_effect=create)
        await funded.create_action(action_args)
        await funded.notifier.drain()

        assert relay.sent == []
        assert "ref-A" in funded.tracker

        mock_wallet.sign_action = AsyncMock(return_value={"txid": "ee" * 32, "tx": finalize(make_tx, submitted)})
        result = await funded.sign_action({"reference": "ref-A", "spends": {}})
        await funded.notifier.drain()

        assert result["txid"] == "ee" * 32
        assert [r for r, _, _ in relay.sent] == [BASE_FEE_IDENTITY]
        assert "ref-A" not in funded.tracker

    @pytest.mark.asyncio
    async def test_sign_unknown_reference(self, funded, mock_wallet, relay, make_tx) -> None:
        mock_wallet.sign_action = AsyncMock(return_value={"tx": list(make_tx([(1, b"\x51")]))})

        await funded.sign_action({"reference": "other", "spends": {}})
        await funded.notifier.drain()

        assert relay.sent == []

    @pytest.mark.asyncio
    async def test_abort_discards(self, funded, mock_wallet, action_args) -> None:
        mock_wallet.create_action = AsyncMock(
            return_value={"signableTransaction": {"reference": "ref-B", "tx": [0]}}
        )
        await funded.create_action(action_args)

        result = await funded.abort_action({"reference": "ref-B"})

        assert result == {"aborted": True}
        assert "ref-B" not in funded.tracker


class TestFundingRecovery:
    """Insufficient funds, top-up and the single retry."""

    @pytest.mark.asyncio
    async def test_retry_after_funding(self, funded, mock_wallet, action_args, prompter, card) -> None:
        """One purchase, then the same hydrated action succeeds."""
        prompter.choices = [2]
        mock_wallet.create_action = AsyncMock(
            side_effect=[InsufficientFundsError(more_satoshis_needed=1500), {"txid": "ff" * 32}]
        )

        result = await funded.create_action(action_args)

        assert result == {"txid": "ff" * 32}
        assert mock_wallet.create_action.await_count == 2
        first_args = mock_wallet.create_action.await_args_list[0].args[0]
        second_args = mock_wallet.create_action.await_args_list[1].args[0]
        assert first_args is second_args
        assert len(second_args["outputs"]) == 2
        assert mock_wallet.get_public_key.await_count == 1
        assert prompter.offers[0][1] == 1500
        assert card.payments == [("secret-ref-1", 2)]
        assert funded.last_call.history == [
            CallState.START,
            CallState.FUNDING,
            CallState.RETRYING,
            CallState.DONE,
        ]
        assert funded.last_call.funding_outcome == FundingOutcome.RETRY

    @pytest.mark.asyncio
    async def test_second_failure_propagates(self, funded, mock_wallet, action_args, prompter) -> None:
        """The retry happens once; its error reaches the caller."""
        prompter.choices = [2, 2]
        second = InsufficientFundsError(more_satoshis_needed=10)
        mock_wallet.create_action = AsyncMock(
            side_effect=[InsufficientFundsError(more_satoshis_needed=1500), second]
        )

        with pytest.raises(InsufficientFundsError) as exc_info:
            await funded.create_action(action_args)

        assert exc_info.value is second
        assert mock_wallet.create_action.await_count == 2
        assert len(prompter.offers) == 1
        assert funded.last_call.state == CallState.FAILED

    @pytest.mark.asyncio
    async def test_cancelled_funding_raises_original(self, funded, mock_wallet, action_args) -> None:
        original = InsufficientFundsError(more_satoshis_needed=1500)
        mock_wallet.create_action = AsyncMock(side_effect=original)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await funded.create_action(action_args)

        assert exc_info.value is original
        assert mock_wallet.create_action.await_count == 1
        assert funded.last_call.funding_outcome == FundingOutcome.CANCEL

    @pytest.mark.asyncio
    async def test_funding_error_raises_original(self, funded, mock_wallet, action_args, shop) -> None:
        """A funding session that blows up counts as a cancel."""
        original = InsufficientFundsError(more_satoshis_needed=1500)
        mock_wallet.create_action = AsyncMock(side_effect=original)
        shop.start_shopping = AsyncMock(
            side_effect=WalletError("Permission denied for identity key", code="PERMISSION_DENIED")
        )

        with pytest.raises(InsufficientFundsError) as exc_info:
            await funded.create_action(action_args)

        assert exc_info.value is original
        assert mock_wallet.create_action.await_count == 1
        assert funded.last_call.funding_outcome == FundingOutcome.CANCEL
        assert funded.last_call.history == [CallState.START, CallState.FUNDING, CallState.FAILED]

    @pytest.mark.asyncio
    async def test_unknown_shortfall_estimated(self, funded, mock_wallet, action_args, prompter) -> None:
        """Without a shortfall the whole action total is requested."""
        mock_wallet.create_action = AsyncMock(side_effect=WalletError("Insufficient funds"))

        with pytest.raises(WalletError):
            await funded.create_action(action_args)

        assert prompter.offers[0][1] == 1010

    @pytest.mark.asyncio
    async def test_headless_never_prompts(self, mock_wallet, action_args, prompter, card, shop) -> None:
        config = GoConfig(show_prompts=False)
        funded = FundedWallet(
            mock_wallet, config, prompter=prompter, card_processor=card, shop=shop, relay=RecordingRelay()
        )
        mock_wallet.create_action = AsyncMock(side_effect=InsufficientFundsError(more_satoshis_needed=5))

        with pytest.raises(InsufficientFundsError):
            await funded.create_action(action_args)

        assert prompter.offers == []
        assert prompter.statuses == []

    @pytest.mark.asyncio
    async def test_no_card_processor_cancels(self, mock_wallet, config, action_args, prompter, shop) -> None:
        funded = FundedWallet(mock_wallet, config, prompter=prompter, shop=shop, relay=RecordingRelay())
        mock_wallet.create_action = AsyncMock(side_effect=InsufficientFundsError(more_satoshis_needed=5))

        with pytest.raises(InsufficientFundsError):
            await funded.create_action(action_args)

        assert prompter.offers == []
        assert funded.last_call.funding_outcome == FundingOutcome.CANCEL

    @pytest.mark.asyncio
    async def test_external_funding_retry(self, mock_wallet, action_args, shop) -> None:
        config = GoConfig(funding_mode=FundingMode.EXTERNAL)
        prompter = ScriptedPrompter(external_retry=True)
        funded = FundedWallet(mock_wallet, config, prompter=prompter, shop=shop, relay=RecordingRelay())
        mock_wallet.create_action = AsyncMock(side_effect=[InsufficientFundsError(), {"txid": "01" * 32}])

        assert await funded.create_action(action_args) == {"txid": "01" * 32}
        assert prompter.external_prompts == ["post a message"]
        assert shop.bought == {}

    @pytest.mark.asyncio
    async def test_delivery_timeout_raises_original(self, mock_wallet, action_args, prompter, card, shop) -> None:
        config = GoConfig(completion_poll_interval=0.0, success_pause=0.0, completion_poll_max_attempts=2)
        funded = FundedWallet(
            mock_wallet, config, prompter=prompter, card_processor=card, shop=shop, relay=RecordingRelay()
        )
        prompter.choices = [2]
        shop.never_deliver = True
        original = InsufficientFundsError(more_satoshis_needed=1500)
        mock_wallet.create_action = AsyncMock(side_effect=original)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await funded.create_action(action_args)

        assert exc_info.value is original
        assert funded.last_call.funding_outcome == FundingOutcome.TIMEOUT


class TestErrorPassThrough:
    """Errors that are not recovered."""

    @pytest.mark.asyncio
    async def test_unrelated_error_unchanged(self, funded, mock_wallet, action_args, prompter) -> None:
        original = WalletError("bad lockingScript", code="INVALID_PARAMETER")
        mock_wallet.create_action = AsyncMock(side_effect=original)

        with pytest.raises(WalletError) as exc_info:
            await funded.create_action(action_args)

        assert exc_info.value is original
        assert prompter.statuses == []
        assert prompter.wallet_notices == 0

    @pytest.mark.asyncio
    async def test_key_derivation_failure(self, funded, mock_wallet, action_args) -> None:
        mock_wallet.get_public_key = AsyncMock(return_value={"publicKey": ""})

        with pytest.raises(KeyDerivationFailure):
            await funded.create_action(action_args)

        mock_wallet.create_action.assert_not_called()


class TestWalletUnavailable:
    """Wallet-unavailable notice and policies."""

    @pytest.mark.asyncio
    async def test_raise_policy(self, funded, mock_wallet, action_args, prompter) -> None:
        mock_wallet.create_action = AsyncMock(side_effect=WalletError(NO_WALLET_MESSAGE))

        with pytest.raises(WalletError):
            await funded.create_action(action_args)

        assert prompter.wallet_notices == 1
        assert funded.last_call.state == CallState.FAILED

    @pytest.mark.asyncio
    async def test_unavailable_during_derivation(self, funded, mock_wallet, action_args, prompter) -> None:
        mock_wallet.get_public_key = AsyncMock(side_effect=WalletError("locked", code="WALLET_LOCKED"))

        with pytest.raises(WalletError):
            await funded.create_action(action_args)

        assert prompter.wallet_notices == 1
        mock_wallet.create_action.assert_not_called()

    @pytest.mark.asyncio
    async def test_suspend_policy(self, mock_wallet, action_args, prompter, shop) -> None:
        """A suspended call only ends when its task is cancelled."""
        config = GoConfig(wallet_unavailable_policy=WalletUnavailablePolicy.SUSPEND)
        funded = FundedWallet(mock_wallet, config, prompter=prompter, shop=shop, relay=RecordingRelay())
        mock_wallet.create_action = AsyncMock(side_effect=WalletError("x", code="WALLET_NOT_CONNECTED"))

        task = asyncio.create_task(funded.create_action(action_args))
        for _ in range(100):
            if funded.suspended_calls:
                break
            await asyncio.sleep(0)

        assert funded.suspended_calls == 1
        assert funded.last_call.state == CallState.SUSPENDED
        assert not task.done()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert funded.suspended_calls == 0

    @pytest.mark.asyncio
    async def test_headless_raises_under_suspend(self, mock_wallet, action_args, prompter, shop) -> None:
        config = GoConfig(show_prompts=False, wallet_unavailable_policy=WalletUnavailablePolicy.SUSPEND)
        funded = FundedWallet(mock_wallet, config, prompter=prompter, shop=shop, relay=RecordingRelay())
        mock_wallet.create_action = AsyncMock(side_effect=WalletError(NO_WALLET_MESSAGE))

        with pytest.raises(WalletError):
            await asyncio.wait_for(funded.create_action(action_args), 1.0)
        assert prompter.wallet_notices == 0


class TestPassThrough:
    """Operations other than create_action."""

    @pytest.mark.asyncio
    async def test_forwards_args_and_origin(self, funded, mock_wallet) -> None:
        mock_wallet.list_outputs = AsyncMock(return_value={"totalOutputs": 1, "outputs": [{}]})

        result = await funded.list_outputs({"basket": "default"}, "app.example")

        assert result == {"totalOutputs": 1, "outputs": [{}]}
        mock_wallet.list_outputs.assert_awaited_once_with({"basket": "default"}, "app.example")

    @pytest.mark.asyncio
    async def test_read_only_fallback(self, mock_wallet, prompter, shop) -> None:
        config = GoConfig(read_only_fallbacks={"list_outputs", "get_network"})
        funded = FundedWallet(mock_wallet, config, prompter=prompter, shop=shop, relay=RecordingRelay())
        unavailable = WalletError(NO_WALLET_MESSAGE)
        mock_wallet.list_outputs = AsyncMock(side_effect=unavailable)
        mock_wallet.get_network = AsyncMock(side_effect=unavailable)
        mock_wallet.get_height = AsyncMock(side_effect=unavailable)

        first = await funded.list_outputs({"basket": "default"})
        first["outputs"].append("mutated")

        assert await funded.list_outputs({"basket": "default"}) == {"totalOutputs": 0, "outputs": []}
        assert await funded.get_network({}) == {"network": "mainnet"}
        assert prompter.wallet_notices == 0

        with pytest.raises(WalletError):
            await funded.get_height({})
        assert prompter.wallet_notices == 1

    @pytest.mark.asyncio
    async def test_fallback_only_for_unavailable(self, mock_wallet, prompter, shop) -> None:
        config = GoConfig(read_only_fallbacks={"list_outputs"})
        funded = FundedWallet(mock_wallet, config, prompter=prompter, shop=shop, relay=RecordingRelay())
        mock_wallet.list_outputs = AsyncMock(side_effect=WalletError("bad basket", code="INVALID_PARAMETER"))

        with pytest.raises(WalletError):
            await funded.list_outputs({"basket": ""})

    @pytest.mark.asyncio
    async def test_close(self, funded, mock_wallet, shop, relay) -> None:
        await funded.close()

        assert shop.closed
        assert relay.closed
        mock_wallet.close.assert_not_called()
