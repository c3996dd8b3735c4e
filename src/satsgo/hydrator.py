"""
Fee output hydration for wallet actions.

Appends the fee outputs (optional developer fee, then the base fee) to the
caller's action before it is handed to the wallet. All fee outputs of one
action share a single derivation nonce, so one nonce is enough to recover
every recipient's key later.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from satsgo.derivation import KeyDeriver, create_derivation_nonce
from satsgo.errors import KeyDerivationFailure
from satsgo.models import (
    CustomInstructions,
    DerivationNonce,
    FeeSchedule,
    InjectedOutput,
)
from satsgo.wallet.base import Args, Result, WalletInterface


@dataclass
class HydratedAction:
    """An action ready for the wallet, with the fee outputs that were added to it."""

    args: Args
    injected: list[InjectedOutput] = field(default_factory=list)
    nonce: DerivationNonce | None = None

    @property
    def description(self) -> str | None:
        return self.args.get("description")

    def requested_satoshis(self) -> int:
        """Total satoshis of all outputs, injected ones included."""
        return sum(int(o.get("satoshis", 0)) for o in self.args.get("outputs") or [])


def _check_unique_scripts(caller_outputs: list[dict[str, Any]], injected: list[InjectedOutput]) -> None:
    """Fee outputs are matched by locking script later, so scripts must not repeat."""
    seen = {str(o.get("lockingScript", "")).lower() for o in caller_outputs}
    for output in injected:
        script = output.locking_script.lower()
        if script in seen:
            raise KeyDerivationFailure(
                f"Derived locking script for {output.output_description!r} duplicates another output"
            )
        seen.add(script)


class FeeOutputHydrator:
    """Builds the augmented output list for an action and submits it to the wallet."""

    def __init__(self, wallet: WalletInterface, schedule: FeeSchedule):
        self.wallet = wallet
        self.schedule = schedule
        self.deriver = KeyDeriver(wallet)

    async def hydrate(self, args: Args, origin: str | None = None) -> HydratedAction:
        """
        Append fee outputs to ``args["outputs"]`` in place.

        Keys are derived one recipient at a time; nothing is appended unless
        every derivation succeeded. Actions without outputs pay nobody and are
        passed through unchanged.

        Raises:
            KeyDerivationFailure: If any recipient key cannot be derived
        """
        outputs = args.get("outputs")
        if not outputs:
            logger.debug("Action has no outputs, no fees added")
            return HydratedAction(args)

        nonce = create_derivation_nonce()
        injected: list[InjectedOutput] = []

        for recipient, description in self.schedule.recipients():
            script = await self.deriver.locking_script(nonce, recipient.identity, origin)
            injected.append(
                InjectedOutput(
                    satoshis=recipient.amount,
                    locking_script=script,
                    custom_instructions=CustomInstructions(
                        derivation_prefix=nonce.prefix,
                        derivation_suffix=nonce.suffix,
                        payee=recipient,
                    ),
                    output_description=description,
                )
            )

        _check_unique_scripts(outputs, injected)
        outputs.extend(output.to_action_output() for output in injected)

        logger.debug(
            f"Added {len(injected)} fee outputs "
            f"({sum(o.satoshis for o in injected)} sats) to action"
        )
        return HydratedAction(args, injected, nonce)

    async def submit(self, action: HydratedAction, origin: str | None = None) -> Result:
        """Create the action in the wallet; the result is returned unchanged."""
        return await self.wallet.create_action(action.args, origin)
