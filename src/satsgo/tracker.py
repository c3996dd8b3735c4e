"""
Bookkeeping for fee outputs of actions whose signature is deferred.

When the wallet answers ``create_action`` with a signable transaction, the
fee recipients cannot be notified yet: there is no final transaction to
point them at. The tracker remembers each fee output by locking script,
grouped by the signable transaction's reference, until ``sign_action``
produces the final transaction.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable

from loguru import logger

from satsgo.constants import PENDING_SIGNATURE_TTL
from satsgo.models import InjectedOutput, PaymentToken, PendingSignatureEntry, TokenInstructions
from satsgo.transaction import parse_finalized_transaction


def entries_for(injected: Iterable[InjectedOutput]) -> dict[str, PendingSignatureEntry]:
    """Pending entries keyed by lowercase locking-script hex."""
    return {
        output.locking_script.lower(): PendingSignatureEntry(
            identity=output.recipient.identity,
            derivation_prefix=output.custom_instructions.derivation_prefix,
            derivation_suffix=output.custom_instructions.derivation_suffix,
        )
        for output in injected
    }


def match_outputs(
    entries: dict[str, PendingSignatureEntry], tx_data: bytes | list[int]
) -> list[tuple[str, PaymentToken]]:
    """
    Build one payment token per fee output found in a finalized transaction.

    Matched entries are removed from ``entries``, so an entry yields at most
    one token even if its script appears twice. Outputs without an entry
    belong to the caller and are skipped.

    Returns:
        (recipient identity, token) pairs in output order
    """
    tx_bytes = bytes(tx_data)
    tx = parse_finalized_transaction(tx_bytes)
    transaction = list(tx_bytes)

    tokens: list[tuple[str, PaymentToken]] = []
    for index, output in enumerate(tx.outputs):
        entry = entries.pop(output.script.hex(), None)
        if entry is None:
            continue
        token = PaymentToken(
            custom_instructions=TokenInstructions(
                derivation_prefix=entry.derivation_prefix,
                derivation_suffix=entry.derivation_suffix,
            ),
            transaction=transaction,
            amount=output.value,
            output_index=index,
        )
        tokens.append((entry.identity, token))
    return tokens


class PendingSignatureTracker:
    """Fee outputs awaiting a signature, scoped per signable reference."""

    def __init__(
        self,
        ttl: float = PENDING_SIGNATURE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._pending: dict[str, dict[str, PendingSignatureEntry]] = {}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._pending.values())

    def __contains__(self, reference: object) -> bool:
        return reference in self._pending

    def record(self, reference: str, injected: Iterable[InjectedOutput]) -> None:
        """Remember the fee outputs of a signable action."""
        self.purge_expired()
        entries = entries_for(injected)
        if not entries:
            return
        now = self._clock()
        for entry in entries.values():
            entry.created_at = now
        self._pending.setdefault(reference, {}).update(entries)
        logger.debug(f"Tracking {len(entries)} fee outputs for signable action {reference}")

    def resolve(self, reference: str, tx_data: bytes | list[int]) -> list[tuple[str, PaymentToken]]:
        """
        Match a finalized transaction against the entries of ``reference``.

        Returns the payment tokens to send. Matched entries are deleted.
        """
        self.purge_expired()
        entries = self._pending.get(reference)
        if not entries:
            return []

        tokens = match_outputs(entries, tx_data)
        if entries:
            logger.warning(
                f"{len(entries)} fee outputs of action {reference} not found in signed transaction"
            )
        else:
            del self._pending[reference]
        return tokens

    def entries(self, reference: str) -> dict[str, PendingSignatureEntry]:
        """Copy of the pending entries of a reference."""
        return dict(self._pending.get(reference, {}))

    def discard(self, reference: str) -> None:
        """Forget a flow, e.g. after its action was aborted."""
        if self._pending.pop(reference, None) is not None:
            logger.debug(f"Discarded pending fee outputs for action {reference}")

    def purge_expired(self) -> int:
        """Drop entries older than the TTL; returns how many were dropped."""
        cutoff = self._clock() - self.ttl
        dropped = 0
        for reference in list(self._pending):
            entries = self._pending[reference]
            for script in [s for s, e in entries.items() if e.created_at < cutoff]:
                del entries[script]
                dropped += 1
            if not entries:
                del self._pending[reference]
        if dropped:
            logger.info(f"Dropped {dropped} abandoned fee outputs awaiting signature")
        return dropped
