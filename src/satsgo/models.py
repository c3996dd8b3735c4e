"""
Data models for fee outputs, payment tokens and purchase-service messages.

Field aliases follow the camelCase JSON shape used by the wallet, the purchase
service and the message relay, so models can be built from and dumped to
those payloads directly.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from satsgo.constants import (
    BASE_FEE_DESCRIPTION,
    DEVELOPER_FEE_DESCRIPTION,
    IDENTITY_KEY_LENGTH,
    PURCHASE_ACKNOWLEDGED,
)

_IDENTITY_RE = re.compile(rf"^[0-9a-fA-F]{{{IDENTITY_KEY_LENGTH}}}$")


def is_identity_key(value: str | None) -> bool:
    """True if value looks like a compressed public key in hex."""
    return bool(value) and _IDENTITY_RE.match(value) is not None


class FeeRecipient(BaseModel):
    """Who receives an injected fee output and how much."""

    amount: int = Field(..., gt=0, description="Fee in satoshis")
    identity: str = Field(..., description="Recipient identity key (66 hex chars)")

    model_config = ConfigDict(frozen=True)

    @field_validator("identity")
    @classmethod
    def validate_identity(cls, v: str) -> str:
        if not is_identity_key(v):
            raise ValueError(f"Identity must be {IDENTITY_KEY_LENGTH} hex characters")
        return v.lower()


@dataclass(frozen=True)
class FeeSchedule:
    """Recipients for one action: the fixed base recipient plus an optional developer."""

    base: FeeRecipient
    developer: FeeRecipient | None = None

    def recipients(self) -> list[tuple[FeeRecipient, str]]:
        """Recipients in injection order, paired with their output descriptions."""
        ordered: list[tuple[FeeRecipient, str]] = []
        if self.developer is not None:
            ordered.append((self.developer, DEVELOPER_FEE_DESCRIPTION))
        ordered.append((self.base, BASE_FEE_DESCRIPTION))
        return ordered


@dataclass(frozen=True)
class DerivationNonce:
    """Base64 prefix/suffix pair shared by every injected output of one action."""

    prefix: str
    suffix: str

    @property
    def key_id(self) -> str:
        return f"{self.prefix} {self.suffix}"


class CustomInstructions(BaseModel):
    derivation_prefix: str = Field(..., alias="derivationPrefix")
    derivation_suffix: str = Field(..., alias="derivationSuffix")
    payee: FeeRecipient

    model_config = ConfigDict(populate_by_name=True)


class InjectedOutput(BaseModel):
    """A fee output appended to the caller's action."""

    satoshis: int = Field(..., gt=0)
    locking_script: str = Field(..., alias="lockingScript")
    custom_instructions: CustomInstructions = Field(..., alias="customInstructions")
    output_description: str = Field(..., alias="outputDescription")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def recipient(self) -> FeeRecipient:
        return self.custom_instructions.payee

    def to_action_output(self) -> dict[str, Any]:
        """Wallet-shaped output; customInstructions travels as a JSON string."""
        return {
            "satoshis": self.satoshis,
            "lockingScript": self.locking_script,
            "customInstructions": json.dumps(
                self.custom_instructions.model_dump(by_alias=True), separators=(",", ":")
            ),
            "outputDescription": self.output_description,
        }


@dataclass
class PendingSignatureEntry:
    """What is remembered about an injected output while its action awaits signing."""

    identity: str
    derivation_prefix: str
    derivation_suffix: str
    created_at: float = field(default_factory=time.monotonic)


class TokenInstructions(BaseModel):
    derivation_prefix: str = Field(..., alias="derivationPrefix")
    derivation_suffix: str = Field(..., alias="derivationSuffix")

    model_config = ConfigDict(populate_by_name=True)


class PaymentToken(BaseModel):
    """
    Notification sent to a fee recipient once the paying transaction is final.

    Purely informational: it tells the recipient how to derive the key for
    ``output_index`` but carries no spending authority.
    """

    custom_instructions: TokenInstructions = Field(..., alias="customInstructions")
    transaction: list[int]
    amount: int = Field(..., ge=0)
    output_index: int = Field(..., ge=0, alias="outputIndex")

    model_config = ConfigDict(populate_by_name=True)

    def to_body(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), separators=(",", ":"))


class Quote(BaseModel):
    """Result of starting a purchase-service shopping session."""

    rate: float = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("satoshisPerUSD", "rate"),
        serialization_alias="satoshisPerUSD",
        description="sats per USD",
    )
    minimum_satoshis: int = Field(default=0, ge=0, alias="minimumSatoshis")
    maximum_satoshis: int = Field(default=0, ge=0, alias="maximumSatoshis")
    quote_id: str | None = Field(default=None, alias="quoteId")
    quote_valid_until: datetime | None = Field(default=None, alias="quoteValidUntil")
    pending_references: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("pendingTxs", "pendingReferences"),
        serialization_alias="pendingTxs",
    )

    model_config = ConfigDict(populate_by_name=True)

    def valid_minutes(self, now: datetime | None = None) -> int | None:
        """Whole minutes until the quote expires, or None if unknown."""
        if self.quote_valid_until is None:
            return None
        now = now or datetime.now(UTC)
        valid_until = self.quote_valid_until
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=UTC)
        return max(0, int((valid_until - now).total_seconds() // 60))


class PurchaseInitiation(BaseModel):
    reference: str = Field(..., min_length=1)
    payment_handle: str = Field(
        ..., validation_alias=AliasChoices("clientSecret", "paymentConfirmationHandle")
    )

    model_config = ConfigDict(populate_by_name=True)


class PurchaseCompletion(BaseModel):
    status: str = "pending"
    satoshis: int | None = Field(default=None, ge=0)

    @property
    def acknowledged(self) -> bool:
        return self.status in (PURCHASE_ACKNOWLEDGED, "acknowledged")


@dataclass(frozen=True)
class PurchaseOption:
    usd: int
    satoshis: int
