"""
Configuration for the funded wallet wrapper.
"""

from __future__ import annotations

from enum import Enum

from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator

from satsgo.constants import (
    BASE_FEE_IDENTITY,
    BASE_FEE_SATS,
    COMPLETION_POLL_INTERVAL,
    COMPLETION_POLL_MAX_ATTEMPTS,
    EXTERNAL_BUY_URL,
    MESSAGE_RELAY_URL,
    PENDING_SIGNATURE_TTL,
    SHOP_URL,
    SUCCESS_PAUSE,
)
from satsgo.models import FeeRecipient, FeeSchedule, is_identity_key

# Operations that may degrade to a placeholder result when the wallet is unavailable
READ_ONLY_OPERATIONS = frozenset(
    {"list_outputs", "list_actions", "is_authenticated", "get_version", "get_height", "get_network"}
)


class WalletUnavailablePolicy(str, Enum):
    """What a call does after the wallet-unavailable notice has been shown."""

    RAISE = "raise"
    SUSPEND = "suspend"


class FundingMode(str, Enum):
    """How an insufficient-funds error is resolved."""

    SHOP = "shop"  # interactive purchase-service session
    EXTERNAL = "external"  # link to an external site, then ask to retry


class WalletUnavailableOptions(BaseModel):
    """Texts for the wallet-unavailable notice."""

    title: str = "This action requires a BRC-100 wallet"
    message: str = (
        "Connect a BRC-100 compatible wallet (MetaNet). Install one, then return to retry."
    )
    cta_text: str = "Get a Wallet"
    cta_href: str = "https://GetMetanet.com"


class FundingOptions(BaseModel):
    """Texts for the funding dialogue."""

    title: str = "Not enough sats"
    intro_text: str = "Top up your wallet, then click “Retry” to finish the action."
    post_purchase_text: str = (
        "If you’ve bought sats, click “Retry” to complete the action."
    )
    buy_sats_text: str = "Buy Sats"
    retry_text: str = "Retry"
    cancel_text: str = "Cancel Action"
    buy_sats_url: str = EXTERNAL_BUY_URL


class MonetizationOptions(BaseModel):
    """Optional developer fee added to every funded action."""

    developer_identity: str = ""
    developer_fee_sats: int = Field(default=0, ge=0)


class GoConfig(BaseModel):
    """Configuration for FundedWallet."""

    # Presentation
    show_prompts: bool = True
    wallet_unavailable: WalletUnavailableOptions = Field(default_factory=WalletUnavailableOptions)
    funding: FundingOptions = Field(default_factory=FundingOptions)
    monetization: MonetizationOptions = Field(default_factory=MonetizationOptions)

    # Recovery policies
    wallet_unavailable_policy: WalletUnavailablePolicy = WalletUnavailablePolicy.RAISE
    funding_mode: FundingMode = FundingMode.SHOP
    read_only_fallbacks: set[str] = Field(
        default_factory=set,
        description="Operations that return a placeholder instead of failing when no wallet",
    )

    # Collaborator endpoints
    shop_url: str = SHOP_URL
    message_relay_url: str = MESSAGE_RELAY_URL

    # Funding session timing
    completion_poll_interval: float = Field(default=COMPLETION_POLL_INTERVAL, ge=0.0)
    completion_poll_max_attempts: int | None = Field(default=COMPLETION_POLL_MAX_ATTEMPTS, ge=1)
    success_pause: float = Field(default=SUCCESS_PAUSE, ge=0.0)

    # Deferred-signature bookkeeping
    pending_signature_ttl: float = Field(default=PENDING_SIGNATURE_TTL, gt=0.0)

    @field_validator("read_only_fallbacks")
    @classmethod
    def validate_fallbacks(cls, v: set[str]) -> set[str]:
        unknown = v - READ_ONLY_OPERATIONS
        if unknown:
            raise ValueError(f"Not read-only operations: {', '.join(sorted(unknown))}")
        return v

    @model_validator(mode="after")
    def check_monetization(self) -> GoConfig:
        """Warn when a developer fee is configured but cannot be applied."""
        m = self.monetization
        if m.developer_identity and not is_identity_key(m.developer_identity):
            logger.warning("Developer identity is not a 66-character hex key, fee disabled")
        elif m.developer_identity and m.developer_fee_sats <= 0:
            logger.warning("Developer identity set without a positive fee, fee disabled")
        return self

    def developer_recipient(self) -> FeeRecipient | None:
        m = self.monetization
        if is_identity_key(m.developer_identity) and m.developer_fee_sats > 0:
            return FeeRecipient(amount=m.developer_fee_sats, identity=m.developer_identity)
        return None

    def fee_schedule(self) -> FeeSchedule:
        """Recipients injected into every funded action."""
        return FeeSchedule(
            base=FeeRecipient(amount=BASE_FEE_SATS, identity=BASE_FEE_IDENTITY),
            developer=self.developer_recipient(),
        )
