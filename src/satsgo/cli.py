"""
Command-line interface for the satoshi purchase service.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Annotated

import typer
from loguru import logger

from satsgo.constants import DEFAULT_WALLET_URL, SHOP_URL, USD_PURCHASE_OPTIONS
from satsgo.errors import PurchaseServiceError, WalletError
from satsgo.funding import purchase_options
from satsgo.models import Quote
from satsgo.shop import HTTPPurchaseService
from satsgo.wallet.http import HTTPWalletClient

app = typer.Typer(
    name="satsgo",
    help="satsgo - Buy satoshis for a BRC-100 wallet",
    add_completion=False,
)


def setup_logging(level: str) -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def format_quote_output(quote: Quote, needed: int = 0) -> str:
    lines = [
        "=== Satoshi Purchase Quote ===",
        f"Rate: {quote.rate:,.0f} sats/USD",
        f"Limits: {quote.minimum_satoshis:,} - {quote.maximum_satoshis:,} sats",
    ]
    minutes = quote.valid_minutes()
    if minutes is not None:
        lines.append(f"Valid for: {minutes} min")

    options = purchase_options(quote, needed, USD_PURCHASE_OPTIONS)
    if options:
        lines.append("Options:")
        lines.extend(f"  ${o.usd} -> {o.satoshis:,} sats" for o in options)
    else:
        lines.append("Options: none available")

    if quote.pending_references:
        lines.append(f"Pending purchases: {len(quote.pending_references)}")
    lines.append("==============================")
    return "\n".join(lines)


@app.command()
def quote(
    needed: Annotated[
        int, typer.Option("--needed", "-n", help="Satoshis needed, trims smaller options")
    ] = 0,
    wallet_url: Annotated[
        str, typer.Option("--wallet-url", envvar="SATSGO_WALLET_URL", help="Local wallet URL")
    ] = DEFAULT_WALLET_URL,
    shop_url: Annotated[
        str, typer.Option("--shop-url", envvar="SATSGO_SHOP_URL", help="Purchase service URL")
    ] = SHOP_URL,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    log_level: Annotated[
        str, typer.Option("--log-level", "-l", help="Log level")
    ] = "WARNING",
) -> None:
    """Fetch a purchase quote for this wallet."""
    setup_logging(log_level)
    result = asyncio.run(_run_quote(wallet_url, shop_url))

    if as_json:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    else:
        print(format_quote_output(result, needed))


async def _run_quote(wallet_url: str, shop_url: str) -> Quote:
    wallet = HTTPWalletClient(base_url=wallet_url)
    shop = HTTPPurchaseService(wallet, shop_url)
    try:
        return await shop.start_shopping()
    except (PurchaseServiceError, WalletError) as e:
        logger.error(f"Could not get a quote: {e}")
        raise typer.Exit(1)
    finally:
        await shop.close()
        await wallet.close()


@app.command()
def recover(
    wallet_url: Annotated[
        str, typer.Option("--wallet-url", envvar="SATSGO_WALLET_URL", help="Local wallet URL")
    ] = DEFAULT_WALLET_URL,
    shop_url: Annotated[
        str, typer.Option("--shop-url", envvar="SATSGO_SHOP_URL", help="Purchase service URL")
    ] = SHOP_URL,
    log_level: Annotated[
        str, typer.Option("--log-level", "-l", help="Log level")
    ] = "INFO",
) -> None:
    """Complete purchases that were paid but never delivered."""
    setup_logging(log_level)
    delivered, still_pending = asyncio.run(_run_recover(wallet_url, shop_url))

    print(f"Delivered: {delivered:,} sats")
    if still_pending:
        print(f"Still pending: {', '.join(still_pending)}")
        raise typer.Exit(1)


async def _run_recover(wallet_url: str, shop_url: str) -> tuple[int, list[str]]:
    """Returns the satoshis delivered and the references still pending."""
    wallet = HTTPWalletClient(base_url=wallet_url)
    shop = HTTPPurchaseService(wallet, shop_url)
    delivered = 0
    still_pending: list[str] = []
    try:
        try:
            current = await shop.start_shopping()
        except (PurchaseServiceError, WalletError) as e:
            logger.error(f"Could not reach the purchase service: {e}")
            raise typer.Exit(1)

        if not current.pending_references:
            logger.info("No pending purchases")

        for reference in current.pending_references:
            try:
                result = await shop.complete_buy(reference)
            except PurchaseServiceError as e:
                logger.warning(f"Purchase {reference} could not be completed: {e}")
                still_pending.append(reference)
                continue

            if result.acknowledged and result.satoshis:
                logger.info(f"Purchase {reference} delivered {result.satoshis:,} sats")
                delivered += result.satoshis
            else:
                still_pending.append(reference)
    finally:
        await shop.close()
        await wallet.close()

    return delivered, still_pending


def main() -> None:
    app()


if __name__ == "__main__":
    main()
