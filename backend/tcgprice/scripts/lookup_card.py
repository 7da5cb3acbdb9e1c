#!/usr/bin/env python3
"""
Look up pricing for a single card from the command line.

Prints the converted pricing bundle as JSON on stdout; logs go to stderr.

Usage:
    python -m tcgprice.scripts.lookup_card "Charizard VMAX" --number 074 --set "Darkness Ablaze"

    # Catalog card id, Japanese catalog
    python -m tcgprice.scripts.lookup_card "Pikachu" --card-id swsh12pt5-160 --lang ja

    # Offline, with deterministic mock prices
    python -m tcgprice.scripts.lookup_card "Charizard VMAX" --mock
"""
import asyncio
import json
import sys

import structlog

from tcgprice.core.config import settings
from tcgprice.core.logging import setup_logging
from tcgprice.services.ingestion.base import CardDescriptor
from tcgprice.services.ingestion.registry import get_adapter
from tcgprice.services.pricing.aggregator import PricingAggregator
from tcgprice.services.pricing.currency import CurrencyConverter

logger = structlog.get_logger()


def build_aggregator(mock: bool = False) -> PricingAggregator:
    """Aggregator wired to the real sources, or to a single mock source."""
    if not mock:
        return PricingAggregator.from_settings(settings)

    # No exchange-rate providers: the fallback rate is used as-is.
    converter = CurrencyConverter.from_settings(settings)
    converter.providers = []
    return PricingAggregator(
        market=get_adapter("mock"),
        converter=converter,
        config=settings,
    )


async def lookup(args) -> dict:
    aggregator = build_aggregator(mock=args.mock)
    try:
        descriptor = CardDescriptor(
            name=args.title,
            number=args.number,
            set_name=args.set,
            language=aggregator.check_language(args.lang),
            card_id=args.card_id,
        )
        return await aggregator.resolve_priced_card(descriptor)
    finally:
        await aggregator.close()


async def main() -> int:
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Look up card prices across all sources")
    parser.add_argument("title", help="Card title, e.g. 'Charizard VMAX'")
    parser.add_argument("--number", default=None, help="Collector number, e.g. 074 or 074/189")
    parser.add_argument("--set", default=None, help="Set name, e.g. 'Darkness Ablaze'")
    parser.add_argument("--card-id", default=None, help="Catalog card id, e.g. swsh12pt5-160")
    parser.add_argument("--lang", default="en", help="Catalog language (default: en)")
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the deterministic mock source instead of the real APIs",
    )
    parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")

    args = parser.parse_args()
    setup_logging(stream=sys.stderr)

    try:
        result = await lookup(args)
    except ValueError as e:
        logger.error("Lookup failed", error=str(e))
        return 2

    print(json.dumps(result, indent=args.indent, ensure_ascii=False))
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
