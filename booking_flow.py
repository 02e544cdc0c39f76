#!/usr/bin/env python3
"""End-to-end booking walkthrough: login → search → hold → buy → cancel → logout.

Runs against the marketplace at API_BASE_URL, or the in-process mock when
MOCK_API=true (or --mock).
"""

import argparse
import asyncio
import logging
import sys

import config
from errors import BookingError, user_message
from marketplace_client import MarketplaceClient
from mock_marketplace import MockMarketplace
from session import Session

logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

ORIGIN = "São Paulo"
DESTINATION = "Rio de Janeiro"


def divider(title):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def build_api(use_mock):
    if use_mock:
        return MockMarketplace(seed=7)
    return MarketplaceClient(
        config.API_BASE_URL,
        auth_scheme=config.AUTH_SCHEME,
        timeout=config.REQUEST_TIMEOUT,
    )


async def run(args):
    session = Session(build_api(args.mock or config.MOCK_API), tenant=config.TENANT)

    # ── Step 1: Login ───────────────────────────────────────
    divider("STEP 1: Login")
    user = await session.login(args.username, args.password)
    print(f"  Welcome, {user.get('Name', args.username)} ({session.tenant.company_label})")
    print(f"  Tickets on file: {session.ledger.count()}, cart: {session.cart_count()}")

    try:
        # ── Step 2: Airports + route search ─────────────────
        divider("STEP 2: Route Search")
        airports = await session.catalog.load_airports()
        print(f"  {len(airports)} airports")
        flights = await session.catalog.search_routes(args.origin, args.destination)
        if not flights:
            print(f"FAIL: no sellable flights {args.origin} -> {args.destination}")
            return 1
        for f in flights:
            print(f"  #{f.id} {f.company.value:7s} R${f.price},00  seats: {f.seats}")
        best = min(flights, key=lambda f: f.price)

        # ── Step 3: Hold ────────────────────────────────────
        divider("STEP 3: Add to Cart")
        hold = await session.cart.add_hold(best.id)
        print(f"  Hold #{hold.position} flight {hold.flight_id}: {hold.state.value}")
        print(f"  Cart count: {session.cart_count()}")

        # ── Step 4: Purchase ────────────────────────────────
        divider("STEP 4: Purchase")
        ticket = await session.orchestrator.purchase(best.id)
        print(f"  Ticket {ticket.id}: {ticket.route_label} ({ticket.company.value})")
        print(f"  Cart count: {session.cart_count()}")

        # ── Step 5: Tickets + cancel ────────────────────────
        divider("STEP 5: Tickets")
        for t in await session.ledger.load_tickets():
            print(f"  {t.id}: {t.route_label}")
        if args.cancel and ticket.id is not None:
            await session.ledger.cancel(ticket.id)
            print(f"  Cancelled ticket {ticket.id}; {session.ledger.count()} left")
    finally:
        divider("DONE")
        print(f"  {session.summary()}")
        await session.logout()
    return 0


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--username", default="alice")
    parser.add_argument("--password", default="alice123")
    parser.add_argument("--origin", default=ORIGIN)
    parser.add_argument("--destination", default=DESTINATION)
    parser.add_argument("--cancel", action="store_true", help="cancel the ticket afterwards")
    parser.add_argument("--mock", action="store_true", help="use the in-process marketplace")
    args = parser.parse_args()

    config.validate()
    try:
        sys.exit(asyncio.run(run(args)))
    except BookingError as e:
        logger.error(f"{e.kind}: {e}")
        print(f"\nFAIL: {user_message(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
