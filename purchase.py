"""Purchase Orchestrator - turns a held flight into a ticket."""

import asyncio
import logging

from errors import BookingError
from models import Ticket, parse_flights

logger = logging.getLogger(__name__)


class PurchaseOrchestrator:
    """
    Buys a held flight and retires its hold.

    A purchase of a flight that is not in the cart fails before
    any network call. Leaked remote holds are swept next, then the steps
    run under the flight's cart lock:

    1. ``POST /ticket``. On failure the hold goes to Failed and the error
       propagates; no ticket is created.
    2. The hold leaves the visible cart and the ticket is recorded in the
       ledger, so the user cannot buy the same hold twice.
    3. ``DELETE /wishlist`` for the same flight. A failure here does not
       undo the purchase; the remote hold is noted as leaked and swept
       lazily by the cart.

    Nothing is retried automatically.
    """

    def __init__(self, api, cart, ledger):
        self.api = api
        self.cart = cart
        self.ledger = ledger

    async def purchase(self, flight_id: int) -> Ticket:
        self.cart.require_hold(flight_id)
        await self.cart.sweep_leaked()

        async with self.cart.exclusive(flight_id):
            self.cart.begin_purchase(flight_id)
            try:
                flight = self.cart.snapshot(flight_id) or await self._fetch_flight(flight_id)
                payload = await self.api.buy_ticket(flight_id)
            except BookingError as e:
                self.cart.fail_purchase(flight_id, e)
                logger.error(f"Buying flight {flight_id} failed: {e}")
                raise
            except asyncio.CancelledError as e:
                self.cart.fail_purchase(flight_id, e)
                raise

            self.cart.retire(flight_id)
            ticket = Ticket.from_purchase(flight_id, payload, flight)
            self.ledger.record(ticket)
            logger.info(f"Bought flight {flight_id} ({ticket.route_label})")

            try:
                await self.api.remove_from_wishlist(flight_id)
            except BookingError as e:
                logger.warning(f"Leaked remote hold for flight {flight_id} after purchase: {e}")
                self.cart.note_leaked(flight_id)

        return ticket

    async def _fetch_flight(self, flight_id):
        """Flight details for the ticket when no snapshot is known."""
        try:
            flights = parse_flights(await self.api.get_flights([flight_id]))
        except BookingError as e:
            logger.warning(f"No details for flight {flight_id}: {e}")
            return None
        return next((f for f in flights if f.id == flight_id), None)
