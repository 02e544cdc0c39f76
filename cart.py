"""
Cart (Hold) Manager - the session's wishlist of held seats.

At most one Hold exists per flight. Every operation on a flight's Hold
runs under that flight's lock, so add/remove/purchase for the same flight
never interleave; different flights proceed independently. Concurrent
``add_hold`` calls for one flight share a single remote call.
"""

import asyncio
import itertools
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import config
from errors import BookingError, NotFoundError, ValidationError
from models import COUNTED_STATES, Flight, Hold, HoldState, HoldView, parse_flights

logger = logging.getLogger(__name__)


class CartManager:
    """Owns the Hold set. Other components go through these methods."""

    def __init__(self, api, catalog, leaked_retries=None):
        self.api = api
        self.catalog = catalog
        self.leaked_retries = (config.LEAKED_HOLD_RETRIES
                               if leaked_retries is None else leaked_retries)
        self._holds: Dict[int, Hold] = {}
        self._snapshots: Dict[int, Flight] = {}
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._adding: Dict[int, asyncio.Future] = {}
        self._leaked: Dict[int, int] = {}
        self._sequence = itertools.count(1)

    # --- Operations ---

    async def add_hold(self, flight_id: int) -> Hold:
        """Hold a seat on a flight; idempotent per flight.

        A call made while another add for the same flight is in flight
        attaches to it instead of issuing a second remote call. A call made
        while the flight is being purchased waits for the purchase, then
        holds the flight again if the purchase retired its hold.
        """
        inflight = self._adding.get(flight_id)
        if inflight is not None:
            return await asyncio.shield(inflight)

        hold = self._holds.get(flight_id)
        if hold is not None and self._settled(hold):
            return hold

        task = asyncio.ensure_future(self._add(flight_id))
        self._adding[flight_id] = task
        task.add_done_callback(lambda t: self._adding.pop(flight_id, None))
        # Shielded so an impatient caller cannot abort the shared remote call
        return await asyncio.shield(task)

    async def _add(self, flight_id: int) -> Hold:
        async with self._locks[flight_id]:
            hold = self._holds.get(flight_id)
            if hold is not None and self._settled(hold):
                return hold
            if hold is None:
                hold = Hold(flight_id=flight_id, position=next(self._sequence))
                self._holds[flight_id] = hold
                self._capture_snapshot(flight_id)
                if self._leaked.pop(flight_id, None) is not None:
                    logger.info(f"Flight {flight_id} held again; dropping leaked-hold note")
            logger.debug(f"Hold {flight_id}: {hold.state.value}, adding to wishlist")

            try:
                await self.api.add_to_wishlist(flight_id)
            except BookingError as e:
                hold.advance(HoldState.FAILED, e)
                logger.error(f"Add to wishlist failed for flight {flight_id}: {e}")
                raise
            hold.advance(HoldState.CONFIRMED_REMOTE)
            logger.debug(f"Hold {flight_id}: confirmed remotely")
            return hold

    async def remove_hold(self, flight_id: int) -> None:
        """Remove a hold; the local entry goes only after the server agrees."""
        async with self._locks[flight_id]:
            hold = self._holds.get(flight_id)
            if hold is None:
                raise NotFoundError(f"no hold for flight {flight_id}")
            await self.api.remove_from_wishlist(flight_id)
            self._drop(flight_id)
            logger.debug(f"Hold {flight_id}: removed")

    def list_holds(self) -> List[HoldView]:
        """Holds in insertion order with the last known flight details."""
        views = []
        for hold in sorted(self._holds.values(), key=lambda h: h.position):
            views.append(HoldView(hold, self._capture_snapshot(hold.flight_id)))
        return views

    def count(self) -> int:
        """Cart badge value, always derived from the Hold set."""
        return sum(1 for h in self._holds.values() if h.state in COUNTED_STATES)

    def get(self, flight_id: int) -> Optional[Hold]:
        return self._holds.get(flight_id)

    def snapshot(self, flight_id: int) -> Optional[Flight]:
        return self._capture_snapshot(flight_id)

    # --- Purchase hooks (used by PurchaseOrchestrator) ---

    @asynccontextmanager
    async def exclusive(self, flight_id: int):
        """Serialize a multi-step operation with every other op on this flight."""
        async with self._locks[flight_id]:
            yield

    def require_hold(self, flight_id: int) -> None:
        """Fail before any network call when there is nothing to buy.

        A hold that is still being added or purchased passes; the final
        check happens under the flight's lock in ``begin_purchase``.
        """
        if flight_id not in self._holds and flight_id not in self._adding:
            raise ValidationError(f"flight {flight_id} is not in the cart")

    def begin_purchase(self, flight_id: int) -> Hold:
        hold = self._holds.get(flight_id)
        if hold is None:
            raise ValidationError(f"flight {flight_id} is not in the cart")
        if not hold.purchasable:
            raise ValidationError(
                f"flight {flight_id} cannot be purchased while {hold.state.value}"
            )
        hold.advance(HoldState.PURCHASING)
        return hold

    def fail_purchase(self, flight_id: int, error: Exception) -> None:
        self._holds[flight_id].advance(HoldState.FAILED, error)

    def retire(self, flight_id: int) -> None:
        """Drop a purchased hold from the visible cart."""
        self._drop(flight_id)

    def note_leaked(self, flight_id: int) -> None:
        """Remember a remote hold the server still has after a purchase."""
        self._leaked[flight_id] = 0

    @property
    def leaked(self) -> List[int]:
        return list(self._leaked)

    async def sweep_leaked(self) -> None:
        """Best-effort removal of leaked remote holds, bounded per flight.

        Each removal runs under the flight's lock, so a concurrent
        ``add_hold`` for the same flight either lands after it or makes
        it moot.
        """
        for flight_id in list(self._leaked):
            async with self._locks[flight_id]:
                attempts = self._leaked.get(flight_id)
                if attempts is None or flight_id in self._holds:
                    continue
                if attempts >= self.leaked_retries:
                    logger.warning(f"Giving up on leaked remote hold for flight {flight_id}")
                    self._leaked.pop(flight_id, None)
                    continue
                self._leaked[flight_id] = attempts + 1
                try:
                    await self.api.remove_from_wishlist(flight_id)
                except BookingError as e:
                    logger.warning(f"Leaked hold {flight_id} still present "
                                   f"(attempt {attempts + 1}): {e}")
                    continue
                self._leaked.pop(flight_id, None)
                logger.info(f"Cleaned up leaked remote hold for flight {flight_id}")

    # --- Server sync ---

    async def sync(self) -> List[HoldView]:
        """Mirror the server-side wishlist into confirmed holds."""
        flights = parse_flights(await self.api.list_wishlist())
        self.catalog.remember(flights)
        for flight in flights:
            self._snapshots[flight.id] = flight
            if flight.id in self._holds:
                continue
            hold = Hold(flight_id=flight.id, position=next(self._sequence))
            hold.advance(HoldState.CONFIRMED_REMOTE)
            self._holds[flight.id] = hold
        logger.info(f"Cart synced: {len(flights)} remote holds")
        return self.list_holds()

    async def refresh_snapshots(self) -> List[HoldView]:
        """Fetch details for holds that are listed by identifier only."""
        missing = [fid for fid in self._holds if self._capture_snapshot(fid) is None]
        if missing:
            flights = parse_flights(await self.api.get_flights(missing))
            self.catalog.remember(flights)
            for flight in flights:
                self._snapshots[flight.id] = flight
        return self.list_holds()

    def clear(self) -> None:
        self._holds.clear()
        self._snapshots.clear()
        self._leaked.clear()

    # --- Internals ---

    def _capture_snapshot(self, flight_id: int) -> Optional[Flight]:
        flight = self.catalog.find_flight(flight_id)
        if flight is not None:
            self._snapshots[flight_id] = flight
        return self._snapshots.get(flight_id)

    def _drop(self, flight_id: int) -> None:
        self._holds.pop(flight_id, None)
        self._snapshots.pop(flight_id, None)

    @staticmethod
    def _settled(hold: Hold) -> bool:
        """True when add_hold has nothing left to do for this hold."""
        if hold.state is HoldState.PURCHASING:
            return False
        return hold.remote_confirmed or hold.state is not HoldState.FAILED
