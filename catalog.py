"""
Catalog Cache - airports and route search results for the current session.

Only the most recent search result is kept. Searches are tagged with a
request sequence so a slow earlier response never replaces the results
of a later request.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from errors import RequestCancelled, ValidationError
from models import Airport, Flight, parse_flights, parse_items

logger = logging.getLogger(__name__)

# Select-box placeholders used by the storefronts before a city is picked
UNSELECTED = frozenset({"", "Origem", "Destino", "unselected"})


def is_unselected(city) -> bool:
    return city is None or str(city).strip() in UNSELECTED


class RequestSequence:
    """Monotonic tags for last-request-wins reads."""

    def __init__(self):
        self._issued = 0

    def next(self) -> int:
        self._issued += 1
        return self._issued

    def is_current(self, seq: int) -> bool:
        return seq == self._issued

    def invalidate(self) -> None:
        """Make every in-flight read stale (a local write happened)."""
        self._issued += 1


async def await_unless_cancelled(coro, cancel: Optional[asyncio.Event]):
    """Await coro, aborting with RequestCancelled once ``cancel`` is set."""
    if cancel is None:
        return await coro
    if cancel.is_set():
        coro.close()
        raise RequestCancelled("cancelled before start")

    request = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        request.cancel()
        raise
    finally:
        waiter.cancel()
    if request in done:
        return request.result()
    request.cancel()
    raise RequestCancelled("cancelled by caller")


class CatalogCache:
    """Airports and the latest route search, normalized to the canonical schema."""

    def __init__(self, api):
        self.api = api
        self.airports: Dict[str, Airport] = {}
        self.flights: List[Flight] = []
        self.last_query = None
        self._airport_seq = RequestSequence()
        self._search_seq = RequestSequence()
        self._seen: Dict[int, Flight] = {}

    async def load_airports(self, cancel: Optional[asyncio.Event] = None) -> List[Airport]:
        """Fetch every airport and replace the cached set wholesale."""
        seq = self._airport_seq.next()
        raw = await await_unless_cancelled(self.api.list_airports(), cancel)
        airports = parse_items(Airport, raw)
        if not self._airport_seq.is_current(seq):
            logger.debug(f"Discarding stale airport list #{seq}")
            return airports
        self.airports = {a.key: a for a in airports}
        logger.info(f"Loaded {len(airports)} airports")
        return airports

    async def search_routes(self, origin_city, dest_city,
                            cancel: Optional[asyncio.Event] = None) -> List[Flight]:
        """Search flights between two cities, keeping only sellable ones.

        Raises ValidationError without touching the network when either
        city is still unselected. On failure the previous results stay.
        """
        if is_unselected(origin_city) or is_unselected(dest_city):
            raise ValidationError("origin and destination must both be selected")

        seq = self._search_seq.next()
        raw = await await_unless_cancelled(self.api.search_route(origin_city, dest_city), cancel)
        flights = [f for f in parse_flights(raw) if f.sellable]

        for f in flights:
            self._seen[f.id] = f
        if not self._search_seq.is_current(seq):
            logger.debug(f"Discarding stale search #{seq} {origin_city}->{dest_city}")
            return flights

        self.flights = flights
        self.last_query = (origin_city, dest_city)
        logger.info(f"Search {origin_city}->{dest_city}: {len(flights)} sellable flights")
        return flights

    def find_flight(self, flight_id: int) -> Optional[Flight]:
        """Last known snapshot of a flight, from the current or an earlier search."""
        for f in self.flights:
            if f.id == flight_id:
                return f
        return self._seen.get(flight_id)

    def remember(self, flights: List[Flight]) -> None:
        for f in flights:
            self._seen[f.id] = f

    def airport_for_city(self, city_name) -> Optional[Airport]:
        for airport in self.airports.values():
            if airport.city.name == city_name:
                return airport
        return None

    def clear(self) -> None:
        self.airports = {}
        self.flights = []
        self.last_query = None
        self._seen = {}
        self._airport_seq.invalidate()
        self._search_seq.invalidate()
