"""Mock Marketplace - drop-in replacement for MarketplaceClient.

Keeps airports, flights, wishlists and tickets in memory so development
and testing never need a running marketplace server. Payload shapes match
the servers' JSON (``Data`` contents, capitalized field names), and
failures are raised exactly as the HTTP client raises them.

Test hooks: ``fail_next`` queues an error for an operation, ``gate``
queues an event the next call of an operation waits on, and ``calls``
records every call in order.
"""

import asyncio
import itertools
import math
import random
from collections import defaultdict, deque

import config
from errors import AuthError, error_for_response
from marketplace_client import MemoryTokenStore

# ── Airport database ──────────────────────────────────────────────────

AIRPORTS = {
    "GRU": {"name": "Guarulhos International", "city": "São Paulo", "state": "SP", "lat": -23.4356, "lng": -46.4731},
    "GIG": {"name": "Galeão International", "city": "Rio de Janeiro", "state": "RJ", "lat": -22.8100, "lng": -43.2506},
    "BSB": {"name": "Brasília International", "city": "Brasília", "state": "DF", "lat": -15.8711, "lng": -47.9186},
    "SSA": {"name": "Salvador International", "city": "Salvador", "state": "BA", "lat": -12.9086, "lng": -38.3225},
    "REC": {"name": "Guararapes International", "city": "Recife", "state": "PE", "lat": -8.1265, "lng": -34.9236},
    "FOR": {"name": "Pinto Martins International", "city": "Fortaleza", "state": "CE", "lat": -3.7763, "lng": -38.5326},
    "POA": {"name": "Salgado Filho International", "city": "Porto Alegre", "state": "RS", "lat": -29.9939, "lng": -51.1711},
    "CWB": {"name": "Afonso Pena International", "city": "Curitiba", "state": "PR", "lat": -25.5285, "lng": -49.1758},
    "BEL": {"name": "Val de Cans International", "city": "Belém", "state": "PA", "lat": -1.3792, "lng": -48.4763},
    "MAO": {"name": "Eduardo Gomes International", "city": "Manaus", "state": "AM", "lat": -3.0386, "lng": -60.0497},
    "FEC": {"name": "João Durval Carneiro", "city": "Feira de Santana", "state": "BA", "lat": -12.2003, "lng": -38.9067},
}

COMPANIES = ["boreal", "giro", "rumos"]

DEFAULT_USERS = {
    "alice": {"Password": "alice123", "Name": "Alice Souza"},
    "bruno": {"Password": "bruno123", "Name": "Bruno Lima"},
}


# ── Utility functions ────────────────────────────────────────────────

def _haversine_km(lat1, lng1, lat2, lng2):
    """Great-circle distance in kilometres."""
    R = 6371
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlng / 2) ** 2)
    return R * 2 * math.asin(math.sqrt(a))


def _fare(distance_km, rng):
    """Whole-unit fare: base plus ~0.35 per km, +-15% noise."""
    return int((120 + distance_km * 0.35) * rng.uniform(0.85, 1.15))


def airport_record(code, city_key="Name"):
    """Wire shape of one airport; ``city_key`` picks the server's spelling."""
    info = AIRPORTS[code]
    return {
        "ID": code,
        "Name": info["name"],
        "City": {
            city_key: info["city"],
            "State": info["state"],
            "Country": "Brasil",
            "Latitude": info["lat"],
            "Longitude": info["lng"],
        },
    }


def flight_record(flight_id, origin, destination, seats, price, company="giro",
                  city_key="Name"):
    """Wire shape of one flight."""
    return {
        "ID": flight_id,
        "Company": company,
        "Price": price,
        "Seats": seats,
        "OriginAirport": airport_record(origin, city_key),
        "DestinationAirport": airport_record(destination, city_key),
    }


def generate_flights(seed=None, city_key="Name"):
    """One or two flights per ordered pair of airports, some sold out."""
    rng = random.Random(seed)
    ids = itertools.count(1)
    flights = []
    for origin, destination in itertools.permutations(AIRPORTS, 2):
        o, d = AIRPORTS[origin], AIRPORTS[destination]
        distance = _haversine_km(o["lat"], o["lng"], d["lat"], d["lng"])
        for _ in range(rng.randint(1, 2)):
            flights.append(flight_record(
                next(ids), origin, destination,
                seats=rng.choice([0, 1, 2, 3, 5, 8]),
                price=_fare(distance, rng),
                company=rng.choice(COMPANIES),
                city_key=city_key,
            ))
    return flights


# ── Mock API ─────────────────────────────────────────────────────────

class MockMarketplace:
    """In-memory marketplace with the MarketplaceClient interface."""

    def __init__(self, flights=None, users=None, city_key="Name", delays=None, seed=None):
        self.token_store = MemoryTokenStore()
        self.on_auth_error = None
        self.city_key = city_key
        self.delays = config.MOCK_DELAYS if delays is None else delays
        self.users = dict(DEFAULT_USERS if users is None else users)
        self.flights = {f["ID"]: f for f in (flights if flights is not None
                                              else generate_flights(seed, city_key))}
        self.sessions = {}
        self.wishlists = defaultdict(list)
        self.tickets = {}
        self.calls = []
        self._ticket_ids = itertools.count(1)
        self._tokens = itertools.count(1)
        self._failures = defaultdict(deque)
        self._gates = defaultdict(deque)

    # --- Test hooks ---

    def fail_next(self, operation, error):
        """The next call of ``operation`` raises ``error`` (a BookingError)."""
        self._failures[operation].append(error)

    def gate(self, operation):
        """The next call of ``operation`` waits until the returned event is set."""
        event = asyncio.Event()
        self._gates[operation].append(event)
        return event

    def count(self, operation):
        return sum(1 for op, _ in self.calls if op == operation)

    # --- Plumbing ---

    async def _maybe_delay(self):
        """Sleep for a random interval when delays are enabled."""
        if self.delays:
            await asyncio.sleep(random.uniform(0.1, 1.0))

    async def _enter(self, operation, *args, authenticated=True):
        self.calls.append((operation, args))
        await self._maybe_delay()
        if self._gates[operation]:
            await self._gates[operation].popleft().wait()
        try:
            if self._failures[operation]:
                raise self._failures[operation].popleft()
            if authenticated:
                return self._user()
        except AuthError as e:
            if authenticated and self.on_auth_error is not None:
                self.on_auth_error(e)
            raise
        return None

    def _user(self):
        username = self.sessions.get(self.token_store.get())
        if username is None:
            raise error_for_response(401, "not authorized")
        return username

    def _airports_for_city(self, city):
        return {code for code, info in AIRPORTS.items() if info["city"] == city}

    # --- Account ---

    async def login(self, username, password):
        await self._enter("login", username, authenticated=False)
        user = self.users.get(username)
        if user is None:
            raise error_for_response(401, "client not found")
        if user["Password"] != password:
            raise error_for_response(401, "invalid credentials")
        if username in self.sessions.values():
            raise error_for_response(401, "more than one user logged")
        token = f"tok-{next(self._tokens)}"
        self.sessions[token] = username
        return token

    async def logout(self):
        await self._enter("logout")
        self.sessions.pop(self.token_store.get(), None)

    async def current_user(self):
        username = await self._enter("current_user")
        return {"Name": self.users[username]["Name"], "Username": username}

    # --- Catalog ---

    async def list_airports(self):
        await self._enter("list_airports")
        return [airport_record(code, self.city_key) for code in AIRPORTS]

    async def search_route(self, src, dest):
        await self._enter("search_route", src, dest)
        sources = self._airports_for_city(src)
        targets = self._airports_for_city(dest)
        if not sources or not targets:
            raise error_for_response(400, "not valid city name")
        paths = [f for f in self.flights.values()
                 if f["OriginAirport"]["ID"] in sources
                 and f["DestinationAirport"]["ID"] in targets]
        if paths:
            # The servers append their cheapest path after the direct ones
            paths.append(min(paths, key=lambda f: f["Price"]))
        return [dict(f) for f in paths]

    async def get_flights(self, flight_ids):
        await self._enter("get_flights", *flight_ids)
        return [dict(self.flights[fid]) for fid in flight_ids if fid in self.flights]

    # --- Wishlist ---

    async def add_to_wishlist(self, flight_id):
        username = await self._enter("add_to_wishlist", flight_id)
        if flight_id not in self.flights:
            raise error_for_response(404, "flight not found")
        self.wishlists[username].append(flight_id)

    async def list_wishlist(self):
        username = await self._enter("list_wishlist")
        return [dict(self.flights[fid]) for fid in self.wishlists[username]]

    async def remove_from_wishlist(self, flight_id):
        username = await self._enter("remove_from_wishlist", flight_id)
        if flight_id in self.wishlists[username]:
            self.wishlists[username].remove(flight_id)

    # --- Tickets ---

    async def buy_ticket(self, flight_id):
        username = await self._enter("buy_ticket", flight_id)
        flight = self.flights.get(flight_id)
        if flight is None:
            raise error_for_response(404, "flight not found")
        if flight["Seats"] <= 0:
            raise error_for_response(406, "not available seats")
        flight["Seats"] -= 1
        ticket_id = next(self._ticket_ids)
        self.tickets[ticket_id] = {"owner": username, "flight_id": flight_id}
        return {"msg": "success", "Id": ticket_id}

    async def list_tickets(self):
        username = await self._enter("list_tickets")
        result = []
        for ticket_id, ticket in self.tickets.items():
            if ticket["owner"] != username:
                continue
            flight = self.flights[ticket["flight_id"]]
            result.append({
                "Id": ticket_id,
                "Src": flight["OriginAirport"]["City"],
                "Dest": flight["DestinationAirport"]["City"],
                "Seats": flight["Seats"],
                "Company": flight["Company"],
            })
        return result

    async def cancel_ticket(self, ticket_id):
        username = await self._enter("cancel_ticket", ticket_id)
        ticket = self.tickets.get(ticket_id)
        if ticket is None or ticket["owner"] != username:
            raise error_for_response(404, "ticket not found")
        self.flights[ticket["flight_id"]]["Seats"] += 1
        del self.tickets[ticket_id]
