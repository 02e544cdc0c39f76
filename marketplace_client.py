"""Marketplace HTTP API client; the credential comes from the session token store."""

import asyncio
import logging
import requests

from errors import AuthError, TransportError, error_for_response

logger = logging.getLogger(__name__)


class MemoryTokenStore:
    """Opaque credential holder; stands in for the browser's session storage."""

    def __init__(self):
        self._token = None

    def get(self):
        return self._token

    def set(self, token):
        self._token = token

    def clear(self):
        self._token = None


class MarketplaceClient:
    """Issues marketplace API calls without blocking the event loop.

    Each call runs ``requests`` in a worker thread and resumes the awaiting
    coroutine when the server answers. Responses are unwrapped to the
    ``Data`` object; failures are raised as BookingError subclasses.
    """

    def __init__(self, base_url, token_store=None, auth_scheme="", timeout=None):
        self.base_url = base_url.rstrip("/")
        self.token_store = token_store or MemoryTokenStore()
        self.auth_scheme = auth_scheme
        self.timeout = timeout
        self.on_auth_error = None

    def _headers(self, authenticated):
        headers = {"Content-Type": "application/json"}
        if authenticated:
            token = self.token_store.get()
            if token:
                headers["Authorization"] = (
                    f"{self.auth_scheme} {token}" if self.auth_scheme else token
                )
        return headers

    def _request(self, method, path, params=None, json_body=None, authenticated=True):
        """Blocking request; returns the response ``Data`` dict.

        No retries: repeating a call is always the user's decision.
        """
        url = f"{self.base_url}{path}"
        try:
            resp = requests.request(
                method, url,
                headers=self._headers(authenticated),
                params=params or {},
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Marketplace {method} {path} transport failure: {e}")
            raise TransportError(str(e)) from e

        body = {}
        if resp.content:
            try:
                body = resp.json()
            except ValueError:
                if resp.status_code < 400:
                    logger.error(f"Marketplace {method} {path}: undecodable body {resp.text[:500]}")
                    raise TransportError(f"undecodable response from {path}", resp.status_code)
                body = {}
        if not isinstance(body, dict):
            body = {}

        error_text = body.get("error") or ""
        if resp.status_code >= 400 or error_text:
            logger.error(f"Marketplace {resp.status_code} on {method} {path}: "
                         f"{error_text or resp.text[:500]}")
            raise error_for_response(resp.status_code, error_text)

        return body.get("Data") or {}

    async def _call(self, method, path, **kwargs):
        try:
            return await asyncio.to_thread(self._request, method, path, **kwargs)
        except AuthError as e:
            if self.on_auth_error is not None and kwargs.get("authenticated", True):
                self.on_auth_error(e)
            raise

    async def _get(self, path, params=None):
        return await self._call("GET", path, params=params)

    async def _post(self, path, json_body, authenticated=True):
        return await self._call("POST", path, json_body=json_body,
                                authenticated=authenticated)

    async def _delete(self, path, params=None):
        return await self._call("DELETE", path, params=params)

    # --- Account ---

    async def login(self, username, password):
        """POST /login; returns the session token."""
        data = await self._post("/login", {"Username": username, "Password": password},
                                authenticated=False)
        token = data.get("token")
        if not token:
            raise TransportError("login response carried no token")
        logger.info(f"Logged in as {username}")
        return token

    async def logout(self):
        """GET /logout"""
        await self._get("/logout")

    async def current_user(self):
        """GET /user; returns the user dict (Name, Username, ...)."""
        data = await self._get("/user")
        return data.get("user", {})

    # --- Catalog ---

    async def list_airports(self):
        """GET /airports"""
        data = await self._get("/airports")
        return data.get("Airports") or []

    async def search_route(self, src, dest):
        """GET /route?src=&dest=; returns raw flight dicts."""
        data = await self._get("/route", {"src": src, "dest": dest})
        return data.get("paths") or []

    async def get_flights(self, flight_ids):
        """POST /flights {FlightIds}"""
        data = await self._post("/flights", {"FlightIds": list(flight_ids)})
        return data.get("Flights") or []

    # --- Wishlist (cart) ---

    async def add_to_wishlist(self, flight_id):
        """POST /wishlist {FlightId}"""
        await self._post("/wishlist", {"FlightId": flight_id})

    async def list_wishlist(self):
        """GET /wishlist; returns raw flight dicts."""
        data = await self._get("/wishlist")
        return data.get("Wishes") or []

    async def remove_from_wishlist(self, flight_id):
        """DELETE /wishlist?id="""
        await self._delete("/wishlist", {"id": flight_id})

    # --- Tickets ---

    async def buy_ticket(self, flight_id):
        """POST /ticket {FlightId}; returns whatever Data the server sent."""
        return await self._post("/ticket", {"FlightId": flight_id})

    async def list_tickets(self):
        """GET /tickets"""
        data = await self._get("/tickets")
        return data.get("Tickets") or []

    async def cancel_ticket(self, ticket_id):
        """DELETE /ticket?id="""
        await self._delete("/ticket", {"id": ticket_id})
