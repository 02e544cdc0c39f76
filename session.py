"""
Session - one authenticated user's catalog, cart and tickets.

Created empty; ``login`` builds the components and loads the
authoritative state from the server, ``logout`` (or any AuthError from
the API) discards everything.
"""

import logging

from cart import CartManager
from catalog import CatalogCache
from errors import AuthError, BookingError
from ledger import TicketLedger
from purchase import PurchaseOrchestrator
from tenants import TICKET_CANCELLATION, get_tenant

logger = logging.getLogger(__name__)


class Session:
    """Explicit session context handed to whatever drives the UI."""

    def __init__(self, api, tenant="giro"):
        self.api = api
        self.tenant = get_tenant(tenant)
        self.user = None
        self._catalog = None
        self._cart = None
        self._orchestrator = None
        self._ledger = None
        api.on_auth_error = self._on_auth_error

    @property
    def active(self) -> bool:
        return self._cart is not None

    async def login(self, username, password):
        """Authenticate, then load user, tickets and the remote cart."""
        if self.active:
            self.teardown()
        token = await self.api.login(username, password)
        self.api.token_store.set(token)

        self._catalog = CatalogCache(self.api)
        self._cart = CartManager(self.api, self._catalog)
        self._ledger = TicketLedger(
            self.api, allow_cancellation=self.tenant.enabled(TICKET_CANCELLATION))
        self._orchestrator = PurchaseOrchestrator(self.api, self._cart, self._ledger)

        try:
            self.user = await self.api.current_user()
            await self._ledger.load_tickets()
            await self._cart.sync()
        except BaseException:
            # Half-loaded sessions are never left active
            self.teardown()
            raise
        logger.info(f"Session started for {self.user.get('Name', username)}")
        return self.user

    async def logout(self):
        """End the session locally even when the server call fails."""
        try:
            if self.active:
                await self.api.logout()
        except BookingError as e:
            logger.error(f"Logout call failed: {e}")
        finally:
            self.teardown()

    def teardown(self):
        if self._cart is not None:
            self._cart.clear()
            self._ledger.clear()
            self._catalog.clear()
        self._catalog = self._cart = self._orchestrator = self._ledger = None
        self.user = None
        self.api.token_store.clear()
        logger.info("Session torn down")

    def _on_auth_error(self, error):
        if self.active:
            logger.warning(f"Credential rejected ({error}); forcing re-login")
            self.teardown()

    def _require(self, component):
        if component is None:
            raise AuthError("not logged in")
        return component

    @property
    def catalog(self) -> CatalogCache:
        return self._require(self._catalog)

    @property
    def cart(self) -> CartManager:
        return self._require(self._cart)

    @property
    def orchestrator(self) -> PurchaseOrchestrator:
        return self._require(self._orchestrator)

    @property
    def ledger(self) -> TicketLedger:
        return self._require(self._ledger)

    async def refresh(self):
        """Re-fetch tickets and sweep leaked holds."""
        await self.cart.sweep_leaked()
        return await self.ledger.load_tickets()

    def cart_count(self) -> int:
        return self.cart.count() if self.active else 0

    def summary(self):
        """Small dict for headers and badges."""
        summary = {
            "tenant": self.tenant.company_label,
            "color_theme": self.tenant.color_theme,
            "logged_in": self.active,
            "cart_count": self.cart_count(),
        }
        if not self.active:
            return summary
        if self.user:
            summary["user"] = self.user.get("Name") or self.user.get("Username")
        summary["ticket_count"] = self._ledger.count()
        summary["search_results"] = len(self._catalog.flights)
        if self._catalog.last_query:
            summary["last_query"] = "->".join(self._catalog.last_query)
        if self._cart.leaked:
            summary["leaked_holds"] = self._cart.leaked
        return summary
