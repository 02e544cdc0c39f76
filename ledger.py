"""Ticket Ledger - the purchased tickets view and cancellation."""

import asyncio
import logging
from typing import List, Optional

from catalog import RequestSequence, await_unless_cancelled
from errors import NotFoundError, ValidationError
from models import Ticket, parse_items

logger = logging.getLogger(__name__)


class TicketLedger:
    """Owns the Ticket set. The server copy is authoritative."""

    def __init__(self, api, allow_cancellation=True):
        self.api = api
        self.allow_cancellation = allow_cancellation
        self._tickets: List[Ticket] = []
        self._sequence = RequestSequence()

    @property
    def tickets(self) -> List[Ticket]:
        return list(self._tickets)

    def count(self) -> int:
        return len(self._tickets)

    def get(self, ticket_id) -> Optional[Ticket]:
        return next((t for t in self._tickets if t.id == ticket_id), None)

    async def load_tickets(self, cancel: Optional[asyncio.Event] = None) -> List[Ticket]:
        """Replace the ledger with the server's tickets (last request wins)."""
        seq = self._sequence.next()
        raw = await await_unless_cancelled(self.api.list_tickets(), cancel)
        tickets = parse_items(Ticket, raw)
        if not self._sequence.is_current(seq):
            logger.debug(f"Discarding stale ticket list #{seq}")
            return tickets
        self._tickets = tickets
        logger.info(f"Loaded {len(tickets)} tickets")
        return self.tickets

    def record(self, ticket: Ticket) -> None:
        """Add a ticket produced by a successful purchase."""
        self._tickets.append(ticket)
        # A list fetched before this purchase must not drop it
        self._sequence.invalidate()

    async def cancel(self, ticket_id) -> None:
        """Cancel a ticket; the local entry goes only after the server agrees.

        A cancelled ticket's flight is never put back in the cart.
        """
        if not self.allow_cancellation:
            raise ValidationError("ticket cancellation is not available")
        if ticket_id is None:
            raise ValidationError("ticket has no server id yet; reload tickets first")
        if self.get(ticket_id) is None:
            raise NotFoundError(f"ticket {ticket_id} not found")

        await self.api.cancel_ticket(ticket_id)
        self._tickets = [t for t in self._tickets if t.id != ticket_id]
        self._sequence.invalidate()
        logger.info(f"Cancelled ticket {ticket_id}")

    def clear(self) -> None:
        self._tickets = []
        self._sequence.invalidate()
