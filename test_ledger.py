import asyncio

import pytest

from conftest import settle
from errors import NotFoundError, RequestCancelled, ValidationError
from ledger import TicketLedger
from models import Ticket


@pytest.fixture
def bought(signed_in):
    """alice already owns a ticket for flight 1 on the server."""
    asyncio.run(signed_in.buy_ticket(1))
    signed_in.calls.clear()
    return signed_in


def test_load_tickets(bought):
    ledger = TicketLedger(bought)
    tickets = asyncio.run(ledger.load_tickets())

    assert len(tickets) == 1
    assert ledger.tickets == tickets
    assert tickets[0].route_label == "São Paulo-SP/Rio de Janeiro-RJ"
    assert tickets[0].company.value == "giro"


def test_cancel_restores_seat_and_leaves_cart_alone(bought):
    ledger = TicketLedger(bought)
    (ticket,) = asyncio.run(ledger.load_tickets())
    assert bought.flights[1]["Seats"] == 2

    asyncio.run(ledger.cancel(ticket.id))
    assert ledger.count() == 0
    assert bought.flights[1]["Seats"] == 3
    assert bought.count("add_to_wishlist") == 0
    assert bought.wishlists["alice"] == []


def test_cancel_unknown_ticket(bought):
    ledger = TicketLedger(bought)
    asyncio.run(ledger.load_tickets())

    with pytest.raises(NotFoundError):
        asyncio.run(ledger.cancel(999))
    assert ledger.count() == 1
    assert bought.count("cancel_ticket") == 0


def test_server_rejection_keeps_ticket(bought):
    ledger = TicketLedger(bought)
    (ticket,) = asyncio.run(ledger.load_tickets())
    bought.tickets.clear()

    with pytest.raises(NotFoundError):
        asyncio.run(ledger.cancel(ticket.id))
    assert ledger.tickets == [ticket]


def test_cancellation_disabled(bought):
    ledger = TicketLedger(bought, allow_cancellation=False)
    (ticket,) = asyncio.run(ledger.load_tickets())

    with pytest.raises(ValidationError):
        asyncio.run(ledger.cancel(ticket.id))
    assert bought.count("cancel_ticket") == 0


def test_provisional_ticket_cannot_be_cancelled(signed_in):
    ledger = TicketLedger(signed_in)
    ledger.record(Ticket(flight_id=1))

    with pytest.raises(ValidationError):
        asyncio.run(ledger.cancel(ledger.tickets[0].id))
    assert signed_in.count("cancel_ticket") == 0


def test_load_started_before_a_purchase_is_discarded(bought):
    ledger = TicketLedger(bought)
    recorded = Ticket(id=77, flight_id=3)

    async def scenario():
        gate = bought.gate("list_tickets")
        load = asyncio.ensure_future(ledger.load_tickets())
        await settle()
        ledger.record(recorded)
        gate.set()
        return await load

    fetched = asyncio.run(scenario())
    assert len(fetched) == 1
    assert ledger.tickets == [recorded]


def test_cancelled_load(bought):
    ledger = TicketLedger(bought)

    async def scenario():
        bought.gate("list_tickets")
        cancel = asyncio.Event()
        load = asyncio.ensure_future(ledger.load_tickets(cancel=cancel))
        await settle()
        cancel.set()
        with pytest.raises(RequestCancelled):
            await load

    asyncio.run(scenario())
    assert ledger.count() == 0
