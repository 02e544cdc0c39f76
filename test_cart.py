import asyncio

import pytest

from cart import CartManager
from catalog import CatalogCache
from conftest import RIO, SAO_PAULO, settle
from errors import NotFoundError, TransportError
from models import HoldState


@pytest.fixture
def cart(signed_in):
    return CartManager(signed_in, CatalogCache(signed_in), leaked_retries=1)


def test_add_hold_confirms_remotely(cart, signed_in):
    asyncio.run(cart.catalog.search_routes(SAO_PAULO, RIO))
    hold = asyncio.run(cart.add_hold(1))

    assert hold.state is HoldState.CONFIRMED_REMOTE
    assert cart.count() == 1
    assert signed_in.wishlists["alice"] == [1]
    (view,) = cart.list_holds()
    assert view.hold is hold
    assert view.flight.price == 200


def test_add_hold_is_idempotent(cart, signed_in):
    first = asyncio.run(cart.add_hold(1))
    second = asyncio.run(cart.add_hold(1))
    assert first is second
    assert signed_in.count("add_to_wishlist") == 1


def test_concurrent_adds_share_one_remote_call(cart, signed_in):
    async def scenario():
        gate = signed_in.gate("add_to_wishlist")
        a = asyncio.ensure_future(cart.add_hold(1))
        b = asyncio.ensure_future(cart.add_hold(1))
        await settle()
        assert cart.get(1).state is HoldState.PENDING
        assert cart.count() == 1
        gate.set()
        return await asyncio.gather(a, b)

    a, b = asyncio.run(scenario())
    assert a is b
    assert signed_in.count("add_to_wishlist") == 1
    assert signed_in.wishlists["alice"] == [1]


def test_failed_add_keeps_hold_and_can_be_retried(cart, signed_in):
    signed_in.fail_next("add_to_wishlist", TransportError("timeout"))
    with pytest.raises(TransportError):
        asyncio.run(cart.add_hold(3))

    hold = cart.get(3)
    assert hold.state is HoldState.FAILED
    assert hold.last_error == "timeout"
    assert cart.count() == 1

    retried = asyncio.run(cart.add_hold(3))
    assert retried is hold
    assert hold.state is HoldState.CONFIRMED_REMOTE
    assert signed_in.count("add_to_wishlist") == 2


def test_attached_caller_sees_the_failure(cart, signed_in):
    async def scenario():
        gate = signed_in.gate("add_to_wishlist")
        signed_in.fail_next("add_to_wishlist", TransportError("down"))
        a = asyncio.ensure_future(cart.add_hold(1))
        b = asyncio.ensure_future(cart.add_hold(1))
        await settle()
        gate.set()
        return await asyncio.gather(a, b, return_exceptions=True)

    results = asyncio.run(scenario())
    assert all(isinstance(r, TransportError) for r in results)
    assert signed_in.count("add_to_wishlist") == 1


def test_remove_hold(cart, signed_in):
    asyncio.run(cart.add_hold(1))
    asyncio.run(cart.remove_hold(1))
    assert cart.get(1) is None
    assert cart.count() == 0
    assert signed_in.wishlists["alice"] == []


def test_failed_remove_leaves_hold(cart, signed_in):
    asyncio.run(cart.add_hold(1))
    signed_in.fail_next("remove_from_wishlist", TransportError("down"))
    with pytest.raises(TransportError):
        asyncio.run(cart.remove_hold(1))
    assert cart.get(1).state is HoldState.CONFIRMED_REMOTE
    assert cart.count() == 1


def test_remove_unknown_hold(cart, signed_in):
    with pytest.raises(NotFoundError):
        asyncio.run(cart.remove_hold(42))
    assert signed_in.count("remove_from_wishlist") == 0


def test_holds_listed_in_insertion_order_even_without_details(cart, signed_in):
    asyncio.run(cart.catalog.search_routes(SAO_PAULO, RIO))
    asyncio.run(cart.add_hold(4))
    asyncio.run(cart.add_hold(1))

    views = cart.list_holds()
    assert [v.hold.flight_id for v in views] == [4, 1]
    assert views[0].flight is None
    assert views[1].flight.id == 1

    views = asyncio.run(cart.refresh_snapshots())
    assert views[0].flight.origin.city.name == "Brasília"
    assert signed_in.calls[-1] == ("get_flights", (4,))


def test_interleaved_adds_and_removes_never_duplicate(cart, signed_in):
    async def scenario():
        ops = [cart.add_hold(1), cart.add_hold(1), cart.remove_hold(1),
               cart.add_hold(1), cart.remove_hold(1), cart.add_hold(3)]
        return await asyncio.gather(*ops, return_exceptions=True)

    asyncio.run(scenario())
    ids = [v.hold.flight_id for v in cart.list_holds()]
    assert len(ids) == len(set(ids))
    remote = signed_in.wishlists["alice"]
    for flight_id in (1, 3):
        assert remote.count(flight_id) == (1 if cart.get(flight_id) else 0)


def test_sync_mirrors_server_wishlist(cart, signed_in):
    signed_in.wishlists["alice"].extend([3, 4])
    views = asyncio.run(cart.sync())

    assert [v.hold.flight_id for v in views] == [3, 4]
    assert all(v.hold.state is HoldState.CONFIRMED_REMOTE for v in views)
    assert views[1].flight.price == 320
    assert cart.count() == 2
