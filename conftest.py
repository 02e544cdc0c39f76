import asyncio

import pytest

from mock_marketplace import MockMarketplace, flight_record

SAO_PAULO = "São Paulo"
RIO = "Rio de Janeiro"


async def settle(rounds=10):
    """Let every ready task run until it blocks."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def scenario_flights():
    return [
        flight_record(1, "GRU", "GIG", seats=3, price=200),
        flight_record(2, "GRU", "GIG", seats=0, price=150),
        flight_record(3, "GIG", "GRU", seats=5, price=210, company="boreal"),
        flight_record(4, "BSB", "SSA", seats=2, price=320, company="rumos"),
    ]


@pytest.fixture
def api(scenario_flights):
    return MockMarketplace(flights=scenario_flights, delays=False)


@pytest.fixture
def signed_in(api):
    """The mock with alice's credential already in the token store."""
    token = asyncio.run(api.login("alice", "alice123"))
    api.token_store.set(token)
    api.calls.clear()
    return api
