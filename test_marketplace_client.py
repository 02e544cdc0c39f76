import asyncio
import json
from unittest import mock

import pytest
import requests

from errors import AuthError, ConflictError, NotFoundError, TransportError, ValidationError
from marketplace_client import MarketplaceClient


def fake_response(status=200, body=None):
    resp = mock.Mock()
    resp.status_code = status
    resp.content = json.dumps(body).encode() if body is not None else b""
    resp.text = resp.content.decode()
    resp.json.return_value = body
    return resp


@pytest.fixture
def client():
    c = MarketplaceClient("http://market.test:9999/")
    c.token_store.set("tok-1")
    return c


def test_login_sends_credentials_without_authorization(client):
    with mock.patch("requests.request", return_value=fake_response(
            200, {"Data": {"token": "abc"}, "status": 200})) as request:
        token = asyncio.run(client.login("alice", "pw"))

    assert token == "abc"
    method, url = request.call_args.args
    assert (method, url) == ("POST", "http://market.test:9999/login")
    assert request.call_args.kwargs["json"] == {"Username": "alice", "Password": "pw"}
    assert "Authorization" not in request.call_args.kwargs["headers"]


def test_raw_token_is_sent_by_default(client):
    with mock.patch("requests.request", return_value=fake_response(
            200, {"Data": {"Airports": [{"Name": "X", "City": {"Name": "Y"}}]}})) as request:
        airports = asyncio.run(client.list_airports())

    assert airports == [{"Name": "X", "City": {"Name": "Y"}}]
    assert request.call_args.kwargs["headers"]["Authorization"] == "tok-1"


def test_auth_scheme_prefixes_token():
    c = MarketplaceClient("http://market.test", auth_scheme="Bearer")
    c.token_store.set("tok-2")
    with mock.patch("requests.request", return_value=fake_response(200, {"Data": {}})) as request:
        asyncio.run(c.list_tickets())
    assert request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok-2"


def test_query_parameters(client):
    with mock.patch("requests.request", return_value=fake_response(200, {"Data": {"paths": []}})) as request:
        asyncio.run(client.search_route("Recife", "Salvador"))
        asyncio.run(client.remove_from_wishlist(4))
        asyncio.run(client.cancel_ticket(9))

    calls = request.call_args_list
    assert calls[0].args == ("GET", "http://market.test:9999/route")
    assert calls[0].kwargs["params"] == {"src": "Recife", "dest": "Salvador"}
    assert calls[1].args == ("DELETE", "http://market.test:9999/wishlist")
    assert calls[1].kwargs["params"] == {"id": 4}
    assert calls[2].args == ("DELETE", "http://market.test:9999/ticket")
    assert calls[2].kwargs["params"] == {"id": 9}


def test_unauthorized_invokes_hook(client):
    seen = []
    client.on_auth_error = seen.append
    with mock.patch("requests.request", return_value=fake_response(
            401, {"error": "not authorized", "status": 401})):
        with pytest.raises(AuthError):
            asyncio.run(client.list_wishlist())
    assert len(seen) == 1


def test_failed_login_does_not_invoke_hook(client):
    seen = []
    client.on_auth_error = seen.append
    with mock.patch("requests.request", return_value=fake_response(
            401, {"error": "more than one user logged", "status": 401})):
        with pytest.raises(ConflictError):
            asyncio.run(client.login("alice", "pw"))
    assert seen == []


@pytest.mark.parametrize("status,body,expected", [
    (404, {"error": "ticket not found"}, NotFoundError),
    (406, {"Data": {"Error": "not available seats"}}, ConflictError),
    (200, {"error": "no route"}, ValidationError),
    (502, None, TransportError),
])
def test_error_mapping(client, status, body, expected):
    with mock.patch("requests.request", return_value=fake_response(status, body)):
        with pytest.raises(expected):
            asyncio.run(client.buy_ticket(1))


def test_connection_failure_is_transport_error(client):
    with mock.patch("requests.request", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(TransportError):
            asyncio.run(client.add_to_wishlist(1))


def test_buy_ticket_returns_data(client):
    with mock.patch("requests.request", return_value=fake_response(
            200, {"Data": {"msg": "success"}, "status": 200})) as request:
        data = asyncio.run(client.buy_ticket(3))
    assert data == {"msg": "success"}
    assert request.call_args.kwargs["json"] == {"FlightId": 3}
