import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import requests

from storefront.errors import RemoteStoreError
from storefront.store import Filter, RestRowStore


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.status_code = status_code
        self.content = b"" if payload is None else json.dumps(payload).encode()
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.requests = []
        self.response = response if response is not None else FakeResponse([])
        self.error = error

    def request(self, method, url, params=None, data=None, timeout=None):
        self.requests.append({"method": method, "url": url, "params": params, "data": data, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def make_store(**kwargs):
    session = FakeSession(**kwargs)
    return RestRowStore("https://demo.example.co/", "anon-key", session=session, timeout=3), session


def test_headers_carry_the_api_key():
    _, session = make_store()
    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer anon-key"
    assert session.headers["Prefer"] == "return=representation"


def test_select_builds_postgrest_query():
    store, session = make_store(response=FakeResponse([{"id": 3, "stock": 1}]))

    rows = store.select(
        "products",
        [Filter("stock", "lt", 5), Filter("id", "in", [1, 2, 3])],
        order_by="stock",
        limit=10,
        columns=["id", "stock"],
    )

    assert rows == [{"id": 3, "stock": 1}]
    sent = session.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"] == "https://demo.example.co/rest/v1/products"
    assert sent["params"] == [
        ("select", "id,stock"),
        ("stock", "lt.5"),
        ("id", "in.(1,2,3)"),
        ("order", "stock.asc"),
        ("limit", "10"),
    ]
    assert sent["timeout"] == 3


def test_descending_order_and_null_filters():
    store, session = make_store()
    store.select("orders", [Filter("user_id", "eq", None)], order_by="created_at", descending=True)
    assert session.requests[0]["params"] == [
        ("select", "*"),
        ("user_id", "is.null"),
        ("order", "created_at.desc"),
    ]


def test_insert_serializes_decimals_and_datetimes():
    store, session = make_store(response=FakeResponse([{"id": 9}]))
    created = datetime(2024, 6, 2, 14, 30, tzinfo=timezone.utc)

    rows = store.insert("orders", [{"total": Decimal("111.80"), "created_at": created}])

    assert rows == [{"id": 9}]
    sent = session.requests[0]
    assert sent["method"] == "POST"
    assert json.loads(sent["data"]) == [{"total": 111.8, "created_at": "2024-06-02T14:30:00+00:00"}]


def test_insert_of_nothing_skips_the_request():
    store, session = make_store()
    assert store.insert("order_items", []) == []
    assert session.requests == []


def test_update_is_a_filtered_patch():
    store, session = make_store(response=FakeResponse([{"id": 1, "stock": 3}]))
    store.update("products", {"stock": 3}, [Filter("id", "eq", 1), Filter("stock", "eq", 5)])
    sent = session.requests[0]
    assert sent["method"] == "PATCH"
    assert sent["params"] == [("id", "eq.1"), ("stock", "eq.5")]
    assert json.loads(sent["data"]) == {"stock": 3}


def test_delete_with_empty_body_returns_no_rows():
    store, session = make_store(response=FakeResponse(None, status_code=204))
    assert store.delete("categories", [Filter("id", "eq", 4)]) == []
    assert session.requests[0]["method"] == "DELETE"


def test_http_error_becomes_remote_store_error():
    store, _ = make_store(response=FakeResponse({"message": "denied"}, status_code=401))
    with pytest.raises(RemoteStoreError) as excinfo:
        store.select("products")
    assert excinfo.value.table == "products"


def test_connection_error_becomes_remote_store_error():
    store, _ = make_store(error=requests.exceptions.ConnectionError("unreachable"))
    with pytest.raises(RemoteStoreError):
        store.delete("products", [Filter("id", "eq", 1)])


def test_unknown_operator_is_refused():
    store, _ = make_store()
    with pytest.raises(RemoteStoreError):
        store.select("products", [Filter("name", "like", "%lamp%")])
