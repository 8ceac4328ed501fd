from decimal import Decimal

import pytest

from storefront.cart import CartStore
from storefront.database import init_db, make_engine, make_session_factory
from storefront.errors import RemoteStoreError
from storefront.schemas import Category, CurrentUser, Customer, Product, ShippingAddress
from storefront.storage import LocalStorage
from storefront.store import RowStore, SqlRowStore


class SpyStore(RowStore):
    """Wraps a real store, records every call and fails the ones listed in `failures`."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = []
        self.failures = set()  # {(method, table)}

    def _call(self, method, table, *args, **kwargs):
        self.calls.append((method, table))
        if (method, table) in self.failures:
            raise RemoteStoreError(f"{method} on {table} failed", table=table)
        return getattr(self.inner, method)(table, *args, **kwargs)

    def select(self, table, *args, **kwargs):
        return self._call("select", table, *args, **kwargs)

    def insert(self, table, *args, **kwargs):
        return self._call("insert", table, *args, **kwargs)

    def update(self, table, *args, **kwargs):
        return self._call("update", table, *args, **kwargs)

    def delete(self, table, *args, **kwargs):
        return self._call("delete", table, *args, **kwargs)


@pytest.fixture
def sql_store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'storefront_test.db'}")
    init_db(bind=engine)
    yield SqlRowStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def store(sql_store):
    return SpyStore(sql_store)


@pytest.fixture
def storage():
    return LocalStorage()


@pytest.fixture
def cart(storage):
    return CartStore(storage)


@pytest.fixture
def make_category(sql_store):
    def _make(name="Gadgets"):
        return Category.model_validate(sql_store.insert("categories", [{"name": name}])[0])
    return _make


@pytest.fixture
def make_product(sql_store):
    def _make(name="Widget", price="40.00", stock=5, category_id=None, description="A handy widget"):
        row = sql_store.insert("products", [{
            "name": name,
            "description": description,
            "price": Decimal(price),
            "image_url": f"https://img.example.com/{name.lower()}.png",
            "category_id": category_id,
            "stock": stock,
        }])[0]
        return Product.model_validate(row)
    return _make


@pytest.fixture
def customer():
    return Customer(first_name="Ana", last_name="Lopez", email="ana@example.com", phone="+54 11 5555 0000")


@pytest.fixture
def address():
    return ShippingAddress(street="Av. Corrientes 1234", city="Buenos Aires", state="CABA", zip_code="C1043", country="AR")


@pytest.fixture
def admin_user():
    return CurrentUser(id="u-admin", email="Admin@Shop.test")


@pytest.fixture
def shopper():
    return CurrentUser(id="u-1", email="ana@example.com")
