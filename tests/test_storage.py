import json
import threading
from decimal import Decimal

from storefront.cart import CartStore
from storefront.schemas import Product
from storefront.storage import LocalStorage


def run_threads(target, count):
    errors = []

    def guarded(n):
        try:
            target(n)
        except Exception as e:  # collected and asserted below
            errors.append(e)

    threads = [threading.Thread(target=guarded, args=(n,)) for n in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


def test_slots_survive_reload(tmp_path):
    path = str(tmp_path / "state.json")
    LocalStorage(path).set_item("a", "1")
    assert LocalStorage(path).get_item("a") == "1"


def test_remove_item(tmp_path):
    path = str(tmp_path / "state.json")
    storage = LocalStorage(path)
    storage.set_item("a", "1")
    storage.remove_item("a")
    storage.remove_item("missing")
    assert LocalStorage(path).get_item("a") is None


def test_unreadable_file_starts_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{broken", encoding="utf-8")
    assert LocalStorage(str(path)).get_item("a") is None


def test_concurrent_writers_on_one_file(tmp_path):
    path = tmp_path / "state.json"
    storage = LocalStorage(str(path))

    def write(n):
        for i in range(200):
            storage.set_item(f"slot-{n}-{i}", str(i))

    assert run_threads(write, 8) == []
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert len(saved) == 8 * 200
    assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


def test_concurrent_cart_adds_keep_every_line():
    storage = LocalStorage()

    def add(n):
        product = Product(id=n, name=f"P{n}", price=Decimal("1.00"))
        for _ in range(20):
            # A fresh store per call, the way each request builds its own.
            CartStore(storage, "cart:guest:shared").add(product)

    assert run_threads(add, 6) == []
    items = CartStore(storage, "cart:guest:shared").get_items()
    assert sorted((i.product.id, i.quantity) for i in items) == [(n, 20) for n in range(6)]
