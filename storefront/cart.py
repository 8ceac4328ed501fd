import json
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import List

from pydantic import ValidationError

from .cell import ValueCell
from .schemas import CartItem, Product
from .storage import LocalStorage

logger = logging.getLogger(__name__)

CART_SLOT = "cart"


class CartStore:
    """
    The shopper's cart: (product, quantity) lines behind a value cell.

    Contents are read from local storage on creation and written back after
    every mutation. Each mutation re-reads the slot under the storage lock,
    so several CartStore objects over the same slot never lose each other's
    lines. Subscribers see a fresh list on each change.
    """

    def __init__(self, storage: LocalStorage, slot: str = CART_SLOT):
        self.storage = storage
        self.slot = slot
        self.items = ValueCell[List[CartItem]](self._read())

    def _read(self) -> List[CartItem]:
        saved = self.storage.get_item(self.slot)
        if not saved:
            return []
        try:
            return [CartItem.model_validate(entry) for entry in json.loads(saved)]
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Discarding unreadable saved cart in '%s': %s", self.slot, e)
            return []

    def _save(self, items: List[CartItem]):
        payload = json.dumps([item.model_dump(mode="json") for item in items])
        self.storage.set_item(self.slot, payload)
        self.items.set(items)

    @contextmanager
    def _editing(self):
        """Yield the latest saved lines for in-place edits; saved only when they changed."""
        with self.storage.lock:
            items = self._read()
            before = list(items)
            yield items
            if items != before:
                self._save(items)
            elif items != self.items.value:
                self.items.set(items)

    def get_items(self) -> List[CartItem]:
        return list(self.items.value)

    def add(self, product: Product, quantity: int = 1):
        with self._editing() as items:
            for index, item in enumerate(items):
                if item.product.id == product.id:
                    items[index] = item.model_copy(update={"quantity": item.quantity + quantity})
                    break
            else:
                items.append(CartItem(product=product, quantity=quantity))

    def remove(self, product_id: int):
        with self._editing() as items:
            items[:] = [item for item in items if item.product.id != product_id]

    def update_quantity(self, product_id: int, quantity: int):
        """Set a line's quantity; zero or less removes the line. Unknown ids are ignored."""
        with self._editing() as items:
            if quantity <= 0:
                items[:] = [item for item in items if item.product.id != product_id]
                return
            for index, item in enumerate(items):
                if item.product.id == product_id:
                    items[index] = item.model_copy(update={"quantity": quantity})

    def clear(self):
        with self._editing() as items:
            items.clear()

    def count(self) -> int:
        return sum(item.quantity for item in self.items.value)

    def total(self) -> Decimal:
        return sum((item.product.price * item.quantity for item in self.items.value), Decimal("0"))
