"""
Order assembly, persistence and history lookups.
"""

import logging
import random
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .cart import CartStore
from .errors import RemoteStoreError
from .messaging.bus import NullPublisher
from .pricing import calculate_totals, cart_subtotal
from .schemas import (
    CartItem,
    Customer,
    Order,
    OrderItem,
    PlaceOrderResult,
    ShippingAddress,
)
from .store import Filter, RowStore

logger = logging.getLogger(__name__)

ORDER_FAILED_MESSAGE = "Could not process the order. Please try again."
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-<epoch millis>-<0..999>. Two orders in the same millisecond may collide."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{int(now.timestamp() * 1000)}-{random.randint(0, 999)}"


def create_order_from_cart(
    items: Sequence[CartItem],
    customer: Customer,
    shipping_address: ShippingAddress,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Snapshot the cart lines and price them for the destination country."""
    now = now or datetime.now(timezone.utc)
    order_items = [
        OrderItem(
            product_id=item.product.id,
            product_name=item.product.name,
            price=item.product.price,
            quantity=item.quantity,
            image_url=item.product.image_url,
        )
        for item in items
    ]
    totals = calculate_totals(cart_subtotal(items), shipping_address.country)
    return Order(
        order_number=generate_order_number(now),
        user_id=user_id,
        customer=customer,
        shipping_address=shipping_address,
        items=order_items,
        status="pending",
        created_at=now,
        **totals,
    )


# --- Validation ---

def validate_customer(customer: Customer) -> List[str]:
    errors = []
    if not customer.first_name.strip():
        errors.append("First name is required")
    if not customer.last_name.strip():
        errors.append("Last name is required")
    if not customer.email.strip():
        errors.append("Email is required")
    if not EMAIL_RE.match(customer.email):
        errors.append("Email is invalid")
    if not customer.phone.strip():
        errors.append("Phone is required")
    return errors


def validate_shipping_address(address: ShippingAddress) -> List[str]:
    errors = []
    if not address.street.strip():
        errors.append("Street is required")
    if not address.city.strip():
        errors.append("City is required")
    if not address.state.strip():
        errors.append("State/province is required")
    if not address.zip_code.strip():
        errors.append("Zip code is required")
    if not address.country.strip():
        errors.append("Country is required")
    return errors


# --- Row mapping ---

def order_to_row(order: Order) -> Dict:
    return {
        "order_number": order.order_number,
        "user_id": order.user_id,
        "customer_first_name": order.customer.first_name,
        "customer_last_name": order.customer.last_name,
        "customer_email": order.customer.email,
        "customer_phone": order.customer.phone,
        "shipping_street": order.shipping_address.street,
        "shipping_city": order.shipping_address.city,
        "shipping_state": order.shipping_address.state,
        "shipping_zip_code": order.shipping_address.zip_code,
        "shipping_country": order.shipping_address.country,
        "subtotal": order.subtotal,
        "shipping": order.shipping,
        "tax": order.tax,
        "total": order.total,
        "status": order.status,
        "created_at": order.created_at,
    }


def item_to_row(order_id: int, item: OrderItem) -> Dict:
    return {
        "order_id": order_id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "price": item.price,
        "quantity": item.quantity,
        "image_url": item.image_url,
    }


def row_to_order(row: Dict, item_rows: Sequence[Dict]) -> Order:
    return Order(
        id=row["id"],
        order_number=row["order_number"],
        user_id=row.get("user_id"),
        customer=Customer(
            first_name=row.get("customer_first_name") or "",
            last_name=row.get("customer_last_name") or "",
            email=row.get("customer_email") or "",
            phone=row.get("customer_phone") or "",
        ),
        shipping_address=ShippingAddress(
            street=row.get("shipping_street") or "",
            city=row.get("shipping_city") or "",
            state=row.get("shipping_state") or "",
            zip_code=row.get("shipping_zip_code") or "",
            country=row.get("shipping_country") or "",
        ),
        items=[
            OrderItem(
                product_id=item["product_id"],
                product_name=item["product_name"],
                price=item["price"],
                quantity=item["quantity"],
                image_url=item.get("image_url") or "",
            )
            for item in item_rows
        ],
        subtotal=row["subtotal"],
        shipping=row["shipping"],
        tax=row["tax"],
        total=row["total"],
        status=row["status"],
        created_at=row["created_at"],
    )


def load_orders(store: RowStore, filters: Sequence[Filter] = ()) -> List[Order]:
    """Fetch order headers (newest first) together with their items."""
    headers = store.select("orders", filters, order_by="created_at", descending=True)
    if not headers:
        return []
    item_rows = store.select("order_items", [Filter("order_id", "in", [h["id"] for h in headers])])
    by_order: Dict[int, List[Dict]] = {}
    for item in item_rows:
        by_order.setdefault(item["order_id"], []).append(item)
    return [row_to_order(header, by_order.get(header["id"], [])) for header in headers]


def order_event(order: Order) -> Dict:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "total": str(order.total),
        "items": [{"product_id": i.product_id, "quantity": i.quantity} for i in order.items],
    }


class OrderService:
    def __init__(self, store: RowStore, cart: CartStore, publisher=None, stock_retries: int = 3):
        self.store = store
        self.cart = cart
        self.publisher = publisher or NullPublisher()
        self.stock_retries = stock_retries

    def place_order(
        self, customer: Customer, shipping_address: ShippingAddress, user_id: Optional[str] = None
    ) -> PlaceOrderResult:
        """Validate checkout input, assemble the order from the cart and save it."""
        errors = validate_customer(customer) + validate_shipping_address(shipping_address)
        if not self.cart.get_items():
            errors.append("Cart is empty")
        if errors:
            return PlaceOrderResult(success=False, error=errors[0], errors=errors)
        order = create_order_from_cart(self.cart.get_items(), customer, shipping_address, user_id)
        return self.save_order(order)

    def save_order(self, order: Order) -> PlaceOrderResult:
        """
        Write the header, then the items, then decrement stock and clear the cart.

        The two inserts are not one transaction. If the items insert fails the
        header is deleted again; if that delete fails too the result is marked
        partial. Stock is only touched once both inserts succeeded.
        """
        try:
            inserted = self.store.insert("orders", [order_to_row(order)])
        except RemoteStoreError as e:
            logger.error("Error inserting order %s: %s", order.order_number, e)
            return PlaceOrderResult(success=False, error=ORDER_FAILED_MESSAGE)
        if not inserted:
            logger.error("Order insert for %s returned no row", order.order_number)
            return PlaceOrderResult(success=False, error=ORDER_FAILED_MESSAGE)

        order_id = inserted[0]["id"]
        logger.info("Order %s created with id %s", order.order_number, order_id)

        try:
            self.store.insert("order_items", [item_to_row(order_id, item) for item in order.items])
        except RemoteStoreError as e:
            logger.error("Error inserting items for order %s: %s", order.order_number, e)
            partial = not self._discard_header(order_id)
            return PlaceOrderResult(success=False, error=ORDER_FAILED_MESSAGE, partial=partial)

        stock_errors = [
            item.product_id
            for item in order.items
            if not self._decrement_stock(item.product_id, item.quantity)
        ]
        if stock_errors:
            logger.error("Stock not updated for products %s (order %s)", stock_errors, order.order_number)

        self.cart.clear()
        saved = order.model_copy(update={"id": order_id})
        self.publisher.publish("order.created", order_event(saved))
        return PlaceOrderResult(success=True, order=saved, stock_errors=stock_errors)

    def _discard_header(self, order_id) -> bool:
        try:
            self.store.delete("orders", [Filter("id", "eq", order_id)])
            return True
        except RemoteStoreError as e:
            logger.error("Order %s left without items, could not delete header: %s", order_id, e)
            return False

    def _decrement_stock(self, product_id: int, quantity: int) -> bool:
        """Compare-and-set the stock column; re-read and retry when another order got there first."""
        for _ in range(self.stock_retries):
            try:
                rows = self.store.select("products", [Filter("id", "eq", product_id)], columns=["stock"])
                if not rows:
                    logger.error("Product %s not found while updating stock", product_id)
                    return False
                current = rows[0]["stock"]
                new_stock = current - quantity
                if new_stock < 0:
                    logger.warning("Product %s oversold by %d units, clamping stock to 0", product_id, -new_stock)
                    new_stock = 0
                updated = self.store.update(
                    "products",
                    {"stock": new_stock},
                    [Filter("id", "eq", product_id), Filter("stock", "eq", current)],
                )
            except RemoteStoreError as e:
                logger.error("Error updating stock for product %s: %s", product_id, e)
                return False
            if updated:
                logger.info("Stock updated for product %s: %s", product_id, new_stock)
                return True
            logger.warning("Stock for product %s changed concurrently, retrying", product_id)
        return False

    def get_user_orders(self, user_id: str) -> List[Order]:
        try:
            return load_orders(self.store, [Filter("user_id", "eq", user_id)])
        except RemoteStoreError as e:
            logger.error("Error fetching orders for user %s: %s", user_id, e)
            return []

    def get_order_by_number(self, order_number: str) -> Optional[Order]:
        try:
            orders = load_orders(self.store, [Filter("order_number", "eq", order_number)])
        except RemoteStoreError as e:
            logger.error("Error fetching order %s: %s", order_number, e)
            return None
        return orders[0] if orders else None
