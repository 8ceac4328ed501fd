"""
Admin back office: product/category CRUD, dashboard counters and order management.

Every operation checks the caller through a RoleResolver first and raises
NotAuthorized for anyone else. Validation runs before any remote call.
"""

import logging
from collections import Counter
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from . import config
from .errors import NotAuthorized, RemoteStoreError
from .messaging.bus import NullPublisher
from .orders import load_orders
from .schemas import (
    ORDER_STATUSES,
    Category,
    CategoryForm,
    CurrentUser,
    DashboardStats,
    OperationResult,
    Order,
    Product,
    ProductForm,
)
from .store import Filter, RowStore

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5


# --- Authorization ---

class RoleResolver:
    def is_admin(self, user: Optional[CurrentUser]) -> bool:
        raise NotImplementedError


class AllowListRoleResolver(RoleResolver):
    """Admin when the user's email is on a fixed allow-list."""

    def __init__(self, emails: Iterable[str] = None):
        source = config.ADMIN_EMAILS if emails is None else emails
        self.emails = {email.strip().lower() for email in source}

    def is_admin(self, user):
        return bool(user and user.email) and user.email.strip().lower() in self.emails


class ClaimRoleResolver(RoleResolver):
    """Admin when the user carries the admin role claim."""

    def __init__(self, role: str = "admin"):
        self.role = role

    def is_admin(self, user):
        return bool(user) and self.role in user.roles


class AnyRoleResolver(RoleResolver):
    """Admin when any of the wrapped resolvers says so."""

    def __init__(self, *resolvers: RoleResolver):
        self.resolvers = resolvers

    def is_admin(self, user):
        return any(resolver.is_admin(user) for resolver in self.resolvers)


# --- Validation ---

def validate_product_form(form: ProductForm) -> List[str]:
    errors = []
    if not form.name.strip():
        errors.append("Name is required")
    if not form.description.strip():
        errors.append("Description is required")
    if form.price <= 0:
        errors.append("Price must be greater than 0")
    if not form.image_url.strip():
        errors.append("Image URL is required")
    if form.stock < 0:
        errors.append("Stock cannot be negative")
    return errors


def product_values(form: ProductForm) -> Dict:
    """Column values for a validated form, text fields trimmed."""
    values = form.model_dump()
    for field in ("name", "description", "image_url"):
        values[field] = values[field].strip()
    return values


def validate_category_form(
    form: CategoryForm, categories: Sequence[Category], editing_id: Optional[int] = None
) -> List[str]:
    errors = []
    name = form.name.strip()
    if not name:
        errors.append("Name is required")
    if any(c.name.lower() == name.lower() and c.id != editing_id for c in categories):
        errors.append("A category with that name already exists")
    return errors


# --- Order views ---

def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def filter_orders(
    orders: Sequence[Order],
    status: str = "all",
    search_term: str = "",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[Order]:
    """Status, then search (number, email or full name), then an inclusive day range in UTC."""
    filtered = list(orders)
    if status != "all":
        filtered = [o for o in filtered if o.status == status]
    if search_term:
        term = search_term.lower()
        filtered = [
            o for o in filtered
            if term in o.order_number.lower()
            or term in o.customer.email.lower()
            or term in o.customer.full_name.lower()
        ]
    if date_from:
        start = datetime.combine(date_from, time.min, tzinfo=timezone.utc)
        filtered = [o for o in filtered if _as_utc(o.created_at) >= start]
    if date_to:
        end = datetime.combine(date_to, time.max, tzinfo=timezone.utc)
        filtered = [o for o in filtered if _as_utc(o.created_at) <= end]
    return filtered


def total_revenue(orders: Iterable[Order]) -> Decimal:
    return sum((o.total for o in orders), Decimal("0"))


def count_by_status(orders: Iterable[Order]) -> Dict[str, int]:
    counts = Counter(o.status for o in orders)
    return {status: counts.get(status, 0) for status in ORDER_STATUSES}


class AdminService:
    def __init__(self, store: RowStore, roles: RoleResolver = None, publisher=None):
        self.store = store
        self.roles = roles or AllowListRoleResolver()
        self.publisher = publisher or NullPublisher()

    def is_admin(self, user: Optional[CurrentUser]) -> bool:
        return self.roles.is_admin(user)

    def _require_admin(self, user: Optional[CurrentUser]):
        if not self.is_admin(user):
            logger.warning("Admin operation refused for %s", user.email if user else "anonymous")
            raise NotAuthorized("Admin access required")

    def _write(self, action: str, call) -> OperationResult:
        try:
            call()
        except RemoteStoreError as e:
            logger.error("Error trying to %s: %s", action, e)
            return OperationResult(success=False, error=f"Could not {action}")
        logger.info("Admin %s done", action)
        return OperationResult(success=True)

    @staticmethod
    def _invalid(errors: List[str]) -> OperationResult:
        return OperationResult(success=False, error=errors[0], errors=errors)

    # --- Products ---
    def create_product(self, user, form: ProductForm) -> OperationResult:
        self._require_admin(user)
        errors = validate_product_form(form)
        if errors:
            return self._invalid(errors)
        return self._write(
            "create the product", lambda: self.store.insert("products", [product_values(form)])
        )

    def update_product(self, user, product_id: int, form: ProductForm) -> OperationResult:
        self._require_admin(user)
        errors = validate_product_form(form)
        if errors:
            return self._invalid(errors)
        return self._write(
            "update the product",
            lambda: self.store.update("products", product_values(form), [Filter("id", "eq", product_id)]),
        )

    def delete_product(self, user, product_id: int) -> OperationResult:
        self._require_admin(user)
        return self._write(
            "delete the product", lambda: self.store.delete("products", [Filter("id", "eq", product_id)])
        )

    # --- Categories ---
    def _categories(self) -> List[Category]:
        return [Category.model_validate(row) for row in self.store.select("categories", order_by="name")]

    def create_category(self, user, form: CategoryForm) -> OperationResult:
        self._require_admin(user)
        try:
            errors = validate_category_form(form, self._categories())
        except RemoteStoreError as e:
            logger.error("Error loading categories: %s", e)
            return OperationResult(success=False, error="Could not create the category")
        if errors:
            return self._invalid(errors)
        return self._write(
            "create the category", lambda: self.store.insert("categories", [{"name": form.name.strip()}])
        )

    def update_category(self, user, category_id: int, form: CategoryForm) -> OperationResult:
        self._require_admin(user)
        try:
            errors = validate_category_form(form, self._categories(), editing_id=category_id)
        except RemoteStoreError as e:
            logger.error("Error loading categories: %s", e)
            return OperationResult(success=False, error="Could not update the category")
        if errors:
            return self._invalid(errors)
        return self._write(
            "update the category",
            lambda: self.store.update(
                "categories", {"name": form.name.strip()}, [Filter("id", "eq", category_id)]
            ),
        )

    def delete_category(self, user, category_id: int) -> OperationResult:
        """Refuses while any product still references the category."""
        self._require_admin(user)
        try:
            products = self.store.select(
                "products", [Filter("category_id", "eq", category_id)], columns=["id"]
            )
        except RemoteStoreError as e:
            logger.error("Error checking products of category %s: %s", category_id, e)
            return OperationResult(success=False, error="Could not delete the category")
        if products:
            return OperationResult(
                success=False,
                error=f"Cannot delete a category that has products assigned ({len(products)})",
            )
        return self._write(
            "delete the category", lambda: self.store.delete("categories", [Filter("id", "eq", category_id)])
        )

    # --- Dashboard ---
    def get_dashboard_stats(self, user) -> DashboardStats:
        """Counters computed with a full scan of products and categories."""
        self._require_admin(user)
        try:
            products = self.store.select("products", columns=["id", "stock", "price"])
            categories = self.store.select("categories", columns=["id"])
        except RemoteStoreError as e:
            logger.error("Error getting dashboard stats: %s", e)
            return DashboardStats()
        return DashboardStats(
            total_products=len(products),
            total_categories=len(categories),
            low_stock_count=sum(1 for p in products if p["stock"] < LOW_STOCK_THRESHOLD),
            total_inventory_value=sum(
                (Decimal(str(p["price"])) * p["stock"] for p in products), Decimal("0")
            ),
        )

    def get_low_stock_products(self, user) -> List[Product]:
        self._require_admin(user)
        try:
            rows = self.store.select(
                "products", [Filter("stock", "lt", LOW_STOCK_THRESHOLD)], order_by="stock"
            )
        except RemoteStoreError as e:
            logger.error("Error getting low stock products: %s", e)
            return []
        return [Product.model_validate(row) for row in rows]

    # --- Orders ---
    def get_all_orders(self, user) -> List[Order]:
        self._require_admin(user)
        try:
            return load_orders(self.store)
        except RemoteStoreError as e:
            logger.error("Error fetching all orders: %s", e)
            return []

    def update_order_status(self, user, order_id: int, new_status: str) -> OperationResult:
        """Any of the five statuses may follow any other; only unknown values are refused."""
        self._require_admin(user)
        if new_status not in ORDER_STATUSES:
            return self._invalid([f"Unknown order status '{new_status}'"])
        try:
            rows = self.store.update(
                "orders",
                {"status": new_status, "updated_at": datetime.now(timezone.utc)},
                [Filter("id", "eq", order_id)],
            )
        except RemoteStoreError as e:
            logger.error("Error updating status of order %s: %s", order_id, e)
            return OperationResult(success=False, error="Could not update the order status")
        if not rows:
            return OperationResult(success=False, error="Order not found")
        logger.info("Order %s set to %s", order_id, new_status)
        self.publisher.publish(
            "order.status_changed",
            {"order_id": order_id, "order_number": rows[0].get("order_number"), "status": new_status},
        )
        return OperationResult(success=True)
