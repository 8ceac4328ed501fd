import logging
from typing import List, Optional

from .errors import RemoteStoreError
from .filters import filter_products
from .schemas import Category, CurrentUser, FilterOptions, Product
from .store import Filter, RowStore

logger = logging.getLogger(__name__)


class CatalogService:
    """Read side of the catalog. Remote failures are logged and read as empty."""

    def __init__(self, store: RowStore):
        self.store = store

    def get_products(self) -> List[Product]:
        try:
            rows = self.store.select("products", order_by="created_at", descending=True)
        except RemoteStoreError as e:
            logger.error("Error fetching products: %s", e)
            return []
        return [Product.model_validate(row) for row in rows]

    def get_product(self, product_id: int) -> Optional[Product]:
        try:
            rows = self.store.select("products", [Filter("id", "eq", product_id)])
        except RemoteStoreError as e:
            logger.error("Error fetching product %s: %s", product_id, e)
            return None
        return Product.model_validate(rows[0]) if rows else None

    def get_products_by_category(self, category_id: int) -> List[Product]:
        try:
            rows = self.store.select("products", [Filter("category_id", "eq", category_id)])
        except RemoteStoreError as e:
            logger.error("Error fetching products for category %s: %s", category_id, e)
            return []
        return [Product.model_validate(row) for row in rows]

    def get_categories(self) -> List[Category]:
        try:
            rows = self.store.select("categories", order_by="name")
        except RemoteStoreError as e:
            logger.error("Error fetching categories: %s", e)
            return []
        return [Category.model_validate(row) for row in rows]

    def browse(self, options: FilterOptions) -> List[Product]:
        """All products run through the filter/sort composer."""
        return filter_products(self.get_products(), options)


def load_current_user(store: RowStore, user_id: str, email: str) -> CurrentUser:
    """
    Build the signed-in user from the session identity and its profile row.

    A missing or unreadable profile falls back to the bare identity.
    """
    try:
        rows = store.select("user_profiles", [Filter("user_id", "eq", user_id)])
    except RemoteStoreError as e:
        logger.warning("Profile lookup failed for %s, using basic data: %s", user_id, e)
        rows = []
    if not rows:
        return CurrentUser(id=user_id, email=email)
    profile = rows[0]
    return CurrentUser(
        id=user_id,
        email=email,
        first_name=profile.get("first_name") or "",
        last_name=profile.get("last_name") or "",
        roles=[profile["role"]] if profile.get("role") else [],
    )
