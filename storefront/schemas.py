from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

SortKey = Literal["name", "price-asc", "price-desc"]
OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]

ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")


# --- Catalog ---
class Product(BaseModel):
    id: int
    name: str
    description: str = ""
    price: Decimal
    image_url: str = ""
    category_id: Optional[int] = None
    stock: int = 0
    created_at: Optional[datetime] = None


class Category(BaseModel):
    id: int
    name: str


class ProductForm(BaseModel):
    """Fields an admin submits to create or edit a product."""
    name: str = ""
    description: str = ""
    price: Decimal = Decimal("0")
    image_url: str = ""
    category_id: Optional[int] = None
    stock: int = 0


class CategoryForm(BaseModel):
    name: str = ""


class FilterOptions(BaseModel):
    search_term: str = ""
    category_id: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    sort_by: SortKey = "name"


# --- Cart ---
class CartItem(BaseModel):
    product: Product
    quantity: int = Field(default=1, ge=1)


# --- Orders ---
class Customer(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ShippingAddress(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "AR"


class OrderItem(BaseModel):
    """Snapshot of a product line at the moment of purchase."""
    product_id: int
    product_name: str
    price: Decimal
    quantity: int
    image_url: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Order(BaseModel):
    id: Optional[int] = None
    order_number: str
    user_id: Optional[str] = None
    customer: Customer
    shipping_address: ShippingAddress
    items: List[OrderItem] = Field(default_factory=list)
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    status: OrderStatus = "pending"
    created_at: datetime


# --- Users ---
class CurrentUser(BaseModel):
    id: Optional[str] = None
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    roles: List[str] = Field(default_factory=list)


# --- Results ---
class OperationResult(BaseModel):
    success: bool
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class PlaceOrderResult(BaseModel):
    success: bool
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    order: Optional[Order] = None
    # Header row left behind without items (compensating delete failed).
    partial: bool = False
    # Products whose stock could not be decremented after the order was saved.
    stock_errors: List[int] = Field(default_factory=list)


class DashboardStats(BaseModel):
    total_products: int = 0
    total_categories: int = 0
    low_stock_count: int = 0
    total_inventory_value: Decimal = Decimal("0")
