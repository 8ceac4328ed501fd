from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func

from .database import Base  # Import the Base class from our database setup


# A catalog item with price and stock.
class ProductRow(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    price = Column(Numeric(10, 2), nullable=False)  # Unit price in currency units.
    image_url = Column(String, default="")
    category_id = Column(Integer, ForeignKey("categories.id"), index=True)
    stock = Column(Integer, nullable=False, default=0)  # Units available, never negative.
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# Order header; customer and shipping address are flattened into columns.
class OrderRow(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, index=True)  # Human readable, not guaranteed unique.
    user_id = Column(String, index=True, nullable=True)

    customer_first_name = Column(String)
    customer_last_name = Column(String)
    customer_email = Column(String)
    customer_phone = Column(String)

    shipping_street = Column(String)
    shipping_city = Column(String)
    shipping_state = Column(String)
    shipping_zip_code = Column(String)
    shipping_country = Column(String)

    subtotal = Column(Numeric(10, 2))
    shipping = Column(Numeric(10, 2))
    tax = Column(Numeric(10, 2))
    total = Column(Numeric(10, 2))

    status = Column(String, default="pending")  # pending/confirmed/shipped/delivered/cancelled
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


# Snapshot of a product at purchase time, decoupled from later product edits.
class OrderItemRow(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True)
    product_id = Column(Integer)
    product_name = Column(String)
    price = Column(Numeric(10, 2))
    quantity = Column(Integer)
    image_url = Column(String, default="")


class UserProfileRow(Base):
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True)
    first_name = Column(String, default="")
    last_name = Column(String, default="")
    role = Column(String, nullable=True)  # Optional claim, e.g. "admin".
