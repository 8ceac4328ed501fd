import json
import logging
import re
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import Cookie, Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from . import config
from .admin import AdminService, AllowListRoleResolver, AnyRoleResolver, ClaimRoleResolver, filter_orders
from .cart import CART_SLOT, CartStore
from .catalog import CatalogService, load_current_user
from .checkout import CheckoutSession
from .errors import NotAuthorized
from .filters import FilterStore
from .messaging.bus import create_publisher
from .orders import OrderService
from .pricing import calculate_totals
from .reports import generate_invoice_text, generate_order_report, invoice_filename, report_filename
from .schemas import (
    CategoryForm,
    CurrentUser,
    Customer,
    OperationResult,
    PlaceOrderResult,
    ProductForm,
    ShippingAddress,
    SortKey,
)
from .storage import LocalStorage
from .store import RowStore, create_store

logger = logging.getLogger(__name__)

# Guests are told apart by a token the server issues on their first call.
CART_COOKIE = "cart_id"
CART_ID_RE = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


# --- Request Models ---
class CartItemRequest(BaseModel):
    """Adds a product to the cart."""
    product_id: int
    quantity: int = Field(default=1, ge=1)


class QuantityRequest(BaseModel):
    """Sets a cart line's quantity; zero removes the line."""
    quantity: int


class CheckoutRequest(BaseModel):
    customer: Customer
    shipping_address: ShippingAddress


class CountryRequest(BaseModel):
    country: str


class StatusRequest(BaseModel):
    status: str


def _result(result: OperationResult, status_code: int = 200):
    if result.success:
        return JSONResponse(status_code=status_code, content={"status": "ok"})
    return JSONResponse(status_code=400, content={"error": result.error, "errors": result.errors})


def _order_reply(result: PlaceOrderResult, response: Response) -> dict:
    if result.errors:
        response.status_code = 400
        return {"error": result.error, "errors": result.errors}
    if not result.success:
        response.status_code = 502
        return {"error": result.error, "partial": result.partial}
    response.status_code = 201
    return {
        "status": "created",
        "order": result.order.model_dump(mode="json"),
        "stock_errors": result.stock_errors,
    }


def _session_view(session: CheckoutSession) -> dict:
    return {
        "current_step": session.current_step,
        "steps": session.steps(),
        "customer": session.customer.model_dump(),
        "shipping_address": session.shipping_address.model_dump(),
        "totals": {k: str(v) for k, v in session.totals.items()},
        "errors": session.errors,
    }


def create_app(
    store: Optional[RowStore] = None,
    storage: Optional[LocalStorage] = None,
    roles=None,
    publisher=None,
) -> FastAPI:
    """Wire the services over one row store and return the FastAPI app."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    store = store or create_store()
    storage = storage or LocalStorage(config.LOCAL_STORAGE_PATH)
    if roles is None:
        if not config.ADMIN_EMAILS:
            logger.warning("ADMIN_EMAILS is empty, only users with the admin role claim can use admin routes")
        roles = AnyRoleResolver(AllowListRoleResolver(), ClaimRoleResolver())
    publisher = publisher or create_publisher()

    catalog = CatalogService(store)
    admin = AdminService(store, roles, publisher)

    app = FastAPI(title="Storefront API")

    @app.exception_handler(NotAuthorized)
    async def not_authorized(request: Request, exc: NotAuthorized):
        return JSONResponse(status_code=403, content={"error": str(exc)})

    # --- Dependencies ---
    def current_user(
        x_user_id: Optional[str] = Header(default=None),
        x_user_email: Optional[str] = Header(default=None),
    ) -> Optional[CurrentUser]:
        """Identity forwarded by the upstream auth gateway, enriched with the profile row."""
        if not x_user_id:
            return None
        return load_current_user(store, x_user_id, x_user_email or "")

    def require_user(user: Optional[CurrentUser] = Depends(current_user)) -> CurrentUser:
        if user is None:
            raise HTTPException(status_code=401, detail="Sign in required")
        return user

    def cart_key(
        response: Response,
        user: Optional[CurrentUser] = Depends(current_user),
        x_cart_id: Optional[str] = Header(default=None),
        cart_id: Optional[str] = Cookie(default=None),
    ) -> str:
        """Storage slot of the caller's cart: per user when signed in, per cart token otherwise."""
        if user:
            return f"{CART_SLOT}:user:{user.id}"
        token = x_cart_id or cart_id
        if not token or not CART_ID_RE.match(token):
            token = uuid.uuid4().hex
            logger.info("Issued new guest cart %s", token)
        response.set_cookie(CART_COOKIE, token, httponly=True, samesite="lax")
        response.headers["X-Cart-Id"] = token
        return f"{CART_SLOT}:guest:{token}"

    def cart_for(key: str = Depends(cart_key)) -> CartStore:
        # Built per request; the storage lock keeps concurrent edits of one slot consistent.
        return CartStore(storage, key)

    def orders_for(cart: CartStore = Depends(cart_for)) -> OrderService:
        return OrderService(store, cart, publisher)

    def cart_view(cart: CartStore):
        return {
            "items": [item.model_dump(mode="json") for item in cart.get_items()],
            "count": cart.count(),
            "total": str(cart.total()),
        }

    def session_slot(key: str) -> str:
        return f"checkout:{key}"

    def load_session(key, cart, orders, user) -> CheckoutSession:
        saved = storage.get_item(session_slot(key))
        state = None
        if saved:
            try:
                state = json.loads(saved)
            except ValueError as e:
                logger.warning("Discarding unreadable checkout session for %s: %s", key, e)
        return CheckoutSession.from_state(cart, orders, state, user.id if user else None)

    def edit_session(response, key, cart, orders, user, change):
        """Load, change and save the caller's checkout session as one locked step."""
        with storage.lock:
            session = load_session(key, cart, orders, user)
            moved = change(session)
            storage.set_item(session_slot(key), json.dumps(session.to_state()))
        if moved is False and session.errors:
            response.status_code = 400
        return _session_view(session)

    # --- Endpoints ---
    @app.get("/")
    def root():
        """Health check endpoint."""
        return {"message": "Storefront service is running"}

    @app.get("/api/v1/products")
    def list_products(
        search_term: str = "",
        category_id: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        sort_by: SortKey = "name",
    ):
        filters = FilterStore()
        try:
            filters.update(
                search_term=search_term,
                category_id=category_id,
                min_price=min_price,
                max_price=max_price,
                sort_by=sort_by,
            )
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid filter options")
        return [p.model_dump(mode="json") for p in catalog.browse(filters.current())]

    @app.get("/api/v1/products/{product_id}")
    def get_product(product_id: int):
        product = catalog.get_product(product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        return product.model_dump(mode="json")

    @app.get("/api/v1/categories")
    def list_categories():
        return [c.model_dump() for c in catalog.get_categories()]

    @app.get("/api/v1/categories/{category_id}/products")
    def list_category_products(category_id: int):
        return [p.model_dump(mode="json") for p in catalog.get_products_by_category(category_id)]

    # Cart
    @app.get("/api/v1/cart")
    def get_cart(cart: CartStore = Depends(cart_for)):
        return cart_view(cart)

    @app.post("/api/v1/cart/items")
    def add_to_cart(req: CartItemRequest, cart: CartStore = Depends(cart_for)):
        product = catalog.get_product(req.product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        cart.add(product, req.quantity)
        return cart_view(cart)

    @app.put("/api/v1/cart/items/{product_id}")
    def update_cart_item(product_id: int, req: QuantityRequest, cart: CartStore = Depends(cart_for)):
        cart.update_quantity(product_id, req.quantity)
        return cart_view(cart)

    @app.delete("/api/v1/cart/items/{product_id}")
    def remove_cart_item(product_id: int, cart: CartStore = Depends(cart_for)):
        cart.remove(product_id)
        return cart_view(cart)

    @app.delete("/api/v1/cart")
    def clear_cart(cart: CartStore = Depends(cart_for)):
        cart.clear()
        return cart_view(cart)

    # Checkout
    @app.get("/api/v1/checkout/quote")
    def checkout_quote(country: str = "AR", cart: CartStore = Depends(cart_for)):
        """Totals for the current cart shipped to the given country."""
        return {k: str(v) for k, v in calculate_totals(cart.total(), country).items()}

    @app.post("/api/v1/checkout")
    def checkout(
        req: CheckoutRequest,
        response: Response,
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        """Walks all three checkout steps in one call."""
        session = CheckoutSession(cart, orders, user.id if user else None)
        session.customer = req.customer
        session.shipping_address = req.shipping_address
        if not (session.next_step() and session.next_step()):
            response.status_code = 400
            return {"error": session.errors[0], "errors": session.errors}
        return _order_reply(session.complete(), response)

    @app.get("/api/v1/checkout/session")
    def get_checkout_session(
        response: Response,
        key: str = Depends(cart_key),
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        return _session_view(load_session(key, cart, orders, user))

    @app.put("/api/v1/checkout/session/customer")
    def set_checkout_customer(
        customer: Customer,
        response: Response,
        key: str = Depends(cart_key),
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        def change(session):
            session.customer = customer
        return edit_session(response, key, cart, orders, user, change)

    @app.put("/api/v1/checkout/session/address")
    def set_checkout_address(
        address: ShippingAddress,
        response: Response,
        key: str = Depends(cart_key),
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        def change(session):
            session.shipping_address = address
            session.recalculate()
        return edit_session(response, key, cart, orders, user, change)

    @app.put("/api/v1/checkout/session/country")
    def set_checkout_country(
        req: CountryRequest,
        response: Response,
        key: str = Depends(cart_key),
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        return edit_session(response, key, cart, orders, user, lambda session: session.set_country(req.country))

    @app.post("/api/v1/checkout/session/next")
    def checkout_next_step(
        response: Response,
        key: str = Depends(cart_key),
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        return edit_session(response, key, cart, orders, user, lambda session: session.next_step())

    @app.post("/api/v1/checkout/session/previous")
    def checkout_previous_step(
        response: Response,
        key: str = Depends(cart_key),
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        return edit_session(response, key, cart, orders, user, lambda session: session.previous_step())

    @app.post("/api/v1/checkout/session/complete")
    def complete_checkout_session(
        response: Response,
        key: str = Depends(cart_key),
        user: Optional[CurrentUser] = Depends(current_user),
        cart: CartStore = Depends(cart_for),
        orders: OrderService = Depends(orders_for),
    ):
        result = load_session(key, cart, orders, user).complete()
        if result.success:
            storage.remove_item(session_slot(key))
        return _order_reply(result, response)

    # Orders
    @app.get("/api/v1/orders")
    def my_orders(user: CurrentUser = Depends(require_user), orders: OrderService = Depends(orders_for)):
        return [o.model_dump(mode="json") for o in orders.get_user_orders(user.id)]

    def visible_order(order_number, user, orders):
        order = orders.get_order_by_number(order_number)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        owner = order.user_id is None or (user is not None and order.user_id == user.id)
        if not owner and not admin.is_admin(user):
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    @app.get("/api/v1/orders/{order_number}")
    def get_order(
        order_number: str,
        user: Optional[CurrentUser] = Depends(current_user),
        orders: OrderService = Depends(orders_for),
    ):
        return visible_order(order_number, user, orders).model_dump(mode="json")

    @app.get("/api/v1/orders/{order_number}/invoice", response_class=PlainTextResponse)
    def get_invoice(
        order_number: str,
        user: Optional[CurrentUser] = Depends(current_user),
        orders: OrderService = Depends(orders_for),
    ):
        order = visible_order(order_number, user, orders)
        return PlainTextResponse(
            generate_invoice_text(order),
            headers={"Content-Disposition": f'attachment; filename="{invoice_filename(order)}"'},
        )

    # Admin
    @app.get("/api/v1/admin/stats")
    def admin_stats(user: Optional[CurrentUser] = Depends(current_user)):
        return admin.get_dashboard_stats(user).model_dump(mode="json")

    @app.get("/api/v1/admin/products/low-stock")
    def admin_low_stock(user: Optional[CurrentUser] = Depends(current_user)):
        return [p.model_dump(mode="json") for p in admin.get_low_stock_products(user)]

    @app.post("/api/v1/admin/products")
    def admin_create_product(form: ProductForm, user: Optional[CurrentUser] = Depends(current_user)):
        return _result(admin.create_product(user, form), status_code=201)

    @app.put("/api/v1/admin/products/{product_id}")
    def admin_update_product(
        product_id: int, form: ProductForm, user: Optional[CurrentUser] = Depends(current_user)
    ):
        return _result(admin.update_product(user, product_id, form))

    @app.delete("/api/v1/admin/products/{product_id}")
    def admin_delete_product(product_id: int, user: Optional[CurrentUser] = Depends(current_user)):
        return _result(admin.delete_product(user, product_id))

    @app.post("/api/v1/admin/categories")
    def admin_create_category(form: CategoryForm, user: Optional[CurrentUser] = Depends(current_user)):
        return _result(admin.create_category(user, form), status_code=201)

    @app.put("/api/v1/admin/categories/{category_id}")
    def admin_update_category(
        category_id: int, form: CategoryForm, user: Optional[CurrentUser] = Depends(current_user)
    ):
        return _result(admin.update_category(user, category_id, form))

    @app.delete("/api/v1/admin/categories/{category_id}")
    def admin_delete_category(category_id: int, user: Optional[CurrentUser] = Depends(current_user)):
        return _result(admin.delete_category(user, category_id))

    def admin_order_view(user, status, search_term, date_from, date_to):
        all_orders = admin.get_all_orders(user)
        return all_orders, filter_orders(all_orders, status, search_term, date_from, date_to)

    @app.get("/api/v1/admin/orders")
    def admin_orders(
        status: str = "all",
        search_term: str = "",
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        user: Optional[CurrentUser] = Depends(current_user),
    ):
        _, filtered = admin_order_view(user, status, search_term, date_from, date_to)
        return [o.model_dump(mode="json") for o in filtered]

    @app.get("/api/v1/admin/orders/report", response_class=PlainTextResponse)
    def admin_orders_report(
        status: str = "all",
        search_term: str = "",
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        user: Optional[CurrentUser] = Depends(current_user),
    ):
        all_orders, filtered = admin_order_view(user, status, search_term, date_from, date_to)
        return PlainTextResponse(
            generate_order_report(filtered, all_orders),
            headers={"Content-Disposition": f'attachment; filename="{report_filename()}"'},
        )

    @app.put("/api/v1/admin/orders/{order_id}/status")
    def admin_order_status(
        order_id: int, req: StatusRequest, user: Optional[CurrentUser] = Depends(current_user)
    ):
        return _result(admin.update_order_status(user, order_id, req.status))

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
