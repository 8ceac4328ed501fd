from typing import Dict, List, Optional

from .cart import CartStore
from .orders import OrderService, validate_customer, validate_shipping_address
from .pricing import calculate_totals
from .schemas import Customer, PlaceOrderResult, ShippingAddress

STEP_TITLES = ("Personal information", "Shipping address", "Review and payment")

# Destination countries offered at checkout.
COUNTRIES = {
    "AR": "Argentina",
    "US": "United States",
    "BR": "Brazil",
    "UY": "Uruguay",
    "CL": "Chile",
}


class CheckoutSession:
    """
    Three-step checkout: customer details, shipping address, review.

    Each forward step validates the data it collects. Totals are recomputed
    from the cart whenever the destination country changes.
    """

    def __init__(self, cart: CartStore, orders: OrderService, user_id: Optional[str] = None):
        self.cart = cart
        self.orders = orders
        self.user_id = user_id
        self.current_step = 1
        self.completed = set()
        self.customer = Customer()
        self.shipping_address = ShippingAddress()
        self.errors: List[str] = []
        self.totals = calculate_totals(self.cart.total(), self.shipping_address.country)

    def to_state(self) -> Dict:
        """JSON-ready snapshot of the session, enough to resume it later."""
        return {
            "current_step": self.current_step,
            "completed": sorted(self.completed),
            "customer": self.customer.model_dump(),
            "shipping_address": self.shipping_address.model_dump(),
        }

    @classmethod
    def from_state(
        cls, cart: CartStore, orders: OrderService, state: Optional[Dict], user_id: Optional[str] = None
    ) -> "CheckoutSession":
        session = cls(cart, orders, user_id)
        if state:
            session.current_step = state.get("current_step", 1)
            session.completed = set(state.get("completed", []))
            session.customer = Customer.model_validate(state.get("customer", {}))
            session.shipping_address = ShippingAddress.model_validate(state.get("shipping_address", {}))
            session.recalculate()
        return session

    def recalculate(self) -> Dict:
        self.totals = calculate_totals(self.cart.total(), self.shipping_address.country)
        return self.totals

    def set_country(self, country: str):
        self.shipping_address = self.shipping_address.model_copy(update={"country": country})
        self.recalculate()

    def next_step(self) -> bool:
        """Validate the current step and move on; returns False and keeps errors when invalid."""
        if self.current_step == 1:
            self.errors = validate_customer(self.customer)
        elif self.current_step == 2:
            self.errors = validate_shipping_address(self.shipping_address)
        else:
            self.errors = []
            return False
        if self.errors:
            return False
        if self.current_step == 2:
            self.recalculate()
        self.completed.add(self.current_step)
        self.current_step += 1
        return True

    def previous_step(self):
        if self.current_step > 1:
            self.current_step -= 1
            self.completed.discard(self.current_step)

    def steps(self) -> List[Dict]:
        return [
            {
                "id": index,
                "title": title,
                "completed": index in self.completed,
                "active": index == self.current_step,
            }
            for index, title in enumerate(STEP_TITLES, start=1)
        ]

    def complete(self) -> PlaceOrderResult:
        if self.current_step != len(STEP_TITLES):
            message = "Checkout is not ready for review"
            return PlaceOrderResult(success=False, error=message, errors=[message])
        return self.orders.place_order(self.customer, self.shipping_address, self.user_id)
