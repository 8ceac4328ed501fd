"""
Plain-text documents built from in-memory orders: customer invoices and the
admin order report.
"""

from datetime import date
from typing import Optional, Sequence

from .admin import count_by_status, total_revenue
from .schemas import Order

STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

RULE = "=" * 38
THIN_RULE = "-" * 38


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def invoice_filename(order: Order) -> str:
    return f"invoice-{order.order_number}.txt"


def report_filename(today: Optional[date] = None) -> str:
    return f"orders-report-{(today or date.today()).isoformat()}.txt"


def generate_invoice_text(order: Order) -> str:
    customer = order.customer
    address = order.shipping_address
    lines = [
        f"INVOICE - {order.order_number}",
        RULE,
        "",
        "CUSTOMER:",
        customer.full_name,
        customer.email,
        customer.phone,
        "",
        "SHIPPING ADDRESS:",
        address.street,
        f"{address.city}, {address.state}",
        address.zip_code,
        address.country,
        "",
        "PRODUCTS:",
        RULE,
    ]
    lines += [f"{item.product_name} x{item.quantity} - ${item.line_total:.2f}" for item in order.items]
    lines += [
        "",
        "TOTALS:",
        RULE,
        f"Subtotal: ${order.subtotal:.2f}",
        f"Shipping: ${order.shipping:.2f}",
        f"Tax: ${order.tax:.2f}",
        f"TOTAL: ${order.total:.2f}",
        "",
        f"Date: {order.created_at.date().isoformat()}",
        f"Status: {status_label(order.status)}",
        "",
        "Thank you for your purchase!",
    ]
    return "\n".join(lines)


def generate_order_report(
    orders: Sequence[Order], all_orders: Optional[Sequence[Order]] = None, today: Optional[date] = None
) -> str:
    """
    Summary of the given (usually filtered) orders.

    Per-status counts are taken over all_orders when supplied, so the
    breakdown reflects the whole book even when the detail is filtered.
    """
    counts = count_by_status(all_orders if all_orders is not None else orders)
    lines = [
        "ORDER REPORT",
        RULE,
        f"Generated: {(today or date.today()).isoformat()}",
        f"Total orders: {len(orders)}",
        f"Total revenue: ${total_revenue(orders):.2f}",
        "",
        "BY STATUS:",
        THIN_RULE,
    ]
    lines += [f"{STATUS_LABELS[status]}: {count}" for status, count in counts.items()]
    lines += ["", "ORDER DETAIL:", RULE]
    for order in orders:
        lines += [
            f"Order: {order.order_number}",
            f"Customer: {order.customer.full_name}",
            f"Email: {order.customer.email}",
            f"Total: ${order.total:.2f}",
            f"Status: {status_label(order.status)}",
            f"Date: {order.created_at.date().isoformat()}",
            "---",
        ]
    return "\n".join(lines)
