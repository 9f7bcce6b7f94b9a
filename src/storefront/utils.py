"""Display helpers for storefront."""

from .cart import CartStore, StockIssue
from .models import Order, Product
from .pricing import PriceBreakdown


def format_money(amount: int) -> str:
    """Format a VND amount with thousands separators, e.g. '270,000 VND'."""
    return f"{amount:,} VND"


def truncate(text: str, width: int = 40) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


def format_product(product: Product) -> str:
    """Format a catalog product as one line."""
    stock = f"{product.quantity} in stock" if product.in_stock else "out of stock"
    rush = " [rush]" if product.rush_eligible else ""
    creator = product.attributes.get("creator")
    by = f" by {creator}" if creator else ""
    return (
        f"{product.id:>4}  {product.category.value:<4} {truncate(product.title)}{by}"
        f"  {format_money(product.price)} ({stock}){rush}"
    )


def format_cart(cart_store: CartStore) -> str:
    """Format the cart as lines plus a subtotal footer."""
    if cart_store.is_empty:
        return "Cart is empty."
    rows = [f"Cart ({cart_store.item_count} items):"]
    for line in cart_store.lines:
        rows.append(
            f"  {line.product_id:>4}  {truncate(line.product.title)}"
            f"  {line.quantity} x {format_money(line.product.price)}"
            f" = {format_money(line.line_total)}"
        )
    rows.append(f"  Subtotal: {format_money(cart_store.subtotal)}")
    return "\n".join(rows)


def format_pricing(pricing: PriceBreakdown) -> str:
    fee_label = "Delivery (rush)" if pricing.rush_applied else "Delivery"
    return "\n".join(
        [
            f"  Subtotal: {format_money(pricing.subtotal)}",
            f"  VAT:      {format_money(pricing.vat)}",
            f"  {fee_label}: {format_money(pricing.delivery_fee)}",
            f"  Total:    {format_money(pricing.total)}",
        ]
    )


def format_stock_issue(issue: StockIssue) -> str:
    return f"  {issue.product_id:>4}  {issue.format()}"


def format_order(order: Order, verbose: bool = False) -> str:
    """Format an order for display."""
    payment = ""
    if order.invoice is not None:
        payment = f" payment={order.invoice.payment_status.value}"
    result = (
        f"#{order.id}  {order.status.value:<10} {order.delivery_info.name}"
        f" <{order.customer_email}>  {format_money(order.total)}{payment}"
    )

    if verbose:
        info = order.delivery_info
        address = ", ".join(p for p in (info.address, info.ward, info.district, info.province) if p)
        result += f"\n    Deliver to: {address}"
        if info.message:
            result += f"\n    Message: {info.message}"
        for line in order.lines:
            rush = " (rush)" if line.rush_order else ""
            result += (
                f"\n    {line.quantity} x {truncate(line.product_title)}"
                f" @ {format_money(line.unit_price)}{rush}"
            )
        result += f"\n    Subtotal {format_money(order.subtotal)}, VAT {format_money(order.vat)}"
        result += f", delivery {format_money(order.delivery_fee)}"
        if order.cancel_reason:
            result += f"\n    Cancelled: {order.cancel_reason}"

    return result
