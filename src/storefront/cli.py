"""Command-line interface for storefront."""

import argparse
import json
import logging
import sys
from contextlib import contextmanager
from typing import Iterator
from urllib.parse import parse_qsl, urlsplit

from . import __version__
from .cart import CartStore
from .checkout import CheckoutWizard
from .client import StorefrontApiClient
from .config import get_settings
from .errors import InvalidTransitionError, StorefrontError
from .lifecycle import OrderActions, UserAccountActions, can_advance
from .models import OrderStatus, PaymentMethod, ProductCategory
from .shop_store import DEMO_PRODUCTS, DEMO_USERS, ShopStore
from .storage import BlobStorage, SessionStore
from .submission import OrderSubmissionPipeline
from .utils import (
    format_cart,
    format_money,
    format_order,
    format_pricing,
    format_product,
    format_stock_issue,
)
from .vnpay import VNPayRedirects, parse_return, verify_return


@contextmanager
def open_services(args: argparse.Namespace) -> Iterator[ShopStore | StorefrontApiClient]:
    """The server store itself with --local, otherwise the HTTP API."""
    if args.local:
        yield ShopStore()
        return
    with StorefrontApiClient() as client:
        yield client


def get_cart_store() -> CartStore:
    return CartStore.load(BlobStorage())


def build_pipeline(
    args: argparse.Namespace,
    services: ShopStore | StorefrontApiClient,
    cart_store: CartStore,
    locale: str = "vn",
) -> OrderSubmissionPipeline:
    """Pipeline over the chosen services. With --local, payment URLs are signed in-process."""
    payments = VNPayRedirects(get_settings()) if args.local else services
    return OrderSubmissionPipeline(
        cart_store, orders=services, payments=payments, catalog=services, locale=locale
    )


def parse_return_params(values: list[str]) -> dict[str, str]:
    """Merge return URLs, query strings and key=value pairs into one mapping."""
    params: dict[str, str] = {}
    for value in values:
        query = urlsplit(value).query if "?" in value else value
        params.update(parse_qsl(query, keep_blank_values=True))
    return params


def cmd_seed(args: argparse.Namespace) -> int:
    """Write the demo catalog and users into the server store."""
    try:
        store = ShopStore()
        store.seed(DEMO_PRODUCTS, DEMO_USERS)
        print(f"Seeded {len(DEMO_PRODUCTS)} products and {len(DEMO_USERS)} users")
        print(f"  Store: {store.config_path}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_list(args: argparse.Namespace) -> int:
    """List catalog products."""
    try:
        category = ProductCategory.parse(args.category) if args.category else None
        with open_services(args) as services:
            products = services.list_products(category=category)

        if not products:
            print("No products found.")
            return 0

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2, ensure_ascii=False))
        else:
            print(f"Products ({len(products)}):")
            for product in products:
                print(format_product(product))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Cart ---


def cmd_cart_list(args: argparse.Namespace) -> int:
    """Show the persisted cart."""
    cart_store = get_cart_store()
    if args.json:
        print(json.dumps(cart_store.cart.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(format_cart(cart_store))
    return 0


def cmd_cart_add(args: argparse.Namespace) -> int:
    """Add a product to the cart."""
    try:
        with open_services(args) as services:
            product = services.get_product(args.product_id)

        cart_store = get_cart_store()
        before = cart_store.get_item_quantity(product.id)
        cart_store.add_item(product, args.quantity)
        after = cart_store.get_item_quantity(product.id)

        if after == before:
            print("Nothing added: quantity must be positive", file=sys.stderr)
            return 1
        print(f"Added {after - before} x {product.title} (now {after} in cart)")
        if after > product.quantity:
            print(f"  Warning: only {product.quantity} in stock")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cart_update(args: argparse.Namespace) -> int:
    """Set a cart line's quantity (0 removes it)."""
    cart_store = get_cart_store()
    if cart_store.get_item_quantity(args.product_id) == 0:
        print(f"Error: Product {args.product_id} is not in the cart", file=sys.stderr)
        return 1
    cart_store.update_quantity(args.product_id, args.quantity)
    quantity = cart_store.get_item_quantity(args.product_id)
    if quantity == 0:
        print(f"Removed product {args.product_id}")
    else:
        print(f"Product {args.product_id}: {quantity} in cart")
    return 0


def cmd_cart_remove(args: argparse.Namespace) -> int:
    cart_store = get_cart_store()
    if cart_store.get_item_quantity(args.product_id) == 0:
        print(f"Error: Product {args.product_id} is not in the cart", file=sys.stderr)
        return 1
    cart_store.remove_item(args.product_id)
    print(f"Removed product {args.product_id}")
    return 0


def cmd_cart_clear(args: argparse.Namespace) -> int:
    get_cart_store().clear_cart()
    print("Cart cleared")
    return 0


def cmd_cart_check(args: argparse.Namespace) -> int:
    """Check cart quantities against current stock."""
    try:
        cart_store = get_cart_store()
        if cart_store.is_empty:
            print("Cart is empty.")
            return 0

        with open_services(args) as services:
            issues = services.check_stock(
                (line.product_id, line.quantity) for line in cart_store.lines
            )

        if not issues:
            print("All items are available.")
            return 0

        print(f"Stock problems ({len(issues)}):")
        for issue in issues:
            print(format_stock_issue(issue))
        return 1

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Checkout ---


def cmd_checkout(args: argparse.Namespace) -> int:
    """Run the checkout wizard non-interactively and place the order."""
    try:
        storage = BlobStorage()
        cart_store = CartStore.load(storage)
        wizard = CheckoutWizard(cart_store, session=SessionStore(storage).session)

        fields = {
            name: getattr(args, name)
            for name in ("name", "email", "phone", "province", "district", "ward", "address", "message")
            if getattr(args, name) is not None
        }
        wizard.update_delivery(**fields)
        if args.rush and not wizard.set_rush_requested(True):
            print(f"Note: rush delivery is not available in {wizard.selection.province!r}")
        if args.rush_instructions:
            wizard.update_delivery(rush_instructions=args.rush_instructions)

        if not wizard.next():
            print("Delivery information is incomplete:", file=sys.stderr)
            for name, message in wizard.errors.items():
                print(f"  {name}: {message}", file=sys.stderr)
            return 1

        wizard.select_payment_method(args.payment)
        wizard.next()

        print("Order summary:")
        print(format_cart(cart_store))
        print(format_pricing(wizard.pricing))

        with open_services(args) as services:
            pipeline = build_pipeline(args, services, cart_store, locale=args.locale)
            result = pipeline.submit(wizard)

        print(f"Order #{result.order.id} placed: {format_money(result.order.total)}")
        if result.is_redirect:
            print("Complete payment at:")
            print(f"  {result.payment_url}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Payment ---


def cmd_payment_return(args: argparse.Namespace) -> int:
    """Apply the payment gateway's return to the pending checkout."""
    try:
        params = parse_return_params(args.params)
        if not params:
            print("Error: No return parameters given", file=sys.stderr)
            return 1

        cart_store = get_cart_store()
        with open_services(args) as services:
            if args.local:
                verify_return(params, get_settings().vnpay_hash_secret)
                result = parse_return(params)
                services.record_payment(result)
            else:
                result = services.verify_payment_return(params)
            pipeline = build_pipeline(args, services, cart_store)
            awaiting = pipeline.awaiting_payment
            pipeline.handle_payment_return(result)

        if result.success:
            print(f"Payment for order #{result.order_id} succeeded: {format_money(result.amount)}")
            if result.transaction_id:
                print(f"  Transaction: {result.transaction_id}")
        else:
            print(f"Payment for order #{result.order_id} failed (code {result.response_code})")
        if result.order_id != awaiting:
            print(f"  Order #{result.order_id} is not the pending checkout; cart left as is")
        elif result.success:
            print("Cart cleared")
        else:
            print("Cart kept; run checkout again to retry")
        return 0 if result.success else 1

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Orders ---


def cmd_orders_list(args: argparse.Namespace) -> int:
    try:
        with open_services(args) as services:
            if args.customer:
                orders = services.get_orders_by_customer(args.customer)
                if args.status:
                    orders = [o for o in orders if o.status is OrderStatus.parse(args.status)]
            else:
                orders = services.list_orders(status=args.status)

        if not orders:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2, ensure_ascii=False))
        else:
            print(f"Orders ({len(orders)}):")
            for order in orders:
                print(format_order(order))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    try:
        with open_services(args) as services:
            order = services.get_order(args.order_id)
        if args.json:
            print(json.dumps(order.to_dict(), indent=2, ensure_ascii=False))
        else:
            print(format_order(order, verbose=True))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_confirm(args: argparse.Namespace) -> int:
    try:
        with open_services(args) as services:
            order = services.get_order(args.order_id)
            result = OrderActions(services).confirm(order)

        if not result.ok:
            print(f"Error: {result.message}", file=sys.stderr)
            print(f"  Order #{result.order.id} is {result.order.status.value}", file=sys.stderr)
            return 1
        print(result.message)
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_cancel(args: argparse.Namespace) -> int:
    try:
        with open_services(args) as services:
            order = services.get_order(args.order_id)
            result = OrderActions(services).cancel(order, args.reason)

        if not result.ok:
            print(f"Error: {result.message}", file=sys.stderr)
            print(f"  Order #{result.order.id} is {result.order.status.value}", file=sys.stderr)
            return 1
        print(result.message)
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_advance(args: argparse.Namespace) -> int:
    """Move an order to the next fulfilment status."""
    try:
        target = OrderStatus.parse(args.status)
        with open_services(args) as services:
            order = services.get_order(args.order_id)
            if not can_advance(order.status, target):
                raise InvalidTransitionError(
                    "order", order.id, order.status.value, f"move to {target.value}"
                )
            order = services.update_order_status(order.id, target)

        print(f"Order #{order.id} is now {order.status.value}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Users ---


def cmd_users_block(args: argparse.Namespace) -> int:
    try:
        with open_services(args) as services:
            user = services.get_user(args.user_id)
            user = UserAccountActions(services).block(user, args.reason)
        print(f"Blocked user {user.id} ({user.email})")
        print(f"  Reason: {user.block_reason}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_users_unblock(args: argparse.Namespace) -> int:
    try:
        with open_services(args) as services:
            user = services.get_user(args.user_id)
            user = UserAccountActions(services).unblock(user, confirmed=args.yes)
        print(f"Unblocked user {user.id} ({user.email})")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        if not args.yes:
            print("  Pass --yes to confirm.", file=sys.stderr)
        return 1


# --- Server ---


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        store = ShopStore()
        if not store.config_path.exists():
            print("Warning: store is empty. Run 'storefront seed' first.", file=sys.stderr)
            print("Starting server anyway...", file=sys.stderr)

        print("Starting storefront API server...")
        print(f"Store: {store.config_path}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "storefront.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # Single worker; the store serializes writes with a file lock
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Cart, checkout and order management for the storefront.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--local", action="store_true",
        help="Use the server store directly instead of the HTTP API",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # seed
    subparsers.add_parser("seed", help="Write a demo catalog into the server store")

    # products (subcommand group)
    products_parser = subparsers.add_parser("products", help="Browse the catalog")
    products_subparsers = products_parser.add_subparsers(dest="products_command")

    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument(
        "--category", "-c", choices=[c.value for c in ProductCategory], help="Filter by category"
    )
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # cart (subcommand group)
    cart_parser = subparsers.add_parser("cart", help="Manage the shopping cart")
    cart_subparsers = cart_parser.add_subparsers(dest="cart_command")

    cart_list_parser = cart_subparsers.add_parser("list", help="Show the cart")
    cart_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    cart_add_parser = cart_subparsers.add_parser("add", help="Add a product")
    cart_add_parser.add_argument("product_id", type=int, help="Product ID")
    cart_add_parser.add_argument(
        "--quantity", "-q", type=int, default=1, help="Quantity to add (default: 1)"
    )

    cart_update_parser = cart_subparsers.add_parser("update", help="Set a line's quantity")
    cart_update_parser.add_argument("product_id", type=int, help="Product ID")
    cart_update_parser.add_argument("quantity", type=int, help="New quantity (0 removes)")

    cart_remove_parser = cart_subparsers.add_parser("remove", help="Remove a product")
    cart_remove_parser.add_argument("product_id", type=int, help="Product ID")

    cart_subparsers.add_parser("clear", help="Empty the cart")
    cart_subparsers.add_parser("check", help="Check quantities against stock")

    # checkout
    checkout_parser = subparsers.add_parser("checkout", help="Place an order for the cart")
    checkout_parser.add_argument("--name", help="Recipient name")
    checkout_parser.add_argument("--email", help="Contact email")
    checkout_parser.add_argument("--phone", help="Contact phone")
    checkout_parser.add_argument("--province", help="Province/City")
    checkout_parser.add_argument("--district", help="District")
    checkout_parser.add_argument("--ward", help="Ward")
    checkout_parser.add_argument("--address", help="Street address")
    checkout_parser.add_argument("--message", help="Delivery message")
    checkout_parser.add_argument("--rush", action="store_true", help="Request rush delivery")
    checkout_parser.add_argument("--rush-instructions", help="Rush delivery instructions")
    checkout_parser.add_argument(
        "--payment", default=PaymentMethod.CASH_ON_DELIVERY.value,
        choices=[m.value for m in PaymentMethod],
        help="Payment method (default: CASH_ON_DELIVERY)",
    )
    checkout_parser.add_argument(
        "--locale", default="vn", choices=["vn", "en"], help="Payment page language"
    )

    # payment (subcommand group)
    payment_parser = subparsers.add_parser("payment", help="Payment gateway callbacks")
    payment_subparsers = payment_parser.add_subparsers(dest="payment_command")

    payment_return_parser = payment_subparsers.add_parser(
        "return", help="Apply the gateway's return to the pending checkout"
    )
    payment_return_parser.add_argument(
        "params", nargs="+", help="Return URL, query string or key=value pairs"
    )

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="View and manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    status_choices = [s.value for s in OrderStatus]

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument(
        "--status", "-s", type=str.upper, choices=status_choices, help="Filter by status"
    )
    orders_list_parser.add_argument("--customer", help="Only orders for this email")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show one order")
    orders_show_parser.add_argument("order_id", type=int, help="Order ID")
    orders_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_confirm_parser = orders_subparsers.add_parser("confirm", help="Confirm a pending order")
    orders_confirm_parser.add_argument("order_id", type=int, help="Order ID")

    orders_cancel_parser = orders_subparsers.add_parser("cancel", help="Cancel an order")
    orders_cancel_parser.add_argument("order_id", type=int, help="Order ID")
    orders_cancel_parser.add_argument("--reason", "-r", help="Cancellation reason")

    orders_advance_parser = orders_subparsers.add_parser(
        "advance", help="Move an order to its next status"
    )
    orders_advance_parser.add_argument("order_id", type=int, help="Order ID")
    orders_advance_parser.add_argument(
        "status", type=str.upper, choices=status_choices, help="Target status"
    )

    # users (subcommand group)
    users_parser = subparsers.add_parser("users", help="Administer user accounts")
    users_subparsers = users_parser.add_subparsers(dest="users_command")

    users_block_parser = users_subparsers.add_parser("block", help="Block a user")
    users_block_parser.add_argument("user_id", type=int, help="User ID")
    users_block_parser.add_argument("--reason", "-r", required=True, help="Why the user is blocked")

    users_unblock_parser = users_subparsers.add_parser("unblock", help="Unblock a user")
    users_unblock_parser.add_argument("user_id", type=int, help="User ID")
    users_unblock_parser.add_argument(
        "--yes", "-y", action="store_true", help="Confirm the unblock"
    )

    return parser


GROUP_COMMANDS = {
    "products": ("products_command", {"list": cmd_products_list}),
    "cart": (
        "cart_command",
        {
            "list": cmd_cart_list,
            "add": cmd_cart_add,
            "update": cmd_cart_update,
            "remove": cmd_cart_remove,
            "clear": cmd_cart_clear,
            "check": cmd_cart_check,
        },
    ),
    "payment": ("payment_command", {"return": cmd_payment_return}),
    "orders": (
        "orders_command",
        {
            "list": cmd_orders_list,
            "show": cmd_orders_show,
            "confirm": cmd_orders_confirm,
            "cancel": cmd_orders_cancel,
            "advance": cmd_orders_advance,
        },
    ),
    "users": ("users_command", {"block": cmd_users_block, "unblock": cmd_users_unblock}),
}


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    # Handle subcommand groups
    if args.command in GROUP_COMMANDS:
        dest, handlers = GROUP_COMMANDS[args.command]
        subcommand = getattr(args, dest, None)
        if not subcommand:
            parser.parse_args([args.command, "--help"])
            return 0
        return handlers[subcommand](args)

    commands = {
        "serve": cmd_serve,
        "seed": cmd_seed,
        "checkout": cmd_checkout,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
