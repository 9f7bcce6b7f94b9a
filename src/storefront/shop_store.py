"""Server-side storage for storefront: catalog, orders, invoices and users.

Everything lives in one JSON document. Read-modify-write operations hold an
exclusive file lock so concurrent requests on different orders cannot lose
each other's writes. The store is authoritative: it re-validates stock,
rush eligibility and totals for every order it creates, and applies the
lifecycle transitions from ``lifecycle``.
"""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator

from . import lifecycle
from .cart import INSUFFICIENT_STOCK, OUT_OF_STOCK, UNKNOWN_PRODUCT, StockIssue
from .checkout import validate_delivery
from .config import get_settings
from .errors import (
    EmptyCartError,
    InvoiceNotFoundError,
    OrderNotFoundError,
    PaymentAmountMismatchError,
    ProductNotFoundError,
    RushNotAvailableError,
    StockValidationError,
    UserNotFoundError,
    ValidationError,
)
from .models import (
    CartLine,
    DeliverySelection,
    Invoice,
    Order,
    OrderCreationRequest,
    OrderLine,
    OrderStatus,
    PaymentReturn,
    PaymentStatus,
    Product,
    ProductCategory,
    User,
    _utc_now,
)
from .pricing import PricingPolicy, calculate_delivery_fee, calculate_vat, is_rush_region

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
SHOP_FILE = "shop.json"


def _empty_data() -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "products": [],
        "orders": [],
        "users": [],
        "next_ids": {"order": 1, "line": 1, "invoice": 1},
    }


class ShopStore:
    """JSON-backed catalog, order and user store."""

    def __init__(self, config_dir: Path | None = None, policy: PricingPolicy | None = None):
        """
        Initialize ShopStore.

        Args:
            config_dir: Override data directory (for testing).
            policy: Fee schedule used to re-price orders.
        """
        self.config_dir = Path(config_dir or get_settings().data_dir)
        self.config_path = self.config_dir / SHOP_FILE
        self.policy = policy or PricingPolicy.from_settings()

    def _ensure_dir(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the shop file for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.config_dir / ".shop.lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load_data(self) -> dict[str, Any]:
        if not self.config_path.exists():
            return _empty_data()
        with open(self.config_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save_data(self, data: dict[str, Any]) -> None:
        """Save shop data to disk atomically."""
        self._ensure_dir()
        fd, temp_path = tempfile.mkstemp(dir=self.config_dir, prefix=".shop_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(temp_path, self.config_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    @staticmethod
    def _next_id(data: dict[str, Any], kind: str) -> int:
        value = data["next_ids"][kind]
        data["next_ids"][kind] = value + 1
        return value

    # --- Catalog ---

    def list_products(
        self,
        category: ProductCategory | None = None,
        in_stock: bool | None = None,
    ) -> list[Product]:
        products = [Product.from_dict(p) for p in self._load_data()["products"]]
        if category is not None:
            category = ProductCategory.parse(category)
            products = [p for p in products if p.category is category]
        if in_stock is not None:
            products = [p for p in products if p.in_stock == in_stock]
        return products

    def get_product(self, product_id: int) -> Product:
        """
        Raises:
            ProductNotFoundError: If the product doesn't exist.
        """
        for p in self._load_data()["products"]:
            if p["id"] == product_id:
                return Product.from_dict(p)
        raise ProductNotFoundError(product_id)

    def save_product(self, product: Product) -> Product:
        """Insert or replace a product by ID."""
        with self._lock():
            data = self._load_data()
            products = data["products"]
            for i, p in enumerate(products):
                if p["id"] == product.id:
                    products[i] = product.to_dict()
                    break
            else:
                products.append(product.to_dict())
            self._save_data(data)
        return product

    def check_stock(self, items: Iterable[tuple[int, int]]) -> list[StockIssue]:
        products = {p["id"]: p for p in self._load_data()["products"]}
        return [
            issue
            for product_id, quantity in items
            if (issue := self._stock_issue(products.get(product_id), product_id, quantity))
        ]

    @staticmethod
    def _stock_issue(
        product: dict[str, Any] | None, product_id: int, quantity: int
    ) -> StockIssue | None:
        if product is None:
            return StockIssue(product_id, "Unknown", quantity, 0, UNKNOWN_PRODUCT)
        if product["quantity"] <= 0:
            return StockIssue(product_id, product["title"], quantity, 0, OUT_OF_STOCK)
        if product["quantity"] < quantity:
            return StockIssue(
                product_id, product["title"], quantity, product["quantity"], INSUFFICIENT_STOCK
            )
        return None

    # --- Orders ---

    def _validate_request(self, request: OrderCreationRequest) -> None:
        if not request.items:
            raise EmptyCartError()
        info = request.delivery_info
        selection = DeliverySelection(
            name=info.name,
            email=info.email,
            phone=info.phone,
            province=info.province,
            district=info.district,
            ward=info.ward,
            address=info.address,
        )
        errors = validate_delivery(selection)
        bad_quantities = [i.product_id for i in request.items if i.quantity <= 0]
        if bad_quantities:
            errors["items"] = f"Quantity must be positive for products {bad_quantities}"
        seen: set[int] = set()
        for item in request.items:
            if item.product_id in seen:
                errors["items"] = f"Duplicate line for product {item.product_id}"
            seen.add(item.product_id)
        if errors:
            raise ValidationError(errors)

    def create_order(self, request: OrderCreationRequest) -> Order:
        """
        Create a PENDING order with a PENDING invoice and reserve its stock.

        Totals are recomputed from current catalog prices and the store's
        fee schedule; the client's delivery fee must agree.

        Raises:
            EmptyCartError: If the request has no items.
            ValidationError: If delivery fields, quantities or the fee are wrong.
            StockValidationError: If any line cannot be fulfilled.
            RushNotAvailableError: If rush is requested where it cannot apply.
        """
        self._validate_request(request)
        info = request.delivery_info

        with self._lock():
            data = self._load_data()
            products = {p["id"]: p for p in data["products"]}

            issues = [
                issue
                for item in request.items
                if (issue := self._stock_issue(products.get(item.product_id), item.product_id, item.quantity))
            ]
            if issues:
                raise StockValidationError(issues)

            lines = [
                CartLine(product=Product.from_dict(products[item.product_id]), quantity=item.quantity)
                for item in request.items
            ]
            rush_requested = any(item.rush_order for item in request.items)
            if rush_requested:
                if not is_rush_region(info.province, self.policy):
                    raise RushNotAvailableError(f"province {info.province!r} is not served")
                for item, line in zip(request.items, lines):
                    if item.rush_order and not line.product.rush_eligible:
                        raise RushNotAvailableError(f"'{line.product.title}' is not rush-eligible")

            delivery_fee = calculate_delivery_fee(lines, rush_requested, self.policy)
            if info.delivery_fee != delivery_fee:
                raise ValidationError(
                    {"delivery_fee": f"expected {delivery_fee}, got {info.delivery_fee}"}
                )

            order_lines = []
            for item, line in zip(request.items, lines):
                order_lines.append(
                    OrderLine(
                        id=self._next_id(data, "line"),
                        product_id=line.product.id,
                        product_title=line.product.title,
                        quantity=item.quantity,
                        unit_price=line.product.price,
                        rush_order=item.rush_order,
                        instructions=item.instructions,
                    )
                )
                products[item.product_id]["quantity"] -= item.quantity

            subtotal = sum(line.total_fee for line in order_lines)
            vat = calculate_vat(subtotal, self.policy)
            order_id = self._next_id(data, "order")
            total = subtotal + vat + delivery_fee
            order = Order(
                id=order_id,
                status=OrderStatus.PENDING,
                lines=order_lines,
                delivery_info=info,
                subtotal=subtotal,
                vat=vat,
                delivery_fee=delivery_fee,
                total=total,
                invoice=Invoice(
                    id=self._next_id(data, "invoice"),
                    order_id=order_id,
                    total_amount=total,
                    payment_method=request.payment_method,
                    description=f"Order #{order_id}",
                ),
            )
            data["orders"].append(order.to_dict())
            self._save_data(data)

        logger.info(
            "Order %s created: %d lines, total %d, rush=%s",
            order.id, len(order.lines), order.total, rush_requested,
        )
        return order

    def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        orders = [Order.from_dict(o) for o in self._load_data()["orders"]]
        if status is not None:
            status = OrderStatus.parse(status)
            orders = [o for o in orders if o.status is status]
        return sorted(orders, key=lambda o: o.id, reverse=True)

    def get_order(self, order_id: int) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order doesn't exist.
        """
        for o in self._load_data()["orders"]:
            if o["id"] == order_id:
                return Order.from_dict(o)
        raise OrderNotFoundError(order_id)

    def get_orders_by_customer(self, email: str) -> list[Order]:
        wanted = email.strip().casefold()
        return [o for o in self.list_orders() if o.customer_email.casefold() == wanted]

    @contextmanager
    def _editing_order(self, order_id: int) -> Iterator[tuple[dict[str, Any], Order]]:
        """Yield (data, order) under the lock and write the order back on success."""
        with self._lock():
            data = self._load_data()
            for i, o in enumerate(data["orders"]):
                if o["id"] == order_id:
                    order = Order.from_dict(o)
                    yield data, order
                    data["orders"][i] = order.to_dict()
                    self._save_data(data)
                    return
            raise OrderNotFoundError(order_id)

    def confirm_order(self, order_id: int) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order doesn't exist.
            InvalidTransitionError: If the order is not pending.
        """
        with self._editing_order(order_id) as (_, order):
            lifecycle.confirm(order)
        logger.info("Order %s confirmed", order_id)
        return order

    def cancel_order(self, order_id: int, reason: str | None = None) -> Order:
        """
        Cancel an order, returning its stock and closing its invoice.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            InvalidTransitionError: If the order can no longer be cancelled.
        """
        with self._editing_order(order_id) as (data, order):
            lifecycle.cancel(order, reason)
            self._restock(data, order)
            self._close_invoice(order)
        logger.info("Order %s cancelled: %s", order_id, reason or "no reason given")
        return order

    def update_order_status(self, order_id: int, status: OrderStatus) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order doesn't exist.
            InvalidTransitionError: If ``status`` is not the next step.
        """
        with self._editing_order(order_id) as (data, order):
            previous = order.status
            lifecycle.advance(order, status)
            if order.status is OrderStatus.CANCELLED:
                self._restock(data, order)
                self._close_invoice(order)
        logger.info("Order %s moved from %s to %s", order_id, previous.value, order.status.value)
        return order

    @staticmethod
    def _restock(data: dict[str, Any], order: Order) -> None:
        products = {p["id"]: p for p in data["products"]}
        for line in order.lines:
            product = products.get(line.product_id)
            if product is not None:
                product["quantity"] += line.quantity

    @staticmethod
    def _close_invoice(order: Order) -> None:
        if order.invoice is None:
            return
        if order.invoice.is_paid:
            order.invoice.payment_status = PaymentStatus.REFUNDED
        else:
            order.invoice.payment_status = PaymentStatus.CANCELLED

    def record_payment(self, result: PaymentReturn) -> Order:
        """
        Mark an order's invoice PAID or FAILED from a gateway return.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            InvoiceNotFoundError: If the order has no invoice.
            PaymentAmountMismatchError: If a successful payment has the wrong amount.
        """
        with self._editing_order(result.order_id) as (_, order):
            invoice = order.invoice
            if invoice is None:
                raise InvoiceNotFoundError(order.id)
            if result.success:
                if result.amount != order.total:
                    raise PaymentAmountMismatchError(order.id, order.total, result.amount)
                invoice.payment_status = PaymentStatus.PAID
                invoice.transaction_id = result.transaction_id
                invoice.paid_at = result.pay_date or _utc_now()
            elif not invoice.is_paid:
                invoice.payment_status = PaymentStatus.FAILED
        logger.info(
            "Payment for order %s recorded as %s", order.id, order.invoice.payment_status.value
        )
        return order

    # --- Users ---

    def list_users(self) -> list[User]:
        return [User.from_dict(u) for u in self._load_data()["users"]]

    def get_user(self, user_id: int) -> User:
        """
        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        for u in self._load_data()["users"]:
            if u["id"] == user_id:
                return User.from_dict(u)
        raise UserNotFoundError(user_id)

    def save_user(self, user: User) -> User:
        with self._lock():
            data = self._load_data()
            users = data["users"]
            for i, u in enumerate(users):
                if u["id"] == user.id:
                    users[i] = user.to_dict()
                    break
            else:
                users.append(user.to_dict())
            self._save_data(data)
        return user

    def _update_user(self, user_id: int, apply) -> User:
        with self._lock():
            data = self._load_data()
            for i, u in enumerate(data["users"]):
                if u["id"] == user_id:
                    user = apply(User.from_dict(u))
                    data["users"][i] = user.to_dict()
                    self._save_data(data)
                    return user
            raise UserNotFoundError(user_id)

    def block_user(self, user_id: int, reason: str) -> User:
        """
        Raises:
            UserNotFoundError: If the user doesn't exist.
            ValidationError: If no reason is given.
            InvalidTransitionError: If the user is already blocked.
        """
        user = self._update_user(user_id, lambda u: lifecycle.block_user(u, reason))
        logger.info("User %s blocked: %s", user_id, reason)
        return user

    def unblock_user(self, user_id: int) -> User:
        """
        Raises:
            UserNotFoundError: If the user doesn't exist.
            InvalidTransitionError: If the user is already active.
        """
        user = self._update_user(user_id, lifecycle.unblock_user)
        logger.info("User %s unblocked", user_id)
        return user

    # --- Demo data ---

    def seed(self, products: Iterable[Product], users: Iterable[User] = ()) -> None:
        """Replace catalog and users with the given records (orders are kept)."""
        with self._lock():
            data = self._load_data()
            data["products"] = [p.to_dict() for p in products]
            data["users"] = [u.to_dict() for u in users]
            self._save_data(data)


DEMO_PRODUCTS: tuple[Product, ...] = (
    Product(1, "Dế Mèn Phiêu Lưu Ký", 100000, 20, ProductCategory.BOOK, True, 0.4,
            "20x14x2 cm", "8934974178637", {"creator": "Tô Hoài"}),
    Product(2, "Clean Code", 350000, 5, ProductCategory.BOOK, False, 0.8,
            "24x18x3 cm", "9780132350884", {"creator": "Robert C. Martin"}),
    Product(3, "Kind of Blue", 250000, 8, ProductCategory.CD, True, 0.1,
            "14x12x1 cm", "0074646393520", {"creator": "Miles Davis"}),
    Product(4, "Spirited Away", 180000, 0, ProductCategory.DVD, False, 0.15,
            "19x14x1.5 cm", "0786936215595", {"creator": "Hayao Miyazaki"}),
    Product(5, "Abbey Road", 900000, 3, ProductCategory.LP, False, 0.3,
            "31x31x0.5 cm", "0094638246817", {"creator": "The Beatles"}),
)

DEMO_USERS: tuple[User, ...] = (
    User(1, "Admin", "admin@storefront.vn", role="ADMIN"),
    User(2, "Nguyễn Văn A", "customer@storefront.vn", phone="0912345678",
         address="1 Đại Cồ Việt"),
)
