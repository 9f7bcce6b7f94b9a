"""Collaborator protocols (interfaces) consumed by the checkout engine.

The submission pipeline and lifecycle handlers depend only on these
protocols, so they work against the HTTP client, the in-process server
store, or test doubles alike.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Protocol

from .models import Order, OrderCreationRequest, OrderStatus, Product, ProductCategory, User

if TYPE_CHECKING:
    from .cart import StockIssue


class CatalogService(Protocol):
    def get_product(self, product_id: int) -> Product:
        """Fetch one product.

        Raises:
            ProductNotFoundError: If the product doesn't exist.
        """
        ...

    def list_products(
        self,
        category: ProductCategory | None = None,
        in_stock: bool | None = None,
    ) -> list[Product]:
        ...

    def check_stock(self, items: Iterable[tuple[int, int]]) -> list[StockIssue]:
        """Report (product_id, quantity) pairs that cannot be fulfilled."""
        ...


class OrderService(Protocol):
    def create_order(self, request: OrderCreationRequest) -> Order:
        ...

    def get_order(self, order_id: int) -> Order:
        ...

    def confirm_order(self, order_id: int) -> Order:
        ...

    def cancel_order(self, order_id: int, reason: str | None = None) -> Order:
        ...

    def update_order_status(self, order_id: int, status: OrderStatus) -> Order:
        ...

    def get_orders_by_customer(self, email: str) -> list[Order]:
        ...


class PaymentService(Protocol):
    def create_payment_redirect(self, order_id: int, amount: int, locale: str = "vn") -> str:
        """Return the gateway URL the customer is sent to."""
        ...


class UserAdminService(Protocol):
    def get_user(self, user_id: int) -> User:
        ...

    def block_user(self, user_id: int, reason: str) -> User:
        ...

    def unblock_user(self, user_id: int) -> User:
        ...
