"""Stock-aware shopping cart.

The cart is deliberately permissive: quantities above available stock are
accepted and only reported by ``validate_against_stock``, which runs right
before an order request is built. The server re-checks stock at creation.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from .errors import ProductNotFoundError
from .models import CartLine, Product
from .storage import CART_BLOB, BlobStorage

if TYPE_CHECKING:
    from .services import CatalogService

logger = logging.getLogger(__name__)

# Stock issue kinds
INSUFFICIENT_STOCK = "insufficient_stock"
OUT_OF_STOCK = "out_of_stock"
UNKNOWN_PRODUCT = "unknown_product"
RUSH_MISMATCH = "rush_mismatch"


@dataclass(frozen=True)
class Cart:
    """Immutable cart snapshot. Totals are derived from the lines."""

    lines: tuple[CartLine, ...] = ()

    @property
    def subtotal(self) -> int:
        return sum(line.line_total for line in self.lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def find(self, product_id: int) -> CartLine | None:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def to_dict(self) -> dict:
        return {"lines": [line.to_dict() for line in self.lines]}

    @classmethod
    def from_dict(cls, data: dict) -> "Cart":
        return cls(lines=tuple(CartLine.from_dict(line) for line in data.get("lines", [])))


class CartStore:
    """Holds cart lines and persists the whole cart after every mutation."""

    def __init__(self, storage: BlobStorage | None = None, cart: Cart | None = None):
        self.storage = storage
        self._cart = cart or Cart()

    @classmethod
    def load(cls, storage: BlobStorage) -> "CartStore":
        """Restore the persisted cart, falling back to an empty one."""
        data = storage.load(CART_BLOB)
        cart = Cart()
        if data is not None:
            try:
                cart = Cart.from_dict(data)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Discarding invalid persisted cart: %s", exc)
        return cls(storage=storage, cart=cart)

    # Read accessors

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return self._cart.lines

    @property
    def subtotal(self) -> int:
        return self._cart.subtotal

    @property
    def item_count(self) -> int:
        return self._cart.item_count

    @property
    def is_empty(self) -> bool:
        return self._cart.is_empty

    def get_item_quantity(self, product_id: int) -> int:
        """Quantity of a product in the cart, 0 when absent."""
        line = self._cart.find(product_id)
        return line.quantity if line else 0

    # Mutations

    def _replace(self, lines: Iterable[CartLine]) -> None:
        self._cart = Cart(lines=tuple(lines))
        if self.storage is not None:
            self.storage.save(CART_BLOB, self._cart.to_dict())

    def add_item(self, product: Product, quantity: int = 1) -> None:
        """
        Add a product, merging with an existing line for the same product.

        Quantities above available stock are accepted. Non-positive
        quantities are ignored.
        """
        if quantity <= 0:
            return

        if self._cart.find(product.id) is None:
            self._replace([*self._cart.lines, CartLine(product=product, quantity=quantity)])
        else:
            self._replace(
                CartLine(product=line.product, quantity=line.quantity + quantity)
                if line.product_id == product.id
                else line
                for line in self._cart.lines
            )

        if self.get_item_quantity(product.id) > product.quantity:
            logger.debug(
                "Cart quantity for product %s exceeds stock (%d > %d)",
                product.id, self.get_item_quantity(product.id), product.quantity,
            )

    def update_quantity(self, product_id: int, quantity: int) -> None:
        """Replace a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(product_id)
            return
        if self._cart.find(product_id) is None:
            return
        self._replace(
            CartLine(product=line.product, quantity=quantity)
            if line.product_id == product_id
            else line
            for line in self._cart.lines
        )

    def remove_item(self, product_id: int) -> None:
        if self._cart.find(product_id) is None:
            return
        self._replace(line for line in self._cart.lines if line.product_id != product_id)

    def clear_cart(self) -> None:
        self._replace(())


@dataclass(frozen=True)
class StockIssue:
    """A line-level problem found before building an order request."""

    product_id: int
    title: str
    requested: int
    available: int
    kind: str = INSUFFICIENT_STOCK

    @property
    def blocking(self) -> bool:
        return self.kind in (INSUFFICIENT_STOCK, OUT_OF_STOCK, UNKNOWN_PRODUCT, RUSH_MISMATCH)

    def format(self) -> str:
        if self.kind == UNKNOWN_PRODUCT:
            return f"product {self.product_id} no longer exists"
        if self.kind == RUSH_MISMATCH:
            return f"'{self.title}' rush eligibility changed"
        if self.kind == OUT_OF_STOCK:
            return f"'{self.title}' is out of stock"
        return f"'{self.title}' requested {self.requested}, only {self.available} available"

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "title": self.title,
            "requested": self.requested,
            "available": self.available,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StockIssue":
        return cls(
            product_id=int(data["product_id"]),
            title=data.get("title", "Unknown"),
            requested=int(data.get("requested", 0)),
            available=int(data.get("available", 0)),
            kind=data.get("kind", INSUFFICIENT_STOCK),
        )


def validate_against_stock(
    lines: Iterable[CartLine],
    catalog: "CatalogService | None" = None,
    rush_requested: bool = False,
) -> list[StockIssue]:
    """
    Check cart lines against stock.

    Without a catalog the products held by the cart lines are used. With a
    catalog each product is re-fetched and the catalog is the source of
    truth; when rush delivery is requested a changed rush flag is reported
    as blocking.
    """
    issues: list[StockIssue] = []
    for line in lines:
        product = line.product
        if catalog is not None:
            try:
                current = catalog.get_product(product.id)
            except ProductNotFoundError:
                issues.append(
                    StockIssue(product.id, product.title, line.quantity, 0, UNKNOWN_PRODUCT)
                )
                continue
            if rush_requested and current.rush_eligible != product.rush_eligible:
                issues.append(
                    StockIssue(
                        product.id, current.title, line.quantity, current.quantity, RUSH_MISMATCH
                    )
                )
            product = current

        if product.quantity <= 0:
            issues.append(StockIssue(product.id, product.title, line.quantity, 0, OUT_OF_STOCK))
        elif line.quantity > product.quantity:
            issues.append(
                StockIssue(product.id, product.title, line.quantity, product.quantity)
            )
    return issues
