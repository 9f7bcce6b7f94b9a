"""Order status lifecycle and user account guards.

The server applies the transitions (``confirm``, ``cancel``, ``advance``,
``block_user``, ``unblock_user``). Clients evaluate the same guard
predicates to decide which actions to offer, and always re-read the status
they evaluate so a stale view never offers an action the server rejects.
"""

import logging
from dataclasses import dataclass

from .errors import (
    ConfirmationRequiredError,
    InvalidTransitionError,
    ValidationError,
)
from .models import Order, OrderStatus, User, _utc_now
from .services import OrderService, UserAdminService

logger = logging.getLogger(__name__)

# Forward-only fulfilment path
HAPPY_PATH: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

CANCELLABLE: frozenset[OrderStatus] = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

TERMINAL: frozenset[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


# --- Guard predicates ---


def can_confirm(status: OrderStatus | str) -> bool:
    return OrderStatus.parse(status) is OrderStatus.PENDING


def can_cancel(status: OrderStatus | str) -> bool:
    return OrderStatus.parse(status) in CANCELLABLE


def next_status(status: OrderStatus | str) -> OrderStatus | None:
    """The next happy-path status, or None when terminal."""
    status = OrderStatus.parse(status)
    if status in TERMINAL:
        return None
    return HAPPY_PATH[HAPPY_PATH.index(status) + 1]


def can_advance(status: OrderStatus | str, target: OrderStatus | str) -> bool:
    """True if ``target`` is the single next step on the happy path."""
    target = OrderStatus.parse(target)
    if target is OrderStatus.CANCELLED:
        return can_cancel(status)
    return next_status(status) is target


def can_block(user: User) -> bool:
    return user.is_active


def can_unblock(user: User) -> bool:
    return not user.is_active


# --- Server-side transitions ---


def confirm(order: Order) -> Order:
    """
    PENDING -> CONFIRMED.

    Raises:
        InvalidTransitionError: If the order is not pending.
    """
    if not can_confirm(order.status):
        raise InvalidTransitionError("order", order.id, order.status.value, "confirm")
    order.status = OrderStatus.CONFIRMED
    order.updated_at = _utc_now()
    return order


def cancel(order: Order, reason: str | None = None) -> Order:
    """
    PENDING/CONFIRMED -> CANCELLED. Irreversible.

    Raises:
        InvalidTransitionError: If the order is past confirmation or already cancelled.
    """
    if not can_cancel(order.status):
        raise InvalidTransitionError("order", order.id, order.status.value, "cancel")
    order.status = OrderStatus.CANCELLED
    order.cancel_reason = reason.strip() if reason and reason.strip() else None
    order.updated_at = _utc_now()
    return order


def advance(order: Order, target: OrderStatus | str) -> Order:
    """
    Move an order one step forward (or cancel it where allowed).

    Raises:
        InvalidTransitionError: If ``target`` is not reachable in one step.
    """
    target = OrderStatus.parse(target)
    if target is OrderStatus.CANCELLED:
        return cancel(order)
    if not can_advance(order.status, target):
        raise InvalidTransitionError(
            "order", order.id, order.status.value, f"move to {target.value}"
        )
    order.status = target
    order.updated_at = _utc_now()
    return order


def block_user(user: User, reason: str) -> User:
    """
    Raises:
        ValidationError: If no reason is given.
        InvalidTransitionError: If the user is already blocked.
    """
    if not reason or not reason.strip():
        raise ValidationError({"reason": "A reason is required to block a user"})
    if not can_block(user):
        raise InvalidTransitionError("user", user.id, "blocked", "block")
    user.is_active = False
    user.block_reason = reason.strip()
    return user


def unblock_user(user: User) -> User:
    """
    Raises:
        InvalidTransitionError: If the user is already active.
    """
    if not can_unblock(user):
        raise InvalidTransitionError("user", user.id, "active", "unblock")
    user.is_active = True
    user.block_reason = None
    return user


# --- Client-side action handlers ---


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a lifecycle action as shown to the user."""

    ok: bool
    order: Order
    message: str = ""


class OrderActions:
    """Confirm/cancel handlers for the admin and customer order views."""

    def __init__(self, orders: OrderService):
        self.orders = orders

    def available_actions(self, order: Order) -> dict[str, bool]:
        return {"confirm": can_confirm(order.status), "cancel": can_cancel(order.status)}

    def confirm(self, order: Order) -> ActionResult:
        """
        Confirm an order.

        Raises:
            InvalidTransitionError: If the local guard already forbids it.
            TransportError: If the service cannot be reached.
        """
        if not can_confirm(order.status):
            raise InvalidTransitionError("order", order.id, order.status.value, "confirm")
        try:
            updated = self.orders.confirm_order(order.id)
        except InvalidTransitionError as exc:
            return self._rejected(order, exc)
        logger.info("Order %s confirmed", updated.id)
        return ActionResult(ok=True, order=updated, message=f"Order {updated.id} confirmed")

    def cancel(self, order: Order, reason: str | None = None) -> ActionResult:
        """
        Cancel an order.

        Raises:
            InvalidTransitionError: If the local guard already forbids it.
            TransportError: If the service cannot be reached.
        """
        if not can_cancel(order.status):
            raise InvalidTransitionError("order", order.id, order.status.value, "cancel")
        try:
            updated = self.orders.cancel_order(order.id, reason)
        except InvalidTransitionError as exc:
            return self._rejected(order, exc)
        logger.info("Order %s cancelled", updated.id)
        return ActionResult(ok=True, order=updated, message=f"Order {updated.id} cancelled")

    def _rejected(self, order: Order, exc: InvalidTransitionError) -> ActionResult:
        """The server refused: show the order's current status instead."""
        logger.warning("Server rejected action on order %s: %s", order.id, exc)
        refreshed = self.orders.get_order(order.id)
        return ActionResult(ok=False, order=refreshed, message=str(exc))


class UserAccountActions:
    """Block/unblock handlers for the admin user view."""

    def __init__(self, users: UserAdminService):
        self.users = users

    def block(self, user: User, reason: str) -> User:
        """
        Raises:
            ValidationError: If the reason is blank.
            InvalidTransitionError: If the user is already blocked.
        """
        if not reason or not reason.strip():
            raise ValidationError({"reason": "A reason is required to block a user"})
        if not can_block(user):
            raise InvalidTransitionError("user", user.id, "blocked", "block")
        updated = self.users.block_user(user.id, reason.strip())
        logger.info("User %s blocked", updated.id)
        return updated

    def unblock(self, user: User, confirmed: bool = False) -> User:
        """
        Raises:
            ConfirmationRequiredError: If ``confirmed`` is not set.
            InvalidTransitionError: If the user is already active.
        """
        if not confirmed:
            raise ConfirmationRequiredError(f"unblock user {user.id}")
        if not can_unblock(user):
            raise InvalidTransitionError("user", user.id, "active", "unblock")
        updated = self.users.unblock_user(user.id)
        logger.info("User %s unblocked", updated.id)
        return updated
