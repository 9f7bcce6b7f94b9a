"""Order submission: cart + checkout wizard -> order creation request -> order.

Two completion paths:

- direct (cash on delivery, card on delivery): the order is created and the
  cart is cleared right away.
- gateway redirect (VNPay): the order is created, then a payment URL is
  requested for its total. The cart is kept until the gateway reports a
  successful payment through ``handle_payment_return``.

Failures propagate to the caller and leave the cart and wizard untouched.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .cart import CartStore, validate_against_stock
from .checkout import CheckoutWizard
from .errors import EmptyCartError, StockValidationError, SubmissionInProgressError
from .mapping import payment_return_from_params
from .models import (
    DeliveryInfo,
    Order,
    OrderCreationRequest,
    OrderItemRequest,
    PaymentMethod,
    PaymentReturn,
)
from .pricing import PriceBreakdown
from .services import CatalogService, OrderService, PaymentService
from .storage import CHECKOUT_BLOB

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
REDIRECT = "redirect"


@dataclass(frozen=True)
class SubmissionResult:
    kind: str  # "confirmed" | "redirect"
    order: Order
    pricing: PriceBreakdown
    payment_url: str | None = None

    @property
    def is_redirect(self) -> bool:
        return self.kind == REDIRECT


def build_order_request(wizard: CheckoutWizard) -> OrderCreationRequest:
    """Snapshot the cart and delivery selection into an order creation request."""
    pricing = wizard.pricing
    selection = wizard.selection
    rush_note = selection.rush_instructions.strip() or None

    items = []
    for line in wizard.cart_store.lines:
        rush_order = pricing.rush_applied and line.product.rush_eligible
        items.append(
            OrderItemRequest(
                product_id=line.product.id,
                quantity=line.quantity,
                rush_order=rush_order,
                product_title=line.product.title,
                unit_price=line.product.price,
                instructions=rush_note if rush_order else None,
            )
        )

    delivery_info = DeliveryInfo(
        name=selection.name.strip(),
        email=selection.email.strip(),
        phone=selection.phone.strip(),
        province=selection.province.strip(),
        district=selection.district.strip(),
        ward=selection.ward.strip(),
        address=selection.address.strip(),
        delivery_fee=pricing.delivery_fee,
        message=selection.message.strip() or None,
        rush_instructions=rush_note if pricing.rush_applied else None,
    )
    return OrderCreationRequest(
        items=tuple(items),
        delivery_info=delivery_info,
        payment_method=wizard.payment_method or PaymentMethod.CASH_ON_DELIVERY,
    )


class OrderSubmissionPipeline:
    """Submits the checkout wizard's order exactly once per submit action."""

    def __init__(
        self,
        cart_store: CartStore,
        orders: OrderService,
        payments: PaymentService,
        catalog: CatalogService | None = None,
        locale: str = "vn",
    ):
        self.cart_store = cart_store
        self.orders = orders
        self.payments = payments
        self.catalog = catalog
        self.locale = locale
        self._in_flight = False
        # Order created on the redirect path whose payment URL was not obtained
        self._awaiting_redirect: tuple[OrderCreationRequest, Order] | None = None
        # Order sent to the gateway whose return has not arrived yet
        self._awaiting_payment = self._restore_awaiting_payment()

    @property
    def in_flight(self) -> bool:
        """True while a submission is running; the submit control stays disabled."""
        return self._in_flight

    @property
    def awaiting_payment(self) -> int | None:
        """Id of the order sent to the payment gateway, if its return is outstanding."""
        return self._awaiting_payment

    def _restore_awaiting_payment(self) -> int | None:
        storage = self.cart_store.storage
        data = storage.load(CHECKOUT_BLOB) if storage is not None else None
        if not data or data.get("awaiting_payment") is None:
            return None
        try:
            return int(data["awaiting_payment"])
        except (TypeError, ValueError):
            logger.warning("Discarding invalid pending payment: %r", data["awaiting_payment"])
            return None

    def _set_awaiting_payment(self, order_id: int | None) -> None:
        self._awaiting_payment = order_id
        if self.cart_store.storage is not None:
            self.cart_store.storage.save(CHECKOUT_BLOB, {"awaiting_payment": order_id})

    def submit(self, wizard: CheckoutWizard) -> SubmissionResult:
        """
        Submit the wizard's order.

        Raises:
            WizardStateError: If the wizard is not on the review step.
            SubmissionInProgressError: If a submission is already running.
            EmptyCartError: If the cart has no lines.
            StockValidationError: If a line cannot be fulfilled.
            TransportError: If the remote service cannot be reached.
        """
        wizard.ensure_submittable()
        if self._in_flight:
            raise SubmissionInProgressError()
        if self.cart_store.is_empty:
            raise EmptyCartError()

        self._in_flight = True
        try:
            pricing = wizard.pricing
            rush_requested = wizard.selection.rush_requested and wizard.rush_available
            issues = validate_against_stock(
                self.cart_store.lines, self.catalog, rush_requested=rush_requested
            )
            blocking = [issue for issue in issues if issue.blocking]
            if blocking:
                raise StockValidationError(blocking)

            request = build_order_request(wizard)
            if request.payment_method.is_redirect:
                return self._submit_redirect(request, pricing)
            return self._submit_direct(request, pricing)
        finally:
            self._in_flight = False

    def _submit_direct(
        self, request: OrderCreationRequest, pricing: PriceBreakdown
    ) -> SubmissionResult:
        order = self.orders.create_order(request)
        logger.info("Order %s placed (%s)", order.id, request.payment_method.value)
        self.cart_store.clear_cart()
        return SubmissionResult(kind=CONFIRMED, order=order, pricing=pricing)

    def _submit_redirect(
        self, request: OrderCreationRequest, pricing: PriceBreakdown
    ) -> SubmissionResult:
        order = self._reusable_order(request)
        if order is None:
            order = self.orders.create_order(request)
            logger.info("Order %s created, requesting payment redirect", order.id)
        self._awaiting_redirect = (request, order)

        payment_url = self.payments.create_payment_redirect(order.id, order.total, self.locale)
        self._awaiting_redirect = None
        self._set_awaiting_payment(order.id)
        return SubmissionResult(
            kind=REDIRECT, order=order, pricing=pricing, payment_url=payment_url
        )

    def _reusable_order(self, request: OrderCreationRequest) -> Order | None:
        """Order from an earlier attempt with the same request whose redirect failed."""
        if self._awaiting_redirect is None:
            return None
        previous_request, order = self._awaiting_redirect
        if previous_request != request:
            self._awaiting_redirect = None
            return None
        logger.info("Retrying payment redirect for existing order %s", order.id)
        return order

    def handle_payment_return(
        self, result: PaymentReturn | Mapping[str, Any]
    ) -> PaymentReturn:
        """
        Apply the gateway's return callback.

        The cart is cleared only when the payment for the order this
        checkout sent to the gateway succeeded; on failure it is kept so the
        customer can retry. Returns for any other order leave the cart alone.

        Raises:
            PaymentVerificationError: If the parameters carry no order id.
        """
        if not isinstance(result, PaymentReturn):
            result = payment_return_from_params(result)

        if result.order_id != self._awaiting_payment:
            logger.warning(
                "Ignoring payment return for order %s (awaiting %s)",
                result.order_id, self._awaiting_payment,
            )
        elif result.success:
            logger.info("Payment for order %s succeeded", result.order_id)
            self.cart_store.clear_cart()
            self._set_awaiting_payment(None)
        else:
            logger.warning(
                "Payment for order %s failed (code %s)", result.order_id, result.response_code
            )
        return result
