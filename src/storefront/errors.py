"""Custom exceptions for storefront."""

from typing import Any


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    # Constructor arguments, in order; sent in API error bodies
    payload_fields: tuple[str, ...] = ()


class ConfigError(StorefrontError):
    """Raised when an environment setting cannot be parsed."""

    payload_fields = ("name", "value", "reason")

    def __init__(self, name: str, value: str, reason: str):
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid setting {name}={value!r}: {reason}")


# --- Validation errors ---


class ValidationError(StorefrontError):
    """Raised when required fields are missing or malformed."""

    payload_fields = ("field_errors",)

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        details = ", ".join(f"{k}: {v}" for k, v in self.field_errors.items())
        super().__init__(f"Validation failed ({details})")


class EmptyCartError(StorefrontError):
    """Raised when an order is submitted with no cart lines."""

    def __init__(self):
        super().__init__("Cart is empty")


class StockValidationError(StorefrontError):
    """Raised when cart lines cannot be fulfilled from current stock."""

    payload_fields = ("issues",)

    def __init__(self, issues: list[Any]):
        self.issues = list(issues)
        lines = "; ".join(issue.format() for issue in self.issues)
        super().__init__(f"Cart cannot be fulfilled: {lines}")


class ConfirmationRequiredError(StorefrontError):
    """Raised when an action needs explicit confirmation that was not given."""

    payload_fields = ("action",)

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Confirmation required to {action}")


# --- State guard violations ---


class InvalidTransitionError(StorefrontError):
    """Raised when a lifecycle action is not allowed from the current state."""

    payload_fields = ("entity", "entity_id", "current", "action")

    def __init__(self, entity: str, entity_id: Any, current: str, action: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} {entity} {entity_id} in state {current}")


class RushNotAvailableError(StorefrontError):
    """Raised when rush delivery is requested where it cannot apply."""

    payload_fields = ("reason",)

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Rush delivery not available: {reason}")


# --- Not found ---


class ProductNotFoundError(StorefrontError):
    """Raised when a product ID doesn't exist."""

    payload_fields = ("product_id",)

    def __init__(self, product_id: Any):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(StorefrontError):
    """Raised when an order ID doesn't exist."""

    payload_fields = ("order_id",)

    def __init__(self, order_id: Any):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class UserNotFoundError(StorefrontError):
    """Raised when a user ID doesn't exist."""

    payload_fields = ("user_id",)

    def __init__(self, user_id: Any):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class InvoiceNotFoundError(StorefrontError):
    """Raised when an order has no invoice."""

    payload_fields = ("order_id",)

    def __init__(self, order_id: Any):
        self.order_id = order_id
        super().__init__(f"Invoice not found for order: {order_id}")


# --- Transport ---


class TransportError(StorefrontError):
    """Raised when the remote API cannot be reached or answers unexpectedly."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# --- Payment ---


class PaymentVerificationError(StorefrontError):
    """Raised when a gateway return carries a bad or missing signature."""

    payload_fields = ("reason",)

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Payment verification failed: {reason}")


class PaymentAmountMismatchError(StorefrontError):
    """Raised when a payment amount differs from the order total."""

    payload_fields = ("order_id", "expected", "actual")

    def __init__(self, order_id: Any, expected: int, actual: int):
        self.order_id = order_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Payment amount {actual} does not match order {order_id} total {expected}"
        )


# --- Programming errors ---


class WizardStateError(StorefrontError):
    """Raised when the checkout wizard is driven out of order."""

    payload_fields = ("step", "action")

    def __init__(self, step: str, action: str):
        self.step = step
        self.action = action
        super().__init__(f"Cannot {action} from checkout step '{step}'")


class SubmissionInProgressError(StorefrontError):
    """Raised when an order is submitted while another submission is in flight."""

    def __init__(self):
        super().__init__("An order submission is already in progress")
