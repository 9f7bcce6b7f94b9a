"""Three-step checkout wizard: delivery -> payment -> review."""

import logging
import re

from .cart import CartStore
from .errors import WizardStateError
from .models import AuthSession, CheckoutStep, DeliverySelection, PaymentMethod
from .pricing import PriceBreakdown, PricingPolicy, calculate_pricing, is_rush_region

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)

# Required delivery fields and their error messages, in display order
DELIVERY_REQUIRED: dict[str, str] = {
    "name": "Name is required",
    "email": "Email is required",
    "phone": "Phone number is required",
    "province": "Province/City is required",
    "district": "District is required",
    "ward": "Ward is required",
    "address": "Address is required",
}

# Fields without cascading side effects
_PLAIN_FIELDS = {"name", "email", "phone", "address", "message", "rush_instructions"}


def validate_delivery(selection: DeliverySelection) -> dict[str, str]:
    """Field errors for the delivery step."""
    errors: dict[str, str] = {}
    for name, message in DELIVERY_REQUIRED.items():
        if not str(getattr(selection, name)).strip():
            errors[name] = message
    if "email" not in errors and not EMAIL_PATTERN.match(selection.email.strip()):
        errors["email"] = "Invalid email address"
    return errors


def validate_payment(method: PaymentMethod | None) -> dict[str, str]:
    if method is None:
        return {"payment_method": "Payment method is required"}
    return {}


class CheckoutWizard:
    """Linear checkout flow with per-step validation gating."""

    def __init__(
        self,
        cart_store: CartStore,
        policy: PricingPolicy | None = None,
        session: AuthSession | None = None,
    ):
        self.cart_store = cart_store
        self.policy = policy or PricingPolicy.from_settings()
        self.step = CheckoutStep.DELIVERY
        self.selection = DeliverySelection()
        self.payment_method: PaymentMethod | None = None
        self.errors: dict[str, str] = {}

        if session is not None and session.user is not None:
            user = session.user
            self.selection.name = user.name or ""
            self.selection.email = user.email or ""
            self.selection.phone = user.phone or ""
            self.selection.address = user.address or ""

    # Navigation

    def validate_current_step(self) -> dict[str, str]:
        """Errors for the current step's fields only."""
        if self.step is CheckoutStep.DELIVERY:
            return validate_delivery(self.selection)
        if self.step is CheckoutStep.PAYMENT:
            return validate_payment(self.payment_method)
        return {}

    def next(self) -> bool:
        """
        Advance one step if the current step validates.

        Returns:
            True if the step advanced. On failure ``errors`` holds the
            field errors and the step is unchanged.
        """
        target = self.step.next
        if target is None:
            return False

        errors = self.validate_current_step()
        if errors:
            self.errors = errors
            logger.debug("Checkout step %s blocked: %s", self.step.value, sorted(errors))
            return False

        self.errors = {}
        self.step = target
        return True

    def prev(self) -> bool:
        """Go back one step. Entered data is kept."""
        target = self.step.previous
        if target is None:
            return False
        self.errors = {}
        self.step = target
        return True

    # Delivery fields

    def update_delivery(self, **fields: str) -> None:
        """Set delivery fields. Address levels are applied top-down."""
        cascaded = {
            "province": self.set_province,
            "district": self.set_district,
            "ward": self.set_ward,
        }
        for name in ("province", "district", "ward"):
            if name in fields:
                cascaded[name](fields[name])
        for name, value in fields.items():
            if name in cascaded:
                continue
            if name not in _PLAIN_FIELDS:
                raise AttributeError(f"Unknown delivery field: {name}")
            setattr(self.selection, name, value)
            self.errors.pop(name, None)

    def set_province(self, province: str) -> None:
        """Set the province, clearing district and ward and re-checking rush."""
        self.selection.province = province
        self.selection.district = ""
        self.selection.ward = ""
        self.errors.pop("province", None)
        if self.selection.rush_requested and not self.rush_available:
            logger.debug("Rush delivery turned off: %r is outside the rush region", province)
            self.selection.rush_requested = False

    def set_district(self, district: str) -> None:
        self.selection.district = district
        self.selection.ward = ""
        self.errors.pop("district", None)

    def set_ward(self, ward: str) -> None:
        self.selection.ward = ward
        self.errors.pop("ward", None)

    @property
    def rush_available(self) -> bool:
        return is_rush_region(self.selection.province, self.policy)

    def set_rush_requested(self, requested: bool) -> bool:
        """
        Request or drop rush delivery.

        Returns:
            The resulting flag. Requests outside the rush region leave it False.
        """
        self.selection.rush_requested = bool(requested) and self.rush_available
        return self.selection.rush_requested

    # Payment

    def select_payment_method(self, method: PaymentMethod | str) -> None:
        self.payment_method = PaymentMethod.parse(method)
        self.errors.pop("payment_method", None)

    # Review

    @property
    def pricing(self) -> PriceBreakdown:
        return calculate_pricing(self.cart_store.lines, self.selection, self.policy)

    @property
    def can_submit(self) -> bool:
        return self.step is CheckoutStep.REVIEW and not self.cart_store.is_empty

    def ensure_submittable(self) -> None:
        """
        Raises:
            WizardStateError: If the wizard is not on the review step.
        """
        if self.step is not CheckoutStep.REVIEW:
            raise WizardStateError(self.step.value, "submit an order")
