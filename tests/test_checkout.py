"""Tests for the checkout wizard."""

import pytest

from storefront.checkout import CheckoutWizard, validate_delivery
from storefront.errors import WizardStateError
from storefront.models import (
    AuthSession,
    CheckoutStep,
    DeliverySelection,
    PaymentMethod,
    User,
)

DELIVERY = dict(
    name="Nguyễn Văn A",
    email="customer@storefront.vn",
    phone="0912345678",
    province="Hà Nội",
    district="Hai Bà Trưng",
    ward="Bách Khoa",
    address="1 Đại Cồ Việt",
)


@pytest.fixture
def wizard(cart_store, book, policy):
    cart_store.add_item(book, 2)
    return CheckoutWizard(cart_store, policy=policy)


def fill_delivery(wizard, **overrides):
    wizard.update_delivery(**{**DELIVERY, **overrides})


class TestValidateDelivery:
    def test_all_required_fields(self):
        errors = validate_delivery(DeliverySelection())

        assert set(errors) == {"name", "email", "phone", "province", "district", "ward", "address"}

    def test_invalid_email(self):
        errors = validate_delivery(DeliverySelection(**{**DELIVERY, "email": "not-an-email"}))

        assert errors == {"email": "Invalid email address"}

    def test_whitespace_only_is_missing(self):
        errors = validate_delivery(DeliverySelection(**{**DELIVERY, "name": "   "}))

        assert "name" in errors


class TestNavigation:
    def test_starts_on_delivery(self, wizard):
        assert wizard.step is CheckoutStep.DELIVERY
        assert not wizard.can_submit

    def test_next_blocked_by_missing_fields(self, wizard):
        fill_delivery(wizard, phone="")

        assert wizard.next() is False
        assert wizard.step is CheckoutStep.DELIVERY
        assert wizard.errors == {"phone": "Phone number is required"}

    def test_next_advances_when_valid(self, wizard):
        fill_delivery(wizard)

        assert wizard.next() is True
        assert wizard.step is CheckoutStep.PAYMENT
        assert wizard.errors == {}

    def test_payment_step_requires_method(self, wizard):
        fill_delivery(wizard)
        wizard.next()

        assert wizard.next() is False
        assert "payment_method" in wizard.errors

        wizard.select_payment_method("vnpay")
        assert wizard.next() is True
        assert wizard.step is CheckoutStep.REVIEW
        assert wizard.payment_method is PaymentMethod.VNPAY
        assert wizard.can_submit

    def test_next_on_review_is_noop(self, wizard):
        fill_delivery(wizard)
        wizard.next()
        wizard.select_payment_method(PaymentMethod.CASH_ON_DELIVERY)
        wizard.next()

        assert wizard.next() is False
        assert wizard.step is CheckoutStep.REVIEW

    def test_prev_keeps_data(self, wizard):
        fill_delivery(wizard)
        wizard.next()

        assert wizard.prev() is True
        assert wizard.step is CheckoutStep.DELIVERY
        assert wizard.selection.name == DELIVERY["name"]
        assert wizard.prev() is False

    def test_ensure_submittable_outside_review(self, wizard):
        with pytest.raises(WizardStateError):
            wizard.ensure_submittable()

    def test_editing_field_clears_its_error(self, wizard):
        wizard.next()
        assert "name" in wizard.errors

        wizard.update_delivery(name="B")
        assert "name" not in wizard.errors


class TestAddressCascade:
    def test_province_change_clears_district_and_ward(self, wizard):
        fill_delivery(wizard)
        wizard.set_province("Hồ Chí Minh")

        assert wizard.selection.district == ""
        assert wizard.selection.ward == ""

    def test_district_change_clears_ward(self, wizard):
        fill_delivery(wizard)
        wizard.set_district("Đống Đa")

        assert wizard.selection.ward == ""
        assert wizard.selection.province == "Hà Nội"

    def test_update_delivery_applies_levels_top_down(self, wizard):
        wizard.update_delivery(ward="Bách Khoa", district="Hai Bà Trưng", province="Hà Nội")

        assert wizard.selection.province == "Hà Nội"
        assert wizard.selection.district == "Hai Bà Trưng"
        assert wizard.selection.ward == "Bách Khoa"

    def test_unknown_field_rejected(self, wizard):
        with pytest.raises(AttributeError):
            wizard.update_delivery(zip_code="100000")


class TestRush:
    def test_rush_only_in_rush_region(self, wizard):
        fill_delivery(wizard, province="Đà Nẵng")

        assert wizard.rush_available is False
        assert wizard.set_rush_requested(True) is False

    def test_leaving_rush_region_forces_rush_off(self, wizard):
        fill_delivery(wizard)
        assert wizard.set_rush_requested(True) is True

        wizard.set_province("Hồ Chí Minh")

        assert wizard.selection.rush_requested is False
        assert wizard.pricing.rush_applied is False

    def test_pricing_reflects_rush(self, wizard):
        fill_delivery(wizard)
        wizard.set_rush_requested(True)

        pricing = wizard.pricing
        assert pricing.delivery_fee == 50000
        assert pricing.total == 270000


class TestSessionPrefill:
    def test_prefills_contact_fields(self, cart_store, policy):
        user = User(2, "Nguyễn Văn A", "customer@storefront.vn", phone="0912345678")
        wizard = CheckoutWizard(cart_store, policy=policy, session=AuthSession(user=user))

        assert wizard.selection.name == "Nguyễn Văn A"
        assert wizard.selection.email == "customer@storefront.vn"
        assert wizard.selection.phone == "0912345678"
        assert wizard.selection.address == ""

    def test_anonymous_session(self, cart_store, policy):
        wizard = CheckoutWizard(cart_store, policy=policy, session=AuthSession())

        assert wizard.selection.name == ""
