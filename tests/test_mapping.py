"""Tests for payload mapping."""

import pytest

from storefront.errors import PaymentVerificationError, TransportError
from storefront.mapping import (
    order_from_payload,
    payment_return_from_params,
    product_from_payload,
    unwrap,
    user_from_payload,
)
from storefront.models import OrderStatus, ProductCategory


class TestProductMapping:
    def test_snake_case(self):
        product = product_from_payload({
            "id": 3, "title": "Kind of Blue", "price": 250000, "quantity": 8,
            "category": "cd", "rush_eligible": True,
        })

        assert product.category is ProductCategory.CD
        assert product.rush_eligible

    def test_camel_case_variant(self):
        product = product_from_payload({
            "productId": 2, "title": "Clean Code", "price": "350000", "quantity": 5,
            "type": "BOOK", "rushOrderSupported": False, "authors": "Robert C. Martin",
        })

        assert product.id == 2
        assert product.price == 350000
        assert product.category is ProductCategory.BOOK
        assert product.attributes["creator"] == "Robert C. Martin"

    def test_explicit_creator_wins(self):
        product = product_from_payload({
            "id": 1, "title": "LP", "price": 1, "category": "lp",
            "attributes": {"creator": "The Beatles"}, "artist": "Beatles",
        })

        assert product.attributes["creator"] == "The Beatles"


class TestOrderMapping:
    def test_camel_case_order(self):
        order = order_from_payload({
            "orderId": 9,
            "status": "pending",
            "orderLines": [
                {"orderLineId": 1, "product": {"id": 1, "title": "Book", "price": 100000},
                 "quantity": 2, "rushOrder": True}
            ],
            "deliveryInfo": {
                "name": "A", "email": "a@example.com", "phone": "0900000000",
                "province": "Hà Nội", "address": "1 Kim Mã", "deliveryFee": 50000,
            },
            "totalBeforeVat": 200000,
            "vat": 20000,
            "deliveryFee": 50000,
            "totalAmount": 270000,
        })

        assert order.id == 9
        assert order.status is OrderStatus.PENDING
        assert order.lines[0].product_title == "Book"
        assert order.lines[0].unit_price == 100000
        assert order.lines[0].total_fee == 200000
        assert order.total == 270000

    def test_missing_delivery_info(self):
        with pytest.raises(TransportError):
            order_from_payload({"id": 1, "status": "PENDING"})


class TestEnvelope:
    def test_plain_payload_passes_through(self):
        assert unwrap({"id": 1}) == {"id": 1}

    def test_success_envelope(self):
        assert unwrap({"success": True, "data": [1, 2]}) == [1, 2]

    def test_failure_envelope(self):
        with pytest.raises(TransportError, match="out of stock"):
            unwrap({"success": False, "data": None, "error": "out of stock"})


def test_user_mapping():
    user = user_from_payload({"userId": 4, "name": "B", "email": "b@example.com", "isActive": False})

    assert user.id == 4
    assert user.is_active is False


def test_payment_return_params():
    result = payment_return_from_params(
        {"status": "SUCCESS", "orderId": "12", "amount": "270000", "payDate": "2026-10-19"}
    )

    assert result.success
    assert result.order_id == 12
    assert result.pay_date == "2026-10-19"


@pytest.mark.parametrize("params", [
    {"status": "success", "amount": "270000"},
    {"status": "success", "orderId": "abc"},
])
def test_payment_return_params_malformed(params):
    with pytest.raises(PaymentVerificationError):
        payment_return_from_params(params)
