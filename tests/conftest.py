"""Pytest fixtures for storefront tests."""

import tempfile
from pathlib import Path

import pytest

from storefront.cart import CartStore
from storefront.models import (
    DeliveryInfo,
    OrderCreationRequest,
    OrderItemRequest,
    PaymentMethod,
    Product,
    ProductCategory,
    User,
)
from storefront.pricing import PricingPolicy
from storefront.shop_store import ShopStore
from storefront.storage import BlobStorage


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_dir(temp_dir, monkeypatch):
    """Point STOREFRONT_DATA_DIR at a temporary directory."""
    monkeypatch.setenv("STOREFRONT_DATA_DIR", str(temp_dir))
    return temp_dir


@pytest.fixture
def policy():
    return PricingPolicy()


@pytest.fixture
def book():
    """Rush-eligible book, 100000 VND."""
    return Product(
        id=1, title="Dế Mèn Phiêu Lưu Ký", price=100000, quantity=20,
        category=ProductCategory.BOOK, rush_eligible=True,
    )


@pytest.fixture
def lp():
    """Regular-only LP, 900000 VND."""
    return Product(
        id=5, title="Abbey Road", price=900000, quantity=3,
        category=ProductCategory.LP, rush_eligible=False,
    )


@pytest.fixture
def sold_out():
    return Product(
        id=4, title="Spirited Away", price=180000, quantity=0,
        category=ProductCategory.DVD,
    )


@pytest.fixture
def products(book, lp, sold_out):
    return [book, lp, sold_out]


@pytest.fixture
def users():
    return [
        User(1, "Admin", "admin@storefront.vn", role="ADMIN"),
        User(2, "Nguyễn Văn A", "customer@storefront.vn", phone="0912345678"),
    ]


@pytest.fixture
def cart_store(temp_dir):
    """Cart persisted under a temporary directory."""
    return CartStore(storage=BlobStorage(temp_dir))


@pytest.fixture
def shop_store(temp_dir, products, users, policy):
    """Server store seeded with the sample catalog and users."""
    store = ShopStore(temp_dir / "server", policy=policy)
    store.seed(products, users)
    return store


@pytest.fixture
def hanoi_delivery():
    def make(delivery_fee: int = 30000, province: str = "Hà Nội") -> DeliveryInfo:
        return DeliveryInfo(
            name="Nguyễn Văn A",
            email="customer@storefront.vn",
            phone="0912345678",
            province=province,
            district="Hai Bà Trưng",
            ward="Bách Khoa",
            address="1 Đại Cồ Việt",
            delivery_fee=delivery_fee,
        )

    return make


@pytest.fixture
def order_request(book, hanoi_delivery):
    """Two regular-delivery books paid on delivery."""

    def make(
        quantity: int = 2,
        rush: bool = False,
        delivery_fee: int = 30000,
        province: str = "Hà Nội",
        payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY,
    ) -> OrderCreationRequest:
        item = OrderItemRequest(
            product_id=book.id,
            quantity=quantity,
            rush_order=rush,
            product_title=book.title,
            unit_price=book.price,
        )
        return OrderCreationRequest(
            items=(item,),
            delivery_info=hanoi_delivery(delivery_fee, province),
            payment_method=payment_method,
        )

    return make


@pytest.fixture
def api_client(data_dir, products, users):
    """TestClient against a seeded store in STOREFRONT_DATA_DIR."""
    from fastapi.testclient import TestClient

    from storefront.api import app

    ShopStore(data_dir).seed(products, users)
    return TestClient(app)
