"""Data models for storefront."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ProductCategory(str, Enum):
    BOOK = "book"
    CD = "cd"
    DVD = "dvd"
    LP = "lp"

    @classmethod
    def parse(cls, value: "str | ProductCategory") -> "ProductCategory":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: "str | OrderStatus") -> "OrderStatus":
        """Parse a status name case-insensitively."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: "str | PaymentStatus") -> "PaymentStatus":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    CREDIT_CARD = "CREDIT_CARD"
    VNPAY = "VNPAY"

    @property
    def is_redirect(self) -> bool:
        """True if payment completes on a third-party gateway page."""
        return self is PaymentMethod.VNPAY

    @classmethod
    def parse(cls, value: "str | PaymentMethod") -> "PaymentMethod":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


class CheckoutStep(str, Enum):
    DELIVERY = "delivery"
    PAYMENT = "payment"
    REVIEW = "review"

    @property
    def next(self) -> "CheckoutStep | None":
        order = list(CheckoutStep)
        idx = order.index(self)
        return order[idx + 1] if idx + 1 < len(order) else None

    @property
    def previous(self) -> "CheckoutStep | None":
        order = list(CheckoutStep)
        idx = order.index(self)
        return order[idx - 1] if idx > 0 else None


# Catalog


@dataclass(frozen=True)
class Product:
    """A catalog product. Owned by the catalog; never mutated by the cart."""

    id: int
    title: str
    price: int  # VND, integer
    quantity: int  # available stock
    category: ProductCategory
    rush_eligible: bool = False
    weight: float | None = None
    dimensions: str | None = None
    barcode: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def in_stock(self) -> bool:
        return self.quantity > 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "quantity": self.quantity,
            "category": self.category.value,
            "rush_eligible": self.rush_eligible,
            "attributes": dict(self.attributes),
        }
        if self.weight is not None:
            result["weight"] = self.weight
        if self.dimensions is not None:
            result["dimensions"] = self.dimensions
        if self.barcode is not None:
            result["barcode"] = self.barcode
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=int(data["id"]),
            title=data["title"],
            price=int(data["price"]),
            quantity=int(data.get("quantity", 0)),
            category=ProductCategory.parse(data["category"]),
            rush_eligible=bool(data.get("rush_eligible", False)),
            weight=data.get("weight"),
            dimensions=data.get("dimensions"),
            barcode=data.get("barcode"),
            attributes=dict(data.get("attributes", {})),
        )


# Cart


@dataclass(frozen=True)
class CartLine:
    """One cart entry: a unique product and its requested quantity."""

    product: Product
    quantity: int

    @property
    def product_id(self) -> int:
        return self.product.id

    @property
    def line_total(self) -> int:
        return self.product.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {"product": self.product.to_dict(), "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(product=Product.from_dict(data["product"]), quantity=int(data["quantity"]))


# Delivery


@dataclass
class DeliverySelection:
    """Customer contact fields, hierarchical address and rush preference."""

    name: str = ""
    email: str = ""
    phone: str = ""
    province: str = ""
    district: str = ""
    ward: str = ""
    address: str = ""
    message: str = ""
    rush_requested: bool = False
    rush_instructions: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "province": self.province,
            "district": self.district,
            "ward": self.ward,
            "address": self.address,
            "message": self.message,
            "rush_requested": self.rush_requested,
            "rush_instructions": self.rush_instructions,
        }


@dataclass(frozen=True)
class DeliveryInfo:
    """Finalized delivery details embedded in an order."""

    name: str
    email: str
    phone: str
    province: str
    district: str
    ward: str
    address: str
    delivery_fee: int
    message: str | None = None
    rush_instructions: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "province": self.province,
            "district": self.district,
            "ward": self.ward,
            "address": self.address,
            "delivery_fee": self.delivery_fee,
        }
        if self.message:
            result["message"] = self.message
        if self.rush_instructions:
            result["rush_instructions"] = self.rush_instructions
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeliveryInfo":
        return cls(
            name=data["name"],
            email=data["email"],
            phone=data["phone"],
            province=data["province"],
            district=data.get("district", ""),
            ward=data.get("ward", ""),
            address=data["address"],
            delivery_fee=int(data.get("delivery_fee", 0)),
            message=data.get("message"),
            rush_instructions=data.get("rush_instructions"),
        )


# Order creation request


@dataclass(frozen=True)
class OrderItemRequest:
    """Cart snapshot line sent with an order creation request."""

    product_id: int
    quantity: int
    rush_order: bool
    product_title: str
    unit_price: int
    instructions: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "rush_order": self.rush_order,
            "product_title": self.product_title,
            "unit_price": self.unit_price,
        }
        if self.instructions:
            result["instructions"] = self.instructions
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItemRequest":
        return cls(
            product_id=int(data["product_id"]),
            quantity=int(data["quantity"]),
            rush_order=bool(data.get("rush_order", False)),
            product_title=data.get("product_title", ""),
            unit_price=int(data.get("unit_price", 0)),
            instructions=data.get("instructions"),
        )


@dataclass(frozen=True)
class OrderCreationRequest:
    """Value object assembled once at submission time."""

    items: tuple[OrderItemRequest, ...]
    delivery_info: DeliveryInfo
    payment_method: PaymentMethod

    @property
    def subtotal(self) -> int:
        return sum(item.unit_price * item.quantity for item in self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "delivery_info": self.delivery_info.to_dict(),
            "payment_method": self.payment_method.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderCreationRequest":
        return cls(
            items=tuple(OrderItemRequest.from_dict(i) for i in data.get("items", [])),
            delivery_info=DeliveryInfo.from_dict(data["delivery_info"]),
            payment_method=PaymentMethod.parse(
                data.get("payment_method", PaymentMethod.CASH_ON_DELIVERY)
            ),
        )


# Server-owned entities


@dataclass
class OrderLine:
    id: int
    product_id: int
    product_title: str
    quantity: int
    unit_price: int
    rush_order: bool = False
    instructions: str | None = None

    @property
    def total_fee(self) -> int:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "product_id": self.product_id,
            "product_title": self.product_title,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "rush_order": self.rush_order,
            "total_fee": self.total_fee,
        }
        if self.instructions:
            result["instructions"] = self.instructions
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderLine":
        return cls(
            id=int(data["id"]),
            product_id=int(data["product_id"]),
            product_title=data.get("product_title", ""),
            quantity=int(data["quantity"]),
            unit_price=int(data["unit_price"]),
            rush_order=bool(data.get("rush_order", False)),
            instructions=data.get("instructions"),
        )


@dataclass
class Invoice:
    id: int
    order_id: int
    total_amount: int
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod | None = None
    transaction_id: str | None = None
    paid_at: str | None = None
    description: str | None = None
    created_at: str = field(default_factory=_utc_now)

    @property
    def is_paid(self) -> bool:
        return self.payment_status is PaymentStatus.PAID

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "total_amount": self.total_amount,
            "payment_status": self.payment_status.value,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "transaction_id": self.transaction_id,
            "paid_at": self.paid_at,
            "description": self.description,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Invoice":
        method = data.get("payment_method")
        return cls(
            id=int(data["id"]),
            order_id=int(data["order_id"]),
            total_amount=int(data["total_amount"]),
            payment_status=PaymentStatus.parse(data.get("payment_status", "PENDING")),
            payment_method=PaymentMethod.parse(method) if method else None,
            transaction_id=data.get("transaction_id"),
            paid_at=data.get("paid_at"),
            description=data.get("description"),
            created_at=data.get("created_at", ""),
        )


@dataclass
class Order:
    id: int
    status: OrderStatus
    lines: list[OrderLine]
    delivery_info: DeliveryInfo
    subtotal: int
    vat: int
    delivery_fee: int
    total: int
    invoice: Invoice | None = None
    cancel_reason: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def has_rush_items(self) -> bool:
        return any(line.rush_order for line in self.lines)

    @property
    def customer_email(self) -> str:
        return self.delivery_info.email

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "lines": [line.to_dict() for line in self.lines],
            "delivery_info": self.delivery_info.to_dict(),
            "subtotal": self.subtotal,
            "vat": self.vat,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.invoice is not None:
            result["invoice"] = self.invoice.to_dict()
        if self.cancel_reason is not None:
            result["cancel_reason"] = self.cancel_reason
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        invoice = None
        if data.get("invoice"):
            invoice = Invoice.from_dict(data["invoice"])
        return cls(
            id=int(data["id"]),
            status=OrderStatus.parse(data["status"]),
            lines=[OrderLine.from_dict(line) for line in data.get("lines", [])],
            delivery_info=DeliveryInfo.from_dict(data["delivery_info"]),
            subtotal=int(data["subtotal"]),
            vat=int(data["vat"]),
            delivery_fee=int(data["delivery_fee"]),
            total=int(data["total"]),
            invoice=invoice,
            cancel_reason=data.get("cancel_reason"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class User:
    id: int
    name: str
    email: str
    role: str = "CUSTOMER"
    phone: str | None = None
    address: str | None = None
    is_active: bool = True
    block_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "block_reason": self.block_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            email=data["email"],
            role=data.get("role", "CUSTOMER"),
            phone=data.get("phone"),
            address=data.get("address"),
            is_active=bool(data.get("is_active", True)),
            block_reason=data.get("block_reason"),
        )


# Payment gateway return


@dataclass(frozen=True)
class PaymentReturn:
    """Outcome delivered by the payment gateway's return callback."""

    success: bool
    order_id: int
    amount: int
    pay_date: str | None = None
    transaction_id: str | None = None
    response_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "success" if self.success else "failure",
            "order_id": self.order_id,
            "amount": self.amount,
            "pay_date": self.pay_date,
            "transaction_id": self.transaction_id,
            "response_code": self.response_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentReturn":
        return cls(
            success=data.get("status") == "success",
            order_id=int(data["order_id"]),
            amount=int(data.get("amount", 0)),
            pay_date=data.get("pay_date"),
            transaction_id=data.get("transaction_id"),
            response_code=data.get("response_code"),
        )


# Auth session


@dataclass
class AuthSession:
    user: User | None = None
    token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.user.to_dict() if self.user else None,
            "token": self.token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthSession":
        user = User.from_dict(data["user"]) if data.get("user") else None
        return cls(user=user, token=data.get("token"))
