"""Payload -> model mapping for remote API responses.

Each entity has exactly one mapping function. Field-name variants seen in
the wild (camelCase vs snake_case, ``author`` vs ``authors`` ...) are
resolved here and nowhere else.
"""

from typing import Any, Mapping

from .cart import StockIssue
from .errors import PaymentVerificationError, TransportError
from .models import (
    DeliveryInfo,
    Invoice,
    Order,
    OrderLine,
    OrderStatus,
    PaymentReturn,
    Product,
    ProductCategory,
    User,
)

# Variant-specific creator fields, collapsed into attributes["creator"]
_CREATOR_KEYS = ("authors", "author", "artists", "artist", "directors", "director")


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def unwrap(payload: Any) -> Any:
    """
    Strip the ``{"success", "data"}`` response envelope when present.

    Raises:
        TransportError: If the envelope reports failure.
    """
    if isinstance(payload, dict) and "success" in payload and "data" in payload:
        if not payload["success"]:
            message = _pick(payload, "message", "error", default="request failed")
            raise TransportError(str(message))
        return payload["data"]
    return payload


def product_from_payload(data: Mapping[str, Any]) -> Product:
    attributes = dict(_pick(data, "attributes", default={}))
    creator = _pick(data, *_CREATOR_KEYS)
    if creator is not None:
        attributes.setdefault("creator", creator)
    return Product(
        id=int(_pick(data, "id", "product_id", "productId")),
        title=str(data["title"]),
        price=int(data["price"]),
        quantity=int(_pick(data, "quantity", "stock", default=0)),
        category=ProductCategory.parse(_pick(data, "category", "type")),
        rush_eligible=bool(_pick(data, "rush_eligible", "rushOrderSupported", default=False)),
        weight=_pick(data, "weight"),
        dimensions=_pick(data, "dimensions"),
        barcode=_pick(data, "barcode"),
        attributes=attributes,
    )


def delivery_info_from_payload(data: Mapping[str, Any]) -> DeliveryInfo:
    return DeliveryInfo(
        name=data["name"],
        email=data["email"],
        phone=data["phone"],
        province=data["province"],
        district=_pick(data, "district", default=""),
        ward=_pick(data, "ward", default=""),
        address=data["address"],
        delivery_fee=int(_pick(data, "delivery_fee", "deliveryFee", default=0)),
        message=_pick(data, "message", "deliveryMessage"),
        rush_instructions=_pick(data, "rush_instructions", "rushDeliveryInstruction"),
    )


def order_line_from_payload(data: Mapping[str, Any]) -> OrderLine:
    product = _pick(data, "product", default={}) or {}
    return OrderLine(
        id=int(_pick(data, "id", "order_line_id", "orderLineId")),
        product_id=int(_pick(data, "product_id", "productId", default=_pick(product, "id", "productId"))),
        product_title=_pick(data, "product_title", "productTitle", default=_pick(product, "title", default="")),
        quantity=int(data["quantity"]),
        unit_price=int(_pick(data, "unit_price", "unitPrice", default=_pick(product, "price", default=0))),
        rush_order=bool(_pick(data, "rush_order", "rushOrder", default=False)),
        instructions=_pick(data, "instructions"),
    )


def order_from_payload(data: Mapping[str, Any]) -> Order:
    invoice_data = _pick(data, "invoice")
    delivery = _pick(data, "delivery_info", "deliveryInfo")
    if delivery is None:
        raise TransportError("Order payload has no delivery information")
    return Order(
        id=int(_pick(data, "id", "order_id", "orderId")),
        status=OrderStatus.parse(data["status"]),
        lines=[order_line_from_payload(line) for line in _pick(data, "lines", "orderLines", default=[])],
        delivery_info=delivery_info_from_payload(delivery),
        subtotal=int(_pick(data, "subtotal", "totalBeforeVat", default=0)),
        vat=int(_pick(data, "vat", default=0)),
        delivery_fee=int(_pick(data, "delivery_fee", "deliveryFee", default=0)),
        total=int(_pick(data, "total", "totalAmount", default=0)),
        invoice=Invoice.from_dict(invoice_data) if invoice_data else None,
        cancel_reason=_pick(data, "cancel_reason"),
        created_at=_pick(data, "created_at", "createdAt", default=""),
        updated_at=_pick(data, "updated_at", "updatedAt", default=""),
    )


def user_from_payload(data: Mapping[str, Any]) -> User:
    return User(
        id=int(_pick(data, "id", "user_id", "userId")),
        name=data["name"],
        email=data["email"],
        role=_pick(data, "role", default="CUSTOMER"),
        phone=_pick(data, "phone"),
        address=_pick(data, "address"),
        is_active=bool(_pick(data, "is_active", "isActive", default=True)),
        block_reason=_pick(data, "block_reason"),
    )


def stock_issue_from_payload(data: Mapping[str, Any]) -> StockIssue:
    return StockIssue.from_dict(
        {
            "product_id": _pick(data, "product_id", "productId"),
            "title": _pick(data, "title", default="Unknown"),
            "requested": _pick(data, "requested", default=0),
            "available": _pick(data, "available", default=0),
            "kind": _pick(data, "kind", default="insufficient_stock"),
        }
    )


def payment_return_from_params(params: Mapping[str, Any]) -> PaymentReturn:
    """
    Parse the confirmation view's URL parameters.

    Raises:
        PaymentVerificationError: If the order id or amount is missing or malformed.
    """
    status = str(_pick(params, "status", default="failure")).lower()
    try:
        order_id = int(_pick(params, "order_id", "orderId"))
        amount = int(_pick(params, "amount", default=0))
    except (TypeError, ValueError) as exc:
        raise PaymentVerificationError(f"malformed return parameters: {exc}") from exc
    return PaymentReturn(
        success=status == "success",
        order_id=order_id,
        amount=amount,
        pay_date=_pick(params, "pay_date", "payDate"),
        transaction_id=_pick(params, "transaction_id", "transactionId"),
        response_code=_pick(params, "response_code", "responseCode"),
    )
