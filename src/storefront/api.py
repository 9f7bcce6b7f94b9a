"""FastAPI REST API for the storefront server."""

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing import Optional

from . import __version__
from .config import get_settings
from .errors import (
    ConfigError,
    ConfirmationRequiredError,
    EmptyCartError,
    InvalidTransitionError,
    InvoiceNotFoundError,
    OrderNotFoundError,
    PaymentAmountMismatchError,
    PaymentVerificationError,
    ProductNotFoundError,
    RushNotAvailableError,
    StockValidationError,
    StorefrontError,
    SubmissionInProgressError,
    TransportError,
    UserNotFoundError,
    ValidationError,
    WizardStateError,
)
from .models import OrderCreationRequest, OrderStatus, ProductCategory
from .shop_store import ShopStore
from .vnpay import build_payment_url, parse_return, verify_return


# --- Pydantic Schemas ---


class ProductSchema(BaseModel):
    id: int
    title: str
    price: int
    quantity: int
    category: str
    rush_eligible: bool = False
    weight: Optional[float] = None
    dimensions: Optional[str] = None
    barcode: Optional[str] = None
    attributes: dict = Field(default_factory=dict)


class ProductListResponse(BaseModel):
    products: list[ProductSchema]
    count: int


class StockCheckItem(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class StockCheckRequest(BaseModel):
    items: list[StockCheckItem]


class StockIssueSchema(BaseModel):
    product_id: int
    title: str
    requested: int
    available: int
    kind: str


class StockCheckResponse(BaseModel):
    ok: bool
    insufficient: list[StockIssueSchema]


class DeliveryInfoSchema(BaseModel):
    name: str
    email: str
    phone: str
    province: str
    district: str = ""
    ward: str = ""
    address: str
    delivery_fee: int = Field(..., ge=0)
    message: Optional[str] = None
    rush_instructions: Optional[str] = None


class OrderItemSchema(BaseModel):
    product_id: int
    quantity: int
    rush_order: bool = False
    product_title: str = ""
    unit_price: int = 0
    instructions: Optional[str] = None


class OrderCreateRequest(BaseModel):
    """Request body for creating an order."""

    items: list[OrderItemSchema]
    delivery_info: DeliveryInfoSchema
    payment_method: str = Field(
        default="CASH_ON_DELIVERY",
        description="CASH_ON_DELIVERY, CREDIT_CARD or VNPAY",
    )


class OrderLineSchema(BaseModel):
    id: int
    product_id: int
    product_title: str
    quantity: int
    unit_price: int
    rush_order: bool
    total_fee: int
    instructions: Optional[str] = None


class InvoiceSchema(BaseModel):
    id: int
    order_id: int
    total_amount: int
    payment_status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[str] = None
    description: Optional[str] = None
    created_at: str


class OrderSchema(BaseModel):
    id: int
    status: str
    lines: list[OrderLineSchema]
    delivery_info: DeliveryInfoSchema
    subtotal: int
    vat: int
    delivery_fee: int
    total: int
    invoice: Optional[InvoiceSchema] = None
    cancel_reason: Optional[str] = None
    created_at: str
    updated_at: str


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = None


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus


class UserSchema(BaseModel):
    id: int
    name: str
    email: str
    role: str
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    block_reason: Optional[str] = None


class UserBlockRequest(BaseModel):
    reason: str = Field(..., description="Why the account is being blocked")


class PaymentCreateRequest(BaseModel):
    order_id: int
    amount: int = Field(..., ge=0, description="Order total in VND")
    locale: str = Field(default="vn", description="'vn' or 'en'")
    bank_code: Optional[str] = None


class PaymentCreateResponse(BaseModel):
    payment_url: str


class PaymentReturnSchema(BaseModel):
    status: str  # "success" | "failure"
    order_id: int
    amount: int
    pay_date: Optional[str] = None
    transaction_id: Optional[str] = None
    response_code: Optional[str] = None


# --- Helper Functions ---


def get_shop_store() -> ShopStore:
    """Get the global ShopStore."""
    return ShopStore()


# --- FastAPI App ---


app = FastAPI(
    title="storefront API",
    description="REST API for catalog, orders, payments and user administration",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ConfigError: 500,
    ValidationError: 400,
    EmptyCartError: 400,
    StockValidationError: 409,
    ConfirmationRequiredError: 400,
    InvalidTransitionError: 409,
    RushNotAvailableError: 400,
    ProductNotFoundError: 404,
    OrderNotFoundError: 404,
    UserNotFoundError: 404,
    InvoiceNotFoundError: 404,
    TransportError: 502,
    PaymentVerificationError: 400,
    PaymentAmountMismatchError: 400,
    WizardStateError: 500,
    SubmissionInProgressError: 409,
}


def _error_extras(exc: StorefrontError) -> dict:
    """Constructor arguments clients need to rebuild the exception."""
    extras = {name: getattr(exc, name) for name in exc.payload_fields}
    if isinstance(exc, StockValidationError):
        extras["issues"] = [issue.to_dict() for issue in exc.issues]
    return extras


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__, **_error_extras(exc)},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    store = get_shop_store()
    try:
        return {
            "status": "ok",
            "product_count": len(store.list_products()),
            "order_count": len(store.list_orders()),
        }
    except Exception as e:
        return {
            "status": "error",
            "detail": str(e),
        }


# --- Catalog Endpoints ---


@app.get("/api/products", response_model=ProductListResponse)
def list_products(
    category: Optional[ProductCategory] = Query(None, description="book, cd, dvd or lp"),
    in_stock: Optional[bool] = Query(None, description="Only products with (or without) stock"),
):
    """List catalog products."""
    products = get_shop_store().list_products(category=category, in_stock=in_stock)
    return ProductListResponse(
        products=[ProductSchema(**p.to_dict()) for p in products],
        count=len(products),
    )


@app.get("/api/products/{product_id}", response_model=ProductSchema)
def get_product(product_id: int):
    product = get_shop_store().get_product(product_id)
    return ProductSchema(**product.to_dict())


@app.post("/api/cart/check", response_model=StockCheckResponse)
def check_cart(request: StockCheckRequest):
    """Check requested quantities against current stock."""
    issues = get_shop_store().check_stock(
        (item.product_id, item.quantity) for item in request.items
    )
    return StockCheckResponse(
        ok=not issues,
        insufficient=[StockIssueSchema(**issue.to_dict()) for issue in issues],
    )


# --- Order Endpoints ---


@app.post("/api/orders", response_model=OrderSchema, status_code=201)
def create_order(request: OrderCreateRequest):
    """
    Create an order.

    Stock, rush eligibility and totals are re-validated against the
    server's catalog; the order starts PENDING with a PENDING invoice.
    """
    try:
        creation = OrderCreationRequest.from_dict(request.model_dump())
    except ValueError as e:
        raise ValidationError({"payment_method": str(e)}) from e
    order = get_shop_store().create_order(creation)
    return OrderSchema(**order.to_dict())


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(status: Optional[OrderStatus] = Query(None)):
    """List orders, newest first."""
    orders = get_shop_store().list_orders(status=status)
    return OrderListResponse(
        orders=[OrderSchema(**o.to_dict()) for o in orders],
        count=len(orders),
    )


@app.get("/api/orders/customer/{email}", response_model=OrderListResponse)
def list_customer_orders(email: str):
    orders = get_shop_store().get_orders_by_customer(email)
    return OrderListResponse(
        orders=[OrderSchema(**o.to_dict()) for o in orders],
        count=len(orders),
    )


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(order_id: int):
    order = get_shop_store().get_order(order_id)
    return OrderSchema(**order.to_dict())


@app.patch("/api/orders/{order_id}/confirm", response_model=OrderSchema)
def confirm_order(order_id: int):
    """PENDING -> CONFIRMED."""
    order = get_shop_store().confirm_order(order_id)
    return OrderSchema(**order.to_dict())


@app.patch("/api/orders/{order_id}/cancel", response_model=OrderSchema)
def cancel_order(order_id: int, request: Optional[OrderCancelRequest] = None):
    """
    Cancel a PENDING or CONFIRMED order.

    Stock is restored and the invoice is closed.
    """
    reason = request.reason if request else None
    order = get_shop_store().cancel_order(order_id, reason)
    return OrderSchema(**order.to_dict())


@app.patch("/api/orders/{order_id}/status", response_model=OrderSchema)
def update_order_status(order_id: int, request: OrderStatusUpdateRequest):
    """Advance an order one step along the fulfilment path."""
    order = get_shop_store().update_order_status(order_id, request.status)
    return OrderSchema(**order.to_dict())


# --- User Endpoints ---


@app.get("/api/users/{user_id}", response_model=UserSchema)
def get_user(user_id: int):
    user = get_shop_store().get_user(user_id)
    return UserSchema(**user.to_dict())


@app.patch("/api/users/{user_id}/block", response_model=UserSchema)
def block_user(user_id: int, request: UserBlockRequest):
    user = get_shop_store().block_user(user_id, request.reason)
    return UserSchema(**user.to_dict())


@app.patch("/api/users/{user_id}/unblock", response_model=UserSchema)
def unblock_user(user_id: int):
    user = get_shop_store().unblock_user(user_id)
    return UserSchema(**user.to_dict())


# --- Payment Endpoints ---


@app.post("/api/payment/vnpay", response_model=PaymentCreateResponse)
def create_vnpay_payment(request: PaymentCreateRequest, http_request: Request):
    """
    Build a signed VNPay URL for an order.

    The amount must equal the order total, and the order must still be
    payable.
    """
    order = get_shop_store().get_order(request.order_id)
    if request.amount != order.total:
        raise PaymentAmountMismatchError(order.id, order.total, request.amount)
    if order.status is OrderStatus.CANCELLED:
        raise InvalidTransitionError("order", order.id, order.status.value, "pay for")
    if order.invoice is not None and order.invoice.is_paid:
        raise InvalidTransitionError("invoice", order.invoice.id, "PAID", "pay")

    ip_address = http_request.client.host if http_request.client else "127.0.0.1"
    url = build_payment_url(
        order.id,
        order.total,
        get_settings(),
        locale=request.locale,
        ip_address=ip_address,
        bank_code=request.bank_code,
    )
    return PaymentCreateResponse(payment_url=url)


@app.get("/api/payment/vnpay/return", response_model=PaymentReturnSchema)
def vnpay_return(request: Request):
    """Verify the gateway's return parameters and record the payment outcome."""
    params = dict(request.query_params)
    verify_return(params, get_settings().vnpay_hash_secret)
    result = parse_return(params)
    get_shop_store().record_payment(result)
    return PaymentReturnSchema(**result.to_dict())
