"""HTTP client for the storefront server API."""

import logging
import time
from typing import Any, Iterable, Mapping
from urllib.parse import quote

import requests

from . import errors
from .cart import StockIssue
from .config import get_settings
from .errors import (
    StockValidationError,
    StorefrontError,
    TransportError,
    ValidationError,
)
from .mapping import (
    order_from_payload,
    payment_return_from_params,
    product_from_payload,
    stock_issue_from_payload,
    unwrap,
    user_from_payload,
)
from .models import (
    Order,
    OrderCreationRequest,
    OrderStatus,
    PaymentReturn,
    Product,
    ProductCategory,
    User,
)

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# error_type name -> exception class, for every StorefrontError subclass
ERROR_TYPES: dict[str, type[StorefrontError]] = {
    obj.__name__: obj
    for obj in vars(errors).values()
    if isinstance(obj, type) and issubclass(obj, StorefrontError)
}


def _field_errors_from_422(detail: Any) -> dict[str, str]:
    """Flatten FastAPI's request validation detail list."""
    result: dict[str, str] = {}
    if not isinstance(detail, list):
        return {"request": str(detail)}
    for entry in detail:
        loc = [str(part) for part in entry.get("loc", []) if part != "body"]
        result[".".join(loc) or "request"] = entry.get("msg", "invalid")
    return result


def error_from_response(response: requests.Response) -> StorefrontError:
    """Turn an error response into the matching StorefrontError."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        return TransportError(
            f"HTTP {response.status_code}: {response.text}", status_code=response.status_code
        )

    detail = body.get("detail", "")
    error_type = body.get("error_type")
    if error_type is None:
        if response.status_code == 422:
            return ValidationError(_field_errors_from_422(detail))
        return TransportError(
            f"HTTP {response.status_code}: {detail}", status_code=response.status_code
        )

    cls = ERROR_TYPES.get(error_type)
    if cls is None:
        return TransportError(f"{error_type}: {detail}", status_code=response.status_code)
    if cls is ValidationError:
        return ValidationError(body.get("field_errors") or {"request": detail})
    if cls is StockValidationError:
        return StockValidationError(
            [stock_issue_from_payload(issue) for issue in body.get("issues", [])]
        )
    if cls is TransportError:
        return TransportError(str(detail), status_code=response.status_code)

    missing = [name for name in cls.payload_fields if name not in body]
    if missing:
        return TransportError(
            f"{error_type} without {', '.join(missing)}: {detail}",
            status_code=response.status_code,
        )
    return cls(*(body[name] for name in cls.payload_fields))


class HttpClient:
    """JSON-over-HTTP transport with retries for idempotent reads."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 3,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """
        Send a request and return the decoded (unwrapped) JSON body.

        Only GET is retried; a POST or PATCH that timed out may already have
        taken effect on the server.

        Raises:
            StorefrontError: The server's error, mapped by ``error_type``.
            TransportError: On connection failure or an unexpected response.
        """
        method = method.upper()
        url = self._url(path)
        attempts = self.max_retries if method == "GET" else 1

        for attempt in range(attempts):
            last = attempt == attempts - 1
            try:
                resp = self.session.request(
                    method, url, params=params, json=json, timeout=self.timeout
                )
            except requests.exceptions.RequestException as exc:
                if last:
                    raise TransportError(f"{method} {url} failed: {exc}") from exc
                wait = 2 ** (attempt + 1)
                logger.warning(
                    "Request error: %s. Retry in %ds (%d/%d)",
                    exc, wait, attempt + 1, attempts,
                )
                time.sleep(wait)
                continue

            if resp.status_code in RETRY_STATUS_CODES and not last:
                wait = 2 ** (attempt + 1)
                logger.warning(
                    "%s %s returned %d. Retry in %ds (%d/%d)",
                    method, url, resp.status_code, wait, attempt + 1, attempts,
                )
                time.sleep(wait)
                continue

            if resp.status_code >= 400:
                raise error_from_response(resp)

            logger.debug("%s %s -> %d", method, url, resp.status_code)
            if resp.status_code == 204 or not resp.content:
                return None
            try:
                return unwrap(resp.json())
            except ValueError as exc:
                raise TransportError(
                    f"Invalid JSON from {method} {url}", status_code=resp.status_code
                ) from exc

        raise TransportError(f"Max retries ({attempts}) exceeded for {url}")

    def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None) -> Any:
        return self.request("POST", path, json=json)

    def patch(self, path: str, json: Any = None) -> Any:
        return self.request("PATCH", path, json=json)

    def close(self):
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class StorefrontApiClient:
    """Remote catalog, order, payment and user-admin services."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        session: requests.Session | None = None,
    ):
        settings = get_settings()
        self.http = HttpClient(
            base_url or settings.api_url,
            timeout=settings.http_timeout if timeout is None else timeout,
            max_retries=settings.http_retries if max_retries is None else max_retries,
            session=session,
        )

    @property
    def session(self) -> requests.Session:
        return self.http.session

    # --- Catalog ---

    def get_product(self, product_id: int) -> Product:
        return product_from_payload(self.http.get(f"/api/products/{product_id}"))

    def list_products(
        self,
        category: ProductCategory | None = None,
        in_stock: bool | None = None,
    ) -> list[Product]:
        params: dict[str, Any] = {}
        if category is not None:
            params["category"] = ProductCategory.parse(category).value
        if in_stock is not None:
            params["in_stock"] = "true" if in_stock else "false"
        data = self.http.get("/api/products", params=params or None)
        return [product_from_payload(p) for p in data.get("products", [])]

    def check_stock(self, items: Iterable[tuple[int, int]]) -> list[StockIssue]:
        body = {"items": [{"product_id": pid, "quantity": qty} for pid, qty in items]}
        data = self.http.post("/api/cart/check", json=body)
        return [stock_issue_from_payload(i) for i in data.get("insufficient", [])]

    # --- Orders ---

    def create_order(self, request: OrderCreationRequest) -> Order:
        order = order_from_payload(self.http.post("/api/orders", json=request.to_dict()))
        logger.info("Created order %s (total %d)", order.id, order.total)
        return order

    def get_order(self, order_id: int) -> Order:
        return order_from_payload(self.http.get(f"/api/orders/{order_id}"))

    def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        params = {"status": OrderStatus.parse(status).value} if status else None
        data = self.http.get("/api/orders", params=params)
        return [order_from_payload(o) for o in data.get("orders", [])]

    def get_orders_by_customer(self, email: str) -> list[Order]:
        data = self.http.get(f"/api/orders/customer/{quote(email, safe='@')}")
        return [order_from_payload(o) for o in data.get("orders", [])]

    def confirm_order(self, order_id: int) -> Order:
        return order_from_payload(self.http.patch(f"/api/orders/{order_id}/confirm"))

    def cancel_order(self, order_id: int, reason: str | None = None) -> Order:
        return order_from_payload(
            self.http.patch(f"/api/orders/{order_id}/cancel", json={"reason": reason})
        )

    def update_order_status(self, order_id: int, status: OrderStatus) -> Order:
        body = {"status": OrderStatus.parse(status).value}
        return order_from_payload(self.http.patch(f"/api/orders/{order_id}/status", json=body))

    # --- Payment ---

    def create_payment_redirect(self, order_id: int, amount: int, locale: str = "vn") -> str:
        body = {"order_id": order_id, "amount": amount, "locale": locale}
        data = self.http.post("/api/payment/vnpay", json=body)
        try:
            return data["payment_url"]
        except (KeyError, TypeError) as exc:
            raise TransportError("Payment response has no payment_url") from exc

    def verify_payment_return(self, params: Mapping[str, Any]) -> PaymentReturn:
        """Forward the gateway's return parameters to the server for verification."""
        data = self.http.get("/api/payment/vnpay/return", params=dict(params))
        return payment_return_from_params(data)

    # --- Users ---

    def get_user(self, user_id: int) -> User:
        return user_from_payload(self.http.get(f"/api/users/{user_id}"))

    def block_user(self, user_id: int, reason: str) -> User:
        return user_from_payload(
            self.http.patch(f"/api/users/{user_id}/block", json={"reason": reason})
        )

    def unblock_user(self, user_id: int) -> User:
        return user_from_payload(self.http.patch(f"/api/users/{user_id}/unblock"))

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
