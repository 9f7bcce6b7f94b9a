"""VNPay gateway: signed payment URLs and return verification."""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from urllib.parse import quote_plus

from .config import Settings
from .errors import PaymentVerificationError
from .models import PaymentReturn

VNP_VERSION = "2.1.0"
VNP_COMMAND = "pay"
VNP_CURRENCY = "VND"
VNP_ORDER_TYPE = "other"
VNP_SUCCESS = "00"
EXPIRY_MINUTES = 15
DATE_FORMAT = "%Y%m%d%H%M%S"
HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

GATEWAY_TZ = timezone(timedelta(hours=7))


def hmac_sha512(key: str, data: str) -> str:
    return hmac.new(key.encode("utf-8"), data.encode("utf-8"), hashlib.sha512).hexdigest()


def _encode_sorted(params: Mapping[str, str]) -> str:
    """key=value pairs sorted by key, values form-encoded, empty values dropped."""
    parts = []
    for key in sorted(params):
        value = params[key]
        if value is None or str(value) == "":
            continue
        parts.append(f"{key}={quote_plus(str(value))}")
    return "&".join(parts)


def build_payment_url(
    order_id: int,
    amount: int,
    settings: Settings,
    locale: str = "vn",
    ip_address: str = "127.0.0.1",
    bank_code: str | None = None,
    now: datetime | None = None,
) -> str:
    """Build the signed gateway URL for paying ``amount`` VND on an order."""
    created = (now or datetime.now(timezone.utc)).astimezone(GATEWAY_TZ)
    expires = created + timedelta(minutes=EXPIRY_MINUTES)

    params = {
        "vnp_Version": VNP_VERSION,
        "vnp_Command": VNP_COMMAND,
        "vnp_TmnCode": settings.vnpay_tmn_code,
        "vnp_Amount": str(amount * 100),
        "vnp_CurrCode": VNP_CURRENCY,
        "vnp_TxnRef": str(order_id),
        "vnp_OrderInfo": f"Thanh toan don hang:{order_id}",
        "vnp_OrderType": VNP_ORDER_TYPE,
        "vnp_Locale": locale or "vn",
        "vnp_ReturnUrl": settings.vnpay_return_url,
        "vnp_IpAddr": ip_address,
        "vnp_CreateDate": created.strftime(DATE_FORMAT),
        "vnp_ExpireDate": expires.strftime(DATE_FORMAT),
    }
    if bank_code:
        params["vnp_BankCode"] = bank_code

    query = _encode_sorted(params)
    secure_hash = hmac_sha512(settings.vnpay_hash_secret, query)
    return f"{settings.vnpay_pay_url}?{query}&vnp_SecureHash={secure_hash}"


def sign_params(params: Mapping[str, str], secret: str) -> str:
    """Signature over every vnp_* field except the hash fields."""
    fields = {
        k: v for k, v in params.items() if k.startswith("vnp_") and k not in HASH_FIELDS
    }
    return hmac_sha512(secret, _encode_sorted(fields))


def verify_return(params: Mapping[str, Any], secret: str) -> None:
    """
    Check the signature of a gateway return.

    Raises:
        PaymentVerificationError: If the hash is missing or wrong.
    """
    received = params.get("vnp_SecureHash")
    if not received:
        raise PaymentVerificationError("missing vnp_SecureHash")
    for required in ("vnp_TxnRef", "vnp_Amount", "vnp_ResponseCode"):
        if required not in params:
            raise PaymentVerificationError(f"missing {required}")
    expected = sign_params({k: str(v) for k, v in params.items()}, secret)
    if not hmac.compare_digest(expected.lower(), str(received).lower()):
        raise PaymentVerificationError("signature mismatch")


def _parse_pay_date(value: str | None) -> str | None:
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, DATE_FORMAT).replace(tzinfo=GATEWAY_TZ)
    except ValueError:
        return value
    return parsed.isoformat()


def parse_return(params: Mapping[str, Any]) -> PaymentReturn:
    """
    Interpret a (verified) gateway return.

    Raises:
        PaymentVerificationError: If the order reference or amount is malformed.
    """
    try:
        order_id = int(params["vnp_TxnRef"])
        amount = int(params["vnp_Amount"]) // 100
    except (KeyError, ValueError) as exc:
        raise PaymentVerificationError(f"malformed return parameters: {exc}")

    response_code = str(params.get("vnp_ResponseCode", ""))
    transaction_status = params.get("vnp_TransactionStatus")
    success = response_code == VNP_SUCCESS and transaction_status in (None, VNP_SUCCESS)
    return PaymentReturn(
        success=success,
        order_id=order_id,
        amount=amount,
        pay_date=_parse_pay_date(params.get("vnp_PayDate")),
        transaction_id=params.get("vnp_TransactionNo"),
        response_code=response_code,
    )


class VNPayRedirects:
    """PaymentService that signs gateway URLs locally instead of asking the server."""

    def __init__(self, settings: Settings, ip_address: str = "127.0.0.1"):
        self.settings = settings
        self.ip_address = ip_address

    def create_payment_redirect(self, order_id: int, amount: int, locale: str = "vn") -> str:
        return build_payment_url(
            order_id, amount, self.settings, locale=locale, ip_address=self.ip_address
        )
