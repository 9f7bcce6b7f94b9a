"""Configuration for storefront.

Every setting has a module-level default that can be overridden through an
environment variable. ``get_settings()`` reads the environment each call so
tests can monkeypatch variables.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from .errors import ConfigError

# Centralized storage constants
# Can be overridden via STOREFRONT_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_API_URL = "http://127.0.0.1:8000"
DEFAULT_REGULAR_FEE = 30000
DEFAULT_RUSH_FEE = 50000
DEFAULT_RUSH_PROVINCE = "Hà Nội"
DEFAULT_VAT_RATE = "0.10"
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_HTTP_RETRIES = 3

# Sandbox gateway defaults
DEFAULT_VNPAY_PAY_URL = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
DEFAULT_VNPAY_RETURN_URL = "http://localhost:5173/order-confirmation"
DEFAULT_VNPAY_TMN_CODE = "DEMOTMN1"
DEFAULT_VNPAY_HASH_SECRET = "DEMOSECRETKEY"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(name, raw, "expected an integer")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(name, raw, "expected a number")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name) or default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(name, raw, "expected a decimal")
    if value < 0 or value >= 1:
        raise ConfigError(name, raw, "expected a rate between 0 and 1")
    return value


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    data_dir: Path
    api_url: str = DEFAULT_API_URL
    regular_fee: int = DEFAULT_REGULAR_FEE
    rush_fee: int = DEFAULT_RUSH_FEE
    rush_province: str = DEFAULT_RUSH_PROVINCE
    vat_rate: Decimal = Decimal(DEFAULT_VAT_RATE)
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    http_retries: int = DEFAULT_HTTP_RETRIES
    vnpay_tmn_code: str = DEFAULT_VNPAY_TMN_CODE
    vnpay_hash_secret: str = DEFAULT_VNPAY_HASH_SECRET
    vnpay_pay_url: str = DEFAULT_VNPAY_PAY_URL
    vnpay_return_url: str = DEFAULT_VNPAY_RETURN_URL

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ConfigError: If a numeric variable cannot be parsed.
        """
        return cls(
            data_dir=Path(os.environ.get("STOREFRONT_DATA_DIR", _default_data_dir)),
            api_url=os.environ.get("STOREFRONT_API_URL", DEFAULT_API_URL).rstrip("/"),
            regular_fee=_env_int("STOREFRONT_REGULAR_FEE", DEFAULT_REGULAR_FEE),
            rush_fee=_env_int("STOREFRONT_RUSH_FEE", DEFAULT_RUSH_FEE),
            rush_province=os.environ.get("STOREFRONT_RUSH_PROVINCE", DEFAULT_RUSH_PROVINCE),
            vat_rate=_env_decimal("STOREFRONT_VAT_RATE", DEFAULT_VAT_RATE),
            http_timeout=_env_float("STOREFRONT_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            http_retries=_env_int("STOREFRONT_HTTP_RETRIES", DEFAULT_HTTP_RETRIES),
            vnpay_tmn_code=os.environ.get("VNPAY_TMN_CODE", DEFAULT_VNPAY_TMN_CODE),
            vnpay_hash_secret=os.environ.get("VNPAY_HASH_SECRET", DEFAULT_VNPAY_HASH_SECRET),
            vnpay_pay_url=os.environ.get("VNPAY_PAY_URL", DEFAULT_VNPAY_PAY_URL),
            vnpay_return_url=os.environ.get("VNPAY_RETURN_URL", DEFAULT_VNPAY_RETURN_URL),
        )


def get_settings() -> Settings:
    """Get settings for the current environment."""
    return Settings.from_env()
