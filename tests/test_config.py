"""Tests for environment-driven settings."""

from decimal import Decimal

import pytest

from storefront.config import DEFAULT_REGULAR_FEE, DEFAULT_RUSH_PROVINCE, get_settings
from storefront.errors import ConfigError
from storefront.pricing import PricingPolicy


class TestSettings:
    def test_defaults(self, data_dir):
        settings = get_settings()

        assert settings.data_dir == data_dir
        assert settings.regular_fee == DEFAULT_REGULAR_FEE
        assert settings.rush_province == DEFAULT_RUSH_PROVINCE
        assert settings.vat_rate == Decimal("0.10")

    def test_overrides(self, data_dir, monkeypatch):
        monkeypatch.setenv("STOREFRONT_RUSH_FEE", "65000")
        monkeypatch.setenv("STOREFRONT_VAT_RATE", "0.08")
        monkeypatch.setenv("STOREFRONT_API_URL", "http://shop.test/")

        settings = get_settings()

        assert settings.rush_fee == 65000
        assert settings.vat_rate == Decimal("0.08")
        assert settings.api_url == "http://shop.test"

    def test_policy_follows_settings(self, data_dir, monkeypatch):
        monkeypatch.setenv("STOREFRONT_REGULAR_FEE", "25000")

        assert PricingPolicy.from_settings().regular_fee == 25000

    def test_invalid_integer(self, data_dir, monkeypatch):
        monkeypatch.setenv("STOREFRONT_HTTP_RETRIES", "three")

        with pytest.raises(ConfigError) as exc_info:
            get_settings()
        assert exc_info.value.name == "STOREFRONT_HTTP_RETRIES"

    @pytest.mark.parametrize("rate", ["1", "-0.1", "ten"])
    def test_invalid_vat_rate(self, data_dir, monkeypatch, rate):
        monkeypatch.setenv("STOREFRONT_VAT_RATE", rate)

        with pytest.raises(ConfigError):
            get_settings()
