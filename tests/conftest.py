"""
测试工具和fixtures
Test Utilities and Fixtures
"""

import os
import sys
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

os.environ.setdefault("SHIPQUOTE_LOG_TO_FILE", "false")

sys.path.insert(0, str(Path(__file__).parent.parent))

from shipquote.core.config import Config
from shipquote.core.logger import Logger
from shipquote.modules.quote.models import (
    Address,
    CustomerInfo,
    Dimensions,
    PackageSpec,
    ProviderRating,
    QuoteOption,
    QuoteRequest,
    VendorInfo,
    VendorPackage,
)
from shipquote.modules.quote.providers import IShippingProvider


@pytest.fixture
def temp_dir():
    """创建临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """创建临时配置文件"""
    config_file = temp_dir / "config.yaml"
    config_content = """
app:
  name: "shipquote-test"
  version: "1.0.0"
  debug: true
  log_level: "DEBUG"

quote:
  provider_timeout_ms: 1500
  quote_ttl_minutes: 15
  default_strategy: "SAME_PROVIDER"
  fx_rates:
    usd: 1.0
    VND: 0.00004

providers:
  postal:
    enabled: true
  aggregator:
    enabled: true
    api_key: "${SHIPQUOTE_TEST_AGGREGATOR_KEY}"
    mock_mode: true
"""
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture
def config(temp_config_file):
    """测试配置实例"""
    monkeypatch = pytest.MonkeyPatch()
    monkeypatch.setenv("SHIPQUOTE_TEST_AGGREGATOR_KEY", "test_aggregator_key")

    config = Config(str(temp_config_file))
    yield config

    monkeypatch.undo()


@pytest.fixture
def logger(temp_dir, config):
    """测试日志实例"""
    logger = Logger()
    yield logger


def make_address(country="VN", city="Hanoi", **kwargs):
    return Address(country=country, city=city, **kwargs)


def make_package(weight="3", length="20", width="15", height="10", currency="VND", declared_value="500000", **kwargs):
    return PackageSpec(
        weight=weight,
        dimensions=Dimensions(length, width, height),
        declared_value=declared_value,
        currency=currency,
        **kwargs,
    )


def make_single_request(
    origin_country="VN",
    origin_city="Hanoi",
    destination_country="VN",
    destination_city="Ho Chi Minh City",
    package=None,
    **kwargs,
):
    return QuoteRequest(
        customer=CustomerInfo(name="Nguyen Van A", address=make_address(destination_country, destination_city)),
        vendor=VendorInfo(name="Shop Hanoi", address=make_address(origin_country, origin_city), vendor_id="v-hn"),
        package=package or make_package(),
        **kwargs,
    )


def make_multi_request(*vendor_specs, destination_country="VN", destination_city="Ho Chi Minh City", **kwargs):
    """vendor_specs: (vendor_id, vendor_name, origin_country, origin_city, package)"""
    return QuoteRequest(
        customer=CustomerInfo(name="Nguyen Van A", address=make_address(destination_country, destination_city)),
        vendor_packages=[
            VendorPackage(
                vendor=VendorInfo(name=name, address=make_address(country, city), vendor_id=vendor_id),
                package=package or make_package(),
            )
            for vendor_id, name, country, city, package in vendor_specs
        ],
        **kwargs,
    )


def make_option(provider="CarrierX", cost="10", days=2, currency="USD", **kwargs):
    return QuoteOption(
        provider=provider,
        service=kwargs.pop("service", "Standard"),
        cost=Decimal(str(cost)) if cost is not None else None,
        currency=currency,
        estimated_days=days,
        rating=ProviderRating(4.0, 4.0, 4.0, 4.0),
        **kwargs,
    )


class StubProvider(IShippingProvider):
    """可控的测试 provider：固定返回选项、可延迟、可抛异常。"""

    def __init__(
        self,
        name,
        options=None,
        *,
        available=True,
        countries=("VN", "US", "JP"),
        max_weight="30",
        delay=0.0,
        error=None,
    ):
        super().__init__()
        self._name = name
        self._options = list(options or [])
        self._available = available
        self._countries = list(countries)
        self._max_weight = Decimal(max_weight)
        self._delay = delay
        self._raise = error
        self.calls = 0

    @property
    def name(self):
        return self._name

    def supported_countries(self):
        return list(self._countries)

    def max_weight(self):
        return self._max_weight

    def max_declared_value(self):
        return None

    def is_available(self):
        return self._available

    def supports_route(self, origin_country, destination_country):
        return origin_country in self._countries and destination_country in self._countries

    def supports_package(self, weight, dimensions, declared_value):
        return weight <= self._max_weight

    async def _fetch_rates(self, request, timeout_ms):
        import asyncio

        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._raise is not None:
            raise self._raise
        return [option for option in self._options]


@pytest.fixture
def domestic_request():
    return make_single_request()


@pytest.fixture
def same_city_request():
    return make_single_request(destination_city="hanoi")
