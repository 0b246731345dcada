"""报价服务门面测试。"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import StubProvider, make_multi_request, make_option, make_package, make_single_request
from shipquote.core.error_handler import QuoteValidationError
from shipquote.modules.quote.models import VendorPackage
from shipquote.modules.quote.providers import AggregatorProvider, PostalZoneProvider
from shipquote.modules.quote.registry import PROVIDER_FACTORIES, build_providers
from shipquote.modules.quote.service import ShippingQuoteService


def _service(providers=None, **config):
    cfg = {"provider_timeout_ms": 1000, **config}
    if providers is None:
        providers = [PostalZoneProvider(enabled=True), AggregatorProvider(enabled=True, api_key="k")]
    return ShippingQuoteService(config=cfg, providers=providers)


@pytest.mark.asyncio
async def test_single_vendor_quote_through_reference_providers(domestic_request) -> None:
    result = await _service().compute_single_vendor_quote(domestic_request)

    # 声明价值超出聚合 provider 上限
    assert result.metadata.available_providers == ["VNPost"]
    assert result.metadata.unavailable_providers == ["EasyPost"]
    assert result.cheapest.service_code == "VNP_ECONOMY"
    assert result.fastest.service_code == "VNP_STANDARD"
    assert result.cheapest.cost == Decimal("16000.00")


@pytest.mark.asyncio
async def test_single_vendor_rejects_ambiguous_request() -> None:
    req = make_single_request()
    req.vendor_packages = [VendorPackage(vendor=req.vendor, package=req.package)]

    with pytest.raises(QuoteValidationError):
        await _service().compute_single_vendor_quote(req)


@pytest.mark.asyncio
async def test_multi_vendor_quote_uses_configured_default_strategy() -> None:
    provider = StubProvider("X", [make_option(provider="X", cost="10", days=2)])
    service = _service([provider], default_strategy="MIXED_PROVIDERS")
    req = make_multi_request(
        ("a", "A", "VN", "Hanoi", None),
        ("b", "B", "VN", "Hue", None),
    )

    result = await service.compute_multi_vendor_quote(req)

    assert result.best_consolidated_option.consolidation_strategy == "MIXED_PROVIDERS"
    assert result.best_consolidated_option.total_cost == Decimal("20")


@pytest.mark.asyncio
async def test_multi_vendor_rejects_unknown_strategy() -> None:
    req = make_multi_request(("a", "A", "VN", "Hanoi", None))

    with pytest.raises(QuoteValidationError):
        await _service().compute_multi_vendor_quote(req, strategy="RANDOM")


@pytest.mark.asyncio
async def test_get_quotes_from_named_provider() -> None:
    req = make_single_request(destination_country="US", destination_city="Boston", package=make_package(declared_value="100"))

    options = await _service().get_quotes_from_provider(req, "easypost")

    assert [o.provider for o in options] == ["DHL", "FedEx"]
    assert all(o.billable_weight is not None for o in options)


@pytest.mark.asyncio
async def test_get_quotes_from_unknown_provider(domestic_request) -> None:
    with pytest.raises(QuoteValidationError):
        await _service().get_quotes_from_provider(domestic_request, "Nope")


def test_available_providers_for_route() -> None:
    service = _service()

    assert service.get_available_providers("vn", "jp") == ["VNPost", "EasyPost"]
    assert service.get_available_providers("US", "VN") == ["EasyPost"]
    assert service.get_available_providers("VN", "BR") == []


def test_validate_request_reports_warnings() -> None:
    result = _service(heavy_package_warning_kg=10).validate_request(make_single_request(package=make_package(weight="12")))

    assert result.valid is True
    assert result.warnings


def test_provider_status_snapshot() -> None:
    status = _service().get_provider_status()

    assert set(status) == {"VNPost", "EasyPost"}
    assert status["EasyPost"]["has_api_key"] is True
    assert status["VNPost"]["max_weight"] == 30.0


@pytest.mark.asyncio
async def test_connectivity_reports_failures_as_false() -> None:
    healthy = StubProvider("Healthy")
    broken = StubProvider("Broken")
    broken.health_check = AsyncMock(side_effect=RuntimeError("dns failure"))

    status = await _service([healthy, broken]).test_provider_connectivity()

    assert status == {"Healthy": True, "Broken": False}


def test_registry_builds_every_registered_provider_in_order() -> None:
    providers = build_providers(
        {
            "postal": {"enabled": True},
            "aggregator": {"enabled": True, "api_key": "k", "dimension_unit": "in"},
        }
    )

    assert [type(p) for p in providers] == [PostalZoneProvider, AggregatorProvider]
    assert list(PROVIDER_FACTORIES) == ["postal", "aggregator"]
    assert providers[1].dimension_unit == "in"


def test_registry_keeps_disabled_providers_for_reporting() -> None:
    providers = build_providers({})

    assert len(providers) == 2
    assert not any(p.is_available() for p in providers)


@pytest.mark.asyncio
async def test_single_vendor_rejects_nan_weight() -> None:
    req = make_single_request(package=make_package(weight="NaN"))

    with pytest.raises(QuoteValidationError):
        await _service().compute_single_vendor_quote(req)
