"""报价模型与请求校验测试。"""

from decimal import Decimal

import pytest

from conftest import make_multi_request, make_option, make_package, make_single_request
from shipquote.core.error_handler import QuoteValidationError
from shipquote.modules.quote.models import MULTI_ORIGIN, QuoteRequest, VendorInfo, VendorPackage
from shipquote.modules.quote.validation import ensure_valid_request, validate_quote_request


def test_request_from_dict_parses_single_vendor_shape() -> None:
    req = QuoteRequest.from_dict(
        {
            "customer": {"name": "A", "address": {"country": "vn", "city": "Hanoi"}},
            "vendor": {"name": "Shop", "vendor_id": "s1", "address": {"country": "VN", "city": "Hue"}},
            "package": {
                "weight": "2.5",
                "dimensions": {"length": 10, "width": 10, "height": 10},
                "declared_value": 100000,
                "currency": "vnd",
            },
            "preferred_currency": "usd",
        }
    )

    assert req.is_single_vendor() is True
    assert req.is_multi_vendor() is False
    assert req.customer.address.country == "VN"
    assert req.package.weight == Decimal("2.5")
    assert req.package.currency == "VND"
    assert req.preferred_currency == "USD"
    assert req.origin_country == "VN"


def test_multi_vendor_request_has_multi_origin() -> None:
    req = make_multi_request(
        ("a", "Vendor A", "VN", "Hanoi", None),
        ("b", "Vendor B", "VN", "Da Nang", None),
    )

    assert req.is_multi_vendor() is True
    assert req.origin_country == MULTI_ORIGIN
    assert len(req.packages()) == 2


def test_for_vendor_builds_single_vendor_sub_request() -> None:
    req = make_multi_request(("a", "Vendor A", "VN", "Hanoi", None), require_insurance=True, preferred_currency="USD")
    sub = req.for_vendor(req.vendor_packages[0])

    assert sub.is_single_vendor() is True
    assert sub.customer is req.customer
    assert sub.require_insurance is True
    assert sub.preferred_currency == "USD"


def test_option_tagging_returns_copy() -> None:
    option = make_option()
    tagged = option.tagged("v1", "Vendor One")

    assert tagged.vendor_id == "v1"
    assert option.vendor_id is None
    assert tagged.cost == option.cost


def test_option_to_dict_rounds_money() -> None:
    option = make_option(cost="10.005")
    assert option.to_dict()["cost"] == 10.01


def test_validation_passes_for_well_formed_single_request() -> None:
    result = validate_quote_request(make_single_request())
    assert result.valid is True
    assert result.errors == []


def test_validation_rejects_both_shapes() -> None:
    req = make_single_request()
    req.vendor_packages = [VendorPackage(vendor=req.vendor, package=req.package)]

    result = validate_quote_request(req)

    assert result.valid is False
    assert "not both" in result.errors[0]
    with pytest.raises(QuoteValidationError):
        ensure_valid_request(req)


def test_validation_rejects_missing_customer_address() -> None:
    req = make_single_request()
    req.customer.address = None

    result = validate_quote_request(req)
    assert result.valid is False
    assert "Customer address is required" in result.errors


def test_validation_rejects_missing_package_in_single_mode() -> None:
    req = make_single_request()
    req.package = None

    result = validate_quote_request(req)
    assert result.valid is False
    assert any("Package information is required" in err for err in result.errors)


def test_validation_rejects_empty_request_shape() -> None:
    req = make_single_request()
    req.vendor = None
    req.package = None

    result = validate_quote_request(req)
    assert result.valid is False


def test_validation_rejects_non_positive_values() -> None:
    req = make_single_request(package=make_package(weight="0", declared_value="-1"))

    result = validate_quote_request(req)
    assert result.valid is False
    assert any("weight" in err for err in result.errors)
    assert any("declared value" in err for err in result.errors)


@pytest.mark.parametrize("bad", ["NaN", "Infinity", "-Infinity", Decimal("NaN"), float("inf")])
def test_validation_rejects_non_finite_values(bad) -> None:
    req = make_single_request(package=make_package(weight=bad, length=bad, declared_value=bad))

    result = validate_quote_request(req)
    assert result.valid is False
    assert any("weight" in err for err in result.errors)
    assert any("dimensions" in err for err in result.errors)
    assert any("declared value" in err for err in result.errors)


def test_validation_warns_on_heavy_package() -> None:
    req = make_single_request(package=make_package(weight="60"))

    result = validate_quote_request(req)
    assert result.valid is True
    assert any("50" in warning for warning in result.warnings)


def test_ensure_valid_request_checks_expected_shape() -> None:
    multi = make_multi_request(("a", "Vendor A", "VN", "Hanoi", None))
    with pytest.raises(QuoteValidationError):
        ensure_valid_request(multi, expect="single")

    single = make_single_request()
    with pytest.raises(QuoteValidationError):
        ensure_valid_request(single, expect="multi")


def test_ensure_valid_request_collects_errors() -> None:
    req = make_multi_request(("a", "Vendor A", "VN", "Hanoi", None))
    req.vendor_packages.append(VendorPackage(vendor=VendorInfo(name="B", address=None), package=None))

    with pytest.raises(QuoteValidationError) as exc_info:
        ensure_valid_request(req)
    assert len(exc_info.value.errors) == 2
    assert exc_info.value.details["errors"] == exc_info.value.errors
