"""报价请求校验：结构错误直接拒绝，承运商层面的问题留给引擎降级处理。"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from shipquote.core.error_handler import QuoteValidationError
from shipquote.modules.quote.models import Address, PackageSpec, QuoteRequest

DEFAULT_HEAVY_WARNING_KG = Decimal("50")


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def _check_address(address: Address | None, label: str, errors: list[str]) -> None:
    if address is None:
        errors.append(f"{label} address is required")
        return
    if len(address.country) not in (2, 3):
        errors.append(f"{label} country code must be 2-3 characters")
    if not address.city:
        errors.append(f"{label} city is required")


def _check_package(package: PackageSpec, label: str, errors: list[str]) -> None:
    if package.weight is None or package.weight <= 0:
        errors.append(f"{label} weight must be greater than 0")
    dims = package.dimensions
    if dims is None:
        errors.append(f"{label} dimensions are required")
    elif any(side is None or side <= 0 for side in (dims.length, dims.width, dims.height)):
        errors.append(f"{label} dimensions must be greater than 0")
    if package.declared_value is None or package.declared_value <= 0:
        errors.append(f"{label} declared value must be greater than 0")
    if len(package.currency) != 3 or not package.currency.isalpha():
        errors.append(f"{label} currency must be a 3-letter ISO code")


def validate_quote_request(
    request: QuoteRequest | None,
    heavy_warning_kg: Decimal | float = DEFAULT_HEAVY_WARNING_KG,
) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if request is None:
        return ValidationResult(valid=False, errors=["Request cannot be null"])

    if request.customer is None:
        errors.append("Customer information is required")
    else:
        _check_address(request.customer.address, "Customer", errors)

    has_single = request.has_single_vendor_fields()
    has_multi = bool(request.vendor_packages)

    if has_single and has_multi:
        errors.append("Request must be either single vendor or multi vendor, not both")
    elif not has_single and not has_multi:
        errors.append("Request must specify a vendor and package or a non-empty vendor package list")
    elif has_single:
        if request.vendor is None:
            errors.append("Vendor information is required for single vendor request")
        else:
            _check_address(request.vendor.address, "Vendor", errors)
        if request.package is None:
            errors.append("Package information is required for single vendor request")
        else:
            _check_package(request.package, "Package", errors)
    else:
        for index, vendor_package in enumerate(request.vendor_packages):
            label = f"Vendor package #{index + 1}"
            if vendor_package.vendor is None:
                errors.append(f"{label}: vendor information is required")
            else:
                _check_address(vendor_package.vendor.address, label + " vendor", errors)
            if vendor_package.package is None:
                errors.append(f"{label}: package information is required")
            else:
                _check_package(vendor_package.package, label + " package", errors)

    if not errors:
        threshold = Decimal(str(heavy_warning_kg))
        for package in request.packages():
            if package.weight > threshold:
                warnings.append(
                    f"Package weight exceeds {threshold}kg - limited carrier options may be available"
                )
            if package.is_hazardous:
                warnings.append("Hazardous contents may be refused by some carriers")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def ensure_valid_request(
    request: QuoteRequest | None,
    *,
    expect: str | None = None,
    heavy_warning_kg: Decimal | float = DEFAULT_HEAVY_WARNING_KG,
) -> ValidationResult:
    """校验并在结构错误时抛出 QuoteValidationError；expect 限定 single / multi。"""
    result = validate_quote_request(request, heavy_warning_kg=heavy_warning_kg)
    if not result.valid:
        raise QuoteValidationError("Invalid request: " + ", ".join(result.errors), errors=result.errors)

    if expect == "single" and not request.is_single_vendor():
        raise QuoteValidationError("Request must be single-vendor", errors=["expected single vendor request"])
    if expect == "multi" and not request.is_multi_vendor():
        raise QuoteValidationError("Request must be multi-vendor", errors=["expected multi vendor request"])
    return result
