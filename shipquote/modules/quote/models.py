"""运费报价领域模型。"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

SINGLE_VENDOR = "SINGLE_VENDOR"
MULTI_VENDOR = "MULTI_VENDOR"
MULTI_ORIGIN = "MULTI"
MIXED_CURRENCY = "MIXED"

CALC_EXTERNAL_API = "EXTERNAL_API"
CALC_INTERNAL = "INTERNAL_CALCULATION"
CALC_HYBRID = "HYBRID"

PACKAGE_TYPES = {"box", "envelope", "tube", "pak", "custom"}

ONE_CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal | None:
    """转换为 Decimal；空值、非法值与 NaN/Infinity 一律视为缺失。"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(ONE_CENT, rounding=ROUND_HALF_UP)


def _money_out(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(quantize_money(value))


@dataclass(slots=True)
class Address:
    """地址（客户与商家共用）。"""

    country: str
    city: str
    postal_code: str = ""
    street: str = ""
    state: str | None = None
    address_line2: str | None = None

    def __post_init__(self) -> None:
        self.country = str(self.country or "").strip().upper()
        self.city = str(self.city or "").strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "country": self.country,
            "city": self.city,
            "postal_code": self.postal_code,
            "street": self.street,
            "state": self.state,
            "address_line2": self.address_line2,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Address:
        return cls(
            country=data.get("country", ""),
            city=data.get("city", ""),
            postal_code=str(data.get("postal_code") or data.get("zip") or ""),
            street=str(data.get("street") or ""),
            state=data.get("state"),
            address_line2=data.get("address_line2"),
        )


@dataclass(slots=True)
class Dimensions:
    """包裹尺寸（厘米）。"""

    length: Decimal
    width: Decimal
    height: Decimal
    unit: str = "cm"

    def __post_init__(self) -> None:
        self.length = to_decimal(self.length)
        self.width = to_decimal(self.width)
        self.height = to_decimal(self.height)

    @property
    def volume(self) -> Decimal:
        return self.length * self.width * self.height

    @property
    def longest_side(self) -> Decimal:
        return max(self.length, self.width, self.height)

    @property
    def total(self) -> Decimal:
        return self.length + self.width + self.height

    def to_dict(self) -> dict[str, Any]:
        return {
            "length": float(self.length),
            "width": float(self.width),
            "height": float(self.height),
            "unit": self.unit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dimensions:
        return cls(
            length=data.get("length"),
            width=data.get("width"),
            height=data.get("height"),
            unit=str(data.get("unit") or "cm"),
        )


@dataclass(slots=True)
class PackageSpec:
    """包裹规格。"""

    weight: Decimal
    dimensions: Dimensions
    declared_value: Decimal
    currency: str
    package_type: str = "box"
    is_fragile: bool = False
    is_liquid: bool = False
    is_hazardous: bool = False
    special_instructions: str | None = None
    content_description: str | None = None

    def __post_init__(self) -> None:
        self.weight = to_decimal(self.weight)
        self.declared_value = to_decimal(self.declared_value)
        self.currency = str(self.currency or "").strip().upper()

    def to_dict(self) -> dict[str, Any]:
        return {
            "weight": float(self.weight) if self.weight is not None else None,
            "dimensions": self.dimensions.to_dict() if self.dimensions else None,
            "declared_value": _money_out(self.declared_value),
            "currency": self.currency,
            "package_type": self.package_type,
            "is_fragile": self.is_fragile,
            "is_liquid": self.is_liquid,
            "is_hazardous": self.is_hazardous,
            "special_instructions": self.special_instructions,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageSpec:
        dims = data.get("dimensions")
        return cls(
            weight=data.get("weight"),
            dimensions=Dimensions.from_dict(dims) if isinstance(dims, dict) else None,
            declared_value=data.get("declared_value"),
            currency=data.get("currency", ""),
            package_type=str(data.get("package_type") or data.get("type") or "box"),
            is_fragile=bool(data.get("is_fragile", False)),
            is_liquid=bool(data.get("is_liquid", False)),
            is_hazardous=bool(data.get("is_hazardous", False)),
            special_instructions=data.get("special_instructions"),
            content_description=data.get("content_description"),
        )


@dataclass(slots=True)
class CustomerInfo:
    name: str
    address: Address | None
    email: str | None = None
    phone: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CustomerInfo:
        address = data.get("address")
        return cls(
            name=str(data.get("name") or ""),
            address=Address.from_dict(address) if isinstance(address, dict) else None,
            email=data.get("email"),
            phone=data.get("phone"),
        )


@dataclass(slots=True)
class VendorInfo:
    name: str
    address: Address | None
    vendor_id: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorInfo:
        address = data.get("address")
        return cls(
            name=str(data.get("name") or ""),
            address=Address.from_dict(address) if isinstance(address, dict) else None,
            vendor_id=data.get("vendor_id"),
            contact_email=data.get("contact_email"),
            contact_phone=data.get("contact_phone"),
        )


@dataclass(slots=True)
class VendorPackage:
    vendor: VendorInfo | None
    package: PackageSpec | None


@dataclass(slots=True)
class QuoteRequest:
    """报价请求：单商家（vendor + package）或多商家（vendor_packages），二者互斥。"""

    customer: CustomerInfo | None
    vendor: VendorInfo | None = None
    package: PackageSpec | None = None
    vendor_packages: list[VendorPackage] = field(default_factory=list)
    require_insurance: bool = False
    preferred_currency: str | None = None

    def has_single_vendor_fields(self) -> bool:
        return self.vendor is not None or self.package is not None

    def is_single_vendor(self) -> bool:
        return self.vendor is not None and self.package is not None and not self.vendor_packages

    def is_multi_vendor(self) -> bool:
        return bool(self.vendor_packages) and not self.has_single_vendor_fields()

    def is_valid_shape(self) -> bool:
        return self.is_single_vendor() or self.is_multi_vendor()

    @property
    def origin_country(self) -> str:
        if self.is_single_vendor() and self.vendor.address:
            return self.vendor.address.country
        return MULTI_ORIGIN

    @property
    def destination_country(self) -> str:
        if self.customer and self.customer.address:
            return self.customer.address.country
        return ""

    def for_vendor(self, vendor_package: VendorPackage) -> QuoteRequest:
        return QuoteRequest(
            customer=self.customer,
            vendor=vendor_package.vendor,
            package=vendor_package.package,
            require_insurance=self.require_insurance,
            preferred_currency=self.preferred_currency,
        )

    def packages(self) -> list[PackageSpec]:
        if self.is_single_vendor():
            return [self.package]
        return [vp.package for vp in self.vendor_packages if vp.package is not None]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuoteRequest:
        customer = data.get("customer")
        vendor = data.get("vendor")
        package = data.get("package") or data.get("package_info")
        vendor_packages = []
        for item in data.get("vendor_packages") or []:
            if not isinstance(item, dict):
                continue
            vp_vendor = item.get("vendor")
            vp_package = item.get("package") or item.get("package_info")
            vendor_packages.append(
                VendorPackage(
                    vendor=VendorInfo.from_dict(vp_vendor) if isinstance(vp_vendor, dict) else None,
                    package=PackageSpec.from_dict(vp_package) if isinstance(vp_package, dict) else None,
                )
            )
        preferred = data.get("preferred_currency")
        return cls(
            customer=CustomerInfo.from_dict(customer) if isinstance(customer, dict) else None,
            vendor=VendorInfo.from_dict(vendor) if isinstance(vendor, dict) else None,
            package=PackageSpec.from_dict(package) if isinstance(package, dict) else None,
            vendor_packages=vendor_packages,
            require_insurance=bool(data.get("require_insurance", False)),
            preferred_currency=str(preferred).upper() if preferred else None,
        )


@dataclass(slots=True)
class ProviderRating:
    overall: float
    delivery_time: float
    reliability: float
    customer_service: float
    total_reviews: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "delivery_time": self.delivery_time,
            "reliability": self.reliability,
            "customer_service": self.customer_service,
            "total_reviews": self.total_reviews,
        }


@dataclass(slots=True)
class QuoteOption:
    """统一报价选项。"""

    provider: str
    service: str
    cost: Decimal | None
    currency: str | None
    estimated_days: int | None
    estimated_delivery_date: date | None = None
    service_code: str = ""
    tracking_supported: bool = True
    insurance_included: bool = False
    insurance_cost: Decimal | None = None
    max_insurance_value: Decimal | None = None
    delivery_type: str = "DOOR_TO_DOOR"
    features: list[str] = field(default_factory=list)
    rating: ProviderRating | None = None
    restrictions: list[str] = field(default_factory=list)
    vendor_id: str | None = None
    vendor_name: str | None = None
    dimensional_weight: Decimal | None = None
    billable_weight: Decimal | None = None
    normalized_cost: Decimal | None = None
    normalized_currency: str | None = None

    def is_comparable(self) -> bool:
        return self.cost is not None and self.estimated_days is not None

    def tagged(self, vendor_id: str | None, vendor_name: str | None) -> QuoteOption:
        return replace(self, vendor_id=vendor_id, vendor_name=vendor_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "service": self.service,
            "service_code": self.service_code,
            "cost": _money_out(self.cost),
            "currency": self.currency,
            "estimated_days": self.estimated_days,
            "estimated_delivery_date": (
                self.estimated_delivery_date.isoformat() if self.estimated_delivery_date else None
            ),
            "tracking_supported": self.tracking_supported,
            "insurance_included": self.insurance_included,
            "insurance_cost": _money_out(self.insurance_cost),
            "max_insurance_value": _money_out(self.max_insurance_value),
            "delivery_type": self.delivery_type,
            "features": list(self.features),
            "rating": self.rating.to_dict() if self.rating else None,
            "restrictions": list(self.restrictions),
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "dimensional_weight": float(self.dimensional_weight) if self.dimensional_weight is not None else None,
            "billable_weight": float(self.billable_weight) if self.billable_weight is not None else None,
            "normalized_cost": _money_out(self.normalized_cost),
            "normalized_currency": self.normalized_currency,
        }


@dataclass(slots=True)
class ProviderError:
    """provider 级错误记录：只收集，不抛出。"""

    provider: str
    error_code: str
    error_message: str
    fallback_used: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "fallback_used": self.fallback_used,
        }


@dataclass(slots=True)
class QuoteMetadata:
    origin_country: str
    destination_country: str
    is_domestic: bool
    requires_customs: bool
    total_packages: int
    total_weight: Decimal
    total_declared_value: Decimal
    base_currency: str
    available_providers: list[str] = field(default_factory=list)
    unavailable_providers: list[str] = field(default_factory=list)
    provider_errors: list[ProviderError] = field(default_factory=list)
    calculation_method: str = CALC_EXTERNAL_API
    vendors_without_options: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin_country": self.origin_country,
            "destination_country": self.destination_country,
            "is_domestic": self.is_domestic,
            "requires_customs": self.requires_customs,
            "total_packages": self.total_packages,
            "total_weight": float(self.total_weight),
            "total_declared_value": _money_out(self.total_declared_value),
            "base_currency": self.base_currency,
            "available_providers": list(self.available_providers),
            "unavailable_providers": list(self.unavailable_providers),
            "provider_errors": [err.to_dict() for err in self.provider_errors],
            "calculation_method": self.calculation_method,
            "vendors_without_options": list(self.vendors_without_options),
        }


@dataclass(slots=True)
class QuoteResult:
    """报价结果；options 为空表示“没有可用承运商”，不是错误。"""

    quote_id: str
    quoted_at: datetime
    expires_at: datetime
    request_type: str
    options: list[QuoteOption]
    metadata: QuoteMetadata
    recommended: QuoteOption | None = None
    cheapest: QuoteOption | None = None
    fastest: QuoteOption | None = None

    def has_options(self) -> bool:
        return bool(self.options)

    def options_for_vendor(self, vendor_id: str) -> list[QuoteOption]:
        return [option for option in self.options if option.vendor_id == vendor_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "quote_id": self.quote_id,
            "quoted_at": self.quoted_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "request_type": self.request_type,
            "options": [option.to_dict() for option in self.options],
            "recommended": self.recommended.to_dict() if self.recommended else None,
            "cheapest": self.cheapest.to_dict() if self.cheapest else None,
            "fastest": self.fastest.to_dict() if self.fastest else None,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(slots=True)
class ConsolidatedQuote:
    """多商家合并报价。"""

    individual_options: list[QuoteOption]
    total_cost: Decimal | None
    currency: str
    max_delivery_days: int
    estimated_delivery_date: date | None
    all_tracking_supported: bool
    consolidation_strategy: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "individual_options": [option.to_dict() for option in self.individual_options],
            "total_cost": _money_out(self.total_cost),
            "currency": self.currency,
            "max_delivery_days": self.max_delivery_days,
            "estimated_delivery_date": (
                self.estimated_delivery_date.isoformat() if self.estimated_delivery_date else None
            ),
            "all_tracking_supported": self.all_tracking_supported,
            "consolidation_strategy": self.consolidation_strategy,
        }


@dataclass(slots=True)
class VendorQuote:
    vendor_id: str
    vendor_name: str
    quote: QuoteResult
    selected_option: QuoteOption | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "quote": self.quote.to_dict(),
            "selected_option": self.selected_option.to_dict() if self.selected_option else None,
        }


@dataclass(slots=True)
class MultiVendorQuoteResult:
    consolidated_quote_id: str
    quoted_at: datetime
    vendor_quotes: dict[str, VendorQuote]
    combined: QuoteResult
    best_consolidated_option: ConsolidatedQuote | None = None

    def to_dict(self) -> dict[str, Any]:
        best = self.best_consolidated_option
        return {
            "consolidated_quote_id": self.consolidated_quote_id,
            "quoted_at": self.quoted_at.isoformat(),
            "vendor_quotes": {vid: vq.to_dict() for vid, vq in self.vendor_quotes.items()},
            "combined": self.combined.to_dict(),
            "best_consolidated_option": best.to_dict() if best else None,
            "total_estimated_cost": _money_out(best.total_cost) if best else None,
            "currency": best.currency if best else None,
            "max_estimated_days": best.max_delivery_days if best else None,
        }
