"""承运商 provider 适配层。"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

import httpx

from shipquote.core.error_handler import QuoteProviderError, UnsupportedCapabilityError, retry
from shipquote.core.logger import get_logger
from shipquote.modules.quote.models import (
    Dimensions,
    PackageSpec,
    ProviderError,
    ProviderRating,
    QuoteOption,
    QuoteRequest,
)

DEFAULT_DIMENSIONAL_DIVISOR = Decimal("5000")
INCH_DIMENSIONAL_DIVISOR = Decimal("139")
TWO_PLACES = Decimal("0.01")


class ProviderCapability(str, Enum):
    QUOTE = "QUOTE"
    TRACKING = "TRACKING"
    SHIPMENT_CREATION = "SHIPMENT_CREATION"


@dataclass(slots=True)
class ProviderOutcome:
    """一次 provider 调用的结果：选项列表 + 可选的结构化错误。"""

    options: list[QuoteOption] = field(default_factory=list)
    error: ProviderError | None = None


def dimensional_weight(dimensions: Dimensions, divisor: Decimal | float = DEFAULT_DIMENSIONAL_DIVISOR) -> Decimal:
    """体积重 = 长 × 宽 × 高 / 除数，保留两位小数。"""
    div = Decimal(str(divisor))
    return (dimensions.volume / div).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def tiered_rate(weight: Decimal, base_rate: Decimal, per_kg_rate: Decimal) -> Decimal:
    """首重计价：基础价 + 超出 1kg 部分 × 续重单价。"""
    additional = max(Decimal(weight) - Decimal("1"), Decimal("0"))
    return Decimal(base_rate) + additional * Decimal(per_kg_rate)


def restriction_tags(package: PackageSpec) -> list[str]:
    tags = []
    if package.is_fragile:
        tags.append("FRAGILE_HANDLING")
    if package.is_liquid:
        tags.append("LIQUID_SEALED_PACKAGING")
    if package.is_hazardous:
        tags.append("HAZMAT_DECLARATION_REQUIRED")
    return tags


class IShippingProvider(ABC):
    """承运商 provider 接口。

    新承运商只需实现该接口并在 registry 中登记，即可接入报价引擎。
    ``quote`` 对“无服务”“未启用”等常规情况返回空列表，不抛异常；
    传输或解析失败由 ``fetch_quotes`` 转成 ProviderError 交给调用方。
    """

    DIMENSIONAL_DIVISOR: Decimal = DEFAULT_DIMENSIONAL_DIVISOR
    capabilities: frozenset[ProviderCapability] = frozenset({ProviderCapability.QUOTE})

    def __init__(self) -> None:
        self.logger = get_logger("provider")

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def supported_countries(self) -> list[str]:
        pass

    @abstractmethod
    def max_weight(self) -> Decimal | None:
        pass

    @abstractmethod
    def max_declared_value(self) -> Decimal | None:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def supports_route(self, origin_country: str, destination_country: str) -> bool:
        pass

    @abstractmethod
    def supports_package(self, weight: Decimal, dimensions: Dimensions, declared_value: Decimal) -> bool:
        pass

    @abstractmethod
    async def _fetch_rates(self, request: QuoteRequest, timeout_ms: int) -> list[QuoteOption]:
        """按本承运商规则计算报价；失败时抛出 QuoteProviderError。"""

    def dimensional_weight(self, dimensions: Dimensions) -> Decimal:
        return dimensional_weight(dimensions, self.DIMENSIONAL_DIVISOR)

    def configuration(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "available": self.is_available(),
            "max_weight": _float_or_none(self.max_weight()),
            "max_value": _float_or_none(self.max_declared_value()),
            "dimensional_divisor": float(self.DIMENSIONAL_DIVISOR),
            "capabilities": sorted(cap.value for cap in self.capabilities),
        }

    def supports(self, capability: ProviderCapability) -> bool:
        return capability in self.capabilities

    async def health_check(self) -> bool:
        return self.is_available()

    async def quote(self, request: QuoteRequest, timeout_ms: int = 3000) -> list[QuoteOption]:
        outcome = await self.fetch_quotes(request, timeout_ms=timeout_ms)
        return outcome.options

    async def fetch_quotes(self, request: QuoteRequest, timeout_ms: int = 3000) -> ProviderOutcome:
        if not self.is_available():
            self.logger.warning(f"{self.name} provider is not available")
            return ProviderOutcome(error=self._provider_error("PROVIDER_UNAVAILABLE", f"{self.name} is disabled or not configured"))

        origin = request.vendor.address.country
        destination = request.customer.address.country
        if not self.supports_route(origin, destination):
            self.logger.warning(f"{self.name} does not support route from {origin} to {destination}")
            return ProviderOutcome(error=self._provider_error("UNSUPPORTED_ROUTE", f"route {origin}->{destination} not served"))

        package = request.package
        if not self.supports_package(package.weight, package.dimensions, package.declared_value):
            self.logger.warning(f"{self.name} does not support package specifications")
            return ProviderOutcome(error=self._provider_error("UNSUPPORTED_PACKAGE", "package exceeds provider limits"))

        try:
            options = await self._fetch_rates(request, timeout_ms)
        except QuoteProviderError as exc:
            self.logger.warning(f"Error getting quotes from {self.name}: {exc.message}")
            return ProviderOutcome(error=self._provider_error(exc.code, exc.message))
        except Exception as exc:
            self.logger.error(f"Unexpected error getting quotes from {self.name}: {exc}")
            return ProviderOutcome(error=self._provider_error("PROVIDER_ERROR", str(exc)))

        return ProviderOutcome(options=list(options))

    async def track_shipment(self, tracking_number: str) -> dict[str, Any]:
        raise UnsupportedCapabilityError(
            f"Shipment tracking not supported by {self.name}",
            details={"provider": self.name, "capability": ProviderCapability.TRACKING.value},
        )

    async def create_shipment(self, request: QuoteRequest, option: QuoteOption) -> dict[str, Any]:
        raise UnsupportedCapabilityError(
            f"Shipment creation not supported by {self.name}",
            details={"provider": self.name, "capability": ProviderCapability.SHIPMENT_CREATION.value},
        )

    def _provider_error(self, code: str, message: str, fallback_used: str | None = None) -> ProviderError:
        return ProviderError(provider=self.name, error_code=code, error_message=message, fallback_used=fallback_used)


@dataclass(frozen=True, slots=True)
class RateTier:
    label: str
    service_code: str
    base_rate: Decimal
    per_kg_rate: Decimal
    days: int


DOMESTIC_TIERS: dict[str, RateTier] = {
    "EXPRESS": RateTier("Express", "VNP_EXPRESS", Decimal("25000"), Decimal("8000"), 1),
    "STANDARD": RateTier("Standard", "VNP_STANDARD", Decimal("15000"), Decimal("5000"), 3),
    "ECONOMY": RateTier("Economy", "VNP_ECONOMY", Decimal("10000"), Decimal("3000"), 5),
}

INTERNATIONAL_TIERS: dict[str, RateTier] = {
    "EMS": RateTier("EMS International", "VNP_EMS_INTL", Decimal("200000"), Decimal("50000"), 7),
    "REGULAR": RateTier("Regular International", "VNP_REG_INTL", Decimal("80000"), Decimal("20000"), 14),
}

_ZONE_GROUPS: list[tuple[tuple[str, ...], Decimal]] = [
    (("TH", "SG", "MY", "ID", "PH", "KH", "LA"), Decimal("1.0")),
    (("CN", "TW", "HK", "JP", "KR"), Decimal("1.2")),
    (("AU", "NZ"), Decimal("1.5")),
    (("US", "CA"), Decimal("1.8")),
    (("GB", "DE", "FR"), Decimal("2.0")),
]
ZONE_MULTIPLIERS: dict[str, Decimal] = {code: mult for codes, mult in _ZONE_GROUPS for code in codes}
DEFAULT_ZONE_MULTIPLIER = Decimal("2.5")

POSTAL_INTERNATIONAL_DESTINATIONS = (
    "US", "CA", "GB", "AU", "JP", "KR", "TH", "SG", "MY", "ID", "PH", "CN", "TW", "HK",
)


def zone_multiplier(country_code: str) -> Decimal:
    return ZONE_MULTIPLIERS.get(str(country_code or "").upper(), DEFAULT_ZONE_MULTIPLIER)


class PostalZoneProvider(IShippingProvider):
    """国家邮政分区计价 provider：国内三档时效，国际按目的地分区加乘。"""

    MAX_WEIGHT = Decimal("30")
    MAX_SINGLE_DIMENSION = Decimal("100")
    MAX_TOTAL_DIMENSIONS = Decimal("200")
    MAX_DECLARED_VALUE = Decimal("240000000")
    CURRENCY = "VND"

    def __init__(
        self,
        *,
        enabled: bool = False,
        api_key: str | None = None,
        base_url: str = "https://api.vnpost.vn/api",
        home_country: str = "VN",
        provider_name: str = "VNPost",
    ) -> None:
        super().__init__()
        self.enabled = bool(enabled)
        self.api_key = api_key
        self.base_url = base_url
        self.home_country = str(home_country or "VN").upper()
        self._name = provider_name

    @property
    def name(self) -> str:
        return self._name

    def supported_countries(self) -> list[str]:
        return [self.home_country, *POSTAL_INTERNATIONAL_DESTINATIONS]

    def max_weight(self) -> Decimal:
        return self.MAX_WEIGHT

    def max_declared_value(self) -> Decimal:
        return self.MAX_DECLARED_VALUE

    def is_available(self) -> bool:
        # 基础费率计算不需要 API key
        return self.enabled

    def supports_route(self, origin_country: str, destination_country: str) -> bool:
        if origin_country != self.home_country:
            return False
        if destination_country == self.home_country:
            return True
        return destination_country in POSTAL_INTERNATIONAL_DESTINATIONS

    def supports_package(self, weight: Decimal, dimensions: Dimensions, declared_value: Decimal) -> bool:
        if weight > self.MAX_WEIGHT:
            return False
        if dimensions.longest_side > self.MAX_SINGLE_DIMENSION:
            return False
        if dimensions.total > self.MAX_TOTAL_DIMENSIONS:
            return False
        return declared_value <= self.MAX_DECLARED_VALUE

    def configuration(self) -> dict[str, Any]:
        return {
            **super().configuration(),
            "enabled": self.enabled,
            "base_url": self.base_url,
            "primary_market": self.home_country,
        }

    async def _fetch_rates(self, request: QuoteRequest, timeout_ms: int) -> list[QuoteOption]:
        if self.is_domestic(request):
            return self.domestic_options(request)
        return self.international_options(request)

    def is_domestic(self, request: QuoteRequest) -> bool:
        return (
            request.vendor.address.country == self.home_country
            and request.customer.address.country == self.home_country
        )

    @staticmethod
    def is_same_city(request: QuoteRequest) -> bool:
        vendor_city = request.vendor.address.city
        return bool(vendor_city) and vendor_city.casefold() == request.customer.address.city.casefold()

    def domestic_options(self, request: QuoteRequest) -> list[QuoteOption]:
        weight = request.package.weight
        tiers = ["STANDARD", "ECONOMY"]
        if self.is_same_city(request):
            tiers.insert(0, "EXPRESS")
        return [
            self._option(DOMESTIC_TIERS[key], self.domestic_rate(weight, key), request.package)
            for key in tiers
        ]

    def international_options(self, request: QuoteRequest) -> list[QuoteOption]:
        destination = request.customer.address.country
        weight = request.package.weight
        return [
            self._option(INTERNATIONAL_TIERS[key], self.international_rate(weight, destination, key), request.package)
            for key in ("EMS", "REGULAR")
        ]

    @staticmethod
    def domestic_rate(weight: Decimal, service_type: str) -> Decimal:
        tier = DOMESTIC_TIERS.get(service_type.upper(), DOMESTIC_TIERS["STANDARD"])
        return tiered_rate(weight, tier.base_rate, tier.per_kg_rate)

    @staticmethod
    def international_rate(weight: Decimal, destination_country: str, service_type: str) -> Decimal:
        tier = INTERNATIONAL_TIERS.get(service_type.upper(), INTERNATIONAL_TIERS["REGULAR"])
        return tiered_rate(weight, tier.base_rate, tier.per_kg_rate) * zone_multiplier(destination_country)

    def _option(self, tier: RateTier, cost: Decimal, package: PackageSpec) -> QuoteOption:
        return QuoteOption(
            provider=self.name,
            service=tier.label,
            cost=cost,
            currency=self.CURRENCY,
            estimated_days=tier.days,
            estimated_delivery_date=date.today() + timedelta(days=tier.days),
            service_code=tier.service_code,
            tracking_supported=True,
            insurance_included=True,
            insurance_cost=Decimal("0"),
            max_insurance_value=self.MAX_DECLARED_VALUE,
            delivery_type="DOOR_TO_DOOR",
            features=["Tracking", "Insurance included", "COD available"],
            rating=ProviderRating(
                overall=3.8,
                delivery_time=3.5,
                reliability=4.0,
                customer_service=3.9,
                total_reviews=850,
            ),
            restrictions=restriction_tags(package),
        )


MOCK_AGGREGATOR_RATES: list[dict[str, Any]] = [
    {"id": "rate_dhl_123", "service": "Express", "carrier": "DHL", "rate": "25.50", "currency": "USD", "delivery_days": 2},
    {"id": "rate_fedex_456", "service": "Ground", "carrier": "FedEx", "rate": "18.75", "currency": "USD", "delivery_days": 3},
]

AGGREGATOR_COUNTRIES = ("US", "CA", "GB", "AU", "DE", "FR", "JP", "VN", "TH", "SG", "MY", "ID", "PH")


class AggregatorProvider(IShippingProvider):
    """多承运商聚合 provider：透传下游每个承运商的费率。"""

    MAX_WEIGHT = Decimal("70")
    MAX_DIMENSION = Decimal("150")
    MAX_DECLARED_VALUE = Decimal("50000")

    def __init__(
        self,
        *,
        enabled: bool = False,
        api_key: str | None = None,
        api_key_env: str = "EASYPOST_API_KEY",
        base_url: str = "https://api.easypost.com/v2",
        mock_mode: bool = True,
        dimension_unit: str = "cm",
        retry_times: int = 2,
        provider_name: str = "EasyPost",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self.enabled = bool(enabled)
        self.api_key = api_key if api_key is not None else os.getenv(api_key_env, "")
        self.base_url = str(base_url or "").rstrip("/")
        self.mock_mode = bool(mock_mode)
        self.dimension_unit = str(dimension_unit or "cm").lower()
        self.retry_times = max(1, int(retry_times))
        self._name = provider_name
        self._transport = transport

    @property
    def name(self) -> str:
        return self._name

    def supported_countries(self) -> list[str]:
        return list(AGGREGATOR_COUNTRIES)

    def max_weight(self) -> Decimal:
        return self.MAX_WEIGHT

    def max_declared_value(self) -> Decimal:
        return self.MAX_DECLARED_VALUE

    def has_api_key(self) -> bool:
        return bool(str(self.api_key or "").strip())

    def is_available(self) -> bool:
        return self.enabled and self.has_api_key()

    def supports_route(self, origin_country: str, destination_country: str) -> bool:
        countries = self.supported_countries()
        return origin_country in countries and destination_country in countries

    def supports_package(self, weight: Decimal, dimensions: Dimensions, declared_value: Decimal) -> bool:
        if weight > self.MAX_WEIGHT:
            return False
        if dimensions.longest_side > self.MAX_DIMENSION:
            return False
        return declared_value <= self.MAX_DECLARED_VALUE

    def dimensional_weight(self, dimensions: Dimensions) -> Decimal:
        if self.dimension_unit == "in":
            return dimensional_weight(dimensions, INCH_DIMENSIONAL_DIVISOR)
        return super().dimensional_weight(dimensions)

    def configuration(self) -> dict[str, Any]:
        return {
            **super().configuration(),
            "enabled": self.enabled,
            "base_url": self.base_url,
            "has_api_key": self.has_api_key(),
            "mock_mode": self.mock_mode,
            "dimension_unit": self.dimension_unit,
        }

    async def _fetch_rates(self, request: QuoteRequest, timeout_ms: int) -> list[QuoteOption]:
        payload = self.build_shipment_payload(request)
        response = await self._call_api(payload, timeout_ms)
        return self.parse_rates(response, request)

    @staticmethod
    def build_shipment_payload(request: QuoteRequest) -> dict[str, Any]:
        def _address(name: str, address) -> dict[str, Any]:
            return {
                "name": name,
                "street1": address.street,
                "street2": address.address_line2,
                "city": address.city,
                "state": address.state,
                "zip": address.postal_code,
                "country": address.country,
            }

        package = request.package
        return {
            "shipment": {
                "to_address": _address(request.customer.name, request.customer.address),
                "from_address": _address(request.vendor.name, request.vendor.address),
                "parcel": {
                    "weight": str(package.weight),
                    "length": str(package.dimensions.length),
                    "width": str(package.dimensions.width),
                    "height": str(package.dimensions.height),
                },
            }
        }

    async def _call_api(self, payload: dict[str, Any], timeout_ms: int) -> dict[str, Any]:
        if self.mock_mode:
            self.logger.debug(f"{self.name} mock mode: returning canned carrier rates")
            return {"rates": [dict(rate) for rate in MOCK_AGGREGATOR_RATES]}

        send = retry(
            max_attempts=self.retry_times,
            delay=0.2,
            exceptions=(httpx.TransportError,),
        )(self._post_shipment)
        try:
            return await send(payload, timeout_ms)
        except httpx.TimeoutException as exc:
            raise QuoteProviderError(f"{self.name} request timed out: {exc}", code="TIMEOUT") from exc
        except httpx.HTTPError as exc:
            raise QuoteProviderError(f"{self.name} request failed: {exc}", code="TRANSPORT_ERROR") from exc

    async def _post_shipment(self, payload: dict[str, Any], timeout_ms: int) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        timeout_seconds = max(0.2, float(timeout_ms) / 1000.0)
        async with httpx.AsyncClient(timeout=timeout_seconds, transport=self._transport) as client:
            response = await client.post(f"{self.base_url}/shipments", json=payload, headers=headers)

        if response.status_code >= 400:
            raise QuoteProviderError(f"{self.name} http {response.status_code}", code=f"HTTP_{response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise QuoteProviderError(f"{self.name} invalid json: {exc}", code="PARSE_ERROR") from exc
        if not isinstance(body, dict):
            raise QuoteProviderError(f"{self.name} unexpected response shape", code="PARSE_ERROR")
        return body

    def parse_rates(self, response: dict[str, Any], request: QuoteRequest) -> list[QuoteOption]:
        rates = response.get("rates")
        if not isinstance(rates, list):
            return []

        restrictions = restriction_tags(request.package)
        options: list[QuoteOption] = []
        for rate in rates:
            try:
                cost = Decimal(str(rate["rate"]))
                days = int(rate["delivery_days"])
                carrier = str(rate["carrier"])
            except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
                self.logger.warning(f"Skipping malformed rate from {self.name}: {exc}")
                continue

            options.append(
                QuoteOption(
                    provider=carrier,
                    service=str(rate.get("service") or ""),
                    cost=cost,
                    currency=str(rate.get("currency") or "USD").upper(),
                    estimated_days=days,
                    estimated_delivery_date=date.today() + timedelta(days=days),
                    service_code=str(rate.get("id") or ""),
                    tracking_supported=True,
                    insurance_included=False,
                    delivery_type="DOOR_TO_DOOR",
                    features=["Tracking", "Insurance available", f"Booked via {self.name}"],
                    rating=ProviderRating(
                        overall=4.2,
                        delivery_time=4.5,
                        reliability=4.0,
                        customer_service=4.1,
                        total_reviews=1250,
                    ),
                    restrictions=list(restrictions),
                )
            )
        return options


class InternalRateProvider(IShippingProvider):
    """内部兜底费率：不登记为 provider，仅在所有 provider 均无报价且开启兜底时使用。"""

    CURRENCY = "VND"
    DOMESTIC_BASE = Decimal("50000")
    DOMESTIC_PER_KG = Decimal("10000")
    INTERNATIONAL_BASE = Decimal("200000")
    INTERNATIONAL_PER_KG = Decimal("50000")
    EXPRESS_FACTOR = Decimal("1.5")

    @property
    def name(self) -> str:
        return "Internal"

    def supported_countries(self) -> list[str]:
        return []

    def max_weight(self) -> Decimal | None:
        return None

    def max_declared_value(self) -> Decimal | None:
        return None

    def is_available(self) -> bool:
        return True

    def supports_route(self, origin_country: str, destination_country: str) -> bool:
        return True

    def supports_package(self, weight: Decimal, dimensions: Dimensions, declared_value: Decimal) -> bool:
        return True

    def standard_rate(self, weight: Decimal, is_domestic: bool) -> Decimal:
        if is_domestic:
            return self.DOMESTIC_BASE + weight * self.DOMESTIC_PER_KG
        return self.INTERNATIONAL_BASE + weight * self.INTERNATIONAL_PER_KG

    async def _fetch_rates(self, request: QuoteRequest, timeout_ms: int) -> list[QuoteOption]:
        is_domestic = request.vendor.address.country == request.customer.address.country
        standard = self.standard_rate(request.package.weight, is_domestic)
        express = standard * self.EXPRESS_FACTOR
        return [
            self._option("Standard", "INTERNAL_STANDARD", standard, 3 if is_domestic else 7),
            self._option("Express", "INTERNAL_EXPRESS", express, 1 if is_domestic else 3),
        ]

    def _option(self, service: str, code: str, cost: Decimal, days: int) -> QuoteOption:
        return QuoteOption(
            provider=self.name,
            service=service,
            cost=cost,
            currency=self.CURRENCY,
            estimated_days=days,
            service_code=code,
            tracking_supported=False,
            insurance_included=True,
            delivery_type="DOOR_TO_DOOR",
            features=["Basic tracking", "Standard insurance"],
            rating=ProviderRating(
                overall=3.5,
                delivery_time=3.0,
                reliability=4.0,
                customer_service=3.5,
                total_reviews=100,
            ),
        )


def _float_or_none(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None
