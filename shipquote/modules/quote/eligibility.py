"""provider 资格过滤：可用性 → 线路 → 包裹限制。

判定本身无副作用；adapter 谓词抛出的异常被记为 ELIGIBILITY_ERROR，不中断整次报价。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from shipquote.core.logger import get_logger
from shipquote.modules.quote.models import PackageSpec, QuoteRequest
from shipquote.modules.quote.providers import IShippingProvider

PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
UNSUPPORTED_ROUTE = "UNSUPPORTED_ROUTE"
UNSUPPORTED_PACKAGE = "UNSUPPORTED_PACKAGE"
ELIGIBILITY_ERROR = "ELIGIBILITY_ERROR"


@dataclass(frozen=True, slots=True)
class EligibilityDecision:
    provider: IShippingProvider
    eligible: bool
    reason: str | None = None

    @property
    def provider_name(self) -> str:
        return self.provider.name

    def message(self) -> str:
        if self.eligible:
            return f"{self.provider.name} is eligible"
        if self.reason == PROVIDER_UNAVAILABLE:
            return f"{self.provider.name} is disabled or not configured"
        if self.reason == UNSUPPORTED_ROUTE:
            return f"{self.provider.name} does not serve this route"
        if self.reason == ELIGIBILITY_ERROR:
            return f"{self.provider.name} failed its eligibility check"
        return f"{self.provider.name} cannot carry this package"


def check_eligibility(
    provider: IShippingProvider,
    origin_country: str,
    destination_country: str,
    package: PackageSpec,
) -> EligibilityDecision:
    if not provider.is_available():
        return EligibilityDecision(provider, False, PROVIDER_UNAVAILABLE)
    if not provider.supports_route(origin_country, destination_country):
        return EligibilityDecision(provider, False, UNSUPPORTED_ROUTE)
    if not provider.supports_package(package.weight, package.dimensions, package.declared_value):
        return EligibilityDecision(provider, False, UNSUPPORTED_PACKAGE)
    return EligibilityDecision(provider, True)


def partition_providers(
    providers: Iterable[IShippingProvider],
    request: QuoteRequest,
) -> tuple[list[IShippingProvider], list[EligibilityDecision]]:
    """按登记顺序拆分为 (可调用 provider, 被排除的判定)。"""
    origin = request.vendor.address.country
    destination = request.customer.address.country
    eligible: list[IShippingProvider] = []
    excluded: list[EligibilityDecision] = []
    for provider in providers:
        try:
            decision = check_eligibility(provider, origin, destination, request.package)
        except Exception as exc:
            get_logger("eligibility").warning(f"Eligibility check failed for {provider.name}: {exc}")
            decision = EligibilityDecision(provider, False, ELIGIBILITY_ERROR)
        if decision.eligible:
            eligible.append(provider)
        else:
            excluded.append(decision)
    return eligible, excluded
