"""
运费报价服务
Shipping Quote Service
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from shipquote.core.config import get_config
from shipquote.core.error_handler import QuoteValidationError, handle_errors
from shipquote.core.logger import get_logger
from shipquote.modules.quote.engine import QuoteOrchestrator
from shipquote.modules.quote.models import MultiVendorQuoteResult, QuoteOption, QuoteRequest, QuoteResult
from shipquote.modules.quote.multi_vendor import ConsolidationStrategy, MultiVendorCoordinator
from shipquote.modules.quote.providers import IShippingProvider
from shipquote.modules.quote.registry import build_providers
from shipquote.modules.quote.validation import ValidationResult, ensure_valid_request, validate_quote_request


class ShippingQuoteService:
    """报价服务门面：校验请求后交给编排器 / 多商家协调器。"""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        providers: list[IShippingProvider] | None = None,
    ):
        app_config = get_config()
        self.config = config or app_config.get_section("quote", {})
        self.logger = get_logger("service")

        if providers is None:
            providers = build_providers(app_config.get_section("providers", {}))
        self.providers = list(providers)

        self.heavy_warning_kg = Decimal(str(self.config.get("heavy_package_warning_kg", 50)))
        self.orchestrator = QuoteOrchestrator.from_config(self.providers, self.config)
        self.coordinator = MultiVendorCoordinator(
            self.orchestrator,
            default_strategy=self.config.get("default_strategy") or ConsolidationStrategy.CHEAPEST_EACH,
        )

    async def compute_single_vendor_quote(self, request: QuoteRequest) -> QuoteResult:
        result = ensure_valid_request(request, expect="single", heavy_warning_kg=self.heavy_warning_kg)
        self._log_warnings(result)
        return await self.orchestrator.compute_quote(request)

    async def compute_multi_vendor_quote(
        self,
        request: QuoteRequest,
        strategy: ConsolidationStrategy | str | None = None,
    ) -> MultiVendorQuoteResult:
        result = ensure_valid_request(request, expect="multi", heavy_warning_kg=self.heavy_warning_kg)
        self._log_warnings(result)
        try:
            chosen = ConsolidationStrategy(strategy) if strategy else None
        except ValueError:
            raise QuoteValidationError(f"Unknown consolidation strategy: {strategy}")
        return await self.coordinator.compute(request, chosen)

    async def get_quotes_from_provider(self, request: QuoteRequest, provider_name: str) -> list[QuoteOption]:
        ensure_valid_request(request, expect="single", heavy_warning_kg=self.heavy_warning_kg)
        provider = self.find_provider(provider_name)
        if provider is None:
            raise QuoteValidationError(f"Unknown provider: {provider_name}")
        options = await provider.quote(request, timeout_ms=self.orchestrator.provider_timeout_ms)
        return self.orchestrator.normalizer.normalize(options, request)

    def find_provider(self, provider_name: str) -> IShippingProvider | None:
        wanted = str(provider_name or "").strip().casefold()
        for provider in self.providers:
            if provider.name.casefold() == wanted:
                return provider
        return None

    def get_available_providers(self, origin_country: str, destination_country: str) -> list[str]:
        origin = str(origin_country or "").upper()
        destination = str(destination_country or "").upper()
        return [
            provider.name
            for provider in self.providers
            if provider.is_available() and provider.supports_route(origin, destination)
        ]

    def validate_request(self, request: QuoteRequest | None) -> ValidationResult:
        return validate_quote_request(request, heavy_warning_kg=self.heavy_warning_kg)

    def get_provider_status(self) -> dict[str, dict[str, Any]]:
        return {provider.name: provider.configuration() for provider in self.providers}

    async def test_provider_connectivity(self) -> dict[str, bool]:
        status: dict[str, bool] = {}
        for provider in self.providers:
            status[provider.name] = await self._check_provider(provider)
            self.logger.info(f"Provider {provider.name} connectivity: {status[provider.name]}")
        return status

    @handle_errors(default_return=False)
    async def _check_provider(self, provider: IShippingProvider) -> bool:
        return bool(await provider.health_check())

    def _log_warnings(self, result: ValidationResult) -> None:
        for warning in result.warnings:
            self.logger.warning(warning)
