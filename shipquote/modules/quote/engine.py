"""报价编排：资格过滤 → 并发询价 → 归一化 → 挑选。"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from shipquote.core.error_handler import QuoteValidationError, log_execution_time
from shipquote.core.logger import get_logger
from shipquote.modules.quote.eligibility import partition_providers
from shipquote.modules.quote.models import (
    CALC_EXTERNAL_API,
    CALC_INTERNAL,
    SINGLE_VENDOR,
    ProviderError,
    QuoteMetadata,
    QuoteOption,
    QuoteRequest,
    QuoteResult,
)
from shipquote.modules.quote.normalizer import RateNormalizer, StaticRateConverter
from shipquote.modules.quote.providers import (
    InternalRateProvider,
    IShippingProvider,
    ProviderOutcome,
)
from shipquote.modules.quote.selector import OptionSelector


def new_quote_id(prefix: str = "SQ") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class QuoteOrchestrator:
    """单商家报价编排器。

    每个可用 provider 一个 task，各自受 ``provider_timeout_ms`` 约束，
    总等待时间约等于最慢的单个预算。调用方被取消时，未完成的 task 一并取消。
    """

    def __init__(
        self,
        providers: Iterable[IShippingProvider],
        *,
        provider_timeout_ms: int = 3000,
        quote_ttl_minutes: int = 10,
        normalizer: RateNormalizer | None = None,
        selector: OptionSelector | None = None,
        fallback_provider: IShippingProvider | None = None,
        base_currency: str = "VND",
    ) -> None:
        self.logger = get_logger("engine")
        self.providers = list(providers)
        self.provider_timeout_ms = int(provider_timeout_ms)
        self.quote_ttl_minutes = int(quote_ttl_minutes)
        self.normalizer = normalizer or RateNormalizer()
        self.selector = selector or OptionSelector()
        self.fallback_provider = fallback_provider
        self.base_currency = str(base_currency or "VND").upper()

    @classmethod
    def from_config(cls, providers: Iterable[IShippingProvider], quote_cfg: dict[str, Any] | None = None) -> QuoteOrchestrator:
        cfg = quote_cfg or {}
        converter = StaticRateConverter(cfg.get("fx_rates") or {})
        return cls(
            providers,
            provider_timeout_ms=int(cfg.get("provider_timeout_ms", 3000)),
            quote_ttl_minutes=int(cfg.get("quote_ttl_minutes", 10)),
            normalizer=RateNormalizer(
                dimensional_divisor=cfg.get("dimensional_divisor", 5000),
                converter=converter,
            ),
            selector=OptionSelector(
                cost_weight=float(cfg.get("recommend_cost_weight", 0.5)),
                speed_weight=float(cfg.get("recommend_speed_weight", 0.5)),
            ),
            fallback_provider=InternalRateProvider() if cfg.get("internal_fallback_enabled") else None,
            base_currency=str(cfg.get("base_currency", "VND")),
        )

    @log_execution_time()
    async def compute_quote(self, request: QuoteRequest) -> QuoteResult:
        if not request.is_single_vendor():
            raise QuoteValidationError("Orchestrator requires a single-vendor request")

        available: list[str] = []
        unavailable: list[str] = []
        errors: list[ProviderError] = []
        options: list[QuoteOption] = []

        eligible, excluded = partition_providers(self.providers, request)
        for decision in excluded:
            self.logger.warning(f"Provider {decision.provider_name} excluded: {decision.reason}")
            unavailable.append(decision.provider_name)
            errors.append(ProviderError(decision.provider_name, decision.reason, decision.message()))

        self.logger.info(
            f"Dispatching quote {request.origin_country}->{request.destination_country} "
            f"to {len(eligible)} provider(s)"
        )
        outcomes = await self._dispatch(eligible, request)

        for provider, outcome in zip(eligible, outcomes):
            if outcome.options:
                available.append(provider.name)
                options.extend(outcome.options)
                continue
            unavailable.append(provider.name)
            if outcome.error is not None:
                errors.append(outcome.error)
            else:
                errors.append(ProviderError(provider.name, "NO_OPTIONS", f"{provider.name} returned no options"))

        calculation_method = CALC_EXTERNAL_API
        if not options and self.fallback_provider is not None:
            fallback = await self.fallback_provider.fetch_quotes(request, timeout_ms=self.provider_timeout_ms)
            if fallback.options:
                self.logger.warning(f"No provider quotes, using {self.fallback_provider.name} fallback rates")
                options.extend(fallback.options)
                calculation_method = CALC_INTERNAL
                for error in errors:
                    error.fallback_used = self.fallback_provider.name

        if not options:
            self.logger.warning(
                f"No shipping options for {request.origin_country}->{request.destination_country}"
            )

        normalized = self.normalizer.normalize(options, request)
        selection = self.selector.select(normalized, request.preferred_currency)

        quoted_at = datetime.now(timezone.utc)
        return QuoteResult(
            quote_id=new_quote_id(),
            quoted_at=quoted_at,
            expires_at=quoted_at + timedelta(minutes=self.quote_ttl_minutes),
            request_type=SINGLE_VENDOR,
            options=normalized,
            metadata=self._build_metadata(request, available, unavailable, errors, calculation_method),
            recommended=selection.recommended,
            cheapest=selection.cheapest,
            fastest=selection.fastest,
        )

    def empty_result(self, request: QuoteRequest, errors: list[ProviderError]) -> QuoteResult:
        """无任何选项的合法结果，用于商家级失败等场景。"""
        quoted_at = datetime.now(timezone.utc)
        return QuoteResult(
            quote_id=new_quote_id(),
            quoted_at=quoted_at,
            expires_at=quoted_at + timedelta(minutes=self.quote_ttl_minutes),
            request_type=SINGLE_VENDOR,
            options=[],
            metadata=self._build_metadata(request, [], [], list(errors), CALC_EXTERNAL_API),
        )

    async def _dispatch(self, providers: list[IShippingProvider], request: QuoteRequest) -> list[ProviderOutcome]:
        tasks = [asyncio.create_task(self._call_provider(provider, request)) for provider in providers]
        try:
            return list(await asyncio.gather(*tasks))
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _call_provider(self, provider: IShippingProvider, request: QuoteRequest) -> ProviderOutcome:
        timeout_s = self.provider_timeout_ms / 1000.0
        try:
            return await asyncio.wait_for(
                provider.fetch_quotes(request, timeout_ms=self.provider_timeout_ms),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            self.logger.warning(f"Provider {provider.name} timed out after {self.provider_timeout_ms}ms")
            return ProviderOutcome(
                error=ProviderError(provider.name, "TIMEOUT", f"no response within {self.provider_timeout_ms}ms")
            )
        except Exception as exc:
            self.logger.warning(f"Provider {provider.name} failed: {exc}")
            code = getattr(exc, "code", None) or "PROVIDER_ERROR"
            return ProviderOutcome(error=ProviderError(provider.name, str(code), str(exc)))

    def _build_metadata(
        self,
        request: QuoteRequest,
        available: list[str],
        unavailable: list[str],
        errors: list[ProviderError],
        calculation_method: str,
    ) -> QuoteMetadata:
        origin = request.vendor.address.country
        destination = request.customer.address.country
        is_domestic = origin == destination
        return QuoteMetadata(
            origin_country=origin,
            destination_country=destination,
            is_domestic=is_domestic,
            requires_customs=not is_domestic,
            total_packages=1,
            total_weight=request.package.weight,
            total_declared_value=request.package.declared_value,
            base_currency=request.package.currency or self.base_currency,
            available_providers=available,
            unavailable_providers=unavailable,
            provider_errors=errors,
            calculation_method=calculation_method,
        )
