"""多商家报价：每个商家独立询价，再按策略合并成一张总报价。"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from shipquote.core.config_models import ConsolidationStrategyName as ConsolidationStrategy
from shipquote.core.error_handler import QuoteValidationError, log_execution_time
from shipquote.core.logger import get_logger
from shipquote.modules.quote.engine import QuoteOrchestrator, new_quote_id
from shipquote.modules.quote.models import (
    CALC_EXTERNAL_API,
    CALC_HYBRID,
    CALC_INTERNAL,
    MIXED_CURRENCY,
    MULTI_ORIGIN,
    MULTI_VENDOR,
    ConsolidatedQuote,
    MultiVendorQuoteResult,
    ProviderError,
    QuoteMetadata,
    QuoteOption,
    QuoteRequest,
    QuoteResult,
    VendorPackage,
    VendorQuote,
)
from shipquote.modules.quote.normalizer import ICurrencyConverter

__all__ = ["ConsolidationStrategy", "MultiVendorCoordinator"]


def _vendor_keys(vendor_packages: list[VendorPackage]) -> list[str]:
    keys: list[str] = []
    for index, vendor_package in enumerate(vendor_packages, start=1):
        key = (vendor_package.vendor.vendor_id or "").strip() or f"vendor-{index}"
        if key in keys:
            key = f"{key}-{index}"
        keys.append(key)
    return keys


def _tag_result(result: QuoteResult, vendor_id: str, vendor_name: str) -> QuoteResult:
    tagged = {id(option): option.tagged(vendor_id, vendor_name) for option in result.options}
    result.options = [tagged[id(option)] for option in result.options]
    for attr in ("cheapest", "fastest", "recommended"):
        picked = getattr(result, attr)
        if picked is not None:
            setattr(result, attr, tagged.get(id(picked), picked.tagged(vendor_id, vendor_name)))
    return result


class MultiVendorCoordinator:
    def __init__(
        self,
        orchestrator: QuoteOrchestrator,
        *,
        default_strategy: ConsolidationStrategy | str = ConsolidationStrategy.CHEAPEST_EACH,
        converter: ICurrencyConverter | None = None,
    ) -> None:
        self.logger = get_logger("multi_vendor")
        self.orchestrator = orchestrator
        self.default_strategy = ConsolidationStrategy(default_strategy)
        self.converter = converter if converter is not None else orchestrator.normalizer.converter

    @log_execution_time()
    async def compute(
        self,
        request: QuoteRequest,
        strategy: ConsolidationStrategy | str | None = None,
    ) -> MultiVendorQuoteResult:
        if not request.is_multi_vendor():
            raise QuoteValidationError("Coordinator requires a multi-vendor request")
        chosen = ConsolidationStrategy(strategy) if strategy else self.default_strategy

        keys = _vendor_keys(request.vendor_packages)
        self.logger.info(f"Dispatching multi-vendor quote for {len(keys)} vendor(s), strategy={chosen.value}")
        results = await asyncio.gather(
            *(
                self._quote_vendor(key, vendor_package, request)
                for key, vendor_package in zip(keys, request.vendor_packages)
            )
        )
        vendor_quotes = {vendor_quote.vendor_id: vendor_quote for vendor_quote in results}

        with_options = [vq for vq in vendor_quotes.values() if vq.quote.cheapest is not None]
        without_options = [vq.vendor_id for vq in vendor_quotes.values() if vq.quote.cheapest is None]
        for vendor_id in without_options:
            self.logger.warning(f"Vendor {vendor_id} has no shipping options")

        best = None
        if with_options:
            best = self.consolidate(with_options, chosen, request.preferred_currency)

        quoted_at = datetime.now(timezone.utc)
        return MultiVendorQuoteResult(
            consolidated_quote_id=new_quote_id("CQ"),
            quoted_at=quoted_at,
            vendor_quotes=vendor_quotes,
            combined=self._combined_result(request, list(vendor_quotes.values()), without_options, quoted_at),
            best_consolidated_option=best,
        )

    async def _quote_vendor(self, vendor_id: str, vendor_package: VendorPackage, request: QuoteRequest) -> VendorQuote:
        vendor_name = vendor_package.vendor.name or vendor_id
        sub_request = request.for_vendor(vendor_package)
        try:
            result = await self.orchestrator.compute_quote(sub_request)
        except Exception as exc:
            self.logger.error(f"Quote for vendor {vendor_id} failed: {exc}")
            error = ProviderError(provider=vendor_name, error_code="VENDOR_ERROR", error_message=str(exc))
            result = self.orchestrator.empty_result(sub_request, [error])
        return VendorQuote(
            vendor_id=vendor_id,
            vendor_name=vendor_name,
            quote=_tag_result(result, vendor_id, vendor_name),
        )

    def consolidate(
        self,
        vendor_quotes: list[VendorQuote],
        strategy: ConsolidationStrategy,
        preferred_currency: str | None = None,
    ) -> ConsolidatedQuote:
        applied = strategy
        if strategy == ConsolidationStrategy.SAME_PROVIDER:
            selected = self._same_provider_selection(vendor_quotes, preferred_currency)
            if selected is None:
                self.logger.info("No single provider serves every vendor, falling back to CHEAPEST_EACH")
                applied = ConsolidationStrategy.CHEAPEST_EACH
                selected = [vq.quote.cheapest for vq in vendor_quotes]
        elif strategy == ConsolidationStrategy.MIXED_PROVIDERS:
            selected = [vq.quote.recommended or vq.quote.cheapest for vq in vendor_quotes]
        else:
            selected = [vq.quote.cheapest for vq in vendor_quotes]

        for vendor_quote, option in zip(vendor_quotes, selected):
            vendor_quote.selected_option = option
        return self.build_consolidated(selected, applied.value, preferred_currency)

    def _same_provider_selection(
        self,
        vendor_quotes: list[VendorQuote],
        preferred_currency: str | None,
    ) -> list[QuoteOption] | None:
        selector = self.orchestrator.selector
        provider_names: list[str] = []
        for vendor_quote in vendor_quotes:
            for option in vendor_quote.quote.options:
                if option.provider not in provider_names:
                    provider_names.append(option.provider)

        best: list[QuoteOption] | None = None
        best_total: Decimal | None = None
        for name in provider_names:
            picks = []
            for vendor_quote in vendor_quotes:
                pick = selector.cheapest(
                    [option for option in vendor_quote.quote.options if option.provider == name],
                    preferred_currency,
                )
                if pick is None:
                    break
                picks.append(pick)
            else:
                total, _ = self.total_cost(picks, preferred_currency)
                if total is None:
                    continue
                if best_total is None or total < best_total:
                    best, best_total = picks, total
        return best

    def total_cost(self, options: list[QuoteOption], preferred_currency: str | None = None) -> tuple[Decimal | None, str]:
        currencies = {option.currency for option in options}
        if len(currencies) == 1:
            return sum((option.cost for option in options), Decimal("0")), currencies.pop()

        target = (preferred_currency or "").upper()
        if target and self.converter is not None:
            converted = [self.converter.convert(option.cost, option.currency, target) for option in options]
            if all(amount is not None for amount in converted):
                return sum(converted, Decimal("0")), target
        return None, MIXED_CURRENCY

    def build_consolidated(
        self,
        selected: list[QuoteOption],
        strategy: str,
        preferred_currency: str | None = None,
    ) -> ConsolidatedQuote:
        total, currency = self.total_cost(selected, preferred_currency)
        dates = [option.estimated_delivery_date for option in selected if option.estimated_delivery_date]
        return ConsolidatedQuote(
            individual_options=list(selected),
            total_cost=total,
            currency=currency,
            max_delivery_days=max(option.estimated_days for option in selected),
            estimated_delivery_date=max(dates) if dates else None,
            all_tracking_supported=all(option.tracking_supported for option in selected),
            consolidation_strategy=strategy,
        )

    def _combined_result(
        self,
        request: QuoteRequest,
        vendor_quotes: list[VendorQuote],
        without_options: list[str],
        quoted_at: datetime,
    ) -> QuoteResult:
        options: list[QuoteOption] = []
        available: list[str] = []
        unavailable: list[str] = []
        errors: list[ProviderError] = []
        methods: set[str] = set()
        for vendor_quote in vendor_quotes:
            metadata = vendor_quote.quote.metadata
            options.extend(vendor_quote.quote.options)
            errors.extend(metadata.provider_errors)
            if vendor_quote.quote.options:
                methods.add(metadata.calculation_method)
            for name in metadata.available_providers:
                if name not in available:
                    available.append(name)
            for name in metadata.unavailable_providers:
                if name not in unavailable:
                    unavailable.append(name)
        unavailable = [name for name in unavailable if name not in available]

        if len(methods) > 1:
            method = CALC_HYBRID
        elif methods == {CALC_INTERNAL}:
            method = CALC_INTERNAL
        else:
            method = CALC_EXTERNAL_API

        packages = request.packages()
        destination = request.destination_country
        is_domestic = all(vp.vendor.address.country == destination for vp in request.vendor_packages)
        selection = self.orchestrator.selector.select(options, request.preferred_currency)
        return QuoteResult(
            quote_id=new_quote_id(),
            quoted_at=quoted_at,
            expires_at=quoted_at + timedelta(minutes=self.orchestrator.quote_ttl_minutes),
            request_type=MULTI_VENDOR,
            options=options,
            metadata=QuoteMetadata(
                origin_country=MULTI_ORIGIN,
                destination_country=destination,
                is_domestic=is_domestic,
                requires_customs=not is_domestic,
                total_packages=len(packages),
                total_weight=sum((package.weight for package in packages), Decimal("0")),
                total_declared_value=sum((package.declared_value for package in packages), Decimal("0")),
                base_currency=packages[0].currency if packages else self.orchestrator.base_currency,
                available_providers=available,
                unavailable_providers=unavailable,
                provider_errors=errors,
                calculation_method=method,
                vendors_without_options=list(without_options),
            ),
            recommended=selection.recommended,
            cheapest=selection.cheapest,
            fastest=selection.fastest,
        )
