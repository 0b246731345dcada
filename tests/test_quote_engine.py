"""报价编排器测试。"""

import asyncio
import time
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import StubProvider, make_option, make_single_request
from shipquote.core.error_handler import QuoteProviderError, QuoteValidationError
from shipquote.modules.quote.engine import QuoteOrchestrator
from shipquote.modules.quote.models import CALC_EXTERNAL_API, CALC_INTERNAL, SINGLE_VENDOR
from shipquote.modules.quote.providers import InternalRateProvider, PostalZoneProvider


def _error_codes(result):
    return {err.provider: err.error_code for err in result.metadata.provider_errors}


@pytest.mark.asyncio
async def test_orchestrator_collects_options_in_dispatch_order() -> None:
    providers = [
        StubProvider("A", [make_option(provider="A", cost="25", days=2)]),
        StubProvider("B", [make_option(provider="B", cost="18", days=3)]),
    ]
    orchestrator = QuoteOrchestrator(providers)

    result = await orchestrator.compute_quote(make_single_request())

    assert result.request_type == SINGLE_VENDOR
    assert [o.provider for o in result.options] == ["A", "B"]
    assert result.cheapest.provider == "B"
    assert result.fastest.provider == "A"
    assert result.metadata.available_providers == ["A", "B"]
    assert result.metadata.unavailable_providers == []
    assert result.metadata.calculation_method == CALC_EXTERNAL_API
    assert result.quote_id.startswith("SQ_")
    assert result.expires_at - result.quoted_at == timedelta(minutes=10)


@pytest.mark.asyncio
async def test_every_registered_provider_reported_exactly_once() -> None:
    providers = [
        StubProvider("Ok", [make_option(provider="Ok")]),
        StubProvider("Empty", []),
        StubProvider("Down", [make_option(provider="Down")], available=False),
        StubProvider("Remote", [make_option(provider="Remote")], countries=("JP",)),
        StubProvider("Broken", error=QuoteProviderError("bad payload", code="PARSE_ERROR")),
        StubProvider("Crash", error=RuntimeError("boom")),
    ]

    result = await QuoteOrchestrator(providers).compute_quote(make_single_request())

    available = result.metadata.available_providers
    unavailable = result.metadata.unavailable_providers
    assert sorted(available + unavailable) == sorted(p.name for p in providers)
    assert not set(available) & set(unavailable)
    assert available == ["Ok"]
    assert _error_codes(result) == {
        "Down": "PROVIDER_UNAVAILABLE",
        "Remote": "UNSUPPORTED_ROUTE",
        "Empty": "NO_OPTIONS",
        "Broken": "PARSE_ERROR",
        "Crash": "PROVIDER_ERROR",
    }


@pytest.mark.asyncio
async def test_unavailable_provider_never_called_and_contributes_nothing() -> None:
    down = StubProvider("Down", [make_option(provider="Down", cost="1", days=1)], available=False)
    up = StubProvider("Up", [make_option(provider="Up", cost="9", days=4)])

    result = await QuoteOrchestrator([down, up]).compute_quote(make_single_request())

    assert down.calls == 0
    assert "Down" not in result.metadata.available_providers
    assert all(o.provider != "Down" for o in result.options)
    assert result.cheapest.provider == "Up"


@pytest.mark.asyncio
async def test_slow_provider_times_out_without_blocking_others() -> None:
    slow = StubProvider("Slow", [make_option(provider="Slow")], delay=5.0)
    fast = StubProvider("Fast", [make_option(provider="Fast")])
    orchestrator = QuoteOrchestrator([slow, fast], provider_timeout_ms=100)

    started = time.perf_counter()
    result = await orchestrator.compute_quote(make_single_request())
    elapsed = time.perf_counter() - started

    assert elapsed < 2.0
    assert result.metadata.available_providers == ["Fast"]
    assert _error_codes(result)["Slow"] == "TIMEOUT"


@pytest.mark.asyncio
async def test_providers_are_queried_concurrently() -> None:
    providers = [StubProvider(f"P{i}", [make_option(provider=f"P{i}")], delay=0.3) for i in range(4)]

    started = time.perf_counter()
    result = await QuoteOrchestrator(providers, provider_timeout_ms=2000).compute_quote(make_single_request())
    elapsed = time.perf_counter() - started

    assert len(result.options) == 4
    assert elapsed < 1.0


@pytest.mark.asyncio
async def test_caller_cancellation_cancels_in_flight_providers() -> None:
    started = asyncio.Event()
    cancelled = asyncio.Event()

    class HangingProvider(StubProvider):
        async def _fetch_rates(self, request, timeout_ms):
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return []

    orchestrator = QuoteOrchestrator([HangingProvider("Hang")], provider_timeout_ms=60000)
    task = asyncio.create_task(orchestrator.compute_quote(make_single_request()))
    await asyncio.wait_for(started.wait(), timeout=1)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_no_options_is_explicit_empty_result() -> None:
    result = await QuoteOrchestrator([StubProvider("Empty", [])]).compute_quote(make_single_request())

    assert result.has_options() is False
    assert result.cheapest is None and result.fastest is None and result.recommended is None
    assert result.metadata.unavailable_providers == ["Empty"]


@pytest.mark.asyncio
async def test_internal_fallback_fills_empty_result() -> None:
    req = make_single_request()
    orchestrator = QuoteOrchestrator([StubProvider("Empty", [])], fallback_provider=InternalRateProvider())

    result = await orchestrator.compute_quote(req)

    assert [o.provider for o in result.options] == ["Internal", "Internal"]
    assert result.metadata.calculation_method == CALC_INTERNAL
    assert result.metadata.provider_errors[0].fallback_used == "Internal"
    assert result.metadata.available_providers == []


@pytest.mark.asyncio
async def test_identical_requests_give_identical_costs() -> None:
    orchestrator = QuoteOrchestrator([PostalZoneProvider(enabled=True)])
    req = make_single_request()

    first = await orchestrator.compute_quote(req)
    second = await orchestrator.compute_quote(req)

    assert [(o.cost, o.estimated_days) for o in first.options] == [
        (o.cost, o.estimated_days) for o in second.options
    ]
    assert first.quote_id != second.quote_id


@pytest.mark.asyncio
async def test_metadata_describes_route() -> None:
    orchestrator = QuoteOrchestrator([PostalZoneProvider(enabled=True)])
    req = make_single_request(destination_country="JP", destination_city="Tokyo")

    result = await orchestrator.compute_quote(req)

    assert result.metadata.is_domestic is False
    assert result.metadata.requires_customs is True
    assert result.metadata.total_weight == Decimal("3")
    assert result.options[0].billable_weight == Decimal("3")


def test_from_config_reads_quote_section() -> None:
    orchestrator = QuoteOrchestrator.from_config(
        [],
        {
            "provider_timeout_ms": 1200,
            "quote_ttl_minutes": 5,
            "internal_fallback_enabled": True,
            "recommend_cost_weight": 0.8,
            "recommend_speed_weight": 0.2,
            "fx_rates": {"USD": 1.0},
        },
    )

    assert orchestrator.provider_timeout_ms == 1200
    assert orchestrator.quote_ttl_minutes == 5
    assert isinstance(orchestrator.fallback_provider, InternalRateProvider)
    assert orchestrator.selector.cost_weight == 0.8
    assert orchestrator.normalizer.converter.rates == {"USD": Decimal("1.0")}


@pytest.mark.asyncio
async def test_orchestrator_rejects_non_single_vendor_request() -> None:
    req = make_single_request()
    req.package = None

    with pytest.raises(QuoteValidationError):
        await QuoteOrchestrator([]).compute_quote(req)


class _BrokenRouteProvider(StubProvider):
    def supports_route(self, origin_country, destination_country):
        raise RuntimeError("route table not loaded")


@pytest.mark.asyncio
async def test_failing_eligibility_check_does_not_abort_quote() -> None:
    good = StubProvider("Good", [make_option(provider="Good", cost="12", days=2)])
    bad = _BrokenRouteProvider("Bad", [make_option(provider="Bad", cost="1", days=1)])

    result = await QuoteOrchestrator([good, bad]).compute_quote(make_single_request())

    assert result.metadata.available_providers == ["Good"]
    assert result.metadata.unavailable_providers == ["Bad"]
    assert _error_codes(result) == {"Bad": "ELIGIBILITY_ERROR"}
    assert bad.calls == 0


@pytest.mark.asyncio
async def test_fetch_quotes_keeps_adapter_error_code() -> None:
    provider = StubProvider("Broken", error=QuoteProviderError("bad payload", code="PARSE_ERROR"))

    outcome = await provider.fetch_quotes(make_single_request(), 1000)

    assert outcome.options == []
    assert outcome.error.error_code == "PARSE_ERROR"
    assert outcome.error.provider == "Broken"
