"""报价归一化：币种、送达日期、计费重，保证不同承运商之间可比。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Mapping

from shipquote.modules.quote.models import QuoteOption, QuoteRequest, quantize_money, to_decimal
from shipquote.modules.quote.providers import DEFAULT_DIMENSIONAL_DIVISOR, dimensional_weight


class ICurrencyConverter(ABC):
    """汇率换算接口；无法换算时返回 None。"""

    @abstractmethod
    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal | None:
        pass


class StaticRateConverter(ICurrencyConverter):
    """静态汇率表：rates[code] = 每单位该币种折合的枢轴币种数量。"""

    def __init__(self, rates: Mapping[str, float | Decimal | str] | None = None) -> None:
        self.rates: dict[str, Decimal] = {}
        for code, rate in (rates or {}).items():
            value = to_decimal(rate)
            if value is not None and value > 0:
                self.rates[str(code).upper()] = value

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal | None:
        source = str(from_currency or "").upper()
        target = str(to_currency or "").upper()
        if source == target:
            return amount
        if source not in self.rates or target not in self.rates:
            return None
        return amount * self.rates[source] / self.rates[target]


class RateNormalizer:
    def __init__(
        self,
        dimensional_divisor: Decimal | float = DEFAULT_DIMENSIONAL_DIVISOR,
        converter: ICurrencyConverter | None = None,
    ) -> None:
        self.dimensional_divisor = Decimal(str(dimensional_divisor))
        self.converter = converter

    def normalize(self, options: list[QuoteOption], request: QuoteRequest) -> list[QuoteOption]:
        return [self.normalize_option(option, request) for option in options]

    def normalize_option(self, option: QuoteOption, request: QuoteRequest) -> QuoteOption:
        package = request.package
        currency = (option.currency or package.currency or "").upper() or None
        cost = quantize_money(option.cost) if option.cost is not None else None

        delivery_date = option.estimated_delivery_date
        if delivery_date is None and option.estimated_days is not None:
            delivery_date = date.today() + timedelta(days=option.estimated_days)

        dim_weight = dimensional_weight(package.dimensions, self.dimensional_divisor)
        billable = max(package.weight, dim_weight)

        normalized_cost = None
        normalized_currency = None
        target = request.preferred_currency
        if target and cost is not None and currency and self.converter is not None:
            converted = self.converter.convert(cost, currency, target)
            if converted is not None:
                normalized_cost = quantize_money(converted)
                normalized_currency = target

        return replace(
            option,
            cost=cost,
            currency=currency,
            estimated_delivery_date=delivery_date,
            dimensional_weight=dim_weight,
            billable_weight=billable,
            normalized_cost=normalized_cost,
            normalized_currency=normalized_currency,
        )

    @staticmethod
    def comparable(options: list[QuoteOption]) -> list[QuoteOption]:
        """可参与比价的候选：必须同时有价格与时效。"""
        return [option for option in options if option.is_comparable()]
