"""报价选项挑选：最便宜 / 最快 / 综合推荐。"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from shipquote.modules.quote.models import QuoteOption


@dataclass(slots=True)
class SelectionResult:
    cheapest: QuoteOption | None = None
    fastest: QuoteOption | None = None
    recommended: QuoteOption | None = None


def _dense_rank(values: list) -> dict:
    distinct = sorted(set(values))
    if len(distinct) <= 1:
        return {value: 0.0 for value in distinct}
    span = len(distinct) - 1
    return {value: index / span for index, value in enumerate(distinct)}


class OptionSelector:
    """
    在可比候选中挑选

    - cheapest: 价格最低，平价取时效更短，再平取先出现者
    - fastest: 时效最短，平手取价格更低，再平取先出现者
    - recommended: 价格排名与时效排名加权，平分取先出现者

    全部候选都有 normalized_cost 时统一比较；否则按币种分组，
    取偏好币种组，没有则取最大组（同样大小取先出现的组）。
    """

    def __init__(self, cost_weight: float = 0.5, speed_weight: float = 0.5) -> None:
        self.cost_weight = float(cost_weight)
        self.speed_weight = float(speed_weight)

    def select(self, options: list[QuoteOption], preferred_currency: str | None = None) -> SelectionResult:
        candidates = [option for option in options if option.is_comparable()]
        if not candidates:
            return SelectionResult()

        pool, cost_of = self.comparison_pool(candidates, preferred_currency)
        return SelectionResult(
            cheapest=min(pool, key=lambda o: (cost_of(o), o.estimated_days)),
            fastest=min(pool, key=lambda o: (o.estimated_days, cost_of(o))),
            recommended=self.recommend(pool, cost_of),
        )

    def cheapest(self, options: list[QuoteOption], preferred_currency: str | None = None) -> QuoteOption | None:
        return self.select(options, preferred_currency).cheapest

    def comparison_pool(
        self,
        candidates: list[QuoteOption],
        preferred_currency: str | None = None,
    ) -> tuple[list[QuoteOption], Callable[[QuoteOption], Decimal]]:
        if all(option.normalized_cost is not None for option in candidates):
            return candidates, lambda o: o.normalized_cost

        groups: dict[str, list[QuoteOption]] = {}
        for option in candidates:
            groups.setdefault(option.currency or "", []).append(option)

        preferred = (preferred_currency or "").upper()
        if preferred and preferred in groups:
            pool = groups[preferred]
        else:
            pool = max(groups.values(), key=len)
        return pool, lambda o: o.cost

    def recommend(self, pool: list[QuoteOption], cost_of: Callable[[QuoteOption], Decimal]) -> QuoteOption | None:
        if not pool:
            return None
        cost_rank = _dense_rank([cost_of(option) for option in pool])
        speed_rank = _dense_rank([option.estimated_days for option in pool])

        def score(option: QuoteOption) -> float:
            return (
                self.cost_weight * cost_rank[cost_of(option)]
                + self.speed_weight * speed_rank[option.estimated_days]
            )

        return min(pool, key=score)
