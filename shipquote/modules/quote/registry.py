"""provider 注册表：显式登记，按配置构建，顺序即调度顺序。"""

from __future__ import annotations

from typing import Any, Callable

from shipquote.modules.quote.providers import AggregatorProvider, IShippingProvider, PostalZoneProvider


def _build_postal(cfg: dict[str, Any]) -> IShippingProvider:
    return PostalZoneProvider(
        enabled=bool(cfg.get("enabled", False)),
        api_key=cfg.get("api_key"),
        base_url=str(cfg.get("base_url") or "https://api.vnpost.vn/api"),
        home_country=str(cfg.get("home_country") or "VN"),
    )


def _build_aggregator(cfg: dict[str, Any]) -> IShippingProvider:
    return AggregatorProvider(
        enabled=bool(cfg.get("enabled", False)),
        api_key=cfg.get("api_key") or "",
        base_url=str(cfg.get("base_url") or "https://api.easypost.com/v2"),
        mock_mode=bool(cfg.get("mock_mode", True)),
        dimension_unit=str(cfg.get("dimension_unit") or "cm"),
        retry_times=int(cfg.get("retry_times", 2)),
    )


PROVIDER_FACTORIES: dict[str, Callable[[dict[str, Any]], IShippingProvider]] = {
    "postal": _build_postal,
    "aggregator": _build_aggregator,
}


def build_providers(
    providers_cfg: dict[str, Any] | None = None,
    factories: dict[str, Callable[[dict[str, Any]], IShippingProvider]] | None = None,
) -> list[IShippingProvider]:
    """按登记顺序构建全部 provider；禁用的 provider 也会构建，由资格过滤排除。"""
    cfg = providers_cfg or {}
    return [factory(cfg.get(key) or {}) for key, factory in (factories or PROVIDER_FACTORIES).items()]
