"""
配置模型与验证
Configuration Models and Validation

使用Pydantic进行配置验证
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, validator
from enum import Enum


class ConsolidationStrategyName(str, Enum):
    """多商家合并策略枚举"""
    CHEAPEST_EACH = "CHEAPEST_EACH"
    SAME_PROVIDER = "SAME_PROVIDER"
    MIXED_PROVIDERS = "MIXED_PROVIDERS"


class DimensionUnit(str, Enum):
    """承运商体积计量单位"""
    CM = "cm"
    IN = "in"


class ProviderConfig(BaseModel):
    """通用承运商 provider 配置模型"""
    enabled: bool = Field(default=False, description="是否启用")
    api_key: Optional[str] = Field(default=None, description="API密钥")
    base_url: Optional[str] = Field(default=None, description="API基础URL")
    timeout_ms: int = Field(default=3000, ge=100, le=60000, description="单次调用超时时间（毫秒）")


class PostalProviderConfig(ProviderConfig):
    """邮政分区计价 provider 配置模型"""
    base_url: Optional[str] = Field(default="https://api.vnpost.vn/api", description="API基础URL")
    home_country: str = Field(default="VN", min_length=2, max_length=3, description="本国国家代码")


class AggregatorProviderConfig(ProviderConfig):
    """聚合 provider 配置模型"""
    base_url: Optional[str] = Field(default="https://api.easypost.com/v2", description="API基础URL")
    mock_mode: bool = Field(default=True, description="使用内置模拟费率，不发起网络请求")
    dimension_unit: DimensionUnit = Field(default=DimensionUnit.CM, description="体积重计量单位")
    retry_times: int = Field(default=2, ge=1, le=10, description="网络错误重试次数")


class ProvidersConfig(BaseModel):
    """全部 provider 配置"""
    postal: PostalProviderConfig = Field(default_factory=PostalProviderConfig)
    aggregator: AggregatorProviderConfig = Field(default_factory=AggregatorProviderConfig)


class QuoteEngineConfig(BaseModel):
    """报价引擎配置模型"""
    provider_timeout_ms: int = Field(default=3000, ge=100, le=60000, description="每个 provider 的时间预算（毫秒）")
    quote_ttl_minutes: int = Field(default=10, ge=1, le=1440, description="报价有效期（分钟）")
    dimensional_divisor: float = Field(default=5000.0, gt=0, description="统一比较用体积重除数")
    default_strategy: ConsolidationStrategyName = ConsolidationStrategyName.CHEAPEST_EACH
    recommend_cost_weight: float = Field(default=0.5, ge=0.0, le=1.0, description="推荐打分中价格权重")
    recommend_speed_weight: float = Field(default=0.5, ge=0.0, le=1.0, description="推荐打分中时效权重")
    internal_fallback_enabled: bool = Field(default=False, description="无任何报价时启用内部兜底费率")
    heavy_package_warning_kg: float = Field(default=50.0, gt=0, description="超重提示阈值（千克）")
    base_currency: str = Field(default="VND", min_length=3, max_length=3, description="默认基础币种")
    fx_rates: Dict[str, float] = Field(default_factory=dict, description="币种汇率表（每单位折算成枢轴币种）")

    @validator("base_currency")
    def validate_base_currency(cls, v):
        """币种统一大写"""
        return v.upper()

    @validator("fx_rates")
    def validate_fx_rates(cls, v):
        """验证汇率为正数"""
        for code, rate in v.items():
            if rate <= 0:
                raise ValueError(f"fx rate for {code} must be positive, got {rate}")
        return {code.upper(): rate for code, rate in v.items()}


class AppConfig(BaseModel):
    """应用配置模型"""
    name: str = Field(default="shipquote", description="应用名称")
    version: str = Field(default="1.0.0", description="版本号")
    debug: bool = Field(default=False, description="调试模式")
    log_level: str = Field(default="INFO", description="日志级别")
    logs_dir: str = Field(default="logs", description="日志目录")

    @validator("log_level")
    def validate_log_level(cls, v):
        """验证日志级别"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {v}")
        return v


class ConfigModel(BaseModel):
    """完整配置模型"""
    app: AppConfig = Field(default_factory=AppConfig)
    quote: QuoteEngineConfig = Field(default_factory=QuoteEngineConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfigModel':
        """从字典创建配置"""
        return cls(**data)
