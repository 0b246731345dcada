"""
运费报价聚合引擎
Shipping Quote Aggregation Engine

多承运商并发报价、归一化比较与多商家合并
"""

__version__ = "1.0.0"
__author__ = "Project Team"

from .core.config import Config
from .core.logger import Logger

__all__ = [
    "Config",
    "Logger",
    "__version__",
]
