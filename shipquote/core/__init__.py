"""
核心模块
Core Module

提供配置管理、日志系统、异常层次等基础能力
"""

from .config import Config, get_config
from .logger import Logger, get_logger

__all__ = ["Config", "Logger", "get_config", "get_logger"]
