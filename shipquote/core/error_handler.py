"""
统一异常处理模块
Unified Error Handling

提供异常层次、装饰器和工具函数
"""

import asyncio
import time
from functools import wraps
from typing import Callable, Any, Dict, Optional

from shipquote.core.logger import get_logger


class ShipQuoteError(Exception):
    """基础异常类"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ConfigError(ShipQuoteError):
    """配置错误"""
    pass


class QuoteValidationError(ShipQuoteError):
    """报价请求校验错误（请求无法理解，不重试）"""

    def __init__(self, message: str, errors: Optional[list] = None, details: Optional[Dict[str, Any]] = None):
        self.errors = list(errors or [])
        merged = dict(details or {})
        if self.errors:
            merged.setdefault("errors", self.errors)
        super().__init__(message, merged)


class QuoteProviderError(ShipQuoteError):
    """报价 provider 内部错误，只在 provider 内部流转"""

    def __init__(self, message: str, code: str = "PROVIDER_ERROR", details: Optional[Dict[str, Any]] = None):
        self.code = code
        super().__init__(message, details)


class UnsupportedCapabilityError(ShipQuoteError):
    """provider 未声明该能力"""
    pass


class ShipmentStateError(ShipQuoteError):
    """运单状态迁移错误"""
    pass


def retry(max_attempts: int = 3, delay: float = 1.0,
         backoff_factor: float = 2.0,
         exceptions: tuple = (Exception,)):
    """
    重试装饰器

    Args:
        max_attempts: 最大尝试次数
        delay: 初始延迟时间（秒）
        backoff_factor: 退避因子
        exceptions: 需要重试的异常类型
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger = get_logger()

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts - 1:
                        logger.error(f"Final attempt failed for {func.__name__}: {e}")
                        raise

                    wait_time = delay * (backoff_factor ** attempt)
                    logger.warning(
                        f"Attempt {attempt + 1} failed for {func.__name__}: {e}. "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    await asyncio.sleep(wait_time)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            logger = get_logger()

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts - 1:
                        logger.error(f"Final attempt failed for {func.__name__}: {e}")
                        raise

                    wait_time = delay * (backoff_factor ** attempt)
                    logger.warning(
                        f"Attempt {attempt + 1} failed for {func.__name__}: {e}. "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    time.sleep(wait_time)

        return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper
    return decorator


def log_execution_time(logger=None):
    """
    记录执行时间装饰器

    Args:
        logger: 日志记录器
    """
    if logger is None:
        logger = get_logger()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
                elapsed = time.perf_counter() - start_time
                logger.debug(f"{func.__name__} executed in {elapsed:.3f}s")
                return result
            except Exception as e:
                elapsed = time.perf_counter() - start_time
                logger.error(f"{func.__name__} failed after {elapsed:.3f}s: {e}")
                raise

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
                elapsed = time.perf_counter() - start_time
                logger.debug(f"{func.__name__} executed in {elapsed:.3f}s")
                return result
            except Exception as e:
                elapsed = time.perf_counter() - start_time
                logger.error(f"{func.__name__} failed after {elapsed:.3f}s: {e}")
                raise

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper
    return decorator


def handle_errors(exceptions: Optional[tuple] = None,
                    default_return: Any = None,
                    logger=None,
                    raise_on_error: bool = False):
    """
    通用异常处理装饰器

    Args:
        exceptions: 需要捕获的异常类型
        default_return: 默认返回值
        logger: 日志记录器
        raise_on_error: 是否重新抛出异常
    """
    if exceptions is None:
        exceptions = (Exception,)

    if logger is None:
        logger = get_logger()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except exceptions as e:
                logger.error(f"Error in {func.__name__}: {e}")
                if raise_on_error:
                    raise
                return default_return

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                logger.error(f"Error in {func.__name__}: {e}")
                if raise_on_error:
                    raise
                return default_return

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper
    return decorator
