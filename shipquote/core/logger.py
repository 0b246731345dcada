"""
日志模块
Logging Module

loguru 之上的进程级单例。每条日志带 ``component`` 字段（engine、provider、
shipment 等），同一次报价链路可按组件过滤；级别与文件输出由 SHIPQUOTE_* 环境变量控制。
"""

from __future__ import annotations

import os
import sys
import threading
from dataclasses import dataclass
from pathlib import Path

from loguru import logger as _loguru

ROOT_COMPONENT = "shipquote"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[component]}</magenta> | "
    "<cyan>{message}</cyan>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[component]} | {message}"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class LogSettings:
    """日志输出设置，读取自环境变量。"""

    level: str = "INFO"
    logs_dir: Path = Path("logs")
    debug: bool = False
    to_file: bool = True

    @classmethod
    def from_env(cls) -> LogSettings:
        return cls(
            level=os.getenv("SHIPQUOTE_LOG_LEVEL", "INFO").strip().upper(),
            logs_dir=Path(os.getenv("SHIPQUOTE_LOGS_DIR", "logs")),
            debug=_env_flag("SHIPQUOTE_DEBUG", "false"),
            to_file=_env_flag("SHIPQUOTE_LOG_TO_FILE", "true"),
        )

    @property
    def console_level(self) -> str:
        return "DEBUG" if self.debug else self.level


class ComponentLogger:
    """绑定了组件名的日志器。"""

    def __init__(self, component: str, sink=None):
        self.component = component
        self._log = (sink or _loguru).bind(component=component)

    def child(self, component: str) -> ComponentLogger:
        return ComponentLogger(component)

    def debug(self, message: str) -> None:
        self._log.debug(message)

    def info(self, message: str) -> None:
        self._log.info(message)

    def warning(self, message: str) -> None:
        self._log.warning(message)

    def error(self, message: str) -> None:
        self._log.error(message)

    def exception(self, message: str) -> None:
        """Error 级别，附带当前异常堆栈。"""
        self._log.exception(message)


class Logger(ComponentLogger):
    """
    日志管理类

    首次创建时重建 loguru sink（控制台 + 可选滚动文件），之后始终返回同一实例。
    """

    _instance: Logger | None = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                settings = LogSettings.from_env()
                _configure_sinks(settings)
                instance = super().__new__(cls)
                ComponentLogger.__init__(instance, ROOT_COMPONENT)
                instance.settings = settings
                cls._instance = instance
        return cls._instance

    def __init__(self):
        pass


def _configure_sinks(settings: LogSettings) -> None:
    _loguru.remove()
    _loguru.configure(extra={"component": ROOT_COMPONENT})
    _loguru.add(sys.stderr, format=CONSOLE_FORMAT, level=settings.console_level, colorize=True)
    if not settings.to_file:
        return
    settings.logs_dir.mkdir(parents=True, exist_ok=True)
    _loguru.add(
        str(settings.logs_dir / "shipquote.log"),
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="10 MB",
        retention="7 days",
        compression="gz",
    )


def get_logger(component: str | None = None) -> ComponentLogger:
    """返回根日志器；给出 component 时返回带该标签的子日志器。"""
    root = Logger()
    if component is None:
        return root
    return root.child(component)
