"""
工具模块

包含日志、配置与审计日志工具
"""

from .logger import setup_logging, get_logger
from .config import Config, load_config
from .timeline_logger import TimelineLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "Config",
    "load_config",
    "TimelineLogger",
]
