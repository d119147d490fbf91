"""
日志配置

运行日志统一挂在 practice_autopilot 日志器下；审计时间线另由 TimelineLogger 写文件。
"""

import logging
import logging.config
import sys
from typing import Any, Dict, Mapping, Optional

ROOT_LOGGER_NAME = "practice_autopilot"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s - %(message)s"

# 第三方库只输出警告以上
QUIET_LIBRARIES = ("httpx", "httpcore", "google")


def build_logging_config(
    level: str = "INFO",
    log_file: Optional[str] = None,
    module_levels: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    生成 dictConfig 配置。

    module_levels 以相对包名为键，例如 {"core.plan_executor": "DEBUG"}。
    """
    level = level.upper()
    handlers = ["console"]
    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": CONSOLE_FORMAT, "datefmt": "%H:%M:%S"},
            "file": {"format": FILE_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "stream": sys.stderr,
            }
        },
        "root": {"level": "WARNING", "handlers": handlers},
        "loggers": {
            ROOT_LOGGER_NAME: {"level": level, "handlers": handlers, "propagate": False},
        },
    }

    for name in QUIET_LIBRARIES:
        config["loggers"][name] = {"level": "WARNING"}

    for name, module_level in (module_levels or {}).items():
        config["loggers"][_qualified(name)] = {"level": str(module_level).upper()}

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "file",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf-8",
        }
        handlers.append("file")

    return config


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    module_levels: Optional[Mapping[str, str]] = None,
) -> None:
    """应用日志配置"""
    logging.config.dictConfig(build_logging_config(level, log_file, module_levels))
    logging.getLogger(ROOT_LOGGER_NAME).info(
        f"Logging initialized (level={level.upper()}, file={log_file or 'none'})"
    )


def get_logger(name: str) -> logging.Logger:
    """脚本与示例用的日志器，统一挂到 practice_autopilot 下"""
    return logging.getLogger(_qualified(name))


def _qualified(name: str) -> str:
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return name
    return f"{ROOT_LOGGER_NAME}.{name}"
