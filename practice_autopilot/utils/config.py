"""
配置管理工具
"""

import os
import re
import yaml
from typing import Dict, Any, Optional

_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


class Config:
    """配置管理类"""

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        self._config = config_dict or {}

    def get(self, key: str, default: Any = None) -> Any:
        """获取配置值，支持点号路径"""
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def get_string(self, key: str, default: str = "") -> str:
        """获取字符串配置"""
        value = self.get(key, default)
        return str(value) if value is not None else default

    def get_int(self, key: str, default: int = 0) -> int:
        """获取整数配置"""
        value = self.get(key, default)
        try:
            return int(value)
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """获取浮点配置"""
        value = self.get(key, default)
        try:
            return float(value)
        except (ValueError, TypeError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """获取布尔配置"""
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ('true', '1', 'yes', 'on')
        return bool(value)

    def get_list(self, key: str, default: Optional[list] = None) -> list:
        """获取列表配置"""
        value = self.get(key, default)
        if isinstance(value, list):
            return value
        return default or []

    def get_dict(self, key: str, default: Optional[dict] = None) -> dict:
        """获取字典配置"""
        value = self.get(key, default)
        if isinstance(value, dict):
            return value
        return default or {}

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._config)


def load_config(config_file: Optional[str] = None) -> Config:
    """加载配置文件"""

    if config_file is None:
        # 按优先级查找配置文件
        env = os.getenv("APP_ENV", "development")
        config_dir = os.getenv("PRACTICE_AUTOPILOT_CONFIG_DIR", "config")
        possible_paths = [
            os.path.join(config_dir, f"{env}.yaml"),
            os.path.join(config_dir, "config.yaml"),
            "config.yaml",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_file = path
                break

        if config_file is None:
            raise FileNotFoundError("No configuration file found")

    if not os.path.exists(config_file):
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML configuration file: {e}")

    # 处理环境变量替换
    config_dict = _replace_env_variables(config_dict)

    return Config(config_dict)


def _replace_env_variables(config_dict: Any) -> Any:
    """替换配置中的 ${VAR_NAME} 或 ${VAR_NAME:default} 环境变量"""
    if isinstance(config_dict, dict):
        return {k: _replace_env_variables(v) for k, v in config_dict.items()}
    elif isinstance(config_dict, list):
        return [_replace_env_variables(item) for item in config_dict]
    elif isinstance(config_dict, str):
        def replace_var(match):
            var_name = match.group(1)
            default_value = ""
            if ':' in var_name:
                var_name, default_value = var_name.split(':', 1)
            return os.getenv(var_name, default_value)

        return _ENV_PATTERN.sub(replace_var, config_dict)
    else:
        return config_dict
