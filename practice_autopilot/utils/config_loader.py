"""
LLM 服务商设置

命令理解阶段的客户端从这里取 provider、模型、接口地址与 API Key。
环境变量优先（LLM_MODEL、OPENAI_API_KEY 之类），其次是 config/{APP_ENV}.yaml 中的同名点分键。
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Any, Dict

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "google"

# 各服务商的缺省模型与接口地址
PROVIDER_DEFAULTS: Dict[str, Dict[str, Optional[str]]] = {
    "google": {"model": "gemini-1.5-flash", "base_url": None},
    "openai": {"model": "gpt-4o-mini", "base_url": "https://api.openai.com/v1"},
    "deepseek": {"model": "deepseek-chat", "base_url": "https://api.deepseek.com/v1"},
}


@dataclass
class ProviderSettings:
    """单个 LLM 服务商的连接设置"""
    provider: str
    model: Optional[str]
    api_key: Optional[str]
    base_url: Optional[str] = None
    organization: Optional[str] = None


class ConfigLoader:
    """读取 LLM 相关设置；yaml 缺失时只依赖环境变量"""

    def __init__(self, config_dir: str = "config", env: Optional[str] = None):
        self.config_dir = os.getenv("PRACTICE_AUTOPILOT_CONFIG_DIR", config_dir)
        self.env = env or os.getenv("APP_ENV", "development")
        self._data: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        path = os.path.join(self.config_dir, f"{self.env}.yaml")
        if not os.path.exists(path):
            self._data = {}
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                self._data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read LLM settings from {path}: {e}")
            self._data = {}

    def get(self, key: str, default: Optional[Any] = None) -> Optional[Any]:
        """点分键取值，先查 LLM_MODEL 形式的环境变量"""
        env_val = os.getenv(key.replace(".", "_").upper())
        if env_val is not None:
            return env_val

        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def provider_settings(self, provider: Optional[str] = None, model: Optional[str] = None) -> ProviderSettings:
        """
        汇总服务商设置。

        provider 缺省取 llm.provider，model 缺省取 llm.model 再取该服务商的缺省模型。
        API Key 依次查 {provider}.api_key 与 llm.{provider}.api_key（均可被环境变量覆盖）。
        """
        name = (provider or self.get("llm.provider") or DEFAULT_PROVIDER).lower()
        defaults = PROVIDER_DEFAULTS.get(name, {})
        return ProviderSettings(
            provider=name,
            model=model or self.get("llm.model") or defaults.get("model"),
            api_key=self.get(f"{name}.api_key") or self.get(f"llm.{name}.api_key"),
            base_url=self.get(f"{name}.base_url", defaults.get("base_url")),
            organization=self.get(f"{name}.organization"),
        )

    def reload(self, env: Optional[str] = None) -> None:
        if env:
            self.env = env
        self.load()


config_loader: ConfigLoader = ConfigLoader()

__all__ = ["ConfigLoader", "ProviderSettings", "config_loader"]
