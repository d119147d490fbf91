"""
LLM Client 抽象与具体实现

命令理解阶段使用的可插拔 LLM 接口。支持 Google Gemini 以及 OpenAI 兼容协议（OpenAI、DeepSeek）。
"""
from __future__ import annotations

import os
import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..utils.config_loader import config_loader

logger = logging.getLogger(__name__)
# 当设置 LLM_DEBUG=1 时，强制开启 DEBUG 日志，便于查看请求/响应
if os.getenv("LLM_DEBUG", "").lower() in ("1", "true", "yes"):
    logger.setLevel(logging.DEBUG)


class LLMClient:
    """统一的 LLM 客户端接口。"""

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """给定文本 prompt（和可选系统指令）生成文本响应。"""
        raise NotImplementedError


class GoogleGeminiClient(LLMClient):
    """Google Gemini 适配器。"""

    def __init__(self, model_name: Optional[str] = None):
        try:
            import google.generativeai as genai  # type: ignore
        except ImportError as e:
            # 延迟导入失败时记录，调用 generate 时再报错
            logger.warning("google.generativeai import failed: %s", e)
            genai = None  # type: ignore

        self._genai = genai

        settings = config_loader.provider_settings("google", model_name)
        api_key = settings.api_key

        if self._genai and api_key:
            self._genai.configure(api_key=api_key)
        elif not api_key:
            logger.warning("Google API key not configured; LLM calls will fail.")

        self.model_name = settings.model

        # 命令理解需要稳定输出，温度较低
        self.generation_config = {
            "temperature": 0.2,
            "top_p": 0.8,
            "max_output_tokens": 1024,
            "response_mime_type": "application/json",
        }

        self._model = None
        if self._genai:
            try:
                self._model = self._genai.GenerativeModel(
                    model_name=self.model_name,
                    generation_config=self.generation_config,
                )
                logger.info("GoogleGeminiClient initialized: %s", self.model_name)
            except Exception as e:
                logger.error("Failed to create GenerativeModel: %s", e)

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        if not self._model:
            raise RuntimeError("GoogleGeminiClient is not initialized (missing SDK or API key).")
        full_prompt = f"{system}\n\n{prompt}" if system else prompt
        try:
            logger.debug("Gemini.generate input prompt=%r", full_prompt[:500])
            resp = await self._model.generate_content_async(full_prompt)
            text = getattr(resp, "text", str(resp))
            logger.debug("Gemini.generate output text=%r", text[:500])
            return text
        except Exception as e:
            logger.error("Gemini generate failed: %s", e)
            raise


class BaseOpenAICompatibleClient(LLMClient):
    """基于 OpenAI Chat Completions API 兼容层的通用客户端。

    子类通过提供 base_url 与认证头实现 OpenAI 与 DeepSeek 等。
    """

    def __init__(self, model_name: Optional[str], base_url: str, api_key: str,
                 organization: Optional[str] = None, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.organization = organization
        self.model_name = model_name or "gpt-4o-mini"
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return headers

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": [],
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
        }
        if system:
            payload["messages"].append({"role": "system", "content": system})
        payload["messages"].append({"role": "user", "content": prompt})

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            logger.debug("OpenAICompat.generate payload=%s", json.dumps(payload, ensure_ascii=False)[:1200])
            resp = await client.post(f"{self.base_url}/chat/completions", headers=self._headers(), json=payload)
            resp.raise_for_status()
            data = resp.json()
            logger.debug("OpenAICompat.generate raw_response=%s", json.dumps(data, ensure_ascii=False)[:1200])
            content = (
                ((data.get("choices") or [{}])[0].get("message") or {}).get("content")
            )
            return content or ""


class OpenAIClient(BaseOpenAICompatibleClient):
    def __init__(self, model_name: Optional[str] = None):
        settings = config_loader.provider_settings("openai", model_name)
        super().__init__(model_name=settings.model, base_url=settings.base_url,
                         api_key=settings.api_key or "", organization=settings.organization)


class DeepSeekClient(BaseOpenAICompatibleClient):
    def __init__(self, model_name: Optional[str] = None):
        settings = config_loader.provider_settings("deepseek", model_name)
        super().__init__(model_name=settings.model, base_url=settings.base_url, api_key=settings.api_key or "")


def build_llm_client(provider: Optional[str] = None, model_name: Optional[str] = None) -> LLMClient:
    """根据 provider 创建对应的 LLMClient。默认 google。

    配置键：
    - llm.provider: google/openai/deepseek
    - llm.model: 具体模型名
    """
    settings = config_loader.provider_settings(provider, model_name)
    prov, mdl = settings.provider, settings.model

    if prov == "google":
        return GoogleGeminiClient(model_name=mdl)
    if prov == "openai":
        return OpenAIClient(model_name=mdl)
    if prov == "deepseek":
        return DeepSeekClient(model_name=mdl)

    raise NotImplementedError(f"Unsupported llm.provider: {prov}")
