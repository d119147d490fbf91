"""
基础设施模块

包含系统的基础设施组件：
- Action Gateway (外部动作网关)
- LLM Client (命令理解使用的大模型客户端)
"""

from .action_gateway import ActionGateway, SimulatedActionGateway
from .llm_client import LLMClient, build_llm_client

__all__ = [
    "ActionGateway",
    "SimulatedActionGateway",
    "LLMClient",
    "build_llm_client",
]
