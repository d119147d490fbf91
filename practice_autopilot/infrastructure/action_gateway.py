"""
外部动作网关

计划步骤对诊所系统以外的副作用（短信、保险门户、药房、Xero、化验、录音转写等）
统一通过 ActionGateway 发出。具体业务实现属于外部协作方；这里提供一个记录调用、
模拟延迟并可模拟门户无响应的 SimulatedActionGateway。
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.errors import ActionFailedError

logger = logging.getLogger(__name__)

PORTAL_UNRESPONSIVE_MESSAGE = "Portal unresponsive"


class ActionGateway:
    """外部动作网关接口"""

    async def perform(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """执行动作，失败时抛出 ActionFailedError"""
        raise NotImplementedError

    async def revert(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """执行动作的补偿操作"""
        raise NotImplementedError


class SimulatedActionGateway(ActionGateway):
    """模拟网关

    - payload 中带 portal 字段的动作，若该门户被标记为无响应则抛出 "Portal unresponsive"
    - fail_next 可让指定动作在接下来的 N 次调用中失败
    - history 按顺序记录所有 perform/revert 调用
    """

    def __init__(
        self,
        latency_ms: Tuple[int, int] = (0, 0),
        unresponsive_portals: Optional[Iterable[str]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.latency_ms = latency_ms
        self.unresponsive_portals = {p.lower() for p in (unresponsive_portals or [])}
        self.history: List[Dict[str, Any]] = []
        self._scripted_failures: Dict[str, List[str]] = {}
        self._rng = rng or random.Random()

    def set_portal_status(self, portal: str, responsive: bool):
        """标记外部门户是否可用"""
        key = portal.lower()
        if responsive:
            self.unresponsive_portals.discard(key)
        else:
            self.unresponsive_portals.add(key)
        logger.info(f"Gateway: portal {portal} marked {'responsive' if responsive else 'unresponsive'}")

    def fail_next(self, action: str, message: str = "Action failed", times: int = 1):
        """让指定动作接下来 times 次执行失败"""
        self._scripted_failures.setdefault(action, []).extend([message] * times)

    def calls(self, action: Optional[str] = None, phase: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            c for c in self.history
            if (action is None or c["action"] == action) and (phase is None or c["phase"] == phase)
        ]

    async def _simulate_latency(self):
        low, high = self.latency_ms
        if high > 0:
            await asyncio.sleep(self._rng.uniform(low, high) / 1000.0)

    async def perform(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = dict(payload or {})
        await self._simulate_latency()

        portal = payload.get("portal")
        if portal and str(portal).lower() in self.unresponsive_portals:
            logger.warning(f"Gateway: {action} failed, portal {portal} unresponsive")
            raise ActionFailedError(action, PORTAL_UNRESPONSIVE_MESSAGE, {"portal": portal})

        scripted = self._scripted_failures.get(action)
        if scripted:
            message = scripted.pop(0)
            logger.warning(f"Gateway: {action} failed (scripted): {message}")
            raise ActionFailedError(action, message)

        self.history.append({"action": action, "phase": "perform", "payload": payload, "at": datetime.now()})
        logger.info(f"Gateway: performed {action} {payload}")
        return {"success": True, "action": action}

    async def revert(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = dict(payload or {})
        await self._simulate_latency()
        self.history.append({"action": action, "phase": "revert", "payload": payload, "at": datetime.now()})
        logger.info(f"Gateway: reverted {action} {payload}")
        return {"success": True, "action": action}
