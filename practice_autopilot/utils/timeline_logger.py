"""
时间线日志记录器 - 把审计事件写成可读的文本文件
"""
import os
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..models.event import Event

logger = logging.getLogger(__name__)


class TimelineLogger:
    """时间线审计日志记录器

    作为 EventTimeline 的订阅者使用，每个事件写一段。
    """

    def __init__(self, log_file: Optional[str] = None):
        self.log_file = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        if log_file:
            self.set_log_file(log_file)

    def set_log_file(self, log_file: str):
        """设置日志文件路径（清空或创建）"""
        self.log_file = log_file
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(log_file, 'w', encoding='utf-8') as f:
            f.write(f"=== Practice Autopilot Timeline Started at {datetime.now().isoformat()} ===\n\n")

    def attach(self, timeline) -> "TimelineLogger":
        """订阅时间线事件"""
        self.detach()
        self._unsubscribe = timeline.subscribe(self)
        return self

    def detach(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def __call__(self, event: Event):
        details = event.to_dict()
        event_type = details.pop("type")
        details.pop("ts", None)
        self.log(event_type.upper(), details)

    def log(self, event_type: str, details: Dict[str, Any]):
        """记录日志条目"""
        if not self.log_file:
            return

        timestamp = details.get("time") or datetime.now().isoformat()
        try:
            with open(self.log_file, 'a', encoding='utf-8') as f:
                f.write(f"[{timestamp}] {event_type}\n")
                for key, value in details.items():
                    if key == "time" or value is None:
                        continue
                    if isinstance(value, (dict, list)):
                        f.write(f"  {key}: {json.dumps(value, ensure_ascii=False)}\n")
                    else:
                        f.write(f"  {key}: {value}\n")
                f.write("\n")
        except OSError as e:
            logger.error(f"Failed to write timeline log: {e}")
