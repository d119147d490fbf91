"""
数据存储模块

内存实现的诊所数据存储，计划步骤通过它读写领域记录
"""

from .memory_store import MemoryPracticeStore

__all__ = ["MemoryPracticeStore"]
