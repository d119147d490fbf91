"""
pytest 配置文件
提供共享的测试 fixtures
"""
import pytest
import pytest_asyncio

from practice_autopilot.core.autopilot import PracticeAutopilot
from practice_autopilot.core.command_interpreter import CommandInterpreter
from practice_autopilot.core.id_generator import IDGenerator
from practice_autopilot.core.pattern_cascade import PatternCascade
from practice_autopilot.core.plan_executor import PlanExecutor
from practice_autopilot.core.timeline import EventTimeline
from practice_autopilot.database.memory_store import MemoryPracticeStore
from practice_autopilot.infrastructure.action_gateway import SimulatedActionGateway
from practice_autopilot.models.context import InterpretationContext
from practice_autopilot.plans.common import StepServices
from practice_autopilot.plans.registry import default_rules
from tests.utils.step_recorder import StepRecorder

# 固定的"当前时间"，让逾期计算等与日期相关的步骤可重复
FIXED_NOW = "2025-09-10T09:00:00"


@pytest.fixture
def ids():
    """独立的 ID 生成器"""
    return IDGenerator()


@pytest.fixture
def store():
    """载入演示数据的内存存储"""
    return MemoryPracticeStore()


@pytest.fixture
def gateway():
    """模拟网关：AXA 门户无响应"""
    return SimulatedActionGateway(unresponsive_portals=["AXA"])


@pytest.fixture
def timeline(ids):
    return EventTimeline(ids)


@pytest.fixture
def executor(timeline):
    """无节奏延迟的执行器"""
    return PlanExecutor(timeline, pacing=(0, 0))


@pytest.fixture
def services(store, gateway, ids):
    return StepServices(store=store, gateway=gateway, ids=ids)


@pytest.fixture
def cascade(services):
    return PatternCascade(default_rules(), services)


@pytest.fixture
def interpreter(cascade, ids):
    """不带 AI 协作方的解释器"""
    return CommandInterpreter(cascade, ids=ids)


@pytest.fixture
def context(store):
    """基于演示数据的解释上下文"""
    snapshot = store.snapshot()
    return InterpretationContext(
        patients=snapshot["patients"],
        appointments=snapshot["appointments"],
        invoices=snapshot["invoices"],
        current_time=FIXED_NOW,
    )


@pytest.fixture
def recorder(ids):
    """记录 run/undo 调用顺序的步骤工厂"""
    return StepRecorder(ids)


@pytest_asyncio.fixture
async def autopilot(store, gateway, timeline, ids):
    """完整组装的 PracticeAutopilot（无 AI、无节奏延迟）"""
    instance = PracticeAutopilot(
        store=store,
        gateway=gateway,
        timeline=timeline,
        pacing=(0, 0),
        ids=ids,
    )
    await instance.start()
    yield instance
    await instance.stop()
