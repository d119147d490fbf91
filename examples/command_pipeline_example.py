"""
指令流水线使用示例

演示预约、保险核验失败后重试、整计划撤销与澄清流程
"""

import asyncio
import logging

from practice_autopilot.core.autopilot import PracticeAutopilot
from practice_autopilot.database.memory_store import MemoryPracticeStore
from practice_autopilot.infrastructure.action_gateway import SimulatedActionGateway
from practice_autopilot.models.practice import Patient

# 配置日志
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main():
    """主函数"""
    # 1. 初始化存储与网关（AXA 门户无响应）
    store = MemoryPracticeStore()
    gateway = SimulatedActionGateway(latency_ms=(50, 200), unresponsive_portals=["AXA"])

    # 2. 创建并启动 Autopilot
    autopilot = PracticeAutopilot(store=store, gateway=gateway, audit_log_file="logs/example_timeline.log")
    await autopilot.start()

    try:
        # 3. 预约：全部步骤成功
        plan, status = await autopilot.run_command("schedule Sarah for Thu 2:30")
        logger.info(f"{plan.title}: {status.value}")

        # 4. 保险核验：第三步失败，门户恢复后重试
        coverage, status = await autopilot.run_command("verify coverage for Mrs Smith (AXA)")
        logger.info(f"{coverage.title}: {status.value}")
        gateway.set_portal_status("AXA", responsive=True)
        retried = await autopilot.retry_failed(coverage.id)
        logger.info(f"Retried {retried} steps, plan is now {coverage.status.value}")

        # 5. 撤销第一个计划
        undone = await autopilot.undo_all_plan(plan.id)
        logger.info(f"Undid {undone} events of {plan.id}")

        # 6. 澄清：两位 Sarah
        await store.add_patient(Patient(id="p9", name="Sarah Lee", phone="+44 7700 900109"))
        pending = await autopilot.submit("schedule Sarah for Fri 9:00")
        for question in pending.clarification_questions:
            logger.info(f"Question {question.id}: {question.question} {question.options}")
        resolved = await autopilot.resolve_clarification(pending, {"patient": "Sarah Lee"})
        status = await autopilot.execute(resolved)
        logger.info(f"{resolved.title}: {status.value}")

        # 7. 打印时间线
        for event in autopilot.timeline.events:
            logger.info(f"#{event.seq} {event.type}: {event.summary}")
    finally:
        await autopilot.stop()


if __name__ == "__main__":
    asyncio.run(main())
