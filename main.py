"""
Practice Autopilot 主应用入口

从命令行读取指令，解释为计划并执行，最后打印时间线。
用法：python main.py "schedule Sarah for Thu 2:30" "verify coverage for Mrs Smith (AXA)"
不带参数时进入交互模式（输入 undo <plan_id> / retry <plan_id> / quit）。
"""

import asyncio
import sys

from practice_autopilot.core.autopilot import PracticeAutopilot
from practice_autopilot.core.errors import PracticeAutopilotError
from practice_autopilot.utils.config import Config, load_config
from practice_autopilot.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _load_config() -> Config:
    try:
        return load_config()
    except FileNotFoundError:
        return Config()


def print_plan(plan):
    if plan is None:
        print("(blank command ignored)")
        return
    print(f"\nPlan {plan.id}: {plan.title}")
    if plan.needs_clarification:
        for question in plan.clarification_questions:
            options = f" [{', '.join(question.options)}]" if question.options else ""
            print(f"  ? {question.id}: {question.question}{options}")
        return
    for step in plan.steps:
        print(f"  {step.id}: {step.label}{'' if step.reversible else ' (irreversible)'}")


def print_timeline(autopilot: PracticeAutopilot, since: int = 0):
    for event in autopilot.timeline.events[since:]:
        print(f"  #{event.seq:<3} {event.type:<20} {event.summary}")


async def handle(autopilot: PracticeAutopilot, line: str):
    verb, _, rest = line.strip().partition(" ")
    before = len(autopilot.timeline)
    try:
        if verb == "undo" and rest:
            count = await autopilot.undo_all_plan(rest.strip())
            print(f"Undid {count} events")
        elif verb == "retry" and rest:
            count = await autopilot.retry_failed(rest.strip())
            print(f"Retried {count} steps successfully")
        else:
            plan, status = await autopilot.run_command(line)
            print_plan(plan)
            if status is not None:
                print(f"Status: {status.value}")
    except PracticeAutopilotError as e:
        logger.error(f"Command failed: {e.message}")
    print_timeline(autopilot, since=before)


async def main(argv):
    config = _load_config()
    setup_logging(
        level=config.get_string("logging.level", "INFO"),
        log_file=config.get("logging.file"),
        module_levels=config.get_dict("logging.modules"),
    )

    autopilot = PracticeAutopilot.from_config(config)
    await autopilot.start()
    try:
        if argv:
            for command in argv:
                await handle(autopilot, command)
            return

        while True:
            line = await asyncio.to_thread(input, "autopilot> ")
            if line.strip() in ("quit", "exit"):
                break
            await handle(autopilot, line)
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await autopilot.stop()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
