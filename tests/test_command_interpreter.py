"""
指令解释器测试：AI → 模式级联 → 兜底
"""

import pytest

from practice_autopilot.core.command_interpreter import CommandInterpreter
from practice_autopilot.infrastructure.command_understanding import AI_STEP_ACTION, CommandUnderstanding
from practice_autopilot.models.plan import Actor, PlanStatus, QuestionType, Source
from practice_autopilot.models.context import InterpretationContext
from tests.utils.mock_llm import MockLLMClient, clarification_response, plan_response


def _interpreter(cascade, gateway, ids, responses):
    llm = MockLLMClient(responses)
    understanding = CommandUnderstanding(llm, gateway, confidence_threshold=0.7, ids=ids)
    return CommandInterpreter(cascade, understanding, ids=ids), llm


class TestWithoutAI:
    """没有 AI 协作方时"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["", "   ", None])
    async def test_blank_command_returns_none(self, interpreter, context, command):
        assert await interpreter.interpret(command, context) is None

    @pytest.mark.asyncio
    async def test_cascade_plan(self, interpreter, context):
        """测试级联命中时生成领域计划"""
        plan = await interpreter.interpret("  schedule Sarah for Thu 2:30 ", context)

        assert plan.title == "Schedule Sarah for Thu 2:30"
        assert [s.label for s in plan.steps] == [
            "Find available slot at Thu 2:30",
            "Book appointment for Sarah",
            "Send confirmation SMS",
        ]
        assert [s.id for s in plan.steps] == ["step-1", "step-2", "step-3"]
        assert plan.original_command == "schedule Sarah for Thu 2:30"
        assert plan.status == PlanStatus.PENDING
        assert not plan.needs_clarification

    @pytest.mark.asyncio
    async def test_plan_inherits_actor_and_source(self, interpreter):
        """测试计划的发起者与来源取自上下文"""
        context = InterpretationContext(actor=Actor.AUTOPILOT, source=Source.KPI_PANEL)
        plan = await interpreter.interpret("review pricing", context)
        assert plan.actor == Actor.AUTOPILOT
        assert plan.source == Source.KPI_PANEL

    @pytest.mark.asyncio
    async def test_fallback_echo_plan(self, interpreter, context):
        """测试无命中时生成回显命令的单步计划"""
        plan = await interpreter.interpret("asdkjasdkj nonsense", context)

        assert plan.title == "Execute: asdkjasdkj nonsense"
        assert len(plan.steps) == 1
        assert plan.steps[0].label == "Processing command: asdkjasdkj nonsense"
        assert plan.steps[0].reversible

    @pytest.mark.asyncio
    async def test_default_context(self, interpreter):
        """测试未提供上下文时使用空上下文"""
        plan = await interpreter.interpret("schedule Sarah for Thu 2:30")
        assert plan.title == "Schedule Sarah for Thu 2:30"

    @pytest.mark.asyncio
    async def test_cascade_clarification(self, interpreter):
        """测试工厂请求澄清时返回待澄清计划"""
        context = InterpretationContext(patients=[
            {"id": "p2", "name": "Sarah Jones"},
            {"id": "p9", "name": "Sarah Lee"},
        ])
        plan = await interpreter.interpret("schedule Sarah for Thu 2:30", context)

        assert plan.needs_clarification
        assert not plan.is_executable
        assert plan.steps == []
        assert plan.title == "Clarify: schedule Sarah for Thu 2:30"
        assert plan.original_command == "schedule Sarah for Thu 2:30"
        assert plan.clarification_questions[0].id == "patient"


class TestWithAI:
    """带 AI 协作方时"""

    @pytest.mark.asyncio
    async def test_confident_ai_plan_wins(self, cascade, gateway, ids, context, executor):
        """测试高置信度 AI 计划优先于级联"""
        interpreter, llm = _interpreter(cascade, gateway, ids, [
            plan_response("Book Sarah", ["Find slot", "Book", "Confirm"], confidence=0.92),
        ])

        plan = await interpreter.interpret("schedule Sarah for Thu 2:30", context)

        assert plan.id.startswith("ai-")
        assert plan.title == "Book Sarah"
        assert [s.label for s in plan.steps] == ["Find slot", "Book", "Confirm"]
        assert len(llm.prompts) == 1

        assert await executor.execute(plan) == PlanStatus.COMPLETE
        assert len(gateway.calls(AI_STEP_ACTION, "perform")) == 3

    @pytest.mark.asyncio
    async def test_low_confidence_falls_through_to_cascade(self, cascade, gateway, ids, context):
        """测试低置信度时转入模式级联"""
        interpreter, _ = _interpreter(cascade, gateway, ids, [
            plan_response("Maybe", ["Something"], confidence=0.4),
        ])
        plan = await interpreter.interpret("schedule Sarah for Thu 2:30", context)
        assert plan.title == "Schedule Sarah for Thu 2:30"

    @pytest.mark.asyncio
    async def test_ai_error_falls_through_to_cascade(self, cascade, gateway, ids, context):
        """测试 AI 抛出异常视为无结果"""
        interpreter, _ = _interpreter(cascade, gateway, ids, [RuntimeError("network down")])
        plan = await interpreter.interpret("verify coverage for Mrs Smith (AXA)", context)
        assert plan.title == "Verify coverage for Mrs Smith (AXA)"

    @pytest.mark.asyncio
    async def test_malformed_ai_response_falls_through(self, cascade, gateway, ids, context):
        """测试 AI 返回无法解析的内容时转入级联"""
        interpreter, _ = _interpreter(cascade, gateway, ids, ["I think you should book it."])
        plan = await interpreter.interpret("schedule Sarah for Thu 2:30", context)
        assert plan.title == "Schedule Sarah for Thu 2:30"

    @pytest.mark.asyncio
    async def test_ai_clarification(self, cascade, gateway, ids, context):
        """测试 AI 判断有歧义时返回待澄清计划"""
        interpreter, _ = _interpreter(cascade, gateway, ids, [
            clarification_response([
                {"id": "time", "question": "Which day?", "type": "date_picker"},
                {"id": "clinician", "question": "Which clinician?", "type": "single_choice",
                 "options": ["Dr Patel", "Dr Jones"], "required": False},
            ]),
        ])

        plan = await interpreter.interpret("book Sarah in", context)

        assert plan.needs_clarification
        assert [q.id for q in plan.clarification_questions] == ["time", "clinician"]
        assert plan.clarification_questions[0].type == QuestionType.DATE_PICKER
        assert plan.clarification_questions[1].options == ["Dr Patel", "Dr Jones"]
        assert not plan.clarification_questions[1].required

    @pytest.mark.asyncio
    async def test_generic_ai_fallback(self, cascade, gateway, ids, context):
        """测试无命中时请 AI 生成通用计划"""
        interpreter, llm = _interpreter(cascade, gateway, ids, [
            plan_response("Unclear", [], confidence=0.2),
            plan_response("Tidy the waiting room", ["Notify reception", "Log request"], confidence=0.5),
        ])

        plan = await interpreter.interpret("tidy the waiting room", context)

        assert plan.title == "Tidy the waiting room"
        assert [s.label for s in plan.steps] == ["Notify reception", "Log request"]
        assert len(llm.prompts) == 2
        assert "No predefined workflow matched" in llm.prompts[1]

    @pytest.mark.asyncio
    async def test_echo_when_generic_fallback_fails(self, cascade, gateway, ids, context):
        """测试通用计划也失败时回显命令"""
        interpreter, llm = _interpreter(cascade, gateway, ids, [RuntimeError("quota exceeded")])

        plan = await interpreter.interpret("asdkjasdkj nonsense", context)

        assert plan.title == "Execute: asdkjasdkj nonsense"
        assert len(llm.prompts) == 2
