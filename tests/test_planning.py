"""Tests for plans, reflections and the plan / execute / reflect loop of PlanningAgent."""

import json
import unittest

import pytest

from agentflow.context import AgentContext
from agentflow.exceptions import PlanExecutionError, PlanValidationError, ReflectionScoreError, ValidationError
from agentflow.llm.types import CompletionProvider, CompletionRequest, CompletionResponse
from agentflow.planning import Plan, PlanningAgent, PlanningResponse, PlanStep, Reflection, extract_json


class ScriptedProvider(CompletionProvider):
    def __init__(self, *contents: str):
        self.contents = list(contents)
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if not self.contents:
            raise AssertionError("No scripted response left")
        return CompletionResponse(content=self.contents.pop(0))


def plan_json(*steps: dict, goal: str = "Answer the question") -> str:
    return json.dumps({'goal': goal, 'steps': list(steps), 'success_criteria': ["Accurate"]})


def reflection_json(satisfactory: bool, score: float, **extra) -> str:
    return json.dumps({'satisfactory': satisfactory, 'score': score, **extra})


# ---------------------------------------------------------------------------
# Plan and PlanStep
# ---------------------------------------------------------------------------

class TestPlan:
    def test_executable_steps_follow_dependencies(self):
        plan = Plan("goal", (
            PlanStep(1, "research"),
            PlanStep(2, "outline", dependencies=(1,)),
            PlanStep(3, "draft", dependencies=(1, 2)),
            PlanStep(4, "images"),
        ))

        assert [s.id for s in plan.executable_steps()] == [1, 4]

        plan.get_step(1).mark_completed("notes")
        assert [s.id for s in plan.executable_steps()] == [2, 4]
        assert plan.get_step(3).are_dependencies_satisfied([1]) is False
        assert plan.get_step(3).has_dependencies()
        assert not plan.is_completed()

    def test_empty_plan_is_complete(self):
        plan = Plan("nothing to do")

        assert plan.is_completed()
        assert plan.executable_steps() == []

    def test_validation(self):
        with pytest.raises(PlanValidationError):
            Plan("goal", (PlanStep(1, "a"), PlanStep(1, "b")))
        with pytest.raises(PlanValidationError):
            Plan("goal", (PlanStep(1, "a", dependencies=(7,)),))
        with pytest.raises(PlanValidationError):
            Plan.from_dict({'goal': "g", 'steps': [{'action': "no id"}]})
        with pytest.raises(PlanValidationError):
            Plan.from_json("[1, 2]")
        with pytest.raises(json.JSONDecodeError):
            Plan.from_json("not json")

    def test_round_trip_keeps_progress(self):
        plan = Plan("goal", (PlanStep(1, "a", tools=("search",)), PlanStep(2, "b", dependencies=(1,))), ("done",))
        plan.get_step(1).mark_completed("found it")

        restored = Plan.from_json(plan.to_json())

        assert restored == plan
        assert restored.get_step(1).completed
        assert restored.get_step(1).result == "found it"
        assert restored.get_step(2).result is None
        assert restored.to_dict()['steps'][0]['tools'] == ["search"]

    def test_progress_does_not_affect_equality(self):
        first, second = PlanStep(1, "a"), PlanStep(1, "a")
        first.mark_completed("x")

        assert first == second
        assert first.completed and not second.completed


# ---------------------------------------------------------------------------
# Reflection
# ---------------------------------------------------------------------------

class TestReflection:
    def test_score_bounds(self):
        assert Reflection(True, 0.0).score == 0.0
        assert Reflection(True, 1.0).score == 1.0
        with pytest.raises(ReflectionScoreError):
            Reflection(True, 1.5)
        with pytest.raises(ReflectionScoreError):
            Reflection(True, -0.1)

    def test_satisfactory_alone_decides(self):
        assert Reflection(True, 0.1).requires_improvement() is False
        assert Reflection(False, 0.99).requires_improvement() is True

    def test_from_json_defaults_on_garbage(self):
        reflection = Reflection.from_json("I think it went well")

        assert reflection.satisfactory is False
        assert reflection.score == 0.0

    def test_feedback_and_summary(self):
        reflection = Reflection(False, 0.4, weaknesses=["too short"], suggestions=["add detail", "cite"])

        assert reflection.feedback() == "Weaknesses: too short\nSuggestions: add detail, cite"
        assert Reflection(True, 1.0).summary() == ""
        assert Reflection.from_json(reflection.to_json()) == reflection


class TestPlanningResponse:
    def test_accessors(self):
        plan = Plan("goal", (PlanStep(1, "a"), PlanStep(2, "b")))
        plan.get_step(1).mark_completed("one")
        response = PlanningResponse("final", plan, Reflection(True, 0.9, strengths=["clear"]), 2, True, "task")

        assert response.is_success()
        assert response.score == 0.9
        assert response.goal == "goal"
        assert response.step_results() == {1: "one"}
        assert response.strengths() == ("clear",)
        assert response.metadata()['completed_steps'] == 1
        assert str(response) == "final"
        assert json.loads(response.to_json())['plan']['goal'] == "goal"

    def test_empty_response(self):
        response = PlanningResponse("nothing", None, None, 1, False)

        assert response.is_failed()
        assert response.score is None
        assert response.steps == ()
        assert response.weaknesses() == ()


def test_extract_json():
    assert extract_json('Here you go: {"a": {"b": 1}} hope it helps') == '{"a": {"b": 1}}'
    assert extract_json("no braces") == "no braces"
    assert extract_json(None) == ""


# ---------------------------------------------------------------------------
# PlanningAgent
# ---------------------------------------------------------------------------

class TestPlanningAgent(unittest.IsolatedAsyncioTestCase):

    async def test_single_attempt_success(self):
        provider = ScriptedProvider(
            "```json\n" + plan_json({'id': 1, 'action': "Look up the capital"}) + "\n```",
            "Paris is the capital.",
            "The capital of France is Paris.",
            reflection_json(True, 0.9, strengths=["correct"]),
        )
        agent = PlanningAgent(provider)
        context = AgentContext("plan-session")

        result = await agent.run("What is the capital of France?", context)

        self.assertEqual(result, "The capital of France is Paris.")
        self.assertEqual(len(provider.requests), 4)
        self.assertTrue(provider.requests[0].json_format)
        self.assertEqual(context.get_state('step_1_result'), "Paris is the capital.")
        self.assertEqual(context.get_state('current_plan')['goal'], "Answer the question")
        self.assertTrue(context.get_state('planning_response')['success'])
        self.assertEqual(
            [m.role for m in context.get_conversation_history()],
            ['user', 'assistant'],
        )

    async def test_steps_run_in_dependency_order_with_previous_results(self):
        provider = ScriptedProvider(
            plan_json(
                {'id': 2, 'action': "Summarize", 'dependencies': [1]},
                {'id': 1, 'action': "Research", 'tools': ["search"]},
            ),
            "research notes",
            "summary",
            "final",
            reflection_json(True, 1.0),
        )
        agent = PlanningAgent(provider)

        response = await agent.plan("Write a brief", AgentContext("s"))

        step_one, step_two = provider.requests[1], provider.requests[2]
        self.assertIn("## Step to Execute\nResearch", step_one.messages[-1]['content'])
        self.assertIn("Available tools for this step: search", step_one.messages[-1]['content'])
        self.assertIn("- Step 1: research notes", step_two.messages[-1]['content'])
        self.assertIn("Overall goal: Answer the question", step_two.messages[0]['content'])
        self.assertEqual(response.step_results(), {1: "research notes", 2: "summary"})
        self.assertEqual(response.attempts, 1)

    async def test_unsatisfactory_reflection_triggers_replan(self):
        provider = ScriptedProvider(
            plan_json({'id': 1, 'action': "Guess"}),
            "maybe Lyon",
            "Lyon",
            reflection_json(False, 0.2, weaknesses=["wrong city"], suggestions=["check sources"]),
            plan_json({'id': 1, 'action': "Check an atlas"}),
            "Paris",
            "Paris",
            reflection_json(True, 0.95),
        )
        agent = PlanningAgent(provider)

        response = await agent.plan("Capital of France?", AgentContext("s"))

        self.assertTrue(response.success)
        self.assertEqual(response.attempts, 2)
        self.assertEqual(response.result, "Paris")
        replan_prompt = provider.requests[4].messages[0]['content']
        self.assertIn("Weaknesses: wrong city", replan_prompt)
        self.assertIn("Suggestions: check sources", replan_prompt)
        self.assertIn("Lyon", replan_prompt)

    async def test_gives_up_after_max_attempts(self):
        provider = ScriptedProvider(
            plan_json({'id': 1, 'action': "Try"}), "attempt one", "result one", reflection_json(False, 0.3),
            plan_json({'id': 1, 'action': "Try again"}), "attempt two", "result two", reflection_json(False, 0.5),
        )
        agent = PlanningAgent(provider, max_replan_attempts=2)

        response = await agent.plan("Hard task", AgentContext("s"))

        self.assertFalse(response.success)
        self.assertEqual(response.attempts, 2)
        self.assertEqual(response.result, "result two")
        self.assertEqual(response.score, 0.5)

    async def test_non_json_plan_falls_back_to_single_step(self):
        provider = ScriptedProvider(
            "Sure, I will just do it.",
            "did it",
            "done",
            reflection_json(True, 0.8),
        )
        agent = PlanningAgent(provider)

        response = await agent.plan("Do the thing", AgentContext("s"))

        self.assertEqual(response.goal, "Do the thing")
        self.assertEqual([s.action for s in response.steps], ["Do the thing"])
        self.assertTrue(response.success)

    async def test_invalid_plan_is_fed_back_as_feedback(self):
        provider = ScriptedProvider(
            plan_json({'id': 1, 'action': "Depends on nothing real", 'dependencies': [9]}),
            plan_json({'id': 1, 'action': "Valid"}),
            "ok",
            "ok",
            reflection_json(True, 0.9),
        )
        agent = PlanningAgent(provider)

        response = await agent.plan("Task", AgentContext("s"))

        self.assertTrue(response.success)
        self.assertEqual(response.attempts, 2)
        self.assertIn("Invalid plan", provider.requests[1].messages[0]['content'])

    async def test_invalid_reflection_score_counts_as_unsatisfactory(self):
        provider = ScriptedProvider(
            plan_json({'id': 1, 'action': "Go"}), "went", "went", reflection_json(True, 7),
        )
        agent = PlanningAgent(provider, max_replan_attempts=1)

        response = await agent.plan("Task", AgentContext("s"))

        self.assertFalse(response.success)
        self.assertEqual(response.score, 0.0)
        self.assertTrue(response.weaknesses()[0].startswith("Invalid evaluation"))

    async def test_empty_plan_synthesizes_directly(self):
        provider = ScriptedProvider(plan_json(), "nothing needed", reflection_json(True, 1.0))
        agent = PlanningAgent(provider)

        response = await agent.plan("Task", AgentContext("s"))

        self.assertEqual(response.result, "nothing needed")
        self.assertEqual(len(provider.requests), 3)

    async def test_unsatisfiable_dependencies(self):
        agent = PlanningAgent(ScriptedProvider())
        plan = Plan("goal", (PlanStep(1, "a", dependencies=(2,)), PlanStep(2, "b", dependencies=(1,))))

        with self.assertRaises(PlanExecutionError) as cm:
            await agent.execute_plan(plan, AgentContext("s"))

        self.assertEqual(cm.exception.failed_step.id, 1)

    def test_satisfaction_threshold_bounds(self):
        agent = PlanningAgent(ScriptedProvider(), satisfaction_threshold=0.5)

        self.assertEqual(agent.satisfaction_threshold, 0.5)
        with self.assertRaises(ValidationError):
            agent.satisfaction_threshold = 1.2
