"""
Tests for the planning loop
"""
import json

import pytest

from lumina.agent import AgentEventType, AgentRole, AgentStatus, PlanningAgentLoop, TaskContext, parse_plan
from tests.mocks import FakeProvider

COMPLETE = "<attempt_completion><result>{}</result></attempt_completion>"

PLAN = json.dumps({
    "steps": [
        {"id": "1", "description": "Find notes about alpha", "role": "researcher"},
        {"id": "2", "description": "Write a summary", "role": "writer"},
    ]
})


class TestParsePlan:
    """Reading plans out of model text"""

    def test_bare_json(self):
        plan = parse_plan(PLAN)

        assert [s.description for s in plan.steps] == ["Find notes about alpha", "Write a summary"]
        assert plan.steps[1].assigned_role == AgentRole.WRITER
        assert plan.current_step == 0
        assert not plan.is_finished

    def test_json_in_code_fence(self):
        plan = parse_plan(f"Here is the plan:\n```json\n{PLAN}\n```")
        assert len(plan.steps) == 2

    def test_unknown_role_falls_back_to_researcher(self):
        plan = parse_plan('{"steps": [{"description": "Do it", "role": "wizard"}]}')

        assert plan.steps[0].assigned_role == AgentRole.RESEARCHER
        assert plan.steps[0].id == "1"

    @pytest.mark.parametrize("text", [
        "",
        "no plan here",
        "{not json}",
        '{"steps": "many"}',
        '{"steps": []}',
        '{"steps": [{"description": ""}]}',
        "[1, 2, 3]",
    ])
    def test_unusable_text(self, text):
        assert parse_plan(text) is None


class TestPlanningAgentLoop:
    """Step-by-step execution"""

    @pytest.mark.asyncio
    async def test_runs_each_step_to_completion(self, store, registry, agent_settings):
        provider = FakeProvider([PLAN, COMPLETE.format("found alpha"), COMPLETE.format("summary written")])
        loop = PlanningAgentLoop(provider, registry, store, settings=agent_settings)
        events = []
        loop.subscribe(events.append)

        status = await loop.start_task("Summarize alpha", TaskContext(workspace_path=str(store.root)))

        assert status == AgentStatus.COMPLETED
        assert loop.final_result == "summary written"
        assert loop.plan.is_finished
        assert [s.result for s in loop.plan.steps] == ["found alpha", "summary written"]
        assert all(s.completed for s in loop.plan.steps)

        kinds = [e.type for e in events if e.type != AgentEventType.MESSAGE_CHUNK]
        assert kinds == [
            AgentEventType.STATUS_CHANGE,
            AgentEventType.PLAN_CREATED,
            AgentEventType.STEP_STARTED,
            AgentEventType.STEP_COMPLETED,
            AgentEventType.STEP_STARTED,
            AgentEventType.STEP_COMPLETED,
            AgentEventType.COMPLETE,
            AgentEventType.STATUS_CHANGE,
        ]

    @pytest.mark.asyncio
    async def test_step_instructions_reach_the_model(self, store, registry, agent_settings):
        provider = FakeProvider([PLAN, COMPLETE.format("a"), COMPLETE.format("b")])
        loop = PlanningAgentLoop(provider, registry, store, settings=agent_settings)

        await loop.start_task("Summarize alpha", TaskContext(workspace_path=str(store.root)))

        # requests[0] is the planning call
        assert "Step 1 of 2 (researcher): Find notes about alpha" in provider.requests[1][-1]["content"]
        assert "Step 2 of 2 (writer): Write a summary" in provider.requests[2][-1]["content"]

    @pytest.mark.asyncio
    async def test_falls_back_to_direct_run_without_plan(self, store, registry, agent_settings):
        provider = FakeProvider(["I would rather not plan.", COMPLETE.format("done directly")])
        loop = PlanningAgentLoop(provider, registry, store, settings=agent_settings)
        events = []
        loop.subscribe(events.append)

        status = await loop.start_task("Quick task", TaskContext(workspace_path=str(store.root)))

        assert status == AgentStatus.COMPLETED
        assert loop.plan is None
        assert loop.final_result == "done directly"
        assert not [e for e in events if e.type == AgentEventType.PLAN_CREATED]

    @pytest.mark.asyncio
    async def test_retries_planning_up_to_the_limit(self, store, registry, agent_settings):
        settings = agent_settings.with_overrides(max_plan_iterations=2)
        provider = FakeProvider(["not yet", PLAN, COMPLETE.format("a"), COMPLETE.format("b")])
        loop = PlanningAgentLoop(provider, registry, store, settings=settings)

        status = await loop.start_task("Summarize alpha", TaskContext(workspace_path=str(store.root)))

        assert status == AgentStatus.COMPLETED
        assert len(loop.plan.steps) == 2
