"""
Planning Agent Loop
===================

A variant of the agent loop that splits a task into steps first.

    Task
      │
      ▼
    Ask the model for a plan (JSON)  ──unparsable──►  plain AgentLoop run
      │
      ▼
    plan_created
      │
      ▼
    for each step:
        step_started
        run turns until attempt_completion
        step_completed
      │
      ▼
    complete (last step's result)

Each step gets its own max_steps budget. A step only counts as completed
when the model calls attempt_completion for it.
"""

import json
import re

from lumina.agent.loop import AgentLoop
from lumina.agent.types import AgentEventType, AgentRole, Plan, PlanStep, TaskContext
from lumina.llm import LLMError, LLMOptions, call_llm
from lumina.utils.logger import Logger

logger = Logger("AgentLoop").child("Planner")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

PLANNING_PROMPT = """You plan work in a notes workspace. Break the user's task into a short
list of concrete steps (at most 6). Each step is done by one role:

- editor: changes existing notes
- researcher: reads and searches notes
- writer: drafts new content
- organizer: moves, renames and structures notes

Reply with JSON only, in this shape:
{"steps": [{"id": "1", "description": "...", "role": "researcher"}]}"""


def parse_plan(text: str) -> Plan | None:
    """
    Read a plan from model output.

    Accepts bare JSON or JSON wrapped in prose or a code fence. Returns None
    when no usable plan is found.
    """
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        return None

    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None

    raw_steps = data.get("steps") if isinstance(data, dict) else None
    if not isinstance(raw_steps, list):
        return None

    steps = []
    for i, raw in enumerate(raw_steps, start=1):
        if not isinstance(raw, dict):
            continue
        description = str(raw.get("description") or "").strip()
        if not description:
            continue
        try:
            role = AgentRole(str(raw.get("role", "")).lower())
        except ValueError:
            role = AgentRole.RESEARCHER
        steps.append(PlanStep(id=str(raw.get("id") or i), description=description, assigned_role=role))

    return Plan(steps=steps) if steps else None


class PlanningAgentLoop(AgentLoop):
    """
    Agent loop that plans before acting.

    Example:
        loop = PlanningAgentLoop(provider, registry, store)
        loop.subscribe(on_event)
        await loop.start_task("Reorganize my project notes", context)
        print(loop.plan.steps)
    """

    plan: Plan | None = None

    async def _run(self, task: str, context: TaskContext) -> None:
        self.plan = await self._create_plan(task)
        if self.plan is None:
            logger.info("No usable plan, running the task directly")
            await super()._run(task, context)
            return

        tool_context = await self._open_conversation(task, context)
        self._emit(AgentEventType.PLAN_CREATED, plan=self.plan)

        total = len(self.plan.steps)
        result = ""
        for index, step in enumerate(self.plan.steps):
            self._check_abort()
            self.plan.current_step = index
            self._emit(AgentEventType.STEP_STARTED, step=step, index=index)

            self._messages.append({
                "role": "user",
                "content": (
                    f"Step {index + 1} of {total} ({step.assigned_role.value}): {step.description}\n"
                    "Call attempt_completion with this step's result when it is done."
                ),
            })
            result = await self._run_until_completion(tool_context)

            step.completed = True
            step.result = result
            self._emit(AgentEventType.STEP_COMPLETED, step=step, index=index)

        self.plan.current_step = total
        self._complete(result)

    async def _create_plan(self, task: str) -> Plan | None:
        attempts = max(1, self._task_settings.max_plan_iterations)
        messages = [
            {"role": "system", "content": PLANNING_PROMPT},
            {"role": "user", "content": task},
        ]

        for attempt in range(1, attempts + 1):
            self._check_abort()
            try:
                response = await call_llm(self.provider, messages, LLMOptions(temperature=0.2))
            except LLMError as e:
                logger.warning(f"Planning request failed: {e}")
                return None

            if response.usage is not None:
                self.usage.add(response.usage)

            plan = parse_plan(response.content)
            if plan is not None:
                logger.info(f"Plan created with {len(plan.steps)} steps")
                return plan
            logger.debug(f"Plan attempt {attempt} was not valid JSON")

        return None
