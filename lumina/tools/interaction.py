"""
Interaction Tools
=================

ask_user and attempt_completion do not touch the workspace; they steer
the loop.

- ask_user returns AwaitingUserInput. The loop shows the question,
  suspends, and resumes once the host supplies an answer.
- attempt_completion carries the final answer. The loop ends the task
  when it sees this call; executing it directly just echoes the result.
"""

from lumina.tools.base import (
    ASK_USER,
    ATTEMPT_COMPLETION,
    AwaitingUserInput,
    InvalidParams,
    ToolExecutor,
    ToolResult,
    require_str,
)


class AskUserTool(ToolExecutor):
    name = ASK_USER
    # Gated so the loop always pauses here, even with auto approval
    requires_approval = True
    text_parameters = frozenset({"question"})
    description = "Ask the user a question and wait for the answer."
    parameters = {
        "question": "The question to ask",
        "options": "Optional JSON array of suggested answers",
    }

    async def execute(self, params, context):
        question = require_str(params, "question")
        options = params.get("options") or []
        if isinstance(options, str):
            options = [options]
        if not isinstance(options, list):
            raise InvalidParams("invalid parameter: options must be a JSON array")
        options = tuple(str(o) for o in options)

        display = f"**Question**: {question}"
        if options:
            display += "\n\n**Options**:\n" + "\n".join(
                f"{i}. {option}" for i, option in enumerate(options, start=1)
            )

        return AwaitingUserInput(success=True, content=display, question=question, options=options)


class AttemptCompletionTool(ToolExecutor):
    name = ATTEMPT_COMPLETION
    requires_approval = False
    text_parameters = frozenset({"result"})
    description = "Finish the task and present the final result to the user."
    parameters = {"result": "Summary of what was done, or the answer"}

    async def execute(self, params, context):
        result = params.get("result")
        return ToolResult.ok("" if result is None else str(result))
