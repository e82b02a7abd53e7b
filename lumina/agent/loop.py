"""
Agent Loop
==========

Runs one task at a time as a small state machine:

    idle ──► running ──► completed
                │  ▲
                │  │ approve / reject / continue_with_answer
                ▼  │
         waiting_approval
                │
    (any) ──────┴──► aborted | error

One turn of the loop:

    Stream the model reply (message_chunk events)
         │
         ▼
    Parse tool calls from the text
         │
         ▼
    For each call, in order:
      attempt_completion  → complete, stop
      ask_user            → show question, wait for the answer
      gated tool          → wait for approval (unless auto_approve)
      anything else       → run it through the registry
         │
         ▼
    Feed formatted results back and take the next turn

A reply without any tool call gets a reminder instead of results. After
max_steps model turns without completion the task ends in error.

Abort cancels whatever the loop is waiting on (the model stream, a tool,
or the user) and ends the task in aborted. Partial output is dropped and
no further events are emitted after the final status change.

Hosts own one loop per session; nothing here is global.
"""

import asyncio
from typing import Callable

from lumina.agent.context import ContextAssembler
from lumina.agent.parser import (
    FormatSettings,
    format_tool_result,
    no_tool_used_message,
    parse_response,
)
from lumina.agent.types import (
    AgentEvent,
    AgentEventType,
    AgentStatus,
    TaskContext,
    ToolCall,
)
from lumina.llm import LLMError, LLMProvider, LLMUsage, Message, stream_llm
from lumina.tools.base import (
    ASK_USER,
    ATTEMPT_COMPLETION,
    DEFAULT_TOOL_NAMES,
    AwaitingUserInput,
    ToolContext,
    ToolResult,
    as_text,
)
from lumina.tools.registry import ToolRegistry
from lumina.utils.config import AgentSettings
from lumina.utils.logger import Logger

logger = Logger("AgentLoop")

EventListener = Callable[[AgentEvent], None]

_APPROVAL = "approval"
_ANSWER = "answer"


class AgentError(Exception):
    """Base class for agent loop failures."""


class AgentBusyError(AgentError):
    """A task was started while another one is still active."""


class AgentStateError(AgentError):
    """A command arrived that the current state cannot accept."""


class StepLimitExceededError(AgentError):
    """The model used up its turns without completing the task."""


class AgentLoop:
    """
    Drives one task from request to completion.

    Example:
        loop = AgentLoop(provider, create_default_registry(), store, rag=rag)
        unsubscribe = loop.subscribe(lambda event: print(event.type, event.data))

        task = asyncio.create_task(
            loop.start_task("Tidy up my inbox", TaskContext(workspace_path=str(store.root)))
        )
        ...
        loop.approve()          # when a write tool waits for approval
        status = await task     # completed, error or aborted
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        store,
        rag=None,
        settings: AgentSettings | None = None,
        assembler: ContextAssembler | None = None
    ):
        """
        Initialize the loop.

        Args:
            provider: Model to drive
            registry: Tools the model may call
            store: Note store of the workspace
            rag: Optional retrieval manager
            settings: Loop settings (defaults when omitted)
            assembler: Context assembler (built from the registry when omitted)
        """
        self.provider = provider
        self.registry = registry
        self.store = store
        self.rag = rag
        self.settings = settings or AgentSettings()
        self.assembler = assembler or ContextAssembler(registry, rag=rag, store=store)

        self.status = AgentStatus.IDLE
        self.usage = LLMUsage()
        self.final_result: str | None = None
        self.error_message: str | None = None

        self._task_settings = self.settings
        self._messages: list[Message] = []
        self._listeners: list[EventListener] = []
        self._runner: asyncio.Task | None = None
        self._pending: asyncio.Future | None = None
        self._pending_kind: str | None = None
        self._abort_requested = False

    # ==========================================================================
    # Host surface
    # ==========================================================================

    def get_status(self) -> AgentStatus:
        return self.status

    @property
    def messages(self) -> list[Message]:
        """A copy of the conversation so far."""
        return list(self._messages)

    @property
    def pending_input(self) -> str | None:
        """What the suspended loop waits for: approval, answer or None."""
        return self._pending_kind

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """
        Receive every event in emission order.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start_task(
        self,
        task: str,
        context: TaskContext,
        settings: AgentSettings | None = None
    ) -> AgentStatus:
        """
        Run a task to the end.

        Hosts that need to keep working meanwhile (to approve tools, answer
        questions or abort) schedule this with asyncio.create_task().

        Returns:
            The terminal status: completed, error or aborted

        Raises:
            AgentBusyError: If a task is already running or waiting
        """
        if self.status.is_active:
            raise AgentBusyError(f"a task is already {self.status.value}")

        self._reset(settings)
        logger.info(f"Starting task: {task[:80]}")
        self._set_status(AgentStatus.RUNNING)

        runner = asyncio.ensure_future(self._execute(task, context))
        self._runner = runner
        try:
            await asyncio.wait([runner])
        except asyncio.CancelledError:
            # The host cancelled start_task itself
            self._abort_requested = True
            runner.cancel()
            self._finish_aborted()
            raise
        finally:
            self._runner = None

        if runner.cancelled() or self._abort_requested:
            self._finish_aborted()

        logger.info(f"Task finished: {self.status.value}")
        return self.status

    def abort_task(self) -> bool:
        """
        Stop the active task.

        Returns:
            True if a task was active
        """
        if not self.status.is_active:
            return False

        logger.info("Abort requested")
        self._abort_requested = True
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
        return True

    def approve(self) -> None:
        """Let the tool waiting for approval run."""
        self._resolve(_APPROVAL, True)

    def reject(self) -> None:
        """Refuse the tool waiting for approval; the model is told it was rejected."""
        self._resolve(_APPROVAL, False)

    def continue_with_answer(self, answer: str) -> None:
        """Answer the question asked with ask_user."""
        self._resolve(_ANSWER, answer)

    def _resolve(self, kind: str, value) -> None:
        if self._pending is None or self._pending.done() or self._pending_kind != kind:
            waiting = self._pending_kind or "nothing"
            raise AgentStateError(f"cannot accept {kind}: the agent is waiting for {waiting}")
        self._pending.set_result(value)

    # ==========================================================================
    # Events and status
    # ==========================================================================

    def _emit(self, event_type: AgentEventType, **data) -> None:
        if self._abort_requested and event_type != AgentEventType.STATUS_CHANGE:
            return

        event = AgentEvent(type=event_type, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {event_type.value}", e)

    def _set_status(self, status: AgentStatus) -> None:
        if status == self.status:
            return
        logger.debug(f"Status: {self.status.value} -> {status.value}")
        self.status = status
        self._emit(AgentEventType.STATUS_CHANGE, status=status)

    def _finish_aborted(self) -> None:
        if self.status.is_terminal:
            return
        self._set_status(AgentStatus.ABORTED)

    def _complete(self, result: str) -> None:
        self.final_result = result
        self._emit(AgentEventType.COMPLETE, result=result)
        self._set_status(AgentStatus.COMPLETED)

    def _fail(self, message: str) -> None:
        self.error_message = message
        self._emit(AgentEventType.ERROR, message=message)
        self._set_status(AgentStatus.ERROR)

    def _check_abort(self) -> None:
        if self._abort_requested:
            raise asyncio.CancelledError()

    def _reset(self, settings: AgentSettings | None) -> None:
        self._task_settings = settings or self.settings
        self._messages = []
        self._abort_requested = False
        self._pending = None
        self._pending_kind = None
        self.usage = LLMUsage()
        self.final_result = None
        self.error_message = None

    # ==========================================================================
    # Task execution
    # ==========================================================================

    async def _execute(self, task: str, context: TaskContext) -> None:
        """Run the task and turn any fault into a terminal error."""
        try:
            await self._run(task, context)
        except asyncio.CancelledError:
            raise
        except StepLimitExceededError as e:
            logger.warning(str(e))
            self._fail(str(e))
        except Exception as e:
            logger.error("Task failed", e)
            self._fail(str(e) or type(e).__name__)

    async def _run(self, task: str, context: TaskContext) -> None:
        tool_context = await self._open_conversation(task, context)
        result = await self._run_until_completion(tool_context)
        self._complete(result)

    async def _open_conversation(self, task: str, context: TaskContext) -> ToolContext:
        assembled = await self.assembler.assemble(task, context, locale=self._task_settings.locale)
        self._messages = assembled.to_messages()
        return ToolContext(
            store=self.store,
            rag=self.rag,
            active_note_path=context.active_note_path,
            locale=self._task_settings.locale,
        )

    async def _run_until_completion(self, tool_context: ToolContext) -> str:
        """
        Take model turns until the completion tool is called.

        Returns:
            The completion result text

        Raises:
            StepLimitExceededError: After max_steps turns without completion
        """
        settings = self._task_settings
        format_settings = FormatSettings.for_locale(settings.locale, settings.max_tool_result_length)
        known_tools = set(DEFAULT_TOOL_NAMES) | set(self.registry.tool_names())

        for turn in range(1, settings.max_steps + 1):
            self._check_abort()
            logger.debug(f"Turn {turn}/{settings.max_steps}")

            reply = await self._stream_reply()
            self._messages.append({"role": "assistant", "content": reply})

            parsed = parse_response(reply, known_tools)
            if not parsed.tool_calls:
                self._messages.append({"role": "user", "content": no_tool_used_message(settings.locale)})
                continue

            outputs, completion = await self._handle_calls(parsed.tool_calls, tool_context, format_settings)
            if outputs:
                self._messages.append({"role": "user", "content": "\n\n".join(outputs)})
            if completion is not None:
                return completion

        raise StepLimitExceededError(
            f"step limit exceeded: no completion after {settings.max_steps} model turns"
        )

    async def _stream_reply(self) -> str:
        """Stream one model reply, relaying text as it arrives."""
        parts: list[str] = []
        async for chunk in stream_llm(self.provider, self._messages):
            if chunk.type == "text":
                if chunk.text:
                    parts.append(chunk.text)
                    self._emit(AgentEventType.MESSAGE_CHUNK, content=chunk.text, reasoning=False)
            elif chunk.type == "reasoning":
                self._emit(AgentEventType.MESSAGE_CHUNK, content=chunk.text, reasoning=True)
            elif chunk.type == "usage" and chunk.usage is not None:
                self.usage.add(chunk.usage)
            elif chunk.type == "error":
                raise LLMError(chunk.error or "model stream failed")
        return "".join(parts)

    async def _handle_calls(
        self,
        calls: list[ToolCall],
        tool_context: ToolContext,
        format_settings: FormatSettings
    ) -> tuple[list[str], str | None]:
        """
        Process the calls of one reply in order.

        Returns:
            Formatted outcomes for the model, and the completion result if
            the completion tool was called (later calls are ignored)
        """
        outputs = []
        for call in calls:
            self._check_abort()

            if call.name == ATTEMPT_COMPLETION:
                return outputs, call.raw_params.get("result", as_text(call.params.get("result")))

            if call.name == ASK_USER:
                result = await self._ask_user(call, tool_context)
            else:
                result = await self._run_tool(call, tool_context)

            outputs.append(format_tool_result(call, result, format_settings))
        return outputs, None

    async def _ask_user(self, call: ToolCall, tool_context: ToolContext) -> ToolResult:
        result = await self.registry.execute(call.name, call.params, tool_context, call.raw_params)
        self._emit(AgentEventType.TOOL_CALL, tool=call, requires_approval=False)
        self._emit(AgentEventType.TOOL_RESULT, tool=call, result=result)

        if not isinstance(result, AwaitingUserInput):
            return result

        answer = await self._suspend(_ANSWER)
        return ToolResult.ok(f"User answered: {answer}")

    async def _run_tool(self, call: ToolCall, tool_context: ToolContext) -> ToolResult:
        gated = self.registry.requires_approval(call.name) and not self._task_settings.auto_approve
        self._emit(AgentEventType.TOOL_CALL, tool=call, requires_approval=gated)

        if gated and not await self._suspend(_APPROVAL):
            logger.info(f"Tool rejected by user: {call.name}")
            result = ToolResult.fail(f"the user rejected the {call.name} call")
        else:
            result = await self.registry.execute(call.name, call.params, tool_context, call.raw_params)

        self._emit(AgentEventType.TOOL_RESULT, tool=call, result=result)
        return result

    async def _suspend(self, kind: str):
        """Wait in waiting_approval until the host resolves the request."""
        self._pending = asyncio.get_running_loop().create_future()
        self._pending_kind = kind
        self._set_status(AgentStatus.WAITING_APPROVAL)
        try:
            value = await self._pending
        finally:
            self._pending = None
            self._pending_kind = None

        self._check_abort()
        self._set_status(AgentStatus.RUNNING)
        return value
