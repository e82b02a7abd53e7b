"""
Tests for the agent loop

These tests verify:
- the status machine (idle -> running -> completed / error / aborted)
- approval, rejection and ask_user suspension
- abort while streaming and while waiting on the user
- the step ceiling and the no-tool reminder
- usage accounting and event delivery
"""
import asyncio

import pytest

from lumina.agent import (
    AgentBusyError,
    AgentEventType,
    AgentLoop,
    AgentStateError,
    AgentStatus,
    TaskContext,
)
from tests.mocks import FAKE_USAGE, HANG, FakeProvider

COMPLETE = "<attempt_completion><result>{}</result></attempt_completion>"
CREATE_NOTE = "<create_note><path>new.md</path><content>Hello there</content></create_note>"


async def wait_until(predicate, timeout=2.0):
    """Poll until predicate() holds, failing the test after timeout seconds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def make_loop(replies, store, registry, settings, streaming=True, **kwargs):
    provider = FakeProvider(replies, streaming=streaming)
    loop = AgentLoop(provider, registry, store, settings=settings, **kwargs)
    events = []
    loop.subscribe(events.append)
    return loop, provider, events


def statuses(events):
    return [e.data["status"] for e in events if e.type == AgentEventType.STATUS_CHANGE]


def context_for(store):
    return TaskContext(workspace_path=str(store.root))


class TestCompletion:
    """Happy paths"""

    @pytest.mark.asyncio
    async def test_completes_with_result(self, store, registry, agent_settings):
        loop, provider, events = make_loop([COMPLETE.format("All done")], store, registry, agent_settings)
        assert loop.get_status() == AgentStatus.IDLE

        status = await loop.start_task("Say hi", context_for(store))

        assert status == AgentStatus.COMPLETED
        assert loop.final_result == "All done"
        assert statuses(events) == [AgentStatus.RUNNING, AgentStatus.COMPLETED]
        complete = [e for e in events if e.type == AgentEventType.COMPLETE]
        assert complete[0].data["result"] == "All done"

    @pytest.mark.asyncio
    async def test_streamed_chunks_rebuild_reply(self, store, registry, agent_settings):
        reply = "Nothing to do here. " + COMPLETE.format("ok")
        loop, _, events = make_loop([reply], store, registry, agent_settings)

        await loop.start_task("Check", context_for(store))

        chunks = [e.data["content"] for e in events if e.type == AgentEventType.MESSAGE_CHUNK]
        assert len(chunks) > 1
        assert "".join(chunks) == reply

    @pytest.mark.asyncio
    async def test_opening_messages(self, store, registry, agent_settings):
        loop, provider, _ = make_loop([COMPLETE.format("ok")], store, registry, agent_settings)

        await loop.start_task("Find my coffee note", context_for(store))

        first_request = provider.requests[0]
        assert first_request[0]["role"] == "system"
        assert "## read_note" in first_request[0]["content"]
        assert first_request[1]["role"] == "user"
        assert "Find my coffee note" in first_request[1]["content"]
        assert "inbox/" in first_request[1]["content"]

    @pytest.mark.asyncio
    async def test_read_tool_runs_without_approval(self, store, registry, agent_settings):
        replies = [
            '<read_note><paths>["inbox/idea.md"]</paths></read_note>',
            COMPLETE.format("read it"),
        ]
        loop, provider, events = make_loop(replies, store, registry, agent_settings)

        status = await loop.start_task("Read the idea", context_for(store))

        assert status == AgentStatus.COMPLETED
        assert AgentStatus.WAITING_APPROVAL not in statuses(events)
        fed_back = provider.requests[1][-1]["content"]
        assert fed_back.startswith('<tool_result name="read_note"')
        assert "tomato seedlings" in fed_back

    @pytest.mark.asyncio
    async def test_usage_accumulates_per_turn(self, store, registry, agent_settings):
        replies = ["<list_notes></list_notes>", COMPLETE.format("ok")]
        loop, _, _ = make_loop(replies, store, registry, agent_settings)

        await loop.start_task("List", context_for(store))

        assert loop.usage.total_tokens == 2 * FAKE_USAGE.total_tokens
        assert loop.usage.prompt_tokens == 2 * FAKE_USAGE.prompt_tokens

    @pytest.mark.asyncio
    async def test_non_streaming_provider(self, store, registry, agent_settings):
        loop, _, events = make_loop([COMPLETE.format("ok")], store, registry, agent_settings, streaming=False)

        status = await loop.start_task("Hi", context_for(store))

        assert status == AgentStatus.COMPLETED
        chunks = [e for e in events if e.type == AgentEventType.MESSAGE_CHUNK]
        assert len(chunks) == 1
        assert loop.usage.total_tokens == FAKE_USAGE.total_tokens

    @pytest.mark.asyncio
    async def test_calls_after_completion_are_ignored(self, store, registry, agent_settings):
        reply = COMPLETE.format("done") + '<delete_note><path>inbox/idea.md</path></delete_note>'
        loop, _, events = make_loop([reply], store, registry, agent_settings)

        await loop.start_task("Finish", context_for(store))

        assert loop.final_result == "done"
        assert not [e for e in events if e.type == AgentEventType.TOOL_CALL]
        assert await store.exists("inbox/idea.md")

    @pytest.mark.asyncio
    async def test_completion_result_is_kept_as_written(self, store, registry, agent_settings):
        loop, _, _ = make_loop([COMPLETE.format(' "42" ')], store, registry, agent_settings)

        await loop.start_task("Answer", context_for(store))

        assert loop.final_result == '"42"'

    @pytest.mark.asyncio
    async def test_loop_can_run_again_after_finishing(self, store, registry, agent_settings):
        loop, _, _ = make_loop([COMPLETE.format("one"), COMPLETE.format("two")], store, registry, agent_settings)

        await loop.start_task("First", context_for(store))
        status = await loop.start_task("Second", context_for(store))

        assert status == AgentStatus.COMPLETED
        assert loop.final_result == "two"


class TestApproval:
    """Gated tools pause for the host"""

    @pytest.mark.asyncio
    async def test_approve_runs_tool(self, store, registry, agent_settings):
        loop, _, events = make_loop([CREATE_NOTE, COMPLETE.format("created")], store, registry, agent_settings)

        task = asyncio.create_task(loop.start_task("Create a note", context_for(store)))
        await wait_until(lambda: loop.pending_input == "approval")

        assert loop.get_status() == AgentStatus.WAITING_APPROVAL
        call_event = [e for e in events if e.type == AgentEventType.TOOL_CALL][0]
        assert call_event.data["tool"].name == "create_note"
        assert call_event.data["requires_approval"] is True
        assert not await store.exists("new.md")

        loop.approve()
        status = await task

        assert status == AgentStatus.COMPLETED
        assert await store.read("new.md") == "Hello there"
        assert statuses(events) == [
            AgentStatus.RUNNING,
            AgentStatus.WAITING_APPROVAL,
            AgentStatus.RUNNING,
            AgentStatus.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_reject_tells_model(self, store, registry, agent_settings):
        loop, provider, events = make_loop([CREATE_NOTE, COMPLETE.format("gave up")], store, registry, agent_settings)

        task = asyncio.create_task(loop.start_task("Create a note", context_for(store)))
        await wait_until(lambda: loop.pending_input == "approval")
        loop.reject()
        status = await task

        assert status == AgentStatus.COMPLETED
        assert not await store.exists("new.md")
        fed_back = provider.requests[1][-1]["content"]
        assert fed_back.startswith('<tool_error name="create_note"')
        assert "the user rejected the create_note call" in fed_back
        result_event = [e for e in events if e.type == AgentEventType.TOOL_RESULT][0]
        assert result_event.data["result"].success is False

    @pytest.mark.asyncio
    async def test_auto_approve_skips_pause(self, store, registry, agent_settings):
        settings = agent_settings.with_overrides(auto_approve=True)
        loop, _, events = make_loop([CREATE_NOTE, COMPLETE.format("ok")], store, registry, settings)

        status = await loop.start_task("Create a note", context_for(store))

        assert status == AgentStatus.COMPLETED
        assert AgentStatus.WAITING_APPROVAL not in statuses(events)
        assert await store.exists("new.md")

    @pytest.mark.asyncio
    async def test_per_task_settings_override_loop_settings(self, store, registry, agent_settings):
        loop, _, _ = make_loop([CREATE_NOTE, COMPLETE.format("ok")], store, registry, agent_settings)

        status = await loop.start_task(
            "Create a note", context_for(store), settings=agent_settings.with_overrides(auto_approve=True)
        )
        assert status == AgentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_commands_that_do_not_match_the_wait_raise(self, store, registry, agent_settings):
        loop, _, _ = make_loop([CREATE_NOTE, COMPLETE.format("ok")], store, registry, agent_settings)

        with pytest.raises(AgentStateError):
            loop.approve()

        task = asyncio.create_task(loop.start_task("Create a note", context_for(store)))
        await wait_until(lambda: loop.pending_input == "approval")

        with pytest.raises(AgentStateError):
            loop.continue_with_answer("inbox")

        loop.approve()
        await task


class TestAskUser:
    """Questions suspend until answered"""

    @pytest.mark.asyncio
    async def test_answer_resumes_loop(self, store, registry, agent_settings):
        replies = [
            '<ask_user><question>Which folder?</question><options>["inbox", "daily"]</options></ask_user>',
            COMPLETE.format("used inbox"),
        ]
        loop, provider, events = make_loop(replies, store, registry, agent_settings)

        task = asyncio.create_task(loop.start_task("File this", context_for(store)))
        await wait_until(lambda: loop.pending_input == "answer")

        assert loop.get_status() == AgentStatus.WAITING_APPROVAL
        result_event = [e for e in events if e.type == AgentEventType.TOOL_RESULT][0]
        assert result_event.data["result"].question == "Which folder?"

        with pytest.raises(AgentStateError):
            loop.approve()

        loop.continue_with_answer("inbox")
        status = await task

        assert status == AgentStatus.COMPLETED
        assert "User answered: inbox" in provider.requests[1][-1]["content"]


class TestAbort:
    """Abort ends the task without further events"""

    @pytest.mark.asyncio
    async def test_abort_while_streaming(self, store, registry, agent_settings):
        loop, _, events = make_loop([HANG], store, registry, agent_settings)

        task = asyncio.create_task(loop.start_task("Think forever", context_for(store)))
        await wait_until(lambda: any(e.type == AgentEventType.MESSAGE_CHUNK for e in events))

        assert loop.abort_task() is True
        status = await task

        assert status == AgentStatus.ABORTED
        assert events[-1].type == AgentEventType.STATUS_CHANGE
        assert events[-1].data["status"] == AgentStatus.ABORTED
        assert loop.final_result is None

    @pytest.mark.asyncio
    async def test_abort_while_waiting_for_approval(self, store, registry, agent_settings):
        loop, _, events = make_loop([CREATE_NOTE, COMPLETE.format("ok")], store, registry, agent_settings)

        task = asyncio.create_task(loop.start_task("Create a note", context_for(store)))
        await wait_until(lambda: loop.pending_input == "approval")

        loop.abort_task()
        status = await task

        assert status == AgentStatus.ABORTED
        assert loop.pending_input is None
        assert not await store.exists("new.md")
        assert statuses(events)[-1] == AgentStatus.ABORTED

        with pytest.raises(AgentStateError):
            loop.approve()

    @pytest.mark.asyncio
    async def test_abort_while_waiting_for_answer(self, store, registry, agent_settings):
        replies = [
            "<ask_user><question>Which folder?</question></ask_user>",
            CREATE_NOTE,
        ]
        loop, provider, events = make_loop(replies, store, registry, agent_settings)

        task = asyncio.create_task(loop.start_task("File this", context_for(store)))
        await wait_until(lambda: loop.pending_input == "answer")
        seen = len(events)

        assert loop.abort_task() is True
        status = await task

        assert status == AgentStatus.ABORTED
        assert loop.pending_input is None
        assert len(provider.requests) == 1
        after = events[seen:]
        assert [e.type for e in after] == [AgentEventType.STATUS_CHANGE]
        assert after[0].data["status"] == AgentStatus.ABORTED

        with pytest.raises(AgentStateError):
            loop.continue_with_answer("inbox")

    @pytest.mark.asyncio
    async def test_abort_when_idle_is_a_no_op(self, store, registry, agent_settings):
        loop, _, events = make_loop([], store, registry, agent_settings)

        assert loop.abort_task() is False
        assert loop.get_status() == AgentStatus.IDLE
        assert events == []

    @pytest.mark.asyncio
    async def test_busy_loop_refuses_second_task(self, store, registry, agent_settings):
        loop, _, _ = make_loop([HANG], store, registry, agent_settings)

        task = asyncio.create_task(loop.start_task("First", context_for(store)))
        await wait_until(lambda: loop.get_status() == AgentStatus.RUNNING)

        with pytest.raises(AgentBusyError):
            await loop.start_task("Second", context_for(store))

        loop.abort_task()
        assert await task == AgentStatus.ABORTED


class TestFailures:
    """Faults end the task in error"""

    @pytest.mark.asyncio
    async def test_reply_without_tool_gets_reminder(self, store, registry, agent_settings):
        loop, provider, _ = make_loop(["Just chatting.", COMPLETE.format("ok")], store, registry, agent_settings)

        status = await loop.start_task("Hi", context_for(store))

        assert status == AgentStatus.COMPLETED
        reminder = provider.requests[1][-1]
        assert reminder["role"] == "user"
        assert "did not use any tool" in reminder["content"]

    @pytest.mark.asyncio
    async def test_step_limit(self, store, registry, agent_settings):
        settings = agent_settings.with_overrides(max_steps=2)
        loop, provider, events = make_loop(["one", "two", COMPLETE.format("late")], store, registry, settings)

        status = await loop.start_task("Loop", context_for(store))

        assert status == AgentStatus.ERROR
        assert "step limit exceeded" in loop.error_message
        assert len(provider.requests) == 2
        errors = [e for e in events if e.type == AgentEventType.ERROR]
        assert errors[0].data["message"] == loop.error_message
        assert statuses(events)[-1] == AgentStatus.ERROR

    @pytest.mark.asyncio
    async def test_provider_failure(self, store, registry, agent_settings):
        loop, _, _ = make_loop([], store, registry, agent_settings)

        status = await loop.start_task("Hi", context_for(store))

        assert status == AgentStatus.ERROR
        assert "no scripted reply left" in loop.error_message

    @pytest.mark.asyncio
    async def test_unknown_tool_result_is_fed_back(self, store, registry, agent_settings):
        registry._tools.pop("get_backlinks")
        # Unregistered names are gated like any write tool
        settings = agent_settings.with_overrides(auto_approve=True)
        replies = ["<get_backlinks><note_name>alpha</note_name></get_backlinks>", COMPLETE.format("ok")]
        loop, provider, _ = make_loop(replies, store, registry, settings)

        status = await loop.start_task("Links", context_for(store))

        assert status == AgentStatus.COMPLETED
        assert "unknown tool: get_backlinks" in provider.requests[1][-1]["content"]


class TestSubscribers:
    """Event listeners"""

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, store, registry, agent_settings):
        loop, _, _ = make_loop([COMPLETE.format("ok")], store, registry, agent_settings)
        received = []
        unsubscribe = loop.subscribe(received.append)
        unsubscribe()

        await loop.start_task("Hi", context_for(store))

        assert received == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_task(self, store, registry, agent_settings):
        loop, _, events = make_loop([COMPLETE.format("ok")], store, registry, agent_settings)

        def broken(event):
            raise RuntimeError("listener bug")

        loop.subscribe(broken)
        status = await loop.start_task("Hi", context_for(store))

        assert status == AgentStatus.COMPLETED
        assert statuses(events)[-1] == AgentStatus.COMPLETED
