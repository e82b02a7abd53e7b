"""
Lumina - Console Entry Point
============================

A minimal console host for the agent core. It:
1. Loads configuration
2. Opens the workspace and (optionally) brings the retrieval index up to date
3. Runs one task, printing streamed output and tool activity
4. Asks for approvals and answers on stdin

Run with:
    python -m lumina.main run "Summarize this week's meeting notes" --workspace ~/Notes

Or after installing:
    lumina run "..." --workspace ~/Notes
    lumina index --full
    lumina status
"""

import argparse
import asyncio
import signal
import sys
import threading
from pathlib import Path

from lumina.agent import AgentEvent, AgentEventType, AgentLoop, AgentStatus, PlanningAgentLoop, TaskContext
from lumina.llm import create_provider
from lumina.rag import IndexProgress, RAGError, RAGManager
from lumina.tools import create_default_registry
from lumina.utils.config import Config, ConfigError, get_config
from lumina.utils.logger import Logger
from lumina.workspace import NoteStore, WorkspaceError

main_logger = Logger("Main")


async def read_line(prompt: str) -> str:
    """
    Read one line from stdin without tying up the event loop.

    The blocking input() runs on a daemon thread rather than the default
    executor, so an abandoned prompt (task aborted with Ctrl+C) never keeps
    the process from exiting. End of input reads as an empty line.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def deliver(line: str) -> None:
        if not future.done():
            future.set_result(line)

    def reader() -> None:
        try:
            line = input(prompt)
        except EOFError:
            line = ""
        try:
            loop.call_soon_threadsafe(deliver, line)
        except RuntimeError:
            # Event loop already closed
            pass

    threading.Thread(target=reader, name="stdin-reader", daemon=True).start()
    return await future


class ConsoleHost:
    """
    Prints agent events and relays the user's decisions back to the loop.
    """

    def __init__(self, agent: AgentLoop):
        self.agent = agent
        self._prompt_task: asyncio.Task | None = None

    def on_event(self, event: AgentEvent) -> None:
        data = event.data

        if event.type == AgentEventType.MESSAGE_CHUNK:
            if not data.get("reasoning"):
                print(data["content"], end="", flush=True)
        elif event.type == AgentEventType.TOOL_CALL:
            call = data["tool"]
            params = ", ".join(f"{k}={v!r}" for k, v in call.params.items())
            print(f"\n\n→ {call.name}({params})", flush=True)
        elif event.type == AgentEventType.TOOL_RESULT:
            result = data["result"]
            if result.success:
                print(f"  ✓ {result.content[:300]}", flush=True)
            else:
                print(f"  ✗ {result.error}", flush=True)
        elif event.type == AgentEventType.PLAN_CREATED:
            print("\nPlan:")
            for step in data["plan"].steps:
                print(f"  {step.id}. [{step.assigned_role.value}] {step.description}")
        elif event.type == AgentEventType.STEP_STARTED:
            print(f"\n── Step {data['index'] + 1}: {data['step'].description}")
        elif event.type == AgentEventType.COMPLETE:
            print(f"\n\n✔ {data['result']}")
        elif event.type == AgentEventType.ERROR:
            print(f"\n\n✘ {data['message']}", file=sys.stderr)
        elif event.type == AgentEventType.STATUS_CHANGE:
            if data["status"] == AgentStatus.WAITING_APPROVAL:
                self._prompt_task = asyncio.create_task(self._prompt())
            elif data["status"] == AgentStatus.ABORTED:
                print("\n\nAborted.", file=sys.stderr)
            if data["status"].is_terminal and self._prompt_task is not None:
                self._prompt_task.cancel()
                self._prompt_task = None

    async def _prompt(self) -> None:
        kind = self.agent.pending_input
        if kind == "answer":
            answer = await read_line("\nYour answer: ")
            if self.agent.pending_input == "answer":
                self.agent.continue_with_answer(answer)
        elif kind == "approval":
            reply = await read_line("Allow this change? [y/N] ")
            if self.agent.pending_input != "approval":
                return
            if reply.strip().lower() in ("y", "yes"):
                self.agent.approve()
            else:
                self.agent.reject()


def _print_progress(progress: IndexProgress) -> None:
    if progress.current_file:
        main_logger.debug(f"Indexing {progress.current}/{progress.total}: {progress.current_file}")
    else:
        main_logger.info(f"Indexed {progress.total} notes")


def _open_workspace(args, config: Config) -> NoteStore:
    workspace = Path(args.workspace) if args.workspace else config.workspace
    if workspace is None:
        raise ConfigError("no workspace given (use --workspace or set LUMINA_WORKSPACE)")
    return NoteStore(workspace, data_dir_name=config.rag.data_dir_name)


async def _open_index(store: NoteStore, config: Config, full: bool = False) -> RAGManager:
    rag = RAGManager(config.rag)
    await rag.initialize(store)
    if full:
        await rag.full_index(on_progress=_print_progress)
    else:
        await rag.incremental_index(on_progress=_print_progress)
    return rag


async def _run_task(args, config: Config) -> int:
    store = _open_workspace(args, config)
    provider = create_provider(config.llm, poll_interval=config.agent.stream_poll_interval)

    rag = None
    if not args.no_index:
        try:
            rag = await _open_index(store, config)
        except RAGError as e:
            main_logger.warning(f"Semantic search unavailable: {e}")
            rag = None

    settings = config.agent
    if args.yes:
        settings = settings.with_overrides(auto_approve=True)
    if args.max_steps:
        settings = settings.with_overrides(max_steps=args.max_steps)

    loop_class = PlanningAgentLoop if args.plan else AgentLoop
    agent = loop_class(provider, create_default_registry(), store, rag=rag, settings=settings)
    host = ConsoleHost(agent)
    agent.subscribe(host.on_event)

    active_content = await store.read(args.note) if args.note else None
    context = TaskContext(
        workspace_path=str(store.root),
        active_note_path=args.note,
        active_note_content=active_content,
    )

    # Ctrl+C aborts the task instead of killing the process
    event_loop = asyncio.get_running_loop()
    event_loop.add_signal_handler(signal.SIGINT, agent.abort_task)
    try:
        status = await agent.start_task(args.task, context)
    finally:
        event_loop.remove_signal_handler(signal.SIGINT)

    usage = agent.usage
    main_logger.info(
        f"Finished with status {status.value}",
        {"prompt_tokens": usage.prompt_tokens, "completion_tokens": usage.completion_tokens},
    )
    return 0 if status == AgentStatus.COMPLETED else 1


async def _run_index(args, config: Config) -> int:
    store = _open_workspace(args, config)
    rag = await _open_index(store, config, full=args.full)
    status = rag.get_status()
    print(f"{status.total_files} notes, {status.total_chunks} chunks indexed")
    return 0


async def _run_status(args, config: Config) -> int:
    store = _open_workspace(args, config)
    rag = RAGManager(config.rag)
    await rag.initialize(store)
    status = rag.get_status()
    notes = await store.list_notes()
    print(f"Workspace: {store.root}")
    print(f"Notes:     {len(notes)}")
    print(f"Indexed:   {status.total_files} notes, {status.total_chunks} chunks")
    print(f"Model:     {config.llm.provider}/{config.llm.model}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lumina", description="Agent for a markdown notes workspace")
    parser.add_argument("--workspace", "-w", default=None, help="Notes folder (default: $LUMINA_WORKSPACE)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Run one task")
    run_parser.add_argument("task", help="What the agent should do")
    run_parser.add_argument("--note", default=None, help="Workspace-relative path of the active note")
    run_parser.add_argument("--plan", action="store_true", help="Plan steps before acting")
    run_parser.add_argument("--yes", "-y", action="store_true", help="Approve every tool call automatically")
    run_parser.add_argument("--max-steps", type=int, default=None, help="Model turns before giving up")
    run_parser.add_argument("--no-index", action="store_true", help="Skip the semantic index")

    index_parser = subparsers.add_parser("index", help="Bring the semantic index up to date")
    index_parser.add_argument("--full", action="store_true", help="Rebuild from scratch")

    subparsers.add_parser("status", help="Show workspace and index status")
    return parser


async def main(argv: list[str] | None = None) -> int:
    """
    Main async entry point.

    Returns:
        Process exit code
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    commands = {"run": _run_task, "index": _run_index, "status": _run_status}
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        config = get_config()
        return await command(args, config)
    except (ConfigError, WorkspaceError, RAGError) as e:
        main_logger.error(str(e))
        return 2


def run():
    """
    Synchronous entry point.

    This is called when running with `lumina` command.
    """
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
