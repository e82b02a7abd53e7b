"""
Context Assembly
================

Builds the two messages that open every task:

- the system message: who the agent is, how to call tools (the inline tag
  protocol the response parser understands), the catalogue of registered
  tools, and the reply language
- the task message: the user's request plus what the host knows about the
  workspace (active note, file tree, retrieval hits, resolved wiki links)

When the host did not gather retrieval hits itself and a ready RAGManager
is available, the assembler searches the index with the task text.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lumina.agent.types import RetrievedPassage, TaskContext
from lumina.rag.models import RAGError, SearchOptions
from lumina.tools.base import ASK_USER, ATTEMPT_COMPLETION, ToolExecutor
from lumina.tools.registry import ToolRegistry
from lumina.utils.logger import Logger

if TYPE_CHECKING:
    from lumina.llm import Message
    from lumina.rag import RAGManager
    from lumina.workspace import NoteStore

logger = Logger("Context")

LANGUAGE_NAMES = {
    "en": "English",
    "zh": "Simplified Chinese",
}


@dataclass
class AssembledContext:
    """
    The opening messages of a task.

    Attributes:
        system_message: Role, protocol and tool catalogue
        task_message: The request with workspace context
        rag_results: Retrieval hits that went into the task message
    """
    system_message: str
    task_message: str
    rag_results: list[RetrievedPassage] = field(default_factory=list)

    def to_messages(self) -> list["Message"]:
        return [
            {"role": "system", "content": self.system_message},
            {"role": "user", "content": self.task_message},
        ]


class ContextAssembler:
    """
    Assembles context for agent tasks.

    Example:
        assembler = ContextAssembler(registry, rag=rag, store=store)

        context = await assembler.assemble(
            "Summarize my meeting notes from this week",
            TaskContext(workspace_path="/home/me/Notes"),
        )
        messages = context.to_messages()
    """

    BASE_SYSTEM_PROMPT = """You are Lumina, an assistant that works inside the user's notes workspace.

You can read, search, create and edit markdown notes, query note databases
and ask the user questions. Work step by step: call one or more tools, read
their results, then decide the next step.

# Tool use

Call a tool by writing its name as an XML tag, with each parameter as a
nested tag:

<tool_name>
<parameter_name>value</parameter_name>
</tool_name>

Parameter values that are JSON (numbers, true/false, arrays, objects) are
read as JSON; everything else is read as text.

After each turn you receive the outcome of every call, wrapped as
<tool_result name="..."> or <tool_error name="...">. Never write those
wrappers yourself.

Rules:
- Read a note before editing it, and copy the original text exactly
- Tools marked "requires approval" run only after the user approves them
- Use {ask_user} when you need information only the user has
- When the task is done, call {attempt_completion} with the final answer
- Every reply must contain at least one tool call

# Tools

{tool_catalogue}

# Language

Reply in {language}."""

    def __init__(
        self,
        registry: ToolRegistry,
        rag: "RAGManager | None" = None,
        store: "NoteStore | None" = None,
        max_rag_results: int = 5,
        max_note_chars: int = 12000
    ):
        """
        Initialize the context assembler.

        Args:
            registry: Tools to describe to the model
            rag: Optional retrieval manager for automatic context search
            store: Optional note store used to render the file tree
            max_rag_results: Hits to include when searching automatically
            max_note_chars: Active note text beyond this is cut off
        """
        self.registry = registry
        self.rag = rag
        self.store = store
        self.max_rag_results = max_rag_results
        self.max_note_chars = max_note_chars

    async def assemble(self, task: str, context: TaskContext, locale: str = "en") -> AssembledContext:
        logger.debug(f"Assembling context for task: {task[:50]}")

        rag_results = list(context.rag_results)
        if not rag_results:
            rag_results = await self._retrieve(task)

        file_tree = context.file_tree
        if file_tree is None and self.store is not None:
            file_tree = await self.store.file_tree()

        return AssembledContext(
            system_message=self.build_system_message(locale),
            task_message=self._build_task_message(task, context, file_tree, rag_results),
            rag_results=rag_results,
        )

    async def _retrieve(self, task: str) -> list[RetrievedPassage]:
        if self.rag is None or not self.rag.is_initialized():
            return []

        try:
            results = await self.rag.search(task, SearchOptions(limit=self.max_rag_results))
        except RAGError as e:
            # Context retrieval is best effort; the agent can still search itself
            logger.warning(f"Automatic retrieval failed: {e}")
            return []

        logger.debug(f"Retrieved {len(results)} passages for context")
        return [
            RetrievedPassage(file_path=r.file_path, content=r.content, score=r.score, heading=r.heading or None)
            for r in results
        ]

    def build_system_message(self, locale: str = "en") -> str:
        return self.BASE_SYSTEM_PROMPT.format(
            ask_user=ASK_USER,
            attempt_completion=ATTEMPT_COMPLETION,
            tool_catalogue="\n\n".join(self._describe_tool(t) for t in self.registry.get_all()),
            language=LANGUAGE_NAMES.get(locale, LANGUAGE_NAMES["en"]),
        )

    @staticmethod
    def _describe_tool(tool: ToolExecutor) -> str:
        lines = [f"## {tool.name}", tool.description]
        if tool.requires_approval:
            lines.append("(requires approval)")
        if tool.parameters:
            lines.append("Parameters:")
            lines.extend(f"- {name}: {description}" for name, description in tool.parameters.items())
        lines.append("Usage:")
        lines.append(f"<{tool.name}>")
        lines.extend(f"<{name}>...</{name}>" for name in tool.parameters)
        lines.append(f"</{tool.name}>")
        return "\n".join(lines)

    def _build_task_message(
        self,
        task: str,
        context: TaskContext,
        file_tree: str | None,
        rag_results: list[RetrievedPassage]
    ) -> str:
        sections = [f"# Task\n\n{task}", f"# Workspace\n\n{context.workspace_path}"]

        if context.active_note_path:
            note = f"# Active note: {context.active_note_path}"
            if context.active_note_content is not None:
                content = context.active_note_content
                if len(content) > self.max_note_chars:
                    content = content[:self.max_note_chars] + "\n... (truncated)"
                note += f"\n\n```markdown\n{content}\n```"
            sections.append(note)

        if file_tree:
            sections.append(f"# Files\n\n{file_tree}")

        if rag_results:
            lines = ["# Related passages"]
            for r in rag_results:
                where = f"{r.file_path} > {r.heading}" if r.heading else r.file_path
                lines.append(f"## {where} (similarity {r.score:.0%})\n\n{r.content}")
            sections.append("\n\n".join(lines))

        if context.resolved_links:
            lines = ["# Linked notes"]
            for link in context.resolved_links:
                lines.append(f"## [[{link.link_name}]] → {link.file_path}\n\n{link.content}")
            sections.append("\n\n".join(lines))

        return "\n\n".join(sections)
