"""
Agent Types
===========

Data shared between the parser, the loop and the host:

- ToolCall: one tool invocation extracted from model text
- AgentStatus / AgentEventType / AgentEvent: the loop's state and its
  outbound notifications
- Plan / PlanStep: optional task decomposition used by the planning loop
- TaskContext: what the host knows about the user's workspace when a task
  starts
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union

# A parameter value, classified once by the parser
ParamValue = Union[str, int, float, bool, None, list, dict]


@dataclass(frozen=True)
class ToolCall:
    """
    A tool invocation parsed from model output.

    Attributes:
        id: Unique id for matching events and results
        name: The tool name
        params: Parameter values keyed by parameter name (read-only)
        raw: The exact source text the call was parsed from
        raw_params: Trimmed source text of each parameter, before JSON
            coercion (read-only)
    """
    id: str
    name: str
    params: Mapping[str, ParamValue]
    raw: str
    raw_params: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("params", "raw_params"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "params": dict(self.params)}


class AgentStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"
    ERROR = "error"
    ABORTED = "aborted"

    @property
    def is_active(self) -> bool:
        return self in (AgentStatus.RUNNING, AgentStatus.WAITING_APPROVAL)

    @property
    def is_terminal(self) -> bool:
        return self in (AgentStatus.COMPLETED, AgentStatus.ERROR, AgentStatus.ABORTED)


class AgentEventType(str, Enum):
    STATUS_CHANGE = "status_change"
    MESSAGE_CHUNK = "message_chunk"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    PLAN_CREATED = "plan_created"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class AgentEvent:
    """
    A notification from the loop to the host.

    Payloads by type:
        status_change   {"status": AgentStatus}
        message_chunk   {"content": str, "reasoning": bool}
        tool_call       {"tool": ToolCall, "requires_approval": bool}
        tool_result     {"tool": ToolCall, "result": ToolResult}
        plan_created    {"plan": Plan}
        step_started    {"step": PlanStep, "index": int}
        step_completed  {"step": PlanStep, "index": int}
        complete        {"result": str}
        error           {"message": str}
    """
    type: AgentEventType
    data: dict[str, Any] = field(default_factory=dict)


class AgentRole(str, Enum):
    """Roles a plan step can be assigned to."""
    EDITOR = "editor"
    RESEARCHER = "researcher"
    WRITER = "writer"
    ORGANIZER = "organizer"


@dataclass
class PlanStep:
    id: str
    description: str
    assigned_role: AgentRole = AgentRole.RESEARCHER
    completed: bool = False
    result: str | None = None


@dataclass
class Plan:
    steps: list[PlanStep]
    current_step: int = 0

    @property
    def is_finished(self) -> bool:
        return self.current_step >= len(self.steps)


@dataclass(frozen=True)
class RetrievedPassage:
    """A retrieval hit handed to the loop as task context."""
    file_path: str
    content: str
    score: float
    heading: str | None = None


@dataclass(frozen=True)
class ResolvedLink:
    """A [[wiki link]] in the active note, resolved to its target note."""
    link_name: str
    file_path: str
    content: str


@dataclass
class TaskContext:
    """
    Workspace state supplied by the host when a task starts.

    Attributes:
        workspace_path: Root of the notes workspace
        active_note_path: The note currently open in the editor, if any
        active_note_content: Its text
        file_tree: Pre-rendered outline of the workspace (rendered on demand
            from the note store when omitted)
        rag_results: Retrieval hits the host already gathered
        resolved_links: Wiki links in the active note with their contents
    """
    workspace_path: str
    active_note_path: str | None = None
    active_note_content: str | None = None
    file_tree: str | None = None
    rag_results: list[RetrievedPassage] = field(default_factory=list)
    resolved_links: list[ResolvedLink] = field(default_factory=list)
