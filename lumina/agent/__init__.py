"""
Agent System
============

The agent turns a user's request into a sequence of model turns and tool
calls inside the notes workspace.

This module provides:
- AgentLoop: the task state machine (streaming, approvals, abort)
- PlanningAgentLoop: the same loop with an upfront step plan
- ContextAssembler: builds the opening system and task messages
- parse_response / format_tool_result: the inline tool-call protocol
"""

from lumina.agent.context import AssembledContext, ContextAssembler
from lumina.agent.loop import (
    AgentBusyError,
    AgentError,
    AgentLoop,
    AgentStateError,
    StepLimitExceededError,
)
from lumina.agent.parser import (
    FormatSettings,
    ParsedResponse,
    format_tool_result,
    no_tool_used_message,
    parse_response,
)
from lumina.agent.planner import PlanningAgentLoop, parse_plan
from lumina.agent.types import (
    AgentEvent,
    AgentEventType,
    AgentRole,
    AgentStatus,
    Plan,
    PlanStep,
    ResolvedLink,
    RetrievedPassage,
    TaskContext,
    ToolCall,
)

__all__ = [
    "AgentBusyError",
    "AgentError",
    "AgentEvent",
    "AgentEventType",
    "AgentLoop",
    "AgentRole",
    "AgentStateError",
    "AgentStatus",
    "AssembledContext",
    "ContextAssembler",
    "FormatSettings",
    "ParsedResponse",
    "Plan",
    "PlanStep",
    "PlanningAgentLoop",
    "ResolvedLink",
    "RetrievedPassage",
    "StepLimitExceededError",
    "TaskContext",
    "ToolCall",
    "format_tool_result",
    "no_tool_used_message",
    "parse_plan",
    "parse_response",
]
