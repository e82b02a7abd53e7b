"""
Lumina - Agent Core for a Notes Workspace
=========================================

The orchestration core of a knowledge-base assistant: a model reads and
edits markdown notes through tools, with the user approving every change.

This package provides:
- Agent loop with streaming, approval gating, questions and abort
- Inline tool-call protocol (parser and result formatter)
- Tools for notes, search, backlinks and note databases
- RAG index for semantic search over the workspace
- A uniform interface over OpenAI-compatible model vendors
"""

__version__ = "1.0.0"
