"""
Pytest Configuration and Shared Fixtures

Provides a small notes workspace on disk plus fakes for the model
provider and embedder, so no test needs network access or API keys.
"""
import os

import pytest

# Keep test output quiet unless a test raises the level itself
os.environ.setdefault("LOG_LEVEL", "ERROR")

from lumina.rag import RAGManager  # noqa: E402
from lumina.tools import ToolContext, create_default_registry  # noqa: E402
from lumina.utils.config import AgentSettings, RAGConfig  # noqa: E402
from lumina.workspace import NoteStore  # noqa: E402
from tests.mocks import FakeEmbedder  # noqa: E402

NOTES = {
    "inbox/idea.md": (
        "# Idea\n"
        "\n"
        "Build a garden planner that tracks tomato seedlings.\n"
        "Related: [[Alpha]]\n"
    ),
    "projects/alpha.md": (
        "---\n"
        "tags: [project]\n"
        "---\n"
        "# Alpha\n"
        "\n"
        "Project alpha studies quantum entanglement in photon pairs.\n"
        "\n"
        "## Status\n"
        "\n"
        "Waiting on lab results.\n"
    ),
    "daily/2024-01-01.md": (
        "# Monday\n"
        "\n"
        "Met with Dana about [[projects/alpha|the alpha project]].\n"
        "Remember to buy coffee beans.\n"
    ),
}


# ==================== Workspace Fixtures ====================

@pytest.fixture
def workspace(tmp_path):
    """A workspace directory with a few notes"""
    for path, content in NOTES.items():
        target = tmp_path / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return tmp_path


@pytest.fixture
def store(workspace):
    """Note store over the sample workspace"""
    return NoteStore(workspace)


@pytest.fixture
def tool_context(store):
    """Tool context without retrieval"""
    return ToolContext(store=store)


@pytest.fixture
def registry():
    """Registry with every built-in tool"""
    return create_default_registry()


# ==================== Retrieval Fixtures ====================

@pytest.fixture
def rag_config():
    """Retrieval settings with no score floor and small fragments allowed"""
    return RAGConfig(min_score=0.0, min_chunk_size=5, chunk_size=400)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def rag(rag_config, fake_embedder):
    """Retrieval manager wired to the fake embedder (not yet initialized)"""
    return RAGManager(rag_config, embedder=fake_embedder)


# ==================== Agent Fixtures ====================

@pytest.fixture
def agent_settings():
    return AgentSettings(max_steps=5, stream_poll_interval=0.01)
