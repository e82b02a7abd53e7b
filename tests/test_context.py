"""
Tests for context assembly
"""
import pytest

from lumina.agent import ContextAssembler, ResolvedLink, RetrievedPassage, TaskContext
from lumina.rag.models import RAGError


class FailingRAG:
    def is_initialized(self):
        return True

    async def search(self, query, options=None):
        raise RAGError("embedding service unreachable")


class TestContextAssembler:
    """Opening messages"""

    def test_system_message_lists_tools_and_language(self, registry):
        message = ContextAssembler(registry).build_system_message("zh")

        assert "## create_note" in message
        assert "(requires approval)" in message
        assert "<read_note>\n<paths>...</paths>\n</read_note>" in message
        assert "Reply in Simplified Chinese." in message

    def test_unknown_locale_uses_english(self, registry):
        assert "Reply in English." in ContextAssembler(registry).build_system_message("fr")

    @pytest.mark.asyncio
    async def test_task_message_sections(self, registry, store):
        assembler = ContextAssembler(registry, store=store, max_note_chars=10)
        context = TaskContext(
            workspace_path=str(store.root),
            active_note_path="inbox/idea.md",
            active_note_content="0123456789abcdef",
            rag_results=[RetrievedPassage("projects/alpha.md", "quantum things", 0.82, heading="Alpha")],
            resolved_links=[ResolvedLink("Alpha", "projects/alpha.md", "Alpha body")],
        )

        assembled = await assembler.assemble("Tidy the idea", context)
        text = assembled.task_message

        assert text.startswith("# Task\n\nTidy the idea")
        assert "# Active note: inbox/idea.md" in text
        assert "0123456789\n... (truncated)" in text
        assert "abcdef" not in text
        assert "# Files" in text
        assert "projects/alpha.md > Alpha (similarity 82%)" in text
        assert "## [[Alpha]] → projects/alpha.md" in text

        messages = assembled.to_messages()
        assert [m["role"] for m in messages] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_searches_index_when_host_gave_no_hits(self, registry, store, rag):
        await rag.initialize(store)
        await rag.full_index()
        assembler = ContextAssembler(registry, rag=rag, store=store)

        assembled = await assembler.assemble(
            "quantum entanglement photon", TaskContext(workspace_path=str(store.root))
        )

        assert assembled.rag_results
        assert assembled.rag_results[0].file_path == "projects/alpha.md"
        assert "# Related passages" in assembled.task_message

    @pytest.mark.asyncio
    async def test_retrieval_failure_is_not_fatal(self, registry, store):
        assembler = ContextAssembler(registry, rag=FailingRAG(), store=store)

        assembled = await assembler.assemble("anything", TaskContext(workspace_path=str(store.root)))

        assert assembled.rag_results == []
        assert "# Related passages" not in assembled.task_message
