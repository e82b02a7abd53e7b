"""
Tests for the workspace note store
"""
import pytest

from lumina.workspace import NoteStore, WorkspaceError


class TestNoteStore:
    """Path handling and primitives"""

    def test_missing_root(self, tmp_path):
        with pytest.raises(WorkspaceError):
            NoteStore(tmp_path / "nowhere")

    def test_resolve_normalizes_and_confines(self, store, workspace):
        assert store.resolve("inbox/../inbox/idea.md") == (workspace / "inbox" / "idea.md").resolve()
        assert store.resolve(str(workspace / "inbox" / "idea.md")) == (workspace / "inbox" / "idea.md").resolve()

        for bad in ("../escape.md", "/etc/passwd", "", "   "):
            with pytest.raises(WorkspaceError):
                store.resolve(bad)

    def test_private_data_dir_is_reserved(self, store):
        with pytest.raises(WorkspaceError, match="reserved"):
            store.resolve(".lumina/vectors/documents.json")

    @pytest.mark.asyncio
    async def test_write_read_round_trip_creates_folders(self, store):
        await store.write("new/deep/note.md", "# Deep\n")

        assert await store.read("new/deep/note.md") == "# Deep\n"
        assert await store.exists("new/deep/note.md")

    @pytest.mark.asyncio
    async def test_read_missing_note(self, store):
        with pytest.raises(WorkspaceError, match="not found"):
            await store.read("missing.md")

    @pytest.mark.asyncio
    async def test_undecodable_note(self, store, workspace):
        (workspace / "latin1.md").write_bytes(b"# Caf\xe9\n")

        with pytest.raises(WorkspaceError, match="UTF-8"):
            await store.read("latin1.md")

        paths = [note.path async for note, _ in store.iter_contents()]
        assert "latin1.md" not in paths
        assert "inbox/idea.md" in paths

    @pytest.mark.asyncio
    async def test_move_refuses_to_overwrite(self, store):
        with pytest.raises(WorkspaceError, match="already exists"):
            await store.move("inbox/idea.md", "projects/alpha.md")

    @pytest.mark.asyncio
    async def test_listing_hides_private_data(self, store):
        store.data_dir.mkdir()
        (store.data_dir / "cache.md").write_text("hidden", encoding="utf-8")
        (store.root / "notes.txt").write_text("not markdown", encoding="utf-8")

        paths = [n.path for n in await store.list_notes()]

        assert paths == ["daily/2024-01-01.md", "inbox/idea.md", "projects/alpha.md"]
        assert await store.list_folders() == ["daily", "inbox", "projects"]

    @pytest.mark.asyncio
    async def test_list_sub_folder(self, store):
        paths = [n.path for n in await store.list_notes("projects", recursive=False)]
        assert paths == ["projects/alpha.md"]

        with pytest.raises(WorkspaceError):
            await store.list_notes("nope")

    @pytest.mark.asyncio
    async def test_file_tree(self, store):
        tree = await store.file_tree()

        assert tree.split("\n") == [
            "daily/",
            "  2024-01-01.md",
            "inbox/",
            "  idea.md",
            "projects/",
            "  alpha.md",
        ]
