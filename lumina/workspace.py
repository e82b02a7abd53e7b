"""
Workspace Note Store
====================

The note store is the only way the agent core touches the user's notes.
It exposes a small set of primitives (read, write, list, delete, move)
over a workspace directory of markdown files.

Paths:
    All paths crossing this boundary are workspace-relative POSIX strings
    ("projects/roadmap.md"). Absolute paths that point inside the
    workspace are accepted and normalized; anything resolving outside it
    raises WorkspaceError.

Private data:
    The workspace keeps its own data (the vector index, for example) in a
    hidden directory (".lumina" by default). It never shows up in listings
    and cannot be written through the note primitives.

Notes are UTF-8; a file that does not decode raises WorkspaceError like
any other unreadable note.

File I/O runs in a worker thread so tool executors can await it without
stalling the event loop.
"""

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

from lumina.utils.logger import Logger

logger = Logger("Workspace")

NOTE_EXTENSIONS = (".md",)


class WorkspaceError(Exception):
    """Raised for invalid paths or missing notes."""


@dataclass(frozen=True)
class NoteFile:
    """
    A note in the workspace.

    Attributes:
        path: Workspace-relative POSIX path
        modified_at: Last modification time (seconds since epoch)
    """
    path: str
    modified_at: float


class NoteStore:
    """
    File-backed note primitives rooted at a workspace directory.

    Example:
        store = NoteStore(Path("~/Notes").expanduser())

        await store.write("inbox/idea.md", "# Idea\\n")
        text = await store.read("inbox/idea.md")
        notes = await store.list_notes("inbox")
    """

    def __init__(self, root: Path, data_dir_name: str = ".lumina"):
        self.root = root.expanduser().resolve()
        self.data_dir_name = data_dir_name

        if not self.root.is_dir():
            raise WorkspaceError(f"workspace does not exist: {self.root}")

    @property
    def data_dir(self) -> Path:
        """The workspace's private data directory."""
        return self.root / self.data_dir_name

    # ==========================================================================
    # Path handling
    # ==========================================================================

    def resolve(self, path: str) -> Path:
        """
        Map a note path to an absolute path inside the workspace.

        Raises:
            WorkspaceError: If the path is empty, escapes the workspace or
                points into the private data directory
        """
        if not path or not str(path).strip():
            raise WorkspaceError("path must be a non-empty string")

        candidate = Path(str(path).strip().replace("\\", "/"))
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = candidate.resolve()

        try:
            relative = resolved.relative_to(self.root)
        except ValueError:
            raise WorkspaceError(f"path is outside the workspace: {path}")

        if relative.parts and relative.parts[0] == self.data_dir_name:
            raise WorkspaceError(f"path is reserved: {path}")

        return resolved

    def relative(self, path: Path) -> str:
        """Workspace-relative POSIX form of an absolute path."""
        return path.resolve().relative_to(self.root).as_posix()

    # ==========================================================================
    # Primitives
    # ==========================================================================

    async def read(self, path: str) -> str:
        """Read a note's text."""
        return await asyncio.to_thread(self._read_sync, path)

    def _read_sync(self, path: str) -> str:
        target = self.resolve(path)
        if not target.is_file():
            raise WorkspaceError(f"note not found: {path}")
        try:
            return target.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise WorkspaceError(f"note is not valid UTF-8 text: {path}") from e

    async def write(self, path: str, content: str) -> None:
        """Create or overwrite a note, creating parent folders as needed."""
        await asyncio.to_thread(self._write_sync, path, content)

    def _write_sync(self, path: str, content: str) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote {self.relative(target)} ({len(content)} chars)")

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(lambda: self.resolve(path).is_file())

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(self._delete_sync, path)

    def _delete_sync(self, path: str) -> None:
        target = self.resolve(path)
        if not target.is_file():
            raise WorkspaceError(f"note not found: {path}")
        target.unlink()
        logger.debug(f"Deleted {path}")

    async def move(self, source: str, destination: str) -> None:
        """Move or rename a note. Refuses to overwrite an existing note."""
        await asyncio.to_thread(self._move_sync, source, destination)

    def _move_sync(self, source: str, destination: str) -> None:
        src = self.resolve(source)
        dst = self.resolve(destination)
        if not src.is_file():
            raise WorkspaceError(f"note not found: {source}")
        if dst.exists():
            raise WorkspaceError(f"destination already exists: {destination}")
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
        logger.debug(f"Moved {source} -> {destination}")

    async def modified_at(self, path: str) -> float:
        return await asyncio.to_thread(lambda: self.resolve(path).stat().st_mtime)

    async def list_notes(
        self,
        directory: str | None = None,
        recursive: bool = True
    ) -> list[NoteFile]:
        """
        List markdown notes, sorted by path.

        Args:
            directory: Optional workspace-relative folder to list
            recursive: Whether to descend into sub-folders
        """
        return await asyncio.to_thread(self._list_sync, directory, recursive)

    def _list_sync(self, directory: str | None, recursive: bool) -> list[NoteFile]:
        base = self.resolve(directory) if directory else self.root
        if not base.is_dir():
            raise WorkspaceError(f"folder not found: {directory}")

        pattern = "**/*" if recursive else "*"
        notes = []
        for item in base.glob(pattern):
            if not item.is_file() or item.suffix.lower() not in NOTE_EXTENSIONS:
                continue
            relative = item.relative_to(self.root)
            # Hidden folders (including the private data dir) are not notes
            if any(part.startswith(".") for part in relative.parts):
                continue
            notes.append(NoteFile(path=relative.as_posix(), modified_at=item.stat().st_mtime))

        notes.sort(key=lambda n: n.path)
        return notes

    async def iter_contents(
        self,
        directory: str | None = None
    ) -> AsyncIterator[tuple[NoteFile, str]]:
        """
        Yield (note, text) for every readable note under a folder.

        Notes that cannot be read (not UTF-8, removed mid-scan) are logged
        and skipped so one bad file does not fail a workspace-wide scan.
        """
        for note in await self.list_notes(directory):
            try:
                content = await self.read(note.path)
            except (WorkspaceError, OSError) as e:
                logger.warning(f"Skipping unreadable note {note.path}: {e}")
                continue
            yield note, content

    async def list_folders(self, directory: str | None = None) -> list[str]:
        """List immediate sub-folders of a directory (hidden ones excluded)."""
        def _folders() -> list[str]:
            base = self.resolve(directory) if directory else self.root
            if not base.is_dir():
                raise WorkspaceError(f"folder not found: {directory}")
            return sorted(
                self.relative(item) for item in base.iterdir()
                if item.is_dir() and not item.name.startswith(".")
            )

        return await asyncio.to_thread(_folders)

    async def file_tree(self, max_entries: int = 200) -> str:
        """Render the note tree as an indented outline for the model."""
        notes = await self.list_notes()
        lines = []
        seen_dirs: set[str] = set()
        for note in notes[:max_entries]:
            parts = note.path.split("/")
            for depth in range(len(parts) - 1):
                folder = "/".join(parts[:depth + 1])
                if folder not in seen_dirs:
                    seen_dirs.add(folder)
                    lines.append(f"{'  ' * depth}{parts[depth]}/")
            lines.append(f"{'  ' * (len(parts) - 1)}{parts[-1]}")
        if len(notes) > max_entries:
            lines.append(f"... ({len(notes) - max_entries} more notes)")
        return "\n".join(lines)
