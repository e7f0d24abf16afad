"""Workspace initialization and file access.

The workspace is the agent's home directory: bootstrap documents,
long-term memory, sessions and skills. On first run template files are
written so the agent has a usable identity out of the box.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

BOOTSTRAP_FILES: tuple[str, ...] = ("AGENTS.md", "SOUL.md", "USER.md", "TOOLS.md", "IDENTITY.md")

_TEMPLATES: dict[str, str] = {
    "AGENTS.md": (
        "# Agent Instructions\n\n"
        "You are a helpful AI assistant. Be concise, accurate, and friendly.\n\n"
        "## Guidelines\n"
        "- Explain what you are doing before taking actions.\n"
        "- Ask for clarification when the request is ambiguous.\n"
        "- Use tools when you need real information; do not guess.\n"
        "- Remember important facts in memory/MEMORY.md.\n"
    ),
    "SOUL.md": (
        "# Soul\n\n"
        "## Personality\n"
        "- Helpful and friendly.\n"
        "- Concise and to the point.\n\n"
        "## Values\n"
        "- Accuracy over speed.\n"
        "- User privacy and safety.\n"
    ),
    "USER.md": (
        "# User\n\n"
        "Information about the user goes here.\n\n"
        "- **Name:**\n"
        "- **Preferences:**\n"
    ),
    "IDENTITY.md": "# Identity\n\n- **Name:** mikrobot\n- **Role:** Personal AI assistant\n",
    "memory/MEMORY.md": (
        "# Long-term Memory\n\nImportant facts and decisions are stored here by the agent.\n"
    ),
}

_DIRECTORIES = ("memory", "sessions", "skills")


class WorkspaceManager:
    """Handles workspace directory creation, template generation, and file reads."""

    def __init__(self, workspace_path: Path) -> None:
        self._root = workspace_path.expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def sessions_dir(self) -> Path:
        return self._root / "sessions"

    def initialize(self) -> list[Path]:
        """Create the workspace tree and write templates that do not exist yet.

        Returns the files that were newly created.
        """
        created: list[Path] = []
        self._root.mkdir(parents=True, exist_ok=True)

        for dirname in _DIRECTORIES:
            (self._root / dirname).mkdir(parents=True, exist_ok=True)

        for relative_path, content in _TEMPLATES.items():
            full_path = self._root / relative_path
            if full_path.exists():
                continue
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_text(content, encoding="utf-8")
            created.append(full_path)
            logger.debug("Created workspace template: {}", relative_path)

        return created

    @property
    def is_initialized(self) -> bool:
        return (self._root / "AGENTS.md").exists()

    def read_file(self, relative_path: str) -> str | None:
        """Read a workspace file by relative path. Returns None if missing."""
        target = (self._root / relative_path).resolve()
        if not target.is_relative_to(self._root):
            logger.warning("Path traversal blocked: {}", relative_path)
            return None
        if not target.is_file():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot read workspace file {}: {}", relative_path, exc)
            return None

    def read_bootstrap_files(self) -> list[tuple[str, str]]:
        """Return (filename, content) for each bootstrap document present, in fixed order."""
        result: list[tuple[str, str]] = []
        for name in BOOTSTRAP_FILES:
            content = self.read_file(name)
            if content is not None:
                result.append((name, content))
        return result

    def read_memory(self) -> str | None:
        return self.read_file("memory/MEMORY.md")

    def list_skills(self) -> list[str]:
        """Names of skill folders under skills/, sorted."""
        skills_dir = self._root / "skills"
        if not skills_dir.is_dir():
            return []
        return sorted(p.name for p in skills_dir.iterdir() if p.is_dir())
