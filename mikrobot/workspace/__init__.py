"""Agent workspace layout and bootstrap templates."""

from mikrobot.workspace.manager import BOOTSTRAP_FILES, WorkspaceManager

__all__ = ["BOOTSTRAP_FILES", "WorkspaceManager"]
