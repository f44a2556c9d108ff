"""
Directory filter for generated suggestions.

Models regularly suggest commands that cannot run where the user is:
changing into the directory they are already in, running project tools
in a bare home directory, or touching files that do not exist.
"""

import os
import posixpath
from typing import Callable, List, Optional

from shellsense.pipeline.models import CommandSuggestion, ProjectType
from shellsense.utils.logging import get_logger

logger = get_logger(__name__)

PROJECT_COMMANDS = (
    "npm", "yarn", "pnpm", "npx",
    "cargo", "rustc",
    "swift build", "swift run", "swift test",
    "go build", "go run", "go test",
    "mvn", "gradle", "./gradlew",
    "dotnet build", "dotnet run",
    "bundle", "rake", "rails",
    "pip install -r", "pytest",
    "make", "./configure",
)

FILE_CREATING_COMMANDS = ("touch", "mkdir", "echo", "cat >", "vim", "nano", "code")


def _normalize(path: str) -> str:
    return posixpath.normpath(path) if path else path


class DirectoryFilter:
    """Drops suggestions that make no sense for the current directory."""

    def __init__(self, home: Optional[str] = None,
                 path_exists: Callable[[str], bool] = os.path.exists):
        self.home = _normalize(home or os.path.expanduser("~"))
        self.path_exists = path_exists

    def filter(self, suggestions: List[CommandSuggestion], cwd: str,
               project_type: ProjectType = ProjectType.UNKNOWN) -> List[CommandSuggestion]:
        normalized_cwd = _normalize(cwd)
        kept = []
        for suggestion in suggestions:
            reason = self._rejection_reason(suggestion.command, cwd, normalized_cwd, project_type)
            if reason:
                logger.debug("suggestions.filtered",
                             extra={"command": suggestion.command, "filter_reason": reason})
                continue
            kept.append(suggestion)
        return kept

    def _rejection_reason(self, command: str, cwd: str, normalized_cwd: str,
                          project_type: ProjectType) -> Optional[str]:
        lowered = command.strip().lower()

        if lowered == "cd" or lowered.startswith("cd "):
            target = command.strip()[2:].strip()
            resolved = self.resolve_cd_target(target, cwd)
            if resolved is None or resolved == normalized_cwd:
                return "cd into current directory"

        if normalized_cwd == self.home and project_type == ProjectType.UNKNOWN:
            for project_command in PROJECT_COMMANDS:
                if lowered.startswith(project_command):
                    return "project command outside a project"

        parts = command.split(" ")
        if len(parts) >= 2:
            token = parts[-1]
            if (token and not token.startswith("-") and "://" not in token
                    and not token.startswith("$") and ("." in token or "/" in token)):
                expanded = self._expand_home(token)
                if (not self.path_exists(posixpath.join(cwd, expanded))
                        and not self.path_exists(expanded)):
                    if not lowered.startswith(FILE_CREATING_COMMANDS):
                        return "references a missing path"

        return None

    def resolve_cd_target(self, target: str, cwd: str) -> Optional[str]:
        """
        Absolute, normalized directory a `cd` would land in.

        Returns None for `cd .`, which is always the current directory.
        """
        if not target or target == "~":
            return self.home
        if target == ".":
            return None
        if target.startswith("~/"):
            return _normalize(posixpath.join(self.home, target[2:]))
        if target.startswith("~") or target.startswith("/"):
            return _normalize(target)
        if target.startswith("./"):
            return _normalize(posixpath.join(cwd, target[2:]))
        if target == "..":
            return _normalize(posixpath.dirname(_normalize(cwd)))
        return _normalize(posixpath.join(cwd, target))

    def _expand_home(self, token: str) -> str:
        if token == "~" or token.startswith("~/"):
            return self.home + token[1:]
        return token
