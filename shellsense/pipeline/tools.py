"""
Research tools.

The research loop resolves model tool requests through a registry. Hosts
may inject their own; LocalResearchTools is the read-only default.
"""

import fnmatch
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from shellsense.llm.types import ToolParameter, ToolSchema

MAX_READ_LINES = 200
MAX_LIST_ENTRIES = 100
MAX_SEARCH_RESULTS = 50
_SKIP_DIRS = {".git", "node_modules", ".venv", "venv", "__pycache__", "target", "build", "dist"}


@dataclass
class ToolResult:
    success: bool
    output: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: str) -> 'ToolResult':
        return cls(True, output)

    @classmethod
    def failure(cls, error: str) -> 'ToolResult':
        return cls(False, "", error)


class ResearchToolRegistry(Protocol):
    """Capability the research loop needs from a tool provider."""

    @property
    def schemas(self) -> List[ToolSchema]:
        ...

    async def execute(self, name: str, args: Dict[str, str], cwd: str) -> ToolResult:
        ...


RESEARCH_TOOL_SCHEMAS = [
    ToolSchema(
        name="read_file",
        description="Read a text file, optionally a line range",
        parameters=[
            ToolParameter("path", "string", "File path, relative to the current directory"),
            ToolParameter("start_line", "integer", "First line to read (1-based)", required=False),
            ToolParameter("end_line", "integer", "Last line to read (inclusive)", required=False),
        ],
    ),
    ToolSchema(
        name="list_dir",
        description="List the entries of a directory",
        parameters=[
            ToolParameter("path", "string", "Directory path, relative to the current directory"),
        ],
    ),
    ToolSchema(
        name="search_files",
        description="Find files whose name matches a glob pattern",
        parameters=[
            ToolParameter("pattern", "string", "Glob pattern such as *.py or Makefile"),
            ToolParameter("path", "string", "Directory to search from", required=False),
        ],
    ),
]


def resolve_path(path: str, cwd: str) -> Path:
    expanded = os.path.expanduser(path)
    if os.path.isabs(expanded):
        return Path(expanded)
    return Path(cwd) / expanded


def extract_file_insight(content: str, path: str) -> str:
    """One-line description of a file for the research summary."""
    lines = content.splitlines()
    line_count = len(lines)

    if path.endswith("package.json"):
        if '"scripts"' in content:
            return f"Node.js project with {line_count} lines, has scripts defined"
        return f"Node.js package.json with {line_count} lines"
    if path.endswith("Cargo.toml"):
        return f"Rust project manifest with {line_count} lines"
    if path.endswith("go.mod"):
        return f"Go module with {line_count} lines"
    if path.endswith("pyproject.toml"):
        return f"Python project manifest with {line_count} lines"
    if path.endswith("Makefile") or path.endswith("makefile"):
        targets = sum(
            1 for line in lines
            if ":" in line and not line.startswith("\t") and not line.startswith("#")
        )
        return f"Makefile with ~{targets} targets"

    if line_count > 100:
        return f"Large file ({line_count} lines)"
    if line_count > 0:
        return f"File with {line_count} lines"
    return "Empty or binary file"


class LocalResearchTools:
    """Read-only file-system tools: read_file, list_dir, search_files."""

    @property
    def schemas(self) -> List[ToolSchema]:
        return list(RESEARCH_TOOL_SCHEMAS)

    @property
    def tool_names(self) -> List[str]:
        return [schema.name for schema in RESEARCH_TOOL_SCHEMAS]

    async def execute(self, name: str, args: Dict[str, str], cwd: str) -> ToolResult:
        handler = {
            "read_file": self._read_file,
            "list_dir": self._list_dir,
            "search_files": self._search_files,
        }.get(name)
        if handler is None:
            return ToolResult.failure(f"Unknown tool: {name}")
        try:
            return handler(args, cwd)
        except OSError as e:
            return ToolResult.failure(f"{type(e).__name__}: {e}")

    def _read_file(self, args: Dict[str, str], cwd: str) -> ToolResult:
        path = args.get("path")
        if not path:
            return ToolResult.failure("Missing required argument: path")
        target = resolve_path(path, cwd)
        if not target.is_file():
            return ToolResult.failure(f"File not found: '{path}'")

        try:
            start = max(1, int(args.get("start_line") or 1))
            end = int(args["end_line"]) if args.get("end_line") else start + MAX_READ_LINES - 1
        except ValueError:
            return ToolResult.failure("start_line and end_line must be integers")
        end = min(end, start + MAX_READ_LINES - 1)

        with open(target, "r", encoding="utf-8", errors="replace") as f:
            lines = f.read().splitlines()
        return ToolResult.ok("\n".join(lines[start - 1:end]))

    def _list_dir(self, args: Dict[str, str], cwd: str) -> ToolResult:
        path = args.get("path") or "."
        target = resolve_path(path, cwd)
        if not target.is_dir():
            return ToolResult.failure(f"Directory not found: '{path}'")

        entries = []
        for entry in sorted(target.iterdir(), key=lambda p: p.name)[:MAX_LIST_ENTRIES]:
            entries.append(entry.name + ("/" if entry.is_dir() else ""))
        return ToolResult.ok("\n".join(entries) if entries else "(empty directory)")

    def _search_files(self, args: Dict[str, str], cwd: str) -> ToolResult:
        pattern = args.get("pattern")
        if not pattern:
            return ToolResult.failure("Missing required argument: pattern")
        root = resolve_path(args.get("path") or ".", cwd)
        if not root.is_dir():
            return ToolResult.failure(f"Directory not found: '{args.get('path')}'")

        matches: List[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in _SKIP_DIRS]
            for filename in filenames:
                if fnmatch.fnmatch(filename, pattern):
                    matches.append(os.path.relpath(os.path.join(dirpath, filename), root))
                    if len(matches) >= MAX_SEARCH_RESULTS:
                        return ToolResult.ok("\n".join(matches))
        return ToolResult.ok("\n".join(matches) if matches else "No matches")
