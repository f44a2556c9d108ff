"""
Pipeline data model: terminal state in, suggestions out, and everything the
phases pass between them.
"""

import hashlib
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class PhaseKind(str, Enum):
    IDLE = "idle"
    GATHERING_CONTEXT = "gathering_context"
    RESEARCHING = "researching"
    PLANNING = "planning"
    GENERATING = "generating"


@dataclass(frozen=True)
class PipelinePhase:
    """Current orchestrator phase. Only the orchestrator replaces it."""
    kind: PhaseKind = PhaseKind.IDLE
    detail: str = ""
    step: int = 0

    @classmethod
    def idle(cls) -> 'PipelinePhase':
        return cls()

    @classmethod
    def gathering_context(cls, detail: str) -> 'PipelinePhase':
        return cls(PhaseKind.GATHERING_CONTEXT, detail)

    @classmethod
    def researching(cls, detail: str, step: int) -> 'PipelinePhase':
        return cls(PhaseKind.RESEARCHING, detail, step)

    @classmethod
    def planning(cls) -> 'PipelinePhase':
        return cls(PhaseKind.PLANNING)

    @classmethod
    def generating(cls) -> 'PipelinePhase':
        return cls(PhaseKind.GENERATING)

    @property
    def is_active(self) -> bool:
        return self.kind != PhaseKind.IDLE

    @property
    def label(self) -> str:
        return {
            PhaseKind.IDLE: "",
            PhaseKind.GATHERING_CONTEXT: "Gathering",
            PhaseKind.RESEARCHING: "Researching",
            PhaseKind.PLANNING: "Planning",
            PhaseKind.GENERATING: "Generating",
        }[self.kind]

    @property
    def description(self) -> str:
        if self.kind == PhaseKind.GATHERING_CONTEXT:
            return self.detail or "Gathering context..."
        if self.kind == PhaseKind.RESEARCHING:
            return f"Step {self.step}: {self.detail}" if self.detail else f"Researching (step {self.step})..."
        if self.kind == PhaseKind.PLANNING:
            return "Planning suggestions..."
        if self.kind == PhaseKind.GENERATING:
            return "Generating suggestions..."
        return ""


class SuggestionSource(str, Enum):
    PROJECT_CONTEXT = "projectContext"
    ERROR_ANALYSIS = "errorAnalysis"
    GIT_STATUS = "gitStatus"
    CWD_CHANGE = "cwdChange"
    GENERAL_CONTEXT = "generalContext"
    STARTUP = "startup"
    RESUME_COMMAND = "resumeCommand"
    SHELL_HISTORY = "shellHistory"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'SuggestionSource':
        """Accept camelCase or snake_case; unknown values map to general."""
        if not value:
            return cls.GENERAL_CONTEXT
        normalized = value.replace("_", "").lower()
        for source in cls:
            if source.value.lower() == normalized:
                return source
        return cls.GENERAL_CONTEXT


class ProjectType(str, Enum):
    NODE = "node"
    SWIFT = "swift"
    RUST = "rust"
    PYTHON = "python"
    GO = "go"
    RUBY = "ruby"
    JAVA = "java"
    DOTNET = "dotnet"
    UNKNOWN = "unknown"

    @property
    def common_commands(self) -> List[str]:
        return _COMMON_COMMANDS[self]


_COMMON_COMMANDS: Dict[ProjectType, List[str]] = {
    ProjectType.NODE: ["npm install", "npm run dev", "npm test", "npm run build"],
    ProjectType.SWIFT: ["swift build", "swift test", "swift run"],
    ProjectType.RUST: ["cargo build", "cargo test", "cargo run"],
    ProjectType.PYTHON: ["pip install -r requirements.txt", "pytest", "python -m venv .venv"],
    ProjectType.GO: ["go build", "go test ./...", "go run ."],
    ProjectType.RUBY: ["bundle install", "bundle exec rake", "rails server"],
    ProjectType.JAVA: ["mvn compile", "mvn test", "./gradlew build"],
    ProjectType.DOTNET: ["dotnet build", "dotnet run", "dotnet test"],
    ProjectType.UNKNOWN: [],
}


@dataclass
class GitInfo:
    branch: str
    is_dirty: bool = False
    ahead: int = 0
    behind: int = 0

    @property
    def summary(self) -> str:
        parts = [f"branch={self.branch}"]
        if self.is_dirty:
            parts.append("dirty")
        if self.ahead > 0:
            parts.append(f"{self.ahead} to push")
        if self.behind > 0:
            parts.append(f"{self.behind} to pull")
        return ", ".join(parts)


@dataclass
class TerminalContext:
    """Snapshot of the shell supplied by the host terminal."""
    cwd: str
    last_output: str = ""
    last_exit_code: int = 0
    git_info: Optional[GitInfo] = None
    recent_commands: List[str] = field(default_factory=list)
    project_type: ProjectType = ProjectType.UNKNOWN
    frequent_commands: List[str] = field(default_factory=list)

    @property
    def cache_key(self) -> str:
        """
        Lossy fingerprint of the situation.

        Equal keys mean "same situation" for caching; distinct outputs that
        share a 100-character prefix collide on purpose.
        """
        if self.git_info:
            git_part = f"{self.git_info.branch}:{self.git_info.is_dirty}"
        else:
            git_part = "nogit"
        exit_part = f"err{self.last_exit_code}" if self.last_exit_code != 0 else "ok"
        output_hash = hashlib.sha1(self.last_output[:100].encode("utf-8")).hexdigest()[:12]
        return f"{self.cwd}|{git_part}|{exit_part}|{output_hash}"


@dataclass
class CommandSuggestion:
    """Final output unit. Equality is by command text."""
    command: str
    reason: str
    confidence: float = 0.8
    source: SuggestionSource = SuggestionSource.GENERAL_CONTEXT

    def __eq__(self, other):
        if not isinstance(other, CommandSuggestion):
            return NotImplemented
        return self.command == other.command

    def __hash__(self):
        return hash(self.command)


@dataclass
class SuggestionPlan:
    user_intent: str = ""
    should_suggest: bool = True
    suggestion_type: str = "general"
    focus_area: Optional[str] = None
    suggestion_count: int = 2


@dataclass
class FileInsight:
    path: str
    insight: str


@dataclass
class ResearchFindings:
    """Built up across research steps; read-only once the loop exits."""
    file_insights: List[FileInsight] = field(default_factory=list)
    explored_dirs: List[str] = field(default_factory=list)
    discoveries: List[str] = field(default_factory=list)
    steps_taken: int = 0
    completed: bool = False

    def formatted_for_prompt(self) -> str:
        if not self.discoveries and not self.file_insights:
            return ""
        parts = []
        if self.discoveries:
            parts.append("=== Research Discoveries ===\n" + "\n".join(self.discoveries))
        if self.file_insights:
            insights = "\n".join(f"• {i.path}: {i.insight}" for i in self.file_insights)
            parts.append("=== File Insights ===\n" + insights)
        return "\n\n".join(parts)


@dataclass
class SessionCommand:
    command: str
    cwd: str
    exit_code: Optional[int] = None
    timestamp: float = field(default_factory=time.time)


class SessionContext:
    """Commands run in this terminal session, newest last."""

    MAX_COMMANDS = 20

    def __init__(self):
        self.commands: List[SessionCommand] = []

    def add(self, command: str, cwd: str) -> None:
        self.commands.append(SessionCommand(command=command, cwd=cwd))
        del self.commands[:-self.MAX_COMMANDS]

    def update_last_exit_code(self, exit_code: int) -> None:
        if self.commands:
            self.commands[-1].exit_code = exit_code

    def recent_command_strings(self, limit: int = 10) -> List[str]:
        result = []
        for entry in self.commands[-limit:]:
            if entry.exit_code is None:
                result.append(entry.command)
            elif entry.exit_code == 0:
                result.append(f"{entry.command} ✓")
            else:
                result.append(f"{entry.command} ✗({entry.exit_code})")
        return result

    def clear(self) -> None:
        self.commands.clear()


@dataclass
class GatheredContext:
    """Everything the planning and generation prompts draw on."""
    cwd: str
    recent_commands: List[str] = field(default_factory=list)
    frequent_commands: List[str] = field(default_factory=list)
    environment_info: List[str] = field(default_factory=list)
    terminal_output: str = ""
    last_exit_code: int = 0

    def formatted_for_prompt(self) -> str:
        parts = []
        if self.frequent_commands:
            parts.append("=== Frequent Commands ===\n" + ", ".join(self.frequent_commands))
        if self.recent_commands:
            parts.append("=== Recent Commands ===\n" + "\n".join(self.recent_commands))
        if self.environment_info:
            parts.append("=== Environment ===\n" + "\n".join(self.environment_info))
        if self.terminal_output:
            parts.append("=== Terminal Output ===\n" + self.terminal_output[:500])
        return "\n\n".join(parts)


def environment_summary(context: TerminalContext) -> List[str]:
    """CWD, project type and git lines for prompts."""
    lines = [f"CWD: {context.cwd}"]
    if context.project_type != ProjectType.UNKNOWN:
        lines.append(f"Project type: {context.project_type.value}")
    if context.git_info:
        lines.append(f"Git: {context.git_info.summary}")
    return lines
