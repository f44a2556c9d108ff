"""
Research phase: a bounded loop in which the model explores the working
directory through read-only tools before suggestions are planned.
"""

from typing import Callable, List, Optional

from shellsense.llm.transport import Transport
from shellsense.llm.types import ChatMessage, CompletionRequest, Provider, TextDelta, ToolCallComplete
from shellsense.pipeline.models import (
    FileInsight,
    GatheredContext,
    ProjectType,
    ResearchFindings,
    TerminalContext,
)
from shellsense.pipeline.normalizer import ResponseNormalizer
from shellsense.pipeline.tools import ResearchToolRegistry, ToolResult, extract_file_insight
from shellsense.utils.cancellation import CancellationToken
from shellsense.utils.config import ResearchConfig, TimeoutConfig
from shellsense.utils.errors import MissingCredentialError, TransportError
from shellsense.utils.logging import get_logger

logger = get_logger(__name__)

FORMAT_FAILURE_NOTE = "Research ended: model response format issues"

RESEARCH_MAX_TOKENS = 300
NATIVE_RESEARCH_MAX_TOKENS = 500

JSON_SYSTEM_PROMPT = """You are researching a user's terminal environment so you can suggest helpful commands.
Request ONE action per reply, as a single JSON object and nothing else.

Available tools:
- read_file: {"tool": "read_file", "args": {"path": "package.json"}, "reason": "why"}
- list_dir: {"tool": "list_dir", "args": {"path": "."}, "reason": "why"}
- search_files: {"tool": "search_files", "args": {"pattern": "*.py"}, "reason": "why"}

When you have enough context, reply:
{"done": true, "summary": "what you learned"}

After 3-5 tool calls you should have enough."""

NATIVE_SYSTEM_PROMPT = """You are a research assistant gathering context to provide helpful terminal command suggestions.
Explore the user's environment to understand what they might need to do next.
Use the available tools to gather context. After 3-5 tool calls, you should have enough:
respond with a text summary of your findings (no tool calls) to indicate you're done."""

StepCallback = Callable[[int, str], None]


class ResearchPhase:
    """
    Decides when to research and runs the research loop.

    Tracks the directory of the last completed pass and the number of
    commands run since, across pipeline runs.
    """

    def __init__(self, transport: Transport, config: ResearchConfig,
                 timeouts: TimeoutConfig, tools: ResearchToolRegistry):
        self.transport = transport
        self.config = config
        self.timeouts = timeouts
        self.tools = tools
        self.normalizer = ResponseNormalizer()
        self.last_research_cwd: Optional[str] = None
        self.commands_since_research = 0

    @property
    def tool_names(self) -> List[str]:
        return [schema.name for schema in self.tools.schemas]

    def should_research(self, context: TerminalContext, gathered: GatheredContext,
                        is_startup: bool = False) -> bool:
        if not self.config.enabled:
            return False
        if is_startup:
            reason = "startup"
        elif context.last_exit_code != 0:
            reason = "error_exit"
        elif self.last_research_cwd is None:
            reason = "first_run"
        elif context.cwd != self.last_research_cwd:
            reason = "cwd_changed"
        elif self.commands_since_research >= self.config.command_threshold:
            reason = "periodic"
        elif not gathered.recent_commands and context.project_type == ProjectType.UNKNOWN:
            reason = "unknown_environment"
        else:
            logger.debug("research.skipped",
                         extra={"commands_since_research": self.commands_since_research})
            return False

        logger.info("research.triggered", extra={"trigger": reason, "cwd": context.cwd})
        return True

    def record_command(self) -> None:
        self.commands_since_research += 1

    def mark_completed(self, cwd: str) -> None:
        self.last_research_cwd = cwd
        self.commands_since_research = 0

    def reset(self) -> None:
        self.last_research_cwd = None
        self.commands_since_research = 0

    async def run(
        self,
        context: TerminalContext,
        gathered: GatheredContext,
        provider: Provider,
        cancel_token: CancellationToken,
        on_step: Optional[StepCallback] = None,
    ) -> ResearchFindings:
        """
        Run the research loop.

        Stops when the model says it is done, after max_steps steps, after
        max_consecutive_failures unparseable replies in a row, or on the
        first transport error. Partial findings are always returned.

        Raises:
            PipelineCancelledError: The token was cancelled between steps
        """
        if self.config.native_tools:
            return await self._run_native(context, gathered, provider, cancel_token, on_step)
        return await self._run_json(context, gathered, provider, cancel_token, on_step)

    # ------------------------------------------------------------------
    # JSON reply mode
    # ------------------------------------------------------------------

    async def _run_json(self, context, gathered, provider, cancel_token, on_step) -> ResearchFindings:
        findings = ResearchFindings()
        context_log: List[str] = []
        failures = 0

        for step in range(1, self.config.max_steps + 1):
            cancel_token.raise_if_cancelled()
            if on_step:
                on_step(step, "Exploring context...")

            request = CompletionRequest(
                system_prompt=JSON_SYSTEM_PROMPT,
                user_prompt=self._build_prompt(context, gathered, context_log),
                provider=provider,
                max_tokens=RESEARCH_MAX_TOKENS,
                timeout=self.timeouts.research,
                request_type="research",
            )
            try:
                reply = await self.transport.complete(request, cancel_token)
            except (TransportError, MissingCredentialError) as e:
                logger.warning("research.step.failed", extra={"step": step, "error": str(e)})
                break

            findings.steps_taken = step
            decision = self.normalizer.parse(reply)

            if decision is None:
                failures += 1
                logger.debug("research.step.unparseable", extra={"step": step, "failures": failures})
                if failures >= self.config.max_consecutive_failures:
                    findings.discoveries.append(FORMAT_FAILURE_NOTE)
                    break
                continue
            failures = 0

            if decision.done:
                if decision.summary:
                    findings.discoveries.append(decision.summary)
                findings.completed = True
                break

            if decision.tool not in self.tool_names:
                context_log.append(f"Invalid tool requested. Available: {', '.join(self.tool_names)}")
                continue

            if on_step:
                on_step(step, f"{decision.tool}: {decision.args.get('path') or decision.args.get('pattern') or '...'}")
            result = await self.tools.execute(decision.tool, decision.args, context.cwd)
            self._record_result(decision.tool, decision.args, result, findings, context_log)
            if decision.reason:
                findings.discoveries.append(f"• {decision.reason}")

        logger.info(
            "research.finished",
            extra={"steps": findings.steps_taken, "completed": findings.completed}
        )
        return findings

    # ------------------------------------------------------------------
    # Native tool-calling mode
    # ------------------------------------------------------------------

    async def _run_native(self, context, gathered, provider, cancel_token, on_step) -> ResearchFindings:
        findings = ResearchFindings()
        context_log: List[str] = []

        for step in range(1, self.config.max_steps + 1):
            cancel_token.raise_if_cancelled()
            if on_step:
                on_step(step, "Exploring context...")

            messages = [ChatMessage(role="user", content=self._build_prompt(context, gathered, context_log))]
            text_parts: List[str] = []
            tool_calls = []
            try:
                async for event in self.transport.stream_with_tools(
                    NATIVE_SYSTEM_PROMPT, messages, self.tools.schemas, provider,
                    max_tokens=NATIVE_RESEARCH_MAX_TOKENS,
                    timeout=self.timeouts.research,
                    request_type="research",
                    cancel_token=cancel_token,
                ):
                    if isinstance(event, TextDelta):
                        text_parts.append(event.text)
                    elif isinstance(event, ToolCallComplete):
                        tool_calls.append(event.call)
            except (TransportError, MissingCredentialError) as e:
                logger.warning("research.step.failed", extra={"step": step, "error": str(e)})
                break

            findings.steps_taken = step
            if not tool_calls:
                text = "".join(text_parts).strip()
                if text:
                    findings.discoveries.append(text)
                findings.completed = True
                break

            for call in tool_calls:
                if call.name not in self.tool_names:
                    context_log.append(f"Invalid tool requested. Available: {', '.join(self.tool_names)}")
                    continue
                args = call.string_arguments
                if on_step:
                    on_step(step, f"{call.name}: {args.get('path') or args.get('pattern') or '...'}")
                result = await self.tools.execute(call.name, args, context.cwd)
                self._record_result(call.name, args, result, findings, context_log)

        logger.info(
            "research.finished",
            extra={"steps": findings.steps_taken, "completed": findings.completed, "mode": "native"}
        )
        return findings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_prompt(self, context: TerminalContext, gathered: GatheredContext,
                      context_log: List[str]) -> str:
        lines = [
            f"Current directory: {context.cwd}",
            f"Project type: {context.project_type.value}",
        ]
        if context.git_info:
            lines.append(f"Git: branch={context.git_info.branch}, dirty={context.git_info.is_dirty}")
        if gathered.recent_commands:
            lines.append(f"Recent commands: {', '.join(gathered.recent_commands[:5])}")
        if context.last_exit_code != 0:
            lines.append(f"Last command failed with exit code {context.last_exit_code}:")
            lines.append(context.last_output[:500])

        prompt = "\n".join(lines)
        if context_log:
            prompt += "\n\n=== Previous Research ===\n" + "\n".join(context_log)
        prompt += "\n\nWhat additional context would help you suggest useful commands? Call a tool or say done."
        return prompt

    def _record_result(self, tool: str, args, result: ToolResult,
                       findings: ResearchFindings, context_log: List[str]) -> None:
        if not result.success:
            context_log.append(f"[{tool}] Error: {result.error or 'unknown'}")
            return

        truncated = result.output[:self.config.output_truncate_chars]
        context_log.append(f"[{tool}] {args}: {truncated}")

        path = args.get("path")
        if tool == "read_file" and path:
            findings.file_insights.append(FileInsight(path, extract_file_insight(result.output, path)))
        elif tool == "list_dir":
            findings.explored_dirs.append(path or ".")
