"""
Generation phase: ask the model for a short list of commands and keep only
those that can run in the current directory.
"""

from typing import List, Optional

from shellsense.llm.transport import Transport
from shellsense.llm.types import CompletionRequest, Provider, ReasoningEffort
from shellsense.pipeline.filters import DirectoryFilter
from shellsense.pipeline.models import (
    CommandSuggestion,
    GatheredContext,
    ProjectType,
    ResearchFindings,
    SuggestionPlan,
    SuggestionSource,
    TerminalContext,
)
from shellsense.pipeline.normalizer import extract_json_array
from shellsense.utils.cancellation import CancellationToken
from shellsense.utils.config import SuggestionConfig, TimeoutConfig
from shellsense.utils.logging import get_logger

logger = get_logger(__name__)

GENERATION_SYSTEM_PROMPT = (
    "You are a helpful terminal assistant. You MUST only suggest commands that work in the "
    "user's CURRENT directory. Never suggest project-specific commands unless the user is "
    "actually in a project directory."
)
GENERATION_MAX_TOKENS = 500


class SuggestionGenerator:
    """Builds the generation prompt, parses the reply and filters it."""

    def __init__(self, transport: Transport, config: SuggestionConfig, timeouts: TimeoutConfig,
                 directory_filter: Optional[DirectoryFilter] = None):
        self.transport = transport
        self.config = config
        self.timeouts = timeouts
        self.directory_filter = directory_filter or DirectoryFilter()

    async def generate(
        self,
        plan: SuggestionPlan,
        gathered: GatheredContext,
        context: TerminalContext,
        findings: ResearchFindings,
        provider: Provider,
        cancel_token: CancellationToken,
    ) -> List[CommandSuggestion]:
        """
        Generate suggestions for the plan.

        Raises:
            TransportError: The model call failed
            MissingCredentialError: No API key for the provider
        """
        request = CompletionRequest(
            system_prompt=GENERATION_SYSTEM_PROMPT,
            user_prompt=self.build_prompt(plan, gathered, context, findings),
            provider=provider,
            reasoning_effort=ReasoningEffort(self.config.reasoning_effort),
            max_tokens=GENERATION_MAX_TOKENS,
            timeout=self.timeouts.generation,
            request_type="generation",
        )
        reply = await self.transport.complete(request, cancel_token)

        suggestions = self.parse_suggestions(reply)
        kept = self.directory_filter.filter(suggestions, context.cwd, context.project_type)
        logger.info(
            "generation.completed",
            extra={"parsed": len(suggestions), "kept": len(kept), "suggestion_type": plan.suggestion_type}
        )
        return kept

    def parse_suggestions(self, text: str) -> List[CommandSuggestion]:
        """First max_suggestions well-formed entries of the reply's JSON array."""
        items = extract_json_array(text)
        if items is None:
            logger.info("generation.unparseable_reply", extra={"preview": text[:200]})
            return []

        suggestions = []
        for item in items:
            if len(suggestions) >= self.config.max_suggestions:
                break
            if not isinstance(item, dict):
                continue
            command = item.get("command")
            if not isinstance(command, str) or not command.strip():
                continue
            reason = item.get("reason") if isinstance(item.get("reason"), str) else ""
            suggestions.append(CommandSuggestion(
                command=command.strip(),
                reason=reason[:self.config.max_reason_length],
                source=SuggestionSource.parse(item.get("source")),
            ))
        return suggestions

    def build_prompt(self, plan: SuggestionPlan, gathered: GatheredContext,
                     context: TerminalContext, findings: ResearchFindings) -> str:
        lines = [
            f"Generate {plan.suggestion_count} helpful terminal command suggestions.",
            "",
            "USER CONTEXT:",
            f"- Intent: {plan.user_intent}",
            f"- Current directory: {context.cwd}",
        ]
        if gathered.frequent_commands:
            lines.append(f"- Frequently used: {', '.join(gathered.frequent_commands)}")
        if gathered.recent_commands:
            lines.append(f"- Recent: {', '.join(gathered.recent_commands[:5])}")
        prompt = "\n".join(lines)

        research = findings.formatted_for_prompt()
        if research:
            prompt += "\n\n" + research

        prompt += "\n\n" + self._type_section(plan, gathered, context)

        if plan.focus_area:
            prompt += f"\n\nFocus on: {plan.focus_area}"

        is_home = self.directory_filter.home == context.cwd.rstrip("/")
        has_project = context.project_type != ProjectType.UNKNOWN
        prompt += f"""

CURRENT DIRECTORY RULES:
- Current directory: {context.cwd}
- Is home directory: {str(is_home).lower()}
- Has project files: {str(has_project).lower()}

ONLY suggest commands that can ACTUALLY RUN from the current directory!
- NEVER suggest "cd {context.cwd}" or any path that resolves to the current directory
- Do NOT suggest project commands (npm, cargo, swift build, etc.) unless project files exist HERE
- If suggesting cd, only suggest cd to a DIFFERENT directory than "{context.cwd}"

OTHER RULES:
- Keep reasons brief (max 6 words)
- Don't suggest generic commands like 'ls', 'pwd', 'clear'

Reply as JSON array:
[{{"command": "exact command", "reason": "brief reason", "source": "errorAnalysis|gitStatus|projectContext|generalContext"}}]"""
        return prompt

    @staticmethod
    def _type_section(plan: SuggestionPlan, gathered: GatheredContext, context: TerminalContext) -> str:
        if plan.suggestion_type == "error_fix":
            return (
                f"THE LAST COMMAND FAILED (exit code {context.last_exit_code})\n"
                f"Terminal output:\n```\n{context.last_output[:500]}\n```\n\n"
                "Suggest commands to FIX this error. Be specific about what went wrong."
            )
        if plan.suggestion_type == "git_workflow" and context.git_info:
            git = context.git_info
            return (
                f"Git status: branch={git.branch}, dirty={str(git.is_dirty).lower()}, "
                f"ahead={git.ahead}, behind={git.behind}\n\n"
                "Suggest appropriate git workflow commands."
            )
        if plan.suggestion_type == "next_step":
            return (
                f"Recent commands: {', '.join(gathered.recent_commands[:5])}\n\n"
                "Suggest the logical next step in their workflow."
            )
        if plan.suggestion_type == "workflow" and context.project_type != ProjectType.UNKNOWN:
            return (
                f"The user just entered a {context.project_type.value} project. "
                f"Typical commands: {', '.join(context.project_type.common_commands)}\n\n"
                "Suggest how to get started in this project."
            )
        return (
            "Environment:\n" + "\n".join(gathered.environment_info) + "\n"
            f"Recent: {', '.join(gathered.recent_commands[:3])}\n\n"
            "Suggest useful commands based on their context."
        )
