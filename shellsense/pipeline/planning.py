"""
Planning phase: decide what kind of suggestions to produce.

Heuristics cover the common situations for free; the model is only asked
when none of them apply.
"""

from typing import Optional

from shellsense.llm.transport import Transport
from shellsense.llm.types import CompletionRequest, Provider
from shellsense.pipeline.models import (
    GatheredContext,
    ProjectType,
    ResearchFindings,
    SuggestionPlan,
    TerminalContext,
    environment_summary,
)
from shellsense.pipeline.normalizer import extract_json_object, parse_bool
from shellsense.utils.cancellation import CancellationToken
from shellsense.utils.config import TimeoutConfig
from shellsense.utils.errors import MissingCredentialError, TransportError
from shellsense.utils.logging import get_logger

logger = get_logger(__name__)

PLANNING_SYSTEM_PROMPT = "You are a terminal assistant analyzing user context to plan helpful suggestions."
PLANNING_MAX_TOKENS = 300


def heuristic_plan(context: TerminalContext, gathered: GatheredContext) -> Optional[SuggestionPlan]:
    """Plan without a model call, or None when no rule applies."""
    if context.last_exit_code != 0:
        return SuggestionPlan(
            user_intent="Fixing a command error",
            suggestion_type="error_fix",
            suggestion_count=2,
        )

    git = context.git_info
    if git and git.is_dirty:
        return SuggestionPlan(
            user_intent="Working with uncommitted changes",
            suggestion_type="git_workflow",
            focus_area="git push" if git.ahead > 0 else "git",
            suggestion_count=2,
        )
    if git and git.ahead > 0:
        return SuggestionPlan(
            user_intent="Pushing committed changes",
            suggestion_type="git_workflow",
            focus_area="git push",
            suggestion_count=1,
        )
    if git and git.behind > 0:
        return SuggestionPlan(
            user_intent="Syncing with remote changes",
            suggestion_type="git_workflow",
            focus_area="git pull",
            suggestion_count=1,
        )

    if context.project_type != ProjectType.UNKNOWN and not gathered.recent_commands:
        return SuggestionPlan(
            user_intent=f"Getting started with a {context.project_type.value} project",
            suggestion_type="workflow",
            focus_area=context.project_type.value,
            suggestion_count=2,
        )
    return None


def parse_plan_response(text: str) -> Optional[SuggestionPlan]:
    """
    Build a plan from the model's JSON reply.

    should_suggest is always forced on; the count is at least 1.
    """
    data = extract_json_object(text)
    if data is None:
        return None

    plan = SuggestionPlan()
    if isinstance(data.get("user_intent"), str):
        plan.user_intent = data["user_intent"]
    if isinstance(data.get("suggestion_type"), str) and data["suggestion_type"]:
        plan.suggestion_type = data["suggestion_type"]
    if isinstance(data.get("focus_area"), str) and data["focus_area"]:
        plan.focus_area = data["focus_area"]
    count = data.get("suggestion_count")
    if isinstance(count, (int, float)) and not isinstance(count, bool):
        plan.suggestion_count = max(1, int(count))
    if parse_bool(data.get("should_suggest")) is False:
        logger.debug("planning.should_suggest_overridden")
    plan.should_suggest = True
    return plan


class PlanningPhase:
    """Heuristic shortcuts first, then one model call."""

    def __init__(self, transport: Transport, timeouts: TimeoutConfig):
        self.transport = transport
        self.timeouts = timeouts

    async def plan(
        self,
        context: TerminalContext,
        gathered: GatheredContext,
        findings: ResearchFindings,
        provider: Provider,
        cancel_token: CancellationToken,
    ) -> SuggestionPlan:
        plan = heuristic_plan(context, gathered)
        if plan is not None:
            logger.info("planning.heuristic",
                        extra={"suggestion_type": plan.suggestion_type, "focus_area": plan.focus_area})
            return plan

        request = CompletionRequest(
            system_prompt=PLANNING_SYSTEM_PROMPT,
            user_prompt=self.build_prompt(context, gathered, findings),
            provider=provider,
            max_tokens=PLANNING_MAX_TOKENS,
            timeout=self.timeouts.planning,
            request_type="planning",
        )
        try:
            reply = await self.transport.complete(request, cancel_token)
        except (TransportError, MissingCredentialError) as e:
            logger.warning("planning.model_call_failed", extra={"error": str(e)})
            return SuggestionPlan()

        plan = parse_plan_response(reply)
        if plan is None:
            logger.info("planning.unparseable_reply", extra={"preview": reply[:200]})
            return SuggestionPlan()

        logger.info("planning.model",
                    extra={"suggestion_type": plan.suggestion_type, "focus_area": plan.focus_area})
        return plan

    @staticmethod
    def build_prompt(context: TerminalContext, gathered: GatheredContext,
                     findings: ResearchFindings) -> str:
        context_section = (
            "CONTEXT:\n" + gathered.formatted_for_prompt()
            + "\n\nENVIRONMENT:\n" + "\n".join(environment_summary(context))
        )
        research = findings.formatted_for_prompt()
        if research:
            context_section += "\n\n" + research

        idle = not gathered.terminal_output and gathered.last_exit_code == 0 and not gathered.recent_commands
        if idle:
            situation = ("User just opened terminal or is idle - suggest useful commands based on "
                         "their frequent usage patterns and current directory.")
        else:
            situation = "User is actively working - suggest helpful next steps based on their activity."

        return f"""Analyze this terminal context and plan helpful command suggestions.

{context_section}

SITUATION: {situation}

Consider:
1. What is the user's apparent intent or workflow?
2. What type of suggestions fit best: "error_fix", "next_step", "workflow", "history_based", or "general"
3. Focus area (if any specific tool/task is relevant)

Don't suggest project-specific commands (npm, cargo, swift) in the home directory or a non-project folder.

Reply as JSON:
{{"user_intent": "brief description", "should_suggest": true, "suggestion_type": "type", "focus_area": "optional focus", "suggestion_count": 2}}"""
