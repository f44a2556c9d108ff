"""
Tests for the planning phase: heuristic shortcuts and the model fallback.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from shellsense.llm.types import Provider
from shellsense.pipeline.models import (
    GatheredContext,
    GitInfo,
    ProjectType,
    ResearchFindings,
    SuggestionPlan,
    TerminalContext,
)
from shellsense.pipeline.planning import PlanningPhase, heuristic_plan, parse_plan_response
from shellsense.utils.cancellation import CancellationToken
from shellsense.utils.config import TimeoutConfig
from shellsense.utils.errors import ProviderAPIError

PROVIDER = Provider.openai("gpt-4o-mini")


def _gathered(context: TerminalContext, recent=None) -> GatheredContext:
    return GatheredContext(cwd=context.cwd, recent_commands=recent or [],
                           terminal_output=context.last_output, last_exit_code=context.last_exit_code)


class TestHeuristics:

    def test_failed_command_means_error_fix(self):
        context = TerminalContext(cwd="/p", last_exit_code=127, git_info=GitInfo("main", is_dirty=True))

        plan = heuristic_plan(context, _gathered(context))

        assert plan.suggestion_type == "error_fix"
        assert plan.suggestion_count == 2

    def test_dirty_and_ahead_focuses_on_push(self):
        context = TerminalContext(cwd="/p", git_info=GitInfo("main", is_dirty=True, ahead=1))

        plan = heuristic_plan(context, _gathered(context))

        assert plan.suggestion_type == "git_workflow"
        assert plan.focus_area == "git push"
        assert plan.suggestion_count == 2

    def test_dirty_only(self):
        context = TerminalContext(cwd="/p", git_info=GitInfo("main", is_dirty=True))

        assert heuristic_plan(context, _gathered(context)).focus_area == "git"

    def test_ahead_clean(self):
        context = TerminalContext(cwd="/p", git_info=GitInfo("main", ahead=3))

        plan = heuristic_plan(context, _gathered(context))

        assert (plan.focus_area, plan.suggestion_count) == ("git push", 1)

    def test_behind(self):
        context = TerminalContext(cwd="/p", git_info=GitInfo("main", behind=2))

        assert heuristic_plan(context, _gathered(context)).focus_area == "git pull"

    def test_new_project_without_history(self):
        context = TerminalContext(cwd="/p", project_type=ProjectType.GO)

        plan = heuristic_plan(context, _gathered(context))

        assert plan.suggestion_type == "workflow"
        assert plan.focus_area == "go"

    def test_project_with_history_needs_model(self):
        context = TerminalContext(cwd="/p", project_type=ProjectType.GO)

        assert heuristic_plan(context, _gathered(context, recent=["go build"])) is None


class TestParsePlanResponse:

    def test_should_suggest_is_forced_on(self):
        plan = parse_plan_response(
            '{"user_intent": "idle", "should_suggest": false, "suggestion_type": "general", "suggestion_count": 0}'
        )

        assert plan.should_suggest is True
        assert plan.suggestion_count == 1

    def test_fields_copied(self):
        plan = parse_plan_response(
            '```json\n{"user_intent": "deploying", "suggestion_type": "next_step", '
            '"focus_area": "docker", "suggestion_count": 3}\n```'
        )

        assert plan.user_intent == "deploying"
        assert plan.suggestion_type == "next_step"
        assert plan.focus_area == "docker"
        assert plan.suggestion_count == 3

    def test_garbage(self):
        assert parse_plan_response("sure, let me think") is None


class TestPlanningPhase:

    def setup_method(self):
        self.transport = Mock()
        self.transport.complete = AsyncMock()
        self.phase = PlanningPhase(self.transport, TimeoutConfig())

    @pytest.mark.asyncio
    async def test_heuristic_skips_model_call(self):
        context = TerminalContext(cwd="/home/u", last_output="zsh: command not found: gti", last_exit_code=127)

        plan = await self.phase.plan(context, _gathered(context), ResearchFindings(), PROVIDER, CancellationToken())

        assert plan.suggestion_type == "error_fix"
        self.transport.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_model_plan(self):
        self.transport.complete.return_value = '{"user_intent": "exploring", "suggestion_type": "history_based"}'
        context = TerminalContext(cwd="/p")
        token = CancellationToken()

        plan = await self.phase.plan(context, _gathered(context, ["ls"]), ResearchFindings(), PROVIDER, token)

        assert plan.suggestion_type == "history_based"
        request, passed_token = self.transport.complete.call_args.args
        assert request.request_type == "planning"
        assert request.max_tokens == 300
        assert request.timeout == 20.0
        assert passed_token is token
        assert "SITUATION: User is actively working" in request.user_prompt

    @pytest.mark.asyncio
    async def test_idle_situation_prompt(self):
        self.transport.complete.return_value = "{}"
        context = TerminalContext(cwd="/p")

        await self.phase.plan(context, _gathered(context), ResearchFindings(), PROVIDER, CancellationToken())

        request = self.transport.complete.call_args.args[0]
        assert "User just opened terminal or is idle" in request.user_prompt

    @pytest.mark.asyncio
    async def test_transport_failure_falls_back_to_general_plan(self):
        self.transport.complete.side_effect = ProviderAPIError(500, "server error")
        context = TerminalContext(cwd="/p")

        plan = await self.phase.plan(context, _gathered(context, ["ls"]), ResearchFindings(), PROVIDER,
                                     CancellationToken())

        assert plan == SuggestionPlan()

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self):
        self.transport.complete.return_value = "I think they want git."
        context = TerminalContext(cwd="/p")

        plan = await self.phase.plan(context, _gathered(context, ["ls"]), ResearchFindings(), PROVIDER,
                                     CancellationToken())

        assert plan.suggestion_type == "general"
        assert plan.should_suggest is True
