"""
Suggestion Orchestrator
=======================

Owns the suggestion pipeline for one terminal session:

- Phase state machine: Idle -> GatheringContext -> [Researching] -> Planning -> Generating -> Idle
- Suggestion cache keyed by context fingerprint
- Debounce and post-command timers, cooldown after commands
- Cancellation of in-flight work when the situation changes

Design:
- All mutable state is touched only from the event loop that calls in;
  no locks are used
- Three task slots (debounce, pipeline, post-command), each replacing its
  predecessor
- Every run carries a CancellationToken checked at phase boundaries; a
  cancelled run never advances the phase or writes the cache
"""

import asyncio
import dataclasses
import time
import uuid
from typing import Callable, List, Optional, Protocol

from shellsense.llm.transport import Transport, provider_from_config
from shellsense.pipeline.cache import SuggestionCache
from shellsense.pipeline.filters import DirectoryFilter
from shellsense.pipeline.generation import SuggestionGenerator
from shellsense.pipeline.models import (
    CommandSuggestion,
    GatheredContext,
    PipelinePhase,
    ResearchFindings,
    SessionContext,
    TerminalContext,
    environment_summary,
)
from shellsense.pipeline.planning import PlanningPhase
from shellsense.pipeline.research import ResearchPhase
from shellsense.pipeline.tools import LocalResearchTools, ResearchToolRegistry
from shellsense.utils.cancellation import CancellationToken
from shellsense.utils.config import Config
from shellsense.utils.errors import ConfigurationError, PipelineCancelledError, ShellSenseError
from shellsense.utils.logging import get_logger, set_pipeline_run_id

logger = get_logger(__name__)


class TerminalStateProvider(Protocol):
    """Host capability: current shell state."""

    def get_terminal_state(self) -> TerminalContext:
        ...


class AgentActivityProbe(Protocol):
    """Host capability: whether a chat agent currently owns the terminal."""

    def is_agent_busy(self) -> bool:
        ...


class SuggestionOrchestrator:
    """
    Suggestion pipeline for one terminal session.

    Public state read by the host: phase, suggestions, last_error, is_visible.
    Register on_change callbacks to be told when any of them change.
    """

    def __init__(
        self,
        transport: Transport,
        config: Config,
        terminal_state: TerminalStateProvider,
        agent_probe: AgentActivityProbe,
        tools: Optional[ResearchToolRegistry] = None,
        directory_filter: Optional[DirectoryFilter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.config = config
        self.terminal_state = terminal_state
        self.agent_probe = agent_probe
        self._clock = clock

        settings = config.suggestions
        self.cache = SuggestionCache(settings.cache_ttl_seconds, settings.cache_max_entries, clock=clock)
        self.session = SessionContext()
        self.research = ResearchPhase(transport, config.research, config.timeouts,
                                      tools or LocalResearchTools())
        self.planner = PlanningPhase(transport, config.timeouts)
        self.generator = SuggestionGenerator(transport, settings, config.timeouts, directory_filter)

        self.phase = PipelinePhase.idle()
        self.suggestions: List[CommandSuggestion] = []
        self.last_error: Optional[str] = None
        self.is_visible = False
        self.user_dismissed = False

        self._last_context: Optional[TerminalContext] = None
        self._last_processed_hash: Optional[str] = None
        self._last_command_at: Optional[float] = None

        self._debounce_task: Optional[asyncio.Task] = None
        self._pipeline_task: Optional[asyncio.Task] = None
        self._post_command_task: Optional[asyncio.Task] = None
        self._run_token: Optional[CancellationToken] = None
        self._listeners: List[Callable[['SuggestionOrchestrator'], None]] = []

    @classmethod
    def from_config(
        cls,
        config: Config,
        terminal_state: TerminalStateProvider,
        agent_probe: AgentActivityProbe,
        configure_logging: bool = True,
        **kwargs,
    ) -> 'SuggestionOrchestrator':
        """
        Build an orchestrator and its Transport from one Config.

        Applies config.logging unless configure_logging is False (hosts
        that own their logging setup). Extra kwargs go to __init__.
        """
        if configure_logging:
            config.logging.apply()
        transport = Transport.from_config(config)
        logger.info(
            "pipeline.orchestrator.created",
            extra={"provider": config.suggestions.provider, "model": config.suggestions.model}
        )
        return cls(transport, config, terminal_state, agent_probe, **kwargs)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def on_change(self, callback: Callable[['SuggestionOrchestrator'], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback(self)

    def _set_phase(self, phase: PipelinePhase, token: Optional[CancellationToken] = None) -> None:
        if token is not None:
            token.raise_if_cancelled()
        if phase != self.phase:
            logger.debug("pipeline.phase.changed", extra={"phase": phase.kind.value, "detail": phase.detail})
            self.phase = phase
            self._notify()

    def _set_suggestions(self, suggestions: List[CommandSuggestion]) -> None:
        self.suggestions = list(suggestions)
        self.is_visible = bool(suggestions)
        self._notify()

    @property
    def in_cooldown(self) -> bool:
        if self._last_command_at is None:
            return False
        return self._clock() - self._last_command_at < self.config.suggestions.cooldown_seconds

    @property
    def has_pending_work(self) -> bool:
        return any(task is not None and not task.done()
                   for task in (self._debounce_task, self._pipeline_task, self._post_command_task))

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def trigger_suggestions(self, context: TerminalContext) -> None:
        """
        React to new terminal state.

        Serves cached suggestions when possible; otherwise debounces and
        starts a pipeline run. Must be called from the event loop.
        """
        if self.agent_probe.is_agent_busy():
            self.cancel_active_work()
            self._set_suggestions([])
            return

        if not self.config.suggestions.enabled:
            self._set_suggestions([])
            return
        if not self.config.is_configured:
            return

        last = self._last_context
        cwd_changed = last is None or last.cwd != context.cwd
        exit_changed = last is None or last.last_exit_code != context.last_exit_code
        output_changed = len(last.last_output if last else "") != len(context.last_output)

        meaningful = cwd_changed or exit_changed or output_changed
        if meaningful:
            self.user_dismissed = False
            if self._pipeline_task is not None or self._run_token is not None:
                logger.info("pipeline.cancelled_by_context_change",
                            extra={"cwd_changed": cwd_changed, "exit_changed": exit_changed})
                self._cancel_pipeline()
                self._set_phase(PipelinePhase.idle())

        output_hash = f"{context.cwd}|{len(context.last_output)}|{context.last_exit_code}"
        if output_hash == self._last_processed_hash and not cwd_changed and not exit_changed:
            logger.debug("trigger.duplicate_skipped")
            return
        self._last_processed_hash = output_hash
        self._last_context = context

        if not self.in_cooldown and not self.user_dismissed:
            cached = self.cache.get(context.cache_key)
            if cached is not None:
                logger.info("suggestions.cache_hit", extra={"count": len(cached)})
                self._set_suggestions(cached)
                return

        delay = (self.config.suggestions.meaningful_debounce_seconds if meaningful
                 else self.config.suggestions.debounce_seconds)
        self._cancel_task(self._debounce_task)
        self._debounce_task = asyncio.create_task(self._debounce_then_run(delay))

    def trigger_startup(self) -> None:
        """Run immediately with research forced on, e.g. when a tab opens."""
        context = self.terminal_state.get_terminal_state()
        self._last_context = context
        self._start_pipeline(context, is_startup=True)

    def command_executed(self, command: Optional[str] = None, cwd: Optional[str] = None,
                         wait_for_cwd_update: bool = False) -> None:
        """
        A command was run (typed or accepted from the suggestions).

        Clears suggestions and schedules a fresh run once the command has
        had time to finish, unless the host will call trigger_suggestions
        itself after the directory changes.
        """
        if self.agent_probe.is_agent_busy():
            return

        self.cancel_active_work()
        self.suggestions = []
        self.is_visible = False
        self.last_error = None
        self._set_phase(PipelinePhase.idle())
        self.user_dismissed = False
        self._last_processed_hash = None
        self._last_command_at = self._clock()
        self.research.record_command()

        if self._last_context is not None:
            self.cache.invalidate(self._last_context.cache_key)

        directory = cwd or (self._last_context.cwd if self._last_context else None)
        if command and directory:
            self.session.add(command, directory)

        self._notify()
        if wait_for_cwd_update:
            return

        self._post_command_task = asyncio.create_task(self._post_command_run())

    def user_activity_detected(self, context: TerminalContext, command: Optional[str] = None) -> None:
        """The user typed something without accepting a suggestion."""
        if self.agent_probe.is_agent_busy():
            return

        self.cancel_active_work()
        self.user_dismissed = False
        self._last_processed_hash = None

        if command:
            self.session.add(command, context.cwd)
            self.research.record_command()

        self._last_command_at = self._clock()
        self.last_error = None
        if self._last_context is not None:
            self.cache.invalidate(self._last_context.cache_key)
        self._last_context = context
        self._set_suggestions([])

    async def generate_suggestions_now(self, context: Optional[TerminalContext] = None) -> List[CommandSuggestion]:
        """Run the pipeline immediately, bypassing debounce and cache."""
        self._cancel_task(self._debounce_task)
        self._debounce_task = None
        context = context or self.terminal_state.get_terminal_state()
        self._last_context = context
        await self.run_pipeline(context)
        return self.suggestions

    def resume_after_agent(self) -> None:
        self.trigger_suggestions(self.terminal_state.get_terminal_state())

    def clear_suggestions(self, user_initiated: bool = False) -> None:
        self._cancel_task(self._debounce_task)
        self._debounce_task = None
        self.last_error = None
        if user_initiated:
            self.user_dismissed = True
        self._set_suggestions([])

    def toggle_visibility(self) -> None:
        self.is_visible = not self.is_visible
        self._notify()
        if self.is_visible and not self.suggestions and self._last_context is not None:
            self._last_processed_hash = None
            self.trigger_suggestions(self._last_context)

    # ------------------------------------------------------------------
    # Task management
    # ------------------------------------------------------------------

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()

    def _cancel_pipeline(self) -> None:
        if self._run_token is not None:
            self._run_token.cancel()
            self._run_token = None
        self._cancel_task(self._pipeline_task)
        self._pipeline_task = None

    def cancel_active_work(self) -> None:
        had_work = self.has_pending_work or self._run_token is not None
        self._cancel_task(self._debounce_task)
        self._debounce_task = None
        self._cancel_task(self._post_command_task)
        self._post_command_task = None
        self._cancel_pipeline()
        if had_work:
            self._set_phase(PipelinePhase.idle())

    def _start_pipeline(self, context: TerminalContext, is_startup: bool = False) -> None:
        self._cancel_pipeline()
        self._pipeline_task = asyncio.create_task(self.run_pipeline(context, is_startup))

    async def _debounce_then_run(self, delay: float) -> None:
        await asyncio.sleep(delay)
        context = self.terminal_state.get_terminal_state()
        self._last_context = context
        self._debounce_task = None
        self._start_pipeline(context)

    async def _post_command_run(self) -> None:
        settings = self.config.suggestions
        await asyncio.sleep(settings.cooldown_seconds + settings.post_command_delay_seconds)

        state = self.terminal_state.get_terminal_state()
        self.session.update_last_exit_code(state.last_exit_code)
        context = dataclasses.replace(state, recent_commands=self.session.recent_command_strings(5))
        self._last_context = context
        self._post_command_task = None
        self._start_pipeline(context)

    async def drain(self) -> None:
        """Wait until no debounce, post-command or pipeline task is pending."""
        while True:
            pending = [task for task in (self._debounce_task, self._post_command_task, self._pipeline_task)
                       if task is not None and not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        self.cancel_active_work()
        await self.drain()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run_pipeline(self, context: TerminalContext, is_startup: bool = False) -> None:
        """
        Run one full pass: gather, research (when triggered), plan, generate.

        Errors end the run in Idle with last_error set; cancellation ends it
        silently.
        """
        if self.agent_probe.is_agent_busy():
            logger.debug("pipeline.skipped_agent_busy")
            return

        try:
            provider = provider_from_config(self.config)
        except ConfigurationError as e:
            self.last_error = str(e)
            self._notify()
            return

        if self._run_token is not None:
            self._run_token.cancel()
        token = CancellationToken()
        self._run_token = token
        run_id = uuid.uuid4().hex
        set_pipeline_run_id(run_id)
        logger.info("pipeline.run.started", extra={"cwd": context.cwd, "is_startup": is_startup})

        try:
            await self._execute(context, provider, token, is_startup)
        except PipelineCancelledError:
            logger.debug("pipeline.run.cancelled")
        except ShellSenseError as e:
            if not token.cancelled:
                logger.warning("pipeline.run.failed", extra={"error_code": e.error_code, "error": str(e)})
                self.last_error = str(e)
                self._set_phase(PipelinePhase.idle())
                self._notify()
        except Exception as e:
            # Unexpected error
            logger.error("pipeline.run.crashed", extra={"error": str(e)}, exc_info=True)
            if not token.cancelled:
                self.last_error = f"Suggestion pipeline failed: {e}"
                self._set_phase(PipelinePhase.idle())
                self._notify()
        finally:
            if self._run_token is token:
                self._run_token = None
            set_pipeline_run_id(None)

    async def _execute(self, context: TerminalContext, provider, token: CancellationToken,
                       is_startup: bool) -> None:
        self._set_phase(PipelinePhase.gathering_context("Reading terminal state..."), token)
        gathered = self._gather(context)

        findings = ResearchFindings()
        if self.research.should_research(context, gathered, is_startup):
            findings = await self.research.run(
                context, gathered, provider, token,
                on_step=lambda step, detail: self._set_phase(PipelinePhase.researching(detail, step), token),
            )
            token.raise_if_cancelled()
            self.research.mark_completed(context.cwd)

        self._set_phase(PipelinePhase.planning(), token)
        plan = await self.planner.plan(context, gathered, findings, provider, token)

        suggestions: List[CommandSuggestion] = []
        if plan.should_suggest:
            self._set_phase(PipelinePhase.generating(), token)
            suggestions = await self.generator.generate(plan, gathered, context, findings, provider, token)

        token.raise_if_cancelled()
        self.last_error = None
        if suggestions:
            self.cache.put(context.cache_key, suggestions)
        self._set_suggestions(suggestions)
        self._set_phase(PipelinePhase.idle())
        logger.info("pipeline.run.completed",
                    extra={"count": len(suggestions), "suggestion_type": plan.suggestion_type})

    def _gather(self, context: TerminalContext) -> GatheredContext:
        return GatheredContext(
            cwd=context.cwd,
            recent_commands=list(context.recent_commands) or self.session.recent_command_strings(10),
            frequent_commands=list(context.frequent_commands),
            environment_info=environment_summary(context),
            terminal_output=context.last_output,
            last_exit_code=context.last_exit_code,
        )
