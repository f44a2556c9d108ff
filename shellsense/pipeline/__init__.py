"""
Pipeline Module
===============

Turns terminal state into a short list of command suggestions:
context gathering, optional research, planning and generation, driven by
the SuggestionOrchestrator.
"""

from shellsense.pipeline.cache import SuggestionCache
from shellsense.pipeline.filters import DirectoryFilter
from shellsense.pipeline.generation import SuggestionGenerator
from shellsense.pipeline.models import (
    CommandSuggestion,
    GatheredContext,
    GitInfo,
    PhaseKind,
    PipelinePhase,
    ProjectType,
    ResearchFindings,
    SessionContext,
    SuggestionPlan,
    SuggestionSource,
    TerminalContext,
)
from shellsense.pipeline.normalizer import ResearchDecision, ResponseNormalizer
from shellsense.pipeline.orchestrator import (
    AgentActivityProbe,
    SuggestionOrchestrator,
    TerminalStateProvider,
)
from shellsense.pipeline.planning import PlanningPhase, heuristic_plan
from shellsense.pipeline.research import ResearchPhase
from shellsense.pipeline.tools import LocalResearchTools, ResearchToolRegistry, ToolResult

__all__ = [
    "SuggestionOrchestrator",
    "TerminalStateProvider",
    "AgentActivityProbe",
    "SuggestionCache",
    "DirectoryFilter",
    "SuggestionGenerator",
    "PlanningPhase",
    "heuristic_plan",
    "ResearchPhase",
    "ResponseNormalizer",
    "ResearchDecision",
    "LocalResearchTools",
    "ResearchToolRegistry",
    "ToolResult",
    "CommandSuggestion",
    "GatheredContext",
    "GitInfo",
    "PhaseKind",
    "PipelinePhase",
    "ProjectType",
    "ResearchFindings",
    "SessionContext",
    "SuggestionPlan",
    "SuggestionSource",
    "TerminalContext",
]
