"""Token usage accounting per request type and backend."""

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass
class UsageTotals:
    requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_requests: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class UsageTracker:
    """Running totals keyed by (request_type, provider)."""

    def __init__(self):
        self._totals: Dict[Tuple[str, str], UsageTotals] = {}

    def record(self, request_type: str, provider: str, prompt_tokens: int,
               completion_tokens: int, is_estimated: bool = False) -> None:
        totals = self._totals.setdefault((request_type, provider), UsageTotals())
        totals.requests += 1
        totals.prompt_tokens += prompt_tokens
        totals.completion_tokens += completion_tokens
        if is_estimated:
            totals.estimated_requests += 1

    def totals_for(self, request_type: str, provider: str) -> UsageTotals:
        return self._totals.get((request_type, provider), UsageTotals())

    def by_request_type(self) -> Dict[str, UsageTotals]:
        merged: Dict[str, UsageTotals] = {}
        for (request_type, _), totals in self._totals.items():
            target = merged.setdefault(request_type, UsageTotals())
            target.requests += totals.requests
            target.prompt_tokens += totals.prompt_tokens
            target.completion_tokens += totals.completion_tokens
            target.estimated_requests += totals.estimated_requests
        return merged

    def reset(self) -> None:
        self._totals.clear()
