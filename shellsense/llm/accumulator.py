"""
Streaming tool-call reassembly.

Vendors stream tool arguments as JSON text fragments that are usually not
valid JSON until the last one arrives.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shellsense.llm.types import ParsedToolCall


@dataclass
class _PendingCall:
    name: str = ""
    arguments: List[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Collects fragmented tool-call deltas keyed by call id."""

    def __init__(self):
        self._calls: Dict[str, _PendingCall] = {}

    def add_delta(self, call_id: str, name: Optional[str] = None, args_delta: Optional[str] = None) -> None:
        """
        Record one fragment for a tool call.

        Args:
            call_id: Stable id of the call
            name: Tool name; only the first non-empty value is kept
            args_delta: Next slice of the JSON argument text
        """
        pending = self._calls.setdefault(call_id, _PendingCall())
        if name and not pending.name:
            pending.name = name
        if args_delta:
            pending.arguments.append(args_delta)

    def get_completed_tool_calls(self) -> List[ParsedToolCall]:
        """
        Build calls from everything accumulated so far.

        Calls without a name are skipped. Argument text that is not a JSON
        object yields an empty argument map. Safe to call repeatedly.
        """
        completed = []
        for call_id, pending in self._calls.items():
            if not pending.name:
                continue
            completed.append(ParsedToolCall(
                id=call_id,
                name=pending.name,
                arguments=_parse_arguments("".join(pending.arguments)),
            ))
        return completed

    def has_calls(self) -> bool:
        return any(p.name for p in self._calls.values())

    def reset(self) -> None:
        self._calls.clear()


def _parse_arguments(text: str) -> Dict:
    if not text.strip():
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
