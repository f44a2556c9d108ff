"""
Response normalizer for free-form model replies.

Planning and research replies are nominally JSON but routinely arrive
wrapped in markdown, followed by prose, or as plain sentences. The
normalizer turns them into a typed decision or None; it never raises on
malformed input.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shellsense.utils.logging import get_logger

logger = get_logger(__name__)


# Alias tables, first key present wins
DONE_KEYS = ("done", "finished", "complete")
TOOL_KEYS = ("tool", "action", "command")
ARGS_KEYS = ("args", "arguments", "parameters")
REASON_KEYS = ("reason", "why")
SUMMARY_KEYS = ("summary", "conclusion", "findings")

# Flat argument keys accepted when no args object is present
FLAT_ARG_KEYS = ("path", "pattern")

_TRUE_STRINGS = {"true", "yes", "done", "1"}
_FALSE_STRINGS = {"false", "no", "0"}

COMPLETION_PHRASES = (
    "i have enough context",
    "have enough information",
    "sufficient context",
    "sufficient information",
    "ready to suggest",
    "no more research needed",
    "research complete",
    "done researching",
    "gathered enough",
)

_PATH_TOKEN = r"([\w./\-]+)"

READ_PATTERNS = [
    re.compile(rf"read (?:the )?{_PATH_TOKEN}", re.IGNORECASE),
    re.compile(rf"check (?:the )?{_PATH_TOKEN}", re.IGNORECASE),
    re.compile(rf"look at (?:the )?{_PATH_TOKEN}", re.IGNORECASE),
    re.compile(rf"examine (?:the )?{_PATH_TOKEN}", re.IGNORECASE),
    re.compile(rf"open (?:the )?{_PATH_TOKEN}", re.IGNORECASE),
]

LIST_PATTERNS = [
    re.compile(rf"list (?:the )?(?:contents of )?{_PATH_TOKEN}", re.IGNORECASE),
    re.compile(rf"explore (?:the )?{_PATH_TOKEN}", re.IGNORECASE),
    re.compile(rf"see what'?s in (?:the )?{_PATH_TOKEN}", re.IGNORECASE),
]


@dataclass
class ResearchDecision:
    """One research step: a tool request or a completion signal."""
    done: bool = False
    tool: Optional[str] = None
    args: Dict[str, str] = field(default_factory=dict)
    reason: Optional[str] = None
    summary: Optional[str] = None


# ============================================================================
# JSON extraction helpers
# ============================================================================

def strip_code_fence(text: str) -> str:
    """Return the fenced block contents if the text has a ``` fence."""
    if "```" not in text:
        return text.strip()
    inside = False
    kept: List[str] = []
    for line in text.splitlines():
        if line.strip().startswith("```"):
            inside = not inside
            continue
        if inside:
            kept.append(line)
    return "\n".join(kept).strip() if kept else text.strip()


def _matching_brace(text: str, start: int) -> Optional[int]:
    """Index of the `}` closing the `{` at start, tracking depth and strings."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """First balanced JSON object in text, tolerating prose after it."""
    if not text:
        return None
    body = strip_code_fence(text)
    start = body.find("{")
    if start == -1:
        return None
    end = _matching_brace(body, start)
    if end is None:
        return None
    try:
        parsed = json.loads(body[start:end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_array(text: str) -> Optional[List[Any]]:
    """JSON array spanning the first `[` to the last `]`."""
    if not text:
        return None
    body = strip_code_fence(text)
    start = body.find("[")
    end = body.rfind("]")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(body[start:end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, list) else None


def parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


def _first(data: Dict[str, Any], keys) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _text_field(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        return "; ".join(_stringify(v) for v in value)
    return _stringify(value)


# ============================================================================
# Normalizer
# ============================================================================

class ResponseNormalizer:
    """
    Layered parser for research replies.

    Strategies (in order):
    1. JSON object, with field aliases
    2. Natural-language completion phrases
    3. Natural-language tool requests ("read the X", "list Y")
    """

    def __init__(self):
        self.last_strategy_used: Optional[str] = None

    def parse(self, text: str) -> Optional[ResearchDecision]:
        """
        Parse one research reply.

        Returns:
            ResearchDecision, or None when no strategy recognises the text
        """
        self.last_strategy_used = None
        if not text or not text.strip():
            return None

        result = self._try_json(text)
        if result:
            self.last_strategy_used = "json"
            return result

        result = self._try_completion_phrase(text)
        if result:
            self.last_strategy_used = "completion_phrase"
            return result

        result = self._try_natural_language_tool(text)
        if result:
            self.last_strategy_used = "natural_language"
            return result

        logger.debug("normalizer.no_result", extra={"preview": text[:200]})
        return None

    def _try_json(self, text: str) -> Optional[ResearchDecision]:
        data = extract_json_object(text)
        if data is None:
            return None

        tool = _first(data, TOOL_KEYS)
        tool = str(tool).strip() if tool is not None else None
        summary = _text_field(_first(data, SUMMARY_KEYS))
        reason = _text_field(_first(data, REASON_KEYS))

        done = None
        for key in DONE_KEYS:
            if key in data:
                done = parse_bool(data[key])
                if done is not None:
                    break
        if tool and tool.lower() == "done":
            done, tool = True, None
        if done is None:
            done = summary is not None and not tool

        args: Dict[str, str] = {}
        raw_args = _first(data, ARGS_KEYS)
        if isinstance(raw_args, dict):
            args = {str(k): _stringify(v) for k, v in raw_args.items()}
        else:
            for key in FLAT_ARG_KEYS:
                if data.get(key) is not None:
                    args[key] = _stringify(data[key])

        if not done and not tool:
            return None
        return ResearchDecision(done=done, tool=tool or None, args=args, reason=reason, summary=summary)

    def _try_completion_phrase(self, text: str) -> Optional[ResearchDecision]:
        lowered = text.lower()
        for phrase in COMPLETION_PHRASES:
            if phrase in lowered:
                return ResearchDecision(done=True, summary=text.strip()[:200])
        return None

    def _try_natural_language_tool(self, text: str) -> Optional[ResearchDecision]:
        for pattern in READ_PATTERNS:
            match = pattern.search(text)
            if match:
                path = match.group(1).rstrip(".")
                if path and ("." in path or "/" in path):
                    return ResearchDecision(tool="read_file", args={"path": path},
                                            reason="Inferred from reply text")
        for pattern in LIST_PATTERNS:
            match = pattern.search(text)
            if match:
                path = match.group(1).rstrip(".") or "."
                return ResearchDecision(tool="list_dir", args={"path": path},
                                        reason="Inferred from reply text")
        return None
