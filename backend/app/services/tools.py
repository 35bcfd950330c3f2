"""
Research tools offered to the model during a run.

The set is closed: each ToolKind maps to exactly one operation with a typed
result, and dispatch is an explicit match over the kind.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Union

logger = logging.getLogger(__name__)

ANALYSIS_PREVIEW_CHARS = 100


class ToolKind(str, enum.Enum):
    SEARCH_WEB = "searchWeb"
    ANALYZE_DATA = "analyzeData"


@dataclass(frozen=True)
class SearchResult:
    query: str
    results: str
    kind: ToolKind = ToolKind.SEARCH_WEB

    def as_text(self) -> str:
        return self.results


@dataclass(frozen=True)
class AnalysisResult:
    focus: str
    analysis: str
    kind: ToolKind = ToolKind.ANALYZE_DATA

    def as_text(self) -> str:
        return self.analysis


ToolResult = Union[SearchResult, AnalysisResult]


TOOL_SCHEMAS: Dict[ToolKind, Dict[str, Any]] = {
    ToolKind.SEARCH_WEB: {
        "description": "Search the web for information on a specific topic",
        "parameters": {
            "type": "object",
            "properties": {
                "searchQuery": {"type": "string", "description": "The search query"},
            },
            "required": ["searchQuery"],
        },
    },
    ToolKind.ANALYZE_DATA: {
        "description": "Analyze and synthesize information from multiple sources",
        "parameters": {
            "type": "object",
            "properties": {
                "data": {"type": "string", "description": "The data to analyze"},
                "focus": {"type": "string", "description": "What aspect to focus on"},
            },
            "required": ["data", "focus"],
        },
    },
}

DEFAULT_TOOLSET: tuple[ToolKind, ...] = (ToolKind.SEARCH_WEB, ToolKind.ANALYZE_DATA)


def openai_tool_specs(toolset: tuple[ToolKind, ...]) -> List[Dict[str, Any]]:
    """Function-calling definitions for the chat completions API."""
    return [
        {
            "type": "function",
            "function": {
                "name": kind.value,
                "description": TOOL_SCHEMAS[kind]["description"],
                "parameters": TOOL_SCHEMAS[kind]["parameters"],
            },
        }
        for kind in toolset
    ]


def search_web(search_query: str) -> SearchResult:
    # No search backend is wired in; the model gets a placeholder result.
    return SearchResult(
        query=search_query,
        results=(
            f"Found information about: {search_query}. "
            "[Simulated search results would appear here in production]"
        ),
    )


def analyze_data(data: str, focus: str) -> AnalysisResult:
    return AnalysisResult(
        focus=focus,
        analysis=f"Analysis focused on {focus}: {data[:ANALYSIS_PREVIEW_CHARS]}...",
    )


def parse_tool_kind(name: str) -> ToolKind:
    try:
        return ToolKind(name)
    except ValueError:
        raise ValueError(f"Unknown research tool: {name!r}") from None


def execute_tool(kind: ToolKind, arguments: Dict[str, Any]) -> ToolResult:
    if kind is ToolKind.SEARCH_WEB:
        return search_web(str(arguments.get("searchQuery") or ""))
    if kind is ToolKind.ANALYZE_DATA:
        return analyze_data(
            str(arguments.get("data") or ""),
            str(arguments.get("focus") or ""),
        )
    raise ValueError(f"Unhandled research tool: {kind!r}")


def execute_tool_call(name: str, raw_arguments: str | None) -> ToolResult:
    """Run a tool call as emitted by the model (name + JSON argument string)."""
    kind = parse_tool_kind(name)
    try:
        arguments = json.loads(raw_arguments) if raw_arguments else {}
    except json.JSONDecodeError:
        logger.warning("Failed to parse tool call arguments: %s", (raw_arguments or "")[:200])
        arguments = {}
    if not isinstance(arguments, dict):
        arguments = {}
    return execute_tool(kind, arguments)
