"""
Generative source: a lazily consumed stream of text fragments plus the full
text, available once the stream has been exhausted.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List

from openai import OpenAI

from ..core.config import get_settings
from .llm import get_llm_client, limit_llm_concurrency, resolve_model
from .tools import DEFAULT_TOOLSET, ToolKind, execute_tool_call, openai_tool_specs

logger = logging.getLogger(__name__)


class ResearchStream(ABC):
    """
    Single-use iterator over text fragments.

    ``full_text`` may differ from the concatenation of the fragments when a
    source reports its final aggregate separately.
    """

    def __init__(self) -> None:
        self._parts: List[str] = []
        self._exhausted = False
        self._started = False
        self._source: Iterator[str] | None = None
        self._consumer: Iterator[str] | None = None

    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("research stream can only be consumed once")
        self._started = True
        self._source = self._fragments()
        self._consumer = self._consume(self._source)
        return self._consumer

    def _consume(self, fragments: Iterator[str]) -> Iterator[str]:
        for fragment in fragments:
            if not fragment:
                continue
            self._parts.append(fragment)
            yield fragment
        self._exhausted = True

    def close(self) -> None:
        """Release the underlying provider stream, even if it was abandoned part-way."""
        for gen in (self._consumer, self._source):
            close = getattr(gen, "close", None)
            if close is not None:
                close()

    @property
    def full_text(self) -> str:
        if not self._exhausted:
            raise RuntimeError("full text is only available after the stream is exhausted")
        return self._final_text()

    def _final_text(self) -> str:
        return "".join(self._parts)

    @abstractmethod
    def _fragments(self) -> Iterator[str]: ...


class GenerativeSource(ABC):
    @abstractmethod
    def start_stream(
        self,
        prompt: str,
        toolset: tuple[ToolKind, ...] = DEFAULT_TOOLSET,
        max_tokens: int | None = None,
    ) -> ResearchStream: ...


class OpenAIResearchStream(ResearchStream):
    def __init__(
        self,
        client: OpenAI,
        *,
        model: str,
        prompt: str,
        toolset: tuple[ToolKind, ...],
        max_tokens: int,
        max_tool_rounds: int,
        openrouter: bool,
    ) -> None:
        super().__init__()
        self.client = client
        self.model = model
        self.prompt = prompt
        self.toolset = toolset
        self.max_tokens = max_tokens
        self.max_tool_rounds = max_tool_rounds
        self.openrouter = openrouter

    def _request_kwargs(self, messages: List[Dict[str, Any]], allow_tools: bool) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": True,
        }
        # OpenRouter still speaks max_tokens; newer OpenAI models reject it.
        if self.openrouter:
            kwargs["max_tokens"] = self.max_tokens
        else:
            kwargs["max_completion_tokens"] = self.max_tokens
        if allow_tools and self.toolset:
            kwargs["tools"] = openai_tool_specs(self.toolset)
        return kwargs

    def _fragments(self) -> Iterator[str]:
        messages: List[Dict[str, Any]] = [{"role": "user", "content": self.prompt}]

        for round_index in range(self.max_tool_rounds + 1):
            allow_tools = round_index < self.max_tool_rounds
            round_text: List[str] = []
            # index -> {"id", "name", "arguments_parts"}
            tool_calls_acc: Dict[int, Dict[str, Any]] = {}

            logger.debug(
                "LLM stream request: model=%s round=%s messages=%s",
                self.model, round_index, len(messages),
            )
            with limit_llm_concurrency(), self.client.chat.completions.create(
                **self._request_kwargs(messages, allow_tools)
            ) as stream:
                for chunk in stream:
                    choice = chunk.choices[0] if chunk.choices else None
                    if choice is None or choice.delta is None:
                        continue
                    delta = choice.delta

                    if delta.content:
                        round_text.append(delta.content)
                        yield delta.content

                    # Tool calls arrive incrementally by index
                    for tc_delta in delta.tool_calls or []:
                        acc = tool_calls_acc.setdefault(
                            tc_delta.index,
                            {"id": "", "name": "", "arguments_parts": []},
                        )
                        if tc_delta.id:
                            acc["id"] = tc_delta.id
                        if tc_delta.function:
                            if tc_delta.function.name:
                                acc["name"] = tc_delta.function.name
                            if tc_delta.function.arguments:
                                acc["arguments_parts"].append(tc_delta.function.arguments)

            if not tool_calls_acc:
                return

            calls = [tool_calls_acc[i] for i in sorted(tool_calls_acc)]
            messages.append({
                "role": "assistant",
                "content": "".join(round_text) or None,
                "tool_calls": [
                    {
                        "id": c["id"],
                        "type": "function",
                        "function": {"name": c["name"], "arguments": "".join(c["arguments_parts"])},
                    }
                    for c in calls
                ],
            })
            for c in calls:
                result = execute_tool_call(c["name"], "".join(c["arguments_parts"]))
                logger.info(
                    "Research tool executed",
                    extra={"step": f"tool:{result.kind.value}"},
                )
                messages.append({
                    "role": "tool",
                    "tool_call_id": c["id"],
                    "content": result.as_text(),
                })


class OpenAIResearchSource(GenerativeSource):
    def __init__(self, client: OpenAI | None = None, model: str | None = None):
        settings = get_settings()
        self.client = client or get_llm_client()
        self.model = model or resolve_model()
        self.max_tool_rounds = settings.LLM_MAX_TOOL_ROUNDS
        self.default_max_tokens = settings.LLM_MAX_OUTPUT_TOKENS
        self.openrouter = bool(settings.OPENROUTER_API_KEY)

    def start_stream(
        self,
        prompt: str,
        toolset: tuple[ToolKind, ...] = DEFAULT_TOOLSET,
        max_tokens: int | None = None,
    ) -> ResearchStream:
        return OpenAIResearchStream(
            self.client,
            model=self.model,
            prompt=prompt,
            toolset=tuple(toolset),
            max_tokens=max_tokens or self.default_max_tokens,
            max_tool_rounds=self.max_tool_rounds,
            openrouter=self.openrouter,
        )
