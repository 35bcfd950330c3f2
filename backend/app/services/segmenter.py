"""
Stream segmentation: turns an unbounded sequence of text fragments into
discrete, numbered research steps.

Segmentation is a heuristic. The buffer is flushed as an ``analysis`` step as
soon as it is longer than the threshold and contains a line break; whatever is
left when the source is exhausted becomes a single ``summary`` step. Boundaries
are not guaranteed to be semantically meaningful, only non-empty.

Buffer and counter live in memory for the duration of one run. Unflushed text
is lost if the process dies; only persisted steps survive a restart.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from .accounting import estimate_tokens

DEFAULT_FLUSH_THRESHOLD = 100

STEP_TYPE_ANALYSIS = "analysis"
STEP_TYPE_SUMMARY = "summary"


@dataclass(frozen=True)
class SegmentedStep:
    step_number: int
    step_type: str
    content: str
    tokens_used: int


class StreamSegmenter:
    def __init__(self, threshold: int = DEFAULT_FLUSH_THRESHOLD):
        self.threshold = threshold
        self._buffer = ""
        self._step_number = 0
        self._finished = False

    @property
    def emitted(self) -> int:
        return self._step_number

    @property
    def buffered(self) -> str:
        return self._buffer

    def should_flush(self) -> bool:
        return len(self._buffer) > self.threshold and "\n" in self._buffer

    def feed(self, fragment: str) -> SegmentedStep | None:
        """
        Append one fragment and flush if the predicate holds.

        The predicate is evaluated once per fragment, after the whole fragment
        has been appended, regardless of how many line breaks it carries.
        """
        if self._finished:
            raise RuntimeError("segmenter already finished")
        if not fragment:
            return None
        self._buffer += fragment
        if not self.should_flush():
            return None
        return self._flush(STEP_TYPE_ANALYSIS)

    def finish(self) -> SegmentedStep | None:
        """Emit the trailing ``summary`` step, if any non-whitespace text remains."""
        if self._finished:
            return None
        self._finished = True
        if not self._buffer.strip():
            self._buffer = ""
            return None
        return self._flush(STEP_TYPE_SUMMARY)

    def segment(self, fragments: Iterable[str]) -> Iterator[SegmentedStep]:
        for fragment in fragments:
            step = self.feed(fragment)
            if step is not None:
                yield step
        step = self.finish()
        if step is not None:
            yield step

    def _flush(self, step_type: str) -> SegmentedStep | None:
        raw = self._buffer
        self._buffer = ""
        content = raw.strip()
        if not content:
            # whitespace-only buffer: nothing worth recording
            return None
        self._step_number += 1
        return SegmentedStep(
            step_number=self._step_number,
            step_type=step_type,
            content=content,
            tokens_used=estimate_tokens(len(raw)),
        )
