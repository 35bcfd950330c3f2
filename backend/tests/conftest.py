"""
Shared pytest fixtures.

Tests run against an in-memory SQLite database and a scripted generative
source, so neither Postgres, Redis nor an LLM key is needed.
"""
import os

# Unit tests must not pick up a developer's real database or LLM keys.
os.environ.pop("DATABASE_URL", None)
os.environ.pop("OPENROUTER_API_KEY", None)
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from decimal import Decimal
from typing import Iterator, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.db import Base
from app.models import document, research_session, research_step  # noqa: F401
from app.services.generation import GenerativeSource, ResearchStream
from app.services.orchestrator import OrchestratorConfig, ResearchOrchestrator, RunDescriptor
from app.services.store import SqlResearchStore
from app.services.tools import DEFAULT_TOOLSET


class ScriptedStream(ResearchStream):
    """Replays fixed fragments; optionally fails part-way or reports a different final text."""

    def __init__(self, fragments: List[str], full_text: str | None = None, fail_after: int | None = None):
        super().__init__()
        self.fragments = list(fragments)
        self.override_text = full_text
        self.fail_after = fail_after
        self.closed = False

    def _fragments(self) -> Iterator[str]:
        for i, fragment in enumerate(self.fragments):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("generative stream timed out")
            yield fragment
        if self.fail_after is not None and self.fail_after >= len(self.fragments):
            raise RuntimeError("generative stream timed out")

    def close(self) -> None:
        self.closed = True
        super().close()

    def _final_text(self) -> str:
        if self.override_text is not None:
            return self.override_text
        return super()._final_text()


class ScriptedSource(GenerativeSource):
    def __init__(self, fragments: List[str] = (), full_text: str | None = None, fail_after: int | None = None):
        self.fragments = list(fragments)
        self.full_text = full_text
        self.fail_after = fail_after
        self.prompts: List[str] = []
        self.calls: List[tuple] = []
        self.streams: List[ScriptedStream] = []

    def start_stream(self, prompt, toolset=DEFAULT_TOOLSET, max_tokens=None):
        self.prompts.append(prompt)
        self.calls.append((tuple(toolset), max_tokens))
        stream = ScriptedStream(self.fragments, full_text=self.full_text, fail_after=self.fail_after)
        self.streams.append(stream)
        return stream


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlResearchStore:
    return SqlResearchStore(session_factory)


@pytest.fixture
def dispatched() -> List[RunDescriptor]:
    """Run descriptors handed to the task queue."""
    return []


@pytest.fixture
def orchestrator_config() -> OrchestratorConfig:
    return OrchestratorConfig(flush_threshold=100, cost_per_1k=Decimal("0.01"), max_output_tokens=4000)


@pytest.fixture
def make_orchestrator(store, dispatched, orchestrator_config):
    def _make(source: GenerativeSource | None = None, *, target_store=None) -> ResearchOrchestrator:
        source = source if source is not None else ScriptedSource()
        return ResearchOrchestrator(
            store=target_store or store,
            source_factory=lambda: source,
            config=orchestrator_config,
            dispatch=dispatched.append,
        )
    return _make


@pytest.fixture
def scripted_source():
    """The ScriptedSource class, for tests that build their own sources."""
    return ScriptedSource
