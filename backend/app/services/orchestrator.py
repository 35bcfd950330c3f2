from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable
from uuid import uuid4

from ..core.celery_app import celery_app, RUN_RESEARCH_TASK, RESEARCH_QUEUE
from ..core.config import Settings, get_settings
from ..models.research_session import SessionStatus
from .accounting import TokenLedger
from .context import ContextAggregator
from .errors import InvalidResearchRequest, SessionNotFoundError, StoreNotConfiguredError
from .generation import GenerativeSource, OpenAIResearchSource
from .segmenter import StreamSegmenter
from .store import NewDocument, ResearchStore, get_store
from .tools import DEFAULT_TOOLSET, ToolKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
    flush_threshold: int = 100
    cost_per_1k: Decimal = Decimal("0.01")
    max_output_tokens: int = 4000
    toolset: tuple[ToolKind, ...] = DEFAULT_TOOLSET

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        return cls(
            flush_threshold=settings.STEP_FLUSH_THRESHOLD,
            cost_per_1k=Decimal(str(settings.COST_PER_1K_TOKENS_USD)),
            max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
        )


@dataclass(frozen=True)
class RunDescriptor:
    """What a worker needs to execute one run. JSON-serialisable for Celery."""
    session_id: str
    request_id: str = field(default_factory=lambda: str(uuid4()))
    parent_session_id: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "request_id": self.request_id,
            "parent_session_id": self.parent_session_id,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RunDescriptor":
        return cls(
            session_id=str(payload["session_id"]),
            request_id=str(payload.get("request_id") or uuid4()),
            parent_session_id=payload.get("parent_session_id"),
        )


def send_to_worker(descriptor: RunDescriptor) -> None:
    celery_app.send_task(
        RUN_RESEARCH_TASK,
        args=[descriptor.to_payload()],
        queue=RESEARCH_QUEUE,
    )


class ResearchOrchestrator:
    """
    Owns a research session's lifecycle: running -> completed | failed.

    Creation happens in the request path and returns as soon as the session
    is stored and its run is queued. ``run`` executes in a worker and reports
    its outcome only through the persisted session.
    """

    def __init__(
        self,
        store: ResearchStore,
        source_factory: Callable[[], GenerativeSource],
        config: OrchestratorConfig | None = None,
        dispatch: Callable[[RunDescriptor], None] = send_to_worker,
    ):
        self.store = store
        self.source_factory = source_factory
        self.config = config or OrchestratorConfig()
        self.dispatch = dispatch
        self.context = ContextAggregator(store)

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    def create_session(
        self,
        query: str,
        documents: Iterable[NewDocument] = (),
        session_id: str | None = None,
    ) -> str:
        if not query or not query.strip():
            raise InvalidResearchRequest("Query is required")
        documents = list(documents)

        session = self.store.create_session(query, session_id=session_id)
        try:
            for doc in documents:
                self.store.create_document(session.id, doc)
        except Exception:
            self._abandon(session.id, "documents")
            raise

        logger.info(
            "Research session created",
            extra={"session_id": session.id, "step": "session_created"},
        )
        return session.id

    def enqueue(self, session_id: str, parent_session_id: str | None = None) -> RunDescriptor:
        descriptor = RunDescriptor(session_id=session_id, parent_session_id=parent_session_id)
        self.dispatch(descriptor)
        logger.info(
            "Research run queued",
            extra={
                "session_id": session_id,
                "parent_session_id": parent_session_id,
                "request_id": descriptor.request_id,
                "step": "run_queued",
            },
        )
        return descriptor

    def start_session(
        self,
        query: str,
        documents: Iterable[NewDocument] = (),
        session_id: str | None = None,
        parent_session_id: str | None = None,
    ) -> str:
        new_id = self.create_session(query, documents, session_id=session_id)
        try:
            self.enqueue(new_id, parent_session_id=parent_session_id)
        except Exception:
            self._abandon(new_id, "enqueue")
            raise
        return new_id

    def _abandon(self, session_id: str, stage: str) -> None:
        """A session whose run will never happen must not stay running."""
        log_extra = {"session_id": session_id, "step": f"{stage}_failed"}
        logger.exception("Research session could not be started", extra=log_extra)
        self._mark_failed(session_id, log_extra)

    # ------------------------------------------------------------------
    # Worker path
    # ------------------------------------------------------------------

    def run(self, descriptor: RunDescriptor) -> SessionStatus | None:
        session_id = descriptor.session_id
        log_extra = {"session_id": session_id, "request_id": descriptor.request_id}
        if descriptor.parent_session_id:
            log_extra["parent_session_id"] = descriptor.parent_session_id

        try:
            self.store.get_session(session_id)
        except SessionNotFoundError:
            logger.warning("Research session vanished before run", extra={**log_extra, "step": "start"})
            return None
        except StoreNotConfiguredError:
            logger.error("Research run skipped: database not configured", extra={**log_extra, "step": "start"})
            return None

        logger.info("Starting research run", extra={**log_extra, "step": "start"})
        ledger = TokenLedger(session_id=session_id, rate_per_1k=self.config.cost_per_1k)
        stream = None

        try:
            prompt = self.context.prompt_for(session_id)
            stream = self.source_factory().start_stream(
                prompt,
                self.config.toolset,
                self.config.max_output_tokens,
            )
            segmenter = StreamSegmenter(threshold=self.config.flush_threshold)

            for step in segmenter.segment(stream):
                self.store.append_step(
                    session_id,
                    step_number=step.step_number,
                    step_type=step.step_type,
                    content=step.content,
                    tokens_used=step.tokens_used,
                )
                ledger.record_step(step.step_type, step.tokens_used)
                logger.info(
                    "Research step persisted",
                    extra={**log_extra, "step": step.step_type, "step_number": step.step_number},
                )

            # The aggregate text may diverge from the segmented steps.
            result_summary = stream.full_text

            self.store.finalize_session(
                session_id,
                SessionStatus.COMPLETED,
                total_tokens=ledger.total_tokens,
                total_cost=ledger.total_cost,
                result_summary=result_summary,
            )
        except Exception:
            logger.exception("Research run failed", extra={**log_extra, "step": "failed"})
            self._mark_failed(session_id, log_extra)
            return SessionStatus.FAILED
        finally:
            if stream is not None:
                stream.close()

        logger.info(
            "Research run completed",
            extra={**log_extra, "step": "completed", "usage": ledger.summarize()},
        )
        return SessionStatus.COMPLETED

    def _mark_failed(self, session_id: str, log_extra: Dict[str, Any]) -> None:
        try:
            self.store.finalize_session(session_id, SessionStatus.FAILED)
        except Exception:
            logger.exception(
                "Could not record failed status for research session",
                extra={**log_extra, "step": "mark_failed"},
            )


def build_orchestrator(settings: Settings | None = None) -> ResearchOrchestrator:
    settings = settings or get_settings()
    return ResearchOrchestrator(
        store=get_store(),
        source_factory=OpenAIResearchSource,
        config=OrchestratorConfig.from_settings(settings),
    )


@celery_app.task(name=RUN_RESEARCH_TASK, bind=True, queue=RESEARCH_QUEUE)
def run_research_session(self, payload: dict) -> str | None:
    descriptor = RunDescriptor.from_payload(payload)
    status = build_orchestrator().run(descriptor)
    return status.value if status else None
