"""
Persistence gateway for research sessions, steps and documents.

Every call is atomic on its own (one database transaction per call) but calls
are not transactional with each other: a run that fails after persisting some
steps leaves those steps in place.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, List

from sqlalchemy.orm import Session, sessionmaker

from ..core.db import get_session_factory
from ..models.document import Document, DEFAULT_MIME_TYPE
from ..models.research_session import ResearchSession, SessionStatus, new_session_id
from ..models.research_step import ResearchStep
from .errors import (
    InvalidResearchRequest,
    InvalidStateTransition,
    SessionNotFoundError,
    StoreNotConfiguredError,
)

# Fields a caller may change through update_session. Terminal fields go
# through finalize_session only.
UPDATABLE_SESSION_FIELDS = frozenset({"total_tokens", "total_cost"})


@dataclass(frozen=True)
class SessionRecord:
    id: str
    query: str
    status: SessionStatus
    total_tokens: int
    total_cost: Decimal
    result_summary: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None


@dataclass(frozen=True)
class StepRecord:
    id: int
    session_id: str
    step_number: int
    step_type: str
    content: str
    tokens_used: int
    created_at: datetime


@dataclass(frozen=True)
class DocumentRecord:
    id: int
    session_id: str
    filename: str
    content: str
    file_size: int
    mime_type: str
    uploaded_at: datetime


@dataclass(frozen=True)
class NewDocument:
    """An uploaded document that has not been attached to a session yet."""
    filename: str
    content: str
    file_size: int
    mime_type: str = DEFAULT_MIME_TYPE


class ResearchStore(ABC):
    @abstractmethod
    def create_session(self, query: str, session_id: str | None = None) -> SessionRecord: ...

    @abstractmethod
    def get_session(self, session_id: str) -> SessionRecord: ...

    @abstractmethod
    def list_sessions(self, limit: int = 10, offset: int = 0) -> List[SessionRecord]: ...

    @abstractmethod
    def update_session(self, session_id: str, **fields: Any) -> SessionRecord: ...

    @abstractmethod
    def finalize_session(
        self,
        session_id: str,
        status: SessionStatus,
        *,
        total_tokens: int | None = None,
        total_cost: Decimal | None = None,
        result_summary: str | None = None,
    ) -> SessionRecord: ...

    @abstractmethod
    def append_step(
        self,
        session_id: str,
        *,
        step_number: int,
        step_type: str,
        content: str,
        tokens_used: int,
    ) -> StepRecord: ...

    @abstractmethod
    def list_steps(self, session_id: str) -> List[StepRecord]: ...

    @abstractmethod
    def create_document(self, session_id: str, document: NewDocument) -> DocumentRecord: ...

    @abstractmethod
    def list_documents(self, session_id: str) -> List[DocumentRecord]: ...


def _session_record(row: ResearchSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        query=row.query,
        status=SessionStatus(row.status),
        total_tokens=int(row.total_tokens or 0),
        total_cost=Decimal(str(row.total_cost if row.total_cost is not None else 0)),
        result_summary=row.result_summary,
        created_at=row.created_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
    )


def _step_record(row: ResearchStep) -> StepRecord:
    return StepRecord(
        id=row.id,
        session_id=row.session_id,
        step_number=row.step_number,
        step_type=row.step_type,
        content=row.content,
        tokens_used=row.tokens_used,
        created_at=row.created_at,
    )


def _document_record(row: Document) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        session_id=row.session_id,
        filename=row.filename,
        content=row.content,
        file_size=row.file_size,
        mime_type=row.mime_type,
        uploaded_at=row.uploaded_at,
    )


class SqlResearchStore(ResearchStore):
    """SQLAlchemy-backed gateway; opens a fresh DB session per call."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _db(self) -> Iterator[Session]:
        db: Session = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _require_session(db: Session, session_id: str, *, for_update: bool = False) -> ResearchSession:
        q = db.query(ResearchSession).filter(ResearchSession.id == session_id)
        if for_update:
            q = q.with_for_update()
        row = q.first()
        if not row:
            raise SessionNotFoundError(session_id)
        return row

    def create_session(self, query: str, session_id: str | None = None) -> SessionRecord:
        if not query or not query.strip():
            raise InvalidResearchRequest("Query is required")
        now = datetime.utcnow()
        with self._db() as db:
            row = ResearchSession(
                id=session_id or new_session_id(),
                query=query,
                status=SessionStatus.RUNNING,
                total_tokens=0,
                total_cost=Decimal("0"),
                result_summary=None,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.flush()
            return _session_record(row)

    def get_session(self, session_id: str) -> SessionRecord:
        with self._db() as db:
            return _session_record(self._require_session(db, session_id))

    def list_sessions(self, limit: int = 10, offset: int = 0) -> List[SessionRecord]:
        with self._db() as db:
            rows = (
                db.query(ResearchSession)
                .order_by(ResearchSession.created_at.desc(), ResearchSession.id.asc())
                .offset(max(0, offset))
                .limit(max(1, limit))
                .all()
            )
            return [_session_record(r) for r in rows]

    def update_session(self, session_id: str, **fields: Any) -> SessionRecord:
        unknown = set(fields) - UPDATABLE_SESSION_FIELDS
        if unknown:
            raise InvalidResearchRequest(f"Cannot update session fields: {sorted(unknown)}")
        with self._db() as db:
            row = self._require_session(db, session_id, for_update=True)
            if "total_tokens" in fields and fields["total_tokens"] is not None:
                row.total_tokens = max(int(row.total_tokens or 0), int(fields["total_tokens"]))
            if "total_cost" in fields and fields["total_cost"] is not None:
                row.total_cost = max(Decimal(str(row.total_cost or 0)), Decimal(str(fields["total_cost"])))
            row.updated_at = datetime.utcnow()
            db.flush()
            return _session_record(row)

    def finalize_session(
        self,
        session_id: str,
        status: SessionStatus,
        *,
        total_tokens: int | None = None,
        total_cost: Decimal | None = None,
        result_summary: str | None = None,
    ) -> SessionRecord:
        status = SessionStatus(status)
        if not status.is_terminal:
            raise InvalidStateTransition(session_id, SessionStatus.RUNNING.value, status.value)
        with self._db() as db:
            row = self._require_session(db, session_id, for_update=True)
            current = SessionStatus(row.status)
            if current.is_terminal:
                raise InvalidStateTransition(session_id, current.value, status.value)
            now = datetime.utcnow()
            row.status = status
            if status is SessionStatus.COMPLETED:
                if total_tokens is not None:
                    row.total_tokens = int(total_tokens)
                if total_cost is not None:
                    row.total_cost = Decimal(str(total_cost))
                row.result_summary = result_summary
            row.completed_at = now
            row.updated_at = now
            db.flush()
            return _session_record(row)

    def append_step(
        self,
        session_id: str,
        *,
        step_number: int,
        step_type: str,
        content: str,
        tokens_used: int,
    ) -> StepRecord:
        if not content:
            raise InvalidResearchRequest("Step content must not be empty")
        if tokens_used < 0:
            raise InvalidResearchRequest("tokens_used must be >= 0")
        with self._db() as db:
            session_row = self._require_session(db, session_id)
            current = SessionStatus(session_row.status)
            if current.is_terminal:
                raise InvalidStateTransition(session_id, current.value, "append_step")
            row = ResearchStep(
                session_id=session_id,
                step_number=step_number,
                step_type=step_type,
                content=content,
                tokens_used=int(tokens_used),
                created_at=datetime.utcnow(),
            )
            db.add(row)
            db.flush()
            return _step_record(row)

    def list_steps(self, session_id: str) -> List[StepRecord]:
        with self._db() as db:
            rows = (
                db.query(ResearchStep)
                .filter(ResearchStep.session_id == session_id)
                .order_by(ResearchStep.step_number.asc())
                .all()
            )
            return [_step_record(r) for r in rows]

    def create_document(self, session_id: str, document: NewDocument) -> DocumentRecord:
        with self._db() as db:
            self._require_session(db, session_id)
            row = Document(
                session_id=session_id,
                filename=document.filename,
                content=document.content,
                file_size=int(document.file_size or 0),
                mime_type=document.mime_type or DEFAULT_MIME_TYPE,
                uploaded_at=datetime.utcnow(),
            )
            db.add(row)
            db.flush()
            return _document_record(row)

    def list_documents(self, session_id: str) -> List[DocumentRecord]:
        with self._db() as db:
            rows = (
                db.query(Document)
                .filter(Document.session_id == session_id)
                .order_by(Document.uploaded_at.asc(), Document.id.asc())
                .all()
            )
            return [_document_record(r) for r in rows]


class UnconfiguredStore(ResearchStore):
    """
    Stand-in used when no database is configured.

    Every operation raises StoreNotConfiguredError, so callers see one
    uniform "not configured" condition instead of empty results.
    """

    def _fail(self, *args: Any, **kwargs: Any):
        raise StoreNotConfiguredError()

    create_session = _fail
    get_session = _fail
    list_sessions = _fail
    update_session = _fail
    finalize_session = _fail
    append_step = _fail
    list_steps = _fail
    create_document = _fail
    list_documents = _fail


def get_store() -> ResearchStore:
    factory = get_session_factory()
    if factory is None:
        return UnconfiguredStore()
    return SqlResearchStore(factory)
