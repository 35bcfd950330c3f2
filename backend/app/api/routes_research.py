import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..core.config import get_settings
from ..schemas.research import (
    ContinueResearchRequest,
    ContinuationStartedOut,
    DocumentOut,
    ResearchSessionOut,
    ResearchSnapshotOut,
    ResearchStartedOut,
    ResearchStepOut,
)
from ..models.document import DEFAULT_MIME_TYPE
from ..services.continuation import ContinuationForker
from ..services.errors import (
    InvalidResearchRequest,
    SessionNotFoundError,
    StoreNotConfiguredError,
)
from ..services.orchestrator import ResearchOrchestrator, build_orchestrator
from ..services.store import NewDocument

router = APIRouter(tags=["research"])

settings = get_settings()
logger = logging.getLogger(__name__)


def get_orchestrator() -> ResearchOrchestrator:
    return build_orchestrator()


def _read_upload(upload: UploadFile) -> NewDocument:
    raw = upload.file.read()
    if len(raw) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"{upload.filename} exceeds the {settings.MAX_UPLOAD_BYTES} byte upload limit",
        )
    return NewDocument(
        filename=upload.filename or "document.txt",
        content=raw.decode("utf-8", errors="replace"),
        file_size=len(raw),
        mime_type=upload.content_type or DEFAULT_MIME_TYPE,
    )


@router.post("/research", response_model=ResearchStartedOut, status_code=202)
def create_research_session(
    query: str = Form(""),
    files: list[UploadFile] = File(default=[]),
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    if not query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    documents = [_read_upload(f) for f in files if f.filename]

    try:
        session_id = orchestrator.start_session(query, documents)
    except StoreNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except InvalidResearchRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to start research: %s", e, extra={"step": "create_session"})
        raise HTTPException(status_code=500, detail="Failed to start research")

    return ResearchStartedOut(session_id=session_id)


@router.post("/research/continue", response_model=ContinuationStartedOut, status_code=202)
def continue_research_session(
    payload: ContinueResearchRequest,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    try:
        new_session_id = ContinuationForker(orchestrator).fork(
            payload.session_id, payload.additional_query
        )
    except StoreNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Original session not found")
    except InvalidResearchRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(
            "Continue research failed for session %s: %s", payload.session_id, e,
            extra={"session_id": payload.session_id, "step": "fork"},
        )
        raise HTTPException(status_code=500, detail="Failed to continue research")

    return ContinuationStartedOut(
        new_session_id=new_session_id,
        parent_session_id=payload.session_id,
    )


@router.get("/research/{session_id}", response_model=ResearchSnapshotOut)
def get_research_session(
    session_id: str,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    """
    Polling endpoint. Session and steps are read separately, so a client may
    see steps that are newer than the session status (or vice versa).
    """
    store = orchestrator.store
    try:
        session = store.get_session(session_id)
        steps = store.list_steps(session_id)
    except StoreNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    return ResearchSnapshotOut(
        session=ResearchSessionOut.model_validate(session),
        steps=[ResearchStepOut.model_validate(s) for s in steps],
    )


@router.get("/research/{session_id}/documents", response_model=list[DocumentOut])
def list_session_documents(
    session_id: str,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    store = orchestrator.store
    try:
        store.get_session(session_id)
        documents = store.list_documents(session_id)
    except StoreNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")

    return [DocumentOut.model_validate(d) for d in documents]
