from __future__ import annotations

import logging

from .errors import InvalidResearchRequest
from .orchestrator import ResearchOrchestrator
from .store import NewDocument

logger = logging.getLogger(__name__)


class ContinuationForker:
    """
    Fork a finished (or running) session into a new one.

    The child gets a combined query (parent query, the follow-up, and the
    first three parent steps) and its own copies of every parent document.
    """

    def __init__(self, orchestrator: ResearchOrchestrator):
        self.orchestrator = orchestrator
        self.store = orchestrator.store

    def fork(self, parent_session_id: str, additional_query: str) -> str:
        if not parent_session_id:
            raise InvalidResearchRequest("Session ID and additional query required")
        if not additional_query or not additional_query.strip():
            raise InvalidResearchRequest("Session ID and additional query required")

        # Raises SessionNotFoundError before anything is created.
        combined_query = self.orchestrator.context.continuation_query_for(
            parent_session_id, additional_query
        )
        parent_documents = self.store.list_documents(parent_session_id)

        new_session_id = self.orchestrator.start_session(
            combined_query,
            documents=[
                NewDocument(
                    filename=doc.filename,
                    content=doc.content,
                    file_size=doc.file_size,
                    mime_type=doc.mime_type,
                )
                for doc in parent_documents
            ],
            parent_session_id=parent_session_id,
        )
        logger.info(
            "Research session forked",
            extra={
                "session_id": new_session_id,
                "parent_session_id": parent_session_id,
                "step": "fork",
            },
        )
        return new_session_id
