from __future__ import annotations

from typing import Iterable, Sequence

from .store import DocumentRecord, ResearchStore, StepRecord

CONTINUATION_STEP_LIMIT = 3

DOCUMENT_CONTEXT_HEADER = "\n\nAdditional context from uploaded documents:\n"

RESEARCH_PROMPT_TEMPLATE = (
    'You are a research assistant. Conduct comprehensive research on the following query: "{query}"{document_context}\n'
    "\n"
    "Break down the research into clear steps, search for relevant information, "
    "analyze findings, and provide a detailed summary."
)


def build_document_context(documents: Iterable[DocumentRecord]) -> str:
    """
    Render documents, in upload order, as ``filename:\\ncontent`` blocks
    separated by a blank line. Returns "" when there are no documents.
    """
    blocks = [f"{doc.filename}:\n{doc.content}" for doc in documents]
    if not blocks:
        return ""
    return DOCUMENT_CONTEXT_HEADER + "\n\n".join(blocks)


def build_research_prompt(query: str, documents: Iterable[DocumentRecord] = ()) -> str:
    return RESEARCH_PROMPT_TEMPLATE.format(
        query=query,
        document_context=build_document_context(documents),
    )


def build_continuation_query(
    original_query: str,
    additional_query: str,
    steps: Sequence[StepRecord],
) -> str:
    # first N by step number regardless of type; fewer is fine
    earliest = sorted(steps, key=lambda s: s.step_number)[:CONTINUATION_STEP_LIMIT]
    previous = " ".join(s.content for s in earliest)
    return (
        f"{original_query}\n\n"
        f"Continuation: {additional_query}\n\n"
        f"Previous research context: {previous}"
    )


class ContextAggregator:
    """Loads what a run or continuation needs from the store."""

    def __init__(self, store: ResearchStore):
        self.store = store

    def prompt_for(self, session_id: str) -> str:
        session = self.store.get_session(session_id)
        documents = self.store.list_documents(session_id)
        return build_research_prompt(session.query, documents)

    def continuation_query_for(self, parent_session_id: str, additional_query: str) -> str:
        parent = self.store.get_session(parent_session_id)
        steps = self.store.list_steps(parent_session_id)
        return build_continuation_query(parent.query, additional_query, steps)
