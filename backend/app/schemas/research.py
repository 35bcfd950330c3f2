# backend/app/schemas/research.py
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator, field_serializer, ConfigDict

from ..models.research_session import SessionStatus

MAX_QUERY_LEN = 20000


class ContinueResearchRequest(BaseModel):
    session_id: str
    additional_query: str

    @field_validator("session_id")
    @classmethod
    def validate_session_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("session_id must not be empty")
        return v

    @field_validator("additional_query")
    @classmethod
    def validate_additional_query(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("additional_query must not be empty")
        if len(v) > MAX_QUERY_LEN:
            raise ValueError(
                f"additional_query is too long; maximum length is {MAX_QUERY_LEN} characters"
            )
        return v


class ResearchStartedOut(BaseModel):
    session_id: str


class ContinuationStartedOut(BaseModel):
    new_session_id: str
    parent_session_id: str


class ResearchSessionOut(BaseModel):
    id: str
    query: str
    status: SessionStatus
    total_tokens: int = 0
    total_cost: Decimal = Decimal("0")
    result_summary: str | None = None
    created_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("total_cost")
    def _cost_as_float(self, v: Decimal) -> float:
        return float(v)


class ResearchStepOut(BaseModel):
    id: int
    session_id: str
    step_number: int
    step_type: str
    content: str
    tokens_used: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResearchSnapshotOut(BaseModel):
    """What a polling client gets; session and steps are not read atomically."""
    session: ResearchSessionOut
    steps: list[ResearchStepOut] = []


class DocumentOut(BaseModel):
    id: int
    session_id: str
    filename: str
    file_size: int
    mime_type: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResearchHistoryOut(BaseModel):
    sessions: list[ResearchSessionOut] = []


class CostSummaryOut(BaseModel):
    total_cost: float
    total_tokens: int
    session_count: int
    avg_cost_per_session: float
