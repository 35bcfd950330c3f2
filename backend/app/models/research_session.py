from sqlalchemy import Column, String, Text, Integer, Numeric, Enum, DateTime
from datetime import datetime
import uuid
import enum
from ..core.db import Base


class SessionStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.RUNNING


def new_session_id() -> str:
    return str(uuid.uuid4())


class ResearchSession(Base):
    __tablename__ = "research_sessions"

    id = Column(String(64), primary_key=True, default=new_session_id)
    query = Column(Text, nullable=False)
    status = Column(
        Enum(
            SessionStatus,
            name="session_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=SessionStatus.RUNNING,
    )
    total_tokens = Column(Integer, nullable=False, default=0)
    total_cost = Column(Numeric(14, 6), nullable=False, default=0)
    result_summary = Column(Text, nullable=True)  # only set once completed
    created_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
