from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime

from ..core.db import Base


class ResearchStep(Base):
    """
    One persisted chunk of generated output. Rows are append-only.
    """
    __tablename__ = "research_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64),
                        ForeignKey("research_sessions.id"),
                        index=True,
                        nullable=False)
    step_number = Column(Integer, nullable=False)  # 1-based, contiguous per session
    step_type = Column(String(32), nullable=False)  # "analysis", "summary", …
    content = Column(Text, nullable=False)
    tokens_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "step_number", name="uq_research_step_number"),
    )
