from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from datetime import datetime

from ..core.db import Base

DEFAULT_MIME_TYPE = "text/plain"


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), ForeignKey("research_sessions.id"), index=True, nullable=False)
    filename = Column(String(512), nullable=False)
    content = Column(Text, nullable=False)       # decoded text given to the LLM
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(255), nullable=False, default=DEFAULT_MIME_TYPE)
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
