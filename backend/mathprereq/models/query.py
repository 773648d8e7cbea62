import uuid
from datetime import datetime
from sqlalchemy import String, Text, DateTime, Boolean, Integer, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from mathprereq.core.database import Base, utcnow


class QueryRecord(Base):
    __tablename__ = "queries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    identified_concepts: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    prerequisite_path: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    explanation: Mapped[str] = mapped_column(Text, nullable=False, default="")
    retrieved_context: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    llm_provider: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    llm_model: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Ordered list of {"name", "duration_ms", "success", "error"}
    processing_steps: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
