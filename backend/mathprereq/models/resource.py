import uuid
from datetime import datetime
from sqlalchemy import String, Text, DateTime, Boolean, Float, BigInteger, JSON, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from mathprereq.core.database import Base, utcnow


class EducationalResourceRecord(Base):
    __tablename__ = "educational_resources"
    __table_args__ = (
        Index("ix_resources_concept_quality", "concept_id", "quality_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    concept_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    concept_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    difficulty_level: Mapped[str] = mapped_column(String(20), nullable=False)
    quality_score: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    content_preview: Mapped[str] = mapped_column(Text, nullable=False, default="")
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Kind-specific
    duration: Mapped[str | None] = mapped_column(String(50), nullable=True)
    view_count: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    author_channel: Mapped[str | None] = mapped_column(String(255), nullable=True)
