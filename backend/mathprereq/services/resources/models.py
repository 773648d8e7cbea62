import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mathprereq.core.database import as_utc, utcnow


class ResourceKind(str, enum.Enum):
    VIDEO = "video"
    ARTICLE = "article"
    TUTORIAL = "tutorial"
    REFERENCE = "reference"


class Difficulty(str, enum.Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class EducationalResource(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True, validate_default=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    concept_id: str
    concept_name: str
    title: str
    url: str
    description: str = ""
    resource_type: ResourceKind
    source_domain: str
    difficulty_level: Difficulty = Difficulty.INTERMEDIATE
    quality_score: float
    content_preview: str = ""
    scraped_at: datetime = Field(default_factory=utcnow)
    language: str = "en"
    tags: list[str] = Field(default_factory=list)
    is_verified: bool = False

    # Videos only
    duration: str | None = None
    view_count: int | None = None
    thumbnail_url: str | None = None
    author_channel: str | None = None

    @field_validator("quality_score", mode="before")
    @classmethod
    def clamp_quality(cls, v):
        return min(1.0, max(0.0, float(v)))

    @field_validator("scraped_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


def truncate(text: str, max_length: int) -> str:
    """Cut at a word boundary when one is reasonably close, then add an ellipsis."""
    if len(text) <= max_length:
        return text
    if max_length <= 0:
        return ""
    cut = text[:max_length]
    last_space = cut.rfind(" ")
    if last_space > max_length // 2:
        return cut[:last_space] + "..."
    return cut + "..."
