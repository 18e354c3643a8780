"""StudyPack model — an uploaded study document and its lifecycle status."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from studypack.models.base import TimestampMixin, new_uuid


class StudyPackStatus(StrEnum):
    RECEIVED = "RECEIVED"
    CHUNKED = "CHUNKED"
    READY = "READY"
    ERROR = "ERROR"


class StudyPack(TimestampMixin, SQLModel, table=True):
    __tablename__ = "study_packs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    # Owning user; users live in an external system
    owner_id: uuid.UUID | None = Field(default=None, index=True)

    title: str = Field(max_length=500, nullable=False)
    topic_focus: str = Field(default="", max_length=1000)
    status: StudyPackStatus = Field(default=StudyPackStatus.RECEIVED)
    error_message: str | None = Field(default=None, max_length=2000)


# ── Pydantic schemas ─────────────────────────────────────────

class StudyPackRead(SQLModel):
    id: uuid.UUID
    owner_id: uuid.UUID | None
    title: str
    topic_focus: str
    status: StudyPackStatus
    error_message: str | None
    created_at: datetime
    updated_at: datetime
