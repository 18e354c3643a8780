"""StudyPackChunk model — a bounded text segment of a study pack."""

import uuid
from datetime import datetime

from sqlalchemy import Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from studypack.models.base import TimestampMixin, new_uuid


class StudyPackChunk(TimestampMixin, SQLModel, table=True):
    __tablename__ = "study_pack_chunks"
    __table_args__ = (UniqueConstraint("pack_id", "idx", name="uq_study_pack_chunks_pack_idx"),)

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    pack_id: uuid.UUID = Field(foreign_key="study_packs.id", nullable=False, index=True)

    # Position in the original document (not relevance order)
    idx: int = Field(nullable=False)

    content: str = Field(sa_column=Column(Text, nullable=False))
    hash: str = Field(max_length=64, nullable=False)
    token_estimate: int = Field(default=0)


# ── Pydantic schemas ─────────────────────────────────────────

class StudyPackChunkRead(SQLModel):
    id: uuid.UUID
    pack_id: uuid.UUID
    idx: int
    content: str
    hash: str
    token_estimate: int
    created_at: datetime
