"""StudyPackOutput model — generated, citation-backed study content."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from studypack.models.base import TimestampMixin, new_uuid


class OutputMode(StrEnum):
    FULLTEXT = "FULLTEXT"
    HIGH_YIELD = "HIGH_YIELD"


class StudyPackOutput(TimestampMixin, SQLModel, table=True):
    __tablename__ = "study_pack_outputs"
    __table_args__ = (UniqueConstraint("pack_id", "mode", name="uq_study_pack_outputs_pack_mode"),)

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    pack_id: uuid.UUID = Field(foreign_key="study_packs.id", nullable=False, index=True)

    mode: OutputMode = Field(nullable=False)
    content_html: str = Field(sa_column=Column(Text, nullable=False))

    # [{"section_title", "chunk_ids", "quote_snippets"}, ...] stored as JSON text
    citations_json: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))

    model: str = Field(default="", max_length=200)


# ── Pydantic schemas ─────────────────────────────────────────

class StudyPackOutputRead(SQLModel):
    id: uuid.UUID
    pack_id: uuid.UUID
    mode: OutputMode
    content_html: str
    citations: list[dict]
    model: str
    created_at: datetime
