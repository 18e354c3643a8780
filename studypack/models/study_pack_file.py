"""StudyPackFile model — the uploaded source behind a study pack."""

import uuid

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from studypack.models.base import TimestampMixin, new_uuid


class StudyPackFile(TimestampMixin, SQLModel, table=True):
    __tablename__ = "study_pack_files"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    pack_id: uuid.UUID = Field(foreign_key="study_packs.id", nullable=False, index=True)

    filename: str = Field(default="", max_length=255)
    mime_type: str = Field(default="", max_length=255)
    file_size: int = Field(default=0)

    # Either extracted text is stored inline, or the bytes live in object storage
    content_text: str | None = Field(default=None, sa_column=Column(Text))
    storage_url: str | None = Field(default=None, max_length=2000)
