"""Import all models so SQLModel.metadata picks them up."""

from studypack.models.chunk import StudyPackChunk, StudyPackChunkRead
from studypack.models.output import OutputMode, StudyPackOutput, StudyPackOutputRead
from studypack.models.study_pack import StudyPack, StudyPackRead, StudyPackStatus
from studypack.models.study_pack_file import StudyPackFile

__all__ = [
    "OutputMode",
    "StudyPack",
    "StudyPackChunk",
    "StudyPackChunkRead",
    "StudyPackFile",
    "StudyPackOutput",
    "StudyPackOutputRead",
    "StudyPackRead",
    "StudyPackStatus",
]
