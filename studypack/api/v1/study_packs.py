"""Study-pack processing trigger and read endpoints."""

import json
import logging
import uuid
from typing import Literal

from arq.connections import ArqRedis, create_pool
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlmodel import select

from studypack.api.deps import Session
from studypack.core.config import get_settings
from studypack.models.chunk import StudyPackChunk, StudyPackChunkRead
from studypack.models.output import OutputMode, StudyPackOutput, StudyPackOutputRead
from studypack.models.study_pack import StudyPack, StudyPackRead
from studypack.models.study_pack_file import StudyPackFile
from studypack.workers.main import _redis_settings
from studypack.workers.process import process_study_pack
from studypack.workers.scheduler import run_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/study-packs", tags=["study-packs"])


# ── Schemas ───────────────────────────────────────────────────


class ProcessRequest(BaseModel):
    pack_id: uuid.UUID
    mode: OutputMode = OutputMode.FULLTEXT


class ProcessResponse(BaseModel):
    queued: bool = True
    status: Literal["accepted", "already_queued"]


# ── Helpers ───────────────────────────────────────────────────


async def _get_or_404(pack_id: uuid.UUID, session) -> StudyPack:
    pack = await session.get(StudyPack, pack_id)
    if pack is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Study pack not found")
    return pack


async def _require_source_file(pack_id: uuid.UUID, session) -> None:
    stmt = select(StudyPackFile.id).where(StudyPackFile.pack_id == pack_id).limit(1)
    result = await session.execute(stmt)
    if result.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Study pack has no source file",
        )


async def _enqueue_process(pack_id: str, mode: OutputMode) -> bool:
    """Enqueue an ARQ job keyed by pack id. False if one is already queued or running."""
    redis: ArqRedis = await create_pool(_redis_settings())
    try:
        job = await redis.enqueue_job(
            "process_study_pack",
            pack_id=pack_id,
            mode=mode.value,
            _job_id=f"study-pack:{pack_id}",
        )
    finally:
        await redis.aclose()
    return job is not None


def _start_in_process(pack_id: str, mode: OutputMode) -> bool:
    return run_registry.try_start(pack_id, lambda: process_study_pack({}, pack_id, mode.value))


def _output_to_read(out: StudyPackOutput) -> StudyPackOutputRead:
    return StudyPackOutputRead(
        id=out.id,
        pack_id=out.pack_id,
        mode=out.mode,
        content_html=out.content_html,
        citations=json.loads(out.citations_json or "[]"),
        model=out.model,
        created_at=out.created_at,
    )


# ── Endpoints ─────────────────────────────────────────────────


@router.post("/process", response_model=ProcessResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_processing(body: ProcessRequest, session: Session) -> ProcessResponse:
    """Start generation for a study pack. Never waits for the result."""
    await _get_or_404(body.pack_id, session)
    await _require_source_file(body.pack_id, session)

    pack_id = str(body.pack_id)
    if get_settings().run_backend == "arq":
        started = await _enqueue_process(pack_id, body.mode)
    else:
        started = _start_in_process(pack_id, body.mode)

    if not started:
        logger.info("Study pack %s is already being processed", pack_id)
        return ProcessResponse(status="already_queued")

    logger.info("Study pack %s queued for %s", pack_id, body.mode.value)
    return ProcessResponse(status="accepted")


@router.get("/{pack_id}", response_model=StudyPackRead)
async def get_study_pack(pack_id: uuid.UUID, session: Session) -> StudyPack:
    return await _get_or_404(pack_id, session)


@router.get("/{pack_id}/chunks", response_model=list[StudyPackChunkRead])
async def list_chunks(pack_id: uuid.UUID, session: Session) -> list[StudyPackChunk]:
    await _get_or_404(pack_id, session)
    stmt = (
        select(StudyPackChunk)
        .where(StudyPackChunk.pack_id == pack_id)
        .order_by(StudyPackChunk.idx.asc())  # type: ignore[attr-defined]
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@router.get("/{pack_id}/outputs", response_model=list[StudyPackOutputRead])
async def list_outputs(pack_id: uuid.UUID, session: Session) -> list[StudyPackOutputRead]:
    await _get_or_404(pack_id, session)
    stmt = (
        select(StudyPackOutput)
        .where(StudyPackOutput.pack_id == pack_id)
        .order_by(StudyPackOutput.mode.asc())  # type: ignore[attr-defined]
    )
    result = await session.execute(stmt)
    return [_output_to_read(o) for o in result.scalars().all()]
