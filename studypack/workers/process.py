"""Study-pack processing task — extract, chunk, select, generate, persist."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from studypack.core.config import Settings, get_settings
from studypack.core.database import async_session_factory
from studypack.models.chunk import StudyPackChunk
from studypack.models.output import OutputMode, StudyPackOutput
from studypack.models.study_pack import StudyPack, StudyPackStatus
from studypack.models.study_pack_file import StudyPackFile
from studypack.services.chunking import chunk_text
from studypack.services.errors import EmptyDocument
from studypack.services.extract import download_file, extract_text, resolve_mime_type
from studypack.services.fingerprint import estimate_tokens, fingerprint
from studypack.services.generation import generate_fulltext, generate_high_yield
from studypack.services.relevance import ChunkRef, select_relevant_chunks
from studypack.services.render import (
    fulltext_citations,
    fulltext_markdown,
    high_yield_citations,
    high_yield_markdown,
    render_html,
)

logger = logging.getLogger(__name__)


async def process_study_pack(ctx: dict, pack_id: str, mode: str = OutputMode.FULLTEXT) -> dict:
    """Task: turn a study pack's source file into grounded outputs.

    Also registered as an ARQ job, hence the ``ctx`` argument.

    Args:
        ctx: Worker context (unused by the in-process runner).
        pack_id: UUID of the StudyPack to process.
        mode: FULLTEXT, or HIGH_YIELD for FULLTEXT followed by HIGH_YIELD.

    Returns:
        dict with chunk_count and output_count, or an ``error`` key.
    """
    settings = get_settings()
    target_mode = OutputMode.HIGH_YIELD if mode == OutputMode.HIGH_YIELD else OutputMode.FULLTEXT
    started = time.monotonic()

    async with async_session_factory() as session:
        try:
            pack = await _get_pack(session, pack_id)
            if pack is None:
                logger.error("Study pack %s not found", pack_id)
                return {"error": "pack_not_found"}

            source_file = await _get_source_file(session, pack.id)
            if source_file is None:
                logger.error("Study pack %s has no source file", pack_id)
                return {"error": "missing_file"}

            # 1. Obtain text
            text = await _load_text(source_file, settings)
            if not text.strip():
                raise EmptyDocument("No text could be extracted from the file")
            text = text[: settings.max_text_chars]

            # 2. Chunk + fingerprint
            pieces = chunk_text(text, chunk_size=settings.chunk_size, max_chunks=settings.max_chunks)
            if not pieces:
                raise EmptyDocument("Chunking produced no output")

            chunk_records = [
                StudyPackChunk(
                    pack_id=pack.id,
                    idx=tc.index,
                    content=tc.content,
                    hash=fingerprint(tc.content),
                    token_estimate=estimate_tokens(tc.content),
                )
                for tc in pieces
            ]

            # 3. Replace the chunk set, drop stale outputs and mark CHUNKED in one transaction
            await _replace_chunks(session, pack, chunk_records)
            logger.info("Study pack %s chunked: %d chunks", pack_id, len(chunk_records))

            # 4. Relevance selection
            focus = (pack.topic_focus or "").strip()
            relevant = select_relevant_chunks(
                [ChunkRef(id=str(c.id), content=c.content) for c in chunk_records],
                focus,
                limit=settings.max_relevant_chunks,
            )

            # 5. Stage FULLTEXT
            full = await generate_fulltext(pack.title, relevant, focus, settings)
            full_md = fulltext_markdown(full, pack.title)
            outputs = [
                StudyPackOutput(
                    pack_id=pack.id,
                    mode=OutputMode.FULLTEXT,
                    content_html=render_html(full_md),
                    citations_json=json.dumps(fulltext_citations(full)),
                    model=settings.llm_model,
                )
            ]

            # 6. Stage HIGH_YIELD, built on the full text
            if target_mode == OutputMode.HIGH_YIELD:
                high = await generate_high_yield(pack.title, full_md, relevant, focus, settings)
                outputs.append(
                    StudyPackOutput(
                        pack_id=pack.id,
                        mode=OutputMode.HIGH_YIELD,
                        content_html=render_html(high_yield_markdown(high, pack.title)),
                        citations_json=json.dumps(high_yield_citations(high)),
                        model=settings.llm_model,
                    )
                )

            # 7. Replace the output set and mark READY in one transaction
            await _replace_outputs(session, pack, outputs)

            logger.info(
                "Study pack %s ready: %d chunks, %d outputs in %.1fs",
                pack_id, len(chunk_records), len(outputs), time.monotonic() - started,
            )
            return {"chunk_count": len(chunk_records), "output_count": len(outputs)}

        except asyncio.CancelledError:
            logger.warning("Processing of study pack %s was cancelled", pack_id)
            await _fail(session, pack_id, "Processing was cancelled or timed out")
            raise

        except Exception as exc:
            logger.exception("Processing failed for study pack %s", pack_id)
            await _fail(session, pack_id, str(exc)[:2000])
            return {"error": str(exc)}


async def _load_text(source_file: StudyPackFile, settings: Settings) -> str:
    """Inline text if the upload flow stored it, otherwise fetch and extract."""
    if source_file.content_text:
        return source_file.content_text
    if not source_file.storage_url:
        return ""

    content = await download_file(
        source_file.storage_url,
        max_bytes=settings.max_file_bytes,
        timeout=settings.download_timeout_seconds,
    )
    mime = resolve_mime_type(source_file.mime_type, source_file.filename)
    # pypdf / python-docx are blocking
    return await asyncio.to_thread(extract_text, content, mime, settings.max_text_chars)


async def _get_pack(session: AsyncSession, pack_id: str) -> StudyPack | None:
    stmt = select(StudyPack).where(StudyPack.id == uuid.UUID(pack_id))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _get_source_file(session: AsyncSession, pack_id: uuid.UUID) -> StudyPackFile | None:
    stmt = (
        select(StudyPackFile)
        .where(StudyPackFile.pack_id == pack_id)
        .order_by(StudyPackFile.created_at.asc())  # type: ignore[union-attr]
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _replace_chunks(
    session: AsyncSession, pack: StudyPack, records: list[StudyPackChunk],
) -> None:
    # Outputs cite chunk ids and never outlive their chunk set
    await session.execute(delete(StudyPackOutput).where(StudyPackOutput.pack_id == pack.id))
    await session.execute(delete(StudyPackChunk).where(StudyPackChunk.pack_id == pack.id))
    session.add_all(records)
    _set_status(pack, StudyPackStatus.CHUNKED)
    session.add(pack)
    await session.commit()


async def _replace_outputs(
    session: AsyncSession, pack: StudyPack, records: list[StudyPackOutput],
) -> None:
    await session.execute(delete(StudyPackOutput).where(StudyPackOutput.pack_id == pack.id))
    session.add_all(records)
    _set_status(pack, StudyPackStatus.READY)
    session.add(pack)
    await session.commit()


def _set_status(pack: StudyPack, status: StudyPackStatus, message: str | None = None) -> None:
    pack.status = status
    pack.error_message = message
    pack.touch()


async def _fail(session: AsyncSession, pack_id: str, message: str) -> None:
    """Best-effort transition to ERROR. Never raises."""
    try:
        await session.rollback()
        pack = await _get_pack(session, pack_id)
        if pack is not None:
            _set_status(pack, StudyPackStatus.ERROR, message)
            session.add(pack)
            await session.commit()
    except Exception:
        logger.exception("Failed to mark study pack %s as errored", pack_id)
