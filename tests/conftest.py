"""Shared test fixtures — async SQLite in-memory DB, test client, pack factory, fake LLM."""

import json
import re
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models so metadata is populated
import studypack.models  # noqa: F401
from studypack.core.database import get_session
from studypack.main import app
from studypack.models.study_pack import StudyPack
from studypack.models.study_pack_file import StudyPackFile
from studypack.workers.scheduler import run_registry


@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await run_registry.shutdown()
    app.dependency_overrides.clear()


@pytest.fixture
def make_pack(test_session_factory):
    """Factory inserting a RECEIVED study pack (and its source file)."""

    async def _make(
        *,
        title: str = "Cardiology",
        focus: str = "",
        content_text: str | None = "First paragraph.\n\nSecond paragraph.",
        storage_url: str | None = None,
        filename: str = "notes.txt",
        mime_type: str = "text/plain",
        with_file: bool = True,
    ) -> StudyPack:
        async with test_session_factory() as s:
            pack = StudyPack(title=title, topic_focus=focus)
            s.add(pack)
            await s.flush()
            if with_file:
                s.add(StudyPackFile(
                    pack_id=pack.id,
                    filename=filename,
                    mime_type=mime_type,
                    content_text=content_text,
                    storage_url=storage_url,
                ))
            await s.commit()
            return pack

    return _make


def _llm_response(payload: dict | str) -> SimpleNamespace:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


async def _fake_completion(**kwargs) -> SimpleNamespace:
    prompt = kwargs["messages"][0]["content"]
    ids = re.findall(r"^CHUNK (\S+)$", prompt, flags=re.MULTILINE)
    if "HIGH-YIELD" in prompt:
        return _llm_response({
            "title": "Key points",
            "bullets": [
                {"text": "Point one", "chunk_ids": ids[:1], "quote_snippets": ["quote"]},
                {"text": "Point two", "chunk_ids": ids, "quote_snippets": ["quote"]},
            ],
        })
    return _llm_response({
        "title": "Study text",
        "sections": [
            {
                "title": "Overview",
                "content_md": "Some **bold** facts.",
                "chunk_ids": ids,
                "quote_snippets": ["First paragraph."],
            }
        ],
    })


@pytest.fixture
def fake_llm() -> AsyncMock:
    """Stand-in for ``acompletion`` answering both stages, citing every chunk in the prompt."""
    return AsyncMock(side_effect=_fake_completion)
