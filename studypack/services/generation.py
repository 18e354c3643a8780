"""Grounded generation — citation-bearing study content via LiteLLM.

Flow:
  1. FULLTEXT: title + focus + relevant chunks → sections, each citing
     chunk ids and verbatim quotes
  2. HIGH_YIELD (optional): the full markdown + the same chunks → at most
     a dozen cited bullets
Responses are parsed into Pydantic models; a response that is not JSON or
does not match the models fails the stage without a retry. Transient
provider errors are retried with jittered backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from collections.abc import Sequence
from dataclasses import dataclass

from litellm import acompletion
from litellm.exceptions import (
    APIConnectionError,
    InternalServerError,
    RateLimitError,
    ServiceUnavailableError,
)
from litellm.exceptions import Timeout as ProviderTimeout
from pydantic import BaseModel, Field, ValidationError

from studypack.core.config import Settings, get_settings
from studypack.services.errors import GenerationFailed, InvalidModelOutput
from studypack.services.relevance import ChunkRef

logger = logging.getLogger(__name__)

CHUNK_DELIMITER = "\n\n---\n\n"
MAX_QUOTES = 2

_TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    ProviderTimeout,
    RateLimitError,
    APIConnectionError,
    ServiceUnavailableError,
    InternalServerError,
)

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)


# ── Response contract ────────────────────────────────────────

class GroundedSection(BaseModel):
    title: str
    content_md: str
    chunk_ids: list[str] = Field(min_length=1)
    quote_snippets: list[str] = Field(min_length=1)


class FullTextResult(BaseModel):
    title: str = ""
    sections: list[GroundedSection] = Field(min_length=1)


class GroundedBullet(BaseModel):
    text: str
    chunk_ids: list[str] = Field(min_length=1)
    quote_snippets: list[str] = Field(min_length=1)


class HighYieldResult(BaseModel):
    title: str = ""
    bullets: list[GroundedBullet] = Field(min_length=1)


@dataclass
class StageParams:
    """Per-stage generation parameters."""
    max_tokens: int
    temperature: float


# ── Prompts ──────────────────────────────────────────────────

def render_chunk_list(chunks: Sequence[ChunkRef]) -> str:
    return CHUNK_DELIMITER.join(f"CHUNK {c.id}\n{c.content}" for c in chunks)


def _focus_block(focus: str, instruction: str) -> str:
    if not focus:
        return ""
    return f"\nFocus: {focus}\n{instruction}\n"


def build_fulltext_prompt(
    title: str,
    chunks: Sequence[ChunkRef],
    focus: str = "",
    language: str = "English",
) -> str:
    focus_block = _focus_block(
        focus, "Filter the material and use only information relevant to this focus.",
    )
    return (
        "You are a medical curriculum specialist. Write a COMPLETE study text "
        "from the supplied chunks.\n\n"
        f"Topic: {title}\n"
        f"{focus_block}\n"
        "RULES:\n"
        f"- Write in {language}, in a professional and structured way.\n"
        "- Use only facts present in the supplied chunks. Do not invent anything.\n"
        "- Every section must list the chunk IDs it is based on and 1-2 short "
        "verbatim quotes from those chunks.\n\n"
        "RETURN ONLY JSON:\n"
        '{"title": "string", "sections": [{"title": "string", "content_md": '
        '"markdown text", "chunk_ids": ["id1", "id2"], "quote_snippets": '
        '["short quote 1", "short quote 2"]}]}\n\n'
        "CHUNKS:\n"
        f"{render_chunk_list(chunks)}\n"
    )


def build_high_yield_prompt(
    title: str,
    full_markdown: str,
    chunks: Sequence[ChunkRef],
    focus: str = "",
    language: str = "English",
    max_bullets: int = 12,
) -> str:
    focus_block = _focus_block(focus, "Use only information relevant to this focus.")
    return (
        "Write a HIGH-YIELD summary of the following study text. Use only "
        "information contained in the FULL TEXT.\n\n"
        f"Topic: {title}\n"
        f"{focus_block}\n"
        "RULES:\n"
        f"- Bullet points only (at most {max_bullets}), written in {language}.\n"
        "- No information beyond the full text.\n"
        "- Every bullet lists the chunk IDs it is based on and a short verbatim "
        "quote from those chunks.\n\n"
        "RETURN ONLY JSON:\n"
        '{"title": "string", "bullets": [{"text": "bullet", "chunk_ids": '
        '["id1", "id2"], "quote_snippets": ["short quote"]}]}\n\n'
        "FULL TEXT:\n"
        f"{full_markdown}\n\n"
        "CHUNKS (for citations):\n"
        f"{render_chunk_list(chunks)}\n"
    )


def _schema_hint(model: type[BaseModel]) -> str:
    schema = json.dumps(model.model_json_schema())
    return f"\n\nReturn ONLY valid JSON that matches this schema:\n{schema}"


# ── Parsing ──────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text).replace("```", "").strip()


def _parse(text: str, model: type[BaseModel]) -> BaseModel:
    clean = strip_code_fences(text or "")
    if not clean:
        raise InvalidModelOutput("Model returned an empty response")
    try:
        return model.model_validate_json(clean)
    except ValidationError as exc:
        raise InvalidModelOutput(f"Model output does not match the response contract: {exc}") from exc


def _ground(label: str, chunk_ids: list[str], allowed_ids: set[str]) -> list[str]:
    """Keep only cited ids that were actually supplied to the model."""
    kept = [cid for cid in chunk_ids if cid in allowed_ids]
    if len(kept) < len(chunk_ids):
        logger.warning(
            "Dropped %d unknown chunk id(s) cited by %s", len(chunk_ids) - len(kept), label,
        )
    if not kept:
        raise InvalidModelOutput(f"{label} cites no known chunk")
    return kept


def parse_fulltext(text: str, allowed_ids: set[str]) -> FullTextResult:
    result = _parse(text, FullTextResult)
    for section in result.sections:
        section.chunk_ids = _ground(f"section {section.title!r}", section.chunk_ids, allowed_ids)
        section.quote_snippets = section.quote_snippets[:MAX_QUOTES]
    return result


def parse_high_yield(text: str, allowed_ids: set[str], max_bullets: int = 12) -> HighYieldResult:
    result = _parse(text, HighYieldResult)
    result.bullets = result.bullets[:max_bullets]
    for i, bullet in enumerate(result.bullets, 1):
        bullet.chunk_ids = _ground(f"bullet {i}", bullet.chunk_ids, allowed_ids)
        bullet.quote_snippets = bullet.quote_snippets[:MAX_QUOTES]
    return result


# ── Provider call ────────────────────────────────────────────

async def complete_json(
    prompt: str,
    schema_model: type[BaseModel],
    params: StageParams,
    settings: Settings | None = None,
) -> str:
    """Send one prompt to the provider and return the raw response text.

    Each attempt is bounded by ``llm_timeout_seconds``; transient errors are
    retried up to ``llm_max_retries`` times.

    Raises:
        GenerationFailed: When every attempt failed or a non-transient
            provider error occurred.
    """
    settings = settings or get_settings()
    kwargs: dict = {
        "model": settings.llm_model,
        "messages": [{"role": "user", "content": prompt + _schema_hint(schema_model)}],
        "temperature": params.temperature,
        "max_tokens": params.max_tokens,
    }
    if settings.llm_api_key:
        kwargs["api_key"] = settings.llm_api_key

    attempts = settings.llm_max_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            response = await asyncio.wait_for(
                acompletion(**kwargs), timeout=settings.llm_timeout_seconds,
            )
            return response.choices[0].message.content or ""
        except _TRANSIENT_ERRORS as exc:
            logger.warning(
                "LLM attempt %d/%d failed: %s", attempt, attempts, type(exc).__name__,
            )
            if attempt == attempts:
                raise GenerationFailed(
                    f"LLM call failed after {attempts} attempt(s): {type(exc).__name__}"
                ) from exc
            backoff = settings.llm_retry_backoff_seconds * (2 ** (attempt - 1))
            await asyncio.sleep(backoff + random.uniform(0, backoff / 2))
        except Exception as exc:
            raise GenerationFailed(f"LLM call failed: {exc}") from exc

    raise GenerationFailed("LLM call was not attempted")


async def generate_fulltext(
    title: str,
    chunks: Sequence[ChunkRef],
    focus: str = "",
    settings: Settings | None = None,
) -> FullTextResult:
    """Stage FULLTEXT: a sectioned study text grounded in ``chunks``."""
    settings = settings or get_settings()
    prompt = build_fulltext_prompt(title, chunks, focus, settings.output_language)
    text = await complete_json(
        prompt,
        FullTextResult,
        StageParams(settings.fulltext_max_tokens, settings.fulltext_temperature),
        settings,
    )
    return parse_fulltext(text, {c.id for c in chunks})


async def generate_high_yield(
    title: str,
    full_markdown: str,
    chunks: Sequence[ChunkRef],
    focus: str = "",
    settings: Settings | None = None,
) -> HighYieldResult:
    """Stage HIGH_YIELD: condensed bullets derived from the full text."""
    settings = settings or get_settings()
    prompt = build_high_yield_prompt(
        title,
        full_markdown,
        chunks,
        focus,
        settings.output_language,
        settings.high_yield_max_bullets,
    )
    text = await complete_json(
        prompt,
        HighYieldResult,
        StageParams(settings.high_yield_max_tokens, settings.high_yield_temperature),
        settings,
    )
    return parse_high_yield(text, {c.id for c in chunks}, settings.high_yield_max_bullets)
