"""Markdown assembly, HTML rendering and sanitization of generated output."""

from __future__ import annotations

import re

import markdown

from studypack.services.generation import FullTextResult, HighYieldResult

_SCRIPT_BLOCK = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_EVENT_ATTR_DOUBLE = re.compile(r"\son\w+=\"[^\"]*\"", re.IGNORECASE)
_EVENT_ATTR_SINGLE = re.compile(r"\son\w+='[^']*'", re.IGNORECASE)
_EVENT_ATTR_BARE = re.compile(r"\son\w+=[^\s>]+", re.IGNORECASE)
_SCRIPT_TAG = re.compile(r"</?script\b[^>]*>?", re.IGNORECASE)


def sanitize_html(html: str) -> str:
    """Strip <script> blocks, stray script tags and inline on* event handlers.

    Pattern-based, not a full HTML sanitizer: it covers what markdown
    rendering of model output can produce.
    """
    html = _SCRIPT_BLOCK.sub("", html)
    html = _SCRIPT_TAG.sub("", html)
    html = _EVENT_ATTR_DOUBLE.sub("", html)
    html = _EVENT_ATTR_SINGLE.sub("", html)
    return _EVENT_ATTR_BARE.sub("", html)


def render_html(md_text: str) -> str:
    return sanitize_html(markdown.markdown(md_text))


def fulltext_markdown(result: FullTextResult, fallback_title: str) -> str:
    parts = [f"# {result.title or fallback_title}"]
    parts.extend(f"## {s.title}\n\n{s.content_md}" for s in result.sections)
    return "\n\n".join(parts)


def high_yield_markdown(result: HighYieldResult, fallback_title: str) -> str:
    bullets = "\n".join(f"- {b.text}" for b in result.bullets)
    return f"# {result.title or fallback_title}\n\n{bullets}"


def fulltext_citations(result: FullTextResult) -> list[dict]:
    return [
        {
            "section_title": s.title,
            "chunk_ids": list(s.chunk_ids),
            "quote_snippets": list(s.quote_snippets),
        }
        for s in result.sections
    ]


def high_yield_citations(result: HighYieldResult) -> list[dict]:
    return [
        {
            "section_title": f"Bullet {i}",
            "chunk_ids": list(b.chunk_ids),
            "quote_snippets": list(b.quote_snippets),
        }
        for i, b in enumerate(result.bullets, 1)
    ]
