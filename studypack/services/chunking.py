"""Text normalization and paragraph chunking service."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 1600
DEFAULT_MAX_CHUNKS = 200

PARAGRAPH_SEPARATOR = "\n\n"

_BLANK_LINE = re.compile(r"\n\s*\n")


@dataclass
class TextChunk:
    """A chunk of text with its position index."""
    index: int
    content: str
    char_count: int


def normalize_text(text: str) -> str:
    """Normalize unicode, collapse whitespace, strip control characters."""
    # Normalize unicode to NFC form
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # Remove control characters (except newlines and tabs)
    text = "".join(
        ch for ch in text
        if ch in "\n\t" or unicodedata.category(ch) != "Cc"
    )
    # Collapse multiple spaces/tabs into a single space
    text = re.sub(r"[^\S\n]+", " ", text)
    # Strip trailing/leading spaces on each line
    text = re.sub(r" *\n *", "\n", text)
    # Collapse multiple blank lines into at most two newlines
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, dropping empty paragraphs."""
    return [p.strip() for p in _BLANK_LINE.split(text) if p.strip()]


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_chunks: int = DEFAULT_MAX_CHUNKS,
) -> list[TextChunk]:
    """Greedily pack paragraphs into chunks of roughly ``chunk_size`` chars.

    Paragraphs are never split: a paragraph longer than ``chunk_size`` becomes
    a chunk on its own. Chunks past ``max_chunks`` are dropped, so very large
    documents are summarized from a prefix.

    Args:
        text: The input text to chunk.
        chunk_size: Soft target for characters per chunk.
        max_chunks: Maximum number of chunks returned.

    Returns:
        List of TextChunk objects in document order.
    """
    text = normalize_text(text)
    if not text or max_chunks <= 0:
        return []

    contents: list[str] = []
    current = ""

    for para in split_paragraphs(text):
        if current and len(current) + len(PARAGRAPH_SEPARATOR) + len(para) > chunk_size:
            contents.append(current)
            if len(contents) >= max_chunks:
                current = ""
                break
            current = para
        else:
            current = f"{current}{PARAGRAPH_SEPARATOR}{para}" if current else para

    if current:
        contents.append(current)

    return [
        TextChunk(index=i, content=c, char_count=len(c))
        for i, c in enumerate(contents[:max_chunks])
    ]
