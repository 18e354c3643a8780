"""Source file retrieval and text extraction (PDF, DOCX, text/markdown)."""

from __future__ import annotations

import logging
import mimetypes
from io import BytesIO

import httpx

from studypack.services.errors import DownloadFailed, ExtractionFailed, FileTooLarge

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 10 * 1024 * 1024  # 10 MiB
MAX_TEXT_CHARS = 200_000

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
_GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

# Not in every platform mime.types table
mimetypes.add_type(DOCX_MIME_TYPE, ".docx")


async def download_file(
    url: str,
    max_bytes: int = MAX_FILE_BYTES,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bytes:
    """Fetch raw file bytes, refusing anything larger than ``max_bytes``.

    The ceiling is checked against ``Content-Length`` when the server sends
    one and again while streaming, so oversized files are never fully
    buffered.

    Raises:
        DownloadFailed: On transport errors or a non-2xx response.
        FileTooLarge: If the body exceeds ``max_bytes``.
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout, follow_redirects=True, transport=transport,
        ) as client:
            async with client.stream("GET", url) as resp:
                if not resp.is_success:
                    raise DownloadFailed(f"Download failed with HTTP {resp.status_code}")

                declared = resp.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > max_bytes:
                    raise FileTooLarge(f"File is too large (limit {max_bytes} bytes)")

                buf = bytearray()
                async for part in resp.aiter_bytes():
                    buf.extend(part)
                    if len(buf) > max_bytes:
                        raise FileTooLarge(f"File is too large (limit {max_bytes} bytes)")
                return bytes(buf)
    except httpx.HTTPError as exc:
        raise DownloadFailed(f"Download failed: {exc}") from exc


def resolve_mime_type(mime_type: str, filename: str = "") -> str:
    """Return the declared media type, guessing from the filename if it is missing or generic."""
    mime = (mime_type or "").strip().lower()
    if mime in _GENERIC_MIME_TYPES and filename:
        guessed, _ = mimetypes.guess_type(filename)
        mime = (guessed or mime).lower()
    return mime


def extract_text(content: bytes, mime_type: str, max_chars: int = MAX_TEXT_CHARS) -> str:
    """Extract plain text from file bytes based on the media type.

    Args:
        content: Raw file bytes.
        mime_type: Declared (or resolved) media type.
        max_chars: PDF extraction stops once this many characters are collected.

    Returns:
        Extracted text. Unknown types are decoded as UTF-8 on a best-effort basis.

    Raises:
        ExtractionFailed: If a PDF or DOCX cannot be parsed.
    """
    mime = (mime_type or "").lower()

    if "text" in mime or "markdown" in mime:
        return content.decode("utf-8", errors="replace")

    if "pdf" in mime:
        return _extract_pdf(content, max_chars)

    if mime == DOCX_MIME_TYPE:
        return _extract_docx(content)

    logger.info("Unknown media type %r, decoding as UTF-8", mime)
    return content.decode("utf-8", errors="replace")


def _extract_pdf(content: bytes, max_chars: int) -> str:
    from pypdf import PdfReader

    try:
        reader = PdfReader(BytesIO(content))
        text = ""
        for page in reader.pages:
            text += (page.extract_text() or "") + "\n"
            if len(text) > max_chars:
                break
    except Exception as exc:
        raise ExtractionFailed(f"Could not read PDF: {exc}") from exc
    return text


def _extract_docx(content: bytes) -> str:
    from docx import Document

    try:
        doc = Document(BytesIO(content))
    except Exception as exc:
        raise ExtractionFailed(f"Could not read DOCX: {exc}") from exc
    return "\n\n".join(p.text for p in doc.paragraphs)
