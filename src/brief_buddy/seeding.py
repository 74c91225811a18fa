"""Text extraction and initial brief proposal from an uploaded document."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Dict

from docx import Document
from pypdf import PdfReader

from .documents import DOCX_MIME
from .maf_client import ChatBackend, ChatMessage, extract_json_object
from .prompts import JSON_ONLY_SYSTEM, build_seed_prompt
from .sessions import Attachment

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
EXTRACTION_WARNING = (
    "⚠️ No se pudo extraer texto del archivo que subiste. Puede estar "
    "malformado o protegido."
)
PREVIEW_LIMIT = 800
PROMPT_LIMIT = 12000


def guess_mime_type(filename: str, declared: str = "") -> str:
    """Trust the extension for PDF/DOCX, otherwise the declared type."""

    suffix = PurePath(filename or "").suffix.lower()
    if suffix == ".pdf":
        return PDF_MIME
    if suffix == ".docx":
        return DOCX_MIME
    if suffix == ".txt":
        return "text/plain"
    if suffix in {".md", ".markdown"}:
        return "text/markdown"
    declared = (declared or "").split(";")[0].strip().lower()
    return declared or "application/octet-stream"


def _pdf_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = []
    for page in reader.pages:
        text = page.extract_text()
        if text:
            pages.append(text)
    return "\n\n".join(pages)


def _docx_text(data: bytes) -> str:
    document = Document(io.BytesIO(data))
    parts = [para.text for para in document.paragraphs if para.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


def extract_text(data: bytes, mime_type: str, filename: str = "") -> str:
    """Return the plain text of ``data``; unreadable files yield a warning."""

    mime = guess_mime_type(filename, mime_type)
    try:
        if not data:
            raise ValueError("empty upload")
        if "pdf" in mime:
            return _pdf_text(data).strip()
        if "wordprocessingml" in mime or "officedocument" in mime:
            return _docx_text(data).strip()
        if mime.startswith("text/"):
            return data.decode("utf-8", errors="replace").strip()
        return ""
    except Exception:
        logger.exception("Text extraction failed for %s", filename or mime)
        return EXTRACTION_WARNING


def _empty_brief() -> Dict[str, Any]:
    return {}


@dataclass(slots=True)
class SeedResult:
    """Initial brief proposed for an uploaded document."""

    filename: str
    mime_type: str
    text_preview: str
    brief: Dict[str, Any] = field(default_factory=_empty_brief)

    @property
    def has_content(self) -> bool:
        return bool(self.brief)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "mimeType": self.mime_type,
            "textPreview": self.text_preview,
            "brief": self.brief,
        }


class SeedAnalyzer:
    """Asks the model for a first draft of the brief from a document."""

    def __init__(self, chat_client: ChatBackend) -> None:
        self._chat_client = chat_client

    async def analyze(self, attachment: Attachment) -> SeedResult:
        mime_type = guess_mime_type(attachment.filename, attachment.mime_type)
        text = extract_text(attachment.data, mime_type, attachment.filename)
        result = SeedResult(
            filename=attachment.filename,
            mime_type=mime_type,
            text_preview=text[:PREVIEW_LIMIT],
        )
        if not text or text == EXTRACTION_WARNING:
            return result

        messages = [
            ChatMessage(role="system", content=JSON_ONLY_SYSTEM),
            ChatMessage(
                role="user",
                content=build_seed_prompt(
                    text, attachment.filename, limit=PROMPT_LIMIT
                ),
            ),
        ]
        try:
            response = await self._chat_client.complete(messages)
        except Exception:
            logger.exception("Seed analysis failed for %s", attachment.filename)
            return result

        brief = extract_json_object(response.content)
        if brief is None:
            logger.warning(
                "Seed analysis for %s returned no JSON object",
                attachment.filename,
            )
            return result
        result.brief = brief
        return result
