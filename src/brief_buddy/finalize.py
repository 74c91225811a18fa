"""Consolidation and archival of a completed brief."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .classification import (
    CLIENT_PLACEHOLDER,
    BriefCategory,
    detect_category,
    guess_category_from,
    guess_client_from,
    infer_client_name,
)
from .documents import DOCX_MIME, BriefDocumentRenderer, render_brief_markdown
from .maf_client import ChatBackend, ChatMessage, extract_json_object
from .prompts import (
    JSON_ONLY_SYSTEM,
    STATE_OF_ART_FALLBACK,
    STATE_OF_ART_SYSTEM,
    build_final_brief_prompt,
    build_state_of_art_prompt,
)
from .sessions import Attachment
from .signals import FinalizeMetadata
from .storage import BriefStorage, DriveFile, StorageError
from .transcript import Turn, normalized_transcript

logger = logging.getLogger(__name__)

STATE_OF_ART_FOLDER = "State of Art"
STATE_OF_ART_TEMPERATURE = 0.3
DATE_FORMAT = "%d-%m-%Y"


class FinalizeError(RuntimeError):
    """Raised when the brief could not be archived."""


def build_label(category: BriefCategory, client: str, when: datetime) -> str:
    return f"{category.value} | {client} | {when.strftime(DATE_FORMAT)}"


def resolve_category(
    brief: Dict[str, Any], transcript: str, filename: str = ""
) -> BriefCategory:
    """Consolidated brief first, then the conversation itself."""

    category = detect_category(brief, filename)
    if category is BriefCategory.PROJECT:
        category = guess_category_from(transcript)
    return category


def resolve_client(brief: Dict[str, Any], transcript: str, filename: str = "") -> str:
    """Brief email domain, then the conversation, then the attachment name."""

    client = infer_client_name(brief)
    if client != BriefCategory.PROJECT.value:
        return client
    guessed = guess_client_from(transcript)
    if guessed != CLIENT_PLACEHOLDER:
        return guessed
    return infer_client_name({}, filename)


@dataclass(slots=True)
class FinalizeResult:
    """Everything created in storage for one finalized brief."""

    label: str
    category: BriefCategory
    client: str
    brief: Dict[str, Any]
    project_folder: DriveFile
    brief_markdown: DriveFile
    brief_document: DriveFile
    state_of_art_folder: DriveFile
    state_of_art: DriveFile
    attachment: Optional[DriveFile] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "category": self.category.value,
            "client": self.client,
            "brief": self.brief,
            "projectFolder": self.project_folder.to_dict(),
            "briefMarkdown": self.brief_markdown.to_dict(),
            "briefDocument": self.brief_document.to_dict(),
            "stateOfArt": {
                "folder": self.state_of_art_folder.to_dict(),
                "document": self.state_of_art.to_dict(),
            },
            "file": self.attachment.to_dict() if self.attachment else None,
        }


class BriefFinalizer:
    """Turns a finished conversation into the project folder in storage."""

    def __init__(
        self,
        chat_client: ChatBackend,
        storage: BriefStorage,
        root_folder_id: str,
        *,
        renderer: Optional[BriefDocumentRenderer] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._chat_client = chat_client
        self._storage = storage
        self._root_folder_id = root_folder_id
        self._renderer = renderer or BriefDocumentRenderer()
        self._clock = clock

    async def consolidate(self, turns: Iterable[Turn]) -> Dict[str, Any]:
        """Ask the model for the final brief JSON; failures give ``{}``."""

        history: List[Dict[str, str]] = [turn.to_dict() for turn in turns]
        messages = [
            ChatMessage(role="system", content=JSON_ONLY_SYSTEM),
            ChatMessage(role="user", content=build_final_brief_prompt(history)),
        ]
        try:
            response = await self._chat_client.complete(messages)
        except Exception:
            logger.exception("Final brief consolidation failed")
            return {}
        brief = extract_json_object(response.content)
        if brief is None:
            logger.warning("Final brief consolidation returned no JSON object")
            return {}
        return brief

    async def state_of_art(self, brief: Dict[str, Any], label: str) -> str:
        messages = [
            ChatMessage(role="system", content=STATE_OF_ART_SYSTEM),
            ChatMessage(
                role="user", content=build_state_of_art_prompt(brief, label)
            ),
        ]
        try:
            response = await self._chat_client.complete(
                messages, temperature=STATE_OF_ART_TEMPERATURE
            )
        except Exception:
            logger.exception("State of Art generation failed for %s", label)
            return STATE_OF_ART_FALLBACK
        return response.content.strip() or STATE_OF_ART_FALLBACK

    async def finalize(
        self,
        turns: Iterable[Turn],
        attachment: Optional[Attachment] = None,
        metadata: Optional[FinalizeMetadata] = None,
    ) -> FinalizeResult:
        snapshot = list(turns)
        metadata = metadata or FinalizeMetadata()
        brief = await self.consolidate(snapshot)
        filename = attachment.filename if attachment else ""
        transcript = normalized_transcript(snapshot)
        category = metadata.category or resolve_category(brief, transcript, filename)
        client = metadata.client or resolve_client(brief, transcript, filename)
        label = build_label(category, client, self._clock())
        logger.info("Finalizing brief %s", label)

        storage = self._storage
        try:
            project = await storage.ensure_folder(label, self._root_folder_id)
            await storage.share_with_anyone(project.id)

            stored_attachment = None
            if attachment is not None:
                stored_attachment = await storage.upsert_file(
                    project.id,
                    attachment.filename,
                    attachment.data,
                    attachment.mime_type,
                )
                await storage.share_with_anyone(stored_attachment.id)
            file_link = stored_attachment.link if stored_attachment else None

            markdown = render_brief_markdown(label, brief, file_link)
            brief_markdown = await storage.upsert_file(
                project.id,
                f"Brief — {label}.md",
                markdown.encode("utf-8"),
                "text/markdown",
            )
            await storage.share_with_anyone(brief_markdown.id)

            brief_document = await storage.upsert_file(
                project.id,
                f"Brief — {label}.docx",
                self._renderer.render(label, brief, file_link),
                DOCX_MIME,
            )
            await storage.share_with_anyone(brief_document.id)

            soa_folder = await storage.ensure_folder(
                STATE_OF_ART_FOLDER, project.id
            )
            await storage.share_with_anyone(soa_folder.id)
            soa_text = await self.state_of_art(brief, label)
            soa_document = await storage.upsert_file(
                soa_folder.id,
                f"State of Art — {label}.md",
                soa_text.encode("utf-8"),
                "text/markdown",
            )
            await storage.share_with_anyone(soa_document.id)
        except StorageError as exc:
            raise FinalizeError(f"Could not archive brief '{label}': {exc}") from exc

        return FinalizeResult(
            label=label,
            category=category,
            client=client,
            brief=brief,
            project_folder=project,
            brief_markdown=brief_markdown,
            brief_document=brief_document,
            state_of_art_folder=soa_folder,
            state_of_art=soa_document,
            attachment=stored_attachment,
        )
