"""Google Drive persistence for finalized briefs."""

from __future__ import annotations

import asyncio
import io
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, TypeVar

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from .config import DriveSettings

logger = logging.getLogger(__name__)

FOLDER_MIME = "application/vnd.google-apps.folder"
TOKEN_URI = "https://oauth2.googleapis.com/token"
DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]
FILE_FIELDS = "id,name,mimeType,webViewLink"
NAME_MAX = 160

_UNSAFE_NAME_RE = re.compile(r'[\\/:*?"<>|]+')
_WHITESPACE_RE = re.compile(r"\s+")

T = TypeVar("T")


class StorageError(RuntimeError):
    """Raised when a Drive request fails."""


def sanitize_name(name: str) -> str:
    """Make ``name`` acceptable as a Drive file name."""

    cleaned = _UNSAFE_NAME_RE.sub(" ", name or "")
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:NAME_MAX]


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


@dataclass(frozen=True, slots=True)
class DriveFile:
    """Identifier and share link of a stored file or folder."""

    id: str
    name: str
    link: Optional[str] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "DriveFile":
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name", "")),
            link=payload.get("webViewLink"),
            mime_type=payload.get("mimeType"),
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "id": self.id,
            "name": self.name,
            "link": self.link,
            "mimeType": self.mime_type,
        }


class BriefStorage(Protocol):
    """Operations the finalize pipeline needs from a storage backend."""

    async def ensure_folder(self, name: str, parent_id: str) -> DriveFile: ...

    async def upsert_file(
        self,
        folder_id: str,
        name: str,
        data: bytes,
        mime_type: str,
    ) -> DriveFile: ...

    async def share_with_anyone(self, file_id: str) -> None: ...


class DriveStorage:
    """Drive v3 client wrapper; blocking calls run in worker threads.

    Lookups are by name within a parent, so two concurrent finalizations of
    the same label can still create duplicates.
    """

    def __init__(self, service: Any) -> None:
        self._service = service

    @classmethod
    def from_settings(cls, settings: DriveSettings) -> "DriveStorage":
        settings.require()
        credentials = Credentials(
            None,
            refresh_token=settings.refresh_token,
            token_uri=TOKEN_URI,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            scopes=DRIVE_SCOPES,
        )
        service = build(
            "drive",
            "v3",
            credentials=credentials,
            cache_discovery=False,
        )
        return cls(service)

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except HttpError as exc:
            raise StorageError(f"Google Drive request failed: {exc}") from exc

    def _find(
        self,
        name: str,
        parent_id: str,
        *,
        folder: bool,
    ) -> Optional[Dict[str, Any]]:
        clauses = [
            f"name='{_escape_query(name)}'",
            f"'{_escape_query(parent_id)}' in parents",
            "trashed=false",
        ]
        if folder:
            clauses.append(f"mimeType='{FOLDER_MIME}'")
        else:
            clauses.append(f"mimeType!='{FOLDER_MIME}'")
        response = (
            self._service.files()
            .list(
                q=" and ".join(clauses),
                fields=f"files({FILE_FIELDS})",
                pageSize=1,
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            )
            .execute()
        )
        files = response.get("files") or []
        return files[0] if files else None

    def _ensure_folder_sync(self, name: str, parent_id: str) -> DriveFile:
        safe = sanitize_name(name)
        existing = self._find(safe, parent_id, folder=True)
        if existing is not None:
            return DriveFile.from_api(existing)
        created = (
            self._service.files()
            .create(
                body={
                    "name": safe,
                    "parents": [parent_id],
                    "mimeType": FOLDER_MIME,
                },
                fields=FILE_FIELDS,
                supportsAllDrives=True,
            )
            .execute()
        )
        logger.info("Created Drive folder %s (%s)", safe, created.get("id"))
        return DriveFile.from_api(created)

    def _upsert_file_sync(
        self,
        folder_id: str,
        name: str,
        data: bytes,
        mime_type: str,
    ) -> DriveFile:
        safe = sanitize_name(name)
        media = MediaIoBaseUpload(
            io.BytesIO(data),
            mimetype=mime_type or "application/octet-stream",
            resumable=False,
        )
        existing = self._find(safe, folder_id, folder=False)
        files = self._service.files()
        if existing is not None:
            payload = files.update(
                fileId=existing["id"],
                media_body=media,
                fields=FILE_FIELDS,
                supportsAllDrives=True,
            ).execute()
        else:
            payload = files.create(
                body={"name": safe, "parents": [folder_id]},
                media_body=media,
                fields=FILE_FIELDS,
                supportsAllDrives=True,
            ).execute()
        return DriveFile.from_api(payload)

    def _share_sync(self, file_id: str) -> None:
        self._service.permissions().create(
            fileId=file_id,
            body={"role": "reader", "type": "anyone"},
            supportsAllDrives=True,
        ).execute()

    async def ensure_folder(self, name: str, parent_id: str) -> DriveFile:
        """Return the folder called ``name`` under ``parent_id``, creating it."""

        return await self._run(self._ensure_folder_sync, name, parent_id)

    async def upsert_file(
        self,
        folder_id: str,
        name: str,
        data: bytes,
        mime_type: str,
    ) -> DriveFile:
        """Upload ``data`` as ``name``, replacing a same-named file."""

        return await self._run(
            self._upsert_file_sync, folder_id, name, data, mime_type
        )

    async def share_with_anyone(self, file_id: str) -> None:
        try:
            await self._run(self._share_sync, file_id)
        except StorageError as exc:
            logger.warning("Could not share %s publicly: %s", file_id, exc)
