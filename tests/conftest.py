"""Shared fakes for the Brief Buddy test suite."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence

import pytest

from brief_buddy.maf_client import ChatMessage
from brief_buddy.storage import DriveFile, StorageError

COMPLETE_ANSWER = (
    "Soy Ana López, ana@super-empresa.com. spot de video, campaña de "
    "awareness, audiencia joven, marca con tono alegre, entregables en video, "
    "deadline 2024-12-01 con presupuesto, riesgos mínimos"
)


class FakeChatClient:
    """Scripted stand-in for :class:`brief_buddy.maf_client.MAFChatClient`."""

    def __init__(
        self,
        *,
        streams: Optional[Sequence[Sequence[str]]] = None,
        completions: Optional[Sequence[str]] = None,
        stream_error: Optional[Exception] = None,
        complete_error: Optional[Exception] = None,
    ) -> None:
        self._streams: List[List[str]] = [list(s) for s in streams or []]
        self._completions: List[str] = list(completions or [])
        self.stream_error = stream_error
        self.complete_error = complete_error
        self.stream_calls: List[List[ChatMessage]] = []
        self.complete_calls: List[List[ChatMessage]] = []
        self.closed_streams = 0

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
    ) -> ChatMessage:
        self.complete_calls.append(list(messages))
        if self.complete_error is not None:
            raise self.complete_error
        content = self._completions.pop(0) if self._completions else "{}"
        return ChatMessage(role="assistant", content=content)

    async def stream(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        self.stream_calls.append(list(messages))
        fragments = self._streams.pop(0) if self._streams else ["Hola"]
        try:
            for fragment in fragments:
                await asyncio.sleep(0)
                yield fragment
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.closed_streams += 1


class FakeStorage:
    """In-memory storage recording every folder and upload."""

    def __init__(self, *, fail_on: Optional[str] = None) -> None:
        self.folders: Dict[str, DriveFile] = {}
        self.files: Dict[str, bytes] = {}
        self.shared: List[str] = []
        self.fail_on = fail_on
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"id-{self._counter}"

    async def ensure_folder(self, name: str, parent_id: str) -> DriveFile:
        if self.fail_on == "ensure_folder":
            raise StorageError("drive unavailable")
        key = f"{parent_id}/{name}"
        if key not in self.folders:
            folder_id = self._next_id()
            self.folders[key] = DriveFile(
                id=folder_id,
                name=name,
                link=f"https://drive.example/{folder_id}",
            )
        return self.folders[key]

    async def upsert_file(
        self,
        folder_id: str,
        name: str,
        data: bytes,
        mime_type: str,
    ) -> DriveFile:
        if self.fail_on == "upsert_file":
            raise StorageError("upload rejected")
        self.files[f"{folder_id}/{name}"] = data
        file_id = self._next_id()
        return DriveFile(
            id=file_id,
            name=name,
            link=f"https://drive.example/{file_id}",
            mime_type=mime_type,
        )

    async def share_with_anyone(self, file_id: str) -> None:
        self.shared.append(file_id)


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()
