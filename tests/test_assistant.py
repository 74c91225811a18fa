import asyncio
from typing import Any, Dict, List

import pytest

from brief_buddy.assistant import (
    FINALIZE_ERROR_NOTICE,
    GENERATION_ERROR_NOTICE,
    BriefAssistant,
)
from brief_buddy.classification import BriefCategory
from brief_buddy.finalize import FinalizeError
from brief_buddy.prompts import SYSTEM_PROMPT, WELCOME_NUDGE
from brief_buddy.sessions import BriefSession
from brief_buddy.transcript import Role

from conftest import COMPLETE_ANSWER, FakeChatClient

FINAL_REPLY = [
    "¡Gracias! Tenemos todo lo necesario.",
    '\n<!-- PROGRESS: {"complete":true,"missing":[]} -->',
    '\n<!-- AUTO_FINALIZE: {"category":"Videos",',
    '"client":"Super Empresa"} -->',
    '\n<!-- AUTO_FINALIZE: {"category":"Videos","client":"Super Empresa"} -->',
]


class RecordingResult:
    def __init__(self, label: str) -> None:
        self.label = label

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label}


class FakeFinalizer:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.calls: List[Any] = []
        self.error = error

    async def finalize(self, turns, attachment=None, metadata=None):
        self.calls.append((list(turns), attachment, metadata))
        if self.error is not None:
            raise self.error
        return RecordingResult("Videos | Super Empresa | 01-12-2024")


def _collect(assistant: BriefAssistant, session: BriefSession, message=None):
    async def run():
        return [event async for event in assistant.stream_reply(session, message)]

    return asyncio.run(run())


def test_welcome_turn_uses_welcome_nudge():
    assistant = BriefAssistant(FakeChatClient())

    messages = assistant.compose_messages(BriefSession())

    assert [m.role for m in messages] == ["system", "system"]
    assert messages[0].content == SYSTEM_PROMPT
    assert messages[1].content == WELCOME_NUDGE


def test_forwarded_history_is_capped():
    assistant = BriefAssistant(FakeChatClient(), max_turns=2)
    session = BriefSession()
    for index in range(4):
        session.add_user_message(f"respuesta {index}")

    messages = assistant.compose_messages(session)

    assert [m.content for m in messages[2:]] == ["respuesta 2", "respuesta 3"]
    assert messages[1].content.startswith("Iniciemos en **Contacto**")


def test_reply_streams_deltas_and_records_turn():
    client = FakeChatClient(streams=[["Hola", ", ¿cómo te llamas?"]])
    assistant = BriefAssistant(client)
    session = BriefSession()

    events = _collect(assistant, session, "Hola")

    assert [e["type"] for e in events] == ["delta", "delta", "done"]
    assert [t.role for t in session.turns] == [Role.USER, Role.ASSISTANT]
    assert session.turns[-1].content == "Hola, ¿cómo te llamas?"
    assert events[-1]["progress"]["current"] == "Contacto"


def test_repeated_markers_finalize_once():
    client = FakeChatClient(streams=[FINAL_REPLY, FINAL_REPLY])
    finalizer = FakeFinalizer()
    assistant = BriefAssistant(client, finalizer=finalizer)
    session = BriefSession()

    first = _collect(assistant, session, COMPLETE_ANSWER)
    second = _collect(assistant, session, "¿Algo más?")

    assert len(finalizer.calls) == 1
    _, _, metadata = finalizer.calls[0]
    assert metadata.category is BriefCategory.VIDEOS
    assert metadata.client == "Super Empresa"
    assert [e["type"] for e in first][-2:] == ["finalized", "done"]
    assert "finalized" not in [e["type"] for e in second]
    assert session.finalize_result is not None


def test_cancelled_stream_never_finalizes():
    client = FakeChatClient(streams=[FINAL_REPLY])
    finalizer = FakeFinalizer()
    assistant = BriefAssistant(client, finalizer=finalizer)
    session = BriefSession()

    async def run():
        stream = assistant.stream_reply(session, COMPLETE_ANSWER)
        first = await stream.__anext__()
        await stream.aclose()
        return first

    first = asyncio.run(run())

    assert first["type"] == "delta"
    assert finalizer.calls == []
    assert client.closed_streams == 1
    assert not session.gate.fired
    assert [t.role for t in session.turns] == [Role.USER]


def test_generation_error_yields_apology():
    client = FakeChatClient(
        streams=[["Hola"]], stream_error=ConnectionError("reset")
    )
    assistant = BriefAssistant(client)
    session = BriefSession()

    events = _collect(assistant, session, "Hola")

    assert [e["type"] for e in events] == ["delta", "error", "done"]
    assert events[1]["message"] == GENERATION_ERROR_NOTICE
    assert [t.role for t in session.turns] == [Role.USER]


def test_failed_finalize_rearms_gate():
    client = FakeChatClient(streams=[FINAL_REPLY, FINAL_REPLY])
    finalizer = FakeFinalizer(error=FinalizeError("drive down"))
    assistant = BriefAssistant(client, finalizer=finalizer)
    session = BriefSession()

    events = _collect(assistant, session, COMPLETE_ANSWER)

    assert {"type": "error", "message": FINALIZE_ERROR_NOTICE} in events
    assert not session.gate.fired

    finalizer.error = None
    retry = _collect(assistant, session, "Reintenta por favor")

    assert "finalized" in [e["type"] for e in retry]
    assert len(finalizer.calls) == 2


def test_incomplete_reply_does_not_finalize():
    reply = ['Sigamos. <!-- PROGRESS: {"complete":false,"missing":["Marca"]} -->']
    finalizer = FakeFinalizer()
    assistant = BriefAssistant(FakeChatClient(streams=[reply]), finalizer=finalizer)

    _collect(assistant, BriefSession(), "Hola")

    assert finalizer.calls == []


class SlowFinalizer(FakeFinalizer):
    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.finished = asyncio.Event()

    async def finalize(self, turns, attachment=None, metadata=None):
        self.started.set()
        await self.release.wait()
        result = await super().finalize(turns, attachment, metadata)
        self.finished.set()
        return result


def test_leaving_during_finalize_lets_it_complete():
    client = FakeChatClient(streams=[FINAL_REPLY])
    session = BriefSession()

    async def run():
        finalizer = SlowFinalizer()
        assistant = BriefAssistant(client, finalizer=finalizer)

        async def consume():
            async for _ in assistant.stream_reply(session, COMPLETE_ANSWER):
                pass

        consumer = asyncio.create_task(consume())
        await finalizer.started.wait()
        consumer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await consumer
        assert session.gate.fired
        finalizer.release.set()
        await finalizer.finished.wait()
        await asyncio.sleep(0)
        return finalizer

    finalizer = asyncio.run(run())

    assert len(finalizer.calls) == 1
    assert session.gate.fired
    assert session.finalize_result is not None
    assert session.finalize_result.label.startswith("Videos | Super Empresa")


def test_reset_session_finalizes_again():
    client = FakeChatClient(streams=[FINAL_REPLY, FINAL_REPLY])
    finalizer = FakeFinalizer()
    assistant = BriefAssistant(client, finalizer=finalizer)
    session = BriefSession()

    first = _collect(assistant, session, COMPLETE_ANSWER)
    session.reset()
    second = _collect(assistant, session, COMPLETE_ANSWER)

    assert "finalized" in [e["type"] for e in first]
    assert "finalized" in [e["type"] for e in second]
    assert len(finalizer.calls) == 2
    assert session.gate.fired
