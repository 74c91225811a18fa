"""Turn pipeline: prompt assembly, streamed replies and auto-finalize."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from .finalize import BriefFinalizer, FinalizeError, FinalizeResult
from .maf_client import ChatBackend, ChatMessage
from .nudge import build_state_nudge, build_welcome_nudge
from .prompts import SYSTEM_PROMPT
from .sessions import BriefSession
from .signals import CompletionSignalParser, FinalizeMetadata

logger = logging.getLogger(__name__)

StreamEvent = Dict[str, Any]

GENERATION_ERROR_NOTICE = "Lo siento, tuve un problema al generar la respuesta…"
FINALIZE_ERROR_NOTICE = (
    "El brief está completo, pero no pude guardarlo en Drive. "
    "Lo intentaré de nuevo en el siguiente turno."
)
DEFAULT_MAX_TURNS = 20


async def _close(stream: Any) -> None:
    close = getattr(stream, "aclose", None)
    if close is not None:
        await close()


class BriefAssistant:
    """Drives one reply per user turn for a :class:`BriefSession`."""

    def __init__(
        self,
        chat_client: ChatBackend,
        *,
        finalizer: Optional[BriefFinalizer] = None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._chat_client = chat_client
        self._finalizer = finalizer
        self._max_turns = max_turns
        self._finalizing: Set[asyncio.Task[Any]] = set()

    @property
    def chat_client(self) -> ChatBackend:
        return self._chat_client

    @property
    def can_finalize(self) -> bool:
        return self._finalizer is not None

    def compose_messages(self, session: BriefSession) -> List[ChatMessage]:
        """System prompt, the per-turn nudge, then the capped history."""

        if session.is_welcome:
            nudge = build_welcome_nudge()
        else:
            nudge = build_state_nudge(session.turns, session.progress())
        messages = [
            ChatMessage(role="system", content=SYSTEM_PROMPT),
            ChatMessage(role="system", content=nudge),
        ]
        messages.extend(
            ChatMessage(role=turn.role.value, content=turn.content)
            for turn in session.history(self._max_turns)
        )
        return messages

    async def finalize_now(
        self,
        session: BriefSession,
        metadata: Optional[FinalizeMetadata] = None,
    ) -> Optional[FinalizeResult]:
        """Archive the brief once per session; ``None`` if already done.

        The finalize work runs in its own task, so cancelling the caller
        (a client leaving mid-request) does not interrupt the Drive writes
        once they have started.
        """

        finalizer = self._finalizer
        if finalizer is None:
            raise FinalizeError("Finalize is not configured for this assistant")
        turns = list(session.turns)
        attachment = session.attachment

        async def run() -> Optional[FinalizeResult]:
            result = await session.gate.fire(
                lambda: finalizer.finalize(turns, attachment, metadata)
            )
            if result is not None:
                session.finalize_result = result
            return result

        task = asyncio.ensure_future(run())
        self._finalizing.add(task)
        task.add_done_callback(self._finalize_done)
        return await asyncio.shield(task)

    def _finalize_done(self, task: asyncio.Task[Any]) -> None:
        self._finalizing.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Finalize task ended with an error: %s", error)

    async def stream_reply(
        self,
        session: BriefSession,
        message: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield ``delta`` events, then ``finalized``/``error``, then ``done``.

        Closing this generator early closes the upstream stream and skips
        finalization.
        """

        if message is not None:
            session.add_user_message(message)

        parser = CompletionSignalParser()
        upstream = self._chat_client.stream(self.compose_messages(session))
        try:
            async for fragment in upstream:
                if not fragment:
                    continue
                parser.feed(fragment)
                yield {"type": "delta", "text": fragment}
        except Exception:
            logger.exception(
                "Reply generation failed for session %s", session.session_id
            )
            yield {"type": "error", "message": GENERATION_ERROR_NOTICE}
            yield {"type": "done", "progress": session.progress().to_dict()}
            return
        finally:
            await _close(upstream)

        session.add_assistant_message(parser.text)
        signal = parser.signal
        if signal.complete and self._finalizer is not None and not session.gate.fired:
            try:
                result = await self.finalize_now(session, signal.metadata)
            except Exception:
                logger.exception(
                    "Auto-finalize failed for session %s", session.session_id
                )
                yield {"type": "error", "message": FINALIZE_ERROR_NOTICE}
            else:
                if result is not None:
                    yield {"type": "finalized", "result": result.to_dict()}
        yield {"type": "done", "progress": session.progress().to_dict()}
