"""Per-conversation session state for Brief Buddy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional
from uuid import uuid4

from .finalization import FinalizationGate
from .preview import build_seed_preview
from .progress import ProgressState, evaluate_progress
from .transcript import Role, Turn

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .finalize import FinalizeResult


@dataclass(slots=True)
class Attachment:
    """Source document selected by the user for seeding and finalize."""

    filename: str
    mime_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


def _empty_turns() -> List[Turn]:
    return []


@dataclass(slots=True)
class BriefSession:
    """Encapsulates the state machine for a single brief conversation."""

    session_id: str = field(default_factory=lambda: uuid4().hex)
    turns: List[Turn] = field(default_factory=_empty_turns)
    attachment: Optional[Attachment] = None
    seed_uploaded: bool = False
    gate: FinalizationGate = field(default_factory=FinalizationGate)
    finalize_result: Optional["FinalizeResult"] = None

    @property
    def is_welcome(self) -> bool:
        return not self.turns

    @property
    def needs_seed(self) -> bool:
        return self.attachment is not None and not self.seed_uploaded

    def add_user_message(self, text: str) -> Optional[Turn]:
        normalized = (text or "").strip()
        if not normalized:
            return None
        turn = Turn.user(normalized)
        self.turns.append(turn)
        return turn

    def add_assistant_message(self, text: str) -> Optional[Turn]:
        if not text:
            return None
        turn = Turn.assistant(text)
        self.turns.append(turn)
        return turn

    def attach(self, attachment: Attachment) -> None:
        self.attachment = attachment
        self.seed_uploaded = False

    def ingest_seed(
        self,
        brief: Mapping[str, Any],
        *,
        pending: Optional[Turn] = None,
    ) -> str:
        """Record a seeded brief as user-authored transcript content.

        When the user also typed a message in the same send, the preview is
        merged into that turn instead of creating a new one. Returns the
        preview to display.
        """

        recorded = build_seed_preview(brief, include_question=False)
        if pending is not None and pending.role is Role.USER:
            pending.content = "\n\n".join(
                part for part in (pending.content, recorded) if part
            )
        else:
            self.turns.append(Turn.user(recorded))
        self.seed_uploaded = True
        return build_seed_preview(brief)

    def history(self, max_turns: Optional[int] = None) -> List[Turn]:
        if max_turns is None or max_turns >= len(self.turns):
            return list(self.turns)
        return list(self.turns[-max_turns:])

    def progress(self) -> ProgressState:
        return evaluate_progress(self.turns)

    def reset(self) -> None:
        self.turns.clear()
        self.attachment = None
        self.seed_uploaded = False
        self.finalize_result = None
        self.gate.reset()


class SessionRegistry:
    """In-memory sessions keyed by id; nothing outlives the process."""

    def __init__(self) -> None:
        self._sessions: Dict[str, BriefSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self) -> BriefSession:
        session = BriefSession()
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> BriefSession:
        try:
            return self._sessions[session_id]
        except KeyError as exc:
            raise KeyError(f"Unknown session: {session_id}") from exc

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
