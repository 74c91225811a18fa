"""Conversation turns and the normalizer that prepares them for inference."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from .sections import resolve_section_label


class Role(str, Enum):
    """Authors allowed in a brief conversation."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(slots=True)
class Turn:
    """A single message of the conversation."""

    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Turn":
        return cls(role=Role.ASSISTANT, content=content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


PREVIEW_BANNER = "**Vista previa del archivo analizado.**"
MISSING_LABEL = "**Faltantes:**"

_PREVIEW_BANNER_RE = re.compile(
    r"^\s*[*_]*\s*vista previa del archivo analizado\.?\s*[*_]*\s*$",
    re.IGNORECASE,
)
_MISSING_FIELDS_RE = re.compile(r"^\s*[*_]*\s*faltantes\b", re.IGNORECASE)
_SEEDED_FIELD_RE = re.compile(
    r"^\s*-\s*[*_]*(?P<label>[^:*_]+?)[*_]*\s*:\s*(?P<value>.*)$"
)
_PLACEHOLDER_RE = re.compile(r"^[\s—–\-]*$")


def transcript_text(turns: Iterable[Turn]) -> str:
    """Join the user-authored contents considered for completion checks."""

    return "\n".join(
        turn.content or "" for turn in turns if turn.role is Role.USER
    )


def _normalize_line(line: str) -> Optional[str]:
    if not line.strip():
        return line
    if _PREVIEW_BANNER_RE.match(line) or _MISSING_FIELDS_RE.match(line):
        return None
    match = _SEEDED_FIELD_RE.match(line)
    if match is None:
        return line
    section = resolve_section_label(match.group("label"))
    if section is None:
        return line
    value = match.group("value").strip().lstrip("*_").strip()
    if _PLACEHOLDER_RE.match(value):
        return None
    return f"{section.name}: {value}"


def normalize_transcript(text: str) -> str:
    """Drop preview decoration and placeholders, keep genuine seeded values.

    Seeded ``- Label: value`` lines are rewritten as ``Label: value`` using
    the canonical section name, so the seeded data is credited to its own
    section exactly like an answer typed by the user.
    """

    lines: List[str] = []
    for line in text.splitlines():
        normalized = _normalize_line(line)
        if normalized is not None:
            lines.append(normalized)
    return "\n".join(lines)


def normalized_transcript(turns: Iterable[Turn]) -> str:
    return normalize_transcript(transcript_text(turns))
