"""Progress evaluation over the brief transcript."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .sections import SECTION_PLAN, BriefSection, section_completed
from .transcript import Turn, normalized_transcript


@dataclass(frozen=True, slots=True)
class ProgressState:
    """Derived view of which sections are still unanswered."""

    missing: tuple[str, ...]
    current: str
    previous: Optional[str]

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict[str, object]:
        return {
            "missing": list(self.missing),
            "current": self.current,
            "previous": self.previous,
            "complete": self.is_complete,
        }


def missing_sections_in(
    text: str,
    plan: Sequence[BriefSection] = SECTION_PLAN,
) -> List[str]:
    """Sections whose predicate fails against already-normalized text."""

    return [
        section.name
        for section in plan
        if not section_completed(section, text)
    ]


def missing_sections(turns: Iterable[Turn]) -> List[str]:
    return missing_sections_in(normalized_transcript(turns))


def next_section(turns: Iterable[Turn]) -> str:
    missing = missing_sections(turns)
    if missing:
        return missing[0]
    return SECTION_PLAN[-1].name


def evaluate_progress(
    turns: Iterable[Turn],
    plan: Sequence[BriefSection] = SECTION_PLAN,
) -> ProgressState:
    """Recompute the progress state from scratch for the given turns."""

    missing = missing_sections_in(normalized_transcript(turns), plan)
    names = [section.name for section in plan]
    current = missing[0] if missing else names[-1]
    index = names.index(current)
    previous = names[index - 1] if index > 0 else None
    return ProgressState(
        missing=tuple(missing),
        current=current,
        previous=previous,
    )
