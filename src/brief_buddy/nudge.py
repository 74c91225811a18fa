"""State nudges that steer the next generated reply."""

from __future__ import annotations

from typing import List, Sequence

from .classification import guess_category_from, guess_client_from
from .progress import ProgressState, evaluate_progress
from .prompts import NUDGE, WELCOME_NUDGE
from .sections import DEFAULT_QUESTION, get_section
from .signals import format_finalize_marker, format_progress_marker
from .transcript import Turn, normalized_transcript


def build_welcome_nudge() -> str:
    return WELCOME_NUDGE


def completion_markers(turns: Sequence[Turn], state: ProgressState) -> List[str]:
    """Markers the generator must append verbatim to its reply."""

    markers = [format_progress_marker(state.is_complete, state.missing)]
    if state.is_complete:
        text = normalized_transcript(turns)
        markers.append(
            format_finalize_marker(
                guess_category_from(text),
                guess_client_from(text),
            )
        )
    return markers


def build_state_nudge(
    turns: Sequence[Turn],
    state: ProgressState | None = None,
) -> str:
    """Compose the instructional context for the current progress state."""

    if state is None:
        state = evaluate_progress(turns)
    if state.previous:
        progress = NUDGE.progress_continue.substitute(
            previous=state.previous, current=state.current
        )
    else:
        progress = NUDGE.progress_start.substitute(current=state.current)
    try:
        question = get_section(state.current).question
    except KeyError:
        question = DEFAULT_QUESTION
    lines = [
        progress,
        NUDGE.actions.substitute(current=state.current),
        NUDGE.suggested.substitute(question=question),
        NUDGE.marker_instruction,
    ]
    lines.extend(completion_markers(turns, state))
    return "\n".join(lines)
