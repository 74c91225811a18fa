"""Hidden completion markers carried inside generated replies."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .classification import BriefCategory

logger = logging.getLogger(__name__)

PROGRESS_RE = re.compile(
    r"<!--\s*PROGRESS\s*:\s*(\{.*?\})\s*-->", re.IGNORECASE | re.DOTALL
)
AUTO_FINALIZE_RE = re.compile(
    r"<!--\s*AUTO_FINALIZE\s*:\s*(\{.*?\})\s*-->", re.IGNORECASE | re.DOTALL
)
_HIDDEN_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_OPEN_COMMENT_RE = re.compile(r"<!--.*\Z", re.DOTALL)


def _compact(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def format_progress_marker(complete: bool, missing: Sequence[str]) -> str:
    return "<!-- PROGRESS: {} -->".format(
        _compact({"complete": complete, "missing": list(missing)})
    )


def format_finalize_marker(category: BriefCategory, client: str) -> str:
    return "<!-- AUTO_FINALIZE: {} -->".format(
        _compact({"category": category.value, "client": client})
    )


@dataclass(frozen=True, slots=True)
class FinalizeMetadata:
    """Classification hints used to label the finalized project."""

    category: Optional[BriefCategory] = None
    client: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "FinalizeMetadata":
        category_raw = payload.get("category")
        category = None
        if isinstance(category_raw, str) and category_raw.strip():
            category = BriefCategory.from_string(
                category_raw, default=BriefCategory.PROJECT
            )
        client_raw = payload.get("client")
        client = None
        if isinstance(client_raw, str) and client_raw.strip():
            client = client_raw.strip()
        return cls(category=category, client=client)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "category": self.category.value if self.category else None,
            "client": self.client,
        }


@dataclass(frozen=True, slots=True)
class CompletionSignal:
    """State decoded from the markers found in a reply so far."""

    complete: bool = False
    missing: tuple[str, ...] = ()
    metadata: Optional[FinalizeMetadata] = None


NO_SIGNAL = CompletionSignal()


def _json_payloads(pattern: re.Pattern[str], text: str) -> Iterator[Dict[str, Any]]:
    for match in pattern.finditer(text):
        try:
            payload = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.debug("Ignoring malformed marker payload: %s", match.group(0))
            continue
        if isinstance(payload, dict):
            yield payload


def parse_completion_signal(text: str) -> CompletionSignal:
    """Decode the first well-formed markers of ``text``; never raises."""

    progress = next(_json_payloads(PROGRESS_RE, text), None)
    finalize = next(_json_payloads(AUTO_FINALIZE_RE, text), None)

    complete = False
    missing: List[str] = []
    if progress is not None:
        complete = progress.get("complete") is True
        raw_missing = progress.get("missing")
        if isinstance(raw_missing, list):
            missing = [str(item) for item in raw_missing if str(item).strip()]

    metadata = None
    if finalize is not None:
        metadata = FinalizeMetadata.from_payload(finalize)
        complete = True

    if not complete:
        return CompletionSignal(missing=tuple(missing))
    return CompletionSignal(complete=True, missing=(), metadata=metadata)


class CompletionSignalParser:
    """Accumulates streamed fragments and rescans the whole buffer."""

    def __init__(self) -> None:
        self._fragments: List[str] = []
        self._signal = NO_SIGNAL

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    @property
    def signal(self) -> CompletionSignal:
        return self._signal

    def feed(self, fragment: str) -> CompletionSignal:
        if fragment:
            self._fragments.append(fragment)
            self._signal = parse_completion_signal(self.text)
        return self._signal


def strip_markers(text: str) -> str:
    """Remove hidden comments, including a trailing unterminated one."""

    visible = _HIDDEN_COMMENT_RE.sub("", text)
    visible = _OPEN_COMMENT_RE.sub("", visible)
    return visible.rstrip()
