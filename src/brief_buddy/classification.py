"""Lightweight keyword classification used to label finalized briefs."""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import PurePath
from typing import Any, Mapping, Optional

TITLE_MAX = 64
CLIENT_PLACEHOLDER = "Cliente"


class BriefCategory(str, Enum):
    """Closed set of project categories used in folder labels."""

    VIDEOS = "Videos"
    CAMPAIGN = "Campaña"
    BRANDING = "Branding"
    WEB = "Web"
    EVENT = "Evento"
    PROJECT = "Proyecto"

    @classmethod
    def from_string(
        cls,
        value: str | None,
        default: Optional["BriefCategory"] = None,
    ) -> "BriefCategory":
        """Match a category by value, case-insensitively."""
        normalized = (value or "").strip().lower()
        for candidate in cls:
            if candidate.value.lower() == normalized:
                return candidate
        if default is not None:
            return default
        raise ValueError(f"Unsupported brief category: {value}")


_CATEGORY_RULES: tuple[tuple[re.Pattern[str], BriefCategory], ...] = (
    (re.compile(r"spot|video|mp4|film"), BriefCategory.VIDEOS),
    (re.compile(r"campaña|campaign"), BriefCategory.CAMPAIGN),
    (re.compile(r"branding|marca"), BriefCategory.BRANDING),
    (re.compile(r"web|sitio"), BriefCategory.WEB),
    (re.compile(r"evento"), BriefCategory.EVENT),
)

_EMAIL_DOMAIN_RE = re.compile(
    r"[A-Z0-9._%+-]+@([A-Z0-9-]+)(?:\.[A-Z0-9-]+)*\.[A-Z]{2,}",
    re.IGNORECASE,
)
_DECLARED_CLIENT_RE = re.compile(
    r"\b(?:cliente|empresa|compa[ñn][ií]a|client|company)\s*:\s*"
    r"([^\W_][\w&'-]*)",
    re.IGNORECASE,
)


def title_case(value: str) -> str:
    text = re.sub(r"[_\-]+", " ", value.lower())
    text = re.sub(r"\s+", " ", text).strip()
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), text)


def guess_category_from(text: str) -> BriefCategory:
    lowered = text.lower()
    for pattern, category in _CATEGORY_RULES:
        if pattern.search(lowered):
            return category
    return BriefCategory.PROJECT


def guess_client_from(text: str) -> str:
    """Prefer the email domain, then a declared client field."""

    email = _EMAIL_DOMAIN_RE.search(text)
    if email:
        return title_case(email.group(1))[:TITLE_MAX]
    declared = _DECLARED_CLIENT_RE.search(text)
    if declared:
        return title_case(declared.group(1))[:TITLE_MAX]
    return CLIENT_PLACEHOLDER


def detect_category(brief: Mapping[str, Any], filename: str = "") -> BriefCategory:
    """Classify a consolidated brief, using the attachment name as a hint."""

    payload = json.dumps(brief or {}, ensure_ascii=False)
    return guess_category_from(f"{payload} {filename}")


def infer_client_name(brief: Mapping[str, Any], filename: str = "") -> str:
    contact = brief.get("contacto") if brief else None
    email = ""
    if isinstance(contact, Mapping):
        email = str(contact.get("correo") or "").strip().lower()
    domain = email.split("@")[1].split(".")[0] if "@" in email else ""
    if domain:
        return title_case(domain)[:TITLE_MAX]
    if filename:
        stem = PurePath(filename).stem
        first_word = re.split(r"\W+", stem)[0] if stem else ""
        if first_word:
            return title_case(first_word)[:TITLE_MAX]
    return BriefCategory.PROJECT.value
