"""Formatting of seeded brief data into the transcript preview block."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Sequence

from .transcript import MISSING_LABEL, PREVIEW_BANNER

PLACEHOLDER = "—"
DEFAULT_NEXT_QUESTION = "¿Seguimos con la siguiente sección?"


def flatten_seed_value(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        normalized = re.sub(r"\s+", " ", value).strip()
        return [normalized] if normalized else []
    if isinstance(value, bool):
        return [str(value).lower()]
    if isinstance(value, (int, float)):
        return [str(value)]
    if isinstance(value, Mapping):
        return [part for item in value.values() for part in flatten_seed_value(item)]
    if isinstance(value, (list, tuple, set)):
        return [part for item in value for part in flatten_seed_value(item)]
    return []


def dedupe_parts(parts: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    unique: List[str] = []
    for part in parts:
        trimmed = (part or "").strip()
        if not trimmed:
            continue
        key = trimmed.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(trimmed)
    return unique


def format_seed_value(value: Any, separator: str = ", ") -> str:
    return separator.join(dedupe_parts(flatten_seed_value(value)))


def format_contact(contact: Any) -> str:
    """Contact details joined with ``·``, email last."""

    parts = dedupe_parts(flatten_seed_value(contact))
    emails = [part for part in parts if "@" in part][:1]
    others = [part for part in parts if part not in emails]
    return " · ".join(others + emails)


def _format_structured(
    value: Any,
    labelled: Sequence[tuple[str, str]],
    *,
    joiner: str = ". ",
    separators: Mapping[str, str] | None = None,
) -> str:
    """Format a mapping with known keys first, each optionally prefixed."""

    if not value:
        return ""
    if not isinstance(value, Mapping):
        return format_seed_value(value)
    separators = separators or {}
    parts: List[str] = []
    known = {key for key, _ in labelled}
    for key, prefix in labelled:
        formatted = format_seed_value(value.get(key), separators.get(key, ", "))
        if formatted:
            parts.append(f"{prefix}{formatted}")
    for key, item in value.items():
        if key in known:
            continue
        formatted = format_seed_value(item)
        if formatted:
            parts.append(formatted)
    return joiner.join(dedupe_parts(parts))


def format_audience(audience: Any) -> str:
    return _format_structured(
        audience, [("descripcion", ""), ("canales", "Canales: ")]
    )


def format_brand(brand: Any) -> str:
    return _format_structured(
        brand,
        [
            ("tono", "Tono: "),
            ("valores", "Valores: "),
            ("referencias", "Referencias: "),
        ],
    )


def format_logistics(logistics: Any) -> str:
    return _format_structured(
        logistics,
        [
            ("fechas", ""),
            ("presupuesto", "Presupuesto: "),
            ("aprobaciones", "Aprobaciones: "),
        ],
        joiner="; ",
        separators={"presupuesto": " "},
    )


def format_extras(extras: Any) -> str:
    return _format_structured(
        extras, [("riesgos", "Riesgos: "), ("notas", "")]
    )


def with_fallback(text: str) -> str:
    stripped = (text or "").strip()
    return stripped or PLACEHOLDER


def build_seed_preview(
    brief: Mapping[str, Any],
    *,
    include_question: bool = True,
) -> str:
    """Render the preview block shown (and recorded) after seeding.

    The suggested next question comes from the model, so the transcript copy
    leaves it out to keep it from satisfying a section on its own.
    """

    missing = brief.get("faltantes")
    missing_list = (
        [str(item) for item in missing if str(item).strip()]
        if isinstance(missing, list)
        else []
    )
    next_question = str(brief.get("siguiente_pregunta") or "").strip()
    fields = [
        ("Contacto", format_contact(brief.get("contacto"))),
        ("Alcance", format_seed_value(brief.get("alcance"))),
        ("Objetivos", format_seed_value(brief.get("objetivos"))),
        ("Audiencia", format_audience(brief.get("audiencia"))),
        ("Marca", format_brand(brief.get("marca"))),
        ("Entregables", format_seed_value(brief.get("entregables"))),
        ("Logística", format_logistics(brief.get("logistica"))),
        ("Extras", format_extras(brief.get("extras"))),
    ]
    lines = [PREVIEW_BANNER]
    lines.extend(f"- {label}: {with_fallback(value)}" for label, value in fields)
    lines.append("")
    lines.append(
        f"{MISSING_LABEL} "
        f"{', '.join(missing_list) if missing_list else PLACEHOLDER}"
    )
    if include_question:
        lines.append("")
        lines.append(next_question or DEFAULT_NEXT_QUESTION)
    return "\n".join(lines).strip()
