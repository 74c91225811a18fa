"""Ordered brief sections and the heuristics that detect their answers."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]

_EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_FULL_NAME_RE = re.compile(r"\b[^\W\d_]{2,}\s+[^\W\d_]{2,}\b")


def _keywords(pattern: str) -> Predicate:
    compiled = re.compile(rf"\b(?:{pattern})\b", re.IGNORECASE)
    return lambda text: compiled.search(text) is not None


def _has_contact(text: str) -> bool:
    return bool(_EMAIL_RE.search(text)) and bool(_FULL_NAME_RE.search(text))


_scope_keywords = _keywords(
    r"alcance|piezas?|entregables?|video|kv|banners?|sitio|landing|app|spot"
    r"|ooh|social|camp[aá]ñas?"
)


def _has_scope(text: str) -> bool:
    return _scope_keywords(text) or len(text.split()) > 20


@dataclass(frozen=True, slots=True)
class BriefSection:
    """One required topic of the brief."""

    name: str
    question: str
    predicate: Predicate = field(repr=False)
    aliases: Tuple[str, ...] = ()


SECTION_PLAN: List[BriefSection] = [
    BriefSection(
        name="Contacto",
        question="¿Me compartes tu nombre completo y correo?",
        predicate=_has_contact,
        aliases=("Contact", "Correo", "Email", "Nombre"),
    ),
    BriefSection(
        name="Alcance",
        question=(
            "En 1–2 frases, ¿cómo describes el proyecto y qué piezas "
            "esperas (p. ej., video, KV, sitio, banners)?"
        ),
        predicate=_has_scope,
        aliases=("Scope", "Proyecto"),
    ),
    BriefSection(
        name="Objetivos",
        question=(
            "¿Qué objetivos o KPIs quieres lograr (awareness, leads, "
            "ventas, engagement) y cómo medirías el éxito?"
        ),
        predicate=_keywords(
            r"objetiv\w*|kpis?|metas?|resultados?|conversi[oó]n(?:es)?"
            r"|awareness|engagement|ventas"
        ),
        aliases=("Objetivo", "KPIs", "Goals"),
    ),
    BriefSection(
        name="Audiencia",
        question=(
            "¿Quién es la audiencia (edad, ubicación, intereses) y en qué "
            "canales suelen estar?"
        ),
        predicate=_keywords(
            r"audiencias?|target|p[uú]blicos?|segmentos?|demogr[aá]fic\w*"
            r"|buyer|personas?|clientes?"
        ),
        aliases=("Target", "Público"),
    ),
    BriefSection(
        name="Marca",
        question=(
            "¿Qué debemos saber de la marca (tono, valores, referencias, "
            "guía/brandbook o links)?"
        ),
        predicate=_keywords(
            r"marcas?|brand|tono|valores|gu[ií]a de marca|brandbook"
            r"|manual de marca|lineamientos"
        ),
        aliases=("Brand",),
    ),
    BriefSection(
        name="Entregables",
        question=(
            "Lista los entregables concretos con formatos o versiones "
            "(si aplica)."
        ),
        predicate=_keywords(
            r"entregables?|piezas?|formatos?|resoluci[oó]n(?:es)?"
            r"|versi[oó]n(?:es)?"
        ),
        aliases=("Deliverables", "Piezas"),
    ),
    BriefSection(
        name="Logística",
        question=(
            "Fechas clave y dependencias: ¿hay deadline, presupuesto "
            "tentativo, aprobaciones o restricciones?"
        ),
        predicate=_keywords(
            r"\d{1,2}/\d{1,2}(?:/\d{2,4})?|\d{4}-\d{2}-\d{2}|hoy|ma[ñn]ana"
            r"|semanas?|mes(?:es)?|deadline|fechas?|entrega|presupuesto"
            r"|budget|aprobaci[oó]n(?:es)?|stakeholders?|log[ií]stica"
        ),
        aliases=("Fechas", "Presupuesto", "Aprobaciones", "Logistics"),
    ),
    BriefSection(
        name="Extras",
        question=(
            "¿Hay riesgos, supuestos, referencias o notas adicionales que "
            "debamos considerar?"
        ),
        predicate=_keywords(
            r"riesgos?|supuestos?|referencias?|links?|notas?|extras?"
        ),
        aliases=("Notas", "Riesgos"),
    ),
]

SECTION_NAMES: List[str] = [section.name for section in SECTION_PLAN]

DEFAULT_QUESTION = "Continuemos con la siguiente sección, ¿de acuerdo?"


def fold_label(label: str) -> str:
    """Lower-case and strip accents so labels compare loosely."""

    decomposed = unicodedata.normalize("NFKD", label.strip().lower())
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def _build_label_index() -> Dict[str, BriefSection]:
    index: Dict[str, BriefSection] = {}
    for section in SECTION_PLAN:
        for label in (section.name, *section.aliases):
            index[fold_label(label)] = section
    return index


_LABEL_INDEX = _build_label_index()


def resolve_section_label(label: str) -> Optional[BriefSection]:
    """Map a seeded label (or one of its aliases) to its section."""

    return _LABEL_INDEX.get(fold_label(label))


def get_section(name: str) -> BriefSection:
    for section in SECTION_PLAN:
        if section.name == name:
            return section
    raise KeyError(f"Unknown brief section: {name}")


def section_completed(section: BriefSection, text: str) -> bool:
    """Run a section predicate, treating any failure as "not answered"."""

    try:
        return bool(section.predicate(text))
    except Exception:  # noqa: BLE001 # pylint: disable=broad-except
        logger.debug(
            "Predicate for section '%s' failed; treating as incomplete.",
            section.name,
            exc_info=True,
        )
        return False
