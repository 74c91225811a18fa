"""Prompt scaffolding for the Brief Buddy assistant."""

from __future__ import annotations

import json
from dataclasses import dataclass
from string import Template
from typing import Any, Dict, List, Mapping

from .sections import SECTION_NAMES

SYSTEM_PROMPT = f"""
Eres **BRIEF BUDDY @TRÓPICA**, un Project Manager creativo especializado en briefs publicitarios y de comunicación.
- Personalidad: cálido, empático, cercano, profesional. Estilo: guía paso a paso, claridad, simplicidad, sin jerga.
- Propósito: construir briefs claros y accionables para creatividad, publicidad y tecnología.
- Secuencia fija: {" → ".join(SECTION_NAMES)}.
- Dinámica por turno: (1) reconoce lo recibido; (2) mini-resumen en bullets de la sección actual (si aplica); (3) **una sola pregunta** para la **siguiente** sección.
- Validaciones: emails correctos, fechas realistas, links válidos, compatibilidad tiempos/entregables.
- Reglas: no asumas presupuestos ni fechas; no avances si faltan datos críticos; evita preguntas genéricas.
- **Formato SIEMPRE en Markdown** (negritas, bullets, saltos de línea). Evita bloques de código salvo que sea imprescindible.
- Los comentarios HTML que se te pidan al final (<!-- ... -->) son invisibles para el usuario: cópialos literalmente.
""".strip()

WELCOME_NUDGE = (
    "Saluda de manera cálida (2–3 líneas) y explica brevemente qué harás. "
    "Luego pasa DIRECTO a la sección **Contacto** con una sola pregunta "
    "positiva (nombre y correo). No preguntes si desea comenzar ni remarques "
    "que falta información."
)


@dataclass(slots=True)
class NudgeTemplates:
    """Localized building blocks of the per-turn state nudge."""

    progress_continue: Template
    progress_start: Template
    actions: Template
    suggested: Template
    marker_instruction: str


NUDGE = NudgeTemplates(
    progress_continue=Template(
        "Sección **$previous** completada. Agradece lo recibido brevemente. "
        "Ahora avanza a **$current**."
    ),
    progress_start=Template(
        "Iniciemos en **$current**. Pide los datos necesarios de manera "
        "positiva, sin preguntar si desea comenzar."
    ),
    actions=Template(
        "Acción:\n"
        "- Haz un mini-resumen en bullets SOLO si ya hay datos válidos de la "
        "sección actual.\n"
        "- Formula **una sola pregunta** clara y positiva para **$current**.\n"
        "- Nunca digas frases como \"no has compartido información\" ni "
        "\"¿quieres comenzar?\". Avanza siempre.\n"
        "- Si ya hiciste esta misma pregunta y no fue respondida, "
        "reformúlala en lugar de repetirla literalmente."
    ),
    suggested=Template('Pregunta sugerida: "$question"'),
    marker_instruction=(
        "Al final de tu respuesta agrega, en líneas propias y copiados "
        "literalmente, estos comentarios invisibles:"
    ),
)

SEED_SCHEMA: Dict[str, Any] = {
    "contacto": {"nombre": "", "correo": ""},
    "alcance": "",
    "objetivos": [],
    "audiencia": {"descripcion": "", "canales": []},
    "marca": {"tono": "", "valores": [], "referencias": []},
    "entregables": [],
    "logistica": {
        "fechas": [],
        "duracion": [],
        "presupuesto": None,
        "aprobaciones": [],
    },
    "extras": {"riesgos": [], "notas": []},
    "faltantes": [],
    "siguiente_pregunta": "",
}

FINAL_SCHEMA: Dict[str, Any] = {
    "contacto": {"nombre": "", "correo": ""},
    "alcance": "",
    "objetivos": [],
    "audiencia": {"descripcion": "", "canales": []},
    "marca": {"tono": "", "valores": [], "referencias": []},
    "entregables": [],
    "logistica": {"fechas": [], "presupuesto": None, "aprobaciones": []},
    "extras": {"riesgos": [], "notas": []},
    "faltantes": [],
    "siguiente_pregunta": "",
}

JSON_ONLY_SYSTEM = "Eres un PM creativo. Devuelve SOLO JSON válido."

SEED_PROMPT = Template(
    """
Basado en el archivo "$filename". Texto (truncado):
\"\"\"
$text
\"\"\"
Tarea: propón un JSON de brief INICIAL con la siguiente estructura, rellenando sólo lo seguro y listando "faltantes":
$schema
""".strip()
)

FINAL_BRIEF_PROMPT = Template(
    """
A partir de este historial de conversación (JSON) devuelve el **brief FINAL** en el siguiente esquema. No inventes datos; si falta algo, déjalo vacío o enuméralo en "faltantes".
Historial:
```json
$history
```

Esquema:
$schema
""".strip()
)

STATE_OF_ART_SYSTEM = (
    "Eres un investigador creativo senior. Devuelve SOLO Markdown válido."
)

STATE_OF_ART_PROMPT = Template(
    """
Genera un documento en Markdown llamado "State of Art — $label".
Secciones:
1) **20 proyectos con temáticas similares** al brief. Prioriza ganadores/destacados en **Cannes Lions**.
2) **20 proyectos con técnicas/tecnologías similares** aunque la temática sea distinta.
Por proyecto: Título, Marca/Cliente, Año (aprox), Reconocimiento (Cannes si aplica), 1–2 líneas de relevancia.
No inventes URLs. Puedes sugerir términos de búsqueda.

Base (resumen del brief):
$summary
""".strip()
)

STATE_OF_ART_FALLBACK = "# State of Art\n(Contenido no disponible)"


def _pretty(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def build_seed_prompt(text: str, filename: str, *, limit: int = 12000) -> str:
    return SEED_PROMPT.substitute(
        filename=filename,
        text=(text or "")[:limit],
        schema=_pretty(SEED_SCHEMA),
    )


def build_final_brief_prompt(history: List[Mapping[str, str]]) -> str:
    return FINAL_BRIEF_PROMPT.substitute(
        history=json.dumps(list(history), ensure_ascii=False),
        schema=_pretty(FINAL_SCHEMA),
    )


def build_state_of_art_prompt(brief: Mapping[str, Any], label: str) -> str:
    summary = {
        "alcance": brief.get("alcance") or "",
        "objetivos": brief.get("objetivos") or [],
        "audiencia": brief.get("audiencia") or {},
        "marca": brief.get("marca") or {},
        "entregables": brief.get("entregables") or [],
        "logistica": brief.get("logistica") or {},
    }
    return STATE_OF_ART_PROMPT.substitute(label=label, summary=_pretty(summary))
