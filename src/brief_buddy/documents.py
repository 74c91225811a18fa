"""Rendering of the consolidated brief into Markdown and Word documents."""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from docx import Document

from .preview import PLACEHOLDER, dedupe_parts, flatten_seed_value

logger = logging.getLogger(__name__)

DOCX_MIME = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
PLACEHOLDER_RE = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")


def _section(brief: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = brief.get(key)
    return value if isinstance(value, Mapping) else {}


def _items(value: Any) -> List[str]:
    return dedupe_parts(flatten_seed_value(value))


def _inline(value: Any) -> str:
    return ", ".join(_items(value)) or PLACEHOLDER


def _bullets(value: Any) -> str:
    items = _items(value)
    if not items:
        return PLACEHOLDER
    return "\n".join(f"- {item}" for item in items)


def _scalar(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    text = " ".join(_items(value))
    return text or PLACEHOLDER


def brief_fields(
    label: str,
    brief: Mapping[str, Any],
    file_link: Optional[str] = None,
) -> Dict[str, str]:
    """Flatten the brief into the ``{{campo}}`` values used by templates."""

    contact = _section(brief, "contacto")
    audience = _section(brief, "audiencia")
    brand = _section(brief, "marca")
    logistics = _section(brief, "logistica")
    extras = _section(brief, "extras")
    return {
        "label": label,
        "archivo": file_link or PLACEHOLDER,
        "contacto_nombre": _scalar(contact.get("nombre")),
        "contacto_correo": _scalar(contact.get("correo")),
        "alcance": _scalar(brief.get("alcance")),
        "objetivos": _bullets(brief.get("objetivos")),
        "audiencia_descripcion": _scalar(audience.get("descripcion")),
        "audiencia_canales": _inline(audience.get("canales")),
        "marca_tono": _scalar(brand.get("tono")),
        "marca_valores": _inline(brand.get("valores")),
        "marca_referencias": _inline(brand.get("referencias")),
        "entregables": _bullets(brief.get("entregables")),
        "logistica_fechas": _inline(logistics.get("fechas")),
        "logistica_presupuesto": _scalar(logistics.get("presupuesto")),
        "logistica_aprobaciones": _inline(logistics.get("aprobaciones")),
        "extras_riesgos": _bullets(extras.get("riesgos")),
        "extras_notas": _bullets(extras.get("notas")),
        "faltantes": _bullets(brief.get("faltantes")),
        "siguiente_pregunta": _scalar(brief.get("siguiente_pregunta")),
    }


def render_brief_markdown(
    label: str,
    brief: Mapping[str, Any],
    file_link: Optional[str] = None,
) -> str:
    fields = brief_fields(label, brief, file_link)
    original = (
        f"[Link al archivo]({file_link})" if file_link else PLACEHOLDER
    )
    return "\n".join(
        [
            f"# Brief — {label}",
            "",
            f"**Archivo original:** {original}",
            "",
            "## Contacto",
            f"- Nombre: {fields['contacto_nombre']}",
            f"- Correo: {fields['contacto_correo']}",
            "",
            "## Alcance",
            fields["alcance"],
            "",
            "## Objetivos",
            fields["objetivos"],
            "",
            "## Audiencia",
            f"- Descripción: {fields['audiencia_descripcion']}",
            f"- Canales: {fields['audiencia_canales']}",
            "",
            "## Marca",
            f"- Tono: {fields['marca_tono']}",
            f"- Valores: {fields['marca_valores']}",
            f"- Referencias: {fields['marca_referencias']}",
            "",
            "## Entregables",
            fields["entregables"],
            "",
            "## Logística",
            f"- Fechas: {fields['logistica_fechas']}",
            f"- Presupuesto: {fields['logistica_presupuesto']}",
            f"- Aprobaciones: {fields['logistica_aprobaciones']}",
            "",
            "## Extras",
            "### Riesgos",
            fields["extras_riesgos"],
            "### Notas",
            fields["extras_notas"],
            "",
            "## Faltantes",
            fields["faltantes"],
            "",
            "## Siguiente pregunta",
            fields["siguiente_pregunta"],
            "",
        ]
    )


def fill_placeholders(text: str, values: Mapping[str, str]) -> str:
    """Replace known ``{{campo}}`` tokens; unknown ones are left as written."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in values:
            return values[key]
        logger.debug("Unknown template placeholder: %s", key)
        return match.group(0)

    return PLACEHOLDER_RE.sub(_replace, text)


def _iter_paragraphs(document: Any) -> Iterator[Any]:
    yield from document.paragraphs
    for table in document.tables:
        yield from _iter_table_paragraphs(table)
    for section in document.sections:
        for part in (section.header, section.footer):
            if not part.is_linked_to_previous:
                yield from part.paragraphs


def _iter_table_paragraphs(table: Any) -> Iterator[Any]:
    for row in table.rows:
        for cell in row.cells:
            yield from cell.paragraphs
            for nested in cell.tables:
                yield from _iter_table_paragraphs(nested)


def _fill_paragraph(paragraph: Any, values: Mapping[str, str]) -> None:
    original = paragraph.text
    if "{{" not in original:
        return
    filled = fill_placeholders(original, values)
    if filled == original:
        return
    runs = paragraph.runs
    if not runs:
        paragraph.add_run(filled)
        return
    # Word splits tokens across runs; the first run keeps the formatting.
    runs[0].text = filled
    for run in runs[1:]:
        run.text = ""


class BriefDocumentRenderer:
    """Builds the ``.docx`` brief, from a template when one is configured."""

    def __init__(self, template_path: Optional[Path] = None) -> None:
        self._template_path = template_path

    def render(
        self,
        label: str,
        brief: Mapping[str, Any],
        file_link: Optional[str] = None,
    ) -> bytes:
        values = brief_fields(label, brief, file_link)
        if self._template_path is not None:
            document = Document(str(self._template_path))
            for paragraph in _iter_paragraphs(document):
                _fill_paragraph(paragraph, values)
        else:
            document = self._default_document(label, values)
        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    @staticmethod
    def _default_document(label: str, values: Mapping[str, str]) -> Any:
        document = Document()
        document.add_heading(f"Brief — {label}", level=1)
        document.add_paragraph(f"Archivo original: {values['archivo']}")

        def add_block(title: str, rows: Iterable[tuple[str, str]]) -> None:
            document.add_heading(title, level=2)
            for name, key in rows:
                text = values[key]
                if "\n" in text or text.startswith("- "):
                    if name:
                        document.add_paragraph(name)
                    for line in text.splitlines():
                        item = line[2:] if line.startswith("- ") else line
                        document.add_paragraph(item.strip(), style="List Bullet")
                elif name:
                    document.add_paragraph(f"{name}: {text}")
                else:
                    document.add_paragraph(text)

        add_block(
            "Contacto",
            [("Nombre", "contacto_nombre"), ("Correo", "contacto_correo")],
        )
        add_block("Alcance", [("", "alcance")])
        add_block("Objetivos", [("", "objetivos")])
        add_block(
            "Audiencia",
            [
                ("Descripción", "audiencia_descripcion"),
                ("Canales", "audiencia_canales"),
            ],
        )
        add_block(
            "Marca",
            [
                ("Tono", "marca_tono"),
                ("Valores", "marca_valores"),
                ("Referencias", "marca_referencias"),
            ],
        )
        add_block("Entregables", [("", "entregables")])
        add_block(
            "Logística",
            [
                ("Fechas", "logistica_fechas"),
                ("Presupuesto", "logistica_presupuesto"),
                ("Aprobaciones", "logistica_aprobaciones"),
            ],
        )
        add_block(
            "Extras",
            [("Riesgos", "extras_riesgos"), ("Notas", "extras_notas")],
        )
        add_block("Faltantes", [("", "faltantes")])
        add_block("Siguiente pregunta", [("", "siguiente_pregunta")])
        return document
