import asyncio
import json
from datetime import datetime

import pytest

from brief_buddy.classification import BriefCategory
from brief_buddy.finalize import BriefFinalizer, FinalizeError, build_label
from brief_buddy.prompts import STATE_OF_ART_FALLBACK
from brief_buddy.sessions import Attachment
from brief_buddy.signals import FinalizeMetadata
from brief_buddy.storage import sanitize_name
from brief_buddy.transcript import Turn

from conftest import COMPLETE_ANSWER, FakeChatClient, FakeStorage

FINAL_BRIEF = {
    "contacto": {"nombre": "Ana López", "correo": "ana@acme-foods.com"},
    "alcance": "Spot de 30 segundos para lanzamiento",
    "objetivos": ["Awareness"],
    "faltantes": [],
}


def _clock() -> datetime:
    return datetime(2024, 12, 1, 10, 30)


def _finalizer(client, storage) -> BriefFinalizer:
    return BriefFinalizer(client, storage, "root", clock=_clock)


def test_label_uses_day_month_year():
    label = build_label(BriefCategory.WEB, "Acme", datetime(2025, 3, 7))
    assert label == "Web | Acme | 07-03-2025"


def test_sanitize_name_removes_reserved_characters():
    assert sanitize_name('Videos | Acme: "Q1"/2025') == "Videos Acme Q1 2025"
    assert len(sanitize_name("x" * 300)) == 160


def test_finalize_creates_project_folder_and_documents(fake_storage):
    client = FakeChatClient(
        completions=[json.dumps(FINAL_BRIEF), "# State of Art\n- Proyecto A"]
    )
    attachment = Attachment("acme brief.pdf", "application/pdf", b"%PDF-1.4")
    turns = [Turn.user("Ana López ana@acme-foods.com"), Turn.assistant("¡Gracias!")]

    result = asyncio.run(
        _finalizer(client, fake_storage).finalize(turns, attachment)
    )

    label = "Videos | Acme Foods | 01-12-2024"
    assert result.label == label
    assert result.category is BriefCategory.VIDEOS
    assert result.client == "Acme Foods"
    assert "root/" + label in fake_storage.folders
    project_id = result.project_folder.id
    assert fake_storage.files[f"{project_id}/acme brief.pdf"] == b"%PDF-1.4"
    markdown = fake_storage.files[f"{project_id}/Brief — {label}.md"].decode("utf-8")
    assert markdown.startswith(f"# Brief — {label}")
    assert f"[Link al archivo]({result.attachment.link})" in markdown
    assert fake_storage.files[f"{project_id}/Brief — {label}.docx"].startswith(b"PK")
    soa = fake_storage.files[
        f"{result.state_of_art_folder.id}/State of Art — {label}.md"
    ]
    assert soa.decode("utf-8").startswith("# State of Art")
    assert result.project_folder.id in fake_storage.shared

    history = client.complete_calls[0][1].content
    assert "Ana López ana@acme-foods.com" in history


def test_metadata_overrides_inferred_labels(fake_storage):
    client = FakeChatClient(completions=[json.dumps(FINAL_BRIEF), "# SoA"])
    metadata = FinalizeMetadata(category=BriefCategory.EVENT, client="Mega")

    result = asyncio.run(
        _finalizer(client, fake_storage).finalize([], None, metadata)
    )

    assert result.label == "Evento | Mega | 01-12-2024"
    assert result.attachment is None


def test_model_failures_fall_back_to_empty_brief(fake_storage):
    client = FakeChatClient(complete_error=TimeoutError("slow"))

    result = asyncio.run(_finalizer(client, fake_storage).finalize([]))

    assert result.brief == {}
    assert result.label == "Proyecto | Proyecto | 01-12-2024"
    soa = fake_storage.files[
        f"{result.state_of_art_folder.id}/State of Art — {result.label}.md"
    ]
    assert soa.decode("utf-8") == STATE_OF_ART_FALLBACK


def test_empty_brief_labels_from_conversation(fake_storage):
    client = FakeChatClient(completions=["{}", "# SoA"])
    turns = [Turn.user(COMPLETE_ANSWER), Turn.assistant("Presupuesto de Otra Marca")]

    result = asyncio.run(_finalizer(client, fake_storage).finalize(turns))

    assert result.brief == {}
    assert result.label == "Videos | Super Empresa | 01-12-2024"


def test_attachment_name_is_last_client_fallback(fake_storage):
    client = FakeChatClient(completions=["{}", "# SoA"])
    attachment = Attachment("acme-brief.pdf", "application/pdf", b"%PDF")

    result = asyncio.run(
        _finalizer(client, fake_storage).finalize(
            [Turn.user("Hola, quiero un sitio web")], attachment
        )
    )

    assert result.label == "Web | Acme | 01-12-2024"


def test_storage_errors_raise_finalize_error():
    client = FakeChatClient(completions=["{}", "# SoA"])
    storage = FakeStorage(fail_on="upsert_file")

    with pytest.raises(FinalizeError):
        asyncio.run(_finalizer(client, storage).finalize([]))


def test_result_serializes_links(fake_storage):
    client = FakeChatClient(completions=[json.dumps(FINAL_BRIEF), "# SoA"])

    result = asyncio.run(_finalizer(client, fake_storage).finalize([]))
    payload = result.to_dict()

    assert payload["category"] == "Videos"
    assert payload["projectFolder"]["link"].startswith("https://drive.example/")
    assert payload["stateOfArt"]["document"]["name"].startswith("State of Art")
    assert payload["file"] is None
