import pytest

from brief_buddy.classification import (
    CLIENT_PLACEHOLDER,
    BriefCategory,
    detect_category,
    guess_category_from,
    guess_client_from,
    infer_client_name,
    title_case,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Necesitamos un spot de 30s", BriefCategory.VIDEOS),
        ("Una campaña integral", BriefCategory.CAMPAIGN),
        ("Rediseño de branding", BriefCategory.BRANDING),
        ("Nuevo sitio corporativo", BriefCategory.WEB),
        ("Un evento de lanzamiento", BriefCategory.EVENT),
        ("Algo distinto", BriefCategory.PROJECT),
    ],
)
def test_guess_category_from_keywords(text, expected):
    assert guess_category_from(text) is expected


def test_video_wins_over_later_categories():
    assert guess_category_from("campaña con video para el sitio") is BriefCategory.VIDEOS


def test_client_from_email_domain():
    assert guess_client_from("Contacto: ana@super-empresa.com") == "Super Empresa"


def test_client_from_declared_field():
    assert guess_client_from("Cliente: Mega Studio S.A. de C.V.") == "Mega"


def test_client_placeholder_when_unknown():
    assert guess_client_from("sin datos") == CLIENT_PLACEHOLDER


def test_title_case_normalizes_separators():
    assert title_case("super_empresa-mx") == "Super Empresa Mx"


def test_category_from_string_is_case_insensitive():
    assert BriefCategory.from_string("campaña") is BriefCategory.CAMPAIGN
    assert BriefCategory.from_string("otra", default=BriefCategory.PROJECT) is BriefCategory.PROJECT
    with pytest.raises(ValueError):
        BriefCategory.from_string("otra")


def test_detect_category_uses_filename_hint():
    assert detect_category({}, "guion_spot.pdf") is BriefCategory.VIDEOS
    assert detect_category({"alcance": "Nuevo sitio"}) is BriefCategory.WEB


def test_infer_client_prefers_contact_email():
    brief = {"contacto": {"correo": "Luis@Acme-Foods.mx"}}
    assert infer_client_name(brief, "otro.pdf") == "Acme Foods"


def test_infer_client_falls_back_to_filename_then_default():
    assert infer_client_name({}, "nestle brief 2024.docx") == "Nestle"
    assert infer_client_name({}, "") == "Proyecto"
