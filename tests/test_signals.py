from brief_buddy.classification import BriefCategory
from brief_buddy.nudge import build_state_nudge, build_welcome_nudge, completion_markers
from brief_buddy.progress import evaluate_progress
from brief_buddy.signals import (
    CompletionSignalParser,
    format_finalize_marker,
    format_progress_marker,
    parse_completion_signal,
    strip_markers,
)
from brief_buddy.transcript import Turn

from conftest import COMPLETE_ANSWER


def test_markers_are_compact_json_comments():
    assert (
        format_progress_marker(False, ["Marca", "Logística"])
        == '<!-- PROGRESS: {"complete":false,"missing":["Marca","Logística"]} -->'
    )
    assert (
        format_finalize_marker(BriefCategory.CAMPAIGN, "Acme")
        == '<!-- AUTO_FINALIZE: {"category":"Campaña","client":"Acme"} -->'
    )


def test_incomplete_progress_is_not_a_completion():
    signal = parse_completion_signal(
        'Gracias <!-- PROGRESS: {"complete":false,"missing":["Marca"]} -->'
    )

    assert not signal.complete
    assert signal.missing == ("Marca",)


def test_finalize_marker_carries_metadata():
    signal = parse_completion_signal(
        'Listo.\n<!-- PROGRESS: {"complete":true,"missing":[]} -->\n'
        '<!-- AUTO_FINALIZE: {"category":"Videos","client":"Super Empresa"} -->'
    )

    assert signal.complete
    assert signal.metadata is not None
    assert signal.metadata.category is BriefCategory.VIDEOS
    assert signal.metadata.client == "Super Empresa"


def test_complete_progress_alone_has_no_metadata():
    signal = parse_completion_signal('<!-- PROGRESS: {"complete":true,"missing":[]} -->')

    assert signal.complete
    assert signal.metadata is None


def test_malformed_and_partial_markers_are_ignored():
    assert not parse_completion_signal("<!-- AUTO_FINALIZE: {oops} -->").complete
    assert not parse_completion_signal('<!-- AUTO_FINALIZE: {"category":"Vid').complete
    assert not parse_completion_signal("<!-- AUTO_FINALIZE: [1, 2] -->").complete


def test_unknown_category_falls_back_to_project():
    signal = parse_completion_signal(
        '<!-- AUTO_FINALIZE: {"category":"Podcast","client":"Acme"} -->'
    )

    assert signal.metadata.category is BriefCategory.PROJECT


def test_parser_detects_marker_split_across_fragments():
    parser = CompletionSignalParser()

    assert not parser.feed("Perfecto, cerramos. <!-- AUTO_FIN").complete
    assert not parser.feed('ALIZE: {"category":"Web",').complete
    signal = parser.feed('"client":"Acme"} -->')

    assert signal.complete
    assert signal.metadata.category is BriefCategory.WEB
    assert parser.text.startswith("Perfecto, cerramos.")


def test_strip_markers_hides_complete_and_trailing_comments():
    text = 'Hola\n<!-- PROGRESS: {"complete":false,"missing":[]} -->'
    assert strip_markers(text) == "Hola"
    assert strip_markers("Hola <!-- PROGR") == "Hola"


def test_welcome_nudge_goes_straight_to_contact():
    assert "**Contacto**" in build_welcome_nudge()


def test_state_nudge_starts_with_contact():
    nudge = build_state_nudge([Turn.user("Hola")])

    assert nudge.startswith("Iniciemos en **Contacto**")
    assert "una sola pregunta" in nudge
    assert '"complete":false' in nudge
    assert "AUTO_FINALIZE" not in nudge


def test_state_nudge_acknowledges_previous_section():
    nudge = build_state_nudge([Turn.user("Juan Pérez juan@example.com")])

    assert nudge.startswith("Sección **Contacto** completada.")
    assert "Ahora avanza a **Alcance**." in nudge
    assert "Pregunta sugerida:" in nudge
    assert "reformúlala" in nudge


def test_complete_state_adds_finalize_marker():
    turns = [Turn.user(COMPLETE_ANSWER)]

    markers = completion_markers(turns, evaluate_progress(turns))

    assert markers == [
        '<!-- PROGRESS: {"complete":true,"missing":[]} -->',
        '<!-- AUTO_FINALIZE: {"category":"Videos","client":"Super Empresa"} -->',
    ]
    assert markers[1] in build_state_nudge(turns)
