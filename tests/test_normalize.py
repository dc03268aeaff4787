"""Tests for step text normalization and the glossary."""

import pytest

from stepgen.core.errors import GlossaryError
from stepgen.mapping.glossary import Glossary, load_glossary
from stepgen.mapping.normalize import normalize_step_text, split_quoted, strip_quotes


def test_synonyms_and_stems_map_to_canonical_verbs():
    """Inflected and synonym verbs collapse onto the catalog vocabulary."""
    assert normalize_step_text("User taps the Save button") == "click the save button"
    assert normalize_step_text("I hit enter") == "press enter"
    assert normalize_step_text("The user types 'bob' into the Name field") == "fill 'bob' into the name field"
    assert normalize_step_text("Then I chose 'Canada' from the country dropdown") == \
        "select 'Canada' from the country dropdown"


def test_abbreviations_are_expanded():
    """Shorthand like btn and plz is spelled out."""
    assert normalize_step_text("plz click the Save btn") == "please click the save button"


def test_quoted_literals_are_preserved_verbatim():
    """Case and punctuation inside quotes survive normalization."""
    text = normalize_step_text('When the user clicks "Sign In!" button')
    assert text == 'click "Sign In!" button'


def test_gherkin_keywords_and_actor_prefix_are_stripped():
    """Leading keywords and one actor phrase are removed."""
    assert normalize_step_text("Given as a user I navigate to /login") == "i navigate to /login"
    assert normalize_step_text("And we reload the page.") == "reload the page"


def test_phrase_rewrites_run_before_tokenizing():
    """Multi-word phrases are rewritten as a unit."""
    assert normalize_step_text("Double-click the 'Report' row") == "double click the 'Report' row"
    assert normalize_step_text("Fill 'x' in the e-mail text field") == "fill 'x' in the email field"


def test_empty_and_whitespace_text():
    """Blank input normalizes to an empty string."""
    assert normalize_step_text("") == ""
    assert normalize_step_text("   ") == ""


def test_normalization_is_idempotent():
    """Normalizing normalized text changes nothing."""
    once = normalize_step_text("User clicks the 'Submit' btn")
    assert normalize_step_text(once) == once


def test_split_quoted_and_strip_quotes():
    parts = split_quoted("click 'a b' now")
    assert parts == [("click ", False), ("'a b'", True), (" now", False)]
    assert strip_quotes("'a b'") == "a b"
    assert strip_quotes("plain") == "plain"


def test_glossary_yaml_extension(tmp_path):
    """Project glossaries layer synonyms and aliases over the defaults."""
    path = tmp_path / "glossary.yaml"
    path.write_text(
        "synonyms:\n"
        "  click: [smash]\n"
        "abbreviations:\n"
        "  cta: button\n"
        "labelAliases:\n"
        "  - label: phone\n"
        "    testid: phone-input\n"
        "    variants: [mobile number]\n",
        encoding="utf-8",
    )
    glossary = load_glossary(path)

    assert normalize_step_text("smash the cta", glossary) == "click the button"
    assert normalize_step_text("fill '1' in the mobile number field", glossary) == "fill '1' in the phone field"
    assert glossary.resolve_label_alias("phone field").testid == "phone-input"
    # defaults are still there
    assert glossary.canonical("tap") == "click"


def test_glossary_errors(tmp_path):
    """Missing or malformed glossary files raise GlossaryError."""
    with pytest.raises(GlossaryError):
        load_glossary(tmp_path / "missing.yaml")

    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(GlossaryError):
        load_glossary(bad)


def test_empty_glossary_does_no_rewriting():
    assert normalize_step_text("tap the btn", Glossary()) == "tap the btn"
