"""Tests for blocked-step diagnostics and telemetry."""

from stepgen.core.config import Settings
from stepgen.diagnostics.engine import DiagnosticEngine, auto_fixable
from stepgen.diagnostics.telemetry import BlockedStepTelemetry
from stepgen.knowledge.engine import LearningEngine
from stepgen.knowledge.store import KnowledgeStore
from stepgen.mapping.catalog import PatternCatalog
from stepgen.mapping.step_mapper import StepMapper


def _analyze(texts, settings=None):
    catalog = PatternCatalog()
    mapper = StepMapper(catalog=catalog)
    engine = DiagnosticEngine(catalog, settings or Settings())
    return engine.analyze(mapper.map_steps(texts))


def test_only_blocked_steps_are_analyzed():
    analyses = _analyze(["go back", "Do the thing", "reload the page"])
    assert [a.step for a in analyses] == ["Do the thing"]


def test_near_miss_gets_an_auto_applicable_rewrite():
    """A typo'd wait step is explained and the closest phrasing is offered."""
    [analysis] = _analyze(["wait for 'Saved' mesage to appear"])

    assert analysis.category == "wait"
    assert analysis.nearest_pattern.name == "wait-for-element-appear"
    assert analysis.nearest_pattern.mismatch.startswith("phrasing differs")
    top = analysis.suggestions[0]
    assert top.text == "wait for the 'Saved' message to appear"
    assert top.auto_apply is True
    assert top.confidence >= 0.7
    assert auto_fixable([analysis]) == [(analysis, top)]


def test_unsupported_verb_is_named():
    [analysis] = _analyze(["submit the login form"])

    assert analysis.category == "interaction"
    assert analysis.nearest_pattern.mismatch == "unsupported verb 'submit'"
    assert analysis.hint_suggestion == "`(text=login form)`"
    # a hint alone cannot make an unmapped step work
    assert all(not s.auto_apply for s in analysis.suggestions)


def test_suggestions_are_ranked_and_capped():
    analyses = _analyze(["submit the login form", "Do the thing", "wait for 'Saved' mesage to appear"])
    for analysis in analyses:
        assert len(analysis.suggestions) <= 3
        confidences = [s.confidence for s in analysis.suggestions]
        assert confidences == sorted(confidences, reverse=True)
        assert len({s.text for s in analysis.suggestions}) == len(analysis.suggestions)
        for s in analysis.suggestions:
            assert s.auto_apply == (s.confidence >= 0.7)


def test_unknown_steps_are_never_auto_applied():
    [analysis] = _analyze(["Do the thing"])
    assert analysis.category == "unknown"
    assert auto_fixable([analysis]) == []


def test_max_suggestions_setting():
    [analysis] = _analyze(["submit the login form"], Settings(max_suggestions=1))
    assert len(analysis.suggestions) <= 1


def test_analysis_does_not_touch_catalog_or_knowledge():
    catalog = PatternCatalog()
    knowledge = LearningEngine(KnowledgeStore())
    mapper = StepMapper(catalog=catalog, knowledge=knowledge)
    rules_before = [r.id for r in catalog]

    DiagnosticEngine(catalog).analyze(mapper.map_steps(["submit the login form", "Do the thing"]))

    assert [r.id for r in catalog] == rules_before
    assert knowledge.patterns() == []


def test_analysis_to_dict_shape():
    [analysis] = _analyze(["wait for 'Saved' mesage to appear"])
    data = analysis.to_dict()
    assert set(data) == {
        "step", "normalizedText", "reason", "category", "nearestPattern", "suggestions", "hintSuggestion"
    }
    assert set(data["suggestions"][0]) == {"text", "explanation", "confidence", "autoApply"}


def test_telemetry_records_and_groups_gaps(tmp_path):
    telemetry = BlockedStepTelemetry(tmp_path / "blocked.jsonl")
    first, second = _analyze(["submit the login form", "Submit the login form!"])
    other = _analyze(["Do the thing"])[0]

    telemetry.record(first, journey_id="login")
    telemetry.record(second, journey_id="checkout")
    telemetry.record(other, journey_id="login")

    records = telemetry.read()
    assert len(records) == 3
    assert records[0]["journeyId"] == "login"
    assert records[0]["nearestPattern"] is not None

    [top, rest] = telemetry.gaps()
    assert top["normalizedText"] == "submit the login form"
    assert top["count"] == 2
    assert top["variants"] == ["submit the login form", "Submit the login form!"]
    assert top["suggestedPattern"] == r"^submit\ the\ login\ form$"
    assert rest["count"] == 1
    assert telemetry.gaps(limit=1) == [top]

    stats = telemetry.stats()
    assert stats["totalRecords"] == 3
    assert stats["uniquePatterns"] == 2
    assert stats["byCategory"] == {"interaction": 2, "unknown": 1}
    assert stats["mostFrequent"][0] == {"normalizedText": "submit the login form", "count": 2}


def test_telemetry_user_fix_and_clear(tmp_path):
    telemetry = BlockedStepTelemetry(tmp_path / "blocked.jsonl")
    [analysis] = _analyze(["Do the thing"])
    telemetry.record(analysis)

    assert telemetry.record_user_fix("Do the thing", "click on the thing") is True
    assert telemetry.read()[-1]["userFix"] == "click on the thing"
    assert telemetry.record_user_fix("never seen", "x") is False

    telemetry.clear()
    assert telemetry.read() == []
    assert telemetry.stats()["totalRecords"] == 0
