"""Tests for the knowledge base: scoring, lifecycle, deduplication and storage."""

import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from stepgen.core.config import Settings
from stepgen.core.errors import LockTimeoutError
from stepgen.core.file_lock import FileLock
from stepgen.ir import models as ir
from stepgen.knowledge.confidence import pattern_confidence, success_rate, wilson_lower_bound
from stepgen.knowledge.engine import LearningEngine, learned_rule_id
from stepgen.knowledge.events import LearningEventLog
from stepgen.knowledge.models import LearnedPattern, LearningEvent, pattern_id_for
from stepgen.knowledge.store import KnowledgeStore
from stepgen.mapping.catalog import PatternCatalog
from stepgen.mapping.step_mapper import StepMapper

SAVE = ir.Click(locator=ir.LocatorSpec(strategy="role", value="button", name="save"))


def _record_many(engine, text, count, contexts=("journey-a", "journey-b")):
    for i in range(count):
        engine.record_success(text, SAVE, context=contexts[i % len(contexts)])


def test_wilson_lower_bound_values():
    """Sparse evidence is conservative; no evidence is 0.5."""
    assert wilson_lower_bound(0, 0) == 0.5
    assert wilson_lower_bound(5, 0) == pytest.approx(0.5655, abs=1e-3)
    assert wilson_lower_bound(5, 0, z=0.5) == pytest.approx(0.9524, abs=1e-3)
    assert wilson_lower_bound(50, 0) > wilson_lower_bound(5, 0)
    assert wilson_lower_bound(5, 5) < wilson_lower_bound(5, 0)
    assert success_rate(3, 1) == 0.75
    assert success_rate(0, 0) == 0.0


def test_pattern_ids_are_content_derived():
    assert pattern_id_for("press the save button") == pattern_id_for("press the save button")
    assert pattern_id_for("press the save button").startswith("lp-")
    assert pattern_id_for("a") != pattern_id_for("b")


def test_first_success_creates_candidate():
    engine = LearningEngine(KnowledgeStore())
    event = engine.record_success("Press the Save button", SAVE, context="journey-a")

    assert event.event == "confirmed"
    [pattern] = engine.patterns()
    assert pattern.normalized_text == "press the save button"
    assert pattern.original_text == "Press the Save button"
    assert pattern.state == "candidate"
    assert pattern.success_count == 1
    assert pattern.source_contexts == ["journey-a"]


def test_promotion_after_five_successes_in_two_contexts():
    """With a lenient z, five clean successes over two journeys promote exactly once."""
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    catalog = PatternCatalog()
    core_before = [(r.id, r.regex, r.priority) for r in catalog.core_rules()]

    _record_many(engine, "press the save button", 5)
    report = engine.run_maintenance(catalog)

    assert len(report.promoted) == 1
    promotion = report.promoted[0]
    assert promotion.rule_id == "learned-click-pressTheSaveButton"
    rule = catalog.get(promotion.rule_id)
    assert rule.origin == "learned"
    assert rule.priority == 100
    assert engine.patterns()[0].state == "promoted"

    # second pass changes nothing
    assert engine.run_maintenance(catalog).promoted == []
    assert [(r.id, r.regex, r.priority) for r in catalog.core_rules()] == core_before

    result = StepMapper(catalog=catalog, knowledge=engine).map("press the save button")
    assert result.match_source == "exact-pattern"
    assert result.pattern_id == promotion.rule_id
    assert result.primitive == SAVE


def test_default_z_keeps_five_successes_short_of_promotion():
    engine = LearningEngine(KnowledgeStore())
    _record_many(engine, "press the save button", 5)

    assert engine.promote(PatternCatalog()) == []
    report = engine.promotion_report()
    assert report["promotable"] == []
    [near] = report["nearPromotion"]
    assert near["missing"][0].startswith("confidence")


def test_single_context_is_not_enough():
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    _record_many(engine, "press the save button", 6, contexts=("only",))
    assert engine.promote(PatternCatalog()) == []


def test_trusted_after_repeated_success():
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    _record_many(engine, "press the save button", 2)
    assert engine.patterns()[0].state == "trusted"


def test_near_duplicate_success_is_merged():
    """Two phrasings above the merge threshold end up as one entry."""
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    engine.record_success("press the save button", SAVE, context="a")
    engine.record_success("press the save buttons", ir.Reload(), context="b")

    [pattern] = engine.patterns()
    assert pattern.success_count == 2
    assert pattern.source_contexts == ["a", "b"]
    # ties keep the existing primitive
    assert pattern.mapped_primitive == SAVE


def test_maintenance_deduplicates_stored_entries():
    store = KnowledgeStore()
    store.save([
        LearnedPattern(id="lp-1", original_text="x", normalized_text="press the save button",
                       mapped_primitive=SAVE, success_count=3, created_at="2025-01-01T00:00:00+00:00"),
        LearnedPattern(id="lp-2", original_text="y", normalized_text="press the save buttons",
                       mapped_primitive=ir.Reload(), success_count=1, created_at="2025-01-02T00:00:00+00:00"),
        LearnedPattern(id="lp-3", original_text="z", normalized_text="open the gear drawer",
                       mapped_primitive=ir.Reload(), success_count=1),
    ])
    engine = LearningEngine(store)
    report = engine.run_maintenance(PatternCatalog(), now=datetime.now(timezone.utc))

    assert report.merged == 1
    ids = sorted(p.id for p in engine.patterns())
    assert ids == ["lp-1", "lp-3"]
    kept = engine.get("lp-1")
    assert kept.success_count == 4
    assert kept.mapped_primitive == SAVE


def test_decay_archives_stale_patterns_and_keeps_them():
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    engine.record_success("press the save button", SAVE)
    pattern_id = engine.patterns()[0].id

    archived = engine.decay(now=datetime.now(timezone.utc) + timedelta(days=91))

    assert archived == [pattern_id]
    assert engine.get(pattern_id).state == "archived"
    assert engine.find_match("press the save button") is None

    # a new success revives it
    engine.record_success("press the save button", SAVE)
    assert engine.get(pattern_id).state in ("candidate", "trusted")


def test_repeated_failures_discard_a_pattern():
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    engine.record_success("press the save button", SAVE)
    for _ in range(3):
        event = engine.record_failure("press the save button", context="ci")
    assert event.event == "failed"

    pattern = engine.patterns()[0]
    assert pattern.state == "discarded"
    assert pattern.fail_count == 3
    assert engine.find_match("press the save button") is None


def test_failure_for_unknown_text_records_nothing():
    engine = LearningEngine(KnowledgeStore())
    assert engine.record_failure("never learned") is None


def test_store_persists_between_engines(tmp_path):
    path = tmp_path / "kb" / "learned.json"
    LearningEngine(KnowledgeStore(path), z=0.5).record_success("press the save button", SAVE, "a")

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == "1.0"
    assert document["patterns"][0]["normalizedText"] == "press the save button"
    assert document["patterns"][0]["mappedPrimitive"]["type"] == "click"

    reopened = LearningEngine(KnowledgeStore(path), z=0.5)
    assert reopened.find_match("press the save button").pattern.success_count == 1
    assert not (tmp_path / "kb" / "learned.json.lock").exists()


def test_corrupt_store_degrades_to_catalog_only(tmp_path):
    """Unreadable state is reported, lookups miss and writes are skipped."""
    path = tmp_path / "learned.json"
    path.write_text("{not json", encoding="utf-8")

    engine = LearningEngine(KnowledgeStore(path))
    assert engine.available is False
    assert "Cannot read" in engine.error
    assert engine.find_match("anything") is None
    assert engine.record_success("press the save button", SAVE) is None
    assert path.read_text(encoding="utf-8") == "{not json"

    result = StepMapper(knowledge=engine).map("click the 'Submit' button")
    assert result.match_source == "exact-pattern"

    engine.reset()
    assert engine.available is True
    assert list(tmp_path.glob("learned.json.corrupt-*"))


def test_invalid_pattern_record_is_corruption(tmp_path):
    path = tmp_path / "learned.json"
    path.write_text(json.dumps({"patterns": [{"id": "lp-x"}]}), encoding="utf-8")
    assert LearningEngine(KnowledgeStore(path)).available is False


def test_lock_timeout_is_raised_to_writers(tmp_path):
    """A second writer gives up after the bounded wait."""
    path = tmp_path / "learned.json"
    holder = FileLock(path)
    holder.acquire()
    try:
        engine = LearningEngine(KnowledgeStore(path, lock=FileLock(path, max_wait=0.1, retry_interval=0.01)))
        with pytest.raises(LockTimeoutError):
            engine.record_success("press the save button", SAVE)
    finally:
        holder.release()
    assert not path.with_name("learned.json.lock").exists()


def test_file_lock_is_reentrant(tmp_path):
    lock = FileLock(tmp_path / "store.json")
    with lock:
        with lock:
            assert lock.held
        assert lock.held
    assert not lock.held


def test_stale_lock_is_broken(tmp_path):
    target = tmp_path / "store.json"
    stale = tmp_path / "store.json.lock"
    stale.write_text("999\n", encoding="utf-8")
    os.utime(stale, (0, 0))
    lock = FileLock(target, max_wait=0.5)
    with lock:
        assert lock.held


def test_sync_catalog_restores_promoted_rules():
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    _record_many(engine, "press the save button", 5)
    engine.promote(PatternCatalog())

    fresh = PatternCatalog()
    assert engine.sync_catalog(fresh) == 1
    assert learned_rule_id(engine.patterns()[0]) in fresh


def test_event_log_roundtrip(tmp_path):
    log = LearningEventLog(tmp_path / "events.jsonl")
    written = log.extend([LearningEvent("matched", "lp-1", "suite"), None, LearningEvent("failed", "lp-2", None)])

    assert written == 2
    assert [e.event for e in log.read()] == ["matched", "failed"]
    assert [e.pattern_id for e in log.read(pattern_id="lp-2")] == ["lp-2"]


def test_unknown_event_type_is_rejected():
    with pytest.raises(ValueError):
        LearningEvent("promoted", "lp-1", None)


def test_stats_counts_states():
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    engine.record_success("press the save button", SAVE)
    engine.record_success("open the gear drawer", SAVE)
    stats = engine.stats()
    assert stats["total"] == 2
    assert stats["byState"] == {"candidate": 2}
    assert stats["available"] is True


def test_clean_record_keeps_neutral_seed_until_wilson_overtakes_it():
    assert pattern_confidence(1, 0) == 0.5
    assert pattern_confidence(3, 0) == 0.5
    assert pattern_confidence(5, 0) == pytest.approx(wilson_lower_bound(5, 0))
    assert pattern_confidence(1, 1) == wilson_lower_bound(1, 1)
    assert pattern_confidence(1, 1) < 0.5


def test_new_pattern_is_served_with_default_settings():
    """A freshly learned phrasing is usable right away, until it fails."""
    engine = LearningEngine(KnowledgeStore())
    engine.record_success("press the save button", SAVE, context="journey-a")

    [pattern] = engine.patterns()
    assert pattern.confidence == 0.5
    match = engine.find_match("press the save button")
    assert match is not None
    assert match.confidence == 0.5

    engine.record_failure("press the save button", context="ci")
    assert engine.patterns()[0].confidence < 0.5
    assert engine.find_match("press the save button") is None


def test_wilson_z_comes_from_settings():
    engine = LearningEngine(KnowledgeStore(), Settings(wilson_z=0.5))
    assert engine.z == 0.5
    _record_many(engine, "press the save button", 5)
    assert len(engine.promote(PatternCatalog())) == 1


def test_default_settings_promote_after_enough_clean_successes():
    engine = LearningEngine(KnowledgeStore())
    _record_many(engine, "press the save button", 34)
    assert engine.promote(PatternCatalog()) == []

    _record_many(engine, "press the save button", 1)
    [promotion] = engine.promote(PatternCatalog())
    assert promotion.confidence >= 0.9


def test_near_duplicate_of_discarded_pattern_does_not_start_over():
    engine = LearningEngine(KnowledgeStore())
    engine.record_success("press the save button", SAVE, context="a")
    for _ in range(4):
        engine.record_failure("press the save button", context="ci")

    engine.record_success("press the save buttons", SAVE, context="b")

    [pattern] = engine.patterns()
    assert pattern.normalized_text == "press the save button"
    assert pattern.state == "discarded"
    assert (pattern.success_count, pattern.fail_count) == (2, 4)
    assert engine.find_match("press the save buttons") is None


def test_near_duplicate_of_promoted_pattern_adds_to_its_counts():
    engine = LearningEngine(KnowledgeStore(), z=0.5)
    _record_many(engine, "press the save button", 5)
    engine.promote(PatternCatalog())

    event = engine.record_success("press the save buttons", ir.Reload(), context="journey-c")

    [pattern] = engine.patterns()
    assert event.pattern_id == pattern.id
    assert pattern.state == "promoted"
    assert pattern.success_count == 6
    assert pattern.mapped_primitive == SAVE
    assert "journey-c" in pattern.source_contexts


def test_maintenance_merges_candidates_into_promoted_entries():
    store = KnowledgeStore()
    store.save([
        LearnedPattern(id="lp-1", original_text="x", normalized_text="press the save button",
                       mapped_primitive=SAVE, success_count=5, state="promoted",
                       promoted_rule_id="learned-click-pressTheSaveButton"),
        LearnedPattern(id="lp-2", original_text="y", normalized_text="press the save buttons",
                       mapped_primitive=ir.Reload(), success_count=8),
    ])
    engine = LearningEngine(store)
    report = engine.run_maintenance(PatternCatalog(), now=datetime.now(timezone.utc))

    assert report.merged == 1
    [kept] = engine.patterns()
    assert kept.id == "lp-1"
    assert kept.state == "promoted"
    assert kept.success_count == 13
    assert kept.mapped_primitive == SAVE


def test_malformed_stored_timestamp_is_corruption(tmp_path):
    """Maintenance over a store with a bad date degrades instead of crashing."""
    path = tmp_path / "learned.json"
    LearningEngine(KnowledgeStore(path)).record_success("press the save button", SAVE, "a")
    document = json.loads(path.read_text(encoding="utf-8"))
    document["patterns"][0]["lastUsed"] = "yesterday"
    path.write_text(json.dumps(document), encoding="utf-8")

    engine = LearningEngine(KnowledgeStore(path))

    assert engine.available is False
    assert "lastUsed" in engine.error
    assert engine.run_maintenance(PatternCatalog()).to_dict() == {"promoted": [], "archived": [], "merged": 0}


def test_non_string_timestamp_is_rejected():
    record = LearnedPattern(id="lp-1", original_text="x", normalized_text="x", mapped_primitive=SAVE).to_dict()
    record["createdAt"] = 1700000000
    with pytest.raises(ValueError):
        LearnedPattern.from_dict(record)
