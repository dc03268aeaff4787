from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..core.config import Settings, get_settings
from ..core.errors import CompilationError
from ..diagnostics.engine import BlockedStepAnalysis, DiagnosticEngine, auto_fixable
from ..diagnostics.telemetry import BlockedStepTelemetry
from ..generators.test_generator import TestCodeGenerator
from ..generators.variants import VariantContext, get_variant
from ..ir import models as ir
from ..knowledge.engine import LearningEngine, MaintenanceReport
from ..knowledge.events import LearningEventLog
from ..knowledge.models import LearningEvent
from ..knowledge.store import KnowledgeStore
from ..mapping.catalog import PatternCatalog
from ..mapping.glossary import Glossary, load_glossary
from ..mapping.hints import extract_inline_hints
from ..mapping.step_mapper import MapOptions, StepMapper, StepMappingResult, mapping_stats

logger = logging.getLogger(__name__)


@dataclass
class StepInput:
    text: str
    hints: Optional[List[Dict[str, str]]] = None


@dataclass
class JourneyInput:
    id: str
    title: Optional[str] = None
    steps: List[Union[StepInput, str, Dict[str, Any]]] = field(default_factory=list)
    variant: Union[str, VariantContext, Mapping[str, Any], None] = None
    existing_code: Optional[str] = None
    strategy: str = "blocks"
    context: Optional[str] = None
    auto_fix: bool = False


@dataclass
class CompileResult:
    code: str
    filename: str
    results: List[StepMappingResult]
    diagnostics: List[BlockedStepAnalysis]
    warnings: List[Dict[str, Any]]
    events: List[LearningEvent]

    @property
    def blocked_count(self) -> int:
        return sum(1 for r in self.results if r.blocked)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "filename": self.filename,
            "results": [r.to_dict() for r in self.results],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "warnings": list(self.warnings),
            "events": [e.to_dict() for e in self.events],
            "stats": mapping_stats(self.results),
        }


def resolve_variant(variant: Union[str, VariantContext, Mapping[str, Any], None]) -> VariantContext:
    if isinstance(variant, VariantContext):
        return variant
    if isinstance(variant, Mapping):
        return VariantContext.from_mapping(variant)
    return get_variant(variant)


class CompilationService:
    """Facade over mapper, knowledge base, diagnostics and code generation.

    Components are built on first use from :class:`Settings`; any of them can
    be injected for tests.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        catalog: Optional[PatternCatalog] = None,
        knowledge: Optional[LearningEngine] = None,
        glossary: Optional[Glossary] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._glossary = glossary
        self._catalog = catalog
        self._knowledge = knowledge
        self._mapper: Optional[StepMapper] = None
        self._diagnostics: Optional[DiagnosticEngine] = None
        self._generator: Optional[TestCodeGenerator] = None
        self._event_log: Optional[LearningEventLog] = None
        self._telemetry: Optional[BlockedStepTelemetry] = None

    # ------------------------------------------------------------------
    # lazy components

    def _get_glossary(self) -> Glossary:
        if self._glossary is None:
            self._glossary = load_glossary(self.settings.glossary_path)
        return self._glossary

    def _get_knowledge(self) -> LearningEngine:
        if self._knowledge is None:
            path = self.settings.knowledge_path or None
            self._knowledge = LearningEngine(
                KnowledgeStore(path), self.settings, glossary=self._get_glossary(), z=self.settings.wilson_z
            )
        return self._knowledge

    def _get_catalog(self) -> PatternCatalog:
        if self._catalog is None:
            catalog = PatternCatalog(glossary=self._get_glossary())
            if self.settings.discovered_patterns_path:
                catalog.extend_discovered(self.settings.discovered_patterns_path)
            if self.settings.use_knowledge_base:
                synced = self._get_knowledge().sync_catalog(catalog)
                if synced:
                    logger.info("Restored %d promoted rules into the catalog", synced)
            self._catalog = catalog
        return self._catalog

    def _get_mapper(self) -> StepMapper:
        if self._mapper is None:
            self._mapper = StepMapper(
                catalog=self._get_catalog(),
                knowledge=self._get_knowledge() if self.settings.use_knowledge_base else None,
                settings=self.settings,
                glossary=self._get_glossary(),
            )
        return self._mapper

    def _get_diagnostics(self) -> DiagnosticEngine:
        if self._diagnostics is None:
            self._diagnostics = DiagnosticEngine(self._get_catalog(), self.settings)
        return self._diagnostics

    def _get_generator(self) -> TestCodeGenerator:
        if self._generator is None:
            self._generator = TestCodeGenerator()
        return self._generator

    def _get_event_log(self) -> Optional[LearningEventLog]:
        if self._event_log is None and self.settings.events_path:
            self._event_log = LearningEventLog(self.settings.events_path)
        return self._event_log

    def _get_telemetry(self) -> Optional[BlockedStepTelemetry]:
        if self._telemetry is None and self.settings.telemetry_path:
            self._telemetry = BlockedStepTelemetry(self.settings.telemetry_path)
        return self._telemetry

    @property
    def catalog(self) -> PatternCatalog:
        return self._get_catalog()

    @property
    def knowledge(self) -> LearningEngine:
        return self._get_knowledge()

    # ------------------------------------------------------------------
    # operations

    def map_step(self, text: str, hints: Optional[List[Dict[str, str]]] = None, **overrides: Any) -> StepMappingResult:
        options = MapOptions.from_settings(self.settings, **overrides)
        result = self._get_mapper().map_steps([{"text": text, "hints": hints}], options)[0]
        self._log_events(result.events)
        return result

    def diagnose(self, texts: Sequence[str]) -> List[BlockedStepAnalysis]:
        options = MapOptions.from_settings(self.settings, record_usage=False)
        results = self._get_mapper().map_steps(list(texts), options)
        return self._get_diagnostics().analyze(results)

    def compile(self, journey: JourneyInput) -> CompileResult:
        if not journey.id or not journey.id.strip():
            raise CompilationError("Journey id is required")
        if not journey.steps:
            raise CompilationError(f"Journey {journey.id} has no steps", details={"journeyId": journey.id})

        variant = resolve_variant(journey.variant)
        mapper = self._get_mapper()
        options = MapOptions.from_settings(self.settings, context=journey.context or journey.id)
        results = mapper.map_steps(journey.steps, options)

        diagnostics = self._get_diagnostics().analyze(results)
        if journey.auto_fix and diagnostics:
            results, diagnostics = self._apply_auto_fixes(results, diagnostics, options)

        telemetry = self._get_telemetry()
        if telemetry is not None:
            for analysis in diagnostics:
                telemetry.record(analysis, journey_id=journey.id)

        rendered = self._get_generator().render(
            [r.primitive for r in results],
            variant=variant,
            merge_target=journey.existing_code,
            strategy=journey.strategy,
            test_id=journey.id,
            title=journey.title or journey.id,
            step_texts=[r.source_text for r in results],
        )

        warnings = [w.to_dict() for w in rendered.warnings]
        if self.settings.use_knowledge_base and not self._get_knowledge().available:
            warnings.append({"kind": "knowledge-base", "message": self._get_knowledge().error})

        events = [event for r in results for event in r.events]
        self._log_events(events)
        logger.info(
            "Compiled journey %s: %d steps, %d blocked, %d warnings",
            journey.id, len(results), len(diagnostics), len(warnings),
        )
        return CompileResult(
            code=rendered.code,
            filename=rendered.filename,
            results=results,
            diagnostics=diagnostics,
            warnings=warnings,
            events=events,
        )

    def _apply_auto_fixes(self, results, diagnostics, options):
        mapper = self._get_mapper()
        fixed_steps = {}
        for analysis, suggestion in auto_fixable(diagnostics):
            retry = mapper.map(suggestion.text, options)
            if retry.blocked:
                continue
            retry.source_text = analysis.step
            retry.message = f"Auto-fixed as {suggestion.text!r}"
            fixed_steps[analysis.step] = retry

        if not fixed_steps:
            return results, diagnostics
        updated = [fixed_steps.get(r.source_text, r) if r.blocked else r for r in results]
        remaining = [d for d in diagnostics if d.step not in fixed_steps]
        logger.info("Auto-fixed %d blocked steps", len(fixed_steps))
        return updated, remaining

    def record_feedback(
        self,
        text: str,
        success: bool,
        primitive: Any = None,
        context: Optional[str] = None,
        pattern_id: Optional[str] = None,
    ) -> Optional[LearningEvent]:
        """
        Post-execution outcome for one step.

        On success the mapping is learned; ``primitive`` defaults to what the
        mapper currently produces for ``text``. Failures only affect existing
        learned patterns.
        """
        clean, _ = extract_inline_hints(text)
        knowledge = self._get_knowledge()
        if success:
            if isinstance(primitive, dict):
                primitive = ir.primitive_from_dict(primitive)
            if primitive is None:
                mapped = self.map_step(clean, record_usage=False)
                if mapped.blocked:
                    raise CompilationError(
                        f"Cannot learn a blocked step without a primitive: {text!r}", details={"text": text}
                    )
                primitive = mapped.primitive
            if primitive.type == "blocked":
                raise CompilationError("Blocked primitives cannot be learned", details={"text": text})
            event = knowledge.record_success(clean, primitive, context)
        else:
            event = knowledge.record_failure(clean, context, pattern_id=pattern_id)
        self._log_events([event])
        return event

    def run_maintenance(self, now: Optional[datetime] = None) -> MaintenanceReport:
        report = self._get_knowledge().run_maintenance(self._get_catalog(), now)
        logger.info(
            "Maintenance: %d merged, %d archived, %d promoted",
            report.merged, len(report.archived), len(report.promoted),
        )
        return report

    def _log_events(self, events: Sequence[Optional[LearningEvent]]) -> None:
        log = self._get_event_log()
        if log is not None:
            log.extend(events)
