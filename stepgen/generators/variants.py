"""
Target runtime profiles.

A :class:`VariantContext` is a flat, immutable set of capability flags plus a
few descriptive strings. The renderer consults it per primitive and never
changes it during a run.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from ..core.errors import CompilationError, UnknownVariantError

CAPABILITIES = (
    "aria_snapshots",
    "clock_control",
    "locator_or",
    "locator_and",
    "expect_poll",
    "expect_soft",
    "component_testing",
    "esm_imports",
    "top_level_await",
)

# primitive type -> capability it cannot be emitted without
CAPABILITY_REQUIREMENTS: Dict[str, str] = {
    "expectAriaSnapshot": "aria_snapshots",
    "setClock": "clock_control",
}

CAPABILITY_ALTERNATIVES: Dict[str, str] = {
    "aria_snapshots": "assert visibility of the container instead of its accessibility tree",
    "clock_control": "override Date.now with page.addInitScript",
    "locator_or": "use the primary locator only",
    "expect_soft": "use hard assertions",
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


# accepted spellings of each capability flag in a capability map
CAPABILITY_KEYS: Dict[str, str] = {**{c: c for c in CAPABILITIES}, **{_camel(c): c for c in CAPABILITIES}}

_DESCRIPTIVE_KEYS = {
    "name": "name",
    "variant": "name",
    "playwrightVersion": "playwright_version",
    "playwright_version": "playwright_version",
    "nodeRange": "node_range",
    "node_range": "node_range",
    "moduleSystem": "module_system",
    "module_system": "module_system",
}


@dataclass(frozen=True)
class VariantContext:
    name: str
    playwright_version: str
    node_range: str
    module_system: str = "esm"
    capabilities: FrozenSet[str] = field(default_factory=frozenset)

    def has(self, capability: str) -> bool:
        return capability in self.capabilities

    def missing_for(self, primitive_type: str) -> Optional[str]:
        """Capability a primitive needs but this target lacks, if any."""
        required = CAPABILITY_REQUIREMENTS.get(primitive_type)
        if required and not self.has(required):
            return required
        return None

    def with_capabilities(self, enabled: Iterable[str] = (), disabled: Iterable[str] = ()) -> "VariantContext":
        caps = (set(self.capabilities) | set(enabled)) - set(disabled)
        return VariantContext(
            name=self.name,
            playwright_version=self.playwright_version,
            node_range=self.node_range,
            module_system=self.module_system,
            capabilities=frozenset(caps),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VariantContext":
        """
        Build from a capability map.

        Accepts a base profile under ``name`` (or ``variant``), descriptive
        keys, and capability flags either at the top level or nested under
        ``capabilities``, in snake_case or camelCase. The output of
        :meth:`to_dict` reads back unchanged. Unknown keys are rejected.
        """
        described: Dict[str, str] = {}
        flags: Dict[str, bool] = {}
        unknown = []
        for key, value in data.items():
            if key == "capabilities":
                if not isinstance(value, Mapping):
                    raise CompilationError("Variant 'capabilities' must be a map of capability flags")
                for cap_key, flag in value.items():
                    if cap_key in CAPABILITY_KEYS:
                        flags[CAPABILITY_KEYS[cap_key]] = bool(flag)
                    else:
                        unknown.append(f"capabilities.{cap_key}")
            elif key in CAPABILITY_KEYS:
                flags[CAPABILITY_KEYS[key]] = bool(value)
            elif key in _DESCRIPTIVE_KEYS:
                if value is not None:
                    described[_DESCRIPTIVE_KEYS[key]] = str(value)
            else:
                unknown.append(key)
        if unknown:
            raise CompilationError(
                f"Unknown variant keys: {', '.join(sorted(unknown))}",
                details={"unknown": sorted(unknown), "capabilities": list(CAPABILITIES)},
            )

        base_name = described.get("name")
        base = PROFILES.get(base_name) if base_name else None
        caps = set(base.capabilities) if base else set()
        for cap, enabled in flags.items():
            if enabled:
                caps.add(cap)
            else:
                caps.discard(cap)
        return cls(
            name=base_name or "custom",
            playwright_version=described.get("playwright_version") or (base.playwright_version if base else ""),
            node_range=described.get("node_range") or (base.node_range if base else ""),
            module_system=described.get("module_system") or (base.module_system if base else "esm"),
            capabilities=frozenset(caps),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "playwrightVersion": self.playwright_version,
            "nodeRange": self.node_range,
            "moduleSystem": self.module_system,
            "capabilities": {cap: cap in self.capabilities for cap in CAPABILITIES},
        }


_MODERN = frozenset(c for c in CAPABILITIES if c not in ("esm_imports", "top_level_await"))

PROFILES: Dict[str, VariantContext] = {
    "modern-esm": VariantContext(
        name="modern-esm",
        playwright_version="1.57",
        node_range=">=18",
        module_system="esm",
        capabilities=frozenset(CAPABILITIES),
    ),
    "modern-cjs": VariantContext(
        name="modern-cjs",
        playwright_version="1.57",
        node_range=">=18",
        module_system="cjs",
        capabilities=_MODERN,
    ),
    "legacy-16": VariantContext(
        name="legacy-16",
        playwright_version="1.49",
        node_range=">=16 <18",
        module_system="cjs",
        capabilities=_MODERN,
    ),
    "legacy-14": VariantContext(
        name="legacy-14",
        playwright_version="1.33",
        node_range=">=14 <16",
        module_system="cjs",
        capabilities=frozenset(),
    ),
}

DEFAULT_VARIANT = "modern-esm"


def get_variant(name: Optional[str] = None) -> VariantContext:
    key = name or DEFAULT_VARIANT
    try:
        return PROFILES[key]
    except KeyError:
        raise UnknownVariantError(
            f"Unknown variant '{key}'", details={"available": sorted(PROFILES)}
        ) from None
