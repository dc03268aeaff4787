"""Typed intermediate representation produced by the step mapper.

Every primitive is a pydantic model tagged by ``type``; ``IRPrimitive`` is the
closed union of all of them. Rendering needs nothing but these fields.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


LocatorStrategy = Literal["role", "label", "placeholder", "text", "testid", "css"]
ValueKind = Literal["literal", "actor", "testData", "generated"]


class LocatorSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: LocatorStrategy
    value: str
    name: Optional[str] = None
    exact: Optional[bool] = None


class ValueSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ValueKind = "literal"
    value: str


_ACTOR_RE = re.compile(r"^\{\{\s*([\w.]+)\s*\}\}$")
_GENERATED_RE = re.compile(r"^\$\{(.+)\}$")
_TEST_DATA_RE = re.compile(r"^\$([A-Za-z_][\w.]*)$")


def value_from_text(raw: str) -> ValueSpec:
    """Classify a captured value: ``{{x}}`` actor, ``${x}`` generated, ``$x`` test data."""
    m = _ACTOR_RE.match(raw)
    if m:
        return ValueSpec(kind="actor", value=m.group(1))
    m = _GENERATED_RE.match(raw)
    if m:
        return ValueSpec(kind="generated", value=raw)
    m = _TEST_DATA_RE.match(raw)
    if m:
        return ValueSpec(kind="testData", value=m.group(1))
    return ValueSpec(kind="literal", value=raw)


class _Primitive(BaseModel):
    model_config = ConfigDict(frozen=True)


class _LocatorPrimitive(_Primitive):
    locator: LocatorSpec
    timeout: Optional[int] = None


# Navigation

class Navigate(_Primitive):
    type: Literal["navigate"] = "navigate"
    url: str


class WaitForUrl(_Primitive):
    type: Literal["waitForUrl"] = "waitForUrl"
    pattern: str
    timeout: Optional[int] = None


class Reload(_Primitive):
    type: Literal["reload"] = "reload"


class GoBack(_Primitive):
    type: Literal["goBack"] = "goBack"


class GoForward(_Primitive):
    type: Literal["goForward"] = "goForward"


# Interaction

class Click(_LocatorPrimitive):
    type: Literal["click"] = "click"


class DoubleClick(_LocatorPrimitive):
    type: Literal["doubleClick"] = "doubleClick"


class RightClick(_LocatorPrimitive):
    type: Literal["rightClick"] = "rightClick"


class Fill(_LocatorPrimitive):
    type: Literal["fill"] = "fill"
    value: ValueSpec


class Clear(_LocatorPrimitive):
    type: Literal["clear"] = "clear"


class SelectOption(_LocatorPrimitive):
    type: Literal["selectOption"] = "selectOption"
    option: str


class Check(_LocatorPrimitive):
    type: Literal["check"] = "check"


class Uncheck(_LocatorPrimitive):
    type: Literal["uncheck"] = "uncheck"


class Hover(_LocatorPrimitive):
    type: Literal["hover"] = "hover"


class Focus(_LocatorPrimitive):
    type: Literal["focus"] = "focus"


class PressKey(_Primitive):
    type: Literal["pressKey"] = "pressKey"
    key: str
    locator: Optional[LocatorSpec] = None


class DismissModal(_Primitive):
    type: Literal["dismissModal"] = "dismissModal"


class AcceptAlert(_Primitive):
    type: Literal["acceptAlert"] = "acceptAlert"


class DismissAlert(_Primitive):
    type: Literal["dismissAlert"] = "dismissAlert"


class SetClock(_Primitive):
    """Freeze the page clock at ``time`` (ISO-8601 or epoch milliseconds)."""

    type: Literal["setClock"] = "setClock"
    time: str


# Waits

class WaitForVisible(_LocatorPrimitive):
    type: Literal["waitForVisible"] = "waitForVisible"


class WaitForHidden(_LocatorPrimitive):
    type: Literal["waitForHidden"] = "waitForHidden"


class WaitForTimeout(_Primitive):
    type: Literal["waitForTimeout"] = "waitForTimeout"
    ms: int = Field(ge=0)


class WaitForNetworkIdle(_Primitive):
    type: Literal["waitForNetworkIdle"] = "waitForNetworkIdle"
    timeout: Optional[int] = None


# Assertions

class ExpectVisible(_LocatorPrimitive):
    type: Literal["expectVisible"] = "expectVisible"


class ExpectHidden(_LocatorPrimitive):
    type: Literal["expectHidden"] = "expectHidden"


class ExpectText(_LocatorPrimitive):
    type: Literal["expectText"] = "expectText"
    text: str
    contains: bool = False


class ExpectUrl(_Primitive):
    type: Literal["expectUrl"] = "expectUrl"
    pattern: str
    exact: bool = False


class ExpectTitle(_Primitive):
    type: Literal["expectTitle"] = "expectTitle"
    title: str


class ExpectAriaSnapshot(_LocatorPrimitive):
    type: Literal["expectAriaSnapshot"] = "expectAriaSnapshot"
    snapshot: str


class Blocked(_Primitive):
    type: Literal["blocked"] = "blocked"
    reason: str
    source_text: str


PRIMITIVE_MODELS = (
    Navigate,
    WaitForUrl,
    Reload,
    GoBack,
    GoForward,
    Click,
    DoubleClick,
    RightClick,
    Fill,
    Clear,
    SelectOption,
    Check,
    Uncheck,
    Hover,
    Focus,
    PressKey,
    DismissModal,
    AcceptAlert,
    DismissAlert,
    SetClock,
    WaitForVisible,
    WaitForHidden,
    WaitForTimeout,
    WaitForNetworkIdle,
    ExpectVisible,
    ExpectHidden,
    ExpectText,
    ExpectUrl,
    ExpectTitle,
    ExpectAriaSnapshot,
    Blocked,
)

IRPrimitive = Annotated[Union[PRIMITIVE_MODELS], Field(discriminator="type")]

_PRIMITIVE_ADAPTER: TypeAdapter = TypeAdapter(IRPrimitive)
_PRIMITIVE_LIST_ADAPTER: TypeAdapter = TypeAdapter(List[IRPrimitive])

PRIMITIVE_TYPES = tuple(model.model_fields["type"].default for model in PRIMITIVE_MODELS)


def primitive_from_dict(data: Dict[str, Any]):
    """Validate a stored/posted dict into the matching primitive model."""
    return _PRIMITIVE_ADAPTER.validate_python(data)


def primitives_from_list(items: List[Dict[str, Any]]):
    return _PRIMITIVE_LIST_ADAPTER.validate_python(items)


def primitive_to_dict(primitive) -> Dict[str, Any]:
    return primitive.model_dump(mode="json", exclude_none=True)


def primitive_locator(primitive) -> Optional[LocatorSpec]:
    return getattr(primitive, "locator", None)
