"""
Core step patterns.

Each rule pairs a regular expression over *normalized* step text with an
explicit builder that turns the named groups into an IR primitive. Rules are
checked in ascending ``priority``; the first rule whose regex matches wins.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..ir import models as ir
from .glossary import DEFAULT_GLOSSARY, Glossary
from .normalize import strip_quotes

logger = logging.getLogger(__name__)

PATTERN_VERSION = "1.1.0"

CATEGORIES = ("navigation", "interaction", "assertion", "wait", "other")
ORIGINS = ("core", "learned", "discovered")

Builder = Callable[[Dict[str, Optional[str]], Glossary], object]


@dataclass
class PatternRule:
    id: str
    category: str
    regex: str
    builder: Builder
    primitive_type: str
    example: str
    priority: int = 100
    origin: str = "core"
    version: str = PATTERN_VERSION
    description: str = ""
    confidence: float = 1.0
    _compiled: Optional[re.Pattern] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.category not in CATEGORIES:
            raise ValueError(f"Unknown pattern category {self.category!r} for {self.id}")
        if self.origin not in ORIGINS:
            raise ValueError(f"Unknown pattern origin {self.origin!r} for {self.id}")
        self._compiled = re.compile(self.regex)

    @property
    def compiled(self) -> re.Pattern:
        return self._compiled  # type: ignore[return-value]

    @property
    def literal_prefix(self) -> str:
        """Leading literal text of the regex, up to the first regex construct."""
        source = self.regex[1:] if self.regex.startswith("^") else self.regex
        prefix = []
        i = 0
        while i < len(source):
            ch = source[i]
            if ch == "\\" and i + 1 < len(source) and not source[i + 1].isalnum():
                prefix.append(source[i + 1])
                i += 2
                continue
            if ch in "\\.^$*+?{}[]()|":
                break
            prefix.append(ch)
            i += 1
        # a quantifier applies to the preceding character, which is then optional
        if i < len(source) and source[i] in "*?{" and prefix:
            prefix.pop()
        return "".join(prefix)

    def match(self, normalized_text: str, glossary: Glossary = DEFAULT_GLOSSARY):
        m = self.compiled.match(normalized_text)
        if not m:
            return None
        groups = {k: v for k, v in m.groupdict().items()}
        return self.builder(groups, glossary)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "category": self.category,
            "regex": self.regex,
            "primitiveType": self.primitive_type,
            "example": self.example,
            "priority": self.priority,
            "origin": self.origin,
            "version": self.version,
            "description": self.description,
        }


def Q(name: str) -> str:
    """Regex fragment capturing a single- or double-quoted literal as ``name``."""
    return rf"""["'](?P<{name}>[^"']+)["']"""


ROLE_WORDS = {
    "button": "button",
    "link": "link",
    "tab": "tab",
    "heading": "heading",
    "checkbox": "checkbox",
    "radio": "radio",
    "menuitem": "menuitem",
    "dropdown": "combobox",
    "field": "textbox",
    "modal": "dialog",
}

KEY_NAMES = {
    "enter": "Enter",
    "return": "Enter",
    "tab": "Tab",
    "escape": "Escape",
    "esc": "Escape",
    "space": "Space",
    "backspace": "Backspace",
    "delete": "Delete",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
    "arrow up": "ArrowUp",
    "arrow down": "ArrowDown",
    "arrow left": "ArrowLeft",
    "arrow right": "ArrowRight",
    "arrowup": "ArrowUp",
    "arrowdown": "ArrowDown",
    "arrowleft": "ArrowLeft",
    "arrowright": "ArrowRight",
}


def _strip_article(text: str) -> str:
    return re.sub(r"^(?:the|a|an)\s+", "", text.strip())


def target_locator(
    target: Optional[str],
    glossary: Glossary,
    kind: Optional[str] = None,
    quoted: Optional[str] = None,
    fallback: str = "text",
) -> ir.LocatorSpec:
    """
    Locator for a step target.

    Quoted text is used as the accessible name when ``kind`` names a role,
    otherwise as visible text/label. Unquoted targets go through the label
    alias table first.
    """
    role = ROLE_WORDS.get(kind or "")
    if quoted is not None:
        if role:
            return ir.LocatorSpec(strategy="role", value=role, name=quoted)
        return ir.LocatorSpec(strategy=fallback, value=quoted)  # type: ignore[arg-type]

    name = _strip_article(target or "")
    alias = glossary.resolve_label_alias(name)
    if alias is not None:
        return alias.to_locator()
    if role:
        return ir.LocatorSpec(strategy="role", value=role, name=name)
    return ir.LocatorSpec(strategy=fallback, value=name)  # type: ignore[arg-type]


def field_locator(groups: Dict[str, Optional[str]], glossary: Glossary) -> ir.LocatorSpec:
    if groups.get("label"):
        return ir.LocatorSpec(strategy="label", value=groups["label"])  # type: ignore[arg-type]
    return target_locator(groups.get("target"), glossary, fallback="label")


def page_slug(name: str) -> str:
    slug = re.sub(r"[^\w]+", "-", _strip_article(name).lower()).strip("-")
    return "/" if slug in ("", "home") else f"/{slug}"


# Builders ---------------------------------------------------------------

def _navigate_url(g, glossary):
    return ir.Navigate(url=g.get("qurl") or g["url"])


def _navigate_page(g, glossary):
    return ir.Navigate(url=page_slug(g.get("name") or g["page"]))


def _go_back(g, glossary):
    return ir.GoBack()


def _go_forward(g, glossary):
    return ir.GoForward()


def _reload(g, glossary):
    return ir.Reload()


def _click_role(role_word: str):
    def build(g, glossary):
        return ir.Click(locator=target_locator(None, glossary, kind=role_word, quoted=g.get("name") or g.get("name2")))
    return build


def _click_quoted_text(g, glossary):
    return ir.Click(locator=target_locator(None, glossary, kind=g.get("kind"), quoted=g["text"]))


def _click_generic(g, glossary):
    return ir.Click(locator=target_locator(g["target"], glossary, kind=g.get("kind")))


def _click_any(g, glossary):
    return ir.Click(locator=target_locator(g["target"], glossary))


def _double_click(g, glossary):
    return ir.DoubleClick(locator=target_locator(g.get("target"), glossary, quoted=g.get("text")))


def _right_click(g, glossary):
    return ir.RightClick(locator=target_locator(g.get("target"), glossary, quoted=g.get("text")))


def _press_key(g, glossary):
    key = KEY_NAMES.get(g["key"].strip(), g["key"])
    locator = field_locator(g, glossary) if (g.get("target") or g.get("label")) else None
    return ir.PressKey(key=key, locator=locator)


def _press_quoted_key(g, glossary):
    return ir.PressKey(key=g["key"])


def _fill(g, glossary):
    return ir.Fill(locator=field_locator(g, glossary), value=ir.value_from_text(g["value"]))


def _fill_placeholder(g, glossary):
    return ir.Fill(
        locator=ir.LocatorSpec(strategy="placeholder", value=g["placeholder"]),
        value=ir.value_from_text(g["value"]),
    )


def _clear(g, glossary):
    return ir.Clear(locator=field_locator(g, glossary))


def _select(g, glossary):
    if g.get("label"):
        locator = ir.LocatorSpec(strategy="label", value=g["label"])
    else:
        locator = target_locator(g["target"], glossary, kind="dropdown")
    return ir.SelectOption(locator=locator, option=g["option"])


def _checkbox(model):
    def build(g, glossary):
        return model(locator=target_locator(g.get("target"), glossary, kind="checkbox", quoted=g.get("label")))
    return build


def _hover(g, glossary):
    return ir.Hover(locator=target_locator(g.get("target"), glossary, quoted=g.get("text")))


def _focus(g, glossary):
    return ir.Focus(locator=field_locator(g, glossary))


def _see_text(g, glossary):
    return ir.ExpectVisible(locator=ir.LocatorSpec(strategy="text", value=g["text"]))


def _visibility(model):
    def build(g, glossary):
        return model(locator=target_locator(g.get("target"), glossary, kind=g.get("kind"), quoted=g.get("text")))
    return build


def _contains_text(g, glossary):
    if g.get("label"):
        locator = ir.LocatorSpec(strategy="label", value=g["label"])
    else:
        target = _strip_article(g["target"])
        if target in ROLE_WORDS:
            locator = ir.LocatorSpec(strategy="role", value=ROLE_WORDS[target])
        else:
            locator = target_locator(target, glossary, fallback="label")
    return ir.ExpectText(locator=locator, text=g["text"], contains=True)


def _url_contains(g, glossary):
    return ir.ExpectUrl(pattern=g["pattern"], exact=False)


def _url_is(g, glossary):
    return ir.ExpectUrl(pattern=g["url"], exact=True)


def _title_is(g, glossary):
    return ir.ExpectTitle(title=g["title"])


def _page_displayed(g, glossary):
    return ir.ExpectUrl(pattern=page_slug(g.get("name") or g["page"]), exact=False)


def _aria_snapshot(g, glossary):
    locator = (
        ir.LocatorSpec(strategy="label", value=g["label"])
        if g.get("label")
        else target_locator(g["target"], glossary, kind=_strip_article(g["target"]))
    )
    return ir.ExpectAriaSnapshot(locator=locator, snapshot=g["snapshot"])


def _wait_seconds(g, glossary):
    amount = float(g["amount"])
    unit = g["unit"]
    ms = amount if unit.startswith("ms") or unit.startswith("milli") else amount * 1000
    return ir.WaitForTimeout(ms=int(ms))


def _wait_network(g, glossary):
    return ir.WaitForNetworkIdle()


def _wait_url(g, glossary):
    return ir.WaitForUrl(pattern=g["pattern"])


def _modal(g, glossary):
    return ir.DismissModal()


def _accept_alert(g, glossary):
    return ir.AcceptAlert()


def _dismiss_alert(g, glossary):
    return ir.DismissAlert()


def _set_clock(g, glossary):
    return ir.SetClock(time=g["time"])


_VERIFY = r"(?:verify (?:that )?)?(?:the )?"
_ELEMENT_KIND = r"(?: (?P<kind>button|link|heading|message|text|field|tab|checkbox|modal))?"
_FIELD_TARGET = rf"(?:{Q('label')}|(?P<target>.+?))(?: field)?"


def _rule(id, category, priority, regex, builder, primitive_type, example, description=""):
    return PatternRule(
        id=id,
        category=category,
        regex=regex,
        builder=builder,
        primitive_type=primitive_type,
        example=example,
        priority=priority,
        description=description,
    )


def build_core_rules() -> List[PatternRule]:
    """Fresh list of the built-in rules (callers may sort or extend it)."""
    return [
        # Navigation
        _rule("navigate-to-url", "navigation", 10,
              rf"""^(?:navigate|go|open) (?:to )?(?:the )?(?:url )?(?:["'](?P<qurl>(?:https?://|/)[^"']*)["']|(?P<url>(?:https?://|/)\S*))$""",
              _navigate_url, "navigate", "navigate to /login"),
        _rule("navigate-to-page", "navigation", 20,
              rf"^(?:navigate|go|open) to (?:the )?(?:{Q('name')}|(?P<page>[\w -]+?)) page$",
              _navigate_page, "navigate", "navigate to the settings page"),
        _rule("go-back", "navigation", 30, r"^(?:go|navigate) back(?: to the previous page)?$",
              _go_back, "goBack", "go back"),
        _rule("go-forward", "navigation", 31, r"^(?:go|navigate) forward$",
              _go_forward, "goForward", "go forward"),
        _rule("reload-page", "navigation", 40, r"^reload(?: the)?(?: page)?$",
              _reload, "reload", "reload the page"),

        # Interaction
        _rule("click-button-quoted", "interaction", 10,
              rf"^(?:click|press) (?:on )?(?:the )?(?:{Q('name')} button|button {Q('name2')})$",
              _click_role("button"), "click", "click the 'submit' button"),
        _rule("click-link-quoted", "interaction", 11,
              rf"^(?:click|follow) (?:on )?(?:the )?{Q('name')} link$",
              _click_role("link"), "click", "click the 'forgot password' link"),
        _rule("click-tab-quoted", "interaction", 12,
              rf"^(?:click|select) (?:on )?(?:the )?{Q('name')} tab$",
              _click_role("tab"), "click", "click the 'billing' tab"),
        _rule("click-menuitem-quoted", "interaction", 13,
              rf"^(?:click|select) (?:on )?(?:the )?{Q('name')} (?:menu item|menuitem|menu option)$",
              _click_role("menuitem"), "click", "click the 'log out' menu item"),
        _rule("double-click", "interaction", 14,
              rf"^double click (?:on )?(?:the )?(?:{Q('text')}(?: \w+)?|(?P<target>.+))$",
              _double_click, "doubleClick", "double click the 'report' row"),
        _rule("right-click", "interaction", 15,
              rf"^right click (?:on )?(?:the )?(?:{Q('text')}(?: \w+)?|(?P<target>.+))$",
              _right_click, "rightClick", "right click the 'report' row"),
        _rule("click-element-quoted", "interaction", 16,
              rf"^click (?:on )?(?:the )?{Q('text')}{_ELEMENT_KIND}(?: (?:element|item|icon|option))?$",
              _click_quoted_text, "click", "click on 'settings'"),
        _rule("press-key", "interaction", 20,
              rf"^press (?:the )?(?P<key>enter|return|tab|escape|esc|space|backspace|delete|arrow ?(?:up|down|left|right)|up|down|left|right)(?: key)?(?: (?:in|on) (?:the )?{_FIELD_TARGET})?$",
              _press_key, "pressKey", "press enter"),
        _rule("press-key-quoted", "interaction", 21,
              r"""^press (?:the )?["'](?P<key>[^"']+)["'] key$""",
              _press_quoted_key, "pressKey", "press the 'control+a' key"),
        _rule("fill-placeholder-field", "interaction", 22,
              rf"^(?:fill|enter)(?: in)? {Q('value')} (?:in|into) (?:the )?field with placeholder {Q('placeholder')}$",
              _fill_placeholder, "fill", "fill 'jane' into the field with placeholder 'first name'"),
        _rule("fill-field-quoted-value", "interaction", 23,
              rf"^(?:fill|enter)(?: in)? {Q('value')} (?:in|into|on) (?:the )?{_FIELD_TARGET}$",
              _fill, "fill", "fill 'jane@example.com' in the email field"),
        _rule("fill-field-with-value", "interaction", 24,
              rf"^(?:fill|enter)(?: in)? (?:the )?{_FIELD_TARGET} with {Q('value')}$",
              _fill, "fill", "fill the email field with 'jane@example.com'"),
        _rule("clear-field", "interaction", 25,
              rf"^clear (?:the )?{_FIELD_TARGET}$",
              _clear, "clear", "clear the search field"),
        _rule("select-option", "interaction", 26,
              rf"^select {Q('option')} (?:from|in) (?:the )?(?:{Q('label')}|(?P<target>.+?))(?: dropdown| list| select| menu)?$",
              _select, "selectOption", "select 'canada' from the country dropdown"),
        _rule("check-checkbox", "interaction", 27,
              rf"^check (?!that\b|if\b|whether\b)(?:the )?(?:{Q('label')}|(?P<target>.+?))(?: checkbox)?$",
              _checkbox(ir.Check), "check", "check the 'remember me' checkbox"),
        _rule("uncheck-checkbox", "interaction", 28,
              rf"^uncheck (?:the )?(?:{Q('label')}|(?P<target>.+?))(?: checkbox)?$",
              _checkbox(ir.Uncheck), "uncheck", "uncheck the 'newsletter' checkbox"),
        _rule("hover-over-element", "interaction", 29,
              rf"^hover (?:over |on )?(?:the )?(?:{Q('text')}(?: \w+)?|(?P<target>.+))$",
              _hover, "hover", "hover over the 'profile' menu"),
        _rule("focus-on-element", "interaction", 30,
              rf"^focus (?:on )?(?:the )?{_FIELD_TARGET}$",
              _focus, "focus", "focus on the search field"),
        _rule("dismiss-modal", "interaction", 31, r"^(?:close|dismiss) (?:the )?modal$",
              _modal, "dismissModal", "close the modal"),
        _rule("accept-alert", "interaction", 32, r"^accept (?:the )?(?:alert|confirmation|confirm|modal)$",
              _accept_alert, "acceptAlert", "accept the alert"),
        _rule("dismiss-alert", "interaction", 33, r"^(?:dismiss|cancel) (?:the )?(?:alert|confirmation|confirm)$",
              _dismiss_alert, "dismissAlert", "dismiss the alert"),
        _rule("click-element-generic", "interaction", 40,
              r"^click (?:on )?(?:the )?(?P<target>.+?) (?P<kind>button|link|tab|checkbox|heading)$",
              _click_generic, "click", "click the save button"),
        _rule("click-on-element", "interaction", 45,
              r"^click (?:on )?(?:the )?(?P<target>.+)$",
              _click_any, "click", "click on settings"),

        # Assertions
        _rule("should-see-text", "assertion", 10,
              rf"^(?:should )?(?:see|verify (?:that )?(?:i )?see) (?:the )?(?:text |message )?{Q('text')}(?: text| message| on the page)?$",
              _see_text, "expectVisible", "see 'welcome back'"),
        _rule("element-visible-quoted", "assertion", 20,
              rf"^{_VERIFY}{Q('text')}{_ELEMENT_KIND} (?:is|should be) visible$",
              _visibility(ir.ExpectVisible), "expectVisible", "the 'dashboard' heading is visible"),
        _rule("element-hidden-quoted", "assertion", 21,
              rf"^{_VERIFY}{Q('text')}{_ELEMENT_KIND} (?:is not visible|should not be visible|is hidden|should be hidden)$",
              _visibility(ir.ExpectHidden), "expectHidden", "the 'loading' message is not visible"),
        _rule("url-contains", "assertion", 30,
              rf"^{_VERIFY}url (?:should )?contain {Q('pattern')}$",
              _url_contains, "expectUrl", "the url contains '/dashboard'"),
        _rule("url-is", "assertion", 31,
              rf"^{_VERIFY}url (?:should be|is|should equal|equals) {Q('url')}$",
              _url_is, "expectUrl", "the url is 'https://example.com/home'"),
        _rule("title-is", "assertion", 32,
              rf"^{_VERIFY}(?:page )?title (?:should be|is|should equal) {Q('title')}$",
              _title_is, "expectTitle", "the page title is 'dashboard'"),
        _rule("element-contains-text", "assertion", 40,
              rf"^{_VERIFY}(?:{Q('label')}|(?P<target>[\w -]+?))(?: field| element)? (?:should )?(?:contain|have text|has text) {Q('text')}$",
              _contains_text, "expectText", "the heading contains 'welcome'"),
        _rule("aria-snapshot", "assertion", 50,
              rf"^{_VERIFY}(?:{Q('label')}|(?P<target>[\w -]+?)) (?:should )?match(?:es)? (?:the )?(?:aria|accessibility) snapshot {Q('snapshot')}$",
              _aria_snapshot, "expectAriaSnapshot", "the navigation matches the aria snapshot '- link home'"),
        _rule("page-displayed", "assertion", 60,
              rf"^{_VERIFY}(?:{Q('name')}|(?P<page>[\w -]+?)) page (?:is|should be) visible$",
              _page_displayed, "expectUrl", "the dashboard page is visible"),
        _rule("element-visible", "assertion", 70,
              r"^(?:verify (?:that )?)?(?:the )?(?P<target>[\w -]+?) (?P<kind>button|link|heading|message|field|modal|checkbox|tab) (?:is|should be) visible$",
              _visibility(ir.ExpectVisible), "expectVisible", "the save button is visible"),
        _rule("element-hidden", "assertion", 71,
              r"^(?:verify (?:that )?)?(?:the )?(?P<target>[\w -]+?) (?P<kind>button|link|heading|message|field|modal|checkbox|tab) (?:is not visible|should not be visible|is hidden|should be hidden)$",
              _visibility(ir.ExpectHidden), "expectHidden", "the error message is not visible"),

        # Waits
        _rule("wait-seconds", "wait", 10,
              r"^wait (?:for )?(?P<amount>\d+(?:\.\d+)?) ?(?P<unit>seconds?|s|milliseconds?|ms)$",
              _wait_seconds, "waitForTimeout", "wait 2 seconds"),
        _rule("wait-for-network", "wait", 20,
              r"^wait (?:for|until) (?:the )?(?:network (?:to be )?idle|page to (?:finish )?load(?:ing)?|network requests to (?:finish|complete))$",
              _wait_network, "waitForNetworkIdle", "wait for the network to be idle"),
        _rule("wait-for-url", "wait", 25,
              rf"^wait (?:for|until) (?:the )?url (?:to )?(?:contain|change to|be|is) {Q('pattern')}$",
              _wait_url, "waitForUrl", "wait for the url to contain '/dashboard'"),
        _rule("wait-for-element-appear", "wait", 30,
              rf"^wait (?:for|until) (?:the )?(?:{Q('text')}|(?P<target>[\w -]+?)){_ELEMENT_KIND} (?:to )?(?:appear|be visible|is visible)$",
              _visibility(ir.WaitForVisible), "waitForVisible", "wait for the 'saved' message to appear"),
        _rule("wait-for-element-hidden", "wait", 31,
              rf"^wait (?:for|until) (?:the )?(?:{Q('text')}|(?P<target>[\w -]+?)){_ELEMENT_KIND} (?:to )?(?:disappear|be hidden|is hidden|be gone)$",
              _visibility(ir.WaitForHidden), "waitForHidden", "wait for the 'loading' message to disappear"),

        # Other
        _rule("set-clock", "other", 10,
              rf"^(?:set|freeze) (?:the )?(?:clock|time|date) (?:to|at) {Q('time')}$",
              _set_clock, "setClock", "set the clock to '2024-01-01T09:00:00Z'"),
    ]


CORE_RULES = build_core_rules()


# Generic primitives for fuzzy matches ----------------------------------

_QUOTED_VALUE_RE = re.compile(r"""["']([^"']+)["']""")
_LEADING_VERB_RE = re.compile(r"^\S+\s+(?:on |over |to |for |in |into )?(?:the |a |an )?")


def _extract_target(text: str) -> str:
    target = _LEADING_VERB_RE.sub("", text, count=1).strip()
    return target or "element"


def generic_primitive(primitive_type: str, normalized_text: str, glossary: Glossary = DEFAULT_GLOSSARY):
    """
    Best-effort primitive of ``primitive_type`` built from a near-miss step.

    Quoted strings become the target/value; otherwise the words after the verb
    are used as the target text. Returns None for types without a sensible
    generic form.
    """
    quoted = _QUOTED_VALUE_RE.findall(normalized_text)
    target = quoted[0] if quoted else _extract_target(normalized_text)
    value = quoted[1] if len(quoted) > 1 else (quoted[0] if quoted else "")
    locator = ir.LocatorSpec(strategy="text", value=strip_quotes(target))

    if primitive_type in ("click", "doubleClick", "rightClick", "hover", "focus", "check", "uncheck", "clear",
                          "expectVisible", "expectHidden", "waitForVisible", "waitForHidden"):
        model = {
            "click": ir.Click, "doubleClick": ir.DoubleClick, "rightClick": ir.RightClick,
            "hover": ir.Hover, "focus": ir.Focus, "check": ir.Check, "uncheck": ir.Uncheck,
            "clear": ir.Clear, "expectVisible": ir.ExpectVisible, "expectHidden": ir.ExpectHidden,
            "waitForVisible": ir.WaitForVisible, "waitForHidden": ir.WaitForHidden,
        }[primitive_type]
        return model(locator=locator)
    if primitive_type == "fill" and quoted:
        rest = normalized_text.split(quoted[0], 1)[-1].strip(" \"'")
        rest = re.sub(r"^(?:in|into|on)\s+(?:the\s+)?", "", rest)
        field_name = quoted[1] if len(quoted) > 1 else re.sub(r"\s+field$", "", rest) or "field"
        return ir.Fill(
            locator=ir.LocatorSpec(strategy="label", value=strip_quotes(field_name)),
            value=ir.value_from_text(quoted[0]),
        )
    if primitive_type == "selectOption" and value:
        return ir.SelectOption(locator=locator, option=value)
    if primitive_type == "expectText" and value:
        return ir.ExpectText(locator=locator, text=value, contains=True)
    if primitive_type == "waitForTimeout":
        m = re.search(r"(\d+(?:\.\d+)?)\s*(ms|milliseconds?)?", normalized_text)
        if m:
            amount = float(m.group(1))
            return ir.WaitForTimeout(ms=int(amount if m.group(2) else amount * 1000))
        return None
    if primitive_type == "waitForNetworkIdle":
        return ir.WaitForNetworkIdle()
    if primitive_type == "pressKey":
        m = re.search(r"(?:press|key)\s+(\w+)", normalized_text)
        key = m.group(1) if m else "enter"
        return ir.PressKey(key=KEY_NAMES.get(key, key.capitalize()))
    if primitive_type in ("reload", "goBack", "goForward"):
        return {"reload": ir.Reload, "goBack": ir.GoBack, "goForward": ir.GoForward}[primitive_type]()
    if primitive_type == "navigate":
        m = re.search(r"(https?://\S+|/\S*)", normalized_text)
        return ir.Navigate(url=m.group(1)) if m else None
    return None
