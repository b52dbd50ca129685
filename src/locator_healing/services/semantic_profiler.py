"""Semantic profiling of page elements for locator healing."""

import dataclasses
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import ElementNotFound
from ..core.models.healing_models import (
    AlternativeSelector,
    ElementComparison,
    ElementContext,
    ElementPosition,
    ElementSemanticProfile,
    InteractionPatterns,
    TestStep,
    VisualCharacteristics,
    clamp_confidence,
)


logger = logging.getLogger("healing.profiler")


# Returns a description of the first element matching a CSS selector, or null
# when the selector is not valid CSS or matches nothing.
DESCRIBE_ELEMENT_SCRIPT = """
(selector) => {
  let el;
  try { el = document.querySelector(selector); } catch (e) { return null; }
  if (!el) return null;
  const summary = (node) => {
    let s = node.tagName.toLowerCase();
    if (node.id) s += '#' + node.id;
    if (typeof node.className === 'string' && node.className.trim()) {
      s += '.' + node.className.trim().split(/\\s+/).join('.');
    }
    return s;
  };
  const attrs = {};
  for (const attr of el.attributes) { attrs[attr.name] = attr.value; }
  const cs = window.getComputedStyle(el);
  const parents = [];
  let p = el.parentElement;
  while (p && parents.length < 3) { parents.push(summary(p)); p = p.parentElement; }
  const siblings = el.parentElement
    ? Array.from(el.parentElement.children).filter(c => c !== el).slice(0, 5).map(summary)
    : [];
  return {
    tag: el.tagName.toLowerCase(),
    attributes: attrs,
    styles: {
      display: cs.display,
      visibility: cs.visibility,
      position: cs.position,
      zIndex: cs.zIndex,
      backgroundColor: cs.backgroundColor,
      color: cs.color,
      fontSize: cs.fontSize,
      fontFamily: cs.fontFamily
    },
    parents: parents,
    siblings: siblings,
    children: Array.from(el.children).slice(0, 5).map(summary)
  };
}
"""

# Attributes probed one by one when the describe script cannot run.
PROBED_ATTRIBUTES = (
    "id", "class", "name", "type", "role", "href", "placeholder", "title",
    "data-testid", "aria-label", "value",
)

CRITICAL_STYLES = ("display", "visibility", "position", "backgroundColor", "color")
LOCATION_THRESHOLD_PX = 10
ALTERNATIVE_LIMIT = 5

_ROLE_BY_TAG = {
    "a": "link",
    "button": "button",
    "select": "combobox",
    "textarea": "textbox",
    "img": "img",
    "nav": "navigation",
    "form": "form",
    "li": "listitem",
    "ul": "list",
    "ol": "list",
    "table": "table",
    "dialog": "dialog",
    "h1": "heading", "h2": "heading", "h3": "heading",
    "h4": "heading", "h5": "heading", "h6": "heading",
}

_ROLE_BY_INPUT_TYPE = {
    "checkbox": "checkbox",
    "radio": "radio",
    "submit": "button",
    "button": "button",
    "reset": "button",
    "range": "slider",
    "search": "searchbox",
}

_INTERACTIVE_TAGS = {"a", "button", "input", "select", "textarea", "option", "summary"}
_INTERACTIVE_ROLES = {
    "button", "link", "checkbox", "radio", "textbox", "combobox", "searchbox",
    "menuitem", "tab", "switch", "slider", "option",
}
_FORM_TAGS = {"input", "select", "textarea"}
_BUTTON_INPUT_TYPES = {"submit", "button", "reset", "image"}

# Weighted contribution of each stable hook to stability_score.
_STABILITY_WEIGHTS = (
    ("data-testid", 0.4),
    ("id", 0.25),
    ("aria-label", 0.15),
    ("name", 0.1),
    ("role", 0.1),
)

_DYNAMIC_TOKEN = re.compile(r"(\d{4,}|[0-9a-f]{8,}|^css-|^sc-|__[a-z0-9]{5,}$)", re.IGNORECASE)
_TAG_IN_SELECTOR = re.compile(r"^\s*([a-zA-Z][a-zA-Z0-9-]*)")


def text_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in [0, 1]."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    if len(a) < len(b):
        a, b = b, a
    previous_row = list(range(len(b) + 1))
    for i, c1 in enumerate(a):
        current_row = [i + 1]
        for j, c2 in enumerate(b):
            current_row.append(min(
                previous_row[j + 1] + 1,
                current_row[j] + 1,
                previous_row[j] + (c1 != c2),
            ))
        previous_row = current_row
    return 1.0 - previous_row[-1] / max(len(a), len(b))


def looks_dynamic(value: str) -> bool:
    """True for ids/classes that look generated (long digit runs, hashes, CSS-in-JS prefixes)."""
    return any(_DYNAMIC_TOKEN.search(token) for token in (value or "").split())


def css_escape_quotes(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def css_escape_identifier(value: str) -> str:
    """Escape an id or class name for use after ``#`` or ``.``, like the browser's CSS.escape()."""
    escaped = []
    for index, char in enumerate(value):
        code = ord(char)
        if code == 0:
            escaped.append("\ufffd")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            escaped.append(f"\\{code:x} ")
        elif char.isdigit() and char.isascii() and (
            index == 0 or (index == 1 and value[0] == "-")
        ):
            escaped.append(f"\\{code:x} ")
        elif index == 0 and char == "-" and len(value) == 1:
            escaped.append("\\-")
        elif code >= 0x80 or char in "-_" or (char.isascii() and char.isalnum()):
            escaped.append(char)
        else:
            escaped.append(f"\\{char}")
    return "".join(escaped)


def id_selector(value: str) -> str:
    return f"#{css_escape_identifier(value)}"


def class_selector(classes: List[str]) -> str:
    return "".join(f".{css_escape_identifier(c)}" for c in classes)


def generate_selector(tag: str, attributes: Dict[str, str], text: str = "") -> str:
    """Build a robust locator for an element from its tag, attributes and text.

    Preference: id, data-testid, aria-label, text for buttons and links, then
    tag plus classes.
    """
    tag = (tag or "").lower()
    if tag in ("", "unknown"):
        tag = "*"
    element_id = attributes.get("id")
    if element_id and not looks_dynamic(element_id):
        return id_selector(element_id)
    test_id = attributes.get("data-testid")
    if test_id:
        return f'[data-testid="{css_escape_quotes(test_id)}"]'
    aria_label = attributes.get("aria-label")
    if aria_label:
        return f'[aria-label="{css_escape_quotes(aria_label)}"]'
    text = (text or "").strip()
    if tag in ("button", "a") and text:
        return f'{tag}:has-text("{css_escape_quotes(text)}")'
    classes = [c for c in (attributes.get("class") or "").split() if c]
    if classes:
        return tag + class_selector(classes)
    return tag


def infer_tag_from_selector(selector: str) -> str:
    if selector.startswith(("text=", "//", "xpath=", "#", ".", "[")):
        return "unknown"
    match = _TAG_IN_SELECTOR.match(selector)
    return match.group(1).lower() if match else "unknown"


def infer_semantic_role(tag: str, attributes: Dict[str, str]) -> str:
    explicit = attributes.get("role")
    if explicit:
        return explicit
    if tag == "input":
        input_type = (attributes.get("type") or "text").lower()
        return _ROLE_BY_INPUT_TYPE.get(input_type, "textbox")
    return _ROLE_BY_TAG.get(tag, "generic")


def calculate_stability(attributes: Dict[str, str]) -> float:
    score = 0.0
    for name, weight in _STABILITY_WEIGHTS:
        value = attributes.get(name)
        if not value:
            continue
        if name == "id" and looks_dynamic(value):
            continue
        score += weight
    if looks_dynamic(attributes.get("id", "")):
        score -= 0.2
    if looks_dynamic(attributes.get("class", "")):
        score -= 0.2
    return clamp_confidence(score)


class SemanticProfiler:
    """Builds ElementSemanticProfiles from read-only page queries."""

    async def profile(self, selector: str, page) -> ElementSemanticProfile:
        """Profile the element matched by `selector`.

        Raises:
            ElementNotFound: If the element is not visible
        """
        element = page.locate(selector)
        try:
            visible = await element.is_visible()
        except Exception as e:
            logger.debug(f"Visibility check failed for {selector}: {e}")
            visible = False
        if not visible:
            raise ElementNotFound(selector)

        description = await self._describe(selector, page)
        if description:
            tag = description.get("tag") or "unknown"
            attributes = dict(description.get("attributes") or {})
            styles = dict(description.get("styles") or {})
            context = ElementContext(
                parent_elements=list(description.get("parents") or []),
                sibling_elements=list(description.get("siblings") or []),
                child_elements=list(description.get("children") or []),
            )
        else:
            tag = infer_tag_from_selector(selector)
            attributes = await self._probe_attributes(element)
            styles = {}
            context = ElementContext()

        text = (await element.text_content() or "").strip()
        box = await element.bounding_box() or {}
        position = ElementPosition(
            x=float(box.get("x", 0)),
            y=float(box.get("y", 0)),
            width=float(box.get("width", 0)),
            height=float(box.get("height", 0)),
        )

        role = infer_semantic_role(tag, attributes)
        interactive = self._is_interactive(tag, role, attributes)

        return ElementSemanticProfile(
            selector=selector,
            element_type=tag,
            semantic_role=role,
            text_content=text,
            attributes=attributes,
            position=position,
            visual_characteristics=VisualCharacteristics(
                computed_styles=styles,
                is_interactive=interactive,
                accessibility_properties=self._accessibility_properties(attributes),
            ),
            context=context,
            stability_score=calculate_stability(attributes),
            uniqueness_indicators=self._uniqueness_indicators(attributes, text),
            interaction_patterns=self._interaction_patterns(tag, role, attributes, interactive, context),
        )

    async def profile_or_placeholder(self, step: TestStep, page) -> ElementSemanticProfile:
        """Best-effort profile of the failed step's element.

        Falls back to the step's last known profile, then to a placeholder.
        """
        selector = step.element or ""
        if selector:
            try:
                return await self.profile(selector, page)
            except ElementNotFound:
                logger.info(f"Original element not visible: {selector}")
            except Exception as e:
                logger.warning(f"Failed to profile {selector}: {e}")

        if step.element_profile is not None:
            logger.info(f"Using last known profile for step {step.id}")
            return dataclasses.replace(step.element_profile, selector=selector)
        return ElementSemanticProfile.placeholder(selector, step.action)

    def compare(self, original: ElementSemanticProfile,
                current: ElementSemanticProfile) -> ElementComparison:
        return ElementComparison(
            element_found=True,
            location_changed=self.has_location_changed(original, current),
            attributes_changed=self.have_attributes_changed(original, current),
            visual_changes=self.has_visual_changes(original, current),
            semantic_similarity=self.semantic_similarity(original, current),
        )

    async def compare_with_page(self, original: ElementSemanticProfile, selector: str,
                                page) -> ElementComparison:
        """Profile `selector` on the live page and compare it with `original`."""
        try:
            current = await self.profile(selector, page)
        except ElementNotFound:
            return ElementComparison(
                element_found=False,
                location_changed=True,
                attributes_changed=True,
                visual_changes=True,
                semantic_similarity=0.0,
                alternative_matches=await self.find_alternative_matches(original, page),
            )

        comparison = self.compare(original, current)
        if comparison.semantic_similarity < 0.8:
            comparison.alternative_matches = await self.find_alternative_matches(original, page)
        return comparison

    async def find_alternative_matches(self, original: ElementSemanticProfile,
                                       page) -> List[AlternativeSelector]:
        """Probe the page by text, id and class for elements resembling `original`."""
        probes: List[Tuple[str, float, str, str]] = []
        if original.text_content:
            probes.append((f'text="{css_escape_quotes(original.text_content)}"', 0.9, "text",
                           "Element found by text content"))
        element_id = original.attributes.get("id")
        if element_id:
            probes.append((id_selector(element_id), 0.95, "id", "Element found by ID"))
        for class_name in (original.attributes.get("class") or "").split():
            probes.append((class_selector([class_name]), 0.7, "class", f"Element found by class: {class_name}"))

        alternatives: List[AlternativeSelector] = []
        seen = set()
        for probe, confidence, method, reasoning in probes:
            try:
                element = page.locate(probe)
                if not await element.is_visible():
                    continue
                attributes = await self._probe_attributes(element)
                text = (await element.text_content() or "").strip()
            except Exception as e:
                logger.debug(f"Alternative probe {probe} failed: {e}")
                continue

            selector = generate_selector(original.element_type, attributes, text)
            if selector in seen or selector == "*":
                continue
            seen.add(selector)
            alternatives.append(AlternativeSelector(
                selector=selector, confidence=confidence, method=method, reasoning=reasoning,
            ))

        alternatives.sort(key=lambda alt: alt.confidence, reverse=True)
        return alternatives[:ALTERNATIVE_LIMIT]

    @staticmethod
    def has_location_changed(original: ElementSemanticProfile,
                             current: ElementSemanticProfile) -> bool:
        return (
            abs(original.position.x - current.position.x) > LOCATION_THRESHOLD_PX
            or abs(original.position.y - current.position.y) > LOCATION_THRESHOLD_PX
        )

    @staticmethod
    def have_attributes_changed(original: ElementSemanticProfile,
                                current: ElementSemanticProfile) -> bool:
        return dict(original.attributes) != dict(current.attributes)

    @staticmethod
    def has_visual_changes(original: ElementSemanticProfile,
                           current: ElementSemanticProfile) -> bool:
        before = original.visual_characteristics.computed_styles
        after = current.visual_characteristics.computed_styles
        return any(before.get(style) != after.get(style) for style in CRITICAL_STYLES)

    def semantic_similarity(self, original: ElementSemanticProfile,
                            current: ElementSemanticProfile) -> float:
        """Weighted agreement: tag 3, text 2, role 2, attributes 1."""
        score = 0.0
        if original.element_type == current.element_type:
            score += 3
        score += 2 * text_similarity(original.text_content, current.text_content)
        if original.semantic_role == current.semantic_role:
            score += 2
        if not self.have_attributes_changed(original, current):
            score += 1
        return clamp_confidence(score / 8)

    async def _describe(self, selector: str, page) -> Optional[Dict[str, Any]]:
        try:
            description = await page.evaluate(DESCRIBE_ELEMENT_SCRIPT, selector)
        except Exception as e:
            logger.debug(f"Describe script failed for {selector}: {e}")
            return None
        return description if isinstance(description, dict) else None

    async def _probe_attributes(self, element) -> Dict[str, str]:
        attributes: Dict[str, str] = {}
        for name in PROBED_ATTRIBUTES:
            value = await element.get_attribute(name)
            if value is not None:
                attributes[name] = value
        return attributes

    @staticmethod
    def _is_interactive(tag: str, role: str, attributes: Dict[str, str]) -> bool:
        return (
            tag in _INTERACTIVE_TAGS
            or role in _INTERACTIVE_ROLES
            or "onclick" in attributes
            or "tabindex" in attributes
        )

    @staticmethod
    def _accessibility_properties(attributes: Dict[str, str]) -> Dict[str, str]:
        return {
            name: value for name, value in attributes.items()
            if name.startswith("aria-") or name in ("role", "alt", "title")
        }

    @staticmethod
    def _uniqueness_indicators(attributes: Dict[str, str], text: str) -> List[str]:
        indicators = []
        for name in ("id", "data-testid", "aria-label", "name"):
            value = attributes.get(name)
            if value and not (name == "id" and looks_dynamic(value)):
                indicators.append(f"{name}:{value}")
        if text and len(text) <= 50:
            indicators.append(f"text:{text}")
        return indicators

    @staticmethod
    def _interaction_patterns(tag: str, role: str, attributes: Dict[str, str],
                              interactive: bool, context: ElementContext) -> InteractionPatterns:
        input_type = (attributes.get("type") or "").lower()
        is_button_input = tag == "input" and input_type in _BUTTON_INPUT_TYPES
        return InteractionPatterns(
            click_target=interactive and (
                tag in ("a", "button") or role in ("button", "link", "checkbox", "radio", "tab")
                or is_button_input
            ),
            form_input=tag in _FORM_TAGS and not is_button_input,
            navigation_element=(
                (tag == "a" and "href" in attributes)
                or role in ("link", "navigation")
                or any(parent.startswith("nav") for parent in context.parent_elements)
            ),
        )
