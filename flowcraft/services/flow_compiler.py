"""
Flow JSON compiler.

Turns a flow version graph (screens with their components and actions attached)
into the WhatsApp Flow JSON document uploaded to Meta.

The compiler is a pure function of its input: no I/O, no clock, no randomness.
It never raises for incomplete drafts; missing pieces fall back to permissive
defaults (terminal screens, "complete" footers, synthesized names) so a draft in
any state can still be rendered. Graph objects may be ORM rows or plain dicts
with the same snake_case field names.
"""
import json
import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from flowcraft.core.config import FLOW_JSON_VERSION
from flowcraft.models.flow import ActionType, ComponentType

log = logging.getLogger("flowcraft.flow_compiler")

SCREEN_ID_MAX_LENGTH = 64
DEFAULT_SUMMARY_TEXT = "Review your details"

_SCREEN_ID_INVALID_CHARS = re.compile(r"[^A-Z0-9_]")
_FORM_NAME_INVALID_CHARS = re.compile(r"[^a-z0-9_]")

# component_type -> TextInput "input-type"; date/time/datetime stay plain text
TEXT_INPUT_TYPES = {
    ComponentType.EMAIL.value: "email",
    ComponentType.PHONE.value: "phone",
    ComponentType.NUMBER.value: "number",
}

# component_type -> list-backed widget
OPTION_WIDGETS = {
    ComponentType.SELECT.value: "Dropdown",
    ComponentType.RADIO.value: "RadioButtonsGroup",
    ComponentType.CHECKBOX.value: "CheckboxGroup",
}


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from an ORM row or a dict; None counts as missing."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        value = obj.get(name)
    else:
        value = getattr(obj, name, None)
    return default if value is None else value


def _order(item: Any) -> int:
    value = _field(item, "order_index", 0)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _sorted_by_order(items: Any) -> List[Any]:
    if not isinstance(items, (list, tuple)):
        try:
            items = list(items or [])
        except TypeError:
            return []
    # sorted() is stable: equal order_index keeps input order
    return sorted(items, key=_order)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _lookup_key(value: Any) -> Optional[str]:
    """Hashable form of a screen key or target; None for containers."""
    if value is None or isinstance(value, (Mapping, list, tuple, set)):
        return None
    return _stringify(value)


def _component_type(component: Any) -> str:
    return _stringify(_field(component, "component_type", "")).lower()


# ────────────────────────────────────────────
# Screen IDs
# ────────────────────────────────────────────

def normalize_screen_id(raw_key: Optional[str], ordinal: int) -> str:
    """
    Make a screen key safe for use as a WhatsApp screen id.

    Upper-cases, replaces anything outside [A-Z0-9_] with "_", strips leading and
    trailing underscores and truncates to 64 characters. Falls back to
    SCREEN_{ordinal} (1-based) when nothing is left.

    >>> normalize_screen_id("my screen!!", 3)
    'MY_SCREEN'
    >>> normalize_screen_id("", 3)
    'SCREEN_3'
    """
    text = "" if raw_key is None else _stringify(raw_key)
    normalized = _SCREEN_ID_INVALID_CHARS.sub("_", text.strip().upper()).strip("_")
    normalized = normalized[:SCREEN_ID_MAX_LENGTH]
    return normalized or f"SCREEN_{ordinal}"


def find_screen_id_collisions(screens: Any) -> Dict[str, List[str]]:
    """
    Return normalized ids that more than one distinct screen key maps to.

    Keys are visited in compiled order, so the result is deterministic.
    """
    keys_by_id: Dict[str, List[str]] = {}
    for ordinal, screen in enumerate(_sorted_by_order(screens), start=1):
        raw_key = _field(screen, "screen_key", "")
        screen_id = normalize_screen_id(raw_key, ordinal)
        keys = keys_by_id.setdefault(screen_id, [])
        if raw_key not in keys:
            keys.append(raw_key)
    return {screen_id: keys for screen_id, keys in keys_by_id.items() if len(keys) > 1}


# ────────────────────────────────────────────
# Components
# ────────────────────────────────────────────

def to_data_source(options: Any) -> List[Dict[str, str]]:
    """
    Map stored component options to a WhatsApp "data-source" list.

    id comes from value, then id, then option_{n}; title from label, then title,
    then the id. Options left without an id or title are dropped.
    """
    if not isinstance(options, (list, tuple)):
        return []

    data_source = []
    for index, option in enumerate(options, start=1):
        option = option if isinstance(option, Mapping) else {}

        value = option.get("value")
        if value is None:
            value = option.get("id")
        if value is None:
            value = f"option_{index}"

        title = option.get("label")
        if title is None:
            title = option.get("title")
        if title is None:
            title = value

        item = {"id": _stringify(value), "title": _stringify(title)}
        if item["id"] and item["title"]:
            data_source.append(item)

    return data_source


def map_component(component: Any) -> Dict[str, Any]:
    """Map one input component to its WhatsApp widget."""
    component_type = _component_type(component)
    name = (
        _field(component, "variable_key")
        or _field(component, "component_key")
        or f"field_{_field(component, 'order_index', 0)}"
    )

    widget = {
        "type": "TextInput",
        "name": name,
        "label": _field(component, "label") or name,
        "required": bool(_field(component, "required", False)),
    }

    if component_type == ComponentType.TEXTAREA.value:
        widget["type"] = "TextArea"
    elif component_type in OPTION_WIDGETS:
        widget["type"] = OPTION_WIDGETS[component_type]
        widget["data-source"] = to_data_source(_field(component, "options"))
    else:
        widget["input-type"] = TEXT_INPUT_TYPES.get(component_type, "text")

    return widget


def _form_child(component: Any) -> Dict[str, Any]:
    if _component_type(component) == ComponentType.SUMMARY.value:
        return {
            "type": "TextBody",
            "text": _field(component, "label") or DEFAULT_SUMMARY_TEXT,
        }
    return map_component(component)


# ────────────────────────────────────────────
# Screens
# ────────────────────────────────────────────

def _first_action(actions: List[Any], action_type: str) -> Optional[Any]:
    for action in actions:
        if _stringify(_field(action, "action_type", "")).lower() == action_type:
            return action
    return None


def _footer_action(primary_action: Any, target_screen_id: Optional[str]) -> Dict[str, Any]:
    is_next = (
        primary_action is not None
        and _stringify(_field(primary_action, "action_type", "")).lower() == ActionType.NEXT_SCREEN.value
    )
    if is_next and target_screen_id:
        return {
            "name": "navigate",
            "next": {"type": "screen", "name": target_screen_id},
            "payload": {},
        }
    return {"name": "complete", "payload": {}}


def _form_name(screen_key: Any, ordinal: int) -> str:
    raw = _stringify(screen_key) if screen_key else str(ordinal)
    return f"form_{_FORM_NAME_INVALID_CHARS.sub('_', raw.lower())}"


def _compile_screen(
    screen: Any,
    ordinal: int,
    screen_id: str,
    screen_ids: Dict[str, str],
    template_name: str,
    routing_model: Dict[str, List[str]],
) -> Dict[str, Any]:
    components = _sorted_by_order(_field(screen, "components", []))
    actions = _sorted_by_order(_field(screen, "actions", []))

    # Only the first action of each kind drives control flow
    next_action = _first_action(actions, ActionType.NEXT_SCREEN.value)
    submit_action = _first_action(actions, ActionType.SUBMIT.value)

    target_key = _lookup_key(_field(next_action, "target_screen_key"))
    target_screen_id = screen_ids.get(target_key) if target_key else None
    is_terminal = submit_action is not None or target_screen_id is None

    routing_model[screen_id] = [target_screen_id] if target_screen_id else []

    if is_terminal and target_screen_id:
        log.warning(
            f"⚠️ Screen {screen_id} is terminal (submit action) but routes to {target_screen_id}"
        )

    title = _field(screen, "title")
    children = [{
        "type": "TextHeading",
        "text": title or f"{template_name} - {ordinal}",
    }]

    description = _field(screen, "description")
    if description:
        children.append({"type": "TextBody", "text": description})

    form_children = [_form_child(component) for component in components]
    form_children.append({
        "type": "Footer",
        "label": (
            _field(submit_action, "label")
            or _field(next_action, "label")
            or ("Submit" if is_terminal else "Continue")
        ),
        "on-click-action": _footer_action(submit_action or next_action, target_screen_id),
    })

    children.append({
        "type": "Form",
        "name": _form_name(_field(screen, "screen_key"), ordinal),
        "children": form_children,
    })

    compiled = {
        "id": screen_id,
        "title": title or screen_id,
        "terminal": is_terminal,
    }
    if is_terminal:
        compiled["success"] = True
    compiled["data"] = {}
    compiled["layout"] = {"type": "SingleColumnLayout", "children": children}
    return compiled


def compile_flow_json(template: Any, version_graph: Any) -> Dict[str, Any]:
    """
    Compile a version graph into a WhatsApp Flow JSON document.

    Args:
        template: FlowTemplate (or dict) - only its name is used, for default headings
        version_graph: FlowVersion (or dict) with screens, each carrying its
            components and actions. The graph must be fully loaded; a partial
            graph compiles without error but routes wrongly.

    Returns:
        {"version": "7.3", "routing_model": {...}, "screens": [...]}; an empty
        graph yields {"version": "7.3", "screens": []} without a routing model.
    """
    screens = _sorted_by_order(_field(version_graph, "screens", []))

    if not screens:
        return {"version": FLOW_JSON_VERSION, "screens": []}

    template_name = _field(template, "name") or "Flow"

    # Every id must be known before any body is built: actions can target later screens
    ordered_ids: List[str] = []
    screen_ids: Dict[str, str] = {}
    for ordinal, screen in enumerate(screens, start=1):
        screen_id = normalize_screen_id(_field(screen, "screen_key", ""), ordinal)
        ordered_ids.append(screen_id)
        key = _lookup_key(_field(screen, "screen_key", ""))
        if key is not None:
            screen_ids[key] = screen_id

    for screen_id, keys in find_screen_id_collisions(screens).items():
        log.warning(f"⚠️ Screen keys {keys} all normalize to {screen_id}")

    routing_model: Dict[str, List[str]] = {}
    compiled_screens = [
        _compile_screen(screen, ordinal, ordered_ids[ordinal - 1], screen_ids, template_name, routing_model)
        for ordinal, screen in enumerate(screens, start=1)
    ]

    return {
        "version": FLOW_JSON_VERSION,
        "routing_model": routing_model,
        "screens": compiled_screens,
    }


def dump_flow_json(document: Dict[str, Any]) -> str:
    """Serialize a compiled document; equal documents give identical text."""
    return json.dumps(document, ensure_ascii=False, indent=2)
