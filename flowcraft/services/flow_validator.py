"""
Graph-level checks for a flow version.

Per-field rules live in the pydantic input schemas; these checks need the whole
graph: key uniqueness, entry point, navigation targets, submit presence and
screen id collisions. The compiler stays tolerant; this pass is what keeps
incomplete graphs from being published.
"""
import logging
from typing import List, Sequence

from flowcraft.core.exceptions import FlowValidationError
from flowcraft.models.flow import ActionType, FlowScreen, FlowVersion, NAVIGATION_ACTION_TYPES
from flowcraft.services.flow_compiler import find_screen_id_collisions

log = logging.getLogger("flowcraft.flow_validator")


def _ordered_screens(screens: Sequence[FlowScreen]) -> List[FlowScreen]:
    return sorted(screens or [], key=lambda screen: screen.order_index or 0)


def ensure_entry_point(screens: Sequence[FlowScreen]) -> None:
    """Mark the first screen as entry point when none is marked."""
    screens = _ordered_screens(screens)
    if screens and not any(screen.is_entry_point for screen in screens):
        screens[0].is_entry_point = True


def validate_flow_graph(screens: Sequence[FlowScreen]) -> List[str]:
    """Return every problem found in the graph; an empty list means valid."""
    errors: List[str] = []
    screens = _ordered_screens(screens)

    if not screens:
        return ["At least one screen is required"]

    screen_keys = set()
    variable_keys = set()
    navigation_targets = []
    submit_actions = 0
    entry_points = 0

    for screen in screens:
        if screen.screen_key in screen_keys:
            errors.append(f"Duplicate screen key '{screen.screen_key}'")
        screen_keys.add(screen.screen_key)

        if not screen.title:
            errors.append(f"Screen '{screen.screen_key}' requires a title")

        if screen.is_entry_point:
            entry_points += 1

        component_keys = set()
        for component in screen.components or []:
            if component.component_key in component_keys:
                errors.append(
                    f"Duplicate component key '{component.component_key}' in screen '{screen.screen_key}'"
                )
            component_keys.add(component.component_key)

            if component.variable_key:
                if component.variable_key in variable_keys:
                    errors.append(f"Duplicate variable_key '{component.variable_key}' across flow version")
                variable_keys.add(component.variable_key)

        action_keys = set()
        for action in screen.actions or []:
            if action.action_key in action_keys:
                errors.append(f"Duplicate action key '{action.action_key}' in screen '{screen.screen_key}'")
            action_keys.add(action.action_key)

            if action.action_type == ActionType.SUBMIT.value:
                submit_actions += 1
            elif action.action_type in NAVIGATION_ACTION_TYPES:
                if not action.target_screen_key:
                    errors.append(f"Action '{action.action_key}' must include target_screen_key")
                else:
                    navigation_targets.append(action)

    if entry_points != 1:
        errors.append(f"Exactly one screen must be marked as is_entry_point (found {entry_points})")

    for action in navigation_targets:
        if action.target_screen_key not in screen_keys:
            errors.append(
                f"Action '{action.action_key}' references missing target_screen_key '{action.target_screen_key}'"
            )

    if submit_actions == 0:
        errors.append("At least one submit action is required in the flow")

    for screen_id, keys in find_screen_id_collisions(screens).items():
        errors.append(f"Screen keys {', '.join(keys)} collide on screen id '{screen_id}'")

    return errors


def assert_valid_graph(screens: Sequence[FlowScreen]) -> None:
    """Raise FlowValidationError listing every problem in the graph."""
    errors = validate_flow_graph(screens)
    if errors:
        log.info(f"Flow version graph rejected: {errors}")
        raise FlowValidationError("Flow payload validation failed", details=errors)


def validate_publishable(version: FlowVersion) -> List[str]:
    """Completeness pass over a stored version graph before it is published."""
    errors = validate_flow_graph(version.screens)
    for screen in version.screens or []:
        if not screen.components and not screen.actions:
            errors.append(f"Screen '{screen.screen_key}' has no components or actions")
    return errors
