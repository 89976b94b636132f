"""
Input validation for diagram MCP server tool parameters.

Provides reusable validators that produce clear error messages for all
parameters received from LLM callers.
"""

from __future__ import annotations

import re
from typing import Any

from diagram_mcp.models import SIDES, ArrowDirection, EdgeStyle, NodeShape


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    return value


def validate_color(value: Any, field_name: str) -> str:
    """Validate a hex color (#RGB, #RRGGBB, #RRGGBBAA) or 'none'."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a color string, got {type(value).__name__}.")
    value = value.strip()
    if value == "none":
        return value
    if not re.match(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$", value):
        raise ValidationError(
            f"'{field_name}' must be a valid hex color (#RGB, #RRGGBB, or #RRGGBBAA), got '{value}'."
        )
    return value


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """Validate a numeric value and optional inclusive range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(f"'{field_name}' must be a number, got {type(value).__name__}.")
    val = float(value)
    if min_val is not None and val < min_val:
        raise ValidationError(f"'{field_name}' must be >= {min_val}, got {val}.")
    if max_val is not None and val > max_val:
        raise ValidationError(f"'{field_name}' must be <= {max_val}, got {val}.")
    return val


def validate_int(
    value: Any,
    field_name: str,
    *,
    min_val: int | None = None,
    max_val: int | None = None,
) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"'{field_name}' must be an integer, got {type(value).__name__}.")
    if min_val is not None and value < min_val:
        raise ValidationError(f"'{field_name}' must be >= {min_val}, got {value}.")
    if max_val is not None and value > max_val:
        raise ValidationError(f"'{field_name}' must be <= {max_val}, got {value}.")
    return value


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(f"'{field_name}' must be a list, got {type(value).__name__}.")
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_file_path(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty file path string.")
    return value.strip()


def validate_choice(value: Any, field_name: str, allowed: set[str]) -> str:
    """Validate a case-insensitive choice; returns it lower-cased."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    normalized = value.strip().lower()
    if normalized not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValidationError(f"'{field_name}' must be one of [{choices}], got '{value}'.")
    return normalized


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

_DIAGRAM_ACTIONS = {"CREATE", "LIST", "IMPORT", "EXPORT", "SAVE", "LOAD", "CLEAR"}
_DRAW_ACTIONS = {
    "ADD_NODES", "ADD_EDGES", "ADD_LABELS", "MOVE_NODE", "RESIZE_NODE",
    "DELETE_NODES", "DELETE_EDGES", "DELETE_LABELS", "SET_EDGE_STYLE",
    "ADD_WAYPOINT", "DELETE_WAYPOINT",
}
_LAYOUT_ACTIONS = {"HIERARCHICAL", "OPTIMIZE", "FORCE", "RESOLVE_OVERLAPS", "COMPACT", "SNAP"}
_INSPECT_ACTIONS = {"NODES", "EDGES", "FITNESS", "LEVELS"}

_IMPORT_FORMATS = {"auto", "json", "mermaid", "dot"}
_EXPORT_FORMATS = {"json", "mermaid"}
_OPTIMIZE_PRESETS = {"quick", "balanced", "thorough"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    choices = ", ".join(sorted(a.lower() for a in allowed))
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    if value.strip().upper() not in allowed:
        raise ValidationError(f"Unknown {tool_name} action '{value}'. Valid actions: {choices}.")
    return value.strip().lower()


def validate_import_format(value: Any) -> str:
    return validate_choice(value, "format", _IMPORT_FORMATS)


def validate_export_format(value: Any) -> str:
    return validate_choice(value, "format", _EXPORT_FORMATS)


def validate_preset(value: Any) -> str:
    return validate_choice(value, "preset", _OPTIMIZE_PRESETS)


# ---------------------------------------------------------------------------
# Domain values
# ---------------------------------------------------------------------------

def validate_side(value: Any, field_name: str) -> str:
    return validate_choice(value, field_name, set(SIDES))


def validate_node_shape(value: Any) -> NodeShape:
    return NodeShape(validate_choice(value, "shape", {s.value for s in NodeShape}))


def validate_edge_style(value: Any) -> EdgeStyle:
    return EdgeStyle(validate_choice(value, "style", {s.value for s in EdgeStyle}))


def validate_arrow_direction(value: Any) -> ArrowDirection:
    return ArrowDirection(
        validate_choice(value, "arrow_direction", {a.value for a in ArrowDirection})
    )


def validate_grid_size(value: Any) -> int:
    """Validate grid size (1..100)."""
    return validate_int(value, "grid_size", min_val=1, max_val=100)


def validate_positive_number(value: Any, field_name: str) -> float:
    """Validate that a number is positive (> 0)."""
    return validate_number(value, field_name, min_val=0.001)


def validate_compact_factor(value: Any) -> float:
    """Fraction of each node's offset from the center that is kept (0..1]."""
    return validate_number(value, "factor", min_val=0.01, max_val=1)


# ---------------------------------------------------------------------------
# Node / edge / label dict validators
# ---------------------------------------------------------------------------

def validate_node_dict(n: Any, index: int) -> None:
    """Validate a single node dict from the nodes list."""
    if not isinstance(n, dict):
        raise ValidationError(f"Node at index {index} must be a dict/object.")
    for key in ("x", "y"):
        if key not in n:
            raise ValidationError(f"Node at index {index} missing required key '{key}'.")
        if not isinstance(n[key], (int, float)) or isinstance(n[key], bool):
            raise ValidationError(f"Node at index {index}: '{key}' must be a number.")
    for key in ("width", "height"):
        if key in n:
            if not isinstance(n[key], (int, float)) or isinstance(n[key], bool):
                raise ValidationError(f"Node at index {index}: '{key}' must be a number.")
            if n[key] <= 0:
                raise ValidationError(f"Node at index {index}: '{key}' must be > 0.")
    try:
        if "text" in n:
            validate_string(n["text"], "text")
        if "shape" in n:
            validate_node_shape(n["shape"])
        for key in ("fill_color", "stroke_color"):
            if key in n:
                validate_color(n[key], key)
    except ValidationError as exc:
        raise ValidationError(f"Node at index {index}: {exc.message}") from exc


def validate_edge_dict(e: Any, index: int) -> None:
    """Validate a single edge dict from the edges list.

    Self-loops are accepted; they are drawn as a direct segment.
    """
    if not isinstance(e, dict):
        raise ValidationError(f"Edge at index {index} must be a dict/object.")
    for key in ("from_id", "to_id"):
        if key not in e:
            raise ValidationError(f"Edge at index {index} missing required key '{key}'.")
        if not isinstance(e[key], int) or isinstance(e[key], bool):
            raise ValidationError(f"Edge at index {index}: '{key}' must be an integer node id.")
    try:
        if "label" in e:
            validate_string(e["label"], "label")
        for key in ("from_side", "to_side"):
            if key in e:
                validate_side(e[key], key)
        for key in ("from_position", "to_position"):
            if key in e:
                validate_int(e[key], key, min_val=-2, max_val=2)
        if "style" in e:
            validate_edge_style(e["style"])
        if "arrow_direction" in e:
            validate_arrow_direction(e["arrow_direction"])
        if "stroke_color" in e:
            validate_color(e["stroke_color"], "stroke_color")
        if "waypoints" in e:
            for i, wp in enumerate(validate_list(e["waypoints"], "waypoints")):
                validate_waypoint(wp, i)
    except ValidationError as exc:
        raise ValidationError(f"Edge at index {index}: {exc.message}") from exc


def validate_waypoint(wp: Any, index: int) -> None:
    if not isinstance(wp, dict):
        raise ValidationError(f"Waypoint at index {index} must be a dict/object.")
    for key in ("x", "y"):
        if not isinstance(wp.get(key), (int, float)) or isinstance(wp.get(key), bool):
            raise ValidationError(f"Waypoint at index {index}: '{key}' must be a number.")
    if "layer" in wp:
        validate_int(wp["layer"], "layer", min_val=0, max_val=1)


def validate_label_dict(lbl: Any, index: int) -> None:
    """Validate a single label dict from the labels list."""
    if not isinstance(lbl, dict):
        raise ValidationError(f"Label at index {index} must be a dict/object.")
    if not isinstance(lbl.get("edge_id"), int) or isinstance(lbl.get("edge_id"), bool):
        raise ValidationError(f"Label at index {index}: 'edge_id' must be an integer edge id.")
    try:
        validate_string(lbl.get("text"), "text")
    except ValidationError as exc:
        raise ValidationError(f"Label at index {index}: {exc.message}") from exc
    for key in ("x", "y"):
        if key in lbl and (not isinstance(lbl[key], (int, float)) or isinstance(lbl[key], bool)):
            raise ValidationError(f"Label at index {index}: '{key}' must be a number.")


def validate_id_list(value: Any, field_name: str) -> list[int]:
    """Validate a non-empty list of integer ids."""
    items = validate_list(value, field_name, min_length=1)
    for i, item in enumerate(items):
        if not isinstance(item, int) or isinstance(item, bool):
            raise ValidationError(f"'{field_name}' item at index {i} must be an integer id.")
    return items
