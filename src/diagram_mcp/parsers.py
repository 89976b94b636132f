"""
Diagram interchange: JSON persistence plus Mermaid and DOT subsets.

The JSON document is an object with ``nodes``, ``edges``, ``edgeLabels``
arrays and the ``nextId`` / ``nextEdgeId`` / ``nextLabelId`` counters.
Loading it restores the model exactly and re-plans every edge.

The Mermaid and DOT readers build a fresh diagram line by line: each new
textual node id gets the next internal id and a placeholder grid slot,
repeated references reuse the same node, and anything unrecognized is
skipped. When the text is consumed the graph is laid out hierarchically,
edges are re-anchored for their final positions and paths are planned.
"""

from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Optional, TypeVar

from diagram_mcp.geometry import edge_midpoint, optimal_anchor_pair
from diagram_mcp.layout import GridPlacer, apply_hierarchical_layout
from diagram_mcp.models import (
    ArrowDirection,
    ConnectionPoint,
    Diagram,
    Edge,
    EdgeLabel,
    EdgeStyle,
    Node,
    NodeShape,
    Waypoint,
)
from diagram_mcp.routing import recompute_edge_paths

logger = logging.getLogger(__name__)

FORMATS = ("auto", "json", "mermaid", "dot")


class DiagramFormatError(ValueError):
    """The document as a whole cannot be read."""


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def node_to_dict(node: Node) -> dict:
    return {
        "id": node.id,
        "x": node.x,
        "y": node.y,
        "width": node.width,
        "height": node.height,
        "text": node.text,
        "shape": node.shape.value,
        "strokeColor": node.stroke_color,
        "strokeWidth": node.stroke_width,
        "strokeDashArray": node.stroke_dash_array,
        "fillColor": node.fill_color,
        "icon": node.icon,
        "templateId": node.template_id,
        "templateShapeId": node.template_shape_id,
        "componentLabel": node.component_label,
        "componentValue": node.component_value,
    }


def edge_to_dict(edge: Edge) -> dict:
    return {
        "id": edge.id,
        "from": edge.from_id,
        "to": edge.to_id,
        "fromConnection": edge.from_connection.to_dict(),
        "toConnection": edge.to_connection.to_dict(),
        "style": edge.style.value,
        "isOrthogonal": edge.is_orthogonal,
        "arrowDirection": edge.arrow_direction.value,
        "waypoints": [{"x": wp.x, "y": wp.y, "layer": wp.layer} for wp in edge.waypoints],
        "strokeWidth": edge.stroke_width,
        "strokeColor": edge.stroke_color,
        "strokeDashArray": edge.stroke_dash_array,
        "isDoubleLine": edge.is_double_line,
        "label": edge.label,
        "customFromSide": edge.custom_from_side,
        "customToSide": edge.custom_to_side,
        "pathData": edge.path_data,
    }


def label_to_dict(label: EdgeLabel) -> dict:
    return {"id": label.id, "edgeId": label.edge_id, "text": label.text, "x": label.x, "y": label.y}


def diagram_to_dict(diagram: Diagram) -> dict:
    return {
        "nodes": [node_to_dict(n) for n in diagram.nodes],
        "edges": [edge_to_dict(e) for e in diagram.edges],
        "edgeLabels": [label_to_dict(lbl) for lbl in diagram.edge_labels],
        "nextId": diagram.next_id,
        "nextEdgeId": diagram.next_edge_id,
        "nextLabelId": diagram.next_label_id,
    }


def diagram_to_json(diagram: Diagram, indent: Optional[int] = 2) -> str:
    return json.dumps(diagram_to_dict(diagram), indent=indent)


def _get(data: dict, key: str, default: Any = None) -> Any:
    """Look up a camelCase key, accepting its PascalCase spelling too."""
    if key in data:
        return data[key]
    return data.get(key[0].upper() + key[1:], default)


E = TypeVar("E", bound=Enum)


def _enum(enum_cls: type[E], raw: Any, default: E) -> E:
    """Decode an enum from its value, its name, or its ordinal."""
    if raw is None:
        return default
    if isinstance(raw, int) and not isinstance(raw, bool):
        members = list(enum_cls)
        if 0 <= raw < len(members):
            return members[raw]
    elif isinstance(raw, str):
        wanted = raw.strip().lower().replace("_", "").replace("-", "")
        for member in enum_cls:
            if wanted in (str(member.value).replace("_", ""), member.name.lower().replace("_", "")):
                return member
    logger.debug("Unknown %s value %r; using %s", enum_cls.__name__, raw, default.value)
    return default


def _connection(raw: Any, default_side: str) -> ConnectionPoint:
    if isinstance(raw, dict):
        return ConnectionPoint(
            side=str(_get(raw, "side", default_side)).lower(),
            position=int(_get(raw, "position", 0) or 0),
        )
    return ConnectionPoint(side=default_side)


def node_from_dict(data: dict) -> Node:
    return Node(
        id=int(_get(data, "id")),
        x=float(_get(data, "x", 0)),
        y=float(_get(data, "y", 0)),
        width=float(_get(data, "width", 120)),
        height=float(_get(data, "height", 60)),
        text=_get(data, "text", "") or "",
        shape=_enum(NodeShape, _get(data, "shape"), NodeShape.RECTANGLE),
        stroke_color=_get(data, "strokeColor", "#475569") or "#475569",
        stroke_width=_get(data, "strokeWidth"),
        stroke_dash_array=_get(data, "strokeDashArray"),
        fill_color=_get(data, "fillColor"),
        icon=_get(data, "icon"),
        template_id=_get(data, "templateId"),
        template_shape_id=_get(data, "templateShapeId"),
        component_label=_get(data, "componentLabel"),
        component_value=_get(data, "componentValue"),
    )


def edge_from_dict(data: dict) -> Edge:
    waypoints = [
        Waypoint(x=float(_get(wp, "x", 0)), y=float(_get(wp, "y", 0)), layer=int(_get(wp, "layer", 0)))
        for wp in _get(data, "waypoints", []) or []
        if isinstance(wp, dict)
    ]
    return Edge(
        id=int(_get(data, "id")),
        from_id=int(_get(data, "from")),
        to_id=int(_get(data, "to")),
        from_connection=_connection(_get(data, "fromConnection"), "right"),
        to_connection=_connection(_get(data, "toConnection"), "left"),
        style=_enum(EdgeStyle, _get(data, "style"), EdgeStyle.DIRECT),
        is_orthogonal=bool(_get(data, "isOrthogonal", False)),
        arrow_direction=_enum(ArrowDirection, _get(data, "arrowDirection"), ArrowDirection.END),
        waypoints=waypoints,
        stroke_width=_get(data, "strokeWidth"),
        stroke_color=_get(data, "strokeColor"),
        stroke_dash_array=_get(data, "strokeDashArray"),
        is_double_line=bool(_get(data, "isDoubleLine", False)),
        label=_get(data, "label", "") or "",
        custom_from_side=_get(data, "customFromSide"),
        custom_to_side=_get(data, "customToSide"),
        path_data=_get(data, "pathData", "") or "",
    )


def label_from_dict(data: dict) -> EdgeLabel:
    x = _get(data, "x")
    y = _get(data, "y")
    return EdgeLabel(
        id=int(_get(data, "id")),
        edge_id=int(_get(data, "edgeId")),
        text=_get(data, "text", "") or "",
        x=None if x is None else float(x),
        y=None if y is None else float(y),
    )


def load_json(text: str, name: str = "Diagram-1") -> Diagram:
    """Rebuild a diagram from its JSON document and re-plan every edge.

    Raises:
        DiagramFormatError: The text is not JSON, is not an object, or
            holds an entry that cannot be converted.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DiagramFormatError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DiagramFormatError("Diagram JSON must be an object")

    try:
        nodes = [node_from_dict(n) for n in _get(data, "nodes", []) or []]
        edges = [edge_from_dict(e) for e in _get(data, "edges", []) or []]
        labels = [label_from_dict(lbl) for lbl in _get(data, "edgeLabels", []) or []]
    except (TypeError, ValueError, AttributeError) as exc:
        raise DiagramFormatError(f"Invalid diagram entry: {exc}") from exc

    diagram = Diagram(name=name, nodes=nodes, edges=edges, edge_labels=labels)
    diagram.next_id = _counter(_get(data, "nextId"), (n.id for n in nodes))
    diagram.next_edge_id = _counter(_get(data, "nextEdgeId"), (e.id for e in edges))
    diagram.next_label_id = _counter(_get(data, "nextLabelId"), (lbl.id for lbl in labels))

    recompute_edge_paths(diagram)
    return diagram


def _counter(stored: Any, ids) -> int:
    """Stored counter, raised past the largest id in use."""
    floor = max(ids, default=0) + 1
    if stored is None:
        return floor
    return max(int(stored), floor)


# ---------------------------------------------------------------------------
# Shared text-import helpers
# ---------------------------------------------------------------------------

class _GraphBuilder:
    """Accumulates nodes/edges for a text import, one textual id per node."""

    def __init__(self, name: str) -> None:
        self.diagram = Diagram(name=name)
        self.placer = GridPlacer()
        self.ids: dict[str, int] = {}

    def ensure_node(self, key: str, text: str, shape: NodeShape = NodeShape.RECTANGLE) -> int:
        if key not in self.ids:
            x, y = self.placer.next_slot()
            node = self.diagram.add_node(
                text=text, x=x, y=y,
                width=self.placer.node_width, height=self.placer.node_height,
                shape=shape,
            )
            self.ids[key] = node.id
        return self.ids[key]

    def connect(self, from_id: int, to_id: int, label: Optional[str] = None) -> Edge:
        edge = self.diagram.add_edge(from_id, to_id)
        if label:
            self.diagram.add_edge_label(edge.id, label)
        return edge

    def finish(self) -> Diagram:
        diagram = self.diagram
        apply_hierarchical_layout(diagram)
        nodes = diagram.node_map()
        for edge in diagram.edges:
            src = nodes.get(edge.from_id)
            tgt = nodes.get(edge.to_id)
            if src is not None and tgt is not None:
                edge.from_connection, edge.to_connection = optimal_anchor_pair(src, tgt)
        recompute_edge_paths(diagram)
        for label in diagram.edge_labels:
            edge = diagram.get_edge(label.edge_id)
            if edge is not None:
                label.x, label.y = edge_midpoint(edge, nodes)
        return diagram


# ---------------------------------------------------------------------------
# Mermaid
# ---------------------------------------------------------------------------

_MERMAID_SKIP = re.compile(
    r"^(?:%%|(?:flowchart|graph|classDef|class|style|subgraph|direction|linkStyle|end)\b)"
)

_MERMAID_SHAPES: list[tuple[str, re.Pattern[str], NodeShape]] = [
    ("((", re.compile(r"(\w+)\(\((.+?)\)\)"), NodeShape.ELLIPSE),
    ("{{", re.compile(r"(\w+)\{\{(.+?)\}\}"), NodeShape.DIAMOND),
    ("[/", re.compile(r"(\w+)\[/(.+?)/\]"), NodeShape.PARALLELOGRAM),
    ("[(", re.compile(r"(\w+)\[\((.+?)\)\]"), NodeShape.CYLINDER),
    ("[", re.compile(r"(\w+)\[(.+?)\]"), NodeShape.RECTANGLE),
    ("{", re.compile(r"(\w+)\{(.+?)\}"), NodeShape.DIAMOND),
    ("(", re.compile(r"(\w+)\((.+?)\)"), NodeShape.RECTANGLE),
]

_MERMAID_EDGE_LABEL = re.compile(r"\|([^|]+)\|")


def parse_mermaid_node(text: str) -> Optional[tuple[str, str, NodeShape]]:
    """Split a Mermaid node reference into (textual id, label, shape).

    Returns None for a malformed reference, such as ``A[Start`` with its
    delimiter left open.
    """
    text = text.strip()
    for opener, pattern, shape in _MERMAID_SHAPES:
        if opener in text:
            match = pattern.search(text)
            if match:
                return match.group(1), match.group(2), shape
    if any(ch in text for ch in "[({"):
        return None
    tokens = text.split()
    node_id = tokens[0] if tokens else text
    return node_id, node_id, NodeShape.RECTANGLE


def parse_mermaid(text: str, name: str = "Diagram-1") -> Diagram:
    """Build a diagram from a Mermaid flowchart subset.

    Supports node lines (``A[x]``, ``A(x)``, ``A{x}``, ``A((x))``,
    ``A{{x}}``, ``A[/x/]``, ``A[(x)]``) and edge lines (``A --> B``,
    ``A -->|x| B``, ``A --- B``, including chains). Other lines, and lines
    with an unclosed node delimiter, are ignored.
    """
    builder = _GraphBuilder(name)

    for raw_line in text.split("\n"):
        line = raw_line.strip().rstrip(";").strip()
        if not line or _MERMAID_SKIP.match(line):
            continue

        has_arrow = "-->" in line or "---" in line
        if not has_arrow:
            node = parse_mermaid_node(line) if any(ch in line for ch in "[({") else None
            if node is None:
                logger.debug("Skipping Mermaid line: %r", raw_line)
                continue
            builder.ensure_node(*node)
            continue

        arrow = "-->" if "-->" in line else "---"
        parts = [p.strip() for p in line.split(arrow)]
        parts = [p for p in parts if p]
        if len(parts) < 2:
            logger.debug("Skipping incomplete Mermaid edge: %r", raw_line)
            continue

        chain: list[tuple[Optional[str], tuple[str, str, NodeShape]]] = []
        for part in parts:
            edge_label = None
            match = _MERMAID_EDGE_LABEL.search(part)
            if match:
                edge_label = match.group(1).strip()
                part = _MERMAID_EDGE_LABEL.sub("", part).strip()
            if not part:
                continue
            node = parse_mermaid_node(part)
            if node is None:
                chain = []
                break
            chain.append((edge_label, node))
        if len(chain) < 2:
            logger.debug("Skipping malformed Mermaid edge: %r", raw_line)
            continue

        from_id = builder.ensure_node(*chain[0][1])
        for edge_label, node in chain[1:]:
            to_id = builder.ensure_node(*node)
            builder.connect(from_id, to_id, edge_label)
            from_id = to_id

    return builder.finish()


_MERMAID_DELIMITERS = {
    NodeShape.ELLIPSE: ("((", "))"),
    NodeShape.DIAMOND: ("{{", "}}"),
    NodeShape.PARALLELOGRAM: ("[/", "/]"),
    NodeShape.CYLINDER: ("[(", ")]"),
    NodeShape.RECTANGLE: ("[", "]"),
}


def export_mermaid(diagram: Diagram) -> str:
    """Write the diagram as a ``flowchart TD`` Mermaid document."""
    lines = ["flowchart TD"]
    for node in diagram.nodes:
        key = f"N{node.id}"
        label = node.text or key
        opener, closer = _MERMAID_DELIMITERS.get(node.shape, ("[", "]"))
        lines.append(f"    {key}{opener}{label}{closer}")
    for edge in diagram.edges:
        labels = diagram.labels_for_edge(edge.id)
        label = labels[0].text if labels else ""
        if label:
            lines.append(f"    N{edge.from_id} -->|{label}| N{edge.to_id}")
        else:
            lines.append(f"    N{edge.from_id} --> N{edge.to_id}")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# DOT
# ---------------------------------------------------------------------------

_DOT_SKIP = re.compile(r"^(?://|#|(?:strict|digraph|graph|subgraph|node|edge|rankdir)\b)")
_DOT_LABEL = re.compile(r'label\s*=\s*"([^"]+)"')
# Semicolons outside double quotes end a statement
_DOT_STATEMENT_SPLIT = re.compile(r';(?=(?:[^"]*"[^"]*")*[^"]*$)')


def _dot_statements(text: str) -> list[str]:
    statements: list[str] = []
    for raw_line in text.split("\n"):
        for stmt in _DOT_STATEMENT_SPLIT.split(raw_line):
            stmt = stmt.strip()
            if "{" in stmt:
                stmt = stmt.split("{", 1)[1].strip()
            if "}" in stmt:
                stmt = stmt.rsplit("}", 1)[0].strip()
            if stmt:
                statements.append(stmt)
    return statements


def _dot_node_ref(text: str) -> tuple[str, Optional[str]]:
    """(textual id, explicit label or None) for a DOT node reference."""
    text = text.strip()
    label = None
    if "[" in text:
        match = _DOT_LABEL.search(text)
        if match:
            label = match.group(1)
        text = text[: text.index("[")].strip()
    return text.strip('"'), label


def parse_dot(text: str, name: str = "Diagram-1") -> Diagram:
    """Build a diagram from a DOT subset.

    Supports ``A -> B``, ``A -- B`` (chains included), an optional
    ``[label="..."]`` on edges and node declarations, and both one-line and
    multi-line ``digraph { ... }`` bodies. Other statements are ignored.
    """
    builder = _GraphBuilder(name)

    for stmt in _dot_statements(text):
        if _DOT_SKIP.match(stmt):
            continue

        body, attributes = stmt, ""
        if "[" in stmt:
            body, attributes = stmt[: stmt.index("[")], stmt[stmt.index("["):]

        if "->" in body or "--" in body:
            arrow = "->" if "->" in body else "--"
            parts = [p.strip().strip('"') for p in body.split(arrow)]
            parts = [p for p in parts if p]
            if len(parts) < 2:
                logger.debug("Skipping incomplete DOT edge: %r", stmt)
                continue
            match = _DOT_LABEL.search(attributes)
            edge_label = match.group(1) if match else None

            from_id = builder.ensure_node(parts[0], parts[0])
            for part in parts[1:]:
                to_id = builder.ensure_node(part, part)
                builder.connect(from_id, to_id, edge_label)
                from_id = to_id
            continue

        key, label = _dot_node_ref(stmt)
        if not key or not re.match(r'^[\w."-]+$', key):
            logger.debug("Skipping DOT statement: %r", stmt)
            continue
        node_id = builder.ensure_node(key, label or key)
        if label:
            node = builder.diagram.get_node(node_id)
            if node is not None:
                node.text = label

    return builder.finish()


# ---------------------------------------------------------------------------
# Format detection / dispatch
# ---------------------------------------------------------------------------

def detect_format(text: str) -> str:
    """Guess the interchange format: ``json``, ``mermaid`` or ``dot``."""
    stripped = text.strip()
    if stripped.startswith("{") or stripped.startswith("["):
        return "json"
    if "flowchart" in stripped or "graph TD" in stripped or "graph LR" in stripped:
        return "mermaid"
    if stripped.startswith("digraph") or stripped.startswith("graph"):
        return "dot"
    return "json"


def load_diagram(text: str, fmt: str = "auto", name: str = "Diagram-1") -> Diagram:
    """Parse *text* in the given (or detected) format into a new diagram."""
    if fmt == "auto":
        fmt = detect_format(text)
    if fmt == "json":
        return load_json(text, name)
    if fmt == "mermaid":
        return parse_mermaid(text, name)
    if fmt == "dot":
        return parse_dot(text, name)
    raise DiagramFormatError(
        f"Unsupported format '{fmt}'. Valid formats: {', '.join(FORMATS)}"
    )
