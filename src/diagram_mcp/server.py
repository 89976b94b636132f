"""
Diagram MCP Server — build, route and lay out node/edge diagrams via
Model Context Protocol.

Exposes 4 tools that let an LLM agent create diagrams, import them from
JSON / Mermaid / DOT, re-route edges and optimize layouts.

Tools:
  1. diagram  — lifecycle: create, list, import, export, save, load, clear
  2. draw     — content:  add nodes/edges/labels, move, resize, delete, restyle edges,
                          add and remove edge waypoints
  3. layout   — positioning: hierarchical, optimize (simulated annealing), force,
                             resolve_overlaps, compact, snap
  4. inspect  — read-only: nodes, edges (with path data), fitness, levels
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from diagram_mcp.fitness import evaluate_fitness
from diagram_mcp.layout import apply_hierarchical_layout, assign_levels
from diagram_mcp.layout_engine import (
    AnnealingOptions,
    ForceDirectedConfig,
    compact_layout,
    force_directed_layout,
    optimize_layout,
    remove_overlaps,
    snap_nodes_to_grid,
)
from diagram_mcp.models import ConnectionPoint, Diagram, Waypoint
from diagram_mcp.parsers import (
    DiagramFormatError,
    diagram_to_json,
    edge_to_dict,
    export_mermaid,
    load_diagram,
    load_json,
    node_to_dict,
)
from diagram_mcp.routing import recompute_edge_paths
from diagram_mcp.validation import (
    ValidationError,
    validate_action,
    validate_arrow_direction,
    validate_compact_factor,
    validate_edge_dict,
    validate_edge_style,
    validate_export_format,
    validate_file_path,
    validate_grid_size,
    validate_id_list,
    validate_import_format,
    validate_int,
    validate_label_dict,
    validate_list,
    validate_node_dict,
    validate_node_shape,
    validate_non_empty_string,
    validate_number,
    validate_positive_number,
    validate_preset,
    _DIAGRAM_ACTIONS,
    _DRAW_ACTIONS,
    _INSPECT_ACTIONS,
    _LAYOUT_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging — keep routine FastMCP INFO messages off stderr.
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("diagram-mcp")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "diagram-mcp",
    instructions=(
        "MCP server for node/edge diagrams with automatic edge routing and layout.\n\n"
        "=== ONLY 4 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. diagram(action, ...) — lifecycle: create, list, import (json/mermaid/dot),\n"
        "   export (json/mermaid), save, load, clear.\n"
        "2. draw(action, ...) — content: add_nodes, add_edges, add_labels,\n"
        "   move_node, resize_node, delete_nodes, delete_edges, delete_labels,\n"
        "   set_edge_style, add_waypoint, delete_waypoint.\n"
        "3. layout(action, ...) — positioning: hierarchical, optimize, force,\n"
        "   resolve_overlaps, compact, snap.\n"
        "4. inspect(action, ...) — read-only: nodes, edges, fitness, levels.\n\n"
        "=== RULES ===\n"
        "- Node and edge ids are integers assigned by the server.\n"
        "- Coordinates are absolute canvas positions (top-left of each node).\n"
        "- Anchors are a side (top/bottom/left/right) plus a position (-2..2, 0 = center).\n"
        "  Omit them and the best pair is chosen automatically.\n"
        "- Edge styles: direct, ortho, ortho_round, bezier, arc, stylized, circuit.\n"
        "- Every edit re-plans the affected edge paths automatically.\n"
    ),
)

# In-memory diagram registry: name -> Diagram
# Guarded by _diagrams_lock for thread-safety.
_diagrams: dict[str, Diagram] = {}
_diagrams_lock = threading.Lock()


def _get_diagram(name: str) -> Diagram | None:
    with _diagrams_lock:
        return _diagrams.get(name)


def _store_diagram(d: Diagram) -> None:
    with _diagrams_lock:
        _diagrams[d.name] = d


# ===================================================================
# TOOL 1: diagram — lifecycle
# ===================================================================

@mcp.tool()
def diagram(
    action: str,
    name: str = "",
    file_path: str = "",
    content: str = "",
    fmt: str = "auto",
) -> str:
    """Diagram lifecycle management.

    Actions:
      create  — Create a new empty diagram. Params: name.
      list    — List all in-memory diagrams. No params needed.
      import  — Build a diagram from text. Params: name, content,
                fmt (auto/json/mermaid/dot). Mermaid and DOT imports are
                laid out hierarchically.
      export  — Return the diagram as text. Params: name, fmt (json/mermaid).
      save    — Save the diagram as JSON. Params: name, file_path.
      load    — Load a JSON diagram from disk. Params: name, file_path.
      clear   — Remove all content and reset ids. Params: name.

    Args:
        action: One of: create, list, import, export, save, load, clear.
        name: Diagram name (key in memory).
        file_path: Absolute path for save/load operations.
        content: Diagram text for import.
        fmt: Interchange format for import/export.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "diagram", _DIAGRAM_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "list":
        with _diagrams_lock:
            result = [
                {"name": n, "nodes": len(d.nodes), "edges": len(d.edges), "labels": len(d.edge_labels)}
                for n, d in _diagrams.items()
            ]
        return json.dumps(result, indent=2)

    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "create":
        _store_diagram(Diagram(name=name))
        return f"Diagram '{name}' created."

    elif action == "import":
        try:
            validate_non_empty_string(content, "content")
            fmt = validate_import_format(fmt)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        try:
            d = load_diagram(content, fmt, name=name)
        except DiagramFormatError as exc:
            return f"Error: {exc}"
        _store_diagram(d)
        logger.info("Imported '%s': %d nodes, %d edges", name, len(d.nodes), len(d.edges))
        return f"Imported '{name}' with {len(d.nodes)} nodes and {len(d.edges)} edges."

    elif action == "load":
        try:
            validate_file_path(file_path, "file_path")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        path = Path(file_path)
        if not path.exists():
            return f"Error: file '{file_path}' not found."
        try:
            d = load_json(path.read_text(encoding="utf-8"), name=name)
        except DiagramFormatError as exc:
            return f"Error: {exc}"
        _store_diagram(d)
        return f"Loaded '{name}' with {len(d.nodes)} nodes and {len(d.edges)} edges."

    d = _get_diagram(name)
    if d is None:
        return f"Error: diagram '{name}' not found."

    if action == "export":
        chosen = fmt if fmt != "auto" else "json"
        try:
            chosen = validate_export_format(chosen)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if chosen == "mermaid":
            return export_mermaid(d)
        return diagram_to_json(d)

    elif action == "save":
        try:
            validate_file_path(file_path, "file_path")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(diagram_to_json(d), encoding="utf-8")
        return f"Diagram saved to {path.resolve()}"

    else:  # clear
        d.clear()
        return f"Diagram '{name}' cleared."


# ===================================================================
# TOOL 2: draw — content
# ===================================================================

@mcp.tool()
def draw(
    action: str,
    diagram_name: str = "",
    nodes: list[dict[str, Any]] | None = None,
    edges: list[dict[str, Any]] | None = None,
    labels: list[dict[str, Any]] | None = None,
    node_id: int = 0,
    edge_id: int = 0,
    ids: list[int] | None = None,
    x: float | None = None,
    y: float | None = None,
    width: float = 120,
    height: float = 60,
    style: str = "direct",
    arrow_direction: str = "",
    waypoint_index: int | None = None,
) -> str:
    """Add, move, resize and delete diagram content.

    Actions:
      add_nodes      — Params: nodes (list of {x, y, text?, width?, height?,
                       shape?, fill_color?, stroke_color?}).
      add_edges      — Params: edges (list of {from_id, to_id, from_side?,
                       from_position?, to_side?, to_position?, style?,
                       arrow_direction?, waypoints?, label?, stroke_color?}).
                       A non-empty label also adds an edge label at the midpoint.
      add_labels     — Params: labels (list of {edge_id, text, x?, y?}).
      move_node      — Params: node_id, x, y.
      resize_node    — Params: node_id, width, height.
      delete_nodes   — Params: ids. Incident edges and their labels go too.
      delete_edges   — Params: ids. Their labels go too.
      delete_labels  — Params: ids.
      set_edge_style — Params: edge_id, style, arrow_direction?.
      add_waypoint   — Params: edge_id, x?, y?. The waypoint joins the
                       nearest leg of the route; without x and y it splits
                       the longest leg at its midpoint.
      delete_waypoint — Params: edge_id, waypoint_index.

    Returns:
        JSON with created ids, or a status message.
    """
    try:
        action = validate_action(action, "draw", _DRAW_ACTIONS)
        validate_non_empty_string(diagram_name, "diagram_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    d = _get_diagram(diagram_name)
    if d is None:
        return f"Error: diagram '{diagram_name}' not found."

    if action == "add_nodes":
        try:
            validate_list(nodes, "nodes", min_length=1)
            for i, n in enumerate(nodes):
                validate_node_dict(n, i)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        created: list[int] = []
        for n in nodes:
            attrs: dict[str, Any] = {}
            if "fill_color" in n:
                attrs["fill_color"] = n["fill_color"]
            if "stroke_color" in n:
                attrs["stroke_color"] = n["stroke_color"]
            node = d.add_node(
                text=n.get("text", ""),
                x=n["x"], y=n["y"],
                width=n.get("width", 120), height=n.get("height", 60),
                shape=validate_node_shape(n.get("shape", "rectangle")),
                **attrs,
            )
            created.append(node.id)
        recompute_edge_paths(d)
        return json.dumps({"node_ids": created})

    elif action == "add_edges":
        try:
            validate_list(edges, "edges", min_length=1)
            for i, e in enumerate(edges):
                validate_edge_dict(e, i)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        for i, e in enumerate(edges):
            for key in ("from_id", "to_id"):
                if d.get_node(e[key]) is None:
                    return f"Error: Edge at index {i}: node {e[key]} not found."
        created = []
        for e in edges:
            from_conn = None
            to_conn = None
            if "from_side" in e:
                from_conn = ConnectionPoint(e["from_side"].lower(), e.get("from_position", 0))
            if "to_side" in e:
                to_conn = ConnectionPoint(e["to_side"].lower(), e.get("to_position", 0))
            attrs = {}
            if "arrow_direction" in e:
                attrs["arrow_direction"] = validate_arrow_direction(e["arrow_direction"])
            if "stroke_color" in e:
                attrs["stroke_color"] = e["stroke_color"]
            if "waypoints" in e:
                attrs["waypoints"] = [
                    Waypoint(wp["x"], wp["y"], wp.get("layer", 0)) for wp in e["waypoints"]
                ]
            edge = d.add_edge(
                e["from_id"], e["to_id"],
                from_connection=from_conn, to_connection=to_conn,
                style=validate_edge_style(e.get("style", "direct")),
                label=e.get("label", ""),
                **attrs,
            )
            created.append(edge.id)
            if e.get("label"):
                d.add_edge_label(edge.id, e["label"])
        recompute_edge_paths(d)
        return json.dumps({"edge_ids": created})

    elif action == "add_labels":
        try:
            validate_list(labels, "labels", min_length=1)
            for i, lbl in enumerate(labels):
                validate_label_dict(lbl, i)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        created = []
        for lbl in labels:
            if d.get_edge(lbl["edge_id"]) is None:
                return f"Error: edge {lbl['edge_id']} not found."
            label = d.add_edge_label(lbl["edge_id"], lbl["text"], lbl.get("x"), lbl.get("y"))
            created.append(label.id)
        return json.dumps({"label_ids": created})

    elif action == "move_node":
        try:
            validate_number(x, "x")
            validate_number(y, "y")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if not d.move_node(node_id, x, y):
            return f"Error: node {node_id} not found."
        count = recompute_edge_paths(d, moved_node_id=node_id)
        return f"Node {node_id} moved to ({x}, {y}); {count} edge path(s) updated."

    elif action == "resize_node":
        try:
            validate_positive_number(width, "width")
            validate_positive_number(height, "height")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if not d.resize_node(node_id, width, height):
            return f"Error: node {node_id} not found."
        count = recompute_edge_paths(d, moved_node_id=node_id)
        return f"Node {node_id} resized to {width}x{height}; {count} edge path(s) updated."

    elif action == "delete_nodes":
        try:
            validate_id_list(ids, "ids")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        deleted = [i for i in ids if d.delete_node(i)]
        recompute_edge_paths(d)
        return json.dumps({"deleted": deleted, "not_found": [i for i in ids if i not in deleted]})

    elif action == "delete_edges":
        try:
            validate_id_list(ids, "ids")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        deleted = [i for i in ids if d.delete_edge(i)]
        return json.dumps({"deleted": deleted, "not_found": [i for i in ids if i not in deleted]})

    elif action == "delete_labels":
        try:
            validate_id_list(ids, "ids")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        deleted = [i for i in ids if d.delete_label(i)]
        return json.dumps({"deleted": deleted, "not_found": [i for i in ids if i not in deleted]})

    elif action == "set_edge_style":
        try:
            edge_style = validate_edge_style(style)
            direction = validate_arrow_direction(arrow_direction) if arrow_direction else None
        except ValidationError as exc:
            return f"Error: {exc.message}"
        edge = d.get_edge(edge_id)
        if edge is None:
            return f"Error: edge {edge_id} not found."
        edge.style = edge_style
        edge.is_orthogonal = False
        if direction is not None:
            edge.arrow_direction = direction
        recompute_edge_paths(d)
        return f"Edge {edge_id} style set to {edge_style.value}."

    elif action == "add_waypoint":
        try:
            if (x is None) != (y is None):
                raise ValidationError("'x' and 'y' must be given together.")
            if x is not None:
                validate_number(x, "x")
                validate_number(y, "y")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        index = d.add_waypoint(edge_id, x, y)
        if index is None:
            return f"Error: edge {edge_id} not found."
        recompute_edge_paths(d)
        wp = d.get_edge(edge_id).waypoints[index]
        return json.dumps({"edge_id": edge_id, "index": index, "x": wp.x, "y": wp.y})

    else:  # delete_waypoint
        try:
            validate_int(waypoint_index, "waypoint_index", min_val=0)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        edge = d.get_edge(edge_id)
        if edge is None:
            return f"Error: edge {edge_id} not found."
        if not d.delete_waypoint(edge_id, waypoint_index):
            return (
                f"Error: edge {edge_id} has no waypoint {waypoint_index} "
                f"({len(edge.waypoints)} waypoint(s))."
            )
        recompute_edge_paths(d)
        return f"Waypoint {waypoint_index} removed from edge {edge_id}; {len(edge.waypoints)} left."


# ===================================================================
# TOOL 3: layout — positioning
# ===================================================================

@mcp.tool()
async def layout(
    action: str,
    diagram_name: str = "",
    preset: str = "balanced",
    seed: int | None = None,
    iterations: int = 200,
    gap: float = 20,
    factor: float = 0.8,
    grid_size: int = 20,
) -> str:
    """Layout operations. Every action re-plans all edge paths afterwards.

    Actions:
      hierarchical     — Rows by BFS level from the root nodes.
      optimize         — Simulated-annealing search minimizing layout fitness.
                         Params: preset (quick/balanced/thorough), seed.
      force            — Force-directed relaxation. Params: iterations.
      resolve_overlaps — Push apart nodes closer than gap. Params: gap.
      compact          — Pull nodes toward the center of mass. Params: factor
                         (fraction of each offset kept, 0..1].
      snap             — Snap node positions to the grid. Params: grid_size.

    Returns:
        JSON summary of the operation.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        validate_non_empty_string(diagram_name, "diagram_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    d = _get_diagram(diagram_name)
    if d is None:
        return f"Error: diagram '{diagram_name}' not found."

    if action == "hierarchical":
        levels = apply_hierarchical_layout(d)
        return json.dumps({"levels": {str(k): v for k, v in levels.items()}})

    elif action == "optimize":
        try:
            preset = validate_preset(preset)
            if seed is not None:
                validate_int(seed, "seed")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        options = AnnealingOptions.preset(preset, seed=seed)
        result = await optimize_layout(d, options)
        return json.dumps(result.to_dict())

    elif action == "force":
        try:
            validate_int(iterations, "iterations", min_val=1, max_val=5000)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        force_directed_layout(d, ForceDirectedConfig(iterations=iterations))
        return json.dumps({"nodes": len(d.nodes), "iterations": iterations})

    elif action == "resolve_overlaps":
        try:
            validate_positive_number(gap, "gap")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        pushes = remove_overlaps(d, gap=gap)
        return json.dumps({"pushes": pushes})

    elif action == "compact":
        try:
            factor = validate_compact_factor(factor)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        compact_layout(d, factor)
        return json.dumps({"nodes": len(d.nodes), "factor": factor})

    else:  # snap
        try:
            validate_grid_size(grid_size)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        snap_nodes_to_grid(d, grid_size)
        return json.dumps({"nodes": len(d.nodes), "grid_size": grid_size})


# ===================================================================
# TOOL 4: inspect — read-only
# ===================================================================

@mcp.tool()
def inspect(action: str, diagram_name: str = "") -> str:
    """Read-only inspection of diagrams.

    Actions:
      nodes    — All nodes with ids, rectangles, shapes and text.
      edges    — All edges with anchors, styles and SVG path data.
      fitness  — Layout fitness breakdown (lower total is better).
      levels   — BFS level per node, as used by the hierarchical layout.

    Returns:
        JSON data.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        validate_non_empty_string(diagram_name, "diagram_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    d = _get_diagram(diagram_name)
    if d is None:
        return f"Error: diagram '{diagram_name}' not found."

    if action == "nodes":
        return json.dumps([node_to_dict(n) for n in d.nodes], indent=2)
    elif action == "edges":
        return json.dumps([edge_to_dict(e) for e in d.edges], indent=2)
    elif action == "fitness":
        return json.dumps(evaluate_fitness(d.nodes, d.edges).to_dict(), indent=2)
    else:  # levels
        return json.dumps({str(k): v for k, v in assign_levels(d).items()})


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
