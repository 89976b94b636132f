"""
Connection-point geometry.

Resolves symbolic anchors (side + position index) to absolute coordinates
on a node's current rectangle, and picks a good anchor pair for a new
connection between two nodes. Nothing here is cached: every call works
from the node rectangle as it is now.
"""

from __future__ import annotations

import math
from typing import Mapping

from diagram_mcp.models import ConnectionPoint, Edge, Node

# Anchors per side; position p sits at 0.5 + p / (ANCHORS_PER_SIDE + 1)
# of the side length, so positions -1, 0, 1 land at 1/4, 1/2, 3/4.
ANCHORS_PER_SIDE = 3

# Preference order used to break distance ties.
_SIDE_PREFERENCE = ("right", "left", "bottom", "top")


def side_fraction(position: int) -> float:
    """Fraction along a side for an anchor position, clamped to [0, 1]."""
    t = 0.5 + position / (ANCHORS_PER_SIDE + 1)
    return max(0.0, min(1.0, t))


def point_coordinates(node: Node, side: str, position: int = 0) -> tuple[float, float]:
    """Absolute coordinates of an anchor on *node*.

    Top/bottom anchors are spread left to right, left/right anchors top to
    bottom. Unknown sides resolve to the node center.
    """
    t = side_fraction(position)
    if side == "top":
        return node.x + node.width * t, node.y
    if side == "bottom":
        return node.x + node.width * t, node.y + node.height
    if side == "left":
        return node.x, node.y + node.height * t
    if side == "right":
        return node.x + node.width, node.y + node.height * t
    return node.cx, node.cy


def anchor_coordinates(node: Node, anchor: ConnectionPoint) -> tuple[float, float]:
    return point_coordinates(node, anchor.side, anchor.position)


def side_normal(side: str) -> tuple[float, float]:
    """Outward unit normal of a side."""
    return {
        "top": (0.0, -1.0),
        "bottom": (0.0, 1.0),
        "left": (-1.0, 0.0),
        "right": (1.0, 0.0),
    }.get(side, (0.0, 0.0))


def optimal_anchor_pair(
    from_node: Node,
    to_node: Node,
) -> tuple[ConnectionPoint, ConnectionPoint]:
    """Choose (from_anchor, to_anchor) for a connection between two nodes.

    - Nodes sharing a horizontal band (vertical ranges overlap) connect
      right→left or left→right.
    - Nodes sharing a vertical band connect bottom→top or top→bottom.
    - Diagonal placements try each facing side of the source against each
      facing side of the target and keep the shortest straight connection.

    Ties go to right/left before bottom/top.
    """
    dx = to_node.cx - from_node.cx
    dy = to_node.cy - from_node.cy

    same_row = abs(dy) <= (from_node.height + to_node.height) / 2
    same_column = abs(dx) <= (from_node.width + to_node.width) / 2

    if same_row:
        if dx >= 0:
            return ConnectionPoint("right"), ConnectionPoint("left")
        return ConnectionPoint("left"), ConnectionPoint("right")
    if same_column:
        if dy >= 0:
            return ConnectionPoint("bottom"), ConnectionPoint("top")
        return ConnectionPoint("top"), ConnectionPoint("bottom")

    # Diagonal: nearest facing corner pair
    h_out = "right" if dx >= 0 else "left"
    v_out = "bottom" if dy >= 0 else "top"
    h_in = "left" if dx >= 0 else "right"
    v_in = "top" if dy >= 0 else "bottom"

    candidates = sorted(
        [(h_out, h_in), (h_out, v_in), (v_out, h_in), (v_out, v_in)],
        key=lambda pair: (_SIDE_PREFERENCE.index(pair[0]), _SIDE_PREFERENCE.index(pair[1])),
    )

    best = candidates[0]
    best_dist = float("inf")
    for out_side, in_side in candidates:
        fx, fy = point_coordinates(from_node, out_side)
        tx, ty = point_coordinates(to_node, in_side)
        dist = math.hypot(tx - fx, ty - fy)
        if dist < best_dist - 1e-9:
            best_dist = dist
            best = (out_side, in_side)

    return ConnectionPoint(best[0]), ConnectionPoint(best[1])


def edge_midpoint(edge: Edge, nodes: Mapping[int, Node]) -> tuple[float, float]:
    """Default label position for an edge.

    The middle waypoint when the edge has waypoints, otherwise the midpoint
    between the two node centers; (0, 0) when an endpoint is missing.
    """
    if edge.waypoints:
        wp = edge.waypoints[len(edge.waypoints) // 2]
        return wp.x, wp.y

    src = nodes.get(edge.from_id)
    tgt = nodes.get(edge.to_id)
    if src is None or tgt is None:
        return 0.0, 0.0
    return (src.cx + tgt.cx) / 2, (src.cy + tgt.cy) / 2


# ---------------------------------------------------------------------------
# Waypoint placement
# ---------------------------------------------------------------------------

def distance_to_segment(
    px: float, py: float,
    x1: float, y1: float, x2: float, y2: float,
) -> float:
    """Distance from (px, py) to the nearest point of segment (x1, y1)-(x2, y2)."""
    dx = x2 - x1
    dy = y2 - y1
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px - x1, py - y1)
    t = max(0.0, min(1.0, ((px - x1) * dx + (py - y1) * dy) / length_sq))
    return math.hypot(px - (x1 + t * dx), py - (y1 + t * dy))


def waypoint_route(edge: Edge, nodes: Mapping[int, Node]) -> list[tuple[float, float]]:
    """Source center, the edge's waypoints, target center.

    Empty when an endpoint is missing.
    """
    src = nodes.get(edge.from_id)
    tgt = nodes.get(edge.to_id)
    if src is None or tgt is None:
        return []
    return [(src.cx, src.cy)] + [(wp.x, wp.y) for wp in edge.waypoints] + [(tgt.cx, tgt.cy)]


def waypoint_insert_index(edge: Edge, nodes: Mapping[int, Node], x: float, y: float) -> int:
    """Index in ``edge.waypoints`` where a new waypoint at (x, y) belongs.

    The point joins the leg of the route it lies closest to; the first leg
    wins ties.
    """
    route = waypoint_route(edge, nodes)
    best_index = 0
    best_dist = math.inf
    for i in range(len(route) - 1):
        (x1, y1), (x2, y2) = route[i], route[i + 1]
        dist = distance_to_segment(x, y, x1, y1, x2, y2)
        if dist < best_dist:
            best_dist = dist
            best_index = i
    return best_index


def longest_leg_midpoint(edge: Edge, nodes: Mapping[int, Node]) -> tuple[float, float]:
    """Midpoint of the longest leg of the waypoint route.

    Falls back to :func:`edge_midpoint` when an endpoint is missing.
    """
    route = waypoint_route(edge, nodes)
    if not route:
        return edge_midpoint(edge, nodes)
    legs = list(zip(route, route[1:]))
    (x1, y1), (x2, y2) = max(
        legs, key=lambda leg: math.hypot(leg[1][0] - leg[0][0], leg[1][1] - leg[0][1])
    )
    return (x1 + x2) / 2, (y1 + y2) / 2
