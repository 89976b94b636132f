"""
Edge path planning.

Turns an edge (two symbolic anchors, a routing style, optional waypoints)
plus the full node set into a vector path of absolute move/line/quadratic/
cubic segments:

- Direct:               straight segment
- Ortho / Ortho-round:  axis-aligned polyline with obstacle detours;
                        the rounded variant replaces bends with quadratic arcs
- Bezier:               one cubic curve leaving each anchor along its normal
- Arc:                  one quadratic curve bowed away from the source side
- Circuit:              vertical drop to a shared horizontal bus, with
                        semicircular jumps over obstacles on the bus line
- Stylized:             cubic curve preceded by a small flourish

Explicit waypoints always win: the path is the polyline through them and no
obstacle handling is applied. A dangling endpoint yields an empty path.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from diagram_mcp.geometry import anchor_coordinates, side_normal
from diagram_mcp.models import CellBounds, Diagram, Edge, EdgeStyle, Node

logger = logging.getLogger(__name__)

# Clearance used when testing a segment against an obstacle
OBSTACLE_MARGIN = 15
# Clearance used when placing detour legs (kept outside the test box)
DETOUR_MARGIN = 20
# Perpendicular standoff from an anchor before the first orthogonal bend
ORTHO_STANDOFF = 25
# Default corner radius for rounded orthogonal routing
CORNER_RADIUS = 10
# Bus lines snap to this grid
CIRCUIT_GRID = 40

Point = tuple[float, float]


# ---------------------------------------------------------------------------
# Path segments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MoveTo:
    x: float
    y: float


@dataclass(frozen=True)
class LineTo:
    x: float
    y: float


@dataclass(frozen=True)
class QuadTo:
    cx: float
    cy: float
    x: float
    y: float


@dataclass(frozen=True)
class CubicTo:
    c1x: float
    c1y: float
    c2x: float
    c2y: float
    x: float
    y: float


PathSegment = Union[MoveTo, LineTo, QuadTo, CubicTo]


def _fmt(value: float) -> str:
    r = round(value, 2)
    if r == int(r):
        return str(int(r))
    return str(r)


def path_to_svg(segments: Sequence[PathSegment]) -> str:
    """Render segments as an SVG path ``d`` string with absolute commands."""
    parts: list[str] = []
    for seg in segments:
        if isinstance(seg, MoveTo):
            parts.append(f"M {_fmt(seg.x)} {_fmt(seg.y)}")
        elif isinstance(seg, LineTo):
            parts.append(f"L {_fmt(seg.x)} {_fmt(seg.y)}")
        elif isinstance(seg, QuadTo):
            parts.append(
                f"Q {_fmt(seg.cx)} {_fmt(seg.cy)} {_fmt(seg.x)} {_fmt(seg.y)}"
            )
        elif isinstance(seg, CubicTo):
            parts.append(
                f"C {_fmt(seg.c1x)} {_fmt(seg.c1y)} {_fmt(seg.c2x)} {_fmt(seg.c2y)} "
                f"{_fmt(seg.x)} {_fmt(seg.y)}"
            )
    return " ".join(parts)


def _polyline(points: Sequence[Point]) -> list[PathSegment]:
    if not points:
        return []
    segments: list[PathSegment] = [MoveTo(*points[0])]
    segments.extend(LineTo(x, y) for x, y in points[1:])
    return segments


def segment_points(segments: Sequence[PathSegment]) -> list[Point]:
    """End points of every segment, in order (control points omitted)."""
    return [(seg.x, seg.y) for seg in segments]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def plan_path(edge: Edge, nodes: Sequence[Node]) -> list[PathSegment]:
    """Compute the drawable path for *edge* against the current node set.

    Returns an empty list when either endpoint node does not exist.
    """
    src: Optional[Node] = None
    tgt: Optional[Node] = None
    for node in nodes:
        if node.id == edge.from_id:
            src = node
        if node.id == edge.to_id:
            tgt = node
    if src is None or tgt is None:
        logger.debug("Edge %s has a dangling endpoint; no path planned", edge.id)
        return []

    from_pt = anchor_coordinates(src, edge.from_connection)
    to_pt = anchor_coordinates(tgt, edge.to_connection)

    if edge.waypoints:
        return _polyline([from_pt] + [(wp.x, wp.y) for wp in edge.waypoints] + [to_pt])

    style = edge.effective_style
    if edge.from_id == edge.to_id:
        style = EdgeStyle.DIRECT

    obstacles = [
        n.bounds for n in nodes if n.id != edge.from_id and n.id != edge.to_id
    ]
    from_side = edge.from_connection.side
    to_side = edge.to_connection.side

    handler = _HANDLERS.get(style, _direct_path)
    return handler(from_pt, to_pt, from_side, to_side, obstacles)


def edge_path_data(edge: Edge, nodes: Sequence[Node]) -> str:
    return path_to_svg(plan_path(edge, nodes))


def recompute_edge_paths(diagram: Diagram, moved_node_id: Optional[int] = None) -> int:
    """Refresh ``path_data`` for affected edges.

    With no *moved_node_id* every edge is recomputed. Otherwise the edges
    incident to that node are recomputed, together with every
    obstacle-aware edge, since the node may have moved into or out of
    its way.

    Returns:
        Number of edges recomputed.
    """
    count = 0
    for edge in diagram.edges:
        if moved_node_id is not None:
            incident = edge.from_id == moved_node_id or edge.to_id == moved_node_id
            if not incident and edge.effective_style not in _OBSTACLE_AWARE:
                continue
        edge.path_data = edge_path_data(edge, diagram.nodes)
        count += 1
    return count


# ---------------------------------------------------------------------------
# DIRECT
# ---------------------------------------------------------------------------

def _direct_path(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    obstacles: list[CellBounds],
) -> list[PathSegment]:
    return [MoveTo(*from_pt), LineTo(*to_pt)]


# ---------------------------------------------------------------------------
# ORTHOGONAL with obstacle avoidance
# ---------------------------------------------------------------------------

def orthogonal_points(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    standoff: float = ORTHO_STANDOFF,
) -> list[Point]:
    """Axis-aligned bend points between two anchors (no obstacle handling).

    Leaves each anchor perpendicular to its side by *standoff*, then joins
    with two bends for parallel sides or one bend for perpendicular sides.
    """
    fx, fy = from_pt
    tx, ty = to_pt
    nfx, nfy = side_normal(from_side)
    ntx, nty = side_normal(to_side)

    entry = (fx + nfx * standoff, fy + nfy * standoff)
    exit_ = (tx + ntx * standoff, ty + nty * standoff)

    from_horizontal = from_side in ("left", "right")
    to_horizontal = to_side in ("left", "right")

    mid_x = (entry[0] + exit_[0]) / 2
    mid_y = (entry[1] + exit_[1]) / 2

    points: list[Point] = [from_pt, entry]
    if from_horizontal and to_horizontal:
        points.append((mid_x, entry[1]))
        points.append((mid_x, exit_[1]))
    elif not from_horizontal and not to_horizontal:
        points.append((entry[0], mid_y))
        points.append((exit_[0], mid_y))
    elif from_horizontal:
        points.append((exit_[0], entry[1]))
    else:
        points.append((entry[0], exit_[1]))
    points.append(exit_)
    points.append(to_pt)
    return points


def simplify_polyline(points: Sequence[Point]) -> list[Point]:
    """Drop repeated points and interior points the path runs straight through."""
    deduped: list[Point] = []
    for pt in points:
        if deduped and abs(deduped[-1][0] - pt[0]) < 1e-9 and abs(deduped[-1][1] - pt[1]) < 1e-9:
            continue
        deduped.append(pt)
    if len(deduped) < 3:
        return deduped

    result: list[Point] = [deduped[0]]
    for i in range(1, len(deduped) - 1):
        px, py = result[-1]
        cx, cy = deduped[i]
        nx, ny = deduped[i + 1]
        cross = (cx - px) * (ny - cy) - (cy - py) * (nx - cx)
        dot = (cx - px) * (nx - cx) + (cy - py) * (ny - cy)
        # Keep reversals, they carry the anchor standoff
        if abs(cross) < 1e-9 and dot > 0:
            continue
        result.append((cx, cy))
    result.append(deduped[-1])
    return result


def segment_intersects_segment(p1: Point, p2: Point, p3: Point, p4: Point) -> bool:
    """Parametric segment/segment test, inclusive of touching end points."""
    denom = (p4[1] - p3[1]) * (p2[0] - p1[0]) - (p4[0] - p3[0]) * (p2[1] - p1[1])
    if abs(denom) < 1e-4:
        return False
    ua = ((p4[0] - p3[0]) * (p1[1] - p3[1]) - (p4[1] - p3[1]) * (p1[0] - p3[0])) / denom
    ub = ((p2[0] - p1[0]) * (p1[1] - p3[1]) - (p2[1] - p1[1]) * (p1[0] - p3[0])) / denom
    return 0 <= ua <= 1 and 0 <= ub <= 1


def segment_intersects_rect(p1: Point, p2: Point, rect: CellBounds) -> bool:
    """Does segment p1-p2 touch or pass through *rect*?"""
    x1, y1 = p1
    x2, y2 = p2
    left, top, right, bottom = rect.x, rect.y, rect.right, rect.bottom

    # Quick rejection
    if (x1 < left and x2 < left) or (x1 > right and x2 > right):
        return False
    if (y1 < top and y2 < top) or (y1 > bottom and y2 > bottom):
        return False

    if rect.contains_point(x1, y1) or rect.contains_point(x2, y2):
        return True

    return (
        segment_intersects_segment(p1, p2, (left, top), (right, top))
        or segment_intersects_segment(p1, p2, (left, bottom), (right, bottom))
        or segment_intersects_segment(p1, p2, (left, top), (left, bottom))
        or segment_intersects_segment(p1, p2, (right, top), (right, bottom))
    )


def crossed_obstacles(
    p1: Point, p2: Point,
    obstacles: Sequence[CellBounds],
    margin: float = OBSTACLE_MARGIN,
) -> list[CellBounds]:
    """Obstacles whose margin-expanded box the segment hits, nearest first."""
    crossed = [obs for obs in obstacles if segment_intersects_rect(p1, p2, obs.expanded(margin))]
    crossed.sort(key=lambda obs: abs(obs.cx - p1[0]) + abs(obs.cy - p1[1]))
    return crossed


def _manhattan_length(points: Sequence[Point]) -> float:
    return sum(abs(b[0] - a[0]) + abs(b[1] - a[1]) for a, b in zip(points, points[1:]))


def _detour_candidates(
    p1: Point, p2: Point,
    obstacle: CellBounds,
    box: CellBounds,
) -> list[list[Point]]:
    """Axis-aligned routes from p1 to p2 along the lanes of *box*.

    The rectangular hug (over/under for horizontal travel, beside for
    vertical travel) comes first, preferred lane first, so it wins ties.
    """
    (x1, y1), (x2, y2) = p1, p2
    mid_x = (x1 + x2) / 2
    mid_y = (y1 + y2) / 2
    lanes_y = [box.y, box.bottom] if mid_y < obstacle.cy else [box.bottom, box.y]
    lanes_x = [box.x, box.right] if mid_x < obstacle.cx else [box.right, box.x]
    near_x, far_x = (box.x, box.right) if x2 >= x1 else (box.right, box.x)
    near_y, far_y = (box.y, box.bottom) if y2 >= y1 else (box.bottom, box.y)

    hug_h = [[(near_x, y1), (near_x, ly), (far_x, ly), (far_x, y2)] for ly in lanes_y]
    hug_v = [[(x1, near_y), (lx, near_y), (lx, far_y), (x2, far_y)] for lx in lanes_x]
    candidates = hug_h + hug_v if abs(x2 - x1) > abs(y2 - y1) else hug_v + hug_h

    for ly in lanes_y:
        candidates.append([(x1, ly), (x2, ly)])
    for lx in lanes_x:
        candidates.append([(lx, y1), (lx, y2)])
    for lx in lanes_x:
        for ly in lanes_y:
            candidates.append([(x1, ly), (lx, ly), (lx, y2)])
            candidates.append([(lx, y1), (lx, ly), (x2, ly)])
    return [[p1, *legs, p2] for legs in candidates]


def detour_points(
    p1: Point, p2: Point,
    obstacle: CellBounds,
    others: Sequence[CellBounds] = (),
    margin: float = DETOUR_MARGIN,
    clearance: float = OBSTACLE_MARGIN,
) -> Optional[list[Point]]:
    """Rectangular detour taking the path from p1 to p2 around one obstacle.

    Legs run on the obstacle's *margin* box. Among the routes that keep
    clear of its *clearance* box, the one hitting the fewest *others* wins,
    then the shortest. Returns the interior points, or None when no route
    clears the obstacle (an end point lies inside its box).
    """
    box = obstacle.expanded(margin)
    blocked = obstacle.expanded(clearance)
    other_boxes = [o.expanded(clearance) for o in others]

    best: Optional[list[Point]] = None
    best_key: Optional[tuple[int, float]] = None
    for route in _detour_candidates(p1, p2, obstacle, box):
        legs = list(zip(route, route[1:]))
        if any(segment_intersects_rect(a, b, blocked) for a, b in legs):
            continue
        hits = sum(
            1 for other in other_boxes
            if any(segment_intersects_rect(a, b, other) for a, b in legs)
        )
        key = (hits, _manhattan_length(route))
        if best_key is None or key < best_key:
            best, best_key = route, key
    if best is None:
        return None
    return best[1:-1]


def _crossing_run(points: Sequence[Point], box: CellBounds) -> Optional[tuple[int, int]]:
    """Index of the first and last segment touching *box*."""
    hits = [
        i for i in range(len(points) - 1)
        if segment_intersects_rect(points[i], points[i + 1], box)
    ]
    if not hits:
        return None
    return hits[0], hits[-1]


def adjust_for_obstacles(
    points: Sequence[Point],
    obstacles: Sequence[CellBounds],
    margin: float = OBSTACLE_MARGIN,
) -> list[Point]:
    """Splice rectangular detours into a polyline wherever it hits an obstacle.

    Obstacles are handled in path order. For each one, the
    whole run from the first to the last segment touching its margin box is
    replaced, so a bend sitting inside the box is routed around too.
    """
    result = simplify_polyline(points)
    if not obstacles or len(result) < 2:
        return result

    pending: list[CellBounds] = []
    for p1, p2 in zip(result, result[1:]):
        for obs in crossed_obstacles(p1, p2, obstacles, margin):
            if all(obs is not seen for seen in pending):
                pending.append(obs)

    for obs in pending:
        run = _crossing_run(result, obs.expanded(margin))
        if run is None:
            continue
        first, last = run
        others = [o for o in obstacles if o is not obs]
        detour = detour_points(result[first], result[last + 1], obs, others, clearance=margin)
        if detour is None:
            logger.debug("No clear detour around obstacle at (%s, %s)", obs.x, obs.y)
            continue
        result = simplify_polyline(result[:first + 1] + detour + result[last + 1:])
    return result


def _ortho_path(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    obstacles: list[CellBounds],
) -> list[PathSegment]:
    points = orthogonal_points(from_pt, to_pt, from_side, to_side)
    points = adjust_for_obstacles(points, obstacles)
    return _polyline(simplify_polyline(points))


def round_corners(points: Sequence[Point], radius: float = CORNER_RADIUS) -> list[PathSegment]:
    """Replace interior bends with quadratic arcs.

    The radius at each bend is capped at half the shorter adjacent segment;
    a bend whose capped radius drops below 2 stays a sharp corner.
    """
    points = simplify_polyline(points)
    if len(points) < 3:
        return _polyline(points)

    segments: list[PathSegment] = [MoveTo(*points[0])]
    for i in range(1, len(points) - 1):
        prev = points[i - 1]
        curr = points[i]
        nxt = points[i + 1]

        dist_prev = math.hypot(curr[0] - prev[0], curr[1] - prev[1])
        dist_next = math.hypot(nxt[0] - curr[0], nxt[1] - curr[1])
        r = min(radius, min(dist_prev, dist_next) / 2)

        if r < 2:
            segments.append(LineTo(*curr))
            continue

        dx1 = (curr[0] - prev[0]) / dist_prev
        dy1 = (curr[1] - prev[1]) / dist_prev
        dx2 = (nxt[0] - curr[0]) / dist_next
        dy2 = (nxt[1] - curr[1]) / dist_next

        segments.append(LineTo(curr[0] - dx1 * r, curr[1] - dy1 * r))
        segments.append(QuadTo(curr[0], curr[1], curr[0] + dx2 * r, curr[1] + dy2 * r))

    segments.append(LineTo(*points[-1]))
    return segments


def _ortho_round_path(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    obstacles: list[CellBounds],
) -> list[PathSegment]:
    points = orthogonal_points(from_pt, to_pt, from_side, to_side)
    points = adjust_for_obstacles(points, obstacles)
    return round_corners(points)


# ---------------------------------------------------------------------------
# BEZIER
# ---------------------------------------------------------------------------

def _bezier_path(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    obstacles: list[CellBounds],
) -> list[PathSegment]:
    distance = math.hypot(to_pt[0] - from_pt[0], to_pt[1] - from_pt[1])
    if distance < 1e-9:
        return _direct_path(from_pt, to_pt, from_side, to_side, obstacles)
    offset = max(50.0, distance * 0.4)

    nfx, nfy = side_normal(from_side)
    ntx, nty = side_normal(to_side)
    return [
        MoveTo(*from_pt),
        CubicTo(
            from_pt[0] + nfx * offset, from_pt[1] + nfy * offset,
            to_pt[0] + ntx * offset, to_pt[1] + nty * offset,
            to_pt[0], to_pt[1],
        ),
    ]


# ---------------------------------------------------------------------------
# ARC
# ---------------------------------------------------------------------------

def is_connection_aligned(from_side: str, to_side: str, dx: float, dy: float) -> bool:
    """Facing sides in the direction of travel, or a 30°–60° diagonal."""
    if from_side == "right" and to_side == "left" and dx > 0:
        return True
    if from_side == "left" and to_side == "right" and dx < 0:
        return True
    if from_side == "bottom" and to_side == "top" and dy > 0:
        return True
    if from_side == "top" and to_side == "bottom" and dy < 0:
        return True

    angle = math.degrees(math.atan2(abs(dy), abs(dx)))
    return 30 < angle < 60


def arc_direction(from_side: str, dx: float, dy: float) -> int:
    """Bow sign so the curve bulges outward from the source side."""
    if from_side == "right":
        return 1 if dy >= 0 else -1
    if from_side == "left":
        return -1 if dy >= 0 else 1
    if from_side == "bottom":
        return -1 if dx >= 0 else 1
    if from_side == "top":
        return 1 if dx >= 0 else -1
    return 1


def _arc_path(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    obstacles: list[CellBounds],
) -> list[PathSegment]:
    dx = to_pt[0] - from_pt[0]
    dy = to_pt[1] - from_pt[1]
    distance = math.hypot(dx, dy)
    if distance < 1e-9:
        return _direct_path(from_pt, to_pt, from_side, to_side, obstacles)

    perp_x = -dy / distance
    perp_y = dx / distance
    mid_x = (from_pt[0] + to_pt[0]) / 2
    mid_y = (from_pt[1] + to_pt[1]) / 2

    if is_connection_aligned(from_side, to_side, dx, dy) or distance < 50:
        bow = distance * 0.15
        return [MoveTo(*from_pt), QuadTo(mid_x + perp_x * bow, mid_y + perp_y * bow, *to_pt)]

    strength = min(distance * 0.3, 80.0)
    sign = arc_direction(from_side, dx, dy)
    return [
        MoveTo(*from_pt),
        QuadTo(mid_x + perp_x * strength * sign, mid_y + perp_y * strength * sign, *to_pt),
    ]


# ---------------------------------------------------------------------------
# CIRCUIT / BUS
# ---------------------------------------------------------------------------

def bus_y(from_pt: Point, to_pt: Point, grid: int = CIRCUIT_GRID) -> float:
    """Shared horizontal bus line: endpoint midpoint snapped to *grid*."""
    return round(((from_pt[1] + to_pt[1]) / 2) / grid) * grid


def _circuit_path(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    obstacles: list[CellBounds],
) -> list[PathSegment]:
    fx, fy = from_pt
    tx, ty = to_pt
    line_y = bus_y(from_pt, to_pt)

    segments: list[PathSegment] = [MoveTo(fx, fy), LineTo(fx, line_y)]

    x1, x2 = min(fx, tx), max(fx, tx)
    direction = 1 if tx >= fx else -1

    crossed: list[tuple[float, CellBounds]] = []
    for obs in obstacles:
        box = obs.expanded(OBSTACLE_MARGIN)
        if box.y <= line_y <= box.bottom and box.right >= x1 and box.x <= x2:
            crossed.append((min(max(obs.cx, x1), x2), obs))
    crossed.sort(key=lambda item: item[0] * direction)

    cur_x = fx
    for cx, obs in crossed:
        r = min(obs.width, obs.height) / 2 + 8
        start_x = cx - r * direction
        end_x = cx + r * direction
        # Overlapping jumps start where the previous one ended
        if (start_x - cur_x) * direction < 0:
            start_x = cur_x
        if (end_x - start_x) * direction <= 0:
            continue

        jump = max(12.0, r * 0.9)
        control_y = line_y - jump if line_y < obs.cy else line_y + jump

        segments.append(LineTo(start_x, line_y))
        segments.append(QuadTo(cx, control_y, end_x, line_y))
        cur_x = end_x

    segments.append(LineTo(tx, line_y))
    segments.append(LineTo(tx, ty))
    return segments


# ---------------------------------------------------------------------------
# STYLIZED
# ---------------------------------------------------------------------------

def _stylized_path(
    from_pt: Point, to_pt: Point,
    from_side: str, to_side: str,
    obstacles: list[CellBounds],
) -> list[PathSegment]:
    fx, fy = from_pt
    tx, ty = to_pt
    distance = math.hypot(tx - fx, ty - fy)
    if distance < 1e-9:
        return _direct_path(from_pt, to_pt, from_side, to_side, obstacles)

    offset = max(60.0, distance * 0.5)
    flourish = 15.0

    if from_side == "top":
        flourish_pt = (fx + flourish * 0.5, fy - flourish)
        cp1 = (fx + offset * 0.3, fy - offset)
    elif from_side == "bottom":
        flourish_pt = (fx + flourish * 0.5, fy + flourish)
        cp1 = (fx + offset * 0.3, fy + offset)
    elif from_side == "left":
        flourish_pt = (fx - flourish, fy - flourish * 0.5)
        cp1 = (fx - offset, fy - offset * 0.3)
    elif from_side == "right":
        flourish_pt = (fx + flourish, fy - flourish * 0.5)
        cp1 = (fx + offset, fy - offset * 0.3)
    else:
        flourish_pt = (fx, fy)
        cp1 = (fx, fy)

    ntx, nty = side_normal(to_side)
    cp2 = (tx + ntx * offset * 0.8, ty + nty * offset * 0.8)

    return [
        MoveTo(fx, fy),
        QuadTo(flourish_pt[0], flourish_pt[1], flourish_pt[0], (fy + flourish_pt[1]) / 2),
        CubicTo(cp1[0], cp1[1], cp2[0], cp2[1], tx, ty),
    ]


_Handler = Callable[[Point, Point, str, str, list[CellBounds]], list[PathSegment]]

_HANDLERS: dict[EdgeStyle, _Handler] = {
    EdgeStyle.DIRECT: _direct_path,
    EdgeStyle.ORTHO: _ortho_path,
    EdgeStyle.ORTHO_ROUND: _ortho_round_path,
    EdgeStyle.BEZIER: _bezier_path,
    EdgeStyle.ARC: _arc_path,
    EdgeStyle.CIRCUIT: _circuit_path,
    EdgeStyle.STYLIZED: _stylized_path,
}

_OBSTACLE_AWARE = {EdgeStyle.ORTHO, EdgeStyle.ORTHO_ROUND, EdgeStyle.CIRCUIT}
