"""
Layout fitness scoring.

Scores a candidate layout (node rectangles plus edge endpoints) as a
weighted sum of nine terms. Lower is better. Penalties carry positive
weights, bonuses negative ones, so ``total`` is always ``sum(w * term)``.

Edges whose endpoints cannot be found contribute nothing to any term.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Sequence

from diagram_mcp.models import Edge, Node


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class FitnessWeights:
    """Weight per fitness term. Negative weights turn counts into bonuses."""
    edge_length: float = 1.0
    crossings: float = 50.0
    node_overlaps: float = 100.0
    edge_node_overlaps: float = 30.0
    aspect_ratio: float = 5.0
    distribution: float = 5.0
    alignment: float = -2.0
    grid_snap: float = -1.0
    symmetry: float = -3.0


OVERLAP_GAP = 20
TARGET_ASPECT_RATIO = 1.5
ALIGNMENT_TOLERANCE = 5
GRID_SIZE = 20
SYMMETRY_TOLERANCE = 30


@dataclass
class FitnessResult:
    """Raw term values and the weighted total."""
    total: float = 0.0
    edge_length: float = 0.0
    crossings: int = 0
    node_overlaps: int = 0
    edge_node_overlaps: int = 0
    aspect_ratio: float = 0.0
    distribution: float = 0.0
    alignment: int = 0
    grid_snap: int = 0
    symmetry: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def evaluate_fitness(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    weights: FitnessWeights | None = None,
) -> FitnessResult:
    """Score a layout. Pure: neither argument is modified."""
    w = weights or FitnessWeights()
    by_id = {n.id: n for n in nodes}

    lines: list[tuple[Edge, Node, Node]] = []
    for edge in edges:
        src = by_id.get(edge.from_id)
        tgt = by_id.get(edge.to_id)
        if src is None or tgt is None:
            continue
        lines.append((edge, src, tgt))

    result = FitnessResult(
        edge_length=total_edge_length(lines),
        crossings=count_crossings(lines),
        node_overlaps=count_node_overlaps(nodes),
        edge_node_overlaps=count_edge_node_overlaps(lines, nodes),
        aspect_ratio=aspect_ratio_penalty(nodes),
        distribution=distribution_penalty(nodes),
        alignment=count_alignments(nodes),
        grid_snap=count_grid_snapped(nodes),
        symmetry=count_symmetric_pairs(nodes),
    )
    result.total = (
        w.edge_length * result.edge_length
        + w.crossings * result.crossings
        + w.node_overlaps * result.node_overlaps
        + w.edge_node_overlaps * result.edge_node_overlaps
        + w.aspect_ratio * result.aspect_ratio
        + w.distribution * result.distribution
        + w.alignment * result.alignment
        + w.grid_snap * result.grid_snap
        + w.symmetry * result.symmetry
    )
    return result


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------

def total_edge_length(lines: Sequence[tuple[Edge, Node, Node]]) -> float:
    return sum(math.hypot(tgt.cx - src.cx, tgt.cy - src.cy) for _, src, tgt in lines)


def _orientation(ax: float, ay: float, bx: float, by: float, cx: float, cy: float) -> float:
    return (bx - ax) * (cy - ay) - (by - ay) * (cx - ax)


def segments_properly_intersect(
    p1: tuple[float, float], p2: tuple[float, float],
    p3: tuple[float, float], p4: tuple[float, float],
) -> bool:
    """Strict crossing test; shared end points and collinear touches do not count."""
    d1 = _orientation(*p3, *p4, *p1)
    d2 = _orientation(*p3, *p4, *p2)
    d3 = _orientation(*p1, *p2, *p3)
    d4 = _orientation(*p1, *p2, *p4)
    return ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4))


def count_crossings(lines: Sequence[tuple[Edge, Node, Node]]) -> int:
    count = 0
    for i in range(len(lines)):
        _, a1, a2 = lines[i]
        for j in range(i + 1, len(lines)):
            _, b1, b2 = lines[j]
            if segments_properly_intersect(
                (a1.cx, a1.cy), (a2.cx, a2.cy), (b1.cx, b1.cy), (b2.cx, b2.cy)
            ):
                count += 1
    return count


def count_node_overlaps(nodes: Sequence[Node], gap: float = OVERLAP_GAP) -> int:
    """Pairs whose rectangles come closer than *gap*."""
    count = 0
    for i in range(len(nodes)):
        a = nodes[i]
        for j in range(i + 1, len(nodes)):
            b = nodes[j]
            apart = (
                a.x + a.width + gap < b.x
                or b.x + b.width + gap < a.x
                or a.y + a.height + gap < b.y
                or b.y + b.height + gap < a.y
            )
            if not apart:
                count += 1
    return count


def _line_crosses_rect(p1: tuple[float, float], p2: tuple[float, float], node: Node) -> bool:
    left, top = node.x, node.y
    right, bottom = node.x + node.width, node.y + node.height
    sides = (
        ((left, top), (right, top)),
        ((right, top), (right, bottom)),
        ((left, bottom), (right, bottom)),
        ((left, top), (left, bottom)),
    )
    return any(segments_properly_intersect(p1, p2, s1, s2) for s1, s2 in sides)


def count_edge_node_overlaps(
    lines: Sequence[tuple[Edge, Node, Node]],
    nodes: Sequence[Node],
) -> int:
    """Edge center-lines passing through a node other than their endpoints."""
    count = 0
    for edge, src, tgt in lines:
        p1 = (src.cx, src.cy)
        p2 = (tgt.cx, tgt.cy)
        for node in nodes:
            if node.id == edge.from_id or node.id == edge.to_id:
                continue
            if _line_crosses_rect(p1, p2, node):
                count += 1
    return count


def aspect_ratio_penalty(nodes: Sequence[Node]) -> float:
    if not nodes:
        return 0.0
    min_x = min(n.x for n in nodes)
    min_y = min(n.y for n in nodes)
    max_x = max(n.x + n.width for n in nodes)
    max_y = max(n.y + n.height for n in nodes)
    height = max_y - min_y
    if height == 0:
        return 0.0
    return abs((max_x - min_x) / height - TARGET_ASPECT_RATIO) * 100


def distribution_penalty(nodes: Sequence[Node]) -> float:
    """Population standard deviation of all pairwise center distances."""
    distances = [
        math.hypot(nodes[i].cx - nodes[j].cx, nodes[i].cy - nodes[j].cy)
        for i in range(len(nodes))
        for j in range(i + 1, len(nodes))
    ]
    if not distances:
        return 0.0
    mean = sum(distances) / len(distances)
    variance = sum((d - mean) ** 2 for d in distances) / len(distances)
    return math.sqrt(variance)


def count_alignments(nodes: Sequence[Node], tolerance: float = ALIGNMENT_TOLERANCE) -> int:
    """Horizontal and vertical center alignments, counted separately per pair."""
    count = 0
    for i in range(len(nodes)):
        a = nodes[i]
        for j in range(i + 1, len(nodes)):
            b = nodes[j]
            if abs(a.cy - b.cy) < tolerance:
                count += 1
            if abs(a.cx - b.cx) < tolerance:
                count += 1
    return count


def count_grid_snapped(nodes: Sequence[Node], grid_size: int = GRID_SIZE) -> int:
    return sum(1 for n in nodes if n.x % grid_size == 0 and n.y % grid_size == 0)


def count_symmetric_pairs(nodes: Sequence[Node], tolerance: float = SYMMETRY_TOLERANCE) -> int:
    """Pairs mirrored across the vertical axis through the center of mass."""
    if len(nodes) < 2:
        return 0
    center_x = sum(n.cx for n in nodes) / len(nodes)
    center_y = sum(n.cy for n in nodes) / len(nodes)

    count = 0
    for i in range(len(nodes)):
        a = nodes[i]
        dx = a.cx - center_x
        dy = a.cy - center_y
        mirror_x = center_x - dx
        mirror_y = center_y + dy
        for j in range(i + 1, len(nodes)):
            b = nodes[j]
            if abs(b.cx - mirror_x) < tolerance and abs(b.cy - mirror_y) < tolerance:
                count += 1
    return count
