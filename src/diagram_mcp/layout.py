"""
Placement helpers for diagrams built from text.

- Hierarchical (level-by-level) layout for freshly imported graphs
- Placeholder grid placement used while a parser is still discovering nodes
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass

from diagram_mcp.models import Diagram
from diagram_mcp.routing import recompute_edge_paths

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Hierarchical layout
# ---------------------------------------------------------------------------

@dataclass
class HierarchicalConfig:
    """Row geometry for the hierarchical layout."""
    start_x: float = 50
    start_y: float = 50
    level_spacing: float = 120
    node_spacing: float = 180
    canvas_width: float = 1000


def assign_levels(diagram: Diagram) -> dict[int, int]:
    """BFS level per node id.

    Roots are nodes without incoming edges (the first node when every node
    has one). All roots start at level 0 and are expanded together. A
    successor's level is raised to ``predecessor + 1`` whenever that is
    higher than what it already has, and never lowered, so the result is
    the longest distance seen during traversal. Unreached nodes are
    level 0.
    """
    if not diagram.nodes:
        return {}

    outgoing: dict[int, list[int]] = defaultdict(list)
    has_incoming: set[int] = set()
    for edge in diagram.edges:
        outgoing[edge.from_id].append(edge.to_id)
        has_incoming.add(edge.to_id)

    roots = [n.id for n in diagram.nodes if n.id not in has_incoming]
    if not roots:
        roots = [diagram.nodes[0].id]

    levels: dict[int, int] = {}
    queue: deque[tuple[int, int]] = deque()
    for root in roots:
        levels[root] = 0
        queue.append((root, 0))

    visited: set[int] = set()
    while queue:
        node_id, level = queue.popleft()
        if node_id in visited:
            continue
        visited.add(node_id)

        for target in outgoing.get(node_id, []):
            candidate = level + 1
            if levels.get(target, -1) < candidate:
                levels[target] = candidate
                queue.append((target, candidate))

    return {n.id: levels.get(n.id, 0) for n in diagram.nodes}


def apply_hierarchical_layout(
    diagram: Diagram,
    config: HierarchicalConfig | None = None,
) -> dict[int, int]:
    """Position nodes in rows by BFS level and re-plan every edge.

    Each row is spread at a fixed spacing and roughly centered on the
    canvas width; rows are stacked top to bottom in level order.

    Returns:
        The level assigned to each node id.
    """
    cfg = config or HierarchicalConfig()
    levels = assign_levels(diagram)

    rows: dict[int, list[int]] = defaultdict(list)
    for node in diagram.nodes:
        rows[levels.get(node.id, 0)].append(node.id)

    y = cfg.start_y
    for level in sorted(rows):
        members = rows[level]
        row_width = (len(members) - 1) * cfg.node_spacing
        x = max(cfg.start_x, (cfg.canvas_width - row_width) / 2)
        for node_id in members:
            diagram.move_node(node_id, x, y)
            x += cfg.node_spacing
        y += cfg.level_spacing

    logger.debug("Hierarchical layout: %d nodes on %d levels", len(diagram.nodes), len(rows))
    recompute_edge_paths(diagram)
    return levels


# ---------------------------------------------------------------------------
# Placeholder grid
# ---------------------------------------------------------------------------

class GridPlacer:
    """Hands out grid slots left to right, wrapping after ``per_row`` slots."""

    def __init__(
        self,
        start_x: float = 50,
        start_y: float = 50,
        column_step: float = 180,
        row_step: float = 100,
        per_row: int = 4,
        node_width: float = 120,
        node_height: float = 60,
    ) -> None:
        self.start_x = start_x
        self.start_y = start_y
        self.column_step = column_step
        self.row_step = row_step
        self.per_row = per_row
        self.node_width = node_width
        self.node_height = node_height
        self.count = 0

    def next_slot(self) -> tuple[float, float]:
        row, col = divmod(self.count, self.per_row)
        self.count += 1
        return self.start_x + col * self.column_step, self.start_y + row * self.row_step
