"""
Layout optimization for node/edge diagrams.

- Simulated-annealing optimizer driven by the fitness evaluator; runs as a
  coroutine that yields to the event loop periodically and can be cancelled
- Overlap removal by pairwise center-to-center pushes
- Compaction toward the center of mass
- Force-directed (Fruchterman–Reingold) relaxation
- Grid snapping

The optimizer never touches the caller's diagram until it has finished: all
moves happen on a private working copy, and the best positions are written
back in one step at the end.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Optional

from diagram_mcp.fitness import FitnessWeights, evaluate_fitness
from diagram_mcp.models import Diagram, Node, snap_to_grid
from diagram_mcp.routing import recompute_edge_paths

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class AnnealingOptions:
    """Tuning for the simulated-annealing optimizer."""
    initial_temperature: float = 1000.0
    cooling_rate: float = 0.995
    min_temperature: float = 0.1
    max_iterations: int = 5000
    max_no_improvement: int = 500
    grid_size: int = 20
    yield_every: int = 100
    # Positions are clamped to [lo, hi] on both axes
    bounds: tuple[float, float] = (0.0, 2000.0)
    seed: Optional[int] = None

    @classmethod
    def preset(cls, name: str, **overrides: object) -> AnnealingOptions:
        """Named presets: quick, balanced, thorough."""
        try:
            iterations, cooling = _PRESETS[name]
        except KeyError:
            raise ValueError(
                f"Unknown optimization preset '{name}'. "
                f"Valid presets: {', '.join(_PRESETS)}"
            ) from None
        return cls(max_iterations=iterations, cooling_rate=cooling, **overrides)


_PRESETS: dict[str, tuple[int, float]] = {
    "quick": (1000, 0.99),
    "balanced": (5000, 0.995),
    "thorough": (15000, 0.998),
}

OVERLAP_GAP = 20
OVERLAP_MAX_ITERATIONS = 100
COMPACT_FACTOR = 0.8


class OptimizationCancelled(Exception):
    """Raised when an optimization run is cancelled before it finishes."""


class CancellationToken:
    """Cooperative cancellation flag checked once per optimizer iteration."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class OptimizationResult:
    positions: dict[int, tuple[float, float]]
    initial_fitness: float
    best_fitness: float
    improvement: float
    iterations: int

    def to_dict(self) -> dict:
        return {
            "initial_fitness": round(self.initial_fitness, 2),
            "best_fitness": round(self.best_fitness, 2),
            "improvement": round(self.improvement, 2),
            "iterations": self.iterations,
        }


ProgressCallback = Callable[[int, float, float], None]


# ---------------------------------------------------------------------------
# Simulated annealing
# ---------------------------------------------------------------------------

async def optimize_layout(
    diagram: Diagram,
    options: AnnealingOptions | None = None,
    weights: FitnessWeights | None = None,
    cancel_token: CancellationToken | None = None,
    progress: ProgressCallback | None = None,
    apply: bool = True,
) -> OptimizationResult:
    """Search for a lower-fitness arrangement of the diagram's nodes.

    Only node positions change; ids and sizes are fixed. Every
    ``yield_every`` iterations *progress* is called with
    ``(iteration, temperature, best_fitness)`` and control returns to the
    event loop.

    When *apply* is true the best layout, snapped to the grid, is written
    into *diagram* and edge paths are recomputed.

    Raises:
        OptimizationCancelled: *cancel_token* was cancelled; *diagram* is
            left exactly as it was.
    """
    opts = options or AnnealingOptions()
    rng = random.Random(opts.seed)
    lo, hi = opts.bounds

    working = [dataclasses.replace(n) for n in diagram.nodes]
    edges = list(diagram.edges)

    current = evaluate_fitness(working, edges, weights).total
    initial = current
    best = current
    best_positions = {n.id: (n.x, n.y) for n in working}

    temperature = opts.initial_temperature
    iteration = 0
    no_improvement = 0

    logger.info(
        "Optimizing %d nodes (max %d iterations, initial fitness %.2f)",
        len(working), opts.max_iterations, initial,
    )

    while (
        working
        and temperature > opts.min_temperature
        and iteration < opts.max_iterations
        and no_improvement < opts.max_no_improvement
    ):
        if cancel_token is not None and cancel_token.cancelled:
            logger.info("Optimization cancelled after %d iterations", iteration)
            raise OptimizationCancelled(f"Cancelled after {iteration} iterations")

        node = working[rng.randrange(len(working))]
        old_x, old_y = node.x, node.y

        move_scale = temperature / opts.initial_temperature * 100
        node.x = min(hi, max(lo, node.x + rng.uniform(-move_scale, move_scale)))
        node.y = min(hi, max(lo, node.y + rng.uniform(-move_scale, move_scale)))

        candidate = evaluate_fitness(working, edges, weights).total
        delta = candidate - current

        if delta < 0 or rng.random() < math.exp(-delta / temperature):
            current = candidate
            if current < best:
                best = current
                best_positions = {n.id: (n.x, n.y) for n in working}
                no_improvement = 0
            else:
                no_improvement += 1
        else:
            node.x, node.y = old_x, old_y
            no_improvement += 1

        temperature *= opts.cooling_rate
        iteration += 1

        if opts.yield_every > 0 and iteration % opts.yield_every == 0:
            if progress is not None:
                progress(iteration, temperature, best)
            logger.debug("iteration=%d temperature=%.3f best=%.2f", iteration, temperature, best)
            await asyncio.sleep(0)

    snapped = {
        node_id: (snap_to_grid(x, opts.grid_size), snap_to_grid(y, opts.grid_size))
        for node_id, (x, y) in best_positions.items()
    }
    improvement = (initial - best) / initial * 100 if initial > 0 else 0.0

    result = OptimizationResult(
        positions=snapped,
        initial_fitness=initial,
        best_fitness=best,
        improvement=improvement,
        iterations=iteration,
    )
    logger.info(
        "Optimization finished: %d iterations, fitness %.2f -> %.2f (%.1f%%)",
        iteration, initial, best, improvement,
    )

    if apply:
        apply_positions(diagram, snapped)
    return result


def apply_positions(diagram: Diagram, positions: dict[int, tuple[float, float]]) -> None:
    """Write node positions into *diagram* and re-plan every edge."""
    for node in diagram.nodes:
        if node.id in positions:
            node.x, node.y = positions[node.id]
    recompute_edge_paths(diagram)


# ---------------------------------------------------------------------------
# Overlap removal
# ---------------------------------------------------------------------------

def _too_close(a: Node, b: Node, gap: float) -> bool:
    """Pairs exactly *gap* apart still count, as in the overlap fitness term."""
    return (
        a.x <= b.x + b.width + gap
        and a.x + a.width + gap >= b.x
        and a.y <= b.y + b.height + gap
        and a.y + a.height + gap >= b.y
    )


def remove_overlaps(
    diagram: Diagram,
    gap: float = OVERLAP_GAP,
    max_iterations: int = OVERLAP_MAX_ITERATIONS,
) -> int:
    """Push apart nodes closer than *gap*.

    Each pass moves the second node of every offending pair by *gap* along
    the center-to-center direction. Stops when a pass finds nothing or after
    *max_iterations* passes.

    Returns:
        Number of individual pushes applied.
    """
    pushes = 0
    nodes = diagram.nodes
    for _ in range(max_iterations):
        any_overlap = False
        for i in range(len(nodes)):
            for j in range(i + 1, len(nodes)):
                a, b = nodes[i], nodes[j]
                if not _too_close(a, b, gap):
                    continue
                any_overlap = True
                dx = b.cx - a.cx
                dy = b.cy - a.cy
                dist = math.hypot(dx, dy)
                if dist == 0:
                    dx, dist = 1.0, 1.0
                b.x += dx / dist * gap
                b.y += dy / dist * gap
                pushes += 1
        if not any_overlap:
            break

    if pushes:
        recompute_edge_paths(diagram)
    return pushes


# ---------------------------------------------------------------------------
# Compaction / snapping
# ---------------------------------------------------------------------------

def compact_layout(diagram: Diagram, factor: float = COMPACT_FACTOR) -> None:
    """Pull every node toward the center of mass, keeping *factor* of its offset."""
    if not diagram.nodes:
        return
    center_x = sum(n.cx for n in diagram.nodes) / len(diagram.nodes)
    center_y = sum(n.cy for n in diagram.nodes) / len(diagram.nodes)
    for node in diagram.nodes:
        node.x += (center_x - node.cx) * (1 - factor)
        node.y += (center_y - node.cy) * (1 - factor)
    recompute_edge_paths(diagram)


def snap_nodes_to_grid(diagram: Diagram, grid_size: int = 20) -> None:
    for node in diagram.nodes:
        node.x = snap_to_grid(node.x, grid_size)
        node.y = snap_to_grid(node.y, grid_size)
    recompute_edge_paths(diagram)


# ---------------------------------------------------------------------------
# Force-directed relaxation
# ---------------------------------------------------------------------------

@dataclass
class ForceDirectedConfig:
    """Tuning for Fruchterman–Reingold relaxation."""
    iterations: int = 200
    width: float = 1000
    height: float = 800
    # Ideal edge length; derived from the canvas area when not set
    ideal_length: Optional[float] = None
    initial_temperature: float = 100.0
    margin: float = 50


def force_directed_layout(diagram: Diagram, config: ForceDirectedConfig | None = None) -> None:
    """Relax node positions with repulsive/attractive forces.

    Every node pair repels with k²/d; connected pairs attract with d²/k.
    Per-iteration displacement is capped by a linearly cooling temperature.
    Deterministic for a given starting layout.
    """
    cfg = config or ForceDirectedConfig()
    nodes = diagram.nodes
    if len(nodes) < 2:
        return

    area = (cfg.width - 2 * cfg.margin) * (cfg.height - 2 * cfg.margin)
    k = cfg.ideal_length or math.sqrt(area / len(nodes))

    pos = {n.id: [n.cx, n.cy] for n in nodes}
    ids = [n.id for n in nodes]
    links = [
        (e.from_id, e.to_id) for e in diagram.edges
        if e.from_id in pos and e.to_id in pos and e.from_id != e.to_id
    ]

    # Separate coincident nodes so the repulsion has a direction
    for index, node_id in enumerate(ids):
        for other in ids[:index]:
            if pos[node_id] == pos[other]:
                angle = 2 * math.pi * index / len(ids)
                pos[node_id][0] += math.cos(angle)
                pos[node_id][1] += math.sin(angle)

    for step in range(cfg.iterations):
        temperature = cfg.initial_temperature * (1 - step / cfg.iterations)
        disp = {node_id: [0.0, 0.0] for node_id in ids}

        for i in range(len(ids)):
            for j in range(i + 1, len(ids)):
                a, b = ids[i], ids[j]
                dx = pos[a][0] - pos[b][0]
                dy = pos[a][1] - pos[b][1]
                dist = max(math.hypot(dx, dy), 0.01)
                force = k * k / dist
                disp[a][0] += dx / dist * force
                disp[a][1] += dy / dist * force
                disp[b][0] -= dx / dist * force
                disp[b][1] -= dy / dist * force

        for a, b in links:
            dx = pos[a][0] - pos[b][0]
            dy = pos[a][1] - pos[b][1]
            dist = max(math.hypot(dx, dy), 0.01)
            force = dist * dist / k
            disp[a][0] -= dx / dist * force
            disp[a][1] -= dy / dist * force
            disp[b][0] += dx / dist * force
            disp[b][1] += dy / dist * force

        for node_id in ids:
            dx, dy = disp[node_id]
            length = math.hypot(dx, dy)
            if length > 0:
                limited = min(length, temperature)
                pos[node_id][0] += dx / length * limited
                pos[node_id][1] += dy / length * limited
            pos[node_id][0] = min(cfg.width - cfg.margin, max(cfg.margin, pos[node_id][0]))
            pos[node_id][1] = min(cfg.height - cfg.margin, max(cfg.margin, pos[node_id][1]))

    for node in nodes:
        cx, cy = pos[node.id]
        node.x = cx - node.width / 2
        node.y = cy - node.height / 2

    logger.debug("Force-directed layout: %d nodes, %d iterations", len(nodes), cfg.iterations)
    recompute_edge_paths(diagram)
