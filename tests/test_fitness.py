"""Tests for the layout fitness evaluator."""

import math

import pytest

from diagram_mcp.fitness import (
    FitnessWeights,
    aspect_ratio_penalty,
    count_alignments,
    count_crossings,
    count_edge_node_overlaps,
    count_grid_snapped,
    count_node_overlaps,
    count_symmetric_pairs,
    distribution_penalty,
    evaluate_fitness,
    segments_properly_intersect,
)
from diagram_mcp.models import Edge, Node


def _n(node_id: int, x: float, y: float, w: float = 100, h: float = 50) -> Node:
    return Node(id=node_id, x=x, y=y, width=w, height=h)


def _e(edge_id: int, src: int, dst: int) -> Edge:
    return Edge(id=edge_id, from_id=src, to_id=dst)


def _lines(nodes: list[Node], edges: list[Edge]):
    by_id = {n.id: n for n in nodes}
    return [(e, by_id[e.from_id], by_id[e.to_id]) for e in edges]


class TestTerms:
    def test_edge_length(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 300, 400)]
        result = evaluate_fitness(nodes, [_e(1, 1, 2)])
        assert result.edge_length == pytest.approx(500)

    def test_crossing_counted(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 400, 400), _n(3, 400, 0), _n(4, 0, 400)]
        edges = [_e(1, 1, 2), _e(2, 3, 4)]
        assert count_crossings(_lines(nodes, edges)) == 1

    def test_shared_endpoint_is_not_a_crossing(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 400, 0), _n(3, 400, 400)]
        edges = [_e(1, 1, 2), _e(2, 1, 3)]
        assert count_crossings(_lines(nodes, edges)) == 0

    def test_proper_intersection(self) -> None:
        assert segments_properly_intersect((0, 0), (10, 10), (0, 10), (10, 0))
        assert not segments_properly_intersect((0, 0), (10, 0), (10, 0), (20, 5))
        assert not segments_properly_intersect((0, 0), (10, 0), (0, 5), (10, 5))

    def test_node_overlap_uses_gap(self) -> None:
        assert count_node_overlaps([_n(1, 0, 0), _n(2, 115, 0)]) == 1
        assert count_node_overlaps([_n(1, 0, 0), _n(2, 121, 0)]) == 0

    def test_edge_node_overlap_skips_endpoints(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 400, 0), _n(3, 200, 0)]
        edges = [_e(1, 1, 2)]
        assert count_edge_node_overlaps(_lines(nodes, edges), nodes) == 1
        nodes[2].y = 200
        assert count_edge_node_overlaps(_lines(nodes, edges), nodes) == 0

    def test_aspect_ratio(self) -> None:
        nodes = [_n(1, 0, 0, 150, 100)]
        assert aspect_ratio_penalty(nodes) == pytest.approx(0)
        nodes = [_n(1, 0, 0, 100, 100)]
        assert aspect_ratio_penalty(nodes) == pytest.approx(50)

    def test_distribution_uniform_is_zero(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 200, 0)]
        assert distribution_penalty(nodes) == 0
        nodes = [_n(1, 0, 0), _n(2, 100, 0), _n(3, 300, 0)]
        distances = [100, 300, 200]
        mean = sum(distances) / 3
        expected = math.sqrt(sum((d - mean) ** 2 for d in distances) / 3)
        assert distribution_penalty(nodes) == pytest.approx(expected)

    def test_alignment_counts_each_axis(self) -> None:
        assert count_alignments([_n(1, 0, 0), _n(2, 300, 3)]) == 1
        assert count_alignments([_n(1, 0, 0), _n(2, 2, 3)]) == 2
        assert count_alignments([_n(1, 0, 0), _n(2, 300, 5)]) == 0

    def test_grid_snap(self) -> None:
        assert count_grid_snapped([_n(1, 0, 40), _n(2, 20, 30), _n(3, 60, 60)]) == 2

    def test_symmetry(self) -> None:
        """A pair mirrored left/right of the center of mass counts once."""
        assert count_symmetric_pairs([_n(1, 0, 0), _n(2, 300, 0)]) == 1
        assert count_symmetric_pairs([_n(1, 0, 0), _n(2, 300, 200)]) == 0


class TestEvaluate:
    def test_weighted_total(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 300, 0)]
        edges = [_e(1, 1, 2)]
        r = evaluate_fitness(nodes, edges)
        w = FitnessWeights()
        expected = (
            w.edge_length * r.edge_length
            + w.crossings * r.crossings
            + w.node_overlaps * r.node_overlaps
            + w.edge_node_overlaps * r.edge_node_overlaps
            + w.aspect_ratio * r.aspect_ratio
            + w.distribution * r.distribution
            + w.alignment * r.alignment
            + w.grid_snap * r.grid_snap
            + w.symmetry * r.symmetry
        )
        assert r.total == pytest.approx(expected)
        assert r.alignment == 1
        assert r.grid_snap == 2
        assert r.symmetry == 1

    def test_default_weights(self) -> None:
        w = FitnessWeights()
        assert (w.edge_length, w.crossings, w.node_overlaps, w.edge_node_overlaps) == (1.0, 50.0, 100.0, 30.0)
        assert (w.aspect_ratio, w.distribution) == (5.0, 5.0)
        assert (w.alignment, w.grid_snap, w.symmetry) == (-2.0, -1.0, -3.0)

    def test_custom_weights(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 300, 400)]
        weights = FitnessWeights(
            edge_length=2.0, crossings=0, node_overlaps=0, edge_node_overlaps=0,
            aspect_ratio=0, distribution=0, alignment=0, grid_snap=0, symmetry=0,
        )
        assert evaluate_fitness(nodes, [_e(1, 1, 2)], weights).total == pytest.approx(1000)

    def test_dangling_edge_contributes_nothing(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 300, 0)]
        with_dangling = evaluate_fitness(nodes, [_e(1, 1, 2), _e(2, 1, 99)])
        without = evaluate_fitness(nodes, [_e(1, 1, 2)])
        assert with_dangling == without

    def test_empty_layout(self) -> None:
        assert evaluate_fitness([], []).total == 0

    def test_translation_invariance(self) -> None:
        """Every term but grid snap is unchanged by a uniform shift."""
        nodes = [_n(1, 0, 0), _n(2, 260, 40), _n(3, 90, 310), _n(4, 420, 250)]
        edges = [_e(1, 1, 2), _e(2, 1, 3), _e(3, 2, 4), _e(4, 3, 2)]
        shifted = [_n(n.id, n.x + 37, n.y + 11, n.width, n.height) for n in nodes]

        a = evaluate_fitness(nodes, edges)
        b = evaluate_fitness(shifted, edges)
        for term in (
            "edge_length", "crossings", "node_overlaps", "edge_node_overlaps",
            "aspect_ratio", "distribution", "alignment", "symmetry",
        ):
            assert getattr(a, term) == pytest.approx(getattr(b, term)), term
        assert a.grid_snap != b.grid_snap

    def test_inputs_unchanged(self) -> None:
        nodes = [_n(1, 0, 0), _n(2, 10, 10)]
        evaluate_fitness(nodes, [_e(1, 1, 2)])
        assert (nodes[1].x, nodes[1].y) == (10, 10)

    def test_to_dict(self) -> None:
        data = evaluate_fitness([_n(1, 0, 0)], []).to_dict()
        assert set(data) >= {"total", "crossings", "symmetry"}
