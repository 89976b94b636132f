"""Tests for the diagram data model."""

import pytest

from diagram_mcp.models import (
    CellBounds,
    ConnectionPoint,
    Diagram,
    Edge,
    EdgeStyle,
    Node,
    NodeShape,
    Waypoint,
    snap_to_grid,
)


def _two_node_diagram() -> Diagram:
    d = Diagram(name="test")
    d.add_node("A", 0, 0)
    d.add_node("B", 300, 0)
    return d


class TestNode:
    def test_defaults(self) -> None:
        n = Node(id=1)
        assert n.width == 120
        assert n.height == 60
        assert n.shape == NodeShape.RECTANGLE

    def test_center(self) -> None:
        n = Node(id=1, x=10, y=20, width=100, height=40)
        assert n.cx == 60
        assert n.cy == 40

    def test_non_positive_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            Node(id=1, width=0, height=10)
        with pytest.raises(ValueError):
            Node(id=1, width=10, height=-5)

    def test_bounds(self) -> None:
        b = Node(id=1, x=5, y=6, width=7, height=8).bounds
        assert (b.x, b.y, b.width, b.height) == (5, 6, 7, 8)


class TestEdge:
    def test_default_anchors(self) -> None:
        e = Edge(id=1, from_id=1, to_id=2)
        assert e.from_connection.side == "right"
        assert e.to_connection.side == "left"

    def test_legacy_orthogonal_flag(self) -> None:
        """A direct edge flagged orthogonal is routed as ortho."""
        e = Edge(id=1, from_id=1, to_id=2, is_orthogonal=True)
        assert e.effective_style == EdgeStyle.ORTHO

    def test_flag_ignored_for_other_styles(self) -> None:
        e = Edge(id=1, from_id=1, to_id=2, style=EdgeStyle.BEZIER, is_orthogonal=True)
        assert e.effective_style == EdgeStyle.BEZIER

    def test_connection_point_dict(self) -> None:
        cp = ConnectionPoint.from_dict({"side": "top", "position": 1})
        assert cp == ConnectionPoint("top", 1)
        assert cp.to_dict() == {"side": "top", "position": 1}


class TestDiagram:
    def test_sequential_ids(self) -> None:
        d = _two_node_diagram()
        assert [n.id for n in d.nodes] == [1, 2]
        e = d.add_edge(1, 2)
        assert e.id == 1
        assert d.next_id == 3
        assert d.next_edge_id == 2

    def test_add_edge_picks_anchors(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2)
        assert e.from_connection.side == "right"
        assert e.to_connection.side == "left"

    def test_add_edge_keeps_explicit_anchors(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2, ConnectionPoint("top"), ConnectionPoint("top"))
        assert e.from_connection.side == "top"
        assert e.to_connection.side == "top"

    def test_label_defaults_to_midpoint(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2)
        lbl = d.add_edge_label(e.id, "yes")
        assert (lbl.x, lbl.y) == (210, 30)

    def test_lookup_missing_returns_none(self) -> None:
        d = _two_node_diagram()
        assert d.get_node(99) is None
        assert d.get_edge(99) is None
        assert d.get_label(99) is None

    def test_delete_node_cascades(self) -> None:
        d = _two_node_diagram()
        d.add_node("C", 0, 200)
        e1 = d.add_edge(1, 2)
        d.add_edge(2, 3)
        d.add_edge_label(e1.id, "gone")

        assert d.delete_node(1)
        assert d.get_node(1) is None
        assert [e.id for e in d.edges] == [2]
        assert d.edge_labels == []

    def test_delete_edge_cascades_labels(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2)
        d.add_edge_label(e.id, "x")
        assert d.delete_edge(e.id)
        assert d.edge_labels == []
        assert not d.delete_edge(e.id)

    def test_move_and_resize(self) -> None:
        d = _two_node_diagram()
        assert d.move_node(1, 40, 50)
        assert (d.get_node(1).x, d.get_node(1).y) == (40, 50)
        assert d.resize_node(1, 80, 30)
        assert d.get_node(1).width == 80
        assert not d.move_node(42, 0, 0)
        with pytest.raises(ValueError):
            d.resize_node(1, 0, 30)

    def test_delete_label(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2)
        keep = d.add_edge_label(e.id, "keep")
        drop = d.add_edge_label(e.id, "drop")
        assert d.delete_label(drop.id)
        assert d.edge_labels == [keep]
        assert not d.delete_label(drop.id)

    def test_waypoints_insert_into_nearest_leg(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2)
        assert d.add_waypoint(e.id) == 0
        assert [(wp.x, wp.y) for wp in e.waypoints] == [(210, 30)]
        assert d.add_waypoint(e.id, 300, 100) == 1
        assert d.add_waypoint(e.id, 100, 0) == 0
        assert [(wp.x, wp.y) for wp in e.waypoints] == [(100, 0), (210, 30), (300, 100)]

    def test_waypoint_without_point_splits_longest_leg(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2, waypoints=[Waypoint(360, 230)])
        assert d.add_waypoint(e.id) == 0
        assert [(wp.x, wp.y) for wp in e.waypoints] == [(210, 130), (360, 230)]

    def test_delete_waypoint(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2, waypoints=[Waypoint(100, 0), Waypoint(200, 0, layer=1)])
        assert d.delete_waypoint(e.id, 0)
        assert e.waypoints == [Waypoint(200, 0, layer=1)]
        assert not d.delete_waypoint(e.id, 1)
        assert not d.delete_waypoint(e.id, -1)
        assert not d.delete_waypoint(99, 0)
        assert d.add_waypoint(99) is None

    def test_clear_resets_counters(self) -> None:
        d = _two_node_diagram()
        e = d.add_edge(1, 2)
        d.add_edge_label(e.id, "x")
        d.clear()
        assert d.nodes == [] and d.edges == [] and d.edge_labels == []
        assert (d.next_id, d.next_edge_id, d.next_label_id) == (1, 1, 1)
        assert d.add_node("again").id == 1


class TestCellBounds:
    def test_expanded(self) -> None:
        b = CellBounds(10, 10, 20, 20).expanded(5)
        assert (b.x, b.y, b.right, b.bottom) == (5, 5, 35, 35)

    def test_intersects(self) -> None:
        a = CellBounds(0, 0, 10, 10)
        assert a.intersects(CellBounds(5, 5, 10, 10))
        assert not a.intersects(CellBounds(30, 0, 10, 10))
        assert a.intersects(CellBounds(30, 0, 10, 10), margin=20)

    def test_contains_point(self) -> None:
        b = CellBounds(0, 0, 10, 10)
        assert b.contains_point(10, 10)
        assert not b.contains_point(11, 5)


def test_snap_to_grid() -> None:
    assert snap_to_grid(29) == 20
    assert snap_to_grid(31) == 40
    assert snap_to_grid(14, 10) == 10
