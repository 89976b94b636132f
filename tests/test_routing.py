"""Tests for edge path planning."""

from diagram_mcp.models import (
    ConnectionPoint,
    Diagram,
    Edge,
    EdgeStyle,
    Node,
    Waypoint,
)
from diagram_mcp.routing import (
    OBSTACLE_MARGIN,
    CubicTo,
    LineTo,
    MoveTo,
    QuadTo,
    adjust_for_obstacles,
    edge_path_data,
    path_to_svg,
    plan_path,
    recompute_edge_paths,
    round_corners,
    segment_intersects_rect,
    segment_points,
    simplify_polyline,
)


def _row_nodes() -> list[Node]:
    """Two nodes side by side, 180px apart."""
    return [Node(id=1, x=0, y=0), Node(id=2, x=300, y=0)]


def _edge(style: EdgeStyle = EdgeStyle.DIRECT, **kwargs) -> Edge:
    return Edge(id=1, from_id=1, to_id=2, style=style, **kwargs)


def _blocked_nodes() -> list[Node]:
    """Source and target in a row with an obstacle squarely between them."""
    return [
        Node(id=1, x=0, y=0),
        Node(id=2, x=400, y=0),
        Node(id=3, x=180, y=0, width=60, height=60),
    ]


def _assert_avoids(segments, obstacle: Node) -> None:
    box = obstacle.bounds.expanded(OBSTACLE_MARGIN)
    points = segment_points(segments)
    for p1, p2 in zip(points, points[1:]):
        assert not segment_intersects_rect(p1, p2, box), (p1, p2)


# ===================================================================
# Dispatch basics
# ===================================================================

class TestPlanPath:
    def test_direct_is_single_segment(self) -> None:
        segments = plan_path(_edge(), _row_nodes())
        assert segments == [MoveTo(120, 30), LineTo(300, 30)]

    def test_direct_ignores_obstacles(self) -> None:
        segments = plan_path(_edge(), _blocked_nodes())
        assert segments == [MoveTo(120, 30), LineTo(400, 30)]

    def test_dangling_endpoint_is_empty(self) -> None:
        nodes = [Node(id=1, x=0, y=0)]
        for style in EdgeStyle:
            assert plan_path(_edge(style), nodes) == []
        assert edge_path_data(_edge(), nodes) == ""

    def test_waypoints_are_verbatim(self) -> None:
        """Explicit waypoints bypass style and obstacle handling."""
        edge = _edge(EdgeStyle.ORTHO, waypoints=[Waypoint(200, 100), Waypoint(250, 100, layer=1)])
        path = edge_path_data(edge, _blocked_nodes())
        assert path == "M 120 30 L 200 100 L 250 100 L 400 30"

    def test_self_loop_degrades_to_direct(self) -> None:
        edge = Edge(
            id=1, from_id=1, to_id=1, style=EdgeStyle.BEZIER,
            from_connection=ConnectionPoint("right"),
            to_connection=ConnectionPoint("top"),
        )
        segments = plan_path(edge, [Node(id=1, x=0, y=0)])
        assert segments == [MoveTo(120, 30), LineTo(60, 0)]

    def test_anchor_positions_follow_node(self) -> None:
        nodes = _row_nodes()
        before = edge_path_data(_edge(), nodes)
        nodes[1].y = 100
        after = edge_path_data(_edge(), nodes)
        assert before != after
        assert after == "M 120 30 L 300 130"


# ===================================================================
# Orthogonal
# ===================================================================

class TestOrthogonal:
    def test_aligned_nodes_give_straight_line(self) -> None:
        assert edge_path_data(_edge(EdgeStyle.ORTHO), _row_nodes()) == "M 120 30 L 300 30"

    def test_all_segments_axis_aligned(self) -> None:
        nodes = [Node(id=1, x=0, y=0), Node(id=2, x=300, y=200)]
        points = segment_points(plan_path(_edge(EdgeStyle.ORTHO), nodes))
        for (x1, y1), (x2, y2) in zip(points, points[1:]):
            assert x1 == x2 or y1 == y2

    def test_perpendicular_sides_one_bend(self) -> None:
        nodes = [Node(id=1, x=0, y=0), Node(id=2, x=300, y=200)]
        edge = _edge(
            EdgeStyle.ORTHO,
            from_connection=ConnectionPoint("right"),
            to_connection=ConnectionPoint("top"),
        )
        path = edge_path_data(edge, nodes)
        assert path == "M 120 30 L 360 30 L 360 200"

    def test_detour_avoids_obstacle(self) -> None:
        nodes = _blocked_nodes()
        segments = plan_path(_edge(EdgeStyle.ORTHO), nodes)
        assert len(segments) > 2
        _assert_avoids(segments, nodes[2])
        assert segment_points(segments)[0] == (120, 30)
        assert segment_points(segments)[-1] == (400, 30)

    def test_detour_path(self) -> None:
        path = edge_path_data(_edge(EdgeStyle.ORTHO), _blocked_nodes())
        assert path == "M 120 30 L 160 30 L 160 80 L 260 80 L 260 30 L 400 30"

    def test_detour_goes_above_when_path_is_higher(self) -> None:
        nodes = _blocked_nodes()
        nodes[2].y = 20
        segments = plan_path(_edge(EdgeStyle.ORTHO), nodes)
        _assert_avoids(segments, nodes[2])
        assert min(y for _, y in segment_points(segments)) < 20

    def test_legacy_flag_routes_orthogonally(self) -> None:
        nodes = _blocked_nodes()
        legacy = edge_path_data(_edge(is_orthogonal=True), nodes)
        assert legacy == edge_path_data(_edge(EdgeStyle.ORTHO), nodes)

    def test_vertical_segment_detours_sideways(self) -> None:
        obstacle = Node(id=3, x=0, y=100, width=60, height=60).bounds
        points = adjust_for_obstacles([(40, 0), (40, 300)], [obstacle])
        assert points[0] == (40, 0) and points[-1] == (40, 300)
        for p1, p2 in zip(points, points[1:]):
            assert not segment_intersects_rect(p1, p2, obstacle.expanded(OBSTACLE_MARGIN))
        assert max(x for x, _ in points) > 60

    def test_obstacle_on_bend_is_routed_around(self) -> None:
        source = Node(id=1, x=0, y=0)
        target = Node(id=2, x=500, y=400)
        obstacle = Node(id=3, x=250, y=0, width=60, height=60)
        segments = plan_path(_edge(EdgeStyle.ORTHO), [source, target, obstacle])
        _assert_avoids(segments, obstacle)
        points = segment_points(segments)
        assert points[0] == (120, 30)
        assert points[-1] == (500, 430)
        for (x1, y1), (x2, y2) in zip(points, points[1:]):
            assert x1 == x2 or y1 == y2

    def test_single_obstacle_sweep(self) -> None:
        """One obstacle anywhere off the end nodes, bends included, is avoided."""
        source = Node(id=1, x=0, y=0)
        target = Node(id=2, x=500, y=400)
        ends = (source, target)
        anchor_pairs = [("right", "left"), ("right", "top"), ("bottom", "top"), ("bottom", "left")]
        checked = 0
        for from_side, to_side in anchor_pairs:
            edge = _edge(
                EdgeStyle.ORTHO,
                from_connection=ConnectionPoint(from_side),
                to_connection=ConnectionPoint(to_side),
            )
            for ox in range(-100, 640, 20):
                for oy in range(-100, 500, 20):
                    obstacle = Node(id=3, x=ox, y=oy, width=60, height=60)
                    if any(obstacle.bounds.intersects(n.bounds, margin=40) for n in ends):
                        continue
                    _assert_avoids(plan_path(edge, [source, target, obstacle]), obstacle)
                    checked += 1
        assert checked > 400

    def test_rounded_replaces_bends_with_arcs(self) -> None:
        segments = plan_path(_edge(EdgeStyle.ORTHO_ROUND), _blocked_nodes())
        assert any(isinstance(s, QuadTo) for s in segments)
        assert segments[0] == MoveTo(120, 30)
        assert segments[-1] == LineTo(400, 30)

    def test_rounded_straight_line_has_no_arcs(self) -> None:
        assert edge_path_data(_edge(EdgeStyle.ORTHO_ROUND), _row_nodes()) == "M 120 30 L 300 30"


class TestPolylineHelpers:
    def test_round_corners(self) -> None:
        segments = round_corners([(0, 0), (100, 0), (100, 100)])
        assert path_to_svg(segments) == "M 0 0 L 90 0 Q 100 0 100 10 L 100 100"

    def test_short_segments_keep_sharp_corner(self) -> None:
        segments = round_corners([(0, 0), (2, 0), (2, 100)])
        assert path_to_svg(segments) == "M 0 0 L 2 0 L 2 100"

    def test_radius_capped_by_half_segment(self) -> None:
        segments = round_corners([(0, 0), (12, 0), (12, 100)])
        assert path_to_svg(segments) == "M 0 0 L 6 0 Q 12 0 12 6 L 12 100"

    def test_simplify_drops_duplicates_and_collinear(self) -> None:
        points = [(0, 0), (0, 0), (10, 0), (20, 0), (20, 10)]
        assert simplify_polyline(points) == [(0, 0), (20, 0), (20, 10)]

    def test_simplify_keeps_reversals(self) -> None:
        points = [(0, 0), (25, 0), (10, 0)]
        assert simplify_polyline(points) == [(0, 0), (25, 0), (10, 0)]


# ===================================================================
# Curves
# ===================================================================

class TestCurves:
    def test_bezier(self) -> None:
        segments = plan_path(_edge(EdgeStyle.BEZIER), _row_nodes())
        assert segments == [MoveTo(120, 30), CubicTo(192, 30, 228, 30, 300, 30)]

    def test_bezier_minimum_offset(self) -> None:
        nodes = [Node(id=1, x=0, y=0), Node(id=2, x=200, y=0)]
        assert edge_path_data(_edge(EdgeStyle.BEZIER), nodes) == "M 120 30 C 170 30 150 30 200 30"

    def test_arc_aligned_small_bow(self) -> None:
        assert edge_path_data(_edge(EdgeStyle.ARC), _row_nodes()) == "M 120 30 Q 210 57 300 30"

    def test_arc_unaligned_uses_side_table(self) -> None:
        edge = _edge(
            EdgeStyle.ARC,
            from_connection=ConnectionPoint("top"),
            to_connection=ConnectionPoint("top"),
        )
        assert edge_path_data(edge, _row_nodes()) == "M 60 0 Q 210 80 360 0"

    def test_zero_length_falls_back_to_line(self) -> None:
        nodes = [Node(id=1, x=0, y=0), Node(id=2, x=120, y=0)]
        for style in (EdgeStyle.ARC, EdgeStyle.BEZIER, EdgeStyle.STYLIZED):
            assert edge_path_data(_edge(style), nodes) == "M 120 30 L 120 30"

    def test_stylized(self) -> None:
        path = edge_path_data(_edge(EdgeStyle.STYLIZED), _row_nodes())
        assert path == "M 120 30 Q 135 22.5 135 26.25 C 210 3 228 30 300 30"


# ===================================================================
# Circuit / bus
# ===================================================================

def _circuit_edge() -> Edge:
    return _edge(
        EdgeStyle.CIRCUIT,
        from_connection=ConnectionPoint("bottom"),
        to_connection=ConnectionPoint("top"),
    )


class TestCircuit:
    def test_bus_route(self) -> None:
        nodes = [Node(id=1, x=0, y=0), Node(id=2, x=400, y=200)]
        path = edge_path_data(_circuit_edge(), nodes)
        assert path == "M 60 60 L 60 120 L 460 120 L 460 200"

    def test_jump_over_obstacle(self) -> None:
        nodes = [
            Node(id=1, x=0, y=0),
            Node(id=2, x=400, y=200),
            Node(id=3, x=200, y=90, width=60, height=60),
        ]
        path = edge_path_data(_circuit_edge(), nodes)
        assert path == "M 60 60 L 60 120 L 192 120 Q 230 154.2 268 120 L 460 120 L 460 200"

    def test_jump_arches_away_from_obstacle_center(self) -> None:
        nodes = [
            Node(id=1, x=0, y=0),
            Node(id=2, x=400, y=200),
            Node(id=3, x=200, y=110, width=60, height=60),
        ]
        jumps = [s for s in plan_path(_circuit_edge(), nodes) if isinstance(s, QuadTo)]
        assert len(jumps) == 1
        assert jumps[0].cy < 120

    def test_right_to_left_travel(self) -> None:
        nodes = [
            Node(id=1, x=400, y=0),
            Node(id=2, x=0, y=200),
            Node(id=3, x=200, y=90, width=60, height=60),
        ]
        segments = plan_path(_circuit_edge(), nodes)
        jump = next(s for s in segments if isinstance(s, QuadTo))
        assert jump.x < jump.cx


# ===================================================================
# Recompute
# ===================================================================

class TestRecompute:
    def _diagram(self) -> Diagram:
        d = Diagram()
        d.add_node("A", 0, 0)
        d.add_node("B", 400, 0)
        d.add_node("C", 180, 300, 60, 60)
        d.add_edge(1, 2, style=EdgeStyle.DIRECT)
        d.add_edge(1, 2, style=EdgeStyle.ORTHO)
        return d

    def test_recompute_all(self) -> None:
        d = self._diagram()
        assert recompute_edge_paths(d) == 2
        assert all(e.path_data for e in d.edges)

    def test_moved_node_updates_obstacle_aware_edges(self) -> None:
        d = self._diagram()
        recompute_edge_paths(d)
        direct_before = d.edges[0].path_data
        ortho_before = d.edges[1].path_data

        d.move_node(3, 180, 0)
        assert recompute_edge_paths(d, moved_node_id=3) == 1
        assert d.edges[0].path_data == direct_before
        assert d.edges[1].path_data != ortho_before

    def test_moved_endpoint_updates_incident_edges(self) -> None:
        d = self._diagram()
        recompute_edge_paths(d)
        d.move_node(2, 400, 40)
        assert recompute_edge_paths(d, moved_node_id=2) == 2
        assert d.edges[0].path_data == "M 120 30 L 400 70"
