"""
Core model classes for editable node/edge diagrams.

Provides a typed, table-based model: nodes, edges and edge labels are kept
in per-diagram lists and reference each other by integer id, never by
object reference, so a diagram can be serialized and rebuilt losslessly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class NodeShape(Enum):
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    DIAMOND = "diamond"
    PARALLELOGRAM = "parallelogram"
    CYLINDER = "cylinder"


class EdgeStyle(Enum):
    """Routing style of an edge; each variant has one path handler."""
    DIRECT = "direct"
    ORTHO = "ortho"
    ORTHO_ROUND = "ortho_round"
    BEZIER = "bezier"
    ARC = "arc"
    STYLIZED = "stylized"
    CIRCUIT = "circuit"


class ArrowDirection(Enum):
    END = "end"
    START = "start"
    BOTH = "both"
    NONE = "none"


SIDES = ("top", "bottom", "left", "right")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class ConnectionPoint:
    """Symbolic anchor on a node boundary: a side plus a position index.

    Resolved to coordinates only through ``geometry.point_coordinates``
    against the owning node's current rectangle.
    """
    side: str = "right"
    position: int = 0

    def to_dict(self) -> dict:
        return {"side": self.side, "position": self.position}

    @classmethod
    def from_dict(cls, data: dict) -> ConnectionPoint:
        return cls(side=str(data.get("side", "right")), position=int(data.get("position", 0)))


@dataclass
class Waypoint:
    """An intermediate path point. Layer 0 = normal bend, 1 = jump marker."""
    x: float
    y: float
    layer: int = 0


@dataclass
class Node:
    id: int
    x: float = 0
    y: float = 0
    width: float = 120
    height: float = 60
    text: str = ""
    shape: NodeShape = NodeShape.RECTANGLE
    stroke_color: str = "#475569"
    stroke_width: Optional[int] = None
    stroke_dash_array: Optional[str] = None
    fill_color: Optional[str] = None
    icon: Optional[str] = None
    # Shape-library reference (e.g. "flowchart", "circuit"); opaque to the core
    template_id: Optional[str] = None
    template_shape_id: Optional[str] = None
    component_label: Optional[str] = None
    component_value: Optional[str] = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Node {self.id} must have positive size, got {self.width}x{self.height}."
            )

    @property
    def bounds(self) -> CellBounds:
        return CellBounds(self.x, self.y, self.width, self.height)

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2


@dataclass
class Edge:
    id: int
    from_id: int
    to_id: int
    from_connection: ConnectionPoint = field(default_factory=ConnectionPoint)
    to_connection: ConnectionPoint = field(
        default_factory=lambda: ConnectionPoint(side="left")
    )
    style: EdgeStyle = EdgeStyle.DIRECT
    # Legacy flag: a DIRECT edge with is_orthogonal set is routed as ORTHO
    is_orthogonal: bool = False
    arrow_direction: ArrowDirection = ArrowDirection.END
    waypoints: list[Waypoint] = field(default_factory=list)
    stroke_width: Optional[int] = None
    stroke_color: Optional[str] = None
    stroke_dash_array: Optional[str] = None
    is_double_line: bool = False
    label: str = ""
    custom_from_side: Optional[str] = None
    custom_to_side: Optional[str] = None
    # Cache of the last planning result (see routing.recompute_edge_paths)
    path_data: str = ""

    @property
    def effective_style(self) -> EdgeStyle:
        if self.style == EdgeStyle.DIRECT and self.is_orthogonal:
            return EdgeStyle.ORTHO
        return self.style


@dataclass
class EdgeLabel:
    id: int
    edge_id: int
    text: str = ""
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass
class Diagram:
    """A single diagram: node/edge/label tables plus monotonic id counters.

    Counters are sequence generators scoped to this diagram; ``clear``
    resets them.
    """
    name: str = "Diagram-1"
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    edge_labels: list[EdgeLabel] = field(default_factory=list)
    next_id: int = 1
    next_edge_id: int = 1
    next_label_id: int = 1

    # ----- lookups -----

    def get_node(self, node_id: int) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: int) -> Optional[Edge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def get_label(self, label_id: int) -> Optional[EdgeLabel]:
        for label in self.edge_labels:
            if label.id == label_id:
                return label
        return None

    def node_map(self) -> dict[int, Node]:
        return {n.id: n for n in self.nodes}

    def labels_for_edge(self, edge_id: int) -> list[EdgeLabel]:
        return [lbl for lbl in self.edge_labels if lbl.edge_id == edge_id]

    # ----- builder helpers -----

    def add_node(
        self,
        text: str = "",
        x: float = 0,
        y: float = 0,
        width: float = 120,
        height: float = 60,
        shape: NodeShape = NodeShape.RECTANGLE,
        **attrs: object,
    ) -> Node:
        node = Node(
            id=self.next_id, x=x, y=y, width=width, height=height,
            text=text, shape=shape, **attrs,
        )
        self.next_id += 1
        self.nodes.append(node)
        return node

    def add_edge(
        self,
        from_id: int,
        to_id: int,
        from_connection: Optional[ConnectionPoint] = None,
        to_connection: Optional[ConnectionPoint] = None,
        style: EdgeStyle = EdgeStyle.DIRECT,
        **attrs: object,
    ) -> Edge:
        """Add an edge; missing anchors are chosen by the geometry provider."""
        if from_connection is None or to_connection is None:
            from diagram_mcp.geometry import optimal_anchor_pair

            src = self.get_node(from_id)
            tgt = self.get_node(to_id)
            if src is not None and tgt is not None:
                auto_from, auto_to = optimal_anchor_pair(src, tgt)
            else:
                auto_from, auto_to = ConnectionPoint("right"), ConnectionPoint("left")
            from_connection = from_connection or auto_from
            to_connection = to_connection or auto_to

        edge = Edge(
            id=self.next_edge_id,
            from_id=from_id,
            to_id=to_id,
            from_connection=from_connection,
            to_connection=to_connection,
            style=style,
            **attrs,
        )
        self.next_edge_id += 1
        self.edges.append(edge)
        return edge

    def add_edge_label(
        self,
        edge_id: int,
        text: str,
        x: Optional[float] = None,
        y: Optional[float] = None,
    ) -> EdgeLabel:
        """Add a label to an edge. Position defaults to the edge midpoint."""
        if x is None or y is None:
            from diagram_mcp.geometry import edge_midpoint

            edge = self.get_edge(edge_id)
            if edge is not None:
                mx, my = edge_midpoint(edge, self.node_map())
                x = mx if x is None else x
                y = my if y is None else y
        label = EdgeLabel(id=self.next_label_id, edge_id=edge_id, text=text, x=x, y=y)
        self.next_label_id += 1
        self.edge_labels.append(label)
        return label

    # ----- mutations -----

    def move_node(self, node_id: int, x: float, y: float) -> bool:
        node = self.get_node(node_id)
        if node is None:
            return False
        node.x = x
        node.y = y
        return True

    def resize_node(self, node_id: int, width: float, height: float) -> bool:
        if width <= 0 or height <= 0:
            raise ValueError(f"Node size must be positive, got {width}x{height}.")
        node = self.get_node(node_id)
        if node is None:
            return False
        node.width = width
        node.height = height
        return True

    def delete_edge(self, edge_id: int) -> bool:
        """Delete an edge and its labels."""
        before = len(self.edges)
        self.edges = [e for e in self.edges if e.id != edge_id]
        if len(self.edges) == before:
            return False
        self.edge_labels = [lbl for lbl in self.edge_labels if lbl.edge_id != edge_id]
        return True

    def delete_node(self, node_id: int) -> bool:
        """Delete a node, cascading to incident edges and their labels."""
        if self.get_node(node_id) is None:
            return False
        doomed = [e.id for e in self.edges if e.from_id == node_id or e.to_id == node_id]
        for edge_id in doomed:
            self.delete_edge(edge_id)
        self.nodes = [n for n in self.nodes if n.id != node_id]
        return True

    def delete_label(self, label_id: int) -> bool:
        before = len(self.edge_labels)
        self.edge_labels = [lbl for lbl in self.edge_labels if lbl.id != label_id]
        return len(self.edge_labels) != before

    def add_waypoint(
        self,
        edge_id: int,
        x: Optional[float] = None,
        y: Optional[float] = None,
        layer: int = 0,
    ) -> Optional[int]:
        """Insert a waypoint into an edge and return its index.

        With no coordinates the waypoint splits the longest leg of the
        edge's route at its midpoint. Otherwise it joins the leg nearest
        to (x, y). Returns None when the edge does not exist.
        """
        edge = self.get_edge(edge_id)
        if edge is None:
            return None
        from diagram_mcp.geometry import longest_leg_midpoint, waypoint_insert_index

        nodes = self.node_map()
        if x is None or y is None:
            mx, my = longest_leg_midpoint(edge, nodes)
            x = mx if x is None else x
            y = my if y is None else y
        index = waypoint_insert_index(edge, nodes, x, y)
        edge.waypoints.insert(index, Waypoint(x, y, layer))
        return index

    def delete_waypoint(self, edge_id: int, index: int) -> bool:
        edge = self.get_edge(edge_id)
        if edge is None or not 0 <= index < len(edge.waypoints):
            return False
        del edge.waypoints[index]
        return True

    def clear(self) -> None:
        """Remove all content and reinitialize the id counters."""
        self.nodes = []
        self.edges = []
        self.edge_labels = []
        self.next_id = 1
        self.next_edge_id = 1
        self.next_label_id = 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def snap_to_grid(value: float, grid_size: int = 20) -> float:
    """Snap a coordinate to the nearest grid point."""
    return round(value / grid_size) * grid_size


@dataclass
class CellBounds:
    """Axis-aligned bounding box for a node."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    def expanded(self, margin: float) -> CellBounds:
        return CellBounds(
            self.x - margin, self.y - margin,
            self.width + 2 * margin, self.height + 2 * margin,
        )

    def intersects(self, other: 'CellBounds', margin: float = 0) -> bool:
        """Check if two bounding boxes overlap (with optional margin)."""
        return not (
            self.right + margin < other.x
            or other.right + margin < self.x
            or self.bottom + margin < other.y
            or other.bottom + margin < self.y
        )

    def contains_point(self, px: float, py: float, margin: float = 0) -> bool:
        """Check if a point is inside this bounding box (with margin)."""
        return (
            self.x - margin <= px <= self.right + margin
            and self.y - margin <= py <= self.bottom + margin
        )
