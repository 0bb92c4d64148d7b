"""
CMMN Layout and Gating Model

Pydantic models for the derived state of one compilation pass: laid-out
nodes with their corner points, sentries with their anchor geometry, and the
routed edges that connect predecessor plan items to each sentry.

None of these objects outlive a single compile call.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

# Source key used by start edges of top-level nodes (the main stage plan item)
ROOT_CONTAINER = "__root__"

SENTRY_WIDTH = 14.0
SENTRY_HEIGHT = 22.0


class NodeKind(str, Enum):
    """Kinds of laid-out nodes."""

    STAGE = "stage"
    TASK = "task"


class StandardEvent(str, Enum):
    """CMMN plan item transitions used as sentry triggers."""

    START = "start"
    COMPLETE = "complete"


class SentryKind(str, Enum):
    """Why a sentry exists."""

    START = "start"  # Wired to the container's start event
    TRANSITION = "transition"  # Gated on one or more predecessors
    SELF_LOOP = "self_loop"  # Re-entry of the owning plan item


class Quadrant(str, Enum):
    """Position of a predecessor relative to the node it activates."""

    TOP_RIGHT = "topright"
    TOP_LEFT = "topleft"
    BOTTOM_RIGHT = "bottomright"
    BOTTOM_LEFT = "bottomleft"

    @property
    def is_top(self) -> bool:
        return self.value.startswith("top")

    @property
    def is_left(self) -> bool:
        return self.value.endswith("left")


class Side(str, Enum):
    """Boundary of a node a sentry is attached to."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    CORNER = "corner"


class Point(BaseModel):
    """A point in diagram coordinates."""

    x: float = Field(..., description="X coordinate")
    y: float = Field(..., description="Y coordinate")


class LayoutNode(BaseModel):
    """Bounding box of a stage or task, with derived corners."""

    slug: str = Field(..., description="Task or stage slug")
    name: str = Field(..., description="Display name")
    kind: NodeKind = Field(..., description="Stage or task")
    parent: Optional[str] = Field(None, description="Slug of the enclosing stage")

    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    tl: Optional[Point] = None
    tr: Optional[Point] = None
    bl: Optional[Point] = None
    br: Optional[Point] = None

    children: List["LayoutNode"] = Field(default_factory=list)

    def compute_corners(self) -> None:
        self.tl = Point(x=self.x, y=self.y)
        self.tr = Point(x=self.x + self.w, y=self.y)
        self.bl = Point(x=self.x, y=self.y + self.h)
        self.br = Point(x=self.x + self.w, y=self.y + self.h)

    def intersects(self, other: "LayoutNode") -> bool:
        """Whether the two bounding boxes share any interior area."""
        return not (
            self.x + self.w <= other.x
            or other.x + other.w <= self.x
            or self.y + self.h <= other.y
            or other.y + other.h <= self.y
        )


class Edge(BaseModel):
    """Routed connector from a predecessor plan item to a sentry."""

    source: str = Field(..., description="Source slug, or ROOT_CONTAINER")
    target: str = Field(..., description="Slug of the node owning the sentry")
    operator: StandardEvent = Field(..., description="Triggering standard event")
    waypoints: List[Point] = Field(..., min_length=2, max_length=4)
    source_docker: Point = Field(..., description="Attachment offset on the source shape")
    target_docker: Point = Field(..., description="Attachment offset on the sentry shape")


class Sentry(BaseModel):
    """Activation gate of one plan item."""

    owner: str = Field(..., description="Slug of the owning plan item")
    index: int = Field(..., description="Position among the owner's sentries")
    kind: SentryKind
    side: Side
    x: float
    y: float
    w: float = SENTRY_WIDTH
    h: float = SENTRY_HEIGHT
    condition: str = Field(default="", description="Synthesized boolean expression")
    edges: List[Edge] = Field(default_factory=list)

    @property
    def anchor(self) -> Point:
        """Centre of the sentry shape; lies on the owner's boundary."""
        return Point(x=self.x + self.w / 2, y=self.y + self.h / 2)


class LayoutResult(BaseModel):
    """Output of a layout engine."""

    nodes: List[LayoutNode] = Field(default_factory=list, description="Top-level nodes")
    container_width: float
    container_height: float

    def index(self) -> Dict[str, LayoutNode]:
        """All nodes, top-level and nested, by slug."""
        result: Dict[str, LayoutNode] = {}
        for node in self.nodes:
            result[node.slug] = node
            for child in node.children:
                result[child.slug] = child
        return result


__all__ = [
    "ROOT_CONTAINER",
    "SENTRY_WIDTH",
    "SENTRY_HEIGHT",
    "NodeKind",
    "StandardEvent",
    "SentryKind",
    "Quadrant",
    "Side",
    "Point",
    "LayoutNode",
    "Edge",
    "Sentry",
    "LayoutResult",
]
