"""
Diagram Layout Stage (Stage 2)

Assigns bounding boxes to every stage and task of a validated business-logic
graph in a single deterministic pass. Two engines are provided:

- AlternatingLayoutEngine: two-row zig-zag placement; the canonical layout.
- GridLayoutEngine: square grid packing; a simplified fallback.

Both place stage children with the same alternation relative to the stage
origin, so sibling boxes never intersect.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import List, Tuple

from cmmn_compiler.compiler.config import LayoutMode
from cmmn_compiler.models.business_logic import BusinessLogic
from cmmn_compiler.models.cmmn_elements import LayoutNode, LayoutResult, NodeKind

logger = logging.getLogger(__name__)

TASK_HEIGHT = 80
TASK_WIDTH = 120
MARGIN = 50

# Grid fallback
GRID_ORIGIN_X = 120
GRID_ORIGIN_Y = 150
GRID_GAP_X = 60
GRID_GAP_Y = 70


def split_alternating(items: List) -> Tuple[List, List]:
    """Split by index parity; the even ("top") group comes back reversed."""
    top = [item for index, item in enumerate(items) if index % 2 == 0]
    bottom = [item for index, item in enumerate(items) if index % 2 == 1]
    top.reverse()
    return top, bottom


def stage_footprint(child_count: int) -> Tuple[float, float]:
    """(width, height) of a stage holding ``child_count`` tasks."""
    width = child_count * TASK_WIDTH + (child_count + 1) * MARGIN
    height = child_count * TASK_HEIGHT + (child_count + 1) * MARGIN
    return float(width), float(height)


class LayoutEngine(ABC):
    """Base class for layout engines."""

    def layout(self, logic: BusinessLogic) -> LayoutResult:
        """Lay out all nodes of the graph.

        Args:
            logic: Validated business logic

        Returns:
            LayoutResult with top-level nodes (children nested) and the
            size of the main stage container
        """
        nodes = self.build_nodes(logic)
        self.place(nodes)
        for node in nodes:
            node.compute_corners()
            if node.kind == NodeKind.STAGE:
                self.place_children(node)

        width, height = self.container_size(nodes)
        logger.debug(
            f"{type(self).__name__} placed {len(nodes)} top-level nodes "
            f"in a {width}x{height} container"
        )
        return LayoutResult(nodes=nodes, container_width=width, container_height=height)

    def build_nodes(self, logic: BusinessLogic) -> List[LayoutNode]:
        """Top-level nodes in task order.

        A stage takes the position of its first member task; tasks that belong
        to no stage are leaf nodes.
        """
        nodes: List[LayoutNode] = []
        placed_stages = set()
        tasks_by_slug = logic.task_index()
        for task in logic.tasks:
            stage = logic.stage_of(task.slug)
            if stage is None:
                nodes.append(
                    LayoutNode(
                        slug=task.slug,
                        name=task.display_name,
                        kind=NodeKind.TASK,
                        w=TASK_WIDTH,
                        h=TASK_HEIGHT,
                    )
                )
                continue
            if stage.slug in placed_stages:
                continue
            placed_stages.add(stage.slug)

            children = [
                LayoutNode(
                    slug=slug,
                    name=tasks_by_slug[slug].display_name,
                    kind=NodeKind.TASK,
                    parent=stage.slug,
                    w=TASK_WIDTH,
                    h=TASK_HEIGHT,
                )
                for slug in stage.tasks
            ]
            width, height = stage_footprint(len(children))
            nodes.append(
                LayoutNode(
                    slug=stage.slug,
                    name=stage.display_name,
                    kind=NodeKind.STAGE,
                    w=width,
                    h=height,
                    children=children,
                )
            )
        return nodes

    @abstractmethod
    def place(self, nodes: List[LayoutNode]) -> None:
        """Assign x and y to every top-level node."""

    @abstractmethod
    def container_size(self, nodes: List[LayoutNode]) -> Tuple[float, float]:
        """(width, height) of the main stage container."""

    def place_children(self, stage: LayoutNode) -> None:
        """Place a stage's tasks with the top/bottom alternation.

        Child i sits in column i; even children are stacked (reversed) from
        the stage top and odd children continue below them.
        """
        for index, child in enumerate(stage.children):
            child.x = stage.x + (index + 1) * MARGIN + index * TASK_WIDTH

        top, bottom = split_alternating(stage.children)
        for k, child in enumerate(top):
            child.y = stage.y + k * TASK_HEIGHT + (k + 1) * MARGIN
        offset = len(top) * (TASK_HEIGHT + MARGIN)
        for k, child in enumerate(bottom):
            child.y = stage.y + offset + k * TASK_HEIGHT + (k + 1) * MARGIN

        for child in stage.children:
            child.compute_corners()


class AlternatingLayoutEngine(LayoutEngine):
    """Two-row zig-zag layout.

    Nodes alternate between a top and a bottom group; the reversed top group
    and then the bottom group are stacked downward so no two nodes share a
    vertical band, while x advances left to right in original order.
    """

    BASELINE_Y = 30
    BASELINE_X = 50

    def place(self, nodes: List[LayoutNode]) -> None:
        top, bottom = split_alternating(nodes)
        cursor = self.BASELINE_Y
        for node in top + bottom:
            node.y = cursor + MARGIN
            cursor += node.h + MARGIN

        cursor = self.BASELINE_X
        for node in nodes:
            node.x = cursor + MARGIN
            cursor += node.w + MARGIN

    def container_size(self, nodes: List[LayoutNode]) -> Tuple[float, float]:
        task_count = sum(len(node.children) or 1 for node in nodes)
        # each leaf counts as a single child
        margins = len(nodes) + 1 + sum((len(node.children) or 1) + 1 for node in nodes)
        height = task_count * TASK_HEIGHT + margins * MARGIN
        width = task_count * TASK_WIDTH + margins * MARGIN
        return float(width), float(height)


class GridLayoutEngine(LayoutEngine):
    """Square grid packing with a uniform cell pitch."""

    def place(self, nodes: List[LayoutNode]) -> None:
        if not nodes:
            return
        columns = math.ceil(math.sqrt(len(nodes)))
        pitch_x = max(node.w for node in nodes) + GRID_GAP_X
        pitch_y = max(node.h for node in nodes) + GRID_GAP_Y
        for index, node in enumerate(nodes):
            row, column = divmod(index, columns)
            node.x = GRID_ORIGIN_X + column * pitch_x
            node.y = GRID_ORIGIN_Y + row * pitch_y

    def container_size(self, nodes: List[LayoutNode]) -> Tuple[float, float]:
        # main stage plan item sits at (40, 50)
        right = max((node.x + node.w for node in nodes), default=GRID_ORIGIN_X)
        bottom = max((node.y + node.h for node in nodes), default=GRID_ORIGIN_Y)
        return float(right - 40 + MARGIN), float(bottom - 50 + MARGIN)


_ENGINES = {
    LayoutMode.ALTERNATING: AlternatingLayoutEngine,
    LayoutMode.GRID: GridLayoutEngine,
}


def get_layout_engine(mode: LayoutMode = LayoutMode.ALTERNATING) -> LayoutEngine:
    """Engine instance for a layout mode."""
    return _ENGINES[LayoutMode(mode)]()


def build_layout(logic: BusinessLogic, mode: LayoutMode = LayoutMode.ALTERNATING) -> LayoutResult:
    """Lay out a graph with the engine selected by ``mode``."""
    return get_layout_engine(mode).layout(logic)


__all__ = [
    "TASK_HEIGHT",
    "TASK_WIDTH",
    "MARGIN",
    "LayoutEngine",
    "AlternatingLayoutEngine",
    "GridLayoutEngine",
    "get_layout_engine",
    "build_layout",
    "split_alternating",
    "stage_footprint",
]
