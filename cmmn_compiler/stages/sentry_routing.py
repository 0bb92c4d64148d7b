"""
Sentry and Edge Routing Stage (Stage 3)

Derives the entry sentries of every plan item from the pattern transitions
and routes the connectors that feed them.

Placement rules:
- The first node of every container, and any node without incoming
  transitions, gets a start sentry on its top-left corner wired to the
  container's ``start`` event. A stage's first child entered by a forward
  transition from outside the stage waits for that transition instead.
- All other incoming transitions of a node share one sentry. With a single
  predecessor the sentry sits on the top or bottom edge depending on the
  predecessor's quadrant; with several predecessors the quadrants vote and
  the sentry sits on the left or right edge.
- Self-loops get a sentry of their own on the top edge.

Per-side counters shift every further sentry on the same side by one sentry
width (top/bottom) or height (left/right), so anchors never coincide.
Routing has no failure path: every edge gets a polyline.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from cmmn_compiler.models.business_logic import BusinessLogic, ConditionDefinition, Transition
from cmmn_compiler.models.cmmn_elements import (
    ROOT_CONTAINER,
    SENTRY_HEIGHT,
    SENTRY_WIDTH,
    Edge,
    LayoutNode,
    LayoutResult,
    Point,
    Quadrant,
    Sentry,
    SentryKind,
    Side,
    StandardEvent,
)
from cmmn_compiler.stages.condition_synthesis import synthesize_condition

logger = logging.getLogger(__name__)

# Main stage plan item origin in the diagram
ROOT_ORIGIN = Point(x=40.0, y=50.0)

# Offset of start edges inside their container
START_OFFSET = Point(x=8.0, y=10.0)

SELF_LOOP_OVERHANG = 20.0

# Fixed vote tie-break order
QUADRANT_PRIORITY = [
    Quadrant.TOP_RIGHT,
    Quadrant.TOP_LEFT,
    Quadrant.BOTTOM_RIGHT,
    Quadrant.BOTTOM_LEFT,
]

_HALF_W = SENTRY_WIDTH / 2
_HALF_H = SENTRY_HEIGHT / 2
CENTRE_DOCKER = Point(x=_HALF_W, y=_HALF_H)


@dataclass
class SideCounters:
    """Sentries already placed on each side of one node."""

    top: int = 0
    bottom: int = 0
    left: int = 0
    right: int = 0


def relative_quadrant(source: LayoutNode, target: LayoutNode) -> Quadrant:
    """Quadrant of ``source`` as seen from ``target``."""
    vertical = "bottom" if source.y > target.y else "top"
    horizontal = "right" if source.x > target.x else "left"
    return Quadrant(vertical + horizontal)


def vote_quadrant(quadrants: List[Quadrant]) -> Quadrant:
    """Most frequent quadrant; ties go to the earliest in QUADRANT_PRIORITY."""
    votes = Counter(quadrants)
    return max(QUADRANT_PRIORITY, key=lambda q: (votes[q], -QUADRANT_PRIORITY.index(q)))


class SentryRouter:
    """Builds sentries with routed edges for a laid-out graph."""

    def route(self, logic: BusinessLogic, layout: LayoutResult) -> Dict[str, List[Sentry]]:
        """Compute every sentry of the case.

        Args:
            logic: Validated business logic
            layout: Layout of the same graph

        Returns:
            Sentries per owning slug, in diagram order (top-level nodes
            first, then the children of each stage)
        """
        index = layout.index()
        transitions = logic.transitions()
        incoming: Dict[str, List[Transition]] = {}
        for transition in transitions:
            incoming.setdefault(transition.target, []).append(transition)

        containers: List[Tuple[str, Point, List[LayoutNode]]] = [
            (ROOT_CONTAINER, ROOT_ORIGIN, layout.nodes)
        ]
        for node in layout.nodes:
            if node.children:
                containers.append((node.slug, Point(x=node.x, y=node.y), node.children))

        container_of = {
            member.slug: container for container, _, members in containers for member in members
        }
        order = {task.slug: position for position, task in enumerate(logic.tasks)}

        result: Dict[str, List[Sentry]] = {}
        for container, origin, members in containers:
            for position, node in enumerate(members):
                node_incoming = incoming.get(node.slug, [])
                # a stage's first child entered from outside waits for that transition
                entered = container != ROOT_CONTAINER and any(
                    container_of.get(t.source) != container
                    and order.get(t.source, -1) < order.get(node.slug, -1)
                    for t in node_incoming
                )
                result[node.slug] = self._route_node(
                    node, position == 0 and not entered, container, origin, node_incoming, index
                )

        logger.debug(
            f"Routed {sum(len(s) for s in result.values())} sentries "
            f"for {len(transitions)} transitions"
        )
        return result

    def _route_node(
        self,
        node: LayoutNode,
        first_in_container: bool,
        container: str,
        origin: Point,
        transitions: List[Transition],
        index: Dict[str, LayoutNode],
    ) -> List[Sentry]:
        counters = SideCounters()
        sentries: List[Sentry] = []

        external = [t for t in transitions if not t.is_self_loop]
        loops = [t for t in transitions if t.is_self_loop]

        if first_in_container or not external:
            sentries.append(self._start_sentry(node, container, origin, len(sentries)))

        if external:
            sources: List[str] = []
            for transition in external:
                if transition.source not in sources:
                    sources.append(transition.source)
            condition = synthesize_condition(self._predicates(external))
            if len(sources) == 1:
                sentry = self._single_sentry(
                    node, index[sources[0]], counters, len(sentries), condition
                )
            else:
                sentry = self._multi_sentry(
                    node, [index[s] for s in sources], counters, len(sentries), condition
                )
            sentries.append(sentry)

        if loops:
            condition = synthesize_condition(self._predicates(loops))
            sentries.append(self._self_loop_sentry(node, counters, len(sentries), condition))

        return sentries

    @staticmethod
    def _predicates(transitions: List[Transition]) -> List[ConditionDefinition]:
        return [t.condition for t in transitions if t.condition is not None]

    def _start_sentry(
        self, node: LayoutNode, container: str, origin: Point, sentry_index: int
    ) -> Sentry:
        sentry = Sentry(
            owner=node.slug,
            index=sentry_index,
            kind=SentryKind.START,
            side=Side.CORNER,
            x=node.tl.x - _HALF_W,
            y=node.tl.y - _HALF_H,
        )
        anchor = sentry.anchor
        start = Point(x=origin.x + START_OFFSET.x, y=origin.y + START_OFFSET.y)
        sentry.edges.append(
            Edge(
                source=container,
                target=node.slug,
                operator=StandardEvent.START,
                waypoints=[start, Point(x=anchor.x, y=start.y), anchor],
                source_docker=START_OFFSET,
                target_docker=CENTRE_DOCKER,
            )
        )
        return sentry

    def _single_sentry(
        self,
        node: LayoutNode,
        source: LayoutNode,
        counters: SideCounters,
        sentry_index: int,
        condition: str,
    ) -> Sentry:
        quadrant = relative_quadrant(source, node)
        if quadrant.is_top:
            k = counters.top
            counters.top += 1
            x, y, side = node.tr.x - (k + 3) * SENTRY_WIDTH, node.tr.y - _HALF_H, Side.TOP
            exit_y = source.y + source.h * 3 / 4
        else:
            k = counters.bottom
            counters.bottom += 1
            x, y, side = node.br.x - (k + 3) * SENTRY_WIDTH, node.br.y - _HALF_H, Side.BOTTOM
            exit_y = source.y + source.h / 4

        sentry = Sentry(
            owner=node.slug,
            index=sentry_index,
            kind=SentryKind.TRANSITION,
            side=side,
            x=x,
            y=y,
            condition=condition,
        )
        # leave the predecessor on the side facing the target
        exit_x = source.tr.x if quadrant.is_left else source.tl.x
        start = Point(x=exit_x, y=exit_y)
        anchor = sentry.anchor
        sentry.edges.append(
            self._edge(source, node, [start, Point(x=anchor.x, y=start.y), anchor])
        )
        return sentry

    def _multi_sentry(
        self,
        node: LayoutNode,
        sources: List[LayoutNode],
        counters: SideCounters,
        sentry_index: int,
        condition: str,
    ) -> Sentry:
        quadrant = vote_quadrant([relative_quadrant(source, node) for source in sources])
        if quadrant.is_left:
            k = counters.left
            counters.left += 1
            x, y, side = node.tl.x - _HALF_W, node.tl.y + (k + 1) * SENTRY_HEIGHT, Side.LEFT
        else:
            k = counters.right
            counters.right += 1
            x, y, side = node.tr.x - _HALF_W, node.tr.y + (k + 1) * SENTRY_HEIGHT, Side.RIGHT

        sentry = Sentry(
            owner=node.slug,
            index=sentry_index,
            kind=SentryKind.TRANSITION,
            side=side,
            x=x,
            y=y,
            condition=condition,
        )
        anchor = sentry.anchor
        for source in sources:
            if relative_quadrant(source, node).is_top:
                start = Point(x=source.bl.x + source.w / 4, y=source.bl.y)
            else:
                start = Point(x=source.tl.x + source.w / 4, y=source.tl.y)
            sentry.edges.append(
                self._edge(source, node, [start, Point(x=start.x, y=anchor.y), anchor])
            )
        return sentry

    def _self_loop_sentry(
        self, node: LayoutNode, counters: SideCounters, sentry_index: int, condition: str
    ) -> Sentry:
        k = counters.top
        counters.top += 1
        sentry = Sentry(
            owner=node.slug,
            index=sentry_index,
            kind=SentryKind.SELF_LOOP,
            side=Side.TOP,
            x=node.tr.x - (k + 3) * SENTRY_WIDTH,
            y=node.tr.y - _HALF_H,
            condition=condition,
        )
        loop_y = node.tr.y + node.h / 4
        outer_x = node.tr.x + SELF_LOOP_OVERHANG
        waypoints = [
            Point(x=node.tr.x, y=loop_y),
            Point(x=outer_x, y=loop_y),
            Point(x=outer_x, y=sentry.y),
            Point(x=sentry.x + _HALF_W, y=sentry.y),
        ]
        sentry.edges.append(
            self._edge(node, node, waypoints, target_docker=Point(x=_HALF_W, y=0.0))
        )
        return sentry

    @staticmethod
    def _edge(
        source: LayoutNode,
        target: LayoutNode,
        waypoints: List[Point],
        target_docker: Optional[Point] = None,
    ) -> Edge:
        start = waypoints[0]
        return Edge(
            source=source.slug,
            target=target.slug,
            operator=StandardEvent.COMPLETE,
            waypoints=waypoints,
            source_docker=Point(x=start.x - source.x, y=start.y - source.y),
            target_docker=target_docker or CENTRE_DOCKER,
        )


def route_sentries(logic: BusinessLogic, layout: LayoutResult) -> Dict[str, List[Sentry]]:
    """Route all sentries with a default SentryRouter."""
    return SentryRouter().route(logic, layout)


__all__ = [
    "SentryRouter",
    "SideCounters",
    "route_sentries",
    "relative_quadrant",
    "vote_quadrant",
    "QUADRANT_PRIORITY",
    "ROOT_ORIGIN",
]
