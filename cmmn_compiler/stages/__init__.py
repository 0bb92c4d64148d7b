"""
Compilation stages.

Stage 1: Business logic validation
Stage 2: Diagram layout
Stage 3: Sentry and edge routing
Stage 4: Condition synthesis
Stage 5: CMMN XML generation
"""

from cmmn_compiler.stages.condition_synthesis import (
    outcome_status_mapping,
    repetition_condition,
    synthesize_condition,
)
from cmmn_compiler.stages.graph_validation import GraphValidator, parse_business_logic
from cmmn_compiler.stages.layout import (
    AlternatingLayoutEngine,
    GridLayoutEngine,
    LayoutEngine,
    build_layout,
    get_layout_engine,
)
from cmmn_compiler.stages.sentry_routing import SentryRouter, route_sentries
from cmmn_compiler.stages.xml_generation import CMMNXMLGenerator, EmitterContext

__all__ = [
    "GraphValidator",
    "parse_business_logic",
    "LayoutEngine",
    "AlternatingLayoutEngine",
    "GridLayoutEngine",
    "build_layout",
    "get_layout_engine",
    "SentryRouter",
    "route_sentries",
    "synthesize_condition",
    "repetition_condition",
    "outcome_status_mapping",
    "CMMNXMLGenerator",
    "EmitterContext",
]
