"""Data models for the CMMN compiler."""

from cmmn_compiler.models.business_logic import (
    ApplicationDetail,
    ApprovalChainPattern,
    BusinessLogic,
    BusinessPattern,
    ComparisonOperator,
    ConditionalPattern,
    ConditionDefinition,
    LogicalOperator,
    ParallelPattern,
    PatternType,
    RetryPattern,
    SequentialPattern,
    StageDefinition,
    TaskDefinition,
    Transition,
)
from cmmn_compiler.models.cmmn_elements import (
    ROOT_CONTAINER,
    Edge,
    LayoutNode,
    LayoutResult,
    NodeKind,
    Point,
    Quadrant,
    Sentry,
    SentryKind,
    Side,
    StandardEvent,
)

__all__ = [
    "ApplicationDetail",
    "ApprovalChainPattern",
    "BusinessLogic",
    "BusinessPattern",
    "ComparisonOperator",
    "ConditionalPattern",
    "ConditionDefinition",
    "LogicalOperator",
    "ParallelPattern",
    "PatternType",
    "RetryPattern",
    "SequentialPattern",
    "StageDefinition",
    "TaskDefinition",
    "Transition",
    "ROOT_CONTAINER",
    "Edge",
    "LayoutNode",
    "LayoutResult",
    "NodeKind",
    "Point",
    "Quadrant",
    "Sentry",
    "SentryKind",
    "Side",
    "StandardEvent",
]
