"""
Condition Synthesis Stage (Stage 4)

Turns outcome predicates into the expression strings embedded in the
document: sentry if-part conditions, repetition rule conditions and the
outcome-to-status payload consumed by the SetVarriable task listener.
"""

import json
import logging
from typing import Dict, List, Optional, Sequence

from cmmn_compiler.models.business_logic import (
    ComparisonOperator,
    ConditionDefinition,
    LogicalOperator,
    TaskDefinition,
)

logger = logging.getLogger(__name__)

OUTCOME_VARIABLE = "_outcome"
STATUS_VARIABLE = "_status"
REPETITION_COUNTER = "repetitionCounter"

OUTCOME_STATUS = {
    "completed": "nextTask",
    "approved": "nextApproval",
    "rejected": "rejected",
    "pending": "pending",
    "review": "underReview",
}
DEFAULT_STATUS = "pending"

_JOINERS = {
    LogicalOperator.AND: "&&",
    LogicalOperator.OR: "||",
}


def string_literal(value: str) -> str:
    """Double-quoted expression literal with backslashes and quotes escaped."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def predicate(condition: ConditionDefinition) -> str:
    """Single outcome comparison, e.g. ``vars:equals(_outcome,"approved")``."""
    function = ComparisonOperator(condition.operator).value
    return f"vars:{function}({OUTCOME_VARIABLE},{string_literal(condition.outcome)})"


def synthesize_condition(conditions: Sequence[ConditionDefinition]) -> str:
    """Join predicates left to right into one ``${...}`` expression.

    Each predicate after the first is joined with the logical operator it
    declares. No predicates means an unconditional sentry, so the result is
    the empty string.
    """
    if not conditions:
        return ""

    parts: List[str] = [predicate(conditions[0])]
    for condition in conditions[1:]:
        parts.append(_JOINERS[LogicalOperator(condition.logical_operator)])
        parts.append(predicate(condition))
    expression = "${" + "".join(parts) + "}"
    logger.debug(f"Synthesized condition {expression}")
    return expression


def repetition_condition(limit: int) -> str:
    """Repetition rule guard for a plan item executed at most ``limit`` times."""
    return "${" + f"{REPETITION_COUNTER} < {limit}" + "}"


def status_for_outcome(outcome: str) -> str:
    return OUTCOME_STATUS.get(outcome.lower(), DEFAULT_STATUS)


def outcome_status_rules(task: TaskDefinition) -> List[Dict]:
    return [
        {
            "conditions": [{"key": OUTCOME_VARIABLE, "value": outcome, "op": "eq"}],
            "output": [{"key": STATUS_VARIABLE, "value": status_for_outcome(outcome)}],
        }
        for outcome in task.outcomes
    ]


def outcome_status_mapping(task: TaskDefinition) -> str:
    """Compact JSON rules mapping each task outcome to a ``_status`` value."""
    return json.dumps(outcome_status_rules(task), separators=(",", ":"))


def parse_outcome_status_mapping(payload: str) -> Optional[List[Dict]]:
    """Decode a SetVarriable payload; None when it is not a list of rules."""
    try:
        rules = json.loads(payload)
    except (TypeError, ValueError):
        return None
    if not isinstance(rules, list):
        return None
    return rules


__all__ = [
    "OUTCOME_VARIABLE",
    "STATUS_VARIABLE",
    "OUTCOME_STATUS",
    "string_literal",
    "predicate",
    "synthesize_condition",
    "repetition_condition",
    "status_for_outcome",
    "outcome_status_mapping",
    "parse_outcome_status_mapping",
]
