"""
Business Logic Input Model

Pydantic models for the abstract case description the compiler consumes:
tasks with outcomes, optional stage groupings, and the five sequencing
patterns. Patterns form a tagged union on ``type``; each variant knows which
transitions it implies between its tasks.
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class PatternType(str, Enum):
    """Sequencing pattern kinds."""

    SEQUENTIAL = "sequential"
    APPROVAL_CHAIN = "approval-chain"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"
    RETRY = "retry"


class ComparisonOperator(str, Enum):
    """Outcome comparison used by a condition predicate."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"


class LogicalOperator(str, Enum):
    """Join between a predicate and the one declared before it."""

    AND = "AND"
    OR = "OR"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class TaskDefinition(_FrozenModel):
    """A human task in the case plan."""

    slug: str = Field(..., description="Unique task identifier")
    display_name: str = Field(..., alias="displayName", description="Human readable name")
    outcomes: Tuple[str, ...] = Field(..., min_length=1, description="Ordered outcome labels")
    assignee: Optional[str] = Field(None, description="Assignee expression")
    candidate_groups: Optional[str] = Field(None, alias="candidateGroups")
    due_date: Optional[str] = Field(None, alias="dueDate")
    form_key: Optional[str] = Field(None, alias="formKey")
    repetition_limit: Optional[int] = Field(
        None, alias="repetitionLimit", description="Maximum number of executions"
    )


class StageDefinition(_FrozenModel):
    """Optional grouping of tasks into a nested CMMN stage."""

    slug: str = Field(..., description="Unique stage identifier")
    display_name: str = Field(..., alias="displayName")
    tasks: Tuple[str, ...] = Field(..., min_length=1, description="Member task slugs in order")


class ConditionDefinition(_FrozenModel):
    """Target becomes eligible when source completes with the given outcome."""

    source_task: str = Field(..., alias="sourceTask")
    target_task: str = Field(..., alias="targetTask")
    outcome: str = Field(..., description="Outcome label compared against")
    operator: ComparisonOperator = Field(default=ComparisonOperator.EQUALS)
    logical_operator: LogicalOperator = Field(default=LogicalOperator.AND, alias="logicalOperator")


class Transition(_FrozenModel):
    """One activation edge derived from a pattern."""

    source: str
    target: str
    condition: Optional[ConditionDefinition] = None

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target


class _PatternBase(_FrozenModel):
    tasks: Tuple[str, ...] = Field(..., min_length=1, description="Participating task slugs")
    conditions: Tuple[ConditionDefinition, ...] = Field(default_factory=tuple)

    def implicit_transitions(self, tasks_by_slug: Dict[str, TaskDefinition]) -> List[Transition]:
        """Transitions the pattern implies when no condition is declared for a pair."""
        raise NotImplementedError

    def _chain(self, condition_for=None) -> List[Transition]:
        transitions = []
        for previous, current in zip(self.tasks, self.tasks[1:]):
            condition = condition_for(previous, current) if condition_for else None
            transitions.append(Transition(source=previous, target=current, condition=condition))
        return transitions

    def transitions(self, tasks_by_slug: Dict[str, TaskDefinition]) -> List[Transition]:
        """All transitions of this pattern in a stable order.

        Implicit transitions come first in pattern order; a declared condition
        for the same pair replaces the implicit edge. Remaining declared
        conditions follow in declaration order.
        """
        declared: Dict[Tuple[str, str], List[ConditionDefinition]] = {}
        for condition in self.conditions:
            declared.setdefault((condition.source_task, condition.target_task), []).append(condition)

        result: List[Transition] = []
        emitted = set()
        for implicit in self.implicit_transitions(tasks_by_slug):
            key = (implicit.source, implicit.target)
            if key in emitted:
                continue
            emitted.add(key)
            if key in declared:
                result.extend(
                    Transition(source=key[0], target=key[1], condition=c) for c in declared[key]
                )
            else:
                result.append(implicit)

        for condition in self.conditions:
            key = (condition.source_task, condition.target_task)
            if key not in emitted:
                result.append(Transition(source=key[0], target=key[1], condition=condition))
        return result

    def repeatable_targets(self) -> List[str]:
        """Tasks this pattern re-enters; only retry patterns have any."""
        return []


class SequentialPattern(_PatternBase):
    """Each task starts when its predecessor completes."""

    type: Literal["sequential"] = "sequential"

    def implicit_transitions(self, tasks_by_slug):
        return self._chain()


class ApprovalChainPattern(_PatternBase):
    """Each step proceeds only on the predecessor's first (approving) outcome."""

    type: Literal["approval-chain"] = "approval-chain"

    def implicit_transitions(self, tasks_by_slug):
        def approving(previous: str, current: str) -> ConditionDefinition:
            return ConditionDefinition(
                source_task=previous,
                target_task=current,
                outcome=tasks_by_slug[previous].outcomes[0],
            )

        return self._chain(approving)


class ParallelPattern(_PatternBase):
    """Tasks run side by side; only declared conditions gate them."""

    type: Literal["parallel"] = "parallel"

    def implicit_transitions(self, tasks_by_slug):
        return []


class ConditionalPattern(_PatternBase):
    """The first task decides which of the following branches opens."""

    type: Literal["conditional"] = "conditional"

    def implicit_transitions(self, tasks_by_slug):
        decision = self.tasks[0]
        return [Transition(source=decision, target=branch) for branch in self.tasks[1:]]


class RetryPattern(_PatternBase):
    """A sequence whose declared back-edges re-open earlier tasks."""

    type: Literal["retry"] = "retry"

    def implicit_transitions(self, tasks_by_slug):
        return self._chain()

    def repeatable_targets(self) -> List[str]:
        order = {slug: index for index, slug in enumerate(self.tasks)}
        targets: List[str] = []
        for condition in self.conditions:
            source_index = order.get(condition.source_task)
            target_index = order.get(condition.target_task)
            is_back_edge = (
                source_index is not None
                and target_index is not None
                and target_index <= source_index
            )
            if is_back_edge and condition.target_task not in targets:
                targets.append(condition.target_task)
        return targets


BusinessPattern = Annotated[
    Union[
        SequentialPattern,
        ApprovalChainPattern,
        ParallelPattern,
        ConditionalPattern,
        RetryPattern,
    ],
    Field(discriminator="type"),
]


class BusinessLogic(_FrozenModel):
    """Validated business-logic graph consumed by every downstream stage."""

    tasks: Tuple[TaskDefinition, ...] = Field(..., min_length=1)
    patterns: Tuple[BusinessPattern, ...] = Field(default_factory=tuple)
    stages: Tuple[StageDefinition, ...] = Field(default_factory=tuple)

    def task_index(self) -> Dict[str, TaskDefinition]:
        return {task.slug: task for task in self.tasks}

    def get_task(self, slug: str) -> Optional[TaskDefinition]:
        return self.task_index().get(slug)

    def stage_of(self, slug: str) -> Optional[StageDefinition]:
        """Stage a task belongs to, if any."""
        for stage in self.stages:
            if slug in stage.tasks:
                return stage
        return None

    def transitions(self) -> List[Transition]:
        """Transitions of all patterns, exact duplicates removed."""
        tasks_by_slug = self.task_index()
        seen = set()
        result: List[Transition] = []
        for pattern in self.patterns:
            for transition in pattern.transitions(tasks_by_slug):
                if transition in seen:
                    continue
                seen.add(transition)
                result.append(transition)
        return result

    def repeatable_tasks(self) -> List[str]:
        """Tasks that declare a repetition limit or are re-entered by a retry."""
        slugs = [t.slug for t in self.tasks if t.repetition_limit and t.repetition_limit > 1]
        for pattern in self.patterns:
            for slug in pattern.repeatable_targets():
                if slug not in slugs:
                    slugs.append(slug)
        for transition in self.transitions():
            if transition.is_self_loop and transition.target not in slugs:
                slugs.append(transition.target)
        return slugs

    def to_payload(self) -> dict:
        """Serialize back to the camelCase wire format."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ApplicationDetail(_FrozenModel):
    """Application that owns the compiled case."""

    identifier: str = Field(..., description="Application identifier")
    slug: str = Field(default="app", description="Application slug")


__all__ = [
    "PatternType",
    "ComparisonOperator",
    "LogicalOperator",
    "TaskDefinition",
    "StageDefinition",
    "ConditionDefinition",
    "Transition",
    "SequentialPattern",
    "ApprovalChainPattern",
    "ParallelPattern",
    "ConditionalPattern",
    "RetryPattern",
    "BusinessPattern",
    "BusinessLogic",
    "ApplicationDetail",
]
