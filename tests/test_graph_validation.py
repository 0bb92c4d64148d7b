"""
Tests for Stage 1 (Business Logic Validation).

Tests:
- Decoding JSON text and mappings
- Task, stage and pattern reference checks
- Condition normalization (operator / logicalOperator)
- Transition derivation per pattern type
"""

import json
import logging

import pytest

from cmmn_compiler.compiler.errors import ValidationError
from cmmn_compiler.models.business_logic import (
    BusinessLogic,
    ComparisonOperator,
    LogicalOperator,
    PatternType,
)
from cmmn_compiler.stages.graph_validation import GraphValidator, parse_business_logic


def _task(slug, outcomes=("completed",), **extra):
    data = {"slug": slug, "displayName": slug.title(), "outcomes": list(outcomes)}
    data.update(extra)
    return data


@pytest.fixture
def validator():
    return GraphValidator()


class TestDecoding:
    """Accepted input shapes."""

    def test_accepts_mapping(self, validator, scenario_logic):
        logic = validator.validate(scenario_logic)
        assert isinstance(logic, BusinessLogic)
        assert [t.slug for t in logic.tasks] == ["submit", "review", "finalize"]

    def test_accepts_json_text(self, validator, scenario_logic):
        logic = validator.validate(json.dumps(scenario_logic))
        assert len(logic.tasks) == 3
        assert logic.patterns[0].type == PatternType.SEQUENTIAL.value

    def test_rejects_malformed_json(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate("{not json")
        assert exc_info.value.message.startswith("Invalid JSON format for business logic")

    def test_rejects_non_object(self, validator):
        with pytest.raises(ValidationError):
            validator.validate("[1, 2, 3]")

    def test_module_level_helper(self, scenario_logic):
        assert parse_business_logic(scenario_logic).get_task("review").display_name == "Review"


class TestTaskValidation:

    def test_requires_at_least_one_task(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [], "patterns": []})
        assert exc_info.value.message == "Business logic must include at least one task"
        assert exc_info.value.field == "tasks"

    def test_missing_slug(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("a"), {"displayName": "B", "outcomes": ["x"]}]})
        error = exc_info.value
        assert error.message == "Task 2: slug is required and must be a string"
        assert error.index == 1
        assert error.field == "slug"

    def test_duplicate_slug(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("a"), _task("b"), _task("a")]})
        assert exc_info.value.message == "Task 3: duplicate slug 'a'"
        assert exc_info.value.index == 2

    def test_empty_outcomes(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("a", outcomes=())]})
        assert exc_info.value.field == "outcomes"

    @pytest.mark.parametrize("limit", [0, -3, "5", True])
    def test_invalid_repetition_limit(self, validator, limit):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("a", repetitionLimit=limit)]})
        assert exc_info.value.message == "Task 1: repetitionLimit must be a positive integer"

    def test_optional_attributes_kept(self, validator):
        logic = validator.validate(
            {
                "tasks": [
                    _task(
                        "a",
                        assignee="${manager}",
                        candidateGroups="finance",
                        dueDate="P2D",
                        formKey="expenseForm",
                        repetitionLimit=3,
                    )
                ]
            }
        )
        task = logic.tasks[0]
        assert task.assignee == "${manager}"
        assert task.candidate_groups == "finance"
        assert task.due_date == "P2D"
        assert task.form_key == "expenseForm"
        assert task.repetition_limit == 3

    def test_patterns_are_optional(self, validator):
        logic = validator.validate({"tasks": [_task("solo")]})
        assert logic.patterns == ()
        assert logic.transitions() == []


class TestXmlCompatibility:
    """Text that cannot be serialized is rejected up front."""

    @pytest.mark.parametrize(
        "task, field",
        [
            (_task("a", outcomes=("ok\x01",)), "outcomes"),
            (_task("a\x00b"), "slug"),
            ({"slug": "a", "displayName": "Bell\x07", "outcomes": ["done"]}, "displayName"),
            (_task("a", formKey="form\x1b"), "formKey"),
        ],
    )
    def test_control_characters(self, validator, task, field):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("first"), task]})
        error = exc_info.value
        assert error.message == f"Task 2: {field} contains characters not allowed in XML"
        assert error.index == 1
        assert error.field == field

    def test_cdata_terminator_in_outcome(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("a", outcomes=("done]]>",))]})
        assert exc_info.value.message == "Task 1: outcomes must not contain ']]>'"

    def test_condition_outcome(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                {
                    "tasks": [_task("a"), _task("b")],
                    "patterns": [
                        {
                            "type": "parallel",
                            "tasks": ["a", "b"],
                            "conditions": [
                                {"sourceTask": "a", "targetTask": "b", "outcome": "ok\x02"}
                            ],
                        }
                    ],
                }
            )
        assert exc_info.value.field == "outcome"
        assert exc_info.value.index == 0

    def test_stage_slug(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                {"tasks": [_task("a")], "stages": [{"slug": "s\x0c", "tasks": ["a"]}]}
            )
        assert exc_info.value.message == "Stage 1: slug contains characters not allowed in XML"

    def test_tabs_newlines_and_unicode_allowed(self, validator):
        logic = validator.validate(
            {"tasks": [_task("a", outcomes=("line\none", "tab\tbed", "gut ✓", 'say "yes"'))]}
        )
        assert logic.tasks[0].outcomes == ("line\none", "tab\tbed", "gut ✓", 'say "yes"')


class TestPatternValidation:

    def test_unknown_pattern_type(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                {"tasks": [_task("a")], "patterns": [{"type": "loop", "tasks": ["a"]}]}
            )
        assert exc_info.value.message == (
            "Pattern 1: type must be one of: "
            "sequential, approval-chain, parallel, conditional, retry"
        )

    def test_unknown_task_reference(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                {
                    "tasks": [_task("a")],
                    "patterns": [{"type": "sequential", "tasks": ["a", "ghost"]}],
                }
            )
        assert exc_info.value.message == "Pattern 1: referenced task 'ghost' does not exist"
        assert exc_info.value.index == 0

    def test_unknown_condition_source(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                {
                    "tasks": [_task("a"), _task("b")],
                    "patterns": [
                        {
                            "type": "sequential",
                            "tasks": ["a", "b"],
                            "conditions": [
                                {"sourceTask": "x", "targetTask": "b", "outcome": "completed"}
                            ],
                        }
                    ],
                }
            )
        assert exc_info.value.message == "Pattern 1, condition 1: sourceTask 'x' does not exist"
        assert exc_info.value.field == "sourceTask"

    def test_logical_operator_given_as_operator(self, validator, join_logic):
        logic = validator.validate(join_logic)
        second = logic.patterns[0].conditions[1]
        assert second.operator == ComparisonOperator.EQUALS
        assert second.logical_operator == LogicalOperator.AND

    def test_logical_operator_is_upper_cased(self, validator):
        logic = validator.validate(
            {
                "tasks": [_task("a"), _task("b")],
                "patterns": [
                    {
                        "type": "parallel",
                        "tasks": ["a", "b"],
                        "conditions": [
                            {
                                "sourceTask": "a",
                                "targetTask": "b",
                                "outcome": "completed",
                                "logicalOperator": "or",
                            }
                        ],
                    }
                ],
            }
        )
        assert logic.patterns[0].conditions[0].logical_operator == LogicalOperator.OR

    def test_undeclared_outcome_only_warns(self, validator, caplog):
        data = {
            "tasks": [_task("a"), _task("b")],
            "patterns": [
                {
                    "type": "sequential",
                    "tasks": ["a", "b"],
                    "conditions": [{"sourceTask": "a", "targetTask": "b", "outcome": "maybe"}],
                }
            ],
        }
        with caplog.at_level(logging.WARNING):
            logic = validator.validate(data)
        assert logic.transitions()[0].condition.outcome == "maybe"
        assert "not declared by task 'a'" in caplog.text


class TestStageValidation:

    def test_stage_defaults_display_name(self, validator):
        logic = validator.validate(
            {"tasks": [_task("a"), _task("b")], "stages": [{"slug": "s1", "tasks": ["a"]}]}
        )
        assert logic.stages[0].display_name == "s1"
        assert logic.stage_of("a").slug == "s1"
        assert logic.stage_of("b") is None

    def test_stage_slug_collides_with_task(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("a")], "stages": [{"slug": "a", "tasks": ["a"]}]})
        assert "already used" in exc_info.value.message

    def test_task_in_two_stages(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                {
                    "tasks": [_task("a"), _task("b")],
                    "stages": [
                        {"slug": "s1", "tasks": ["a"]},
                        {"slug": "s2", "tasks": ["a", "b"]},
                    ],
                }
            )
        assert exc_info.value.message == "Stage 2: task 'a' already belongs to stage 's1'"
        assert exc_info.value.index == 1

    def test_stage_member_must_exist(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"tasks": [_task("a")], "stages": [{"slug": "s", "tasks": ["z"]}]})
        assert "referenced task 'z' does not exist" in exc_info.value.message


class TestTransitions:
    """Transitions implied by each pattern type."""

    def test_declared_condition_replaces_implicit_edge(self, validator, scenario_logic):
        transitions = validator.validate(scenario_logic).transitions()
        assert [(t.source, t.target) for t in transitions] == [
            ("submit", "review"),
            ("review", "finalize"),
        ]
        assert transitions[0].condition.outcome == "submitted"
        assert transitions[1].condition is None

    def test_approval_chain_uses_first_outcome(self, validator):
        logic = validator.validate(
            {
                "tasks": [_task("a", ("approved", "rejected")), _task("b", ("ok", "nok")), _task("c")],
                "patterns": [{"type": "approval-chain", "tasks": ["a", "b", "c"]}],
            }
        )
        outcomes = [(t.source, t.target, t.condition.outcome) for t in logic.transitions()]
        assert outcomes == [("a", "b", "approved"), ("b", "c", "ok")]

    def test_parallel_has_no_implicit_edges(self, validator):
        logic = validator.validate(
            {
                "tasks": [_task("a"), _task("b")],
                "patterns": [{"type": "parallel", "tasks": ["a", "b"]}],
            }
        )
        assert logic.transitions() == []

    def test_conditional_fans_out_from_first_task(self, validator):
        logic = validator.validate(
            {
                "tasks": [_task("decide"), _task("yes"), _task("no")],
                "patterns": [{"type": "conditional", "tasks": ["decide", "yes", "no"]}],
            }
        )
        assert [(t.source, t.target) for t in logic.transitions()] == [
            ("decide", "yes"),
            ("decide", "no"),
        ]

    def test_retry_back_edge_makes_target_repeatable(self, validator):
        logic = validator.validate(
            {
                "tasks": [_task("draft"), _task("check", ("ok", "redo"))],
                "patterns": [
                    {
                        "type": "retry",
                        "tasks": ["draft", "check"],
                        "conditions": [
                            {"sourceTask": "check", "targetTask": "draft", "outcome": "redo"}
                        ],
                    }
                ],
            }
        )
        assert logic.repeatable_tasks() == ["draft"]
        assert ("check", "draft") in [(t.source, t.target) for t in logic.transitions()]

    def test_duplicate_transitions_across_patterns_collapse(self, validator):
        logic = validator.validate(
            {
                "tasks": [_task("a"), _task("b")],
                "patterns": [
                    {"type": "sequential", "tasks": ["a", "b"]},
                    {"type": "sequential", "tasks": ["a", "b"]},
                ],
            }
        )
        assert len(logic.transitions()) == 1

    def test_payload_round_trips_aliases(self, validator, scenario_logic):
        payload = validator.validate(scenario_logic).to_payload()
        assert payload["tasks"][0]["displayName"] == "Submit"
        assert payload["patterns"][0]["conditions"][0]["sourceTask"] == "submit"
