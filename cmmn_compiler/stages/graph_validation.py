"""
Business Logic Validation Stage (Stage 1)

Decodes raw business logic (a mapping or JSON text), checks it for structural
and referential consistency, and returns a frozen BusinessLogic graph.

Every failure raises ValidationError naming the offending entry; nothing is
laid out or emitted for an invalid graph.
"""

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from cmmn_compiler.compiler.errors import ValidationError
from cmmn_compiler.models.business_logic import (
    BusinessLogic,
    ComparisonOperator,
    LogicalOperator,
    PatternType,
)

logger = logging.getLogger(__name__)

VALID_PATTERN_TYPES = [p.value for p in PatternType]
VALID_COMPARISONS = [op.value for op in ComparisonOperator]
VALID_LOGICAL_OPERATORS = [op.value for op in LogicalOperator]

_OPTIONAL_TASK_STRINGS = ("assignee", "candidateGroups", "dueDate", "formKey")

# Characters XML 1.0 cannot carry
_XML_INVALID = re.compile("[^\t\n\r\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")

# Outcomes end up in CDATA sections
_CDATA_END = "]]>"


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_xml_text(value: str) -> bool:
    """True when every character of ``value`` is allowed in an XML document."""
    return _XML_INVALID.search(value) is None


class GraphValidator:
    """Validates and normalizes business-logic input."""

    def decode(self, raw: Any) -> Mapping[str, Any]:
        """Decode JSON text into a mapping; mappings pass through."""
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON format for business logic: {e.msg}") from e
        if not isinstance(raw, Mapping):
            raise ValidationError("Business logic must be an object")
        return raw

    def validate(self, raw: Any) -> BusinessLogic:
        """Validate raw business logic and return the normalized graph.

        Args:
            raw: Mapping or JSON string with ``tasks``, ``patterns`` and
                optional ``stages``

        Returns:
            Frozen BusinessLogic

        Raises:
            ValidationError: On the first inconsistency found
        """
        data = self.decode(raw)

        tasks = self._validate_tasks(data.get("tasks"))
        slugs = [task["slug"] for task in tasks]
        outcomes_by_slug = {task["slug"]: task["outcomes"] for task in tasks}

        stages = self._validate_stages(data.get("stages"), set(slugs))
        patterns = self._validate_patterns(data.get("patterns"), set(slugs), outcomes_by_slug)

        try:
            logic = BusinessLogic.model_validate(
                {"tasks": tasks, "patterns": patterns, "stages": stages}
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise ValidationError(f"{location}: {first['msg']}", field=location) from e

        logger.debug(
            f"Validated business logic: {len(logic.tasks)} tasks, "
            f"{len(logic.patterns)} patterns, {len(logic.stages)} stages"
        )
        return logic

    def _check_xml(
        self, value: str, label: str, index: int, field: str, cdata: bool = False
    ) -> None:
        if not is_xml_text(value):
            raise ValidationError(
                f"{label}: {field} contains characters not allowed in XML",
                index=index,
                field=field,
            )
        if cdata and _CDATA_END in value:
            raise ValidationError(
                f"{label}: {field} must not contain '{_CDATA_END}'", index=index, field=field
            )

    def _validate_tasks(self, tasks: Any) -> List[Dict[str, Any]]:
        if not isinstance(tasks, list) or not tasks:
            raise ValidationError("Business logic must include at least one task", field="tasks")

        parsed: List[Dict[str, Any]] = []
        seen: Set[str] = set()
        for index, task in enumerate(tasks):
            label = f"Task {index + 1}"
            if not isinstance(task, Mapping):
                raise ValidationError(f"{label}: must be an object", index=index)

            slug = task.get("slug")
            if not _is_text(slug):
                raise ValidationError(
                    f"{label}: slug is required and must be a string", index=index, field="slug"
                )
            self._check_xml(slug, label, index, "slug")
            if slug in seen:
                raise ValidationError(
                    f"{label}: duplicate slug '{slug}'", index=index, field="slug"
                )
            seen.add(slug)

            display_name = task.get("displayName")
            if not _is_text(display_name):
                raise ValidationError(
                    f"{label}: displayName is required and must be a string",
                    index=index,
                    field="displayName",
                )
            self._check_xml(display_name, label, index, "displayName")

            outcomes = task.get("outcomes")
            if not isinstance(outcomes, list) or not outcomes:
                raise ValidationError(
                    f"{label}: outcomes must be a non-empty array", index=index, field="outcomes"
                )
            if not all(_is_text(outcome) for outcome in outcomes):
                raise ValidationError(
                    f"{label}: outcomes must be non-empty strings", index=index, field="outcomes"
                )
            for outcome in outcomes:
                self._check_xml(outcome, label, index, "outcomes", cdata=True)

            entry: Dict[str, Any] = {
                "slug": slug,
                "displayName": display_name,
                "outcomes": list(outcomes),
            }
            for key in _OPTIONAL_TASK_STRINGS:
                value = task.get(key)
                if value is None:
                    continue
                if not isinstance(value, str):
                    raise ValidationError(f"{label}: {key} must be a string", index=index, field=key)
                self._check_xml(value, label, index, key)
                entry[key] = value

            limit = task.get("repetitionLimit")
            if limit is not None:
                if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                    raise ValidationError(
                        f"{label}: repetitionLimit must be a positive integer",
                        index=index,
                        field="repetitionLimit",
                    )
                entry["repetitionLimit"] = limit

            parsed.append(entry)
        return parsed

    def _validate_stages(self, stages: Any, slugs: Set[str]) -> List[Dict[str, Any]]:
        if stages is None:
            return []
        if not isinstance(stages, list):
            raise ValidationError("stages must be an array", field="stages")

        parsed: List[Dict[str, Any]] = []
        stage_slugs: Set[str] = set()
        claimed: Dict[str, str] = {}
        for index, stage in enumerate(stages):
            label = f"Stage {index + 1}"
            if not isinstance(stage, Mapping):
                raise ValidationError(f"{label}: must be an object", index=index)

            slug = stage.get("slug")
            if not _is_text(slug):
                raise ValidationError(
                    f"{label}: slug is required and must be a string", index=index, field="slug"
                )
            self._check_xml(slug, label, index, "slug")
            if slug in slugs or slug in stage_slugs:
                raise ValidationError(
                    f"{label}: slug '{slug}' is already used", index=index, field="slug"
                )
            stage_slugs.add(slug)

            members = stage.get("tasks")
            if not isinstance(members, list) or not members:
                raise ValidationError(
                    f"{label}: tasks must be a non-empty array", index=index, field="tasks"
                )
            for member in members:
                if member not in slugs:
                    raise ValidationError(
                        f"{label}: referenced task '{member}' does not exist",
                        index=index,
                        field="tasks",
                    )
                if member in claimed:
                    raise ValidationError(
                        f"{label}: task '{member}' already belongs to stage '{claimed[member]}'",
                        index=index,
                        field="tasks",
                    )
                claimed[member] = slug

            display_name = stage.get("displayName") or slug
            if isinstance(display_name, str):
                self._check_xml(display_name, label, index, "displayName")
            parsed.append({"slug": slug, "displayName": display_name, "tasks": list(members)})
        return parsed

    def _validate_patterns(
        self,
        patterns: Any,
        slugs: Set[str],
        outcomes_by_slug: Dict[str, List[str]],
    ) -> List[Dict[str, Any]]:
        if patterns is None:
            return []
        if not isinstance(patterns, list):
            raise ValidationError("patterns must be an array", field="patterns")

        parsed: List[Dict[str, Any]] = []
        for index, pattern in enumerate(patterns):
            label = f"Pattern {index + 1}"
            if not isinstance(pattern, Mapping):
                raise ValidationError(f"{label}: must be an object", index=index)

            pattern_type = pattern.get("type")
            if pattern_type not in VALID_PATTERN_TYPES:
                raise ValidationError(
                    f"{label}: type must be one of: {', '.join(VALID_PATTERN_TYPES)}",
                    index=index,
                    field="type",
                )

            members = pattern.get("tasks")
            if not isinstance(members, list) or not members:
                raise ValidationError(
                    f"{label}: tasks must be a non-empty array", index=index, field="tasks"
                )
            for member in members:
                if member not in slugs:
                    raise ValidationError(
                        f"{label}: referenced task '{member}' does not exist",
                        index=index,
                        field="tasks",
                    )

            entry: Dict[str, Any] = {"type": pattern_type, "tasks": list(members)}
            conditions = pattern.get("conditions")
            if conditions is not None:
                if not isinstance(conditions, list):
                    raise ValidationError(
                        f"{label}: conditions must be an array", index=index, field="conditions"
                    )
                entry["conditions"] = [
                    self._validate_condition(condition, index, cond_index, slugs, outcomes_by_slug)
                    for cond_index, condition in enumerate(conditions)
                ]
            parsed.append(entry)
        return parsed

    def _validate_condition(
        self,
        condition: Any,
        index: int,
        cond_index: int,
        slugs: Set[str],
        outcomes_by_slug: Dict[str, List[str]],
    ) -> Dict[str, Any]:
        label = f"Pattern {index + 1}, condition {cond_index + 1}"
        if not isinstance(condition, Mapping):
            raise ValidationError(f"{label}: must be an object", index=index, field="conditions")

        source = condition.get("sourceTask")
        target = condition.get("targetTask")
        outcome = condition.get("outcome")
        if not (_is_text(source) and _is_text(target) and _is_text(outcome)):
            raise ValidationError(
                f"{label}: sourceTask, targetTask, and outcome are required",
                index=index,
                field="conditions",
            )
        self._check_xml(outcome, label, index, "outcome", cdata=True)
        for key, slug in (("sourceTask", source), ("targetTask", target)):
            if slug not in slugs:
                raise ValidationError(
                    f"{label}: {key} '{slug}' does not exist", index=index, field=key
                )

        operator = condition.get("operator") or ComparisonOperator.EQUALS.value
        logical = condition.get("logicalOperator")
        # AND/OR given as operator is a join, not a comparison
        if isinstance(operator, str) and operator.upper() in VALID_LOGICAL_OPERATORS:
            logical = logical or operator.upper()
            operator = ComparisonOperator.EQUALS.value
        if operator not in VALID_COMPARISONS:
            raise ValidationError(
                f"{label}: operator must be one of: {', '.join(VALID_COMPARISONS)}",
                index=index,
                field="operator",
            )
        logical = (logical or LogicalOperator.AND.value)
        if not isinstance(logical, str) or logical.upper() not in VALID_LOGICAL_OPERATORS:
            raise ValidationError(
                f"{label}: logicalOperator must be one of: {', '.join(VALID_LOGICAL_OPERATORS)}",
                index=index,
                field="logicalOperator",
            )

        if outcome not in outcomes_by_slug.get(source, []):
            logger.warning(f"{label}: outcome '{outcome}' is not declared by task '{source}'")

        return {
            "sourceTask": source,
            "targetTask": target,
            "outcome": outcome,
            "operator": operator,
            "logicalOperator": logical.upper(),
        }


def parse_business_logic(raw: Any) -> BusinessLogic:
    """Validate raw business logic with a default GraphValidator."""
    return GraphValidator().validate(raw)


__all__ = ["GraphValidator", "parse_business_logic", "is_xml_text", "VALID_PATTERN_TYPES"]
