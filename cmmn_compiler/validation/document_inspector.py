"""
CMMN Document Inspection

Reverse path of the compiler: parses an existing Flowable CMMN document,
checks its mandatory structure and recommended attributes, and extracts the
human tasks it defines.

Findings come in three severities:
- errors: the document is unusable (missing case, plan model, diagram...)
- warnings: compatibility problems that do not invalidate the document
- suggestions: optional attributes worth adding
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from lxml import etree

from cmmn_compiler.compiler.errors import QualityWarning, StructuralDocumentError
from cmmn_compiler.models.business_logic import BusinessLogic
from cmmn_compiler.stages.condition_synthesis import OUTCOME_VARIABLE, parse_outcome_status_mapping
from cmmn_compiler.stages.graph_validation import parse_business_logic
from cmmn_compiler.stages.xml_generation import (
    CMMN_NAMESPACE,
    CMMNDI_NAMESPACE,
    FLOWABLE_NAMESPACE,
    REQUIRED_LISTENERS,
    SET_VARIABLE_LISTENER,
)

logger = logging.getLogger(__name__)

MISSPELLED_SET_VARIABLE = "org.flowable.ui.application.task.listener.SetVariable"
DEFAULT_OUTCOMES = ["completed"]


def _cmmn(name: str) -> str:
    return "{%s}%s" % (CMMN_NAMESPACE, name)


def _flowable(name: str) -> str:
    return "{%s}%s" % (FLOWABLE_NAMESPACE, name)


@dataclass
class ParsedTask:
    """Human task recovered from a document."""

    id: str
    slug: str
    name: str
    assignee: Optional[str] = None
    candidate_groups: Optional[str] = None
    due_date: Optional[str] = None
    form_key: Optional[str] = None
    outcomes: List[str] = field(default_factory=list)
    stage: Optional[str] = None
    stage_name: Optional[str] = None


@dataclass
class InspectionReport:
    """Complete inspection result."""

    errors: List[str] = field(default_factory=list)
    warnings: List[QualityWarning] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    case_name: Optional[str] = None
    application_id: Optional[str] = None
    tasks: List[ParsedTask] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": [str(w) for w in self.warnings],
            "suggestions": list(self.suggestions),
            "caseName": self.case_name,
            "applicationId": self.application_id,
            "tasks": [asdict(task) for task in self.tasks],
        }


class DocumentInspector:
    """Parses and checks Flowable CMMN documents."""

    def __init__(self):
        self.parser = etree.XMLParser(resolve_entities=False, no_network=True)

    def inspect(self, xml_content: Union[str, bytes]) -> InspectionReport:
        """Inspect a CMMN document.

        Args:
            xml_content: Document text

        Returns:
            InspectionReport; ``is_valid`` is False when any structural
            error was found
        """
        report = InspectionReport()
        if isinstance(xml_content, str):
            xml_content = xml_content.encode("utf-8")

        try:
            root = etree.fromstring(xml_content, parser=self.parser)
        except etree.XMLSyntaxError as e:
            report.errors.append(f"XML parsing error: {e}")
            return report

        self._check_structure(root, report)
        self._check_quality(root, report)

        case = root.find(_cmmn("case"))
        plan_model = case.find(_cmmn("casePlanModel")) if case is not None else None
        if case is not None:
            self._extract_identity(case, plan_model, report)
        if plan_model is not None:
            main_stage = plan_model.find(_cmmn("stage"))
            if main_stage is not None:
                report.tasks = self._extract_tasks(main_stage, report.case_name or "")

        logger.debug(
            f"Inspected document: {len(report.errors)} errors, "
            f"{len(report.warnings)} warnings, {len(report.tasks)} tasks"
        )
        return report

    def _check_structure(self, root: etree._Element, report: InspectionReport) -> None:
        if etree.QName(root).localname != "definitions":
            report.errors.append("Missing definitions element")

        if FLOWABLE_NAMESPACE not in root.nsmap.values():
            report.errors.append("Missing Flowable namespace")

        case = root.find(_cmmn("case"))
        if case is None:
            report.errors.append("Missing case element")
        if case is None or case.find(_cmmn("casePlanModel")) is None:
            report.errors.append("Missing casePlanModel element")

        classes = {el.get("class") for el in root.iter() if el.get("class")}
        for class_name in REQUIRED_LISTENERS:
            if class_name not in classes:
                report.errors.append(f"Missing required Flowable class: {class_name}")

        if root.find("{%s}CMMNDI" % CMMNDI_NAMESPACE) is None:
            report.errors.append("Missing CMMN diagram information")

    def _check_quality(self, root: etree._Element, report: InspectionReport) -> None:
        for listener in root.iter(_flowable("taskListener")):
            if listener.get("class") == MISSPELLED_SET_VARIABLE:
                report.warnings.append(
                    QualityWarning(
                        "Found 'SetVariable' - should be 'SetVarriable' (with double 'r') "
                        "for Flowable compatibility",
                        element_id=self._owning_task_id(listener),
                    )
                )

        set_variable_listeners = [
            listener
            for listener in root.iter(_flowable("taskListener"))
            if listener.get("class") == SET_VARIABLE_LISTENER
        ]
        for position, listener in enumerate(set_variable_listeners, start=1):
            if parse_outcome_status_mapping(self._listener_payload(listener)) is None:
                report.warnings.append(
                    QualityWarning(
                        f"Invalid JSON in SetVarriable listener {position}",
                        element_id=self._owning_task_id(listener),
                    )
                )

        case = root.find(_cmmn("case"))
        if case is not None and case.get(_flowable("initiatorVariableName")) != "initiator":
            report.warnings.append(
                QualityWarning(
                    "Missing recommended attribute flowable:initiatorVariableName=\"initiator\"",
                    element_id=case.get("id"),
                )
            )

        human_tasks = list(root.iter(_cmmn("humanTask")))
        if not any(t.get(_flowable("formFieldValidation")) == "true" for t in human_tasks):
            report.suggestions.append(
                "Consider adding form field validation for better user experience"
            )
        if not any(t.get(_flowable("dueDate")) for t in human_tasks):
            report.suggestions.append("Consider adding due dates to tasks for better tracking")
        if not any(t.get(_flowable("candidateGroups")) for t in human_tasks):
            report.suggestions.append(
                "Consider using candidate groups for better task assignment"
            )

    def _extract_identity(
        self,
        case: etree._Element,
        plan_model: Optional[etree._Element],
        report: InspectionReport,
    ) -> None:
        case_id = case.get("id") or ""
        plan_model_id = plan_model.get("id", "") if plan_model is not None else ""

        if plan_model_id.endswith("123"):
            case_name = plan_model_id[: -len("123")]
        else:
            case_name = case_id.split("_", 1)[0]

        report.case_name = case_name or None
        if case_name and case_id.startswith(f"{case_name}_"):
            report.application_id = case_id[len(case_name) + 1 :]

    def _extract_tasks(
        self,
        stage: etree._Element,
        prefix: str,
        stage_slug: Optional[str] = None,
        stage_name: Optional[str] = None,
    ) -> List[ParsedTask]:
        """Tasks of a stage in plan item order, descending into nested stages."""
        definitions = {
            child.get("id"): child
            for child in stage
            if child.tag in (_cmmn("humanTask"), _cmmn("stage"))
        }

        tasks: List[ParsedTask] = []
        for plan_item in stage.findall(_cmmn("planItem")):
            definition = definitions.get(plan_item.get("definitionRef"))
            if definition is None:
                continue
            if definition.tag == _cmmn("stage"):
                nested_id = definition.get("id", "")
                nested_slug = nested_id[: -len("stage")] if nested_id.endswith("stage") else nested_id
                tasks.extend(
                    self._extract_tasks(
                        definition, nested_slug, nested_slug, definition.get("name") or nested_slug
                    )
                )
            else:
                tasks.append(self._parse_task(definition, prefix, stage_slug, stage_name))
        return tasks

    def _parse_task(
        self,
        element: etree._Element,
        prefix: str,
        stage_slug: Optional[str],
        stage_name: Optional[str],
    ) -> ParsedTask:
        task_id = element.get("id", "")
        slug = task_id[len(prefix) :] if prefix and task_id.startswith(prefix) else task_id

        outcomes: List[str] = []
        for listener in element.iter(_flowable("taskListener")):
            if listener.get("class") != SET_VARIABLE_LISTENER:
                continue
            for rule in parse_outcome_status_mapping(self._listener_payload(listener)) or []:
                if not isinstance(rule, dict):
                    continue
                for condition in rule.get("conditions") or []:
                    if isinstance(condition, dict) and condition.get("key") == OUTCOME_VARIABLE:
                        value = condition.get("value")
                        if value and value not in outcomes:
                            outcomes.append(value)

        return ParsedTask(
            id=task_id,
            slug=slug or task_id,
            name=element.get("name") or slug,
            assignee=element.get(_flowable("assignee")),
            candidate_groups=element.get(_flowable("candidateGroups")),
            due_date=element.get(_flowable("dueDate")),
            form_key=element.get(_flowable("formKey")) or None,
            outcomes=outcomes or list(DEFAULT_OUTCOMES),
            stage=stage_slug,
            stage_name=stage_name,
        )

    @staticmethod
    def _listener_payload(listener: etree._Element) -> str:
        payload = listener.find(f"{_flowable('field')}/{_flowable('string')}")
        if payload is None or payload.text is None:
            return ""
        return payload.text.strip()

    @staticmethod
    def _owning_task_id(element: etree._Element) -> Optional[str]:
        for ancestor in element.iterancestors(_cmmn("humanTask")):
            return ancestor.get("id")
        return None


def inspect_document(xml_content: Union[str, bytes]) -> InspectionReport:
    """Inspect a document with a default DocumentInspector."""
    return DocumentInspector().inspect(xml_content)


def extract_business_logic(xml_content: Union[str, bytes]) -> BusinessLogic:
    """Reconstruct approximate business logic from a document.

    Tasks keep their outcomes and attributes, nested stages become stage
    definitions, and all tasks are chained in one sequential pattern.

    Raises:
        StructuralDocumentError: If the document has structural errors
    """
    report = inspect_document(xml_content)
    if not report.is_valid:
        raise StructuralDocumentError(report.errors)
    if not report.tasks:
        raise StructuralDocumentError(["Document defines no human tasks"])

    tasks: List[Dict[str, Any]] = []
    stages: Dict[str, Dict[str, Any]] = {}
    for parsed in report.tasks:
        task: Dict[str, Any] = {
            "slug": parsed.slug,
            "displayName": parsed.name,
            "outcomes": parsed.outcomes,
        }
        for key, value in (
            ("assignee", parsed.assignee),
            ("candidateGroups", parsed.candidate_groups),
            ("dueDate", parsed.due_date),
            ("formKey", parsed.form_key),
        ):
            if value:
                task[key] = value
        tasks.append(task)

        if parsed.stage:
            stage = stages.setdefault(
                parsed.stage,
                {"slug": parsed.stage, "displayName": parsed.stage_name, "tasks": []},
            )
            stage["tasks"].append(parsed.slug)

    patterns = []
    if len(tasks) > 1:
        patterns.append({"type": "sequential", "tasks": [t["slug"] for t in tasks]})

    return parse_business_logic(
        {"tasks": tasks, "patterns": patterns, "stages": list(stages.values())}
    )


__all__ = [
    "DocumentInspector",
    "InspectionReport",
    "ParsedTask",
    "inspect_document",
    "extract_business_logic",
]
