"""
CMMN XML Generation Stage (Stage 5)

Serializes a validated, laid-out and routed business-logic graph into a
Flowable-flavoured CMMN 1.1 document, including the CMMNDI diagram section.

Supports:
- Case, case plan model and main stage scaffolding
- Plan items with entry criteria and repetition rules
- Sentries with on-parts and synthesized if-part conditions
- Human tasks with the listener extensions the engine expects
- Shapes for every node and sentry, edges with dockers and waypoints

The generator holds no state between calls; everything derived during one
call lives on an EmitterContext.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from lxml import etree

from cmmn_compiler.compiler.config import CompilerConfig
from cmmn_compiler.compiler.errors import ValidationError
from cmmn_compiler.core import Timer
from cmmn_compiler.models.business_logic import ApplicationDetail, BusinessLogic, TaskDefinition
from cmmn_compiler.models.cmmn_elements import (
    ROOT_CONTAINER,
    Edge,
    LayoutNode,
    LayoutResult,
    NodeKind,
    Sentry,
)
from cmmn_compiler.stages.condition_synthesis import outcome_status_mapping, repetition_condition

logger = logging.getLogger(__name__)

# Namespaces
CMMN_NAMESPACE = "http://www.omg.org/spec/CMMN/20151109/MODEL"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
FLOWABLE_NAMESPACE = "http://flowable.org/cmmn"
CMMNDI_NAMESPACE = "http://www.omg.org/spec/CMMN/20151109/CMMNDI"
DC_NAMESPACE = "http://www.omg.org/spec/CMMN/20151109/DC"
DI_NAMESPACE = "http://www.omg.org/spec/CMMN/20151109/DI"
MODELER_NAMESPACE = "http://flowable.org/modeler"

NSMAP = {
    None: CMMN_NAMESPACE,
    "xsi": XSI_NAMESPACE,
    "flowable": FLOWABLE_NAMESPACE,
    "cmmndi": CMMNDI_NAMESPACE,
    "dc": DC_NAMESPACE,
    "di": DI_NAMESPACE,
    "modeler": MODELER_NAMESPACE,
}

TARGET_NAMESPACE = "http://www.flowable.org/casedef"
EXPORTER = "Flowable Open Source Modeler"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

# Listener classes required by the engine
STAGE_LIFECYCLE_LISTENER = "org.flowable.ui.application.lifecycle.listener.TemporalListener"
TEMPORAL_FLOW_LISTENER = "org.flowable.ui.application.TriggerTemporalFlow"
SET_VARIABLE_LISTENER = "org.flowable.ui.application.task.listener.SetVarriable"
REQUIRED_LISTENERS = (STAGE_LIFECYCLE_LISTENER, TEMPORAL_FLOW_LISTENER, SET_VARIABLE_LISTENER)

INITIATOR_VARIABLE = "initiator"

# Case plan model shape position; the main stage plan item sits 20px inside
CASE_PLAN_ORIGIN = (20, 30)
MAIN_PLAN_ITEM_ORIGIN = (40, 50)


def _flowable(name: str) -> str:
    return "{%s}%s" % (FLOWABLE_NAMESPACE, name)


def _cmmndi(name: str) -> str:
    return "{%s}%s" % (CMMNDI_NAMESPACE, name)


def format_number(value: float) -> str:
    """Integral values print without a fraction; others round to 2 places."""
    if float(value).is_integer():
        return str(int(value))
    return str(round(value, 2))


def id_prefix(parent: Optional[str], case_name: str) -> str:
    """Id prefix: the case name at top level, the stage slug when nested."""
    return parent if parent else case_name


def element_ids(
    logic: BusinessLogic, case_name: str, application: ApplicationDetail
) -> List[Tuple[str, str]]:
    """Ids the document derives from names and slugs, with their owners.

    Ids are plain concatenations, so distinct names can meet on the same id;
    sentry ids end in a single-digit index and cannot collide this way.
    """
    case_id = f"{case_name}_{application.identifier}"
    main_item = f"{application.slug}{case_name}"
    ids = [
        (f"{case_name}123", "the case plan model"),
        (f"CMMNShape_{case_name}", "the case plan model"),
        (f"{case_id}stage", "the main stage"),
        (f"planItem{main_item}", "the main stage"),
        (f"CMMNShape_{main_item}", "the main stage"),
    ]
    for stage in logic.stages:
        owner = f"stage '{stage.slug}'"
        ids.append((f"planItem{case_name}{stage.slug}", owner))
        ids.append((f"CMMNShape_{case_name}{stage.slug}", owner))
        ids.append((f"{stage.slug}stage", owner))
    for task in logic.tasks:
        stage = logic.stage_of(task.slug)
        prefix = id_prefix(stage.slug if stage else None, case_name)
        owner = f"task '{task.slug}'"
        ids.append((f"planItem{prefix}{task.slug}", owner))
        ids.append((f"CMMNShape_{prefix}{task.slug}", owner))
        ids.append((f"{prefix}{task.slug}", owner))
    return ids


def check_element_ids(
    logic: BusinessLogic, case_name: str, application: ApplicationDetail
) -> None:
    """Raise ValidationError when two elements would share an id."""
    owners: Dict[str, str] = {}
    for element_id, owner in element_ids(logic, case_name, application):
        if element_id in owners:
            raise ValidationError(
                f"Element id '{element_id}' of {owner} collides with {owners[element_id]}",
                field="slug",
            )
        owners[element_id] = owner


@dataclass
class EmitterContext:
    """Per-call state threaded through the emitter."""

    logic: BusinessLogic
    layout: LayoutResult
    sentries: Dict[str, List[Sentry]]
    case_name: str
    application: ApplicationDetail
    nodes: Dict[str, LayoutNode] = field(default_factory=dict)
    tasks: Dict[str, TaskDefinition] = field(default_factory=dict)
    repeatable: Set[str] = field(default_factory=set)
    shapes: List[etree._Element] = field(default_factory=list)
    edges: List[etree._Element] = field(default_factory=list)

    @property
    def case_id(self) -> str:
        return f"{self.case_name}_{self.application.identifier}"

    @property
    def main_item_name(self) -> str:
        return f"{self.application.slug}{self.case_name}"

    def prefix(self, node: LayoutNode) -> str:
        """Id prefix: the case name at top level, the stage slug when nested."""
        return id_prefix(node.parent, self.case_name)

    def plan_item_id(self, slug: str) -> str:
        if slug == ROOT_CONTAINER:
            return f"planItem{self.main_item_name}"
        node = self.nodes[slug]
        return f"planItem{self.prefix(node)}{slug}"

    def definition_id(self, node: LayoutNode) -> str:
        if node.kind == NodeKind.STAGE:
            return f"{node.slug}stage"
        return f"{self.prefix(node)}{node.slug}"


class CMMNXMLGenerator:
    """Generates Flowable CMMN XML from a routed layout."""

    def __init__(self, config: Optional[CompilerConfig] = None):
        """Initialize XML generator.

        Args:
            config: Compiler configuration supplying task defaults and
                output formatting
        """
        self.config = config or CompilerConfig()

    def generate_xml(
        self,
        logic: BusinessLogic,
        layout: LayoutResult,
        sentries: Dict[str, List[Sentry]],
        case_name: str,
        application: ApplicationDetail,
    ) -> str:
        """Generate the CMMN document.

        Args:
            logic: Validated business logic
            layout: Layout of the same graph
            sentries: Routed sentries per owning slug
            case_name: Case name used in element identifiers
            application: Owning application

        Returns:
            XML document string, identical for identical inputs
        """
        with Timer("xml_generation"):
            context = EmitterContext(
                logic=logic,
                layout=layout,
                sentries=sentries,
                case_name=case_name,
                application=application,
                nodes=layout.index(),
                tasks=logic.task_index(),
                repeatable=set(logic.repeatable_tasks()),
            )
            root = self._build_xml_root(context)
            document = XML_DECLARATION + etree.tostring(
                root, encoding="unicode", pretty_print=self.config.pretty_print
            )
            logger.debug(
                f"Generated CMMN for case {context.case_id}: "
                f"{len(context.shapes)} shapes, {len(context.edges)} edges"
            )
            return document

    def _build_xml_root(self, context: EmitterContext) -> etree._Element:
        """Build the definitions element with model and diagram."""
        root = etree.Element(
            "definitions",
            nsmap=NSMAP,
            targetNamespace=TARGET_NAMESPACE,
            exporter=EXPORTER,
        )
        root.append(self._build_case_element(context))
        root.append(self._build_diagram_element(context))
        return root

    def _build_case_element(self, context: EmitterContext) -> etree._Element:
        case = etree.Element("case", id=context.case_id, name=context.case_id)
        case.set(_flowable("initiatorVariableName"), INITIATOR_VARIABLE)

        plan_model = etree.SubElement(case, "casePlanModel", id=f"{context.case_name}123")
        plan_model.set(_flowable("formKey"), "")
        plan_model.set(_flowable("formFieldValidation"), "true")

        etree.SubElement(
            plan_model,
            "planItem",
            id=context.plan_item_id(ROOT_CONTAINER),
            name=context.main_item_name,
            definitionRef=f"{context.case_id}stage",
        )

        main_stage = etree.SubElement(
            plan_model, "stage", id=f"{context.case_id}stage", name=context.case_id
        )
        self._populate_stage(context, main_stage, context.layout.nodes)
        return case

    def _populate_stage(
        self, context: EmitterContext, stage: etree._Element, members: List[LayoutNode]
    ) -> None:
        """Fill a stage with plan items, sentries, nested stages and tasks."""
        self._add_lifecycle_listener(stage)

        for node in members:
            stage.append(self._build_plan_item(context, node))
        for node in members:
            for sentry in context.sentries.get(node.slug, []):
                stage.append(self._build_sentry(context, sentry))
        for node in members:
            if node.kind == NodeKind.STAGE:
                nested = etree.SubElement(
                    stage, "stage", id=context.definition_id(node), name=node.name
                )
                self._populate_stage(context, nested, node.children)
        for node in members:
            if node.kind == NodeKind.TASK:
                task = context.tasks[node.slug]
                stage.append(self._build_human_task(context, node, task))

    def _add_lifecycle_listener(self, stage: etree._Element) -> None:
        extensions = etree.SubElement(stage, "extensionElements")
        listener = etree.SubElement(extensions, _flowable("planItemLifecycleListener"))
        listener.set("sourceState", "available")
        listener.set("targetState", "active")
        listener.set("class", STAGE_LIFECYCLE_LISTENER)

    def _build_plan_item(self, context: EmitterContext, node: LayoutNode) -> etree._Element:
        plan_item = etree.Element(
            "planItem",
            id=context.plan_item_id(node.slug),
            name=node.name,
            definitionRef=context.definition_id(node),
        )

        if node.kind == NodeKind.TASK and node.slug in context.repeatable:
            task = context.tasks[node.slug]
            limit = task.repetition_limit or self.config.default_repetition_limit
            control = etree.SubElement(plan_item, "itemControl")
            rule = etree.SubElement(control, "repetitionRule")
            rule.set(_flowable("counterVariable"), "repetitionCounter")
            etree.SubElement(rule, "extensionElements")
            condition = etree.SubElement(rule, "condition")
            condition.text = etree.CDATA(repetition_condition(limit))

        for sentry in context.sentries.get(node.slug, []):
            etree.SubElement(
                plan_item,
                "entryCriterion",
                id=f"sid-{sentry.owner}{sentry.index}",
                sentryRef=f"sentry{sentry.owner}{sentry.index}",
            )

        context.shapes.append(
            self._build_shape(
                f"CMMNShape_{context.prefix(node)}{node.slug}",
                context.plan_item_id(node.slug),
                node.x,
                node.y,
                node.w,
                node.h,
            )
        )
        return plan_item

    def _build_sentry(self, context: EmitterContext, sentry: Sentry) -> etree._Element:
        sentry_id = f"{sentry.owner}{sentry.index}"
        element = etree.Element("sentry", id=f"sentry{sentry_id}")
        for position, edge in enumerate(sentry.edges):
            on_part = etree.SubElement(
                element,
                "planItemOnPart",
                id=f"sentryOnPart{sentry_id}_{position}",
                sourceRef=context.plan_item_id(edge.source),
            )
            event = etree.SubElement(on_part, "standardEvent")
            event.text = edge.operator.value
            context.edges.append(self._build_edge(context, sentry, edge))

        if_part = etree.SubElement(element, "ifPart")
        condition = etree.SubElement(if_part, "condition")
        if sentry.condition:
            condition.text = etree.CDATA(sentry.condition)

        context.shapes.append(
            self._build_shape(
                f"CMMNShape_planItem{sentry_id}",
                f"sid-{sentry_id}",
                sentry.x,
                sentry.y,
                sentry.w,
                sentry.h,
            )
        )
        return element

    def _build_human_task(
        self, context: EmitterContext, node: LayoutNode, task: TaskDefinition
    ) -> etree._Element:
        human_task = etree.Element("humanTask", id=context.definition_id(node), name=node.name)
        human_task.set(_flowable("assignee"), task.assignee or self.config.default_assignee)
        if task.candidate_groups:
            human_task.set(_flowable("candidateGroups"), task.candidate_groups)
        if task.due_date:
            human_task.set(_flowable("dueDate"), task.due_date)
        human_task.set(_flowable("formKey"), task.form_key or f"{task.slug}Form")
        human_task.set(_flowable("formFieldValidation"), "true")

        extensions = etree.SubElement(human_task, "extensionElements")
        initiator = etree.SubElement(
            extensions, "{%s}flowable-idm-initiator" % MODELER_NAMESPACE
        )
        initiator.text = etree.CDATA("true")

        self._add_task_listener(extensions, "create", TEMPORAL_FLOW_LISTENER)
        set_variable = self._add_task_listener(extensions, "complete", SET_VARIABLE_LISTENER)
        variables = etree.SubElement(set_variable, _flowable("field"), name="variables")
        payload = etree.SubElement(variables, _flowable("string"))
        payload.text = etree.CDATA(outcome_status_mapping(task))
        self._add_task_listener(extensions, "complete", TEMPORAL_FLOW_LISTENER)
        return human_task

    def _add_task_listener(
        self, extensions: etree._Element, event: str, class_name: str
    ) -> etree._Element:
        listener = etree.SubElement(extensions, _flowable("taskListener"))
        listener.set("event", event)
        listener.set("class", class_name)
        return listener

    def _build_diagram_element(self, context: EmitterContext) -> etree._Element:
        """Build the CMMNDI section; plan items and sentries have already queued shapes."""
        cmmndi = etree.Element(_cmmndi("CMMNDI"))
        diagram = etree.SubElement(
            cmmndi, _cmmndi("CMMNDiagram"), id=f"CMMNDiagram_{context.case_id}"
        )

        width = context.layout.container_width
        height = context.layout.container_height
        diagram.append(
            self._build_shape(
                f"CMMNShape_{context.case_name}",
                f"{context.case_name}123",
                CASE_PLAN_ORIGIN[0],
                CASE_PLAN_ORIGIN[1],
                width + 50,
                height + 50,
            )
        )
        diagram.append(
            self._build_shape(
                f"CMMNShape_{context.main_item_name}",
                context.plan_item_id(ROOT_CONTAINER),
                MAIN_PLAN_ITEM_ORIGIN[0],
                MAIN_PLAN_ITEM_ORIGIN[1],
                width,
                height,
            )
        )
        for shape in context.shapes:
            diagram.append(shape)
        for edge in context.edges:
            diagram.append(edge)
        return cmmndi

    def _build_shape(
        self, shape_id: str, element_ref: str, x: float, y: float, w: float, h: float
    ) -> etree._Element:
        shape = etree.Element(_cmmndi("CMMNShape"), id=shape_id, cmmnElementRef=element_ref)
        bounds = etree.SubElement(shape, "{%s}Bounds" % DC_NAMESPACE)
        bounds.set("height", format_number(h))
        bounds.set("width", format_number(w))
        bounds.set("x", format_number(x))
        bounds.set("y", format_number(y))
        etree.SubElement(shape, _cmmndi("CMMNLabel"))
        return shape

    def _build_edge(self, context: EmitterContext, sentry: Sentry, edge: Edge) -> etree._Element:
        source_name = (
            context.main_item_name if edge.source == ROOT_CONTAINER else edge.source
        )
        element = etree.Element(
            _cmmndi("CMMNEdge"),
            id=f"CMMNEdge_sid-{source_name}_to_{edge.target}{sentry.index}",
            cmmnElementRef=context.plan_item_id(edge.source),
            targetCMMNElementRef=f"sid-{sentry.owner}{sentry.index}",
        )
        extension = etree.SubElement(element, "{%s}extension" % DI_NAMESPACE)
        for docker_type, docker in (("source", edge.source_docker), ("target", edge.target_docker)):
            docker_element = etree.SubElement(extension, _flowable("docker"))
            docker_element.set("type", docker_type)
            docker_element.set("x", format_number(docker.x))
            docker_element.set("y", format_number(docker.y))
        for waypoint in edge.waypoints:
            point = etree.SubElement(element, "{%s}waypoint" % DI_NAMESPACE)
            point.set("x", format_number(waypoint.x))
            point.set("y", format_number(waypoint.y))
        etree.SubElement(element, _cmmndi("CMMNLabel"))
        return element


__all__ = [
    "CMMNXMLGenerator",
    "EmitterContext",
    "check_element_ids",
    "element_ids",
    "format_number",
    "NSMAP",
    "CMMN_NAMESPACE",
    "FLOWABLE_NAMESPACE",
    "CMMNDI_NAMESPACE",
    "DC_NAMESPACE",
    "DI_NAMESPACE",
    "MODELER_NAMESPACE",
    "REQUIRED_LISTENERS",
    "STAGE_LIFECYCLE_LISTENER",
    "TEMPORAL_FLOW_LISTENER",
    "SET_VARIABLE_LISTENER",
]
