"""
Tests for Stage 5 (CMMN XML Generation).

Tests:
- Definitions scaffolding and namespaces
- Plan item, sentry and human task identifiers
- Listener extensions and outcome payloads
- Repetition rules
- Diagram shapes and edges
- Nested stages
"""

import json
from unittest.mock import patch

import pytest
from lxml import etree

from cmmn_compiler.compiler.config import CompilerConfig
from cmmn_compiler.compiler.errors import ValidationError
from cmmn_compiler.models.business_logic import ApplicationDetail, BusinessLogic
from cmmn_compiler.stages.graph_validation import parse_business_logic
from cmmn_compiler.stages.layout import build_layout
from cmmn_compiler.stages.sentry_routing import route_sentries
from cmmn_compiler.stages.xml_generation import (
    CMMN_NAMESPACE,
    CMMNDI_NAMESPACE,
    DC_NAMESPACE,
    DI_NAMESPACE,
    FLOWABLE_NAMESPACE,
    MODELER_NAMESPACE,
    SET_VARIABLE_LISTENER,
    STAGE_LIFECYCLE_LISTENER,
    TEMPORAL_FLOW_LISTENER,
    CMMNXMLGenerator,
    check_element_ids,
    element_ids,
    format_number,
)

NS = {
    "c": CMMN_NAMESPACE,
    "flowable": FLOWABLE_NAMESPACE,
    "cmmndi": CMMNDI_NAMESPACE,
    "dc": DC_NAMESPACE,
    "di": DI_NAMESPACE,
    "modeler": MODELER_NAMESPACE,
}


def _flowable(name):
    return "{%s}%s" % (FLOWABLE_NAMESPACE, name)


def generate(raw, case_name="onboarding", application=None, config=None):
    logic = parse_business_logic(raw)
    layout = build_layout(logic)
    sentries = route_sentries(logic, layout)
    application = application or ApplicationDetail(identifier="app42", slug="hr")
    return CMMNXMLGenerator(config).generate_xml(logic, layout, sentries, case_name, application)


def parse(xml):
    return etree.fromstring(xml.encode("utf-8"))


@pytest.fixture
def scenario_xml(scenario_logic):
    return generate(scenario_logic)


@pytest.fixture
def scenario_root(scenario_xml):
    return parse(scenario_xml)


class TestFormatNumber:

    def test_integral(self):
        assert format_number(10.0) == "10"
        assert format_number(0) == "0"

    def test_fractional(self):
        assert format_number(10.5) == "10.5"
        assert format_number(1 / 3) == "0.33"


class TestDocumentScaffolding:

    def test_xml_declaration(self, scenario_xml):
        assert scenario_xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')

    def test_definitions_root(self, scenario_root):
        assert scenario_root.tag == "{%s}definitions" % CMMN_NAMESPACE
        assert scenario_root.get("targetNamespace") == "http://www.flowable.org/casedef"
        assert scenario_root.get("exporter") == "Flowable Open Source Modeler"
        for prefix in ("flowable", "cmmndi", "dc", "di", "modeler", "xsi"):
            assert prefix in scenario_root.nsmap

    def test_case_identity(self, scenario_root):
        case = scenario_root.find("c:case", NS)
        assert case.get("id") == "onboarding_app42"
        assert case.get("name") == "onboarding_app42"
        assert case.get(_flowable("initiatorVariableName")) == "initiator"

        plan_model = case.find("c:casePlanModel", NS)
        assert plan_model.get("id") == "onboarding123"

        main_item = plan_model.find("c:planItem", NS)
        assert main_item.get("id") == "planItemhronboarding"
        assert main_item.get("definitionRef") == "onboarding_app42stage"

        stage = plan_model.find("c:stage", NS)
        assert stage.get("id") == "onboarding_app42stage"

    def test_stage_child_order(self, scenario_root):
        stage = scenario_root.find("c:case/c:casePlanModel/c:stage", NS)
        tags = [etree.QName(child).localname for child in stage]
        assert tags == [
            "extensionElements",
            "planItem",
            "planItem",
            "planItem",
            "sentry",
            "sentry",
            "sentry",
            "humanTask",
            "humanTask",
            "humanTask",
        ]
        listener = stage.find("c:extensionElements/flowable:planItemLifecycleListener", NS)
        assert listener.get("class") == STAGE_LIFECYCLE_LISTENER
        assert listener.get("sourceState") == "available"
        assert listener.get("targetState") == "active"

    def test_deterministic(self, scenario_logic):
        assert generate(scenario_logic) == generate(scenario_logic)

    def test_compact_output(self, scenario_logic):
        xml = generate(scenario_logic, config=CompilerConfig(pretty_print=False))
        body = xml.split("\n", 1)[1]
        assert "\n" not in body


class TestPlanItemsAndSentries:

    def test_plan_item_ids(self, scenario_root):
        stage = scenario_root.find("c:case/c:casePlanModel/c:stage", NS)
        items = stage.findall("c:planItem", NS)
        assert [i.get("id") for i in items] == [
            "planItemonboardingsubmit",
            "planItemonboardingreview",
            "planItemonboardingfinalize",
        ]
        assert items[0].get("definitionRef") == "onboardingsubmit"
        criterion = items[0].find("c:entryCriterion", NS)
        assert criterion.get("id") == "sid-submit0"
        assert criterion.get("sentryRef") == "sentrysubmit0"

    def test_every_entry_criterion_resolves(self, scenario_root):
        sentry_ids = {s.get("id") for s in scenario_root.iter("{%s}sentry" % CMMN_NAMESPACE)}
        criteria = list(scenario_root.iter("{%s}entryCriterion" % CMMN_NAMESPACE))
        assert len(criteria) == 3
        for criterion in criteria:
            assert criterion.get("sentryRef") in sentry_ids

    def test_start_sentry(self, scenario_root):
        sentry = scenario_root.find(".//c:sentry[@id='sentrysubmit0']", NS)
        on_part = sentry.find("c:planItemOnPart", NS)
        assert on_part.get("id") == "sentryOnPartsubmit0_0"
        assert on_part.get("sourceRef") == "planItemhronboarding"
        assert on_part.findtext("c:standardEvent", namespaces=NS) == "start"
        condition = sentry.find("c:ifPart/c:condition", NS)
        assert condition is not None
        assert not condition.text

    def test_conditional_sentry(self, scenario_root, scenario_xml):
        sentry = scenario_root.find(".//c:sentry[@id='sentryreview0']", NS)
        on_part = sentry.find("c:planItemOnPart", NS)
        assert on_part.get("sourceRef") == "planItemonboardingsubmit"
        assert on_part.findtext("c:standardEvent", namespaces=NS) == "complete"
        assert sentry.findtext("c:ifPart/c:condition", namespaces=NS) == (
            '${vars:equals(_outcome,"submitted")}'
        )
        assert '<![CDATA[${vars:equals(_outcome,"submitted")}]]>' in scenario_xml

    def test_join_sentry_has_two_on_parts(self, join_logic):
        root = parse(generate(join_logic))
        sentry = root.find(".//c:sentry[@id='sentryc0']", NS)
        on_parts = sentry.findall("c:planItemOnPart", NS)
        assert [p.get("sourceRef") for p in on_parts] == [
            "planItemonboardinga",
            "planItemonboardingb",
        ]
        assert [p.get("id") for p in on_parts] == ["sentryOnPartc0_0", "sentryOnPartc0_1"]

    def test_no_repetition_rule_by_default(self, scenario_root):
        assert scenario_root.find(".//c:repetitionRule", NS) is None


class TestRepetitionRules:

    def test_declared_limit(self):
        root = parse(
            generate(
                {
                    "tasks": [
                        {"slug": "a", "displayName": "A", "outcomes": ["done"], "repetitionLimit": 3}
                    ]
                }
            )
        )
        rule = root.find(".//c:planItem[@id='planItemonboardinga']/c:itemControl/c:repetitionRule", NS)
        assert rule.get(_flowable("counterVariable")) == "repetitionCounter"
        assert rule.findtext("c:condition", namespaces=NS) == "${repetitionCounter < 3}"

    def test_retry_target_uses_default_limit(self):
        raw = {
            "tasks": [
                {"slug": "a", "displayName": "A", "outcomes": ["done"]},
                {"slug": "b", "displayName": "B", "outcomes": ["ok", "redo"]},
            ],
            "patterns": [
                {
                    "type": "retry",
                    "tasks": ["a", "b"],
                    "conditions": [{"sourceTask": "b", "targetTask": "a", "outcome": "redo"}],
                }
            ],
        }
        root = parse(generate(raw, config=CompilerConfig(default_repetition_limit=7)))
        condition = root.find(".//c:planItem[@id='planItemonboardinga']//c:condition", NS)
        assert condition.text == "${repetitionCounter < 7}"
        assert root.find(".//c:planItem[@id='planItemonboardingb']/c:itemControl", NS) is None


class TestHumanTasks:

    def test_task_attributes(self, scenario_root):
        task = scenario_root.find(".//c:humanTask[@id='onboardingsubmit']", NS)
        assert task.get("name") == "Submit"
        assert task.get(_flowable("assignee")) == "${initiator}"
        assert task.get(_flowable("formKey")) == "submitForm"
        assert task.get(_flowable("formFieldValidation")) == "true"
        assert task.get(_flowable("candidateGroups")) is None

    def test_optional_attributes(self):
        raw = {
            "tasks": [
                {
                    "slug": "pay",
                    "displayName": "Pay",
                    "outcomes": ["paid"],
                    "assignee": "${cashier}",
                    "candidateGroups": "finance",
                    "dueDate": "P1D",
                    "formKey": "paymentForm",
                }
            ]
        }
        task = parse(generate(raw)).find(".//c:humanTask", NS)
        assert task.get(_flowable("assignee")) == "${cashier}"
        assert task.get(_flowable("candidateGroups")) == "finance"
        assert task.get(_flowable("dueDate")) == "P1D"
        assert task.get(_flowable("formKey")) == "paymentForm"

    def test_listener_order(self, scenario_root):
        extensions = scenario_root.find(".//c:humanTask[@id='onboardingreview']/c:extensionElements", NS)
        initiator = extensions.find("modeler:flowable-idm-initiator", NS)
        assert initiator.text == "true"

        listeners = extensions.findall("flowable:taskListener", NS)
        assert [(li.get("event"), li.get("class")) for li in listeners] == [
            ("create", TEMPORAL_FLOW_LISTENER),
            ("complete", SET_VARIABLE_LISTENER),
            ("complete", TEMPORAL_FLOW_LISTENER),
        ]

    def test_outcome_payload(self, scenario_root):
        payload = scenario_root.findtext(
            ".//c:humanTask[@id='onboardingreview']//flowable:field[@name='variables']/flowable:string",
            namespaces=NS,
        )
        rules = json.loads(payload)
        assert [r["conditions"][0]["value"] for r in rules] == ["approved", "rejected"]
        assert [r["output"][0]["value"] for r in rules] == ["nextApproval", "rejected"]


class TestDiagram:

    def _diagram(self, root):
        return root.find("cmmndi:CMMNDI/cmmndi:CMMNDiagram", NS)

    def _bounds(self, shape):
        bounds = shape.find("dc:Bounds", NS)
        return tuple(bounds.get(k) for k in ("x", "y", "width", "height"))

    def test_diagram_identity(self, scenario_root):
        assert self._diagram(scenario_root).get("id") == "CMMNDiagram_onboarding_app42"

    def test_shape_counts(self, scenario_root):
        diagram = self._diagram(scenario_root)
        assert len(diagram.findall("cmmndi:CMMNShape", NS)) == 8
        assert len(diagram.findall("cmmndi:CMMNEdge", NS)) == 3

    def test_container_shapes(self, scenario_root):
        shapes = self._diagram(scenario_root).findall("cmmndi:CMMNShape", NS)
        plan_model, main_stage = shapes[:2]
        assert plan_model.get("id") == "CMMNShape_onboarding"
        assert plan_model.get("cmmnElementRef") == "onboarding123"
        assert self._bounds(plan_model) == ("20", "30", "910", "790")
        assert main_stage.get("id") == "CMMNShape_hronboarding"
        assert main_stage.get("cmmnElementRef") == "planItemhronboarding"
        assert self._bounds(main_stage) == ("40", "50", "860", "740")

    def test_task_and_sentry_shapes(self, scenario_root):
        diagram = self._diagram(scenario_root)
        task = diagram.find("cmmndi:CMMNShape[@id='CMMNShape_onboardingreview']", NS)
        assert task.get("cmmnElementRef") == "planItemonboardingreview"
        assert self._bounds(task) == ("270", "340", "120", "80")

        sentry = diagram.find("cmmndi:CMMNShape[@id='CMMNShape_planItemreview0']", NS)
        assert sentry.get("cmmnElementRef") == "sid-review0"
        assert self._bounds(sentry) == ("348", "329", "14", "22")

    def test_edges(self, scenario_root):
        edges = self._diagram(scenario_root).findall("cmmndi:CMMNEdge", NS)
        assert [e.get("id") for e in edges] == [
            "CMMNEdge_sid-hronboarding_to_submit0",
            "CMMNEdge_sid-submit_to_review0",
            "CMMNEdge_sid-review_to_finalize0",
        ]
        start = edges[0]
        assert start.get("cmmnElementRef") == "planItemhronboarding"
        assert start.get("targetCMMNElementRef") == "sid-submit0"

        review = edges[1]
        dockers = review.findall("di:extension/flowable:docker", NS)
        assert [(d.get("type"), d.get("x"), d.get("y")) for d in dockers] == [
            ("source", "120", "60"),
            ("target", "7", "11"),
        ]
        waypoints = [(w.get("x"), w.get("y")) for w in review.findall("di:waypoint", NS)]
        assert waypoints == [("220", "270"), ("355", "270"), ("355", "340")]


class TestNestedStages:

    def test_nested_stage_structure(self, staged_logic):
        root = parse(generate(staged_logic))
        main_stage = root.find("c:case/c:casePlanModel/c:stage", NS)

        screening_item = main_stage.find("c:planItem[@id='planItemonboardingscreening']", NS)
        assert screening_item.get("definitionRef") == "screeningstage"

        nested = main_stage.find("c:stage[@id='screeningstage']", NS)
        assert nested.get("name") == "Screening"
        assert [i.get("id") for i in nested.findall("c:planItem", NS)] == [
            "planItemscreeningcheck",
            "planItemscreeningverify",
        ]
        assert [t.get("id") for t in nested.findall("c:humanTask", NS)] == [
            "screeningcheck",
            "screeningverify",
        ]
        assert nested.find("c:extensionElements/flowable:planItemLifecycleListener", NS) is not None

    def test_nested_first_child_waits_for_outside_predecessor(self, staged_logic):
        root = parse(generate(staged_logic))
        nested = root.find(".//c:stage[@id='screeningstage']", NS)
        check = nested.find("c:planItem[@id='planItemscreeningcheck']", NS)
        assert len(check.findall("c:entryCriterion", NS)) == 1
        sentry = nested.find("c:sentry[@id='sentrycheck0']", NS)
        on_part = sentry.find("c:planItemOnPart", NS)
        assert on_part.get("sourceRef") == "planItemonboardingintake"
        assert on_part.find("c:standardEvent", NS).text == "complete"

    def test_top_level_tasks_keep_case_prefix(self, staged_logic):
        root = parse(generate(staged_logic))
        main_stage = root.find("c:case/c:casePlanModel/c:stage", NS)
        assert [t.get("id") for t in main_stage.findall("c:humanTask", NS)] == [
            "onboardingintake",
            "onboardingarchive",
        ]


class TestElementIds:

    def test_ids_follow_prefixes(self, staged_logic):
        ids = dict(
            element_ids(
                parse_business_logic(staged_logic),
                "onboarding",
                ApplicationDetail(identifier="app42", slug="hr"),
            )
        )
        assert ids["planItemhronboarding"] == "the main stage"
        assert ids["screeningstage"] == "stage 'screening'"
        assert ids["planItemscreeningcheck"] == "task 'check'"
        assert ids["onboardingintake"] == "task 'intake'"

    def test_stage_child_meeting_case_shape(self):
        logic = parse_business_logic(
            {
                "tasks": [{"slug": "b", "displayName": "B", "outcomes": ["done"]}],
                "stages": [{"slug": "a", "tasks": ["b"]}],
            }
        )
        with pytest.raises(ValidationError, match="CMMNShape_ab"):
            check_element_ids(logic, "ab", ApplicationDetail(identifier="x"))

    def test_tasks_resolved_once_per_document(self, staged_logic):
        with patch.object(
            BusinessLogic, "get_task", autospec=True, side_effect=BusinessLogic.get_task
        ) as get_task:
            generate(staged_logic)
        get_task.assert_not_called()
