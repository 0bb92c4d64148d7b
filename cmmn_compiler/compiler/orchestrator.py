"""
CMMN Compiler Orchestrator

Runs the compilation pipeline end to end:
1. Business logic validation
2. Diagram layout
3. Sentry and edge routing (conditions synthesized per sentry)
4. CMMN XML generation

Compilation is pure: each call owns all derived state and performs no I/O.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from cmmn_compiler.compiler.config import CompilerConfig
from cmmn_compiler.compiler.errors import ValidationError
from cmmn_compiler.core.observability import log_execution, record_metric, span
from cmmn_compiler.models.business_logic import ApplicationDetail, BusinessLogic
from cmmn_compiler.models.cmmn_elements import LayoutResult, Sentry
from cmmn_compiler.stages.graph_validation import GraphValidator, is_xml_text
from cmmn_compiler.stages.layout import get_layout_engine
from cmmn_compiler.stages.sentry_routing import SentryRouter
from cmmn_compiler.stages.xml_generation import CMMNXMLGenerator, check_element_ids

logger = logging.getLogger(__name__)

# Case names become part of XML ids
_CASE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")

ApplicationInput = Union[ApplicationDetail, Mapping[str, Any], str]


@dataclass
class CompilationResult:
    """Intermediate artifacts and the final document of one compilation."""

    business_logic: BusinessLogic
    layout: LayoutResult
    sentries: Dict[str, List[Sentry]]
    xml: str


def coerce_application(application: ApplicationInput) -> ApplicationDetail:
    """Accept an ApplicationDetail, a mapping, or a bare identifier."""
    if isinstance(application, ApplicationDetail):
        detail = application
    elif isinstance(application, str):
        if not application:
            raise ValidationError("Application identifier is required", field="identifier")
        detail = ApplicationDetail(identifier=application)
    else:
        identifier = application.get("identifier")
        if not isinstance(identifier, str) or not identifier:
            raise ValidationError("Application identifier is required", field="identifier")
        detail = ApplicationDetail(identifier=identifier, slug=application.get("slug") or "app")

    for field_name, value in (("identifier", detail.identifier), ("slug", detail.slug)):
        if not is_xml_text(value):
            raise ValidationError(
                f"Application {field_name} contains characters not allowed in XML",
                field=field_name,
            )
    return detail


class CMMNCompiler:
    """Compiles business logic into Flowable CMMN documents."""

    def __init__(self, config: Optional[CompilerConfig] = None):
        """Initialize the compiler.

        Args:
            config: Compiler configuration; defaults to CompilerConfig()
        """
        self.config = config or CompilerConfig()
        self.validator = GraphValidator()
        self.layout_engine = get_layout_engine(self.config.layout_mode)
        self.router = SentryRouter()
        self.generator = CMMNXMLGenerator(self.config)

    @log_execution()
    def compile(
        self,
        business_logic: Union[BusinessLogic, Mapping[str, Any], str],
        case_name: str,
        application: ApplicationInput,
    ) -> str:
        """Compile business logic into a CMMN XML document.

        Args:
            business_logic: Validated BusinessLogic, or raw mapping / JSON text
            case_name: Case name used in element identifiers
            application: Owning application (detail, mapping or identifier)

        Returns:
            CMMN XML document string

        Raises:
            ValidationError: If the input is malformed or inconsistent
        """
        return self.compile_with_artifacts(business_logic, case_name, application).xml

    def compile_with_artifacts(
        self,
        business_logic: Union[BusinessLogic, Mapping[str, Any], str],
        case_name: str,
        application: ApplicationInput,
    ) -> CompilationResult:
        """Compile and keep the layout and sentries alongside the document."""
        if not isinstance(case_name, str) or not _CASE_NAME_PATTERN.match(case_name):
            raise ValidationError(
                "Case name must start with a letter or underscore and contain only "
                "letters, digits, '_' or '-'",
                field="caseName",
            )
        app = coerce_application(application)

        with span("cmmn.compile", {"case_name": case_name, "application": app.identifier}):
            with span("cmmn.validate"):
                if isinstance(business_logic, BusinessLogic):
                    logic = business_logic
                else:
                    logic = self.validator.validate(business_logic)
                check_element_ids(logic, case_name, app)

            with span("cmmn.layout", {"mode": self.config.layout_mode.value}):
                layout = self.layout_engine.layout(logic)

            with span("cmmn.route"):
                sentries = self.router.route(logic, layout)

            with span("cmmn.emit"):
                xml = self.generator.generate_xml(logic, layout, sentries, case_name, app)

        record_metric("compilations_total", 1, {"layout": self.config.layout_mode.value})
        logger.info(
            f"Compiled case {case_name}_{app.identifier}: {len(logic.tasks)} tasks, "
            f"{sum(len(s) for s in sentries.values())} sentries"
        )
        return CompilationResult(
            business_logic=logic, layout=layout, sentries=sentries, xml=xml
        )


def compile_business_logic(
    business_logic: Union[BusinessLogic, Mapping[str, Any], str],
    case_name: str,
    application: ApplicationInput,
    config: Optional[CompilerConfig] = None,
) -> str:
    """Compile with a one-off CMMNCompiler."""
    return CMMNCompiler(config).compile(business_logic, case_name, application)


__all__ = [
    "CMMNCompiler",
    "CompilationResult",
    "compile_business_logic",
    "coerce_application",
]
