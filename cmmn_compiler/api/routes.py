"""
FastAPI REST endpoints for the CMMN compiler.

Provides a REST API for:
- Compiling business logic into CMMN documents
- Inspecting existing documents
- Extracting business logic from documents
- Browsing the template library
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Path
from pydantic import BaseModel, ConfigDict, Field

from cmmn_compiler.compiler.config import CompilerConfig, LayoutMode
from cmmn_compiler.compiler.errors import StructuralDocumentError, ValidationError
from cmmn_compiler.compiler.orchestrator import CMMNCompiler
from cmmn_compiler.knowledge.loader import TemplateLibraryLoader
from cmmn_compiler.models.business_logic import ApplicationDetail
from cmmn_compiler.validation.document_inspector import DocumentInspector, extract_business_logic

# ===========================
# Request/Response Models
# ===========================


class CompileRequest(BaseModel):
    """Business logic plus case identity."""

    model_config = ConfigDict(populate_by_name=True)

    business_logic: Dict[str, Any] = Field(..., alias="businessLogic")
    case_name: str = Field(..., alias="caseName", min_length=1)
    application_id: str = Field(..., alias="applicationId", min_length=1)
    application_slug: str = Field(default="app", alias="applicationSlug")
    layout: LayoutMode = Field(default=LayoutMode.ALTERNATING)
    pretty_print: bool = Field(default=True, alias="prettyPrint")


class CompileResponse(BaseModel):
    """Compiled document with a short summary."""

    case_id: str
    xml: str
    task_count: int
    sentry_count: int


class DocumentRequest(BaseModel):
    """A CMMN document to inspect or extract from."""

    xml: str = Field(..., min_length=1)


class InspectionResponse(BaseModel):
    """Inspection findings and extracted tasks."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    case_name: Optional[str] = None
    application_id: Optional[str] = None
    tasks: List[Dict[str, Any]] = Field(default_factory=list)


class TemplateSummary(BaseModel):
    """Template listing entry."""

    id: str
    name: str
    description: str


# ===========================
# Initialize Router
# ===========================

router = APIRouter(prefix="/api/v1/cmmn", tags=["cmmn-compiler"])

# Template library (loaded on first use)
_template_loader: Optional[TemplateLibraryLoader] = None


def get_template_loader() -> TemplateLibraryLoader:
    """Get or initialize the template library."""
    global _template_loader
    if _template_loader is None:
        _template_loader = TemplateLibraryLoader()
    return _template_loader


# ===========================
# Endpoints
# ===========================


@router.post("/compile", response_model=CompileResponse)
async def compile_case(request: CompileRequest) -> CompileResponse:
    """
    Compile business logic into a Flowable CMMN document.

    Returns 400 with the offending index and field when the business logic
    is malformed.
    """
    config = CompilerConfig(
        layout_mode=request.layout, pretty_print=request.pretty_print
    )
    application = ApplicationDetail(
        identifier=request.application_id, slug=request.application_slug
    )
    try:
        result = CMMNCompiler(config).compile_with_artifacts(
            request.business_logic, request.case_name, application
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict()) from e

    return CompileResponse(
        case_id=f"{request.case_name}_{request.application_id}",
        xml=result.xml,
        task_count=len(result.business_logic.tasks),
        sentry_count=sum(len(sentries) for sentries in result.sentries.values()),
    )


@router.post("/inspect", response_model=InspectionResponse)
async def inspect_document(request: DocumentRequest) -> InspectionResponse:
    """Check a document's structure and report quality findings."""
    report = DocumentInspector().inspect(request.xml)
    payload = report.to_dict()
    return InspectionResponse(
        is_valid=payload["isValid"],
        errors=payload["errors"],
        warnings=payload["warnings"],
        suggestions=payload["suggestions"],
        case_name=payload["caseName"],
        application_id=payload["applicationId"],
        tasks=payload["tasks"],
    )


@router.post("/extract")
async def extract_logic(request: DocumentRequest) -> Dict[str, Any]:
    """Reconstruct business logic (tasks plus a sequential pattern) from a document."""
    try:
        business_logic = extract_business_logic(request.xml)
    except StructuralDocumentError as e:
        raise HTTPException(status_code=422, detail={"errors": e.errors}) from e
    return business_logic.to_payload()


@router.get("/templates", response_model=List[TemplateSummary])
async def list_templates() -> List[TemplateSummary]:
    """List the business-logic template library."""
    return [
        TemplateSummary(id=t.id, name=t.name, description=t.description)
        for t in get_template_loader().list_templates()
    ]


@router.get("/templates/{template_id}")
async def get_template(
    template_id: str = Path(..., description="Template identifier"),
) -> Dict[str, Any]:
    """Business logic of one template."""
    try:
        template = get_template_loader().get_template(template_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Template not found: {template_id}") from e
    return template.template
