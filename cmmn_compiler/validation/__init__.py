"""Inspection of existing CMMN documents."""

from cmmn_compiler.validation.document_inspector import (
    DocumentInspector,
    InspectionReport,
    ParsedTask,
    extract_business_logic,
    inspect_document,
)

__all__ = [
    "DocumentInspector",
    "InspectionReport",
    "ParsedTask",
    "extract_business_logic",
    "inspect_document",
]
