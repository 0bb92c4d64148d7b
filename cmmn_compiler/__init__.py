"""
CMMN Compiler

Compiles abstract business-process descriptions (tasks, outcomes and
sequencing patterns) into Flowable CMMN documents with a computed diagram.
"""

__version__ = "0.1.0"

from cmmn_compiler.compiler.config import CompilerConfig, LayoutMode
from cmmn_compiler.compiler.errors import (
    CompilerError,
    QualityWarning,
    StructuralDocumentError,
    ValidationError,
)
from cmmn_compiler.compiler.orchestrator import CMMNCompiler, compile_business_logic
from cmmn_compiler.models import ApplicationDetail, BusinessLogic
from cmmn_compiler.validation import DocumentInspector, extract_business_logic

__all__ = [
    "__version__",
    "CMMNCompiler",
    "compile_business_logic",
    "CompilerConfig",
    "LayoutMode",
    "CompilerError",
    "ValidationError",
    "StructuralDocumentError",
    "QualityWarning",
    "ApplicationDetail",
    "BusinessLogic",
    "DocumentInspector",
    "extract_business_logic",
]
