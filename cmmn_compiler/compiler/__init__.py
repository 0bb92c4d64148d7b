"""Compiler configuration and error taxonomy.

The pipeline itself lives in ``cmmn_compiler.compiler.orchestrator``.
"""

from cmmn_compiler.compiler.config import CompilerConfig, LayoutMode
from cmmn_compiler.compiler.errors import (
    CompilerError,
    DeploymentError,
    QualityWarning,
    StructuralDocumentError,
    ValidationError,
)

__all__ = [
    "CompilerConfig",
    "LayoutMode",
    "CompilerError",
    "DeploymentError",
    "QualityWarning",
    "StructuralDocumentError",
    "ValidationError",
]
