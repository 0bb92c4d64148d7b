"""
Compiler error taxonomy.

Validation failures are fatal and raised before any layout work. Structural
document errors belong to the inspection path. Quality warnings are plain
data and are never raised.
"""

from dataclasses import dataclass
from typing import List, Optional


class CompilerError(Exception):
    """Base class for all compiler errors."""


class ValidationError(CompilerError):
    """Malformed or inconsistent business-logic input."""

    def __init__(self, message: str, index: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.index = index
        self.field = field

    def to_dict(self) -> dict:
        return {"error": self.message, "index": self.index, "field": self.field}


class StructuralDocumentError(CompilerError):
    """A parsed document is missing mandatory CMMN elements."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors) or "Invalid CMMN document")
        self.errors = list(errors)


class DeploymentError(CompilerError):
    """The deployment or configuration endpoint rejected a request."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class QualityWarning:
    """Non-fatal compatibility or style issue found in a document."""

    message: str
    element_id: Optional[str] = None

    def __str__(self) -> str:
        if self.element_id:
            return f"{self.element_id}: {self.message}"
        return self.message


__all__ = [
    "CompilerError",
    "ValidationError",
    "StructuralDocumentError",
    "DeploymentError",
    "QualityWarning",
]
