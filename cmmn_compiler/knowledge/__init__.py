"""Business-logic template library."""

from cmmn_compiler.knowledge.loader import BusinessTemplate, TemplateLibraryLoader

__all__ = ["BusinessTemplate", "TemplateLibraryLoader"]
