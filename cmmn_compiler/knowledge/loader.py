"""
Template Library Loader

Loads ready-made business-logic templates from JSON files shipped with the
package.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from cmmn_compiler.models.business_logic import BusinessLogic
from cmmn_compiler.stages.graph_validation import parse_business_logic

logger = logging.getLogger(__name__)


class BusinessTemplate(BaseModel):
    """A named business-logic template."""

    id: str = Field(..., description="Template identifier")
    name: str = Field(..., description="Human readable name")
    description: str = Field(default="")
    template: Dict[str, Any] = Field(..., description="Raw business logic")

    def business_logic(self) -> BusinessLogic:
        """Validated business logic for this template."""
        return parse_business_logic(self.template)


class TemplateLibraryLoader:
    """
    Loads business-logic templates from a directory of JSON files.
    """

    def __init__(self, templates_dir: Optional[Path] = None):
        """
        Initialize the template loader.

        Args:
            templates_dir: Directory containing template JSON files.
                           If None, uses the templates shipped with this module.
        """
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"

        self.templates_dir = Path(templates_dir)
        self._templates: Optional[Dict[str, BusinessTemplate]] = None

    def load_all(self) -> Dict[str, BusinessTemplate]:
        """
        Load every template file, keyed by template id.

        Files that cannot be read or parsed are skipped with a warning.
        """
        if self._templates is not None:
            return self._templates

        templates: Dict[str, BusinessTemplate] = {}
        for path in sorted(self.templates_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                template = BusinessTemplate.model_validate(data)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load template {path.name}: {e}")
                continue
            templates[template.id] = template

        logger.info(f"Loaded {len(templates)} templates from {self.templates_dir}")
        self._templates = templates
        return templates

    def list_templates(self) -> List[BusinessTemplate]:
        return list(self.load_all().values())

    def get_template(self, template_id: str) -> BusinessTemplate:
        """
        Look up a template by id.

        Raises:
            KeyError: If no template has that id
        """
        templates = self.load_all()
        if template_id not in templates:
            raise KeyError(
                f"Unknown template '{template_id}'. Available: {', '.join(sorted(templates))}"
            )
        return templates[template_id]


__all__ = ["BusinessTemplate", "TemplateLibraryLoader"]
