"""Tests for the business-logic template library."""

import json

import pytest

from cmmn_compiler.knowledge.loader import BusinessTemplate, TemplateLibraryLoader
from cmmn_compiler.models.business_logic import BusinessLogic


class TestShippedTemplates:

    def test_list(self):
        templates = TemplateLibraryLoader().list_templates()
        assert sorted(t.id for t in templates) == [
            "parallelReview",
            "retryPattern",
            "sequentialApproval",
        ]

    def test_templates_validate(self):
        for template in TemplateLibraryLoader().list_templates():
            assert isinstance(template.business_logic(), BusinessLogic)

    def test_unknown_template(self):
        with pytest.raises(KeyError, match="Unknown template 'missing'"):
            TemplateLibraryLoader().get_template("missing")


class TestCustomDirectory:

    def test_loads_directory(self, tmp_path, scenario_logic):
        (tmp_path / "onboarding.json").write_text(
            json.dumps(
                {"id": "onboarding", "name": "Onboarding", "template": scenario_logic}
            ),
            encoding="utf-8",
        )
        loader = TemplateLibraryLoader(tmp_path)
        template = loader.get_template("onboarding")
        assert isinstance(template, BusinessTemplate)
        assert template.description == ""
        assert [t.slug for t in template.business_logic().tasks] == ["submit", "review", "finalize"]

    def test_skips_broken_files(self, tmp_path):
        (tmp_path / "broken.json").write_text("{", encoding="utf-8")
        (tmp_path / "incomplete.json").write_text('{"id": "x"}', encoding="utf-8")
        assert TemplateLibraryLoader(tmp_path).load_all() == {}

    def test_results_are_cached(self, tmp_path, scenario_logic):
        loader = TemplateLibraryLoader(tmp_path)
        assert loader.load_all() == {}
        (tmp_path / "late.json").write_text(
            json.dumps({"id": "late", "name": "Late", "template": scenario_logic}),
            encoding="utf-8",
        )
        assert loader.load_all() == {}
