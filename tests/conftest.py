"""Pytest configuration for cmmn-compiler tests."""

import io
from typing import Dict

import pytest

from cmmn_compiler.core.observability import LogLevel, ObservabilityConfig, ObservabilityManager
from cmmn_compiler.models.business_logic import ApplicationDetail


def pytest_configure(config):
    """Configure pytest with asyncio support."""
    config.option.asyncio_mode = "auto"


@pytest.fixture(autouse=True, scope="session")
def quiet_observability():
    """Route loguru output to a buffer for the whole session."""
    ObservabilityManager.reset()
    ObservabilityManager.initialize(
        ObservabilityConfig(
            service_name="cmmn-compiler-tests",
            log_level=LogLevel.WARNING,
            stream=io.StringIO(),
        )
    )
    yield
    ObservabilityManager.reset()


# ===========================
# Business logic fixtures
# ===========================


@pytest.fixture
def scenario_logic() -> Dict:
    """submit -> review -> finalize, with review gated on submit's outcome."""
    return {
        "tasks": [
            {"slug": "submit", "displayName": "Submit", "outcomes": ["submitted"]},
            {"slug": "review", "displayName": "Review", "outcomes": ["approved", "rejected"]},
            {"slug": "finalize", "displayName": "Finalize", "outcomes": ["completed"]},
        ],
        "patterns": [
            {
                "type": "sequential",
                "tasks": ["submit", "review", "finalize"],
                "conditions": [
                    {"sourceTask": "submit", "targetTask": "review", "outcome": "submitted"}
                ],
            }
        ],
    }


@pytest.fixture
def join_logic() -> Dict:
    """Two parallel approvers feeding one join task."""
    return {
        "tasks": [
            {"slug": "a", "displayName": "A", "outcomes": ["approved", "rejected"]},
            {"slug": "b", "displayName": "B", "outcomes": ["approved", "rejected"]},
            {"slug": "c", "displayName": "C", "outcomes": ["done"]},
        ],
        "patterns": [
            {
                "type": "parallel",
                "tasks": ["a", "b", "c"],
                "conditions": [
                    {"sourceTask": "a", "targetTask": "c", "outcome": "approved"},
                    {
                        "sourceTask": "b",
                        "targetTask": "c",
                        "outcome": "approved",
                        "operator": "AND",
                    },
                ],
            }
        ],
    }


@pytest.fixture
def staged_logic() -> Dict:
    """Tasks split over two nested stages plus a top-level task."""
    return {
        "tasks": [
            {"slug": "intake", "displayName": "Intake", "outcomes": ["completed"]},
            {"slug": "check", "displayName": "Check", "outcomes": ["approved", "rejected"]},
            {"slug": "verify", "displayName": "Verify", "outcomes": ["approved"]},
            {"slug": "sign", "displayName": "Sign", "outcomes": ["completed"]},
            {"slug": "archive", "displayName": "Archive", "outcomes": ["completed"]},
        ],
        "stages": [
            {"slug": "screening", "displayName": "Screening", "tasks": ["check", "verify"]},
            {"slug": "closing", "displayName": "Closing", "tasks": ["sign"]},
        ],
        "patterns": [
            {
                "type": "sequential",
                "tasks": ["intake", "check", "verify", "sign", "archive"],
            }
        ],
    }


@pytest.fixture
def application() -> ApplicationDetail:
    return ApplicationDetail(identifier="app42", slug="hr")
