"""Deployment of compiled documents to the case engine."""

from cmmn_compiler.deployment.client import (
    DeploymentConfig,
    WorkflowDeployer,
    build_workflow_config,
    case_file_name,
)

__all__ = ["DeploymentConfig", "WorkflowDeployer", "build_workflow_config", "case_file_name"]
