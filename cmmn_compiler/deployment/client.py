"""
Workflow Deployment Client

Uploads compiled CMMN documents to the case engine's deploy endpoint and
persists the resulting workflow configuration. Both calls are asynchronous
network operations performed after compilation; the compiler itself never
calls this module.
"""

import asyncio
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from cmmn_compiler.compiler.errors import DeploymentError
from cmmn_compiler.models.business_logic import BusinessLogic

DEPLOY_PATH = "/api/v1/work/tenant/sdk/application/app/cmmn/deploy"
FLOWS_PATH = "/api/v2/work/flows/{app_id}"
ACCEPT_HEADER = "application/json, text/plain, */*"
GENERATED_BY = "cmmn-compiler"


class DeploymentConfig(BaseModel):
    """Configuration for the deployment endpoints."""

    base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the workflow backend"
    )
    token: Optional[str] = Field(
        default=None,
        description="Bearer token sent with every request"
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url has no trailing slash."""
        return v.rstrip("/")

    @classmethod
    def from_env(cls) -> "DeploymentConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("CMMN_DEPLOY_BASE_URL", "http://localhost:8080"),
            token=os.getenv("CMMN_DEPLOY_TOKEN"),
            timeout=float(os.getenv("CMMN_DEPLOY_TIMEOUT", "30")),
        )


def case_file_name(case_slug: str) -> str:
    """File name the engine expects for an uploaded case model."""
    return f"{case_slug}flowableCase.cmmn.xml"


def build_workflow_config(
    app_id: str,
    app_name: str,
    case_slug: str,
    case_name: str,
    deployment_data: Dict[str, Any],
    business_logic: BusinessLogic,
    flow_uuid: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build the workflow configuration persisted after a deployment.

    Args:
        app_id: Application identifier
        app_name: Application name used for the deployment
        case_slug: Case slug
        case_name: Case display name
        deployment_data: Response body of the deploy endpoint
        business_logic: Compiled business logic
        flow_uuid: Flow uuid; generated when omitted
        generated_at: Generation timestamp; now (UTC) when omitted

    Raises:
        DeploymentError: If the deployment response lacks the app definition
    """
    try:
        app_definition = deployment_data["data"]["appDefinition"]
        cmmn_id = app_definition["definition"]["cmmnModels"][0]["id"]
    except (KeyError, IndexError, TypeError) as e:
        raise DeploymentError(f"Deployment response is missing the app definition: {e}") from e

    timestamp = generated_at or datetime.now(timezone.utc)
    tasks = [
        {
            "slug": task.slug,
            "display_name": task.display_name,
            "outcomes": list(task.outcomes),
            "assignee": task.assignee,
            "candidateGroups": task.candidate_groups,
            "dueDate": task.due_date,
            "formKey": task.form_key,
            "repetitionLimit": task.repetition_limit,
        }
        for task in business_logic.tasks
    ]
    stages = [
        {"slug": stage.slug, "display_name": stage.display_name, "tasks": list(stage.tasks)}
        for stage in business_logic.stages
    ]

    return {
        "flow_config": {
            case_slug: {
                "name": case_name,
                "slug": case_slug,
                "uuid": flow_uuid or str(uuid.uuid4()),
                "cmmnId": cmmn_id,
                "deploymentId": app_definition.get("id") or "",
                "relationship": [],
                "stages": stages,
                "tasks": tasks,
                "new": True,
            }
        },
        "application": app_id,
        "object_slug": case_slug,
        "meta_data": {
            "flow_app_id": app_definition.get("id"),
            "flow_app_name": app_name,
            "flow_app_key": app_definition.get("key"),
            "generated_by": GENERATED_BY,
            "generated_at": timestamp.isoformat(),
        },
    }


class WorkflowDeployer:
    """Async client for the deploy and flow configuration endpoints."""

    def __init__(self, config: Optional[DeploymentConfig] = None):
        """Initialize deployer."""
        self.config = config or DeploymentConfig()
        self.session: Optional[aiohttp.ClientSession] = None
        logger.info(f"Initializing {self.__class__.__name__} for {self.config.base_url}")

    async def __aenter__(self) -> "WorkflowDeployer":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close_session()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    async def close_session(self) -> None:
        """Close aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {"accept": ACCEPT_HEADER, **extra}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def deploy(self, app_id: str, app_name: str, case_slug: str, cmmn_xml: str) -> Dict[str, Any]:
        """Upload a compiled document.

        Args:
            app_id: Application identifier
            app_name: Application name
            case_slug: Case slug; names the uploaded file
            cmmn_xml: Compiled CMMN document

        Returns:
            Parsed JSON response of the deploy endpoint

        Raises:
            DeploymentError: On a non-2xx response
        """
        form = aiohttp.FormData()
        form.add_field(
            "files",
            cmmn_xml.encode("utf-8"),
            filename=case_file_name(case_slug),
            content_type="application/octet-stream",
        )
        form.add_field("app_name", app_name)
        form.add_field("amoga_app_id", app_id)

        return await self._post(f"{self.config.base_url}{DEPLOY_PATH}", data=form)

    async def save_workflow_config(
        self,
        app_id: str,
        app_name: str,
        case_slug: str,
        case_name: str,
        deployment_data: Dict[str, Any],
        business_logic: BusinessLogic,
    ) -> Any:
        """Persist the workflow configuration for a deployed case."""
        workflow_config = build_workflow_config(
            app_id, app_name, case_slug, case_name, deployment_data, business_logic
        )
        url = f"{self.config.base_url}{FLOWS_PATH.format(app_id=app_id)}"
        return await self._post(url, json=[workflow_config])

    async def _post(self, url: str, **kwargs: Any) -> Any:
        session = await self._get_session()
        try:
            async with session.post(url, headers=self._headers(), **kwargs) as response:
                if response.status >= 300:
                    error_text = await response.text()
                    logger.error(f"Deployment API error: HTTP {response.status} - {error_text}")
                    raise DeploymentError(
                        f"HTTP error! status: {response.status}", status=response.status
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout calling {url}")
            raise DeploymentError(f"Timeout calling {url}") from e
        except aiohttp.ClientError as e:
            logger.error(f"Deployment API call failed: {e}")
            raise DeploymentError(f"Deployment API call failed: {e}") from e


__all__ = [
    "DeploymentConfig",
    "WorkflowDeployer",
    "build_workflow_config",
    "case_file_name",
]
