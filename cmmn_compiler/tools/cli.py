"""
CMMN Compiler CLI Interface

Command-line tool for compiling business logic into CMMN documents,
inspecting existing documents and browsing the template library.
"""

import asyncio
import json
import logging
import sys
from typing import Optional

import click

from cmmn_compiler import __version__
from cmmn_compiler.compiler.config import CompilerConfig, LayoutMode
from cmmn_compiler.compiler.errors import (
    DeploymentError,
    StructuralDocumentError,
    ValidationError,
)
from cmmn_compiler.compiler.orchestrator import CMMNCompiler
from cmmn_compiler.core.observability import LogLevel, ObservabilityConfig, ObservabilityManager
from cmmn_compiler.deployment.client import DeploymentConfig, WorkflowDeployer
from cmmn_compiler.knowledge.loader import TemplateLibraryLoader
from cmmn_compiler.models.business_logic import ApplicationDetail
from cmmn_compiler.validation.document_inspector import DocumentInspector, extract_business_logic

logger = logging.getLogger(__name__)


def _setup_observability(verbose: bool, json_logs: bool = False) -> None:
    ObservabilityManager.initialize(
        ObservabilityConfig(
            service_name="cmmn-compiler-cli",
            log_level=LogLevel.DEBUG if verbose else LogLevel.WARNING,
            json_logs=json_logs,
        )
    )


def _read_file(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except IOError as e:
        click.echo(f"Error reading input file: {e}", err=True)
        sys.exit(1)


def _write_output(content: str, output: Optional[str]) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(content)
        click.echo(f"Written to {output}", err=True)
    else:
        click.echo(content)


@click.group()
@click.version_option(__version__, prog_name="cmmn-compiler")
def cli():
    """CMMN Compiler CLI - Turn business logic into Flowable CMMN cases."""
    pass


@cli.command(name="compile")
@click.argument("input_file", type=click.Path(exists=True), required=False)
@click.option("--template", "-t", type=str, help="Compile a library template instead of a file")
@click.option("--case-name", "-n", required=True, help="Case name used in element ids")
@click.option("--app-id", "-a", required=True, help="Application identifier")
@click.option("--app-slug", default="app", show_default=True, help="Application slug")
@click.option(
    "--layout",
    type=click.Choice([mode.value for mode in LayoutMode]),
    default=LayoutMode.ALTERNATING.value,
    show_default=True,
    help="Diagram layout",
)
@click.option("--output", "-o", type=click.Path(), help="Output file for the CMMN XML")
@click.option("--compact", is_flag=True, help="Disable pretty printing")
@click.option("--verbose/--quiet", default=False, help="Verbose logging output")
def compile_command(
    input_file: Optional[str],
    template: Optional[str],
    case_name: str,
    app_id: str,
    app_slug: str,
    layout: str,
    output: Optional[str],
    compact: bool,
    verbose: bool,
) -> None:
    """
    Compile business logic JSON into a CMMN document.

    \b
    Examples:
        cmmn-compiler compile logic.json -n expense -a app42 -o expense.cmmn.xml
        cmmn-compiler compile -t retryPattern -n review -a app42 --layout grid
    """
    _setup_observability(verbose)

    if template:
        try:
            business_logic = TemplateLibraryLoader().get_template(template).template
        except KeyError as e:
            click.echo(f"Error: {e.args[0]}", err=True)
            sys.exit(1)
    elif input_file:
        business_logic = _read_file(input_file)
    else:
        click.echo("Error: provide an INPUT_FILE or --template", err=True)
        sys.exit(1)

    config = CompilerConfig(layout_mode=LayoutMode(layout), pretty_print=not compact)
    application = ApplicationDetail(identifier=app_id, slug=app_slug)

    try:
        xml = CMMNCompiler(config).compile(business_logic, case_name, application)
    except ValidationError as e:
        click.echo(f"Validation error: {e.message}", err=True)
        sys.exit(1)

    _write_output(xml, output)


@cli.command()
@click.argument("cmmn_file", type=click.Path(exists=True))
@click.option("--json-output", is_flag=True, help="Output the full report as JSON")
def inspect(cmmn_file: str, json_output: bool) -> None:
    """
    Inspect a CMMN document for structural errors and quality warnings.

    \b
    Examples:
        cmmn-compiler inspect expense.cmmn.xml
        cmmn-compiler inspect expense.cmmn.xml --json-output
    """
    report = DocumentInspector().inspect(_read_file(cmmn_file))

    if json_output:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(f"File: {cmmn_file}")
        click.echo(f"Valid: {report.is_valid}")
        click.echo(f"Case: {report.case_name} (application {report.application_id})")
        click.echo(f"Tasks: {', '.join(task.slug for task in report.tasks) or '-'}")
        for error in report.errors:
            click.echo(f"ERROR: {error}")
        for warning in report.warnings:
            click.echo(f"WARNING: {warning}")
        for suggestion in report.suggestions:
            click.echo(f"SUGGESTION: {suggestion}")

    if not report.is_valid:
        sys.exit(1)


@cli.command()
@click.argument("cmmn_file", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Path(), help="Output file for the business logic")
def extract(cmmn_file: str, output: Optional[str]) -> None:
    """Reconstruct business logic JSON from a CMMN document."""
    try:
        business_logic = extract_business_logic(_read_file(cmmn_file))
    except StructuralDocumentError as e:
        click.echo("Error: document is not a valid CMMN case", err=True)
        for error in e.errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    _write_output(json.dumps(business_logic.to_payload(), indent=2), output)


@cli.command()
@click.argument("template_id", required=False)
def templates(template_id: Optional[str]) -> None:
    """
    List library templates, or print one as business logic JSON.

    \b
    Examples:
        cmmn-compiler templates
        cmmn-compiler templates sequentialApproval
    """
    loader = TemplateLibraryLoader()
    if template_id is None:
        for template in loader.list_templates():
            click.echo(f"{template.id}: {template.name} - {template.description}")
        return

    try:
        template = loader.get_template(template_id)
    except KeyError as e:
        click.echo(f"Error: {e.args[0]}", err=True)
        sys.exit(1)
    click.echo(json.dumps(template.template, indent=2))


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("--case-name", "-n", required=True, help="Case name used in element ids")
@click.option("--case-slug", default=None, help="Case slug (defaults to the case name)")
@click.option("--app-id", "-a", required=True, help="Application identifier")
@click.option("--app-name", required=True, help="Application name")
@click.option("--app-slug", default="app", show_default=True, help="Application slug")
@click.option("--base-url", default=None, help="Backend base URL (CMMN_DEPLOY_BASE_URL)")
@click.option("--token", default=None, help="Bearer token (CMMN_DEPLOY_TOKEN)")
@click.option("--verbose/--quiet", default=False, help="Verbose logging output")
def deploy(
    input_file: str,
    case_name: str,
    case_slug: Optional[str],
    app_id: str,
    app_name: str,
    app_slug: str,
    base_url: Optional[str],
    token: Optional[str],
    verbose: bool,
) -> None:
    """Compile business logic, deploy it and save the workflow configuration."""
    _setup_observability(verbose)

    config = DeploymentConfig.from_env()
    if base_url:
        config.base_url = base_url.rstrip("/")
    if token:
        config.token = token

    compiler = CMMNCompiler(CompilerConfig.from_env())
    application = ApplicationDetail(identifier=app_id, slug=app_slug)
    try:
        result = compiler.compile_with_artifacts(_read_file(input_file), case_name, application)
    except ValidationError as e:
        click.echo(f"Validation error: {e.message}", err=True)
        sys.exit(1)

    slug = case_slug or case_name

    async def _deploy():
        async with WorkflowDeployer(config) as deployer:
            deployment = await deployer.deploy(app_id, app_name, slug, result.xml)
            await deployer.save_workflow_config(
                app_id, app_name, slug, case_name, deployment, result.business_logic
            )
            return deployment

    try:
        deployment = asyncio.run(_deploy())
    except DeploymentError as e:
        click.echo(f"Deployment failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(deployment, indent=2))


if __name__ == "__main__":
    cli()
