#!/usr/bin/env python3
"""FHIR Orchestration CLI.

Command-line interface for validating bundle files with the orchestration
engine.
"""

import json
from pathlib import Path
from typing import Dict, Optional, Tuple

import click

from fhir_orchestration.engines import ValidationEngineType
from fhir_orchestration.orchestrator import OrchestrationEngine
from fhir_orchestration.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _named_urls(
    ctx: click.Context, param: click.Parameter, values: Tuple[str, ...]
) -> Dict[str, str]:
    """Parse repeated NAME=URL options into a mapping."""
    urls: Dict[str, str] = {}
    for value in values:
        name, sep, url = value.partition("=")
        if not sep or not name or not url:
            raise click.BadParameter(f"expected NAME=URL, got {value!r}")
        urls[name] = url
    return urls


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Override the configured log level",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    help="Override the configured log renderer",
)
def cli(log_level: Optional[str], log_format: Optional[str]) -> None:
    """FHIR bundle validation orchestration tools."""
    setup_logging(log_level, log_format)


@cli.command()
@click.argument(
    "payload_files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, file_okay=True, dir_okay=False),
)
@click.option("--profile", "-p", required=True, help="FHIR profile URL of the bundles")
@click.option(
    "--engine",
    "-e",
    "engines",
    multiple=True,
    type=click.Choice([t.value for t in ValidationEngineType]),
    help="Engine to validate with (can be specified multiple times)",
)
@click.option("--strategy", "-s", help="Validation strategy JSON, e.g. '{\"engines\": [\"HAPI\"]}'")
@click.option(
    "--clear-existing",
    is_flag=True,
    help="Let the strategy replace the engines given with --engine",
)
@click.option(
    "--structure-definition",
    "structure_definitions",
    multiple=True,
    metavar="NAME=URL",
    callback=_named_urls,
    help="Supporting StructureDefinition (can be specified multiple times)",
)
@click.option(
    "--code-system",
    "code_systems",
    multiple=True,
    metavar="NAME=URL",
    callback=_named_urls,
    help="Supporting CodeSystem (can be specified multiple times)",
)
@click.option(
    "--value-set",
    "value_sets",
    multiple=True,
    metavar="NAME=URL",
    callback=_named_urls,
    help="Supporting ValueSet (can be specified multiple times)",
)
@click.pass_context
def validate(
    ctx: click.Context,
    payload_files: Tuple[str, ...],
    profile: str,
    engines: Tuple[str, ...],
    strategy: Optional[str],
    clear_existing: bool,
    structure_definitions: Dict[str, str],
    code_systems: Dict[str, str],
    value_sets: Dict[str, str],
) -> None:
    """Validate bundle files and print the results as JSON."""
    payloads = [Path(path).read_text(encoding="utf-8") for path in payload_files]

    orchestrator = OrchestrationEngine()
    builder = (
        orchestrator.session()
        .with_payloads(payloads)
        .with_fhir_profile_url(profile)
        .with_structure_definition_urls(structure_definitions)
        .with_code_system_urls(code_systems)
        .with_value_set_urls(value_sets)
    )
    for engine in engines:
        builder.add_engine(engine)
    if strategy is not None:
        builder.with_user_agent_validation_strategy(strategy, clear_existing)
    elif not engines:
        builder.add_local_rule_engine()

    for issue in builder.strategy_issues:
        click.echo(f"Strategy issue: {issue}", err=True)

    session = builder.build()
    if not session.validation_engines:
        raise click.UsageError("No validation engine selected")

    orchestrator.orchestrate(session)

    engine_count = len(session.validation_engines)
    report = []
    for index, result in enumerate(session.validation_results):
        entry = {"file": payload_files[index // engine_count]}
        entry.update(result.model_dump(mode="json"))
        report.append(entry)
    click.echo(json.dumps(report, indent=2))

    if not all(result.is_valid for result in session.validation_results):
        ctx.exit(1)


if __name__ == "__main__":
    cli()
