"""Command-line entry point — ``vmss-rotate``.

This module is purely the wiring layer between the command line and the
orchestrator: it loads configuration, sets up logging, builds the gateway
once, and maps failures onto the process exit status.

Exit status:
    0  rotation completed.
    1  rotation aborted (any phase failure).
    2  invalid command line or configuration.
"""

from __future__ import annotations

import json
import logging
import sys

import click

from vmss_rotation.core.config import ConfigValidationError, RotationConfig
from vmss_rotation.core.exceptions import RotationError
from vmss_rotation.models.report import RotationReport
from vmss_rotation.models.scale_set import ModelValidationError, ScaleSetRef
from vmss_rotation.orchestrators.rotation import RotationOrchestrator
from vmss_rotation.providers.factory import get_gateway

logger = logging.getLogger("vmss_rotation.cli")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int) -> None:
    """Configure the root handler; the Azure SDK stays at WARNING unless debugging."""
    logging.basicConfig(level=level, format=_LOG_FORMAT, stream=sys.stderr, force=True)
    azure_level = logging.WARNING if level > logging.DEBUG else logging.NOTSET
    logging.getLogger("azure").setLevel(azure_level)


@click.command(name="vmss-rotate")
@click.option(
    "--subscription-id",
    envvar="AZURE_SUBSCRIPTION_ID",
    required=True,
    help="Azure subscription containing the scale set.",
)
@click.option(
    "--resource-group",
    envvar="AZURE_RESOURCE_GROUP",
    required=True,
    help="Resource group of the scale set.",
)
@click.option(
    "--vm-scale-set",
    envvar="AZURE_VMSS_NAME",
    required=True,
    help="Name of the virtual machine scale set to rotate.",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides LOG_LEVEL).",
)
def main(
    subscription_id: str,
    resource_group: str,
    vm_scale_set: str,
    log_level: str | None,
) -> None:
    """Blue/green rotate a scale set: scale out x2, protect, scale in x0.5, unprotect."""
    try:
        config = RotationConfig.from_env()
        if log_level:
            config = RotationConfig(
                gateway=config.gateway,
                scale_out_factor=config.scale_out_factor,
                scale_in_factor=config.scale_in_factor,
                log_level=log_level.upper(),
            )
        ref = ScaleSetRef(
            subscription_id=subscription_id,
            resource_group=resource_group,
            name=vm_scale_set,
        )
    except (ConfigValidationError, ModelValidationError) as exc:
        raise click.UsageError(str(exc)) from exc

    configure_logging(config.log_level_value)
    logger.info("Initializing scale set blue/green rotation | scale_set=%s", ref.display)

    try:
        gateway = get_gateway(config.gateway)
    except RotationError as exc:
        logger.critical("Gateway initialisation failed: %s", exc)
        sys.exit(1)

    orchestrator = RotationOrchestrator(gateway, ref, config)
    try:
        summary = orchestrator.run()
    except RotationError as exc:
        logger.critical("Rotation failed: %s | %s", exc, json.dumps(exc.to_error_dict()))
        click.echo(RotationReport.from_failure(orchestrator, exc).to_json())
        sys.exit(1)

    click.echo(RotationReport.from_summary(orchestrator, summary).to_json())
