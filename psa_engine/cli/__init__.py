"""PSA engine CLI.

This module provides a command-line interface over a JSON workspace store.
It includes commands for deal stages, budget burn, project closure and
invoice finalization and export.
"""

from typing import Optional

import click

from psa_engine import __version__
from psa_engine.cli.commands import (
    budget_burn,
    closure_checklist,
    export_invoices,
    finalize_invoice,
    show_stages,
)
from psa_engine.config import get_config
from psa_engine.config.logging_config import LoggingConfig, configure_logging


@click.group(help="PSA engine CLI - deal stages, project financials and invoicing")
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(sorted(LoggingConfig.VALID_LEVELS), case_sensitive=False),
    default=None,
    help="Enable log output at this level",
)
def cli(log_level: Optional[str]):
    """PSA engine CLI main entry point."""
    if log_level:
        settings = get_config()
        configure_logging(LoggingConfig.for_engine(settings, log_level.upper()))


cli.add_command(show_stages)
cli.add_command(budget_burn)
cli.add_command(closure_checklist)
cli.add_command(finalize_invoice)
cli.add_command(export_invoices)


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
