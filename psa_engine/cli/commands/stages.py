"""Deal stage lookup command."""

import click

from psa_engine.cli.utils.formatters import format_info, format_warning
from psa_engine.models.enums import DealStage
from psa_engine.workflow.stage_graph import is_terminal, valid_next_stages


@click.command(name="stages")
@click.argument(
    "stage", type=click.Choice([stage.value for stage in DealStage], case_sensitive=False)
)
def show_stages(stage: str):
    """Show the stages a deal can move to from STAGE.

    Example:
        psa stages Proposal
    """
    current = next(s for s in DealStage if s.value.lower() == stage.lower())

    if is_terminal(current):
        click.echo(format_warning(f"{current.value} is a terminal stage"))
        return

    click.echo(format_info(f"From {current.value} a deal can move to:"))
    for next_stage in valid_next_stages(current):
        suffix = " (terminal)" if is_terminal(next_stage) else ""
        click.echo(f"  - {next_stage.value}{suffix}")
