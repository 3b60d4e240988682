"""Project financial commands: budget burn and the closure checklist."""

import sys
from typing import Optional

import click

from psa_engine.aggregators.project_financials import (
    WARNING_GREEN,
    WARNING_YELLOW,
    ProjectFinancials,
)
from psa_engine.cli.commands.common import debug_option, open_store, store_option
from psa_engine.cli.error_handlers import EXIT_CLOSURE_BLOCKED, with_error_handling
from psa_engine.cli.utils.formatters import (
    format_error,
    format_info,
    format_money,
    format_success,
    format_table,
    format_warning,
)
from psa_engine.validators.validation_report import ValidationSeverity


@click.command(name="budget-burn")
@click.argument("project_id")
@store_option
@debug_option
def budget_burn(project_id: str, store_path: Optional[str], debug: bool):
    """Show approved cost against the budget of PROJECT_ID.

    Example:
        psa budget-burn prj_1 --store workspace.json
    """
    with with_error_handling(debug):
        burn = ProjectFinancials(open_store(store_path)).budget_burn(project_id)

        rows = [
            ["Budget", format_money(burn.budget_amount)],
            ["Time cost", format_money(burn.time_cost)],
            ["Expense cost", format_money(burn.expense_cost)],
            ["Total cost", format_money(burn.total_cost)],
            ["Remaining", format_money(burn.remaining)],
            ["Burn rate", f"{burn.burn_rate}%"],
        ]
        click.echo(format_table(["Metric", "Value"], rows))
        click.echo()

        if burn.warning_level == WARNING_GREEN:
            click.echo(format_success(f"Budget healthy ({burn.warning_level})"))
        elif burn.warning_level == WARNING_YELLOW:
            click.echo(format_warning(f"Budget warning ({burn.warning_level})"))
        else:
            click.echo(format_error(f"Budget overrun ({burn.warning_level})"))

        if burn.users_missing_cost_rate:
            click.echo(
                format_warning(
                    "Users without a cost rate: "
                    + ", ".join(burn.users_missing_cost_rate)
                )
            )


@click.command(name="closure-checklist")
@click.argument("project_id")
@store_option
@debug_option
def closure_checklist(project_id: str, store_path: Optional[str], debug: bool):
    """Check whether PROJECT_ID can be closed.

    Exits with status 3 while a blocking item remains.

    Example:
        psa closure-checklist prj_1
    """
    with with_error_handling(debug):
        checklist = ProjectFinancials(open_store(store_path)).closure_checklist(
            project_id
        )

        for issue in checklist.report.get_errors():
            click.echo(format_error(issue.message))
        for issue in checklist.report.get_warnings():
            click.echo(format_warning(issue.message))
        for issue in checklist.report.get_issues(ValidationSeverity.INFO):
            click.echo(format_info(issue.message))

        click.echo()
        if checklist.can_close:
            click.echo(format_success(f"Project {project_id} can be closed"))
        else:
            click.echo(format_error(f"Project {project_id} cannot be closed"))

    if not checklist.can_close:
        sys.exit(EXIT_CLOSURE_BLOCKED)
