"""Invoice commands: finalize a draft and export the register."""

from typing import Optional

import click

from psa_engine.cli.commands.common import debug_option, open_store, store_option
from psa_engine.cli.error_handlers import with_error_handling
from psa_engine.cli.utils.formatters import (
    format_info,
    format_money,
    format_success,
    format_warning,
)
from psa_engine.services.invoice_service import InvoiceService
from psa_engine.writers.invoice_register import InvoiceRegisterGenerator


@click.command(name="finalize-invoice")
@click.argument("invoice_id")
@click.option("--user", "user_id", required=True, help="User finalizing the invoice")
@store_option
@debug_option
def finalize_invoice(
    invoice_id: str, user_id: str, store_path: Optional[str], debug: bool
):
    """Finalize draft INVOICE_ID and assign its number.

    Example:
        psa finalize-invoice inv_1a2b3c --user u_finance
    """
    with with_error_handling(debug):
        store = open_store(store_path)
        result = InvoiceService(store).finalize(invoice_id, finalized_by=user_id)
        store.save()

        click.echo(
            format_success(
                f"Invoice {result.number} finalized "
                f"({format_money(result.invoice.total)})"
            )
        )
        click.echo(
            format_info(
                f"Locked {len(result.locked_time_entry_ids)} time entr(ies) and "
                f"{len(result.locked_expense_ids)} expense(s)"
            )
        )
        if result.needs_review:
            click.echo(format_warning("Invoice has no line items; flagged for review"))


@click.command(name="export-invoices")
@click.argument("project_id")
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    required=True,
    help="CSV file to write",
)
@click.option(
    "--lines",
    "include_lines",
    is_flag=True,
    default=False,
    help="Also write line items to <output>_lines.csv",
)
@store_option
@debug_option
def export_invoices(
    project_id: str,
    output_path: str,
    include_lines: bool,
    store_path: Optional[str],
    debug: bool,
):
    """Export the invoice register of PROJECT_ID as CSV.

    Example:
        psa export-invoices prj_1 --output invoices.csv --lines
    """
    with with_error_handling(debug):
        store = open_store(store_path)
        generator = InvoiceRegisterGenerator(store, project_id)
        register = generator.generate().register
        written = generator.to_csv(output_path, include_line_items=include_lines)

        totals = generator.totals(register)
        click.echo(format_success(f"Exported {len(register)} invoice(s) to {written}"))
        click.echo(
            format_info(
                f"Total {format_money(totals['Total'])}, "
                f"outstanding {format_money(totals['Outstanding'])}"
            )
        )
