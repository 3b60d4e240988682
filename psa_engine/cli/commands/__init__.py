"""CLI commands."""

from psa_engine.cli.commands.invoices import export_invoices, finalize_invoice
from psa_engine.cli.commands.projects import budget_burn, closure_checklist
from psa_engine.cli.commands.stages import show_stages

__all__ = [
    "budget_burn",
    "closure_checklist",
    "export_invoices",
    "finalize_invoice",
    "show_stages",
]
