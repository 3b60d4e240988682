"""Billing calculators.

This package provides the pure money arithmetic and the per-method
invoice line calculations.
"""

from psa_engine.calculators.billing_calculator import (
    BillingResult,
    InvoiceTotals,
    LineItemDraft,
    billable_expenses,
    billable_time_entries,
    calculate_fixed_fee,
    calculate_milestone,
    calculate_recurring,
    calculate_time_and_materials,
    calculate_totals,
    expense_billed_amount,
)
from psa_engine.calculators.money import (
    apply_markup,
    format_cents,
    multiply_cents,
    percentage_of,
    ratio_percent,
    round_half_up,
)

__all__ = [
    "BillingResult",
    "InvoiceTotals",
    "LineItemDraft",
    "apply_markup",
    "billable_expenses",
    "billable_time_entries",
    "calculate_fixed_fee",
    "calculate_milestone",
    "calculate_recurring",
    "calculate_time_and_materials",
    "calculate_totals",
    "expense_billed_amount",
    "format_cents",
    "multiply_cents",
    "percentage_of",
    "ratio_percent",
    "round_half_up",
]
