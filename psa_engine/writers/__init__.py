"""Tabular report writers."""

from psa_engine.writers.invoice_register import (
    InvoiceRegisterData,
    InvoiceRegisterGenerator,
)

__all__ = ["InvoiceRegisterData", "InvoiceRegisterGenerator"]
