"""Invoice lifecycle services.

This package creates draft invoices from approved activity, finalizes them
with sequential numbering, and tracks delivery, payment and voiding.
"""

from psa_engine.services.invoice_service import (
    INVOICE_TRANSITIONS,
    FinalizeResult,
    InvoiceService,
)

__all__ = [
    "INVOICE_TRANSITIONS",
    "FinalizeResult",
    "InvoiceService",
]
