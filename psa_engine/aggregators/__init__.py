"""Project financial aggregators.

This package rolls project activity up into budget burn, profitability
metrics and the closure checklist.
"""

from psa_engine.aggregators.project_financials import (
    BudgetBurn,
    ClosureChecklist,
    ProjectFinancials,
    ProjectMetrics,
)

__all__ = [
    "BudgetBurn",
    "ClosureChecklist",
    "ProjectFinancials",
    "ProjectMetrics",
]
