"""Validation framework for business rules.

Rule checks append issues to a ValidationReport; the report decides
whether the checked operation may proceed.
"""

from psa_engine.validators.business_validators import BusinessRuleValidators
from psa_engine.validators.validation_report import (
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
)

__all__ = [
    "BusinessRuleValidators",
    "ValidationIssue",
    "ValidationReport",
    "ValidationSeverity",
]
