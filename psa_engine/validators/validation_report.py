"""Validation report for collecting and formatting rule violations."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional

from psa_engine.exceptions import InvalidStateError


class ValidationSeverity(IntEnum):
    """Severity levels for validation issues.

    ERROR issues block the operation; WARNING and INFO are advisory.
    """

    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass
class ValidationIssue:
    """A single rule violation.

    Attributes:
        severity: The severity level of the issue
        field: The field or check that has the issue
        message: Human-readable description of the issue
        value: The value that caused the issue
        context: Optional context information (e.g., record id)
    """

    severity: ValidationSeverity
    field: str
    message: str
    value: Any
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        context_str = ""
        if self.context:
            context_parts = [f"{k}={v}" for k, v in self.context.items()]
            context_str = f" ({', '.join(context_parts)})"
        return f"[{self.severity.name}] {self.field}: {self.message}{context_str}"


class ValidationReport:
    """Collects validation issues and answers whether they block.

    Business rule checks append to a report; callers then either inspect
    it (the closure checklist is built on one) or call
    ``raise_if_invalid`` to turn errors into an ``InvalidStateError``.

    Example:
        >>> report = ValidationReport()
        >>> report.add_error("hours", "Hours must be at least 0.25", 0.1)
        >>> report.add_warning("receipt_url", "Receipt missing", None)
        >>> report.is_valid()
        False
        >>> report.summary()
        '1 error(s), 1 warning(s)'
    """

    def __init__(self) -> None:
        self.issues: List[ValidationIssue] = []

    def _count(self, severity: ValidationSeverity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def error_count(self) -> int:
        return self._count(ValidationSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return self._count(ValidationSeverity.WARNING)

    @property
    def info_count(self) -> int:
        return self._count(ValidationSeverity.INFO)

    def is_valid(self) -> bool:
        """True when no ERROR issues are present."""
        return self.error_count == 0

    def has_errors(self) -> bool:
        return self.error_count > 0

    def add(
        self,
        severity: ValidationSeverity,
        field: str,
        message: str,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.issues.append(
            ValidationIssue(
                severity=severity,
                field=field,
                message=message,
                value=value,
                context=context,
            )
        )

    def add_error(
        self,
        field: str,
        message: str,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.add(ValidationSeverity.ERROR, field, message, value, context)

    def add_warning(
        self,
        field: str,
        message: str,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.add(ValidationSeverity.WARNING, field, message, value, context)

    def add_info(
        self,
        field: str,
        message: str,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.add(ValidationSeverity.INFO, field, message, value, context)

    def get_issues(self, severity: ValidationSeverity) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == severity]

    def get_errors(self) -> List[ValidationIssue]:
        return self.get_issues(ValidationSeverity.ERROR)

    def get_warnings(self) -> List[ValidationIssue]:
        return self.get_issues(ValidationSeverity.WARNING)

    def messages(
        self, min_severity: ValidationSeverity = ValidationSeverity.INFO
    ) -> List[str]:
        """Issue messages at or above ``min_severity``, most severe first.

        Args:
            min_severity: Lowest severity to include

        Returns:
            List of message strings
        """
        selected = [issue for issue in self.issues if issue.severity >= min_severity]
        selected.sort(key=lambda issue: issue.severity, reverse=True)
        return [issue.message for issue in selected]

    def merge(self, other: "ValidationReport") -> None:
        self.issues.extend(other.issues)

    def summary(self) -> str:
        """Counts of errors, warnings and info messages."""
        parts = []
        if self.error_count > 0:
            parts.append(f"{self.error_count} error(s)")
        if self.warning_count > 0:
            parts.append(f"{self.warning_count} warning(s)")
        if self.info_count > 0:
            parts.append(f"{self.info_count} info message(s)")

        if not parts:
            return "No issues found"

        return ", ".join(parts)

    def format(self) -> str:
        """Format the report for display, grouped by severity."""
        if not self.issues:
            return "Validation successful - no issues found"

        lines = [f"Validation Report - {self.summary()}", "=" * 60]
        for severity, title in (
            (ValidationSeverity.ERROR, "ERRORS"),
            (ValidationSeverity.WARNING, "WARNINGS"),
            (ValidationSeverity.INFO, "INFO"),
        ):
            issues = self.get_issues(severity)
            if issues:
                lines.append(f"\n{title}:")
                lines.extend(f"  - {issue}" for issue in issues)

        return "\n".join(lines)

    def raise_if_invalid(self, subject: str) -> None:
        """Raise ``InvalidStateError`` listing every error, if any.

        Args:
            subject: What was being validated, used as the message prefix

        Raises:
            InvalidStateError: If the report holds errors
        """
        if self.is_valid():
            return

        errors = self.get_errors()
        detail = "; ".join(issue.message for issue in errors)
        raise InvalidStateError(
            f"{subject}: {detail}",
            recovery_hint="Correct the listed fields and try again",
            context={
                "violations": [
                    {"field": issue.field, "message": issue.message}
                    for issue in errors
                ]
            },
        )
