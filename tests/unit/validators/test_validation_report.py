"""Tests for ValidationReport."""

import pytest

from psa_engine.exceptions import InvalidStateError
from psa_engine.validators.validation_report import (
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
)


class TestValidationIssue:
    """Tests for ValidationIssue."""

    def test_str_without_context(self):
        """Test string rendering without context."""
        issue = ValidationIssue(ValidationSeverity.ERROR, "hours", "Too many", 30)
        assert str(issue) == "[ERROR] hours: Too many"

    def test_str_with_context(self):
        """Test context is appended as key=value pairs."""
        issue = ValidationIssue(
            ValidationSeverity.WARNING,
            "cost_rate",
            "No cost rate",
            0,
            context={"user_id": "u_1"},
        )
        assert str(issue) == "[WARNING] cost_rate: No cost rate (user_id=u_1)"


class TestValidationReport:
    """Tests for ValidationReport."""

    def test_empty_report(self):
        """Test a new report is valid and has no issues."""
        report = ValidationReport()

        assert report.is_valid()
        assert not report.has_errors()
        assert report.summary() == "No issues found"
        assert report.format() == "Validation successful - no issues found"

    def test_counts_and_summary(self):
        """Test counts per severity and the summary line."""
        report = ValidationReport()
        report.add_error("hours", "Hours must be at least 0.25", 0.1)
        report.add_warning("receipt_url", "Receipt missing")
        report.add_info("bookings", "1 future booking(s)")

        assert report.error_count == 1
        assert report.warning_count == 1
        assert report.info_count == 1
        assert not report.is_valid()
        assert report.summary() == "1 error(s), 1 warning(s), 1 info message(s)"

    def test_warnings_do_not_block(self):
        """Test a report with only warnings is valid."""
        report = ValidationReport()
        report.add_warning("invoices", "1 invoice(s) unpaid")
        assert report.is_valid()

    def test_messages_most_severe_first(self):
        """Test messages are ordered by severity."""
        report = ValidationReport()
        report.add_info("a", "info")
        report.add_warning("b", "warning")
        report.add_error("c", "error")

        assert report.messages() == ["error", "warning", "info"]
        assert report.messages(ValidationSeverity.WARNING) == ["error", "warning"]

    def test_get_issues_by_severity(self):
        """Test filtering issues by severity."""
        report = ValidationReport()
        report.add_error("a", "first")
        report.add_warning("b", "second")

        assert [i.message for i in report.get_errors()] == ["first"]
        assert [i.message for i in report.get_warnings()] == ["second"]
        assert report.get_issues(ValidationSeverity.INFO) == []

    def test_merge(self):
        """Test merging appends the other report's issues."""
        first = ValidationReport()
        first.add_error("a", "one")
        second = ValidationReport()
        second.add_warning("b", "two")

        first.merge(second)

        assert first.error_count == 1
        assert first.warning_count == 1

    def test_format_groups_by_severity(self):
        """Test the formatted report lists sections."""
        report = ValidationReport()
        report.add_error("hours", "Hours cannot exceed 24", 30)
        report.add_warning("cost_rate", "No cost rate")

        text = report.format()

        assert text.startswith("Validation Report - 1 error(s), 1 warning(s)")
        assert "ERRORS:" in text
        assert "WARNINGS:" in text
        assert "INFO:" not in text

    def test_raise_if_invalid(self):
        """Test errors are raised as InvalidStateError with every message."""
        report = ValidationReport()
        report.add_error("hours", "Hours cannot exceed 24", 30)
        report.add_error("markup_rate", "Markup rate cannot exceed 50%", 0.6)
        report.add_warning("receipt_url", "ignored")

        with pytest.raises(InvalidStateError) as exc_info:
            report.raise_if_invalid("Cannot submit expense")

        error = exc_info.value
        assert error.message == (
            "Cannot submit expense: Hours cannot exceed 24; "
            "Markup rate cannot exceed 50%"
        )
        assert len(error.context["violations"]) == 2

    def test_raise_if_invalid_passes_when_valid(self):
        """Test nothing is raised without errors."""
        report = ValidationReport()
        report.add_warning("a", "just a warning")
        report.raise_if_invalid("Anything")
