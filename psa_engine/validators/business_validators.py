"""Business rule validators for approvable records and billing inputs.

This module provides validators for domain rules such as hour ranges,
expense markup and policy limits, receipt requirements, entry dates,
duplicate entries, percentage ranges and user cost rates.
"""

import datetime as dt
from typing import Dict, Iterable, Optional

from psa_engine.models.activity import Expense, TimeEntry
from psa_engine.models.project import User
from psa_engine.validators.validation_report import ValidationReport

MIN_HOURS = 0.0
MIN_REVISED_HOURS = 0.25
MAX_HOURS = 24.0


class BusinessRuleValidators:
    """Collection of business rule validation methods.

    Each method appends its findings to the given report rather than
    raising, so several rules can be checked before deciding.
    """

    @staticmethod
    def validate_hours(
        hours: float,
        report: ValidationReport,
        minimum: float = MIN_HOURS,
        inclusive_minimum: bool = False,
        field: str = "hours",
    ) -> None:
        """Validate an hours quantity against a range capped at 24.

        Args:
            hours: Hours to check
            report: ValidationReport to collect issues
            minimum: Lower bound
            inclusive_minimum: Whether ``minimum`` itself is allowed
            field: Field name used in the issue
        """
        too_low = hours < minimum if inclusive_minimum else hours <= minimum
        if too_low:
            bound = "at least" if inclusive_minimum else "greater than"
            report.add_error(field, f"Hours must be {bound} {minimum:g}", hours)
        elif hours > MAX_HOURS:
            report.add_error(field, f"Hours cannot exceed {MAX_HOURS:g}", hours)

    @staticmethod
    def validate_revised_hours(hours: float, report: ValidationReport) -> None:
        """Revised entries must be between 0.25 and 24 hours."""
        BusinessRuleValidators.validate_hours(
            hours, report, minimum=MIN_REVISED_HOURS, inclusive_minimum=True
        )

    @staticmethod
    def validate_markup_rate(
        markup_rate: float, max_markup_rate: float, report: ValidationReport
    ) -> None:
        """Markup is fractional: 0.15 means 15% above cost."""
        if markup_rate < 0:
            report.add_error("markup_rate", "Markup rate cannot be negative", markup_rate)
        elif markup_rate > max_markup_rate:
            report.add_error(
                "markup_rate",
                f"Markup rate cannot exceed {max_markup_rate:.0%}",
                markup_rate,
            )

    @staticmethod
    def validate_receipt(
        expense: Expense, threshold: int, report: ValidationReport
    ) -> None:
        """Expenses above ``threshold`` cents need a receipt."""
        if expense.amount > threshold and not expense.receipt_url:
            report.add_error(
                "receipt_url",
                f"Receipt required for expenses over {threshold / 100:.2f}",
                expense.amount,
                context={"expense_id": expense.id},
            )

    @staticmethod
    def validate_percentage(
        percentage: Optional[float], report: ValidationReport, field: str = "percentage"
    ) -> None:
        if percentage is None:
            return
        if percentage < 0 or percentage > 100:
            report.add_error(field, "Percentage must be between 0 and 100", percentage)

    @staticmethod
    def validate_cost_rates(users: Iterable[User], report: ValidationReport) -> None:
        """Flag users whose cost rate is unset, which understates burn.

        Args:
            users: Users contributing time to a project
            report: ValidationReport to collect issues
        """
        for user in users:
            if user.cost_rate < 1:
                report.add_warning(
                    "cost_rate",
                    f"User {user.name} has no cost rate; their hours add no cost",
                    user.cost_rate,
                    context={"user_id": user.id},
                )

    @staticmethod
    def validate_entry_date(
        entry_date: dt.date,
        today: dt.date,
        report: ValidationReport,
        warning_days: int,
        max_age_days: int,
        admin_override: bool = False,
    ) -> None:
        """Check how far back an entry is dated.

        Future dates are refused. Entries older than ``max_age_days`` need an
        administrator; with ``admin_override`` they pass with a warning.
        Entries older than ``warning_days`` pass with a warning.

        Args:
            entry_date: Day the work or cost happened
            today: Current day
            report: ValidationReport to collect issues
            warning_days: Age in days above which a warning is raised
            max_age_days: Age in days above which an administrator is needed
            admin_override: Whether an administrator approved the exception
        """
        age_days = (today - entry_date).days
        if age_days < 0:
            report.add_error("date", "Cannot submit entries for future dates", entry_date)
        elif age_days > max_age_days:
            message = (
                f"Entry is {age_days} days old and requires an admin approval "
                f"exception (limit: {max_age_days} days)"
            )
            if admin_override:
                report.add_warning(
                    "date", message, entry_date, context={"admin_override": True}
                )
            else:
                report.add_error("date", message, entry_date)
        elif age_days > warning_days:
            report.add_warning(
                "date",
                f"Entry is {age_days} days old (warning threshold: {warning_days} days)",
                entry_date,
            )

    @staticmethod
    def validate_expense_policy(
        expense: Expense, limits: Dict[str, int], report: ValidationReport
    ) -> None:
        """Flag expenses above the per-item limit for their type.

        Over-limit expenses still go to the reviewer; the warning tells
        them to look closer.
        """
        limit = limits.get(expense.type.value)
        if limit is None or expense.amount <= limit:
            return
        report.add_warning(
            "amount",
            f"{expense.type.value} expense of ${expense.amount / 100:.2f} exceeds "
            f"policy limit of ${limit / 100:.2f} by ${(expense.amount - limit) / 100:.2f}",
            expense.amount,
            context={"expense_id": expense.id, "limit": limit},
        )

    @staticmethod
    def flag_duplicate_time_entries(
        entry: TimeEntry, same_day: Iterable[TimeEntry], report: ValidationReport
    ) -> None:
        """Warn about other entries by the same user, project and day.

        Args:
            entry: Entry being submitted
            same_day: Other entries of the user on the project that day
            report: ValidationReport to collect issues
        """
        others = [other for other in same_day if other.id != entry.id]
        if not others:
            return
        same_task = [o for o in others if entry.task_id and o.task_id == entry.task_id]
        if same_task:
            message = (
                f"Found {len(same_task)} existing time entry(ies) for the same "
                f"task on this date. This may be a duplicate."
            )
            matches = same_task
        else:
            message = (
                f"Found {len(others)} existing time entry(ies) for this project "
                f"on the same date. Please verify this is not a duplicate."
            )
            matches = others
        report.add_warning(
            "duplicate",
            message,
            entry.date,
            context={"duplicate_ids": [o.id for o in matches]},
        )

    @staticmethod
    def flag_duplicate_expenses(
        expense: Expense, same_day: Iterable[Expense], report: ValidationReport
    ) -> None:
        """Warn about expenses of the same type, user, project and day.

        Matches on the exact amount first, then on amounts within 10%, then
        on any other expense of the type.
        """
        others = [
            other
            for other in same_day
            if other.id != expense.id and other.type == expense.type
        ]
        if not others:
            return

        kind = expense.type.value
        exact = [o for o in others if o.amount == expense.amount]
        similar = [
            o for o in others if abs(o.amount - expense.amount) <= expense.amount * 0.1
        ]
        if exact:
            matches = exact
            message = (
                f"Found {len(exact)} existing {kind} expense(s) with the same "
                f"amount on this date. This appears to be a duplicate."
            )
        elif similar:
            matches = similar
            message = (
                f"Found {len(similar)} similar {kind} expense(s) on this date. "
                f"Please verify this is not a duplicate."
            )
        else:
            matches = others
            message = (
                f"Found {len(others)} other {kind} expense(s) on this date. "
                f"Consider if this is a duplicate."
            )
        report.add_warning(
            "duplicate",
            message,
            expense.amount,
            context={"duplicate_ids": [o.id for o in matches]},
        )
