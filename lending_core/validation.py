"""
Validation Engine Module

Checks a loan application against its product and, when it passes, attaches
the generated repayment schedule. Independent problems are accumulated so a
caller sees them together; the minimum-gap rule is fail-fast because no
schedule is meaningful without it.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import List, Optional, Tuple, TYPE_CHECKING

from .calendars import Calendar, CalendarService, InMemoryCalendarService
from .dates import days_between
from .exceptions import ErrorCode, ValidationError, ValidationIssue
from .logging_config import get_logger
from .products import LoanProductConfig, advance
from .schedule import RepaymentSchedule, ScheduleGenerator

if TYPE_CHECKING:
    from .loans import LoanApplication


@dataclass(frozen=True)
class ValidationResult:
    """Either a validated schedule or the list of problems found"""
    schedule: Optional[RepaymentSchedule] = None
    errors: Tuple[ValidationIssue, ...] = ()

    @classmethod
    def success(cls, schedule: RepaymentSchedule) -> 'ValidationResult':
        return cls(schedule=schedule)

    @classmethod
    def failure(cls, errors: List[ValidationIssue]) -> 'ValidationResult':
        return cls(errors=tuple(errors))

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def codes(self) -> List[str]:
        return [error.code for error in self.errors]

    def unwrap(self) -> RepaymentSchedule:
        """Return the schedule or raise the accumulated ValidationError"""
        if self.errors:
            raise ValidationError(self.errors)
        return self.schedule


def check_minimum_gap(disbursement_date: date, first_repayment_date: date,
                      product: LoanProductConfig) -> Optional[ValidationIssue]:
    """Days from disbursal to first repayment must reach the product minimum (inclusive)"""
    gap = days_between(disbursement_date, first_repayment_date)
    minimum = product.minimum_days_between_disbursal_and_first_repayment
    if gap < minimum:
        return ValidationIssue(
            ErrorCode.MIN_DAYS_BETWEEN_DISBURSAL_AND_FIRST_REPAYMENT,
            f"The number of days between disbursal date {disbursement_date.isoformat()} and "
            f"first repayment date {first_repayment_date.isoformat()} is {gap}, "
            f"less than the minimum of {minimum} allowed"
        )
    return None


class ValidationEngine:
    """Validates applications and produces their repayment schedules"""

    def __init__(self, calendar_service: Optional[CalendarService] = None,
                 schedule_generator: Optional[ScheduleGenerator] = None,
                 max_calendar_dates: int = 1000):
        self.calendar_service = calendar_service or InMemoryCalendarService()
        self.schedule_generator = schedule_generator or ScheduleGenerator()
        self.max_calendar_dates = max_calendar_dates
        self.logger = get_logger("lending.validation")

    def validate(self, application: 'LoanApplication', product: LoanProductConfig,
                 calendar: Optional[Calendar] = None) -> ValidationResult:
        """
        Validate an application against its product.

        Args:
            application: The submitted application (not yet stored)
            product: Product the application was made against
            calendar: Group meeting calendar; looked up through the calendar
                service when omitted for a group loan

        Returns:
            ValidationResult holding the schedule or the ordered error list

        Raises:
            CalendarServiceUnavailableError: If meeting dates cannot be resolved
        """
        effective = product.with_application_terms(**application.application_terms())
        errors: List[ValidationIssue] = []
        can_schedule = True

        if not effective.is_principal_within_bounds(application.principal):
            errors.append(ValidationIssue(
                ErrorCode.PRINCIPAL_OUT_OF_RANGE,
                f"Principal {application.principal} is not within the product range "
                f"{effective.describe_principal_bounds()}"
            ))

        term_issues = self._check_loan_terms(application)
        if term_issues:
            can_schedule = False
            errors.extend(term_issues)

        for name in ('principal_grace_periods', 'interest_grace_periods'):
            value = getattr(application, name)
            if value is not None and value < 0:
                can_schedule = False
                errors.append(ValidationIssue(
                    ErrorCode.NEGATIVE_GRACE_PERIOD, f"{name.replace('_', ' ').capitalize()} cannot be negative"
                ))

        for collateral in application.collaterals:
            if collateral.quantity <= Decimal('0'):
                errors.append(ValidationIssue(
                    ErrorCode.COLLATERAL_QUANTITY,
                    f"Collateral {collateral.collateral_ref} quantity must be greater than zero"
                ))

        if application.loan_term_frequency is not None and not term_issues:
            term_issue = self._check_loan_term_frequency(application, effective)
            if term_issue:
                errors.append(term_issue)

        if application.expected_disbursement_date < application.submitted_on_date:
            errors.append(ValidationIssue(
                ErrorCode.DISBURSAL_BEFORE_SUBMITTAL,
                f"Expected disbursement date {application.expected_disbursement_date.isoformat()} "
                f"is before submitted on date {application.submitted_on_date.isoformat()}"
            ))

        if application.first_repayment_date <= application.expected_disbursement_date:
            errors.append(ValidationIssue(
                ErrorCode.FIRST_REPAYMENT_NOT_AFTER_DISBURSAL,
                f"First repayment date {application.first_repayment_date.isoformat()} must be after "
                f"expected disbursement date {application.expected_disbursement_date.isoformat()}"
            ))
            return ValidationResult.failure(errors)

        gap_issue = check_minimum_gap(
            application.expected_disbursement_date, application.first_repayment_date, effective
        )
        if gap_issue:
            errors.append(gap_issue)
            return ValidationResult.failure(errors)

        if not can_schedule:
            return ValidationResult.failure(errors)

        schedule = None
        try:
            schedule = self.schedule_generator.generate(
                effective,
                application.principal,
                application.first_repayment_date,
                disbursement_date=application.expected_disbursement_date
            )
        except ValidationError as e:
            errors.extend(e.issues)

        if schedule is not None and application.group_id and not effective.allow_non_aligned_schedule:
            errors.extend(self._check_calendar_alignment(application.group_id, schedule, calendar))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(schedule)

    @staticmethod
    def _check_loan_terms(application: 'LoanApplication') -> List[ValidationIssue]:
        issues = []
        for name in ('number_of_repayments', 'repayment_every'):
            value = getattr(application, name)
            if value is not None and value < 1:
                issues.append(ValidationIssue(
                    ErrorCode.INVALID_LOAN_TERMS,
                    f"{name.replace('_', ' ').capitalize()} must be at least 1"
                ))
        rate = application.interest_rate_per_period
        if rate is not None and rate < Decimal('0'):
            issues.append(ValidationIssue(
                ErrorCode.INVALID_LOAN_TERMS, "Interest rate per period cannot be negative"
            ))
        return issues

    @staticmethod
    def _check_loan_term_frequency(application: 'LoanApplication',
                                   effective: LoanProductConfig) -> Optional[ValidationIssue]:
        """
        The loan term must cover exactly the repayment periods.

        The term may be stated in its own unit, so both spans are laid out
        from the expected disbursement date and their end dates compared.
        """
        term = application.loan_term_frequency
        term_unit = application.loan_term_frequency_type or effective.repayment_frequency
        repayment_units = effective.number_of_repayments * effective.repayment_every
        start = application.expected_disbursement_date

        if term >= 1 and (advance(start, term, term_unit)
                          == advance(start, repayment_units, effective.repayment_frequency)):
            return None
        return ValidationIssue(
            ErrorCode.LOAN_TERM_MISMATCH,
            f"Loan term of {term} {term_unit.value} does not match "
            f"{effective.number_of_repayments} repayments every {effective.repayment_every} "
            f"{effective.repayment_frequency.value}"
        )

    def _check_calendar_alignment(self, group_id: str, schedule: RepaymentSchedule,
                                  calendar: Optional[Calendar]) -> List[ValidationIssue]:
        if calendar is None:
            calendar = self.calendar_service.get_calendar_for_group(group_id)
        if calendar is None:
            return [ValidationIssue(
                ErrorCode.GROUP_CALENDAR_MISSING,
                f"Group {group_id} has no meeting calendar to align repayments with"
            )]

        span = days_between(schedule.first_due_date, schedule.maturity_date)
        count = min(span // calendar.min_period_days + 2, self.max_calendar_dates)
        meeting_dates = set(
            self.calendar_service.resolve_meeting_dates(calendar, schedule.first_due_date, count)
        )

        issues = []
        for installment in schedule.installments:
            if installment.due_date not in meeting_dates:
                issues.append(ValidationIssue(
                    ErrorCode.REPAYMENT_NOT_MEETING_DATE,
                    f"Installment {installment.number} due on {installment.due_date.isoformat()} "
                    f"is not a meeting date of group {group_id}"
                ))
        if issues:
            self.logger.debug(f"{len(issues)} installments misaligned with calendar {calendar.id}")
        return issues
