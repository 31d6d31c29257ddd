"""
Error taxonomy for the lending core.

Every error carries a stable machine-readable code so callers can react to
it without parsing messages. Validation failures carry an ordered list of
issues rather than a single message.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


class ErrorCode:
    """Stable error codes returned to callers"""
    MIN_DAYS_BETWEEN_DISBURSAL_AND_FIRST_REPAYMENT = (
        "error.msg.loan.days.between.first.repayment.and.disbursal.are.less.than.minimum.allowed"
    )
    PRINCIPAL_OUT_OF_RANGE = "error.msg.loan.principal.amount.is.not.within.min.max.range"
    PRINCIPAL_NOT_POSITIVE = "error.msg.loan.principal.amount.must.be.greater.than.zero"
    PRINCIPAL_PRECISION = "error.msg.loan.principal.amount.exceeds.currency.precision"
    FIRST_REPAYMENT_NOT_AFTER_DISBURSAL = (
        "error.msg.loan.first.repayment.date.must.be.after.expected.disbursement.date"
    )
    DISBURSAL_BEFORE_SUBMITTAL = "error.msg.loan.expected.disbursement.date.cannot.be.before.submittal.date"
    NEGATIVE_GRACE_PERIOD = "error.msg.loan.grace.period.cannot.be.negative"
    PRINCIPAL_GRACE_EXCEEDS_REPAYMENTS = (
        "error.msg.loan.principal.grace.periods.must.be.less.than.number.of.repayments"
    )
    INTEREST_GRACE_EXCEEDS_REPAYMENTS = (
        "error.msg.loan.interest.grace.periods.must.be.less.than.number.of.repayments"
    )
    LOAN_TERM_MISMATCH = "error.msg.loan.term.frequency.does.not.match.repayment.schedule"
    INVALID_LOAN_TERMS = "error.msg.loan.repayment.terms.invalid"
    COLLATERAL_QUANTITY = "error.msg.loan.collateral.quantity.must.be.greater.than.zero"
    REPAYMENT_NOT_MEETING_DATE = "error.msg.loan.repayment.date.is.not.a.meeting.date"
    GROUP_CALENDAR_MISSING = "error.msg.loan.group.has.no.meeting.calendar"
    SCHEDULE_ROUNDING = "error.msg.loan.schedule.rounding.residual.exceeds.tolerance"
    APPROVAL_BEFORE_SUBMITTAL = "error.msg.loan.approval.date.cannot.be.before.submittal.date"
    DISBURSAL_BEFORE_APPROVAL = "error.msg.loan.disbursal.date.cannot.be.before.approval.date"
    INVALID_PRODUCT = "error.msg.loanproduct.invalid.configuration"
    INVALID_CALENDAR = "error.msg.calendar.invalid.configuration"
    INVALID_TRANSITION = "error.msg.loan.invalid.state.transition"
    CONCURRENCY_CONFLICT = "error.msg.loan.concurrent.modification"
    NOT_FOUND = "error.msg.resource.not.found"
    CALENDAR_SERVICE_UNAVAILABLE = "error.msg.calendar.service.unavailable"


@dataclass(frozen=True)
class ValidationIssue:
    """A single business-rule violation"""
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class LendingError(Exception):
    """Base exception for all lending core errors"""
    code = "error.msg.lending"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    @property
    def issues(self) -> List[ValidationIssue]:
        return [ValidationIssue(self.code, self.message)]

    def to_payload(self) -> Dict[str, Any]:
        """Render as the ordered {code, message} error list"""
        return {"errors": [issue.to_dict() for issue in self.issues]}


class ValidationError(LendingError):
    """Business-rule violation. Nothing is persisted when raised."""

    def __init__(self, issues: Sequence[ValidationIssue]):
        issues = list(issues)
        if not issues:
            raise ValueError("ValidationError requires at least one issue")
        super().__init__("; ".join(issue.message for issue in issues), issues[0].code)
        self._issues = issues

    @classmethod
    def single(cls, code: str, message: str) -> 'ValidationError':
        return cls([ValidationIssue(code, message)])

    @property
    def issues(self) -> List[ValidationIssue]:
        return list(self._issues)

    @property
    def codes(self) -> List[str]:
        return [issue.code for issue in self._issues]


class InvalidTransitionError(LendingError):
    """State transition not legal from the current state"""
    code = ErrorCode.INVALID_TRANSITION


class ConcurrencyConflictError(LendingError):
    """Write attempted against a stale aggregate version"""
    code = ErrorCode.CONCURRENCY_CONFLICT


class NotFoundError(LendingError):
    """Referenced loan, product or calendar does not exist"""
    code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource.capitalize()} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class TransientError(LendingError):
    """Infrastructure failure the caller may retry"""


class CalendarServiceUnavailableError(TransientError):
    """Meeting calendar lookups failed"""
    code = ErrorCode.CALENDAR_SERVICE_UNAVAILABLE
