"""
Loan Module

Loan application lifecycle: submission (validated against the product before
anything is stored), approval, disbursal, rejection and withdrawal.

    PENDING --approve--> APPROVED --disburse--> ACTIVE
    PENDING --reject---> REJECTED
    PENDING --withdraw-> WITHDRAWN

ACTIVE, REJECTED and WITHDRAWN are terminal. Applications are never deleted.
Each transition is written with a compare-and-set on the aggregate version,
so two concurrent transitions on the same loan cannot both succeed.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .calendars import CalendarService
from .config import LendingConfig, get_config
from .exceptions import (
    ErrorCode, InvalidTransitionError, NotFoundError, ValidationError, ValidationIssue
)
from .logging_config import get_logger, log_action
from .products import (
    APPLICATION_TERMS, LoanProductEngine, RepaymentFrequency, AmortizationType,
    InterestCalculationPeriodType
)
from .schedule import RepaymentSchedule, ScheduleGenerator
from .storage import StorageInterface, StorageRecord
from .validation import ValidationEngine, check_minimum_gap


class LoanStatus(Enum):
    """Loan application lifecycle states"""
    PENDING = "pending"        # Submitted and validated, awaiting approval
    APPROVED = "approved"      # Approved, awaiting disbursal
    ACTIVE = "active"          # Disbursed
    REJECTED = "rejected"      # Rejected by the lender
    WITHDRAWN = "withdrawn"    # Withdrawn by the applicant


TERMINAL_STATUSES = frozenset({LoanStatus.ACTIVE, LoanStatus.REJECTED, LoanStatus.WITHDRAWN})

# action -> (required current status, resulting status)
TRANSITIONS = {
    "approve": (LoanStatus.PENDING, LoanStatus.APPROVED),
    "disburse": (LoanStatus.APPROVED, LoanStatus.ACTIVE),
    "reject": (LoanStatus.PENDING, LoanStatus.REJECTED),
    "withdraw": (LoanStatus.PENDING, LoanStatus.WITHDRAWN),
}


@dataclass(frozen=True)
class CollateralRef:
    """Reference to a client collateral pledged against the loan"""
    collateral_ref: str
    quantity: Decimal

    def __post_init__(self):
        if not isinstance(self.quantity, Decimal):
            object.__setattr__(self, 'quantity', Decimal(str(self.quantity)))


@dataclass(frozen=True)
class StatusTransition:
    """Record of one lifecycle transition"""
    from_status: Optional[LoanStatus]
    to_status: LoanStatus
    on_date: date
    at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from_status': self.from_status.value if self.from_status else None,
            'to_status': self.to_status.value,
            'on_date': self.on_date.isoformat(),
            'at': self.at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusTransition':
        return cls(
            from_status=LoanStatus(data['from_status']) if data.get('from_status') else None,
            to_status=LoanStatus(data['to_status']),
            on_date=date.fromisoformat(data['on_date']),
            at=datetime.fromisoformat(data['at']),
        )


@dataclass
class LoanApplication(StorageRecord):
    """Loan application aggregate"""
    product_id: str
    client_id: str
    principal: Decimal
    submitted_on_date: date
    expected_disbursement_date: date
    first_repayment_date: date
    group_id: Optional[str] = None        # Lookup key only; the group is not owned
    # Loan terms; each overrides the product when set
    number_of_repayments: Optional[int] = None
    repayment_every: Optional[int] = None
    repayment_frequency: Optional[RepaymentFrequency] = None
    interest_rate_per_period: Optional[Decimal] = None
    amortization_type: Optional[AmortizationType] = None
    interest_calculation_period_type: Optional[InterestCalculationPeriodType] = None
    principal_grace_periods: Optional[int] = None
    interest_grace_periods: Optional[int] = None
    loan_term_frequency: Optional[int] = None
    loan_term_frequency_type: Optional[RepaymentFrequency] = None  # Repayment unit when omitted
    collaterals: List[CollateralRef] = field(default_factory=list)
    status: LoanStatus = LoanStatus.PENDING
    version: int = 0
    schedule: Optional[RepaymentSchedule] = None

    approved_on_date: Optional[date] = None
    disbursed_on_date: Optional[date] = None
    rejected_on_date: Optional[date] = None
    withdrawn_on_date: Optional[date] = None
    status_history: List[StatusTransition] = field(default_factory=list)

    def __post_init__(self):
        if not isinstance(self.principal, Decimal):
            self.principal = Decimal(str(self.principal))
        if self.interest_rate_per_period is not None and not isinstance(self.interest_rate_per_period, Decimal):
            self.interest_rate_per_period = Decimal(str(self.interest_rate_per_period))

    @property
    def is_group_loan(self) -> bool:
        return self.group_id is not None

    def application_terms(self) -> Dict[str, Any]:
        """Loan terms set on this application, keyed by product field name"""
        return {name: getattr(self, name) for name in APPLICATION_TERMS}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        def iso(value: Optional[date]) -> Optional[str]:
            return value.isoformat() if value else None

        def enum_value(value: Optional[Enum]) -> Optional[str]:
            return value.value if value else None

        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'product_id': self.product_id,
            'client_id': self.client_id,
            'group_id': self.group_id,
            'principal': str(self.principal),
            'submitted_on_date': self.submitted_on_date.isoformat(),
            'expected_disbursement_date': self.expected_disbursement_date.isoformat(),
            'first_repayment_date': self.first_repayment_date.isoformat(),
            'number_of_repayments': self.number_of_repayments,
            'repayment_every': self.repayment_every,
            'repayment_frequency': enum_value(self.repayment_frequency),
            'interest_rate_per_period': (
                str(self.interest_rate_per_period) if self.interest_rate_per_period is not None else None
            ),
            'amortization_type': enum_value(self.amortization_type),
            'interest_calculation_period_type': enum_value(self.interest_calculation_period_type),
            'principal_grace_periods': self.principal_grace_periods,
            'interest_grace_periods': self.interest_grace_periods,
            'loan_term_frequency': self.loan_term_frequency,
            'loan_term_frequency_type': enum_value(self.loan_term_frequency_type),
            'collaterals': [
                {'collateral_ref': c.collateral_ref, 'quantity': str(c.quantity)}
                for c in self.collaterals
            ],
            'status': self.status.value,
            'version': self.version,
            'schedule': self.schedule.to_dict() if self.schedule else None,
            'approved_on_date': iso(self.approved_on_date),
            'disbursed_on_date': iso(self.disbursed_on_date),
            'rejected_on_date': iso(self.rejected_on_date),
            'withdrawn_on_date': iso(self.withdrawn_on_date),
            'status_history': [transition.to_dict() for transition in self.status_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanApplication':
        """Create instance from dictionary"""
        def get_date(key: str) -> Optional[date]:
            if data.get(key):
                return date.fromisoformat(data[key])
            return None

        def get_enum(enum_type, key: str):
            return enum_type(data[key]) if data.get(key) else None

        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            product_id=data['product_id'],
            client_id=data['client_id'],
            group_id=data.get('group_id'),
            principal=Decimal(data['principal']),
            submitted_on_date=date.fromisoformat(data['submitted_on_date']),
            expected_disbursement_date=date.fromisoformat(data['expected_disbursement_date']),
            first_repayment_date=date.fromisoformat(data['first_repayment_date']),
            number_of_repayments=data.get('number_of_repayments'),
            repayment_every=data.get('repayment_every'),
            repayment_frequency=get_enum(RepaymentFrequency, 'repayment_frequency'),
            interest_rate_per_period=(
                Decimal(data['interest_rate_per_period']) if data.get('interest_rate_per_period') else None
            ),
            amortization_type=get_enum(AmortizationType, 'amortization_type'),
            interest_calculation_period_type=get_enum(
                InterestCalculationPeriodType, 'interest_calculation_period_type'
            ),
            principal_grace_periods=data.get('principal_grace_periods'),
            interest_grace_periods=data.get('interest_grace_periods'),
            loan_term_frequency=data.get('loan_term_frequency'),
            loan_term_frequency_type=get_enum(RepaymentFrequency, 'loan_term_frequency_type'),
            collaterals=[
                CollateralRef(c['collateral_ref'], Decimal(c['quantity']))
                for c in data.get('collaterals', [])
            ],
            status=LoanStatus(data['status']),
            version=data['version'],
            schedule=RepaymentSchedule.from_dict(data['schedule']) if data.get('schedule') else None,
            approved_on_date=get_date('approved_on_date'),
            disbursed_on_date=get_date('disbursed_on_date'),
            rejected_on_date=get_date('rejected_on_date'),
            withdrawn_on_date=get_date('withdrawn_on_date'),
            status_history=[StatusTransition.from_dict(t) for t in data.get('status_history', [])],
        )


class LoanManager:
    """
    Owns the lifecycle of loan applications
    """

    def __init__(
        self,
        storage: StorageInterface,
        product_engine: LoanProductEngine,
        calendar_service: Optional[CalendarService] = None,
        validation_engine: Optional[ValidationEngine] = None,
        config: Optional[LendingConfig] = None
    ):
        self.storage = storage
        self.product_engine = product_engine
        self.config = config or get_config()

        if validation_engine is None:
            generator = ScheduleGenerator(rounding_epsilon=Decimal(self.config.rounding_epsilon))
            validation_engine = ValidationEngine(
                calendar_service=calendar_service,
                schedule_generator=generator,
                max_calendar_dates=self.config.calendar_max_lookup_dates
            )
        self.validation_engine = validation_engine

        self.loans_table = "loan_applications"
        self.logger = get_logger("lending.loans")

    def create_application(
        self,
        client_id: str,
        product_id: str,
        principal: Decimal,
        submitted_on_date: date,
        expected_disbursement_date: date,
        first_repayment_date: date,
        group_id: Optional[str] = None,
        number_of_repayments: Optional[int] = None,
        repayment_every: Optional[int] = None,
        repayment_frequency: Optional[RepaymentFrequency] = None,
        interest_rate_per_period: Optional[Decimal] = None,
        amortization_type: Optional[AmortizationType] = None,
        interest_calculation_period_type: Optional[InterestCalculationPeriodType] = None,
        principal_grace_periods: Optional[int] = None,
        interest_grace_periods: Optional[int] = None,
        collaterals: Optional[List[CollateralRef]] = None,
        loan_term_frequency: Optional[int] = None,
        loan_term_frequency_type: Optional[RepaymentFrequency] = None
    ) -> LoanApplication:
        """
        Submit a loan application.

        The application is validated against its product first; only a valid
        application is stored, in PENDING status with its repayment schedule.
        Loan terms left as None are taken from the product. A loan term
        frequency without a type is read in the repayment frequency unit.

        Returns:
            The stored LoanApplication

        Raises:
            NotFoundError: If the product does not exist
            ValidationError: With every problem found; nothing is stored
        """
        product = self.product_engine.require_product(product_id)
        now = datetime.now(timezone.utc)

        application = LoanApplication(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            product_id=product_id,
            client_id=client_id,
            group_id=group_id,
            principal=principal,
            submitted_on_date=submitted_on_date,
            expected_disbursement_date=expected_disbursement_date,
            first_repayment_date=first_repayment_date,
            number_of_repayments=number_of_repayments,
            repayment_every=repayment_every,
            repayment_frequency=repayment_frequency,
            interest_rate_per_period=interest_rate_per_period,
            amortization_type=amortization_type,
            interest_calculation_period_type=interest_calculation_period_type,
            principal_grace_periods=principal_grace_periods,
            interest_grace_periods=interest_grace_periods,
            loan_term_frequency=loan_term_frequency,
            loan_term_frequency_type=loan_term_frequency_type,
            collaterals=list(collaterals or [])
        )

        # Calendar lookups happen here, before anything is written
        result = self.validation_engine.validate(application, product)
        if not result.is_valid:
            log_action(
                self.logger, "warning", "Loan application rejected",
                action="create_loan_application", resource=f"client:{client_id}",
                extra={
                    "product_id": product_id,
                    "group_id": group_id,
                    "error_codes": result.codes,
                }
            )
            raise ValidationError(result.errors)

        application.schedule = result.schedule
        application.version = 1
        application.status_history.append(StatusTransition(
            from_status=None, to_status=LoanStatus.PENDING, on_date=submitted_on_date, at=now
        ))
        self.storage.insert(self.loans_table, application.id, application.to_dict())

        log_action(
            self.logger, "info", "Loan application created",
            action="create_loan_application", resource=f"loan:{application.id}",
            extra={
                "loan_id": application.id,
                "client_id": client_id,
                "group_id": group_id,
                "principal": str(application.principal),
                "installments": len(application.schedule.installments),
                "first_repayment_date": first_repayment_date.isoformat(),
            }
        )
        return application

    def approve(self, loan_id: str, approval_date: date) -> LoanApplication:
        """Approve a PENDING application. The schedule is not recomputed."""
        loan = self.require_loan(loan_id)
        self._check_transition(loan, "approve")

        if approval_date < loan.submitted_on_date:
            raise ValidationError.single(
                ErrorCode.APPROVAL_BEFORE_SUBMITTAL,
                f"Approval date {approval_date.isoformat()} is before submitted on date "
                f"{loan.submitted_on_date.isoformat()}"
            )

        loan.approved_on_date = approval_date
        return self._apply_transition(loan, "approve", approval_date)

    def disburse(self, loan_id: str, disbursement_date: date) -> LoanApplication:
        """
        Disburse an APPROVED loan.

        The actual disbursement date may differ from the expected one, so the
        minimum gap to the (fixed) first repayment date is checked again. On
        failure the loan stays APPROVED.
        """
        loan = self.require_loan(loan_id)
        self._check_transition(loan, "disburse")

        issues: List[ValidationIssue] = []
        if loan.approved_on_date and disbursement_date < loan.approved_on_date:
            issues.append(ValidationIssue(
                ErrorCode.DISBURSAL_BEFORE_APPROVAL,
                f"Disbursement date {disbursement_date.isoformat()} is before approval date "
                f"{loan.approved_on_date.isoformat()}"
            ))

        product = self.product_engine.require_product(loan.product_id)
        gap_issue = check_minimum_gap(disbursement_date, loan.first_repayment_date, product)
        if gap_issue:
            issues.append(gap_issue)

        if issues:
            log_action(
                self.logger, "warning", "Loan disbursal rejected",
                action="disburse_loan", resource=f"loan:{loan_id}",
                extra={"error_codes": [issue.code for issue in issues]}
            )
            raise ValidationError(issues)

        loan.disbursed_on_date = disbursement_date
        return self._apply_transition(loan, "disburse", disbursement_date)

    def reject(self, loan_id: str, rejected_on_date: Optional[date] = None) -> LoanApplication:
        """Reject a PENDING application"""
        loan = self.require_loan(loan_id)
        self._check_transition(loan, "reject")
        loan.rejected_on_date = rejected_on_date or date.today()
        return self._apply_transition(loan, "reject", loan.rejected_on_date)

    def withdraw(self, loan_id: str, withdrawn_on_date: Optional[date] = None) -> LoanApplication:
        """Withdraw a PENDING application on the applicant's behalf"""
        loan = self.require_loan(loan_id)
        self._check_transition(loan, "withdraw")
        loan.withdrawn_on_date = withdrawn_on_date or date.today()
        return self._apply_transition(loan, "withdraw", loan.withdrawn_on_date)

    def get_loan(self, loan_id: str) -> Optional[LoanApplication]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return LoanApplication.from_dict(data)
        return None

    def require_loan(self, loan_id: str) -> LoanApplication:
        """Get loan by ID or raise NotFoundError"""
        loan = self.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("loan", loan_id)
        return loan

    def get_status(self, loan_id: str) -> LoanStatus:
        return self.require_loan(loan_id).status

    def get_schedule(self, loan_id: str) -> RepaymentSchedule:
        return self.require_loan(loan_id).schedule

    def list_loans(self, client_id: Optional[str] = None, group_id: Optional[str] = None,
                   status: Optional[LoanStatus] = None) -> List[LoanApplication]:
        """List loans with optional filters, oldest first"""
        filters = {}
        if client_id:
            filters["client_id"] = client_id
        if group_id:
            filters["group_id"] = group_id
        if status:
            filters["status"] = status.value

        loans = [LoanApplication.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def _check_transition(self, loan: LoanApplication, action: str) -> None:
        required, _ = TRANSITIONS[action]
        if loan.status != required:
            raise InvalidTransitionError(
                f"Cannot {action} loan {loan.id}: status is {loan.status.value}, "
                f"expected {required.value}"
            )

    def _apply_transition(self, loan: LoanApplication, action: str, on_date: date) -> LoanApplication:
        """Move the loan to the action's target status and write it if nobody else did first"""
        _, target = TRANSITIONS[action]
        now = datetime.now(timezone.utc)
        previous_status = loan.status
        expected_version = loan.version

        loan.status_history.append(StatusTransition(
            from_status=previous_status, to_status=target, on_date=on_date, at=now
        ))
        loan.status = target
        loan.version = expected_version + 1
        loan.updated_at = now

        self.storage.compare_and_set(self.loans_table, loan.id, expected_version, loan.to_dict())

        log_action(
            self.logger, "info", f"Loan {action} succeeded",
            action=f"{action}_loan", resource=f"loan:{loan.id}",
            extra={
                "loan_id": loan.id,
                "from_status": previous_status.value,
                "to_status": target.value,
                "on_date": on_date.isoformat(),
                "version": loan.version,
            }
        )
        return loan
