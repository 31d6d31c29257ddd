"""
Loan Product Module

Immutable loan product configuration: principal bounds, repayment cadence,
interest convention, amortization type, grace periods and the minimum gap
between disbursal and first repayment. Every application against a product
is validated against this configuration.
"""

from decimal import Decimal
from datetime import date, datetime, timedelta, timezone
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .currency import Currency
from .dates import add_months
from .storage import StorageInterface
from .exceptions import ErrorCode, NotFoundError, ValidationError, ValidationIssue
from .logging_config import get_logger, log_action


class RepaymentFrequency(Enum):
    """Unit of the repayment cadence"""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class InterestRateFrequency(Enum):
    """Period the nominal interest rate is quoted for"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AmortizationType(Enum):
    """Rule for distributing principal across installments"""
    EQUAL_INSTALLMENTS = "equal_installments"            # Level payment (French method)
    EQUAL_PRINCIPAL_PAYMENTS = "equal_principal_payments"  # Level principal, declining interest


class InterestCalculationPeriodType(Enum):
    """How interest accrues within a repayment period"""
    DAILY = "daily"                                    # Actual day count between due dates
    SAME_AS_REPAYMENT_PERIOD = "same_as_repayment_period"  # Every period is one uniform unit


SUPPORTED_DAYS_IN_YEAR = (360, 364, 365)

RATE_PERIODS_PER_YEAR = {
    InterestRateFrequency.WEEKLY: Decimal('52'),
    InterestRateFrequency.MONTHLY: Decimal('12'),
    InterestRateFrequency.YEARLY: Decimal('1'),
}

# Terms a loan application may set for itself instead of taking the product value
APPLICATION_TERMS = (
    "number_of_repayments",
    "repayment_every",
    "repayment_frequency",
    "interest_rate_per_period",
    "amortization_type",
    "interest_calculation_period_type",
    "principal_grace_periods",
    "interest_grace_periods",
)


def advance(start: date, count: int, frequency: RepaymentFrequency) -> date:
    """Move a date by count units of a repayment frequency"""
    if frequency == RepaymentFrequency.MONTHS:
        return add_months(start, count)
    if frequency == RepaymentFrequency.WEEKS:
        return start + timedelta(weeks=count)
    return start + timedelta(days=count)


@dataclass(frozen=True)
class LoanProductConfig:
    """Loan product definition. Immutable once created."""
    name: str
    principal: Decimal                      # Default principal offered
    number_of_repayments: int
    repayment_every: int
    repayment_frequency: RepaymentFrequency
    interest_rate_per_period: Decimal       # Percentage, e.g. 18 for 18%
    interest_rate_frequency: InterestRateFrequency
    min_principal: Optional[Decimal] = None
    max_principal: Optional[Decimal] = None
    amortization_type: AmortizationType = AmortizationType.EQUAL_INSTALLMENTS
    interest_calculation_period_type: InterestCalculationPeriodType = (
        InterestCalculationPeriodType.SAME_AS_REPAYMENT_PERIOD
    )
    minimum_days_between_disbursal_and_first_repayment: int = 0
    principal_grace_periods: int = 0
    interest_grace_periods: int = 0
    currency: Currency = Currency.USD
    days_in_year: int = 365
    allow_non_aligned_schedule: bool = False  # Group loans may skip meeting alignment
    short_name: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        for name in ('principal', 'min_principal', 'max_principal', 'interest_rate_per_period'):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))

    @property
    def annual_nominal_rate(self) -> Decimal:
        """Annual rate as a fraction (18% per year -> 0.18)"""
        rate = self.interest_rate_per_period / Decimal('100')
        if self.interest_rate_frequency == InterestRateFrequency.DAILY:
            return rate * Decimal(self.days_in_year)
        return rate * RATE_PERIODS_PER_YEAR[self.interest_rate_frequency]

    def is_principal_within_bounds(self, amount: Decimal) -> bool:
        if self.min_principal is not None and amount < self.min_principal:
            return False
        if self.max_principal is not None and amount > self.max_principal:
            return False
        return True

    def describe_principal_bounds(self) -> str:
        low = self.min_principal if self.min_principal is not None else "0"
        high = self.max_principal if self.max_principal is not None else "unbounded"
        return f"[{low}, {high}]"

    def with_application_terms(self, **terms: Any) -> 'LoanProductConfig':
        """
        Copy of this config with an application's own loan terms applied.

        Only names in APPLICATION_TERMS may be overridden; None means "use
        the product value".
        """
        unknown = set(terms) - set(APPLICATION_TERMS)
        if unknown:
            raise ValueError(f"Not an application-level term: {', '.join(sorted(unknown))}")
        changes = {name: value for name, value in terms.items() if value is not None}
        return replace(self, **changes) if changes else self

    def validate(self) -> List[ValidationIssue]:
        """Check the configuration invariants"""
        issues = []

        def invalid(message: str) -> None:
            issues.append(ValidationIssue(ErrorCode.INVALID_PRODUCT, message))

        if not self.name:
            invalid("Product name is required")
        if self.principal <= Decimal('0'):
            invalid("Default principal must be greater than zero")
        if self.min_principal is not None and self.min_principal < Decimal('0'):
            invalid("Minimum principal cannot be negative")
        if (self.min_principal is not None and self.max_principal is not None
                and self.min_principal > self.max_principal):
            invalid("Minimum principal cannot exceed maximum principal")
        elif not self.is_principal_within_bounds(self.principal):
            invalid(f"Default principal {self.principal} is outside {self.describe_principal_bounds()}")
        if self.number_of_repayments < 1:
            invalid("Number of repayments must be at least 1")
        if self.repayment_every < 1:
            invalid("Repayment every must be at least 1")
        if self.interest_rate_per_period < Decimal('0'):
            invalid("Interest rate per period cannot be negative")
        if self.minimum_days_between_disbursal_and_first_repayment < 0:
            invalid("Minimum days between disbursal and first repayment cannot be negative")
        if self.principal_grace_periods < 0 or self.interest_grace_periods < 0:
            invalid("Grace periods cannot be negative")
        if self.days_in_year not in SUPPORTED_DAYS_IN_YEAR:
            invalid(f"Days in year must be one of {SUPPORTED_DAYS_IN_YEAR}")
        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        def optional_str(value):
            return str(value) if value is not None else None

        return {
            'id': self.id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'name': self.name,
            'short_name': self.short_name,
            'principal': str(self.principal),
            'min_principal': optional_str(self.min_principal),
            'max_principal': optional_str(self.max_principal),
            'number_of_repayments': self.number_of_repayments,
            'repayment_every': self.repayment_every,
            'repayment_frequency': self.repayment_frequency.value,
            'interest_rate_per_period': str(self.interest_rate_per_period),
            'interest_rate_frequency': self.interest_rate_frequency.value,
            'amortization_type': self.amortization_type.value,
            'interest_calculation_period_type': self.interest_calculation_period_type.value,
            'minimum_days_between_disbursal_and_first_repayment':
                self.minimum_days_between_disbursal_and_first_repayment,
            'principal_grace_periods': self.principal_grace_periods,
            'interest_grace_periods': self.interest_grace_periods,
            'currency': self.currency.code,
            'days_in_year': self.days_in_year,
            'allow_non_aligned_schedule': self.allow_non_aligned_schedule,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanProductConfig':
        """Create instance from dictionary"""
        def optional_decimal(value):
            return Decimal(value) if value is not None else None

        created_at = data.get('created_at')
        return cls(
            id=data.get('id'),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            name=data['name'],
            short_name=data.get('short_name'),
            principal=Decimal(data['principal']),
            min_principal=optional_decimal(data.get('min_principal')),
            max_principal=optional_decimal(data.get('max_principal')),
            number_of_repayments=data['number_of_repayments'],
            repayment_every=data['repayment_every'],
            repayment_frequency=RepaymentFrequency(data['repayment_frequency']),
            interest_rate_per_period=Decimal(data['interest_rate_per_period']),
            interest_rate_frequency=InterestRateFrequency(data['interest_rate_frequency']),
            amortization_type=AmortizationType(data['amortization_type']),
            interest_calculation_period_type=InterestCalculationPeriodType(
                data['interest_calculation_period_type']
            ),
            minimum_days_between_disbursal_and_first_repayment=data.get(
                'minimum_days_between_disbursal_and_first_repayment', 0
            ),
            principal_grace_periods=data.get('principal_grace_periods', 0),
            interest_grace_periods=data.get('interest_grace_periods', 0),
            currency=Currency.from_code(data['currency']),
            days_in_year=data.get('days_in_year', 365),
            allow_non_aligned_schedule=data.get('allow_non_aligned_schedule', False),
        )


class LoanProductEngine:
    """Registry of loan product definitions"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "loan_products"
        self.logger = get_logger("lending.products")

    def create_product(self, config: LoanProductConfig) -> LoanProductConfig:
        """
        Validate and store a new loan product.

        Args:
            config: Product configuration (id and created_at are assigned here)

        Returns:
            The stored configuration with its id

        Raises:
            ValidationError: If the configuration breaks an invariant or the
                short name is already taken
        """
        issues = config.validate()
        if config.short_name and self.storage.find(self.table_name, {"short_name": config.short_name}):
            issues.append(ValidationIssue(
                ErrorCode.INVALID_PRODUCT, f"Product short name {config.short_name} already exists"
            ))
        if issues:
            raise ValidationError(issues)

        product = replace(
            config,
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc)
        )
        self.storage.insert(self.table_name, product.id, product.to_dict())

        log_action(
            self.logger, "info", f"Loan product created: {product.name}",
            action="create_loan_product", resource=f"loan_product:{product.id}",
            extra={
                "product_id": product.id,
                "number_of_repayments": product.number_of_repayments,
                "repayment_frequency": product.repayment_frequency.value,
                "minimum_days_between_disbursal_and_first_repayment":
                    product.minimum_days_between_disbursal_and_first_repayment,
            }
        )
        return product

    def get_product(self, product_id: str) -> Optional[LoanProductConfig]:
        """Get product by ID"""
        data = self.storage.load(self.table_name, product_id)
        if data:
            return LoanProductConfig.from_dict(data)
        return None

    def require_product(self, product_id: str) -> LoanProductConfig:
        """Get product by ID or raise NotFoundError"""
        product = self.get_product(product_id)
        if product is None:
            raise NotFoundError("loan product", product_id)
        return product

    def list_products(self) -> List[LoanProductConfig]:
        products = [LoanProductConfig.from_dict(data) for data in self.storage.load_all(self.table_name)]
        return sorted(products, key=lambda p: p.name)
