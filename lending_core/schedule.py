"""
Repayment Schedule Module

Pure computation of a loan's repayment schedule from its product
configuration: due dates, principal/interest split per installment,
principal and interest grace periods.

Rounding policy: every amount is rounded to the currency's minor unit with
ROUND_HALF_UP, except the per-installment share of deferred grace interest,
which is rounded down. Whatever rounding leaves over (principal or deferred
interest) is absorbed by the final installment, so the principal components
always sum to the loan principal exactly.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from datetime import date
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .currency import Currency, Money, round_amount
from .dates import days_between
from .exceptions import ErrorCode, ValidationError, ValidationIssue
from .products import (
    LoanProductConfig, RepaymentFrequency, AmortizationType, InterestCalculationPeriodType, advance
)


ZERO = Decimal('0')

PERIODS_PER_YEAR = {
    RepaymentFrequency.WEEKS: Decimal('52'),
    RepaymentFrequency.MONTHS: Decimal('12'),
}


@dataclass(frozen=True)
class Installment:
    """Single entry in a repayment schedule"""
    number: int
    due_date: date
    principal_due: Decimal
    interest_due: Decimal
    outstanding_balance: Decimal  # Principal still owed after this installment

    @property
    def total_due(self) -> Decimal:
        return self.principal_due + self.interest_due

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.number,
            'due_date': self.due_date.isoformat(),
            'principal_due': str(self.principal_due),
            'interest_due': str(self.interest_due),
            'total_due': str(self.total_due),
            'outstanding_balance': str(self.outstanding_balance),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            number=data['number'],
            due_date=date.fromisoformat(data['due_date']),
            principal_due=Decimal(data['principal_due']),
            interest_due=Decimal(data['interest_due']),
            outstanding_balance=Decimal(data['outstanding_balance']),
        )


@dataclass(frozen=True)
class RepaymentSchedule:
    """Ordered installments for one loan"""
    currency: Currency
    principal: Decimal
    installments: Tuple[Installment, ...]

    @property
    def due_dates(self) -> List[date]:
        return [installment.due_date for installment in self.installments]

    @property
    def first_due_date(self) -> date:
        return self.installments[0].due_date

    @property
    def maturity_date(self) -> date:
        return self.installments[-1].due_date

    @property
    def total_principal(self) -> Decimal:
        return sum((i.principal_due for i in self.installments), ZERO)

    @property
    def total_interest(self) -> Decimal:
        return sum((i.interest_due for i in self.installments), ZERO)

    @property
    def total_repayment(self) -> Decimal:
        return self.total_principal + self.total_interest

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currency': self.currency.code,
            'principal': str(self.principal),
            'total_interest': str(self.total_interest),
            'total_repayment': str(self.total_repayment),
            'total_repayment_display': Money(self.total_repayment, self.currency).to_string(),
            'installments': [installment.to_dict() for installment in self.installments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RepaymentSchedule':
        return cls(
            currency=Currency.from_code(data['currency']),
            principal=Decimal(data['principal']),
            installments=tuple(Installment.from_dict(item) for item in data['installments']),
        )


class ScheduleGenerator:
    """
    Builds repayment schedules. Stateless apart from the rounding tolerance,
    so one instance can serve any number of applications concurrently.
    """

    def __init__(self, rounding_epsilon: Decimal = ZERO):
        self.rounding_epsilon = Decimal(str(rounding_epsilon))

    def generate(self, product: LoanProductConfig, principal: Decimal,
                 first_repayment_date: date,
                 disbursement_date: Optional[date] = None) -> RepaymentSchedule:
        """
        Generate the repayment schedule for a principal under a product.

        Args:
            product: Product configuration (grace overrides already applied)
            principal: Loan principal
            first_repayment_date: Due date of the first installment
            disbursement_date: Start of the first interest period; when
                omitted the first period is one nominal repayment period long

        Returns:
            RepaymentSchedule

        Raises:
            ValidationError: If grace periods leave nothing to amortize or the
                principal cannot be represented in the product currency
        """
        if not isinstance(principal, Decimal):
            principal = Decimal(str(principal))

        issues = self._check_feasibility(product, principal)
        if issues:
            raise ValidationError(issues)

        currency = product.currency
        due_dates = self.due_dates(product, first_repayment_date)
        period_start = disbursement_date or self._step(product, first_repayment_date, -1)
        period_rates = self._period_rates(product, period_start, due_dates)

        n = product.number_of_repayments
        principal_grace = product.principal_grace_periods
        interest_grace = product.interest_grace_periods
        amortizing_periods = n - principal_grace
        loan_principal = round_amount(principal, currency)

        level_principal = round_amount(loan_principal / Decimal(amortizing_periods), currency)
        level_payment = round_amount(
            self._level_payment(loan_principal, self.nominal_period_rate(product), amortizing_periods),
            currency
        )

        outstanding = loan_principal
        principal_parts: List[Decimal] = []
        accrued_parts: List[Decimal] = []
        balances: List[Decimal] = []

        for index in range(n):
            number = index + 1
            accrued = round_amount(outstanding * period_rates[index], currency)

            if number <= principal_grace:
                principal_due = ZERO
            elif number == n:
                principal_due = outstanding
            elif product.amortization_type == AmortizationType.EQUAL_PRINCIPAL_PAYMENTS:
                principal_due = min(level_principal, outstanding)
            else:
                principal_due = min(max(level_payment - accrued, ZERO), outstanding)

            outstanding -= principal_due
            principal_parts.append(principal_due)
            accrued_parts.append(accrued)
            balances.append(outstanding)

        interest_parts = self._apply_interest_grace(accrued_parts, interest_grace, currency)

        installments = tuple(
            Installment(
                number=index + 1,
                due_date=due_dates[index],
                principal_due=principal_parts[index],
                interest_due=interest_parts[index],
                outstanding_balance=balances[index],
            )
            for index in range(n)
        )
        schedule = RepaymentSchedule(currency=currency, principal=principal, installments=installments)

        residual = abs(schedule.total_principal - principal)
        if residual > self.rounding_epsilon:
            raise ValidationError.single(
                ErrorCode.SCHEDULE_ROUNDING,
                f"Schedule principal {schedule.total_principal} differs from loan principal "
                f"{principal} by {residual}"
            )
        return schedule

    def due_dates(self, product: LoanProductConfig, first_repayment_date: date) -> List[date]:
        """Installment due dates, stepping from the first repayment date"""
        return [
            self._step(product, first_repayment_date, index)
            for index in range(product.number_of_repayments)
        ]

    def nominal_period_rate(self, product: LoanProductConfig) -> Decimal:
        """Interest rate for one repayment period treated as a uniform unit"""
        annual = product.annual_nominal_rate * Decimal(product.repayment_every)
        if product.repayment_frequency == RepaymentFrequency.DAYS:
            return annual / Decimal(product.days_in_year)
        return annual / PERIODS_PER_YEAR[product.repayment_frequency]

    def _check_feasibility(self, product: LoanProductConfig, principal: Decimal) -> List[ValidationIssue]:
        issues = []
        n = product.number_of_repayments
        if n <= product.principal_grace_periods:
            issues.append(ValidationIssue(
                ErrorCode.PRINCIPAL_GRACE_EXCEEDS_REPAYMENTS,
                f"Principal grace of {product.principal_grace_periods} periods leaves no "
                f"installments out of {n} to repay principal"
            ))
        if n <= product.interest_grace_periods:
            issues.append(ValidationIssue(
                ErrorCode.INTEREST_GRACE_EXCEEDS_REPAYMENTS,
                f"Interest grace of {product.interest_grace_periods} periods leaves no "
                f"installments out of {n} to collect interest"
            ))
        if principal <= ZERO:
            issues.append(ValidationIssue(
                ErrorCode.PRINCIPAL_NOT_POSITIVE, "Principal must be greater than zero"
            ))
        elif not self._is_representable(principal, product.currency):
            issues.append(ValidationIssue(
                ErrorCode.PRINCIPAL_PRECISION,
                f"Principal {principal} cannot be represented with "
                f"{product.currency.precision} decimal places in {product.currency.code}"
            ))
        return issues

    def _is_representable(self, amount: Decimal, currency: Currency) -> bool:
        try:
            rounded = round_amount(amount, currency)
        except InvalidOperation:
            # More digits than the decimal context can hold at this precision
            return False
        return abs(amount - rounded) <= self.rounding_epsilon

    def _step(self, product: LoanProductConfig, start: date, periods: int) -> date:
        return advance(start, product.repayment_every * periods, product.repayment_frequency)

    def _period_rates(self, product: LoanProductConfig, period_start: date,
                      due_dates: List[date]) -> List[Decimal]:
        if product.interest_calculation_period_type == InterestCalculationPeriodType.SAME_AS_REPAYMENT_PERIOD:
            return [self.nominal_period_rate(product)] * len(due_dates)

        daily_rate = product.annual_nominal_rate / Decimal(product.days_in_year)
        rates = []
        previous = period_start
        for due_date in due_dates:
            rates.append(daily_rate * Decimal(max(days_between(previous, due_date), 0)))
            previous = due_date
        return rates

    @staticmethod
    def _level_payment(principal: Decimal, period_rate: Decimal, periods: int) -> Decimal:
        """Annuity payment: P * r(1+r)^n / ((1+r)^n - 1)"""
        if period_rate == ZERO:
            return principal / Decimal(periods)
        factor = (Decimal('1') + period_rate) ** periods
        return principal * period_rate * factor / (factor - Decimal('1'))

    @staticmethod
    def _apply_interest_grace(accrued: List[Decimal], grace_periods: int,
                              currency: Currency) -> List[Decimal]:
        """Zero the first grace installments and spread what they accrued over the rest"""
        if grace_periods <= 0:
            return list(accrued)

        deferred = sum(accrued[:grace_periods], ZERO)
        remaining = len(accrued) - grace_periods
        share = (deferred / Decimal(remaining)).quantize(currency.quantum, rounding=ROUND_DOWN)

        interest = [ZERO] * grace_periods
        for offset, amount in enumerate(accrued[grace_periods:]):
            if offset == remaining - 1:
                interest.append(amount + deferred - share * (remaining - 1))
            else:
                interest.append(amount + share)
        return interest
