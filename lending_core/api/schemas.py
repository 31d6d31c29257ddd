"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from ..calendars import CalendarFrequency
from ..config import get_config
from ..currency import Currency
from ..loans import CollateralRef
from ..products import (
    LoanProductConfig, RepaymentFrequency, InterestRateFrequency,
    AmortizationType, InterestCalculationPeriodType
)


# Loan product schemas
class CreateLoanProductRequest(BaseModel):
    name: str
    short_name: Optional[str] = None
    currency: Optional[str] = Field(None, description="Currency code (USD, KES, ...); configured default when omitted")
    principal: Decimal = Field(..., description="Default principal")
    min_principal: Optional[Decimal] = None
    max_principal: Optional[Decimal] = None
    number_of_repayments: int
    repayment_every: int = 1
    repayment_frequency: RepaymentFrequency
    interest_rate_per_period: Decimal = Field(..., description="Percentage, e.g. 18 for 18%")
    interest_rate_frequency: InterestRateFrequency
    amortization_type: AmortizationType = AmortizationType.EQUAL_INSTALLMENTS
    interest_calculation_period_type: InterestCalculationPeriodType = (
        InterestCalculationPeriodType.SAME_AS_REPAYMENT_PERIOD
    )
    minimum_days_between_disbursal_and_first_repayment: int = 0
    principal_grace_periods: int = 0
    interest_grace_periods: int = 0
    days_in_year: int = 365
    allow_non_aligned_schedule: bool = False

    def to_config(self) -> LoanProductConfig:
        return LoanProductConfig(
            name=self.name,
            short_name=self.short_name,
            currency=Currency.from_code(self.currency or get_config().default_currency),
            principal=self.principal,
            min_principal=self.min_principal,
            max_principal=self.max_principal,
            number_of_repayments=self.number_of_repayments,
            repayment_every=self.repayment_every,
            repayment_frequency=self.repayment_frequency,
            interest_rate_per_period=self.interest_rate_per_period,
            interest_rate_frequency=self.interest_rate_frequency,
            amortization_type=self.amortization_type,
            interest_calculation_period_type=self.interest_calculation_period_type,
            minimum_days_between_disbursal_and_first_repayment=(
                self.minimum_days_between_disbursal_and_first_repayment
            ),
            principal_grace_periods=self.principal_grace_periods,
            interest_grace_periods=self.interest_grace_periods,
            days_in_year=self.days_in_year,
            allow_non_aligned_schedule=self.allow_non_aligned_schedule
        )


# Loan schemas
class CollateralModel(BaseModel):
    collateral_ref: str
    quantity: Decimal = Decimal('1')

    def to_collateral(self) -> CollateralRef:
        return CollateralRef(collateral_ref=self.collateral_ref, quantity=self.quantity)


class CreateLoanRequest(BaseModel):
    client_id: str
    product_id: str
    group_id: Optional[str] = None
    principal: Decimal
    submitted_on_date: date
    expected_disbursement_date: date
    first_repayment_date: date
    # Loan terms; the product value applies when omitted
    number_of_repayments: Optional[int] = None
    repayment_every: Optional[int] = None
    repayment_frequency: Optional[RepaymentFrequency] = None
    interest_rate_per_period: Optional[Decimal] = None
    amortization_type: Optional[AmortizationType] = None
    interest_calculation_period_type: Optional[InterestCalculationPeriodType] = None
    principal_grace_periods: Optional[int] = None
    interest_grace_periods: Optional[int] = None
    loan_term_frequency: Optional[int] = None
    loan_term_frequency_type: Optional[RepaymentFrequency] = None
    collaterals: List[CollateralModel] = Field(default_factory=list)


class ApproveLoanRequest(BaseModel):
    approved_on_date: date


class DisburseLoanRequest(BaseModel):
    actual_disbursement_date: date


class RejectLoanRequest(BaseModel):
    rejected_on_date: Optional[date] = None


class WithdrawLoanRequest(BaseModel):
    withdrawn_on_date: Optional[date] = None


# Calendar schemas
class CreateCalendarRequest(BaseModel):
    start_date: date
    frequency: CalendarFrequency = Field(..., description="1 daily, 2 weekly, 3 monthly, 4 yearly")
    interval: int = 1
    repeats_on_day: Optional[int] = Field(None, description="1 Monday ... 7 Sunday")
