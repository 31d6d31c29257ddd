"""
Loan endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import LendingSystem, get_lending_system
from .schemas import (
    CreateLoanRequest, ApproveLoanRequest, DisburseLoanRequest,
    RejectLoanRequest, WithdrawLoanRequest
)
from ..currency import Money
from ..loans import LoanApplication
from ..products import APPLICATION_TERMS


router = APIRouter()

LOAN_TERM_FIELDS = APPLICATION_TERMS + ("loan_term_frequency", "loan_term_frequency_type")


def _loan_response(loan: LoanApplication) -> dict:
    def iso(value):
        return value.isoformat() if value else None

    stored = loan.to_dict()

    return {
        "id": loan.id,
        "client_id": loan.client_id,
        "group_id": loan.group_id,
        "product_id": loan.product_id,
        "status": loan.status.value,
        "principal": str(loan.principal),
        "principal_display": Money(loan.principal, loan.schedule.currency).to_string() if loan.schedule else None,
        "submitted_on_date": loan.submitted_on_date.isoformat(),
        "expected_disbursement_date": loan.expected_disbursement_date.isoformat(),
        "first_repayment_date": loan.first_repayment_date.isoformat(),
        "approved_on_date": iso(loan.approved_on_date),
        "disbursed_on_date": iso(loan.disbursed_on_date),
        "rejected_on_date": iso(loan.rejected_on_date),
        "withdrawn_on_date": iso(loan.withdrawn_on_date),
        "loan_terms": {name: stored[name] for name in LOAN_TERM_FIELDS},
        "collaterals": [
            {"collateral_ref": c.collateral_ref, "quantity": str(c.quantity)}
            for c in loan.collaterals
        ],
        "status_history": [transition.to_dict() for transition in loan.status_history]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Submit a loan application"""
    loan = system.loan_manager.create_application(
        client_id=request.client_id,
        product_id=request.product_id,
        group_id=request.group_id,
        principal=request.principal,
        submitted_on_date=request.submitted_on_date,
        expected_disbursement_date=request.expected_disbursement_date,
        first_repayment_date=request.first_repayment_date,
        number_of_repayments=request.number_of_repayments,
        repayment_every=request.repayment_every,
        repayment_frequency=request.repayment_frequency,
        interest_rate_per_period=request.interest_rate_per_period,
        amortization_type=request.amortization_type,
        interest_calculation_period_type=request.interest_calculation_period_type,
        principal_grace_periods=request.principal_grace_periods,
        interest_grace_periods=request.interest_grace_periods,
        loan_term_frequency=request.loan_term_frequency,
        loan_term_frequency_type=request.loan_term_frequency_type,
        collaterals=[c.to_collateral() for c in request.collaterals]
    )
    return {
        "loan_id": loan.id,
        "status": loan.status.value,
        "message": "Loan application created successfully"
    }


@router.get("")
async def list_loans(
    client_id: Optional[str] = None,
    group_id: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List loans, optionally for one client or group"""
    loans = system.loan_manager.list_loans(client_id=client_id, group_id=group_id)
    return {"loans": [_loan_response(loan) for loan in loans]}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details"""
    return _loan_response(system.loan_manager.require_loan(loan_id))


@router.get("/{loan_id}/status")
async def get_loan_status(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan status"""
    return {
        "loan_id": loan_id,
        "status": system.loan_manager.get_status(loan_id).value
    }


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan repayment schedule"""
    return system.loan_manager.get_schedule(loan_id).to_dict()


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: str,
    request: ApproveLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Approve a pending loan"""
    loan = system.loan_manager.approve(loan_id, request.approved_on_date)
    return {"loan_id": loan.id, "status": loan.status.value}


@router.post("/{loan_id}/disburse")
async def disburse_loan(
    loan_id: str,
    request: DisburseLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Disburse an approved loan"""
    loan = system.loan_manager.disburse(loan_id, request.actual_disbursement_date)
    return {"loan_id": loan.id, "status": loan.status.value}


@router.post("/{loan_id}/reject")
async def reject_loan(
    loan_id: str,
    request: RejectLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Reject a pending loan"""
    loan = system.loan_manager.reject(loan_id, request.rejected_on_date)
    return {"loan_id": loan.id, "status": loan.status.value}


@router.post("/{loan_id}/withdraw")
async def withdraw_loan(
    loan_id: str,
    request: WithdrawLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Withdraw a pending loan application"""
    loan = system.loan_manager.withdraw(loan_id, request.withdrawn_on_date)
    return {"loan_id": loan.id, "status": loan.status.value}
