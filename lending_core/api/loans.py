"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .dependencies import PageParams, get_lending_system, get_page_params
from .schemas import (
    CreateLoanRequest,
    UpdateLoanRequest,
    success,
    loan_to_response,
    payment_to_response,
    schedule_entry_to_response
)
from ..status import parse_status_filter
from ..system import LendingSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Issue a new loan"""
    loan = system.loan_ledger.create_loan(
        client_id=request.client_id,
        principal=request.principal,
        monthly_rate=request.monthly_rate,
        installment_count=request.installment_count,
        notes=request.notes
    )
    return success(loan_to_response(loan))


@router.get("")
async def list_loans(
    client_id: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    paging: PageParams = Depends(get_page_params),
    system: LendingSystem = Depends(get_lending_system)
):
    """List loans, newest first"""
    page = system.loan_ledger.list_loans(
        client_id=client_id,
        status=parse_status_filter(status_filter),
        search=search,
        page=paging.page,
        limit=paging.limit
    )
    return success([loan_to_response(loan) for loan in page.items], page)


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get a loan with its payments"""
    loan = system.loan_ledger.require_loan(loan_id)
    result = loan_to_response(loan)
    result["payments"] = [payment_to_response(p) for p in system.loan_ledger.get_loan_payments(loan.id)]
    return success(result)


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get the installment schedule for a loan"""
    loan = system.loan_ledger.require_loan(loan_id)
    return success([schedule_entry_to_response(entry) for entry in loan.schedule()])


@router.patch("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Update loan notes"""
    loan = system.loan_ledger.update_loan_notes(loan_id, request.notes)
    return success(loan_to_response(loan))


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a loan and its payments"""
    loan, payments_deleted = system.loan_ledger.delete_loan(loan_id)
    return success({"loan_id": loan.id, "payments_deleted": payments_deleted})
