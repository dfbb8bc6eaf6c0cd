"""
Payment endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import PageParams, get_lending_system, get_page_params
from .schemas import RecordPaymentRequest, success, loan_to_response, payment_to_response
from ..payments import RecordPaymentCommand, parse_payment_method
from ..system import LendingSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_payment(
    request: RecordPaymentRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Pay one installment of a loan"""
    payment, loan = system.payment_recorder.record_payment(RecordPaymentCommand(
        loan_id=request.loan_id,
        installment_number=request.installment_number,
        amount_paid=request.amount_paid,
        payment_date=request.payment_date,
        method=parse_payment_method(request.method),
        receipt=request.receipt,
        notes=request.notes
    ))
    return success({"payment": payment_to_response(payment), "loan": loan_to_response(loan)})


@router.get("")
async def list_payments(
    loan_id: Optional[str] = None,
    client_id: Optional[str] = None,
    paging: PageParams = Depends(get_page_params),
    system: LendingSystem = Depends(get_lending_system)
):
    """List payments, newest first"""
    page = system.payment_recorder.list_payments(
        loan_id=loan_id,
        client_id=client_id,
        page=paging.page,
        limit=paging.limit
    )
    return success([payment_to_response(p) for p in page.items], page)


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get payment by ID"""
    payment = system.payment_recorder.require_payment(payment_id)
    return success(payment_to_response(payment))


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a payment record; the loan's counters are left unchanged"""
    payment = system.payment_recorder.delete_payment(payment_id)
    return success({"payment_id": payment.id, "loan_id": payment.loan_id})
