"""
Pydantic schemas for API requests and the response envelope
"""

from decimal import Decimal
from datetime import date
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, Field

from ..amortization import AmortizationEntry
from ..clients import Client
from ..loans import Loan, ClientSummary
from ..money import round_money
from ..pagination import Page
from ..payments import LoanPayment

# Amounts arrive as JSON numbers or decimal strings; the core parses them
Number = Union[int, float, str]


def money(amount: Decimal) -> str:
    return str(round_money(amount))


def success(data: Any = None, page: Optional[Page] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "data": data}
    if page is not None:
        body["pagination"] = page.meta()
    return body


def failure(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


# Client schemas
class CreateClientRequest(BaseModel):
    first_name: str
    last_name: str
    national_id: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None


class UpdateClientRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    national_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


# Loan schemas
class CreateLoanRequest(BaseModel):
    client_id: str
    principal: Number = Field(..., description="Amount lent")
    monthly_rate: Number = Field(..., description="Flat monthly interest in percent")
    installment_count: Number = Field(..., description="Number of monthly installments")
    notes: Optional[str] = None


class UpdateLoanRequest(BaseModel):
    notes: Optional[str] = None


# Payment schemas
class RecordPaymentRequest(BaseModel):
    loan_id: str
    installment_number: Number
    amount_paid: Number
    payment_date: Optional[date] = None
    method: Optional[str] = Field(None, description="cash, transfer, card or check")
    receipt: Optional[str] = None
    notes: Optional[str] = None


# Response bodies
def client_to_response(client: Client) -> Dict[str, Any]:
    return {
        "id": client.id,
        "first_name": client.first_name,
        "last_name": client.last_name,
        "full_name": client.full_name,
        "national_id": client.national_id,
        "phone": client.phone,
        "email": client.email,
        "address": client.address,
        "status": client.status.value,
        "active_loan_count": client.active_loan_count,
        "registered_at": client.registered_at.isoformat(),
        "updated_at": client.updated_at.isoformat()
    }


def summary_to_response(summary: ClientSummary) -> Dict[str, Any]:
    result = client_to_response(summary.client)
    result.update({
        "status": summary.status.value,
        "total_loans": summary.total_loans,
        "active_loans": summary.active_loans,
        "paid_loans": summary.paid_loans,
        "delinquent_loans": summary.delinquent_loans,
        "outstanding_total": money(summary.outstanding_total),
        "principal_total": money(summary.principal_total)
    })
    return result


def loan_to_response(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "client_id": loan.client_id,
        "client": loan.client_snapshot.to_dict(),
        "principal": money(loan.principal),
        "monthly_rate": str(loan.monthly_rate),
        "installment_count": loan.installment_count,
        "installments_paid": loan.installments_paid,
        "principal_portion": money(loan.principal_portion),
        "interest_portion": money(loan.interest_portion),
        "levy_portion": money(loan.levy_portion),
        "installment_amount": money(loan.installment_amount),
        "total_interest": money(loan.total_interest),
        "total_levy": money(loan.total_levy),
        "total_payable": money(loan.total_payable),
        "outstanding_balance": money(loan.outstanding_balance),
        "status": loan.status.value,
        "loan_date": loan.loan_date.isoformat(),
        "due_date": loan.due_date.isoformat(),
        "notes": loan.notes,
        "created_at": loan.created_at.isoformat()
    }


def schedule_entry_to_response(entry: AmortizationEntry) -> Dict[str, Any]:
    return {
        "installment_number": entry.installment_number,
        "due_date": entry.due_date.isoformat(),
        "principal_portion": money(entry.principal_portion),
        "interest_portion": money(entry.interest_portion),
        "levy_portion": money(entry.levy_portion),
        "installment_amount": money(entry.installment_amount),
        "remaining_balance": money(entry.remaining_balance)
    }


def payment_to_response(payment: LoanPayment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "loan_id": payment.loan_id,
        "client_id": payment.client_id,
        "installment_number": payment.installment_number,
        "amount_paid": money(payment.amount_paid),
        "principal_paid": money(payment.principal_paid),
        "interest_paid": money(payment.interest_paid),
        "levy_paid": money(payment.levy_paid),
        "payment_date": payment.payment_date.isoformat(),
        "method": payment.method.value,
        "receipt": payment.receipt,
        "notes": payment.notes,
        "created_at": payment.created_at.isoformat()
    }
