"""
Payment Module

Payment records, the per-installment unique key, and the PaymentRecorder that
validates submissions before handing them to the loan ledger. All writes to
the payments table go through this module.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .exceptions import ValidationError, NotFoundError, ConflictError, DuplicateRecordError
from .logging_config import get_logger, log_action
from .money import ZERO, to_decimal
from .pagination import Page, paginate

if TYPE_CHECKING:
    from .loans import LoanLedger, Loan


PAYMENTS_TABLE = "payments"
# One row per (loan, installment); the primary key rejects a second payment
INSTALLMENT_KEYS_TABLE = "payment_installments"


class PaymentMethod(Enum):
    """How the installment was paid"""
    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"
    CHECK = "check"


@dataclass
class LoanPayment(StorageRecord):
    """One paid installment of a loan"""
    loan_id: str
    client_id: str
    installment_number: int
    amount_paid: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    levy_paid: Decimal
    payment_date: date
    method: PaymentMethod = PaymentMethod.CASH
    receipt: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class RecordPaymentCommand:
    """Payload of a payment submission"""
    loan_id: str
    installment_number: Any
    amount_paid: Any
    payment_date: Optional[date] = None
    method: PaymentMethod = PaymentMethod.CASH
    receipt: Optional[str] = None
    notes: Optional[str] = None


def installment_key(loan_id: str, installment_number: int) -> str:
    return f"{loan_id}:{installment_number}"


def installment_is_paid(storage: StorageInterface, loan_id: str, installment_number: int) -> bool:
    return storage.exists(INSTALLMENT_KEYS_TABLE, installment_key(loan_id, installment_number))


def insert_payment(storage: StorageInterface, payment: LoanPayment) -> None:
    """
    Store a payment after claiming its installment key.

    Raises:
        ConflictError: if the installment already has a payment
    """
    try:
        storage.insert(
            INSTALLMENT_KEYS_TABLE,
            installment_key(payment.loan_id, payment.installment_number),
            {"payment_id": payment.id, "loan_id": payment.loan_id}
        )
    except DuplicateRecordError:
        raise ConflictError(
            f"Installment {payment.installment_number} of loan {payment.loan_id} is already paid"
        ) from None
    storage.insert(PAYMENTS_TABLE, payment.id, payment_to_dict(payment))


def remove_payment(storage: StorageInterface, payment: LoanPayment) -> None:
    storage.delete(PAYMENTS_TABLE, payment.id)
    storage.delete(INSTALLMENT_KEYS_TABLE, installment_key(payment.loan_id, payment.installment_number))


def find_payments(storage: StorageInterface, **filters: str) -> List[LoanPayment]:
    """Payments matching field filters, newest payment date first"""
    payments = [payment_from_dict(data) for data in storage.find(PAYMENTS_TABLE, filters)]
    payments.sort(key=lambda p: (p.payment_date, p.created_at), reverse=True)
    return payments


def payment_to_dict(payment: LoanPayment) -> Dict[str, Any]:
    result = payment.to_dict()
    result['payment_date'] = payment.payment_date.isoformat()
    result['method'] = payment.method.value
    return result


def payment_from_dict(data: Dict[str, Any]) -> LoanPayment:
    return LoanPayment(
        id=data['id'],
        created_at=datetime.fromisoformat(data['created_at']),
        updated_at=datetime.fromisoformat(data['updated_at']),
        loan_id=data['loan_id'],
        client_id=data['client_id'],
        installment_number=data['installment_number'],
        amount_paid=Decimal(data['amount_paid']),
        principal_paid=Decimal(data['principal_paid']),
        interest_paid=Decimal(data['interest_paid']),
        levy_paid=Decimal(data['levy_paid']),
        payment_date=date.fromisoformat(data['payment_date']),
        method=PaymentMethod(data['method']),
        receipt=data.get('receipt'),
        notes=data.get('notes')
    )


def parse_payment_method(value: Optional[str]) -> PaymentMethod:
    if value is None or not str(value).strip():
        return PaymentMethod.CASH
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Invalid payment method '{value}'. Use one of: {allowed}") from None


class PaymentRecorder:
    """
    Entry point for payment submissions and the payment history
    """

    def __init__(self, storage: StorageInterface, ledger: 'LoanLedger', audit_trail: AuditTrail):
        self.storage = storage
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.logger = get_logger("lending.payments")

    def record_payment(self, command: RecordPaymentCommand) -> Tuple[LoanPayment, "Loan"]:
        """
        Validate a submission and apply it to its loan

        Duplicate-installment and amount-tolerance checks belong to the ledger.

        Returns:
            (stored payment, updated loan)

        Raises:
            ValidationError: missing loan ID, non-positive amount or installment number
        """
        if not command.loan_id or not str(command.loan_id).strip():
            raise ValidationError("loan_id is required")

        amount_paid = to_decimal(command.amount_paid, "amount_paid")
        if amount_paid <= ZERO:
            raise ValidationError("amount_paid must be greater than 0")

        number = to_decimal(command.installment_number, "installment_number")
        if number != number.to_integral_value() or number < 1:
            raise ValidationError("installment_number must be a whole number of at least 1")

        return self.ledger.apply_payment(
            loan_id=str(command.loan_id).strip(),
            installment_number=int(number),
            amount_paid=amount_paid,
            payment_date=command.payment_date,
            method=command.method,
            receipt=command.receipt,
            notes=command.notes
        )

    def get_payment(self, payment_id: str) -> Optional[LoanPayment]:
        data = self.storage.load(PAYMENTS_TABLE, payment_id)
        if data:
            return payment_from_dict(data)
        return None

    def require_payment(self, payment_id: str) -> LoanPayment:
        payment = self.get_payment(payment_id)
        if not payment:
            raise NotFoundError("payment", payment_id)
        return payment

    def list_payments(
        self,
        loan_id: Optional[str] = None,
        client_id: Optional[str] = None,
        page: int = 1,
        limit: int = 100
    ) -> Page:
        filters = {}
        if loan_id:
            filters['loan_id'] = loan_id
        if client_id:
            filters['client_id'] = client_id
        return paginate(find_payments(self.storage, **filters), page, limit)

    def delete_payment(self, payment_id: str) -> LoanPayment:
        """
        Remove a payment record and free its installment number.

        The owning loan's counters, balance and status are left as they are.
        """
        with self.storage.atomic():
            payment = self.require_payment(payment_id)
            remove_payment(self.storage, payment)
            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_DELETED,
                entity_type="payment",
                entity_id=payment.id,
                metadata={
                    "loan_id": payment.loan_id,
                    "installment_number": payment.installment_number,
                    "amount_paid": payment.amount_paid
                }
            )

        log_action(
            self.logger, "warning",
            f"Payment {payment.id} deleted; loan {payment.loan_id} counters unchanged",
            action="payment.delete", resource="payment", resource_id=payment.id
        )
        return payment
