"""
Loan Ledger Module

Handles loan issuance, installment payments, delinquency marking and the
client status recomputation that couples clients, loans and payments.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .amortization import AmortizationEntry, calculate_installment_plan, add_months
from .clients import Client, ClientManager, ClientSnapshot
from .exceptions import ValidationError, NotFoundError, ConflictError
from .logging_config import get_logger, log_action
from .money import ZERO, to_decimal, format_money
from .pagination import Page, paginate
from .payments import (
    LoanPayment, PaymentMethod, find_payments, insert_payment,
    installment_is_paid, remove_payment
)
from .status import AccountStatus, aggregate_client_status


DEFAULT_LOAN_NOTES = "Initial loan"


@dataclass
class Loan(StorageRecord):
    """Installment loan with its flat-rate figures and repayment progress"""
    client_id: str
    client_snapshot: ClientSnapshot  # Identity at issue time; not refreshed later
    principal: Decimal
    monthly_rate: Decimal             # Percent, e.g. Decimal('2') for 2% a month
    installment_count: int
    principal_portion: Decimal
    interest_portion: Decimal
    levy_portion: Decimal
    installment_amount: Decimal
    total_interest: Decimal
    total_levy: Decimal
    total_payable: Decimal
    outstanding_balance: Decimal
    loan_date: date
    due_date: date
    status: AccountStatus = AccountStatus.PENDING
    installments_paid: int = 0
    notes: Optional[str] = None

    @property
    def is_paid_off(self) -> bool:
        return self.installments_paid >= self.installment_count

    @property
    def remaining_installments(self) -> int:
        return max(0, self.installment_count - self.installments_paid)

    def schedule(self) -> List[AmortizationEntry]:
        """Flat schedule from the loan date, one row per installment"""
        plan = calculate_installment_plan(self.principal, self.monthly_rate, self.installment_count)
        return plan.schedule(self.loan_date)


@dataclass
class ClientSummary:
    """A client together with aggregates over their loans"""
    client: Client
    status: AccountStatus
    total_loans: int
    active_loans: int          # pending + delinquent
    paid_loans: int
    delinquent_loans: int
    outstanding_total: Decimal
    principal_total: Decimal


@dataclass
class ClientDeletion:
    """What a client deletion removed"""
    client: Client
    loans_deleted: int
    payments_deleted: int


class LoanLedger:
    """
    Owns loan lifecycle transitions and their effect on the owning client
    """

    def __init__(
        self,
        storage: StorageInterface,
        client_manager: ClientManager,
        audit_trail: AuditTrail,
        payment_tolerance: Decimal = Decimal('0.05')
    ):
        self.storage = storage
        self.client_manager = client_manager
        self.audit_trail = audit_trail
        self.payment_tolerance = payment_tolerance
        self.loans_table = "loans"
        self.logger = get_logger("lending.loans")

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def create_loan(
        self,
        client_id: str,
        principal: Any,
        monthly_rate: Any,
        installment_count: Any,
        notes: Optional[str] = None,
        loan_date: Optional[date] = None
    ) -> Loan:
        """
        Issue a new loan to a client

        Args:
            client_id: Borrower
            principal: Amount lent (> 0)
            monthly_rate: Flat monthly interest in percent (>= 0)
            installment_count: Number of monthly installments (>= 1)
            notes: Free-text remark
            loan_date: Issue date, defaults to today

        Returns:
            The stored Loan, pending with its full balance outstanding

        Raises:
            NotFoundError: if the client does not exist
            ValidationError: if a numeric input is missing or out of range
        """
        if not client_id:
            raise ValidationError("client_id is required")

        with self.storage.atomic():
            client = self.client_manager.require_client(client_id)
            plan = calculate_installment_plan(principal, monthly_rate, installment_count)

            now = datetime.now(timezone.utc)
            loan_date = loan_date or now.date()
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                client_id=client.id,
                client_snapshot=client.snapshot(),
                principal=plan.principal,
                monthly_rate=plan.monthly_rate_percent,
                installment_count=plan.installment_count,
                principal_portion=plan.principal_portion,
                interest_portion=plan.interest_portion,
                levy_portion=plan.levy_portion,
                installment_amount=plan.installment_amount,
                total_interest=plan.total_interest,
                total_levy=plan.total_levy,
                total_payable=plan.total_payable,
                outstanding_balance=plan.total_payable,
                loan_date=loan_date,
                due_date=add_months(loan_date, plan.installment_count),
                notes=(notes or "").strip() or DEFAULT_LOAN_NOTES
            )
            self.storage.insert(self.loans_table, loan.id, self._loan_to_dict(loan))

            client.active_loan_count += 1
            client.touch()
            self.client_manager.save_client(client)
            self.client_manager.set_status(client, AccountStatus.PENDING)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "client_id": client.id,
                    "principal": loan.principal,
                    "monthly_rate": loan.monthly_rate,
                    "installment_count": loan.installment_count,
                    "installment_amount": loan.installment_amount,
                    "total_payable": loan.total_payable
                }
            )

        log_action(
            self.logger, "info",
            f"Loan issued to {client.full_name}: {format_money(loan.principal)} "
            f"in {loan.installment_count} installments of {format_money(loan.installment_amount, 2)}",
            action="loan.create", resource="loan", resource_id=loan.id
        )
        return loan

    def apply_payment(
        self,
        loan_id: str,
        installment_number: int,
        amount_paid: Any,
        payment_date: Optional[date] = None,
        method: PaymentMethod = PaymentMethod.CASH,
        receipt: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Tuple[LoanPayment, Loan]:
        """
        Pay one installment of a loan

        The caller's amount only has to fall within the tolerance band; the
        payment is always recorded at the loan's fixed installment amount and
        split into its fixed principal, interest and levy portions.

        Returns:
            (stored payment, updated loan)

        Raises:
            NotFoundError: if the loan does not exist
            ConflictError: if the installment already has a payment
            ValidationError: if the amount is outside the tolerance band, the
                installment number is beyond the loan's term, or the loan is
                already paid off
        """
        amount_paid = to_decimal(amount_paid, "amount_paid")

        with self.storage.atomic():
            loan = self.require_loan(loan_id)

            if installment_is_paid(self.storage, loan.id, installment_number):
                raise ConflictError(f"Installment {installment_number} of loan {loan.id} is already paid")
            if loan.is_paid_off:
                raise ValidationError(f"Loan {loan.id} is already paid off")
            if installment_number < 1:
                raise ValidationError("installment_number must be a whole number of at least 1")
            if installment_number > loan.installment_count:
                raise ValidationError(
                    f"Installment {installment_number} is beyond the loan's "
                    f"{loan.installment_count} installments"
                )

            expected = loan.installment_amount
            if abs(amount_paid - expected) > expected * self.payment_tolerance:
                raise ValidationError(f"The amount must be approximately {format_money(expected)}")

            now = datetime.now(timezone.utc)
            payment = LoanPayment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                client_id=loan.client_id,
                installment_number=installment_number,
                amount_paid=expected,
                principal_paid=loan.principal_portion,
                interest_paid=loan.interest_portion,
                levy_paid=loan.levy_portion,
                payment_date=payment_date or now.date(),
                method=method,
                receipt=(receipt or "").strip() or None,
                notes=(notes or "").strip() or f"Installment {installment_number} payment"
            )
            insert_payment(self.storage, payment)

            self._settle_installment(loan)
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_RECORDED,
                entity_type="payment",
                entity_id=payment.id,
                metadata={
                    "loan_id": loan.id,
                    "installment_number": installment_number,
                    "amount_submitted": amount_paid,
                    "amount_paid": payment.amount_paid
                }
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_PAYMENT_APPLIED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "payment_id": payment.id,
                    "installments_paid": loan.installments_paid,
                    "outstanding_balance": loan.outstanding_balance,
                    "status": loan.status
                }
            )

            if loan.status == AccountStatus.PAID:
                self._close_out_for_client(loan)

        log_action(
            self.logger, "info",
            f"Installment {installment_number}/{loan.installment_count} paid on loan {loan.id}",
            action="loan.payment", resource="loan", resource_id=loan.id,
            extra={"status": loan.status.value, "outstanding_balance": str(loan.outstanding_balance)}
        )
        return payment, loan

    def mark_delinquent(self, client_id: str) -> Tuple[Client, int]:
        """
        Flag a client as delinquent and cascade to their pending loans

        Paid loans keep their status.

        Returns:
            (updated client, number of loans moved to delinquent)
        """
        with self.storage.atomic():
            client = self.client_manager.require_client(client_id)
            self.client_manager.set_status(client, AccountStatus.DELINQUENT)

            changed = 0
            for loan in self.get_client_loans(client.id):
                if loan.status == AccountStatus.PENDING:
                    loan.status = AccountStatus.DELINQUENT
                    loan.touch()
                    self._save_loan(loan)
                    changed += 1

            self.audit_trail.log_event(
                event_type=AuditEventType.CLIENT_MARKED_DELINQUENT,
                entity_type="client",
                entity_id=client.id,
                metadata={"loans_marked": changed}
            )

        log_action(
            self.logger, "warning",
            f"Client {client.full_name} marked delinquent; {changed} pending loan(s) moved to delinquent",
            action="client.mark_delinquent", resource="client", resource_id=client.id
        )
        return client, changed

    def recompute_client_status(self, client_id: str) -> Client:
        """Re-derive and store a client's status from their loans"""
        with self.storage.atomic():
            client = self.client_manager.require_client(client_id)
            statuses = [loan.status for loan in self.get_client_loans(client.id)]
            self.client_manager.set_status(client, aggregate_client_status(statuses, client.status))
        return client

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return self._loan_from_dict(data)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError("loan", loan_id)
        return loan

    def get_client_loans(self, client_id: str) -> List[Loan]:
        """All loans of a client, newest first"""
        loans = [self._loan_from_dict(data) for data in self.storage.find(self.loans_table, {"client_id": client_id})]
        return self._newest_first(loans)

    def get_loan_payments(self, loan_id: str) -> List[LoanPayment]:
        return find_payments(self.storage, loan_id=loan_id)

    def list_loans(
        self,
        client_id: Optional[str] = None,
        status: Optional[AccountStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 100
    ) -> Page:
        """
        Loans filtered by client, status and a name or national ID search

        The search matches the identity copied onto the loan at issue time and
        the client's current record, so renamed clients are still found.
        """
        filters: Dict[str, Any] = {}
        if client_id:
            filters['client_id'] = client_id
        if status:
            filters['status'] = status.value

        loans = [self._loan_from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        if search and search.strip():
            needle = search.strip().lower()
            current_matches = {
                client.id for client in self.client_manager.get_all_clients()
                if any(needle in value.lower() for value in (client.first_name, client.last_name, client.national_id))
            }
            loans = [
                loan for loan in loans
                if loan.client_id in current_matches
                or needle in loan.client_snapshot.first_name.lower()
                or needle in loan.client_snapshot.last_name.lower()
                or needle in loan.client_snapshot.national_id.lower()
            ]
        return paginate(self._newest_first(loans), page, limit)

    def list_clients(
        self,
        status: Optional[AccountStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 100
    ) -> Page:
        """
        Clients with loan aggregates; the status filter applies to the stored status
        """
        clients = self.client_manager.get_all_clients()
        if status:
            clients = [c for c in clients if c.status == status]
        if search and search.strip():
            clients = [c for c in clients if c.matches(search.strip())]

        result = paginate(clients, page, limit)
        result.items = [self.summarize_client(client) for client in result.items]
        return result

    def summarize_client(self, client: Client) -> ClientSummary:
        loans = self.get_client_loans(client.id)
        statuses = [loan.status for loan in loans]
        pending = statuses.count(AccountStatus.PENDING)
        delinquent = statuses.count(AccountStatus.DELINQUENT)
        return ClientSummary(
            client=client,
            status=aggregate_client_status(statuses, client.status),
            total_loans=len(loans),
            active_loans=pending + delinquent,
            paid_loans=statuses.count(AccountStatus.PAID),
            delinquent_loans=delinquent,
            outstanding_total=sum((loan.outstanding_balance for loan in loans), ZERO),
            principal_total=sum((loan.principal for loan in loans), ZERO)
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def update_loan_notes(self, loan_id: str, notes: Optional[str]) -> Loan:
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            loan.notes = (notes or "").strip() or None
            loan.touch()
            self._save_loan(loan)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_UPDATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"notes": loan.notes}
            )
        return loan

    def delete_loan(self, loan_id: str) -> Tuple[Loan, int]:
        """
        Remove a loan and its payments

        An unpaid loan no longer counts as active for its client, and the
        client's status is re-derived from the loans that remain.

        Returns:
            (deleted loan, number of payments removed)
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            payments_deleted = self._purge_loan(loan)

            client = self.client_manager.get_client(loan.client_id)
            if client:
                if loan.status != AccountStatus.PAID:
                    client.active_loan_count = max(0, client.active_loan_count - 1)
                    client.touch()
                    self.client_manager.save_client(client)
                statuses = [other.status for other in self.get_client_loans(client.id)]
                self.client_manager.set_status(client, aggregate_client_status(statuses, client.status))

        log_action(
            self.logger, "warning", f"Loan {loan.id} deleted with {payments_deleted} payment(s)",
            action="loan.delete", resource="loan", resource_id=loan.id
        )
        return loan, payments_deleted

    def delete_client(self, client_id: str, cascade: bool = False) -> ClientDeletion:
        """
        Delete a client, refusing while loans exist unless cascade is confirmed

        With cascade, payments go before their loan and loans before the
        client, all in one atomic block.

        Raises:
            NotFoundError: if the client does not exist
            ConflictError: if the client has loans and cascade is False
        """
        with self.storage.atomic():
            client = self.client_manager.require_client(client_id)
            loans = self.get_client_loans(client.id)

            if loans and not cascade:
                paid = sum(1 for loan in loans if loan.status == AccountStatus.PAID)
                raise ConflictError(
                    f"Client {client.full_name} has {len(loans) - paid} unpaid and {paid} paid "
                    f"loan(s); confirm cascade deletion to remove them too"
                )

            payments_deleted = 0
            for loan in loans:
                payments_deleted += self._purge_loan(loan)
            self.client_manager.remove_client(client)

        log_action(
            self.logger, "warning",
            f"Client {client.full_name} deleted with {len(loans)} loan(s) and {payments_deleted} payment(s)",
            action="client.delete", resource="client", resource_id=client.id
        )
        return ClientDeletion(client=client, loans_deleted=len(loans), payments_deleted=payments_deleted)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _settle_installment(self, loan: Loan) -> None:
        """Advance counters and balance by one installment and re-derive status"""
        loan.installments_paid += 1
        loan.outstanding_balance = max(ZERO, loan.outstanding_balance - loan.installment_amount)

        if loan.is_paid_off:
            # Flat figures can leave a sub-cent residue; the final installment settles it
            loan.outstanding_balance = ZERO
            loan.status = AccountStatus.PAID
        elif loan.status != AccountStatus.DELINQUENT:
            loan.status = AccountStatus.PENDING

        loan.touch()

    def _close_out_for_client(self, loan: Loan) -> None:
        client = self.client_manager.get_client(loan.client_id)
        if not client:
            return
        client.active_loan_count = max(0, client.active_loan_count - 1)
        client.touch()
        self.client_manager.save_client(client)
        self.client_manager.set_status(client, AccountStatus.PAID)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_PAID_OFF,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"client_id": client.id, "total_payable": loan.total_payable}
        )

    def _purge_loan(self, loan: Loan) -> int:
        payments = self.get_loan_payments(loan.id)
        for payment in payments:
            remove_payment(self.storage, payment)
        self.storage.delete(self.loans_table, loan.id)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_DELETED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"client_id": loan.client_id, "payments_deleted": len(payments)}
        )
        return len(payments)

    @staticmethod
    def _newest_first(loans: List[Loan]) -> List[Loan]:
        return sorted(loans, key=lambda loan: (loan.loan_date, loan.created_at), reverse=True)

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, self._loan_to_dict(loan))

    def _loan_to_dict(self, loan: Loan) -> Dict[str, Any]:
        result = loan.to_dict()
        result['client_snapshot'] = loan.client_snapshot.to_dict()
        result['status'] = loan.status.value
        result['loan_date'] = loan.loan_date.isoformat()
        result['due_date'] = loan.due_date.isoformat()
        return result

    def _loan_from_dict(self, data: Dict[str, Any]) -> Loan:
        return Loan(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            client_id=data['client_id'],
            client_snapshot=ClientSnapshot.from_dict(data['client_snapshot']),
            principal=Decimal(data['principal']),
            monthly_rate=Decimal(data['monthly_rate']),
            installment_count=data['installment_count'],
            principal_portion=Decimal(data['principal_portion']),
            interest_portion=Decimal(data['interest_portion']),
            levy_portion=Decimal(data['levy_portion']),
            installment_amount=Decimal(data['installment_amount']),
            total_interest=Decimal(data['total_interest']),
            total_levy=Decimal(data['total_levy']),
            total_payable=Decimal(data['total_payable']),
            outstanding_balance=Decimal(data['outstanding_balance']),
            loan_date=date.fromisoformat(data['loan_date']),
            due_date=date.fromisoformat(data['due_date']),
            status=AccountStatus(data['status']),
            installments_paid=data.get('installments_paid', 0),
            notes=data.get('notes')
        )
