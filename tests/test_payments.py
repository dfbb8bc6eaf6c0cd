"""
Test suite for the payment recorder
"""

import pytest
from dataclasses import replace
from decimal import Decimal
from datetime import date

from lending_core.storage import InMemoryStorage, SQLiteStorage
from lending_core.audit import AuditTrail, AuditEventType
from lending_core.clients import ClientManager
from lending_core.loans import LoanLedger
from lending_core.payments import (
    PaymentRecorder, RecordPaymentCommand, PaymentMethod, parse_payment_method,
    installment_is_paid, insert_payment
)
from lending_core.exceptions import ValidationError, NotFoundError, ConflictError
from lending_core.status import AccountStatus


class TestPaymentRecorder:
    """Test payment submission, history and deletion"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.client_manager = ClientManager(self.storage, self.audit_trail)
        self.ledger = LoanLedger(self.storage, self.client_manager, self.audit_trail)
        self.recorder = PaymentRecorder(self.storage, self.ledger, self.audit_trail)

        self.client = self.client_manager.create_client("Ana", "Gomez", "1001", "3001234567")
        self.loan = self.ledger.create_loan(self.client.id, 1200, 2, 3)

    def _pay(self, number, amount=None, **kwargs):
        command = RecordPaymentCommand(
            loan_id=self.loan.id,
            installment_number=number,
            amount_paid=amount if amount is not None else self.loan.installment_amount,
            **kwargs
        )
        return self.recorder.record_payment(command)

    def test_record_payment(self):
        payment, loan = self._pay(1, "425.70", payment_date=date(2024, 2, 1), method=PaymentMethod.CARD)

        assert payment.installment_number == 1
        assert payment.payment_date == date(2024, 2, 1)
        assert payment.method == PaymentMethod.CARD
        assert loan.installments_paid == 1
        assert installment_is_paid(self.storage, self.loan.id, 1)
        assert self.recorder.get_payment(payment.id) == payment

    def test_installment_number_from_text(self):
        payment, _ = self._pay("2")
        assert payment.installment_number == 2

    @pytest.mark.parametrize("number", [0, -1, 1.5, "abc", None])
    def test_invalid_installment_number(self, number):
        with pytest.raises(ValidationError):
            self._pay(number)

    @pytest.mark.parametrize("amount", [0, -10, "", "abc"])
    def test_invalid_amount(self, amount):
        with pytest.raises(ValidationError):
            self._pay(1, amount)

    def test_missing_loan_id(self):
        with pytest.raises(ValidationError):
            self.recorder.record_payment(RecordPaymentCommand(loan_id="  ", installment_number=1, amount_paid=10))

    def test_unknown_loan(self):
        with pytest.raises(NotFoundError):
            self.recorder.record_payment(RecordPaymentCommand(loan_id="nope", installment_number=1, amount_paid=10))

    def test_duplicate_is_conflict(self):
        self._pay(1)
        with pytest.raises(ConflictError):
            self._pay(1)

    def test_installment_key_rejects_second_payment(self):
        payment, _ = self._pay(1)
        duplicate = replace(payment, id="second-payment")

        with pytest.raises(ConflictError):
            with self.storage.atomic():
                insert_payment(self.storage, duplicate)

        assert self.recorder.get_payment("second-payment") is None
        assert self.recorder.list_payments(loan_id=self.loan.id).total == 1

    def test_list_payments(self):
        other_client = self.client_manager.create_client("Luis", "Perez", "2002", "3110000000")
        other_loan = self.ledger.create_loan(other_client.id, 500, 1, 2)

        self._pay(1, payment_date=date(2024, 1, 1))
        self._pay(2, payment_date=date(2024, 2, 1))
        self.recorder.record_payment(RecordPaymentCommand(
            loan_id=other_loan.id, installment_number=1, amount_paid=other_loan.installment_amount
        ))

        page = self.recorder.list_payments(loan_id=self.loan.id)
        assert page.total == 2
        assert [p.installment_number for p in page.items] == [2, 1]

        assert self.recorder.list_payments(client_id=other_client.id).total == 1
        assert self.recorder.list_payments().total == 3
        assert len(self.recorder.list_payments(limit=1).items) == 1

    def test_delete_payment_frees_installment(self):
        payment, _ = self._pay(1)

        deleted = self.recorder.delete_payment(payment.id)

        assert deleted.id == payment.id
        assert self.recorder.get_payment(payment.id) is None
        assert not installment_is_paid(self.storage, self.loan.id, 1)
        assert self.audit_trail.get_events_by_type(AuditEventType.PAYMENT_DELETED)

        # Loan counters are not reversed
        loan = self.ledger.get_loan(self.loan.id)
        assert loan.installments_paid == 1

        _, loan = self._pay(1)
        assert loan.installments_paid == 2

    def test_delete_missing_payment(self):
        with pytest.raises(NotFoundError):
            self.recorder.delete_payment("nope")

    def test_full_payoff_through_recorder(self):
        for number in (1, 2, 3):
            _, loan = self._pay(number)

        assert loan.status == AccountStatus.PAID
        assert loan.outstanding_balance == Decimal('0')
        assert self.client_manager.get_client(self.client.id).status == AccountStatus.PAID


class TestPaymentsOnSQLite:
    """The unique installment key holds on the SQLite backend"""

    def setup_method(self):
        self.storage = SQLiteStorage(":memory:")
        self.audit_trail = AuditTrail(self.storage)
        self.client_manager = ClientManager(self.storage, self.audit_trail)
        self.ledger = LoanLedger(self.storage, self.client_manager, self.audit_trail)
        self.recorder = PaymentRecorder(self.storage, self.ledger, self.audit_trail)

    def teardown_method(self):
        self.storage.close()

    def test_duplicate_rolls_back(self):
        client = self.client_manager.create_client("Ana", "Gomez", "1001", "3001234567")
        loan = self.ledger.create_loan(client.id, 1200, 2, 2)
        command = RecordPaymentCommand(loan_id=loan.id, installment_number=1, amount_paid=loan.installment_amount)

        self.recorder.record_payment(command)
        with pytest.raises(ConflictError):
            self.recorder.record_payment(command)

        assert self.ledger.get_loan(loan.id).installments_paid == 1
        assert self.recorder.list_payments(loan_id=loan.id).total == 1
        assert self.audit_trail.verify_integrity()["valid"]

    def test_installment_key_conflict_rolls_back(self, monkeypatch):
        client = self.client_manager.create_client("Ana", "Gomez", "1001", "3001234567")
        loan = self.ledger.create_loan(client.id, 1200, 2, 2)
        command = RecordPaymentCommand(loan_id=loan.id, installment_number=1, amount_paid=loan.installment_amount)
        self.recorder.record_payment(command)
        events = len(self.audit_trail.get_events_for_entity("loan", loan.id))

        # Two submissions racing past the paid check both reach the insert
        monkeypatch.setattr("lending_core.loans.installment_is_paid", lambda *args: False)
        with pytest.raises(ConflictError):
            self.recorder.record_payment(command)

        assert self.ledger.get_loan(loan.id).installments_paid == 1
        assert self.recorder.list_payments(loan_id=loan.id).total == 1
        assert len(self.audit_trail.get_events_for_entity("loan", loan.id)) == events
        assert self.audit_trail.verify_integrity()["valid"]


class TestParsePaymentMethod:

    def test_default_is_cash(self):
        assert parse_payment_method(None) == PaymentMethod.CASH
        assert parse_payment_method("") == PaymentMethod.CASH

    def test_known_methods(self):
        assert parse_payment_method("Transfer") == PaymentMethod.TRANSFER
        assert parse_payment_method("check") == PaymentMethod.CHECK

    def test_unknown_method(self):
        with pytest.raises(ValidationError):
            parse_payment_method("bitcoin")
