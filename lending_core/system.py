"""
Lending system container

Wires storage, the audit trail and the three managers together so the API
layer and scripts share one set of components.
"""

from decimal import Decimal
from typing import Optional

from .storage import StorageInterface, create_storage
from .audit import AuditTrail
from .clients import ClientManager
from .loans import LoanLedger
from .payments import PaymentRecorder
from .config import LendingConfig, get_config
from .money import to_decimal


class LendingSystem:
    """Lending system with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[LendingConfig] = None):
        self.config = config or get_config()

        # Initialize storage
        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.sqlite_path)
        self.storage = storage

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.client_manager = ClientManager(self.storage, self.audit_trail)
        self.loan_ledger = LoanLedger(
            self.storage, self.client_manager, self.audit_trail,
            payment_tolerance=self.payment_tolerance
        )
        self.payment_recorder = PaymentRecorder(self.storage, self.loan_ledger, self.audit_trail)

    @property
    def payment_tolerance(self) -> Decimal:
        return to_decimal(self.config.payment_tolerance, "payment_tolerance")

    def close(self) -> None:
        self.storage.close()
