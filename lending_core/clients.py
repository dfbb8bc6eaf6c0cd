"""
Client Registry Module

Manages client profiles: registration with a unique national ID, contact
updates, lookup, and the status/counter fields that loan activity drives.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import uuid
import re

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .exceptions import ValidationError, NotFoundError, ConflictError, DuplicateRecordError
from .logging_config import get_logger, log_action
from .status import AccountStatus


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


@dataclass(frozen=True)
class ClientSnapshot:
    """Identity fields copied onto a loan when it is issued"""
    first_name: str
    last_name: str
    national_id: str
    phone: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> Dict[str, str]:
        return {
            'first_name': self.first_name,
            'last_name': self.last_name,
            'national_id': self.national_id,
            'phone': self.phone
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'ClientSnapshot':
        return cls(
            first_name=data['first_name'],
            last_name=data['last_name'],
            national_id=data['national_id'],
            phone=data['phone']
        )


@dataclass
class Client(StorageRecord):
    """
    Borrower profile
    """
    first_name: str
    last_name: str
    national_id: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    status: AccountStatus = AccountStatus.PENDING
    active_loan_count: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def registered_at(self) -> datetime:
        return self.created_at

    def snapshot(self) -> ClientSnapshot:
        return ClientSnapshot(
            first_name=self.first_name,
            last_name=self.last_name,
            national_id=self.national_id,
            phone=self.phone
        )

    def matches(self, search: str) -> bool:
        """Case-insensitive match on names, national ID or phone"""
        needle = search.lower()
        return any(
            needle in (value or "").lower()
            for value in (self.first_name, self.last_name, self.national_id, self.phone)
        )


def _required(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _clean_email(email: Optional[str]) -> Optional[str]:
    email = _optional(email)
    if email is None:
        return None
    email = email.lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")
    return email


class ClientManager:
    """
    Registers clients and persists their profile, status and loan counter
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "clients"
        # One row per national ID; the primary key makes registration race-free
        self.national_id_table = "client_national_ids"
        self.logger = get_logger("lending.clients")

    def create_client(
        self,
        first_name: str,
        last_name: str,
        national_id: str,
        phone: str,
        email: Optional[str] = None,
        address: Optional[str] = None
    ) -> Client:
        """
        Register a new client

        Raises:
            ValidationError: if a required field is missing or the email is malformed
            ConflictError: if another client already has this national ID
        """
        first_name = _required(first_name, "first_name")
        last_name = _required(last_name, "last_name")
        national_id = _required(national_id, "national_id")
        phone = _required(phone, "phone")
        email = _clean_email(email)
        address = _optional(address)

        now = datetime.now(timezone.utc)
        client = Client(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            first_name=first_name,
            last_name=last_name,
            national_id=national_id,
            phone=phone,
            email=email,
            address=address
        )

        with self.storage.atomic():
            self._claim_national_id(national_id, client.id)
            self.save_client(client)
            self.audit_trail.log_event(
                event_type=AuditEventType.CLIENT_CREATED,
                entity_type="client",
                entity_id=client.id,
                metadata={"full_name": client.full_name, "national_id": national_id}
            )

        log_action(
            self.logger, "info", f"Client registered: {client.full_name}",
            action="client.create", resource="client", resource_id=client.id
        )
        return client

    def get_client(self, client_id: str) -> Optional[Client]:
        """Get client by ID"""
        data = self.storage.load(self.table_name, client_id)
        if data:
            return self._client_from_dict(data)
        return None

    def require_client(self, client_id: str) -> Client:
        client = self.get_client(client_id)
        if not client:
            raise NotFoundError("client", client_id)
        return client

    def get_client_by_national_id(self, national_id: str) -> Optional[Client]:
        entry = self.storage.load(self.national_id_table, national_id.strip())
        if entry:
            return self.get_client(entry['client_id'])
        return None

    def get_all_clients(self) -> List[Client]:
        """All clients, newest registration first"""
        clients = [self._client_from_dict(data) for data in self.storage.load_all(self.table_name)]
        clients.sort(key=lambda c: c.created_at, reverse=True)
        return clients

    def update_client(
        self,
        client_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        national_id: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None
    ) -> Client:
        """
        Update identity and contact fields.

        Status is not editable here; it follows the client's loans. Loan
        snapshots keep the identity fields they were issued with.
        """
        with self.storage.atomic():
            client = self.require_client(client_id)
            old_data = {
                "first_name": client.first_name,
                "last_name": client.last_name,
                "national_id": client.national_id,
                "phone": client.phone
            }

            if first_name is not None:
                client.first_name = _required(first_name, "first_name")
            if last_name is not None:
                client.last_name = _required(last_name, "last_name")
            if phone is not None:
                client.phone = _required(phone, "phone")
            if email is not None:
                client.email = _clean_email(email)
            if address is not None:
                client.address = _optional(address)
            if national_id is not None:
                national_id = _required(national_id, "national_id")
                if national_id != client.national_id:
                    self._claim_national_id(national_id, client.id)
                    self.storage.delete(self.national_id_table, client.national_id)
                    client.national_id = national_id

            client.touch()
            self.save_client(client)
            self.audit_trail.log_event(
                event_type=AuditEventType.CLIENT_UPDATED,
                entity_type="client",
                entity_id=client.id,
                metadata={
                    "old_data": old_data,
                    "new_data": {
                        "first_name": client.first_name,
                        "last_name": client.last_name,
                        "national_id": client.national_id,
                        "phone": client.phone
                    }
                }
            )

        return client

    def set_status(self, client: Client, status: AccountStatus) -> Client:
        """Persist a loan-driven status change; callers hold the transaction"""
        if client.status != status:
            old_status = client.status
            client.status = status
            client.touch()
            self.save_client(client)
            self.audit_trail.log_event(
                event_type=AuditEventType.CLIENT_STATUS_CHANGED,
                entity_type="client",
                entity_id=client.id,
                metadata={"old_status": old_status, "new_status": status}
            )
        return client

    def save_client(self, client: Client) -> None:
        self.storage.save(self.table_name, client.id, self._client_to_dict(client))

    def remove_client(self, client: Client) -> None:
        """Delete the client row and release its national ID"""
        self.storage.delete(self.table_name, client.id)
        self.storage.delete(self.national_id_table, client.national_id)
        self.audit_trail.log_event(
            event_type=AuditEventType.CLIENT_DELETED,
            entity_type="client",
            entity_id=client.id,
            metadata={"national_id": client.national_id}
        )

    def _claim_national_id(self, national_id: str, client_id: str) -> None:
        try:
            self.storage.insert(self.national_id_table, national_id, {"client_id": client_id})
        except DuplicateRecordError:
            raise ConflictError(f"A client with national ID {national_id} already exists") from None

    def _client_to_dict(self, client: Client) -> Dict[str, Any]:
        result = client.to_dict()
        result['status'] = client.status.value
        return result

    def _client_from_dict(self, data: Dict[str, Any]) -> Client:
        return Client(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            first_name=data['first_name'],
            last_name=data['last_name'],
            national_id=data['national_id'],
            phone=data['phone'],
            email=data.get('email'),
            address=data.get('address'),
            status=AccountStatus(data.get('status', AccountStatus.PENDING.value)),
            active_loan_count=data.get('active_loan_count', 0)
        )
