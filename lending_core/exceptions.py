"""
Exception Hierarchy Module

Every error raised by the lending core derives from LendingError so the HTTP
boundary can translate it into the response envelope with one handler.
"""


class LendingError(Exception):
    """Base exception for all lending core errors"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LendingError):
    """Raised when input is missing or out of range"""

    status_code = 400


class NotFoundError(LendingError):
    """Raised when a referenced client, loan or payment does not exist"""

    status_code = 404

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConflictError(LendingError):
    """Raised when a unique key is already taken"""

    status_code = 409


class InternalError(LendingError):
    """Raised when persistence fails; callers only see a generic message"""

    status_code = 500


class StorageError(InternalError):
    """Raised by storage backends on unrecoverable I/O failures"""


class DuplicateRecordError(StorageError):
    """Raised by StorageInterface.insert when the key already exists"""

    def __init__(self, table: str, record_id: str):
        super().__init__(f"Record {record_id} already exists in {table}")
        self.table = table
        self.record_id = record_id
