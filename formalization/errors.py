"""Exception hierarchy for credit formalization.

Business-rule errors carry enough context (entity, key, states) for the HTTP
layer to explain the rejection. Infrastructure failures are wrapped in
PersistenceError with the operation that was being attempted.
"""

from typing import Any


class FormalizationError(Exception):
    """Base exception for all formalization errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def context(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "message": self.message, **self.context()}


class NotFoundError(FormalizationError):
    """Raised when an entity id or business key does not resolve."""

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")

    def context(self) -> dict[str, Any]:
        return {"entity": self.entity, "key": str(self.key)}


class AlreadyExistsError(FormalizationError):
    """Raised when a request id or contract number is already taken."""

    def __init__(self, entity: str, field: str, value: Any):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} already exists for {field}={value}")

    def context(self) -> dict[str, Any]:
        return {"entity": self.entity, "field": self.field, "value": str(self.value)}


class InvalidStateError(FormalizationError):
    """Raised when a transition is not allowed from the current state."""

    def __init__(self, entity: str, entity_id: Any, current: str, target: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move {entity} {entity_id} from '{current}' to '{target}'"
        )

    def context(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "id": self.entity_id,
            "current_state": self.current,
            "target_state": self.target,
        }


class NotSignedError(FormalizationError):
    """Raised when disbursement is approved for a contract without a signed file."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} has no signed document")

    def context(self) -> dict[str, Any]:
        return {"entity": self.entity, "id": self.entity_id}


class PendingNotesError(FormalizationError):
    """Raised when a credit contract is paid off while notes remain open."""

    def __init__(self, contract_id: int, pending_count: int):
        self.contract_id = contract_id
        self.pending_count = pending_count
        super().__init__(
            f"Credit contract {contract_id} still has {pending_count} unpaid note(s)"
        )

    def context(self) -> dict[str, Any]:
        return {"contract_id": self.contract_id, "pending_count": self.pending_count}


class ScheduleConflictError(FormalizationError):
    """Raised when notes already exist for the contract being scheduled."""

    def __init__(self, contract_id: int):
        self.contract_id = contract_id
        super().__init__(f"Notes already generated for credit contract {contract_id}")

    def context(self) -> dict[str, Any]:
        return {"contract_id": self.contract_id}


class StaleVersionError(FormalizationError):
    """Raised when a write targets a version that is no longer current."""

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} was modified concurrently")

    def context(self) -> dict[str, Any]:
        return {"entity": self.entity, "id": self.entity_id}


class OriginationError(FormalizationError):
    """Raised when the origination service cannot be reached or answers badly."""

    def __init__(self, request_id: int, detail: str):
        self.request_id = request_id
        self.detail = detail
        super().__init__(f"Origination lookup failed for request {request_id}: {detail}")

    def context(self) -> dict[str, Any]:
        return {"request_id": self.request_id}


class InvalidTermsError(FormalizationError):
    """Raised when financing terms cannot produce a valid schedule."""

    def __init__(self, contract_id: int | None, detail: str):
        self.contract_id = contract_id
        self.detail = detail
        super().__init__(f"Invalid financing terms for credit contract {contract_id}: {detail}")

    def context(self) -> dict[str, Any]:
        return {"contract_id": self.contract_id}


class PersistenceError(FormalizationError):
    """Raised when the backing store fails during an operation."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Storage failure while attempting to {operation}")

    def context(self) -> dict[str, Any]:
        return {"operation": self.operation}
