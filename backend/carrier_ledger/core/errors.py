"""Domain errors raised by the settlement services.

Every error carries a machine readable ``error_code`` and a ``details`` dict
(entity ids, current state, offending ids). Routers never catch them: the
handler registered in ``carrier_ledger.main`` renders them with the HTTP
status declared on the class.
"""

from typing import Any


class SettlementError(Exception):
    """Base class for all carrier ledger domain errors."""

    status_code = 400
    error_code = "settlement_error"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(SettlementError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, entity: str, entity_id: Any, **kwargs: Any):
        details = {"entity": entity, "id": _jsonable(entity_id)}
        details.update(kwargs.pop("details", None) or {})
        if isinstance(entity_id, (list, tuple, set)):
            message = f"{entity} not found: " + ", ".join(str(i) for i in entity_id)
        else:
            message = f"{entity} {entity_id} not found"
        super().__init__(message, details=details, **kwargs)


class InvalidStateError(SettlementError):
    """The entity exists but its current state forbids the operation."""

    status_code = 409
    error_code = "invalid_state"

    def __init__(self, message: str, current_state: str | None = None, **kwargs: Any):
        details = {"current_state": current_state}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(message, details=details, **kwargs)
        self.current_state = current_state


class ConflictError(SettlementError):
    """A uniqueness or double-processing rule would be violated."""

    status_code = 409
    error_code = "conflict"


class ValidationError(SettlementError):
    status_code = 422
    error_code = "validation_error"


class ConcurrencyTimeoutError(SettlementError):
    """A lock could not be acquired in time. Nothing was committed; retry is safe."""

    status_code = 503
    error_code = "concurrency_timeout"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    return str(value) if value is not None else None
