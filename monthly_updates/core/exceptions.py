"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once (see ``monthly_updates.blueprints.register_error_handlers``) and
get consistent HTTP status codes everywhere.

Usage:
    from monthly_updates.core.exceptions import NotFoundError, LockedStateViolation

    raise NotFoundError(resource="ReportingPeriod", resource_id=42)
    raise LockedStateViolation("ReportingPeriod", 42, "Cannot modify locked reporting period")
"""


class NotFoundError(Exception):
    """Raised when a referenced period, project or child row does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable model name (e.g. "ReportingPeriod", "Project").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed JSON but violates a business rule.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique row.

    The canonical case is a rollover whose target (start, end) period
    already exists: the caller is out of sync with server state and may
    retry after re-reading the preview. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field group) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class LockedStateViolation(Exception):
    """Raised on any write against a locked reporting period.

    Covers edits to a locked period's own dates/name, deleting it, locking
    it twice, and writing period-scoped rows (ProjectData, next steps,
    comments) into it. Not retryable. Maps to HTTP 423.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " is locked"
        super().__init__(message)


class TransactionAborted(Exception):
    """Raised when a multi-step write failed and was rolled back in full.

    The original cause is chained (``raise ... from exc``) for logging;
    only the operation name reaches the HTTP response. Callers re-issue
    the whole operation. Maps to HTTP 500.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed and was rolled back")
