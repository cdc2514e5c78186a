"""Domain exceptions.

Every failure the core reports to its callers is one of these kinds. The
transport layer maps them to HTTP status codes; the core never does.
"""


class TaskflowError(Exception):
    """Base exception for task and project rule failures."""

    def __init__(self, message: str, code: str = "TASKFLOW_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(TaskflowError):
    """Malformed or missing input.

    Raised for bad identifiers, missing required fields, an out-of-range
    priority bucket, an unknown status value or a missing due date.
    """

    def __init__(self, message: str):
        super().__init__(message=message, code="VALIDATION_ERROR")


class AuthorizationError(TaskflowError):
    """The acting user is not allowed to perform the operation."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message=message, code="FORBIDDEN")


class NotFoundError(TaskflowError):
    """A referenced task, project or user does not exist."""

    def __init__(self, message: str):
        super().__init__(message=message, code="NOT_FOUND")


class ConflictError(TaskflowError):
    """The request breaks a business rule given the resource's current state."""

    def __init__(self, message: str):
        super().__init__(message=message, code="CONFLICT")


class StoreError(TaskflowError):
    """The persistence collaborator failed.

    Propagated verbatim to the caller and never retried.
    """

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message=message, code="STORE_ERROR")
