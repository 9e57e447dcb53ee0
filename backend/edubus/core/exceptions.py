class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when input is structurally invalid (times, timezones, rules, ranges)."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ConflictError(AppError):
    """Raised when a request collides with persisted state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class NotFoundError(AppError):
    """Raised when a requested resource is missing, deleted or inactive."""
    def __init__(self, resource_type: str, resource_id: str, reason: str = "not found"):
        super().__init__(
            f"{resource_type} with id {resource_id} {reason}",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )
