class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when operator input is unusable (e.g. an empty rejection message)."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ConflictError(AppError):
    """Raised when a placement would double-book a group, instructor or classroom."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class PermissionDeniedError(AppError):
    """Raised when the acting user lacks scope for a transition."""
    def __init__(self, message: str = "Insufficient permissions", details: dict = None):
        super().__init__(message, status_code=403, details=details)

class StateError(AppError):
    """Raised for a transition out of a terminal or incompatible status."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class NotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class TransientIOError(AppError):
    """Raised when a durable-store round trip fails and local changes were rolled back."""
    def __init__(self, message: str = "Could not save your change. Please try again.", details: dict = None):
        super().__init__(message, status_code=503, details=details)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
