"""Custom exceptions for the storefront catalog application."""


class CatalogError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(CatalogError):
    """Raised for malformed, missing or out-of-range input (user-correctable)."""
    def __init__(self, message="Validation Error", errors=None):
        super().__init__(message, 400)
        self.errors = list(errors or [])

    def to_dict(self):
        rv = super().to_dict()
        if self.errors:
            rv['errors'] = self.errors
        return rv


class NotFoundError(CatalogError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class StorageError(CatalogError):
    """Raised when an image file cannot be written or removed."""
    def __init__(self, message="Storage error", path=None, cause=None):
        super().__init__(message, 500)
        self.path = path
        self.cause = cause


class DatabaseError(CatalogError):
    """Raised when the persistence layer fails."""
    def __init__(self, message="Database error", cause=None):
        super().__init__(message, 500)
        self.cause = cause


class ForbiddenError(CatalogError):
    """Raised when a caller lacks permission for an action."""
    def __init__(self, message="Forbidden"):
        super().__init__(message, 403)


class SchemaValidationError(Exception):
    """
    Raised by the repository when a record violates field constraints.

    Carries a {field: message} mapping; the write service flattens it into a
    ValidationError for callers.
    """
    def __init__(self, field_errors):
        self.field_errors = dict(field_errors)
        super().__init__('; '.join(f'{k}: {v}' for k, v in self.field_errors.items()))

    def messages(self):
        return list(self.field_errors.values())
