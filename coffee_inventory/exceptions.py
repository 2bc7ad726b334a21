class InventoryError(Exception):
    """Base exception for Coffee Inventory errors."""

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in the Coffee Inventory system"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigError(InventoryError):
    """Exception raised for configuration errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Configuration error"
        super().__init__(message, code, details)


class DatabaseError(InventoryError):
    """Exception raised for database-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Database error"
        super().__init__(message, code, details)


class DuplicateRecordError(DatabaseError):
    """Exception raised when a write violates a unique constraint."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Duplicate record"
        super().__init__(message, code, details)


class NotFoundError(DatabaseError):
    """Exception raised when a row to update does not exist."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Record not found"
        super().__init__(message, code, details)

class SourceLinkError(DatabaseError):
    """Exception raised when a lot cannot be linked to a batch.

    Nothing is written when this is raised: the batch totals are left
    as they were before the attempt.
    """

    def __init__(self, message=None, code=None, details=None):
        message = message or "Failed to link coffee record to batch"
        super().__init__(message, code, details)


class ValidationError(InventoryError):
    """Exception raised for data validation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Validation error"
        super().__init__(message, code, details)


class BatchProcessError(InventoryError):
    """Exception raised for batch allocation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Batch process error"
        super().__init__(message, code, details)


class InsufficientStockError(InventoryError):
    """Exception raised when a sale asks for more coffee than the batches hold."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Insufficient stock"
        super().__init__(message, code, details)
