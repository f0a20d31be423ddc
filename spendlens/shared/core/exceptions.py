from typing import Optional, Dict, Any

class SpendLensException(Exception):
    """Base exception for all SpendLens errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

class InvalidTagFilterError(SpendLensException):
    """Raised when a tag filter is built without the parameters its mode requires."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="invalid_tag_filter", details=details)

class TagResolutionError(SpendLensException):
    """Raised by tag resolvers when a lookup batch fails transiently."""
    def __init__(self, message: str, code: str = "tag_resolution_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)

class BudgetValidationError(SpendLensException):
    """Raised when submitted budget cells cannot be parsed."""
    def __init__(self, errors: list[str]):
        message = " ".join(errors[:10]) or "Invalid budget payload."
        super().__init__(
            message,
            code="budget_validation_error",
            details={"errors": list(errors), "error_count": len(errors)},
        )
        self.errors = list(errors)
