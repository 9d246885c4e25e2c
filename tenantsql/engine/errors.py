# TenantSQL - Error Taxonomy
# ==========================
"""
Error Taxonomy
==============
Expected outcomes (template not found, missing parameters, rule violations)
are returned as values carrying an ErrorCode. Exceptions are reserved for
caller contract violations and cancellation.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Codes attached to failed or non-executable generation results."""
    TEMPLATE_NOT_FOUND = "TemplateNotFound"
    PARAMETER_EXTRACTION_FAILED = "ParameterExtractionFailed"
    REQUIRED_PARAMETER_MISSING = "RequiredParameterMissing"
    PARAMETER_TYPE_MISMATCH = "ParameterTypeMismatch"
    SECURITY_VIOLATION = "SecurityViolation"
    TENANT_ISOLATION_VIOLATION = "TenantIsolationViolation"
    OPERATION_POLICY_VIOLATION = "OperationPolicyViolation"
    OPTIMIZATION_UNAVAILABLE = "OptimizationUnavailable"
    CANCELLED = "Cancelled"


class SqlEngineError(Exception):
    """Base class for engine exceptions."""
    pass


class ContractViolationError(SqlEngineError, ValueError):
    """Raised when a caller breaks an API contract (null context, empty id)."""
    pass


class OperationCancelledError(SqlEngineError):
    """Raised when a cancellation signal is observed mid-operation."""

    def __init__(self, message: str = "Operation cancelled", stage=None):
        self.stage = stage  # PipelineStage that was about to run, if known
        super().__init__(message)


class TemplateValidationError(SqlEngineError):
    """Raised when a persisted template record cannot be loaded."""
    pass


class ParameterCoercionError(SqlEngineError):
    """Raised when a value cannot be converted to its declared type."""

    def __init__(self, name: str, value, target_type: str, reason: str = ""):
        self.name = name
        self.value = value
        self.target_type = target_type
        message = f"Cannot convert parameter '{name}' to {target_type}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


def require(value, name: str):
    """Raise ContractViolationError if a required argument is None or blank."""
    if value is None:
        raise ContractViolationError(f"{name} is required")
    if isinstance(value, str) and not value.strip():
        raise ContractViolationError(f"{name} must not be empty")
    return value
