"""
Custom Exception Hierarchy for poolshift

This module provides the exception hierarchy used across the migration
engine. Every error carries structured context so a caller (or an operator
reading the logs) can tell which pool, which generation and which phase of
the migration it belongs to.

Taxonomy:
- PoolClientError / PoolNotFoundError: remote-call failures
- ConvergenceTimeoutError: a convergence check exceeded its deadline
- SpecValidationError and friends: rejected before any remote call
- MigrationLockError: the optional per-pool lock could not be taken
"""

from typing import Any, Dict, Optional


class PoolShiftError(Exception):
    """
    Base exception class for all poolshift errors.

    Provides structured error information including context, error codes,
    and optional recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
        }


# Pool management API errors
class PoolClientError(PoolShiftError):
    """Raised when a call to the pool-management API fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if status_code is not None:
            context["status_code"] = status_code
        if namespace:
            context["namespace"] = namespace
        if name:
            context["name"] = name
        kwargs["context"] = context
        kwargs.setdefault("error_code", "POOL_API_ERROR")
        super().__init__(message, **kwargs)
        self.status_code = status_code


class PoolNotFoundError(PoolClientError):
    """Raised when the requested pool does not exist."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("status_code", 404)
        kwargs.setdefault("error_code", "POOL_NOT_FOUND")
        super().__init__(message, **kwargs)


# Convergence errors
class ConvergenceTimeoutError(PoolShiftError):
    """Raised when a polled condition does not succeed before its deadline."""

    def __init__(
        self,
        message: str,
        interval: Optional[float] = None,
        deadline: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if interval is not None:
            context["interval"] = interval
        if deadline is not None:
            context["deadline"] = deadline
        kwargs["context"] = context
        kwargs.setdefault("error_code", "CONVERGENCE_DEADLINE_EXCEEDED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Inspect worker health in both pools; re-run the update to resume "
            "or delete the temporary pool manually",
        )
        super().__init__(message, **kwargs)
        self.interval = interval
        self.deadline = deadline


class MigrationCancelled(PoolShiftError):
    """Raised when a migration is stopped through its cancel event."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "MIGRATION_CANCELLED")
        super().__init__(message, **kwargs)


class MigrationDivergedError(PoolShiftError):
    """Raised when a pool's declared target was changed by another actor mid-migration."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "MIGRATION_DIVERGED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Stop the other actor scaling these pools and re-run the update",
        )
        super().__init__(message, **kwargs)


# Validation errors
class SpecValidationError(PoolShiftError):
    """Raised when a declarative pool specification is invalid."""

    def __init__(
        self, message: str, field: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if field:
            context["field"] = field
        kwargs["context"] = context
        kwargs.setdefault("error_code", "SPEC_INVALID")
        super().__init__(message, **kwargs)


class ResourceQuantityError(SpecValidationError):
    """Raised when a cpu/memory quantity string cannot be parsed."""

    def __init__(
        self, message: str, quantity: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if quantity is not None:
            context["quantity"] = quantity
        kwargs["context"] = context
        kwargs.setdefault("error_code", "RESOURCE_QUANTITY_INVALID")
        kwargs.setdefault(
            "recovery_suggestion",
            "Use a quantity such as '250m', '0.5', '128Mi' or '1G'",
        )
        super().__init__(message, **kwargs)


class BlankGenerationError(SpecValidationError):
    """Raised when a pool would be written without a generation id."""

    def __init__(self, message: str = "generation must not be blank", **kwargs: Any):
        kwargs.setdefault("error_code", "GENERATION_BLANK")
        super().__init__(message, **kwargs)


# Locking errors
class MigrationLockError(PoolShiftError):
    """Raised when the per-pool migration lock cannot be acquired."""

    def __init__(self, message: str, pool: Optional[str] = None, **kwargs: Any):
        context = kwargs.get("context", {})
        if pool:
            context["pool"] = pool
        kwargs["context"] = context
        kwargs.setdefault("error_code", "MIGRATION_LOCK_FAILED")
        super().__init__(message, **kwargs)


class MigrationLockTimeout(MigrationLockError):
    """Raised when lock acquisition times out."""

    pass


# Configuration errors
class ConfigurationError(PoolShiftError):
    """Raised when configuration is invalid or cannot be loaded."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "CONFIG_INVALID")
        super().__init__(message, **kwargs)


__all__ = [
    "BlankGenerationError",
    "ConfigurationError",
    "ConvergenceTimeoutError",
    "MigrationCancelled",
    "MigrationDivergedError",
    "MigrationLockError",
    "MigrationLockTimeout",
    "PoolClientError",
    "PoolNotFoundError",
    "PoolShiftError",
    "ResourceQuantityError",
    "SpecValidationError",
]
