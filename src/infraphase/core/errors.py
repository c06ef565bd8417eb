"""
Unified error handling for infraphase.

This module provides the error taxonomy used by the orchestrator, standardized
exit codes, and error reporting for CLI commands.

Exit Codes:
- 0: Success
- 1: Partial failure (all resources provisioned, some secret writes failed)
- 2: Aborted (a provisioning phase failed)
- 10: Configuration error
- 11: Provider error (external service failure)
- 12: Validation error
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    PARTIAL_FAILURE = 1
    ABORTED = 2
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    VALIDATION_ERROR = 12
    UNKNOWN_ERROR = 127


class InfraphaseError(Exception):
    """Base exception for infraphase errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(InfraphaseError):
    """Raised for settings, plan-file or provider-wiring errors."""

    exit_code = ExitCode.CONFIG_ERROR


class ValidationError(InfraphaseError):
    """Raised for validation failures."""

    exit_code = ExitCode.VALIDATION_ERROR


class PlanValidationError(ValidationError):
    """Raised when a provisioning plan violates its structural invariants."""


class InvalidStatusTransition(InfraphaseError):
    """Raised when a task status would move backwards or skip a state."""


class ProvisioningError(InfraphaseError):
    """Base class for failures of a single resource task."""

    exit_code = ExitCode.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        task_id: str | None = None,
    ):
        super().__init__(message, details)
        self.task_id = task_id


class PermanentConfigurationError(ProvisioningError):
    """Invalid task parameters or a naming conflict; never retried."""

    exit_code = ExitCode.CONFIG_ERROR


class TransientProvisioningError(ProvisioningError):
    """An invoke or poll call failed for a transient reason."""


class ProvisioningTimeoutError(ProvisioningError):
    """Polling exceeded the maximum wait without reaching a terminal state."""


class OutputRetrievalError(ProvisioningError):
    """The resource succeeded but a required output could not be read."""


class SecretPropagationError(InfraphaseError):
    """An individual secret write failed after successful provisioning."""

    exit_code = ExitCode.PARTIAL_FAILURE

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        secret_name: str | None = None,
    ):
        super().__init__(message, details)
        self.secret_name = secret_name


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - InfraphaseError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except InfraphaseError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                report_error(e)
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: InfraphaseError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def report_error(error: InfraphaseError) -> None:
    """Print an error for the user on stderr; stdout stays reserved for reports."""
    from infraphase.cli.ux import err_console

    err_console.print(f"✗ {format_error_message(error)}", style="error", markup=False)
