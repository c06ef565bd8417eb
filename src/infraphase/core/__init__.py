"""Core modules for infraphase - centralized definitions and utilities."""

from infraphase.core.errors import (
    ConfigurationError,
    ExitCode,
    InfraphaseError,
    InvalidStatusTransition,
    OutputRetrievalError,
    PermanentConfigurationError,
    PlanValidationError,
    ProvisioningError,
    ProvisioningTimeoutError,
    SecretPropagationError,
    TransientProvisioningError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "InfraphaseError",
    "ConfigurationError",
    "ValidationError",
    "PlanValidationError",
    "InvalidStatusTransition",
    "ProvisioningError",
    "PermanentConfigurationError",
    "TransientProvisioningError",
    "ProvisioningTimeoutError",
    "OutputRetrievalError",
    "SecretPropagationError",
    "main_with_error_handling",
    "format_error_message",
]
