"""
Core middleware package.

- Error handling with sensitive data sanitization
- Structured logging with secret masking
"""

from core.middleware.error_handling import (
    setup_error_handlers,
    sanitize_error_message,
)

from core.middleware.logging import (
    StructuredFormatter,
    StructuredLoggingMiddleware,
    mask_sensitive_data,
    setup_logging,
)

__all__ = [
    # Error handling
    "setup_error_handlers",
    "sanitize_error_message",
    # Logging
    "StructuredFormatter",
    "StructuredLoggingMiddleware",
    "mask_sensitive_data",
    "setup_logging",
]
