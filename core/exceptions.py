"""
Domain exceptions raised by the core services.

Every failure carries a stable ``code`` and the HTTP ``status_code`` that the
transport layer maps it to. Services raise these untranslated; only
``core.middleware.error_handling`` turns them into responses.
"""

from typing import Any, Optional


class DomainError(Exception):
    """Base exception for all core service errors."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


# ==================== Validation ==================== #

class ValidationError(DomainError):
    """Raised when input is malformed."""

    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Invalid input"


# ==================== Conflicts ==================== #

class ConflictError(DomainError):
    """Raised when current state precludes the request."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Request conflicts with current state"


class DuplicateEmail(ConflictError):
    code = "DUPLICATE_EMAIL"
    default_message = "Email already registered"


class DisputeAlreadyOpen(ConflictError):
    code = "DISPUTE_ALREADY_OPEN"
    default_message = "A dispute already exists for this referral"


class DisputeAlreadyResolved(ConflictError):
    code = "DISPUTE_ALREADY_RESOLVED"
    default_message = "Dispute has already been resolved"


class InvalidTransition(ConflictError):
    """Raised when a status change is outside the referral transition graph."""

    code = "INVALID_TRANSITION"
    default_message = "Invalid status transition"


class JobPostingInactive(ConflictError):
    code = "JOB_POSTING_INACTIVE"
    default_message = "Job posting is not accepting referral requests"


class CurrencyMismatch(ConflictError):
    """Raised when money would move between wallets of different currencies."""

    code = "CURRENCY_MISMATCH"
    default_message = "Wallet currency does not match the referral fee currency"


# ==================== Not found ==================== #

class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class SessionNotFound(NotFoundError):
    code = "SESSION_NOT_FOUND"
    default_message = "Session not found"


class ReferralNotFound(NotFoundError):
    code = "REFERRAL_NOT_FOUND"
    default_message = "Referral request not found"


class JobPostingNotFound(NotFoundError):
    code = "JOB_POSTING_NOT_FOUND"
    default_message = "Job posting not found"


class WalletNotFound(NotFoundError):
    code = "WALLET_NOT_FOUND"
    default_message = "Wallet not found"


class DisputeNotFound(NotFoundError):
    code = "DISPUTE_NOT_FOUND"
    default_message = "Dispute not found"


# ==================== Authentication ==================== #

class AuthError(DomainError):
    code = "AUTHENTICATION_FAILED"
    status_code = 401
    default_message = "Authentication failed"


class InvalidCredentials(AuthError):
    """Unknown email and wrong password are deliberately the same error."""

    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class InvalidRefreshToken(AuthError):
    code = "INVALID_REFRESH_TOKEN"
    default_message = "Invalid or expired refresh token"


class MissingRefreshToken(AuthError):
    code = "MISSING_REFRESH_TOKEN"
    default_message = "Refresh token is required"


class SessionExpired(AuthError):
    code = "SESSION_EXPIRED"
    default_message = "Session has expired"


class InvalidAccessToken(AuthError):
    code = "INVALID_ACCESS_TOKEN"
    default_message = "Invalid or expired access token"


class AccountDisabled(AuthError):
    code = "ACCOUNT_DISABLED"
    default_message = "Account is suspended or deactivated"


class InvalidVerificationToken(AuthError):
    code = "INVALID_VERIFICATION_TOKEN"
    default_message = "Invalid or expired verification token"


# ==================== Authorization ==================== #

class PermissionDenied(DomainError):
    code = "PERMISSION_DENIED"
    status_code = 403
    default_message = "You don't have permission to perform this action"


# ==================== Funds ==================== #

class InsufficientFunds(DomainError):
    code = "INSUFFICIENT_FUNDS"
    status_code = 422
    default_message = "Insufficient funds"


# ==================== Internal ==================== #

class InternalError(DomainError):
    """Storage failure or broken invariant."""


class LedgerImmutableError(InternalError):
    code = "LEDGER_IMMUTABLE"
    default_message = "Completed ledger records cannot be modified"
