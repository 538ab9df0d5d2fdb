# luckybet/inc/errors.py
# Typed failures raised by the domain services. The router maps each one to its
# HTTP status; the message is shown to the caller as-is, so it never carries
# credential material or internal detail.
from __future__ import annotations


class LuckyBetError(Exception):
    status = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LuckyBetError):
    status = 400
    default_message = "Invalid request"


class InvalidBetError(ValidationError):
    default_message = "Invalid bet input"


class WeakPasswordError(ValidationError):
    default_message = "New password is too short"


class AuthenticationError(LuckyBetError):
    status = 401
    default_message = "Invalid credentials"


class AuthorizationError(LuckyBetError):
    status = 401
    default_message = "Not logged in"


class DuplicateResourceError(LuckyBetError):
    status = 400
    default_message = "Email already registered"


class InsufficientFundsError(LuckyBetError):
    status = 400
    default_message = "Insufficient funds"


class NotFoundError(LuckyBetError):
    status = 404
    default_message = "Not found"


class BalanceContentionError(LuckyBetError):
    """The balance changed between read and conditional write; safe to retry."""

    status = 409
    default_message = "Balance changed during the request, please retry"


class UpstreamError(LuckyBetError):
    status = 502
    default_message = "Card service unavailable"


class InternalError(LuckyBetError):
    status = 500
