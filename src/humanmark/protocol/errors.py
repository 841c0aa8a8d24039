from __future__ import annotations

from typing import Any, Dict, Optional

from humanmark.utils.timestamps import now_iso

from .enums import ErrorCode, ExpiryReason, NetworkErrorCategory


class HumanmarkError(Exception):
    """
    Base class for every condition the client surfaces to its caller.

    - code:        machine-readable ErrorCode
    - status_code: HTTP status when the condition came from a response
    - details:     free-form debugging context (never contains the token)
    """

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        *,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or ErrorCode.VERIFICATION_FAILED
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = now_iso()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "timestamp": self.timestamp,
        }
        if self.status_code is not None:
            data["statusCode"] = self.status_code
        if self.details:
            data["details"] = dict(self.details)
        return data


class HumanmarkConfigError(HumanmarkError):
    """Raised when caller-supplied configuration is unusable. Never retried."""


class HumanmarkNetworkError(HumanmarkError):
    """Transport failure, classified temporary or permanent."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.NETWORK_ERROR,
        *,
        category: NetworkErrorCategory = NetworkErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, status_code=status_code, details=details)
        self.category = category

    @property
    def is_temporary(self) -> bool:
        return self.category == NetworkErrorCategory.TEMPORARY


class HumanmarkApiError(HumanmarkError):
    """Non-2xx response from the service."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        status_code: int,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, status_code=status_code, details=details)

    @property
    def retryable(self) -> bool:
        return is_retryable_status(self.status_code)


class HumanmarkChallengeError(HumanmarkError):
    """Malformed, expired or absent challenge token."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        *,
        expiry_reason: Optional[ExpiryReason] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, status_code=status_code, details=details)
        self.expiry_reason = expiry_reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.expiry_reason is not None:
            data["expiryReason"] = self.expiry_reason.value
        return data


class HumanmarkVerificationError(HumanmarkError):
    """The operation finished but produced no usable receipt."""


class HumanmarkCancelledError(HumanmarkError):
    """The user closed the verification before it completed. Never retried."""

    def __init__(self, message: str = "User cancelled verification"):
        super().__init__(message, ErrorCode.USER_CANCELLED)


# ----------------------------------------------------------------------
# Status helpers
# ----------------------------------------------------------------------

def is_server_error(status: int) -> bool:
    return 500 <= status < 600


def is_retryable_status(status: Optional[int]) -> bool:
    if status is None:
        return False
    return is_server_error(status) or status == 429


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------

def timeout_error(operation: Optional[str] = None) -> HumanmarkNetworkError:
    message = f"{operation} timed out" if operation else "Request timed out"
    return HumanmarkNetworkError(
        message,
        ErrorCode.TIMEOUT,
        category=NetworkErrorCategory.TEMPORARY,
    )


def network_error_from(
    exc: BaseException, category: NetworkErrorCategory
) -> HumanmarkNetworkError:
    if isinstance(exc, HumanmarkNetworkError):
        return exc
    message = str(exc) or type(exc).__name__
    return HumanmarkNetworkError(
        message,
        ErrorCode.NETWORK_ERROR,
        category=category,
        details={"exception": type(exc).__name__},
    )


def challenge_expired_error(reason: ExpiryReason) -> HumanmarkChallengeError:
    return HumanmarkChallengeError(
        "Challenge expired",
        ErrorCode.CHALLENGE_EXPIRED,
        expiry_reason=reason,
        status_code=410 if reason == ExpiryReason.DETECTED_BY_SERVER else None,
    )


def api_error_from_status(status: int, reason: str = "") -> HumanmarkError:
    """
    Map a non-2xx status to the taxonomy.

    410 is not a generic client error: it means the challenge expired on the
    server and is reported as a challenge condition.
    """
    if status == 410:
        return challenge_expired_error(ExpiryReason.DETECTED_BY_SERVER)

    message = f"HTTP {status}: {reason}".rstrip(": ")
    if status in (401, 403):
        code = ErrorCode.INVALID_API_KEY_OR_SECRET
    elif status == 429:
        code = ErrorCode.RATE_LIMITED
    elif is_server_error(status):
        code = ErrorCode.SERVER_ERROR
    else:
        code = ErrorCode.CLIENT_ERROR
    return HumanmarkApiError(message, code, status)


def cancelled_error() -> HumanmarkCancelledError:
    return HumanmarkCancelledError("User cancelled verification")


def invalid_challenge_error(reason: str) -> HumanmarkChallengeError:
    return HumanmarkChallengeError(
        f"Invalid challenge token: {reason}",
        ErrorCode.INVALID_CHALLENGE_FORMAT,
    )


def no_active_challenge_error() -> HumanmarkChallengeError:
    return HumanmarkChallengeError(
        "No active challenge available",
        ErrorCode.NO_ACTIVE_CHALLENGE,
    )


def no_receipt_error() -> HumanmarkVerificationError:
    return HumanmarkVerificationError(
        "No receipt received from verification",
        ErrorCode.NO_RECEIPT_RECEIVED,
    )


def config_error(
    message: str,
    code: ErrorCode = ErrorCode.INVALID_CONFIG,
    field: Optional[str] = None,
) -> HumanmarkConfigError:
    details = {"field": field} if field else None
    return HumanmarkConfigError(message, code, details=details)
