from enum import Enum


class ErrorCode(str, Enum):
    # configuration
    INVALID_API_KEY = "invalid_api_key"
    INVALID_CONFIG = "invalid_config"
    MISSING_CREDENTIALS = "missing_credentials"

    # network
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"

    # api
    INVALID_API_KEY_OR_SECRET = "invalid_api_key_or_secret"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"

    # challenge
    CHALLENGE_EXPIRED = "challenge_expired"
    INVALID_CHALLENGE_FORMAT = "invalid_challenge_format"
    NO_ACTIVE_CHALLENGE = "no_active_challenge"

    # verification
    VERIFICATION_FAILED = "verification_failed"
    NO_RECEIPT_RECEIVED = "no_receipt_received"
    USER_CANCELLED = "user_cancelled"


class NetworkErrorCategory(str, Enum):
    TEMPORARY = "temporary"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class ExpiryReason(str, Enum):
    """Where an expired challenge was noticed."""

    DETECTED_LOCALLY = "detected_locally"
    DETECTED_BY_SERVER = "detected_by_server"


class RetryDecision(str, Enum):
    RETRY = "retry"
    STOP = "stop"


class CancelReason(str, Enum):
    USER = "user"
    TIMEOUT = "timeout"


class ConfigMode(str, Enum):
    CREATE_AND_VERIFY = "create-and-verify"
    VERIFY_ONLY = "verify-only"


class VerificationState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    PRESENTING = "presenting"
    POLLING = "polling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (
            VerificationState.COMPLETED,
            VerificationState.CANCELLED,
            VerificationState.FAILED,
        )
