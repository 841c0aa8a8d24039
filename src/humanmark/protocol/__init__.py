from .enums import (
    CancelReason,
    ConfigMode,
    ErrorCode,
    ExpiryReason,
    NetworkErrorCategory,
    RetryDecision,
    VerificationState,
)
from .errors import (
    HumanmarkApiError,
    HumanmarkCancelledError,
    HumanmarkChallengeError,
    HumanmarkConfigError,
    HumanmarkError,
    HumanmarkNetworkError,
    HumanmarkVerificationError,
)
from .models import ChallengeClaims, CreateChallengeRequest, WaitResponse
from .challenge_token import (
    construct_shard_url,
    decode_challenge_token,
    encode_challenge_token,
    token_expiration_ms,
)
