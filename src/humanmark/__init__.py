from .version import __version__
from .core.client import ApiClient
from .core.challenge_manager import ChallengeManager
from .core.config import CreateAndVerifyConfig, VerifyOnlyConfig, resolve_config
from .core.orchestrator import VerificationOrchestrator
from .core.presentation import ConsolePresenter, Presenter
from .core.retry import RetryPolicy
from .core.settings import HumanmarkSettings, get_settings
from .protocol import (
    ChallengeClaims,
    ErrorCode,
    HumanmarkApiError,
    HumanmarkCancelledError,
    HumanmarkChallengeError,
    HumanmarkConfigError,
    HumanmarkError,
    HumanmarkNetworkError,
    HumanmarkVerificationError,
    VerificationState,
    decode_challenge_token,
)

__all__ = [
    "__version__",
    "ApiClient",
    "ChallengeManager",
    "CreateAndVerifyConfig",
    "VerifyOnlyConfig",
    "resolve_config",
    "VerificationOrchestrator",
    "ConsolePresenter",
    "Presenter",
    "RetryPolicy",
    "HumanmarkSettings",
    "get_settings",
    "ChallengeClaims",
    "ErrorCode",
    "HumanmarkError",
    "HumanmarkConfigError",
    "HumanmarkNetworkError",
    "HumanmarkApiError",
    "HumanmarkChallengeError",
    "HumanmarkVerificationError",
    "HumanmarkCancelledError",
    "VerificationState",
    "decode_challenge_token",
]
