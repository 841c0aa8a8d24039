from .settings import HumanmarkSettings, get_settings
from .config import CreateAndVerifyConfig, VerifyOnlyConfig, resolve_config, validate_config
from .challenge_manager import ChallengeManager
from .cancellation import CancellationToken
from .retry import RetryPolicy, categorize_network_error
from .client import ApiClient
from .presentation import ConsolePresenter, Presenter
from .orchestrator import VerificationOrchestrator
