from __future__ import annotations

import logging
from typing import Callable, Optional

from humanmark.protocol.challenge_token import decode_challenge_token
from humanmark.protocol.errors import HumanmarkChallengeError
from humanmark.protocol.models import ChallengeClaims
from humanmark.utils.timestamps import now_ms

logger = logging.getLogger("humanmark.challenge")

# time_remaining_ms() when no token is held
NO_EXPIRY = -1


class ChallengeManager:
    """
    Holds at most one challenge token in memory.

    - Nothing is persisted; a reload starts empty.
    - Expiry is evaluated on every read against the token's own claims,
      there is no background timer.
    - A token that cannot be decoded reads as already expired.
    """

    def __init__(self, *, clock_ms: Callable[[], int] = now_ms) -> None:
        self._token: Optional[str] = None
        self._clock_ms = clock_ms

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def set_token(self, token: str) -> ChallengeClaims:
        """
        Decode and store a token. A malformed token raises
        HumanmarkChallengeError and leaves the current slot untouched.
        """
        claims = decode_challenge_token(token)
        self._token = token
        logger.debug(
            "Stored challenge %s (region=%s, expires_at=%s)",
            claims.challenge_id,
            claims.region,
            claims.expires_at,
        )
        return claims

    def clear(self) -> None:
        self._token = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def current_token(self) -> Optional[str]:
        """The held token, or None if nothing is held or it has expired."""
        if self._token is None or self.is_expired():
            return None
        return self._token

    def claims(self) -> Optional[ChallengeClaims]:
        if self._token is None:
            return None
        try:
            return decode_challenge_token(self._token)
        except HumanmarkChallengeError:
            return None

    def has_token(self) -> bool:
        return self._token is not None

    def is_expired(self) -> bool:
        claims = self.claims()
        if claims is None:
            return True
        return self._clock_ms() >= claims.expires_at_ms

    def time_remaining_ms(self) -> int:
        """
        Milliseconds until expiry; NO_EXPIRY when empty, 0 once expired
        or if the held token is unreadable.
        """
        if self._token is None:
            return NO_EXPIRY
        claims = self.claims()
        if claims is None:
            return 0
        return max(0, claims.expires_at_ms - self._clock_ms())
