from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


# -------------------------
# WIRE CONSTANTS
# -------------------------

CREATE_CHALLENGE_PATH = "/api/v1/challenge/create"
WAIT_CHALLENGE_PATH = "/api/v1/challenge/wait"

API_KEY_HEADER = "hm-api-key"
API_SECRET_HEADER = "hm-api-secret"


# -------------------------
# CHALLENGE TOKEN
# -------------------------

@dataclass(frozen=True)
class ChallengeClaims:
    """
    Claims carried in the payload half of a challenge token.

    expires_at / issued_at are seconds since the epoch, as issued.
    Use expires_at_ms when comparing against millisecond clocks.
    """

    region: str
    challenge_id: str
    expires_at: int
    issued_at: Optional[int] = None
    domain: Optional[str] = None

    @property
    def expires_at_ms(self) -> int:
        return self.expires_at * 1000

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "shard": self.region,
            "challenge": self.challenge_id,
            "expires_at": self.expires_at,
        }
        if self.issued_at:
            data["issued_at"] = self.issued_at
        if self.domain:
            data["domain"] = self.domain
        return data


# -------------------------
# REQUESTS & RESPONSES
# -------------------------

@dataclass
class CreateChallengeRequest:
    domain: str

    def to_dict(self) -> Dict[str, Any]:
        return {"domain": self.domain}


@dataclass
class CreateChallengeResponse:
    token: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CreateChallengeResponse:
        return cls(token=data.get("token") or "")


@dataclass
class WaitResponse:
    receipt: Optional[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WaitResponse:
        return cls(receipt=data.get("receipt") or None)


# -------------------------
# RETRY STATE
# -------------------------

@dataclass
class RetryState:
    """
    Progress of one retried operation.

    attempt_index counts failed attempts in the current streak; a 408 from
    the long-poll resets it to zero.
    """

    started_at: float
    total_budget: float
    attempt_index: int = 0

    def elapsed(self, now: float) -> float:
        return now - self.started_at

    def remaining(self, now: float) -> float:
        return self.total_budget - self.elapsed(now)
