"""
Challenge token codec.

A challenge token is `{base64url(claims)}.{signature}`. The client only
decodes the claims; the signature is opaque and is never checked here.
"""

from __future__ import annotations

import base64
import binascii
import math
from typing import Any, Dict, Optional

import httpx

from humanmark.utils.json import json_dumps, json_loads

from .errors import HumanmarkNetworkError, invalid_challenge_error
from .enums import ErrorCode, NetworkErrorCategory
from .models import ChallengeClaims


def _b64url_decode(segment: str) -> bytes:
    padding = (4 - len(segment) % 4) % 4
    return base64.urlsafe_b64decode(segment + "=" * padding)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        raise invalid_challenge_error(f"non-finite timestamp {value!r}")
    if isinstance(value, (int, float)):
        return int(value) or None
    return None


def decode_challenge_token(token: str) -> ChallengeClaims:
    """
    Decode the claims of a challenge token without verifying it.

    Raises HumanmarkChallengeError(INVALID_CHALLENGE_FORMAT) for anything
    that is not exactly two non-empty dot-separated parts carrying a JSON
    claims object with shard, challenge and a non-zero expiry.
    """
    if not isinstance(token, str):
        raise invalid_challenge_error("token must be a string")

    parts = token.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise invalid_challenge_error("expected payload.signature")

    try:
        payload_raw = _b64url_decode(parts[0])
        payload = json_loads(payload_raw)
    except (binascii.Error, ValueError) as ex:
        raise invalid_challenge_error(f"undecodable payload ({ex})") from ex

    if not isinstance(payload, dict):
        raise invalid_challenge_error("payload is not an object")

    region = payload.get("shard")
    challenge_id = payload.get("challenge")
    try:
        expires_at = _optional_int(payload.get("expires_at", payload.get("exp")))
        issued_at = _optional_int(payload.get("issued_at", payload.get("iat")))
    except (OverflowError, ValueError) as ex:
        raise invalid_challenge_error(f"unreadable timestamp ({ex})") from ex

    if not isinstance(region, str) or not region:
        raise invalid_challenge_error("missing shard")
    if not isinstance(challenge_id, str) or not challenge_id:
        raise invalid_challenge_error("missing challenge")
    if not expires_at:
        raise invalid_challenge_error("missing expiry")

    domain = payload.get("domain")
    return ChallengeClaims(
        region=region,
        challenge_id=challenge_id,
        expires_at=expires_at,
        issued_at=issued_at,
        domain=domain if isinstance(domain, str) and domain else None,
    )


def encode_challenge_token(claims: ChallengeClaims, signature: str = "unsigned") -> str:
    """Build a token from claims. Used by tooling and tests; never signs."""
    payload_raw = json_dumps(claims.to_dict(), canonical=True).encode("utf-8")
    return f"{_b64url_encode(payload_raw)}.{signature}"


def token_expiration_ms(token: str) -> int:
    return decode_challenge_token(token).expires_at_ms


def construct_shard_url(base_url: str, region: str) -> str:
    """
    Prepend the region as a subdomain of base_url.

        https://humanmark.io       -> https://us-east-1.humanmark.io
        https://humanmark.io/x?y=1 -> https://us-east-1.humanmark.io/x?y=1
    """
    try:
        url = httpx.URL(base_url)
        if not url.host:
            raise ValueError(f"no host in {base_url!r}")
        shard = url.copy_with(host=f"{region}.{url.host}")
    except (httpx.InvalidURL, ValueError, TypeError) as ex:
        raise HumanmarkNetworkError(
            f"Failed to construct shard URL: {ex}",
            ErrorCode.NETWORK_ERROR,
            category=NetworkErrorCategory.PERMANENT,
        ) from ex

    result = str(shard)
    if result.endswith("/") and shard.path == "/" and not shard.query:
        return result[:-1]
    return result


def endpoint_url(base_url: str, path: str) -> str:
    """Join an API path onto base_url, keeping any base path and query."""
    url = httpx.URL(base_url)
    return str(url.copy_with(path=url.path.rstrip("/") + path))


def claims_to_dict(claims: ChallengeClaims) -> Dict[str, Any]:
    return {
        "region": claims.region,
        "challengeId": claims.challenge_id,
        "expiresAt": claims.expires_at,
        "issuedAt": claims.issued_at,
        "domain": claims.domain,
    }
