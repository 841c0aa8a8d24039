"""
Caller configuration.

The client runs in one of two modes, decided once when the configuration is
resolved:

    create-and-verify  api_key + api_secret + domain; the client creates the
                       challenge itself
    verify-only        api_key + challenge_token obtained from the embedding
                       application's backend

Everything downstream receives a single validated variant.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from humanmark.protocol.enums import ConfigMode, ErrorCode
from humanmark.protocol.errors import HumanmarkConfigError, config_error


class _BaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    api_key: str = Field(min_length=1)


class CreateAndVerifyConfig(_BaseConfig):
    mode: Literal["create-and-verify"] = "create-and-verify"
    api_secret: str = Field(min_length=1)
    domain: str = Field(min_length=1)


class VerifyOnlyConfig(_BaseConfig):
    mode: Literal["verify-only"] = "verify-only"
    challenge_token: str = Field(min_length=1)


HumanmarkConfig = Annotated[
    Union[CreateAndVerifyConfig, VerifyOnlyConfig],
    Field(discriminator="mode"),
]

_config_adapter: TypeAdapter = TypeAdapter(HumanmarkConfig)


def resolve_config(
    *,
    api_key: Optional[str] = None,
    api_secret: Optional[str] = None,
    domain: Optional[str] = None,
    challenge_token: Optional[str] = None,
) -> Union[CreateAndVerifyConfig, VerifyOnlyConfig]:
    """
    Turn loosely supplied options into exactly one configuration variant.

    Raises HumanmarkConfigError with INVALID_API_KEY, MISSING_CREDENTIALS or
    INVALID_CONFIG.
    """
    if not isinstance(api_key, str) or not api_key.strip():
        raise config_error(
            "API key is required and must be a string",
            ErrorCode.INVALID_API_KEY,
            field="api_key",
        )

    raw: dict[str, Any]
    if api_secret is not None:
        raw = {
            "mode": ConfigMode.CREATE_AND_VERIFY.value,
            "api_key": api_key,
            "api_secret": api_secret,
            "domain": domain,
        }
    elif challenge_token is not None:
        raw = {
            "mode": ConfigMode.VERIFY_ONLY.value,
            "api_key": api_key,
            "challenge_token": challenge_token,
        }
    else:
        raise config_error(
            "Either api_secret (create-and-verify) or challenge_token (verify-only) is required",
            ErrorCode.MISSING_CREDENTIALS,
        )

    return validate_config(raw)


def validate_config(raw: Any) -> Union[CreateAndVerifyConfig, VerifyOnlyConfig]:
    """Validate an already-tagged mapping (e.g. loaded from a file)."""
    try:
        return _config_adapter.validate_python(raw)
    except ValidationError as ex:
        first = ex.errors()[0] if ex.errors() else {}
        loc = first.get("loc") or ()
        field = str(loc[-1]) if loc else None
        raise config_error(
            f"Invalid configuration: {first.get('msg', str(ex))}",
            ErrorCode.INVALID_CONFIG,
            field=field,
        ) from ex


__all__ = [
    "CreateAndVerifyConfig",
    "VerifyOnlyConfig",
    "HumanmarkConfig",
    "HumanmarkConfigError",
    "resolve_config",
    "validate_config",
]
