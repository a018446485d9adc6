"""Pydantic models for the Cloud Objects SDK.

Wire-facing models accept the server's camelCase field names and are
serialized back by alias, so stored credentials match what the server sent.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from .tokens import TokenDecoder

# seconds before expiry at which a token is already treated as expired
GUARD_WINDOW_SECONDS = 30


class TokenPayload(BaseModel):
    """Claims view of an access or refresh token."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    user_id: str | None = None
    identity: str | None = None
    project_id: str | None = None
    service_id: str | None = None
    client_id: str | None = None
    anonymous: bool | None = None
    iat: int | None = None
    exp: int = 0
    claims: dict[str, Any] = Field(default_factory=dict)


class RealtimeCredentials(BaseModel):
    """Push backend sign-in data delivered with a credential."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    api_key: str
    project_id: str
    custom_token: str


class Credential(BaseModel):
    """Access/refresh token pair with cached claims and clock skew."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    access_token_decoded: TokenPayload | None = None
    refresh_token_decoded: TokenPayload | None = None
    # server issued-at minus local time at issuance, in seconds
    clock_skew: int = Field(default=0, alias="diff")
    is_token_valid: bool | None = None
    realtime: RealtimeCredentials | None = Field(default=None, alias="firebase")

    @property
    def is_decoded(self) -> bool:
        if self.access_token_decoded is None:
            return False
        return self.refresh_token is None or self.refresh_token_decoded is not None

    @property
    def is_refreshable(self) -> bool:
        return bool(self.refresh_token)

    @property
    def access_expires_at(self) -> int:
        return self.access_token_decoded.exp if self.access_token_decoded else 0

    @property
    def refresh_expires_at(self) -> int:
        return self.refresh_token_decoded.exp if self.refresh_token_decoded else 0

    def safe_now(self, now: float) -> int:
        """Local time shifted to the server clock, plus the guard window."""
        return math.floor(now) + GUARD_WINDOW_SECONDS + self.clock_skew

    def is_access_live(self, now: float) -> bool:
        return self.access_expires_at > self.safe_now(now)

    def is_renewable(self, now: float) -> bool:
        return self.is_refreshable and self.refresh_expires_at > self.safe_now(now)

    def with_decoded(self, decoder: TokenDecoder) -> Self:
        """Return a copy with both token halves decoded; no-op when cached."""
        if self.is_decoded:
            return self
        return self.model_copy(
            update={
                "access_token_decoded": decoder.decode(self.access_token),
                "refresh_token_decoded": (
                    decoder.decode(self.refresh_token) if self.refresh_token else None
                ),
            }
        )

    def to_storage(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class AuthStatus(StrEnum):
    """Session states."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    AUTH_FAILED = "AUTH_FAILED"
    CONNECTION_FAILED = "CONNECTION_FAILED"


class AuthChangedEvent(BaseModel):
    """Session state transition announced to auth status subscribers."""

    model_config = ConfigDict(frozen=True)

    auth_status: AuthStatus
    uid: str | None = None
    identity: str | None = None
    message: str | None = None

    @classmethod
    def from_credential(
        cls,
        credential: Credential | None,
        *,
        now: float,
        failure: AuthChangedEvent | None = None,
    ) -> Self:
        """Derive the session state from the credential held in storage.

        A live access token, or an expiring one that can still be renewed,
        is signed in. ``failure`` is the outcome of the last refresh when it
        failed: an unreachable server keeps the credential and reads as
        connection failed, a rejection removes it and reads as auth failed.
        """
        payload = credential.access_token_decoded if credential else None
        if credential is None or payload is None:
            if failure is not None and failure.auth_status is AuthStatus.AUTH_FAILED:
                return cls(auth_status=AuthStatus.AUTH_FAILED, message=failure.message)
            return cls(auth_status=AuthStatus.SIGNED_OUT)

        if failure is not None and failure.auth_status is AuthStatus.CONNECTION_FAILED:
            return cls(
                auth_status=AuthStatus.CONNECTION_FAILED,
                uid=payload.user_id,
                identity=payload.identity,
                message=failure.message,
            )
        if credential.is_access_live(now) or credential.is_renewable(now):
            return cls(
                auth_status=AuthStatus.SIGNED_IN,
                uid=payload.user_id,
                identity=payload.identity,
            )
        return cls(auth_status=AuthStatus.SIGNED_OUT)


class ObjectKey(BaseModel):
    """Named lookup key of a cloud object instance."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1)


class CloudObjectMethod(BaseModel):
    """Method exposed by a cloud object class."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str
    tag: str | None = None
    sync: bool | None = None
    readonly: bool | None = None
    input_model: str | None = None
    output_model: str | None = None
    query_string_model: str | None = None


class CloudObjectState(BaseModel):
    """State snapshot returned by the state endpoint."""

    model_config = ConfigDict(frozen=True, extra="allow")

    role: dict[str, Any] = Field(default_factory=dict)
    user: dict[str, Any] = Field(default_factory=dict)
    public: dict[str, Any] = Field(default_factory=dict)
    private: dict[str, Any] = Field(default_factory=dict)


class CallResponse(BaseModel):
    """Successful response of a cloud object operation."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None


class RetryPolicy(BaseModel):
    """Backoff state of a single logical call."""

    model_config = ConfigDict(frozen=True)

    delay: Annotated[float, Field(ge=0)]
    count: Annotated[int, Field(ge=0)]
    rate: Annotated[float, Field(ge=1.0)]

    @property
    def can_retry(self) -> bool:
        return self.count > 0

    def advance(self) -> Self:
        """Policy for the attempt after the one that just waited ``delay``."""
        return self.model_copy(
            update={"delay": self.delay * self.rate, "count": self.count - 1}
        )


class CloudObjectRequest(BaseModel):
    """Description of one cloud object operation."""

    model_config = ConfigDict(frozen=True)

    class_id: str = Field(..., min_length=1)
    instance_id: str | None = None
    key: ObjectKey | None = None
    method: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    path_params: str | None = None
    query_params: dict[str, str] = Field(default_factory=dict)
    http_method: str = "POST"
    body: Any = None
    base64_encode: bool = True
