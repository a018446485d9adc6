"""Client-side token decoding.

Signatures are verified by the server; the client only reads claims to
schedule refreshes and address realtime channels.
"""

from __future__ import annotations

from typing import Protocol

import jwt
from pydantic import ValidationError

from .errors import MalformedTokenError
from .models import TokenPayload


class TokenDecoder(Protocol):
    """Parses a signed token into its claims without verifying it."""

    def decode(self, token: str) -> TokenPayload:
        ...


class JWTDecoder:
    """Decoder for JWT access and refresh tokens."""

    def decode(self, token: str) -> TokenPayload:
        """Decode token claims.

        Args:
            token: Encoded JWT.

        Returns:
            Token claims.

        Raises:
            MalformedTokenError: If the token is not a parsable JWT.
        """
        try:
            claims = jwt.decode(
                token,
                options={"verify_signature": False},
                algorithms=["HS256", "RS256", "ES256"],
            )
            return TokenPayload.model_validate(claims)
        except jwt.exceptions.InvalidTokenError as e:
            raise MalformedTokenError(f"Malformed token: {e}") from e
        except ValidationError as e:
            raise MalformedTokenError(f"Unexpected token claims: {e}") from e
