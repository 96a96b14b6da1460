from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import jwt

from orgaccess.models.principal import Identity
from orgaccess.services import token_service
from orgaccess.services.errors import Unauthenticated

logger = logging.getLogger(__name__)


@runtime_checkable
class IdentityVerifier(Protocol):
    def verify(self, bearer_token: str) -> Identity: ...


class JwtIdentityVerifier:
    """Maps a verified ES256 bearer token to an Identity."""

    def verify(self, bearer_token: str) -> Identity:
        try:
            claims = token_service.decode_access_token(bearer_token)
        except jwt.ExpiredSignatureError:
            logger.warning("Expired token rejected")
            raise Unauthenticated("Token expired") from None
        except jwt.InvalidTokenError as e:
            logger.warning("Invalid token rejected: %s", e)
            raise Unauthenticated("Invalid token") from None

        email = str(claims["email"]).strip()
        if not email:
            logger.warning("Token without email rejected: user=%s", claims["sub"])
            raise Unauthenticated("Token carries no email")

        return Identity(
            user_id=str(claims["sub"]),
            email=email.lower(),
            name=str(claims.get("name") or ""),
        )


identity_verifier: IdentityVerifier = JwtIdentityVerifier()
