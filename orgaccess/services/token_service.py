"""ES256 bearer token signing and verification.

Bearer tokens are issued by the external identity provider.  This module
verifies them with the provider's public key (IDENTITY_PUBLIC_KEY_FILE).

Dev/test: when no key file is configured, an ephemeral EC key pair is
generated on import and create_access_token() can mint tokens signed
with it, so the service and its tests run without a provider.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import jwt
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import load_pem_public_key

from orgaccess.core.config import SETTINGS

logger = logging.getLogger(__name__)

ALGORITHM = "ES256"
ISSUER = "identity-provider"
AUDIENCE = "orgaccess"
ACCESS_TOKEN_TTL_MIN = 15

if SETTINGS.identity_public_key_file:
    _private_key: ec.EllipticCurvePrivateKey | None = None
    _public_key = load_pem_public_key(
        Path(SETTINGS.identity_public_key_file).read_bytes()
    )
    logger.info("Identity provider key loaded from %s", SETTINGS.identity_public_key_file)
else:
    _private_key = ec.generate_private_key(ec.SECP256R1())
    _public_key = _private_key.public_key()


def create_access_token(
    *,
    sub: str,
    email: str,
    name: str = "",
    ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
) -> str:
    """Mint a token signed with the ephemeral dev key.

    Claims: sub, email, name, iss, aud, exp, iat, jti.
    """
    if _private_key is None:
        raise RuntimeError("tokens are issued by the identity provider in this deployment")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "email": email,
        "name": name,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + ttl,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 (no alg:none, no alg switching) and
    requires the email claim the invitation flow matches against.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "email", "exp", "iat"]},
    )
