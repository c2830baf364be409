"""Bearer-credential → IdentityContext resolution (ES256 JWT).

Token issuance belongs to the platform's auth service; this module only
verifies tokens and turns their claims into an IdentityContext.
create_access_token() exists for local tooling and tests, and signs
with the same ephemeral key the verifier uses.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

from orgauthz.core.errors import Unauthorized
from orgauthz.models.identity import IdentityContext

logger = logging.getLogger(__name__)

# Dev/test: ephemeral EC key pair generated on import.
# Production: load the auth service's public key (not implemented yet).
_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = _private_key.public_key()

ALGORITHM = "ES256"
ISSUER = "auth-service"
AUDIENCE = "auth-service"
ACCESS_TOKEN_TTL_MIN = 15


def create_access_token(
    *,
    user_id: int,
    email: str,
    profile_id: int | None = None,
    role: str | None = None,
    ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
) -> str:
    now = datetime.now(UTC)
    payload: dict[str, object] = {
        "sub": str(user_id),
        "email": email,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + ttl,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    if profile_id is not None:
        payload["profile_id"] = profile_id
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 to prevent alg:none and alg-switching.
    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )


def resolve_identity(credential: str) -> IdentityContext:
    """Resolve a bearer credential, or raise Unauthorized."""
    try:
        claims = decode_access_token(credential)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise Unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise Unauthorized("Invalid token") from None

    try:
        user_id = int(claims["sub"])
    except ValueError:
        logger.warning("Token subject is not a user id: %r", claims["sub"])
        raise Unauthorized("Invalid token subject") from None

    profile_id = claims.get("profile_id")
    if profile_id is not None and (
        isinstance(profile_id, bool) or not isinstance(profile_id, int)
    ):
        logger.warning("Token profile_id claim is not an integer")
        raise Unauthorized("Invalid token profile") from None

    return IdentityContext(
        user_id=user_id,
        email=claims.get("email", ""),
        profile_id=profile_id,
        role=claims.get("role"),
    )
