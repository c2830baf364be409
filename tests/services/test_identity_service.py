from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from orgauthz.core.errors import Unauthorized
from orgauthz.services import identity_service
from orgauthz.services.identity_service import (
    ALGORITHM,
    AUDIENCE,
    ISSUER,
    create_access_token,
    resolve_identity,
)


def test_resolve_identity_round_trip() -> None:
    token = create_access_token(
        user_id=12, email="kim@example.com", profile_id=34, role="TEACHER"
    )
    identity = resolve_identity(token)
    assert identity.user_id == 12
    assert identity.email == "kim@example.com"
    assert identity.profile_id == 34
    assert identity.role == "TEACHER"


def test_token_without_profile_resolves_without_profile() -> None:
    identity = resolve_identity(create_access_token(user_id=1, email="a@example.com"))
    assert identity.profile_id is None


def test_expired_token_rejected() -> None:
    token = create_access_token(user_id=1, email="a@example.com", ttl=timedelta(seconds=-5))
    with pytest.raises(Unauthorized, match="Token expired"):
        resolve_identity(token)


def test_token_signed_by_other_key_rejected() -> None:
    foreign_key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "1",
            "iss": ISSUER,
            "aud": AUDIENCE,
            "exp": now + timedelta(minutes=5),
            "iat": now,
            "jti": "x",
        },
        foreign_key,
        algorithm=ALGORITHM,
    )
    with pytest.raises(Unauthorized, match="Invalid token"):
        resolve_identity(token)


def _signed(claims: dict) -> str:
    now = datetime.now(UTC)
    payload = {
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=5),
        "iat": now,
        "jti": "x",
        **claims,
    }
    return jwt.encode(payload, identity_service._private_key, algorithm=ALGORITHM)


def test_non_numeric_subject_rejected() -> None:
    with pytest.raises(Unauthorized, match="Invalid token subject"):
        resolve_identity(_signed({"sub": "kim"}))


@pytest.mark.parametrize("profile_id", ["34", True, 3.5])
def test_non_integer_profile_claim_rejected(profile_id: object) -> None:
    with pytest.raises(Unauthorized, match="Invalid token profile"):
        resolve_identity(_signed({"sub": "1", "profile_id": profile_id}))
