from uuid import uuid4

import pytest
from fastapi import HTTPException
from jose import jwt

from portal.api import deps
from portal.core import security
from portal.core.permissions import Role
from portal.core.settings import settings


@pytest.fixture
def hs256_keys(monkeypatch):
    monkeypatch.setattr(settings, "jwt_public_key", "test-signing-secret")
    monkeypatch.setattr(settings, "jwt_algorithm", "HS256")
    monkeypatch.setattr(settings, "jwt_audience", "portal")
    security._load_public_key.cache_clear()
    yield "test-signing-secret"
    security._load_public_key.cache_clear()


def test_decode_token_verifies_signature_and_audience(hs256_keys) -> None:
    claims = {"sub": str(uuid4()), "role": "staff", "aud": "portal"}
    token = jwt.encode(claims, hs256_keys, algorithm="HS256")
    assert security.decode_token(token)["role"] == "staff"

    with pytest.raises(ValueError):
        security.decode_token(jwt.encode(claims, "wrong-secret", algorithm="HS256"))
    with pytest.raises(ValueError):
        security.decode_token(jwt.encode({**claims, "aud": "other"}, hs256_keys, algorithm="HS256"))


def test_missing_key_is_reported(monkeypatch) -> None:
    monkeypatch.setattr(settings, "jwt_public_key", None)
    monkeypatch.setattr(settings, "jwt_public_key_path", None)
    security._load_public_key.cache_clear()
    with pytest.raises(security.JWTKeyError):
        security.decode_token("anything")
    security._load_public_key.cache_clear()


def test_actor_from_claims() -> None:
    org_id = uuid4()
    actor = deps.actor_from_claims({"sub": str(uuid4()), "role": "client", "org": str(org_id)})
    assert actor.role == Role.CLIENT
    assert actor.org_id == org_id
    assert not actor.is_staff

    staff = deps.actor_from_claims({"sub": str(uuid4()), "role": "admin"})
    assert staff.is_staff and staff.is_admin
    assert staff.can_access_org(org_id)


@pytest.mark.parametrize(
    "claims,status_code",
    [
        ({"role": "staff"}, 401),
        ({"sub": "not-a-uuid", "role": "staff"}, 401),
        ({"sub": str(uuid4()), "role": "superuser"}, 401),
        ({"sub": str(uuid4()), "role": "client"}, 403),
    ],
)
def test_actor_from_claims_rejects_bad_tokens(claims, status_code) -> None:
    with pytest.raises(HTTPException) as exc:
        deps.actor_from_claims(claims)
    assert exc.value.status_code == status_code
