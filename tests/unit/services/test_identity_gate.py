import time

import jwt
import pytest

from licencias.core.exceptions import AuthenticationError, ForbiddenError, NotFoundError, ValidationError
from licencias.core.jwt import JWTVerifier
from licencias.database.models import ActorProfile
from licencias.schemas.enums import Role
from licencias.services.identity_gate import IdentityGate

SUPABASE_URL = "https://test.supabase.co"
SECRET = "unit-test-secret-with-enough-length-for-hs256"


def make_token(sub: str, email: str = "ana@example.com", secret: str = SECRET, **overrides) -> str:
    now = int(time.time())
    claims = {
        "sub": sub,
        "email": email,
        "aud": "authenticated",
        "iss": f"{SUPABASE_URL}/auth/v1",
        "iat": now,
        "exp": now + 3600,
        "role": "authenticated",
        "user_metadata": {"full_name": "Ana Gómez", "role": "admin"},
    }
    claims.update(overrides)
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def identity_gate(profile_repository) -> IdentityGate:
    return IdentityGate(JWTVerifier(SUPABASE_URL, jwt_secret=SECRET), profile_repository)


@pytest.mark.asyncio
async def test_resolve_creates_profile_with_user_role(identity_gate, profile_repository):
    actor = await identity_gate.resolve(make_token("user-1"))

    assert actor.user_id == "user-1"
    assert actor.email == "ana@example.com"
    # The admin claim in user metadata is ignored
    assert actor.role == Role.USER
    profile = await profile_repository.get_by_id("user-1")
    assert profile.full_name == "Ana Gómez"


@pytest.mark.asyncio
async def test_resolve_reads_role_from_profile_every_time(identity_gate, db_session):
    db_session.add_all(
        [
            ActorProfile(id="rh-1", email="rh@example.com", role=Role.REVIEWER),
            ActorProfile(id="admin-1", email="admin@example.com", role=Role.ADMIN),
        ]
    )
    await db_session.commit()
    token = make_token("rh-1", email="rh@example.com")

    assert (await identity_gate.resolve(token)).role == Role.REVIEWER

    admin = await identity_gate.resolve(make_token("admin-1", email="admin@example.com"))
    assert admin.role == Role.ADMIN
    await identity_gate.update_role("rh-1", "user", admin)

    assert (await identity_gate.resolve(token)).role == Role.USER


@pytest.mark.asyncio
async def test_get_session_without_token_is_none(identity_gate):
    assert await identity_gate.get_session(None) is None
    assert await identity_gate.get_session("") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token",
    [
        None,
        "not-a-jwt",
        make_token("user-1", secret="another-secret-of-sufficient-length-xyz"),
        make_token("user-1", exp=int(time.time()) - 10),
        make_token("user-1", iss="https://evil.example.com/auth/v1"),
        make_token("user-1", aud="anon"),
    ],
)
async def test_resolve_rejects_missing_or_invalid_tokens(identity_gate, token):
    with pytest.raises(AuthenticationError):
        await identity_gate.resolve(token)


@pytest.mark.asyncio
async def test_update_role_requires_admin(identity_gate, requester, reviewer):
    await identity_gate.resolve(make_token("user-2"))

    with pytest.raises(ForbiddenError):
        await identity_gate.update_role("user-2", "rh", requester)
    with pytest.raises(ForbiddenError):
        await identity_gate.update_role("user-2", "admin", reviewer)


@pytest.mark.asyncio
async def test_update_role_by_admin(identity_gate, profile_repository, admin):
    await identity_gate.resolve(make_token("user-2"))

    profile = await identity_gate.update_role("user-2", "rh", admin)

    assert profile.role == Role.REVIEWER
    assert (await profile_repository.get_by_id("user-2")).role == Role.REVIEWER


@pytest.mark.asyncio
async def test_update_role_validates_role_and_target(identity_gate, admin):
    await identity_gate.resolve(make_token("user-2"))

    with pytest.raises(ValidationError):
        await identity_gate.update_role("user-2", "superuser", admin)
    with pytest.raises(NotFoundError):
        await identity_gate.update_role("ghost", "rh", admin)
