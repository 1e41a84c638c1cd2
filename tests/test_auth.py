import time

import pytest
from sqlalchemy import select

from errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    Unauthenticated,
    Unauthorized,
    ValidationError,
)
from models import Theme, User, UserSettings
from schemas import LoginIn, RegisterIn
from security import bearer_token, decode_token, issue_token, verify_password
from services import AuthService


def register_alice(session) -> User:
    return AuthService(session).register(
        RegisterIn(username="alice", password="p1", email="a@x.com")
    )


def test_register_hashes_password_and_creates_default_settings(session) -> None:
    user = register_alice(session)

    assert user.id is not None
    assert user.username == "alice"
    assert user.email == "a@x.com"
    assert user.password_hash != "p1"
    assert verify_password("p1", user.password_hash)

    settings = session.scalar(
        select(UserSettings).where(UserSettings.user_id == user.id)
    )
    assert settings.currency == "¥"
    assert settings.theme == Theme.light


def test_register_twice_with_same_username_or_email_conflicts(session) -> None:
    register_alice(session)
    service = AuthService(session)

    with pytest.raises(ConflictError):
        service.register(RegisterIn(username="alice", password="x", email="b@x.com"))
    with pytest.raises(ConflictError):
        service.register(RegisterIn(username="bob", password="x", email="a@x.com"))

    assert len(session.scalars(select(User)).all()) == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"password": "p1", "email": "a@x.com"},
        {"username": "alice", "email": "a@x.com"},
        {"username": "alice", "password": "p1"},
        {"username": "  ", "password": "p1", "email": "a@x.com"},
    ],
)
def test_register_requires_every_field(session, payload) -> None:
    with pytest.raises(ValidationError):
        AuthService(session).register(RegisterIn(**payload))


def test_login_failures_share_one_message(session) -> None:
    register_alice(session)
    service = AuthService(session)

    with pytest.raises(AuthError) as wrong_password:
        service.login(LoginIn(username="alice", password="nope"))
    with pytest.raises(AuthError) as unknown_user:
        service.login(LoginIn(username="mallory", password="p1"))

    assert wrong_password.value.message == unknown_user.value.message
    assert wrong_password.value.status_code == 401


def test_login_token_carries_registered_identity(session) -> None:
    user = register_alice(session)

    token, logged_in = AuthService(session).login(
        LoginIn(username="alice", password="p1")
    )

    identity = decode_token(token)
    assert logged_in.id == user.id
    assert identity.id == user.id
    assert identity.username == "alice"


def test_token_rejected_after_expiry() -> None:
    token = issue_token(7, "alice", max_age_secs=60)

    assert decode_token(token).id == 7
    with pytest.raises(Unauthorized):
        decode_token(token, now=time.time() + 61)


def test_missing_and_tampered_tokens_are_distinguished() -> None:
    with pytest.raises(Unauthenticated):
        decode_token(None)
    with pytest.raises(Unauthenticated):
        decode_token("")

    token = issue_token(7, "alice")
    with pytest.raises(Unauthorized):
        decode_token(token[:-2] + "xx")
    with pytest.raises(Unauthorized):
        decode_token("not-a-token")


def test_profile_refetches_user_row(session) -> None:
    user = register_alice(session)
    token = issue_token(user.id, user.username)

    profile = AuthService(session).get_profile(token)
    assert profile.email == "a@x.com"

    ghost = issue_token(user.id + 100, "ghost")
    with pytest.raises(NotFoundError):
        AuthService(session).get_profile(ghost)


def test_profile_without_token_is_auth_error(session) -> None:
    with pytest.raises(AuthError):
        AuthService(session).get_profile(None)


def test_register_rejects_password_longer_than_bcrypt_accepts(session) -> None:
    service = AuthService(session)

    with pytest.raises(ValidationError):
        service.register(
            RegisterIn(username="alice", password="x" * 73, email="a@x.com")
        )
    # 30 characters, 90 UTF-8 bytes
    with pytest.raises(ValidationError):
        service.register(
            RegisterIn(username="alice", password="中" * 30, email="a@x.com")
        )

    user = service.register(
        RegisterIn(username="alice", password="x" * 72, email="a@x.com")
    )
    assert verify_password("x" * 72, user.password_hash)


def test_login_with_overlong_password_is_incorrect_credentials(session) -> None:
    register_alice(session)

    with pytest.raises(AuthError) as exc_info:
        AuthService(session).login(LoginIn(username="alice", password="中" * 30))

    assert exc_info.value.message == "Incorrect username or password"


def test_bearer_token_parsing() -> None:
    assert bearer_token(None) is None
    assert bearer_token("") is None
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer  abc ") == "abc"
    with pytest.raises(Unauthorized):
        bearer_token("Token abc")
    with pytest.raises(Unauthorized):
        bearer_token("Bearer ")
