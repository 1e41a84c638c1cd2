import time
from dataclasses import dataclass
from typing import Optional

import bcrypt
from itsdangerous import BadData, URLSafeTimedSerializer

from config import get_settings
from errors import Unauthenticated, Unauthorized

# bcrypt rejects longer input.
MAX_PASSWORD_BYTES = 72


@dataclass(frozen=True)
class Identity:
    id: int
    username: str


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="auth-token")


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    rounds = rounds or get_settings().bcrypt_rounds
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if password_too_long(password):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def issue_token(
    user_id: int,
    username: str,
    max_age_secs: Optional[int] = None,
    now: Optional[float] = None,
) -> str:
    settings = get_settings()
    max_age_secs = (
        settings.token_max_age_secs if max_age_secs is None else max_age_secs
    )
    timestamp = int(now if now is not None else time.time())
    token_data = {
        "id": user_id,
        "username": username,
        "iat": timestamp,
        "exp": timestamp + max_age_secs,
    }
    return _serializer().dumps(token_data)


def decode_token(token: Optional[str], now: Optional[float] = None) -> Identity:
    if not token:
        raise Unauthenticated("No authentication token provided")

    try:
        data = _serializer().loads(token)
    except BadData as exc:
        raise Unauthorized("Invalid or expired token") from exc

    if not isinstance(data, dict) or "id" not in data or "username" not in data:
        raise Unauthorized("Invalid or expired token")

    current_time = now if now is not None else time.time()
    if current_time > data.get("exp", 0):
        raise Unauthorized("Invalid or expired token")

    return Identity(id=int(data["id"]), username=str(data["username"]))


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        raise Unauthorized("Invalid or expired token")
    return credentials.strip()
