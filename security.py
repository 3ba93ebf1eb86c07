"""
Password hashing (bcrypt) and signed identity tokens (JWT, HS256).
"""
from datetime import timedelta
from functools import lru_cache

import bcrypt
import jwt

from database import utcnow
from errors import InvalidToken
from permissions import Identity

ALGORITHM = "HS256"


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# Compared against when the email is unknown so both login failures cost one bcrypt
# check at the configured cost.
@lru_cache(maxsize=None)
def dummy_hash(rounds: int) -> str:
    return hash_password("pawmart-dummy-password", rounds)


def burn_password_check(password: str, rounds: int = 12) -> None:
    verify_password(password, dummy_hash(rounds))


class TokenService:
    """Issues and verifies time-limited identity tokens.

    Tokens carry the user id, email and role. There is no refresh: once a
    token expires the user logs in again.
    """

    def __init__(self, secret: str, expires_days: int = 7):
        self.secret = secret
        self.expires = timedelta(days=expires_days)

    def issue(self, user: dict) -> str:
        now = utcnow()
        payload = {
            "userId": str(user["_id"]),
            "email": user["email"],
            "role": user.get("role", "buyer"),
            "iat": now,
            "exp": now + self.expires,
        }
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> Identity:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
            return Identity(user_id=payload["userId"], email=payload["email"], role=payload["role"])
        except (jwt.InvalidTokenError, KeyError) as exc:
            raise InvalidToken() from exc
