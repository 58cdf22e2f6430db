from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import InvalidToken


class PasswordHasher:
    """Salted bcrypt hashing with a constant-time verify."""

    def __init__(self, rounds: int = 10):
        self.pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        if not hashed_password:
            self.pwd_context.dummy_verify()
            return False
        return self.pwd_context.verify(plain_password, hashed_password)

    def dummy_verify(self) -> None:
        # Same cost as a real verify, for lookups that found no user.
        self.pwd_context.dummy_verify()


class TokenIssuer:
    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24):
        if not secret_key:
            raise ValueError("A JWT secret is required")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=self.expire_minutes))
        to_encode = {
            "userId": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> str:
        """Return the user id carried by ``token`` or raise InvalidToken."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise InvalidToken("Invalid token")
        user_id = payload.get("userId")
        if not isinstance(user_id, str) or not ObjectId.is_valid(user_id):
            raise InvalidToken("Invalid token")
        return user_id


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
