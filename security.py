from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from config import Settings
from errors import AuthenticationError, ConfigurationError, SecretNotAvailableError


class PasswordHasher:
    """Salted bcrypt hashing with a fixed work factor"""

    def __init__(self, rounds: int = 10):
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    def hash(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        return self.pwd_context.verify(plain_password, hashed_password)

    def verify_user(self, plain_password: str, user: Mapping[str, Any]) -> bool:
        """Check a candidate password against a stored user document.

        The document must have been loaded with its ``password`` field; a
        projection that dropped it is a programming error, not a mismatch.
        """
        hashed = user.get("password")
        if not hashed:
            raise SecretNotAvailableError()
        return self.verify(plain_password, hashed)


class TokenService:
    """Issues and verifies signed, time-boxed bearer tokens.

    Only the subject claim is trusted on the way back in; role and profile
    are re-read from the user store on every request.
    """

    def __init__(self, secret_key: Optional[str], algorithm: str = "HS256", expire_days: int = 30):
        if not secret_key or not secret_key.strip():
            raise ConfigurationError("JWT_SECRET_KEY is not configured")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.expires_delta = timedelta(days=expire_days)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            expire_days=settings.ACCESS_TOKEN_EXPIRE_DAYS,
        )

    def issue(self, user_id: str, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        to_encode: Dict[str, Any] = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + self.expires_delta,
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> str:
        """Return the subject id, or raise AuthenticationError"""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except (ExpiredSignatureError, JWTError):
            raise AuthenticationError("Invalid token")

        user_id = payload.get("sub")
        if not user_id or not isinstance(user_id, str):
            raise AuthenticationError("Invalid token")
        return user_id
