import os
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from dotenv import load_dotenv
from jose import JWTError, jwt
from passlib.context import CryptContext

load_dotenv()

# JWT settings
SECRET_KEY = os.getenv("SECRET_KEY", "temporary_dev_secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 30))  # 30 days

# Password hashing
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# PUBLIC_INTERFACE
def get_password_hash(password: str) -> str:
    """Salted one-way hash of the plain password."""
    return pwd_context.hash(password)


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Constant-time check of a password against a stored hash.
    With no stored hash a dummy verification still runs, so unknown emails
    take as long as wrong passwords.
    """
    if not hashed_password:
        pwd_context.dummy_verify()
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Generates JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta if expires_delta else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# PUBLIC_INTERFACE
class SessionRegistry:
    """
    Live sessions held in process memory, keyed by the `sid` claim of the
    issued token. A token only resolves while its session is live.
    """

    def __init__(self):
        self._sessions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def open(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        """Starts a session for user_id and returns its bearer token."""
        sid = secrets.token_urlsafe(16)
        with self._lock:
            self._sessions[sid] = user_id
        return create_access_token({"sub": user_id, "sid": sid}, expires_delta)

    def resolve(self, token: Optional[str]) -> Optional[str]:
        """User id of a live, unexpired session token, else None."""
        if not token:
            return None
        payload = decode_access_token(token)
        if payload is None:
            return None
        sid, user_id = payload.get("sid"), payload.get("sub")
        with self._lock:
            if sid is None or self._sessions.get(sid) != user_id:
                return None
        return user_id

    def revoke(self, token: Optional[str]) -> bool:
        """Ends the session behind token. Unknown or invalid tokens are ignored."""
        payload = decode_access_token(token) if token else None
        if payload is None:
            return False
        with self._lock:
            return self._sessions.pop(payload.get("sid"), None) is not None
