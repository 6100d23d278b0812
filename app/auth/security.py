from datetime import datetime, timedelta, timezone
import hashlib
import secrets
import time
from typing import Dict, Optional

import bcrypt
from jose import jwt

from app.core.config import settings


def hash_password(plain_password: str) -> str:
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # In case the stored hash is invalid/corrupted
        return False


def create_access_token(
    *, subject: Dict, expires_minutes: Optional[int] = None
) -> str:
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes

    to_encode = subject.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )
    return encoded_jwt


def decode_access_token(token: str) -> Dict:
    """Raises jose.JWTError on bad signature or expiry."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def generate_scan_code(*parts: object) -> str:
    """16 hex chars of sha256 over the identifying fields, the current time in ms and a nonce."""
    data = "-".join(str(p) for p in parts) + f"-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:16]


def default_student_password(student_number: str) -> str:
    return f"student{student_number}"
