from datetime import datetime, timedelta, timezone
from jose import jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ROLES = ("ADMIN", "RECRUITER", "CANDIDATE")

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm="HS256")

def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])

def create_access_token(user_id: str, role: str, email: str | None = None, expires_delta: timedelta | None = None) -> str:
    payload = {"sub": str(user_id), "role": str(role).upper()}
    if email:
        payload["email"] = email
    return create_jwt(payload, settings.JWT_SECRET, expires_delta or timedelta(minutes=settings.JWT_TTL_MINUTES))
