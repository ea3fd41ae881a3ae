from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from app.core.config import settings
from app.core.security import ROLES, decode_jwt

bearer = HTTPBearer(auto_error=False)

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> dict:
    if not creds:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        payload = decode_jwt(creds.credentials, settings.JWT_SECRET)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    role = str(payload.get("role") or "").upper()
    if not payload.get("sub") or role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid token")
    payload["role"] = role
    return payload

def require_role(*roles: str):
    def _inner(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return _inner
