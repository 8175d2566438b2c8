import uuid
import jwt
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import config
from .errors import OwnershipDenied

security = HTTPBearer(auto_error=False)

def normalize_identity(identity: str) -> str:
    return identity.strip().lower()

def is_operator(identity: str) -> bool:
    return normalize_identity(identity) == config.OPERATOR_IDENTITY

def new_guest_identity() -> str:
    return f"guest-{uuid.uuid4().hex}"

def create_access_token(identity: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": normalize_identity(identity),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=config.JWT_EXPIRE_MIN)).timestamp()),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALG)

# Dependency resolving the bearer token to the caller's identity
def get_current_identity(creds: HTTPAuthorizationCredentials | None = Depends(security)) -> str:
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    try:
        payload = jwt.decode(creds.credentials, config.JWT_SECRET, algorithms=[config.JWT_ALG])
        return normalize_identity(payload["sub"])
    except (jwt.PyJWTError, KeyError, AttributeError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

def require_operator(identity: str = Depends(get_current_identity)) -> str:
    if not is_operator(identity):
        raise OwnershipDenied("Forbidden: operator access required", reason="operator_only")
    return identity
