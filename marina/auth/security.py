import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import Account


http_bearer = HTTPBearer(auto_error=False)


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token


def create_access_token(account_id: str, role: Optional[str] = None) -> str:
    # Tokens are normally minted by the auth service; this is for scripts and tests.
    return _create_token(str(account_id), settings.jwt_ttl_seconds, extra={"role": role} if role else None)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_bearer_token(creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)) -> str:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return creds.credentials


def _load_account(token: str, db: Session) -> Account:
    payload = decode_token(token)
    account_id_raw = payload.get("sub")
    try:
        account_uuid = uuid.UUID(str(account_id_raw))
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    account = db.query(Account).filter(Account.id == account_uuid).first()
    if account is None or not account.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account not active")
    return account


def get_session_user(
    token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> Account:
    """Authenticated account, approved or not."""
    return _load_account(token, db)


def get_current_user(account: Account = Depends(get_session_user)) -> Account:
    # approved=None is a legacy account and counts as approved
    if account.approved is False:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account awaiting approval")
    return account


def require_roles(*allowed_roles: str):
    """Require one of the given roles."""
    def _dep(account: Account = Depends(get_current_user)):
        if account.role not in allowed_roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return account

    return _dep
