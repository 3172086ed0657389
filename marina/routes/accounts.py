from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_bearer_token, get_session_user, require_roles
from ..db import get_db
from ..models.models import Account, ROLE_DOCK_MANAGER, ROLE_SUPERADMIN
from ..schemas.auth import AccountActionResponse, MeResponse, SessionResponse, SetPasswordRequest
from ..services.account_admin_client import AccountAdminClient, get_account_admin_client
from ..services.errors import InvalidRequest
from ..services.identity import reconcile_account
from ..services.lookup import get_account


router = APIRouter(tags=["accounts"])


def _me(account: Account) -> MeResponse:
    data = MeResponse.model_validate(account)
    data.managed_dock_ids = [d.id for d in account.managed_docks]
    return data


@router.get("/auth/me", response_model=MeResponse)
def me(account: Account = Depends(get_session_user)):
    return _me(account)


@router.post("/auth/session", response_model=SessionResponse)
def start_session(db: Session = Depends(get_db), account: Account = Depends(get_session_user)):
    """Called by the client right after sign-in: stamps the login and links matching ledger entries."""
    account.last_login_at = datetime.utcnow()
    db.commit()
    new_links = reconcile_account(db, account)
    db.refresh(account)
    return {"account": _me(account), "new_links": new_links}


@router.post("/accounts/{account_id}/approve", response_model=AccountActionResponse)
def approve_account(
    account_id: str,
    db: Session = Depends(get_db),
    me: Account = Depends(require_roles(ROLE_DOCK_MANAGER, ROLE_SUPERADMIN)),
    token: str = Depends(get_bearer_token),
    client: AccountAdminClient = Depends(get_account_admin_client),
):
    account = get_account(db, account_id)
    result = client.approve_user(token, str(account.id))
    if result.success:
        account.approved = True
        db.commit()
    return {"success": result.success, "error": result.error}


@router.post("/accounts/{account_id}/password", response_model=AccountActionResponse)
def set_account_password(
    account_id: str,
    body: SetPasswordRequest,
    db: Session = Depends(get_db),
    me: Account = Depends(require_roles(ROLE_SUPERADMIN)),
    token: str = Depends(get_bearer_token),
    client: AccountAdminClient = Depends(get_account_admin_client),
):
    account = get_account(db, account_id)
    result = client.set_password(token, str(account.id), body.new_password)
    return {"success": result.success, "error": result.error}


@router.delete("/accounts/{account_id}", response_model=AccountActionResponse)
def delete_account(
    account_id: str,
    db: Session = Depends(get_db),
    me: Account = Depends(require_roles(ROLE_SUPERADMIN)),
    token: str = Depends(get_bearer_token),
    client: AccountAdminClient = Depends(get_account_admin_client),
):
    account = get_account(db, account_id)
    if account.id == me.id:
        raise InvalidRequest("You cannot delete your own account.")
    result = client.delete_user(token, str(account.id))
    if result.success:
        account.is_active = False
        db.commit()
    return {"success": result.success, "error": result.error}
