"""
Client for the privileged account-lifecycle endpoints (approve, set password,
delete). Their internals belong to the auth service; we only call them and
interpret {success, error}.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from ..config import settings


logger = structlog.get_logger(__name__)


@dataclass
class AccountAdminResult:
    success: bool
    error: Optional[str] = None


class AccountAdminClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or settings.account_admin_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    def _call(self, endpoint: str, bearer_token: str, body: Dict[str, Any]) -> AccountAdminResult:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = {"Authorization": f"Bearer {bearer_token}"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("account_admin_unreachable", endpoint=endpoint, error=str(e))
            return AccountAdminResult(success=False, error=f"Account service unreachable: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or not data.get("success", False):
            error = data.get("error")
            if not error and data.get("errors"):
                error = "; ".join(str(e) for e in data["errors"])
            error = error or f"HTTP {response.status_code}"
            logger.warning("account_admin_failed", endpoint=endpoint, status=response.status_code, error=error)
            return AccountAdminResult(success=False, error=error)
        return AccountAdminResult(success=True)

    def approve_user(self, bearer_token: str, uid: str) -> AccountAdminResult:
        return self._call("approveUser", bearer_token, {"uid": uid})

    def set_password(self, bearer_token: str, uid: str, new_password: str) -> AccountAdminResult:
        return self._call("setUserPassword", bearer_token, {"uid": uid, "newPassword": new_password})

    def delete_user(self, bearer_token: str, uid: str) -> AccountAdminResult:
        return self._call("deleteUser", bearer_token, {"uid": uid})


def get_account_admin_client() -> AccountAdminClient:
    return AccountAdminClient()
