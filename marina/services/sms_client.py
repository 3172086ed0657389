"""
46elks SMS gateway client.
One call per recipient; failures are reported per recipient and never retried.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Union

import httpx
import structlog

from ..config import settings
from .phone import to_e164


logger = structlog.get_logger(__name__)


@dataclass
class SmsResult:
    to: str
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


class SmsGateway(Protocol):
    def send(self, destination: Union[str, Sequence[str]], message: str) -> List[SmsResult]:
        ...


class ElksSmsGateway:
    """Client for the 46elks SMS API"""

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.username = username or settings.elks_username
        self.password = password or settings.elks_password
        self.sender = sender or settings.sms_sender
        self.api_url = api_url or settings.elks_api_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

        if not self.username or not self.password:
            raise ValueError("46elks credentials are required (ELKS_USERNAME, ELKS_PASSWORD)")

    def send(self, destination: Union[str, Sequence[str]], message: str) -> List[SmsResult]:
        recipients = [destination] if isinstance(destination, str) else list(destination)
        results: List[SmsResult] = []
        with httpx.Client(timeout=self.timeout, auth=(self.username, self.password), transport=self.transport) as client:
            for recipient in recipients:
                results.append(self._send_one(client, to_e164(recipient), message))
        return results

    def _send_one(self, client: httpx.Client, to: str, message: str) -> SmsResult:
        try:
            response = client.post(
                self.api_url,
                data={"from": self.sender, "to": to, "message": message},
            )
        except httpx.HTTPError as e:
            logger.warning("sms_transport_error", to=to, error=str(e))
            return SmsResult(to=to, success=False, error=str(e))

        if response.status_code >= 400:
            error = f"HTTP {response.status_code}: {response.text}"
            logger.warning("sms_rejected", to=to, error=error)
            return SmsResult(to=to, success=False, error=error)

        try:
            sms_id = response.json().get("id")
        except ValueError:
            sms_id = None
        return SmsResult(to=to, success=True, id=sms_id)


_gateway: Optional[SmsGateway] = None


def get_sms_gateway() -> Optional[SmsGateway]:
    """Configured gateway, or None when SMS is disabled or not configured."""
    global _gateway
    if not settings.enable_sms:
        return None
    if _gateway is None:
        try:
            _gateway = ElksSmsGateway()
        except ValueError as e:
            logger.warning("sms_gateway_unavailable", error=str(e))
            return None
    return _gateway
