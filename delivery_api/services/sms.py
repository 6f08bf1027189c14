"""
Outbound SMS through Twilio's REST API.

NullSmsClient stands in when Twilio credentials are absent so delivery
notifications still run (in-app only) in development.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from delivery_api.core.errors import DomainError, ExternalServiceError
from delivery_api.core.settings import AppSettings, get_app_settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
SMS_TIMEOUT_SECONDS = 10.0

_NON_DIGITS = re.compile(r"\D")


@dataclass
class SmsResult:
    sid: Optional[str]
    status: str


class SmsClient(Protocol):
    async def send(self, to: str, body: str) -> SmsResult: ...


# PUBLIC_INTERFACE
def normalize_phone(raw: Optional[str]) -> str:
    """
    Return an E.164 number.

    10-digit US numbers get +1, 11-digit numbers starting with 1 get +,
    '+'-prefixed numbers keep their digits. Anything else raises DomainError.
    """
    value = (raw or "").strip()
    digits = _NON_DIGITS.sub("", value)
    if value.startswith("+") and 8 <= len(digits) <= 15:
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    raise DomainError(f"Invalid phone number: {raw!r}")


def _error_reason(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"http_{int(response.status_code)}"


class TwilioSmsClient:
    """Send messages with the Messages resource using account SID/auth token basic auth."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._transport = transport

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"

    # PUBLIC_INTERFACE
    async def send(self, to: str, body: str) -> SmsResult:
        """POST one message; non-2xx responses raise ExternalServiceError."""
        recipient = normalize_phone(to)
        async with httpx.AsyncClient(
            timeout=SMS_TIMEOUT_SECONDS,
            auth=(self.account_sid, self.auth_token),
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    self.messages_url,
                    data={"To": recipient, "From": self.from_number, "Body": body},
                )
            except httpx.HTTPError as exc:
                logger.error("Twilio request failed: %s", exc)
                raise ExternalServiceError("SMS provider unreachable") from exc

        if response.status_code >= 300:
            reason = _error_reason(response)
            logger.error("Twilio rejected message to %s: %s", recipient, reason)
            raise ExternalServiceError(
                "SMS provider rejected the message",
                details={"status": response.status_code, "reason": reason},
            )

        payload = response.json()
        return SmsResult(sid=payload.get("sid"), status=payload.get("status", "queued"))


class NullSmsClient:
    """Logs instead of sending."""

    async def send(self, to: str, body: str) -> SmsResult:
        logger.info("SMS not configured; skipping message to %s", to)
        return SmsResult(sid=None, status="skipped")


# PUBLIC_INTERFACE
def get_sms_client(settings: Optional[AppSettings] = None) -> SmsClient:
    """Twilio when fully configured, otherwise the logging stand-in."""
    settings = settings or get_app_settings()
    if settings.twilio_configured:
        return TwilioSmsClient(
            settings.TWILIO_ACCOUNT_SID,  # type: ignore[arg-type]
            settings.TWILIO_AUTH_TOKEN,  # type: ignore[arg-type]
            settings.TWILIO_FROM_NUMBER,  # type: ignore[arg-type]
        )
    return NullSmsClient()
