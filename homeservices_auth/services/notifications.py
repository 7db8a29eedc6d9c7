"""
Outbound account notifications.

The credential services depend only on the NotificationDispatcher protocol.
BrevoNotificationDispatcher delivers plain-text mail through Brevo's
transactional email API; message templating lives outside this package.
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from fastapi import status as http_status
import httpx

from homeservices_auth.config import notification_logger, settings
from homeservices_auth.enums import OTPPurpose
from homeservices_auth.exceptions.types import NotificationException
from homeservices_auth.utils import mask_email


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def send_otp(
        self, email: str, username: str, code: str, purpose: OTPPurpose
    ) -> None: ...

    async def send_password_reset(
        self, email: str, username: str, token: str, link: str
    ) -> None: ...

    async def send_welcome(self, email: str, username: str) -> None: ...

    async def send_lockout_notice(
        self, email: str, username: str, until: datetime
    ) -> None: ...

    async def send_password_changed_notice(self, email: str, username: str) -> None: ...


_OTP_SUBJECTS: dict[OTPPurpose, str] = {
    OTPPurpose.LOGIN: "Your sign-in code",
    OTPPurpose.PASSWORD_RESET: "Your password reset code",
    OTPPurpose.EMAIL_VERIFICATION: "Verify your email address",
    OTPPurpose.TWO_FACTOR_AUTH: "Your two-factor authentication code",
}


class BrevoNotificationDispatcher:
    """
    NotificationDispatcher backed by the Brevo ``/smtp/email`` endpoint.

    Transient failures (5xx, 429, timeouts, transport errors) are retried
    with jittered exponential backoff up to ``max_attempts``; other 4xx
    responses fail at once. Every terminal failure raises
    NotificationException.
    """

    _BACKOFF_MAX: float = 60.0
    _JITTER: float = 0.2  # +/-20%

    def __init__(
        self,
        api_key: str | None = None,
        sender_email: str | None = None,
        sender_name: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 3,
        backoff_base: float = 3.0,
        logger: logging.Logger | None = None,
    ):
        self.api_key = api_key or settings.BREVO_API_KEY
        self.sender_email = sender_email or settings.BREVO_SENDER_EMAIL
        self.sender_name = sender_name or settings.BREVO_SENDER_NAME
        self.base_url = base_url or settings.BREVO_BASE_URL
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.logger = logger or notification_logger
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(30.0),
            )
            self.logger.info("Brevo HTTP client initialized")
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            finally:
                self._client = None
                self.logger.info("Brevo HTTP client closed")

    def _compute_backoff(
        self, attempt: int, err_headers: httpx.Headers | None = None
    ) -> float:
        """
        Delay before retry ``attempt`` (1-based).

        Brevo's ``x-sib-ratelimit-reset`` header wins when present and
        parseable, clamped to ``_BACKOFF_MAX``. Otherwise
        base * 2**(attempt-1), capped and jittered.
        """
        if err_headers and "x-sib-ratelimit-reset" in err_headers:
            try:
                reset = float(err_headers["x-sib-ratelimit-reset"])
                return min(max(reset, 0.0), self._BACKOFF_MAX)
            except ValueError:
                pass
        base = min(self.backoff_base * (2 ** (attempt - 1)), self._BACKOFF_MAX)
        return base * random.uniform(1 - self._JITTER, 1 + self._JITTER)

    def _headers(self) -> dict[str, str]:
        return {
            "api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _send(self, email: str, name: str, subject: str, text: str) -> None:
        payload: dict[str, Any] = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": email, "name": name}],
            "subject": subject,
            "textContent": text,
        }
        client = self._get_client()
        target = mask_email(email)

        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = await client.post(
                    "/smtp/email", json=payload, headers=self._headers()
                )
                resp.raise_for_status()
                self.logger.info(f"Email sent: to={target}, subject={subject!r}")
                return

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                retriable = status == 429 or 500 <= status < 600
                if not retriable:
                    self.logger.error(f"Brevo rejected email to {target}: {status}")
                    raise NotificationException(
                        f"Email provider rejected the message ({status})."
                    ) from exc

                wait = self._compute_backoff(
                    attempt, exc.response.headers if status == 429 else None
                )
                self.logger.warning(
                    f"Brevo returned {status}; attempt {attempt}/{self.max_attempts}; "
                    f"wait={wait:.1f}s"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(wait)
                    continue
                self.logger.error(f"Email to {target} failed after retries: {status}")
                raise NotificationException(
                    f"Email provider unavailable after retries ({status}).",
                    status_code=(
                        http_status.HTTP_429_TOO_MANY_REQUESTS
                        if status == 429
                        else http_status.HTTP_502_BAD_GATEWAY
                    ),
                ) from exc

            except (httpx.TimeoutException, httpx.TransportError) as exc:
                wait = self._compute_backoff(attempt)
                self.logger.warning(
                    f"Timeout/transport error; attempt {attempt}/{self.max_attempts}; "
                    f"wait={wait:.1f}s; err={type(exc).__name__}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(wait)
                    continue
                raise NotificationException(
                    "Email provider unreachable.",
                    status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
                ) from exc

    async def send_otp(
        self, email: str, username: str, code: str, purpose: OTPPurpose
    ) -> None:
        await self._send(
            email,
            username,
            _OTP_SUBJECTS[purpose],
            f"Hello {username},\n\nYour code is {code}. "
            f"Do not share it with anyone.\n",
        )

    async def send_password_reset(
        self, email: str, username: str, token: str, link: str
    ) -> None:
        await self._send(
            email,
            username,
            _OTP_SUBJECTS[OTPPurpose.PASSWORD_RESET],
            f"Hello {username},\n\nUse the code {token} to reset your password, "
            f"or open {link}\n\nIf you did not ask for a reset, ignore this email.\n",
        )

    async def send_welcome(self, email: str, username: str) -> None:
        await self._send(
            email,
            username,
            f"Welcome to {settings.APP_NAME}",
            f"Hello {username},\n\nYour account has been created.\n",
        )

    async def send_lockout_notice(
        self, email: str, username: str, until: datetime
    ) -> None:
        await self._send(
            email,
            username,
            "Your account has been locked",
            f"Hello {username},\n\nToo many failed sign-in attempts. Your account "
            f"is locked until {until.strftime('%Y-%m-%d %H:%M UTC')}.\n",
        )

    async def send_password_changed_notice(self, email: str, username: str) -> None:
        await self._send(
            email,
            username,
            "Your password was changed",
            f"Hello {username},\n\nYour password was just changed. If this was "
            f"not you, reset it immediately.\n",
        )


__all__ = ["BrevoNotificationDispatcher", "NotificationDispatcher"]
