"""Outbound email dispatch."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout

from quizduel.config import get_settings

logger = logging.getLogger(__name__)


class EmailDispatcher(ABC):
    """Send a plain-text email. Returns True when the provider accepted it."""

    @abstractmethod
    async def send(self, email: str, subject: str, body: str) -> bool:
        ...

    async def close(self) -> None:
        return None


class LoggingEmailDispatcher(EmailDispatcher):
    """Dispatcher used when no email provider is configured."""

    async def send(self, email, subject, body):
        logger.info(f"Email to {email}: {subject}\n{body}")
        return True


class HttpEmailDispatcher(EmailDispatcher):
    """
    Client for an HTTP email provider.

    Session is created lazily on first use and should be closed on shutdown.
    """

    def __init__(self, api_url: str, api_key: str, sender: str, timeout_seconds: int = 15):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            logger.debug("Created new aiohttp session for email client")

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed aiohttp session for email client")
            self._session = None

    async def send(self, email, subject, body):
        await self._ensure_session()
        payload = {
            "from": self.sender,
            "to": [email],
            "subject": subject,
            "text": body,
        }

        try:
            async with self._session.post(self.api_url, json=payload) as response:
                if response.status < 300:
                    return True
                error_text = await response.text()
                logger.error(f"Email provider error {response.status} for {email}: {error_text}")
                return False
        except asyncio.TimeoutError:
            logger.error(f"Email provider timeout for {email}")
            return False
        except ClientError as e:
            logger.error(f"Email provider client error for {email}: {e}")
            return False


_dispatcher: Optional[EmailDispatcher] = None


def get_email_dispatcher() -> EmailDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        if settings.email_api_url:
            _dispatcher = HttpEmailDispatcher(
                settings.email_api_url,
                settings.email_api_key,
                settings.email_sender,
                settings.email_timeout_seconds,
            )
        else:
            _dispatcher = LoggingEmailDispatcher()
            logger.info("Email provider not configured, challenge emails will be logged")
    return _dispatcher


async def close_email_dispatcher() -> None:
    global _dispatcher
    if _dispatcher is not None:
        await _dispatcher.close()
        _dispatcher = None
