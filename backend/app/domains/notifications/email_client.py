"""
Transactional email API client.

Posts messages to an HTTP email API (Resend-compatible: JSON body with
from/to/subject/html/text, bearer API key, response carries the message id).
With no API key configured the client only logs the message, which is the
normal mode for local development and tests.
"""
import logging
from dataclasses import dataclass

import httpx

from app.core.config import settings
from app.core.exceptions import NotificationFailure

logger = logging.getLogger(__name__)

MOCKED_MESSAGE_ID = "mocked"


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


class EmailClient:
    """
    Client for the outbound email API.

    Usage:
        with EmailClient() as client:
            message_id = client.send(EmailMessage(to=..., subject=..., html=..., text=...))
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        sender: str | None = None,
        timeout: float | None = None,
    ):
        self.api_url = api_url or settings.EMAIL_API_URL
        self.api_key = api_key if api_key is not None else settings.EMAIL_API_KEY
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout or settings.EMAIL_TIMEOUT
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "EmailClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def is_mocked(self) -> bool:
        return not self.api_key

    def send(self, message: EmailMessage) -> str:
        """
        Send one email.

        Returns:
            The provider's message id ("mocked" when no API key is configured)

        Raises:
            NotificationFailure: If the API rejects the message or is unreachable
        """
        if self.is_mocked:
            logger.info(f"Email API key not configured, not sending '{message.subject}' to {message.to}")
            logger.debug(message.text)
            return MOCKED_MESSAGE_ID

        try:
            client = self._get_client()
            response = client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": message.to,
                    "subject": message.subject,
                    "html": message.html,
                    "text": message.text,
                },
            )
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"Email API HTTP error sending to {message.to}: {e}")
            raise NotificationFailure(f"Email API returned status {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Email API request error sending to {message.to}: {e}")
            raise NotificationFailure(f"Failed to connect to email API: {e}") from e
        except ValueError as e:
            logger.error(f"Email API returned invalid JSON for {message.to}: {e}")
            raise NotificationFailure(f"Invalid response from email API: {e}") from e

        message_id = data.get("id")
        if not message_id:
            raise NotificationFailure("Email API response did not include a message id")
        return message_id


# Default client instance (lazy initialization)
_default_client: EmailClient | None = None


def get_email_client() -> EmailClient:
    """Get the default email client instance."""
    global _default_client
    if _default_client is None:
        _default_client = EmailClient()
    return _default_client
