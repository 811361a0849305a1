"""
Account notification emails.

Sends are best effort: callers invoke these after their transaction has
committed, and every failure is logged and reported in the returned
NotificationResult instead of being raised.
"""
import logging
from dataclasses import dataclass
from html import escape

from app.core.config import settings
from app.core.exceptions import NotificationFailure
from app.domains.notifications.email_client import EmailClient, EmailMessage, get_email_client
from app.domains.users.roles import Role, display_name

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def login_url() -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/login"


def _credentials_email(
    to: str,
    subject: str,
    greeting_name: str,
    intro: str,
    username: str,
    temp_password: str,
) -> EmailMessage:
    url = login_url()
    text = (
        f"Hello {greeting_name},\n\n"
        f"{intro}\n\n"
        f"Username: {username}\n"
        f"Temporary password: {temp_password}\n\n"
        f"Sign in at {url} and change your password after your first login.\n"
    )
    html = (
        f"<p>Hello {escape(greeting_name)},</p>"
        f"<p>{escape(intro)}</p>"
        f"<p>Username: <strong>{escape(username)}</strong><br>"
        f"Temporary password: <strong>{escape(temp_password)}</strong></p>"
        f'<p><a href="{escape(url)}">Sign in</a> and change your password after your first login.</p>'
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def _deliver(message: EmailMessage, client: EmailClient | None) -> NotificationResult:
    client = client or get_email_client()
    try:
        message_id = client.send(message)
    except NotificationFailure as e:
        logger.error(f"Failed to send '{message.subject}' to {message.to}: {e}")
        return NotificationResult(success=False, error=str(e))
    except Exception as e:
        logger.error(f"Unexpected error sending '{message.subject}' to {message.to}: {e}")
        return NotificationResult(success=False, error=str(e))

    logger.info(f"Sent '{message.subject}' to {message.to} ({message_id})")
    return NotificationResult(success=True, message_id=message_id)


def send_temporary_password_email(
    to: str,
    admin_name: str,
    customer_name: str,
    username: str,
    temp_password: str,
    client: EmailClient | None = None,
) -> NotificationResult:
    """Credentials for a newly created customer admin."""
    message = _credentials_email(
        to=to,
        subject=f"Welcome to Interex - Your Customer Admin Access for {customer_name}",
        greeting_name=admin_name,
        intro=f"An administrator account has been created for you at {customer_name}.",
        username=username,
        temp_password=temp_password,
    )
    return _deliver(message, client)


def send_user_registration_email(
    to: str,
    user_name: str,
    user_role: Role | str,
    customer_name: str,
    username: str,
    temp_password: str,
    provider_group_name: str | None = None,
    client: EmailClient | None = None,
) -> NotificationResult:
    """Credentials for any other newly created user."""
    role_label = display_name(user_role)
    intro = f"A {role_label} account has been created for you at {customer_name}"
    if provider_group_name:
        intro += f" in the {provider_group_name} provider group"
    message = _credentials_email(
        to=to,
        subject=f"Welcome to Interex - Your {role_label} Account for {customer_name}",
        greeting_name=user_name,
        intro=f"{intro}.",
        username=username,
        temp_password=temp_password,
    )
    return _deliver(message, client)
