"""Email service factory and templated sending."""

from typing import Any

import aiosmtplib

from app.core.app_exceptions import EmailDeliveryFailed
from app.core.config import settings
from app.core.logging import get_logger
from app.email.templates import render_template
from app.services.email.base import EmailProvider
from app.services.email.console import ConsoleEmailProvider
from app.services.email.smtp import SMTPEmailProvider

logger = get_logger(__name__)

# Global email service instance
_email_service: EmailProvider | None = None


def get_email_service() -> EmailProvider:
    """
    Get the email service provider.

    Returns:
        EmailProvider instance
    """
    global _email_service

    if _email_service is not None:
        return _email_service

    backend = settings.EMAIL_BACKEND.lower()

    if backend == "smtp":
        _email_service = SMTPEmailProvider(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            from_email=settings.EMAIL_FROM,
            username=settings.EMAIL_USERNAME,
            password=settings.EMAIL_PASSWORD,
            use_tls=settings.EMAIL_USE_TLS,
            use_ssl=settings.EMAIL_USE_SSL,
        )
        logger.info(f"Email service initialized: SMTP ({settings.EMAIL_HOST}:{settings.EMAIL_PORT})")
    else:
        _email_service = ConsoleEmailProvider()
        logger.info("Email service initialized: Console")

    return _email_service


def set_email_service(provider: EmailProvider | None) -> None:
    """Replace the process-wide provider (None resets to configuration)."""
    global _email_service
    _email_service = provider


async def send_templated_email(to: str, template_name: str, data: dict[str, Any]) -> str:
    """
    Render a named template and deliver it.

    Delivery failure is fatal to the calling request: verification codes
    and links must never be silently lost.

    Raises:
        EmailDeliveryFailed: the provider could not deliver the message
    """
    subject, body_text, body_html = render_template(template_name, data)
    service = get_email_service()
    try:
        return await service.send(
            to=to,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            meta={"template": template_name},
        )
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.error(
            "Email delivery failed",
            extra={"email_to": to, "email_template": template_name, "error": str(e)},
        )
        raise EmailDeliveryFailed() from e
