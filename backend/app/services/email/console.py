"""Console email provider (fallback for local dev)."""

import uuid

from app.core.logging import get_logger
from app.services.email.base import EmailProvider

logger = get_logger(__name__)


class ConsoleEmailProvider(EmailProvider):
    """Console email provider - logs emails instead of delivering them."""

    async def send(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: str | None = None,
        meta: dict | None = None,
    ) -> str:
        """Log email to console."""
        message_id = f"console:{uuid.uuid4()}"
        logger.info(
            "EMAIL (Console Provider)",
            extra={
                "email_to": to,
                "email_subject": subject,
                "email_body_text": body_text,
                "email_template": (meta or {}).get("template"),
                "message_id": message_id,
            },
        )
        return message_id
