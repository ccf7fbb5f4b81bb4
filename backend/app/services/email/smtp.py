"""SMTP email provider."""

import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from app.core.logging import get_logger
from app.services.email.base import EmailProvider

logger = get_logger(__name__)


class SMTPEmailProvider(EmailProvider):
    """SMTP email provider."""

    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        use_ssl: bool = False,
    ):
        """
        Initialize SMTP provider.

        Args:
            host: SMTP server host
            port: SMTP server port
            from_email: From email address
            username: Optional SMTP login
            password: Optional SMTP password
            use_tls: Upgrade the connection with STARTTLS
            use_ssl: Connect over implicit TLS
        """
        self.host = host
        self.port = port
        self.from_email = from_email
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl

    async def send(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: str | None = None,
        meta: dict | None = None,
    ) -> str:
        """Send email via SMTP."""
        message_id = f"smtp:{uuid.uuid4()}"

        msg = MIMEMultipart("alternative")
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = f"<{message_id[5:]}@{self.host}>"

        # Add text and HTML parts
        msg.attach(MIMEText(body_text, "plain"))
        if body_html:
            msg.attach(MIMEText(body_html, "html"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.use_ssl,
                start_tls=self.use_tls,
            )
        except aiosmtplib.SMTPException as e:
            logger.error(f"Failed to send email to {to}: {str(e)}", exc_info=True)
            raise

        logger.info(f"Email sent successfully to {to}", extra={"email_to": to, "email_subject": subject})
        return message_id
