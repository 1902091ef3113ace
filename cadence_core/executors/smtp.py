"""SMTP email executor."""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib
import structlog

from ..config import SmtpConfig
from ..flows.base import ActionPayload
from .base import ActionExecutor

logger = structlog.get_logger(__name__)


class SmtpEmailExecutor(ActionExecutor):
    """
    Sends action payloads as HTML email.

    An empty recipient falls back to ``default_recipient``; with neither,
    the send fails.
    """

    def __init__(self, config: SmtpConfig):
        self.config = config

    def resolve_recipient(self, payload: ActionPayload) -> Optional[str]:
        return payload.recipient or self.config.default_recipient

    def build_message(self, payload: ActionPayload, recipient: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = payload.subject
        message["From"] = self.config.from_address
        message["To"] = recipient
        message.attach(MIMEText(payload.body, "html"))
        return message

    async def execute(self, payload: ActionPayload) -> bool:
        recipient = self.resolve_recipient(payload)
        if not recipient:
            logger.error("email_no_recipient", subject=payload.subject)
            return False

        message = self.build_message(payload, recipient)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.config.host,
                port=self.config.port,
                username=self.config.username,
                password=self.config.password,
                use_tls=self.config.use_tls,
                start_tls=self.config.start_tls if not self.config.use_tls else False,
            )
        except aiosmtplib.SMTPException as e:
            logger.error("email_send_failed", recipient=recipient, error=str(e))
            return False

        logger.info("email_sent", recipient=recipient, subject=payload.subject)
        return True


__all__ = ["SmtpEmailExecutor"]
