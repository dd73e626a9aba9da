"""Mailer that writes deliveries to the application log.

Used in development and as the default provider: nothing leaves the process,
but every email the service would send is visible (links redacted).
"""

import logging

from app.adapters.mail.base import AbstractAuthMailer

logger = logging.getLogger(__name__)


class LoggingAuthMailer(AbstractAuthMailer):
    """Records each email as a structured ``mail.queued`` log line."""

    def __init__(self, from_address: str) -> None:
        self.from_address = from_address

    async def send_password_reset(
        self,
        *,
        user_email: str,
        user_name: str,
        reset_link: str,
        login_url: str,
        ip_address: str,
    ) -> None:
        logger.info(
            "mail.queued",
            extra={
                "template": "reset_password",
                "mail_from": self.from_address,
                "mail_to": user_email,
                "user_name": user_name,
                "reset_link": reset_link,
                "login_url": login_url,
                "requested_from_ip": ip_address,
            },
        )

    async def send_verification(
        self,
        *,
        user_email: str,
        user_name: str,
        verification_link: str,
        login_url: str,
    ) -> None:
        logger.info(
            "mail.queued",
            extra={
                "template": "verification",
                "mail_from": self.from_address,
                "mail_to": user_email,
                "user_name": user_name,
                "verification_link": verification_link,
                "login_url": login_url,
            },
        )
