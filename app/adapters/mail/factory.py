"""Factory for creating the configured mailer."""

from app.adapters.mail.base import AbstractAuthMailer
from app.adapters.mail.log_mailer import LoggingAuthMailer
from app.core.config import MailSettings, settings
from app.core.errors import ValidationAppError


def create_mailer(mail_settings: MailSettings | None = None) -> AbstractAuthMailer:
    """Instantiate the mailer for ``MAIL_PROVIDER``.

    Raises:
        ValidationAppError: If the provider is unknown.
    """
    cfg = mail_settings or settings.mail
    provider = cfg.provider.lower()

    if provider == "log":
        return LoggingAuthMailer(from_address=cfg.from_address)

    raise ValidationAppError(
        code="mail_unknown_provider",
        message=f"Unknown mail provider: '{provider}'. Supported providers: log",
        details={"provider": provider},
    )
