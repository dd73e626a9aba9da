"""Mail adapter layer - abstracts over transactional email providers."""

from app.adapters.mail.base import AbstractAuthMailer
from app.adapters.mail.factory import create_mailer
from app.adapters.mail.log_mailer import LoggingAuthMailer

__all__ = [
    "AbstractAuthMailer",
    "LoggingAuthMailer",
    "create_mailer",
]
