from abc import ABC, abstractmethod


class AbstractAuthMailer(ABC):
	"""Interface for sending authentication emails."""

	@abstractmethod
	async def send_password_reset(
		self,
		*,
		user_email: str,
		user_name: str,
		reset_link: str,
		login_url: str,
		ip_address: str,
	) -> None:
		"""Send a password reset email.

		Args:
			user_email: Recipient address.
			user_name: Display name used in the greeting.
			reset_link: One-time link to the reset form.
			login_url: Link back to the login page.
			ip_address: Address the request came from, shown for security.

		Raises:
			MailDeliveryAppError: If the provider rejects or cannot take the message.
		"""
		...

	@abstractmethod
	async def send_verification(
		self,
		*,
		user_email: str,
		user_name: str,
		verification_link: str,
		login_url: str,
	) -> None:
		"""Send an email address verification message.

		Raises:
			MailDeliveryAppError: If the provider rejects or cannot take the message.
		"""
		...
