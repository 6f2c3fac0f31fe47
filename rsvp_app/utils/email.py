import os
import logging
from typing import Optional
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

logger = logging.getLogger(__name__)


class EmailService:
    """SendGrid delivery, configured from SENDGRID_API_KEY / SENDGRID_FROM_EMAIL"""

    def __init__(
        self,
        client: Optional[SendGridAPIClient] = None,
        from_email: Optional[str] = None,
    ):
        self.from_email = from_email or os.getenv("SENDGRID_FROM_EMAIL")
        self.client = client

        if self.client is None:
            api_key = os.getenv("SENDGRID_API_KEY")
            if api_key:
                self.client = SendGridAPIClient(api_key=api_key)
            else:
                logger.warning("SendGrid API key not configured. Email notifications disabled.")

    def is_configured(self) -> bool:
        return bool(self.client and self.from_email)

    def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """Send an email; returns False when it could not be delivered"""
        if not self.is_configured():
            logger.error("SendGrid not configured. Cannot send email.")
            return False

        message = Mail(
            from_email=self.from_email,
            to_emails=to_email,
            subject=subject,
            html_content=html_content,
        )

        try:
            response = self.client.send(message)
        except Exception as e:
            logger.error(f"Failed to send email via SendGrid to {to_email}: {str(e)}")
            return False

        if response.status_code not in (200, 201, 202):
            logger.error(f"SendGrid API returned status code: {response.status_code}")
            return False

        logger.info(f"Email sent via SendGrid to {to_email}")
        return True

    def send_rsvp_email(
        self, host_email: str, host_name: str, event_title: str, message: str
    ) -> bool:
        """Send RSVP update email to an event host"""
        subject = f"RSVP Update: {event_title}"
        html_content = f"""
        <p>Hi {host_name},</p>
        <p>{message}</p>
        <p>Best regards,<br>Your RSVP Team</p>
        """
        return self.send_email(host_email, subject, html_content)
