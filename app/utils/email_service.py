from datetime import datetime
from app.models.event import Event
from app.models.user import User
from app.core.config import settings
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

logger = logging.getLogger(__name__)


class EmailService:
    def __init__(self):
        self.mode = settings.EMAIL_MODE.lower()

        if self.mode not in ["mock", "smtp"]:
            logger.warning(f"Invalid EMAIL_MODE '{self.mode}', defaulting to 'mock'")
            self.mode = "mock"

    def _send_smtp_email(
        self,
        to_email: str,
        subject: str,
        html_content: str
    ) -> bool:
        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
            msg['To'] = to_email
            msg.attach(MIMEText(html_content, 'html'))

            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
                if settings.SMTP_USE_TLS:
                    server.starttls()

                if settings.SMTP_USER:
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)

                server.send_message(msg)

            logger.info(f"SMTP email sent successfully to {to_email}")
            return True

        except Exception as e:
            logger.error(f"Failed to send SMTP email to {to_email}: {str(e)}")
            return False

    def _print_mock_email(
        self,
        to_email: str,
        subject: str,
        content: str
    ):
        email_display = f"""
==================================================================
MOCK EMAIL (Console Only)
==================================================================

TO: {to_email}
SUBJECT: {subject}

{content}

==================================================================
        """
        logger.info(f"Mock email logged for {to_email}")
        print(email_display)

    def send_waitlist_promotion(
        self,
        user: User,
        event: Event,
        expires_at: datetime
    ) -> bool:
        """
        Tell a waitlisted user that a slot is being held for them.

        Args:
            user: The user who received the offer
            event: The event the slot belongs to
            expires_at: UTC time after which the offer lapses

        Returns:
            bool: True if email sent successfully
        """
        expiry_text = expires_at.strftime('%B %d, %Y %I:%M %p UTC')

        subject = f"A spot opened up - {event.title}"

        content = f"""
Hi {user.name},

A spot has opened up for {event.title} and it is being held for you.

Accept the offer before {expiry_text} to confirm your sign-up.
If you do not respond in time, the spot goes to the next person on the waitlist.

- CCA Events
        """

        if self.mode == "smtp":
            html_content = f"""
            <html>
            <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
                {content.replace(chr(10), '<br>')}
            </body>
            </html>
            """
            return self._send_smtp_email(user.email, subject, html_content)
        else:
            self._print_mock_email(user.email, subject, content)
            return True
