import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from settings import MAIL_FROM, PUBLIC_BASE_URL, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USER

logger = logging.getLogger("careercoach.mail")


class MailDeliveryError(Exception):
    pass


def verification_url(token: str, base_url: str = PUBLIC_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/newsletter/verify?token={token}"


def render_verification_email(email: str, first_name: Optional[str], token: str) -> EmailMessage:
    url = verification_url(token)
    msg = EmailMessage()
    msg["Subject"] = "Confirm your newsletter subscription"
    msg["From"] = f"CareerCoach Newsletter <{MAIL_FROM}>"
    msg["To"] = email
    msg.set_content(
        f"Hi {first_name or 'there'}!\n\n"
        "Thank you for subscribing to our Career Growth Newsletter. "
        "To complete your subscription, please open the link below:\n\n"
        f"{url}\n\n"
        "If you didn't sign up for this newsletter, you can safely ignore this email.\n"
    )
    msg.add_alternative(
        f"<h2>Hi {first_name or 'there'}!</h2>"
        "<p>Thank you for subscribing to our Career Growth Newsletter. "
        "Please confirm your email address to start receiving weekly career tips.</p>"
        f'<p><a href="{url}">Confirm My Subscription</a></p>'
        f"<p>This email was sent to {email}</p>",
        subtype="html",
    )
    return msg


class Mailer:
    """Sends transactional email over SMTP with STARTTLS."""

    def __init__(self, host: str = SMTP_HOST, port: int = SMTP_PORT, username: Optional[str] = SMTP_USER,
                 password: Optional[str] = SMTP_PASSWORD, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def send(self, msg: EmailMessage):
        if not self.configured:
            logger.warning("Email sending is not configured. Unable to send email to %s", msg["To"])
            raise MailDeliveryError("Email sending is not configured")
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.username, self.password)
                server.send_message(msg)
        except smtplib.SMTPException as e:
            logger.exception("SMTP error while sending email to %s", msg["To"])
            raise MailDeliveryError(str(e)) from e
        except OSError as e:
            logger.exception("SMTP network error while sending email to %s", msg["To"])
            raise MailDeliveryError(str(e)) from e

    def send_verification_email(self, email: str, first_name: Optional[str], token: str):
        self.send(render_verification_email(email, first_name, token))
        logger.info("Verification email sent to %s", email)
