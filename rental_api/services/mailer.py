# rental_api/services/mailer.py
import logging
import smtplib
from email.message import EmailMessage

from rental_api.core import config

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return bool(config.SMTP_HOST and config.SMTP_FROM)


def send_email(to: str, subject: str, body: str) -> bool:
    """
    Send a plain-text email. Returns False instead of raising so a mail outage
    never fails the request that triggered it.
    """
    if not smtp_configured():
        logger.warning(f"SMTP not configured; email '{subject}' to {to} not sent.")
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = config.SMTP_FROM
    msg["To"] = to
    msg.set_content(body)

    try:
        if config.SMTP_USE_SSL:
            server = smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, timeout=10)
        else:
            server = smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10)
        with server:
            if not config.SMTP_USE_SSL:
                server.starttls()
            if config.SMTP_USER:
                server.login(config.SMTP_USER, config.SMTP_PASSWORD)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email '{subject}' to {to}: {e}")
        return False

    logger.info(f"Email '{subject}' sent to {to}.")
    return True


def send_otp_email(to: str, name: str, otp: str) -> bool:
    body = (
        f"Hello {name},\n\n"
        f"Your verification code is: {otp}\n"
        f"It expires in {config.OTP_EXPIRE_MINUTES} minutes.\n\n"
        "If you did not sign up, you can ignore this email."
    )
    sent = send_email(to, "Verify your account", body)
    if not sent and config.APP_ENV != "production":
        # Lets local signups be completed without a mail server
        logger.info(f"OTP for {to}: {otp}")
    return sent


def send_booking_notification(to: str, subject: str, lines: list) -> bool:
    return send_email(to, subject, "\n".join(lines))
