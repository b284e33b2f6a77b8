"""
Email Service - SMTP delivery of verification codes and welcome mails.

Delivery never changes account state and never raises: every sender
returns True/False and logs the failure. A failed OTP mail leaves the
issued code valid, so the user can simply ask for a resend.
"""

import smtplib
from email.message import EmailMessage

from app.core.config import get_settings
from app.core.logging_config import get_logger

logger = get_logger("services.email")


def send_email(to_email: str, subject: str, text_body: str, html_body: str = None) -> bool:
    """Send one message with the configured SMTP account."""
    settings = get_settings()
    if not settings.smtp_enabled:
        logger.warning("SMTP is not configured; skipping email to %s", to_email)
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from
    msg["To"] = to_email
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")

    try:
        use_ssl = settings.smtp_port == 465 or settings.smtp_use_ssl
        if use_ssl:
            with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as server:
                server.login(settings.smtp_username, settings.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as server:
                server.starttls()
                server.login(settings.smtp_username, settings.smtp_password)
                server.send_message(msg)
    except smtplib.SMTPAuthenticationError:
        logger.exception("SMTP auth failed for %s", settings.smtp_username)
        return False
    except TimeoutError:
        logger.exception("SMTP timeout for host %s", settings.smtp_host)
        return False
    except smtplib.SMTPException:
        logger.exception("SMTP error while sending email to %s", to_email)
        return False
    except OSError:
        logger.exception("SMTP network error while sending email to %s", to_email)
        return False

    logger.info("Email sent to %s subject=%r", to_email, subject)
    return True


def send_otp_email(email: str, name: str, code: str) -> bool:
    """Verification code mail. The code itself is never logged."""
    settings = get_settings()
    subject = f"Verify Your Email - {settings.app_name}"
    text = (
        f"Hello {name},\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code expires in {settings.otp_expiry_minutes} minutes. "
        "If you didn't create an account, please ignore this email.\n\n"
        f"- {settings.app_name} Team"
    )
    html = (
        f"<p>Hello {name},</p>"
        "<p>Your verification code is:</p>"
        f"<p style=\"font-size:32px;font-weight:bold;letter-spacing:8px\">{code}</p>"
        f"<p>This code expires in <strong>{settings.otp_expiry_minutes} minutes</strong>.</p>"
        "<p>If you didn't create an account, please ignore this email.</p>"
    )
    return send_email(email, subject, text, html)


def send_welcome_email(email: str, name: str) -> bool:
    settings = get_settings()
    subject = f"Welcome to {settings.app_name}!"
    text = (
        f"Hello {name},\n\n"
        "Your email has been verified. Upload your resume to get an AI analysis "
        "and keep every version in one place.\n\n"
        f"- {settings.app_name} Team"
    )
    return send_email(email, subject, text)
