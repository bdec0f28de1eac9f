# storefront/services/email_service.py

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig
from ..core.config import settings
from ..logging import logger
import os


def _connection_config() -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=settings.MAIL_USERNAME or settings.MAIL_FROM,
        MAIL_PASSWORD=settings.MAIL_PASSWORD,
        MAIL_FROM=settings.MAIL_FROM,
        MAIL_FROM_NAME=settings.MAIL_FROM_NAME,
        MAIL_PORT=settings.MAIL_PORT,
        MAIL_SERVER=settings.MAIL_SERVER,
        MAIL_STARTTLS=os.getenv("MAIL_STARTTLS", "True").lower() == "true",
        MAIL_SSL_TLS=os.getenv("MAIL_SSL_TLS", "False").lower() == "true",
        USE_CREDENTIALS=True,
        VALIDATE_CERTS=True
    )


_BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 20px auto; padding: 20px; border: 1px solid #ddd; border-radius: 5px; }}
        .code {{ font-size: 32px; letter-spacing: 8px; font-weight: bold; color: #111; }}
        .button {{ display: inline-block; padding: 12px 24px; margin: 20px 0; background-color: #111;
                   color: #ffffff !important; text-decoration: none; border-radius: 5px; }}
        .footer {{ margin-top: 20px; font-size: 12px; color: #777; }}
    </style>
</head>
<body>
    <div class="container">
        <h2>{title}</h2>
        {content}
        <div class="footer"><p>{brand}</p></div>
    </div>
</body>
</html>
"""


async def _send(recipient_email: str, subject: str, title: str, content: str, log_hint: str):
    if not settings.EMAIL_ENABLED:
        # In development, don't attempt to send real emails; just log
        logger.info(
            "EMAIL_ENABLED is false; skipping real email send to %s (%s)",
            recipient_email,
            log_hint,
        )
        return

    message = MessageSchema(
        subject=subject,
        recipients=[recipient_email],
        body=_BASE_TEMPLATE.format(title=title, content=content, brand=settings.MAIL_FROM_NAME),
        subtype="html"
    )
    try:
        fm = FastMail(_connection_config())
        await fm.send_message(message)
        logger.info(f"{subject} email sent successfully to {recipient_email}")
    except Exception as e:
        logger.error(f"Failed to send '{subject}' email to {recipient_email}: {e}")
        raise


async def send_otp_email(recipient_email: str, otp: str, first_name: str):
    """
    Sends the 6-digit email verification code.

    Args:
        recipient_email (str): The email address of the recipient.
        otp (str): The one-time code.
        first_name (str): The first name of the user, for personalization.
    """
    content = (
        f"<p>Hello {first_name},</p>"
        f"<p>Use the code below to verify your email address. "
        f"It expires in {settings.OTP_EXPIRE_MINUTES} minutes.</p>"
        f'<p class="code">{otp}</p>'
        "<p>If you did not create an account, you can safely ignore this email.</p>"
    )
    await _send(recipient_email, "Verify your email address", "Email verification", content, f"otp={otp}")


async def send_password_reset_email(recipient_email: str, reset_link: str, first_name: str):
    """
    Sends a password reset link to a user.
    """
    content = (
        f"<p>Hello {first_name},</p>"
        "<p>We received a request to reset your password. The link is valid for one hour.</p>"
        f'<a href="{reset_link}" class="button">Reset Password</a>'
        f'<p>Or paste this link into your browser: <a href="{reset_link}">{reset_link}</a></p>'
    )
    await _send(recipient_email, "Password reset", "Reset your password", content, f"link={reset_link}")


async def send_welcome_email(recipient_email: str, first_name: str):
    """Sent once the address has been verified."""
    content = (
        f"<p>Hello {first_name},</p>"
        f"<p>Your email address is verified and your {settings.MAIL_FROM_NAME} account is ready.</p>"
        f'<a href="{settings.frontend_base_url}" class="button">Start Shopping</a>'
    )
    await _send(recipient_email, f"Welcome to {settings.MAIL_FROM_NAME}", "Welcome!", content, "welcome")


async def send_password_reset_confirmation(recipient_email: str, first_name: str):
    content = (
        f"<p>Hello {first_name},</p>"
        "<p>Your password was changed successfully.</p>"
        "<p>If you did not make this change, contact support immediately.</p>"
    )
    await _send(recipient_email, "Your password was changed", "Password changed", content, "reset confirmation")
