import logging
import smtplib
from email.message import EmailMessage

import config
from errors import UpstreamError

logger = logging.getLogger(__name__)


def send_email(to: str, subject: str, html: str) -> None:
    msg = EmailMessage()
    msg["From"] = config.SMTP_FROM_EMAIL
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content("This message requires an HTML capable mail client.")
    msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=config.SMTP_TIMEOUT) as smtp:
            if config.SMTP_USERNAME:
                smtp.starttls()
                smtp.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Sending '%s' to %s failed: %s", subject, to, exc)
        raise UpstreamError("Could not send email, please try again.")
    logger.info("Sent '%s' to %s", subject, to)


def send_email_quietly(to: str, subject: str, html: str) -> bool:
    """For notifications that must not fail the request."""
    try:
        send_email(to, subject, html)
    except UpstreamError:
        return False
    return True


# -------------------------------------------------------------------
# Templates
# -------------------------------------------------------------------
def welcome_message(first_name: str) -> str:
    return (
        "<h2>Alcodemy Blog</h2>"
        f"<p>Hi {first_name}, <br> Thanks for joining our team of Great Bloggers.</p>"
    )


def reset_password_message(url: str) -> str:
    return (
        f'You can reset your password by clicking <a href="{url}" target="_blank">Reset your password</a>.'
        f"<br/><br/>If the above link does not work for some reason then copy paste this link in new tab {url}."
        "<br/><br/> If you have not requested this, kindly ignore."
    )


def verify_account_message(url: str) -> str:
    return (
        "<h2>Verify Account in Alcodemy Blog</h2>"
        "<p>You can verify your account by clicking the link below. If the link doesn't work, "
        "copy and paste the URL into your web browser.</p>"
        f'<a href="{url}">Verify Account</a><p>URL : {url}</p>'
        "<p>If you did not request this verification token, please ignore this email.</p>"
    )


def account_closed_message(first_name: str) -> str:
    return (
        f"<p>Dear {first_name},<br><br>Your account on Alcodemy Blog has been closed as per your request. "
        "Logging in again will reopen it.<br><br>Best regards,<br>The Alcodemy Blog Team</p>"
    )
