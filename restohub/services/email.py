import logging
from smtplib import SMTPException

from flask import current_app
from flask_mail import Message

from restohub import mail

logger = logging.getLogger(__name__)


def send_email(subject, recipients, text_body, sender=None):
    """Send a plain-text mail. Delivery problems are logged, never raised."""
    msg = Message(subject,
                  sender=sender or current_app.config['MAIL_DEFAULT_SENDER'],
                  recipients=recipients)
    msg.body = text_body
    try:
        mail.send(msg)
    except (SMTPException, OSError) as e:
        logger.error("Email delivery failed", extra={
            'event': 'email_failed',
            'subject': subject,
            'exception': str(e)
        })
        return False
    return True


def send_password_reset_email(email, token):
    link = f"{current_app.config['FRONTEND_URL']}/reset-password?token={token}"
    minutes = int(current_app.config['PASSWORD_RESET_TOKEN_EXPIRES'].total_seconds() // 60)
    return send_email(
        subject="Reset your password",
        recipients=[email],
        text_body=(f"A password reset was requested for your account.\n\n"
                   f"Open this link to choose a new password: {link}\n"
                   f"The link expires in {minutes} minutes. "
                   f"If you did not ask for this, ignore this email.")
    )


def send_verification_email(email, token):
    link = f"{current_app.config['FRONTEND_URL']}/verify-email?token={token}"
    hours = int(current_app.config['EMAIL_VERIFICATION_TOKEN_EXPIRES'].total_seconds() // 3600)
    return send_email(
        subject="Verify your email address",
        recipients=[email],
        text_body=(f"Please confirm your email address: {link}\n"
                   f"The link expires in {hours} hours.")
    )
