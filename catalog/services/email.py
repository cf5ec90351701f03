"""
Transactional emails (email queue).

Bodies are plain text; delivery goes through Django's configured email
backend (SMTP in production, locmem in tests).
"""

import logging
from typing import Dict

from django.conf import settings
from django.core.mail import send_mail

from catalog.exceptions import CatalogError
from catalog.queue.definitions import EmailPayload, EmailType

logger = logging.getLogger(__name__)

SUBJECTS = {
    EmailType.PASSWORD_RESET: "Reset your Dokusho password",
    EmailType.PASSWORD_RESET_CONFIRMATION: "Your password has been changed",
    EmailType.EMAIL_VERIFICATION: "Verify your Dokusho account",
    EmailType.EMAIL_CHANGE: "Verify your new email address",
    EmailType.EMAIL_CHANGE_WARNING: "Your email address is being changed",
}

# Payload field each email type cannot be sent without
REQUIRED_FIELDS = {
    EmailType.PASSWORD_RESET: "reset_url",
    EmailType.EMAIL_VERIFICATION: "verification_url",
    EmailType.EMAIL_CHANGE: "change_email_url",
    EmailType.EMAIL_CHANGE_WARNING: "new_email",
}


def render_body(payload: EmailPayload) -> str:
    """
    Plain-text body for an email payload.

    Raises:
        CatalogError: If the field the email type needs is missing
    """
    required = REQUIRED_FIELDS.get(payload.type)
    if required and not getattr(payload, required):
        raise CatalogError(f"{required} is required for {payload.type.value} emails")

    greeting = f"Hi {payload.user_name}," if payload.user_name else "Hi,"

    if payload.type == EmailType.PASSWORD_RESET:
        lines = [
            "We received a request to reset your password.",
            f"Reset it here: {payload.reset_url}",
            "If you did not ask for this, you can ignore this email.",
        ]
    elif payload.type == EmailType.PASSWORD_RESET_CONFIRMATION:
        lines = [
            "Your password has been changed.",
            "If you did not do this, reset your password immediately.",
        ]
    elif payload.type == EmailType.EMAIL_VERIFICATION:
        lines = [
            "Welcome to Dokusho! Please confirm your email address:",
            str(payload.verification_url),
        ]
    elif payload.type == EmailType.EMAIL_CHANGE:
        lines = [
            "Please confirm your new email address:",
            str(payload.change_email_url),
        ]
    else:
        lines = [
            f"A request was made to change your account email to {payload.new_email}.",
            "If you did not request this change, contact us right away.",
        ]

    return "\n\n".join([greeting, *lines])


def send_email(payload: EmailPayload) -> Dict:
    subject = SUBJECTS[payload.type]
    body = render_body(payload)

    send_mail(
        subject,
        body,
        getattr(settings, "DEFAULT_FROM_EMAIL", "noreply@dokusho.local"),
        [payload.to],
        fail_silently=False,
    )

    logger.info(f"Sent {payload.type.value} email to {payload.to}")
    return {"type": payload.type.value, "to": payload.to}
