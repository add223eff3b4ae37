"""
Notification Service - renders templated emails and tracks delivery.

Each NotificationType maps to a template producing subject, plain text and
HTML. Sends are recorded in the notifications table and never raise;
callers get a bool.
"""
from typing import Optional, List, Union
from html import escape
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import Notification, NotificationType, NotificationStatus, utcnow
from app.services.core_config_service import CoreConfigService
from app.services.email_service import email_service, EmailOptions
from app.utils.email_utils import is_valid_email, split_recipients

logger = logging.getLogger(__name__)


def _wrap_html(body: str) -> str:
    return f'<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">{body}</div>'


def _format_money(amount: float, currency: str = "USD") -> str:
    return f"${amount:.2f} {currency}" if currency == "USD" else f"{amount:.2f} {currency}"


# ============================================
# Templates
# ============================================

def _email_verification(data: dict, camp: str) -> dict:
    url = data.get("verification_url", "")
    return {
        "subject": f"Verify Your {camp} Email Address",
        "text": f"Hi there,\n\nPlease verify your email address by visiting:\n\n{url}\n\n"
                f"If you didn't create an account, please ignore this email.\n\nThe {camp} Team",
        "html": _wrap_html(
            f"<h2>Verify Your Email Address</h2>"
            f"<p>Please verify your email address by clicking the link below:</p>"
            f'<p><a href="{escape(url)}">Verify Email</a></p>'
            f"<p>If you didn't create an account, please ignore this email.</p>"
            f"<p>The {escape(camp)} Team</p>"
        ),
    }


def _login_code(data: dict, camp: str) -> dict:
    code = data.get("login_code", "")
    return {
        "subject": f"Your {camp} Login Code",
        "text": f"Your login code is: {code}\n\nThis code expires in 15 minutes.\n\nThe {camp} Team",
        "html": _wrap_html(
            f"<h2>Your Login Code</h2>"
            f'<p style="font-size: 24px; letter-spacing: 4px;"><strong>{escape(code)}</strong></p>'
            f"<p>This code expires in 15 minutes.</p>"
        ),
    }


def _password_reset(data: dict, camp: str) -> dict:
    url = data.get("reset_url", "")
    return {
        "subject": f"Reset Your {camp} Password",
        "text": f"Hi there,\n\nYou've requested to reset your password:\n\n{url}\n\n"
                f"This link will expire in 1 hour. If you didn't request this, please ignore this email.",
        "html": _wrap_html(
            f"<h2>Reset Your Password</h2>"
            f'<p><a href="{escape(url)}">Reset Password</a></p>'
            f"<p>This link will expire in 1 hour. If you didn't request this, please ignore this email.</p>"
        ),
    }


def _email_change(data: dict, camp: str) -> dict:
    old_email, new_email = data.get("old_email", ""), data.get("new_email", "")
    if data.get("is_to_old_email"):
        text = (f"The email address on your {camp} account was changed from {old_email} to {new_email}.\n\n"
                f"If you didn't make this change, contact the camp organizers immediately.")
    else:
        text = f"This address is now the email for your {camp} account (previously {old_email})."
    return {
        "subject": f"{camp} Email Address Changed",
        "text": text,
        "html": _wrap_html(f"<h2>Email Address Changed</h2><p>{escape(text)}</p>"),
    }


def _registration_confirmation(data: dict, camp: str) -> dict:
    details = data.get("registration_details") or {}
    admin_info = data.get("admin_info")
    name = data.get("playa_name") or data.get("name") or "there"

    lines = [f"Hi {name},", ""]
    if admin_info:
        lines.append(f"Your {details.get('year')} registration was updated by {admin_info.get('name')}.")
        lines.append(f"Reason: {admin_info.get('reason')}")
    else:
        lines.append(f"Thank you for registering for {camp} {details.get('year')}!")
    lines.append(f"Status: {details.get('status')}")

    options = details.get("camping_options") or []
    if options:
        lines.append("")
        lines.append("Camping options:")
        lines.extend(f"  - {option['name']}" for option in options)

    jobs = details.get("jobs") or []
    if jobs:
        lines.append("")
        lines.append("Work shifts:")
        for job in jobs:
            shift = job.get("shift") or {}
            lines.append(
                f"  - {job['name']} ({job.get('category', '')}), {shift.get('day_of_week', '')} "
                f"{shift.get('start_time', '')}-{shift.get('end_time', '')} at {job.get('location', '')}"
            )

    if details.get("total_cost"):
        lines.append("")
        lines.append(f"Total dues: {_format_money(details['total_cost'], details.get('currency', 'USD'))}")

    text = "\n".join(lines)
    subject = (f"Your {camp} Registration Was Updated" if admin_info
               else f"{camp} Registration Confirmation")
    return {
        "subject": subject,
        "text": text,
        "html": _wrap_html("".join(f"<p>{escape(line)}</p>" for line in lines if line)),
    }


def _registration_cancellation(data: dict, camp: str) -> dict:
    details = data.get("registration_details") or {}
    admin_info = data.get("admin_info") or {}
    refund_info = data.get("refund_info")
    name = data.get("playa_name") or data.get("name") or "there"

    lines = [
        f"Hi {name},",
        f"Your {camp} {details.get('year')} registration has been cancelled by {admin_info.get('name', 'an administrator')}.",
        f"Reason: {admin_info.get('reason', '')}",
    ]
    if refund_info:
        amount = _format_money(refund_info["amount"], refund_info.get("currency", "USD"))
        if refund_info.get("processed"):
            lines.append(f"A refund of {amount} has been issued to your original payment method.")
        else:
            lines.append(f"A refund of {amount} will be processed manually by the camp organizers.")

    text = "\n".join(lines)
    return {
        "subject": f"Your {camp} Registration Was Cancelled",
        "text": text,
        "html": _wrap_html("".join(f"<p>{escape(line)}</p>" for line in lines)),
    }


def _registration_error(data: dict, camp: str) -> dict:
    error = data.get("error_details") or {}
    suggestions = error.get("suggestions") or []
    lines = [
        f"We couldn't complete your {camp} registration.",
        f"Error: {error.get('message', '')}",
    ]
    if suggestions:
        lines.append("What you can try:")
        lines.extend(f"  - {suggestion}" for suggestion in suggestions)
    text = "\n".join(lines)
    return {
        "subject": f"{camp} Registration Problem",
        "text": text,
        "html": _wrap_html("".join(f"<p>{escape(line)}</p>" for line in lines)),
    }


def _payment_confirmation(data: dict, camp: str) -> dict:
    payment = data.get("payment_details") or {}
    amount = _format_money(payment.get("amount", 0.0), payment.get("currency", "USD"))
    text = (f"We received your payment of {amount}.\n\nPayment ID: {payment.get('id')}\n"
            f"Date: {payment.get('date')}\n\nThank you!\nThe {camp} Team")
    return {
        "subject": f"{camp} Payment Confirmation",
        "text": text,
        "html": _wrap_html(
            f"<h2>Payment Received</h2><p>We received your payment of <strong>{escape(amount)}</strong>.</p>"
            f"<p>Payment ID: {escape(str(payment.get('id')))}</p>"
        ),
    }


def _shift_reminder(data: dict, camp: str) -> dict:
    shift = data.get("shift_details") or {}
    text = (f"Reminder: you're signed up for {shift.get('job_name')} on {shift.get('date')} "
            f"from {shift.get('start_time')} to {shift.get('end_time')} at {shift.get('location')}.")
    return {
        "subject": f"{camp} Shift Reminder: {shift.get('job_name')}",
        "text": text,
        "html": _wrap_html(f"<p>{escape(text)}</p>"),
    }


def _email_test(data: dict, camp: str) -> dict:
    details = data.get("test_email_details") or {}
    custom = details.get("custom_content") or {}
    subject = custom.get("subject") or f"{camp} Test Email"
    message = custom.get("message") or "This is a test email confirming your SMTP configuration works."

    lines = [message, "", f"Sent by {details.get('admin_user_name')} ({details.get('admin_email')})"]
    if custom.get("include_smtp_details", True):
        lines.extend([
            f"SMTP host: {details.get('smtp_host')}",
            f"SMTP port: {details.get('smtp_port')}",
            f"SSL: {details.get('smtp_secure')}",
            f"Sender: {details.get('sender_name')} <{details.get('sender_email')}>",
        ])
    text = "\n".join(lines)
    if custom.get("format") == "text":
        html = _wrap_html(f"<pre>{escape(text)}</pre>")
    else:
        html = _wrap_html("".join(f"<p>{escape(line)}</p>" for line in lines if line))
    return {"subject": subject, "text": text, "html": html}


TEMPLATES = {
    NotificationType.EMAIL_VERIFICATION: _email_verification,
    NotificationType.EMAIL_AUTHENTICATION: _login_code,
    NotificationType.PASSWORD_RESET: _password_reset,
    NotificationType.EMAIL_CHANGE: _email_change,
    NotificationType.REGISTRATION_CONFIRMATION: _registration_confirmation,
    NotificationType.REGISTRATION_ERROR: _registration_error,
    NotificationType.PAYMENT_CONFIRMATION: _payment_confirmation,
    NotificationType.SHIFT_REMINDER: _shift_reminder,
    NotificationType.EMAIL_TEST: _email_test,
}


def render_template(notification_type: NotificationType, data: dict, camp_name: str) -> dict:
    """
    Render subject/text/html for a notification type.

    Cancellation notices reuse REGISTRATION_CONFIRMATION as their type but
    render a dedicated template when data["cancellation"] is set.
    """
    if notification_type == NotificationType.REGISTRATION_CONFIRMATION and data.get("cancellation"):
        return _registration_cancellation(data, camp_name)
    template = TEMPLATES.get(notification_type)
    if template is None:
        raise ValueError(f"Unknown notification type: {notification_type}")
    return template(data, camp_name)


class NotificationService:
    """Service for sending templated notifications"""

    @staticmethod
    async def send_notification(
        db: AsyncSession,
        to: Union[str, List[str]],
        notification_type: NotificationType,
        data: dict,
    ) -> bool:
        """
        Render and send a notification.

        Returns:
            True if the email was accepted, False on any failure (never raises)
        """
        recipient = to if isinstance(to, str) else ", ".join(to)
        notification = None
        try:
            camp_name = await CoreConfigService.get_camp_name(db)
            template = render_template(notification_type, data, camp_name)

            notification = Notification(
                recipient=recipient,
                type=notification_type,
                status=NotificationStatus.PENDING,
                subject=template["subject"],
                content=template["text"],
                user_id=data.get("user_id"),
            )
            db.add(notification)

            sent = await email_service.send_email(db, EmailOptions(
                to=to,
                subject=template["subject"],
                text=template["text"],
                html=template["html"],
                notification_type=notification_type,
                user_id=data.get("user_id"),
            ))

            notification.status = NotificationStatus.SENT if sent else NotificationStatus.FAILED
            if sent:
                notification.sent_at = utcnow()
            await db.flush()
            return sent
        except Exception as e:
            logger.error(f"❌ Failed to send {notification_type.value} notification to {recipient}: {e}")
            if notification is not None:
                notification.status = NotificationStatus.FAILED
                notification.error_message = str(e)
            return False

    @staticmethod
    async def send_email_verification_email(db: AsyncSession, email: str, token: str,
                                            user_id: Optional[str] = None) -> bool:
        verification_url = f"{settings.frontend_url}/verify-email?token={token}"
        return await NotificationService.send_notification(
            db, email, NotificationType.EMAIL_VERIFICATION,
            {"verification_url": verification_url, "user_id": user_id},
        )

    @staticmethod
    async def send_login_code_email(db: AsyncSession, email: str, code: str,
                                    user_id: Optional[str] = None) -> bool:
        return await NotificationService.send_notification(
            db, email, NotificationType.EMAIL_AUTHENTICATION, {"login_code": code, "user_id": user_id},
        )

    @staticmethod
    async def send_password_reset_email(db: AsyncSession, email: str, token: str,
                                        user_id: Optional[str] = None) -> bool:
        reset_url = f"{settings.frontend_url}/reset-password?token={token}"
        return await NotificationService.send_notification(
            db, email, NotificationType.PASSWORD_RESET, {"reset_url": reset_url, "user_id": user_id},
        )

    @staticmethod
    async def send_email_change_notifications(db: AsyncSession, old_email: str, new_email: str,
                                              user_id: str) -> None:
        """Notify both addresses of an email change; failures are only logged."""
        for recipient, to_old in ((old_email, True), (new_email, False)):
            sent = await NotificationService.send_notification(
                db, recipient, NotificationType.EMAIL_CHANGE,
                {"old_email": old_email, "new_email": new_email, "user_id": user_id,
                 "is_to_old_email": to_old},
            )
            if not sent:
                logger.warning(f"⚠️ Failed to send email change notification to {recipient}")

    @staticmethod
    async def send_payment_confirmation_email(db: AsyncSession, email: str, payment_details: dict,
                                              user_id: Optional[str] = None) -> bool:
        return await NotificationService.send_notification(
            db, email, NotificationType.PAYMENT_CONFIRMATION,
            {"payment_details": payment_details, "user_id": user_id},
        )

    @staticmethod
    async def send_registration_confirmation_email(db: AsyncSession, email: str, registration_details: dict,
                                                   user_id: str, name: Optional[str] = None,
                                                   playa_name: Optional[str] = None) -> bool:
        return await NotificationService.send_notification(
            db, email, NotificationType.REGISTRATION_CONFIRMATION,
            {"registration_details": registration_details, "user_id": user_id,
             "name": name, "playa_name": playa_name},
        )

    @staticmethod
    async def send_registration_error_email(db: AsyncSession, email: str, error_details: dict,
                                            user_id: str) -> bool:
        return await NotificationService.send_notification(
            db, email, NotificationType.REGISTRATION_ERROR,
            {"error_details": error_details, "user_id": user_id},
        )

    @staticmethod
    async def send_test_email(db: AsyncSession, recipients: str, test_email_details: dict,
                              user_id: str, custom_content: Optional[dict] = None) -> bool:
        """
        Send the SMTP test email to one or more comma-separated recipients.

        Raises:
            ValueError: If any recipient is not a valid email address
        """
        addresses = split_recipients(recipients)
        if not addresses:
            raise ValueError("At least one recipient is required")
        for address in addresses:
            if not is_valid_email(address):
                raise ValueError(f"Invalid email address: {address}")

        details = dict(test_email_details, custom_content=custom_content)
        successful = True
        for address in addresses:
            sent = await NotificationService.send_notification(
                db, address, NotificationType.EMAIL_TEST,
                {"test_email_details": details, "user_id": user_id},
            )
            if not sent:
                successful = False
        return successful
