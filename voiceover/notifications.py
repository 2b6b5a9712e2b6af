import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from voiceover.config import Settings

logger = logging.getLogger(__name__)


def _money(amount: int, currency: str) -> str:
    return f"{amount / 100:.2f} {currency}"


class EmailNotifier:
    """Transactional emails over SMTP.

    Every send is best-effort: failures are logged and reported as ``False``.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.mail_from)

    def send_email(self, to: str, subject: str, body: str, html: Optional[str] = None) -> bool:
        if not self.configured:
            logger.warning(f"SMTP is not configured; email '{subject}' to {to} was not sent")
            return False
        if not to:
            logger.error(f"No recipient for email '{subject}'")
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.settings.mail_from
        msg["To"] = to
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
                smtp.starttls()
                if self.settings.smtp_user:
                    smtp.login(self.settings.smtp_user, self.settings.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception(f"send_email: failed '{subject}' to {to}")
            return False

        logger.info(f"send_email: sent '{subject}' to {to}")
        return True

    def send_new_order_alert(self, order) -> bool:
        user = order.user
        lines = [
            f"Order #{order.id} has been paid.",
            "",
            f"Customer: {user.full_name} <{user.email}>",
            f"Phone: {user.phone or '-'}",
            f"Price: {_money(order.price, self.settings.currency)}",
            f"Duration: {order.duration}s",
            f"Payment method: {order.payment_method}",
            f"Original video: {order.original_video_key}",
            "",
            "Script / notes:",
            order.script or "-",
        ]
        return self.send_email(
            self.settings.order_alert_email,
            f"New Voiceover Order #{order.id} - {user.full_name}",
            "\n".join(lines),
        )

    def send_order_confirmation(self, order) -> bool:
        user = order.user
        body = (
            f"Hi {user.first_name},\n\n"
            f"Thanks for your order #{order.id}. We received your payment of "
            f"{_money(order.price, self.settings.currency)} and will start on your "
            f"{order.duration}-second voiceover shortly.\n\n"
            "We will email you again as soon as your video is ready."
        )
        return self.send_email(user.email, f"Your Voiceover Order #{order.id} - Thank You!", body)

    def send_completion_notice(self, order, download_url: Optional[str] = None) -> bool:
        user = order.user
        body = f"Hi {user.first_name},\n\nYour voiceover order #{order.id} is complete.\n"
        if download_url:
            body += f"\nDownload your video here (the link expires soon):\n{download_url}\n"
        else:
            body += f"\nCheck your order page for the download: {self.settings.default_return_url(order.id)}\n"
        return self.send_email(user.email, f"Your Voiceover Order #{order.id} is Ready!", body)
