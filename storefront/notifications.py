"""Order emails. Delivery is best effort: failures are logged, never raised."""
import smtplib
from datetime import datetime, timezone
from decimal import Decimal
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Callable, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from . import schemas
from .config import Settings
from .utils import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates" / "email"
GMAIL_HOST = "smtp.gmail.com"
GMAIL_PORT = 587


def format_money(amount) -> str:
    return "₦{:,.2f}".format(Decimal(str(amount)))


def format_datetime(value: datetime) -> str:
    return value.strftime("%d %b %Y, %H:%M") if value else ""


templates = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    keep_trailing_newline=True,
)
templates.filters["money"] = format_money
templates.filters["datetime"] = format_datetime


class EmailNotifier:
    def __init__(self, settings: Settings, smtp_factory: Optional[Callable[[], smtplib.SMTP]] = None):
        self.settings = settings
        self._smtp_factory = smtp_factory or self._connect

    @property
    def sender(self) -> str:
        return formataddr((self.settings.email_from_name, self.settings.email_from))

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.email_provider == "gmail":
            smtp = smtplib.SMTP(GMAIL_HOST, GMAIL_PORT, timeout=30)
            return self._open(smtp, s.gmail_user, s.gmail_pass, starttls=True)
        if not s.smtp_host:
            raise RuntimeError("SMTP_HOST is not configured")
        if s.smtp_secure:
            smtp = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=30)
        else:
            smtp = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30)
        return self._open(smtp, s.smtp_user, s.smtp_pass, starttls=not s.smtp_secure)

    @staticmethod
    def _open(smtp: smtplib.SMTP, user: Optional[str], password: Optional[str], starttls: bool) -> smtplib.SMTP:
        try:
            if starttls:
                smtp.starttls()
            if user and password:
                smtp.login(user, password)
        except Exception:
            smtp.close()
            raise
        return smtp

    def build_message(self, to: str, subject: str, text: str, html: Optional[str] = None) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")
        return msg

    def render(self, template: str, order: schemas.OrderRead) -> tuple:
        context = {
            "order": order,
            "store_name": self.settings.email_from_name,
            "year": datetime.now(timezone.utc).year,
        }
        html = templates.get_template(f"{template}.html").render(**context)
        text = templates.get_template(f"{template}.txt").render(**context)
        return text, html

    def send(self, msg: EmailMessage) -> None:
        smtp = self._smtp_factory()
        try:
            smtp.send_message(msg)
        finally:
            smtp.quit()

    def send_order_confirmation(self, order: schemas.OrderRead) -> None:
        try:
            text, html = self.render("order_confirmation", order)
            self.send(self.build_message(order.email, f"Order Confirmation - {order.reference}", text, html))
            logger.info("Order confirmation email sent to: %s (Order: %s)", order.email, order.reference)
        except Exception:
            # the order is already stored; a failed email must not affect it
            logger.exception("Failed to send order confirmation email for %s", order.reference)

    def send_payment_receipt(self, order: schemas.OrderRead) -> None:
        try:
            text, html = self.render("payment_receipt", order)
            self.send(self.build_message(order.email, f"Payment Receipt - {order.reference}", text, html))
            logger.info("Payment receipt email sent to: %s (Order: %s)", order.email, order.reference)
        except Exception:
            logger.exception("Failed to send payment receipt email for %s", order.reference)

    def send_test_email(self, to: str) -> bool:
        try:
            self.send(
                self.build_message(
                    to,
                    "Test Email - E-commerce API",
                    "Email Configuration Test\n\nIf you received this email, your email configuration is working correctly!",
                    "<h1>Email Configuration Test</h1>"
                    "<p>If you received this email, your email configuration is working correctly!</p>",
                )
            )
        except Exception:
            logger.exception("Failed to send test email to %s", to)
            return False
        logger.info("Test email sent successfully to: %s", to)
        return True
