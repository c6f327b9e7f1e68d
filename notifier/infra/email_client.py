# notifier/infra/email_client.py
import asyncio
import html
import json
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from notifier.errors import EmailDeliveryError
from notifier.models.notification import NotificationType

logger = logging.getLogger(__name__)


class EmailResult(BaseModel):
    success: bool
    messageId: Optional[str] = None


def _pre(content: Any) -> str:
    return html.escape(json.dumps(content, indent=2, default=str))


def format_email_content(notification_type: NotificationType, content: Any) -> str:
    """HTML body for a notification; `content` is rendered verbatim unless already a string."""
    if isinstance(content, str):
        return content

    if notification_type == NotificationType.USER_UPDATE:
        title, intro = "Profile Update Notification", "Your profile has been updated with the following details:"
    elif notification_type == NotificationType.ORDER_UPDATE:
        title, intro = "Order Status Update", "Your order status has changed:"
    elif notification_type == NotificationType.PROMOTION:
        message = content.get("message") if isinstance(content, dict) else None
        title, intro = "Just for you", message or "Check out our latest promotions!"
    else:
        title, intro = "Notification", ""

    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: auto;">
          <h2>{html.escape(title)}</h2>
          <p>{html.escape(str(intro))}</p>
          <pre>{_pre(content)}</pre>
        </div>
    """


def format_recommendation_email(recommendations: Iterable[dict], website_url: str = "") -> str:
    items = "".join(
        f"""
          <li>
            <strong>{html.escape(str(p["name"]))}</strong><br/>
            Category: {html.escape(str(p["category"]))}<br/>
            Price: ${float(p["price"]):.2f}
          </li>"""
        for p in recommendations
    )
    return f"""
      <html>
        <body>
          <h1>Your Personalized Product Recommendations!</h1>
          <p>Based on your recent activity, you might like the following products:</p>
          <ul>{items}
          </ul>
          <p>Check them out <a href="{html.escape(website_url)}/recommendations">here</a>.</p>
          <p>Happy Shopping!</p>
        </body>
      </html>
    """


class SmtpEmailTransport:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: bool = False,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, notification_type: NotificationType, content: Any) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        text = content if isinstance(content, str) else json.dumps(content, default=str)
        msg.set_content(text)
        msg.add_alternative(format_email_content(notification_type, content), subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        if self.use_ssl:
            server: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with server:
            server.ehlo()
            if not self.use_ssl and server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send(self, to: str, subject: str, notification_type: NotificationType, content: Any) -> EmailResult:
        msg = self._build_message(to, subject, notification_type, content)
        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send email to {to}: {e}") from e

        logger.info("Email sent to %s (%s) message_id=%s", to, notification_type.value, msg["Message-ID"])
        return EmailResult(success=True, messageId=msg["Message-ID"])
