import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

log = logging.getLogger("uvicorn.error")


class MailDeliveryError(Exception):
    pass


@dataclass
class OutboundMail:
    sender: str
    recipient: str
    reply_to: str
    subject: str
    text: str
    html: str


def build_contact_mail(name: str, email: str, message: str, sender: str, recipient: str) -> OutboundMail:
    subject_name = " ".join(name.split())
    text = (
        "You have received a new message from your portfolio contact form.\n\n"
        f"Name: {name}\n"
        f"User Email: {email}\n\n"
        f"Message:\n{message}"
    )
    body_html = (
        "<h3>New Portfolio Message</h3>"
        f"<p><strong>Name:</strong> {html.escape(name)}</p>"
        f"<p><strong>Email:</strong> {html.escape(email)}</p>"
        f"<p><strong>Message:</strong><br/>{html.escape(message).replace(chr(10), '<br/>')}</p>"
    )
    return OutboundMail(
        sender=sender,
        recipient=recipient,
        reply_to=email,
        subject=f"Portfolio Contact: Message from {subject_name}",
        text=text,
        html=body_html,
    )


class Mailer:
    """Authenticated SMTP-over-TLS sender; opens one connection per message."""

    def __init__(self, host: str, port: int, username: Optional[str], password: Optional[str], timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout

    def _to_mime(self, mail: OutboundMail) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = mail.subject
        msg["From"] = mail.sender
        msg["To"] = mail.recipient
        msg["Reply-To"] = mail.reply_to
        msg.attach(MIMEText(mail.text, "plain", "utf-8"))
        msg.attach(MIMEText(mail.html, "html", "utf-8"))
        return msg

    def send(self, mail: OutboundMail) -> None:
        msg = self._to_mime(mail)
        try:
            # timeout covers connect, TLS greeting and every socket read/write
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            log.error(f"[mail] send via {self.host}:{self.port} failed: {exc}")
            raise MailDeliveryError(str(exc)) from exc
        log.info(f"[mail] contact message delivered to {mail.recipient}")
