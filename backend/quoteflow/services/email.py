"""
Outbound e-mail: Jinja2 templates (quoteflow/templates/email) and pluggable senders.

Senders raise EmailDeliveryError on failure; callers going through the outbox
(see services.notifications) record the error and retry later.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, Undefined, select_autoescape

logger = logging.getLogger("quoteflow.email")

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class EmailDeliveryError(Exception):
    pass


class UnknownTemplateError(ValueError):
    pass


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


def _money(value: Any) -> str:
    if value is None or isinstance(value, Undefined):
        return ""
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


# .html bodies are autoescaped, .txt bodies are not.
_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(),
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["money"] = _money


def _assignment_subject(data: Dict[str, Any]) -> str:
    return f"New Item Assignment: {data.get('itemName', '')}"


def _approval_required_subject(data: Dict[str, Any]) -> str:
    return f"Approval Required: {data.get('itemName', '')} - ${_money(data.get('totalCost'))}"


def _approval_status_subject(data: Dict[str, Any]) -> str:
    st = str(data.get("status", "")).lower()
    return f"Cost Calculation {st.capitalize()}: {data.get('itemName', '')}"


def _quote_ready_subject(data: Dict[str, Any]) -> str:
    return f"Quote Ready: {data.get('inquiryTitle', '')}"


def _quote_sent_subject(data: Dict[str, Any]) -> str:
    return f"Quote {data.get('quoteNumber', '')}: {data.get('title', '')}"


SUBJECTS: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "assignment": _assignment_subject,
    "approval_required": _approval_required_subject,
    "approval_status": _approval_status_subject,
    "quote_ready": _quote_ready_subject,
    "quote_sent": _quote_sent_subject,
}


def render_template(template: str, template_data: Optional[Dict[str, Any]]) -> RenderedEmail:
    subject_for = SUBJECTS.get(template)
    if subject_for is None:
        raise UnknownTemplateError(f"Unknown email template: {template}")

    data = dict(template_data or {})
    # Header values stay on one line.
    subject = " ".join(subject_for(data).split())
    context = {**data, "subject": subject}
    text = _env.get_template(f"{template}.txt").render(context).strip()
    html = _env.get_template(f"{template}.html").render(context)
    return RenderedEmail(subject=subject, text=text, html=html)


class EmailSender(Protocol):
    def send(self, template: str, recipients: List[str], template_data: Dict[str, Any]) -> None: ...


class LoggingEmailSender:
    """EMAIL_BACKEND=console: render and log, deliver nothing."""

    def send(self, template: str, recipients: List[str], template_data: Dict[str, Any]) -> None:
        rendered = render_template(template, template_data)
        logger.info(
            "email_logged",
            extra={"template": template, "recipients": list(recipients), "subject": rendered.subject},
        )


class SmtpEmailSender:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, template: str, recipients: List[str], template_data: Dict[str, Any]) -> None:
        rendered = render_template(template, template_data)
        msg = EmailMessage()
        msg["Subject"] = rendered.subject
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg.set_content(rendered.text)
        msg.add_alternative(rendered.html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(str(e)) from e

        logger.info("email_sent", extra={"template": template, "recipients": list(recipients)})


def build_email_sender(settings) -> EmailSender:
    backend = str(settings.email_backend or "console").strip().lower()
    if backend == "smtp":
        return SmtpEmailSender(
            host=settings.email_host,
            port=int(settings.email_port),
            sender=settings.email_from,
            username=settings.email_user,
            password=settings.email_password,
            use_tls=bool(settings.email_use_tls),
        )
    return LoggingEmailSender()
