import json
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import date, datetime
from email.message import EmailMessage
from textwrap import dedent
from typing import Any, Literal, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from gscms.core.config import settings
from gscms.core.observability import automation_logger, log_event
from gscms.models.email_template import EmailTemplate
from gscms.services.automation_errors import EmailDeliveryError, EmailTemplateNotFoundError

DEFAULT_SENDER_EMAIL = "noreply@gs-cms.com"

EmailDeliveryStatus = Literal["sent", "not_configured", "skipped"]


@dataclass(frozen=True)
class EmailNotification:
    to: list[str]
    template_name: str
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html_content: str
    text_content: str


@dataclass(frozen=True)
class EmailDeliveryResult:
    status: EmailDeliveryStatus
    detail: str | None = None


class EmailTransport(Protocol):
    def send(self, *, recipients: list[str], email: RenderedEmail) -> None:
        ...


class SmtpEmailTransport:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender_email: str,
        username: str | None = None,
        password: str | None = None,
        reply_to_email: str | None = None,
        use_ssl: bool = False,
        use_starttls: bool = True,
        timeout_seconds: int = 20,
    ) -> None:
        self.host = host
        self.port = port
        self.sender_email = sender_email
        self.username = username
        self.password = password
        self.reply_to_email = reply_to_email
        self.use_ssl = use_ssl
        self.use_starttls = use_starttls
        self.timeout_seconds = timeout_seconds

    def _build_message(self, *, recipients: list[str], email: RenderedEmail) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = email.subject
        message["From"] = self.sender_email
        message["To"] = ", ".join(recipients)
        if self.reply_to_email:
            message["Reply-To"] = self.reply_to_email
        message.set_content(email.text_content)
        message.add_alternative(email.html_content, subtype="html")
        return message

    def send(self, *, recipients: list[str], email: RenderedEmail) -> None:
        message = self._build_message(recipients=recipients, email=email)
        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout_seconds) as server:
                    if self.username:
                        server.login(self.username, self.password or "")
                    server.send_message(message)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
                    if self.use_starttls:
                        server.starttls()
                    if self.username:
                        server.login(self.username, self.password or "")
                    server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"SMTP delivery failed: {exc}") from exc


def build_email_transport() -> SmtpEmailTransport | None:
    if not settings.smtp_host:
        return None
    return SmtpEmailTransport(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender_email=settings.smtp_sender_email or DEFAULT_SENDER_EMAIL,
        username=settings.smtp_username,
        password=settings.smtp_password,
        reply_to_email=settings.smtp_reply_to_email,
        use_ssl=settings.smtp_use_ssl,
        use_starttls=settings.smtp_use_starttls,
        timeout_seconds=settings.smtp_timeout_seconds,
    )


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def render_template_text(template: str, variables: dict[str, Any]) -> str:
    """Replace every literal `{{key}}` with the stringified variable. Unknown placeholders stay as-is."""
    rendered = template
    for key, value in variables.items():
        rendered = rendered.replace("{{" + str(key) + "}}", _stringify(value))
    return rendered


def render_email(template: EmailTemplate, variables: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=render_template_text(template.subject, variables),
        html_content=render_template_text(template.html_content, variables),
        text_content=render_template_text(template.text_content or "", variables),
    )


def get_active_template(db: Session, name: str) -> EmailTemplate:
    template = db.execute(
        select(EmailTemplate).where(
            EmailTemplate.name == name,
            EmailTemplate.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if not template:
        raise EmailTemplateNotFoundError(f"Email template '{name}' not found")
    return template


class EmailNotifier:
    """Renders stored templates and hands them to a transport.

    Without a transport the rendered email is only logged.
    """

    def __init__(self, db: Session, transport: EmailTransport | None = None) -> None:
        self.db = db
        self.transport = transport

    def send(self, notification: EmailNotification) -> EmailDeliveryResult:
        template = get_active_template(self.db, notification.template_name)
        email = render_email(template, notification.variables)
        recipients = [item for item in notification.to if item]

        if not recipients:
            log_event(
                automation_logger,
                "email_skipped",
                template=notification.template_name,
                reason="no_recipients",
            )
            return EmailDeliveryResult(status="skipped", detail="No recipients")

        if self.transport is None:
            log_event(
                automation_logger,
                "email_not_sent",
                template=notification.template_name,
                to=recipients,
                subject=email.subject,
                variables=notification.variables,
            )
            return EmailDeliveryResult(status="not_configured", detail="SMTP not configured")

        try:
            self.transport.send(recipients=recipients, email=email)
        except EmailDeliveryError as exc:
            log_event(
                automation_logger,
                "email_failed",
                level=logging.ERROR,
                template=notification.template_name,
                to=recipients,
                error=str(exc),
            )
            raise
        log_event(
            automation_logger,
            "email_sent",
            template=notification.template_name,
            to=recipients,
            subject=email.subject,
        )
        return EmailDeliveryResult(status="sent")


def send_email_notification(db: Session, notification: EmailNotification) -> EmailDeliveryResult:
    return EmailNotifier(db, build_email_transport()).send(notification)


def _body(text: str) -> str:
    return dedent(text).strip() + "\n"


DEFAULT_EMAIL_TEMPLATES: list[dict[str, Any]] = [
    {
        "name": "inquiry_assigned",
        "subject": "New Inquiry Assigned: {{inquiry_title}}",
        "html_content": _body(
            """
            <h2>New Inquiry Assigned</h2>
            <p>Hello {{assignee_name}},</p>
            <p>A new inquiry has been assigned to you:</p>
            <ul>
              <li><strong>Title:</strong> {{inquiry_title}}</li>
              <li><strong>Customer:</strong> {{customer_name}}</li>
              <li><strong>Priority:</strong> {{priority}}</li>
              <li><strong>Deadline:</strong> {{deadline}}</li>
            </ul>
            <p>Please log in to the system to view details and take action.</p>
            <p>Best regards,<br>GS-CMS System</p>
            """
        ),
        "text_content": _body(
            """
            New Inquiry Assigned

            Hello {{assignee_name}},

            A new inquiry has been assigned to you:
            - Title: {{inquiry_title}}
            - Customer: {{customer_name}}
            - Priority: {{priority}}
            - Deadline: {{deadline}}

            Please log in to the system to view details and take action.

            Best regards,
            GS-CMS System
            """
        ),
        "variables": ["assignee_name", "inquiry_title", "customer_name", "priority", "deadline"],
    },
    {
        "name": "cost_approval_required",
        "subject": "Cost Approval Required: {{item_name}}",
        "html_content": _body(
            """
            <h2>Cost Approval Required</h2>
            <p>Hello {{manager_name}},</p>
            <p>A cost calculation requires your approval:</p>
            <ul>
              <li><strong>Item:</strong> {{item_name}}</li>
              <li><strong>Total Cost:</strong> ${{total_cost}}</li>
              <li><strong>Calculated By:</strong> {{calculated_by_name}}</li>
              <li><strong>Notes:</strong> {{notes}}</li>
            </ul>
            <p>Please log in to review and approve or reject this calculation.</p>
            <p>Best regards,<br>GS-CMS System</p>
            """
        ),
        "text_content": _body(
            """
            Cost Approval Required

            Hello {{manager_name}},

            A cost calculation requires your approval:
            - Item: {{item_name}}
            - Total Cost: ${{total_cost}}
            - Calculated By: {{calculated_by_name}}
            - Notes: {{notes}}

            Please log in to review and approve or reject this calculation.

            Best regards,
            GS-CMS System
            """
        ),
        "variables": ["manager_name", "item_name", "total_cost", "calculated_by_name", "notes"],
    },
    {
        "name": "deadline_reminder",
        "subject": "Deadline Reminder: {{entity_type}} - {{entity_name}}",
        "html_content": _body(
            """
            <h2>Deadline Reminder</h2>
            <p>Hello {{recipient_name}},</p>
            <p>This is a reminder about an upcoming deadline:</p>
            <ul>
              <li><strong>Type:</strong> {{entity_type}}</li>
              <li><strong>Name:</strong> {{entity_name}}</li>
              <li><strong>Due Date:</strong> {{due_date}}</li>
              <li><strong>Days Remaining:</strong> {{days_until_due}}</li>
            </ul>
            <p>Please ensure completion before the deadline.</p>
            <p>Best regards,<br>GS-CMS System</p>
            """
        ),
        "text_content": _body(
            """
            Deadline Reminder

            Hello {{recipient_name}},

            This is a reminder about an upcoming deadline:
            - Type: {{entity_type}}
            - Name: {{entity_name}}
            - Due Date: {{due_date}}
            - Days Remaining: {{days_until_due}}

            Please ensure completion before the deadline.

            Best regards,
            GS-CMS System
            """
        ),
        "variables": ["recipient_name", "entity_type", "entity_name", "due_date", "days_until_due"],
    },
    {
        "name": "status_changed",
        "subject": "{{entity_type}} Status Changed: {{entity_name}}",
        "html_content": _body(
            """
            <h2>Status Update</h2>
            <p>Hello {{recipient_name}},</p>
            <p>The status has been updated:</p>
            <ul>
              <li><strong>Type:</strong> {{entity_type}}</li>
              <li><strong>Name:</strong> {{entity_name}}</li>
              <li><strong>Previous Status:</strong> {{old_status}}</li>
              <li><strong>New Status:</strong> {{new_status}}</li>
              <li><strong>Updated By:</strong> {{updated_by}}</li>
            </ul>
            <p>Best regards,<br>GS-CMS System</p>
            """
        ),
        "text_content": _body(
            """
            Status Update

            Hello {{recipient_name}},

            The status has been updated:
            - Type: {{entity_type}}
            - Name: {{entity_name}}
            - Previous Status: {{old_status}}
            - New Status: {{new_status}}
            - Updated By: {{updated_by}}

            Best regards,
            GS-CMS System
            """
        ),
        "variables": ["recipient_name", "entity_type", "entity_name", "old_status", "new_status", "updated_by"],
    },
]


def create_default_email_templates(db: Session) -> list[EmailTemplate]:
    """Upsert the built-in templates by name. The caller commits."""
    out: list[EmailTemplate] = []
    for default in DEFAULT_EMAIL_TEMPLATES:
        template = db.execute(
            select(EmailTemplate).where(EmailTemplate.name == default["name"])
        ).scalar_one_or_none()
        if template is None:
            template = EmailTemplate(name=default["name"])
            db.add(template)
        template.subject = default["subject"]
        template.html_content = default["html_content"]
        template.text_content = default["text_content"]
        template.variables = list(default["variables"])
        template.is_active = True
        out.append(template)
    db.flush()
    return out
