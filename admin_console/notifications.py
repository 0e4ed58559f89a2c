"""
Notification dispatch: stored mail templates rendered and handed to a transport.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from dacite import Config, DaciteError, from_dict

from admin_console.default_templates import DEFAULT_TEMPLATES
from admin_console.json_utils import convert_keys
from admin_console.mail import MailMessage, MailTransport
from admin_console.store import DocumentStore, timestamp
from admin_console.templates import render_text

logger = logging.getLogger(__name__)

TEMPLATES_COLLECTION = "email_templates"

AMOUNT_FIELDS = ("subtotal", "tax", "shipping", "total")


class TemplateType(str, Enum):
    ORDER_COMPLETE_CREDIT = "order_complete_credit"
    ORDER_COMPLETE_BANK = "order_complete_bank"
    PAYMENT_CONFIRMED = "payment_confirmed"
    SHIPPING_COMPLETE = "shipping_complete"


class TemplateNotFound(Exception):
    def __init__(self, template_type: TemplateType):
        super().__init__(f"No template stored for {template_type.value}")
        self.template_type = template_type


class UnknownTemplateType(ValueError):
    pass


class InvalidNotificationPayload(ValueError):
    pass


def parse_template_type(value: str) -> TemplateType:
    try:
        return TemplateType(value)
    except ValueError:
        raise UnknownTemplateType(value) from None


@dataclass
class EmailTemplate:
    type: TemplateType
    subject: str
    body: str
    name: str = ""
    description: str = ""
    variables: list[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> "EmailTemplate":
        data = convert_keys({k: v for k, v in doc.items() if k != "id"}, "camel_to_snake")
        data["type"] = TemplateType(data.get("type") or doc["id"])
        for key in ("created_at", "updated_at"):
            value = data.get(key)
            data[key] = value.isoformat() if hasattr(value, "isoformat") else value
        return from_dict(data_class=cls, data=data, config=Config(check_types=False))

    def to_document(self) -> dict:
        return {
            "type": self.type.value,
            "name": self.name,
            "subject": self.subject,
            "body": self.body,
            "description": self.description,
            "variables": list(self.variables),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class RenderedMessage:
    subject: str
    body: str


def default_template(template_type: TemplateType) -> EmailTemplate:
    defaults = DEFAULT_TEMPLATES[template_type.value]
    return EmailTemplate(
        type=template_type,
        name=defaults["name"],
        subject=defaults["subject"],
        body=defaults["body"],
        description=defaults["description"],
        variables=list(defaults["variables"]),
    )


def format_amount(value: Any) -> Any:
    """Yen amounts are shown with thousands separators, e.g. 12,800."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    return f"{int(value):,}"


def variables_from_payload(data: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Split a `{to, customerName, ...}` request payload into the recipient and
    snake_case template variables.
    """
    variables = convert_keys(dict(data), "camel_to_snake")
    recipient = variables.pop("to", None)
    if not recipient or not isinstance(recipient, str):
        raise InvalidNotificationPayload("Recipient address 'to' is required")
    for key in AMOUNT_FIELDS:
        if key in variables:
            variables[key] = format_amount(variables[key])
    return recipient, variables


class NotificationDispatcher:
    def __init__(self, store: DocumentStore, transport: MailTransport):
        self._store = store
        self._transport = transport

    def get_template(self, template_type: TemplateType) -> EmailTemplate:
        doc = self._store.get_by_id(TEMPLATES_COLLECTION, template_type.value)
        if doc is None:
            raise TemplateNotFound(template_type)
        return EmailTemplate.from_document(doc)

    def list_templates(self) -> list[EmailTemplate]:
        docs = self._store.query(TEMPLATES_COLLECTION)
        templates = []
        for doc in docs:
            try:
                templates.append(EmailTemplate.from_document(doc))
            except (ValueError, DaciteError):
                logger.warning("Skipping malformed template: %s", doc.get("id"))
        order = list(TemplateType)
        return sorted(templates, key=lambda t: order.index(t.type))

    def render(
        self, template_type: TemplateType, variables: Mapping[str, Any]
    ) -> RenderedMessage:
        template = self.get_template(template_type)
        return RenderedMessage(
            subject=render_text(template.subject, variables),
            body=render_text(template.body, variables),
        )

    def dispatch(
        self, template_type: TemplateType, recipient: str, variables: Mapping[str, Any]
    ) -> RenderedMessage:
        """
        Render and send one notification.

        Raises TemplateNotFound when the type was never seeded and
        TransportError when the transport fails. Nothing is retried.
        """
        message = self.render(template_type, variables)
        try:
            self._transport.send(
                MailMessage(to=recipient, subject=message.subject, text=message.body)
            )
        except Exception:
            logger.exception(
                "Failed to send %s notification to %s", template_type.value, recipient
            )
            raise
        logger.info("Sent %s notification to %s", template_type.value, recipient)
        return message

    def upsert_template(
        self, template_type: TemplateType, subject: str, body: str
    ) -> EmailTemplate:
        now = timestamp()
        doc = self._store.get_by_id(TEMPLATES_COLLECTION, template_type.value)
        if doc is None:
            template = default_template(template_type)
            template.created_at = now
        else:
            template = EmailTemplate.from_document(doc)
        template.subject = subject
        template.body = body
        template.updated_at = now
        self._store.upsert(TEMPLATES_COLLECTION, template_type.value, template.to_document())
        logger.info("Stored template %s", template_type.value)
        return template

    def seed_template(self, template_type: TemplateType) -> EmailTemplate:
        """Write the default template for one type, replacing any stored copy."""
        now = timestamp()
        template = default_template(template_type)
        template.created_at = now
        template.updated_at = now
        self._store.upsert(TEMPLATES_COLLECTION, template_type.value, template.to_document())
        logger.info("Seeded template %s", template_type.value)
        return template

    def seed_defaults(self) -> list[TemplateType]:
        """Create the default template of every type that has none; returns those created."""
        created = []
        for template_type in TemplateType:
            if self._store.get_by_id(TEMPLATES_COLLECTION, template_type.value) is None:
                self.seed_template(template_type)
                created.append(template_type)
        return created
