"""
AquilaMail — a transport-agnostic, event-driven mail service.

- Named email presets with ``extends``
- Jinja2 templates with optional layouts
- Pluggable attachment parsers (files, bytes, streams, MIME parts)
- Lifecycle events: PRE_RENDER, PRE_SEND (cancellable), POST_SEND, SEND_ERROR
- Console, file, SMTP and in-memory transports

Quick Start:
    from aquilamail import MailServiceBuilder

    config = {
        "mail_options": {
            "emails": {
                "welcome": {
                    "from_address": "noreply@myapp.com",
                    "subject": "Welcome!",
                    "template": "welcome.html",
                },
            },
            "mail_services": {"default": {"transport": "console"}},
            "renderer": {"template_path_stack": ["templates/mail"]},
        },
    }
    service = MailServiceBuilder(config).build("default")

    # Async
    result = await service.send("welcome", {"to": ["user@example.com"]})

    # Synchronous
    result = service.send_sync("welcome", {"to": ["user@example.com"]})
"""

__version__ = "1.0.0"

# ── Model ───────────────────────────────────────────────────────────
from .model import Attachment, Email
from .mime import Headers, Message, MimeBody, MimePart
from .result import MailResult

# ── Pipeline ────────────────────────────────────────────────────────
from .service import (
    MailService,
    asend_mail,
    get_mail_service,
    send_mail,
    set_mail_service,
)
from .builder import EmailBuilder, IEmailBuilder
from .message_factory import create_message_from_email

# ── Events & listeners ─────────────────────────────────────────────
from .events import (
    AbstractMailListener,
    EventManager,
    MailEvent,
    MailEventName,
    MailListener,
    ResponseCollection,
)
from .listeners import LoggingMailListener

# ── Attachments ─────────────────────────────────────────────────────
from .attachments import (
    AttachmentParser,
    AttachmentParserRegistry,
    BytesAttachmentParser,
    FilePathAttachmentParser,
    IAttachmentParser,
    MappingAttachmentParser,
    MimePartAttachmentParser,
    StreamAttachmentParser,
    create_attachment_parser_registry,
)

# ── Rendering & transports ─────────────────────────────────────────
from .renderers import IMailRenderer, JinjaMailRenderer, create_mail_renderer
from .transports import ConsoleTransport, FileTransport, IMailTransport, SMTPTransport

# ── Configuration & construction ───────────────────────────────────
from .config import ConfigLoader, MailOptions, merge_config
from .di_providers import MailServiceBuilder, create_mail_service

# ── Faults ──────────────────────────────────────────────────────────
from .faults import (
    EmailNotFoundFault,
    Fault,
    FaultDomain,
    InvalidArgumentFault,
    InvalidAttachmentFault,
    MailConfigFault,
    MailException,
    MailFault,
    MailTemplateFault,
    ServiceNotCreatedFault,
    ServiceNotFoundFault,
    Severity,
    TransportFault,
)

__all__ = [
    # Model
    "Email", "Attachment", "Message", "MimeBody", "MimePart", "Headers", "MailResult",
    # Pipeline
    "MailService", "send_mail", "asend_mail", "get_mail_service", "set_mail_service",
    "EmailBuilder", "IEmailBuilder", "create_message_from_email",
    # Events
    "EventManager", "MailEvent", "MailEventName", "MailListener",
    "AbstractMailListener", "ResponseCollection", "LoggingMailListener",
    # Attachments
    "IAttachmentParser", "AttachmentParser", "AttachmentParserRegistry",
    "FilePathAttachmentParser", "MimePartAttachmentParser", "BytesAttachmentParser",
    "MappingAttachmentParser", "StreamAttachmentParser", "create_attachment_parser_registry",
    # Rendering & transports
    "IMailRenderer", "JinjaMailRenderer", "create_mail_renderer",
    "IMailTransport", "ConsoleTransport", "FileTransport", "SMTPTransport",
    # Config
    "ConfigLoader", "MailOptions", "merge_config", "MailServiceBuilder", "create_mail_service",
    # Faults
    "Fault", "FaultDomain", "Severity", "MailFault", "InvalidArgumentFault",
    "EmailNotFoundFault", "InvalidAttachmentFault", "ServiceNotCreatedFault",
    "ServiceNotFoundFault", "TransportFault", "MailTemplateFault", "MailException",
    "MailConfigFault",
]
