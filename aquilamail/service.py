"""
AquilaMail Service — the mail-sending pipeline.

    resolve email → PRE_RENDER → render template → PRE_SEND (may cancel)
    → assemble message (body + attachments + headers) → transport.send
    → POST_SEND | SEND_ERROR

Resolution and rendering errors propagate untouched. Anything that fails
while assembling, sending or running POST_SEND listeners is reported through
SEND_ERROR and re-raised as ``MailException`` chained to the original error.

Module-level convenience functions (send_mail, asend_mail) delegate to the
active MailService instance.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import replace
from typing import Any, List, Mapping, Optional, Union

from .attachments.parsers import IAttachmentParser, default_parser_name
from .attachments.registry import AttachmentParserRegistry
from .builder import IEmailBuilder
from .config import merge_config
from .events import DEFAULT_PRIORITY, EventManager, MailEvent, MailEventName, MailListener
from .faults import InvalidArgumentFault, MailConfigFault, MailException, ServiceNotCreatedFault
from .message_factory import create_message_from_email
from .mime import Message, MimeBody, MimePart, classify_text
from .model import Attachment, Email
from .renderers import LAYOUT_PARAM, IMailRenderer
from .result import MailResult
from .transports import IMailTransport

logger = logging.getLogger("aquilamail.service")

EmailLike = Union[Email, str, Mapping[str, Any]]

# ── Module-level singleton reference ────────────────────────────────

_mail_service: Optional["MailService"] = None


def get_mail_service() -> "MailService":
    """Return the active MailService."""
    if _mail_service is None:
        raise MailConfigFault(
            "MailService not initialised. Call set_mail_service() or build one "
            "with MailServiceBuilder first.",
            config_key="mail_services",
        )
    return _mail_service


def set_mail_service(svc: Optional["MailService"]) -> None:
    """Install a MailService as the module-level singleton (or None to reset)."""
    global _mail_service
    _mail_service = svc


# ── Convenience functions ───────────────────────────────────────────


def send_mail(email: EmailLike, options: Optional[Mapping[str, Any]] = None) -> MailResult:
    """Send an email synchronously through the active MailService."""
    return get_mail_service().send_sync(email, options)


async def asend_mail(email: EmailLike, options: Optional[Mapping[str, Any]] = None) -> MailResult:
    """Send an email through the active MailService."""
    return await get_mail_service().send(email, options)


# ── MailService ─────────────────────────────────────────────────────


class MailService:
    """
    Transport-agnostic mail service.

    Args:
        transport: Delivers the assembled message.
        renderer: Renders ``Email.template`` into the body.
        email_builder: Resolves preset names and mappings into ``Email`` objects.
        attachment_parsers: Registry of attachment parsers, looked up by name.
        events: Event manager; a private one is created when omitted.
    """

    def __init__(
        self,
        transport: IMailTransport,
        renderer: IMailRenderer,
        email_builder: IEmailBuilder,
        attachment_parsers: AttachmentParserRegistry,
        events: Optional[EventManager] = None,
        *,
        name: str = "default",
    ):
        self.transport = transport
        self.renderer = renderer
        self.email_builder = email_builder
        self.attachment_parsers = attachment_parsers
        self._events = events if events is not None else EventManager()
        self.name = name

    # ── Events ──────────────────────────────────────────────────────

    @property
    def events(self) -> EventManager:
        return self._events

    def attach_mail_listener(self, listener: MailListener, priority: int = DEFAULT_PRIORITY) -> None:
        listener.attach(self._events, priority)

    def detach_mail_listener(self, listener: MailListener) -> None:
        listener.detach(self._events)

    async def _trigger(self, name: MailEventName, email: Email, result: Optional[MailResult] = None):
        return await self._events.trigger(MailEvent(name, email, result=result, target=self))

    # ── Send pipeline ───────────────────────────────────────────────

    async def send(self, email: EmailLike, options: Optional[Mapping[str, Any]] = None) -> MailResult:
        """
        Send an email.

        Args:
            email: An ``Email``, a preset name, or a mapping of email fields.
            options: Field values applied on top of a preset or mapping.

        Returns:
            MailResult: valid on success; invalid without exception when a
            PRE_SEND listener cancelled the send.

        Raises:
            InvalidArgumentFault: *email* has an unsupported type.
            EmailNotFoundFault: *email* names an unknown preset.
            MailTemplateFault: The template could not be rendered.
            MailException: Assembly, delivery or a POST_SEND listener failed.
        """
        email = self._resolve_email(email, options)

        await self._trigger(MailEventName.PRE_RENDER, email)
        await self._render(email)

        responses = await self._trigger(MailEventName.PRE_SEND, email)
        if responses.contains(False):
            logger.warning(f"Send of {email!r} cancelled by a pre-send listener")
            return MailResult(email, valid=False)

        try:
            message = self._build_message(email)
            sent = self.transport.send(message)
            if inspect.isawaitable(sent):
                await sent

            result = MailResult(email)
            logger.info(f"Sent {email!r} via {self.name}")
            await self._trigger(MailEventName.POST_SEND, email, result)
            return result
        except Exception as e:
            result = MailResult(email, valid=False, exception=e)
            logger.error(f"Failed to send {email!r} via {self.name}: {e}")
            await self._trigger(MailEventName.SEND_ERROR, email, result)
            raise MailException(cause=e) from e

    def send_sync(self, email: EmailLike, options: Optional[Mapping[str, Any]] = None) -> MailResult:
        """Blocking variant of ``send``; must not be called from a running event loop."""
        return asyncio.run(self.send(email, options))

    def _resolve_email(self, email: Any, options: Optional[Mapping[str, Any]]) -> Email:
        if isinstance(email, Email):
            return email
        if isinstance(email, str):
            logger.debug(f"Building email preset '{email}'")
            return self.email_builder.build(email, options or {})
        if isinstance(email, Mapping):
            return self.email_builder.build(Email, merge_config(email, options or {}))
        raise InvalidArgumentFault.from_valid_types(["str", "dict", "Email"], email, "email")

    async def _render(self, email: Email) -> None:
        if not email.has_template():
            return
        params = dict(email.template_params)
        params.setdefault(LAYOUT_PARAM, False)
        logger.debug(f"Rendering template '{email.template}'")
        body = self.renderer.render(email.template, params)
        if inspect.isawaitable(body):
            body = await body
        email.body = body

    # ── Assembly ────────────────────────────────────────────────────

    def _build_message(self, email: Email) -> Message:
        message = create_message_from_email(email)
        body = self._build_body(email.body, email.charset)
        self._attach_files(body, email)
        message.set_body(body)

        for name, value in email.custom_header_lines():
            message.headers.add_header_line(name, value)
        return message

    @staticmethod
    def _build_body(body: Any, charset: str) -> MimeBody:
        if isinstance(body, MimeBody):
            return MimeBody(body.parts)
        if isinstance(body, MimePart):
            return MimeBody([replace(body, charset=charset)])
        text = "" if body is None else str(body)
        return MimeBody([MimePart(content=text, type=classify_text(text), charset=charset)])

    def _attach_files(self, body: MimeBody, email: Email) -> None:
        if not email.has_attachments():
            return

        parts: List[MimePart] = []
        for name, attachment in email.computed_attachments():
            if Attachment.is_attachment_mapping(attachment):
                attachment = Attachment.from_dict(attachment)
            parser_name = (
                attachment.parser_name
                if isinstance(attachment, Attachment)
                else default_parser_name(attachment)
            )
            if not self.attachment_parsers.has(parser_name):
                raise ServiceNotCreatedFault(
                    f'The attachment parser "{parser_name}" could not be found',
                    details={"parser_name": parser_name},
                )
            parser: IAttachmentParser = self.attachment_parsers.get(parser_name)
            value = attachment.value if isinstance(attachment, Attachment) else attachment
            parts.append(replace(parser.parse(value, name), charset=email.charset))

        logger.debug(f"Attached {len(parts)} part(s) to {email!r}")
        body.set_parts([*body.parts, *parts])

    # ── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        """Shut the transport down, when it supports it."""
        shutdown = getattr(self.transport, "shutdown", None)
        if shutdown is None:
            return
        result = shutdown()
        if inspect.isawaitable(result):
            await result

    def __repr__(self) -> str:
        return f"MailService(name={self.name!r}, transport={self.transport!r})"
