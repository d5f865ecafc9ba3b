"""
AquilaMail Testing — capture outgoing mail instead of delivering it.

Provides :class:`InMemoryTransport`, which records every message in a
module-level outbox as a :class:`CapturedMail`, and :class:`MailTestMixin`
with assertion helpers over that outbox.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .faults import TransportFault
from .mime import Message


@dataclass
class CapturedMail:
    """A mail message captured during testing."""
    to: List[str]
    subject: str
    body: str = ""
    html_body: str = ""
    from_email: str = ""
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: List[str] = field(default_factory=list)
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    headers: Dict[str, List[str]] = field(default_factory=dict)
    transport: str = ""
    message: Optional[Message] = field(default=None, repr=False)

    @classmethod
    def from_message(cls, message: Message, transport: str = "") -> "CapturedMail":
        text: List[str] = []
        html: List[str] = []
        attachments: List[Dict[str, Any]] = []
        for part in message.body:
            if part.is_text:
                content = part.raw_content().decode(part.charset or "utf-8")
                (html if part.type == "text/html" else text).append(content)
            else:
                attachments.append({
                    "filename": part.filename,
                    "type": part.type,
                    "disposition": part.disposition,
                    "id": part.id,
                    "size": len(part.raw_content()),
                })
        headers: Dict[str, List[str]] = {}
        for name, value in message.headers:
            headers.setdefault(name, []).append(value)

        return cls(
            to=[a for a, _ in message.to],
            subject=message.subject,
            body="\n".join(text),
            html_body="\n".join(html),
            from_email=message.from_address or "",
            cc=[a for a, _ in message.cc],
            bcc=[a for a, _ in message.bcc],
            reply_to=[a for a, _ in message.reply_to],
            attachments=attachments,
            headers=headers,
            transport=transport,
            message=message,
        )

    def __repr__(self) -> str:
        return (
            f"<CapturedMail to={self.to} "
            f"subject={self.subject!r}>"
        )


# Module-level outbox for capturing sent mail
_mail_outbox: List[CapturedMail] = []


def get_outbox() -> List[CapturedMail]:
    """Return the global mail outbox."""
    return _mail_outbox


def clear_outbox() -> None:
    """Clear the global mail outbox."""
    _mail_outbox.clear()


class InMemoryTransport:
    """
    Transport that records messages instead of sending them.

    Every message is kept in ``self.messages`` and appended to the global
    outbox. Set ``fail_with`` to make ``send`` raise.
    """

    name: str

    def __init__(self, name: str = "memory", *, fail_with: Optional[BaseException] = None):
        self.name = name
        self.fail_with = fail_with
        self.messages: List[Message] = []
        self.closed = False

    async def send(self, message: Message) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.messages.append(message)
        _mail_outbox.append(CapturedMail.from_message(message, transport=self.name))
        return f"memory-{len(self.messages)}"

    async def shutdown(self) -> None:
        self.closed = True

    def clear(self) -> None:
        self.messages.clear()

    def __repr__(self) -> str:
        return f"InMemoryTransport(name={self.name!r}, messages={len(self.messages)})"


class FailingTransport(InMemoryTransport):
    """Transport that always fails with a ``TransportFault``."""

    def __init__(self, name: str = "failing", message: str = "Delivery refused"):
        super().__init__(name, fail_with=TransportFault(message, transport=name))


class MailTestMixin:
    """
    Mixin providing mail assertion helpers.

    Use an ``InMemoryTransport`` for the service under test; everything it
    receives is captured in the outbox.

    Usage::

        class TestNotifications(MailTestMixin):
            def test_welcome_email(self):
                service.send_sync("welcome", {"to": ["alice@example.com"]})
                self.assert_mail_sent(to="alice@example.com")
                self.assert_mail_subject_contains("Welcome")
    """

    def setup_method(self, method: Any = None) -> None:
        clear_outbox()

    def setUp(self) -> None:
        super().setUp() if hasattr(super(), "setUp") else None
        clear_outbox()

    @property
    def mail_outbox(self) -> List[CapturedMail]:
        """All captured mail messages."""
        return get_outbox()

    @property
    def latest_mail(self) -> Optional[CapturedMail]:
        """Return the most recently sent mail, or None."""
        outbox = self.mail_outbox
        return outbox[-1] if outbox else None

    def get_mail_for(self, address: str) -> List[CapturedMail]:
        """Return all mail sent to a specific address."""
        return [m for m in self.mail_outbox if address in m.to]

    def assert_mail_sent(
        self,
        to: Optional[str] = None,
        count: Optional[int] = None,
        msg: str = "",
    ):
        """Assert that mail was sent."""
        outbox = self.mail_outbox
        if to is not None:
            matching = self.get_mail_for(to)
            assert matching, (
                f"No mail sent to {to!r}. "
                f"Outbox ({len(outbox)} messages): "
                f"{[m.to for m in outbox]}. {msg}"
            )
        elif count is not None:
            assert len(outbox) == count, (
                f"Expected {count} messages, got {len(outbox)}. {msg}"
            )
        else:
            assert outbox, f"No mail was sent. {msg}"

    def assert_no_mail_sent(self, msg: str = ""):
        """Assert that no mail was sent."""
        assert not self.mail_outbox, (
            f"Expected no mail, got {len(self.mail_outbox)}: "
            f"{[m.subject for m in self.mail_outbox]}. {msg}"
        )

    def assert_mail_count(self, expected: int, msg: str = ""):
        actual = len(self.mail_outbox)
        assert actual == expected, (
            f"Expected {expected} mail messages, got {actual}. {msg}"
        )

    def assert_mail_from(self, address: str, msg: str = ""):
        matching = [m for m in self.mail_outbox if m.from_email == address]
        assert matching, (
            f"No mail from {address!r}. "
            f"Senders: {[m.from_email for m in self.mail_outbox]}. {msg}"
        )

    def assert_mail_subject_contains(self, text: str, msg: str = ""):
        matching = [m for m in self.mail_outbox if text in m.subject]
        assert matching, (
            f"No mail with subject containing {text!r}. "
            f"Subjects: {[m.subject for m in self.mail_outbox]}. {msg}"
        )

    def assert_mail_body_contains(self, text: str, msg: str = ""):
        matching = [m for m in self.mail_outbox if text in m.body or text in m.html_body]
        assert matching, (
            f"No mail with body containing {text!r}. {msg}"
        )

    def assert_mail_has_attachment(self, filename: Optional[str] = None, msg: str = ""):
        """Assert at least one message has an attachment (optionally named *filename*)."""
        for m in self.mail_outbox:
            for att in m.attachments:
                if filename is None or att.get("filename") == filename:
                    return
        if filename:
            raise AssertionError(f"No mail with attachment {filename!r}. {msg}")
        raise AssertionError(f"No mail with attachments. {msg}")

    def assert_mail_header(self, name: str, value: Optional[str] = None, msg: str = ""):
        """Assert at least one message carries header *name* (with *value*, if given)."""
        for m in self.mail_outbox:
            values = m.headers.get(name, [])
            if values and (value is None or value in values):
                return
        raise AssertionError(f"No mail with header {name!r}={value!r}. {msg}")
