"""
AquilaMail Transports — deliver a fully assembled ``Message``.

Included backends:
- Console (dev)              — aquilamail.transports.console
- File (dev, .eml on disk)   — aquilamail.transports.file
- SMTP (aiosmtplib)          — aquilamail.transports.smtp
- In-memory (tests)          — aquilamail.testing.InMemoryTransport
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ..mime import Message


@runtime_checkable
class IMailTransport(Protocol):
    """
    Interface that all mail transports implement.

    ``send`` raises (ideally a ``TransportFault``) when delivery fails; the
    return value is transport-specific (usually the Message-ID) and ignored
    by ``MailService``.
    """

    async def send(self, message: Message) -> Any:
        ...


# ── Transport implementations ───────────────────────────────────────
from .console import ConsoleTransport
from .file import FileTransport
from .smtp import SMTPTransport

__all__ = [
    "IMailTransport",
    "ConsoleTransport",
    "FileTransport",
    "SMTPTransport",
]
