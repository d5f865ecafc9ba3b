"""
Console Transport: print messages to stdout instead of delivering them.
"""

from __future__ import annotations

import logging
from typing import List

from ..mime import Message

logger = logging.getLogger("aquilamail.transports.console")


class ConsoleTransport:
    """Transport that prints messages instead of sending them."""

    name: str = "console"

    def __init__(self, name: str = "console", *, show_body: bool = True):
        self.name = name
        self.show_body = show_body

    async def shutdown(self) -> None:
        logger.debug(f"Closed console transport {self.name!r}")

    async def send(self, message: Message) -> str:
        """Print the message to the console."""
        mime = message.to_mime()
        message_id = mime["Message-ID"]

        separator = "=" * 72
        output = (
            f"\n{separator}\n"
            f"  CONSOLE MAIL (not actually sent)\n"
            f"{separator}\n"
            f"  ID:      {message_id}\n"
            f"  From:    {mime['From'] or ''}\n"
            f"  To:      {', '.join(a for a, _ in message.to)}\n"
        )
        if message.cc:
            output += f"  CC:      {', '.join(a for a, _ in message.cc)}\n"
        if message.bcc:
            output += f"  BCC:     {', '.join(a for a, _ in message.bcc)}\n"
        if message.reply_to:
            output += f"  Reply:   {', '.join(a for a, _ in message.reply_to)}\n"
        output += f"  Subject: {message.subject}\n"
        if len(message.headers):
            output += f"  Headers: {message.headers.items()}\n"
        attachments = self._attachment_names(message)
        if attachments:
            output += f"  Attachments: {attachments}\n"
        if self.show_body:
            for part in message.body:
                if part.is_text:
                    output += f"{'-' * 72}\n[{part.type}]\n"
                    output += f"{part.raw_content().decode(part.charset or 'utf-8')}\n"
        output += f"{separator}\n"

        print(output)
        logger.info(f"Console mail sent: {message.subject!r} to {message.all_recipients()}")
        return message_id

    @staticmethod
    def _attachment_names(message: Message) -> List[str]:
        return [p.filename or p.type for p in message.body if not p.is_text]

    def __repr__(self) -> str:
        return f"ConsoleTransport(name={self.name!r})"
