"""
Ready-made mail listeners.
"""

from __future__ import annotations

import logging
from typing import Optional

from .events import AbstractMailListener, MailEvent


class LoggingMailListener(AbstractMailListener):
    """
    Logs every lifecycle event of the services it is attached to.

    Usage:
        service.attach_mail_listener(LoggingMailListener())
    """

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        super().__init__()
        self.logger = logger or logging.getLogger("aquilamail.listeners")
        self.level = level

    def on_pre_render(self, event: MailEvent) -> None:
        self.logger.debug(f"Rendering {event.email!r}")

    def on_pre_send(self, event: MailEvent) -> None:
        self.logger.debug(f"Sending {event.email!r}")

    def on_post_send(self, event: MailEvent) -> None:
        self.logger.log(
            self.level,
            f"Mail sent: subject={event.email.subject!r} to={event.email.to}",
        )

    def on_send_error(self, event: MailEvent) -> None:
        exception = event.result.exception if event.result is not None else None
        self.logger.error(
            f"Mail failed: subject={event.email.subject!r} to={event.email.to}: {exception}"
        )
