"""
AquilaMail Result — the outcome of one ``MailService.send`` attempt.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .model import Email


@dataclass(frozen=True)
class MailResult:
    """
    Outcome of a send attempt.

    Three shapes are possible:
        succeeded  — valid=True
        cancelled  — valid=False, no exception (a PRE_SEND listener vetoed it)
        failed     — valid=False, exception holds the cause
    """

    email: "Email"
    valid: bool = True
    exception: Optional[BaseException] = None

    @property
    def is_valid(self) -> bool:
        """Tells if the email was properly sent."""
        return self.valid

    @property
    def has_exception(self) -> bool:
        return self.exception is not None

    @property
    def is_cancelled(self) -> bool:
        """Tells if sending was cancelled, usually by a pre-send listener."""
        return not self.valid and self.exception is None

    @property
    def is_failed(self) -> bool:
        return not self.valid and self.exception is not None

    @property
    def status(self) -> str:
        if self.valid:
            return "sent"
        return "failed" if self.exception is not None else "cancelled"

    def __repr__(self) -> str:
        return f"MailResult(status={self.status}, email={self.email!r})"
