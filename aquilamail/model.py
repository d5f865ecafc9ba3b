"""
AquilaMail Model — the in-memory description of one outgoing email.

    Email       — envelope, body or template, attachments and custom headers
    Attachment  — an attachment value tagged with the parser that understands it

An ``Email`` is mutated in place by ``MailService.send`` (listeners and the
template renderer may change it) and should not be reused across sends.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .faults import InvalidArgumentFault
from .mime import MimeBody

DEFAULT_CHARSET = "utf-8"

Address = str
AddressInput = Union[str, Sequence[str], None]


@dataclass(frozen=True)
class Attachment:
    """An attachment value plus the name of the parser that must handle it."""

    parser_name: str
    value: Any

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Attachment":
        return cls(data["parser_name"], data["value"])

    @staticmethod
    def is_attachment_mapping(value: Any) -> bool:
        """True for ``{"parser_name": ..., "value": ...}`` shaped mappings."""
        return (
            isinstance(value, Mapping)
            and value.get("parser_name") is not None
            and value.get("value") is not None
        )


def _address_list(value: AddressInput) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class Email:
    """
    A single email to be sent through ``MailService``.

    Usage:
        email = Email(
            from_address="noreply@example.com",
            to=["user@example.com"],
            subject="Welcome",
            template="welcome.html",
            template_params={"name": "Asha"},
        )
        email.add_attachment("/tmp/invoice.pdf", name="invoice.pdf")
        email.add_custom_header("X-Campaign", "onboarding")
    """

    FIELDS = (
        "from_address",
        "from_name",
        "reply_to",
        "reply_to_name",
        "to",
        "cc",
        "bcc",
        "subject",
        "body",
        "template",
        "template_params",
        "charset",
        "attachments",
        "attachments_dir",
        "custom_headers",
    )

    def __init__(
        self,
        *,
        from_address: Optional[str] = None,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None,
        reply_to_name: Optional[str] = None,
        to: AddressInput = None,
        cc: AddressInput = None,
        bcc: AddressInput = None,
        subject: str = "",
        body: Union[str, MimeBody] = "",
        template: Optional[str] = None,
        template_params: Optional[Dict[str, Any]] = None,
        charset: str = DEFAULT_CHARSET,
        attachments: Union[Sequence[Any], Mapping[Any, Any], None] = None,
        attachments_dir: Optional[Mapping[str, Any]] = None,
        custom_headers: Optional[Mapping[str, Union[str, Sequence[str]]]] = None,
    ):
        self.from_address = from_address
        self.from_name = from_name
        self.reply_to = reply_to
        self.reply_to_name = reply_to_name
        self.to = _address_list(to)
        self.cc = _address_list(cc)
        self.bcc = _address_list(bcc)
        self.subject = subject
        self.body = body
        self.template = template
        self.template_params: Dict[str, Any] = dict(template_params or {})
        self.charset = charset
        self.attachments: Union[List[Any], Dict[Any, Any]] = (
            dict(attachments) if isinstance(attachments, Mapping) else list(attachments or [])
        )
        self.attachments_dir = dict(attachments_dir) if attachments_dir else None
        self.custom_headers: Dict[str, Union[str, List[str]]] = {}
        for name, value in (custom_headers or {}).items():
            self.add_custom_header(name, value)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Email":
        """Build an email from a mapping of field names (unknown keys are rejected)."""
        unknown = [key for key in data if key not in cls.FIELDS]
        if unknown:
            raise InvalidArgumentFault(
                f"Unknown email option(s): {', '.join(sorted(unknown))}",
                field="email",
                details={"unknown": sorted(unknown)},
            )
        return cls(**dict(data))

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.FIELDS}

    # ── Recipients ──────────────────────────────────────────────────

    def add_to(self, *addresses: str) -> "Email":
        self.to.extend(addresses)
        return self

    def add_cc(self, *addresses: str) -> "Email":
        self.cc.extend(addresses)
        return self

    def add_bcc(self, *addresses: str) -> "Email":
        self.bcc.extend(addresses)
        return self

    # ── Template ────────────────────────────────────────────────────

    def has_template(self) -> bool:
        return bool(self.template)

    def set_template(self, template: str, params: Optional[Dict[str, Any]] = None) -> "Email":
        self.template = template
        if params is not None:
            self.template_params = dict(params)
        return self

    # ── Attachments ─────────────────────────────────────────────────

    def add_attachment(self, attachment: Any, name: Optional[str] = None) -> "Email":
        """
        Add an attachment.

        With a *name*, attachments are stored keyed by display name; the
        collection is switched to a dict on first named insert.
        """
        if name is None:
            if isinstance(self.attachments, dict):
                self.attachments[self._next_position()] = attachment
            else:
                self.attachments.append(attachment)
            return self

        if not isinstance(self.attachments, dict):
            self.attachments = dict(enumerate(self.attachments))
        self.attachments[name] = attachment
        return self

    def _next_position(self) -> int:
        positions = [key for key in self.attachments if isinstance(key, int)]
        return max(positions, default=-1) + 1

    def has_attachments(self) -> bool:
        return bool(self.attachments) or self.attachments_dir is not None

    def _attachment_items(self) -> List[Tuple[Optional[str], Any]]:
        if isinstance(self.attachments, dict):
            # Only str keys are display names; int keys are positional
            return [
                (key if isinstance(key, str) else None, value)
                for key, value in self.attachments.items()
            ]
        return [(None, value) for value in self.attachments]

    def _directory_files(self) -> List[str]:
        if not self.attachments_dir:
            return []
        path = self.attachments_dir.get("path")
        if not path:
            return []
        root = Path(path)
        if not root.is_dir():
            return []
        pattern = "**/*" if self.attachments_dir.get("recursive", False) else "*"
        return sorted(str(p) for p in root.glob(pattern) if p.is_file())

    def computed_attachments(self) -> List[Tuple[Optional[str], Any]]:
        """
        Every attachment as ``(display_name_or_None, value)`` pairs.

        Explicit attachments come first, in insertion order, followed by the
        regular files found in ``attachments_dir``.
        """
        return self._attachment_items() + [(None, f) for f in self._directory_files()]

    # ── Headers ─────────────────────────────────────────────────────

    def add_custom_header(self, name: str, value: Union[str, Iterable[str]]) -> "Email":
        """Add a header value; repeated names accumulate values."""
        values = [value] if isinstance(value, str) else list(value)
        existing = self.custom_headers.get(name)
        if existing is None:
            self.custom_headers[name] = values[0] if len(values) == 1 else values
            return self
        current = [existing] if isinstance(existing, str) else list(existing)
        self.custom_headers[name] = current + values
        return self

    def custom_header_lines(self) -> List[Tuple[str, str]]:
        lines: List[Tuple[str, str]] = []
        for name, value in self.custom_headers.items():
            if isinstance(value, str):
                lines.append((name, value))
            else:
                lines.extend((name, v) for v in value)
        return lines

    def __repr__(self) -> str:
        return (
            f"Email(subject={self.subject!r}, to={self.to!r}, "
            f"template={self.template!r})"
        )
