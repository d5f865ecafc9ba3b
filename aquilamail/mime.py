"""
AquilaMail MIME model — transport-ready message objects.

    MimePart   — one content unit (text, HTML or binary attachment)
    MimeBody   — ordered collection of parts
    Headers    — multi-valued header collection
    Message    — envelope + body + headers handed to a transport

``Message.to_mime()`` converts to a stdlib ``email`` message; the wire format
itself is left to the standard library.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from email import encoders
from email.message import Message as _StdMessage
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Iterable, Iterator, List, Optional, Tuple, Union

TYPE_TEXT = "text/plain"
TYPE_HTML = "text/html"
TYPE_OCTETSTREAM = "application/octet-stream"

ENCODING_7BIT = "7bit"
ENCODING_8BIT = "8bit"
ENCODING_QUOTEDPRINTABLE = "quoted-printable"
ENCODING_BASE64 = "base64"

DISPOSITION_ATTACHMENT = "attachment"
DISPOSITION_INLINE = "inline"

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass
class MimePart:
    """A single MIME part."""

    content: Union[bytes, str] = b""
    type: str = TYPE_OCTETSTREAM
    disposition: Optional[str] = None
    encoding: str = ENCODING_8BIT
    filename: Optional[str] = None
    charset: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.type.startswith("text/") and self.disposition is None

    def raw_content(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode(self.charset or "utf-8")

    def to_mime(self) -> _StdMessage:
        """Build the stdlib representation of this part."""
        maintype, _, subtype = self.type.partition("/")
        if self.is_text:
            text = self.content
            if isinstance(text, bytes):
                text = text.decode(self.charset or "utf-8")
            return MIMEText(text, subtype or "plain", self.charset or "utf-8")

        part = MIMEBase(maintype or "application", subtype or "octet-stream")
        part.set_payload(self.raw_content())
        if self.encoding == ENCODING_BASE64:
            encoders.encode_base64(part)
        elif self.encoding == ENCODING_QUOTEDPRINTABLE:
            encoders.encode_quopri(part)
        else:
            encoders.encode_7or8bit(part)
        if self.charset and maintype == "text":
            part.set_param("charset", self.charset)
        if self.disposition:
            if self.filename:
                part.add_header("Content-Disposition", self.disposition, filename=self.filename)
            else:
                part.add_header("Content-Disposition", self.disposition)
        if self.id:
            part.add_header("Content-ID", f"<{self.id}>")
        return part

    def __repr__(self) -> str:
        return (
            f"MimePart(type={self.type!r}, filename={self.filename!r}, "
            f"disposition={self.disposition!r}, size={len(self.raw_content())})"
        )


class MimeBody:
    """Ordered list of MIME parts making up a message body."""

    def __init__(self, parts: Optional[Iterable[MimePart]] = None):
        self._parts: List[MimePart] = list(parts or [])

    @property
    def parts(self) -> List[MimePart]:
        return list(self._parts)

    def set_parts(self, parts: Iterable[MimePart]) -> "MimeBody":
        self._parts = list(parts)
        return self

    def add_part(self, part: MimePart) -> "MimeBody":
        self._parts.append(part)
        return self

    def is_multipart(self) -> bool:
        return len(self._parts) > 1

    def __len__(self) -> int:
        return len(self._parts)

    def __iter__(self) -> Iterator[MimePart]:
        return iter(self._parts)

    def __repr__(self) -> str:
        return f"MimeBody(parts={self._parts!r})"


class Headers:
    """
    Multi-valued, case-insensitive header collection.

    Insertion order is preserved; ``add_header_line`` never replaces.
    """

    def __init__(self) -> None:
        self._lines: List[Tuple[str, str]] = []

    def add_header_line(self, name: str, value: str) -> "Headers":
        self._lines.append((name, str(value)))
        return self

    def get_all(self, name: str) -> List[str]:
        key = name.lower()
        return [v for n, v in self._lines if n.lower() == key]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.get_all(name)
        return values[0] if values else default

    def has(self, name: str) -> bool:
        return bool(self.get_all(name))

    def remove(self, name: str) -> None:
        key = name.lower()
        self._lines = [(n, v) for n, v in self._lines if n.lower() != key]

    def items(self) -> List[Tuple[str, str]]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._lines)


def _format_address(address: str, name: Optional[str] = None) -> str:
    return formataddr((name, address)) if name else address


def _domain_of(address: str) -> str:
    if "<" in address:
        address = address.split("<")[1].rstrip(">")
    return address.rsplit("@", 1)[-1] if "@" in address else "localhost"


class Message:
    """
    An outgoing message, fully assembled and ready for a transport.

    Recipient lists hold ``(address, display_name)`` pairs.
    """

    def __init__(self) -> None:
        self.from_address: Optional[str] = None
        self.from_name: Optional[str] = None
        self.to: List[Tuple[str, Optional[str]]] = []
        self.cc: List[Tuple[str, Optional[str]]] = []
        self.bcc: List[Tuple[str, Optional[str]]] = []
        self.reply_to: List[Tuple[str, Optional[str]]] = []
        self.subject: str = ""
        self.encoding: str = "utf-8"
        self._body = MimeBody()
        self._headers = Headers()

    # ── Body / headers ──────────────────────────────────────────────

    @property
    def body(self) -> MimeBody:
        return self._body

    def set_body(self, body: MimeBody) -> "Message":
        self._body = body
        return self

    @property
    def headers(self) -> Headers:
        return self._headers

    def set_headers(self, headers: Headers) -> "Message":
        self._headers = headers
        return self

    # ── Envelope ────────────────────────────────────────────────────

    def set_from(self, address: str, name: Optional[str] = None) -> "Message":
        self.from_address = address
        self.from_name = name
        return self

    def add_to(self, address: str, name: Optional[str] = None) -> "Message":
        self.to.append((address, name))
        return self

    def add_cc(self, address: str, name: Optional[str] = None) -> "Message":
        self.cc.append((address, name))
        return self

    def add_bcc(self, address: str, name: Optional[str] = None) -> "Message":
        self.bcc.append((address, name))
        return self

    def add_reply_to(self, address: str, name: Optional[str] = None) -> "Message":
        self.reply_to.append((address, name))
        return self

    def all_recipients(self) -> List[str]:
        """All recipient addresses (to + cc + bcc), deduplicated case-insensitively."""
        seen: set[str] = set()
        result: list[str] = []
        for address, _ in (*self.to, *self.cc, *self.bcc):
            key = address.lower()
            if key not in seen:
                seen.add(key)
                result.append(address)
        return result

    # ── Conversion ──────────────────────────────────────────────────

    def _root(self) -> _StdMessage:
        parts = self._body.parts
        if len(parts) == 1:
            return parts[0].to_mime()
        root = MIMEMultipart("mixed")
        for part in parts:
            root.attach(part.to_mime())
        return root

    def to_mime(self) -> _StdMessage:
        """Build a stdlib email message (Bcc is never written as a header)."""
        msg = self._root()

        if self.from_address:
            msg["From"] = _format_address(self.from_address, self.from_name)
        if self.to:
            msg["To"] = ", ".join(_format_address(a, n) for a, n in self.to)
        if self.cc:
            msg["Cc"] = ", ".join(_format_address(a, n) for a, n in self.cc)
        if self.reply_to:
            msg["Reply-To"] = ", ".join(_format_address(a, n) for a, n in self.reply_to)
        msg["Subject"] = self.subject
        if not self._headers.has("Date"):
            msg["Date"] = formatdate(localtime=True)
        if not self._headers.has("Message-ID"):
            msg["Message-ID"] = make_msgid(domain=_domain_of(self.from_address or ""))

        for name, value in self._headers:
            msg[name] = value
        return msg

    def to_string(self) -> str:
        return self.to_mime().as_string()

    def __repr__(self) -> str:
        return (
            f"Message(subject={self.subject!r}, "
            f"to={[a for a, _ in self.to]!r}, parts={len(self._body)})"
        )


def strip_tags(value: str) -> str:
    """Remove markup tags from a string."""
    return _TAG_RE.sub("", value)


def classify_text(body: str) -> str:
    """Return ``text/html`` when stripping tags changes *body*, ``text/plain`` otherwise."""
    return TYPE_HTML if strip_tags(body) != body else TYPE_TEXT
