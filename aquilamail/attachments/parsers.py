"""
Attachment parsers — turn one attachment representation into a MimePart.

Each parser understands exactly one input shape and raises
``InvalidAttachmentFault`` for anything else:

    file_path   — path of an existing regular file
    mime_part   — an already-built MimePart
    bytes       — raw bytes (a display name is required)
    mapping     — {"content": ..., "filename": ..., "type": ...}
    stream      — a readable binary file object
"""

from __future__ import annotations

import io
import mimetypes
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

import magic

from ..faults import InvalidAttachmentFault
from ..mime import (
    DISPOSITION_ATTACHMENT,
    ENCODING_BASE64,
    TYPE_OCTETSTREAM,
    MimePart,
)

MimeDetector = Callable[[str], str]
ContentDetector = Callable[[bytes], str]

# libmagic only needs the leading bytes to identify a format
_SNIFF_BYTES = 2048


def guess_mime_type(path: str) -> str:
    """Guess a MIME type from a file name, octet-stream when unknown."""
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or TYPE_OCTETSTREAM


def detect_mime_type(content: bytes) -> str:
    """Detect a MIME type from file content with libmagic."""
    if not content:
        return TYPE_OCTETSTREAM
    return magic.from_buffer(content[:_SNIFF_BYTES], mime=True) or TYPE_OCTETSTREAM


@runtime_checkable
class IAttachmentParser(Protocol):
    """Interface every attachment parser implements."""

    def parse(self, attachment: Any, attachment_name: Optional[str] = None) -> MimePart:
        """
        Build a MimePart out of *attachment*.

        Args:
            attachment: The raw attachment value.
            attachment_name: Explicit display name, if the caller supplied one.

        Raises:
            InvalidAttachmentFault: If the value has the wrong shape.
        """
        ...


class AttachmentParser:
    """Shared helpers for the built-in parsers."""

    name: str = ""

    def parse(self, attachment: Any, attachment_name: Optional[str] = None) -> MimePart:
        raise NotImplementedError

    @staticmethod
    def apply_name_to_part(part: MimePart, name: Optional[str]) -> MimePart:
        """Set the part's display name unless it already has one."""
        if name is not None and not part.filename:
            part.filename = name
        if part.id is None and part.filename:
            part.id = part.filename
        return part

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class FilePathAttachmentParser(AttachmentParser):
    """
    Attach a file from disk.

    The MIME type is detected from the bytes read, not from the file name.
    The file is read inside a ``with`` block, so the handle is released before
    the part is returned or when reading fails.
    """

    name = "file_path"

    def __init__(self, detector: Optional[ContentDetector] = None):
        self.detector = detector or detect_mime_type

    def parse(self, attachment: Any, attachment_name: Optional[str] = None) -> MimePart:
        if not isinstance(attachment, (str, os.PathLike)) or not os.path.isfile(attachment):
            raise InvalidAttachmentFault.from_expected_type("file path")

        path = Path(attachment)
        try:
            with path.open("rb") as fh:
                content = fh.read()
        except OSError as e:
            raise InvalidAttachmentFault(
                f"Attachment {str(path)!r} could not be read: {e}",
                details={"path": str(path)},
            ) from e

        part = MimePart(
            content=content,
            type=self.detector(content),
            encoding=ENCODING_BASE64,
            disposition=DISPOSITION_ATTACHMENT,
        )
        return self.apply_name_to_part(part, attachment_name or path.name)


class MimePartAttachmentParser(AttachmentParser):
    """Pass a copy of an already-built MimePart through, naming it if needed."""

    name = "mime_part"

    def parse(self, attachment: Any, attachment_name: Optional[str] = None) -> MimePart:
        if not isinstance(attachment, MimePart):
            raise InvalidAttachmentFault.from_expected_type("MimePart")
        return self.apply_name_to_part(replace(attachment), attachment_name)


class BytesAttachmentParser(AttachmentParser):
    """Attach raw bytes under an explicit display name."""

    name = "bytes"

    def __init__(self, detector: Optional[MimeDetector] = None):
        self.detector = detector or guess_mime_type

    def parse(self, attachment: Any, attachment_name: Optional[str] = None) -> MimePart:
        if not isinstance(attachment, (bytes, bytearray)):
            raise InvalidAttachmentFault.from_expected_type("bytes")
        if not attachment_name:
            raise InvalidAttachmentFault(
                "Raw bytes attachments need a name; add them under a string key",
            )
        part = MimePart(
            content=bytes(attachment),
            type=self.detector(attachment_name),
            encoding=ENCODING_BASE64,
            disposition=DISPOSITION_ATTACHMENT,
        )
        return self.apply_name_to_part(part, attachment_name)


class MappingAttachmentParser(AttachmentParser):
    """
    Attach a mapping describing the part.

    Recognised keys: ``content`` (required), ``filename`` or ``name``,
    ``type``, ``disposition``, ``encoding``, ``id``.
    """

    name = "mapping"

    def __init__(self, detector: Optional[MimeDetector] = None):
        self.detector = detector or guess_mime_type

    def parse(self, attachment: Any, attachment_name: Optional[str] = None) -> MimePart:
        if not isinstance(attachment, Mapping) or "content" not in attachment:
            raise InvalidAttachmentFault.from_expected_type("mapping with a 'content' key")

        content = attachment["content"]
        if not isinstance(content, (bytes, bytearray, str)):
            raise InvalidAttachmentFault.from_expected_type("bytes or str content")

        filename = attachment.get("filename") or attachment.get("name") or attachment_name
        mime_type = attachment.get("type")
        if mime_type is None:
            mime_type = self.detector(filename) if filename else TYPE_OCTETSTREAM

        part = MimePart(
            content=bytes(content) if isinstance(content, bytearray) else content,
            type=mime_type,
            encoding=attachment.get("encoding", ENCODING_BASE64),
            disposition=attachment.get("disposition", DISPOSITION_ATTACHMENT),
            filename=filename,
            id=attachment.get("id"),
        )
        return self.apply_name_to_part(part, attachment_name)


class StreamAttachmentParser(AttachmentParser):
    """Attach the remaining content of a readable binary stream."""

    name = "stream"

    def __init__(self, detector: Optional[MimeDetector] = None):
        self.detector = detector or guess_mime_type

    def parse(self, attachment: Any, attachment_name: Optional[str] = None) -> MimePart:
        if not isinstance(attachment, io.IOBase) or not attachment.readable():
            raise InvalidAttachmentFault.from_expected_type("readable binary stream")
        content = attachment.read()
        if isinstance(content, str):
            raise InvalidAttachmentFault.from_expected_type("binary stream")

        stream_name = getattr(attachment, "name", None)
        name = attachment_name or (
            os.path.basename(stream_name) if isinstance(stream_name, str) else None
        )
        part = MimePart(
            content=content,
            type=self.detector(name) if name else TYPE_OCTETSTREAM,
            encoding=ENCODING_BASE64,
            disposition=DISPOSITION_ATTACHMENT,
        )
        return self.apply_name_to_part(part, name)


BUILTIN_PARSERS = {
    FilePathAttachmentParser.name: FilePathAttachmentParser,
    MimePartAttachmentParser.name: MimePartAttachmentParser,
    BytesAttachmentParser.name: BytesAttachmentParser,
    MappingAttachmentParser.name: MappingAttachmentParser,
    StreamAttachmentParser.name: StreamAttachmentParser,
}


def default_parser_name(attachment: Any) -> str:
    """
    Map an untyped attachment value to the parser that handles its shape.

    Raises:
        InvalidAttachmentFault: For shapes no built-in parser understands.
    """
    if isinstance(attachment, MimePart):
        return MimePartAttachmentParser.name
    if isinstance(attachment, (str, os.PathLike)):
        return FilePathAttachmentParser.name
    if isinstance(attachment, (bytes, bytearray)):
        return BytesAttachmentParser.name
    if isinstance(attachment, Mapping):
        return MappingAttachmentParser.name
    if isinstance(attachment, io.IOBase):
        return StreamAttachmentParser.name
    raise InvalidAttachmentFault(
        f"Unsupported attachment of type {type(attachment).__qualname__!r}",
        details={"received": type(attachment).__qualname__},
    )
