"""
AquilaMail attachments — parsers and the registry that names them.
"""

from .parsers import (
    AttachmentParser,
    BytesAttachmentParser,
    FilePathAttachmentParser,
    IAttachmentParser,
    MappingAttachmentParser,
    MimePartAttachmentParser,
    StreamAttachmentParser,
    default_parser_name,
    detect_mime_type,
    guess_mime_type,
)
from .registry import AttachmentParserRegistry, create_attachment_parser_registry

__all__ = [
    "IAttachmentParser",
    "AttachmentParser",
    "FilePathAttachmentParser",
    "MimePartAttachmentParser",
    "BytesAttachmentParser",
    "MappingAttachmentParser",
    "StreamAttachmentParser",
    "default_parser_name",
    "detect_mime_type",
    "guess_mime_type",
    "AttachmentParserRegistry",
    "create_attachment_parser_registry",
]
