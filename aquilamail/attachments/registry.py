"""
Attachment parser registry — named lookup of pluggable parsers.

Entries may be parser instances, parser classes, zero-argument factories or
dotted import paths (``"package.module:ParserClass"``). Non-instance entries
are built on first ``get()`` and cached.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from ..config import import_string, merge_config
from ..faults import MailConfigFault, ServiceNotFoundFault
from .parsers import BUILTIN_PARSERS, IAttachmentParser

logger = logging.getLogger("aquilamail.attachments")

LEGACY_CONFIG_KEY = "attachment_parsers"
OPTIONS_CONFIG_KEY = "mail_options"


class AttachmentParserRegistry:
    """
    Named registry of attachment parsers.

    Usage:
        registry = AttachmentParserRegistry({
            "parsers": {"pdf": PdfParser},
            "aliases": {"application/pdf": "pdf"},
        })
        registry.has("file_path")           # built-ins are always present
        parser = registry.get("pdf")
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        self._factories: Dict[str, Any] = dict(BUILTIN_PARSERS)
        self._instances: Dict[str, IAttachmentParser] = {}
        self._aliases: Dict[str, str] = {}
        self._lock = threading.Lock()

        config = config or {}
        for name, entry in (config.get("parsers") or {}).items():
            self.register(name, entry)
        for alias, target in (config.get("aliases") or {}).items():
            self.alias(alias, target)

    # ── Registration ────────────────────────────────────────────────

    def register(self, name: str, parser: Any) -> "AttachmentParserRegistry":
        """Register (or replace) the parser stored under *name*."""
        with self._lock:
            self._instances.pop(name, None)
            self._factories[name] = parser
        logger.debug(f"Registered attachment parser {name!r}")
        return self

    def alias(self, alias: str, target: str) -> "AttachmentParserRegistry":
        self._aliases[alias] = target
        return self

    # ── Lookup ──────────────────────────────────────────────────────

    def _resolve_name(self, name: str) -> str:
        seen = {name}
        while name in self._aliases:
            name = self._aliases[name]
            if name in seen:
                raise MailConfigFault(
                    f"Circular attachment parser alias involving {name!r}",
                    config_key=f"{LEGACY_CONFIG_KEY}.aliases",
                )
            seen.add(name)
        return name

    def has(self, name: str) -> bool:
        return self._resolve_name(name) in self._factories

    def get(self, name: str) -> IAttachmentParser:
        """
        Return the parser registered under *name*.

        Raises:
            ServiceNotFoundFault: If nothing is registered under *name*.
        """
        resolved = self._resolve_name(name)
        with self._lock:
            instance = self._instances.get(resolved)
            if instance is not None:
                return instance
            if resolved not in self._factories:
                raise ServiceNotFoundFault(name, registry="attachment parser registry")
            instance = self._build(resolved, self._factories[resolved])
            self._instances[resolved] = instance
            return instance

    def names(self) -> List[str]:
        return sorted({*self._factories, *self._aliases})

    # ── Internals ───────────────────────────────────────────────────

    @staticmethod
    def _build(name: str, entry: Any) -> IAttachmentParser:
        if isinstance(entry, str):
            entry = import_string(entry)
        # Classes also expose parse(), so check for them before the protocol
        if isinstance(entry, type) or (callable(entry) and not hasattr(entry, "parse")):
            parser = entry()
        else:
            parser = entry
        if isinstance(parser, type) or not isinstance(parser, IAttachmentParser):
            raise MailConfigFault(
                f"Attachment parser {name!r} does not implement parse()",
                config_key=f"{LEGACY_CONFIG_KEY}.parsers.{name}",
            )
        return parser

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __repr__(self) -> str:
        return f"AttachmentParserRegistry(names={self.names()!r})"


def create_attachment_parser_registry(config: Optional[Mapping[str, Any]] = None) -> AttachmentParserRegistry:
    """
    Build the registry from an application config mapping.

    Two sections are read and merged, the current one winning on duplicate
    names::

        {
            "attachment_parsers": {...},                     # legacy
            "mail_options": {"attachment_parsers": {...}},   # current
        }

    Each section is either ``{"parsers": {...}, "aliases": {...}}`` or a flat
    ``{name: parser}`` mapping.
    """
    config = config or {}
    legacy = _normalise_section(config.get(LEGACY_CONFIG_KEY))
    current = _normalise_section((config.get(OPTIONS_CONFIG_KEY) or {}).get(LEGACY_CONFIG_KEY))
    if legacy.get("parsers"):
        logger.debug(
            f"Top-level {LEGACY_CONFIG_KEY!r} config is deprecated; "
            f"move it under {OPTIONS_CONFIG_KEY}.{LEGACY_CONFIG_KEY}"
        )
    return AttachmentParserRegistry(merge_config(legacy, current))


def _normalise_section(section: Any) -> Dict[str, Any]:
    if not section:
        return {}
    if not isinstance(section, Mapping):
        raise MailConfigFault(
            f"Attachment parser config must be a mapping, got {type(section).__name__}",
            config_key=LEGACY_CONFIG_KEY,
        )
    if "parsers" in section or "aliases" in section:
        return {
            "parsers": dict(section.get("parsers") or {}),
            "aliases": dict(section.get("aliases") or {}),
        }
    return {"parsers": dict(section), "aliases": {}}
