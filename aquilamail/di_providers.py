"""
AquilaMail — DI Providers

Construction glue for the mail subsystem. Everything here takes the
application configuration mapping explicitly and builds the collaborators
``MailService`` needs.

Provides:
- MailServiceBuilder: builds (and caches) named mail services
- MailOptionsProvider, EmailBuilderProvider, MailRendererProvider,
  AttachmentParserRegistryProvider, MailServiceProvider: one ``provide()``
  per collaborator
- create_mail_service(): one-call factory

Service definitions live in ``mail_options.mail_services``::

    mail_options:
      mail_services:
        default:
          transport: smtp
          transport_options: {host: smtp.example.com, port: 587}
          mail_listeners: [myapp.mail:AuditListener]
        marketing:
          extends: default
          transport_options: {host: bulk.example.com}
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from .attachments.registry import AttachmentParserRegistry, create_attachment_parser_registry
from .builder import EmailBuilder
from .config import MailOptions, import_string, merge_config
from .events import DEFAULT_PRIORITY, EventManager, MailListener
from .faults import MailConfigFault, ServiceNotFoundFault
from .renderers import IMailRenderer, create_mail_renderer
from .service import MailService
from .testing import InMemoryTransport
from .transports import ConsoleTransport, FileTransport, IMailTransport, SMTPTransport

logger = logging.getLogger("aquilamail.di")

DEFAULT_SERVICE = "default"
DEFAULT_TRANSPORT = "console"

TRANSPORT_TYPES: Dict[str, type] = {
    "console": ConsoleTransport,
    "file": FileTransport,
    "smtp": SMTPTransport,
    "memory": InMemoryTransport,
}


def _prebuilt_services(config: Mapping[str, Any]) -> Dict[str, Any]:
    """Ready-made services from ``dependencies.services`` (or ``service_manager.services``)."""
    dependencies = config.get("dependencies") or config.get("service_manager") or {}
    return dict(dependencies.get("services") or {})


def _resolve_object(entry: Any, key: str) -> Any:
    """Import dotted paths and instantiate classes; anything else is returned as-is."""
    if isinstance(entry, str):
        entry = import_string(entry)
    if isinstance(entry, type):
        try:
            entry = entry()
        except TypeError as e:
            raise MailConfigFault(
                f"Cannot instantiate {entry.__qualname__} for {key!r}: {e}", config_key=key,
            ) from e
    return entry


# ============================================================================
# Service builder
# ============================================================================


class MailServiceBuilder:
    """
    Builds named ``MailService`` instances from configuration.

    Services are built once and cached. The attachment parser registry,
    email builder and default renderer are shared by every service of one
    builder.

    Usage:
        builder = MailServiceBuilder(config)
        service = builder.build("default")
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        self._config: Dict[str, Any] = dict(config or {})
        self.options = MailOptions.from_config(self._config)
        self._services: Dict[str, Any] = _prebuilt_services(self._config)
        self._lock = threading.RLock()

        self._parsers: Optional[AttachmentParserRegistry] = None
        self._email_builder: Optional[EmailBuilder] = None
        self._renderer: Optional[IMailRenderer] = None

    # ── Shared collaborators ────────────────────────────────────────

    @property
    def attachment_parsers(self) -> AttachmentParserRegistry:
        if self._parsers is None:
            self._parsers = create_attachment_parser_registry(self._config)
        return self._parsers

    @property
    def email_builder(self) -> EmailBuilder:
        if self._email_builder is None:
            self._email_builder = EmailBuilder(self.options.emails)
        return self._email_builder

    @property
    def renderer(self) -> IMailRenderer:
        if self._renderer is None:
            self._renderer = create_mail_renderer(self.options.renderer)
        return self._renderer

    # ── Lookup ──────────────────────────────────────────────────────

    def has(self, name: str) -> bool:
        return name in self._services or name in self.options.mail_services

    def names(self) -> List[str]:
        return sorted(set(self._services) | set(self.options.mail_services))

    def build(self, name: str = DEFAULT_SERVICE) -> MailService:
        """
        Return the service called *name*, building it on first use.

        Raises:
            ServiceNotFoundFault: No service with that name is configured.
            MailConfigFault: The service definition is invalid.
        """
        with self._lock:
            service = self._services.get(name)
            if service is None:
                service = self._create_service(name)
                self._services[name] = service
            return service

    # ── Construction ────────────────────────────────────────────────

    def _service_config(self, name: str, chain: List[str]) -> Dict[str, Any]:
        if name in chain:
            raise MailConfigFault(
                "Circular mail service extends: " + " -> ".join([*chain, name]),
                config_key=f"{MailOptions.CONFIG_KEY}.mail_services.{name}.extends",
            )
        definition = self.options.mail_services.get(name)
        if definition is None:
            raise ServiceNotFoundFault(name, registry="mail services")
        if not isinstance(definition, Mapping):
            raise MailConfigFault(
                f"Mail service {name!r} must be a mapping, got {type(definition).__name__}",
                config_key=f"{MailOptions.CONFIG_KEY}.mail_services.{name}",
            )

        definition = dict(definition)
        parent = definition.pop("extends", None)
        if parent is None:
            return definition
        return merge_config(self._service_config(parent, [*chain, name]), definition)

    def _create_service(self, name: str) -> MailService:
        definition = self._service_config(name, [])
        logger.debug(f"Creating mail service {name!r}")

        service = MailService(
            transport=self._create_transport(name, definition),
            renderer=self._create_renderer(name, definition),
            email_builder=self.email_builder,
            attachment_parsers=self.attachment_parsers,
            events=EventManager(),
            name=name,
        )
        for listener, priority in self._create_listeners(name, definition):
            service.attach_mail_listener(listener, priority)

        logger.info(f"Mail service {name!r} ready (transport={service.transport!r})")
        return service

    def _create_transport(self, name: str, definition: Mapping[str, Any]) -> IMailTransport:
        key = f"{MailOptions.CONFIG_KEY}.mail_services.{name}.transport"
        entry = definition.get("transport", DEFAULT_TRANSPORT)
        options = dict(definition.get("transport_options") or {})

        if isinstance(entry, str) and entry in TRANSPORT_TYPES:
            options.setdefault("name", name)
            entry = TRANSPORT_TYPES[entry]
        elif isinstance(entry, str):
            entry = import_string(entry)

        if isinstance(entry, type):
            try:
                entry = entry(**options)
            except TypeError as e:
                raise MailConfigFault(
                    f"Invalid transport_options for {entry.__qualname__}: {e}", config_key=key,
                ) from e

        if not isinstance(entry, IMailTransport):
            raise MailConfigFault(
                f"Transport {entry!r} for mail service {name!r} does not implement send(message)",
                config_key=key,
            )
        return entry

    def _create_renderer(self, name: str, definition: Mapping[str, Any]) -> IMailRenderer:
        entry = definition.get("renderer")
        if entry is None:
            return self.renderer
        if isinstance(entry, Mapping):
            return create_mail_renderer(merge_config(self.options.renderer, entry))
        return create_mail_renderer({"renderer": entry})

    def _create_listeners(self, name: str, definition: Mapping[str, Any]) -> List[tuple]:
        key = f"{MailOptions.CONFIG_KEY}.mail_services.{name}.mail_listeners"
        listeners = []
        for entry in definition.get("mail_listeners") or []:
            priority = DEFAULT_PRIORITY
            if isinstance(entry, Mapping):
                priority = int(entry.get("priority", DEFAULT_PRIORITY))
                entry = entry.get("listener")
            listener = _resolve_object(entry, key)
            if not isinstance(listener, MailListener):
                raise MailConfigFault(
                    f"Mail listener {listener!r} does not implement the MailListener interface",
                    config_key=key,
                )
            listeners.append((listener, priority))
        return listeners

    async def close(self) -> None:
        """Close every service built so far."""
        for service in list(self._services.values()):
            if isinstance(service, MailService):
                await service.close()

    def __repr__(self) -> str:
        return f"MailServiceBuilder(services={self.names()!r})"


# ============================================================================
# Providers
# ============================================================================


class MailOptionsProvider:
    """Provides the validated ``mail_options`` section."""

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        self._config = config or {}

    def provide(self) -> MailOptions:
        return MailOptions.from_config(self._config)


class AttachmentParserRegistryProvider:
    """Provides the attachment parser registry (legacy + current config merged)."""

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        self._config = config or {}

    def provide(self) -> AttachmentParserRegistry:
        return create_attachment_parser_registry(self._config)


class EmailBuilderProvider:
    """Provides an ``EmailBuilder`` over ``mail_options.emails``."""

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        self._config = config or {}

    def provide(self) -> EmailBuilder:
        return EmailBuilder(MailOptions.from_config(self._config).emails)


class MailRendererProvider:
    """Provides the renderer described by ``mail_options.renderer``."""

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        self._config = config or {}

    def provide(self) -> IMailRenderer:
        return create_mail_renderer(MailOptions.from_config(self._config).renderer)


class MailServiceProvider:
    """Provides the named ``MailService`` through a ``MailServiceBuilder``."""

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        name: str = DEFAULT_SERVICE,
        *,
        builder: Optional[MailServiceBuilder] = None,
    ):
        self._builder = builder or MailServiceBuilder(config)
        self._name = name

    def provide(self) -> MailService:
        return self._builder.build(self._name)


# ============================================================================
# Factory functions
# ============================================================================


def create_mail_service(
    config: Optional[Mapping[str, Any]] = None,
    name: str = DEFAULT_SERVICE,
) -> MailService:
    """Build the mail service called *name* from *config*."""
    return MailServiceBuilder(config).build(name)
