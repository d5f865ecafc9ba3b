"""
AquilaMail Faults — Structured, typed fault definitions for the mail subsystem.

Defines:
- Fault base class (structured fault objects)
- FaultDomain (explicit fault domains)
- Severity levels
- The mail fault taxonomy raised by the send pipeline

A fault is NOT a bare exception. It is a first-class value with a stable
machine-readable code, a human-readable message, a severity level, a domain
classification and retry semantics.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines logging level and recovery strategy.
    """
    INFO = "info"       # Informational, no action needed
    WARN = "warn"       # Warning, should be reviewed
    ERROR = "error"     # Error, immediate attention
    FATAL = "fatal"     # Fatal, unrecoverable, abort


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.IO = FaultDomain("io", "I/O operations")
FaultDomain.MAIL = FaultDomain("mail", "Email sending, templating, and delivery faults")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.IO: {"severity": Severity.WARN, "retryable": True},
    FaultDomain.MAIL: {"severity": Severity.ERROR, "retryable": False},
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    Attributes:
        code: Stable machine-readable identifier (e.g., "MAIL_SEND_ERROR")
        message: Human-readable summary
        severity: Fault severity (INFO, WARN, ERROR, FATAL)
        domain: Fault domain (CONFIG, IO, MAIL)
        retryable: Whether this fault can be retried
        metadata: Additional context data
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or defaults["severity"]
        self.retryable = retryable if retryable is not None else defaults["retryable"]
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Returns:
            Dictionary representation suitable for logging/serialization
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }


# ============================================================================
# Mail faults
# ============================================================================

def _type_name(value: Any) -> str:
    return type(value).__qualname__


class MailFault(Fault):
    """Base class for all mail-subsystem faults."""

    domain = FaultDomain.MAIL

    def __init__(
        self,
        message: str,
        *,
        code: str = "MAIL_ERROR",
        severity: Severity = Severity.ERROR,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        self.recoverable = recoverable
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MAIL,
            severity=severity,
            retryable=recoverable,
            metadata=dict(details or {}),
        )


class InvalidArgumentFault(MailFault):
    """A value of an unsupported shape was handed to the mail subsystem."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.field = field
        super().__init__(
            message,
            code="MAIL_INVALID_ARGUMENT",
            details={**(details or {}), "field": field},
        )

    @classmethod
    def from_valid_types(
        cls,
        types: Iterable[str],
        value: Any,
        field_name: str = "value",
    ) -> "InvalidArgumentFault":
        expected = list(types)
        return cls(
            'Provided {} is not valid. Expected one of ["{}"], but "{}" was provided'.format(
                field_name, '", "'.join(expected), _type_name(value),
            ),
            field=field_name,
            details={"expected": expected, "received": _type_name(value)},
        )


class EmailNotFoundFault(MailFault):
    """The email builder has no preset with the requested name."""

    def __init__(self, email_name: str):
        self.email_name = email_name
        super().__init__(
            f'An email with name "{email_name}" could not be found in registered emails list',
            code="MAIL_EMAIL_NOT_FOUND",
            details={"email_name": email_name},
        )


class InvalidAttachmentFault(MailFault):
    """An attachment parser received a value it cannot handle."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            code="MAIL_INVALID_ATTACHMENT",
            details=details,
        )

    @classmethod
    def from_expected_type(cls, expected_type: str) -> "InvalidAttachmentFault":
        return cls(
            f'Provided attachment is not valid. Expected "{expected_type}"',
            details={"expected": expected_type},
        )


class ServiceNotFoundFault(MailFault):
    """A registry lookup failed."""

    def __init__(self, name: str, *, registry: str = "registry"):
        self.name = name
        super().__init__(
            f'A service named "{name}" could not be found in the {registry}',
            code="MAIL_SERVICE_NOT_FOUND",
            details={"name": name, "registry": registry},
        )


class ServiceNotCreatedFault(MailFault):
    """A collaborator required by the pipeline could not be created (configuration error)."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            code="MAIL_SERVICE_NOT_CREATED",
            severity=Severity.FATAL,
            details=details,
        )


class MailTemplateFault(MailFault):
    """Template lookup or render error."""

    def __init__(
        self,
        message: str,
        *,
        template_name: Optional[str] = None,
        line: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.template_name = template_name
        super().__init__(
            message,
            code="MAIL_TEMPLATE_ERROR",
            details={
                **(details or {}),
                "template_name": template_name,
                "line": line,
            },
        )


class TransportFault(MailFault):
    """Transport-level delivery failure (connection, protocol, rejected recipients)."""

    def __init__(
        self,
        message: str,
        *,
        transport: str = "unknown",
        transient: bool = True,
        details: Optional[dict[str, Any]] = None,
    ):
        self.transport = transport
        self.transient = transient
        super().__init__(
            message,
            code="MAIL_TRANSPORT_ERROR",
            severity=Severity.WARN if transient else Severity.ERROR,
            details={**(details or {}), "transport": transport, "transient": transient},
            recoverable=transient,
        )


class MailConfigFault(MailFault):
    """Mail configuration error (unknown transport, bad section shape, etc.)."""

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.config_key = config_key
        super().__init__(
            message,
            code="MAIL_CONFIG_ERROR",
            severity=Severity.FATAL,
            details={**(details or {}), "config_key": config_key},
        )


class MailException(MailFault):
    """
    The failure surfaced to callers of ``MailService.send``.

    Always raised ``from`` the underlying error, which is also kept in
    ``cause`` so it survives re-raising.
    """

    def __init__(
        self,
        message: str = "An error occurred while trying to send the email",
        *,
        cause: Optional[BaseException] = None,
    ):
        self.cause = cause
        super().__init__(
            message,
            code="MAIL_SEND_ERROR",
            details={"cause": repr(cause)} if cause is not None else None,
            recoverable=bool(getattr(cause, "retryable", False)),
        )
