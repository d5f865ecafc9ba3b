"""
Deliver assembled messages to an SMTP relay with aiosmtplib.

The envelope recipients are every To, Cc and Bcc address of the
``Message``; the Bcc header itself never reaches the wire. One connection
is held open between sends unless ``keep_alive`` is off, and it is checked
with NOOP before reuse and replaced once it is older than ``recycle``
seconds.

Failures surface as ``TransportFault``. 4xx replies and dropped
connections are marked transient so callers may retry them; anything else
is permanent.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time
from typing import Any, Optional

import aiosmtplib

from ..faults import TransportFault
from ..mime import Message

logger = logging.getLogger("aquilamail.transports.smtp")

# Replies a relay uses for "try again later"
_RETRY_LATER_CODES = frozenset({421, 450, 451, 452})

_CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    aiosmtplib.SMTPServerDisconnected,
    aiosmtplib.SMTPConnectError,
    aiosmtplib.SMTPTimeoutError,
)


class SMTPTransport:
    """
    SMTP delivery for a mailer.

    ``use_tls`` upgrades a plain connection with STARTTLS, ``use_ssl``
    opens the socket over TLS from the start. Credentials are only sent
    when both ``username`` and ``password`` are set.
    """

    name: str

    def __init__(
        self,
        name: str = "smtp",
        host: str = "localhost",
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout: float = 30.0,
        *,
        local_hostname: Optional[str] = None,
        validate_certs: bool = True,
        client_cert: Optional[str] = None,
        client_key: Optional[str] = None,
        keep_alive: bool = True,
        recycle: float = 300.0,
    ):
        self.name = name
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.timeout = timeout
        self.local_hostname = local_hostname
        self.validate_certs = validate_certs
        self.client_cert = client_cert
        self.client_key = client_key
        self.keep_alive = keep_alive
        self.recycle = recycle

        self._conn: Optional[aiosmtplib.SMTP] = None
        self._opened_at = 0.0
        self._lock = asyncio.Lock()

    # ── Connection ──────────────────────────────────────────────────

    def _build_tls_context(self) -> Optional[ssl.SSLContext]:
        if not (self.use_tls or self.use_ssl):
            return None
        context = ssl.create_default_context()
        if not self.validate_certs:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        if self.client_cert:
            context.load_cert_chain(certfile=self.client_cert, keyfile=self.client_key)
        return context

    async def _open(self) -> aiosmtplib.SMTP:
        client = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            # aiosmtplib calls implicit TLS "use_tls"
            use_tls=self.use_ssl,
            start_tls=self.use_tls and not self.use_ssl,
            timeout=self.timeout,
            local_hostname=self.local_hostname,
            tls_context=self._build_tls_context(),
        )
        await client.connect()
        if self.username and self.password:
            await client.login(self.username, self.password)
        logger.debug(f"Opened SMTP connection to {self.host}:{self.port}")
        return client

    async def _connection(self) -> aiosmtplib.SMTP:
        if self._conn is not None:
            if time.monotonic() - self._opened_at <= self.recycle:
                try:
                    await self._conn.noop()
                    return self._conn
                except aiosmtplib.SMTPException as e:
                    logger.debug(f"Kept SMTP connection is unusable: {e}")
            await self._close(self._conn)
            self._conn = None

        client = await self._open()
        self._opened_at = time.monotonic()
        if self.keep_alive:
            self._conn = client
        return client

    @staticmethod
    async def _close(client: aiosmtplib.SMTP) -> None:
        try:
            await client.quit()
        except (aiosmtplib.SMTPException, OSError):
            client.close()

    async def shutdown(self) -> None:
        """QUIT the kept connection, if any."""
        async with self._lock:
            if self._conn is not None:
                await self._close(self._conn)
                self._conn = None
        logger.info(f"Closed SMTP transport {self.name!r}")

    # ── Delivery ────────────────────────────────────────────────────

    async def send(self, message: Message) -> str:
        """
        Hand *message* to the relay.

        Returns:
            The Message-ID header that went out with it.

        Raises:
            TransportFault: The message has no recipients, or the relay
                or network failed.
        """
        mime = message.to_mime()
        recipients = message.all_recipients()
        if not recipients:
            raise TransportFault("Message has no recipients", transport=self.name, transient=False)

        async with self._lock:
            client = None
            try:
                client = await self._connection()
                refused, _ = await client.send_message(
                    mime, sender=message.from_address, recipients=recipients,
                )
            except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
                if self._conn is not None:
                    await self._close(self._conn)
                    self._conn = None
                transient = self._is_transient(e)
                logger.warning(f"{self.name}: relay {self.host} failed: {e} (transient={transient})")
                raise TransportFault(
                    f"SMTP delivery failed: {e}",
                    transport=self.name,
                    transient=transient,
                    details={"smtp_code": self._smtp_code(e)},
                ) from e
            finally:
                if client is not None and not self.keep_alive:
                    await self._close(client)

        message_id = mime["Message-ID"]
        logger.info(f"{self.name}: relayed {message_id} to {len(recipients)} recipient(s)")
        if refused:
            logger.warning(f"{self.name}: relay refused {sorted(refused)}")
        return message_id

    @staticmethod
    def _smtp_code(error: BaseException) -> Optional[int]:
        code: Any = getattr(error, "code", None)
        try:
            return int(code) if code is not None else None
        except (TypeError, ValueError):
            return None

    @classmethod
    def _is_transient(cls, error: BaseException) -> bool:
        code = cls._smtp_code(error)
        if code is None:
            return isinstance(error, _CONNECTION_ERRORS)
        return code in _RETRY_LATER_CODES or 400 <= code < 500

    def __repr__(self) -> str:
        return f"<SMTPTransport {self.name!r} {self.host}:{self.port}>"
