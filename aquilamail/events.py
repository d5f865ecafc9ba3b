"""
AquilaMail Events — lifecycle events fired around every send.

    PRE_RENDER  — before the template is rendered (listeners may mutate the email)
    PRE_SEND    — before assembly; any listener returning ``False`` cancels the send
    POST_SEND   — after a successful delivery, carries the MailResult
    SEND_ERROR  — after a failed assembly/delivery, carries the failed MailResult

Delivery is synchronous with respect to the send: callbacks run one after the
other in priority order (higher first, ties in registration order). Callbacks
may be plain functions or coroutine functions.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .model import Email
    from .result import MailResult

logger = logging.getLogger("aquilamail.events")

DEFAULT_PRIORITY = 1


class MailEventName(str, Enum):
    PRE_RENDER = "mail.pre_render"
    PRE_SEND = "mail.pre_send"
    POST_SEND = "mail.post_send"
    SEND_ERROR = "mail.send_error"


@dataclass(frozen=True)
class MailEvent:
    """An event tied to one send attempt."""

    name: MailEventName
    email: "Email"
    result: Optional["MailResult"] = None
    target: Any = None
    params: Dict[str, Any] = field(default_factory=dict)


class ResponseCollection:
    """Ordered return values of every callback that handled an event."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self._responses: List[Any] = list(responses or [])

    def push(self, value: Any) -> None:
        self._responses.append(value)

    def contains(self, value: Any) -> bool:
        """
        Membership test.

        ``True``/``False``/``None`` are matched by identity, so a listener
        returning ``0`` or ``""`` is not mistaken for ``False``.
        """
        if value is None or isinstance(value, bool):
            return any(r is value for r in self._responses)
        return value in self._responses

    def first(self) -> Any:
        return self._responses[0] if self._responses else None

    def last(self) -> Any:
        return self._responses[-1] if self._responses else None

    def __len__(self) -> int:
        return len(self._responses)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._responses)

    def __repr__(self) -> str:
        return f"ResponseCollection({self._responses!r})"


@dataclass(order=True)
class _Subscription:
    sort_key: tuple
    callback: Callable[[MailEvent], Any] = field(compare=False)


class EventManager:
    """
    Priority-ordered publish/subscribe for mail events.

    Usage:
        events = EventManager()
        events.attach(MailEventName.PRE_SEND, lambda e: e.email.subject != "")
        responses = await events.trigger(MailEvent(MailEventName.PRE_SEND, email))
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[_Subscription]] = {}
        self._counter = 0

    def attach(
        self,
        event_name: MailEventName | str,
        callback: Callable[[MailEvent], Any],
        priority: int = DEFAULT_PRIORITY,
    ) -> Callable[[MailEvent], Any]:
        """Subscribe *callback*; returns it so it can be detached later."""
        if not callable(callback):
            raise TypeError(f"Event callback must be callable, got {type(callback).__name__}")
        self._counter += 1
        subs = self._subscriptions.setdefault(_key(event_name), [])
        subs.append(_Subscription((-priority, self._counter), callback))
        subs.sort()
        return callback

    def detach(
        self,
        callback: Callable[[MailEvent], Any],
        event_name: MailEventName | str | None = None,
    ) -> bool:
        """
        Remove *callback* (matched by identity) from one event or from all.

        Returns:
            True if at least one subscription was removed.
        """
        names = [_key(event_name)] if event_name is not None else list(self._subscriptions)
        removed = False
        for name in names:
            subs = self._subscriptions.get(name, [])
            kept = [s for s in subs if s.callback is not callback and s.callback != callback]
            if len(kept) != len(subs):
                removed = True
                self._subscriptions[name] = kept
        return removed

    def listeners(self, event_name: MailEventName | str) -> List[Callable[[MailEvent], Any]]:
        return [s.callback for s in self._subscriptions.get(_key(event_name), [])]

    def clear(self, event_name: MailEventName | str | None = None) -> None:
        if event_name is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(_key(event_name), None)

    async def trigger(self, event: MailEvent) -> ResponseCollection:
        """
        Run every callback for *event* and collect their return values.

        Exceptions raised by callbacks propagate to the caller.
        """
        responses = ResponseCollection()
        for callback in list(self.listeners(event.name)):
            result = callback(event)
            if inspect.isawaitable(result):
                result = await result
            responses.push(result)
        logger.debug(f"Triggered {_key(event.name)} ({len(responses)} listener(s))")
        return responses


def _key(event_name: MailEventName | str) -> str:
    return event_name.value if isinstance(event_name, MailEventName) else str(event_name)


# ── Listeners ───────────────────────────────────────────────────────


@runtime_checkable
class MailListener(Protocol):
    """Object-style listener handling all four events."""

    def on_pre_render(self, event: MailEvent) -> Any:
        ...

    def on_pre_send(self, event: MailEvent) -> Any:
        ...

    def on_post_send(self, event: MailEvent) -> Any:
        ...

    def on_send_error(self, event: MailEvent) -> Any:
        ...

    def attach(self, events: EventManager, priority: int = DEFAULT_PRIORITY) -> None:
        ...

    def detach(self, events: EventManager) -> None:
        ...


class AbstractMailListener:
    """
    Base class for object-style listeners.

    Override any of the ``on_*`` hooks. ``on_pre_send`` may return ``False``
    to cancel the send; the other hooks' return values are ignored.
    """

    def __init__(self) -> None:
        self._handles: List[tuple] = []

    def on_pre_render(self, event: MailEvent) -> Any:
        return None

    def on_pre_send(self, event: MailEvent) -> Any:
        return None

    def on_post_send(self, event: MailEvent) -> Any:
        return None

    def on_send_error(self, event: MailEvent) -> Any:
        return None

    def attach(self, events: EventManager, priority: int = DEFAULT_PRIORITY) -> None:
        hooks = {
            MailEventName.PRE_RENDER: self.on_pre_render,
            MailEventName.PRE_SEND: self.on_pre_send,
            MailEventName.POST_SEND: self.on_post_send,
            MailEventName.SEND_ERROR: self.on_send_error,
        }
        for name, hook in hooks.items():
            self._handles.append((events, name, events.attach(name, hook, priority)))

    def detach(self, events: EventManager) -> None:
        remaining = []
        for owner, name, callback in self._handles:
            if owner is events:
                owner.detach(callback, name)
            else:
                remaining.append((owner, name, callback))
        self._handles = remaining
