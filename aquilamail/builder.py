"""
AquilaMail EmailBuilder — creates ``Email`` objects from named presets.

Presets live in ``mail_options.emails``::

    emails:
      base:
        from_address: noreply@example.com
        from_name: Example
      welcome:
        extends: base
        subject: Welcome!
        template: welcome.html

``build("welcome", {"to": ["a@example.com"]})`` merges ``base`` →
``welcome`` → options (lists are concatenated, scalars overridden).
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Type, Union, runtime_checkable

from .config import merge_config
from .faults import EmailNotFoundFault, InvalidArgumentFault
from .model import Email

EXTENDS_KEY = "extends"


@runtime_checkable
class IEmailBuilder(Protocol):
    def build(self, name: Union[str, Type[Email]], options: Optional[Mapping[str, Any]] = None) -> Email:
        ...


class EmailBuilder:
    """Resolves preset names (or the ``Email`` class itself) to ``Email`` instances."""

    def __init__(self, emails: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._emails: Dict[str, Dict[str, Any]] = {
            name: dict(preset) for name, preset in (emails or {}).items()
        }

    def has(self, name: str) -> bool:
        return name in self._emails

    def names(self) -> List[str]:
        return sorted(self._emails)

    def build(
        self,
        name: Union[str, Type[Email]],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Email:
        """
        Build an email.

        Args:
            name: A preset name, or the ``Email`` class to build from *options* only.
            options: Field values applied on top of the preset.

        Raises:
            EmailNotFoundFault: If *name* is not a registered preset.
            InvalidArgumentFault: On unknown fields or a circular ``extends`` chain.
        """
        options = dict(options or {})
        if isinstance(name, type) and issubclass(name, Email):
            return name.from_dict(options)
        if not isinstance(name, str):
            raise InvalidArgumentFault.from_valid_types(["str", "Email"], name, "email name")

        data = merge_config(self._resolve(name, []), options)
        return Email.from_dict(data)

    def _resolve(self, name: str, chain: List[str]) -> Dict[str, Any]:
        if name in chain:
            raise InvalidArgumentFault(
                "Circular email extends: " + " -> ".join([*chain, name]),
                field=EXTENDS_KEY,
            )
        preset = self._emails.get(name)
        if preset is None:
            raise EmailNotFoundFault(name)

        preset = dict(preset)
        parent = preset.pop(EXTENDS_KEY, None)
        if parent is None:
            return preset
        return merge_config(self._resolve(parent, [*chain, name]), preset)

    def __repr__(self) -> str:
        return f"EmailBuilder(emails={self.names()!r})"
