"""
attrflow Descriptors - Field-Style Attribute Access
===================================================

``StateMeta`` installs one descriptor per declared, session and derived
attribute, so ``person.first_name`` and ``person.first_name = "Jim"`` run
through exactly the same pipeline as ``person.get("first_name")`` and
``person.set("first_name", "Jim")``.
"""

from typing import Any

from .exceptions import ImmutableDerivedError


class AttributeDescriptor:
    """Read/write access to a declared or session attribute."""

    def __init__(self, name: str):
        self.name = name

    def __set_name__(self, owner, name: str) -> None:
        self.name = name

    def __get__(self, instance, owner=None) -> Any:
        if instance is None:
            return self
        return instance.get(self.name)

    def __set__(self, instance, value: Any) -> None:
        instance.set(self.name, value)

    def __delete__(self, instance) -> None:
        instance.unset(self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class DerivedDescriptor(AttributeDescriptor):
    """Read-only access to a derived attribute."""

    def __set__(self, instance, value: Any) -> None:
        raise ImmutableDerivedError(self.name)

    def __delete__(self, instance) -> None:
        raise ImmutableDerivedError(self.name)
