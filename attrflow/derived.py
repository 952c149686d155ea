"""
attrflow Derived Cache - Memoized Derived Attributes
====================================================

Each state instance owns one :class:`DerivedCache`. Cacheable derived
attributes are computed on first read and memoized until a change to any name
in their expanded dependency set removes the memo. Non-cacheable derived
attributes are computed on every read and never stored.

Memos are removed, not flagged: a derived attribute that is absent from the
cache is simply recomputed the next time it is read.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable

from .schema import DerivedSpec, Schema

if TYPE_CHECKING:
    from .state import State


class DerivedCache:
    """Per-instance memo table for derived attributes."""

    def __init__(self, state: "State", schema: Schema):
        self._state = state
        self._schema = schema
        self._memo: Dict[str, Any] = {}

    def read(self, name: str) -> Any:
        """Return the derived value, computing (and memoizing) it if needed."""
        spec = self._schema.derived[name]
        if spec.cache and name in self._memo:
            return self._memo[name]

        value = self.compute(spec)
        if spec.cache:
            self._memo[name] = value
        return value

    def compute(self, spec: DerivedSpec) -> Any:
        logging.debug(f"Computing derived '{spec.name}' on {type(self._state).__name__}")
        return spec.fn(self._state)

    def invalidate(self, names: Iterable[str]) -> Dict[str, Any]:
        """
        Drop the memo of every derived attribute listed in *names*.

        Callers pass the closure already computed by the schema
        (:meth:`Schema.affected_by`), so chains of derived-on-derived
        dependencies are covered. Returns the removed memos by name.
        """
        removed = {}
        for name in names:
            if name in self._memo:
                removed[name] = self._memo.pop(name)
        return removed

    def invalidate_dependents(self, changed: Iterable[str]) -> Dict[str, Any]:
        """Drop memos of everything transitively depending on *changed*."""
        return self.invalidate(self._schema.affected_by(changed))

    def __contains__(self, name: str) -> bool:
        return name in self._memo

    def __len__(self) -> int:
        return len(self._memo)

    def __repr__(self) -> str:
        return f"DerivedCache(cached={sorted(self._memo)})"
