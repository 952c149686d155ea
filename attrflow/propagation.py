"""
attrflow Propagation - One Notification Pass per Write
======================================================

Every ``set`` / ``unset`` call on a state runs inside one :class:`ChangePass`:

1. under the state's lock, the state applies each requested write and records
   the ones that changed,
2. on exit, still under the lock, the pass computes the derived attributes
   affected by those names, in dependency order, drops their stale memos and
   recomputes them,
3. after the lock is released, :meth:`ChangePass.dispatch` fires
   ``change:<name>`` for every declared attribute that changed (in write
   order) and every derived attribute that changed (dependencies first), then
   a single ``change``.

Listeners therefore never run while the state is locked: a listener may write
to any instance, including one whose own listeners write back, from any
thread. While listeners run, ``state.previous(name)`` answers from the pass's
pre-write snapshot. A write made by a listener runs its own complete pass
before the outer dispatch continues, and the outer snapshot is current again
afterwards.

A pass that ends with an exception, or that was opened with ``silent=True``,
only drops stale memos: it fires nothing and computes nothing. Writes applied
before the exception stay applied.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .datatypes import values_equal
from .schema import MISSING

if TYPE_CHECKING:
    from .state import State


@dataclass(frozen=True, slots=True)
class Change:
    """One attribute's change within a pass."""

    key: str
    old_value: Any
    new_value: Any
    derived: bool = False

    @property
    def is_creation(self) -> bool:
        return self.old_value is MISSING

    @property
    def is_removal(self) -> bool:
        return self.new_value is MISSING

    def __repr__(self) -> str:
        if self.is_creation:
            return f"Change({self.key}: created = {self.new_value!r})"
        if self.is_removal:
            return f"Change({self.key}: removed)"
        return f"Change({self.key}: {self.old_value!r} → {self.new_value!r})"


class ChangePass:
    """Collects the writes of one ``set`` call; :meth:`dispatch` notifies once."""

    def __init__(self, state: "State", silent: bool = False):
        self.state = state
        self.silent = silent
        self.previous: Dict[str, Any] = {}
        self.changes: Dict[str, Change] = {}
        self.derived_changes: List[Change] = []
        self._pending = False

    def __enter__(self) -> "ChangePass":
        self.previous = dict(self.state._values)
        self.state._pass_stack.append(self)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            if exc_type is not None or self.silent:
                self._invalidate()
            else:
                self._propagate()
        finally:
            self._leave()
        return False

    def record(self, key: str, old_value: Any, new_value: Any) -> None:
        earlier = self.changes.get(key)
        if earlier is not None:
            old_value = earlier.old_value
        self.changes[key] = Change(key, old_value, new_value)

    @property
    def changed(self) -> Dict[str, Any]:
        """New values by name for everything that changed in this pass."""
        result = {
            key: self.state._present(key, change.new_value)
            for key, change in self.changes.items()
        }
        for change in self.derived_changes:
            result[change.key] = change.new_value
        return result

    def dispatch(self) -> None:
        """
        Fire this pass's events. Call once the state's lock has been released.

        Does nothing for silent or failed passes, or when nothing changed.
        """
        if not self._pending:
            return
        self._pending = False

        self.state._pass_stack.append(self)
        try:
            self._notify()
        finally:
            self._leave()

    def _leave(self) -> None:
        stack = self.state._pass_stack
        for index in range(len(stack) - 1, -1, -1):
            if stack[index] is self:
                del stack[index]
                break
        self.state._previous = self.previous
        self.state._changed = self.changed

    def _invalidate(self) -> None:
        if self.changes:
            self.state._cache.invalidate_dependents(self.changes)

    def _propagate(self) -> None:
        if not self.changes:
            return

        state = self.state
        schema = state.schema
        affected = schema.affected_by(self.changes)
        stale = state._cache.invalidate(affected)

        for name in affected:
            spec = schema.derived[name]
            if spec.cache:
                old_value = stale.get(name, MISSING)
                new_value = state._cache.read(name)
                if old_value is not MISSING:
                    self.previous[name] = old_value
                    if values_equal(old_value, new_value):
                        continue
            else:
                old_value = MISSING
                new_value = state._cache.compute(spec)
            self.derived_changes.append(Change(name, old_value, new_value, derived=True))

        logging.debug(
            f"Propagating {type(state).__name__} pass: "
            f"changed={list(self.changes)}, derived={[c.key for c in self.derived_changes]}"
        )
        self._pending = True

    def _notify(self) -> None:
        state = self.state
        changed = self.changed

        for key in self.changes:
            state.trigger(f"change:{key}", state, changed[key])
        for change in self.derived_changes:
            state.trigger(f"change:{change.key}", state, change.new_value)

        state.trigger("change", state, changed)


def active_pass(state: "State") -> Optional[ChangePass]:
    """The innermost pass currently running on *state*, if any."""
    stack = state._pass_stack
    return stack[-1] if stack else None
