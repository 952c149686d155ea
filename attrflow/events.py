"""
attrflow Events - Named Event Subscription
==========================================

Mixin giving an object ``on`` / ``once`` / ``off`` / ``trigger``.

States fire ``change:<attribute>`` with ``(state, new_value)`` and ``change``
with ``(state, changed)``. A listener registered for ``"all"`` receives every
event as ``(event_name, *args)`` after that event's own listeners ran.

Listeners run synchronously, in registration order. An exception raised by a
listener propagates to whoever triggered the event.
"""

from typing import Any, Callable, Dict, List, Optional

ALL_EVENTS = "all"


class Events:
    """Named event registry mixin."""

    def _listeners(self) -> Dict[str, List[Callable[..., Any]]]:
        try:
            return self.__dict__["_event_listeners"]
        except KeyError:
            listeners: Dict[str, List[Callable[..., Any]]] = {}
            self.__dict__["_event_listeners"] = listeners
            return listeners

    def on(self, name: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Subscribe to an event. Returns a function that unsubscribes."""
        if not callable(callback):
            raise TypeError(f"Listener for '{name}' must be callable")
        self._listeners().setdefault(name, []).append(callback)

        def unsubscribe():
            self.off(name, callback)

        return unsubscribe

    def once(self, name: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Subscribe to the next occurrence of an event only."""

        def wrapper(*args):
            self.off(name, wrapper)
            return callback(*args)

        wrapper.__wrapped__ = callback
        return self.on(name, wrapper)

    def off(
        self, name: Optional[str] = None, callback: Optional[Callable[..., Any]] = None
    ) -> None:
        """
        Remove listeners.

        ``off()`` removes everything, ``off(name)`` every listener of one
        event, ``off(name, callback)`` and ``off(callback=callback)`` a single
        listener (including one registered through :meth:`once`).
        """
        listeners = self._listeners()
        names = [name] if name is not None else list(listeners)

        for event in names:
            if event not in listeners:
                continue
            if callback is None:
                del listeners[event]
                continue
            listeners[event] = [
                cb
                for cb in listeners[event]
                if cb is not callback and getattr(cb, "__wrapped__", None) is not callback
            ]
            if not listeners[event]:
                del listeners[event]

    def trigger(self, name: str, *args: Any) -> None:
        listeners = self._listeners()

        for callback in list(listeners.get(name, ())):
            callback(*args)

        if name != ALL_EVENTS:
            for callback in list(listeners.get(ALL_EVENTS, ())):
                callback(name, *args)

    def has_listeners(self, name: str) -> bool:
        listeners = self._listeners()
        return bool(listeners.get(name)) or bool(listeners.get(ALL_EVENTS))
