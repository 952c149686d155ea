"""
attrflow State - Schema-Driven Reactive Objects
===============================================

A :class:`State` subclass declares its attributes as class-level definition
keys. The :class:`StateMeta` metaclass merges them with the parent class's
definition, compiles the schema once, and installs a descriptor for every
attribute so instances read and write like plain objects:

```python
from attrflow import State


class Person(State):
    props = {
        "first_name": ["string", True, "defaults"],
        "last_name": ["string", True],
    }
    session = {
        "active": ["boolean", True, True],
    }
    derived = {
        "name": {
            "deps": ["first_name", "last_name"],
            "fn": lambda person: f"{person.first_name} {person.last_name}",
        },
    }


person = Person(first_name="jim", last_name="tom")
person.name                      # "jim tom"

person.on("change:name", lambda state, value: print("name is now", value))
person.first_name = "bob"        # prints: name is now bob tom

person.serialize()               # {"first_name": "bob", "last_name": "tom"}
person.attributes                # {..., "active": True}
```

The same class can be built from a mapping with ``State.extend(definition)``;
``Person.extend({...})`` layers a child definition over ``Person``'s.

Writes
------

Every ``set`` call (one attribute or a mapping of several) is a single
notification pass: each value is coerced and validated, changed values are
stored, affected derived attributes are recomputed in dependency order, and
one ``change:<name>`` per changed attribute plus one ``change`` are fired.

A failing attribute in a bulk ``set`` raises immediately. Attributes earlier
in the same mapping keep their new values; nothing is rolled back.
"""

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .datatypes import values_equal
from .derived import DerivedCache
from .descriptors import AttributeDescriptor, DerivedDescriptor
from .events import Events
from .exceptions import (
    AttributeTestError,
    AttributeTypeError,
    CoercionError,
    ImmutableDerivedError,
    SchemaError,
    SealedStateError,
    UnknownPropertyError,
    UntoggleableError,
)
from .propagation import ChangePass, active_pass
from .schema import (
    MISSING,
    AttributeSpec,
    ExtraProperties,
    Schema,
    compile_schema,
    merge_definitions,
    normalize_policy,
)

DEFINITION_KEYS = (
    "props",
    "session",
    "derived",
    "data_types",
    "extra_properties",
    "seal",
    "collections",
)


def _index_of(values, value) -> int:
    """Position of *value* in *values* under strict equality, or -1."""
    for index, candidate in enumerate(values):
        if values_equal(candidate, value):
            return index
    return -1


class StateMeta(type):
    """
    Metaclass compiling a State subclass's definition into its schema.

    Definition keys are removed from the class namespace and replaced by one
    descriptor per attribute. Base class definitions are merged first, so a
    subclass only declares what it adds or overrides.
    """

    def __new__(mcs, name: str, bases: tuple, namespace: dict, **kwargs):
        namespace = dict(namespace)
        # Properties sharing a definition key's name are class members.
        own = {
            key: namespace.pop(key)
            for key in DEFINITION_KEYS
            if key in namespace and not isinstance(namespace[key], property)
        }

        inherited: Dict[str, Any] = {}
        reserved = set()
        for base in reversed(bases):
            base_schema = getattr(base, "schema", None)
            if isinstance(base_schema, Schema):
                inherited = merge_definitions(inherited, base_schema.definition)
            reserved.update(getattr(base, "_reserved_names", ()))

        schema = compile_schema(merge_definitions(inherited, own))

        names = list(schema.attributes) + list(schema.derived) + list(schema.collections)
        for attr_name in names:
            if attr_name in reserved:
                raise SchemaError(
                    f"'{attr_name}' is used by State itself and cannot be an attribute name"
                )
            if attr_name in namespace:
                raise SchemaError(
                    f"'{attr_name}' is declared as an attribute and defined on class {name}"
                )

        for attr_name in schema.attributes:
            namespace[attr_name] = AttributeDescriptor(attr_name)
        for attr_name in schema.derived:
            namespace[attr_name] = DerivedDescriptor(attr_name)
        namespace["schema"] = schema

        cls = super().__new__(mcs, name, bases, namespace, **kwargs)
        if not reserved:
            cls._reserved_names = frozenset(n for n in dir(cls) if not n.startswith("_"))
        return cls


class State(Events, metaclass=StateMeta):
    """
    Base class for schema-driven reactive objects.

    Class-level definition keys: ``props``, ``session``, ``derived``,
    ``data_types``, ``extra_properties``, ``seal`` and ``collections``.
    See :mod:`attrflow.schema` for their forms.
    """

    schema: Schema

    # Back-reference owned by whichever ordered collection holds this state.
    collection = None

    def __init__(self, attrs: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        schema = self.schema
        self._lock = threading.RLock()
        self._values: Dict[str, Any] = {}
        self._cache = DerivedCache(self, schema)
        self._pass_stack: List[ChangePass] = []
        self._previous: Dict[str, Any] = {}
        self._changed: Dict[str, Any] = {}
        self._extra_properties = schema.extra_properties

        initial = dict(attrs or {})
        initial.update(kwargs)

        values: Dict[str, Any] = {}
        for name, spec in schema.attributes.items():
            if name in initial:
                values[name] = initial[name]
            elif spec.has_default:
                values[name] = spec.default_value()
        for name, value in initial.items():
            if name not in schema.attributes:
                values[name] = value

        # Required attributes may stay absent here; see verify_required().
        self.set(values, silent=True)
        self._previous = {}
        self._changed = {}

        for name, factory in schema.collections.items():
            self.__dict__[name] = factory(parent=self)

        self.initialize(initial)

    def initialize(self, attrs: Dict[str, Any]) -> None:
        """Hook run at the end of construction, after child collections exist."""
        pass

    @classmethod
    def extend(
        cls,
        definition: Optional[Mapping[str, Any]] = None,
        name: Optional[str] = None,
        **members: Any,
    ) -> type:
        """
        Build a subclass from a definition mapping.

        Definition keys feed the schema; any other entry (``initialize``,
        helper methods) becomes a class member.
        """
        namespace = dict(definition or {})
        namespace.update(members)
        namespace.setdefault("__module__", cls.__module__)
        return type(cls)(name or cls.__name__, (cls,), namespace)

    # ========================================================================
    # POLICY
    # ========================================================================

    @property
    def extra_properties(self) -> ExtraProperties:
        return self._extra_properties

    @extra_properties.setter
    def extra_properties(self, policy: Union[str, ExtraProperties]) -> None:
        self._extra_properties = normalize_policy(policy)

    # ========================================================================
    # READ
    # ========================================================================

    def get(self, name: str) -> Any:
        """Current value of a declared, session, derived or ad-hoc attribute."""
        with self._lock:
            if name in self.schema.derived:
                return self._cache.read(name)
            return self._present(name, self._values.get(name, MISSING))

    def get_type(self, name: str) -> Optional[str]:
        spec = self.schema.attributes.get(name)
        return spec.type_name if spec is not None else None

    def previous(self, name: str) -> Any:
        """
        Value *name* had before the current (or most recent) pass.

        Always ``None`` for non-cached derived attributes, and for cached ones
        whose value had never been computed before the pass.
        """
        derived = self.schema.derived.get(name)
        if derived is not None and not derived.cache:
            return None
        with self._lock:
            return self._present(name, self._previous_values().get(name, MISSING))

    def previous_attributes(self) -> Dict[str, Any]:
        with self._lock:
            return {
                name: self._present(name, value)
                for name, value in self._previous_values().items()
                if name not in self.schema.derived
            }

    def has_changed(self, name: Optional[str] = None) -> bool:
        changed = self.changed_attributes()
        if name is None:
            return bool(changed)
        return name in changed

    def changed_attributes(self) -> Dict[str, Any]:
        """New values of everything changed by the current (or most recent) pass."""
        with self._lock:
            current = active_pass(self)
            return current.changed if current is not None else dict(self._changed)

    @property
    def attributes(self) -> Dict[str, Any]:
        """Snapshot of every declared, session and ad-hoc attribute that has a value."""
        with self._lock:
            return {name: self._present(name, value) for name, value in self._ordered_values()}

    def serialize(self) -> Dict[str, Any]:
        """Stored values without session attributes, plus serialized child collections."""
        with self._lock:
            attributes = self.schema.attributes
            result = {
                name: value
                for name, value in self._ordered_values()
                if name not in attributes or not attributes[name].session
            }
        for name in self.schema.collections:
            serializer = getattr(self.__dict__.get(name), "serialize", None)
            if callable(serializer):
                result[name] = serializer()
        return result

    def verify_required(self) -> bool:
        """False if any required attribute is absent or ``None``."""
        with self._lock:
            return all(
                self._values.get(name) is not None
                for name, spec in self.schema.attributes.items()
                if spec.required
            )

    # ========================================================================
    # WRITE
    # ========================================================================

    def set(
        self,
        key: Union[str, Mapping[str, Any]],
        value: Any = MISSING,
        *,
        silent: bool = False,
    ) -> "State":
        """
        Write one attribute (``set(name, value)``) or several (``set(mapping)``)
        in a single notification pass.

        With ``silent=True`` values are stored and stale derived memos dropped,
        but no events fire.
        """
        if isinstance(key, Mapping):
            if value is not MISSING:
                raise TypeError("set() takes either a mapping or a name and a value")
            attrs = key
        else:
            if value is MISSING:
                raise TypeError(f"set() missing a value for '{key}'")
            attrs = {key: value}

        with self._lock:
            with ChangePass(self, silent=silent) as change_pass:
                for name, raw in attrs.items():
                    self._write(change_pass, name, raw)
        change_pass.dispatch()
        return self

    def unset(self, names: Union[str, Iterable[str]], *, silent: bool = False) -> "State":
        """
        Remove attribute values in a single pass.

        Required attributes with a default go back to that default instead of
        becoming absent.
        """
        if isinstance(names, str):
            names = [names]

        with self._lock:
            with ChangePass(self, silent=silent) as change_pass:
                for name in names:
                    if name in self.schema.derived:
                        raise ImmutableDerivedError(name)
                    spec = self.schema.attributes.get(name)
                    if spec is not None and spec.required and spec.has_default:
                        self._write(change_pass, name, spec.default_value())
                        continue
                    if name not in self._values:
                        continue
                    change_pass.record(name, self._values.pop(name), MISSING)
        change_pass.dispatch()
        return self

    def toggle(self, name: str) -> "State":
        """
        Flip a boolean attribute (absent counts as false), or advance an
        attribute with ``values`` to the next one, wrapping to the first.
        """
        if name in self.schema.derived:
            raise ImmutableDerivedError(name)
        spec = self.schema.attributes.get(name)
        if spec is None:
            raise UntoggleableError(name)

        with self._lock:
            current = self._values.get(name)
        if spec.type_name == "boolean":
            return self.set(name, not current)
        if spec.values:
            index = _index_of(spec.values, current)
            return self.set(name, spec.values[(index + 1) % len(spec.values)])
        raise UntoggleableError(name)

    # ========================================================================
    # INTERNAL IMPLEMENTATION
    # ========================================================================

    def _write(self, change_pass: ChangePass, name: str, raw: Any) -> None:
        schema = self.schema
        if name in schema.derived:
            raise ImmutableDerivedError(name)

        spec = schema.attributes.get(name)
        if spec is None:
            policy = self._extra_properties
            if policy is ExtraProperties.IGNORE:
                return
            if policy is ExtraProperties.REJECT:
                raise UnknownPropertyError(name)
            value = raw
            compare = values_equal
        else:
            value = self._validate(spec, raw)
            compare = spec.data_type.compare

        old_value = self._values.get(name, MISSING)
        unchanged = compare(None if old_value is MISSING else old_value, value)
        if old_value is not MISSING and unchanged:
            return

        change_pass.record(name, old_value, value)
        self._values[name] = value

    def _validate(self, spec: AttributeSpec, raw: Any) -> Any:
        name = spec.name
        try:
            value = spec.data_type.coerce(raw)
        except CoercionError as e:
            raise AttributeTypeError(
                name,
                f"Property '{name}' must be of type {spec.type_name}. Tried to set {raw!r}: {e}",
            ) from e

        if value is None:
            if not spec.allow_null:
                raise AttributeTypeError(
                    name,
                    f"Property '{name}' must be of type {spec.type_name} (cannot be null). "
                    f"Tried to set None",
                )
        elif spec.values is not None and _index_of(spec.values, value) < 0:
            allowed = ", ".join(str(v) for v in spec.values)
            raise AttributeTypeError(
                name,
                f"Property '{name}' must be one of values: {allowed}. Tried to set {value!r}",
            )

        if spec.test is not None:
            message = spec.test(self, value)
            if isinstance(message, str) and message:
                raise AttributeTestError(name, message)

        return value

    def _present(self, name: str, value: Any) -> Any:
        if value is MISSING or value is None:
            return None
        spec = self.schema.attributes.get(name)
        if spec is not None and spec.data_type.get is not None:
            return spec.data_type.get(value)
        return value

    def _previous_values(self) -> Dict[str, Any]:
        current = active_pass(self)
        return current.previous if current is not None else self._previous

    def _ordered_values(self):
        values = self._values
        for name in self.schema.attributes:
            if name in values:
                yield name, values[name]
        for name, value in values.items():
            if name not in self.schema.attributes:
                yield name, value

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or name in self.__dict__ or hasattr(type(self), name):
            super().__setattr__(name, value)
            return
        # Unknown public name: an ad-hoc attribute under the allow policy.
        if self.__dict__.get("_extra_properties") is ExtraProperties.ALLOW:
            self.set(name, value)
            return
        if self.schema.seal:
            raise SealedStateError(
                f"Cannot add property '{name}': {type(self).__name__} is sealed"
            )
        super().__setattr__(name, value)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails: serve ad-hoc attributes, and
        # None for undeclared names that derived attributes depend on.
        if not name.startswith("_"):
            values = self.__dict__.get("_values")
            if values is not None:
                if name in values:
                    return values[name]
                if self.schema.dependents_of(name):
                    return None
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.attributes!r})"
