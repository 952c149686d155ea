"""
attrflow Schema - Compiling State Definitions
=============================================

A state definition is a plain mapping:

```python
definition = {
    "props": {
        "first_name": ["string", True, "defaults"],   # [type, required, default]
        "last_name": ["string", True],                 # [type, required]
        "id": "number",                                # bare type name
        "some_number": {"type": "number", "allow_null": True},
        "state": {"values": ("CA", "WA", "NV"), "default": "CA"},
    },
    "session": {
        "active": ["boolean", True, True],
    },
    "derived": {
        "name": {
            "deps": ["first_name", "last_name"],
            "fn": lambda state: f"{state.first_name} {state.last_name}",
        },
    },
    "data_types": {},            # schema-local DataType registrations
    "extra_properties": "ignore",  # ignore | allow | reject
    "seal": False,
    "collections": {},           # name -> factory(parent=state)
}
```

:func:`compile_schema` normalizes every shorthand into an
:class:`AttributeSpec`, every derived entry into a :class:`DerivedSpec`, and
builds the dependency graph once. The resulting :class:`Schema` is immutable
and shared by every instance of the state class.

:func:`merge_definitions` implements extension: a child definition is layered
over its parent's before compiling.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
)

from . import datatypes
from .datatypes import DataType, TypeRegistry, values_equal
from .exceptions import SchemaError
from .graph import DependencyGraph

_GROUP_KEYS = ("props", "session", "derived", "data_types", "collections")
_ATTRIBUTE_GROUPS = ("props", "session", "derived")
_FLAG_KEYS = ("extra_properties", "seal")
_ATTRIBUTE_KEYS = {"type", "required", "default", "allow_null", "values", "test"}


class ExtraProperties(Enum):
    """What a write to an undeclared attribute does."""

    IGNORE = "ignore"
    ALLOW = "allow"
    REJECT = "reject"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True, slots=True)
class AttributeSpec:
    """Compiled descriptor for one declared (or session) attribute."""

    name: str
    type_name: str
    data_type: DataType = field(repr=False, compare=False)
    required: bool = False
    default: Any = MISSING
    allow_null: bool = False
    values: Optional[Tuple[Any, ...]] = None
    session: bool = False
    test: Optional[Callable[[Any, Any], Optional[str]]] = field(
        default=None, repr=False, compare=False
    )

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    def default_value(self) -> Any:
        """Resolve the default for a new instance; callables run each time."""
        if callable(self.default):
            return self.default()
        return self.default


@dataclass(frozen=True, slots=True)
class DerivedSpec:
    """Compiled descriptor for one derived attribute."""

    name: str
    deps: Tuple[str, ...]
    fn: Callable[[Any], Any] = field(repr=False, compare=False)
    cache: bool = True


# ============================================================================
# NORMALIZATION
# ============================================================================


def normalize_attribute(
    name: str,
    raw: Any,
    session: bool = False,
    registry: Optional[TypeRegistry] = None,
) -> AttributeSpec:
    """
    Turn any shorthand attribute declaration into an :class:`AttributeSpec`.

    Accepted forms: ``"type"``, ``[type]``, ``[type, required]``,
    ``[type, required, default]`` and the full mapping
    ``{type, required, default, allow_null, values, test}``.
    """
    registry = registry or datatypes.registry

    if isinstance(raw, str):
        options: Dict[str, Any] = {"type": raw}
    elif isinstance(raw, (list, tuple)):
        if not 1 <= len(raw) <= 3:
            raise SchemaError(
                f"Attribute '{name}' shorthand must be [type], [type, required] "
                f"or [type, required, default], got {raw!r}"
            )
        options = {"type": raw[0]}
        if len(raw) > 1:
            options["required"] = raw[1]
        if len(raw) > 2:
            options["default"] = raw[2]
    elif isinstance(raw, Mapping):
        unknown = set(raw) - _ATTRIBUTE_KEYS
        if unknown:
            raise SchemaError(
                f"Attribute '{name}' has unknown options: {', '.join(sorted(unknown))}"
            )
        options = dict(raw)
    else:
        raise SchemaError(f"Cannot understand declaration of attribute '{name}': {raw!r}")

    type_name = options.get("type") or "any"
    if not isinstance(type_name, str):
        raise SchemaError(f"Attribute '{name}' type must be a type name, got {type_name!r}")
    data_type = registry.resolve(type_name)

    values = options.get("values")
    if values is not None:
        if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
            raise SchemaError(f"Attribute '{name}' values must be a sequence")
        values = tuple(values)
        if not values:
            raise SchemaError(f"Attribute '{name}' values must not be empty")

    test = options.get("test")
    if test is not None and not callable(test):
        raise SchemaError(f"Attribute '{name}' test must be callable")

    required = bool(options.get("required", False))
    default = options.get("default", MISSING)
    if isinstance(default, (list, dict, set)):
        raise SchemaError(
            f"Mutable default {type(default).__name__} for attribute '{name}' is not "
            f"allowed: use a callable that returns a new value"
        )
    if default is MISSING and required and data_type.default is not None:
        default = data_type.default
    if (
        values is not None
        and default is not MISSING
        and default is not None
        and not callable(default)
        and not any(values_equal(default, v) for v in values)
    ):
        raise SchemaError(
            f"Default {default!r} for attribute '{name}' is not one of {values!r}"
        )

    return AttributeSpec(
        name=name,
        type_name=type_name,
        data_type=data_type,
        required=required,
        default=default,
        allow_null=bool(options.get("allow_null", False)),
        values=values,
        session=session,
        test=test,
    )


def normalize_derived(name: str, raw: Any) -> DerivedSpec:
    if not isinstance(raw, Mapping):
        raise SchemaError(f"Derived property '{name}' must be a mapping with 'deps' and 'fn'")

    unknown = set(raw) - {"deps", "fn", "cache"}
    if unknown:
        raise SchemaError(
            f"Derived property '{name}' has unknown options: {', '.join(sorted(unknown))}"
        )

    fn = raw.get("fn")
    if not callable(fn):
        raise SchemaError(f"Derived property '{name}' needs a callable 'fn'")

    deps = raw.get("deps") or ()
    if isinstance(deps, str):
        deps = (deps,)
    deps = tuple(deps)
    for dep in deps:
        if not isinstance(dep, str):
            raise SchemaError(f"Derived property '{name}' has a non-string dependency {dep!r}")

    return DerivedSpec(name=name, deps=deps, fn=fn, cache=bool(raw.get("cache", True)))


def normalize_policy(value: Any) -> ExtraProperties:
    try:
        return ExtraProperties(value)
    except ValueError:
        raise SchemaError(
            f"extra_properties must be one of "
            f"{', '.join(p.value for p in ExtraProperties)}, got {value!r}"
        ) from None


# ============================================================================
# MERGING
# ============================================================================


def merge_definitions(
    parent: Optional[Mapping[str, Any]], child: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """
    Layer a child definition over a parent definition.

    Grouped entries (``props``, ``session``, ``derived``, ``data_types``,
    ``collections``) merge by name with the child winning. A name the child
    declares in one attribute group is removed from the parent's other
    attribute groups, so a child may turn a parent prop into a session or
    derived property. Flags present in the child replace the parent's.
    Neither input is modified.
    """
    parent = parent or {}
    child = child or {}
    merged: Dict[str, Any] = {}

    child_names = set()
    for group in _ATTRIBUTE_GROUPS:
        child_names.update(child.get(group) or {})

    for key in _GROUP_KEYS:
        inherited = dict(parent.get(key) or {})
        own = dict(child.get(key) or {})
        if key in _ATTRIBUTE_GROUPS:
            inherited = {k: v for k, v in inherited.items() if k not in own and k not in child_names}
        if inherited or own:
            merged[key] = {**inherited, **own}

    for key in set(parent) | set(child):
        if key in _GROUP_KEYS:
            continue
        merged[key] = child[key] if key in child else parent[key]

    return merged


# ============================================================================
# COMPILED SCHEMA
# ============================================================================


class Schema:
    """
    Compiled, read-only union of attribute and derived specs.

    Holds the reverse-dependency index: for every name a derived attribute
    depends on (directly or through other derived attributes), the derived
    attributes to invalidate when that name changes.
    """

    def __init__(
        self,
        attributes: Dict[str, AttributeSpec],
        derived: Dict[str, DerivedSpec],
        registry: TypeRegistry,
        extra_properties: ExtraProperties,
        seal: bool,
        collections: Dict[str, Callable[..., Any]],
        graph: DependencyGraph,
        definition: Mapping[str, Any],
    ):
        self.attributes: Mapping[str, AttributeSpec] = MappingProxyType(attributes)
        self.derived: Mapping[str, DerivedSpec] = MappingProxyType(derived)
        self.registry = registry
        self.extra_properties = extra_properties
        self.seal = seal
        self.collections: Mapping[str, Callable[..., Any]] = MappingProxyType(collections)
        self.definition: Mapping[str, Any] = MappingProxyType(dict(definition))
        self._graph = graph

        self._expanded: Dict[str, FrozenSet[str]] = {
            name: frozenset(graph.get_all_dependencies(name)) for name in derived
        }
        self._dependents: Dict[str, FrozenSet[str]] = {}
        for name in graph.nodes():
            dependents = graph.get_all_dependents(name)
            if dependents:
                self._dependents[name] = frozenset(dependents)

    def expanded_deps(self, name: str) -> FrozenSet[str]:
        """Every name the derived attribute depends on, through any chain."""
        return self._expanded[name]

    def dependents_of(self, name: str) -> FrozenSet[str]:
        """Derived attributes whose expanded dependency set contains *name*."""
        return self._dependents.get(name, frozenset())

    def affected_by(self, names: Iterable[str]) -> List[str]:
        """Derived attributes affected by *names*, dependencies first."""
        affected = set()
        for name in names:
            affected.update(self.dependents_of(name))
        return self._graph.topological_sort(affected)

    @property
    def session_names(self) -> List[str]:
        return [name for name, spec in self.attributes.items() if spec.session]

    @property
    def persisted_names(self) -> List[str]:
        return [name for name, spec in self.attributes.items() if not spec.session]

    def __repr__(self) -> str:
        return (
            f"Schema(attributes={list(self.attributes)}, "
            f"derived={list(self.derived)}, "
            f"extra_properties={self.extra_properties.value!r})"
        )


def compile_schema(
    definition: Optional[Mapping[str, Any]] = None,
    registry: Optional[TypeRegistry] = None,
) -> Schema:
    """
    Compile a raw definition into a :class:`Schema`.

    Raises:
        SchemaError: On malformed declarations, name collisions or unknown types
        CircularDependencyError: If derived attributes depend on each other in a cycle
    """
    definition = dict(definition or {})
    unknown = set(definition) - set(_GROUP_KEYS) - set(_FLAG_KEYS)
    if unknown:
        raise SchemaError(f"Unknown definition keys: {', '.join(sorted(unknown))}")

    base_registry = registry or datatypes.registry
    data_types = definition.get("data_types") or {}
    type_registry = base_registry.child(data_types) if data_types else base_registry

    props = definition.get("props") or {}
    session = definition.get("session") or {}
    derived_raw = definition.get("derived") or {}

    attributes: Dict[str, AttributeSpec] = {}
    for name, raw in props.items():
        attributes[name] = normalize_attribute(name, raw, False, type_registry)
    for name, raw in session.items():
        if name in attributes:
            raise SchemaError(f"'{name}' is declared as both a prop and a session property")
        attributes[name] = normalize_attribute(name, raw, True, type_registry)

    derived: Dict[str, DerivedSpec] = {}
    for name, raw in derived_raw.items():
        if name in attributes:
            raise SchemaError(
                f"Derived property '{name}' collides with a declared property of the same name"
            )
        derived[name] = normalize_derived(name, raw)

    graph = DependencyGraph()
    for name in attributes:
        graph.add_node(name)
    for name in derived:
        graph.add_node(name)
    for spec in derived.values():
        for dep in spec.deps:
            graph.add_edge(dep, spec.name)

    collections = dict(definition.get("collections") or {})
    for name, factory in collections.items():
        if not callable(factory):
            raise SchemaError(f"Collection '{name}' must be a callable factory")
        if name in attributes or name in derived:
            raise SchemaError(f"Collection '{name}' collides with an attribute of the same name")

    schema = Schema(
        attributes=attributes,
        derived=derived,
        registry=type_registry,
        extra_properties=normalize_policy(definition.get("extra_properties", "ignore")),
        seal=bool(definition.get("seal", False)),
        collections=collections,
        graph=graph,
        definition=definition,
    )
    logging.debug(
        f"Compiled schema: {len(attributes)} attributes, {len(derived)} derived, "
        f"{len(graph)} graph nodes"
    )
    return schema
