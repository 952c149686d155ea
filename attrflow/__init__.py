"""
attrflow - Schema-Driven Reactive Attributes

Declare typed properties, session properties and derived properties once;
attrflow validates every write, caches derived values until their
dependencies change, and fires exactly one change event per changed attribute
plus one aggregate ``change`` per write.
"""

__version__ = "0.1.0"

from .collection import Collection
from .datatypes import (
    DataType,
    TypeRegistry,
    register_type,
    registry,
    values_equal,
)
from .events import Events
from .exceptions import (
    AttributeTestError,
    AttributeTypeError,
    CircularDependencyError,
    CoercionError,
    ImmutableDerivedError,
    SchemaError,
    SealedStateError,
    UnknownPropertyError,
    UntoggleableError,
)
from .graph import DependencyGraph
from .propagation import Change, ChangePass
from .schema import (
    MISSING,
    AttributeSpec,
    DerivedSpec,
    ExtraProperties,
    Schema,
    compile_schema,
    merge_definitions,
    normalize_attribute,
)
from .state import State, StateMeta

__all__ = [
    # State
    "State",
    "StateMeta",
    "Collection",
    "Events",
    # Schema
    "Schema",
    "AttributeSpec",
    "DerivedSpec",
    "ExtraProperties",
    "compile_schema",
    "merge_definitions",
    "normalize_attribute",
    "DependencyGraph",
    "MISSING",
    # Data types
    "DataType",
    "TypeRegistry",
    "register_type",
    "registry",
    "values_equal",
    # Notification
    "Change",
    "ChangePass",
    # Exceptions
    "SchemaError",
    "CircularDependencyError",
    "CoercionError",
    "AttributeTypeError",
    "AttributeTestError",
    "ImmutableDerivedError",
    "UnknownPropertyError",
    "UntoggleableError",
    "SealedStateError",
]
