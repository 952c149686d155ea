"""
attrflow Data Types - Coercion and Comparison Registry
======================================================

Every declared attribute names a data type. A data type decides which raw
values are acceptable for the attribute (``coerce``), when a new value counts
as a change (``compare``), what an empty required attribute starts as
(``default``), and optionally how a stored value is presented on read (``get``).

Built-in types:

========  =======================================================
string    ``str``
number    ``int`` or ``float`` (``bool`` is rejected)
boolean   ``bool``
date      ``datetime``; epoch milliseconds, numeric strings and ISO-8601
          strings are converted
object    any ``Mapping``
array     ``list``, ``tuple`` or ``numpy.ndarray``
any       anything, untouched
========  =======================================================

Custom types are registered globally with :func:`register_type` or per schema
through the ``data_types`` definition key:

```python
from attrflow import DataType, register_type

register_type("upper", DataType(coerce=lambda v: str(v).upper()))
```

``None`` is never rejected by ``coerce``; null-ability is the attribute's
concern (``allow_null``), not the type's.
"""

import numbers
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union

import numpy as np

from .exceptions import CoercionError, SchemaError


def values_equal(a: Any, b: Any) -> bool:
    """Strict equality: same Python type and equal value."""
    if type(a) is not type(b):
        return False
    try:
        if isinstance(a, np.ndarray):
            return a.shape == b.shape and bool(np.array_equal(a, b))
        return bool(a == b)
    except (ValueError, TypeError):
        return False


@dataclass(frozen=True, slots=True)
class DataType:
    """Behaviour of one named attribute type."""

    coerce: Callable[[Any], Any]
    compare: Callable[[Any, Any], bool] = values_equal
    default: Optional[Callable[[], Any]] = None
    get: Optional[Callable[[Any], Any]] = None


DataTypeLike = Union[DataType, Mapping[str, Any]]


def _as_data_type(name: str, definition: DataTypeLike) -> DataType:
    if isinstance(definition, DataType):
        return definition
    if not isinstance(definition, Mapping):
        raise SchemaError(f"Data type '{name}' must be a DataType or a mapping")

    unknown = set(definition) - {"coerce", "compare", "default", "get"}
    if unknown:
        raise SchemaError(
            f"Data type '{name}' has unknown keys: {', '.join(sorted(unknown))}"
        )
    return DataType(
        coerce=definition.get("coerce") or _coerce_any,
        compare=definition.get("compare") or values_equal,
        default=definition.get("default"),
        get=definition.get("get"),
    )


# ============================================================================
# BUILT-IN COERCION
# ============================================================================


def _describe(value: Any) -> str:
    return f"{value!r} ({type(value).__name__})"


def _coerce_any(value: Any) -> Any:
    return value


def _coerce_string(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    raise CoercionError(f"expected a string, got {_describe(value)}")


def _coerce_number(value: Any) -> Any:
    if value is None:
        return value
    if isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_)):
        return value
    raise CoercionError(f"expected a number, got {_describe(value)}")


def _coerce_boolean(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    raise CoercionError(f"expected a boolean, got {_describe(value)}")


def _from_epoch_ms(millis: float) -> datetime:
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise CoercionError(f"{millis!r} is not a valid epoch timestamp: {e}") from e


def _coerce_date(value: Any) -> Any:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        raise CoercionError(f"expected a date, got {_describe(value)}")
    if isinstance(value, numbers.Real):
        return _from_epoch_ms(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return _from_epoch_ms(int(text))
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            raise CoercionError(f"{value!r} cannot be parsed as a date") from None
    raise CoercionError(f"expected a date, got {_describe(value)}")


def _coerce_object(value: Any) -> Any:
    if value is None or isinstance(value, Mapping):
        return value
    raise CoercionError(f"expected an object, got {_describe(value)}")


def _coerce_array(value: Any) -> Any:
    if value is None or isinstance(value, (list, tuple, np.ndarray)):
        return value
    raise CoercionError(f"expected an array, got {_describe(value)}")


BUILTIN_TYPES: Dict[str, DataType] = {
    "string": DataType(coerce=_coerce_string),
    "number": DataType(coerce=_coerce_number),
    "boolean": DataType(coerce=_coerce_boolean),
    "date": DataType(coerce=_coerce_date),
    "object": DataType(coerce=_coerce_object, default=dict),
    "array": DataType(coerce=_coerce_array, default=list),
    "any": DataType(coerce=_coerce_any),
}


# ============================================================================
# REGISTRY
# ============================================================================


class TypeRegistry:
    """
    Name to :class:`DataType` mapping with optional parent fallback.

    A schema that declares ``data_types`` gets a child registry layered over
    the global one, so its registrations never leak into other schemas.
    """

    def __init__(self, parent: Optional["TypeRegistry"] = None):
        self._types: Dict[str, DataType] = {}
        self._parent = parent

    def register(self, name: str, data_type: DataTypeLike) -> DataType:
        if not name or not isinstance(name, str):
            raise SchemaError(f"Data type name must be a non-empty string, got {name!r}")
        resolved = _as_data_type(name, data_type)
        self._types[name] = resolved
        return resolved

    def unregister(self, name: str) -> None:
        self._types.pop(name, None)

    def resolve(self, name: str) -> DataType:
        registry: Optional[TypeRegistry] = self
        while registry is not None:
            if name in registry._types:
                return registry._types[name]
            registry = registry._parent
        raise SchemaError(f"Unknown data type '{name}'")

    def child(self, overrides: Optional[Mapping[str, DataTypeLike]] = None) -> "TypeRegistry":
        registry = TypeRegistry(parent=self)
        for name, data_type in (overrides or {}).items():
            registry.register(name, data_type)
        return registry

    def names(self) -> Iterator[str]:
        seen = set()
        registry: Optional[TypeRegistry] = self
        while registry is not None:
            for name in registry._types:
                if name not in seen:
                    seen.add(name)
                    yield name
            registry = registry._parent

    def __contains__(self, name: str) -> bool:
        try:
            self.resolve(name)
        except SchemaError:
            return False
        return True

    def __repr__(self) -> str:
        return f"TypeRegistry(types={len(list(self.names()))})"


registry = TypeRegistry()
for _name, _data_type in BUILTIN_TYPES.items():
    registry.register(_name, _data_type)


def register_type(name: str, data_type: DataTypeLike) -> DataType:
    """Register a data type in the global registry."""
    if name in BUILTIN_TYPES:
        raise SchemaError(f"Cannot replace built-in data type '{name}'")
    return registry.register(name, data_type)
