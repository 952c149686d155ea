"""
attrflow exceptions.

Every failure is raised synchronously at the call that caused it. Write-path
errors subclass ``TypeError`` so callers can catch the whole family at once.
"""


class SchemaError(ValueError):
    """Raised when a state definition cannot be compiled."""

    pass


class CircularDependencyError(SchemaError):
    """Raised when derived attributes depend on each other in a cycle."""

    pass


class CoercionError(TypeError):
    """Raised by a data type when a raw value cannot be represented."""

    pass


class AttributeTypeError(TypeError):
    """Raised when a value has the wrong type, is a disallowed null, or is not
    one of the attribute's allowed values."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class AttributeTestError(TypeError):
    """Raised when an attribute's test function rejects a value.

    The message is exactly the string returned by the test function.
    """

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class ImmutableDerivedError(TypeError):
    """Raised on a direct write to a derived attribute."""

    def __init__(self, name: str):
        super().__init__(f'"{name}" is a derived property, it can\'t be set directly.')
        self.name = name


class UnknownPropertyError(TypeError):
    """Raised on a write to an undeclared attribute under the ``reject`` policy."""

    def __init__(self, name: str):
        super().__init__(
            f"No '{name}' property defined on this state and extra properties "
            f"are not allowed."
        )
        self.name = name


class UntoggleableError(TypeError):
    """Raised when toggling an attribute that is neither boolean nor enumerated."""

    def __init__(self, name: str):
        super().__init__(
            f"Can only toggle properties of type 'boolean' or with 'values', "
            f"not '{name}'."
        )
        self.name = name


class SealedStateError(AttributeError):
    """Raised when assigning an unknown attribute on a sealed state."""

    pass
