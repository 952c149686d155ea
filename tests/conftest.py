"""
Shared pytest fixtures and configuration for attrflow tests.
"""

import pytest

from attrflow import State
from attrflow.datatypes import BUILTIN_TYPES, registry


@pytest.fixture(autouse=True)
def reset_global_types():
    """Drop custom global data types after each test to prevent leakage."""
    yield
    for name in list(registry.names()):
        if name not in BUILTIN_TYPES:
            registry.unregister(name)


def _good_only(state, value):
    if value != "good":
        return "Value not good"


def _initials(person):
    if person.first_name and person.last_name:
        return (person.first_name[0] + person.last_name[0]).upper()
    return ""


PERSON_DEFINITION = {
    "props": {
        "id": "number",
        "first_name": ["string", True, "defaults"],
        "last_name": ["string", True],
        "thing": {"type": "string", "required": True, "default": "hi"},
        "num": ["number", True],
        "today": ["date"],
        "hash": ["object"],
        "list": ["array"],
        "my_bool": ["boolean", True, False],
        "some_number": {"type": "number", "allow_null": True},
        "good": {"type": "string", "test": _good_only},
    },
    "session": {
        "active": ["boolean", True, True],
    },
    "derived": {
        "name": {
            "deps": ["first_name", "last_name"],
            "fn": lambda person: f"{person.first_name} {person.last_name}",
        },
        "initials": {
            "deps": ["first_name", "last_name"],
            "cache": False,
            "fn": _initials,
        },
        "is_crazy": {
            "deps": ["crazy_person"],
            "fn": lambda person: bool(person.crazy_person),
        },
    },
}


@pytest.fixture
def Person():
    """A fresh state class built from the reference definition."""
    return State.extend(PERSON_DEFINITION, name="Person")
