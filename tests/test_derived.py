"""Tests for derived attribute caching and invalidation."""

from unittest.mock import Mock

import pytest

from attrflow import State


def _counted(fn):
    """Wrap a derived function in a Mock so invocations can be counted."""
    return Mock(side_effect=fn)


@pytest.fixture
def Greeter():
    greeting = _counted(lambda s: f"hello, {s.name}")
    awesome = _counted(lambda s: f"{s.greeting}{s.punctuation}")
    stamp = _counted(lambda s: f"{s.name}!")

    Greeter = State.extend(
        {
            "props": {"name": "string", "punctuation": "string"},
            "derived": {
                "greeting": {"deps": ["name"], "fn": greeting},
                "awesome": {"deps": ["greeting", "punctuation"], "fn": awesome},
                "stamp": {"deps": ["name"], "fn": stamp, "cache": False},
            },
        },
        name="Greeter",
    )
    Greeter.calls = {"greeting": greeting, "awesome": awesome, "stamp": stamp}
    return Greeter


@pytest.mark.unit
@pytest.mark.derived
class TestCaching:
    def test_construction_computes_nothing(self, Greeter):
        Greeter(name="henrik", punctuation="!")
        for fn in Greeter.calls.values():
            assert fn.call_count == 0

    def test_cached_derived_computes_once(self, Greeter):
        greeter = Greeter(name="henrik", punctuation="!")

        assert greeter.greeting == "hello, henrik"
        assert greeter.greeting == "hello, henrik"
        assert greeter.get("greeting") == "hello, henrik"

        assert Greeter.calls["greeting"].call_count == 1

    def test_uncached_derived_computes_on_every_read(self, Greeter):
        greeter = Greeter(name="henrik")

        greeter.stamp
        greeter.stamp
        greeter.stamp

        assert Greeter.calls["stamp"].call_count == 3

    def test_fn_receives_the_state(self, Greeter):
        greeter = Greeter(name="henrik")
        greeter.greeting
        assert Greeter.calls["greeting"].call_args.args == (greeter,)

    def test_cache_is_per_instance(self, Greeter):
        one, two = Greeter(name="a"), Greeter(name="b")
        assert one.greeting == "hello, a"
        assert two.greeting == "hello, b"
        assert len(one._cache) == 1
        assert Greeter.calls["greeting"].call_count == 2


@pytest.mark.unit
@pytest.mark.derived
class TestInvalidation:
    def test_dependency_change_recomputes(self, Greeter):
        greeter = Greeter(name="henrik", punctuation="!")
        greeter.greeting

        greeter.name = "jim"

        assert greeter.greeting == "hello, jim"
        assert greeter.greeting == "hello, jim"
        assert Greeter.calls["greeting"].call_count == 2

    def test_invalidation_is_transitive(self, Greeter):
        greeter = Greeter(name="henrik", punctuation="!")
        assert greeter.awesome == "hello, henrik!"

        greeter.name = "jim"

        assert greeter.awesome == "hello, jim!"

    def test_unrelated_change_keeps_the_memo(self, Greeter):
        greeter = Greeter(name="henrik", punctuation="!")
        greeter.greeting

        greeter.punctuation = "?"
        greeter.greeting

        assert Greeter.calls["greeting"].call_count == 1

    def test_silent_write_invalidates_without_recomputing(self, Greeter):
        greeter = Greeter(name="henrik")
        greeter.greeting
        assert "greeting" in greeter._cache

        greeter.set("name", "jim", silent=True)
        assert "greeting" not in greeter._cache
        assert Greeter.calls["greeting"].call_count == 1

        assert greeter.greeting == "hello, jim"
        assert Greeter.calls["greeting"].call_count == 2

    def test_unchanged_write_does_not_invalidate(self, Greeter):
        greeter = Greeter(name="henrik")
        greeter.greeting

        greeter.name = "henrik"
        greeter.greeting

        assert Greeter.calls["greeting"].call_count == 1

    def test_failed_write_invalidates_what_was_applied(self, Greeter):
        greeter = Greeter(name="henrik", punctuation="!")
        greeter.greeting

        with pytest.raises(TypeError):
            greeter.set({"name": "jim", "punctuation": 4})

        assert greeter.greeting == "hello, jim"

    def test_ad_hoc_dependency(self, Person):
        person = Person()
        assert person.is_crazy is False

        person.extra_properties = "allow"
        person.set("crazy_person", True)

        assert person.is_crazy is True

    def test_unset_invalidates(self, Greeter):
        greeter = Greeter(name="henrik")
        greeter.greeting
        greeter.unset("name")
        assert greeter.greeting == "hello, None"

    def test_unset_ad_hoc_dependency_reads_as_none(self, Person):
        """Field access to a dependency that was never set yields None."""
        person = Person()

        assert person.crazy_person is None
        assert person.is_crazy is False
        with pytest.raises(AttributeError):
            person.not_a_dependency
