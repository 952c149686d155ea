"""Tests for the ordered collection and its back-references."""

import pytest

from attrflow import Collection, State


@pytest.fixture
def Item():
    return State.extend({"props": {"id": "number", "label": "string"}}, name="Item")


@pytest.mark.unit
@pytest.mark.collection
class TestCollection:
    def test_add_sets_back_reference(self, Item):
        items = Collection()
        item = Item(id=1)

        items.add(item)

        assert item.collection is items
        assert item in items
        assert len(items) == 1

    def test_state_never_sets_its_own_reference(self, Item):
        assert Item().collection is None

    def test_add_skips_duplicates(self, Item):
        item = Item(id=1)
        items = Collection([item])
        items.add([item, item])
        assert len(items) == 1

    def test_add_keeps_an_existing_reference(self, Item):
        item = Item(id=1)
        first = Collection([item])
        second = Collection([item])

        assert item.collection is first
        assert item in second

    def test_remove_clears_back_reference(self, Item):
        item = Item(id=1)
        items = Collection([item])

        items.remove(item)

        assert item.collection is None
        assert item not in items

    def test_remove_leaves_foreign_reference(self, Item):
        item = Item(id=1)
        owner = Collection([item])
        other = Collection()
        other.models.append(item)

        other.remove(item)

        assert item.collection is owner

    def test_lookup_and_order(self, Item):
        one, two = Item(id=1, label="a"), Item(id=2, label="b")
        items = Collection([one, two])

        assert items.at(0) is one
        assert items.get(2) is two
        assert items.get(3) is None
        assert [item.label for item in items] == ["a", "b"]

    def test_reset(self, Item):
        one, two = Item(id=1), Item(id=2)
        items = Collection([one])

        items.reset([two])

        assert one.collection is None
        assert list(items) == [two]

    def test_serialize(self, Item):
        items = Collection([Item(id=1, label="a")])
        assert items.serialize() == [{"id": 1, "label": "a"}]


@pytest.mark.unit
@pytest.mark.collection
@pytest.mark.state
class TestChildCollections:
    """Collections declared on a state are created with the state as parent."""

    def test_child_collection_has_parent(self, Item):
        Owner = State.extend({"props": {"name": "string"}, "collections": {"items": Collection}})
        owner = Owner(name="box")

        assert isinstance(owner.items, Collection)
        assert owner.items.parent is owner
        assert Owner().items is not owner.items

    def test_child_collection_exists_in_initialize(self, Item):
        def initialize(self, attrs):
            self.items.add(Item(id=attrs.get("first", 0)))

        Owner = State.extend(
            {"collections": {"items": Collection}}, initialize=initialize
        )
        owner = Owner(first=5)

        assert owner.items.at(0).id == 5
        assert owner.items.at(0).collection is owner.items

    def test_serialize_includes_child_collections(self, Item):
        Owner = State.extend({"props": {"name": "string"}, "collections": {"items": Collection}})
        owner = Owner(name="box")
        owner.items.add(Item(id=1))

        assert owner.serialize() == {"name": "box", "items": [{"id": 1}]}
        assert "items" not in owner.attributes

    def test_collection_name_cannot_collide_with_attribute(self):
        from attrflow.exceptions import SchemaError

        with pytest.raises(SchemaError):
            State.extend({"props": {"items": "array"}, "collections": {"items": Collection}})
