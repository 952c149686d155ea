"""
attrflow Collection - Ordered Container with Back-References
============================================================

A minimal ordered collection of states. It owns the ``collection``
back-reference of its members: adding a state points the state at the
collection, removing it clears the reference again. States themselves never
touch that field.

Collections declared in a state definition are created per instance with the
owning state as ``parent``:

```python
class Owner(State):
    collections = {"pets": Collection}

owner = Owner()
owner.pets.parent is owner   # True
```
"""

from typing import Any, Iterable, Iterator, List, Optional


class Collection:
    """Ordered collection of states."""

    def __init__(self, models: Optional[Iterable[Any]] = None, parent: Any = None):
        self.parent = parent
        self.models: List[Any] = []
        if models:
            self.add(models)

    def add(self, models: Any) -> "Collection":
        """Append one state or an iterable of states; duplicates are skipped."""
        for model in self._as_list(models):
            if any(existing is model for existing in self.models):
                continue
            self.models.append(model)
            if model.collection is None:
                model.collection = self
        return self

    def remove(self, models: Any) -> "Collection":
        for model in self._as_list(models):
            for index, existing in enumerate(self.models):
                if existing is model:
                    del self.models[index]
                    break
            else:
                continue
            if model.collection is self:
                model.collection = None
        return self

    def reset(self, models: Optional[Iterable[Any]] = None) -> "Collection":
        self.remove(list(self.models))
        if models:
            self.add(models)
        return self

    def at(self, index: int) -> Any:
        return self.models[index]

    def get(self, model_id: Any) -> Any:
        """Find a member by its ``id`` attribute."""
        for model in self.models:
            if getattr(model, "id", None) == model_id:
                return model
        return None

    def serialize(self) -> List[Any]:
        return [model.serialize() for model in self.models]

    @staticmethod
    def _as_list(models: Any) -> List[Any]:
        if isinstance(models, (list, tuple)):
            return list(models)
        return [models]

    def __len__(self) -> int:
        return len(self.models)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self.models))

    def __contains__(self, model: Any) -> bool:
        return any(existing is model for existing in self.models)

    def __repr__(self) -> str:
        return f"Collection(models={len(self.models)})"
