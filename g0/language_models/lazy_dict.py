"""
A dictionary that creates its values on first access.

`LazyLoadingDict` memoizes the objects produced by a factory function
from the dictionary key. It is used to keep one vendor model object
per distinct `LanguageModelSettings`, so that agents configured with
the same settings share the client and its connection pool.

Keys must be hashable. Using a frozen pydantic model as key moves
validation of the definition to the construction of the key, while
the factory function raises for definitions it cannot serve:

```python
def _factory(spec: LanguageModelSettings) -> ChatModel:
    match spec.get_model_source():
        case "OpenAI":
            return ChatOpenAI(model=spec.get_model_name())
        case _:
            raise ValueError(f"Invalid source: {spec.model}")

models = LazyLoadingDict(_factory)
model = models[LanguageModelSettings(model="OpenAI/gpt-4o")]
```
"""

from collections.abc import Callable
from typing import TypeVar

ValueT = TypeVar('ValueT')
KeyT = TypeVar('KeyT')


class LazyLoadingDict(dict[KeyT, ValueT]):
    """A dictionary of memoized objects created by `factory`.

    Args:
        factory: creates the value of a missing key
        destructor: releases a value when it is removed from the
            dictionary. If not given, the `close` method of the value
            is called, if it has one.

    Values may also be assigned directly, bypassing the factory. An
    assignment to an existing key raises a ValueError: delete the key
    first.
    """

    def __init__(
        self,
        factory: Callable[[KeyT], ValueT],
        destructor: Callable[[ValueT], None] | None = None,
    ):
        super().__init__()
        self._factory = factory
        self._destructor = destructor

    def _release(self, value: ValueT) -> None:
        if self._destructor is not None:
            self._destructor(value)
            return
        close = getattr(value, "close", None)
        if callable(close):
            close()

    def __getitem__(self, key: KeyT) -> ValueT:
        if key in self:
            return super().__getitem__(key)
        value: ValueT = self._factory(key)
        super().__setitem__(key, value)
        return value

    def __setitem__(self, key: KeyT, value: ValueT) -> None:
        if key in self:
            raise ValueError(
                f"Key '{key}' already exists. Delete it first to overwrite."
            )
        super().__setitem__(key, value)

    def __delitem__(self, key: KeyT) -> None:
        if key in self:
            self._release(super().__getitem__(key))
        super().__delitem__(key)

    def clear(self) -> None:
        for value in list(self.values()):
            self._release(value)
        super().clear()
