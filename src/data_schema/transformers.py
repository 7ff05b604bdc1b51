"""Value transformers applied through a property's `decode` pipeline.

A transformer receives the current value plus a TransformEvent describing
where it is being applied, and returns the new value. Transformers are
registered by name; a decode string like "trim | upper" runs the named
transformers left to right.

Extensions bundle several transformers:

    class TextExtension:
        def get_data_transformers(self):
            return {"upper": SimpleDataTransformer(lambda value, event: value.upper())}

    registry.load_extensions(["myapp.schema:TextExtension"])
"""

import importlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

from data_schema.errors import DataTransformerNotExistsError
from data_schema.schema.nodes import PropertyNode


@dataclass(frozen=True)
class TransformEvent:
    """Where a transformer is being applied.

    raw_record is the fetched record of the level being shaped, so a
    transformer can read sibling values (including hidden ones).
    hydrator and factory are opaque host handles passed through untouched.
    """

    owner_type: str | None
    property_name: str
    property_config: PropertyNode
    parent_type: str | None = None
    parent_property_name: str | None = None
    raw_record: dict | None = None
    hydrator: Any = None
    factory: Any = None


class DataTransformer(Protocol):
    def transform(self, value: Any, event: TransformEvent) -> Any: ...


class DataTransformerExtension(Protocol):
    def get_data_transformers(self) -> dict[str, DataTransformer]: ...


class SimpleDataTransformer:
    """Adapts a plain `(value, event) -> value` callable to DataTransformer."""

    def __init__(self, func: Callable[[Any, TransformEvent], Any]):
        if not callable(func):
            raise TypeError("func argument must be callable.")
        self.func = func

    def transform(self, value: Any, event: TransformEvent) -> Any:
        return self.func(value, event)


class DataTransformerRegistry:
    """Named transformers available to decode pipelines."""

    def __init__(self, transformers: dict[str, DataTransformer] | None = None):
        self._registry: dict[str, DataTransformer] = {}
        for name, transformer in (transformers or {}).items():
            self.add(name, transformer)

    def add(self, name: str, transformer: DataTransformer | Callable[[Any, TransformEvent], Any]):
        """Register a transformer; plain callables are wrapped in SimpleDataTransformer."""
        if not hasattr(transformer, "transform"):
            transformer = SimpleDataTransformer(transformer)
        if name in self._registry:
            logger.debug(f"Replacing data transformer: {name}")
        self._registry[name] = transformer

    def get(self, name: str) -> DataTransformer | None:
        return self._registry.get(name)

    def has(self, name: str) -> bool:
        return name in self._registry

    def resolve(self, name: str) -> DataTransformer:
        """Look up a transformer, raising DataTransformerNotExistsError if missing."""
        transformer = self._registry.get(name)
        if transformer is None:
            raise DataTransformerNotExistsError(name)
        return transformer

    def names(self) -> list[str]:
        return sorted(self._registry)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._registry)

    def load_extension(self, extension: DataTransformerExtension):
        """Register every transformer an extension provides."""
        transformers = extension.get_data_transformers()
        for name, transformer in transformers.items():
            self.add(name, transformer)
        logger.debug(
            f"Loaded {len(transformers)} data transformers from {type(extension).__name__}"
        )

    def load_extensions(self, import_paths: Iterable[str]):
        """Import and load extensions given as "package.module:attribute".

        The attribute may be an extension instance or a class (instantiated
        with no arguments).
        """
        for import_path in import_paths:
            self.load_extension(import_extension(import_path))


def import_extension(import_path: str) -> DataTransformerExtension:
    """Import an extension object from a "package.module:attribute" path."""
    module_name, _, attribute = import_path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f'Extension path must look like "package.module:attribute": {import_path}')

    module = importlib.import_module(module_name)
    try:
        extension = getattr(module, attribute)
    except AttributeError as e:
        raise ValueError(f'Module "{module_name}" has no attribute "{attribute}"') from e

    if isinstance(extension, type):
        extension = extension()
    return extension


def apply_decode(
    value: Any,
    names: Iterable[str],
    registry: DataTransformerRegistry,
    event_factory: Callable[[], TransformEvent],
) -> Any:
    """Run value through the named transformers in order.

    Each step gets a freshly built event.

    Raises:
        DataTransformerNotExistsError: If a name isn't registered.
    """
    for name in names:
        value = registry.resolve(name).transform(value, event_factory())
    return value
