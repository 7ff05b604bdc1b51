"""Schema and scope file loading.

Schema files are YAML documents addressed by a path relative to a schema
directory (e.g. "article.yml" or "blog/post.yml"). The compiler takes a
loader as a dependency rather than reading files itself, so schemas can
also come from memory, a database or a package resource.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

import yaml
from loguru import logger

from data_schema.errors import InvalidConfigurationError, SchemaNotFoundError
from data_schema.schema.scope import ScopeNode, parse_scope

SCHEMA_SUFFIXES = (".yml", ".yaml")


class SchemaLoader(Protocol):
    """Loads raw (unparsed) schema trees by reference."""

    def load(self, ref: str) -> dict: ...

    def exists(self, ref: str) -> bool: ...

    def iter_schema_files(self) -> Iterator[str]: ...


class YamlSchemaLoader:
    """Loads schema and scope documents from YAML files under a root directory."""

    def __init__(self, root_dir: Path | str):
        self.root_dir = Path(root_dir)

    def _locate(self, ref: str) -> Path | None:
        root = self.root_dir.resolve()
        path = (root / ref).resolve()

        # --- Path containment ---
        # Trigger: ref like "../secrets.yml" or an absolute path
        # Why: refs come from schema files and must stay inside the schema dir
        # Outcome: treated as not found
        if not path.is_relative_to(root):
            logger.warning(f"Schema reference escapes root directory: {ref}")
            return None

        if path.is_file():
            return path
        return None

    def exists(self, ref: str) -> bool:
        return self._locate(ref) is not None

    def load(self, ref: str) -> dict:
        """Read and parse one YAML document.

        Raises:
            SchemaNotFoundError: If the file doesn't exist under the root.
            InvalidConfigurationError: If the file isn't valid YAML or isn't a mapping.
        """
        path = self._locate(ref)
        if path is None:
            raise SchemaNotFoundError(ref)

        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(ref, f"Invalid YAML: {e}") from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise InvalidConfigurationError(ref, "Top-level YAML document must be a mapping")
        return content

    def load_scope(self, ref: str) -> ScopeNode | None:
        """Load a scope file into a ScopeNode."""
        return parse_scope(self.load(ref) or None)

    def iter_schema_files(self) -> Iterator[str]:
        """Yield references of every schema file under the root, sorted."""
        if not self.root_dir.is_dir():
            return
        for path in sorted(self.root_dir.rglob("*")):
            if path.is_file() and path.suffix in SCHEMA_SUFFIXES:
                yield path.relative_to(self.root_dir).as_posix()


class DictSchemaLoader:
    """In-memory loader; useful for embedding schemas in code and for tests."""

    def __init__(self, schemas: dict[str, dict]):
        self.schemas = schemas

    def exists(self, ref: str) -> bool:
        return ref in self.schemas

    def load(self, ref: str) -> dict:
        if ref not in self.schemas:
            raise SchemaNotFoundError(ref)
        return self.schemas[ref]

    def iter_schema_files(self) -> Iterator[str]:
        yield from sorted(self.schemas)
