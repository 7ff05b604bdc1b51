"""Service facade wiring the compiler, filter, validator and projection engine.

Typical host usage:

    service = DataSchemaService(
        type_model=MappingTypeModel.from_yaml("types.yml"),
        persister=MyPersister(connection),
        condition_renderer=MyRenderer(),
    )
    data = service.get_data("article.yml", record, scope="article/short.yml", access=caller)
"""

from typing import Any

from loguru import logger

from data_schema.access import AccessContext, AuthorizationChecker, ConditionRenderer
from data_schema.config import DataSchemaConfig
from data_schema.errors import DataSchemaError
from data_schema.loader import SchemaLoader, YamlSchemaLoader
from data_schema.persister import Persister
from data_schema.projection import ProjectionEngine
from data_schema.schema.cache import SchemaCache
from data_schema.schema.compiler import SchemaCompiler
from data_schema.schema.filter import ScopeFilter
from data_schema.schema.nodes import SchemaNode
from data_schema.schema.scope import ScopeNode, parse_scope
from data_schema.schema.validator import SchemaValidationResult, SchemaValidator
from data_schema.transformers import DataTransformerRegistry
from data_schema.type_model import TypeModel


class DataSchemaService:
    """Entry point for hosts: cached compile, per-request filter, projection."""

    def __init__(
        self,
        type_model: TypeModel,
        persister: Persister | None = None,
        transformers: DataTransformerRegistry | None = None,
        condition_renderer: ConditionRenderer | None = None,
        config: DataSchemaConfig | None = None,
        loader: SchemaLoader | None = None,
        scope_loader: YamlSchemaLoader | None = None,
        cache: SchemaCache | None = None,
        hydrator: Any = None,
        factory: Any = None,
    ):
        self.config = config or DataSchemaConfig()
        self.type_model = type_model
        self.persister = persister
        self.loader = loader or YamlSchemaLoader(self.config.schema_dir)
        self.scope_loader = scope_loader or YamlSchemaLoader(self.config.scope_dir)
        self.cache = cache or SchemaCache()

        self.transformers = transformers or DataTransformerRegistry()
        if self.config.extensions:
            self.transformers.load_extensions(self.config.extensions)

        self.compiler = SchemaCompiler(type_model, self.loader, self.config.max_nesting_depth)
        self.scope_filter = ScopeFilter(self.config.max_source_depth)
        self.validator = SchemaValidator(
            type_model, self.transformers, self.loader, self.config.max_source_depth
        )
        self.engine = (
            ProjectionEngine(
                type_model,
                persister,
                self.transformers,
                condition_renderer=condition_renderer,
                hydrator=hydrator,
                factory=factory,
                max_source_depth=self.config.max_source_depth,
            )
            if persister is not None
            else None
        )

    # --- Schemas ---

    def get_schema(self, ref: str) -> SchemaNode:
        """Compiled schema for a schema file, compiled once per process."""
        return self.cache.get_or_compile(ref, lambda: self.compiler.compile_file(ref))

    def get_scope(self, ref: str) -> ScopeNode | None:
        """Load a scope file from the scope directory."""
        return self.scope_loader.load_scope(ref)

    def get_filtered_schema(
        self,
        ref: str,
        scope: ScopeNode | str | None = None,
        access: AuthorizationChecker | None = None,
    ) -> SchemaNode:
        """Compiled schema pruned for one caller and scope."""
        return self.scope_filter.filter(
            self.get_schema(ref),
            self._resolve_scope(scope),
            self.config.max_nesting_depth,
            access,
        )

    # --- Data ---

    def get_data(
        self,
        ref: str,
        record: dict | None,
        scope: ScopeNode | str | None = None,
        access: AuthorizationChecker | None = None,
        user: Any = None,
        default: Any = None,
    ) -> dict | Any:
        """Project one record through a schema file."""
        engine = self._require_engine()
        scope_node = self._resolve_scope(scope)
        node = self.get_filtered_schema(ref, scope_node, access)
        return engine.project(record, node, scope_node, self._user(access, user), default)

    def get_list(
        self,
        ref: str,
        records: list[dict] | None,
        scope: ScopeNode | str | None = None,
        access: AuthorizationChecker | None = None,
        user: Any = None,
        default: Any = None,
    ) -> list | Any:
        """Project a list of records through a schema file."""
        engine = self._require_engine()
        scope_node = self._resolve_scope(scope)
        node = self.get_filtered_schema(ref, scope_node, access)
        return engine.project_list(records, node, scope_node, self._user(access, user), default)

    # --- Validation ---

    def validate_file(self, ref: str, depth: int | None = None) -> None:
        """Compile and validate one schema file.

        Raises:
            InvalidConfigurationError: If the file is invalid.
        """
        depth = self.config.max_nesting_depth if depth is None else depth
        node = self.compiler.compile_file(ref, depth_budget=depth)
        self.validator.validate(node, depth)

    def validate_files(
        self, refs: list[str] | None = None, depth: int | None = None
    ) -> list[SchemaValidationResult]:
        """Validate several schema files (all of them by default), collecting errors."""
        refs = list(self.loader.iter_schema_files()) if refs is None else refs
        results = []
        for ref in refs:
            try:
                self.validate_file(ref, depth)
            except DataSchemaError as e:
                logger.debug(f"Schema {ref} failed validation: {e}")
                results.append(SchemaValidationResult(schema_ref=ref, passed=False, errors=[str(e)]))
            else:
                results.append(SchemaValidationResult(schema_ref=ref, passed=True))
        return results

    # --- Helpers ---

    def _resolve_scope(self, scope: ScopeNode | str | None) -> ScopeNode | None:
        if isinstance(scope, str):
            return self.get_scope(scope)
        return parse_scope(scope)

    def _require_engine(self) -> ProjectionEngine:
        if self.engine is None:
            raise DataSchemaError("A persister is required to project records")
        return self.engine

    def _user(self, access: AuthorizationChecker | None, user: Any) -> Any:
        if user is None and isinstance(access, AccessContext):
            return access.user
        return user


def scope_skeleton(node: SchemaNode) -> dict:
    """A scope document listing every visible property of a compiled schema.

    Nested properties become nested mappings; leaves map to None.
    """
    skeleton: dict = {}
    for name, prop in node.properties.items():
        if prop.hidden:
            continue
        if prop.is_nested:
            skeleton[name] = scope_skeleton(prop.nested_schema) or None
        else:
            skeleton[name] = None
    return skeleton
