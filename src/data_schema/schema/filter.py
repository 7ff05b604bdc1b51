"""Per-request schema filtering.

Intersects a compiled schema with the caller's roles and scope mask. The
result is a smaller compiled tree that the projection engine can walk
without further checks.
"""

from dataclasses import replace

from loguru import logger

from data_schema.access import AuthorizationChecker, is_granted_any
from data_schema.schema.nodes import PropertyNode, SchemaNode
from data_schema.schema.scope import ScopeNode, explicitly_in_scope, is_unrestricted, sub_scope
from data_schema.schema.sources import DEFAULT_MAX_SOURCE_DEPTH, source_chain


class ScopeFilter:
    """Prunes compiled schemas by role, scope and depth budget.

    Filtering is a pure function of its arguments: the same node, scope,
    depth and caller roles always give a structurally equal tree, and
    filtering an already filtered tree again changes nothing.
    """

    def __init__(self, max_source_depth: int = DEFAULT_MAX_SOURCE_DEPTH):
        self.max_source_depth = max_source_depth

    def filter(
        self,
        node: SchemaNode,
        scope: ScopeNode | None = None,
        depth_budget: int = 0,
        access: AuthorizationChecker | None = None,
    ) -> SchemaNode:
        """Filter a compiled schema level for one request.

        Args:
            node: Compiled schema level.
            scope: Caller's scope mask; None (or empty) keeps everything the
                depth budget allows.
            depth_budget: Levels of nesting that may be expanded without
                being named in the scope.
            access: Caller identity. Without one, only public levels pass.

        Returns:
            The pruned level. An empty node means nothing may be rendered.

        Raises:
            InvalidConfigurationError: If a kept virtual property has a
                broken source chain.
        """
        # --- Role gate ---
        # Trigger: level declares roles and the caller holds none of them
        # Why: no access is an outcome, not an error
        # Outcome: empty level, the caller renders nothing for it
        if not is_granted_any(access, node.roles):
            logger.debug(
                f"Access denied to {node.schema_ref or node.type_name}, roles={node.roles}"
            )
            return node.without_properties()

        if node.is_empty:
            return node

        kept: dict[str, PropertyNode] = {}
        for name, prop in node.properties.items():
            if not self._is_kept(prop, name, scope, depth_budget):
                continue

            if prop.is_virtual:
                for source_name, source_prop in source_chain(node, name, self.max_source_depth):
                    if source_name in kept:
                        continue
                    filtered = self._filter_property(
                        source_prop, source_name, scope, depth_budget, access, dependency=True
                    )
                    if filtered is not None:
                        kept[source_name] = filtered

            if name not in kept:
                filtered = self._filter_property(prop, name, scope, depth_budget, access)
                if filtered is not None:
                    kept[name] = filtered

        # Emit in declaration order so filtering a filtered tree is a no-op
        properties = {name: kept[name] for name in node.properties if name in kept}
        return replace(node, properties=properties)

    def _is_kept(
        self, prop: PropertyNode, name: str, scope: ScopeNode | None, depth_budget: int
    ) -> bool:
        explicit = explicitly_in_scope(scope, name)
        requested = is_unrestricted(scope) or explicit or prop.hidden or prop.identifier
        if not requested:
            return False

        # Unrequested nested branches only expand while budget remains
        if prop.is_nested and not explicit and depth_budget <= 0:
            return False
        return True

    def _filter_property(
        self,
        prop: PropertyNode,
        name: str,
        scope: ScopeNode | None,
        depth_budget: int,
        access: AuthorizationChecker | None,
        dependency: bool = False,
    ) -> PropertyNode | None:
        if not prop.is_nested:
            return prop

        if dependency and not explicitly_in_scope(scope, name) and depth_budget <= 0:
            logger.debug(f"Depth budget exhausted, dropping nested source {name}")
            return None

        child = self.filter(prop.nested_schema, sub_scope(scope, name), depth_budget - 1, access)
        if child.is_empty:
            logger.debug(f"Dropping nested property {name}: nothing left after filtering")
            return None
        return replace(prop, nested_schema=child)
