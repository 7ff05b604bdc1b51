"""Persister contract.

The projection engine never builds queries itself. It hands association
metadata, the owner's id, the exact storage fields it needs and the
already rendered conditions to a Persister, and gets plain dict rows back.
"""

from typing import Any, Protocol

from data_schema.schema.nodes import SchemaNode
from data_schema.schema.scope import ScopeNode
from data_schema.schema.sources import DEFAULT_MAX_SOURCE_DEPTH, source_chain
from data_schema.type_model import AssociationMapping


class Persister(Protocol):
    """Fetch primitives against the underlying store.

    Conditions are store expressions already rendered against `alias`, the
    name the target rows are addressed by. Implementations raise
    InvalidQueryError when an association can't be queried (for example
    when neither side maps a join field).
    """

    def fetch_multi_row(
        self,
        association: AssociationMapping,
        owner_id: Any,
        fields: list[str],
        conditions: list[str],
        order_by: dict[str, str],
        alias: str = "t",
    ) -> list[dict]:
        """Rows of a one-to-many or many-to-many association, in order."""
        ...

    def fetch_single_row(
        self,
        association: AssociationMapping,
        owner_id: Any,
        fields: list[str],
        conditions: list[str],
        alias: str = "t",
    ) -> dict | None:
        """The row of a many-to-one or one-to-one association, if any."""
        ...

    def fetch_fields_by_id(self, type_name: str, fields: list[str], id: Any) -> dict:
        """Missing scalar fields of one record, fetched in a single round trip."""
        ...

    def run_select(self, type_name: str, select_expr: str, id: Any) -> Any:
        """Evaluate a named virtual select for one record."""
        ...


def storage_fields(
    node: SchemaNode,
    scope: ScopeNode | None = None,
    max_source_depth: int = DEFAULT_MAX_SOURCE_DEPTH,
    branch_type: str | None = None,
    all_branches: bool = False,
) -> list[str]:
    """The stored fields a level needs to be fetched with.

    Virtual properties contribute the stored properties on their source
    chain instead of themselves. Properties tagged for another
    discriminator branch are skipped unless all_branches is set, and
    unscoped properties are skipped unless they are hidden or identifiers.
    The discriminator column of a polymorphic level is always included.

    Args:
        node: Filtered schema level.
        scope: Scope mask for the level.
        max_source_depth: Cap on source chain length.
        branch_type: Concrete type of the rows, defaults to node.type_name.
        all_branches: Request the fields of every mapped discriminator
            branch, for rows whose concrete types are not known yet.
    """
    branch_type = branch_type or node.type_name
    fields: list[str] = []

    def add(name: str):
        if name not in fields:
            fields.append(name)

    for name, prop in node.properties.items():
        mapped = all_branches and prop.discriminator in node.discriminator_map
        if not mapped and not node.applies_to(prop, branch_type):
            continue
        # identifiers key the deeper fetches even when the scope leaves them out
        if not (prop.hidden or prop.identifier) and scope and name not in scope:
            continue

        chain = source_chain(node, name, max_source_depth)
        if chain:
            for source_name, source_prop in chain:
                if source_prop.from_store:
                    add(source_name)
        elif prop.from_store:
            add(name)

    if node.has_subclasses and node.discriminator_column:
        add(node.discriminator_column)

    return fields
