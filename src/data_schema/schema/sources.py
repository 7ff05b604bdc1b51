"""Source chain resolution for virtual properties.

A virtual property names another property (or a query select) in its
`source` option; that property may itself be virtual. The chain is walked
until it reaches a stored property or a select:

    full_name -> first_name -> name

Every hop must exist, the chain must not lead back to the property that
started it, and it may be at most max_depth hops long.
"""

from typing import TypeAlias

from data_schema.errors import (
    InvalidConfigurationError,
    MaxSourceDepthExceededError,
    SourceCycleError,
    SourceResolutionError,
)
from data_schema.schema.nodes import PropertyNode, SchemaNode

DEFAULT_MAX_SOURCE_DEPTH = 10

SourceChain: TypeAlias = list[tuple[str, PropertyNode]]


def resolve_source_chain(
    node: SchemaNode,
    property_name: str,
    max_depth: int = DEFAULT_MAX_SOURCE_DEPTH,
) -> SourceChain:
    """Resolve the ordered dependencies of a property.

    Returns an empty list for stored properties and for properties whose
    source is a query select.

    Raises:
        SourceCycleError: If the chain refers back to property_name.
        SourceResolutionError: If a hop names a property that doesn't exist.
        MaxSourceDepthExceededError: If the chain is longer than max_depth.
    """
    chain: SourceChain = []
    prop = node.properties.get(property_name)

    while prop is not None and prop.source:
        source = prop.source
        if source in node.query_selects:
            break

        names = [property_name] + [name for name, _ in chain]
        if source == property_name:
            raise SourceCycleError(
                property_name, 'Shouldn\'t refer to self in "source" option', names + [source]
            )

        prop = node.properties.get(source)
        if prop is None:
            raise SourceResolutionError(
                property_name,
                f'Invalid "source" option. Referred property "{source}" '
                f"doesn't exist in configuration.",
                names + [source],
            )

        chain.append((source, prop))
        if len(chain) > max_depth:
            raise MaxSourceDepthExceededError(
                property_name, "Maximum referencing depth exceeded", names + [source]
            )

    return chain


def source_chain(
    node: SchemaNode,
    property_name: str,
    max_depth: int = DEFAULT_MAX_SOURCE_DEPTH,
) -> SourceChain:
    """Resolve a source chain, raising schema-wide errors.

    Same as resolve_source_chain(), but property errors are wrapped into
    InvalidConfigurationError with the chain rendered as 'a > b > c'.
    """
    try:
        return resolve_source_chain(node, property_name, max_depth)
    except SourceResolutionError as e:
        stack = " > ".join(e.chain)
        raise InvalidConfigurationError(node, f"Sources stack: {stack}. {e}") from e


def terminal_source(
    node: SchemaNode,
    property_name: str,
    max_depth: int = DEFAULT_MAX_SOURCE_DEPTH,
) -> str:
    """Name of the record key a virtual property's value is ultimately read from."""
    prop = node.properties.get(property_name)
    if prop is None or not prop.source:
        return property_name

    chain = source_chain(node, property_name, max_depth)
    if not chain:
        # source is a query select
        return prop.source

    last_name, last_prop = chain[-1]
    if last_prop.source and last_prop.source in node.query_selects:
        return last_prop.source
    return last_name
