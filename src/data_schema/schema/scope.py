"""Caller-supplied scope masks.

A scope is a nested mapping of property names; a None (or empty) value
marks a leaf that includes the property as-is. A None scope at the root
means "no restriction".

    {"title": None, "author": {"name": None}}
"""

from typing import Any, TypeAlias

from data_schema.errors import InvalidScopeError

ScopeNode: TypeAlias = dict[str, "ScopeNode | None"]


def parse_scope(raw: Any) -> ScopeNode | None:
    """Normalize a loaded scope document into a ScopeNode.

    YAML scope files commonly list leaves as `title:` (None) or `title: ~`;
    lists of names are accepted as a shorthand for a mapping of leaves.
    """
    if raw is None:
        return None
    if isinstance(raw, list):
        return {_scope_key(item): None for item in raw}
    if not isinstance(raw, dict):
        raise InvalidScopeError(f"Scope must be a mapping, got {type(raw).__name__}")

    scope: ScopeNode = {}
    for key, value in raw.items():
        if value is None or value == {} or value is True:
            scope[_scope_key(key)] = None
        else:
            scope[_scope_key(key)] = parse_scope(value)
    return scope


def _scope_key(key: Any) -> str:
    if not isinstance(key, str):
        raise InvalidScopeError(f"Scope keys must be property names, got {key!r}")
    return key


def is_unrestricted(scope: ScopeNode | None) -> bool:
    """None and empty scopes place no restriction on a level."""
    return not scope


def in_scope(scope: ScopeNode | None, name: str) -> bool:
    """Whether a property is requested, explicitly or by an unrestricted scope."""
    return is_unrestricted(scope) or name in scope  # type: ignore[operator]


def explicitly_in_scope(scope: ScopeNode | None, name: str) -> bool:
    """Whether a property is named in a restricting scope."""
    return bool(scope) and name in scope  # type: ignore[operator]


def sub_scope(scope: ScopeNode | None, name: str) -> ScopeNode | None:
    """The scope mask for a nested property, None when unrestricted."""
    if not scope:
        return None
    return scope.get(name) or None


def apply_scope(value: dict, scope: ScopeNode) -> dict:
    """Intersect a nested mapping against a scope mask.

    Keys not named by the mask are dropped; nested mappings are intersected
    recursively where the mask has a nested level for them.
    """
    scoped = {}
    for key, item in value.items():
        if key not in scope:
            continue
        nested = scope[key]
        if isinstance(item, dict) and nested:
            scoped[key] = apply_scope(item, nested)
        else:
            scoped[key] = item
    return scoped
