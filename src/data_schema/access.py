"""Access control collaborators.

The role decision and the condition template language both belong to the
host application. The core only needs to ask "is this role granted?" and
"render this condition for this alias and user".
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol


class AuthorizationChecker(Protocol):
    """Decides whether the current caller holds a role."""

    def is_granted(self, role: str) -> bool: ...


class ConditionRenderer(Protocol):
    """Renders an access-control condition template into a store expression.

    Templates are opaque to the core; a typical host implementation feeds
    `alias`, `user` and the user's id into its template engine.
    """

    def render(self, condition: str, alias: str, user: Any = None) -> str: ...


def is_granted_any(checker: AuthorizationChecker | None, roles: Iterable[str]) -> bool:
    """True when roles is empty or the checker grants at least one of them."""
    roles = list(roles)
    if not roles:
        return True
    if checker is None:
        return False
    return any(checker.is_granted(role) for role in roles)


@dataclass(frozen=True)
class AccessContext:
    """Static caller identity: the granted roles plus opaque user handles."""

    roles: frozenset[str] = field(default_factory=frozenset)
    user: Any = None
    user_id: Any = None

    @classmethod
    def anonymous(cls) -> "AccessContext":
        return cls()

    @classmethod
    def for_roles(cls, *roles: str, user: Any = None, user_id: Any = None) -> "AccessContext":
        return cls(roles=frozenset(roles), user=user, user_id=user_id)

    def is_granted(self, role: str) -> bool:
        return role in self.roles

    def is_granted_any(self, roles: Iterable[str]) -> bool:
        return is_granted_any(self, roles)
