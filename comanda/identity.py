from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """Opaque caller identity as resolved upstream: an id plus a role set."""
    id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, actor_id: str, roles: Optional[Iterable[str]] = None) -> "Actor":
        return cls(id=actor_id, roles=frozenset(r.strip().lower() for r in (roles or ()) if r.strip()))

    def has_role(self, *names: str) -> bool:
        return any(n in self.roles for n in names)

    @property
    def is_admin(self) -> bool:
        return ADMIN in self.roles
