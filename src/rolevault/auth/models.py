from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_active: bool = True

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


@dataclass(frozen=True)
class SecondFactorChallenge:
    """Holder of a pending-second-factor token. Not a session."""

    user_id: str
    issued_at_ms: int = 0
