"""
Role Hierarchy — total order over roles with a top-rank override.

Roles form a chain:

    USER < SUPERVISOR < ADMIN < SUPER_ADMIN < DEVELOPER

``satisfies(held, required)`` is a rank comparison, except that the two
top-rank roles (SUPER_ADMIN, DEVELOPER) satisfy every requirement, including
requirements on roles inserted into the table later with a higher rank.

The rank table is data.  Adding a role means adding an entry (see
``RoleHierarchy.with_role``), never editing the comparison logic.

Usage:
    from branchpolicy.services.role_hierarchy import Role, satisfies

    satisfies(Role.ADMIN, Role.SUPERVISOR)      # True
    satisfies(Role.SUPERVISOR, Role.ADMIN)      # False
    satisfies(Role.DEVELOPER, "AUDITOR")        # UnknownRoleError, unless registered
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from branchpolicy.core.exceptions import PolicyInputError


class Role(str, Enum):
    USER = "USER"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    DEVELOPER = "DEVELOPER"


# Gaps between ranks leave room for roles inserted between existing ones.
ROLE_RANKS: dict[str, int] = {
    Role.USER.value: 10,
    Role.SUPERVISOR.value: 20,
    Role.ADMIN.value: 30,
    Role.SUPER_ADMIN.value: 40,
    Role.DEVELOPER.value: 50,
}

TOP_RANK_ROLES = frozenset({Role.SUPER_ADMIN.value, Role.DEVELOPER.value})


class UnknownRoleError(PolicyInputError):
    """Raised when a role name is not present in the rank table."""

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Unknown role: {role!r}")


def role_name(role) -> str:
    """Normalise a ``Role`` member or plain string to the table key."""
    if isinstance(role, Role):
        return role.value
    if not isinstance(role, str) or not role:
        raise UnknownRoleError(repr(role))
    return role


@dataclass(frozen=True)
class RoleHierarchy:
    ranks: Mapping[str, int]
    top_roles: frozenset = field(default=TOP_RANK_ROLES)

    def __post_init__(self):
        object.__setattr__(self, "ranks", MappingProxyType(dict(self.ranks)))
        unknown_top = set(self.top_roles) - set(self.ranks)
        if unknown_top:
            raise PolicyInputError(f"Top-rank roles missing from rank table: {sorted(unknown_top)}")

    def __hash__(self):
        return hash((tuple(sorted(self.ranks.items())), self.top_roles))

    def is_known(self, role) -> bool:
        try:
            return role_name(role) in self.ranks
        except UnknownRoleError:
            return False

    def rank(self, role) -> int:
        key = role_name(role)
        try:
            return self.ranks[key]
        except KeyError:
            raise UnknownRoleError(key) from None

    def satisfies(self, principal_role, required_role) -> bool:
        """Return True if ``principal_role`` meets or exceeds ``required_role``."""
        held = self.rank(principal_role)
        needed = self.rank(required_role)
        if role_name(principal_role) in self.top_roles:
            return True
        return held >= needed

    def roles_at_least(self, required_role) -> list[str]:
        """Every role that satisfies ``required_role``, lowest rank first."""
        self.rank(required_role)
        return [
            name for name, _ in sorted(self.ranks.items(), key=lambda item: item[1])
            if self.satisfies(name, required_role)
        ]

    def ordered(self) -> list[str]:
        return [name for name, _ in sorted(self.ranks.items(), key=lambda item: item[1])]

    def with_role(self, name: str, rank: int) -> "RoleHierarchy":
        """Return a new hierarchy with ``name`` inserted at ``rank``."""
        if not name:
            raise PolicyInputError("Role name must be non-empty")
        if name in self.ranks:
            raise PolicyInputError(f"Role {name!r} already ranked")
        if rank in self.ranks.values():
            raise PolicyInputError(f"Rank {rank} already taken")
        ranks = dict(self.ranks)
        ranks[name] = rank
        return RoleHierarchy(ranks, self.top_roles)

    def to_dict(self) -> dict:
        return {
            "roles": [
                {"role": name, "rank": self.ranks[name], "top_rank": name in self.top_roles}
                for name in self.ordered()
            ],
        }


DEFAULT_HIERARCHY = RoleHierarchy(ROLE_RANKS)


def parse_extra_roles(spec: str | None) -> list[tuple[str, int]]:
    """Parse ``"AUDITOR:25,OWNER:60"`` into ``[("AUDITOR", 25), ("OWNER", 60)]``."""
    if not spec:
        return []
    pairs = []
    for chunk in spec.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, raw_rank = chunk.partition(":")
        if not sep:
            raise PolicyInputError(f"Expected NAME:rank, got {chunk!r}")
        try:
            pairs.append((name.strip().upper(), int(raw_rank)))
        except ValueError:
            raise PolicyInputError(f"Rank must be an integer in {chunk!r}") from None
    return pairs


def build_hierarchy(extra_roles: str | None = None) -> RoleHierarchy:
    hierarchy = DEFAULT_HIERARCHY
    for name, rank_value in parse_extra_roles(extra_roles):
        hierarchy = hierarchy.with_role(name, rank_value)
    return hierarchy


def rank(role) -> int:
    return DEFAULT_HIERARCHY.rank(role)


def satisfies(principal_role, required_role) -> bool:
    return DEFAULT_HIERARCHY.satisfies(principal_role, required_role)
