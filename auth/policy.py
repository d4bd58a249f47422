"""
auth/policy.py -- Ownership- and assignment-based authorization.

Handlers call the policy explicitly before every read or mutation; there are
no route decorators. Decisions are typed values, not booleans, so the code
that applies an update can enforce partial authority:

    FULL     -- caller owns the project: any task field.
    LIMITED  -- caller is the task's assignee: status and position only.
    NONE     -- anybody else.

Disallowed fields are rejected with Forbidden, never silently dropped. A
request that mixes allowed and disallowed fields changes nothing.

Missing resources are reported as NotFound and foreign ones as Forbidden,
uniformly across every check in this module.

Layer rule: no imports from api/ or tracker/. Resources are accepted by
shape (owner_id / assigned_to attributes) so auth/ stays independent of the
tracker package.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from auth.models import IdentityContext, Role
from core.errors import Forbidden, NotFound

ASSIGNEE_FIELDS = frozenset({"status", "position"})


class OwnedResource(Protocol):
    owner_id: int


class AssignableResource(Protocol):
    assigned_to: Optional[int]


class Authority(str, Enum):
    FULL = "full"
    LIMITED = "limited"
    NONE = "none"


@dataclass(frozen=True)
class PolicyDecision:
    authority: Authority
    allowed_fields: frozenset = field(default_factory=frozenset)

    def disallowed(self, fields: Iterable[str]) -> set[str]:
        """Return the subset of fields this decision does not cover."""
        requested = set(fields)
        if self.authority is Authority.FULL:
            return set()
        if self.authority is Authority.NONE:
            return requested
        return requested - self.allowed_fields


@dataclass(frozen=True)
class OwnerScope:
    """Everything one owner holds. Used for checks made before a project exists."""

    owner_id: int


FULL = PolicyDecision(Authority.FULL)
NONE = PolicyDecision(Authority.NONE)


class AuthorizationPolicy:
    """Stateless checks over owned and assigned resources."""

    def assert_owner(self, resource: Optional[OwnedResource], caller_id: int) -> None:
        """Raise NotFound if resource is None, Forbidden if caller does not own it."""
        if resource is None:
            raise NotFound()
        if resource.owner_id != caller_id:
            raise Forbidden("Not the owner of this resource.")

    def evaluate_modify(
        self,
        parent: Optional[OwnedResource],
        resource: Optional[AssignableResource],
        caller_id: int,
    ) -> PolicyDecision:
        """Decide how much of resource the caller may change.

        parent is the owning project; resource is the task inside it.
        """
        if parent is None or resource is None:
            raise NotFound()
        if parent.owner_id == caller_id:
            return FULL
        if resource.assigned_to is not None and resource.assigned_to == caller_id:
            return PolicyDecision(Authority.LIMITED, ASSIGNEE_FIELDS)
        return NONE

    def enforce(self, decision: PolicyDecision, fields: Iterable[str]) -> None:
        """Raise Forbidden unless decision covers every requested field."""
        if decision.authority is Authority.NONE:
            raise Forbidden()
        rejected = decision.disallowed(fields)
        if rejected:
            raise Forbidden(f"Not permitted to change: {', '.join(sorted(rejected))}.")

    def assert_can_view(
        self,
        parent: Optional[OwnedResource],
        resource: Optional[AssignableResource],
        caller_id: int,
    ) -> None:
        """Owner and assignee may read a task; anyone else gets Forbidden."""
        if self.evaluate_modify(parent, resource, caller_id).authority is Authority.NONE:
            raise Forbidden()

    def assert_role(self, identity: IdentityContext, role: Role) -> None:
        if identity.role != role:
            raise Forbidden(f"{role.value} role required.")
