"""
AccessScopeResolver -- branch and hierarchy scope for one actor's request.

Responsibility:
    Maps an actor's role memberships, home branch, director capability and
    technician/employee linkage (plus an optional explicit branch selection)
    to a ``ScopeDecision``: the effective branch filter, the hierarchy level,
    and the ownership sub-filters (technician, employee, led teams).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The Actor value is
    built by ``stock_kernel.selectors.actor_selector.ActorSelector``; the
    decision is consumed by ``InventoryLedger`` and ``StockSelector``.

Invariants enforced:
    FAIL_CLOSED_SCOPE -- an actor with no resolvable branch and no
        unrestricted capability receives ``DENY_ALL_BRANCH_ID`` with
        ``should_filter=True``.  ``branch_id=None`` appears only together with
        ``should_filter=False``, so "no filter" can never be mistaken for
        "no restriction".

Failure modes:
    ``resolve_scope`` raises nothing.  ``ScopeDecision.require_branch`` raises
    ``AuthorizationDenialError`` when a caller asks for a branch the decision
    does not permit.

Resolution precedence (first match wins):
    1. superadmin                          -> unrestricted, selection ignored
    2. admin with a matriz home branch     -> selection, else unrestricted
    3. director capability                 -> selection, else unrestricted
    4. manager with a matriz home branch   -> selection, else unrestricted
    5. non-matriz home branch              -> that branch, selection ignored
    6. matriz home branch, none of 1-4     -> that branch only
    7. no resolvable branch                -> DENY_ALL_BRANCH_ID
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from stock_kernel.exceptions import AuthorizationDenialError

# Matches no real branch; returned instead of None when access must be denied
DENY_ALL_BRANCH_ID = UUID("00000000-0000-0000-0000-000000000000")


class Role(str, Enum):
    """Tenant role carried by a RoleAssignment."""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    MANAGER = "manager"
    TECHNICIAN = "technician"


class Capability(str, Enum):
    """
    Evaluated capability set of an actor within its active tenant.

    Roles map one-to-one; DIRECTOR is granted independently of roles.
    """

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    DIRECTOR = "director"
    MANAGER = "manager"
    TECHNICIAN = "technician"


_ROLE_CAPABILITY = {
    Role.SUPERADMIN: Capability.SUPERADMIN,
    Role.ADMIN: Capability.ADMIN,
    Role.MANAGER: Capability.MANAGER,
    Role.TECHNICIAN: Capability.TECHNICIAN,
}

_DIRECTOR_LEVEL = frozenset(
    {Capability.SUPERADMIN, Capability.ADMIN, Capability.DIRECTOR}
)


class HierarchyLevel(str, Enum):
    """Ownership narrowing within the branch scope, lowest first."""

    TECHNICIAN = "technician"
    SUPERVISOR = "supervisor"
    MANAGER = "manager"
    DIRECTOR = "director"


@dataclass(frozen=True)
class BranchRef:
    """The fields of a branch that scope resolution depends on."""

    id: UUID
    tenant_id: UUID
    is_main: bool = False


@dataclass(frozen=True)
class RoleAssignment:
    """One role held by a user in one tenant, with an optional home branch."""

    role: Role
    tenant_id: UUID
    branch_id: UUID | None = None


@dataclass(frozen=True)
class Actor:
    """
    Everything scope resolution needs to know about the requesting user.

    ``tenant_id`` is the tenant the request is made in; role assignments for
    other tenants are ignored.  ``home_branch`` is the resolved home branch
    (None when the actor has none).  Team ids are kept per linkage path so
    the resolver can build the deduplicated union itself.
    """

    actor_id: UUID
    tenant_id: UUID
    role_assignments: tuple[RoleAssignment, ...] = ()
    home_branch: BranchRef | None = None
    has_director_capability: bool = False
    technician_id: UUID | None = None
    employee_id: UUID | None = None
    technician_led_team_ids: tuple[UUID, ...] = ()
    employee_led_team_ids: tuple[UUID, ...] = ()

    def roles(self) -> frozenset[Role]:
        """Roles held in the active tenant."""
        return frozenset(
            ra.role for ra in self.role_assignments if ra.tenant_id == self.tenant_id
        )

    def capabilities(self) -> frozenset[Capability]:
        caps = {_ROLE_CAPABILITY[role] for role in self.roles()}
        if self.has_director_capability:
            caps.add(Capability.DIRECTOR)
        return frozenset(caps)


@dataclass(frozen=True)
class ScopeDecision:
    """
    Resolved branch visibility and hierarchy context for one request.

    Contract:
        - ``should_filter=False`` implies ``branch_id is None`` (every branch
          of the active tenant).
        - ``should_filter=True`` implies ``branch_id`` is a real branch id or
          ``DENY_ALL_BRANCH_ID``.
        - Instances are passed explicitly to every ledger and selector call;
          nothing caches or stores them.
    """

    tenant_id: UUID
    actor_id: UUID
    branch_id: UUID | None
    should_filter: bool
    hierarchy_level: HierarchyLevel
    technician_id: UUID | None = None
    employee_id: UUID | None = None
    led_team_ids: tuple[UUID, ...] = field(default_factory=tuple)
    is_director: bool = False
    is_matriz: bool = False
    can_see_all_branches: bool = False

    @property
    def is_unrestricted(self) -> bool:
        return not self.should_filter

    @property
    def is_deny_all(self) -> bool:
        return self.should_filter and self.branch_id == DENY_ALL_BRANCH_ID

    def permits_branch(self, branch_id: UUID | None) -> bool:
        """
        Whether rows stamped with ``branch_id`` are inside this scope.

        A filtered scope never permits rows without a branch.
        """
        if not self.should_filter:
            return True
        if self.is_deny_all or branch_id is None:
            return False
        return branch_id == self.branch_id

    def require_branch(self, branch_id: UUID | None, operation: str) -> None:
        """
        Raise AuthorizationDenialError unless ``branch_id`` is permitted.

        Raises:
            AuthorizationDenialError: Branch outside the resolved scope.
        """
        if self.permits_branch(branch_id):
            return
        if self.is_deny_all:
            reason = "actor has no resolvable branch"
        elif branch_id is None:
            reason = "target has no branch and the scope is branch-filtered"
        else:
            reason = f"branch {branch_id} is outside scope {self.branch_id}"
        raise AuthorizationDenialError(
            actor_id=str(self.actor_id),
            operation=operation,
            reason=reason,
        )


def _dedupe(*groups: tuple[UUID, ...]) -> tuple[UUID, ...]:
    seen: dict[UUID, None] = {}
    for group in groups:
        for team_id in group:
            seen.setdefault(team_id, None)
    return tuple(seen)


def _resolve_hierarchy(
    actor: Actor,
    caps: frozenset[Capability],
    should_filter: bool,
    led_team_ids: tuple[UUID, ...],
) -> HierarchyLevel:
    if caps & _DIRECTOR_LEVEL:
        return HierarchyLevel.DIRECTOR
    if Capability.MANAGER in caps:
        return HierarchyLevel.MANAGER
    if led_team_ids:
        return HierarchyLevel.SUPERVISOR
    if actor.technician_id is not None or actor.employee_id is not None:
        return HierarchyLevel.TECHNICIAN
    # Service-account-like actors: branch-bound ones act as managers
    return HierarchyLevel.MANAGER if should_filter else HierarchyLevel.DIRECTOR


def resolve_scope(
    actor: Actor,
    explicit_branch_selection: UUID | None = None,
) -> ScopeDecision:
    """
    Resolve the scope of one request.

    Pure and deterministic: identical inputs always yield an equal
    ScopeDecision.  Never raises.

    Args:
        actor: The requesting actor, in its active tenant.
        explicit_branch_selection: Branch picked by an actor allowed to
            browse all branches (matriz admin/manager, director).  Ignored
            for everyone else.

    Returns:
        The ScopeDecision for this request.
    """
    caps = actor.capabilities()
    home = actor.home_branch
    if home is not None and home.tenant_id != actor.tenant_id:
        home = None
    home_is_main = home is not None and home.is_main

    def selectable(is_director: bool) -> tuple[UUID | None, bool, bool]:
        if explicit_branch_selection is not None:
            return explicit_branch_selection, True, is_director
        return None, False, is_director

    is_matriz = False
    can_see_all = False

    if Capability.SUPERADMIN in caps:
        branch_id, should_filter, is_director = None, False, False
        can_see_all = True
    elif Capability.ADMIN in caps and home_is_main:
        branch_id, should_filter, is_director = selectable(False)
        is_matriz = can_see_all = True
    elif Capability.DIRECTOR in caps:
        branch_id, should_filter, is_director = selectable(True)
        can_see_all = True
    elif Capability.MANAGER in caps and home_is_main:
        branch_id, should_filter, is_director = selectable(False)
        is_matriz = can_see_all = True
    elif home is not None:
        branch_id, should_filter, is_director = home.id, True, False
        is_matriz = home.is_main
    else:
        branch_id, should_filter, is_director = DENY_ALL_BRANCH_ID, True, False

    led_team_ids = _dedupe(actor.technician_led_team_ids, actor.employee_led_team_ids)
    level = _resolve_hierarchy(actor, caps, should_filter, led_team_ids)

    return ScopeDecision(
        tenant_id=actor.tenant_id,
        actor_id=actor.actor_id,
        branch_id=branch_id,
        should_filter=should_filter,
        hierarchy_level=level,
        technician_id=actor.technician_id,
        employee_id=actor.employee_id,
        led_team_ids=led_team_ids,
        is_director=is_director,
        is_matriz=is_matriz,
        can_see_all_branches=can_see_all,
    )
