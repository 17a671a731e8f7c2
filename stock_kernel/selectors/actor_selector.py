"""
Module: stock_kernel.selectors.actor_selector
Responsibility: Builds the immutable ``Actor`` value that scope resolution
    consumes, from role assignments, director grants and the
    technician/employee/team linkage tables.
Architecture position: Kernel > Selectors.

Lookup order:
    1. Role assignments of the user (all tenants; the resolver keeps only
       the active tenant's).
    2. Director grant for (user, tenant).
    3. Employee by (user, tenant).
    4. Technician by (user, tenant), else the technician linked to that
       employee.
    5. Teams led by the technician, then teams led by the employee.
    6. Home branch from the tenant role assignment, else the employee's
       branch.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.scope import (
    Actor,
    BranchRef,
    Role,
    RoleAssignment,
    ScopeDecision,
    resolve_scope,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.actor import DirectorGrant, Employee, Team, Technician
from stock_kernel.models.actor import RoleAssignment as RoleAssignmentModel
from stock_kernel.models.branch import Branch
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.actor")


class ActorSelector(BaseSelector):
    """Loads Actor values for scope resolution."""

    def load_actor(self, user_id: UUID, tenant_id: UUID) -> Actor:
        assignments = self._role_assignments(user_id)
        employee = self._employee(user_id, tenant_id)
        technician = self._technician(user_id, tenant_id, employee)

        technician_led = self._led_teams(Team.leader_id, technician.id, tenant_id) if technician else ()
        employee_led = (
            self._led_teams(Team.leader_employee_id, employee.id, tenant_id) if employee else ()
        )

        home_branch_id = next(
            (
                ra.branch_id
                for ra in assignments
                if ra.tenant_id == tenant_id and ra.branch_id is not None
            ),
            None,
        )
        if home_branch_id is None and employee is not None:
            home_branch_id = employee.branch_id

        actor = Actor(
            actor_id=user_id,
            tenant_id=tenant_id,
            role_assignments=assignments,
            home_branch=self._branch_ref(home_branch_id),
            has_director_capability=self._has_director_grant(user_id, tenant_id),
            technician_id=technician.id if technician else None,
            employee_id=employee.id if employee else None,
            technician_led_team_ids=technician_led,
            employee_led_team_ids=employee_led,
        )
        logger.debug(
            "actor_loaded",
            extra={
                "user_id": str(user_id),
                "roles": sorted(r.value for r in actor.roles()),
                "home_branch_id": str(home_branch_id) if home_branch_id else None,
                "led_team_count": len(technician_led) + len(employee_led),
            },
        )
        return actor

    def scope_for(
        self,
        user_id: UUID,
        tenant_id: UUID,
        explicit_branch_selection: UUID | None = None,
    ) -> ScopeDecision:
        """Load the actor and resolve the scope of one request."""
        scope = resolve_scope(self.load_actor(user_id, tenant_id), explicit_branch_selection)
        logger.info(
            "scope_resolved",
            extra={
                "user_id": str(user_id),
                "scope_branch_id": str(scope.branch_id) if scope.branch_id else None,
                "should_filter": scope.should_filter,
                "hierarchy_level": scope.hierarchy_level.value,
                "deny_all": scope.is_deny_all,
            },
        )
        return scope

    def _role_assignments(self, user_id: UUID) -> tuple[RoleAssignment, ...]:
        rows = self.session.execute(
            select(RoleAssignmentModel)
            .where(RoleAssignmentModel.user_id == user_id)
            .order_by(RoleAssignmentModel.role)
        ).scalars()

        assignments = []
        for row in rows:
            try:
                role = Role(row.role)
            except ValueError:
                logger.warning(
                    "unknown_role_ignored",
                    extra={"user_id": str(user_id), "role": row.role},
                )
                continue
            assignments.append(
                RoleAssignment(role=role, tenant_id=row.tenant_id, branch_id=row.branch_id)
            )
        return tuple(assignments)

    def _has_director_grant(self, user_id: UUID, tenant_id: UUID) -> bool:
        grant = self.session.execute(
            select(DirectorGrant.id).where(
                DirectorGrant.user_id == user_id,
                DirectorGrant.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return grant is not None

    def _employee(self, user_id: UUID, tenant_id: UUID) -> Employee | None:
        return self.session.execute(
            select(Employee)
            .where(Employee.user_id == user_id, Employee.tenant_id == tenant_id)
            .limit(1)
        ).scalar_one_or_none()

    def _technician(
        self,
        user_id: UUID,
        tenant_id: UUID,
        employee: Employee | None,
    ) -> Technician | None:
        technician = self.session.execute(
            select(Technician)
            .where(Technician.user_id == user_id, Technician.tenant_id == tenant_id)
            .limit(1)
        ).scalar_one_or_none()
        if technician is None and employee is not None:
            technician = self.session.execute(
                select(Technician)
                .where(
                    Technician.employee_id == employee.id,
                    Technician.tenant_id == tenant_id,
                )
                .limit(1)
            ).scalar_one_or_none()
        return technician

    def _led_teams(self, leader_column, leader_id: UUID, tenant_id: UUID) -> tuple[UUID, ...]:
        return tuple(
            self.session.execute(
                select(Team.id)
                .where(leader_column == leader_id, Team.tenant_id == tenant_id)
                .order_by(Team.name, Team.id)
            ).scalars()
        )

    def _branch_ref(self, branch_id: UUID | None) -> BranchRef | None:
        if branch_id is None:
            return None
        branch = self.session.get(Branch, branch_id)
        if branch is None:
            return None
        return BranchRef(id=branch.id, tenant_id=branch.tenant_id, is_main=branch.is_main)
