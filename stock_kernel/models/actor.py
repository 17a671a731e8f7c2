"""
Module: stock_kernel.models.actor
Responsibility: ORM persistence for everything the scope resolver needs to know
    about an actor: role assignments, the independently-granted director
    capability, and the technician/employee/team linkage that drives the
    hierarchy level.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One role assignment per (user, tenant, role).
    - One director grant per (user, tenant).
    - Team leadership has two independent linkage paths (technician leader,
      employee leader); both are nullable and may both be set.

Audit relevance:
    These tables are inputs to every ScopeDecision.  ActorSelector reads them
    into an immutable Actor value; nothing in the kernel writes them.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, TenantScoped, UUIDString


class RoleAssignment(TenantScoped, Base):
    """
    A user's role within one tenant, with an optional home branch.

    role is one of superadmin, admin, manager, technician (stored as text;
    the domain layer parses it into stock_kernel.domain.scope.Role).
    """

    __tablename__ = "role_assignments"

    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", "role", name="uq_role_assignment"),
        Index("idx_role_assignment_user", "user_id", "tenant_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    role: Mapped[str] = mapped_column(String(20), nullable=False)

    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )


class DirectorGrant(TenantScoped, Base):
    """Director capability, granted independently of the role set."""

    __tablename__ = "director_grants"

    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_director_grant"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)


class Employee(TenantScoped, Base):
    """HR record optionally linked to a login user."""

    __tablename__ = "employees"

    __table_args__ = (
        Index("idx_employee_user", "user_id", "tenant_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )


class Team(TenantScoped, Base):
    """
    Field team.

    leader_id points at a technician, leader_employee_id at an employee;
    either path makes the linked user a supervisor of the team.
    """

    __tablename__ = "teams"

    __table_args__ = (
        Index("idx_team_leader", "leader_id"),
        Index("idx_team_leader_employee", "leader_employee_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # No FK: technicians.team_id already points back at teams
    leader_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    leader_employee_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id"),
        nullable=True,
    )


class Technician(TenantScoped, Base):
    """
    Field technician; the assignee of checked-out serialized units.

    Linked to a login user directly (user_id) or through an employee record
    (employee_id).
    """

    __tablename__ = "technicians"

    __table_args__ = (
        Index("idx_technician_user", "user_id", "tenant_id"),
        Index("idx_technician_employee", "employee_id"),
        Index("idx_technician_team", "team_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    employee_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id"),
        nullable=True,
    )

    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    team_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("teams.id"),
        nullable=True,
    )
