"""
Module: stock_kernel.models.branch
Responsibility: ORM persistence for branches, the organizational/physical
    locations that own inventory within a tenant.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one consolidated ("matriz") branch per tenant, enforced by a
      partial unique index on (tenant_id) WHERE is_main.
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, TenantScoped


class Branch(TenantScoped, Base):
    """
    A location owning its own inventory.

    Contract:
        is_main flags the tenant's consolidated branch.  Admins and managers
        whose home branch is the matriz may see every branch of the tenant;
        everyone else is hard-scoped to their own branch.
    """

    __tablename__ = "branches"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_branch_tenant_name"),
        Index(
            "uq_branch_one_main_per_tenant",
            "tenant_id",
            unique=True,
            postgresql_where=text("is_main"),
            sqlite_where=text("is_main = 1"),
        ),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    is_main: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        flag = " (matriz)" if self.is_main else ""
        return f"<Branch {self.name}{flag}>"
