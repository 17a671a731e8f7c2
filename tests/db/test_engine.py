"""session_scope(): commit on success, rollback and re-raise on error."""

import pytest
from sqlalchemy import delete, func, select

from stock_kernel.db.engine import get_engine, is_postgres, session_scope
from stock_kernel.models.branch import Branch


@pytest.fixture
def scoped_tenant(db_tables, tenant_id):
    """Tenant whose committed branches are removed after the test."""
    yield tenant_id
    with session_scope() as s:
        s.execute(delete(Branch).where(Branch.tenant_id == tenant_id))


def _branch_count(tenant_id) -> int:
    with session_scope() as s:
        return s.execute(
            select(func.count(Branch.id)).where(Branch.tenant_id == tenant_id)
        ).scalar_one()


class TestSessionScope:
    def test_commits_on_success(self, scoped_tenant):
        with session_scope() as s:
            s.add(Branch(tenant_id=scoped_tenant, name="Committed"))

        assert _branch_count(scoped_tenant) == 1

    def test_rolls_back_and_reraises(self, scoped_tenant, captured_logs):
        with pytest.raises(RuntimeError, match="abort"):
            with session_scope() as s:
                s.add(Branch(tenant_id=scoped_tenant, name="Discarded"))
                s.flush()
                raise RuntimeError("abort")

        assert _branch_count(scoped_tenant) == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())

    def test_dialect_flag_matches_engine(self, db_engine):
        assert get_engine() is db_engine
        assert is_postgres() == (db_engine.dialect.name == "postgresql")
