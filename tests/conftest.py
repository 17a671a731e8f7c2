"""
Pytest fixtures for the stock kernel test suite.

Provides:
- One engine and schema per test session, per-test isolation via rollback
- Branch, technician, product and scope factories
- Captured structured logs

Environment Variables:
- DATABASE_URL: database to run against.  Defaults to in-memory SQLite.
  Tests marked ``postgres`` (real multi-threaded races, triggers) are skipped
  unless this points at PostgreSQL.
"""

import json
import logging
import os
import threading
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from stock_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.movement import MovementContext
from stock_kernel.domain.scope import (
    Actor,
    BranchRef,
    Role,
    RoleAssignment,
    ScopeDecision,
    resolve_scope,
)
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.models.actor import Team, Technician
from stock_kernel.models.branch import Branch
from stock_kernel.models.product import Product
from stock_kernel.selectors.ledger_selector import LedgerSelector
from stock_kernel.selectors.stock_selector import StockSelector
from stock_kernel.services.ledger_service import InventoryLedger
from stock_kernel.services.product_service import ProductService

DEFAULT_DATABASE_URL = "sqlite:///:memory:"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def is_postgres_url() -> bool:
    return get_database_url().startswith("postgresql")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if is_postgres_url():
        return
    skip = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.record_movement(...)
            logs = captured_logs()
            assert any(r["message"] == "movement_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables once per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url(
        get_database_url(),
        echo=False,
        pool_size=30,
        max_overflow=20,
        pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session; listeners stay registered."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _truncate_all_tables(engine):
    """Delete committed rows left by real-commit tests."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    with engine.connect() as conn:
        if engine.dialect.name == "postgresql":
            conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
        else:
            for name in table_names:
                conn.execute(text(f"DELETE FROM {name}"))
        conn.commit()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """
    Per-test session joined to an outer transaction.

    ``session.commit()`` inside a test only releases a savepoint; the outer
    transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """
    Session factory for threads in real-commit concurrency tests.

    Tracks every session it hands out, closes them at teardown and deletes
    the committed data.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()

    def tracked_factory():
        with lock:
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()
    _truncate_all_tables(db_engine)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def context(actor_id) -> MovementContext:
    return MovementContext(actor_id=actor_id)


@pytest.fixture
def create_branch(session, tenant_id):
    def _create(name: str, is_main: bool = False, tenant: UUID | None = None) -> Branch:
        branch = Branch(tenant_id=tenant or tenant_id, name=name, is_main=is_main)
        session.add(branch)
        session.flush()
        return branch

    return _create


@pytest.fixture
def matriz(create_branch) -> Branch:
    return create_branch("Matriz", is_main=True)


@pytest.fixture
def branch_a(create_branch) -> Branch:
    return create_branch("Filial A")


@pytest.fixture
def branch_b(create_branch) -> Branch:
    return create_branch("Filial B")


@pytest.fixture
def create_team(session, tenant_id):
    def _create(name: str, leader_id: UUID | None = None, leader_employee_id: UUID | None = None) -> Team:
        team = Team(
            tenant_id=tenant_id,
            name=name,
            leader_id=leader_id,
            leader_employee_id=leader_employee_id,
        )
        session.add(team)
        session.flush()
        return team

    return _create


@pytest.fixture
def create_technician(session, tenant_id):
    def _create(
        name: str = "Técnico",
        branch: Branch | None = None,
        user_id: UUID | None = None,
        team: Team | None = None,
        employee_id: UUID | None = None,
    ) -> Technician:
        technician = Technician(
            tenant_id=tenant_id,
            name=name,
            user_id=user_id,
            employee_id=employee_id,
            branch_id=branch.id if branch else None,
            team_id=team.id if team else None,
        )
        session.add(technician)
        session.flush()
        return technician

    return _create


@pytest.fixture
def technician(create_technician, branch_a) -> Technician:
    return create_technician("Técnico T", branch=branch_a)


@pytest.fixture
def make_actor(tenant_id, actor_id):
    """Build an Actor value; ``home`` is a Branch row or None."""

    def _make(
        roles: tuple[Role, ...] = (),
        home: Branch | None = None,
        director: bool = False,
        technician_id: UUID | None = None,
        employee_id: UUID | None = None,
        technician_led_team_ids: tuple[UUID, ...] = (),
        employee_led_team_ids: tuple[UUID, ...] = (),
        user_id: UUID | None = None,
    ) -> Actor:
        home_ref = (
            BranchRef(id=home.id, tenant_id=home.tenant_id, is_main=home.is_main)
            if home is not None
            else None
        )
        return Actor(
            actor_id=user_id or actor_id,
            tenant_id=tenant_id,
            role_assignments=tuple(
                RoleAssignment(role=r, tenant_id=tenant_id, branch_id=home.id if home else None)
                for r in roles
            ),
            home_branch=home_ref,
            has_director_capability=director,
            technician_id=technician_id,
            employee_id=employee_id,
            technician_led_team_ids=technician_led_team_ids,
            employee_led_team_ids=employee_led_team_ids,
        )

    return _make


@pytest.fixture
def admin_scope(make_actor, matriz) -> ScopeDecision:
    """Matriz admin without a selection: every branch of the tenant."""
    return resolve_scope(make_actor(roles=(Role.ADMIN,), home=matriz))


@pytest.fixture
def branch_scope(make_actor):
    """Manager hard-scoped to a non-matriz branch."""

    def _scope(branch: Branch) -> ScopeDecision:
        return resolve_scope(make_actor(roles=(Role.MANAGER,), home=branch))

    return _scope


@pytest.fixture
def deny_all_scope(make_actor) -> ScopeDecision:
    return resolve_scope(make_actor())


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def ledger(session, clock) -> InventoryLedger:
    return InventoryLedger(session, clock=clock)


@pytest.fixture
def product_service(session, clock) -> ProductService:
    return ProductService(session, clock=clock)


@pytest.fixture
def stock_selector(session) -> StockSelector:
    return StockSelector(session)


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def create_product(product_service, admin_scope, context, branch_a):
    """Register a product through ProductService (opening stock as entrada)."""
    counter = {"n": 0}

    def _create(
        stock: int = 0,
        branch: Branch | None = None,
        code: str | None = None,
        min_stock: int = 0,
        is_serialized: bool = False,
        name: str | None = None,
    ):
        counter["n"] += 1
        return product_service.register_product(
            admin_scope,
            context,
            code=code or f"P-{counter['n']:03d}",
            name=name or f"Produto {counter['n']}",
            branch_id=(branch or branch_a).id,
            min_stock=min_stock,
            is_serialized=is_serialized,
            initial_stock=stock,
        )

    return _create


@pytest.fixture
def create_unbranched_product(session, tenant_id):
    """Product row without a branch, inserted directly."""

    def _create(stock: int = 0, code: str = "ORPHAN") -> Product:
        product = Product(
            tenant_id=tenant_id,
            branch_id=None,
            code=code,
            name="Sem filial",
            current_stock=stock,
            min_stock=0,
            is_serialized=False,
            version=0,
        )
        session.add(product)
        session.flush()
        return product

    return _create


@pytest.fixture
def current_stock(session):
    """Read a product's balance straight from the table."""

    def _read(product_id: UUID) -> int:
        return session.execute(
            text("SELECT current_stock FROM products WHERE id = :id"),
            {"id": str(product_id)},
        ).scalar_one()

    return _read
