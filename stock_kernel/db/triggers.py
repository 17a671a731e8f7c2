"""
Module: stock_kernel.db.triggers
Responsibility: Installing and verifying the PostgreSQL immutability triggers
    for the stock movement table (Layer 2 of 2).  This is the database-level
    complement to the ORM-level listeners in db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, domain/, or outer layers.

Invariants enforced:
    MOVEMENT_IMMUTABILITY -- stock_movements rows: no UPDATE, no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any trigger violation (surfaced by
      SQLAlchemy as InternalError / DBAPIError).

Audit relevance:
    Even if the ORM layer is bypassed (raw SQL, bulk operations, direct psql
    access), the database refuses to rewrite or erase ledger history.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

ALL_TRIGGER_NAMES = [
    "trg_stock_movement_immutability_update",
    "trg_stock_movement_immutability_delete",
]

_INSTALL_SQL = """
CREATE OR REPLACE FUNCTION prevent_stock_movement_mutation()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: stock_movements row % cannot be %',
        OLD.id, lower(TG_OP);
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_stock_movement_immutability_update ON stock_movements;
CREATE TRIGGER trg_stock_movement_immutability_update
    BEFORE UPDATE ON stock_movements
    FOR EACH ROW EXECUTE FUNCTION prevent_stock_movement_mutation();

DROP TRIGGER IF EXISTS trg_stock_movement_immutability_delete ON stock_movements;
CREATE TRIGGER trg_stock_movement_immutability_delete
    BEFORE DELETE ON stock_movements
    FOR EACH ROW EXECUTE FUNCTION prevent_stock_movement_mutation();
"""

_DROP_SQL = """
DROP TRIGGER IF EXISTS trg_stock_movement_immutability_update ON stock_movements;
DROP TRIGGER IF EXISTS trg_stock_movement_immutability_delete ON stock_movements;
DROP FUNCTION IF EXISTS prevent_stock_movement_mutation();
"""


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after create_all()).
        Engine must be connected to PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        The trigger function is created with CREATE OR REPLACE (idempotent).
    """
    with engine.connect() as conn:
        conn.execute(text(_INSTALL_SQL))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only use this for test teardown or migrations.  Re-install
    triggers immediately afterwards.
    """
    with engine.connect() as conn:
        conn.execute(text(_DROP_SQL))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Get list of installed immutability triggers."""
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """

    with engine.connect() as conn:
        result = conn.execute(text(check_sql))
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """Check if all immutability triggers are installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
