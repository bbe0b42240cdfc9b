"""
db/init_db.py
-------------
Creates the database schema (tables) if they do not already exist.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import scoped_connection, transaction
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Root table: one row per copay program. The identifier is assigned by the caller.
CREATE TABLE IF NOT EXISTS copay_programs (
    program_id      INTEGER PRIMARY KEY,
    program_name    TEXT NOT NULL,
    program_type    TEXT NOT NULL
);

-- Child tables. Rows are removed by the repository, never by cascade.
CREATE TABLE IF NOT EXISTS coverage_eligibilities (
    id              SERIAL PRIMARY KEY,
    program_id      INTEGER NOT NULL REFERENCES copay_programs(program_id),
    eligibility     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS requirements (
    id              SERIAL PRIMARY KEY,
    program_id      INTEGER NOT NULL REFERENCES copay_programs(program_id),
    name            TEXT NOT NULL,
    value           TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS benefits (
    id              SERIAL PRIMARY KEY,
    program_id      INTEGER NOT NULL REFERENCES copay_programs(program_id),
    name            TEXT NOT NULL,
    value           TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS forms (
    id              SERIAL PRIMARY KEY,
    program_id      INTEGER NOT NULL REFERENCES copay_programs(program_id),
    name            TEXT NOT NULL,
    link            TEXT NOT NULL
);

-- At most one funding record per program.
CREATE TABLE IF NOT EXISTS funding (
    id                      SERIAL PRIMARY KEY,
    program_id              INTEGER NOT NULL UNIQUE REFERENCES copay_programs(program_id),
    evergreen               VARCHAR(5) NOT NULL CHECK (evergreen IN ('true', 'false')),
    current_funding_level   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS program_details (
    id              SERIAL PRIMARY KEY,
    program_id      INTEGER NOT NULL REFERENCES copay_programs(program_id),
    eligibility     TEXT NOT NULL,
    program         TEXT NOT NULL,
    renewal         TEXT NOT NULL,
    income          TEXT NOT NULL
);
"""


def create_tables(dsn: str | None = None) -> None:
    """
    Execute the schema SQL to create all tables.
    Safe to call multiple times (uses IF NOT EXISTS).

    Args:
        dsn: Connection string to use instead of the shared pool.
    """
    with scoped_connection(dsn) as conn:
        with transaction(conn, "create_tables"):
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
    logger.info("Database schema initialized successfully.")


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("Database schema created successfully.")
