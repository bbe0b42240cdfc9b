"""
repositories/program_repo.py
-----------------------------
Data access layer for copay programs.

A program is stored as one row in `copay_programs` plus rows in six
child tables keyed by program_id. Every operation here works on the
whole aggregate: it opens one connection, passes it to each child
accessor in turn, and for writes wraps every statement in a single
transaction so that either the whole program is stored or none of it.

Updates replace children wholesale: all six child tables are cleared
for the program before any child row is re-inserted.
"""

from typing import Optional

from psycopg2 import errors as pg_errors

from db.connection import scoped_connection, transaction
from db.errors import DuplicateProgramError, ProgramNotFoundError
from models.program import CopayProgram
from repositories.program_children import (
    BenefitAccessor,
    CoverageEligibilityAccessor,
    FormAccessor,
    FundingAccessor,
    ProgramDetailAccessor,
    RequirementAccessor,
)
from utils.logger import get_logger

logger = get_logger(__name__)

SELECT_PROGRAM = (
    "SELECT program_id, program_name, program_type "
    "FROM copay_programs WHERE program_id = %s;"
)
SELECT_PROGRAM_ID = "SELECT program_id FROM copay_programs WHERE program_id = %s;"
INSERT_PROGRAM = (
    "INSERT INTO copay_programs (program_id, program_name, program_type) "
    "VALUES (%s, %s, %s);"
)
UPDATE_PROGRAM = (
    "UPDATE copay_programs SET program_name = %s, program_type = %s "
    "WHERE program_id = %s;"
)
DELETE_PROGRAM = "DELETE FROM copay_programs WHERE program_id = %s;"


class ProgramRepository:
    """
    Repository for whole copay programs.

    Args:
        dsn: Optional connection string. When omitted, connections are
            borrowed from the shared pool (see `db.connection.init_pool`).
    """

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn
        self.coverage_eligibilities = CoverageEligibilityAccessor()
        self.requirements = RequirementAccessor()
        self.benefits = BenefitAccessor()
        self.forms = FormAccessor()
        self.funding = FundingAccessor()
        self.details = ProgramDetailAccessor()

    @property
    def children(self) -> tuple:
        """Child accessors in the fixed order they are written and deleted."""
        return (
            self.coverage_eligibilities,
            self.requirements,
            self.benefits,
            self.forms,
            self.funding,
            self.details,
        )

    # ── READ ──────────────────────────────────────────────

    def get_by_id(self, program_id: int) -> Optional[CopayProgram]:
        """
        Load a program and all of its child collections.

        Args:
            program_id: Identifier of the program.

        Returns:
            A fully populated CopayProgram, or None if no such program exists.

        Raises:
            StatementError: If any query fails. No partial program is returned.
            FundingIntegrityError: If more than one funding row is stored.
        """
        with scoped_connection(self.dsn) as conn:
            with transaction(conn, "get_by_id", program_id, readonly=True):
                with conn.cursor() as cur:
                    cur.execute(SELECT_PROGRAM, (program_id,))
                    row = cur.fetchone()
                if row is None:
                    return None

                program = self._row_to_program(row)
                program.coverage_eligibilities = self.coverage_eligibilities.read(conn, program_id)
                program.requirements = self.requirements.read(conn, program_id)
                program.benefits = self.benefits.read(conn, program_id)
                program.forms = self.forms.read(conn, program_id)
                program.funding = self.funding.read(conn, program_id)
                program.details = self.details.read(conn, program_id)
                return program

    def exists(self, program_id: int) -> bool:
        """Return True if a root row exists for the program."""
        with scoped_connection(self.dsn) as conn:
            with transaction(conn, "exists", program_id, readonly=True):
                with conn.cursor() as cur:
                    cur.execute(SELECT_PROGRAM_ID, (program_id,))
                    return cur.fetchone() is not None

    # ── CREATE ────────────────────────────────────────────

    def add(self, program: CopayProgram) -> int:
        """
        Insert a new program with all of its children in one transaction.

        Args:
            program: Fully populated program with a caller-assigned id.

        Returns:
            The program's id.

        Raises:
            DuplicateProgramError: If a program with this id already exists.
            StatementError: If any statement fails; nothing is stored.
            RollbackError: If the failed transaction could not be rolled back.
        """
        program_id = program.program_id
        with scoped_connection(self.dsn) as conn:
            with transaction(conn, "add", program_id):
                self._insert_root(conn, program)
                self._write_children(conn, program)
        logger.info(f"Added program {program}")
        return program_id

    # ── UPDATE ────────────────────────────────────────────

    def update(self, program: CopayProgram) -> None:
        """
        Replace a stored program with the given state.

        The root row is updated, every child row of the program is
        deleted, and the current children are inserted again, all in
        one transaction.

        Raises:
            ProgramNotFoundError: If no program with this id exists.
            StatementError: If any statement fails; the previous state is kept.
            RollbackError: If the failed transaction could not be rolled back.
        """
        program_id = program.program_id
        with scoped_connection(self.dsn) as conn:
            with transaction(conn, "update", program_id):
                with conn.cursor() as cur:
                    cur.execute(UPDATE_PROGRAM, (
                        program.program_name, program.program_type, program_id,
                    ))
                    updated = cur.rowcount > 0
                if not updated:
                    logger.error(f"Cannot replace program {program_id}: it does not exist")
                    raise ProgramNotFoundError(
                        "Program does not exist.", operation="update", program_id=program_id
                    )
                self.delete_children(conn, program_id)
                self._write_children(conn, program)
        logger.info(f"Replaced program {program}")

    # ── DELETE ────────────────────────────────────────────

    def delete(self, program_id: int) -> bool:
        """
        Delete a program and all of its children.

        Returns:
            True if the program existed, False otherwise.
        """
        with scoped_connection(self.dsn) as conn:
            with transaction(conn, "delete", program_id):
                self.delete_children(conn, program_id)
                with conn.cursor() as cur:
                    cur.execute(DELETE_PROGRAM, (program_id,))
                    deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"Deleted program #{program_id}")
        return deleted

    def delete_children(self, conn, program_id: int) -> int:
        """
        Remove every child row of a program from all six child tables.
        Runs inside the caller's transaction.

        Returns:
            Total number of rows removed.
        """
        return sum(accessor.delete(conn, program_id) for accessor in self.children)

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _insert_root(conn, program: CopayProgram) -> None:
        program_id = program.program_id
        with conn.cursor() as cur:
            cur.execute(SELECT_PROGRAM_ID, (program_id,))
            if cur.fetchone() is not None:
                logger.error(f"Cannot add program {program_id}: id already in use")
                raise DuplicateProgramError(
                    "Program already exists.", operation="add", program_id=program_id
                )
            try:
                cur.execute(INSERT_PROGRAM, (
                    program_id, program.program_name, program.program_type,
                ))
            except pg_errors.UniqueViolation as e:
                # Lost a race with a concurrent insert of the same id.
                logger.error(f"Cannot add program {program_id}: id already in use")
                raise DuplicateProgramError(
                    "Program already exists.", operation="add", program_id=program_id
                ) from e

    def _write_children(self, conn, program: CopayProgram) -> None:
        """Insert every child collection; the root row must already exist."""
        program_id = program.program_id
        self.coverage_eligibilities.write(conn, program_id, program.coverage_eligibilities)
        self.requirements.write(conn, program_id, program.requirements)
        self.benefits.write(conn, program_id, program.benefits)
        self.forms.write(conn, program_id, program.forms)
        self.funding.write(conn, program_id, program.funding)
        self.details.write(conn, program_id, program.details)

    @staticmethod
    def _row_to_program(row: tuple) -> CopayProgram:
        """Convert a root row tuple to a CopayProgram without children."""
        return CopayProgram(
            program_id=row[0],
            program_name=row[1],
            program_type=row[2],
        )
