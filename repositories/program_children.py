"""
repositories/program_children.py
---------------------------------
Accessors for the six child tables of a copay program.

Each accessor reads, inserts and deletes the rows of one table for a
given program_id. Accessors never open, commit, roll back or keep a
connection: they borrow the one handed to them by ProgramRepository
and let any driver error propagate unchanged.
"""

from typing import Any, Iterable, Optional

from db.errors import FundingIntegrityError
from models.program import Benefit, Form, Funding, ProgramDetail, Requirement
from utils.logger import get_logger

logger = get_logger(__name__)


class ChildAccessor:
    """
    Base accessor for a table holding rows that belong to one program.

    Subclasses set `table` and `columns` and convert between rows and
    domain objects. Rows come back in insertion order.
    """

    table: str = ""
    columns: tuple[str, ...] = ()

    @property
    def select_sql(self) -> str:
        return (
            f"SELECT {', '.join(self.columns)} FROM {self.table} "
            f"WHERE program_id = %s ORDER BY id;"
        )

    @property
    def insert_sql(self) -> str:
        placeholders = ", ".join(["%s"] * (len(self.columns) + 1))
        return (
            f"INSERT INTO {self.table} (program_id, {', '.join(self.columns)}) "
            f"VALUES ({placeholders});"
        )

    @property
    def delete_sql(self) -> str:
        return f"DELETE FROM {self.table} WHERE program_id = %s;"

    # ── READ ──────────────────────────────────────────────

    def read(self, conn, program_id: int) -> list:
        """Fetch every row of this table for a program."""
        with conn.cursor() as cur:
            cur.execute(self.select_sql, (program_id,))
            return [self._row_to_item(r) for r in cur.fetchall()]

    # ── WRITE ─────────────────────────────────────────────

    def write(self, conn, program_id: int, items: Iterable) -> int:
        """
        Insert every item for a program, one statement per item.

        Returns:
            Number of rows inserted.
        """
        count = 0
        with conn.cursor() as cur:
            for item in items:
                cur.execute(self.insert_sql, (program_id, *self._item_to_params(item)))
                count += 1
        return count

    # ── DELETE ────────────────────────────────────────────

    def delete(self, conn, program_id: int) -> int:
        """Delete every row of this table for a program; returns the row count."""
        with conn.cursor() as cur:
            cur.execute(self.delete_sql, (program_id,))
            return cur.rowcount

    # ── HELPERS ───────────────────────────────────────────

    def _row_to_item(self, row: tuple) -> Any:
        raise NotImplementedError

    def _item_to_params(self, item: Any) -> tuple:
        raise NotImplementedError


class CoverageEligibilityAccessor(ChildAccessor):
    """Plain text labels such as 'Commercially insured'."""

    table = "coverage_eligibilities"
    columns = ("eligibility",)

    def _row_to_item(self, row: tuple) -> str:
        return row[0]

    def _item_to_params(self, item: str) -> tuple:
        return (item,)


class RequirementAccessor(ChildAccessor):
    table = "requirements"
    columns = ("name", "value")

    def _row_to_item(self, row: tuple) -> Requirement:
        return Requirement(name=row[0], value=row[1])

    def _item_to_params(self, item: Requirement) -> tuple:
        return (item.name, item.value)


class BenefitAccessor(ChildAccessor):
    table = "benefits"
    columns = ("name", "value")

    def _row_to_item(self, row: tuple) -> Benefit:
        return Benefit(name=row[0], value=row[1])

    def _item_to_params(self, item: Benefit) -> tuple:
        return (item.name, item.value)


class FormAccessor(ChildAccessor):
    table = "forms"
    columns = ("name", "link")

    def _row_to_item(self, row: tuple) -> Form:
        return Form(name=row[0], link=row[1])

    def _item_to_params(self, item: Form) -> tuple:
        return (item.name, item.link)


class FundingAccessor(ChildAccessor):
    """
    The one singular child: a program has zero or one funding record.

    The schema is not trusted to enforce this, so a read that finds
    more than one row raises FundingIntegrityError instead of picking one.
    """

    table = "funding"
    columns = ("evergreen", "current_funding_level")

    def read(self, conn, program_id: int) -> Optional[Funding]:
        rows = super().read(conn, program_id)
        if len(rows) > 1:
            logger.error(
                f"Program {program_id} has {len(rows)} funding rows; expected at most one"
            )
            raise FundingIntegrityError(
                "More than one funding record stored for a program.",
                operation="read_funding",
                program_id=program_id,
                row_count=len(rows),
            )
        return rows[0] if rows else None

    def write(self, conn, program_id: int, funding: Optional[Funding]) -> int:
        if funding is None:
            return 0
        return super().write(conn, program_id, [funding])

    def _row_to_item(self, row: tuple) -> Funding:
        return Funding(evergreen=row[0], current_funding_level=row[1])

    def _item_to_params(self, item: Funding) -> tuple:
        return (item.evergreen, item.current_funding_level)


class ProgramDetailAccessor(ChildAccessor):
    table = "program_details"
    columns = ("eligibility", "program", "renewal", "income")

    def _row_to_item(self, row: tuple) -> ProgramDetail:
        return ProgramDetail(
            eligibility=row[0],
            program=row[1],
            renewal=row[2],
            income=row[3],
        )

    def _item_to_params(self, item: ProgramDetail) -> tuple:
        return (item.eligibility, item.program, item.renewal, item.income)
