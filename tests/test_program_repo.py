"""
Tests for ProgramRepository against the in-memory database.

Covers:
1. Round trip of a full program (add then get_by_id)
2. Not-found on unknown ids
3. Replace supersedes every child table
4. Atomicity: a failing statement leaves no trace (add) or the prior state (update)
5. Statement order: root first on add, all deletes before any insert on update
6. Duplicate ids, replacing missing programs, funding integrity
7. Rollback failures and connection release
"""
from collections import Counter
from unittest.mock import MagicMock

import pytest
from psycopg2 import errors as pg_errors

from db.errors import (
    DuplicateProgramError,
    FundingIntegrityError,
    ProgramNotFoundError,
    RollbackError,
    StatementError,
)
from models.program import Benefit, Funding, Requirement
from repositories.program_repo import ProgramRepository
from tests.conftest import make_program

CHILD_TABLES = [
    "coverage_eligibilities",
    "requirements",
    "benefits",
    "forms",
    "funding",
    "program_details",
]


def _multiset(items):
    return Counter(repr(i) for i in items)


# =============================================================================
# READ
# =============================================================================

class TestGetById:

    def test_round_trip_returns_equal_program(self, repo, program):
        repo.add(program)

        loaded = repo.get_by_id(program.program_id)

        assert loaded is not None
        assert loaded.program_id == program.program_id
        assert loaded.program_name == program.program_name
        assert loaded.program_type == program.program_type
        assert _multiset(loaded.coverage_eligibilities) == _multiset(program.coverage_eligibilities)
        assert _multiset(loaded.requirements) == _multiset(program.requirements)
        assert _multiset(loaded.benefits) == _multiset(program.benefits)
        assert _multiset(loaded.forms) == _multiset(program.forms)
        assert loaded.funding == program.funding
        assert _multiset(loaded.details) == _multiset(program.details)

    def test_children_come_back_in_insertion_order(self, repo, program):
        repo.add(program)

        loaded = repo.get_by_id(program.program_id)

        assert loaded == program

    def test_unknown_id_returns_none(self, repo):
        assert repo.get_by_id(999999) is None

    def test_unknown_id_issues_only_the_root_query(self, repo, database):
        repo.get_by_id(999999)

        conn = database.connections[-1]
        assert len(conn.statements) == 1
        assert "FROM copay_programs" in conn.statements[0]

    def test_program_500_counts(self, repo):
        program = make_program(
            500,
            coverage_eligibilities=[],
            benefits=[Benefit(name="max_annual_savings", value="5000.00")],
        )
        repo.add(program)

        loaded = repo.get_by_id(500)

        assert len(loaded.requirements) == 2
        assert len(loaded.benefits) == 1
        assert len(loaded.forms) == 1
        assert loaded.funding is not None
        assert loaded.coverage_eligibilities == []
        assert len(loaded.details) == 1

    def test_program_without_children_has_empty_collections(self, repo):
        bare = make_program(
            42,
            coverage_eligibilities=[],
            requirements=[],
            benefits=[],
            forms=[],
            funding=None,
            details=[],
        )
        repo.add(bare)

        loaded = repo.get_by_id(42)

        assert loaded is not None
        assert loaded.funding is None
        assert loaded.requirements == []
        assert loaded.details == []

    def test_duplicate_coverage_labels_are_kept(self, repo):
        repo.add(make_program(7, coverage_eligibilities=["Medicare", "Medicare"]))

        assert repo.get_by_id(7).coverage_eligibilities == ["Medicare", "Medicare"]

    def test_reads_share_one_connection(self, repo, database, program):
        repo.add(program)
        connections_before = len(database.connections)

        repo.get_by_id(program.program_id)

        assert len(database.connections) == connections_before + 1
        assert len(database.connections[-1].statements) == 7

    def test_read_leaves_nothing_committed(self, repo, database, program):
        repo.add(program)

        repo.get_by_id(program.program_id)

        conn = database.connections[-1]
        assert conn.commits == 0
        assert conn.rollbacks == 1

    def test_multiple_funding_rows_raise_integrity_error(self, repo, database, program):
        repo.add(program)
        database.seed("funding", program.program_id, evergreen="false", current_funding_level="Low")

        with pytest.raises(FundingIntegrityError) as exc_info:
            repo.get_by_id(program.program_id)

        assert exc_info.value.row_count == 2
        assert exc_info.value.program_id == program.program_id

    def test_failing_child_query_raises_statement_error(self, repo, database, program):
        repo.add(program)
        database.fail_on("SELECT", "forms")

        with pytest.raises(StatementError) as exc_info:
            repo.get_by_id(program.program_id)

        assert exc_info.value.operation == "get_by_id"
        assert "server closed" not in str(exc_info.value)

    def test_exists(self, repo, program):
        assert repo.exists(program.program_id) is False
        repo.add(program)
        assert repo.exists(program.program_id) is True


# =============================================================================
# CREATE
# =============================================================================

class TestAdd:

    def test_returns_caller_assigned_id(self, repo, program):
        assert repo.add(program) == program.program_id

    def test_commits_once(self, repo, database, program):
        repo.add(program)

        conn = database.connections[-1]
        assert conn.commits == 1
        assert conn.rollbacks == 0

    def test_root_is_written_before_children(self, repo, database, program):
        repo.add(program)

        inserts = [s for s in database.connections[-1].statements if s.startswith("INSERT")]
        assert inserts[0].startswith("INSERT INTO copay_programs")
        tables = [s.split()[2] for s in inserts[1:]]
        assert tables == [
            "coverage_eligibilities",
            "requirements", "requirements",
            "benefits", "benefits",
            "forms",
            "funding",
            "program_details",
        ]

    def test_missing_funding_is_skipped(self, repo, database):
        repo.add(make_program(11, funding=None))

        assert database.rows("funding", 11) == []

    def test_failed_child_insert_leaves_nothing(self, repo, database, program):
        database.fail_on("INSERT", "benefits", skip=1)

        with pytest.raises(StatementError):
            repo.add(program)

        assert repo.get_by_id(program.program_id) is None
        for table in ["copay_programs"] + CHILD_TABLES:
            assert database.rows(table, program.program_id) == []

    def test_failed_last_child_insert_rolls_back(self, repo, database, program):
        database.fail_on("INSERT", "program_details")

        with pytest.raises(StatementError):
            repo.add(program)

        assert database.connections[-1].rollbacks == 1
        assert repo.get_by_id(program.program_id) is None

    def test_duplicate_id_is_rejected(self, repo, database, program):
        repo.add(program)
        other = make_program(program.program_id, program_name="Another program")

        with pytest.raises(DuplicateProgramError):
            repo.add(other)

        assert repo.get_by_id(program.program_id).program_name == program.program_name
        assert len(database.rows("requirements", program.program_id)) == 2

    def test_unique_violation_from_concurrent_insert_is_duplicate(self):
        cur = MagicMock()
        cur.fetchone.return_value = None
        cur.execute.side_effect = [None, pg_errors.UniqueViolation("duplicate key")]
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cur

        with pytest.raises(DuplicateProgramError):
            ProgramRepository._insert_root(conn, make_program(3))

    def test_commit_failure_is_statement_error(self, repo, database, program):
        original_connect = database.connect

        def connect_failing_commit():
            conn = original_connect()
            conn.fail_commit = True
            return conn

        database.connect = connect_failing_commit

        with pytest.raises(StatementError):
            repo.add(program)

        database.connect = original_connect
        assert repo.get_by_id(program.program_id) is None

    def test_rollback_failure_is_distinct_error(self, repo, database, program):
        original_connect = database.connect

        def connect_failing_rollback():
            conn = original_connect()
            conn.fail_rollback = True
            return conn

        database.connect = connect_failing_rollback
        database.fail_on("INSERT", "forms")

        with pytest.raises(RollbackError) as exc_info:
            repo.add(program)

        assert not isinstance(exc_info.value, StatementError)
        assert exc_info.value.operation == "add"

    def test_connection_closed_after_failure(self, repo, database, program):
        database.fail_on("INSERT", "requirements")

        with pytest.raises(StatementError):
            repo.add(program)

        assert all(conn.closed for conn in database.connections)


# =============================================================================
# UPDATE (replace)
# =============================================================================

class TestUpdate:

    def test_replaces_requirements_without_residue(self, repo, program):
        repo.add(program)
        replacement = make_program(
            program.program_id,
            requirements=[Requirement(name="minimum_age", value="21")],
        )

        repo.update(replacement)

        loaded = repo.get_by_id(program.program_id)
        assert loaded.requirements == [Requirement(name="minimum_age", value="21")]

    def test_updates_root_fields(self, repo, program):
        repo.add(program)
        replacement = make_program(
            program.program_id,
            program_name="Updated Program Name",
            program_type="Discount Card",
        )

        repo.update(replacement)

        loaded = repo.get_by_id(program.program_id)
        assert loaded.program_name == "Updated Program Name"
        assert loaded.program_type == "Discount Card"

    def test_funding_level_is_replaced_not_duplicated(self, repo, database):
        repo.add(make_program(501))
        replacement = make_program(
            501, funding=Funding(evergreen="true", current_funding_level="5 million")
        )

        repo.update(replacement)

        assert repo.get_by_id(501).funding.current_funding_level == "5 million"
        assert len(database.rows("funding", 501)) == 1

    def test_removing_funding_clears_it(self, repo):
        repo.add(make_program(502))

        repo.update(make_program(502, funding=None))

        assert repo.get_by_id(502).funding is None

    def test_all_deletes_precede_any_child_insert(self, repo, database, program):
        repo.add(program)

        repo.update(program)

        statements = database.connections[-1].statements
        assert statements[0].startswith("UPDATE copay_programs")
        deletes = [i for i, s in enumerate(statements) if s.startswith("DELETE")]
        inserts = [i for i, s in enumerate(statements) if s.startswith("INSERT")]
        assert len(deletes) == 6
        assert max(deletes) < min(inserts)
        assert [statements[i].split()[2] for i in deletes] == CHILD_TABLES

    def test_failed_reinsert_keeps_previous_state(self, repo, database, program):
        repo.add(program)
        before = repo.get_by_id(program.program_id)
        database.fail_on("INSERT", "forms")
        replacement = make_program(
            program.program_id,
            program_name="Half-written",
            requirements=[Requirement(name="minimum_age", value="65")],
        )

        with pytest.raises(StatementError):
            repo.update(replacement)

        assert repo.get_by_id(program.program_id) == before

    def test_failed_delete_keeps_previous_state(self, repo, database, program):
        repo.add(program)
        before = repo.get_by_id(program.program_id)
        database.fail_on("DELETE", "funding")

        with pytest.raises(StatementError):
            repo.update(make_program(program.program_id, benefits=[]))

        assert repo.get_by_id(program.program_id) == before

    def test_missing_program_raises_not_found(self, repo, database):
        with pytest.raises(ProgramNotFoundError):
            repo.update(make_program(404))

        assert database.rows("requirements", 404) == []
        assert database.connections[-1].rollbacks == 1

    def test_does_not_touch_other_programs(self, repo):
        repo.add(make_program(1))
        repo.add(make_program(2))

        repo.update(make_program(1, forms=[]))

        assert repo.get_by_id(1).forms == []
        assert len(repo.get_by_id(2).forms) == 1


# =============================================================================
# DELETE
# =============================================================================

class TestDelete:

    def test_removes_root_and_children(self, repo, database, program):
        repo.add(program)

        assert repo.delete(program.program_id) is True

        assert repo.get_by_id(program.program_id) is None
        for table in ["copay_programs"] + CHILD_TABLES:
            assert database.rows(table, program.program_id) == []

    def test_unknown_program_returns_false(self, repo):
        assert repo.delete(12345) is False

    def test_children_deleted_before_root(self, repo, database, program):
        repo.add(program)

        repo.delete(program.program_id)

        tables = [s.split()[2] for s in database.connections[-1].statements]
        assert tables == CHILD_TABLES + ["copay_programs"]

    def test_delete_children_reports_row_count(self, repo, database, program):
        repo.add(program)
        conn = database.connect()

        removed = repo.delete_children(conn, program.program_id)

        # 1 eligibility + 2 requirements + 2 benefits + 1 form + 1 funding + 1 detail
        assert removed == 8
        assert database.rows("requirements", program.program_id) != []
