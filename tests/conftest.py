from contextlib import contextmanager
from unittest.mock import patch

import pytest

from models.program import (
    Benefit,
    CopayProgram,
    Form,
    Funding,
    ProgramDetail,
    Requirement,
)
from repositories.program_repo import ProgramRepository
from tests.fakes import FakeDatabase


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def repo(database):
    """ProgramRepository wired to the in-memory database."""

    @contextmanager
    def fake_scoped_connection(dsn=None):
        conn = database.connect()
        try:
            yield conn
        finally:
            conn.close()

    with patch("repositories.program_repo.scoped_connection", fake_scoped_connection):
        yield ProgramRepository()


def make_program(program_id: int = 500, **overrides) -> CopayProgram:
    values = dict(
        program_id=program_id,
        program_name="Test Copay Program",
        program_type="Coupon",
        coverage_eligibilities=["Commercially insured"],
        requirements=[
            Requirement(name="us_residency", value="true"),
            Requirement(name="minimum_age", value="18"),
        ],
        benefits=[
            Benefit(name="max_annual_savings", value="5000.00"),
            Benefit(name="min_out_of_pocket", value="0.00"),
        ],
        forms=[Form(name="Enrollment Form", link="https://example.com/form")],
        funding=Funding(evergreen="true", current_funding_level="Data Not Available"),
        details=[
            ProgramDetail(
                eligibility="Patient must have commercial insurance",
                program="Patients may pay as little as $0",
                renewal="Automatically re-enrolled every January 1st",
                income="Not required",
            )
        ],
    )
    values.update(overrides)
    return CopayProgram(**values)


@pytest.fixture
def program():
    return make_program()
