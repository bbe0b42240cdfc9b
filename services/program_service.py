"""
services/program_service.py
----------------------------
Business logic for copay programs.

Two collaborators use the repository through this service:
    - ingestion: turns a raw copay-card record into a CopayProgram and stores it.
    - queries: fetch, replace and remove stored programs.

Storage failures are logged here with their context and re-raised as
ProgramServiceError, whose message never carries driver text or
connection details.
"""

from typing import Callable, Optional

from db.errors import DuplicateProgramError, ProgramNotFoundError, StorageError
from models.program import Benefit, CopayProgram, Form, Funding, ProgramDetail, Requirement
from repositories.program_repo import ProgramRepository
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PROGRAM_TYPE = "Coupon"
DEFAULT_FUNDING_LEVEL = "Data Not Available"
INCOME_NOT_REQUIRED = "Not required"

REQUIRED_FIELDS = (
    "ProgramID",
    "ProgramName",
    "CoverageEligibilities",
    "EligibilityDetails",
    "AnnualMax",
    "ProgramURL",
    "ProgramDetails",
    "AddRenewalDetails",
    "IncomeReq",
)

RequirementsParser = Callable[[str], list[Requirement]]


class ProgramServiceError(Exception):
    """Generic failure surfaced to callers of the service."""

    def __init__(self, message: str = "Operation failed."):
        super().__init__(message)


class InvalidProgramDataError(ProgramServiceError):
    """The raw copay-card record is missing fields or has malformed values."""
    pass


class ProgramAlreadyExistsError(ProgramServiceError):
    """A program with the same id is already stored."""
    pass


class UnknownProgramError(ProgramServiceError):
    """The program to replace does not exist."""
    pass


def _no_requirements(eligibility_text: str) -> list[Requirement]:
    """Fallback parser used when no eligibility parser is configured."""
    return []


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


class ProgramService:
    """Creates, fetches and replaces copay programs."""

    def __init__(
        self,
        program_repo: Optional[ProgramRepository] = None,
        requirements_parser: Optional[RequirementsParser] = None,
    ):
        self.program_repo = program_repo or ProgramRepository()
        self.requirements_parser = requirements_parser or _no_requirements

    # ── INGESTION ─────────────────────────────────────────

    def build_program(self, raw: dict) -> CopayProgram:
        """
        Map a raw copay-card record to a CopayProgram.

        Requirements come from the configured parser applied to the
        free-text ``EligibilityDetails``; everything else is copied or
        set to the standard defaults for a coupon program.

        Raises:
            InvalidProgramDataError: If a field is missing or malformed.
        """
        if not isinstance(raw, dict):
            raise InvalidProgramDataError("A copay-card record must be a JSON object.")
        missing = [key for key in REQUIRED_FIELDS if key not in raw]
        if missing:
            raise InvalidProgramDataError(f"Missing fields: {', '.join(missing)}")

        try:
            program_id = int(raw["ProgramID"])
        except (TypeError, ValueError):
            raise InvalidProgramDataError("ProgramID must be an integer.") from None

        coverage = raw["CoverageEligibilities"]
        if not isinstance(coverage, list) or not all(isinstance(c, str) for c in coverage):
            raise InvalidProgramDataError("CoverageEligibilities must be a list of strings.")

        eligibility_text = raw["EligibilityDetails"]
        income = INCOME_NOT_REQUIRED
        if _as_bool(raw["IncomeReq"]):
            income = raw.get("IncomeDetails")
            if not income:
                raise InvalidProgramDataError("IncomeDetails is required when IncomeReq is set.")

        return CopayProgram(
            program_id=program_id,
            program_name=raw["ProgramName"],
            program_type=DEFAULT_PROGRAM_TYPE,
            coverage_eligibilities=list(coverage),
            requirements=list(self.requirements_parser(eligibility_text)),
            benefits=[
                Benefit(name="max_annual_savings", value=str(raw["AnnualMax"]).replace("$", "").strip()),
                Benefit(name="min_out_of_pocket", value="0.00"),
            ],
            forms=[Form(name="Enrollment Form", link=raw["ProgramURL"])],
            funding=Funding(evergreen="true", current_funding_level=DEFAULT_FUNDING_LEVEL),
            details=[
                ProgramDetail(
                    eligibility=eligibility_text,
                    program=raw["ProgramDetails"],
                    renewal=raw["AddRenewalDetails"],
                    income=income,
                )
            ],
        )

    def ingest(self, raw: dict) -> CopayProgram:
        """Build a program from a raw record and store it."""
        program = self.build_program(raw)
        try:
            self.program_repo.add(program)
        except DuplicateProgramError as e:
            raise ProgramAlreadyExistsError(f"Program {program.program_id} already exists.") from e
        except StorageError as e:
            logger.error(f"Ingestion of program {program.program_id} failed: {type(e).__name__}")
            raise ProgramServiceError() from e
        return program

    # ── QUERIES ───────────────────────────────────────────

    def get_program(self, program_id: int) -> Optional[dict]:
        """
        Fetch a program as a plain dict.

        Returns:
            The program, or None if it does not exist.
        """
        try:
            program = self.program_repo.get_by_id(program_id)
        except StorageError as e:
            logger.error(f"Fetching program {program_id} failed: {type(e).__name__}")
            raise ProgramServiceError() from e
        return program.to_dict() if program else None

    def replace_program(self, program: CopayProgram) -> None:
        """Overwrite a stored program with ``program``."""
        try:
            self.program_repo.update(program)
        except ProgramNotFoundError as e:
            raise UnknownProgramError(f"Program {program.program_id} does not exist.") from e
        except StorageError as e:
            logger.error(f"Replacing program {program.program_id} failed: {type(e).__name__}")
            raise ProgramServiceError() from e

    def remove_program(self, program_id: int) -> bool:
        """Delete a program; returns False if it did not exist."""
        try:
            return self.program_repo.delete(program_id)
        except StorageError as e:
            logger.error(f"Removing program {program_id} failed: {type(e).__name__}")
            raise ProgramServiceError() from e
