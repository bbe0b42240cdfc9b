"""
models/program.py
-----------------
Domain model for copay (patient assistance) programs.

A CopayProgram is the aggregate root; the six child collections below
are owned by it and stored in their own tables keyed by program_id.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class Requirement:
    """One eligibility rule, e.g. ``minimum_age`` -> ``18``."""
    name: str
    value: str


@dataclass
class Benefit:
    """
    A monetary or policy benefit, e.g. ``max_annual_savings`` -> ``5000.00``.
    Amounts are kept as strings; currency symbols are stripped upstream.
    """
    name: str
    value: str


@dataclass
class Form:
    """A named document link (enrollment form, etc.)."""
    name: str
    link: str


@dataclass
class Funding:
    """
    Funding status of a program. At most one per program.

    Attributes:
        evergreen: The string 'true' or 'false'.
        current_funding_level: Free-text label, e.g. 'Data Not Available'.
    """
    evergreen: str  # 'true' | 'false'
    current_funding_level: str

    def is_evergreen(self) -> bool:
        """Returns True if the program is funded on an ongoing basis."""
        return self.evergreen.strip().lower() == "true"


@dataclass
class ProgramDetail:
    """Narrative text describing eligibility, the program, renewal and income rules."""
    eligibility: str
    program: str
    renewal: str
    income: str


@dataclass
class CopayProgram:
    """
    Represents a copay program and everything attached to it.

    Attributes:
        program_id: Caller-assigned identifier; never changes once stored.
        program_name: Display name.
        program_type: Free-form category tag (e.g., 'Coupon').
        coverage_eligibilities: Insurance categories the program accepts.
        requirements: Eligibility rules as name/value pairs.
        benefits: Benefits as name/value pairs.
        forms: Enrollment and other documents.
        funding: Funding record, or None when the program has none.
        details: Narrative detail records.
    """
    program_id: int
    program_name: str
    program_type: str
    coverage_eligibilities: list[str] = field(default_factory=list)
    requirements: list[Requirement] = field(default_factory=list)
    benefits: list[Benefit] = field(default_factory=list)
    forms: list[Form] = field(default_factory=list)
    funding: Optional[Funding] = None
    details: list[ProgramDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to plain JSON-compatible types (snake_case keys)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CopayProgram":
        """Build a program from the shape produced by `to_dict`."""
        funding = data.get("funding")
        return cls(
            program_id=int(data["program_id"]),
            program_name=data["program_name"],
            program_type=data["program_type"],
            coverage_eligibilities=list(data.get("coverage_eligibilities") or []),
            requirements=[Requirement(**r) for r in data.get("requirements") or []],
            benefits=[Benefit(**b) for b in data.get("benefits") or []],
            forms=[Form(**f) for f in data.get("forms") or []],
            funding=Funding(**funding) if funding else None,
            details=[ProgramDetail(**d) for d in data.get("details") or []],
        )

    def __str__(self) -> str:
        return f"#{self.program_id} {self.program_name} ({self.program_type})"
