"""Core domain models for the verification pipeline.

Records and match results are immutable dataclasses owned by the store;
the analysis run is the only mutable state and is advanced by the matcher.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

COMPARED_FIELDS: tuple[str, ...] = ("name", "email", "company", "position")


class MatchTier(str, Enum):
    """Classification of a record by how many compared fields agree."""
    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


class RunStatus(str, Enum):
    """Analysis run lifecycle."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETE, RunStatus.FAILED, RunStatus.CANCELLED)


def tier_for_count(agreement_count: int) -> MatchTier:
    """Map an agreement count (0-4) to its tier."""
    if not 0 <= agreement_count <= len(COMPARED_FIELDS):
        raise ValueError(f"agreement_count out of range: {agreement_count}")
    if agreement_count == len(COMPARED_FIELDS):
        return MatchTier.EXACT
    if agreement_count >= 2:
        return MatchTier.PARTIAL
    return MatchTier.NONE


def new_record_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EmployeeRecord:
    """One validated spreadsheet row."""
    id: str
    name: str
    email: str
    company: str
    position: str
    contact: str | None = None
    address: str | None = None
    date_of_birth: str | None = None
    row_number: int | None = None


@dataclass(frozen=True)
class CandidateProfile:
    """Fields returned by the people-data API for a lookup."""
    name: str
    email: str
    company: str
    position: str


@dataclass(frozen=True)
class MatchResult:
    """Outcome of comparing one record against its looked-up candidate.

    ``agreement_count`` and ``tier`` are derived from the four flags and
    cannot be set directly.
    """
    record_id: str
    candidate: CandidateProfile | None
    name_match: bool = False
    email_match: bool = False
    company_match: bool = False
    position_match: bool = False
    error: str | None = None
    checked_at: datetime = field(default_factory=utcnow)

    @property
    def flags(self) -> dict[str, bool]:
        return {name: getattr(self, f"{name}_match") for name in COMPARED_FIELDS}

    @property
    def agreement_count(self) -> int:
        return sum(self.flags.values())

    @property
    def tier(self) -> MatchTier:
        return tier_for_count(self.agreement_count)


@dataclass
class AnalysisRun:
    """Progress of the single active analysis."""
    run_id: str = field(default_factory=new_record_id)
    status: RunStatus = RunStatus.PENDING
    processed: int = 0
    total: int = 0
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    cancel_requested: bool = False


@dataclass(frozen=True)
class RowWarning:
    """A spreadsheet row excluded during ingestion."""
    row_number: int
    reason: str
    missing_fields: tuple[str, ...] = ()
