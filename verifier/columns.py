"""Column role detection from spreadsheet headers.

Maps each header to a semantic role (name, email, company, position and the
optional contact, address and date of birth) using a synonym table with a
rapidfuzz fallback for near-miss spellings.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from rapidfuzz import fuzz, process

from .config import settings
from .parsers import UploadValidationError

logger = logging.getLogger(__name__)

REQUIRED_ROLES: tuple[str, ...] = ("name", "email", "company", "position")
OPTIONAL_ROLES: tuple[str, ...] = ("contact", "address", "date_of_birth")


@dataclass
class ColumnRole:
    """A semantic column role with its header synonyms."""
    role: str
    synonyms: list[str] = field(default_factory=list)
    required: bool = True


DEFAULT_ROLES: list[ColumnRole] = [
    ColumnRole("name", ["Name", "Full Name", "Employee Name", "First Name"]),
    ColumnRole("email", ["Email", "E-mail", "Email Address", "Work Email", "Mail"]),
    ColumnRole("company", ["Company", "Company Name", "Employer", "Organization", "Organisation"]),
    ColumnRole("position", ["Position", "Title", "Job Title", "Role", "Designation"]),
    ColumnRole(
        "contact",
        ["Contact", "Phone", "Phone Number", "Mobile", "Contact Number", "Telephone"],
        required=False,
    ),
    ColumnRole("address", ["Address", "Location", "Home Address"], required=False),
    ColumnRole(
        "date_of_birth",
        ["Date of Birth", "DOB", "Birth Date", "Birthday", "Date Of Birth"],
        required=False,
    ),
]


class MissingRequiredColumns(UploadValidationError):
    """Raised when one or more required roles have no matching header."""
    code = "missing_required_columns"

    def __init__(self, missing: Sequence[str], headers: Sequence[str] = ()) -> None:
        self.missing = list(missing)
        self.headers = list(headers)
        super().__init__(
            f"Missing required columns: {', '.join(self.missing)}. "
            f"Found headers: {', '.join(self.headers) or '(none)'}"
        )


def normalize_header(header: object) -> str:
    """Lower-case a header and collapse whitespace, underscores and hyphens."""
    text = str(header).strip().lower()
    text = re.sub(r"[\s_\-]+", " ", text)
    return text.strip()


class HeaderDetector:
    """Assigns spreadsheet columns to roles.

    Exact synonym matches are resolved first for every role; the fuzzy pass
    only considers roles and columns still unassigned. In both passes the
    leftmost qualifying column wins a role and a column serves one role only.
    """

    def __init__(
        self,
        roles: list[ColumnRole] | None = None,
        *,
        fuzzy_enabled: bool | None = None,
        fuzzy_threshold: int | None = None,
    ) -> None:
        self.roles = roles or DEFAULT_ROLES
        self.fuzzy_enabled = settings.headers.fuzzy_enabled if fuzzy_enabled is None else fuzzy_enabled
        self.fuzzy_threshold = settings.headers.fuzzy_threshold if fuzzy_threshold is None else fuzzy_threshold

        self._synonyms: dict[str, set[str]] = {
            r.role: {normalize_header(s) for s in r.synonyms} for r in self.roles
        }

    @property
    def required_roles(self) -> list[str]:
        return [r.role for r in self.roles if r.required]

    def detect(self, headers: Iterable[object]) -> dict[str, str]:
        """Return a mapping of role -> original header.

        Raises:
            MissingRequiredColumns: If any required role found no column
        """
        headers = [str(h) for h in headers]
        normalized = [normalize_header(h) for h in headers]
        assigned: dict[str, str] = {}
        used: set[int] = set()

        for role in self.roles:
            for idx, norm in enumerate(normalized):
                if idx not in used and norm in self._synonyms[role.role]:
                    assigned[role.role] = headers[idx]
                    used.add(idx)
                    break

        if self.fuzzy_enabled:
            for role in self.roles:
                if role.role in assigned:
                    continue
                idx = self._fuzzy_column(role.role, normalized, used)
                if idx is not None:
                    logger.info(f"Fuzzy-matched header '{headers[idx]}' to role '{role.role}'")
                    assigned[role.role] = headers[idx]
                    used.add(idx)

        missing = [r for r in self.required_roles if r not in assigned]
        if missing:
            raise MissingRequiredColumns(missing, headers)

        logger.debug(f"Detected column roles: {assigned}")
        return assigned

    def _fuzzy_column(self, role: str, normalized: list[str], used: set[int]) -> int | None:
        """Leftmost unused column scoring at or above the threshold."""
        choices = sorted(self._synonyms[role])
        for idx, norm in enumerate(normalized):
            if idx in used or not norm:
                continue
            best = process.extractOne(norm, choices, scorer=fuzz.ratio)
            if best is not None and best[1] >= self.fuzzy_threshold:
                return idx
        return None


def detect_columns(headers: Iterable[object]) -> dict[str, str]:
    """Detect column roles with the default synonym table."""
    return HeaderDetector().detect(headers)
