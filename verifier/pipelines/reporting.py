"""Reporting: dashboard listing, summary counts and CSV export."""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import date

import pandas as pd

from .. import models
from ..store import RecordStore

logger = logging.getLogger(__name__)

PENDING = "pending"
EXPORT_ALL = "all"

EXPORT_COLUMNS: list[str] = [
    "id",
    "row_number",
    "name",
    "email",
    "company",
    "position",
    "contact",
    "address",
    "date_of_birth",
    "tier",
    "agreement_count",
    "api_name",
    "api_email",
    "api_company",
    "api_position",
    "name_match",
    "email_match",
    "company_match",
    "position_match",
    "error",
]


class ReportError(Exception):
    """Raised for an invalid filter or export selector."""


@dataclass(frozen=True)
class RecordView:
    """A record joined with its match result, if analyzed."""
    record: models.EmployeeRecord
    result: models.MatchResult | None

    @property
    def tier(self) -> str:
        return self.result.tier.value if self.result else PENDING


@dataclass(frozen=True)
class Summary:
    """Dashboard counts."""
    total: int
    exact: int
    partial: int
    none: int
    pending: int

    @property
    def match_rate(self) -> float:
        analyzed = self.total - self.pending
        return round(self.exact / analyzed, 4) if analyzed else 0.0


def parse_tier(tier: str | None, *, allow_all: bool = False) -> str | None:
    """Validate a tier selector and return it lower-cased.

    Raises:
        ReportError: If the selector is not a known tier
    """
    if tier is None or tier == "":
        return None
    value = tier.strip().lower()
    allowed = [t.value for t in models.MatchTier] + [PENDING]
    if allow_all:
        allowed.append(EXPORT_ALL)
    if value not in allowed:
        raise ReportError(f"Unknown tier '{tier}'. Expected one of: {', '.join(allowed)}")
    return value


def _matches_query(record: models.EmployeeRecord, needle: str) -> bool:
    return any(needle in getattr(record, name).casefold() for name in models.COMPARED_FIELDS)


def list_records(
    store: RecordStore,
    tier: str | None = None,
    query: str | None = None,
) -> list[RecordView]:
    """Records with their results, optionally filtered.

    Args:
        store: Record store
        tier: Tier to keep (``exact``, ``partial``, ``none`` or ``pending``);
            ``all`` or None keeps every tier
        query: Case-insensitive substring of name, email, company or position

    Returns:
        Matching views in store order
    """
    tier = parse_tier(tier, allow_all=True)
    if tier == EXPORT_ALL:
        tier = None
    needle = query.strip().casefold() if query and query.strip() else None

    views = []
    for record in store.list():
        view = RecordView(record=record, result=store.get_result(record.id))
        if tier is not None and view.tier != tier:
            continue
        if needle is not None and not _matches_query(record, needle):
            continue
        views.append(view)
    return views


def summarize(store: RecordStore) -> Summary:
    counts = {t.value: 0 for t in models.MatchTier}
    pending = 0
    records = store.list()
    for record in records:
        result = store.get_result(record.id)
        if result is None:
            pending += 1
        else:
            counts[result.tier.value] += 1
    return Summary(
        total=len(records),
        exact=counts[models.MatchTier.EXACT.value],
        partial=counts[models.MatchTier.PARTIAL.value],
        none=counts[models.MatchTier.NONE.value],
        pending=pending,
    )


def export_row(view: RecordView) -> dict[str, object]:
    record, result = view.record, view.result
    candidate = result.candidate if result else None
    row: dict[str, object] = {
        "id": record.id,
        "row_number": record.row_number,
        "name": record.name,
        "email": record.email,
        "company": record.company,
        "position": record.position,
        "contact": record.contact or "",
        "address": record.address or "",
        "date_of_birth": record.date_of_birth or "",
        "tier": result.tier.value if result else PENDING,
        "agreement_count": result.agreement_count if result else "",
        "error": (result.error or "") if result else "",
    }
    for name in models.COMPARED_FIELDS:
        row[f"api_{name}"] = getattr(candidate, name) if candidate else ""
        row[f"{name}_match"] = result.flags[name] if result else ""
    return row


def export_csv(store: RecordStore, tier: str = EXPORT_ALL) -> str:
    """Serialize records of one tier (or all) to CSV text.

    Values containing commas, quotes or newlines are quoted with embedded
    quotes doubled.

    Raises:
        ReportError: If ``tier`` is not a known selector
    """
    selector = parse_tier(tier, allow_all=True) or EXPORT_ALL
    views = list_records(store, tier=None if selector == EXPORT_ALL else selector)

    df = pd.DataFrame([export_row(v) for v in views], columns=EXPORT_COLUMNS)
    text = df.to_csv(index=False, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    logger.info(f"Exported {len(df)} records (tier={selector})")
    return text


def export_filename(tier: str, today: date | None = None) -> str:
    today = today or date.today()
    return f"employee_verification_{tier}_{today:%Y%m%d}.csv"
