"""Ingestion pipeline: uploaded spreadsheet -> validated employee records.

Reusable from both the upload endpoint and offline scripts; the caller
decides what to do with the records (normally ``store.replace_records``).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pandas as pd

from .. import models
from ..columns import OPTIONAL_ROLES, REQUIRED_ROLES, HeaderDetector
from ..parsers import MalformedRow, ParsedSheet, parse_file
from .normalization import clean_cell, normalize_date

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Records produced from one upload plus what was rejected."""
    records: list[models.EmployeeRecord] = field(default_factory=list)
    warnings: list[models.RowWarning] = field(default_factory=list)
    column_map: dict[str, str] = field(default_factory=dict)
    total_rows: int = 0


def build_record(
    row: pd.Series,
    column_map: dict[str, str],
    row_number: int,
) -> models.EmployeeRecord | models.RowWarning | None:
    """Convert one DataFrame row.

    Returns:
        An EmployeeRecord, a RowWarning when required values are missing,
        or None for a completely blank row
    """
    values = {role: clean_cell(row[header]) for role, header in column_map.items()}

    if not any(values.values()):
        return None

    missing = tuple(role for role in REQUIRED_ROLES if not values.get(role))
    if missing:
        return models.RowWarning(
            row_number=row_number,
            reason=f"Missing required value(s): {', '.join(missing)}",
            missing_fields=missing,
        )

    optional = {role: values.get(role) or None for role in OPTIONAL_ROLES}
    if optional["date_of_birth"]:
        optional["date_of_birth"] = normalize_date(optional["date_of_birth"])

    return models.EmployeeRecord(
        id=models.new_record_id(),
        name=values["name"],
        email=values["email"],
        company=values["company"],
        position=values["position"],
        row_number=row_number,
        **optional,
    )


def malformed_warning(row: MalformedRow, expected_fields: int) -> models.RowWarning:
    return models.RowWarning(
        row_number=row.row_number,
        reason=(
            f"Row has {row.field_count} fields but the header has {expected_fields}; "
            "quote values that contain commas"
        ),
    )


def ingest_sheet(sheet: ParsedSheet, detector: HeaderDetector | None = None) -> IngestResult:
    """Detect column roles and build records from a parsed sheet.

    Row numbers come from the frame index, which holds sheet positions.

    Raises:
        MissingRequiredColumns: If a required role has no column
    """
    df = sheet.frame
    detector = detector or HeaderDetector()
    column_map = detector.detect(df.columns)
    result = IngestResult(
        column_map=column_map,
        total_rows=len(df) + len(sheet.malformed_rows),
    )

    for row_number, row in df.iterrows():
        built = build_record(row, column_map, row_number=int(row_number))
        if built is None:
            continue
        if isinstance(built, models.RowWarning):
            result.warnings.append(built)
        else:
            result.records.append(built)

    if sheet.malformed_rows:
        result.warnings.extend(
            malformed_warning(row, sheet.expected_fields) for row in sheet.malformed_rows
        )
        result.warnings.sort(key=lambda w: w.row_number)

    logger.info(
        f"Ingested {len(result.records)} records from {result.total_rows} rows "
        f"({len(result.warnings)} rejected)"
    )
    return result


def ingest_upload(content: bytes, filename: str) -> IngestResult:
    """Parse an uploaded file and return its employee records.

    Args:
        content: Raw file bytes
        filename: Original filename; its extension selects the parser

    Returns:
        IngestResult with valid records and per-row warnings

    Raises:
        UnsupportedFormat, FileTooLarge, ParseError, MissingRequiredColumns
    """
    logger.info(f"Ingesting upload {filename} ({len(content)} bytes)")
    sheet = parse_file(content, filename)
    return ingest_sheet(sheet)
