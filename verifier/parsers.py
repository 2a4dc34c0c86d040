"""Spreadsheet parsing utilities.

Supports CSV and Excel (.xlsx via openpyxl, legacy .xls via xlrd). Every
cell is read as text so identifiers such as phone numbers keep their
leading zeros.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath

import pandas as pd

from .config import settings

logger = logging.getLogger(__name__)


class FileType(str, Enum):
    """Supported file types."""
    CSV = "csv"
    XLSX = "xlsx"
    XLS = "xls"
    UNKNOWN = "unknown"


class UploadValidationError(Exception):
    """Base class for user-correctable upload problems."""
    code = "validation_error"


class UnsupportedFormat(UploadValidationError):
    """Raised when the file extension is not on the allow-list."""
    code = "unsupported_format"


class FileTooLarge(UploadValidationError):
    """Raised when the upload exceeds the size ceiling."""
    code = "file_too_large"


class ParseError(UploadValidationError):
    """Raised when an allowed file cannot be read as a table."""
    code = "parse_error"


def file_extension(filename: str) -> str:
    """Return the lower-cased extension including the dot, or ''."""
    return PurePath(filename).suffix.lower()


def detect_file_type(filename: str) -> FileType:
    """Detect file type from the filename extension."""
    ext = file_extension(filename)
    if ext == ".csv":
        return FileType.CSV
    elif ext == ".xlsx":
        return FileType.XLSX
    elif ext == ".xls":
        return FileType.XLS
    return FileType.UNKNOWN


def validate_upload(content: bytes, filename: str) -> FileType:
    """Check the size ceiling and extension allow-list.

    Raises:
        FileTooLarge: If ``content`` exceeds ``UPLOAD_MAX_SIZE_BYTES``
        UnsupportedFormat: If the extension is not allowed
    """
    max_size = settings.upload.max_size_bytes
    if len(content) > max_size:
        raise FileTooLarge(
            f"File is {len(content)} bytes; the maximum upload size is {max_size} bytes"
        )

    allowed = [ext.lower() for ext in settings.upload.allowed_extensions]
    ext = file_extension(filename)
    file_type = detect_file_type(filename)
    if ext not in allowed or file_type == FileType.UNKNOWN:
        raise UnsupportedFormat(
            f"Unsupported file type '{ext or filename}'. Allowed: {', '.join(allowed)}"
        )
    return file_type


# First cell of a row the CSV reader flagged as having too many fields;
# the original field count follows the marker.
_MALFORMED_MARKER = "\x00malformed:"


@dataclass
class MalformedRow:
    """A CSV line with more fields than the header row."""
    row_number: int
    field_count: int


@dataclass
class ParsedSheet:
    """Parsed spreadsheet.

    ``frame`` is indexed by 1-based sheet row number (the header is row 1),
    so callers can report positions even when rows were dropped.
    """
    frame: pd.DataFrame
    malformed_rows: list[MalformedRow] = field(default_factory=list)

    @property
    def expected_fields(self) -> int:
        return len(self.frame.columns)


def _flag_malformed(fields: list[str]) -> list[str]:
    # pandas pads the returned one-cell row, keeping its position in the frame
    return [f"{_MALFORMED_MARKER}{len(fields)}"]


def _dedupe_headers(headers) -> list[str]:
    """Suffix repeated header names the way pandas does (``Email``, ``Email.1``)."""
    seen: dict[str, int] = {}
    names = []
    for header in headers:
        name = "" if pd.isna(header) else str(header)
        if name in seen:
            seen[name] += 1
            names.append(f"{name}.{seen[name]}")
        else:
            seen[name] = 0
            names.append(name)
    return names


def _sheet_from_raw(raw: pd.DataFrame, filename: str) -> ParsedSheet:
    """Promote the first raw row to the header and split off malformed rows."""
    if raw.empty:
        raise ParseError(f"{filename} has no header row")

    body = raw.iloc[1:].copy()
    body.columns = _dedupe_headers(raw.iloc[0].tolist())
    # raw row 0 is sheet row 1
    body.index = body.index + 1

    first = body.iloc[:, 0].fillna("").astype(str)
    flagged = first.str.startswith(_MALFORMED_MARKER)
    malformed = [
        MalformedRow(row_number=int(idx), field_count=int(value[len(_MALFORMED_MARKER):]))
        for idx, value in first[flagged].items()
    ]
    if malformed:
        logger.warning(
            f"{filename}: {len(malformed)} row(s) have more fields than the header "
            f"(rows {', '.join(str(m.row_number) for m in malformed)})"
        )
    return ParsedSheet(frame=body[~flagged], malformed_rows=malformed)


def parse_csv(content: bytes, filename: str) -> ParsedSheet:
    """Parse CSV bytes into a string-typed sheet.

    UTF-8 (with or without BOM) is tried first, then latin-1 for files
    exported by older spreadsheet tools. The header row fixes the width:
    a line with more fields (typically an unquoted comma in a value) is
    reported as malformed instead of being shifted into the wrong columns.
    Blank lines are kept so row numbers match the file.

    Raises:
        ParseError: If CSV parsing fails
    """
    last_error: Exception | None = None
    for encoding in ("utf-8-sig", "latin-1"):
        try:
            # header=None keeps pandas from treating a wide first data row
            # as an implicit index column; the header is promoted afterwards
            raw = pd.read_csv(
                io.BytesIO(content),
                header=None,
                dtype=str,
                keep_default_na=False,
                encoding=encoding,
                skipinitialspace=True,
                skip_blank_lines=False,
                engine="python",
                on_bad_lines=_flag_malformed,
            )
        except UnicodeDecodeError as e:
            last_error = e
            logger.debug(f"{filename}: {encoding} decoding failed, trying next encoding")
            continue
        except pd.errors.EmptyDataError as e:
            raise ParseError(f"{filename} is empty") from e
        except (pd.errors.ParserError, ValueError) as e:
            logger.error(f"CSV parsing failed: {e}")
            raise ParseError(f"Failed to parse CSV: {e}") from e
        return _sheet_from_raw(raw, filename)

    raise ParseError(f"Failed to decode CSV: {last_error}")


def parse_excel(content: bytes, filename: str, file_type: FileType, sheet_name: str | int = 0) -> ParsedSheet:
    """Parse the first sheet of an Excel workbook into a string-typed sheet.

    Raises:
        ParseError: If Excel parsing fails
    """
    engine = "openpyxl" if file_type == FileType.XLSX else "xlrd"
    try:
        df = pd.read_excel(
            io.BytesIO(content),
            sheet_name=sheet_name,
            engine=engine,
            dtype=str,
            keep_default_na=False,
        )
    except Exception as e:
        logger.error(f"Excel parsing failed for {filename}: {e}")
        raise ParseError(f"Failed to parse Excel workbook: {e}") from e

    df.index = pd.RangeIndex(2, len(df) + 2)
    return ParsedSheet(frame=df)


def parse_file(content: bytes, filename: str) -> ParsedSheet:
    """Validate and parse an uploaded spreadsheet.

    Args:
        content: Raw file bytes
        filename: Original filename (used for the extension)

    Returns:
        ParsedSheet whose frame columns are the header row and whose cells
        are strings

    Raises:
        UploadValidationError: If the file is too large, of an unsupported
            type, or cannot be parsed
    """
    file_type = validate_upload(content, filename)

    if not content:
        raise ParseError(f"{filename} is empty")

    if file_type == FileType.CSV:
        sheet = parse_csv(content, filename)
    else:
        sheet = parse_excel(content, filename, file_type)

    df = sheet.frame
    if len(df.columns) == 0:
        raise ParseError(f"{filename} has no header row")
    if df.empty and not sheet.malformed_rows:
        raise ParseError(f"{filename} contains no data rows")

    logger.info(f"Parsed {filename} with {len(df)} rows and {len(df.columns)} columns")
    return sheet
