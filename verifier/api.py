"""FastAPI app with upload, analysis, dashboard and export endpoints.

Wires the ingestion, matching and reporting pipelines to HTTP with proper
error handling. All state lives in the in-memory store.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Query, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from . import models
from .config import settings
from .logging_config import setup_logging
from .lookup import PeopleDataClient, build_lookup_client
from .middleware import RequestLoggingMiddleware
from .parsers import FileTooLarge, UploadValidationError
from .pipelines.ingest import ingest_upload
from .pipelines.matching import ConflictError, cancel_analysis, run_analysis, start_analysis
from .pipelines.reporting import (
    RecordView,
    ReportError,
    export_csv,
    export_filename,
    list_records,
    parse_tier,
    summarize,
)
from .store import RecordStore, get_store

logger = logging.getLogger(__name__)


# Pydantic response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class RowWarningDTO(BaseModel):
    """Rejected row."""
    row_number: int
    reason: str
    missing_fields: list[str] = Field(default_factory=list)


class UploadResponse(BaseModel):
    """Upload response."""
    status: str
    filename: str
    record_count: int
    total_rows: int
    column_map: dict[str, str]
    warnings: list[RowWarningDTO] = Field(default_factory=list)
    message: str


class RunStatusResponse(BaseModel):
    """Analysis progress."""
    run_id: str
    status: models.RunStatus
    processed: int
    total: int
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class CandidateDTO(BaseModel):
    """Fields returned by the people-data API."""
    name: str
    email: str
    company: str
    position: str


class MatchResultDTO(BaseModel):
    """Comparison outcome for one record."""
    tier: models.MatchTier
    agreement_count: int
    name_match: bool
    email_match: bool
    company_match: bool
    position_match: bool
    candidate: CandidateDTO | None = None
    error: str | None = None
    checked_at: datetime


class RecordDTO(BaseModel):
    """Employee record with its match result."""
    id: str
    row_number: int | None = None
    name: str
    email: str
    company: str
    position: str
    contact: str | None = None
    address: str | None = None
    date_of_birth: str | None = None
    tier: str
    result: MatchResultDTO | None = None


class RecordListResponse(BaseModel):
    """Filtered record listing."""
    count: int
    records: list[RecordDTO]


class SummaryResponse(BaseModel):
    """Dashboard counts."""
    total: int
    exact: int
    partial: int
    none: int
    pending: int
    match_rate: float
    run: RunStatusResponse


def run_to_dto(run: models.AnalysisRun) -> RunStatusResponse:
    return RunStatusResponse(
        run_id=run.run_id,
        status=run.status,
        processed=run.processed,
        total=run.total,
        error=run.error,
        started_at=run.started_at,
        finished_at=run.finished_at,
    )


def view_to_dto(view: RecordView) -> RecordDTO:
    record, result = view.record, view.result
    result_dto = None
    if result is not None:
        candidate = result.candidate
        result_dto = MatchResultDTO(
            tier=result.tier,
            agreement_count=result.agreement_count,
            name_match=result.name_match,
            email_match=result.email_match,
            company_match=result.company_match,
            position_match=result.position_match,
            candidate=CandidateDTO(
                name=candidate.name,
                email=candidate.email,
                company=candidate.company,
                position=candidate.position,
            ) if candidate else None,
            error=result.error,
            checked_at=result.checked_at,
        )
    return RecordDTO(
        id=record.id,
        row_number=record.row_number,
        name=record.name,
        email=record.email,
        company=record.company,
        position=record.position,
        contact=record.contact,
        address=record.address,
        date_of_birth=record.date_of_birth,
        tier=view.tier,
        result=result_dto,
    )


@lru_cache(maxsize=1)
def get_lookup_client() -> PeopleDataClient:
    """Configured people-data client, shared across requests."""
    return build_lookup_client(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info(f"{settings.app_name} v{settings.version} starting up")

    yield

    # Shutdown
    if get_lookup_client.cache_info().currsize:
        await get_lookup_client().aclose()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Upload employee spreadsheets and verify them against a people-data API",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(UploadValidationError)
async def upload_validation_error_handler(request, exc: UploadValidationError):
    """Handle rejected uploads."""
    logger.warning(f"Upload rejected ({exc.code}): {exc}")
    code = (
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        if isinstance(exc, FileTooLarge)
        else status.HTTP_400_BAD_REQUEST
    )
    return JSONResponse(
        status_code=code,
        content=ErrorResponse(error=exc.code, detail=str(exc)).model_dump(),
    )


@app.exception_handler(ConflictError)
async def conflict_error_handler(request, exc: ConflictError):
    """Handle operations that clash with the analysis run."""
    logger.warning(f"Conflict: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=ErrorResponse(error="conflict", detail=str(exc)).model_dump(),
    )


@app.exception_handler(ReportError)
async def report_error_handler(request, exc: ReportError):
    """Handle invalid filters and export selectors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="invalid_filter", detail=str(exc)).model_dump(),
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "upload": "/upload",
            "start_analysis": "/analysis/start",
            "analysis_status": "/analysis/status",
            "cancel_analysis": "/analysis/cancel",
            "records": "/records",
            "summary": "/records/summary",
            "export": "/export?tier=all",
            "docs": "/docs",
        },
    }


@app.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload(
    file: UploadFile = File(..., description="Employee spreadsheet (.xlsx, .xls or .csv)"),
    store: RecordStore = Depends(get_store),
) -> UploadResponse:
    """Upload an employee spreadsheet.

    This endpoint:
    1. Validates size and extension
    2. Detects the name/email/company/position columns
    3. Builds records, collecting warnings for incomplete rows
    4. Replaces the stored records and resets the analysis run

    Raises:
        HTTPException: For a missing filename or unexpected failures
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )

    if store.run.status == models.RunStatus.RUNNING:
        raise ConflictError("Cannot upload while an analysis is running")

    logger.info(f"Received upload: {file.filename}")

    try:
        content = await file.read()
        result = ingest_upload(content, file.filename)
        store.replace_records(result.records)

        return UploadResponse(
            status="success",
            filename=file.filename,
            record_count=len(result.records),
            total_rows=result.total_rows,
            column_map=result.column_map,
            warnings=[
                RowWarningDTO(
                    row_number=w.row_number,
                    reason=w.reason,
                    missing_fields=list(w.missing_fields),
                )
                for w in result.warnings
            ],
            message=f"Loaded {len(result.records)} records from {file.filename}",
        )

    except UploadValidationError:
        # Re-raise to be caught by exception handlers
        raise
    except Exception as e:
        logger.error(f"Unexpected error processing upload: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}",
        )
    finally:
        await file.close()


@app.post(
    "/analysis/start",
    response_model=RunStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start(
    background_tasks: BackgroundTasks,
    store: RecordStore = Depends(get_store),
    client: PeopleDataClient = Depends(get_lookup_client),
) -> RunStatusResponse:
    """Start verifying the stored records.

    The run proceeds in the background; poll ``/analysis/status``.
    """
    run = start_analysis(store)
    snapshot = run_to_dto(run)
    background_tasks.add_task(run_analysis, store, client)
    return snapshot


@app.get("/analysis/status", response_model=RunStatusResponse)
async def analysis_status(store: RecordStore = Depends(get_store)) -> RunStatusResponse:
    """Current run progress."""
    return run_to_dto(store.run)


@app.post(
    "/analysis/cancel",
    response_model=RunStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def cancel(store: RecordStore = Depends(get_store)) -> RunStatusResponse:
    """Stop the running analysis before its next group."""
    return run_to_dto(cancel_analysis(store))


@app.get("/records", response_model=RecordListResponse)
async def records(
    tier: str | None = Query(default=None, description="exact, partial, none, pending or all"),
    q: str | None = Query(default=None, max_length=200, description="Search name, email, company, position"),
    store: RecordStore = Depends(get_store),
) -> RecordListResponse:
    """List records with their match results."""
    views = list_records(store, tier=tier, query=q)
    return RecordListResponse(count=len(views), records=[view_to_dto(v) for v in views])


@app.get("/records/summary", response_model=SummaryResponse)
async def records_summary(store: RecordStore = Depends(get_store)) -> SummaryResponse:
    """Dashboard counts by tier."""
    summary = summarize(store)
    return SummaryResponse(
        total=summary.total,
        exact=summary.exact,
        partial=summary.partial,
        none=summary.none,
        pending=summary.pending,
        match_rate=summary.match_rate,
        run=run_to_dto(store.run),
    )


@app.get("/records/{record_id}", response_model=RecordDTO)
async def record_detail(record_id: str, store: RecordStore = Depends(get_store)) -> RecordDTO:
    """One record with its match result."""
    record = store.get(record_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Record {record_id} not found",
        )
    return view_to_dto(RecordView(record=record, result=store.get_result(record_id)))


@app.get("/export")
async def export(
    tier: str = Query(default="all", description="exact, partial, none or all"),
    store: RecordStore = Depends(get_store),
) -> Response:
    """Download records of one tier as CSV."""
    selector = parse_tier(tier, allow_all=True) or "all"
    body = export_csv(store, selector)
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(selector)}"'},
    )
