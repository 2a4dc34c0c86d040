"""Matching pipeline: stored records -> people-data lookups -> match tiers.

Records are processed in fixed-size groups. Lookups within a group run
concurrently and their results are written to the store only once the
whole group has settled; a cooperative pause separates groups so status
polls are served while a run is in progress.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterator, Sequence

from .. import models
from ..config import settings
from ..lookup import AuthError, LookupFailure, PeopleDataClient, ServiceUnavailable, sanitize_message
from ..store import RecordStore
from .normalization import normalize_for_comparison

logger = logging.getLogger(__name__)


class ConflictError(Exception):
    """Raised when an operation clashes with the state of the analysis run."""


class RunAborted(Exception):
    """Internal signal: a fatal lookup error ended the run."""


def _redact(message: str) -> str:
    """Mask the configured API key in text that ends up in the store."""
    return sanitize_message(message, settings.lookup.api_key.get_secret_value())


def compare_fields(
    record: models.EmployeeRecord,
    candidate: models.CandidateProfile,
) -> dict[str, bool]:
    """Field-by-field equality across name, email, company and position.

    Comparison is case-insensitive and whitespace-normalized. A field that is
    empty on either side never counts as agreement.
    """
    flags = {}
    for name in models.COMPARED_FIELDS:
        ours = normalize_for_comparison(getattr(record, name))
        theirs = normalize_for_comparison(getattr(candidate, name))
        flags[name] = bool(ours) and ours == theirs
    return flags


def build_match_result(
    record: models.EmployeeRecord,
    candidate: models.CandidateProfile,
) -> models.MatchResult:
    flags = compare_fields(record, candidate)
    return models.MatchResult(
        record_id=record.id,
        candidate=candidate,
        **{f"{name}_match": agreed for name, agreed in flags.items()},
    )


def failed_result(record: models.EmployeeRecord, reason: str) -> models.MatchResult:
    """Zero-agreement result for a record whose lookup did not succeed."""
    return models.MatchResult(record_id=record.id, candidate=None, error=reason)


def chunked(records: Sequence[models.EmployeeRecord], size: int) -> Iterator[Sequence[models.EmployeeRecord]]:
    for start in range(0, len(records), size):
        yield records[start:start + size]


def start_analysis(store: RecordStore) -> models.AnalysisRun:
    """Claim a fresh run over the stored records.

    The run is marked running before any lookup is scheduled so a second
    start request arriving in between is rejected.

    Raises:
        ConflictError: If a run is already in progress or nothing is stored
    """
    run = store.run
    if run.status == models.RunStatus.RUNNING:
        raise ConflictError(f"Analysis {run.run_id} is already running ({run.processed}/{run.total})")

    records = store.list()
    if not records:
        raise ConflictError("No records to analyze. Upload a file first.")

    store.clear_results()
    store.reset_run(total=len(records))
    run = store.update_run_status(models.RunStatus.RUNNING, started_at=models.utcnow())
    logger.info(f"Analysis {run.run_id} started for {run.total} records")
    return run


def cancel_analysis(store: RecordStore) -> models.AnalysisRun:
    """Ask the running analysis to stop before its next group.

    Raises:
        ConflictError: If no analysis is running
    """
    run = store.run
    if run.status != models.RunStatus.RUNNING:
        raise ConflictError(f"Analysis is not running (status: {run.status.value})")
    run = store.update_run_status(cancel_requested=True)
    logger.info(f"Cancellation requested for analysis {run.run_id}")
    return run


async def _lookup_one(
    client: PeopleDataClient,
    record: models.EmployeeRecord,
) -> models.MatchResult:
    """Look up and score one record; per-record failures become results."""
    try:
        candidate = await client.lookup(record.name, record.email, record.company, record.position)
    except LookupFailure as e:
        logger.warning(f"Lookup failed for record {record.id}: {e}")
        return failed_result(record, _redact(str(e)))
    return build_match_result(record, candidate)


async def _process_group(
    client: PeopleDataClient,
    group: Sequence[models.EmployeeRecord],
    *,
    concurrent: bool,
) -> list[models.MatchResult]:
    """Run a group's lookups and return their results in record order.

    Raises:
        RunAborted: If any lookup hit an auth or availability error
    """
    if concurrent:
        outcomes = await asyncio.gather(
            *(_lookup_one(client, record) for record in group),
            return_exceptions=True,
        )
    else:
        outcomes = []
        for record in group:
            try:
                outcomes.append(await _lookup_one(client, record))
            except Exception as e:
                outcomes.append(e)
                if isinstance(e, (AuthError, ServiceUnavailable)):
                    break

    results: list[models.MatchResult] = []
    for record, outcome in zip(group, outcomes):
        if isinstance(outcome, (AuthError, ServiceUnavailable)):
            raise RunAborted(_redact(str(outcome))) from outcome
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            message = _redact(str(outcome))
            logger.error(f"Unexpected lookup error for record {record.id}: {type(outcome).__name__}: {message}")
            results.append(failed_result(record, f"Unexpected error: {message}"))
        else:
            results.append(outcome)
    return results


async def run_analysis(
    store: RecordStore,
    client: PeopleDataClient,
    *,
    batch_size: int | None = None,
    batch_delay: float | None = None,
    concurrent: bool | None = None,
) -> models.AnalysisRun:
    """Drive the current run from pending to a terminal status.

    Args:
        store: Record store holding the records and the run
        client: People-data lookup client
        batch_size: Records per group (default from config)
        batch_delay: Seconds to pause between groups (default from config)
        concurrent: Dispatch a group's lookups concurrently (default from config)

    Returns:
        The run in its terminal state
    """
    batch_size = batch_size or settings.matching.batch_size
    batch_delay = settings.matching.batch_delay_seconds if batch_delay is None else batch_delay
    concurrent = settings.matching.concurrent_lookups if concurrent is None else concurrent

    run = store.run
    if run.status.is_terminal:
        raise ConflictError(f"Analysis {run.run_id} already finished ({run.status.value})")
    run_id = run.run_id

    records = store.list()
    store.update_run_status(
        models.RunStatus.RUNNING,
        total=len(records),
        error=None,
        started_at=run.started_at or models.utcnow(),
    )
    logger.info(f"Analysis {run_id} running: {len(records)} records, batch size {batch_size}")

    processed = 0
    try:
        for index, group in enumerate(chunked(records, batch_size)):
            if index and batch_delay:
                await asyncio.sleep(batch_delay)
            if store.run.cancel_requested:
                break

            results = await _process_group(client, group, concurrent=concurrent)

            if store.run.cancel_requested:
                logger.info(f"Discarding {len(results)} in-flight results for cancelled run {run_id}")
                break
            for result in results:
                store.update_result(result.record_id, result)
            processed += len(group)
            store.update_run_status(processed=processed)
            logger.debug(f"Analysis {run_id}: {processed}/{len(records)} processed")

    except RunAborted as e:
        logger.error(f"Analysis {run_id} failed: {e}")
        store.update_run_status(models.RunStatus.FAILED, error=str(e))
    except Exception as e:
        message = _redact(str(e))
        logger.error(f"Analysis {run_id} crashed: {type(e).__name__}: {message}")
        store.update_run_status(models.RunStatus.FAILED, error=f"Analysis failed: {message}")
    else:
        if store.run.cancel_requested:
            logger.info(f"Analysis {run_id} cancelled at {processed}/{len(records)}")
            store.update_run_status(models.RunStatus.CANCELLED, error="Cancelled by user")
        else:
            logger.info(f"Analysis {run_id} complete: {processed} records")
            store.update_run_status(models.RunStatus.COMPLETE)

    return store.update_run_status(finished_at=models.utcnow())
