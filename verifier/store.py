"""In-memory record store.

``RecordStore`` is the interface the pipelines depend on; ``InMemoryStore``
keeps everything in dicts for the lifetime of the process. Nothing is
persisted across restarts and there is no eviction or size bound.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from datetime import datetime
from typing import Iterable

from .models import AnalysisRun, EmployeeRecord, MatchResult, RunStatus

logger = logging.getLogger(__name__)

_UNSET = object()


class RecordStore(ABC):
    """Storage interface for records, match results and the analysis run."""

    @abstractmethod
    def put(self, record: EmployeeRecord) -> None:
        ...

    @abstractmethod
    def get(self, record_id: str) -> EmployeeRecord | None:
        ...

    @abstractmethod
    def list(self) -> list[EmployeeRecord]:
        ...

    @abstractmethod
    def update_result(self, record_id: str, result: MatchResult) -> None:
        ...

    @abstractmethod
    def get_result(self, record_id: str) -> MatchResult | None:
        ...

    @abstractmethod
    def clear_results(self) -> None:
        ...

    @property
    @abstractmethod
    def run(self) -> AnalysisRun:
        ...

    @abstractmethod
    def reset_run(self, total: int) -> AnalysisRun:
        ...

    @abstractmethod
    def update_run_status(
        self,
        status: RunStatus | None = None,
        *,
        processed: int | None = None,
        total: int | None = None,
        error: object = _UNSET,
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
        cancel_requested: bool | None = None,
    ) -> AnalysisRun:
        ...

    @abstractmethod
    def replace_records(self, records: Iterable[EmployeeRecord]) -> AnalysisRun:
        ...


class InMemoryStore(RecordStore):
    """Dict-backed store. Single writer at a time is assumed."""

    def __init__(self) -> None:
        self._records: dict[str, EmployeeRecord] = {}
        self._results: dict[str, MatchResult] = {}
        self._run = AnalysisRun()

    def put(self, record: EmployeeRecord) -> None:
        self._records[record.id] = record

    def get(self, record_id: str) -> EmployeeRecord | None:
        return self._records.get(record_id)

    def list(self) -> list[EmployeeRecord]:
        """Return all records in insertion order."""
        return list(self._records.values())

    def update_result(self, record_id: str, result: MatchResult) -> None:
        if record_id not in self._records:
            raise KeyError(record_id)
        self._results[record_id] = result

    def get_result(self, record_id: str) -> MatchResult | None:
        return self._results.get(record_id)

    def clear_results(self) -> None:
        self._results.clear()

    @property
    def run(self) -> AnalysisRun:
        return self._run

    def update_run_status(
        self,
        status: RunStatus | None = None,
        *,
        processed: int | None = None,
        total: int | None = None,
        error: object = _UNSET,
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
        cancel_requested: bool | None = None,
    ) -> AnalysisRun:
        """Apply a partial update to the current run.

        ``processed`` never moves backwards within a run; a lower value is
        ignored with a warning.
        """
        run = self._run
        if status is not None:
            run.status = status
        if processed is not None:
            if processed < run.processed:
                logger.warning(
                    f"Ignoring processed rollback {run.processed} -> {processed} for run {run.run_id}"
                )
            else:
                run.processed = processed
        if total is not None:
            run.total = total
        if error is not _UNSET:
            run.error = error
        if started_at is not None:
            run.started_at = started_at
        if finished_at is not None:
            run.finished_at = finished_at
        if cancel_requested is not None:
            run.cancel_requested = cancel_requested
        return run

    def reset_run(self, total: int) -> AnalysisRun:
        self._run = AnalysisRun(total=total)
        return self._run

    def replace_records(self, records: Iterable[EmployeeRecord]) -> AnalysisRun:
        """Discard the previous upload and start a fresh pending run."""
        self._records.clear()
        self._results.clear()
        for record in records:
            self.put(record)
        logger.info(f"Store replaced with {len(self._records)} records")
        return self.reset_run(total=len(self._records))


@lru_cache(maxsize=1)
def get_store() -> RecordStore:
    """Process-wide store, usable as a FastAPI dependency."""
    return InMemoryStore()
