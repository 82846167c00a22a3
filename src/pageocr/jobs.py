# src/pageocr/jobs.py
from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import JobCancelledError, PageOCRError
from . import logger as _log_setup  # noqa: F401, registers Logger.progress
from .models import DocumentResult, ProcessingOptions, SourceDocument
from .orchestrator import DocumentProcessor
from .progress import ProgressChannel

logger = logging.getLogger("pageocr")


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class OCRJob:
    """Job record as persisted by the backing store."""

    file_id: str
    language: str
    id: str = field(default_factory=lambda: f"ocr-{uuid.uuid4().hex[:12]}")
    user_id: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    preprocessing_options: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass
class JobOutcome:
    job: OCRJob
    result: Optional[DocumentResult] = None


# -----------------------------
# Store interface
# -----------------------------
class JobStore(ABC):
    """Persistence for job records. Implemented by the host application."""

    @abstractmethod
    def create(self, job: OCRJob) -> OCRJob:
        raise NotImplementedError

    @abstractmethod
    def update(self, job_id: str, **changes: Any) -> OCRJob:
        raise NotImplementedError

    @abstractmethod
    def get(self, job_id: str) -> Optional[OCRJob]:
        raise NotImplementedError

    @abstractmethod
    def list(self, status: Optional[JobStatus] = None) -> List[OCRJob]:
        raise NotImplementedError


class InMemoryJobStore(JobStore):
    def __init__(self) -> None:
        self._jobs: Dict[str, OCRJob] = {}

    def create(self, job: OCRJob) -> OCRJob:
        self._jobs[job.id] = job
        return job

    def update(self, job_id: str, **changes: Any) -> OCRJob:
        job = self._jobs[job_id]
        for key, value in changes.items():
            if not hasattr(job, key):
                raise AttributeError(f"OCRJob has no field {key!r}")
            setattr(job, key, value)
        job.updated_at = _now()
        return job

    def get(self, job_id: str) -> Optional[OCRJob]:
        return self._jobs.get(job_id)

    def list(self, status: Optional[JobStatus] = None) -> List[OCRJob]:
        jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status is status]
        return jobs


# -----------------------------
# Runner
# -----------------------------
class JobRunner:
    """
    Runs documents through a DocumentProcessor and keeps their job records
    current: status transitions, integer progress and the final error.
    """

    def __init__(
        self,
        processor: DocumentProcessor,
        store: Optional[JobStore] = None,
        error_log_path: Optional[Path] = None,
    ):
        self.processor = processor
        self.store = store or InMemoryJobStore()
        self.error_log_path = error_log_path
        self._cancel_events: Dict[str, asyncio.Event] = {}

    def _log_error(self, document: SourceDocument, job: OCRJob, reason: str):
        if not self.error_log_path:
            return
        try:
            self.error_log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.error_log_path, "a", encoding="utf-8") as f:
                log_entry = {
                    "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
                    "job_id": job.id,
                    "source": document.name,
                    "error_reason": reason,
                }
                f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")
        except OSError:
            logger.exception("Failed to write error log")

    def cancel(self, job_id: str) -> bool:
        """Ask a running job to stop before its next page. False if unknown."""
        event = self._cancel_events.get(job_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for job %s", job_id)
        return True

    async def _track_progress(self, job: OCRJob, channel: ProgressChannel, listener: Optional[ProgressChannel]):
        last = -1
        async for event in channel:
            if event.is_terminal:
                break
            pct = event.percent
            if listener is not None:
                listener.publish(event.status, event.progress)
            if pct <= last:
                continue
            last = pct
            self.store.update(job.id, progress=pct)
            logger.progress(event.status, extra={"job_id": job.id, "stage": event.status, "pct": pct})

    async def run(
        self,
        document: SourceDocument,
        *,
        file_id: Optional[str] = None,
        user_id: Optional[str] = None,
        language: Optional[str] = None,
        options: Optional[ProcessingOptions] = None,
        selected_pages: Optional[Iterable[int]] = None,
        progress: Optional[ProgressChannel] = None,
    ) -> JobOutcome:
        options = options or ProcessingOptions()
        job = self.store.create(OCRJob(
            file_id=file_id or document.source_id,
            user_id=user_id,
            language=language or self.processor.config.language,
            preprocessing_options=options.to_dict(),
        ))
        cancel_event = asyncio.Event()
        self._cancel_events[job.id] = cancel_event

        channel = ProgressChannel()
        tracker = asyncio.ensure_future(self._track_progress(job, channel, progress))
        self.store.update(job.id, status=JobStatus.PROCESSING, started_at=_now())
        logger.info("Job %s started for %s", job.id, document.name)

        result: Optional[DocumentResult] = None
        try:
            result = await self.processor.process(
                document,
                language=job.language,
                options=options,
                selected_pages=selected_pages,
                progress=channel,
                cancel_event=cancel_event,
            )
        except JobCancelledError as e:
            channel.fail(e, status="Cancelled")
            self.store.update(job.id, status=JobStatus.CANCELLED, error_message=str(e), completed_at=_now())
            logger.info("Job %s cancelled", job.id)
        except PageOCRError as e:
            channel.fail(e)
            self.store.update(job.id, status=JobStatus.FAILED, error_message=str(e), completed_at=_now())
            self._log_error(document, job, str(e))
            logger.error("Job %s failed, %s", job.id, e)
        except Exception as e:
            channel.fail(e)
            self.store.update(job.id, status=JobStatus.FAILED, error_message=str(e), completed_at=_now())
            self._log_error(document, job, str(e))
            raise
        else:
            channel.complete()
            self.store.update(job.id, status=JobStatus.COMPLETED, progress=100, completed_at=_now())
            logger.info(
                "Job %s completed, %d page(s) via %s at %d%% confidence",
                job.id, result.page_count, result.strategy.value, result.confidence,
            )
        finally:
            if not channel.closed:
                channel.cancel()
            await tracker
            self._cancel_events.pop(job.id, None)
            if progress is not None:
                final = channel.latest
                if final.state == "completed":
                    progress.complete()
                else:
                    progress.fail(RuntimeError(final.error or "failed"), status=final.status)

        return JobOutcome(job=self.store.get(job.id), result=result)
