"""Transcode job queue with bounded concurrency."""
import asyncio
import inspect
import logging
import os
import uuid
from collections import defaultdict, deque
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Protocol

from transcoder.exceptions import ProbeError, TranscodeError
from transcoder.models.job import TranscodeJob
from transcoder.models.schemas import (
    JobSnapshot,
    JobSummary,
    QueueJobs,
    QueueOverview,
    TranscodeOptions,
    TranscodeOutput,
    TranscodeResult,
)

logger = logging.getLogger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10
RECENT_COMPLETED_LIMIT = 10

EventHandler = Callable[..., Any]


class QueueEvent(str, Enum):
    """Events published by the queue."""
    QUEUED = "job-queued"          # (JobSnapshot)
    STARTED = "job-started"        # (JobSnapshot)
    PROGRESS = "job-progress"      # (job_id, percent)
    COMPLETED = "job-completed"    # (JobSnapshot)
    LINKED = "job-linked"          # (JobSnapshot)


class Pipeline(Protocol):
    def transcode(
        self,
        input_path: str,
        output_dir: str,
        options: Optional[TranscodeOptions] = None,
        progress_callback: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> Awaitable[TranscodeOutput]:
        ...


def clamp_concurrency(count: int) -> int:
    return max(MIN_CONCURRENCY, min(MAX_CONCURRENCY, int(count)))


def is_readable_file(path: str) -> bool:
    source = Path(path)
    return source.is_file() and os.access(source, os.R_OK)


def check_job_paths(input_path: str, output_dir: str):
    """
    Raises:
        ProbeError: If the input is not a readable file
        TranscodeError: If no output directory was given
    """
    if not is_readable_file(input_path):
        raise ProbeError(f"Input file is not readable: {input_path}")
    if not output_dir:
        raise TranscodeError("Output directory is required")


class TranscodeQueue:
    """
    Owns every transcode job from submission to history.

    Jobs move pending -> active -> history. All state changes happen in
    synchronous methods running on the event loop, so a dispatch pass can
    never interleave with another transition. Event handlers are delivered
    by a single worker task in emission order.
    """

    def __init__(self, pipeline: Pipeline, concurrency_limit: int = 2, history_limit: int = 100):
        self.pipeline = pipeline
        self.concurrency_limit = clamp_concurrency(concurrency_limit)
        self.pending: Deque[TranscodeJob] = deque()
        self.active: Dict[str, TranscodeJob] = {}
        self.history: Deque[TranscodeJob] = deque(maxlen=history_limit)
        self.running = False
        self.worker_task: Optional[asyncio.Task] = None
        self._dispatching = False
        self._tasks: Dict[str, asyncio.Task] = {}
        self._waiters: Dict[str, List[asyncio.Future]] = defaultdict(list)
        self._handlers: Dict[QueueEvent, List[EventHandler]] = defaultdict(list)
        self._events: asyncio.Queue = asyncio.Queue()

    # Events

    def subscribe(self, event: QueueEvent, handler: EventHandler):
        """
        Register a handler for an event kind.

        Args:
            event: Event kind
            handler: Function or coroutine function taking the event arguments
        """
        self._handlers[QueueEvent(event)].append(handler)

    def _emit(self, event: QueueEvent, *args):
        self._events.put_nowait((event, args))

    async def start_worker(self):
        """Start the event delivery task."""
        if self.running:
            logger.warning("Event worker already running")
            return

        self.running = True
        self.worker_task = asyncio.create_task(self._event_loop())
        logger.info("Transcode queue event worker started")

    async def stop_worker(self):
        """Stop the event delivery task."""
        if not self.running:
            return

        self.running = False
        if self.worker_task:
            self.worker_task.cancel()
            try:
                await self.worker_task
            except asyncio.CancelledError:
                pass
        if self.active:
            logger.warning(f"Event worker stopped with {len(self.active)} active jobs")
        logger.info("Transcode queue event worker stopped")

    async def __aenter__(self) -> "TranscodeQueue":
        await self.start_worker()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop_worker()

    async def _event_loop(self):
        while self.running:
            event, args = await self._events.get()
            try:
                for handler in list(self._handlers.get(event, [])):
                    try:
                        outcome = handler(*args)
                        if inspect.isawaitable(outcome):
                            await outcome
                    except Exception as e:
                        logger.error(f"Error in {event.value} handler {handler!r}: {e}", exc_info=True)
            finally:
                self._events.task_done()

    # Operations

    def submit(
        self,
        input_path: str,
        output_dir: str,
        options: Optional[TranscodeOptions] = None,
        content_ref: Optional[str] = None,
    ) -> str:
        """
        Queue a source file for transcoding.

        Must be called from the event loop.

        Args:
            input_path: Readable source file
            output_dir: Base directory for the package
            options: Per-job options
            content_ref: Owning content, if already known

        Never raises for bad input: an unreadable source or a missing output
        directory fails the job once it starts.

        Returns:
            The new job id
        """
        job = TranscodeJob(
            job_id=uuid.uuid4().hex,
            input_path=str(input_path),
            output_dir=str(output_dir),
            options=options or TranscodeOptions(),
            content_ref=content_ref,
        )
        self.pending.append(job)
        logger.info(f"Job {job.job_id} queued for {job.file_name}. Pending: {len(self.pending)}")

        self._emit(QueueEvent.QUEUED, self._snapshot(job))
        self._dispatch()
        return job.job_id

    def status(self, job_id: str) -> Optional[JobSnapshot]:
        """Look a job up in active, pending and history, in that order."""
        job = self._find(job_id)
        return self._snapshot(job) if job else None

    def set_concurrency_limit(self, count: int) -> int:
        """
        Change how many jobs may run at once.

        Args:
            count: Requested limit, clamped into [1, 10]

        Returns:
            The applied limit
        """
        self.concurrency_limit = clamp_concurrency(count)
        logger.info(f"Concurrency limit set to {self.concurrency_limit}")
        self._dispatch()
        return self.concurrency_limit

    def link_content_reference(self, job_id: str, content_ref: str) -> bool:
        """
        Attach the owning content to a job in any state.

        Returns:
            False if the job id is unknown
        """
        job = self._find(job_id)
        if job is None:
            return False

        job.attach_content_ref(content_ref)
        logger.info(f"Job {job_id} linked to {content_ref} while {job.status.value}")
        self._emit(QueueEvent.LINKED, self._snapshot(job))
        return True

    def queue_overview(self) -> QueueOverview:
        """Get counts and short summaries of every collection."""
        recent = list(self.history)[-RECENT_COMPLETED_LIMIT:]
        return QueueOverview(
            pending=len(self.pending),
            active=len(self.active),
            completed=len(self.history),
            concurrency_limit=self.concurrency_limit,
            jobs=QueueJobs(
                pending=[JobSummary(job_id=j.job_id, file_name=j.file_name, status=j.status) for j in self.pending],
                active=[
                    JobSummary(job_id=j.job_id, file_name=j.file_name, status=j.status, progress=j.progress)
                    for j in self.active.values()
                ],
                recent_completed=[
                    JobSummary(job_id=j.job_id, file_name=j.file_name, status=j.status, completed_at=j.completed_at)
                    for j in recent
                ],
            ),
        )

    async def wait_for(self, job_id: str) -> JobSnapshot:
        """
        Wait until a job is completed or failed.

        Raises:
            KeyError: If the job id is unknown
        """
        job = self._find(job_id)
        if job is None:
            raise KeyError(job_id)
        if job.is_terminal:
            return self._snapshot(job)

        future = asyncio.get_running_loop().create_future()
        self._waiters[job_id].append(future)
        return await future

    async def join(self):
        """Wait until nothing is pending or active and all events are delivered."""
        while self.pending or self.active:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        if self.running:
            await self._events.join()

    # Transitions

    def _find(self, job_id: str) -> Optional[TranscodeJob]:
        if job_id in self.active:
            return self.active[job_id]
        for job in self.pending:
            if job.job_id == job_id:
                return job
        for job in self.history:
            if job.job_id == job_id:
                return job
        return None

    @staticmethod
    def _snapshot(job: TranscodeJob) -> JobSnapshot:
        return JobSnapshot.model_validate(job)

    def _dispatch(self):
        """Start pending jobs, oldest first, while capacity allows."""
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self.pending and len(self.active) < self.concurrency_limit:
                job = self.pending.popleft()
                job.mark_processing()
                self.active[job.job_id] = job
                self._tasks[job.job_id] = asyncio.create_task(self._run_job(job), name=f"transcode-{job.job_id}")
                logger.info(f"Processing job {job.job_id}. Active: {len(self.active)}/{self.concurrency_limit}")
                self._emit(QueueEvent.STARTED, self._snapshot(job))
        finally:
            self._dispatching = False

    async def _run_job(self, job: TranscodeJob):
        async def on_progress(percent: float):
            if job.record_progress(percent):
                self._emit(QueueEvent.PROGRESS, job.job_id, job.progress)

        try:
            check_job_paths(job.input_path, job.output_dir)
            output = await self.pipeline.transcode(job.input_path, job.output_dir, job.options, on_progress)
            if not output.renditions:
                raise TranscodeError("Transcode produced no renditions")
            message = "Transcode complete (single rendition fallback)" if output.fallback else "Transcode complete"
            result = TranscodeResult(success=True, data=output, message=message)
        except TranscodeError as e:
            logger.error(f"Job {job.job_id} failed: {e}")
            result = TranscodeResult(success=False, message=str(e) or e.__class__.__name__)
        except Exception as e:
            logger.error(f"Error processing job {job.job_id}: {e}", exc_info=True)
            result = TranscodeResult(success=False, message=str(e) or e.__class__.__name__)

        self._complete(job, result)

    def _complete(self, job: TranscodeJob, result: TranscodeResult):
        self.active.pop(job.job_id, None)
        self._tasks.pop(job.job_id, None)
        job.mark_finished(result)
        self.history.append(job)

        logger.info(f"Job {job.job_id} finished with status: {job.status.value}")
        snapshot = self._snapshot(job)
        self._emit(QueueEvent.COMPLETED, snapshot)

        for future in self._waiters.pop(job.job_id, []):
            if not future.done():
                future.set_result(snapshot)

        self._dispatch()
