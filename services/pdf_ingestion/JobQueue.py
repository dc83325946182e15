"""In-process asynchronous job queue with retries, rate limiting and retention.

Jobs are identified by a caller-supplied id. While a job with a given id is
waiting, delayed or running, enqueueing the same id again is rejected; once it
reached a terminal state the id may be reused and starts a fresh job.

The queue lives in the event loop of the API process and keeps no state of
its own across restarts. Running jobs cancelled by shutdown are reported to
the failed hooks; waiting and delayed jobs are dropped, and the owner of the
work re-enqueues them on the next start (see DocumentService.recover_unfinished).
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from shared.exceptions import DuplicateJobError, JobCancelledError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import utcnow
from shared.models.job import Job, JobOptions, JobState, JobStatus, QueueStats

ProgressReporter = Callable[[int], Awaitable[None]]
Processor = Callable[[Job, ProgressReporter], Awaitable[Any]]
JobHook = Callable[[Job], Awaitable[None]]
FailedHook = Callable[[Job, Exception, bool], Awaitable[None]]


class RateLimiter:
    """Sliding-window limiter: at most max_calls acquisitions per duration seconds."""

    def __init__(self, max_calls: int, duration: float) -> None:
        self.max_calls = max_calls
        self.duration = duration
        self._calls: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = time.monotonic()
                while self._calls and now - self._calls[0] >= self.duration:
                    self._calls.popleft()
                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    return
                await asyncio.sleep(self.duration - (now - self._calls[0]))


class JobQueue:
    """Bounded-concurrency worker pool over a FIFO of job ids.

    Usage::

        queue = JobQueue(helper_config, "pdf-processing")
        queue.process(ingestion_service.process)
        queue.on_failed(ingestion_service.handle_failed)
        queue.start()
        await queue.enqueue(document.id, "process-pdf", payload)
    """

    def __init__(self, helper_config: HelperConfig, name: str) -> None:
        self.logging = helper_config.get_logger()
        self.name = name

        self.concurrency = helper_config.get_int_val("QUEUE_CONCURRENCY", default=5, minimum=1)
        self.default_options = JobOptions(
            max_attempts=helper_config.get_int_val("MAX_RETRIES", default=3, minimum=1),
            backoff_delay=helper_config.get_number_val("QUEUE_BACKOFF_DELAY", default=2),
        )
        self.keep_completed_age = helper_config.get_number_val("QUEUE_KEEP_COMPLETED_AGE", default=86400)
        self.keep_completed_count = helper_config.get_int_val("QUEUE_KEEP_COMPLETED_COUNT", default=1000, minimum=0)
        self.keep_failed_age = helper_config.get_number_val("QUEUE_KEEP_FAILED_AGE", default=604800)

        self._rate_limiter = RateLimiter(
            max_calls=helper_config.get_int_val("QUEUE_RATE_LIMIT_MAX", default=10, minimum=1),
            duration=helper_config.get_number_val("QUEUE_RATE_LIMIT_DURATION", default=1),
        )

        self._jobs: dict[str, Job] = {}
        self._pending: asyncio.Queue[str] = asyncio.Queue()
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._running: set[asyncio.Task] = set()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._dispatcher: asyncio.Task | None = None

        self._processor: Processor | None = None
        self._active_hooks: list[JobHook] = []
        self._completed_hooks: list[JobHook] = []
        self._failed_hooks: list[FailedHook] = []

    ##########################################
    ############### WIRING ###################
    ##########################################

    def process(self, processor: Processor) -> None:
        """Register the coroutine that runs a job. It receives the job and a progress reporter."""
        self._processor = processor

    def on_active(self, hook: JobHook) -> None:
        self._active_hooks.append(hook)

    def on_completed(self, hook: JobHook) -> None:
        self._completed_hooks.append(hook)

    def on_failed(self, hook: FailedHook) -> None:
        """Register a hook called after every failed attempt with (job, error, will_retry)."""
        self._failed_hooks.append(hook)

    def is_running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    def start(self) -> None:
        if self._processor is None:
            raise RuntimeError(f"Queue '{self.name}' has no processor registered.")
        if self.is_running():
            return
        self._dispatcher = asyncio.create_task(self._dispatch_loop(), name=f"{self.name}-dispatcher")
        self.logging.info("Queue '%s' started (concurrency %d)", self.name, self.concurrency)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop taking new jobs and wait for running ones, cancelling them after timeout."""
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        if self._running:
            _, still_running = await asyncio.wait(self._running, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)

        unfinished = sum(1 for job in self._jobs.values() if not job.state.is_terminal)
        if unfinished:
            self.logging.warning("Queue '%s' shut down with %d unfinished jobs", self.name, unfinished)
        else:
            self.logging.info("Queue '%s' shut down", self.name)

    ##########################################
    ############### PRODUCER #################
    ##########################################

    async def enqueue(self, job_id: str, name: str, payload: Any, options: JobOptions | None = None) -> Job:
        """Add a job to the queue.

        Args:
            job_id (str): Deduplication key, e.g. the document id.
            name (str): Job type name, for logs.
            payload (Any): Data handed to the processor.
            options (JobOptions | None): Retry policy; queue defaults if omitted.

        Returns:
            Job: The queued job.

        Raises:
            DuplicateJobError: If a job with this id is waiting, delayed or running.
        """
        existing = self._jobs.get(job_id)
        if existing is not None and not existing.state.is_terminal:
            raise DuplicateJobError(f"Job {job_id} is already {existing.state.value}.")

        job = Job(id=job_id, name=name, payload=payload, options=options or self.default_options)
        self._jobs[job_id] = job
        self._pending.put_nowait(job_id)
        self.logging.debug("Queued job %s (%s)", job_id, name)
        return job

    async def update_progress(self, job_id: str, progress: int) -> None:
        """Record progress for a running job. Progress never moves backwards within an attempt."""
        job = self._jobs.get(job_id)
        if job is None:
            return
        job.progress = max(job.progress, min(int(progress), 100))

    ##########################################
    ############### INSPECTION ###############
    ##########################################

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def get_status(self, job_id: str) -> JobStatus | None:
        job = self._jobs.get(job_id)
        return JobStatus.from_job(job) if job is not None else None

    async def get_stats(self) -> QueueStats:
        counts = {state: 0 for state in JobState}
        for job in self._jobs.values():
            counts[job.state] += 1
        return QueueStats(
            waiting=counts[JobState.WAITING],
            active=counts[JobState.ACTIVE],
            delayed=counts[JobState.DELAYED],
            completed=counts[JobState.COMPLETED],
            failed=counts[JobState.FAILED],
        )

    async def get_failed(self) -> list[JobStatus]:
        return [JobStatus.from_job(job) for job in self._jobs.values() if job.state == JobState.FAILED]

    ##########################################
    ############### DEAD LETTER ##############
    ##########################################

    async def retry_job(self, job_id: str) -> bool:
        """Re-run a failed job with its stored payload from a fresh attempt cycle.

        Returns:
            bool: False if the job is unknown, not failed, or has no payload left.
        """
        job = self._jobs.get(job_id)
        if job is None or job.state != JobState.FAILED or job.payload is None:
            return False
        job.state = JobState.WAITING
        job.attempts_made = 0
        job.progress = 0
        job.failed_reason = None
        job.finished_at = None
        self._pending.put_nowait(job_id)
        self.logging.info("Retrying failed job %s", job_id)
        return True

    async def retry_failed(self) -> list[str]:
        failed_ids = [job.id for job in self._jobs.values() if job.state == JobState.FAILED]
        return [job_id for job_id in failed_ids if await self.retry_job(job_id)]

    async def cleanup_failed(self) -> int:
        """Forget every failed job. Returns how many were removed."""
        failed_ids = [job.id for job in self._jobs.values() if job.state == JobState.FAILED]
        for job_id in failed_ids:
            del self._jobs[job_id]
        if failed_ids:
            self.logging.info("Removed %d failed jobs from queue '%s'", len(failed_ids), self.name)
        return len(failed_ids)

    ##########################################
    ############### WORKERS ##################
    ##########################################

    async def _dispatch_loop(self) -> None:
        while True:
            job_id = await self._pending.get()
            job = self._jobs.get(job_id)
            # removed or already picked up through a newer enqueue
            if job is None or job.state != JobState.WAITING:
                continue
            await self._semaphore.acquire()
            await self._rate_limiter.acquire()
            if job.state != JobState.WAITING:
                self._semaphore.release()
                continue
            job.state = JobState.ACTIVE
            task = asyncio.create_task(self._run(job), name=f"{self.name}-{job_id}")
            self._running.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        self._semaphore.release()

    async def _run(self, job: Job) -> None:
        job.attempts_made += 1
        job.progress = 0
        job.processed_at = utcnow()
        await self._emit(self._active_hooks, job)

        async def report_progress(progress: int) -> None:
            await self.update_progress(job.id, progress)

        try:
            result = await self._processor(job, report_progress)
        except asyncio.CancelledError:
            error = JobCancelledError("cancelled during shutdown")
            job.state = JobState.FAILED
            job.failed_reason = str(error)
            job.finished_at = utcnow()
            self.logging.warning("Job %s cancelled (attempt %d)", job.id, job.attempts_made)
            await self._emit_failed(job, error, will_retry=False)
            raise
        except Exception as e:
            await self._handle_failure(job, e)
        else:
            job.state = JobState.COMPLETED
            job.return_value = result
            job.progress = 100
            job.finished_at = utcnow()
            job.payload = None
            self.logging.info("Job %s completed (attempt %d)", job.id, job.attempts_made)
            await self._emit(self._completed_hooks, job)
        finally:
            self._prune()

    async def _handle_failure(self, job: Job, error: Exception) -> None:
        job.failed_reason = str(error)
        will_retry = job.has_attempts_left()
        if will_retry:
            job.state = JobState.DELAYED
        else:
            job.state = JobState.FAILED
            job.finished_at = utcnow()

        self.logging.error(
            "Job %s failed (attempt %d/%d): %s",
            job.id, job.attempts_made, job.options.max_attempts, error,
        )

        # hooks run before the retry is scheduled, so their writes precede the next attempt
        await self._emit_failed(job, error, will_retry)

        if will_retry:
            delay = job.next_backoff()
            self.logging.info("Job %s will retry in %.1fs", job.id, delay)
            self._timers[job.id] = asyncio.get_running_loop().call_later(delay, self._requeue, job.id)

    def _requeue(self, job_id: str) -> None:
        self._timers.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is None or job.state != JobState.DELAYED:
            return
        job.state = JobState.WAITING
        self._pending.put_nowait(job_id)

    async def _emit_failed(self, job: Job, error: Exception, will_retry: bool) -> None:
        for hook in self._failed_hooks:
            try:
                await hook(job, error, will_retry)
            except Exception as e:
                self.logging.error("Failed-hook for job %s raised: %s", job.id, e)

    async def _emit(self, hooks: list[JobHook], job: Job) -> None:
        for hook in hooks:
            try:
                await hook(job)
            except Exception as e:
                self.logging.error("Hook for job %s raised: %s", job.id, e)

    ##########################################
    ############### RETENTION ################
    ##########################################

    def _prune(self) -> None:
        """Drop terminal jobs past their retention age, and completed jobs beyond the count limit."""
        now = utcnow()
        completed_cutoff = now - timedelta(seconds=self.keep_completed_age)
        failed_cutoff = now - timedelta(seconds=self.keep_failed_age)

        completed: list[Job] = []
        for job in list(self._jobs.values()):
            if job.state == JobState.COMPLETED:
                if job.finished_at is not None and job.finished_at < completed_cutoff:
                    del self._jobs[job.id]
                else:
                    completed.append(job)
            elif job.state == JobState.FAILED:
                if job.finished_at is not None and job.finished_at < failed_cutoff:
                    del self._jobs[job.id]

        overflow = len(completed) - self.keep_completed_count
        if overflow > 0:
            completed.sort(key=lambda j: j.finished_at)
            for job in completed[:overflow]:
                del self._jobs[job.id]
