"""Client-side queue of in-flight generation jobs.

Every "create" action in the application becomes a job record that lives in
the queue while it is queued, generating, or failed and not yet dismissed.
Successful jobs are removed outright: their results are read back from the
authoritative history, so there is no ``completed`` resting state.

State Machine
-------------
::

    queued ──> generating ──> (removed on success)
      │                  └──> failed ──> (removed on dismiss)
      └──> failed (reference images could not be prepared)

There is no retry, no timeout and no cancellation.  ``dismiss`` only hides a
record; if its underlying call settles afterwards the update is dropped
because every mutation is patch-if-present.

At-most-once Processing
-----------------------
:class:`QueueStore` keeps a set of job ids that currently have a ``generate``
call outstanding.  ``process_generation`` claims the id before doing anything
else and releases it in a ``finally`` block, so a second invocation for the
same id while the first is pending is a no-op.  Everything runs on one event
loop; the guard prevents logically duplicate submissions (e.g. two UI
triggers for the same job), not data races.

Concurrency
-----------
Jobs are not throttled: enqueuing N jobs starts N ``generate`` calls at
once, and they settle in whatever order the provider finishes them.

Usage Example
-------------
    >>> manager = GenerationQueueManager(client.generate, upload=client.upload)
    >>> job_id = manager.enqueue(GenerateRequest(prompt="a lighthouse", model=model_id),
    ...                          str(uuid.uuid4()))
    >>> manager.snapshot()[0].status
    'queued'
    >>> await manager.wait_idle()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ollo.api.models import GenerateRequest, GenerateResponse

from .config import OlloConfig, config
from .errors import ApplicationError, NetworkError, OlloError
from .media import MediaFile, MediaPreprocessor, UploadFn
from .model_registry import ModelRegistry, model_registry

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Generation failed"

JobStatus = Literal["queued", "generating", "failed"]
GenerateFn = Callable[[GenerateRequest], Awaitable[GenerateResponse]]
SuccessCallback = Callable[["QueuedGeneration", GenerateResponse], Any]
QueueListener = Callable[[list["QueuedGeneration"]], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueuedGeneration(BaseModel):
    """One tracked generation job.

    Records are immutable; the manager replaces them on every transition.

    Attributes:
        id: Caller-generated id, unique while the record exists.
        request: The request sent to ``generate``.
        prompt: Display text (e.g. "Generating 4 variations").
        model: Model identifier, used for the duration estimate.
        status: ``queued``, ``generating`` or ``failed``.
        created_at: When the job was enqueued.
        started_at: When the job moved to ``generating``.
        estimated_duration: Expected duration in seconds (display only).
        error: Failure message, present only when ``failed``.
        thread_id: Conversation thread the job belongs to.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    request: GenerateRequest
    prompt: str = ""
    model: str
    status: JobStatus = "queued"
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    estimated_duration: float | None = None
    error: str | None = None
    thread_id: str | None = None


@dataclass(frozen=True)
class Succeeded:
    """``generate`` reported success; the job was removed."""

    response: GenerateResponse


@dataclass(frozen=True)
class Failed:
    """The job ended in ``failed`` with ``reason`` as its visible error."""

    reason: str
    error: OlloError


GenerationOutcome = Succeeded | Failed


class QueueStore:
    """Owner of job records and the in-flight id set.

    Records are kept in insertion order and exposed most-recent-first.  All
    mutations target an id and silently do nothing if the id is absent.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, QueuedGeneration] = {}
        self._in_flight: set[str] = set()

    def insert(self, job: QueuedGeneration) -> None:
        if job.id in self._jobs:
            logger.warning(f"Job id {job.id} is already queued, replacing the record")
            del self._jobs[job.id]
        self._jobs[job.id] = job

    def patch(self, job_id: str, **changes: Any) -> QueuedGeneration | None:
        """Apply ``changes`` to the record if it is still present."""
        job = self._jobs.get(job_id)
        if job is None:
            return None
        updated = job.model_copy(update=changes)
        self._jobs[job_id] = updated
        return updated

    def remove(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    def get(self, job_id: str) -> QueuedGeneration | None:
        return self._jobs.get(job_id)

    def snapshot(self) -> list[QueuedGeneration]:
        """All records, most recent first."""
        return list(reversed(self._jobs.values()))

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    # In-flight guard

    def acquire(self, job_id: str) -> bool:
        """Claim ``job_id`` for processing; False if it is already claimed."""
        if job_id in self._in_flight:
            return False
        self._in_flight.add(job_id)
        return True

    def release(self, job_id: str) -> None:
        self._in_flight.discard(job_id)

    def is_processing(self, job_id: str) -> bool:
        return job_id in self._in_flight

    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)


class GenerationQueueManager:
    """Tracks concurrent generation jobs and drives their state transitions.

    Args:
        generate: Coroutine function performing the generation call
        registry: Model registry used for duration estimates
        upload: Coroutine function uploading a prepared file (needed only for
            :meth:`submit` with images)
        preprocessor: Media preprocessor for attached images
        on_success: Callbacks invoked with ``(job, response)`` after a job
            succeeds, typically history/thread refreshes
        settings: Configuration (global config if None)
    """

    def __init__(
        self,
        generate: GenerateFn,
        registry: ModelRegistry | None = None,
        *,
        upload: UploadFn | None = None,
        preprocessor: MediaPreprocessor | None = None,
        on_success: Iterable[SuccessCallback] = (),
        settings: OlloConfig | None = None,
    ) -> None:
        self.settings = settings or config
        self.registry = registry or model_registry
        self.preprocessor = preprocessor or MediaPreprocessor(self.settings)
        self._generate = generate
        self._upload = upload
        self._store = QueueStore()
        self._success_callbacks: list[SuccessCallback] = list(on_success)
        self._listeners: list[QueueListener] = []
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> list[QueuedGeneration]:
        """Current records, most recent first."""
        return self._store.snapshot()

    def get(self, job_id: str) -> QueuedGeneration | None:
        return self._store.get(job_id)

    def __len__(self) -> int:
        return len(self._store)

    def is_processing(self, job_id: str) -> bool:
        return self._store.is_processing(job_id)

    def active_ids(self) -> frozenset[str]:
        """Ids with a ``generate`` call currently outstanding."""
        return self._store.in_flight()

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        """Register ``listener`` for snapshots after every change.

        Returns:
            A function that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_success_callback(self, callback: SuccessCallback) -> None:
        self._success_callbacks.append(callback)

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Queue listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _new_job(
        self,
        request: GenerateRequest,
        job_id: str,
        prompt: str | None,
        thread_id: str | None,
    ) -> QueuedGeneration:
        return QueuedGeneration(
            id=job_id,
            request=request,
            prompt=request.prompt if prompt is None else prompt,
            model=request.model,
            thread_id=thread_id if thread_id is not None else request.thread_id,
        )

    def _insert(self, job: QueuedGeneration) -> None:
        self._store.insert(job)
        logger.info(f"Queued generation {job.id} on {job.model}")
        self._notify()

    def _dispatch(self, job: QueuedGeneration, request: GenerateRequest) -> None:
        task = asyncio.get_running_loop().create_task(self.process_generation(job, request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def enqueue(
        self,
        request: GenerateRequest,
        job_id: str,
        *,
        prompt: str | None = None,
        thread_id: str | None = None,
    ) -> str:
        """Add a job and start processing it in the background.

        Must be called with an event loop running.  Returns immediately.

        Args:
            request: Request passed to ``generate``
            job_id: Caller-generated unique id (e.g. ``str(uuid.uuid4())``)
            prompt: Display text (defaults to the request prompt)
            thread_id: Conversation thread (defaults to the request's)

        Returns:
            ``job_id``
        """
        job = self._new_job(request, job_id, prompt, thread_id)
        self._insert(job)
        self._dispatch(job, request)
        return job_id

    async def submit(
        self,
        request: GenerateRequest,
        job_id: str,
        *,
        images: Sequence[MediaFile] = (),
        prompt: str | None = None,
        thread_id: str | None = None,
    ) -> str:
        """Preprocess and upload ``images``, then enqueue the request.

        The job is visible as ``queued`` while its images are prepared.  If
        any image fails to convert, resize or upload, the job is marked
        ``failed`` with the collected messages instead of being dispatched
        without the reference image.

        Returns:
            ``job_id``
        """
        if images and self._upload is None:
            raise ValueError("An upload function is required to submit images")

        job = self._new_job(request, job_id, prompt, thread_id)
        self._insert(job)

        if images:
            existing = len(request.image_inputs or [])
            limit = self.registry.max_images(
                request.model, default=self.settings.max_reference_images
            )
            try:
                batch = await self.preprocessor.process_batch(
                    images, self._upload, max_images=max(0, limit - existing)
                )
            except Exception as e:
                reason = str(e) or type(e).__name__
                logger.error(f"Image preparation for {job_id} failed: {reason}", exc_info=True)
                self._store.patch(job_id, status="failed", error=reason)
                self._notify()
                return job_id

            if batch.errors:
                logger.warning(f"Image preparation failed for {job_id}: {batch.error_message}")
                self._store.patch(job_id, status="failed", error=batch.error_message)
                self._notify()
                return job_id

            request = request.with_image_inputs(batch.image_urls)
            job = self._store.patch(job_id, request=request)
            if job is None:
                logger.info(f"Job {job_id} was dismissed while its images were uploading")
                return job_id

        self._dispatch(job, request)
        return job_id

    async def process_generation(
        self, job: QueuedGeneration, request: GenerateRequest
    ) -> GenerationOutcome | None:
        """Run the single permitted ``generate`` call for ``job``.

        Returns None without side effects if the job id is already being
        processed.  Otherwise returns the tagged outcome; errors never
        propagate, they end up in the job's ``error`` field.
        """
        if not self._store.acquire(job.id):
            logger.debug(f"Generation {job.id} is already in flight, ignoring")
            return None

        try:
            estimated = self.registry.estimated_duration(
                job.model,
                default=self.settings.default_generation_time,
                buffer=self.settings.duration_buffer,
            )
            self._store.patch(
                job.id,
                status="generating",
                started_at=_utcnow(),
                estimated_duration=estimated,
            )
            self._notify()

            try:
                response = await self._generate(request)
            except Exception as e:
                reason = str(e) or type(e).__name__
                logger.error(f"Generation {job.id} failed: {reason}")
                error = e if isinstance(e, OlloError) else NetworkError(reason)
                self._store.patch(job.id, status="failed", error=reason)
                self._notify()
                return Failed(reason, error)

            if response.succeeded:
                self._store.remove(job.id)
                logger.info(f"Generation {job.id} succeeded")
                self._notify()
                await self._run_success_callbacks(job, response)
                return Succeeded(response)

            reason = response.error or GENERIC_FAILURE
            logger.warning(f"Generation {job.id} finished with status {response.status!r}: {reason}")
            self._store.patch(job.id, status="failed", error=reason)
            self._notify()
            return Failed(reason, ApplicationError(reason))
        finally:
            self._store.release(job.id)

    async def _run_success_callbacks(
        self, job: QueuedGeneration, response: GenerateResponse
    ) -> None:
        for callback in list(self._success_callbacks):
            try:
                result = callback(job, response)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Success callback failed for {job.id}: {e}", exc_info=True)

    def dismiss(self, job_id: str) -> None:
        """Remove a record from the queue.  Unknown ids are ignored.

        This does not cancel an outstanding call; its eventual result is
        discarded.
        """
        if self._store.remove(job_id):
            logger.info(f"Dismissed generation {job_id}")
            self._notify()

    async def wait_idle(self) -> None:
        """Wait until every dispatched job has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
