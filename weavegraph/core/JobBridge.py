"""
Job bridge: turns one node run into one job on an external asynchronous runner.

The protocol is trigger -> poll -> classify. Triggering submits exactly one
job. Polling is a suspend/resume loop (poll, sleep, poll) driven by an
injectable ``sleep`` coroutine so it never blocks the event loop. Transport
failures of a single call are retried once; a job that reports a terminal
failure is never resubmitted.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Protocol, TypeVar

import logging

from ..config import DEFAULT_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL
from .Errors import JobFailed, Timeout, TransportError
from .Types import JobStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class JobRun:
    """One status fetch from the job runner."""
    status: str
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class JobRunner(Protocol):
    async def trigger(self, job_kind: str, payload: Dict[str, Any], idempotency_key: Optional[str] = None) -> str:
        """Submit one job. Calls sharing an idempotency key must create at most one job."""
        ...

    async def retrieve(self, job_id: str) -> JobRun:
        ...


@dataclass(frozen=True)
class PollSchedule:
    interval: float = DEFAULT_POLL_INTERVAL
    max_attempts: int = DEFAULT_POLL_ATTEMPTS


@dataclass
class JobHandle:
    """Polling cursor for one submitted job."""
    job_kind: str
    job_id: str
    idempotency_key: Optional[str] = None
    attempts: int = 0
    last_status: Optional[JobStatus] = None
    history: list = field(default_factory=list)


class JobBridge:
    def __init__(self,
                 runner: JobRunner,
                 schedule: Optional[PollSchedule] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.runner = runner
        self.schedule = schedule or PollSchedule()
        self.sleep = sleep

    async def run(self, job_kind: str, payload: Dict[str, Any],
                  output_fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Submit one job and wait for its terminal status.

        Returns the job output (restricted to *output_fields* when given).
        Raises JobFailed, Timeout or TransportError.
        """
        handle = await self.trigger(job_kind, payload)
        run = await self.poll(handle)
        return self.classify(handle, run, output_fields)

    async def trigger(self, job_kind: str, payload: Dict[str, Any]) -> JobHandle:
        # one key per submission; the retried call sends the same key
        key = uuid.uuid4().hex
        job_id = await self._call_with_retry(
            lambda: self.runner.trigger(job_kind, payload, idempotency_key=key), f"trigger {job_kind}"
        )
        logger.info(f"Triggered {job_kind} job {job_id}")
        return JobHandle(job_kind, job_id, idempotency_key=key)

    async def poll(self, handle: JobHandle) -> JobRun:
        """Fetch status until terminal or until the attempt budget runs out."""
        while handle.attempts < self.schedule.max_attempts:
            handle.attempts += 1
            run = await self._call_with_retry(lambda: self.runner.retrieve(handle.job_id), f"retrieve {handle.job_id}")

            status = JobStatus.parse(run.status)
            handle.last_status = status
            handle.history.append(run.status)
            logger.debug(f"Job {handle.job_id} poll {handle.attempts}/{self.schedule.max_attempts}: {run.status}")

            if status is not None and status.isTerminal():
                return run

            if handle.attempts < self.schedule.max_attempts:
                await self.sleep(self.schedule.interval)

        raise Timeout(
            f"Job {handle.job_id} did not finish after {handle.attempts} status checks",
            job_id=handle.job_id,
        )

    def classify(self, handle: JobHandle, run: JobRun,
                 output_fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        status = JobStatus.parse(run.status)
        if status is None or not status.isTerminal():
            raise ValueError(f"Cannot classify non-terminal status '{run.status}'")

        if not status.isSuccess():
            message = run.error or f"Job {handle.job_kind} ended with status {status.value}"
            logger.warning(f"Job {handle.job_id} failed: {message}")
            raise JobFailed(message, job_id=handle.job_id)

        output = dict(run.output or {})
        if output_fields is None:
            return output

        wanted = list(output_fields)
        missing = [name for name in wanted if name not in output]
        if missing:
            raise JobFailed(
                f"Job {handle.job_kind} completed without output field(s): {', '.join(missing)}",
                job_id=handle.job_id,
            )
        return {name: output[name] for name in wanted}

    async def _call_with_retry(self, call: Callable[[], Awaitable[T]], description: str) -> T:
        try:
            return await call()
        except TransportError as exc:
            logger.warning(f"Transport error during {description}, retrying once: {exc.message}")
        return await call()
