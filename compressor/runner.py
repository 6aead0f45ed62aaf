"""
Cancellable encode task runner for background execution

Each submit() starts a new generation: every outstanding job is cancelled
and one job per encoder is queued on a worker pool. Jobs check that they
are still current before encoding, after encoding, and again on the
delivery context right before the completion sink runs, so a superseded
generation never reaches the sink.
"""

import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from dataclasses import replace
from enum import Enum
from typing import Callable, List, Optional, Sequence

from PIL import Image

from .compression import timing
from .compression.encoders import BaseEncoder, calculate_ssim_inmemory, decode_bytes
from .compression.errors import EncodeError, EncodeFailedError, InvalidSourceError
from .compression.result import EncodeFailure, EncodeResult, EncodeSuccess
from .logger import log


CompletionSink = Callable[[EncodeResult], None]
Dispatch = Callable[[Callable[[], None]], object]


class JobState(str, Enum):
    """Lifecycle of an encode job"""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EncodeJob:
    """One encoder applied to one image at one quality"""

    def __init__(
        self,
        encoder: BaseEncoder,
        image: Image.Image,
        quality: float,
        generation: int,
        source_error: Optional[Exception] = None,
    ):
        self.encoder = encoder
        self.image = image
        self.source_error = source_error
        self.quality = quality
        self.generation = generation
        self.submitted_at = timing.now()
        self.state = JobState.PENDING
        self.cancel_flag = threading.Event()
        self.future: Optional[Future] = None

    def __repr__(self) -> str:
        return (
            f"EncodeJob({self.format_name}, generation={self.generation}, "
            f"quality={self.quality}, state={self.state.value})"
        )

    @property
    def format_name(self) -> str:
        return self.encoder.format_name

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_flag.is_set()

    def cancel(self):
        """Flag the job; a job that has not started yet is also pulled from the pool"""
        self.cancel_flag.set()
        if self.state != JobState.COMPLETED:
            self.state = JobState.CANCELLED
        if self.future is not None:
            self.future.cancel()


class EncodeTaskRunner:
    """Runs one encode job per encoder for the latest submitted image only"""

    def __init__(
        self,
        encoders: Sequence[BaseEncoder],
        sink: CompletionSink,
        dispatch: Optional[Dispatch] = None,
        max_workers: int = 2,
        calculate_ssim: bool = False,
    ):
        """
        Initialize task runner

        Args:
            encoders: One encoder per output format
            sink: Function to call with each current result
            dispatch: Function that runs a callback on the delivery context,
                e.g. ``lambda fn: window.after(0, fn)``. Defaults to a
                dedicated delivery thread.
            max_workers: Worker threads for encode jobs
            calculate_ssim: Attach an SSIM score to successful results
        """
        if not encoders:
            raise ValueError("At least one encoder is required")
        names = [encoder.format_name for encoder in encoders]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate encoder formats: {names}")

        self._encoders = list(encoders)
        self._sink = sink
        self._calculate_ssim = calculate_ssim

        # Guards generation, job list and closed flag. Re-entrant so a sink
        # running on the delivery context may call submit().
        self._lock = threading.RLock()
        self._generation = 0
        self._jobs: List[EncodeJob] = []
        self._futures: List[Future] = []
        self._closed = False

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="compressor-encode"
        )
        self._delivery_executor: Optional[ThreadPoolExecutor] = None
        if dispatch is None:
            self._delivery_executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="compressor-delivery"
            )
            dispatch = self._delivery_executor.submit
        self._dispatch = dispatch

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    @property
    def generation(self) -> int:
        """Id of the latest submitted generation (0 before the first submit)"""
        with self._lock:
            return self._generation

    @property
    def formats(self) -> List[str]:
        return [encoder.format_name for encoder in self._encoders]

    @property
    def is_closed(self) -> bool:
        return self._closed

    def pending_jobs(self) -> int:
        """Number of jobs of the current generation not yet delivered or dropped"""
        with self._lock:
            return len(self._jobs)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every scheduled job has finished running

        Deliveries already handed to the delivery context may still be pending.

        Returns:
            True if all jobs finished within the timeout
        """
        with self._lock:
            futures = list(self._futures)
        _, not_done = wait_for_futures(futures, timeout=timeout)
        return not not_done

    def submit(self, image: Image.Image, quality: float) -> int:
        """
        Cancel all outstanding jobs and queue one job per encoder

        Never blocks on encoding. A lazily opened image is decoded here, on
        the caller thread, so the jobs only ever read its pixels.

        Args:
            image: Source image, shared read-only by the jobs
            quality: Quality scalar, 0.0 (smallest) to 1.0 (best)

        Returns:
            The new generation id
        """
        if not 0.0 <= quality <= 1.0:
            raise ValueError(f"quality must be 0.0-1.0, got {quality}")

        source_error = self._load_source(image)

        with self._lock:
            if self._closed:
                raise RuntimeError("Runner has been shut down")

            cancelled = self._cancel_jobs_locked()
            self._generation += 1
            generation = self._generation

            self._jobs = [
                EncodeJob(encoder, image, quality, generation, source_error)
                for encoder in self._encoders
            ]
            self._futures = [future for future in self._futures if not future.done()]
            for job in self._jobs:
                job.future = self._executor.submit(self._run_job, job)
                self._futures.append(job.future)

        log(
            f"Runner: generation {generation} submitted at quality {quality:.2f} "
            f"({', '.join(self.formats)}), {cancelled} job(s) cancelled"
        )
        return generation

    def cancel_all(self) -> int:
        """
        Cancel every outstanding job without submitting new ones

        Returns:
            Number of jobs cancelled
        """
        with self._lock:
            cancelled = self._cancel_jobs_locked()
        if cancelled:
            log(f"Runner: cancelled {cancelled} job(s)")
        return cancelled

    def shutdown(self, wait: bool = True):
        """
        Cancel outstanding jobs and stop the worker pool

        Must not be called from the completion sink when waiting on the
        default delivery thread.
        """
        with self._lock:
            if self._closed:
                return
            self._cancel_jobs_locked()
            self._closed = True

        self._executor.shutdown(wait=wait, cancel_futures=True)
        if self._delivery_executor is not None:
            self._delivery_executor.shutdown(wait=wait)
        log("Runner: shut down")

    def _load_source(self, image: Image.Image) -> Optional[Exception]:
        """Decode the source once; the error is reported by every job"""
        if not isinstance(image, Image.Image):
            return None
        try:
            image.load()
        except (OSError, ValueError, SyntaxError) as ex:
            log(f"Runner: source image could not be decoded: {ex}")
            return ex
        return None

    def _cancel_jobs_locked(self) -> int:
        count = len(self._jobs)
        for job in self._jobs:
            job.cancel()
        self._jobs = []
        return count

    def _is_current(self, job: EncodeJob) -> bool:
        return (
            not self._closed
            and not job.is_cancelled
            and job.generation == self._generation
        )

    def _drop(self, job: EncodeJob, stage: str):
        """Discard a stale job silently (not an error)"""
        job.cancel()
        if job in self._jobs:
            self._jobs.remove(job)
        log(f"Runner: dropped stale {job.format_name} job of generation {job.generation} {stage}")

    def _run_job(self, job: EncodeJob):
        """Worker thread body for one job"""
        with self._lock:
            if not self._is_current(job):
                self._drop(job, "before encode")
                return
            job.state = JobState.RUNNING

        result = self._encode(job)

        with self._lock:
            if not self._is_current(job):
                self._drop(job, "after encode")
                return

        try:
            self._dispatch(lambda: self._deliver(job, result))
        except RuntimeError:
            # Delivery context already shut down
            with self._lock:
                if self._closed:
                    self._drop(job, "at shutdown")
                    return
            raise

    def _encode(self, job: EncodeJob) -> EncodeResult:
        """Time and run the encoder, turning every outcome into a result"""
        started = timing.now()
        queued = max(0.0, started - job.submitted_at)

        if job.source_error is not None:
            error = InvalidSourceError(
                job.format_name, f"Source pixels could not be read: {job.source_error}"
            )
            return EncodeFailure(job.format_name, job.generation, error)

        try:
            encoded = job.encoder.encode(job.image, job.quality)
        except EncodeError as ex:
            log(f"Runner: {job.format_name} failed ({ex.kind.value}): {ex}")
            return EncodeFailure(job.format_name, job.generation, ex)
        except Exception as ex:
            log(f"Runner: unexpected {type(ex).__name__} in {job.format_name} encoder: {ex}")
            for line in traceback.format_exc().split('\n'):
                if line.strip():
                    log(f"    {line}")
            error = EncodeFailedError(job.format_name, f"Unexpected {type(ex).__name__}: {ex}")
            return EncodeFailure(job.format_name, job.generation, error)

        result = EncodeSuccess(
            format=job.format_name,
            generation=job.generation,
            encoded_bytes=encoded,
            elapsed=timing.elapsed_since(started),
            quality=job.quality,
            queued=queued,
        )

        if self._calculate_ssim and not job.is_cancelled:
            result = replace(result, ssim_score=self._measure_ssim(job, encoded))
        return result

    def _measure_ssim(self, job: EncodeJob, encoded: bytes) -> Optional[float]:
        try:
            return calculate_ssim_inmemory(job.image, decode_bytes(encoded))
        except Exception as ex:
            log(f"Runner: SSIM skipped for {job.format_name} ({type(ex).__name__}): {ex}")
            return None

    def _deliver(self, job: EncodeJob, result: EncodeResult):
        """Runs on the delivery context"""
        with self._lock:
            if not self._is_current(job):
                self._drop(job, "before delivery")
                return

            job.state = JobState.COMPLETED
            self._jobs.remove(job)

            # Sink runs under the lock; no submit() lands between check and call
            try:
                self._sink(result)
            except Exception as ex:
                log(f"Runner: completion sink error ({type(ex).__name__}): {ex}")
