"""Row-band scheduler: fan frame synthesis out across worker processes.

Orchestrates the parallel render:
1. Partition the image rows into one contiguous band per worker
2. Allocate a shared-memory frame buffer and hand its name to every worker
3. Each worker attaches the buffer and renders only its own rows
4. Join every worker, check each exit status, copy the finished frame out
5. Release the shared segment (also when the render failed)

Notes
-----
Workers never take locks: the bands are pairwise disjoint and cover
[0, height) exactly, so no two processes ever write the same byte. The
join is the only ordering guarantee. All writes happen before the
coordinator reads the buffer.

A worker reports its fate only through its exit status:

    0                    ok
    EXIT_ATTACH_FAILED   could not attach the shared buffer
    other > 0            uncaught exception while rendering
    < 0                  killed by a signal
    (still running)      past ``worker_timeout_s``; terminated

Any status other than ``ok`` fails the whole render with ``RenderError``.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import sys
import time
from dataclasses import dataclass, field, replace
from multiprocessing import shared_memory
from typing import Callable

import numpy as np

from tracer_core.constants import RenderConfig, hash_array
from tracer_core.frame import synthesize, synthesize_rows
from tracer_core.sampler import resolve_seed

logger = logging.getLogger(__name__)

EXIT_ATTACH_FAILED: int = 3

STATUS_OK = "ok"
STATUS_ATTACH_FAILED = "attach_failed"
STATUS_CRASHED = "crashed"
STATUS_KILLED = "killed"
STATUS_TIMEOUT = "timeout"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SharedBufferError(RuntimeError):
    """The shared frame buffer could not be allocated or attached."""


class RenderError(RuntimeError):
    """One or more workers did not complete their row band.

    Attributes
    ----------
    failures : list[WorkerOutcome]
        Outcomes of every failed worker, in worker order.
    """

    def __init__(self, failures: list["WorkerOutcome"]) -> None:
        self.failures = failures
        details = "; ".join(f.describe() for f in failures)
        super().__init__(
            f"Render failed: {len(failures)} worker(s) did not finish ({details})"
        )


# ---------------------------------------------------------------------------
# Partitioning
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RowBand:
    """Half-open row range [start, end) owned by one worker."""

    index: int
    start: int
    end: int

    @property
    def num_rows(self) -> int:
        return self.end - self.start


def partition_rows(height: int, worker_count: int) -> list[RowBand]:
    """Split [0, height) into one contiguous band per worker.

    Every worker gets ``height // worker_count`` rows; the last worker also
    takes the ``height % worker_count`` remainder rows. When there are more
    workers than rows the worker count is reduced to ``height`` so that no
    band is empty.

    Parameters
    ----------
    height : int
        Number of image rows.
    worker_count : int
        Requested number of workers.

    Returns
    -------
    list[RowBand]
        Disjoint bands in row order whose union is [0, height).

    Raises
    ------
    ValueError
        If ``height`` or ``worker_count`` is below 1.
    """
    if height < 1:
        raise ValueError(f"height must be >= 1, got {height}")
    if worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")

    if worker_count > height:
        logger.warning(
            "worker_count=%d exceeds height=%d; using %d workers",
            worker_count, height, height,
        )
        worker_count = height

    rows_per_worker = height // worker_count
    bands = []
    for k in range(worker_count):
        start = k * rows_per_worker
        end = height if k == worker_count - 1 else start + rows_per_worker
        bands.append(RowBand(index=k, start=start, end=end))

    if height % worker_count:
        logger.debug(
            "Band %d absorbs %d remainder row(s)", worker_count - 1, height % worker_count
        )
    return bands


# ---------------------------------------------------------------------------
# Outcomes & Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkerOutcome:
    """Exit record of one worker.

    Attributes
    ----------
    band : RowBand
        Rows the worker was responsible for.
    exitcode : int or None
        Process exit code (None if it had to be terminated and never
        reported one).
    status : str
        'ok', 'attach_failed', 'crashed', 'killed' or 'timeout'.
    """

    band: RowBand
    exitcode: int | None
    status: str

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def describe(self) -> str:
        return (
            f"worker {self.band.index} rows [{self.band.start}, {self.band.end}): "
            f"{self.status} (exitcode={self.exitcode})"
        )


def classify_exit(exitcode: int | None, timed_out: bool = False) -> str:
    """Map a worker exit code to an outcome status."""
    if timed_out:
        return STATUS_TIMEOUT
    if exitcode == 0:
        return STATUS_OK
    if exitcode == EXIT_ATTACH_FAILED:
        return STATUS_ATTACH_FAILED
    if exitcode is not None and exitcode < 0:
        return STATUS_KILLED
    return STATUS_CRASHED


@dataclass
class RenderResult:
    """A completed frame and how it was produced.

    Attributes
    ----------
    buffer : np.ndarray
        Flat RGB frame. Shape: (width * height * 3,), dtype uint8.
    width, height : int
        Frame size.
    outcomes : list[WorkerOutcome]
        One outcome per worker (empty for a sequential render).
    metadata : dict
        Mode, seed, sampling settings, timing and buffer hash.
    """

    buffer: np.ndarray
    width: int
    height: int
    outcomes: list[WorkerOutcome] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @property
    def image(self) -> np.ndarray:
        """(height, width, 3) view of the buffer."""
        return self.buffer.reshape(self.height, self.width, 3)


# ---------------------------------------------------------------------------
# Worker side
# ---------------------------------------------------------------------------


def _attach_shared_memory(name: str) -> shared_memory.SharedMemory:
    """Attach an existing segment without handing it to the resource tracker."""
    if sys.version_info >= (3, 13):
        return shared_memory.SharedMemory(name=name, create=False, track=False)
    return shared_memory.SharedMemory(name=name, create=False)


def render_band(
    shm_name: str,
    width: int,
    height: int,
    band: RowBand,
    config: RenderConfig,
    seed: int,
) -> None:
    """Render one row band straight into the shared frame buffer.

    Parameters
    ----------
    shm_name : str
        Name of the shared frame segment.
    width, height : int
        Full frame size.
    band : RowBand
        Rows to render.
    config : RenderConfig
        Render configuration.
    seed : int
        Resolved root seed shared by all workers.

    Raises
    ------
    SharedBufferError
        If the segment does not exist or is too small for the frame.
    """
    try:
        shm = _attach_shared_memory(shm_name)
    except (FileNotFoundError, OSError, ValueError) as exc:
        raise SharedBufferError(f"cannot attach shared buffer {shm_name!r}: {exc}") from exc

    try:
        nbytes = width * height * 3
        if shm.size < nbytes:
            raise SharedBufferError(
                f"shared buffer {shm_name!r} holds {shm.size} bytes, need {nbytes}"
            )
        frame = np.ndarray((height, width, 3), dtype=np.uint8, buffer=shm.buf)
        try:
            synthesize_rows(frame, band.start, band.end, config, seed)
        finally:
            del frame
    finally:
        shm.close()


def _worker_main(
    worker_fn: Callable[..., None],
    shm_name: str,
    width: int,
    height: int,
    band: RowBand,
    config: RenderConfig,
    seed: int,
    log_level: int,
) -> None:
    """Process entry point: run ``worker_fn`` and translate errors to exit codes."""
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=log_level,
            format="%(name)s [%(levelname)s] %(message)s",
            stream=sys.stdout,
        )

    logger.debug("Worker %d: rows [%d, %d)", band.index, band.start, band.end)
    t0 = time.perf_counter()
    try:
        worker_fn(shm_name, width, height, band, config, seed)
    except SharedBufferError as exc:
        logger.error("Worker %d: %s", band.index, exc)
        sys.exit(EXIT_ATTACH_FAILED)
    logger.debug(
        "Worker %d finished %d rows in %.2f s",
        band.index, band.num_rows, time.perf_counter() - t0,
    )


# ---------------------------------------------------------------------------
# Coordinator side
# ---------------------------------------------------------------------------


class ParallelRenderer:
    """Renders a frame with one worker process per row band.

    Parameters
    ----------
    config : RenderConfig
        Render configuration (sampling, march limits, worker pool).
    worker_fn : callable, optional
        Band renderer run inside each worker. Default: ``render_band``.
        Must be a module-level function when the start method pickles
        its targets ('spawn', 'forkserver').
    """

    def __init__(
        self,
        config: RenderConfig,
        worker_fn: Callable[..., None] | None = None,
    ) -> None:
        self._config = config
        self._worker_fn = worker_fn if worker_fn is not None else render_band
        self._ctx = mp.get_context(config.parallel.start_method)

        logger.info(
            "ParallelRenderer initialized: workers=%d, start_method=%s, timeout=%s",
            config.parallel.worker_count,
            self._ctx.get_start_method(),
            config.parallel.worker_timeout_s,
        )

    def render(self, width: int | None = None, height: int | None = None) -> RenderResult:
        """Render the frame across worker processes.

        Parameters
        ----------
        width, height : int, optional
            Frame size. Default: from the configuration.

        Returns
        -------
        RenderResult
            The completed frame (a private copy) and per-worker outcomes.

        Raises
        ------
        RenderError
            If any worker failed; the frame is discarded.
        SharedBufferError
            If the shared frame buffer cannot be allocated.
        """
        cfg = self._config
        width = cfg.frame.width if width is None else int(width)
        height = cfg.frame.height if height is None else int(height)
        if width < 1:
            raise ValueError(f"width must be >= 1, got {width}")

        bands = partition_rows(height, cfg.parallel.worker_count)
        seed = resolve_seed(cfg.sampler.seed)
        nbytes = width * height * 3

        logger.info(
            "Rendering %dx%d with %d workers (N=%d, strategy=%s, seed=%d)",
            width, height, len(bands),
            cfg.sampler.num_samples, cfg.sampler.strategy, seed,
        )
        wall_start = time.perf_counter()

        try:
            shm = shared_memory.SharedMemory(create=True, size=nbytes)
        except OSError as exc:
            raise SharedBufferError(
                f"cannot allocate shared buffer of {nbytes} bytes: {exc}"
            ) from exc
        logger.debug("Allocated shared buffer %s (%d bytes)", shm.name, nbytes)
        processes: list = []
        flat = None
        try:
            flat = np.ndarray((nbytes,), dtype=np.uint8, buffer=shm.buf)
            flat[:] = 0

            log_level = logging.getLogger().getEffectiveLevel()
            for band in bands:
                p = self._ctx.Process(
                    target=_worker_main,
                    args=(
                        self._worker_fn, shm.name, width, height,
                        band, cfg, seed, log_level,
                    ),
                    name=f"band-worker-{band.index}",
                )
                p.start()
                processes.append(p)

            outcomes = self._join(processes, bands)

            failures = [o for o in outcomes if not o.ok]
            if failures:
                for f in failures:
                    logger.error("Render failure: %s", f.describe())
                raise RenderError(failures)

            buffer = flat.copy()
        finally:
            # The view must be gone before the segment can be closed.
            flat = None
            for p in processes:
                if p.is_alive():
                    p.terminate()
                    p.join()
            shm.close()
            shm.unlink()
            logger.debug("Released shared buffer %s", shm.name)

        wall_elapsed = time.perf_counter() - wall_start
        logger.info("Parallel render complete: %.2f s wall time", wall_elapsed)

        return RenderResult(
            buffer=buffer,
            width=width,
            height=height,
            outcomes=outcomes,
            metadata=_build_metadata(
                cfg, width, height, seed, "parallel", len(bands), wall_elapsed, buffer,
            ),
        )

    def _join(self, processes: list, bands: list[RowBand]) -> list[WorkerOutcome]:
        """Wait for every worker (up to the configured deadline) and classify it."""
        timeout = self._config.parallel.worker_timeout_s
        deadline = None if timeout is None else time.monotonic() + timeout

        outcomes: list[WorkerOutcome] = []
        for p, band in zip(processes, bands):
            if deadline is None:
                p.join()
            else:
                p.join(max(0.0, deadline - time.monotonic()))

            timed_out = p.is_alive()
            if timed_out:
                logger.warning(
                    "Worker %d still running at the %.1f s deadline; terminating",
                    band.index, timeout,
                )
                p.terminate()
                p.join()

            outcome = WorkerOutcome(
                band=band,
                exitcode=p.exitcode,
                status=classify_exit(p.exitcode, timed_out),
            )
            logger.debug("Joined %s", outcome.describe())
            outcomes.append(outcome)

        return outcomes


def render_parallel(
    width: int,
    height: int,
    worker_count: int,
    config: RenderConfig,
) -> np.ndarray:
    """Render a frame with ``worker_count`` processes and return its buffer.

    Raises
    ------
    RenderError
        If any worker failed.
    """
    cfg = replace(config, parallel=replace(config.parallel, worker_count=int(worker_count)))
    return ParallelRenderer(cfg).render(width, height).buffer


def render_sequential(
    config: RenderConfig,
    width: int | None = None,
    height: int | None = None,
) -> RenderResult:
    """Render the frame in the calling process."""
    width = config.frame.width if width is None else int(width)
    height = config.frame.height if height is None else int(height)
    seed = resolve_seed(config.sampler.seed)

    wall_start = time.perf_counter()
    buffer = synthesize(width, height, config, seed=seed)
    wall_elapsed = time.perf_counter() - wall_start

    return RenderResult(
        buffer=buffer,
        width=width,
        height=height,
        metadata=_build_metadata(
            config, width, height, seed, "sequential", 1, wall_elapsed, buffer,
        ),
    )


def _build_metadata(
    config: RenderConfig,
    width: int,
    height: int,
    seed: int,
    mode: str,
    worker_count: int,
    wall_time_s: float,
    buffer: np.ndarray,
) -> dict:
    """Describe a finished render for logging and persistence."""
    return {
        "mode": mode,
        "width": width,
        "height": height,
        "worker_count": worker_count,
        "seed": seed,
        "num_samples": config.sampler.num_samples,
        "strategy": config.sampler.strategy,
        "intensity_overflow": config.frame.intensity_overflow,
        "max_steps": config.march.max_steps,
        "max_distance": config.march.max_distance,
        "epsilon": config.march.epsilon,
        "wall_time_s": wall_time_s,
        "buffer_sha256": hash_array(buffer),
    }
