"""
Synthetic CPU and memory load.

Both generators are plain blocking functions taking a ``LoadRequest`` and
returning a ``LoadResult``. ``submit`` runs either of them on a dedicated
thread and hands back a ``concurrent.futures.Future`` so a caller can wait
for the result or ``detach`` from it and only have the outcome logged.

CPU workers are separate processes so that each one really occupies a core;
the memory generator runs in the calling process since the point is to grow
this process's resident set.
"""

import ctypes
import ctypes.util
import enum
import gc
import logging
import multiprocessing
import random
import threading
import time
from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import dataclass
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

PERIOD_MS = 10
STEP_COUNT = 100
PAGE_SIZE = 4096
MIB = 1024 * 1024


class LoadKind(enum.Enum):
    CPU = 'cpu'
    MEMORY = 'memory'


@dataclass(frozen=True)
class LoadRequest:
    kind: LoadKind
    duration_ms: int
    cores: int = 1
    percent: int = 80
    size_mib: int = 1

    @property
    def ramp_ms(self):
        return self.duration_ms // 2

    @property
    def hold_ms(self):
        return self.duration_ms - self.ramp_ms

    def describe(self):
        if self.kind is LoadKind.CPU:
            return f'{self.cores} core(s) at {self.percent}% for {self.duration_ms}ms'
        return f'{self.size_mib} MiB for {self.duration_ms}ms'


@dataclass(frozen=True)
class LoadResult:
    request: LoadRequest
    elapsed_ms: int
    busy_ms: Optional[int] = None
    peak_rss_mib: Optional[float] = None
    allocated_mib: Optional[int] = None
    out_of_memory: bool = False

    @property
    def message(self):
        req = self.request
        if req.kind is LoadKind.CPU:
            return f'CPU test completed: {req.describe()}'
        if self.out_of_memory:
            return f'out of memory after allocating {self.allocated_mib} of {req.size_mib} MiB'
        if req.duration_ms == 0:
            return f'allocated {req.size_mib} MiB'
        return (f'allocated {req.size_mib} MiB over {req.ramp_ms} ms, '
                f'maintained for {req.hold_ms} ms')


def duty_cycle(duration_ms, percent, period_ms=PERIOD_MS, clock=time.monotonic, sleep=time.sleep):
    """Spin for ``percent`` of every period until the deadline.

    Returns the seconds spent spinning. The spin is timed against the clock
    rather than an iteration count so the duty cycle holds on any CPU.
    """
    period = period_ms / 1000.0
    work = period * percent / 100.0
    deadline = clock() + duration_ms / 1000.0
    busy = 0.0
    while clock() < deadline:
        start = clock()
        while clock() - start < work:
            _ = random.random() * random.random()
        busy += clock() - start
        if work < period:
            sleep(period - work)
    return busy


def _process_context():
    # the server is multi-threaded, forking it is not safe
    return multiprocessing.get_context('spawn')


def run_cpu_load(request):
    logger.info('CPU load starting: %s', request.describe())
    started = time.monotonic()
    with ProcessPoolExecutor(max_workers=request.cores, mp_context=_process_context()) as pool:
        workers = [
            pool.submit(duty_cycle, request.duration_ms, request.percent)
            for _ in range(request.cores)
        ]
        busy = sum(worker.result() for worker in workers)
    result = LoadResult(
        request,
        elapsed_ms=int((time.monotonic() - started) * 1000),
        busy_ms=int(busy * 1000),
    )
    logger.info('%s (busy %dms across workers)', result.message, result.busy_ms)
    return result


def touched(size):
    """A ``size`` byte buffer with one byte written per page."""
    block = bytearray(size)
    for i in range(0, size, PAGE_SIZE):
        block[i] = 1
    return block


def rss_mib():
    return psutil.Process().memory_info().rss / MIB


def release_memory():
    gc.collect()
    try:
        libc = ctypes.CDLL(ctypes.util.find_library('c') or 'libc.so.6')
        libc.malloc_trim(0)
    except (OSError, AttributeError):
        logger.debug('malloc_trim not available, freed pages stay with the allocator')


def run_memory_load(request, sleep=time.sleep):
    size = request.size_mib * MIB
    logger.info('Memory load starting: %s', request.describe())
    started = time.monotonic()

    blocks = []
    allocated = 0
    out_of_memory = False
    try:
        if request.duration_ms == 0:
            blocks.append(touched(size))
            allocated = size
            peak = rss_mib()
        else:
            step_size = size // STEP_COUNT
            step_sleep = request.ramp_ms / STEP_COUNT / 1000.0
            for step in range(STEP_COUNT):
                chunk = size - step_size * step if step == STEP_COUNT - 1 else step_size
                blocks.append(touched(chunk))
                allocated += chunk
                sleep(step_sleep)
            peak = rss_mib()
            logger.debug('ramp finished at %.1f MiB resident', peak)
            sleep(request.hold_ms / 1000.0)
    except MemoryError:
        out_of_memory = True
        peak = rss_mib()
        logger.warning('Memory load stopped after %d of %d MiB: out of memory',
                       allocated // MIB, request.size_mib)
    finally:
        blocks.clear()
        release_memory()

    result = LoadResult(
        request,
        elapsed_ms=int((time.monotonic() - started) * 1000),
        peak_rss_mib=round(peak, 1),
        allocated_mib=allocated // MIB,
        out_of_memory=out_of_memory,
    )
    logger.info('%s (peak rss %.1f MiB)', result.message, result.peak_rss_mib)
    return result


GENERATORS = {
    LoadKind.CPU: run_cpu_load,
    LoadKind.MEMORY: run_memory_load,
}


def run_load(request):
    return GENERATORS[request.kind](request)


def submit(fn, *args):
    """Run ``fn(*args)`` on its own daemon thread, returning a Future."""
    future = Future()

    def target():
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args))
        except Exception as exc:
            future.set_exception(exc)

    threading.Thread(target=target, name='podprobe-load', daemon=True).start()
    return future


def detach(future, request):
    """Stop caring about ``future``; its outcome only reaches the log."""

    def report(done):
        exc = done.exception()
        if exc is not None:
            logger.error('Background %s load failed: %s', request.kind.value, request.describe(),
                         exc_info=(type(exc), exc, exc.__traceback__))
            return
        logger.info('Background %s', done.result().message)

    future.add_done_callback(report)
