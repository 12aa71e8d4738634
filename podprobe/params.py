"""
Query-string parsing for the probe endpoints.

Nothing in here ever rejects a request: a missing, malformed or out-of-range
value falls back to the endpoint default, so "default requested" and "bad
input" look the same to the caller.
"""

import os

from podprobe.load import LoadKind, LoadRequest

DEFAULT_DELAY_MS = 100
DEFAULT_CPU_MS = 1000
DEFAULT_CPU_PERCENT = 80
DEFAULT_MEM_MS = 2000
DEFAULT_MEM_MB = 1

TRUTHY = {'1', 'true', 'yes', 'on'}


def available_cores():
    """Logical cores this process may run on (affinity aware where supported)."""
    try:
        return len(os.sched_getaffinity(0))
    except AttributeError:
        return os.cpu_count() or 1


def int_arg(args, *names, default):
    """First parseable integer among ``names`` in ``args``, else ``default``."""
    for name in names:
        raw = args.get(name, '').strip()
        if not raw:
            continue
        try:
            return int(raw)
        except ValueError:
            continue
    return default


def is_async(args):
    return args.get('async', '').strip().lower() in TRUTHY


def delay_ms(args):
    ms = int_arg(args, 'ms', default=DEFAULT_DELAY_MS)
    return ms if ms >= 0 else DEFAULT_DELAY_MS


def cpu_request(args, cores_available=None):
    if cores_available is None:
        cores_available = available_cores()

    duration = int_arg(args, 'ms', default=DEFAULT_CPU_MS)
    if duration < 0:
        duration = DEFAULT_CPU_MS

    cores = int_arg(args, 'cores', default=cores_available)
    if cores <= 0:
        cores = cores_available
    cores = min(cores, cores_available)

    percent = int_arg(args, 'percent', default=DEFAULT_CPU_PERCENT)
    if not 0 < percent <= 100:
        percent = DEFAULT_CPU_PERCENT

    return LoadRequest(LoadKind.CPU, duration_ms=duration, cores=cores, percent=percent)


def memory_request(args):
    size = int_arg(args, 'mb', default=DEFAULT_MEM_MB)
    if size <= 0:
        size = DEFAULT_MEM_MB

    # older clients send the hold time as `duration`
    duration = int_arg(args, 'ms', 'duration', default=DEFAULT_MEM_MS)
    if duration < 0:
        duration = DEFAULT_MEM_MS

    return LoadRequest(LoadKind.MEMORY, duration_ms=duration, size_mib=size)
