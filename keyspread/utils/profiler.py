"""
Client-side profiling for driver runs.

The store reports its own latencies; this captures what the load generator
itself costs while it runs:
- Wall-clock time (perf_counter)
- Client CPU usage (psutil)
- Peak RSS and peak OS thread count, sampled in the background

Usage:
    from keyspread.utils.profiler import profile_block

    with profile_block("driver") as stats:
        driver.run()

    print(stats.duration_seconds, stats.peak_rss_bytes, stats.peak_threads)
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    label: str
    duration_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None
    peak_threads: Optional[int] = None
    cpu_percent: Optional[float] = None
    samples: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "duration_seconds": round(self.duration_seconds, 3),
            "peak_rss_bytes": self.peak_rss_bytes,
            "peak_threads": self.peak_threads,
            "cpu_percent": round(self.cpu_percent, 1) if self.cpu_percent is not None else None,
            "samples": self.samples,
        }


class _Sampler(threading.Thread):
    """Polls the process until stopped, keeping the maxima."""

    def __init__(self, process: psutil.Process, label: str, interval: float) -> None:
        super().__init__(name=f"profiler-{label}", daemon=True)
        self._process = process
        self._interval = interval
        self._stop_event = threading.Event()
        self.peak_rss = 0
        self.peak_threads = 0
        self.samples = 0

    def sample(self) -> None:
        with self._process.oneshot():
            self.peak_rss = max(self.peak_rss, self._process.memory_info().rss)
            self.peak_threads = max(self.peak_threads, self._process.num_threads())
        self.samples += 1

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sample()
            except psutil.Error:
                return
            self._stop_event.wait(self._interval)

    def stop(self) -> None:
        self._stop_event.set()
        self.join(timeout=1.0)


@contextlib.contextmanager
def profile_block(label: str, sample_interval_ms: int = 50) -> Generator[ProfileStats, None, None]:
    """
    Profile the enclosed block.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        Interval between RSS / thread-count samples.

    Notes
    -----
    Workers allocate a batch of records between flushes and release it right
    after, so a single reading at the end would miss the peak.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    sampler = _Sampler(process, label, sample_interval_ms / 1000.0)
    sampler.sample()
    process.cpu_percent(interval=None)  # primes the counter
    sampler.start()

    start = time.perf_counter()
    try:
        yield stats
    finally:
        stats.duration_seconds = time.perf_counter() - start
        sampler.stop()
        stats.cpu_percent = process.cpu_percent(interval=None)
        stats.peak_rss_bytes = sampler.peak_rss or None
        stats.peak_threads = sampler.peak_threads or None
        stats.samples = sampler.samples


__all__ = ["ProfileStats", "profile_block"]
