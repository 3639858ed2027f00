"""Process-level runtime statistics observed once per metrics window."""

import gc
import threading

import psutil

from apptelemetry.core.metrics import MetricEmitter


class RuntimeMetricsCollector:
    """Metric callback that records process memory, CPU, threads and GC.

    Usage:
        collector = RuntimeMetricsCollector()
        metric_emitter.register_callback(collector)
    """

    def __init__(self, process: psutil.Process | None = None) -> None:
        self._process = process or psutil.Process()
        self._cpu_count = psutil.cpu_count() or 1
        # The first cpu_percent() call always returns 0.0; prime it.
        self._process.cpu_percent(interval=None)

    def __call__(self, metrics: MetricEmitter) -> None:
        with self._process.oneshot():
            memory = self._process.memory_info()
            cpu_percent = self._process.cpu_percent(interval=None)
            num_threads = self._process.num_threads()

        metrics.set_gauge("process.runtime.memory.rss", float(memory.rss))
        metrics.set_gauge("process.runtime.memory.vms", float(memory.vms))
        metrics.set_gauge(
            "process.runtime.cpu.utilization", cpu_percent / 100.0 / self._cpu_count
        )
        metrics.set_gauge("process.runtime.thread_count", float(num_threads))
        metrics.set_gauge(
            "process.runtime.python.thread_count", float(threading.active_count())
        )
        for generation, stats in enumerate(gc.get_stats()):
            metrics.set_gauge(
                "process.runtime.gc.count",
                float(stats["collections"]),
                {"generation": str(generation)},
            )
