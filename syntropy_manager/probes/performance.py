"""
Performance probe: synthetic micro-benchmarks, a weighted overall score and
resource sufficiency checks.

Every benchmark scores on [0, 100] as 100 - duration_ms / W, clamped.
"""
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional

from .. import crypto
from ..errors import CryptoError
from ..host import HostInspector
from ..models import (
    Benchmark,
    Category,
    PerformanceCheck,
    Risk,
    Severity,
    SystemResources,
    ValidationRequest,
)
from ..utils import Clock, secure_temp_dir, utc_now
from .base import ValidationFragment, auto_fix, finding

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

CPU_WEIGHT_MS = 10.0
MEMORY_WEIGHT_MS = 5.0
DISK_WEIGHT_MS = 2.0
NETWORK_WEIGHT_MS = 1.0
CONCURRENT_WEIGHT_MS = 2.0
DATA_WEIGHT_MS = 5.0
ENCRYPTION_WEIGHT_MS = 1.0

PRIME_LIMIT = 10_000
MEMORY_BUFFERS = 100
DISK_BYTES = 4 * MIB
CONCURRENT_TASKS = 10
DATA_POINTS = 100_000
SIMULATED_RTT_MS = 20.0

SCORE_WEIGHTS = {"cpu": 0.30, "memory": 0.25, "disk": 0.25, "network": 0.20}
LOW_SCORE = 50.0
OPTIMIZE_SCORE = 70.0

MIN_CPU_CORES = 2
MIN_MEMORY_GB = 4.0
MIN_AVAILABLE_MEMORY_GB = 1.0

GENERAL_OPTIMIZATIONS = [
    "Close unnecessary applications and services",
    "Optimize system startup programs",
    "Regularly clean up temporary files",
    "Monitor system resource usage",
]


class Component(NamedTuple):
    key: str
    code: str
    label: str
    optimization: str
    manual: str


COMPONENTS = [
    Component("cpu", "LOW_CPU_PERFORMANCE", "CPU performance",
              "Consider upgrading CPU or optimizing CPU-intensive operations",
              "Reduce background CPU load"),
    Component("memory", "LOW_MEMORY_PERFORMANCE", "Memory performance",
              "Consider adding more RAM or optimizing memory usage",
              "Close memory-heavy applications"),
    Component("disk", "LOW_DISK_IO_PERFORMANCE", "Disk I/O performance",
              "Consider using SSD storage or optimizing disk I/O operations",
              "Move the home directory to faster storage"),
    Component("network", "LOW_NETWORK_PERFORMANCE", "Network performance",
              "Consider upgrading network hardware or optimizing network usage",
              "Check network connection and consider upgrading network hardware"),
]


def score(duration_ms: float, weight_ms: float) -> float:
    return max(0.0, min(100.0, 100.0 - duration_ms / weight_ms))


def primes_below(limit: int) -> List[int]:
    primes = []
    for n in range(2, limit):
        is_prime = True
        for p in primes:
            if p * p > n:
                break
            if n % p == 0:
                is_prime = False
                break
        if is_prime:
            primes.append(n)
    return primes


class PerformanceProbe:
    name = "performance"

    def __init__(
        self,
        host: HostInspector,
        clock: Clock = utc_now,
        network_url: str = "",
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.host = host
        self.clock = clock
        self.network_url = network_url
        self.timer = timer

    def run(self, request: ValidationRequest, cancel: threading.Event) -> ValidationFragment:
        fragment = ValidationFragment(probe=self.name)
        perf = PerformanceCheck()
        fragment.performance = perf
        fragment.resources = self._resources(fragment)

        core = (
            ("cpu", "CPU Performance", "CPU computation benchmark", CPU_WEIGHT_MS, self._cpu_workload),
            ("memory", "Memory Performance", "Memory allocation and access benchmark", MEMORY_WEIGHT_MS, self._memory_workload),
            ("disk", "Disk I/O Performance", "Disk write, fsync and read benchmark", DISK_WEIGHT_MS, self._disk_workload),
        )
        scores = {}
        for key, title, description, weight, workload in core:
            if cancel.is_set():
                fragment.cancelled = True
                return fragment
            bench = self._bench(title, description, weight, workload)
            perf.benchmarks.append(bench)
            scores[key] = bench.score

        if cancel.is_set():
            fragment.cancelled = True
            return fragment
        net = self._network_benchmark()
        perf.benchmarks.append(net)
        scores["network"] = net.score

        perf.cpu_performance = scores["cpu"]
        perf.memory_performance = scores["memory"]
        perf.disk_io_performance = scores["disk"]
        perf.network_performance = scores["network"]
        perf.overall_score = round(sum(scores[k] * w for k, w in SCORE_WEIGHTS.items()), 2)

        if not request.options.skip_optional:
            extras = (
                ("Concurrent Operations", "Test concurrent operation handling", CONCURRENT_WEIGHT_MS, self._concurrent_workload),
                ("Data Processing", "Test data processing capabilities", DATA_WEIGHT_MS, self._data_workload),
                ("Encryption Performance", "Test encryption/decryption performance", ENCRYPTION_WEIGHT_MS, self._encryption_workload),
            )
            for title, description, weight, workload in extras:
                if cancel.is_set():
                    fragment.cancelled = True
                    break
                perf.benchmarks.append(self._bench(title, description, weight, workload))

        for comp in COMPONENTS:
            value = scores[comp.key]
            if value < LOW_SCORE:
                perf.bottlenecks.append(comp.label)
                fragment.add(finding(
                    self.clock, comp.code, f"{comp.label} score is low: {value:.1f}",
                    Severity.WARNING, Category.PERFORMANCE,
                    field=f"{comp.key}_performance", expected=f">= {LOW_SCORE:.1f}", actual=f"{value:.1f}",
                    fix=auto_fix(manual=comp.manual, risk=Risk.LOW),
                ))
            if value < OPTIMIZE_SCORE:
                perf.optimizations.append(comp.optimization)
        perf.optimizations.extend(GENERAL_OPTIMIZATIONS)

        logger.info("performance probe: overall=%.1f cpu=%.1f mem=%.1f disk=%.1f net=%.1f",
                    perf.overall_score, scores["cpu"], scores["memory"], scores["disk"], scores["network"])
        return fragment

    def _bench(self, title: str, description: str, weight: float, workload: Callable[[], float]) -> Benchmark:
        start = self.timer()
        try:
            throughput = workload()
        except (OSError, MemoryError, CryptoError) as e:
            logger.warning("benchmark %s failed: %s", title, e)
            return Benchmark(name=title, description=description, score=0.0,
                             duration=self.timer() - start, status="failed")
        elapsed = self.timer() - start
        return Benchmark(
            name=title,
            description=description,
            score=round(score(elapsed * 1000, weight), 2),
            duration=elapsed,
            throughput=throughput,
            latency=elapsed * 1000,
        )

    def _network_benchmark(self) -> Benchmark:
        title, description = "Network Performance", "Round-trip latency to the probe endpoint"
        if not self.network_url:
            rtt: Optional[float] = SIMULATED_RTT_MS
            description = "Simulated round-trip latency (no probe endpoint configured)"
        else:
            rtt = self.host.network_rtt_ms(self.network_url)
        if rtt is None:
            return Benchmark(name=title, description=description, score=0.0, duration=0.0, status="failed")
        return Benchmark(
            name=title,
            description=description,
            score=round(score(rtt, NETWORK_WEIGHT_MS), 2),
            duration=rtt / 1000,
            latency=rtt,
        )

    # Workloads return a throughput figure in units per second of their own choosing.

    def _cpu_workload(self) -> float:
        return float(len(primes_below(PRIME_LIMIT)))

    def _memory_workload(self) -> float:
        buffers = []
        for i in range(MEMORY_BUFFERS):
            buf = bytearray(MIB)
            buf[:] = bytes([i % 256]) * MIB
            buffers.append(buf)
        touched = sum(len(b) for b in buffers)
        return touched / MIB

    def _disk_workload(self) -> float:
        payload = os.urandom(DISK_BYTES)
        with secure_temp_dir(prefix="syntropy_perf_") as tmp:
            path = Path(tmp) / "bench.bin"
            with path.open("wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            data = path.read_bytes()
        if data != payload:
            raise OSError("disk benchmark read back different bytes")
        return DISK_BYTES / MIB

    def _concurrent_workload(self) -> float:
        def task(n: int) -> int:
            return sum(i * i for i in range(n * 1000))

        with ThreadPoolExecutor(max_workers=CONCURRENT_TASKS) as pool:
            results = list(pool.map(task, range(1, CONCURRENT_TASKS + 1)))
        return float(len(results))

    def _data_workload(self) -> float:
        data = list(range(DATA_POINTS, 0, -1))
        data.sort()
        evens = [x for x in data if x % 2 == 0]
        return float(len(evens))

    def _encryption_workload(self) -> float:
        crypto.aesgcm_encrypt(os.urandom(MIB), os.urandom(32))
        return 1.0

    def _resources(self, fragment: ValidationFragment) -> SystemResources:
        cores = self.host.cpu_count()
        total, available = self.host.memory_gb()
        res = SystemResources(
            cpu_cores=cores,
            cpu_model=self.host.cpu_model(),
            total_memory_gb=round(total, 2),
            available_mem_gb=round(available, 2),
            used_memory_gb=round(max(total - available, 0.0), 2) if total and available else 0.0,
            load_average=self.host.load_average(),
        )
        home = self.host.home_dir()
        if home is not None:
            try:
                res.disk_space_gb = round(self.host.disk_free_gb(home), 2)
                res.total_disk_space_gb = round(self.host.disk_total_gb(home), 2)
            except OSError as e:
                logger.warning("disk usage lookup failed: %s", e)

        if 0 < cores < MIN_CPU_CORES:
            fragment.add(finding(
                self.clock, "INSUFFICIENT_CPU_CORES",
                f"Only {cores} CPU cores available, recommended: {MIN_CPU_CORES}+",
                Severity.WARNING, Category.PERFORMANCE,
                field="cpu_cores", expected=f">= {MIN_CPU_CORES}", actual=cores,
            ))
        if 0 < total < MIN_MEMORY_GB:
            fragment.add(finding(
                self.clock, "INSUFFICIENT_MEMORY",
                f"Total memory is low: {total:.1f} GB, recommended: {MIN_MEMORY_GB:.0f}+ GB",
                Severity.WARNING, Category.PERFORMANCE,
                field="total_memory_gb", expected=f">= {MIN_MEMORY_GB:.1f} GB", actual=f"{total:.1f} GB",
            ))
        if 0 < available < MIN_AVAILABLE_MEMORY_GB:
            fragment.add(finding(
                self.clock, "LOW_AVAILABLE_MEMORY", f"Available memory is low: {available:.1f} GB",
                Severity.WARNING, Category.PERFORMANCE,
                field="available_mem_gb", expected=f">= {MIN_AVAILABLE_MEMORY_GB:.1f} GB", actual=f"{available:.1f} GB",
                fix=auto_fix(manual="Close unnecessary applications or add more RAM", risk=Risk.LOW),
            ))
        return res
