"""
Validation aggregator: fans a ValidationRequest out to the probes and merges
their fragments into one ValidationResult.
"""
import concurrent.futures
import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import Settings
from .errors import InvalidRequestError, ProbeError, SyntropyError
from .host import HostInspector, SystemHostInspector
from .models import (
    Category,
    Compatibility,
    EnvironmentInfo,
    PerformanceCheck,
    Risk,
    SecurityCheck,
    Severity,
    SystemResources,
    ValidationItem,
    ValidationRequest,
    ValidationResult,
)
from .probes import (
    PROBE_ORDER,
    CompatibilityProbe,
    DependenciesProbe,
    EnvironmentProbe,
    PerformanceProbe,
    Probe,
    SecurityProbe,
    ValidationFragment,
)
from .probes.base import finding
from .utils import Clock, is_windows, utc_now

logger = logging.getLogger(__name__)

# Probes still running when the timeout fires get this long to notice the cancel event.
CANCEL_GRACE_SECONDS = 2.0

# Auto-fixes the service is allowed to apply by itself.
SAFE_FIX_CODES = ("HOME_DIR_NOT_WRITABLE",)


def _extend_unique(target: List[str], values: List[str]) -> None:
    for v in values:
        if v not in target:
            target.append(v)


class ValidationService:
    """Runs the probes sequentially or in parallel and aggregates their findings."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        host: Optional[HostInspector] = None,
        clock: Clock = utc_now,
        probes: Optional[Dict[str, Probe]] = None,
    ):
        self.settings = settings or Settings()
        self.host = host or SystemHostInspector(
            connectivity_url=self.settings.connectivity_url,
            command_timeout=self.settings.command_timeout,
        )
        self.clock = clock
        self.probes: Dict[str, Probe] = probes or {
            "environment": EnvironmentProbe(self.host, clock, home_dir=self.settings.home_dir),
            "security": SecurityProbe(self.host, clock),
            "performance": PerformanceProbe(self.host, clock, network_url=self.settings.network_probe_url),
            "compatibility": CompatibilityProbe(self.host, clock),
            "dependencies": DependenciesProbe(self.host, clock, command_timeout=self.settings.command_timeout),
        }

    # Public API

    def validate_all(self, request: ValidationRequest) -> ValidationResult:
        selected = self._select(request)
        return self._run(request, selected)

    def validate_category(self, name: str, request: ValidationRequest) -> ValidationResult:
        """Run a single probe; the result still carries every section."""
        if name not in self.probes:
            raise InvalidRequestError(f"Unknown validation category '{name}'.")
        return self._run(request, [name])

    def auto_fix(self, request: ValidationRequest) -> Tuple[ValidationResult, int]:
        """
        Validate, then apply the whitelisted low-risk fixes.
        Returns the result of the validation run and the number of fixes applied.
        """
        result = self.validate_all(request)
        fixed = 0
        for item in result.errors + result.warnings:
            if not item.fixable or item.auto_fix is None or item.auto_fix.risk != Risk.LOW:
                continue
            if item.code not in SAFE_FIX_CODES:
                continue
            if self._apply_fix(item, result):
                fixed += 1
        logger.info("auto-fix applied %d fix(es) for interface=%s user_id=%s",
                    fixed, request.interface.value, request.user_id)
        return result, fixed

    # Internals

    def _select(self, request: ValidationRequest) -> List[str]:
        opts = request.options
        include = {c.lower() for c in opts.categories}
        exclude = {c.lower() for c in opts.exclude_categories}
        names = []
        for name in PROBE_ORDER:
            if name not in self.probes:
                continue
            if include and name not in include:
                continue
            if name in exclude:
                continue
            names.append(name)
        return names

    def _skeleton(self, request: ValidationRequest) -> ValidationResult:
        return ValidationResult(
            environment=EnvironmentInfo(),
            resources=SystemResources(),
            compatibility=Compatibility(),
            security=SecurityCheck(),
            performance=PerformanceCheck(),
            timestamp=self.clock(),
            interface=request.interface.value,
        )

    def _run(self, request: ValidationRequest, names: List[str]) -> ValidationResult:
        start = time.perf_counter()
        result = self._skeleton(request)
        timeout = request.options.timeout or self.settings.probe_timeout
        cancel = threading.Event()
        lock = threading.Lock()
        timer = threading.Timer(timeout, cancel.set)
        timer.daemon = True
        timer.start()
        try:
            if request.options.parallel and len(names) > 1:
                self._run_parallel(request, names, result, cancel, lock, timeout)
            else:
                self._run_sequential(request, names, result, cancel, lock)
        finally:
            timer.cancel()

        if cancel.is_set():
            result.add(finding(
                self.clock, "VALIDATION_TIMEOUT", f"Validation did not complete within {timeout} seconds",
                Severity.WARNING, Category.PERFORMANCE,
                field="timeout", expected=timeout,
                suggestion="Increase options.timeout or skip optional checks",
            ))
        result.duration = time.perf_counter() - start
        result.seal()
        logger.info(
            "validation finished: probes=%s parallel=%s valid=%s errors=%d warnings=%d duration=%.2fs",
            ",".join(names), request.options.parallel, result.valid,
            len(result.errors), len(result.warnings), result.duration,
        )
        return result

    def _invoke(self, name: str, request: ValidationRequest, cancel: threading.Event) -> ValidationFragment:
        try:
            return self.probes[name].run(request, cancel)
        except SyntropyError:
            raise
        except Exception as e:
            logger.exception("%s probe raised", name)
            raise ProbeError(name, str(e)) from e

    def _run_sequential(self, request, names, result, cancel, lock) -> None:
        for name in names:
            if cancel.is_set():
                break
            fragment = self._invoke(name, request, cancel)
            with lock:
                self._merge(result, fragment)

    def _run_parallel(self, request, names, result, cancel, lock, timeout) -> None:
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="probe")
        futures = {pool.submit(self._invoke, name, request, cancel): name for name in names}
        merged = set()
        try:
            try:
                for future in concurrent.futures.as_completed(futures, timeout=timeout):
                    fragment = future.result()
                    with lock:
                        self._merge(result, fragment)
                    merged.add(future)
            except concurrent.futures.TimeoutError:
                cancel.set()
                remaining = [f for f in futures if f not in merged]
                done, pending = concurrent.futures.wait(remaining, timeout=CANCEL_GRACE_SECONDS)
                for future in done:
                    if future.exception() is None:
                        with lock:
                            self._merge(result, future.result())
                logger.warning("validation timed out after %ss; unfinished probes: %s",
                               timeout, ",".join(sorted(futures[f] for f in pending)) or "none")
        except SyntropyError:
            cancel.set()
            raise
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _merge(result: ValidationResult, fragment: ValidationFragment) -> None:
        for item in fragment.items:
            result.add(item)

        if fragment.environment is not None:
            # The environment probe owns the section; keep what other probes appended.
            env = fragment.environment.model_copy(deep=True)
            _extend_unique(env.features, result.environment.features)
            _extend_unique(env.capabilities, result.environment.capabilities)
            result.environment = env
        _extend_unique(result.environment.features, fragment.features)
        _extend_unique(result.environment.capabilities, fragment.capabilities)

        if fragment.compatibility is not None:
            compat = fragment.compatibility.model_copy(deep=True)
            compat.dependencies = result.compatibility.dependencies + compat.dependencies
            result.compatibility = compat
        result.compatibility.dependencies.extend(fragment.dependencies)

        if fragment.resources is not None:
            result.resources = fragment.resources
        if fragment.security is not None:
            result.security = fragment.security
        if fragment.performance is not None:
            result.performance = fragment.performance

    def _apply_fix(self, item: ValidationItem, result: ValidationResult) -> bool:
        if item.code == "HOME_DIR_NOT_WRITABLE":
            home = result.environment.home_dir or str(self.settings.home_dir)
            target = Path(home) / ".syntropy"
            try:
                target.mkdir(mode=0o700, parents=True, exist_ok=True)
                if not is_windows():
                    target.chmod(0o700)
            except OSError as e:
                logger.warning("auto-fix for %s failed: %s", item.code, e)
                return False
            logger.info("auto-fix: prepared %s", target)
            return True
        return False
