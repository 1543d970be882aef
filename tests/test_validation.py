import threading
from collections import Counter

import pytest
from hypothesis import given, settings, strategies as st

from syntropy_manager.config import Settings
from syntropy_manager.errors import InvalidRequestError, ProbeError
from syntropy_manager.models import (
    Category,
    EnvironmentInfo,
    InterfaceType,
    Risk,
    Severity,
    ValidationOptions,
    ValidationRequest,
)
from syntropy_manager.probes import ValidationFragment
from syntropy_manager.probes.base import auto_fix, finding
from syntropy_manager.validation import ValidationService

from .conftest import LINUX_TOOLS, FakeHost, fixed_clock, make_probes


def assert_result_invariants(result):
    assert result.valid == (len(result.errors) == 0)
    for item in result.errors:
        assert item.severity in (Severity.ERROR, Severity.CRITICAL)
    for item in result.warnings:
        assert item.severity in (Severity.INFO, Severity.WARNING)
    for item in result.errors + result.warnings:
        assert item.code and item.message
        if item.auto_fix is not None:
            assert item.auto_fix.command or item.auto_fix.script or item.auto_fix.manual
            assert item.auto_fix.risk in (Risk.LOW, Risk.MEDIUM, Risk.HIGH)


def code_counts(result):
    return Counter(i.code for i in result.errors + result.warnings)


class SlowProbe:
    name = "performance"

    def run(self, request, cancel):
        cancel.wait(5)
        return ValidationFragment(probe=self.name, cancelled=cancel.is_set())


class BrokenProbe:
    name = "security"

    def run(self, request, cancel):
        raise RuntimeError("entropy source exploded")


class StubEnvironmentProbe:
    name = "environment"

    def __init__(self, home):
        self.home = home

    def run(self, request, cancel):
        fragment = ValidationFragment(probe=self.name, environment=EnvironmentInfo(os="linux", home_dir=str(self.home)))
        fragment.add(finding(
            fixed_clock, "HOME_DIR_NOT_WRITABLE", "Cannot write", Severity.ERROR, Category.STORAGE,
            fix=auto_fix(command="chmod 755 ~/.syntropy", risk=Risk.LOW),
        ))
        fragment.add(finding(
            fixed_clock, "NON_ROOT_USER", "Not root", Severity.WARNING, Category.ENVIRONMENT,
            fix=auto_fix(command="sudo syntropy setup", risk=Risk.LOW),
        ))
        return fragment


def test_validate_all_fills_every_section(validation):
    result = validation.validate_all(ValidationRequest())
    assert_result_invariants(result)
    assert result.environment.os == "linux"
    assert result.security.key_generation
    assert result.performance.overall_score > 0
    assert result.resources.cpu_cores == 4
    assert len(result.compatibility.dependencies) == 7
    # Systemd is a high-severity known issue on every Linux host.
    assert "LINUX_SYSTEMD_REQUIRED" in [i.code for i in result.errors]
    assert not result.valid
    assert result.timestamp == fixed_clock()
    assert result.interface == "cli"

def test_validate_category_environment_for_windows_snapshot(validation):
    env = EnvironmentInfo(os="windows", architecture="amd64", home_dir="C:\\Users\\T",
                          has_admin_rights=True, available_disk_gb=50.0, has_internet=True)
    result = validation.validate_category("environment", ValidationRequest(environment=env))
    assert result.valid
    assert result.environment.os == "windows"
    assert result.errors == []
    # Sections of probes that did not run are still present.
    assert result.security is not None and result.security.key_generation is False

def test_unknown_category_is_rejected(validation):
    with pytest.raises(InvalidRequestError):
        validation.validate_category("astrology", ValidationRequest())

def test_category_whitelist_and_exclusions(validation):
    only = validation.validate_all(ValidationRequest(options=ValidationOptions(categories=["security"])))
    assert only.security.encryption_available
    assert only.environment.os == ""

    excluded = validation.validate_all(ValidationRequest(
        options=ValidationOptions(exclude_categories=["performance", "security", "dependencies"]),
    ))
    assert excluded.performance.benchmarks == []
    assert excluded.security.encryption_available is False
    assert excluded.environment.os == "linux"

def test_merge_keeps_features_from_every_probe(validation):
    result = validation.validate_all(ValidationRequest(options=ValidationOptions(
        parallel=True, exclude_categories=["performance", "security"],
    )))
    features = result.environment.features
    assert "linux_support" in features
    assert "cli_interface" in features
    assert "systemd_support" in features
    assert "command_line" in result.environment.capabilities
    assert "systemd_service" in result.environment.capabilities
    assert len(result.compatibility.dependencies) == 7
    assert result.compatibility.supported_os == ["windows", "linux", "darwin"]

def test_sequential_and_parallel_agree_on_findings(validation):
    sequential = validation.validate_all(ValidationRequest())
    parallel = validation.validate_all(ValidationRequest(options=ValidationOptions(parallel=True)))
    assert code_counts(sequential) == code_counts(parallel)
    assert sequential.valid == parallel.valid

@settings(max_examples=25, deadline=None)
@given(
    os_name=st.sampled_from(["", "linux", "windows", "darwin", "freebsd"]),
    interface=st.sampled_from(list(InterfaceType)),
    admin=st.booleans(),
    disk=st.floats(min_value=0, max_value=500, allow_nan=False),
    online=st.booleans(),
)
def test_sequential_parallel_equivalence(tmp_path_factory, os_name, interface, admin, disk, online):
    home = tmp_path_factory.mktemp("home")
    host = FakeHost(home, commands=LINUX_TOOLS, internet=online)
    svc_settings = Settings(home_dir=home)
    service = ValidationService(svc_settings, host, fixed_clock, probes=make_probes(host, svc_settings))
    env = None
    if os_name:
        env = EnvironmentInfo(os=os_name, architecture="amd64", has_admin_rights=admin,
                              available_disk_gb=disk, has_internet=online, home_dir=str(home))
    opts = dict(exclude_categories=["performance", "security"], skip_optional=not online)
    base = ValidationRequest(environment=env, interface=interface, options=ValidationOptions(**opts))
    par = ValidationRequest(environment=env, interface=interface, options=ValidationOptions(parallel=True, **opts))

    seq_result = service.validate_all(base)
    par_result = service.validate_all(par)
    assert_result_invariants(seq_result)
    assert_result_invariants(par_result)
    assert code_counts(seq_result) == code_counts(par_result)

@pytest.mark.parametrize("parallel", [False, True])
def test_timeout_keeps_finished_fragments(host, settings, parallel):
    probes = make_probes(host, settings)
    probes["performance"] = SlowProbe()
    service = ValidationService(settings, host, fixed_clock, probes=probes)
    request = ValidationRequest(options=ValidationOptions(
        timeout=1, parallel=parallel, categories=["environment", "performance"],
    ))
    result = service.validate_all(request)
    assert "VALIDATION_TIMEOUT" in [w.code for w in result.warnings]
    assert result.environment.os == "linux"
    assert result.duration < 5

@pytest.mark.parametrize("parallel", [False, True])
def test_probe_crash_is_wrapped(host, settings, parallel):
    probes = make_probes(host, settings)
    probes["security"] = BrokenProbe()
    service = ValidationService(settings, host, fixed_clock, probes=probes)
    request = ValidationRequest(options=ValidationOptions(parallel=parallel, categories=["environment", "security"]))
    with pytest.raises(ProbeError) as exc:
        service.validate_all(request)
    assert exc.value.probe == "security"
    assert exc.value.code == "VALIDATION_FAILED"

def test_auto_fix_applies_only_whitelisted_fixes(host, settings, home):
    service = ValidationService(settings, host, fixed_clock, probes={"environment": StubEnvironmentProbe(home)})
    result, fixed = service.auto_fix(ValidationRequest())
    assert fixed == 1
    target = home / ".syntropy"
    assert target.is_dir()
    assert target.stat().st_mode & 0o777 == 0o700
    assert {i.code for i in result.errors + result.warnings} == {"HOME_DIR_NOT_WRITABLE", "NON_ROOT_USER"}

def test_cancel_event_is_shared_with_probes(host, settings):
    seen = []

    class Recorder:
        name = "environment"

        def run(self, request, cancel):
            seen.append(isinstance(cancel, threading.Event) and not cancel.is_set())
            return ValidationFragment(probe=self.name)

    ValidationService(settings, host, fixed_clock, probes={"environment": Recorder()}).validate_all(ValidationRequest())
    assert seen == [True]
