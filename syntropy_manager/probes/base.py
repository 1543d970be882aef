"""
Shared probe plumbing: the fragment a probe returns and the finding constructor.
"""
import threading
from typing import Any, List, Optional, Protocol

from pydantic import BaseModel, Field

from ..models import (
    AutoFixInfo,
    Category,
    Compatibility,
    Dependency,
    EnvironmentInfo,
    PerformanceCheck,
    Risk,
    SecurityCheck,
    Severity,
    SystemResources,
    ValidationItem,
    ValidationRequest,
)
from ..utils import Clock


class ValidationFragment(BaseModel):
    """What a single probe produced. Merged into the shared result by the aggregator."""
    probe: str
    items: List[ValidationItem] = Field(default_factory=list)
    environment: Optional[EnvironmentInfo] = None
    resources: Optional[SystemResources] = None
    compatibility: Optional[Compatibility] = None
    security: Optional[SecurityCheck] = None
    performance: Optional[PerformanceCheck] = None
    features: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)
    dependencies: List[Dependency] = Field(default_factory=list)
    cancelled: bool = False

    def add(self, item: ValidationItem) -> None:
        self.items.append(item)

    @property
    def errors(self) -> List[ValidationItem]:
        return [i for i in self.items if i.severity.is_blocking]


class Probe(Protocol):
    name: str

    def run(self, request: ValidationRequest, cancel: threading.Event) -> ValidationFragment: ...


def auto_fix(
    command: str = "",
    manual: str = "",
    script: str = "",
    risk: Risk = Risk.LOW,
    backup: bool = False,
) -> AutoFixInfo:
    return AutoFixInfo(available=True, command=command, manual=manual, script=script, risk=risk, backup=backup)


def finding(
    clock: Clock,
    code: str,
    message: str,
    severity: Severity,
    category: Category,
    *,
    field: Optional[str] = None,
    expected: Any = None,
    actual: Any = None,
    suggestion: str = "",
    fix: Optional[AutoFixInfo] = None,
) -> ValidationItem:
    return ValidationItem(
        code=code,
        message=message,
        severity=severity,
        category=category,
        field=field,
        expected=expected,
        actual=actual,
        suggestion=suggestion,
        fixable=fix is not None,
        auto_fix=fix,
        timestamp=clock(),
    )


def request_os(request: ValidationRequest, host_os_name: str) -> str:
    """The OS under inspection: the snapshot's when one was sent, else the host's."""
    if request.environment is not None and request.environment.os:
        return request.environment.os.lower()
    return host_os_name
