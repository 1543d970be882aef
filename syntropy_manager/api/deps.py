"""
Service wiring for the HTTP layer and the response envelope helpers.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request

from ..backups import ConfigService, FileBackupStore
from ..config import Settings
from ..factory import ConfigFactory
from ..history import SetupHistory
from ..host import HostInspector, SystemHostInspector
from ..models import ErrorDetail
from ..service import FileServiceInstaller
from ..setup import SetupOrchestrator
from ..templates import TemplateProvider
from ..utils import Clock, utc_now
from ..validation import ValidationService


@dataclass
class Services:
    settings: Settings
    validation: ValidationService
    configs: ConfigService
    setup: SetupOrchestrator
    templates: TemplateProvider


def build_services(
    settings: Settings,
    host: Optional[HostInspector] = None,
    clock: Clock = utc_now,
) -> Services:
    host = host or SystemHostInspector(settings.connectivity_url, settings.command_timeout)
    factory = ConfigFactory(clock)
    history = SetupHistory(settings.logs_dir / "setup_history.jsonl", clock)
    configs = ConfigService(factory, FileBackupStore(settings.backups_dir), history, clock, home_dir=settings.home_dir)
    orchestrator = SetupOrchestrator(
        settings, host, configs, history, FileServiceInstaller(host.os_name()), clock, factory,
    )
    return Services(
        settings=settings,
        validation=ValidationService(settings, host, clock),
        configs=configs,
        setup=orchestrator,
        templates=TemplateProvider(),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def tag_request(request: Request, interface: str, user_id: str = "") -> None:
    """Attach request metadata picked up by the access log."""
    request.state.interface = interface
    request.state.user_id = user_id


def envelope(key: Optional[str] = None, payload: Any = None, message: str = "", code: int = 200, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": code < 400}
    if key is not None:
        body[key] = payload
    body.update(extra)
    body["message"] = message
    body["code"] = code
    return body


def error_envelope(code: str, message: str, status: int, details: str = "", field: str = "", **extra: Any) -> Dict[str, Any]:
    error = ErrorDetail(code=code, message=message, details=details, field=field)
    body: Dict[str, Any] = {"success": False, "error": error.model_dump()}
    body.update(extra)
    body["message"] = message
    body["code"] = status
    return body
