from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError

from ...errors import InvalidRequestError
from ...models import (
    BackupFilter,
    ConfigRequest,
    ConfigResponse,
    ConfigRestoreRequest,
    Pagination,
    SortOptions,
    ValidationResponse,
)
from ..deps import Services, envelope, get_services, tag_request

router = APIRouter(prefix="/config", tags=["config"])


@router.post("/generate")
def generate_config(payload: ConfigRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    config = services.configs.generate(payload)
    return ConfigResponse(config=config, metadata=config.metadata, message="Configuration generated successfully")


@router.post("/validate")
def validate_config(payload: ConfigRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    result = services.configs.validate(payload)
    return ValidationResponse(result=result, message="Configuration validated")


@router.post("/backup")
def backup_config(payload: ConfigRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    backup = services.configs.create_backup(payload)
    return envelope("backup", backup, message="Configuration backup created successfully")


@router.post("/restore")
def restore_config(payload: ConfigRestoreRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, "", payload.user_id)
    outcome = services.configs.restore(payload)
    message = "Dry run: configuration not written" if outcome.dry_run else "Configuration restored successfully"
    return envelope(
        "config", outcome.config,
        message=message,
        backup=outcome.backup,
        warnings=outcome.warnings,
        config_path=outcome.config_path,
        dry_run=outcome.dry_run,
    )


@router.get("/list")
def list_configs(
    interface: str = "",
    user_id: str = "",
    session_id: str = "",
    page: int = Query(1),
    page_size: int = Query(10),
    sort_field: str = "created_at",
    sort_order: str = "desc",
    services: Services = Depends(get_services),
):
    try:
        pagination = Pagination(page=page, page_size=page_size)
        sort = SortOptions(field=sort_field, order=sort_order)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid pagination or sort parameters: {e}") from e
    configs, total = services.configs.list_backups(
        BackupFilter(interface=interface, user_id=user_id, session_id=session_id), pagination, sort,
    )
    return envelope(
        "configs", configs,
        message=f"{total} configuration(s) found",
        pagination=pagination.model_copy(update={"total": total}),
        sort=sort,
    )


@router.get("/template")
def get_template(
    interface: str = Query(...),
    environment: str = Query(...),
    template: str = "",
    services: Services = Depends(get_services),
):
    found = services.templates.get(interface, environment, template or None)
    return envelope("template", found, message="Template retrieved successfully")
