from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ...models import ErrorDetail, SetupRequest, SetupResponse, ValidationResponse
from ..deps import Services, envelope, get_services, tag_request

router = APIRouter(prefix="/setup", tags=["setup"])


@router.post("/execute")
def execute_setup(payload: SetupRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    result = services.setup.execute_setup(payload)
    if not result.success:
        body = SetupResponse(
            success=False,
            result=result,
            error=ErrorDetail(
                code="SETUP_FAILED",
                message=result.error or result.message,
                details=result.failed_step or "",
            ),
            message=result.message,
            code=500,
        )
        return JSONResponse(status_code=500, content=jsonable_encoder(body))
    return SetupResponse(result=result, message=result.message)


@router.post("/validate")
def validate_setup(payload: SetupRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    result = services.setup.validate_setup(payload)
    return ValidationResponse(result=result, message="Setup validated")


@router.get("/status")
def setup_status(
    interface: str = Query(...),
    user_id: str = "",
    services: Services = Depends(get_services),
):
    status = services.setup.get_status(interface, user_id)
    return envelope("status", status, message=f"Setup is {status['status']}")


@router.post("/reset")
def reset_setup(payload: SetupRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    data = services.setup.reset(payload)
    return envelope("data", data, message="Setup reset successfully")


@router.get("/history")
def setup_history(
    interface: str = Query(...),
    user_id: str = "",
    limit: int = Query(50, ge=1, le=1000),
    services: Services = Depends(get_services),
):
    entries = services.setup.history_entries(interface, user_id, limit)
    return envelope("history", entries, message=f"{len(entries)} history entries")
