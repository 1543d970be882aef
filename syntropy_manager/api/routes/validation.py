from fastapi import APIRouter, Depends, Request

from ...models import ValidationRequest, ValidationResponse
from ..deps import Services, envelope, get_services, tag_request

router = APIRouter(prefix="/validation", tags=["validation"])


def _message(result) -> str:
    if result.valid:
        return "Validation passed"
    return f"Validation failed with {len(result.errors)} error(s)"


@router.post("/all")
def validate_all(payload: ValidationRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    result = services.validation.validate_all(payload)
    return ValidationResponse(result=result, message=_message(result))


@router.post("/autofix")
def autofix(payload: ValidationRequest, request: Request, services: Services = Depends(get_services)):
    tag_request(request, payload.interface.value, payload.user_id)
    result, fixed = services.validation.auto_fix(payload)
    return envelope("result", result, message=f"Applied {fixed} fix(es)", fixed_count=fixed)


@router.post("/{category}")
def validate_category(
    category: str,
    payload: ValidationRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    """environment, security, performance, compatibility or dependencies."""
    tag_request(request, payload.interface.value, payload.user_id)
    result = services.validation.validate_category(category, payload)
    return ValidationResponse(result=result, message=_message(result))
