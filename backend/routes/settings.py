"""Per-owner settings API."""

from fastapi import APIRouter, Depends

from backend.auth import current_user
from backend.deps import get_services
from contentforge.services import Services
from contentforge.users.models import DEFAULT_SETTINGS, UserSettings

router = APIRouter()


@router.get("/settings")
def get_user_settings(
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    settings = services.user_settings.get(user_id) or DEFAULT_SETTINGS
    return settings.model_dump(mode="json", by_alias=True)


@router.put("/settings")
def put_user_settings(
    body: UserSettings,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    services.user_settings.save(user_id, body)
    return body.model_dump(mode="json", by_alias=True)
