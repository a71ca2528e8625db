"""Image upload API for image-mode jobs."""

import logging

from fastapi import APIRouter, Depends, File, UploadFile, status

from backend.auth import current_user
from backend.deps import get_services
from contentforge.services import Services

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/uploads/images", status_code=status.HTTP_201_CREATED)
async def upload_images(
    files: list[UploadFile] = File(..., description="Images to generate posts from"),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Store uploaded images and return their durable references, in upload order."""
    urls = []
    for upload in files:
        data = await upload.read()
        urls.append(
            services.media.save_upload(user_id, data, upload.content_type, upload.filename or "")
        )
    logger.info("Stored %d uploaded images for user %s", len(urls), user_id)
    return {"urls": urls}
