from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from fastapi.responses import JSONResponse
from opendots.core.dependencies import get_current_user
from opendots.database.d1_client import D1Client, get_d1
from opendots.modules.profiles.stores import SecondaryProfileStore
from opendots.modules.storage.r2_storage import R2Storage, get_r2_storage
from opendots.modules.storage.schemas import D1StatusResponse, UploadResponse
from opendots.modules.storage.service import ImageUploadService, d1_status
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["storage"])


def get_upload_service(storage: R2Storage = Depends(get_r2_storage)) -> ImageUploadService:
    return ImageUploadService(storage)


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    user_data: Dict = Depends(get_current_user),
    service: ImageUploadService = Depends(get_upload_service)
):
    """Upload a profile image to R2 under the caller's user id"""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No image provided")
    content = await file.read()
    return service.upload_image(user_data["id"], file.filename, content, file.content_type)


@router.get("/d1-status", response_model=D1StatusResponse)
async def get_d1_status(d1: Optional[D1Client] = Depends(get_d1)):
    """Diagnostic: list D1 tables and the mirrored profile count"""
    store = SecondaryProfileStore(d1) if d1 is not None else None
    try:
        return d1_status(store)
    except Exception as e:
        logger.error(f"Error checking D1 status: {e}")
        return JSONResponse(
            status_code=500,
            content=D1StatusResponse(
                status="error",
                message=str(e),
                enabled=True,
                error=repr(e),
            ).model_dump(),
        )
