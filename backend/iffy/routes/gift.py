"""
Gift routes - photo submission, status lookup, counter
"""
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from typing import Optional

from ..auth import get_current_user_id_optional
from ..dependencies import get_gift_selector, get_repository
from ..exceptions import IffyNotFoundError
from ..logger import logger
from ..schemas import GiftCountResponse, IffyRecord
from ..services.repository import IffyRepository
from ..services.selection import GiftSelector

router = APIRouter(tags=["Gift"])

@router.post("/gift", response_model=IffyRecord, status_code=201)
async def create_gift(
    image: Optional[UploadFile] = File(None),
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    selector: GiftSelector = Depends(get_gift_selector),
):
    """
    Analyze a photo, pick a gift and start cartoon generation.
    Returns the saved record; poll GET /gift?id=... until it is completed or failed.
    """
    if image is None:
        raise HTTPException(status_code=400, detail="An image file is required")

    if not (image.content_type or "").startswith("image/"):
        logger.warning(f"Invalid content type: {image.content_type}")
        raise HTTPException(status_code=400, detail="Only image uploads are allowed")

    image_bytes = await image.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="The uploaded image is empty")

    logger.info(
        "Gift request received",
        extra={
            "uploaded_file": image.filename,
            "content_type": image.content_type,
            "size_bytes": len(image_bytes),
            "authenticated": user_id is not None,
        }
    )
    return await selector.submit(image_bytes, image.content_type, user_id)

@router.get("/gift", response_model=IffyRecord)
async def get_gift(
    id: Optional[str] = Query(None),
    repository: IffyRepository = Depends(get_repository),
):
    """
    Get the current state of an iffy.
    """
    if not id:
        raise HTTPException(status_code=400, detail="id is required")

    record = await repository.get(id)
    if record is None:
        logger.warning(f"Iffy not found: {id}")
        raise IffyNotFoundError(id)
    return record

@router.get("/allgifts", response_model=GiftCountResponse)
async def count_gifts(repository: IffyRepository = Depends(get_repository)):
    """Number of iffies handed out so far."""
    return GiftCountResponse(resultCount=await repository.count())
