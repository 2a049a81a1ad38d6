"""
Signed download endpoint for stored documents
"""
import logging
import mimetypes
import os
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from travelvoice.integrations.storage import FileStorage, StorageError, get_storage

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/download")
async def download(
    token: str = Query(...),
    storage: FileStorage = Depends(get_storage),
):
    storage_path = storage.verify_download_token(token)
    if not storage_path:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired download link"
        )
    try:
        content = await storage.read(storage_path)
    except StorageError as e:
        logger.warning(f"Download of {storage_path} failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found"
        )

    filename = os.path.basename(storage_path).split("_", 1)[-1]
    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
