# btu_api/routers/proxy.py
"""
Image proxy.

GET /proxy-image/{token} streams an image blob from whichever backend is
configured, so clients never need backend credentials or URLs.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from btu_api.errors import ValidationError
from btu_api.routers.news import get_storage
from btu_api.storage.base import StorageProvider
from btu_api.storage.references import extract_blob_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["images"])

CACHE_CONTROL = "public, max-age=3600"


@router.get("/proxy-image/{token:path}")
async def proxy_image(
    token: str,
    storage: StorageProvider = Depends(get_storage),
) -> StreamingResponse:
    """
    Stream an image by token.

    400 for an empty token or a non-image blob, 404 for an unknown blob,
    503 when the backend is unavailable.
    """
    blob_token = extract_blob_token(token)
    if not blob_token:
        raise ValidationError("Invalid image reference")

    mime_type, chunks = await storage.get(blob_token)
    return StreamingResponse(
        chunks,
        media_type=mime_type,
        headers={"Cache-Control": CACHE_CONTROL},
    )
