from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse

from cutoff.core import settings
from cutoff.services.storage_service import BucketStorage, ObjectNotFound

router = APIRouter()


@router.api_route(f"{settings.STORAGE_BASE_URL}/{{name}}", methods=["GET", "HEAD"])
async def get_bucket_object(name: str, request: Request) -> FileResponse:
    """
    Serve a bucket object so public URLs from /process can be fetched and decoded.
    Byte ranges and HEAD are handled by FileResponse.
    """
    storage: BucketStorage = request.app.state.storage
    try:
        obj = await storage.stat(name)
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="not found")
    return FileResponse(storage.path_for(name), media_type=obj.mime)
