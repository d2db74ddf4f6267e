# services/storage_link/app/routers/uploads.py
from fastapi import APIRouter, HTTPException, Depends, File, Form, UploadFile
from typing import Optional
import logging

from core.config import settings
from core.exceptions import InputValidationError, NotVerifiedError, ProviderError, SpaceNotFoundError
from core.models import UploadResponse
from ..main import get_space_directory
from ..spaces import SpaceDirectory

logger = logging.getLogger("SLK_Core").getChild("StorageLink").getChild("UploadRouter")

router = APIRouter()


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    email: str = Form(...),
    space_did: Optional[str] = Form(None, alias="spaceDid"),
    directory: SpaceDirectory = Depends(get_space_directory)
):
    """Upload a file into the given space (or the current one) of a verified identity."""
    content = await file.read()
    filename = file.filename or "upload"
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail=f"File size exceeds {settings.MAX_UPLOAD_BYTES} bytes limit")
    if file.content_type and file.content_type not in settings.ALLOWED_UPLOAD_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid file type. Allowed types: {', '.join(settings.ALLOWED_UPLOAD_TYPES)}")

    logger.info(f"Upload request: email={email.strip()}, file='{filename}', size={len(content)}, space={space_did}")
    try:
        cid = await directory.upload_file(email, content, filename, file.content_type, space_did=space_did)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotVerifiedError:
        raise HTTPException(status_code=401, detail="User not verified. Please login first.")
    except SpaceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"Failed to upload file: {e}")
    except Exception as e:
        logger.error(f"Unexpected error uploading '{filename}': {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    return UploadResponse(cid=cid)
