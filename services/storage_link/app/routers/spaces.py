# services/storage_link/app/routers/spaces.py
from fastapi import APIRouter, HTTPException, Body, Query, Depends
from fastapi.responses import JSONResponse
import logging

from core.exceptions import InputValidationError, NotVerifiedError, ProviderError, SpaceNotFoundError
from core.models import (
    ActiveSpaceResponse, CreateSpaceRequest, CreateSpaceResponse,
    SetActiveSpaceRequest, SpacesResponse, VerificationResponse
)
from ..main import get_space_directory
from ..spaces import SpaceDirectory

logger = logging.getLogger("SLK_Core").getChild("StorageLink").getChild("SpacesRouter")

router = APIRouter()

NOT_VERIFIED_DETAIL = "User not verified. Please login first."


@router.get("/spaces", response_model=SpacesResponse)
async def list_spaces(
    email: str = Query(...),
    directory: SpaceDirectory = Depends(get_space_directory)
):
    """List the provider's spaces for a verified identity; answers 202 while verification is pending."""
    try:
        spaces = await directory.list_spaces(email)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotVerifiedError as e:
        if e.pending:
            body = VerificationResponse(verified=False, pending=True, message="Verification in progress")
            return JSONResponse(status_code=202, content=body.model_dump(by_alias=True, exclude_none=True))
        raise HTTPException(status_code=401, detail=NOT_VERIFIED_DETAIL)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"Failed to list spaces: {e}")
    except Exception as e:
        logger.error(f"Unexpected error listing spaces: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    return SpacesResponse(spaces=spaces)


@router.post("/spaces", response_model=ActiveSpaceResponse)
async def set_active_space(
    directory: SpaceDirectory = Depends(get_space_directory),
    payload: SetActiveSpaceRequest = Body(...)
):
    """Make one of the provider's spaces the active upload target."""
    logger.info(f"Set active space request: email={payload.email.strip()}, space={payload.space_did}")
    try:
        space = await directory.set_active_space(payload.email, payload.space_did)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotVerifiedError:
        raise HTTPException(status_code=401, detail=NOT_VERIFIED_DETAIL)
    except SpaceNotFoundError:
        raise HTTPException(status_code=404, detail="Space not found")
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"Failed to set active space: {e}")
    except Exception as e:
        logger.error(f"Unexpected error setting active space: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    return ActiveSpaceResponse(active_space=space)


@router.post("/create-space", response_model=CreateSpaceResponse)
async def create_space(
    directory: SpaceDirectory = Depends(get_space_directory),
    payload: CreateSpaceRequest = Body(...)
):
    """Create a new space on the provider. Does not select it."""
    logger.info(f"Create space request: email={payload.email.strip()}, name='{payload.name}'")
    try:
        space = await directory.create_space(payload.email, payload.name)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotVerifiedError:
        raise HTTPException(status_code=401, detail=NOT_VERIFIED_DETAIL)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"Failed to create space: {e}")
    except Exception as e:
        logger.error(f"Unexpected error creating space: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    return CreateSpaceResponse(space=space)
