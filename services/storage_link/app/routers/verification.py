# services/storage_link/app/routers/verification.py
from fastapi import APIRouter, HTTPException, Body, Depends
import logging

from core.exceptions import InputValidationError
from core.models import (
    EmailRequest, LinkResponse, LoginOutcome, LoginResult,
    VerificationResponse, VerificationState
)
from core.sessions import SessionStore
from ..main import get_orchestrator, get_session_store
from ..polling import verification_status
from ..verification import VerificationOrchestrator

logger = logging.getLogger("SLK_Core").getChild("StorageLink").getChild("VerificationRouter")

router = APIRouter()


def _link_response(result: LoginResult) -> LinkResponse:
    if result.outcome == LoginOutcome.ALREADY_VERIFIED:
        return LinkResponse(success=True, message="User already verified", verified=True)
    if result.outcome == LoginOutcome.ALREADY_PENDING:
        return LinkResponse(success=True, message="Verification already in progress", pending=True)
    if result.outcome == LoginOutcome.INITIATED:
        return LinkResponse(success=True, message="Login initiated. Please check your email for verification.")
    raise HTTPException(status_code=502, detail=f"Failed to start verification: {result.reason}")


@router.post("/login", response_model=LinkResponse, response_model_exclude_none=True)
async def login(
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
    payload: EmailRequest = Body(...)
):
    """Start the email verification handshake for an identity (idempotent while pending or verified)."""
    logger.info(f"Login request for: {payload.email.strip()}")
    try:
        result = await orchestrator.start_login(payload.email)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error starting login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    return _link_response(result)


@router.post("/check-verification", response_model=VerificationResponse, response_model_exclude_none=True)
async def check_verification(
    store: SessionStore = Depends(get_session_store),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
    payload: EmailRequest = Body(...)
):
    """Polled by the client until the identity reports verified."""
    try:
        status = verification_status(store, payload.email)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if status.state == VerificationState.VERIFIED:
        return VerificationResponse(verified=True, needs_payment_plan=status.needs_payment_plan, account=status.account)
    if status.state == VerificationState.PENDING:
        return VerificationResponse(verified=False, pending=True, message="Verification in progress")

    message = "No verification found for this email"
    failure = orchestrator.last_failure(payload.email)
    if failure:
        message = f"{message}. Last verification attempt failed: {failure.reason}"
    return VerificationResponse(verified=False, message=message)


@router.post("/resend-verification", response_model=LinkResponse, response_model_exclude_none=True)
async def resend_verification(
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
    payload: EmailRequest = Body(...)
):
    """Drop any pending or verified state and start a fresh handshake."""
    logger.info(f"Resend verification request for: {payload.email.strip()}")
    try:
        result = await orchestrator.resend_verification(payload.email)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error resending verification: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
    return _link_response(result)
