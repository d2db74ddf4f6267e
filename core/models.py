# core/models.py
from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum


# --- Core Data Models ---

class Space(BaseModel):
    """A provider-issued storage partition. Owned by the provider account; we only cache references."""
    name: Optional[str] = Field(None, description="Human-readable label chosen at creation time")
    did: str = Field(..., description="Provider-issued decentralized identifier, immutable once created")


class AccountSummary(BaseModel):
    """Public view of the provider account behind a verified session."""
    did: str = Field(..., description="Account DID returned by the provider after login")


class VerificationState(str, Enum):
    VERIFIED = "verified"
    PENDING = "pending"
    UNKNOWN = "unknown"


class VerificationStatus(BaseModel):
    """Snapshot answered by the polling gateway for one identity."""
    state: VerificationState
    needs_payment_plan: Optional[bool] = None
    account: Optional[AccountSummary] = None


class LoginOutcome(str, Enum):
    INITIATED = "initiated"
    ALREADY_VERIFIED = "already_verified"
    ALREADY_PENDING = "already_pending"
    FAILED = "failed"


class LoginResult(BaseModel):
    """Synchronous answer of the orchestrator when a login is requested."""
    outcome: LoginOutcome
    reason: Optional[str] = Field(None, description="Failure reason, only set for FAILED")


# --- Route Layer Request Models ---

class EmailRequest(BaseModel):
    """Body shared by login, check-verification and resend-verification."""
    email: str


class SetActiveSpaceRequest(BaseModel):
    email: str
    space_did: str = Field(..., alias="spaceDid")

    class Config:
        populate_by_name = True


class CreateSpaceRequest(BaseModel):
    email: str
    name: str


# --- Route Layer Response Models ---

class LinkResponse(BaseModel):
    """Response for login and resend-verification."""
    success: bool
    message: str
    verified: Optional[bool] = None
    pending: Optional[bool] = None


class VerificationResponse(BaseModel):
    """Response for check-verification (and the 'still pending' answer of GET /spaces)."""
    verified: bool
    pending: Optional[bool] = None
    needs_payment_plan: Optional[bool] = Field(None, alias="needsPaymentPlan")
    account: Optional[AccountSummary] = None
    message: Optional[str] = None

    class Config:
        populate_by_name = True


class SpacesResponse(BaseModel):
    success: bool = True
    spaces: List[Space] = Field(default_factory=list)


class ActiveSpaceResponse(BaseModel):
    success: bool = True
    active_space: Space = Field(..., alias="activeSpace")
    message: str = "Space set as active successfully"

    class Config:
        populate_by_name = True


class CreateSpaceResponse(BaseModel):
    success: bool = True
    space: Space
    message: str = "Space created successfully"


class UploadResponse(BaseModel):
    success: bool = True
    cid: str = Field(..., description="Content identifier of the uploaded file")
    message: str = "File uploaded successfully"


class HealthResponse(BaseModel):
    status: str = Field(description="'success' or 'degraded'")
    message: str
    tracked_identities: int = 0
