# services/storage_link/app/main.py
from fastapi import FastAPI, Request, HTTPException
from contextlib import asynccontextmanager
import logging

from core.config import settings
from core.models import HealthResponse
from core.sessions import SessionStore
from core.storacha_client import create_storacha_client
from .verification import VerificationOrchestrator
from .spaces import SpaceDirectory

# Use logger configured in core.config
logger = logging.getLogger("SLK_Core").getChild("StorageLink")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one process-wide store shared by every request handler and handshake task
    logger.info("Storage Link lifespan startup: Initializing session components.")
    store = SessionStore()
    orchestrator = VerificationOrchestrator(store, client_factory=create_storacha_client)
    app.state.session_store = store
    app.state.orchestrator = orchestrator
    app.state.space_directory = SpaceDirectory(store)
    logger.info(f"Session components ready. Provider bridge: {settings.STORACHA_BRIDGE_URL}")

    yield # Application runs here

    # Shutdown: stop pending handshakes and release provider clients
    logger.info("Storage Link lifespan shutdown: Cleaning up provider clients.")
    try:
        await orchestrator.aclose()
    except Exception as e:
        logger.error(f"Error while shutting down the verification orchestrator: {e}", exc_info=True)
    app.state.session_store = None
    app.state.orchestrator = None
    app.state.space_directory = None
    logger.info("Session components released.")


# --- FastAPI App ---
app = FastAPI(
    title="Storacha Link",
    description="Links a Storacha storage account to an application session via email verification",
    version="1.0.0",
    lifespan=lifespan
)


# --- Component Dependencies ---
def _get_component(request: Request, attribute: str, label: str):
    component = getattr(request.app.state, attribute, None)
    if component is None:
        logger.error(f"Dependency not met: {label} not available in application state.")
        raise HTTPException(status_code=503, detail=f"Storage link internal error: {label} not ready")
    return component

def get_session_store(request: Request) -> SessionStore:
    return _get_component(request, "session_store", "session store")

def get_orchestrator(request: Request) -> VerificationOrchestrator:
    return _get_component(request, "orchestrator", "verification orchestrator")

def get_space_directory(request: Request) -> SpaceDirectory:
    return _get_component(request, "space_directory", "space directory")


# --- Health Check ---
@app.get("/health", response_model=HealthResponse, tags=["Meta"])
async def health_check(request: Request):
    store = getattr(request.app.state, 'session_store', None)
    ready = all(getattr(request.app.state, name, None) is not None for name in ("session_store", "orchestrator", "space_directory"))
    return HealthResponse(
        status="success" if ready else "degraded",
        message=f"Storage Link is running (session components: {'initialized' if ready else 'NOT initialized'})",
        tracked_identities=len(store) if store is not None else 0,
    )


# --- Routing ---
# Import routers AFTER the dependencies are defined
from .routers import verification, spaces, uploads

app.include_router(verification.router, prefix="/storage/storacha", tags=["Verification"])
app.include_router(spaces.router, prefix="/storage/storacha", tags=["Spaces"])
app.include_router(uploads.router, prefix="/storage/storacha", tags=["Uploads"])
