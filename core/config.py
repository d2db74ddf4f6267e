# core/config.py
import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import logging
from typing import List, Optional

# Load variables from .env file located in the project root directory
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path)
else:
    load_dotenv() # Fallback

class Settings(BaseSettings):
    """Loads configuration settings from environment variables and .env file."""

    # --- Storage Provider Bridge ---
    # HTTP surface hosting the provider SDK agents (one agent per linked identity)
    STORACHA_BRIDGE_URL: str = "http://localhost:8787"
    STORACHA_BRIDGE_TOKEN: Optional[str] = None
    PROVIDER_REQUEST_TIMEOUT: float = float(os.getenv("PROVIDER_REQUEST_TIMEOUT", 30.0))
    # None = wait for the user to click the emailed link for as long as it takes
    PROVIDER_LOGIN_TIMEOUT: Optional[float] = None

    # --- Service URLs ---
    STORAGE_LINK_URL: str = "http://localhost:8010"

    # --- Verification Polling (caller side) ---
    VERIFICATION_POLL_INTERVAL: float = float(os.getenv("VERIFICATION_POLL_INTERVAL", 3.0))
    VERIFICATION_POLL_TIMEOUT: float = float(os.getenv("VERIFICATION_POLL_TIMEOUT", 300.0))

    # --- Upload Limits ---
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", int(4.5 * 1024 * 1024)))
    ALLOWED_UPLOAD_TYPES: List[str] = ["image/jpeg", "image/png", "image/gif"]

    class Config:
        env_file = '.env'
        env_file_encoding = 'utf-8'
        extra = 'ignore'

# Instantiate settings once for import
settings = Settings()

# --- Logging Setup ---
log_level_str = os.getenv("LOG_LEVEL", "INFO").upper(); log_level = getattr(logging, log_level_str, logging.INFO)
logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - [%(levelname)s] - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
logger = logging.getLogger("SLK_Core")
logging.getLogger("httpx").setLevel(logging.WARNING); logging.getLogger("httpcore").setLevel(logging.WARNING)

# --- Configuration Validation Checks ---
logger.info(f"Core Settings loaded. Log Level: {log_level_str}")
if not settings.STORACHA_BRIDGE_URL: logger.warning("STORACHA_BRIDGE_URL missing. Provider calls will fail.")
else: logger.info(f"Using Storacha bridge: {settings.STORACHA_BRIDGE_URL}")
if not settings.STORACHA_BRIDGE_TOKEN: logger.warning("STORACHA_BRIDGE_TOKEN not set. Bridge requests are unauthenticated.")
if settings.PROVIDER_LOGIN_TIMEOUT is None: logger.info("Login handshakes wait without a server-side timeout.")

try: assert settings.VERIFICATION_POLL_INTERVAL > 0 and settings.VERIFICATION_POLL_TIMEOUT >= settings.VERIFICATION_POLL_INTERVAL
except AssertionError: logger.error(f"Invalid polling config: interval={settings.VERIFICATION_POLL_INTERVAL}, timeout={settings.VERIFICATION_POLL_TIMEOUT}.")
logger.info(f"Upload Config: Max Bytes={settings.MAX_UPLOAD_BYTES}, Allowed Types={settings.ALLOWED_UPLOAD_TYPES}")
