import logging
import os
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env - try multiple paths
load_dotenv()  # Current directory
load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))

# OpenAI
OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL_VISION: str = os.getenv("OPENAI_MODEL_VISION", "gpt-4o-mini")
OPENAI_MODEL_CHAT: str = os.getenv("OPENAI_MODEL_CHAT", "gpt-4o-mini")
OPENAI_TIMEOUT_SECONDS: float = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "30"))
# The SDK retries on its own; keep it to a few attempts.
OPENAI_MAX_RETRIES: int = max(0, min(int(os.getenv("OPENAI_MAX_RETRIES", "3")), 5))
OPENAI_CHECK_ON_STARTUP: bool = os.getenv("OPENAI_CHECK_ON_STARTUP", "false").lower() in ("1", "true", "yes")

ANALYSIS_MAX_TOKENS: int = int(os.getenv("ANALYSIS_MAX_TOKENS", "1500"))
ANALYSIS_TEMPERATURE: float = float(os.getenv("ANALYSIS_TEMPERATURE", "0.7"))
CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "1000"))
CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

# Uploads
MAX_IMAGE_BYTES: int = int(os.getenv("MAX_IMAGE_BYTES", str(20 * 1024 * 1024)))  # 20 MiB

# Confidence assigned when the model answer had to be recovered line by line
FALLBACK_CONFIDENCE: int = 70

# Languages
PRIMARY_LANGUAGE: str = os.getenv("PRIMARY_LANGUAGE", "Hausa")
SECONDARY_LANGUAGE: str = os.getenv("SECONDARY_LANGUAGE", "English")
PRIMARY_NO_DESCRIPTION: str = os.getenv("PRIMARY_NO_DESCRIPTION", "Babu bayani")
SECONDARY_NO_DESCRIPTION: str = os.getenv("SECONDARY_NO_DESCRIPTION", "No description available")

# Search store
ANALYSIS_STORE_BACKEND: str = os.getenv("ANALYSIS_STORE_BACKEND", "memory")
ANALYSIS_SQLITE_PATH: str = os.getenv("ANALYSIS_SQLITE_PATH", "data/analyses.db")

CORS_ALLOW_ORIGINS: List[str] = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


def log_settings() -> None:
    """Report key presence; call once logging is configured."""
    if OPENAI_API_KEY:
        logger.info("[CONFIG] API key loaded: %s...", OPENAI_API_KEY[:7])
    else:
        logger.warning("[CONFIG] OPENAI_API_KEY not found! Analysis and chat will fail until it is set.")
