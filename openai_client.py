"""Process-wide OpenAI client.

Credentials are read once from config; timeout and retry policy live here so
the vision and chat modules never retry on their own.
"""
import logging
from functools import lru_cache
from typing import Optional

from openai import OpenAI

import config

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_client() -> Optional[OpenAI]:
    if not config.OPENAI_API_KEY:
        logger.warning("OpenAI API key not configured; returning no client")
        return None
    return OpenAI(
        api_key=config.OPENAI_API_KEY,
        timeout=config.OPENAI_TIMEOUT_SECONDS,
        max_retries=config.OPENAI_MAX_RETRIES,
    )


def check_connection(client: Optional[OpenAI]) -> bool:
    """List models once and log whether the vision model is reachable."""
    if client is None:
        logger.warning("OpenAI connection test skipped: no API key")
        return False
    try:
        models = client.models.list()
        ids = [m.id for m in models.data]
    except Exception as e:
        logger.error("OpenAI connection test failed: %s", e)
        return False
    has_vision = config.OPENAI_MODEL_VISION in ids
    logger.info(
        "OpenAI connection test successful: models_available=%s has_vision_model=%s",
        bool(ids),
        has_vision,
    )
    return has_vision
