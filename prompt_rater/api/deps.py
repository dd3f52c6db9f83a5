"""
Shared route dependencies.
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Header

from prompt_rater.config import Settings, get_settings
from prompt_rater.errors import UnauthorizedError
from prompt_rater.services.worker_relay import WorkerRelay

logger = logging.getLogger(__name__)


async def verify_worker_secret(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Worker routes require ``Authorization: Bearer <WORKER_SECRET>`` when a secret is configured."""
    secret = settings.worker_secret
    if not secret:
        return
    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("[WORKER] Rejected request with invalid worker secret")
        raise UnauthorizedError()


def get_worker_relay(settings: Settings = Depends(get_settings)) -> WorkerRelay:
    return WorkerRelay(settings)
