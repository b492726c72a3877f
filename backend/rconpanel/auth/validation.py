"""FastAPI dependency validating the panel API key."""

import logging
import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

LOGGER = logging.getLogger(__name__)


class Validate:
    """Holds the validator dependency gating every panel route."""

    def __init__(self, panel_api_key: str) -> None:
        """Create a new validator instance.

        :param panel_api_key: The key callers must present
        """
        self._panel_api_key = panel_api_key

    async def api_key(
        self,
        api_key: str | None = Security(api_key_header),
    ) -> str:
        """Validate the ``X-API-Key`` header against the panel key."""
        if not api_key or not secrets.compare_digest(
            api_key.encode(),
            self._panel_api_key.encode(),
        ):
            LOGGER.debug("API key validation failed")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key",
            )
        return api_key
