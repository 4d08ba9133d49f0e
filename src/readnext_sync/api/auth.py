"""Shared-secret check for the sync API."""

import hmac
import logging
from typing import Annotated

from fastapi import Header, Request

from ..errors import AuthError

logger = logging.getLogger(__name__)

PIN_HEADER = "X-Auth-Pin"


def pin_matches(expected: str | None, provided: str | None) -> bool:
    """Return ``True`` if *provided* satisfies the configured PIN.

    An unset *expected* PIN disables the check entirely.
    """
    if not expected:
        return True
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def require_pin(
    request: Request,
    x_auth_pin: Annotated[str | None, Header(alias=PIN_HEADER)] = None,
) -> None:
    """FastAPI dependency rejecting requests without the server PIN.

    Raises:
        AuthError: If a PIN is configured and the header does not match.
    """
    expected = request.app.state.config.server_pin
    if pin_matches(expected, x_auth_pin):
        return
    client = request.client.host if request.client else "unknown"
    logger.warning("[AUTH] Blocked request from %s - Invalid/Missing PIN", client)
    raise AuthError("Unauthorized: Invalid Server PIN")
