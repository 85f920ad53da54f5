"""Password gate for the admin API."""

import logging
import secrets

from fastapi import Header, HTTPException, Request, status

logger = logging.getLogger(__name__)

ADMIN_PASSWORD_HEADER = "X-Admin-Password"


def verify_password(password: str | None, expected: str) -> bool:
    """Verify a password against the configured admin password."""
    if not password:
        return False
    return secrets.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))


async def require_admin(
    request: Request,
    x_admin_password: str | None = Header(None, alias=ADMIN_PASSWORD_HEADER),
) -> None:
    """Dependency that requires the admin password header.

    Without a configured password the admin API stays closed (500).
    """
    expected = request.app.state.admin_password
    if not expected:
        logger.error("ADMIN_PASSWORD environment variable is not set.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        )

    if not verify_password(x_admin_password, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Invalid password",
        )
