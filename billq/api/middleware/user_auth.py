"""
User identity for the BillQ API.

Credentials are verified by the authentication gateway in front of the
service; it forwards the caller's identity in trusted headers:

    X-User-Id       (required)
    X-Company-Id    (required)
    X-User-Email    (optional, used to recognise emails the user sent)
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from billq.observability.logging import get_logger
from billq.utils.redaction import redact

logger = get_logger(__name__)

USER_ID_HEADER = "X-User-Id"
COMPANY_ID_HEADER = "X-Company-Id"
USER_EMAIL_HEADER = "X-User-Email"


@dataclass
class AuthenticatedUser:
    """Identity of the caller as asserted by the gateway."""

    id: str
    company_id: str
    email: str | None = None

    def __str__(self) -> str:
        return f"User({self.id}, company={self.company_id})"


def _required_header(request: Request, name: str) -> str:
    value = (request.headers.get(name) or "").strip()
    if not value:
        logger.warning("Missing identity header %s on %s", name, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {name} header",
        )
    return value


async def get_current_user(request: Request) -> AuthenticatedUser:
    """
    FastAPI dependency returning the caller's identity.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: AuthenticatedUser = Depends(get_current_user)):
            ...
    """
    user = AuthenticatedUser(
        id=_required_header(request, USER_ID_HEADER),
        company_id=_required_header(request, COMPANY_ID_HEADER),
        email=(request.headers.get(USER_EMAIL_HEADER) or "").strip().lower() or None,
    )
    logger.debug("Request from %s email=%s", user, redact(user.email))
    return user
