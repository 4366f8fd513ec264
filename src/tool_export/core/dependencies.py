"""FastAPI dependency injection for identity and the export orchestrator."""

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from tool_export.core.config import Settings, get_settings
from tool_export.core.security import decode_token

if TYPE_CHECKING:
    from tool_export.services.export_orchestrator import ExportOrchestrator

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=True)


async def get_current_user_id(
    token: Annotated[str, Depends(oauth2_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """Decode the bearer JWT and return its subject as the user id.

    Raises:
        HTTPException: 401 if the token is invalid, expired, or has no subject.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
    except Exception as exc:
        raise credentials_exception from exc
    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    return str(user_id)


def get_orchestrator(request: Request) -> "ExportOrchestrator":
    """Return the orchestrator created during application startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Export service is not initialized",
        )
    return orchestrator
