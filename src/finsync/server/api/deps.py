"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from finsync.server.database import (
    AlreadyExists,
    Database,
    InvalidArgument,
    MembershipError,
    NotFound,
    PermissionDenied,
    PreconditionFailed,
)
from finsync.server.models import Token

# Security scheme
security = HTTPBearer(auto_error=False)

_ERROR_STATUS: dict[type[MembershipError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    PreconditionFailed: status.HTTP_409_CONFLICT,
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    AlreadyExists: status.HTTP_409_CONFLICT,
}


def get_db(request: Request) -> Database:
    """Get database from app state."""
    db: Database = request.app.state.db
    return db


def get_current_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Token:
    """Validate bearer token and return Token object.

    The personal group of the token's user is created on first use.
    """
    db = get_db(request)
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = db.validate_token(credentials.credentials)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    db.ensure_personal_group(token.user_id)
    return token


def http_error(error: MembershipError) -> HTTPException:
    """Map a membership error to an HTTP exception."""
    code = _ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=code, detail=str(error))


def require_member(
    group_id: str,
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> str:
    """Require the caller to be a member of the group in the path.

    Returns:
        The group id.

    Raises:
        HTTPException: 404 if the group does not exist, 403 if the caller
            is not a member.
    """
    try:
        db.check_member(group_id, auth.user_id)
    except MembershipError as e:
        raise http_error(e) from e
    return group_id
