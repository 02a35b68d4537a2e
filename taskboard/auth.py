from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .db import get_session
from .errors import Unauthorized
from .storage import Storage


def get_storage(session: Session = Depends(get_session)) -> Storage:
    return Storage(session)


def get_current_user(
    authorization: str = Header(default=""),
    storage: Storage = Depends(get_storage),
) -> str:
    """Resolve the caller from the bearer token.

    Token issuance is handled elsewhere; the bearer token is the user
    identifier. The user row is created on first sight.
    """
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise Unauthorized("invalid_token")
    user_id = authorization[len(prefix) :].strip()
    if not user_id:
        raise Unauthorized("invalid_token")
    storage.ensure_user(user_id)
    return user_id
