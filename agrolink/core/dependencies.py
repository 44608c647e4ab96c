from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from agrolink.core.security import verify_access_token
from agrolink.db.core import engine, get_session
from agrolink.db.schema import User, UserStatus
from agrolink.repositories.base import UnitOfWork
from agrolink.repositories.sql import SqlUnitOfWork
from agrolink.services.access_control import AccessControlService
from agrolink.services.data_visibility import DataVisibilityService
from agrolink.services.notifications import Notifier, OutboxNotifier
from agrolink.services.relationship import BusinessRelationshipService

# Tokens come from the platform's auth service; the URL is only used by the docs UI.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


def get_unit_of_work(session: Session = Depends(get_session)) -> UnitOfWork:
    """Wraps the request's DB session so all repositories share one transaction."""
    return SqlUnitOfWork(session)


def get_notifier() -> Notifier:
    return OutboxNotifier(engine)


def get_relationship_service(
    uow: UnitOfWork = Depends(get_unit_of_work),
    notifier: Notifier = Depends(get_notifier)
) -> BusinessRelationshipService:
    return BusinessRelationshipService(uow, notifier)


def get_access_control_service(uow: UnitOfWork = Depends(get_unit_of_work)) -> AccessControlService:
    return AccessControlService(uow)


def get_data_visibility_service(
    uow: UnitOfWork = Depends(get_unit_of_work),
    notifier: Notifier = Depends(get_notifier)
) -> DataVisibilityService:
    return DataVisibilityService(uow, notifier)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    uow: UnitOfWork = Depends(get_unit_of_work)
) -> User:
    """
    Validates the JWT token and retrieves the user.
    This is the gatekeeper for protected routes.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = verify_access_token(token)
    if not token_data:
        raise credentials_exception

    user = uow.users.get(token_data.user_id)
    if user is None:
        raise credentials_exception

    if user.status != UserStatus.ACTIVE:
        raise HTTPException(status_code=400, detail="Inactive user")

    return user
