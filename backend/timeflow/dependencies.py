import uuid
from dataclasses import dataclass
from typing import Annotated, AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from timeflow.core.auth.security import decode_access_token
from timeflow.core.projects.service import SqlProjectAuthority
from timeflow.core.rbac.models import User
from timeflow.core.rbac.service import SqlIdentityLookup, get_user
from timeflow.core.timesheets.service import TimesheetLifecycleService
from timeflow.core.timesheets.store import SqlTimesheetStore
from timeflow.db.session import AsyncSessionLocal
from timeflow.settings import get_settings

bearer = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    user: User
    user_id: uuid.UUID
    role: str


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await get_user(db, uuid.UUID(payload["sub"]))
    if not user or user.status != "active":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    # Role comes from the users table, not the token, so role changes apply immediately.
    return CurrentUser(user=user, user_id=user.id, role=user.role)


async def get_lifecycle_service(db: AsyncSession = Depends(get_db)) -> TimesheetLifecycleService:
    return TimesheetLifecycleService(
        store=SqlTimesheetStore(db),
        authority=SqlProjectAuthority(db),
        identity=SqlIdentityLookup(db),
        settings=get_settings(),
    )
