import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# Roles issued by the identity provider.
PATHFINDER = "pathfinder"
PARENT = "parent"
COUNSELOR = "counselor"
INSTRUCTOR = "instructor"
DIRECTOR = "director"
ADMIN = "admin"
REGIONAL_COORDINATOR = "regional_coordinator"
MASTER = "master"
SERVICE_ROLE = "service_role"

# May approve, reject, revoke and award.
REVIEWER_ROLES = frozenset(
    {COUNSELOR, INSTRUCTOR, DIRECTOR, ADMIN, REGIONAL_COORDINATOR, MASTER, SERVICE_ROLE}
)
# May hard-delete history, reset balances, reconcile and bulk award.
PRIVILEGED_ROLES = frozenset({DIRECTOR, ADMIN, MASTER, SERVICE_ROLE})
# Not restricted to a single club.
CROSS_CLUB_ROLES = frozenset({REGIONAL_COORDINATOR, MASTER, SERVICE_ROLE})


class AuthUser(BaseModel):
    """
    Represents an authenticated caller as asserted by the identity provider.
    """

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = PATHFINDER
    member_id: Optional[uuid.UUID] = None
    club_id: Optional[uuid.UUID] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @property
    def is_cross_club(self) -> bool:
        return self.role in CROSS_CLUB_ROLES
