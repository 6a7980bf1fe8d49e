"""
Caller identity used by the access filter.
"""
from dataclasses import dataclass


class Role:
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"

    ALL = (ADMIN, MANAGER, USER)
    UNRESTRICTED = (ADMIN, MANAGER)
    WRITERS = (ADMIN, MANAGER)


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller: who is asking and with which role."""
    user_id: int
    role: str

    @property
    def is_restricted(self) -> bool:
        return self.role not in Role.UNRESTRICTED

    @classmethod
    def from_user(cls, user) -> "CallerContext":
        return cls(user_id=user.id, role=user.role)
