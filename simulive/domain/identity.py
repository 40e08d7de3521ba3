"""
Viewer identity and role model.

The users table only knows two roles (``admin`` and ``student``). Guests are
stored as ``student`` rows plus a guest_registrations row naming the session
they were minted for; at this layer that becomes an explicit ``Guest`` variant.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class AccountRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"


@dataclass(frozen=True)
class Registered:
    kind: AccountRole


@dataclass(frozen=True)
class Guest:
    session_id: str


Role = Union[Registered, Guest]

GUEST_CLAIM = "guest"


@dataclass(frozen=True)
class Identity:
    id: str
    display_name: str
    role: Role
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return isinstance(self.role, Registered) and self.role.kind is AccountRole.ADMIN

    @property
    def is_guest(self) -> bool:
        return isinstance(self.role, Guest)

    @property
    def guest_session_id(self) -> Optional[str]:
        return self.role.session_id if isinstance(self.role, Guest) else None

    @property
    def role_name(self) -> str:
        return role_to_claim(self.role)


def role_to_claim(role: Role) -> str:
    """Token/presence representation: admin | student | guest."""
    if isinstance(role, Guest):
        return GUEST_CLAIM
    return role.kind.value


def role_from_claim(claim: Optional[str], session_id: Optional[str] = None) -> Role:
    if claim == GUEST_CLAIM:
        if not session_id:
            raise ValueError("guest role requires a session id")
        return Guest(session_id=session_id)
    try:
        return Registered(kind=AccountRole(claim or AccountRole.STUDENT.value))
    except ValueError:
        raise ValueError(f"unknown role: {claim!r}")


def role_to_column(role: Role) -> str:
    """Value written to users.role, which only accepts admin | student."""
    if isinstance(role, Guest):
        return AccountRole.STUDENT.value
    return role.kind.value
