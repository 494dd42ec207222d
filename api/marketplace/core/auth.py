from dataclasses import dataclass
from enum import Enum

from marketplace.services.errors import AuthorizationError


class Role(str, Enum):
    CLIENT = "CLIENT"
    FREELANCER = "FREELANCER"
    ADMIN = "ADMIN"


@dataclass(slots=True)
class Principal:
    user_id: str
    role: Role
    name: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def require_role(self, *roles: Role, detail: str | None = None) -> None:
        if self.role not in roles:
            allowed = ", ".join(sorted(role.value for role in roles))
            raise AuthorizationError(detail or f"requires role: {allowed}")


def parse_role(value: str | None) -> Role | None:
    if not value:
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None
