"""Actor identity and permission checks for approval commands.

Permission string format: "resource:action", with "resource:*" and "*:*"
wildcards. The only permission the engine itself consults is the
administrator permission (``approvals:manage`` by default), which lets a
non-creator change a request's due date.
"""

from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Actor(BaseModel):
    """The user issuing a command, plus where the command came from."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    name: Optional[str] = None
    email: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    # Request origin, recorded on audit entries
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None


class PermissionChecker:
    """Checks if an actor has specific permissions."""

    def __init__(self, permissions: Iterable[str]):
        self.permissions = set(permissions)

    def has_permission(self, permission: str) -> bool:
        """Check for an exact match or a resource / global wildcard."""
        if permission in self.permissions:
            return True

        if "*:*" in self.permissions:
            return True

        if ":" in permission:
            resource = permission.split(":")[0]
            if f"{resource}:*" in self.permissions:
                return True

        return False


def is_admin(actor: Actor, admin_permission: str) -> bool:
    """True when the actor holds the administrator permission."""
    return PermissionChecker(actor.permissions).has_permission(admin_permission)
