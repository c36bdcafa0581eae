from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from gscms.core.security_current import get_current_user
from gscms.models.enums import UserRole
from gscms.models.user import User

_AUTOMATION_ADMIN = {
    "automation.rules.view",
    "automation.rules.manage",
    # automation.rules.delete is granted only through SUPERUSER "*".
    "automation.logs.view",
    "automation.templates.manage",
    "automation.deadlines.run",
}

_INQUIRY_WRITE = {
    "inquiries.create",
    "inquiries.status.update",
    "inquiries.items.assign",
}

PERMISSION_MATRIX: dict[str, set[str]] = {
    UserRole.SUPERUSER.value: {"*"},
    UserRole.ADMIN.value: _AUTOMATION_ADMIN | _INQUIRY_WRITE,
    UserRole.MANAGER.value: {"automation.logs.view"} | _INQUIRY_WRITE,
    UserRole.SALES.value: {"inquiries.create", "inquiries.status.update"},
    UserRole.VPP.value: {"inquiries.status.update", "inquiries.items.assign"},
    UserRole.VP.value: {"inquiries.status.update"},
    UserRole.TECH.value: set(),
}


def role_permissions(role: str) -> set[str]:
    normalized = (role or "").strip().upper()
    return set(PERMISSION_MATRIX.get(normalized, set()))


def has_permission(*, role: str, permission: str) -> bool:
    permissions = role_permissions(role)
    if "*" in permissions:
        return True
    return permission in permissions


def require_permission(permission: str) -> Callable[[User], User]:
    normalized_permission = (permission or "").strip().lower()
    if not normalized_permission:
        raise ValueError("Permission key is required")

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_permission(role=user.role, permission=normalized_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission for this action",
            )
        return user

    return dependency
