from fastapi import APIRouter, Depends

from gscms.core.api_docs import error_responses
from gscms.core.permissions import role_permissions
from gscms.core.security_current import get_current_user
from gscms.models.user import User
from gscms.schemas.auth import UserProfileOut

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get(
    "/me",
    response_model=UserProfileOut,
    summary="Get current user profile",
    description="Resolves the bearer token issued by the identity provider to a local user.",
    responses=error_responses(401, 403, 500, path="/auth/me"),
)
def get_my_profile(user: User = Depends(get_current_user)):
    return UserProfileOut(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        is_active=user.is_active,
        permissions=sorted(role_permissions(user.role)),
        created_at=user.created_at,
    )
