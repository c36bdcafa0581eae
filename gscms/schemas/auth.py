from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr


class UserProfileOut(BaseModel):
    id: str
    email: EmailStr
    name: str | None = None
    role: str
    is_active: bool
    permissions: list[str]
    created_at: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "8cE3bWnqYpT4vJkR2mXh6A",
                "email": "admin@gs-cms.com",
                "name": "Ada Admin",
                "role": "ADMIN",
                "is_active": True,
                "permissions": ["automation.rules.manage", "automation.rules.view"],
                "created_at": "2026-02-01T12:00:00Z",
            }
        }
    )
