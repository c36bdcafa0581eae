from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gscms.models.enums import InquiryStatus, ItemStatus, Priority


class InquiryItemIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    quantity: int = Field(default=1, ge=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned


class InquiryCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    customer_id: str = Field(min_length=1)
    priority: Priority = Priority.MEDIUM
    deadline: datetime | None = None
    assigned_to_id: str | None = None
    items: list[InquiryItemIn] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("title is required")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Steel brackets for line 4",
                "customer_id": "Vq2xHf9LkPzA7mWcB3nR8d",
                "priority": "HIGH",
                "deadline": "2026-03-01T17:00:00Z",
                "items": [{"name": "Bracket A-12", "quantity": 400}],
            }
        }
    )


class InquiryStatusUpdateIn(BaseModel):
    status: InquiryStatus


class InquiryItemAssignIn(BaseModel):
    assigned_to_id: str = Field(min_length=1)


class InquiryItemOut(BaseModel):
    id: str
    inquiry_id: str
    name: str
    quantity: int
    status: ItemStatus
    assigned_to_id: str | None = None
    created_at: datetime
    updated_at: datetime


class InquiryOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    customer_id: str
    status: InquiryStatus
    priority: Priority
    deadline: datetime | None = None
    assigned_to_id: str | None = None
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime
    items: list[InquiryItemOut] = []
