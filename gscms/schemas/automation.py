from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from gscms.models.enums import (
    AutomationLogStatus,
    AutomationTrigger,
    DeadlineEntity,
    InquiryStatus,
    ItemStatus,
    NotificationType,
    UserRole,
)
from gscms.schemas.common import PaginationMeta


AutomationConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "in",
    "not_in",
]
AutomationConditionLogic = Literal["AND", "OR"]
AssignableEntity = Literal["inquiry", "inquiryItem"]


def _alias(name: str, legacy: str) -> AliasChoices:
    return AliasChoices(name, legacy)


class AutomationConditionIn(BaseModel):
    field: str = Field(min_length=1, max_length=200)
    operator: AutomationConditionOperator
    value: Any | None = None
    logic: AutomationConditionLogic | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"field": "priority", "operator": "equals", "value": "HIGH", "logic": "AND"}
        }
    )


class _ActionParams(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AssignToUserParams(_ActionParams):
    user_id: str = Field(min_length=1, validation_alias=_alias("user_id", "userId"))
    entity_type: AssignableEntity = Field(validation_alias=_alias("entity_type", "entityType"))
    entity_id: str | None = Field(default=None, validation_alias=_alias("entity_id", "entityId"))


class AssignToRoleParams(_ActionParams):
    role: UserRole
    entity_type: AssignableEntity = Field(validation_alias=_alias("entity_type", "entityType"))
    entity_id: str | None = Field(default=None, validation_alias=_alias("entity_id", "entityId"))
    balance_workload: bool = Field(default=False, validation_alias=_alias("balance_workload", "balanceWorkload"))


class SendEmailParams(_ActionParams):
    template_name: str = Field(min_length=1, validation_alias=_alias("template_name", "templateName"))
    to: list[str] | str
    variables: dict[str, Any] = Field(default_factory=dict)


class CreateNotificationParams(_ActionParams):
    user_id: str | None = Field(default=None, validation_alias=_alias("user_id", "userId"))
    type: NotificationType = NotificationType.STATUS_UPDATE
    title: str = Field(min_length=1, max_length=200)
    message: str | None = Field(default=None, max_length=1000)


class UpdateStatusParams(_ActionParams):
    entity_type: AssignableEntity = Field(validation_alias=_alias("entity_type", "entityType"))
    entity_id: str | None = Field(default=None, validation_alias=_alias("entity_id", "entityId"))
    status: str = Field(min_length=1)

    @model_validator(mode="after")
    def validate_status_for_entity(self) -> "UpdateStatusParams":
        allowed = InquiryStatus if self.entity_type == "inquiry" else ItemStatus
        if self.status not in {item.value for item in allowed}:
            raise ValueError(f"Invalid status '{self.status}' for {self.entity_type}")
        return self


class CreateDeadlineParams(_ActionParams):
    entity_type: DeadlineEntity = Field(validation_alias=_alias("entity_type", "entityType"))
    entity_id: str | None = Field(default=None, validation_alias=_alias("entity_id", "entityId"))
    days_from_now: float = Field(validation_alias=_alias("days_from_now", "daysFromNow"))
    warning_days: int | None = Field(default=None, ge=0, validation_alias=_alias("warning_days", "warningDays"))
    escalation_days: int | None = Field(
        default=None,
        ge=0,
        validation_alias=_alias("escalation_days", "escalationDays"),
    )


class EscalateParams(_ActionParams):
    title: str | None = Field(default=None, max_length=200)
    message: str | None = Field(default=None, max_length=1000)


class AssignToUserAction(BaseModel):
    type: Literal["ASSIGN_TO_USER"]
    params: AssignToUserParams


class AssignToRoleAction(BaseModel):
    type: Literal["ASSIGN_TO_ROLE"]
    params: AssignToRoleParams


class SendEmailAction(BaseModel):
    type: Literal["SEND_EMAIL"]
    params: SendEmailParams


class CreateNotificationAction(BaseModel):
    type: Literal["CREATE_NOTIFICATION"]
    params: CreateNotificationParams


class UpdateStatusAction(BaseModel):
    type: Literal["UPDATE_STATUS"]
    params: UpdateStatusParams


class CreateDeadlineAction(BaseModel):
    type: Literal["CREATE_DEADLINE"]
    params: CreateDeadlineParams


class EscalateAction(BaseModel):
    type: Literal["ESCALATE"]
    params: EscalateParams = Field(default_factory=EscalateParams)


AutomationActionIn = Annotated[
    Union[
        AssignToUserAction,
        AssignToRoleAction,
        SendEmailAction,
        CreateNotificationAction,
        UpdateStatusAction,
        CreateDeadlineAction,
        EscalateAction,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[AutomationActionIn] = TypeAdapter(AutomationActionIn)


def parse_action(raw: dict[str, Any]) -> AutomationActionIn:
    """Validate one stored `{type, params}` action document."""
    return _action_adapter.validate_python(raw)


def dump_action(action: AutomationActionIn) -> dict[str, Any]:
    return action.model_dump(mode="json", exclude_none=True)


class AutomationRuleCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    trigger: AutomationTrigger
    conditions: list[AutomationConditionIn] = Field(default_factory=list)
    actions: list[AutomationActionIn] = Field(default_factory=list)
    priority: int = Field(default=0, ge=0)
    is_active: bool = True

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Route urgent inquiries",
                "trigger": "INQUIRY_CREATED",
                "conditions": [{"field": "priority", "operator": "equals", "value": "URGENT"}],
                "actions": [
                    {
                        "type": "ASSIGN_TO_ROLE",
                        "params": {"role": "VPP", "entity_type": "inquiry", "balance_workload": True},
                    }
                ],
                "priority": 10,
            }
        }
    )


class AutomationRuleUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    trigger: AutomationTrigger | None = None
    conditions: list[AutomationConditionIn] | None = None
    actions: list[AutomationActionIn] | None = None
    priority: int | None = Field(default=None, ge=0)
    is_active: bool | None = None

    @model_validator(mode="after")
    def validate_has_updates(self) -> "AutomationRuleUpdateIn":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class AutomationRuleOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    trigger: AutomationTrigger
    conditions: list[dict[str, Any]]
    actions: list[dict[str, Any]]
    priority: int
    is_active: bool
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime


class AutomationRuleListOut(BaseModel):
    items: list[AutomationRuleOut]
    pagination: PaginationMeta
    trigger: AutomationTrigger | None = None
    is_active: bool | None = None


class AutomationLogOut(BaseModel):
    id: str
    rule_id: str
    status: AutomationLogStatus
    message: str | None = None
    error_details: str | None = None
    execution_time_ms: int
    triggered_data: dict[str, Any] | None = None
    executed_actions: list[dict[str, Any]] = []
    executed_by_id: str | None = None
    created_at: datetime


class AutomationLogListOut(BaseModel):
    items: list[AutomationLogOut]
    pagination: PaginationMeta
    rule_id: str | None = None
    status: AutomationLogStatus | None = None


class AutomationRuleDetailOut(AutomationRuleOut):
    recent_logs: list[AutomationLogOut] = []


class EmailTemplateOut(BaseModel):
    id: str
    name: str
    subject: str
    html_content: str
    text_content: str | None = None
    variables: list[str] = []
    is_active: bool
    created_at: datetime
    updated_at: datetime


class EmailTemplateListOut(BaseModel):
    items: list[EmailTemplateOut]


class EmailTemplateUpdateIn(BaseModel):
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    html_content: str | None = Field(default=None, min_length=1)
    text_content: str | None = None
    variables: list[str] | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def validate_has_updates(self) -> "EmailTemplateUpdateIn":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class DeadlineCheckOut(BaseModel):
    checked: int
    warnings: int
    escalations: int
    overdue: int
    failed: int
