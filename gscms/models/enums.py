import enum


class UserRole(str, enum.Enum):
    SUPERUSER = "SUPERUSER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SALES = "SALES"
    VPP = "VPP"
    VP = "VP"
    TECH = "TECH"


class AutomationTrigger(str, enum.Enum):
    INQUIRY_CREATED = "INQUIRY_CREATED"
    INQUIRY_STATUS_CHANGED = "INQUIRY_STATUS_CHANGED"
    ITEM_ASSIGNED = "ITEM_ASSIGNED"
    COST_CALCULATED = "COST_CALCULATED"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    QUOTE_CREATED = "QUOTE_CREATED"
    PRODUCTION_ORDER_CREATED = "PRODUCTION_ORDER_CREATED"
    WORKLOAD_THRESHOLD = "WORKLOAD_THRESHOLD"
    DEADLINE_APPROACHING = "DEADLINE_APPROACHING"


class ActionType(str, enum.Enum):
    ASSIGN_TO_USER = "ASSIGN_TO_USER"
    ASSIGN_TO_ROLE = "ASSIGN_TO_ROLE"
    SEND_EMAIL = "SEND_EMAIL"
    CREATE_NOTIFICATION = "CREATE_NOTIFICATION"
    UPDATE_STATUS = "UPDATE_STATUS"
    CREATE_DEADLINE = "CREATE_DEADLINE"
    ESCALATE = "ESCALATE"


class AutomationLogStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class DeadlineEntity(str, enum.Enum):
    INQUIRY = "INQUIRY"
    INQUIRY_ITEM = "INQUIRY_ITEM"
    QUOTE = "QUOTE"
    PRODUCTION_ORDER = "PRODUCTION_ORDER"


class DeadlineStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    COMPLETED = "COMPLETED"


class InquiryStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    IN_REVIEW = "IN_REVIEW"
    ASSIGNED = "ASSIGNED"
    COSTING = "COSTING"
    QUOTED = "QUOTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONVERTED = "CONVERTED"


class ItemStatus(str, enum.Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COSTED = "COSTED"
    APPROVED = "APPROVED"
    QUOTED = "QUOTED"


class Priority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class NotificationType(str, enum.Enum):
    STATUS_UPDATE = "STATUS_UPDATE"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    COST_CALCULATION = "COST_CALCULATION"
    QUOTE_GENERATED = "QUOTE_GENERATED"
    DEADLINE_REMINDER = "DEADLINE_REMINDER"
    ESCALATION = "ESCALATION"
