import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gscms.core.observability import automation_logger, log_event
from gscms.core.time_utils import as_utc, utcnow
from gscms.models.customer import Customer
from gscms.models.deadline import Deadline
from gscms.models.enums import AutomationTrigger, DeadlineEntity, DeadlineStatus
from gscms.models.inquiry import Inquiry, InquiryItem
from gscms.models.quote import ProductionOrder, Quote
from gscms.models.user import User
from gscms.services.automation_errors import AutomationActionError
from gscms.services.context_utils import snapshot_record

if TYPE_CHECKING:
    from gscms.services.automation_service import AutomationEngine

_SECONDS_PER_DAY = 86_400


@dataclass(frozen=True)
class DeadlineCheckSummary:
    checked: int
    warnings: int
    escalations: int
    overdue: int
    failed: int


def _entity_type_value(entity_type: DeadlineEntity | str) -> str:
    try:
        return DeadlineEntity(entity_type).value
    except ValueError as exc:
        raise AutomationActionError(f"Unknown deadline entity type '{entity_type}'") from exc


def create_deadline(
    db: Session,
    *,
    entity_type: DeadlineEntity | str,
    entity_id: str,
    due_date: datetime,
    warning_days: int = 3,
    escalation_days: int = 1,
) -> Deadline:
    """Create or re-arm the deadline for one entity.

    Re-scheduling moves the dates and reactivates the deadline. Reminders already
    sent are kept so a refresh never repeats a warning or escalation.
    """
    normalized_type = _entity_type_value(entity_type)
    if not entity_id:
        raise AutomationActionError(f"Deadline for {normalized_type} requires an entity id")

    due = as_utc(due_date)
    warning_date = due - timedelta(days=warning_days)
    escalation_date = due - timedelta(days=escalation_days)

    deadline = db.execute(
        select(Deadline).where(
            Deadline.entity_type == normalized_type,
            Deadline.entity_id == entity_id,
        )
    ).scalar_one_or_none()
    if deadline is None:
        deadline = Deadline(entity_type=normalized_type, entity_id=entity_id)
        db.add(deadline)

    deadline.due_date = due
    deadline.warning_date = warning_date
    deadline.escalation_date = escalation_date
    deadline.status = DeadlineStatus.ACTIVE.value
    deadline.completed_at = None
    db.flush()
    return deadline


def complete_deadline(
    db: Session,
    *,
    entity_type: DeadlineEntity | str,
    entity_id: str,
    now: datetime | None = None,
) -> int:
    completed_at = as_utc(now) if now else utcnow()
    result = db.execute(
        update(Deadline)
        .where(
            Deadline.entity_type == _entity_type_value(entity_type),
            Deadline.entity_id == entity_id,
            Deadline.status.in_([DeadlineStatus.ACTIVE.value, DeadlineStatus.OVERDUE.value]),
        )
        .values(status=DeadlineStatus.COMPLETED.value, completed_at=completed_at)
    )
    return int(result.rowcount or 0)


def _user_fields(user: User | None, prefix: str) -> dict[str, Any]:
    return {
        f"{prefix}_name": user.name if user else None,
        f"{prefix}_email": user.email if user else None,
    }


def _customer_name(db: Session, customer_id: str | None) -> str | None:
    if not customer_id:
        return None
    customer = db.get(Customer, customer_id)
    return customer.name if customer else None


def _user(db: Session, user_id: str | None) -> User | None:
    return db.get(User, user_id) if user_id else None


def get_entity_details(db: Session, entity_type: DeadlineEntity | str, entity_id: str) -> dict[str, Any]:
    normalized_type = DeadlineEntity(entity_type)

    if normalized_type == DeadlineEntity.INQUIRY:
        inquiry = db.get(Inquiry, entity_id)
        assigned_to_id = inquiry.assigned_to_id if inquiry else None
        return {
            "inquiry": snapshot_record(inquiry),
            "inquiry_id": entity_id,
            "inquiry_title": inquiry.title if inquiry else None,
            "entity_name": inquiry.title if inquiry else None,
            "customer_name": _customer_name(db, inquiry.customer_id if inquiry else None),
            "assigned_to_id": assigned_to_id,
            **_user_fields(_user(db, assigned_to_id), "assignee"),
        }

    if normalized_type == DeadlineEntity.INQUIRY_ITEM:
        item = db.get(InquiryItem, entity_id)
        inquiry = db.get(Inquiry, item.inquiry_id) if item else None
        assigned_to_id = item.assigned_to_id if item else None
        return {
            "inquiry_item": snapshot_record(item),
            "inquiry_item_id": entity_id,
            "item_name": item.name if item else None,
            "entity_name": item.name if item else None,
            "inquiry_id": item.inquiry_id if item else None,
            "inquiry_title": inquiry.title if inquiry else None,
            "customer_name": _customer_name(db, inquiry.customer_id if inquiry else None),
            "assigned_to_id": assigned_to_id,
            **_user_fields(_user(db, assigned_to_id), "assignee"),
        }

    if normalized_type == DeadlineEntity.QUOTE:
        quote = db.get(Quote, entity_id)
        inquiry = db.get(Inquiry, quote.inquiry_id) if quote else None
        created_by_id = quote.created_by_id if quote else None
        return {
            "quote": snapshot_record(quote),
            "quote_id": entity_id,
            "quote_number": quote.quote_number if quote else None,
            "quote_title": quote.title if quote else None,
            "entity_name": quote.title if quote else None,
            "customer_name": _customer_name(db, inquiry.customer_id if inquiry else None),
            "created_by_id": created_by_id,
            **_user_fields(_user(db, created_by_id), "creator"),
        }

    order = db.get(ProductionOrder, entity_id)
    quote = db.get(Quote, order.quote_id) if order else None
    inquiry = db.get(Inquiry, quote.inquiry_id) if quote else None
    return {
        "production_order": snapshot_record(order),
        "production_order_id": entity_id,
        "order_number": order.order_number if order else None,
        "order_title": order.title if order else None,
        "entity_name": order.title if order else None,
        "customer_name": _customer_name(db, inquiry.customer_id if inquiry else None),
    }


def _whole_days(delta: timedelta) -> int:
    return math.floor(delta.total_seconds() / _SECONDS_PER_DAY)


def _base_context(db: Session, deadline: Deadline) -> dict[str, Any]:
    return {
        "deadline_id": deadline.id,
        "entity_type": deadline.entity_type,
        "entity_id": deadline.entity_id,
        "due_date": as_utc(deadline.due_date).isoformat(),
        **get_entity_details(db, deadline.entity_type, deadline.entity_id),
    }


def _process_deadline(
    db: Session,
    deadline: Deadline,
    *,
    engine: "AutomationEngine",
    now: datetime,
) -> str | None:
    from gscms.services.automation_service import RuleExecution

    due = as_utc(deadline.due_date)
    escalation_date = as_utc(deadline.escalation_date) if deadline.escalation_date else None
    warning_date = as_utc(deadline.warning_date) if deadline.warning_date else None

    if now > due:
        deadline.status = DeadlineStatus.OVERDUE.value
        outcome = "overdue"
        flags: dict[str, Any] = {"is_overdue": True, "days_overdue": _whole_days(now - due)}
    elif escalation_date and now > escalation_date and deadline.reminders_sent < 2:
        deadline.reminders_sent = 2
        outcome = "escalation"
        flags = {"is_escalation": True, "days_until_due": _whole_days(due - now)}
    elif warning_date and now > warning_date and deadline.reminders_sent == 0:
        deadline.reminders_sent = 1
        outcome = "warning"
        flags = {"is_warning": True, "days_until_due": _whole_days(due - now)}
    else:
        return None

    context = {**_base_context(db, deadline), **flags}
    db.commit()
    engine.execute_rules_for_trigger(
        RuleExecution(trigger=AutomationTrigger.DEADLINE_APPROACHING, context=context)
    )
    return outcome


def check_deadlines(
    db: Session,
    *,
    engine: "AutomationEngine",
    now: datetime | None = None,
) -> DeadlineCheckSummary:
    current = as_utc(now) if now else utcnow()
    deadline_ids = db.execute(
        select(Deadline.id)
        .where(Deadline.status == DeadlineStatus.ACTIVE.value)
        .order_by(Deadline.due_date.asc(), Deadline.id.asc())
    ).scalars().all()

    counts = {"warning": 0, "escalation": 0, "overdue": 0}
    checked = 0
    failed = 0
    for deadline_id in deadline_ids:
        try:
            deadline = db.get(Deadline, deadline_id)
            if deadline is None or deadline.status != DeadlineStatus.ACTIVE.value:
                continue
            checked += 1
            outcome = _process_deadline(db, deadline, engine=engine, now=current)
            if outcome:
                counts[outcome] += 1
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            failed += 1
            log_event(
                automation_logger,
                "deadline_check_failed",
                level=logging.ERROR,
                deadline_id=deadline_id,
                error=str(exc),
            )

    summary = DeadlineCheckSummary(
        checked=checked,
        warnings=counts["warning"],
        escalations=counts["escalation"],
        overdue=counts["overdue"],
        failed=failed,
    )
    log_event(
        automation_logger,
        "deadline_check_completed",
        checked=summary.checked,
        warnings=summary.warnings,
        escalations=summary.escalations,
        overdue=summary.overdue,
        failed=summary.failed,
    )
    return summary
