"""Entry points the write paths call after committing a domain change.

Each hook flattens the changed record into a snake_case context and runs the
rules for its trigger. Hooks never raise: failures are logged and `[]` is returned.
"""
import logging
from dataclasses import asdict
from typing import Any, Callable

from sqlalchemy.orm import Session

from gscms.core.observability import automation_logger, log_event
from gscms.core.time_utils import utcnow
from gscms.models.costing import Approval, CostCalculation
from gscms.models.customer import Customer
from gscms.models.enums import AutomationTrigger
from gscms.models.inquiry import Inquiry, InquiryItem
from gscms.models.quote import ProductionOrder, Quote
from gscms.models.user import User
from gscms.services.automation_service import (
    AutomationEngine,
    RuleExecution,
    RuleResult,
    get_automation_engine,
)
from gscms.services.context_utils import snapshot_record, to_json_safe
from gscms.services.workload_service import get_workloads_by_role


def _fire(
    db: Session,
    trigger: AutomationTrigger,
    build_context: Callable[[], dict[str, Any]],
    *,
    user_id: str | None,
    engine: AutomationEngine | None,
) -> list[RuleResult]:
    try:
        context = build_context()
        runner = engine or get_automation_engine(db)
        return runner.execute_rules_for_trigger(
            RuleExecution(trigger=trigger, context=context, user_id=user_id)
        )
    except Exception as exc:  # noqa: BLE001 - automation must not break the write path
        log_event(
            automation_logger,
            "automation_hook_failed",
            level=logging.ERROR,
            trigger=trigger.value,
            error=str(exc),
        )
        return []


def _user_name(db: Session, user_id: str | None) -> str | None:
    user = db.get(User, user_id) if user_id else None
    return user.name if user else None


def _customer_name(db: Session, customer_id: str | None) -> str | None:
    customer = db.get(Customer, customer_id) if customer_id else None
    return customer.name if customer else None


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def on_inquiry_created(
    db: Session,
    inquiry: Inquiry,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        return {
            "inquiry_id": inquiry.id,
            "inquiry": snapshot_record(inquiry),
            "inquiry_title": inquiry.title,
            "status": inquiry.status,
            "customer_id": inquiry.customer_id,
            "customer_name": _customer_name(db, inquiry.customer_id),
            "priority": inquiry.priority,
            "deadline": _iso(inquiry.deadline),
            "assigned_to_id": inquiry.assigned_to_id,
            "created_by_id": inquiry.created_by_id,
            "creator_name": _user_name(db, inquiry.created_by_id),
        }

    return _fire(db, AutomationTrigger.INQUIRY_CREATED, build, user_id=user_id, engine=engine)


def on_inquiry_status_changed(
    db: Session,
    inquiry: Inquiry,
    old_status: str,
    new_status: str,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        return {
            "inquiry_id": inquiry.id,
            "inquiry": snapshot_record(inquiry),
            "old_status": old_status,
            "new_status": new_status,
            "inquiry_title": inquiry.title,
            "priority": inquiry.priority,
            "customer_id": inquiry.customer_id,
            "customer_name": _customer_name(db, inquiry.customer_id),
            "assigned_to_id": inquiry.assigned_to_id,
            "assignee_name": _user_name(db, inquiry.assigned_to_id),
        }

    return _fire(db, AutomationTrigger.INQUIRY_STATUS_CHANGED, build, user_id=user_id, engine=engine)


def on_item_assigned(
    db: Session,
    item: InquiryItem,
    assigned_to_id: str,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        inquiry = db.get(Inquiry, item.inquiry_id)
        assignee = db.get(User, assigned_to_id) if assigned_to_id else None
        return {
            "inquiry_item_id": item.id,
            "assigned_to_id": assigned_to_id,
            "item": snapshot_record(item),
            "item_name": item.name,
            "status": item.status,
            "inquiry_id": item.inquiry_id,
            "inquiry_title": inquiry.title if inquiry else None,
            "assignee_name": assignee.name if assignee else None,
            "assignee_email": assignee.email if assignee else None,
        }

    return _fire(db, AutomationTrigger.ITEM_ASSIGNED, build, user_id=user_id, engine=engine)


def on_cost_calculated(
    db: Session,
    calculation: CostCalculation,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        item = db.get(InquiryItem, calculation.inquiry_item_id)
        return {
            "cost_calculation_id": calculation.id,
            "calculation": snapshot_record(calculation),
            "total_cost": float(calculation.total_cost) if calculation.total_cost is not None else None,
            "inquiry_item_id": calculation.inquiry_item_id,
            "item_name": item.name if item else None,
            "calculated_by_id": calculation.calculated_by_id,
            "calculated_by_name": _user_name(db, calculation.calculated_by_id),
        }

    return _fire(db, AutomationTrigger.COST_CALCULATED, build, user_id=user_id, engine=engine)


def on_approval_required(
    db: Session,
    approval: Approval,
    entity_type: str,
    entity: Any,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        approver = db.get(User, approval.approver_id) if approval.approver_id else None
        return {
            "approval_id": approval.id,
            "approval": snapshot_record(approval),
            "entity_type": entity_type,
            "entity": to_json_safe(entity) if isinstance(entity, dict) else snapshot_record(entity),
            "approver_id": approval.approver_id,
            "approver_name": approver.name if approver else None,
            "approver_email": approver.email if approver else None,
        }

    return _fire(db, AutomationTrigger.APPROVAL_REQUIRED, build, user_id=user_id, engine=engine)


def on_quote_created(
    db: Session,
    quote: Quote,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        inquiry = db.get(Inquiry, quote.inquiry_id)
        customer_id = inquiry.customer_id if inquiry else None
        return {
            "quote_id": quote.id,
            "quote": snapshot_record(quote),
            "quote_number": quote.quote_number,
            "quote_title": quote.title,
            "total_value": float(quote.total) if quote.total is not None else None,
            "inquiry_id": quote.inquiry_id,
            "inquiry_title": inquiry.title if inquiry else None,
            "customer_id": customer_id,
            "customer_name": _customer_name(db, customer_id),
            "created_by_id": quote.created_by_id,
            "creator_name": _user_name(db, quote.created_by_id),
        }

    return _fire(db, AutomationTrigger.QUOTE_CREATED, build, user_id=user_id, engine=engine)


def on_production_order_created(
    db: Session,
    order: ProductionOrder,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        quote = db.get(Quote, order.quote_id)
        inquiry = db.get(Inquiry, quote.inquiry_id) if quote else None
        customer_id = inquiry.customer_id if inquiry else None
        return {
            "production_order_id": order.id,
            "order": snapshot_record(order),
            "order_number": order.order_number,
            "order_title": order.title,
            "total_value": float(order.total_value) if order.total_value is not None else None,
            "quote_id": order.quote_id,
            "customer_id": customer_id,
            "customer_name": _customer_name(db, customer_id),
        }

    return _fire(db, AutomationTrigger.PRODUCTION_ORDER_CREATED, build, user_id=user_id, engine=engine)


def check_workload_balance(
    db: Session,
    role: str,
    *,
    user_id: str | None = None,
    engine: AutomationEngine | None = None,
) -> list[RuleResult]:
    def build() -> dict[str, Any]:
        return {
            "role": role,
            "check_time": utcnow().isoformat(),
            "workloads": [asdict(item) for item in get_workloads_by_role(db, role)],
        }

    return _fire(db, AutomationTrigger.WORKLOAD_THRESHOLD, build, user_id=user_id, engine=engine)
