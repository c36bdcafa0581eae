from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from gscms.core.api_docs import error_responses
from gscms.core.config import settings
from gscms.core.deps import get_db
from gscms.core.observability import log_event, logger
from gscms.core.permissions import require_permission
from gscms.models.customer import Customer
from gscms.models.enums import DeadlineEntity, InquiryStatus
from gscms.models.inquiry import Inquiry, InquiryItem
from gscms.models.user import User
from gscms.schemas.inquiry import (
    InquiryCreateIn,
    InquiryItemAssignIn,
    InquiryItemOut,
    InquiryOut,
    InquiryStatusUpdateIn,
)
from gscms.services.automation_hooks import (
    on_inquiry_created,
    on_inquiry_status_changed,
    on_item_assigned,
)
from gscms.services.deadline_service import complete_deadline, create_deadline

router = APIRouter(prefix="/inquiries", tags=["inquiries"])
items_router = APIRouter(prefix="/inquiry-items", tags=["inquiries"])

TERMINAL_INQUIRY_STATUSES = {InquiryStatus.REJECTED.value, InquiryStatus.CONVERTED.value}


def _inquiry_or_404(db: Session, *, inquiry_id: str) -> Inquiry:
    inquiry = db.execute(select(Inquiry).where(Inquiry.id == inquiry_id)).scalar_one_or_none()
    if not inquiry:
        raise HTTPException(status_code=404, detail="Inquiry not found")
    return inquiry


def _item_or_404(db: Session, *, item_id: str) -> InquiryItem:
    item = db.execute(select(InquiryItem).where(InquiryItem.id == item_id)).scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Inquiry item not found")
    return item


def _active_user_or_400(db: Session, *, user_id: str) -> User:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=400, detail="Assignee must be an active user")
    return user


def _item_out(item: InquiryItem) -> InquiryItemOut:
    return InquiryItemOut(
        id=item.id,
        inquiry_id=item.inquiry_id,
        name=item.name,
        quantity=item.quantity,
        status=item.status,
        assigned_to_id=item.assigned_to_id,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def _inquiry_out(db: Session, inquiry: Inquiry) -> InquiryOut:
    items = db.execute(
        select(InquiryItem)
        .where(InquiryItem.inquiry_id == inquiry.id)
        .order_by(InquiryItem.created_at.asc(), InquiryItem.id.asc())
    ).scalars().all()
    return InquiryOut(
        id=inquiry.id,
        title=inquiry.title,
        description=inquiry.description,
        customer_id=inquiry.customer_id,
        status=inquiry.status,
        priority=inquiry.priority,
        deadline=inquiry.deadline,
        assigned_to_id=inquiry.assigned_to_id,
        created_by_id=inquiry.created_by_id,
        created_at=inquiry.created_at,
        updated_at=inquiry.updated_at,
        items=[_item_out(item) for item in items],
    )


@router.post(
    "",
    response_model=InquiryOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create inquiry",
    responses=error_responses(400, 401, 403, 404, 422, 500, path="/inquiries", not_found="Customer not found"),
)
def create_inquiry(
    payload: InquiryCreateIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("inquiries.create")),
):
    customer = db.execute(select(Customer).where(Customer.id == payload.customer_id)).scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    if payload.assigned_to_id:
        _active_user_or_400(db, user_id=payload.assigned_to_id)

    inquiry = Inquiry(
        title=payload.title,
        description=payload.description,
        customer_id=customer.id,
        status=InquiryStatus.SUBMITTED.value,
        priority=payload.priority.value,
        deadline=payload.deadline,
        assigned_to_id=payload.assigned_to_id,
        created_by_id=actor.id,
    )
    db.add(inquiry)
    db.flush()
    for item in payload.items:
        db.add(InquiryItem(inquiry_id=inquiry.id, name=item.name, quantity=item.quantity))
    if payload.deadline is not None:
        create_deadline(
            db,
            entity_type=DeadlineEntity.INQUIRY,
            entity_id=inquiry.id,
            due_date=payload.deadline,
            warning_days=settings.deadline_warning_days,
            escalation_days=settings.deadline_escalation_days,
        )
    db.commit()
    log_event(logger, "inquiry.create", actor_user_id=actor.id, inquiry_id=inquiry.id)

    on_inquiry_created(db, inquiry, user_id=actor.id)
    db.refresh(inquiry)
    return _inquiry_out(db, inquiry)


@router.patch(
    "/{inquiry_id}/status",
    response_model=InquiryOut,
    summary="Change inquiry status",
    responses=error_responses(401, 403, 404, 422, 500, path="/inquiries/{inquiry_id}/status", not_found="Inquiry not found"),
)
def update_inquiry_status(
    inquiry_id: str,
    payload: InquiryStatusUpdateIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("inquiries.status.update")),
):
    inquiry = _inquiry_or_404(db, inquiry_id=inquiry_id)
    old_status = inquiry.status
    new_status = payload.status.value
    if old_status == new_status:
        return _inquiry_out(db, inquiry)

    inquiry.status = new_status
    if new_status in TERMINAL_INQUIRY_STATUSES:
        complete_deadline(db, entity_type=DeadlineEntity.INQUIRY, entity_id=inquiry.id)
    db.commit()
    log_event(
        logger,
        "inquiry.status.update",
        actor_user_id=actor.id,
        inquiry_id=inquiry.id,
        old_status=old_status,
        new_status=new_status,
    )

    on_inquiry_status_changed(db, inquiry, old_status, new_status, user_id=actor.id)
    db.refresh(inquiry)
    return _inquiry_out(db, inquiry)


@items_router.patch(
    "/{item_id}/assign",
    response_model=InquiryItemOut,
    summary="Assign inquiry item to a user",
    responses=error_responses(400, 401, 403, 404, 422, 500, path="/inquiry-items/{item_id}/assign", not_found="Inquiry item not found"),
)
def assign_inquiry_item(
    item_id: str,
    payload: InquiryItemAssignIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("inquiries.items.assign")),
):
    item = _item_or_404(db, item_id=item_id)
    assignee = _active_user_or_400(db, user_id=payload.assigned_to_id)
    item.assigned_to_id = assignee.id
    db.commit()
    log_event(
        logger,
        "inquiry_item.assign",
        actor_user_id=actor.id,
        inquiry_item_id=item.id,
        assigned_to_id=assignee.id,
    )

    on_item_assigned(db, item, assignee.id, user_id=actor.id)
    db.refresh(item)
    return _item_out(item)
