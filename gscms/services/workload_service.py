import random
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gscms.models.costing import CostCalculation
from gscms.models.enums import ItemStatus
from gscms.models.inquiry import InquiryItem
from gscms.models.user import User
from gscms.services.automation_errors import AutomationActionError

_ACTIVE_ITEM_STATUSES = (ItemStatus.ASSIGNED.value, ItemStatus.IN_PROGRESS.value)


@dataclass(frozen=True)
class WorkloadBalance:
    user_id: str
    role: str
    active_items: int
    pending_costs: int
    total_workload: int


class WorkloadBalancer(Protocol):
    def pick_user(self, role: str, *, balance_workload: bool) -> str:
        ...


def _active_users_by_role(db: Session, role: str) -> list[User]:
    return list(
        db.execute(
            select(User)
            .where(User.role == role, User.is_active.is_(True))
            .order_by(User.created_at.asc(), User.id.asc())
        ).scalars().all()
    )


def get_workloads_by_role(db: Session, role: str) -> list[WorkloadBalance]:
    users = _active_users_by_role(db, role)
    if not users:
        return []
    user_ids = [user.id for user in users]

    active_items = dict(
        db.execute(
            select(InquiryItem.assigned_to_id, func.count(InquiryItem.id))
            .where(
                InquiryItem.assigned_to_id.in_(user_ids),
                InquiryItem.status.in_(_ACTIVE_ITEM_STATUSES),
            )
            .group_by(InquiryItem.assigned_to_id)
        ).all()
    )
    pending_costs = dict(
        db.execute(
            select(CostCalculation.calculated_by_id, func.count(CostCalculation.id))
            .where(
                CostCalculation.calculated_by_id.in_(user_ids),
                CostCalculation.is_approved.is_(False),
            )
            .group_by(CostCalculation.calculated_by_id)
        ).all()
    )

    out: list[WorkloadBalance] = []
    for user in users:
        items = int(active_items.get(user.id, 0))
        costs = int(pending_costs.get(user.id, 0))
        out.append(
            WorkloadBalance(
                user_id=user.id,
                role=user.role,
                active_items=items,
                pending_costs=costs,
                total_workload=items + costs,
            )
        )
    return out


class SqlWorkloadBalancer:
    """Best-effort read-then-pick; concurrent callers may choose the same user."""

    def __init__(self, db: Session, *, rng: random.Random | None = None) -> None:
        self.db = db
        self.rng = rng or random.Random()

    def pick_user(self, role: str, *, balance_workload: bool) -> str:
        if balance_workload:
            workloads = get_workloads_by_role(self.db, role)
            if not workloads:
                raise AutomationActionError(f"No active users with role {role}")
            least_busy = workloads[0]
            for candidate in workloads[1:]:
                if candidate.total_workload <= least_busy.total_workload:
                    least_busy = candidate
            return least_busy.user_id

        users = _active_users_by_role(self.db, role)
        if not users:
            raise AutomationActionError(f"No active users with role {role}")
        return self.rng.choice(users).id
