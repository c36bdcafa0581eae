import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gscms.core.config import settings
from gscms.core.observability import automation_logger, log_event
from gscms.core.time_utils import utcnow
from gscms.models.automation import AutomationLog, AutomationRule
from gscms.models.enums import (
    ActionType,
    AutomationLogStatus,
    AutomationTrigger,
    DeadlineEntity,
    NotificationType,
    UserRole,
)
from gscms.models.inquiry import Inquiry, InquiryItem
from gscms.models.notification import Notification
from gscms.models.user import User
from gscms.schemas.automation import (
    AssignToRoleParams,
    AssignToUserParams,
    CreateDeadlineParams,
    CreateNotificationParams,
    EscalateParams,
    SendEmailParams,
    UpdateStatusParams,
    parse_action,
)
from gscms.services.automation_errors import AutomationActionError
from gscms.services.context_utils import to_json_safe
from gscms.services.deadline_service import create_deadline
from gscms.services.email_service import EmailNotification, EmailNotifier, build_email_transport
from gscms.services.workload_service import SqlWorkloadBalancer, WorkloadBalancer

_ACTION_TYPES = {item.value for item in ActionType}

_ENTITY_CONTEXT_KEYS = {
    "inquiry": "inquiry_id",
    "inquiryItem": "inquiry_item_id",
}

_DEADLINE_CONTEXT_KEYS = {
    DeadlineEntity.INQUIRY: "inquiry_id",
    DeadlineEntity.INQUIRY_ITEM: "inquiry_item_id",
    DeadlineEntity.QUOTE: "quote_id",
    DeadlineEntity.PRODUCTION_ORDER: "production_order_id",
}

ESCALATION_TITLE = "Escalation Required"
ESCALATION_MESSAGE = "An item requires your attention"


@dataclass(frozen=True)
class RuleExecution:
    trigger: AutomationTrigger | str
    context: dict[str, Any]
    user_id: str | None = None


@dataclass(frozen=True)
class RuleResult:
    rule_id: str
    success: bool
    executed_actions: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    execution_time_ms: int = 0


def evaluate_conditions(conditions: list[dict[str, Any]] | None, context: dict[str, Any]) -> bool:
    """Left-to-right fold over the conditions.

    Each condition's `logic` joins the *next* condition to the running result,
    so the first condition's own connector never applies and the last one's is unused.
    """
    if not conditions:
        return True

    result = True
    previous_logic = "AND"
    for condition in conditions:
        outcome = evaluate_condition(condition, context)
        if previous_logic == "AND":
            result = result and outcome
        else:
            result = result or outcome
        previous_logic = condition.get("logic") or "AND"
    return result


def evaluate_condition(condition: dict[str, Any], context: dict[str, Any]) -> bool:
    actual = _resolve_path(context, str(condition.get("field") or ""))
    expected = condition.get("value")
    operator = condition.get("operator")

    if operator == "equals":
        return _strict_equals(actual, expected)
    if operator == "not_equals":
        return not _strict_equals(actual, expected)
    if operator == "contains":
        return _to_text(expected) in _to_text(actual)
    if operator == "greater_than":
        return _to_number(actual) > _to_number(expected)
    if operator == "less_than":
        return _to_number(actual) < _to_number(expected)
    if operator == "in":
        return isinstance(expected, list) and any(_strict_equals(actual, item) for item in expected)
    if operator == "not_in":
        return isinstance(expected, list) and not any(_strict_equals(actual, item) for item in expected)
    return False


def _resolve_path(container: Any, path: str) -> Any:
    normalized = (path or "").strip()
    if not normalized:
        return None

    current: Any = container
    for part in normalized.split("."):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
            continue
        if isinstance(current, list):
            if not part.isdigit():
                return None
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
            continue
        return None
    return current


def _strict_equals(left: Any, right: Any) -> bool:
    # Booleans never equal numbers.
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_number(value: Any) -> float:
    """Numeric coercion where anything non-numeric becomes NaN (all comparisons false)."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _short_error(value: Exception | str) -> str:
    text = str(value).strip() or "Automation action failed"
    return text[:255]


class AutomationEngine:
    """Runs the active rules for one trigger against a fixed context."""

    def __init__(
        self,
        db: Session,
        *,
        notifier: EmailNotifier | None = None,
        workload: WorkloadBalancer | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db = db
        self.notifier = notifier or EmailNotifier(db)
        self.workload = workload or SqlWorkloadBalancer(db)
        self.clock = clock or utcnow
        self._handlers: dict[str, Callable[[Any, dict[str, Any]], None]] = {
            ActionType.ASSIGN_TO_USER.value: self._assign_to_user,
            ActionType.ASSIGN_TO_ROLE.value: self._assign_to_role,
            ActionType.SEND_EMAIL.value: self._send_email,
            ActionType.CREATE_NOTIFICATION.value: self._create_notification,
            ActionType.UPDATE_STATUS.value: self._update_status,
            ActionType.CREATE_DEADLINE.value: self._create_deadline,
            ActionType.ESCALATE.value: self._escalate,
        }

    def execute_rules_for_trigger(self, execution: RuleExecution) -> list[RuleResult]:
        started = time.perf_counter()
        results: list[RuleResult] = []
        trigger = getattr(execution.trigger, "value", execution.trigger)

        try:
            rules = self.db.execute(
                select(AutomationRule)
                .where(
                    AutomationRule.trigger == trigger,
                    AutomationRule.is_active.is_(True),
                )
                .order_by(
                    AutomationRule.priority.desc(),
                    AutomationRule.created_at.asc(),
                    AutomationRule.id.asc(),
                )
            ).scalars().all()
            rule_ids = [rule.id for rule in rules]

            for rule_id, rule in zip(rule_ids, rules):
                result = self._execute_rule(rule_id, rule, execution)
                results.append(result)
                self._write_log(result, execution)
        except Exception as exc:  # noqa: BLE001
            self.db.rollback()
            log_event(
                automation_logger,
                "automation_engine_error",
                level=logging.ERROR,
                trigger=trigger,
                error=str(exc),
            )

        log_event(
            automation_logger,
            "automation_trigger_executed",
            trigger=trigger,
            rules=len(results),
            succeeded=sum(1 for item in results if item.success),
            failed=sum(1 for item in results if not item.success),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return results

    def _execute_rule(self, rule_id: str, rule: AutomationRule, execution: RuleExecution) -> RuleResult:
        started = time.perf_counter()
        executed_actions: list[dict[str, Any]] = []

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            conditions = rule.conditions_json if isinstance(rule.conditions_json, list) else []
            if not evaluate_conditions(conditions, execution.context):
                return RuleResult(rule_id=rule_id, success=True, execution_time_ms=elapsed_ms())

            actions = rule.actions_json if isinstance(rule.actions_json, list) else []
            for raw_action in actions:
                self._execute_action(raw_action, execution.context)
                self.db.commit()
                executed_actions.append(raw_action)
        except Exception as exc:  # noqa: BLE001
            self.db.rollback()
            return RuleResult(
                rule_id=rule_id,
                success=False,
                executed_actions=executed_actions,
                error=str(exc) or exc.__class__.__name__,
                execution_time_ms=elapsed_ms(),
            )

        return RuleResult(
            rule_id=rule_id,
            success=True,
            executed_actions=executed_actions,
            execution_time_ms=elapsed_ms(),
        )

    def _write_log(self, result: RuleResult, execution: RuleExecution) -> None:
        if result.success:
            status = AutomationLogStatus.SUCCESS.value
            message = f"Executed {len(result.executed_actions)} actions"
        else:
            status = AutomationLogStatus.FAILED.value
            message = _short_error(result.error or "")

        self.db.add(
            AutomationLog(
                rule_id=result.rule_id,
                status=status,
                message=message,
                error_details=result.error,
                execution_time_ms=result.execution_time_ms,
                triggered_data=to_json_safe(execution.context),
                executed_actions=to_json_safe(result.executed_actions),
                executed_by_id=execution.user_id,
            )
        )
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_event(
                automation_logger,
                "automation_log_write_failed",
                level=logging.ERROR,
                rule_id=result.rule_id,
                error=str(exc),
            )

    def _execute_action(self, raw_action: Any, context: dict[str, Any]) -> None:
        action_type = raw_action.get("type") if isinstance(raw_action, dict) else None
        if action_type not in _ACTION_TYPES:
            raise AutomationActionError(f"Unknown action type: {action_type}")
        action = parse_action(raw_action)
        self._handlers[action.type](action.params, context)

    def _require_user(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise AutomationActionError(f"User {user_id} not found")
        return user

    def _target_entity(
        self,
        entity_type: str,
        entity_id: str | None,
        context: dict[str, Any],
    ) -> Inquiry | InquiryItem:
        model = Inquiry if entity_type == "inquiry" else InquiryItem
        target_id = entity_id or context.get(_ENTITY_CONTEXT_KEYS[entity_type])
        if not target_id:
            raise AutomationActionError(f"No {entity_type} id in action params or context")
        entity = self.db.get(model, str(target_id))
        if not entity:
            raise AutomationActionError(f"{model.__name__} {target_id} not found")
        return entity

    def _assign(self, *, user_id: str, entity_type: str, entity_id: str | None, context: dict[str, Any]) -> None:
        self._require_user(user_id)
        entity = self._target_entity(entity_type, entity_id, context)
        entity.assigned_to_id = user_id

    def _assign_to_user(self, params: AssignToUserParams, context: dict[str, Any]) -> None:
        self._assign(
            user_id=params.user_id,
            entity_type=params.entity_type,
            entity_id=params.entity_id,
            context=context,
        )

    def _assign_to_role(self, params: AssignToRoleParams, context: dict[str, Any]) -> None:
        user_id = self.workload.pick_user(params.role.value, balance_workload=params.balance_workload)
        self._assign(
            user_id=user_id,
            entity_type=params.entity_type,
            entity_id=params.entity_id,
            context=context,
        )

    def _active_managers(self) -> list[User]:
        return list(
            self.db.execute(
                select(User)
                .where(User.role == UserRole.MANAGER.value, User.is_active.is_(True))
                .order_by(User.created_at.asc(), User.id.asc())
            ).scalars().all()
        )

    def _resolve_recipients(self, to: list[str] | str, context: dict[str, Any]) -> list[str]:
        if isinstance(to, list):
            return to
        if "@" in to:
            return [to]
        if to == "assignee":
            assignee_id = context.get("assigned_to_id")
            assignee = self.db.get(User, str(assignee_id)) if assignee_id else None
            return [assignee.email] if assignee and assignee.email else []
        if to == "managers":
            return [manager.email for manager in self._active_managers() if manager.email]
        return []

    def _send_email(self, params: SendEmailParams, context: dict[str, Any]) -> None:
        # Context wins over same-named action variables.
        self.notifier.send(
            EmailNotification(
                to=self._resolve_recipients(params.to, context),
                template_name=params.template_name,
                variables={**params.variables, **context},
            )
        )

    def _notify(
        self,
        *,
        user_id: str,
        notification_type: str,
        title: str,
        message: str | None,
        context: dict[str, Any],
    ) -> None:
        self.db.add(
            Notification(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                data=to_json_safe(context),
            )
        )

    def _create_notification(self, params: CreateNotificationParams, context: dict[str, Any]) -> None:
        user_id = params.user_id or context.get("assigned_to_id")
        if not user_id:
            raise AutomationActionError("Notification requires a user id in params or context")
        self._require_user(str(user_id))
        self._notify(
            user_id=str(user_id),
            notification_type=params.type.value,
            title=params.title,
            message=params.message,
            context=context,
        )

    def _update_status(self, params: UpdateStatusParams, context: dict[str, Any]) -> None:
        entity = self._target_entity(params.entity_type, params.entity_id, context)
        entity.status = params.status

    def _create_deadline(self, params: CreateDeadlineParams, context: dict[str, Any]) -> None:
        entity_id = params.entity_id or context.get(_DEADLINE_CONTEXT_KEYS[params.entity_type])
        warning_days = params.warning_days
        escalation_days = params.escalation_days
        create_deadline(
            self.db,
            entity_type=params.entity_type,
            entity_id=str(entity_id) if entity_id else "",
            due_date=self.clock() + timedelta(days=params.days_from_now),
            warning_days=settings.deadline_warning_days if warning_days is None else warning_days,
            escalation_days=settings.deadline_escalation_days if escalation_days is None else escalation_days,
        )

    def _escalate(self, params: EscalateParams, context: dict[str, Any]) -> None:
        for manager in self._active_managers():
            self._notify(
                user_id=manager.id,
                notification_type=NotificationType.STATUS_UPDATE.value,
                title=params.title or ESCALATION_TITLE,
                message=params.message or ESCALATION_MESSAGE,
                context=context,
            )


def get_automation_engine(db: Session) -> AutomationEngine:
    return AutomationEngine(
        db,
        notifier=EmailNotifier(db, build_email_transport()),
        workload=SqlWorkloadBalancer(db),
    )
