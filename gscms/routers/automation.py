from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gscms.core.api_docs import error_responses
from gscms.core.deps import get_db
from gscms.core.observability import log_event, logger
from gscms.core.permissions import require_permission
from gscms.models.automation import AutomationLog, AutomationRule
from gscms.models.email_template import EmailTemplate
from gscms.models.enums import AutomationLogStatus, AutomationTrigger
from gscms.models.user import User
from gscms.schemas.automation import (
    AutomationLogListOut,
    AutomationLogOut,
    AutomationRuleCreateIn,
    AutomationRuleDetailOut,
    AutomationRuleListOut,
    AutomationRuleOut,
    AutomationRuleUpdateIn,
    DeadlineCheckOut,
    EmailTemplateListOut,
    EmailTemplateOut,
    EmailTemplateUpdateIn,
    dump_action,
)
from gscms.schemas.common import PaginationMeta
from gscms.services.automation_service import get_automation_engine
from gscms.services.deadline_service import check_deadlines

router = APIRouter(prefix="/automation", tags=["automation"])

RECENT_LOG_LIMIT = 10


def _rule_or_404(db: Session, *, rule_id: str) -> AutomationRule:
    rule = db.execute(select(AutomationRule).where(AutomationRule.id == rule_id)).scalar_one_or_none()
    if not rule:
        raise HTTPException(status_code=404, detail="Automation rule not found")
    return rule


def _template_or_404(db: Session, *, name: str) -> EmailTemplate:
    template = db.execute(select(EmailTemplate).where(EmailTemplate.name == name)).scalar_one_or_none()
    if not template:
        raise HTTPException(status_code=404, detail="Email template not found")
    return template


def _rule_fields(rule: AutomationRule) -> dict:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "trigger": rule.trigger,
        "conditions": [item for item in rule.conditions_json or [] if isinstance(item, dict)],
        "actions": [item for item in rule.actions_json or [] if isinstance(item, dict)],
        "priority": rule.priority,
        "is_active": rule.is_active,
        "created_by_id": rule.created_by_id,
        "created_at": rule.created_at,
        "updated_at": rule.updated_at,
    }


def _rule_out(rule: AutomationRule) -> AutomationRuleOut:
    return AutomationRuleOut(**_rule_fields(rule))


def _log_out(log: AutomationLog) -> AutomationLogOut:
    return AutomationLogOut(
        id=log.id,
        rule_id=log.rule_id,
        status=log.status,
        message=log.message,
        error_details=log.error_details,
        execution_time_ms=log.execution_time_ms,
        triggered_data=log.triggered_data if isinstance(log.triggered_data, dict) else None,
        executed_actions=log.executed_actions if isinstance(log.executed_actions, list) else [],
        executed_by_id=log.executed_by_id,
        created_at=log.created_at,
    )


def _template_out(template: EmailTemplate) -> EmailTemplateOut:
    return EmailTemplateOut(
        id=template.id,
        name=template.name,
        subject=template.subject,
        html_content=template.html_content,
        text_content=template.text_content,
        variables=template.variables if isinstance(template.variables, list) else [],
        is_active=template.is_active,
        created_at=template.created_at,
        updated_at=template.updated_at,
    )


@router.get(
    "/rules",
    response_model=AutomationRuleListOut,
    summary="List automation rules",
    responses=error_responses(401, 403, 422, 500),
)
def list_rules(
    trigger: AutomationTrigger | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("automation.rules.view")),
):
    count_stmt = select(func.count(AutomationRule.id))
    stmt = select(AutomationRule)
    if trigger is not None:
        count_stmt = count_stmt.where(AutomationRule.trigger == trigger.value)
        stmt = stmt.where(AutomationRule.trigger == trigger.value)
    if is_active is not None:
        count_stmt = count_stmt.where(AutomationRule.is_active.is_(is_active))
        stmt = stmt.where(AutomationRule.is_active.is_(is_active))

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(AutomationRule.priority.desc(), AutomationRule.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items = [_rule_out(row) for row in rows]
    count = len(items)
    return AutomationRuleListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
        trigger=trigger,
        is_active=is_active,
    )


@router.post(
    "/rules",
    response_model=AutomationRuleOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create automation rule",
    responses=error_responses(401, 403, 422, 500),
)
def create_rule(
    payload: AutomationRuleCreateIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("automation.rules.manage")),
):
    rule = AutomationRule(
        name=payload.name.strip(),
        description=payload.description,
        trigger=payload.trigger.value,
        conditions_json=[item.model_dump(mode="json") for item in payload.conditions],
        actions_json=[dump_action(item) for item in payload.actions],
        priority=payload.priority,
        is_active=payload.is_active,
        created_by_id=actor.id,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    log_event(
        logger,
        "automation.rule.create",
        actor_user_id=actor.id,
        rule_id=rule.id,
        trigger=rule.trigger,
    )
    return _rule_out(rule)


@router.get(
    "/rules/{rule_id}",
    response_model=AutomationRuleDetailOut,
    summary="Get automation rule with its latest execution logs",
    responses=error_responses(401, 403, 404, 500, path="/automation/rules/{rule_id}", not_found="Automation rule not found"),
)
def get_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("automation.rules.view")),
):
    rule = _rule_or_404(db, rule_id=rule_id)
    logs = db.execute(
        select(AutomationLog)
        .where(AutomationLog.rule_id == rule.id)
        .order_by(AutomationLog.created_at.desc(), AutomationLog.id.desc())
        .limit(RECENT_LOG_LIMIT)
    ).scalars().all()
    return AutomationRuleDetailOut(**_rule_fields(rule), recent_logs=[_log_out(item) for item in logs])


@router.patch(
    "/rules/{rule_id}",
    response_model=AutomationRuleOut,
    summary="Update automation rule",
    responses=error_responses(401, 403, 404, 422, 500, path="/automation/rules/{rule_id}", not_found="Automation rule not found"),
)
def update_rule(
    rule_id: str,
    payload: AutomationRuleUpdateIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("automation.rules.manage")),
):
    rule = _rule_or_404(db, rule_id=rule_id)
    if payload.name is not None:
        rule.name = payload.name.strip()
    if "description" in payload.model_fields_set:
        rule.description = payload.description
    if payload.trigger is not None:
        rule.trigger = payload.trigger.value
    if payload.conditions is not None:
        rule.conditions_json = [item.model_dump(mode="json") for item in payload.conditions]
    if payload.actions is not None:
        rule.actions_json = [dump_action(item) for item in payload.actions]
    if payload.priority is not None:
        rule.priority = payload.priority
    if payload.is_active is not None:
        rule.is_active = payload.is_active

    db.commit()
    db.refresh(rule)
    log_event(
        logger,
        "automation.rule.update",
        actor_user_id=actor.id,
        rule_id=rule.id,
        fields=sorted(payload.model_fields_set),
    )
    return _rule_out(rule)


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete automation rule and its logs",
    responses=error_responses(401, 403, 404, 500, path="/automation/rules/{rule_id}", not_found="Automation rule not found"),
)
def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("automation.rules.delete")),
):
    rule = _rule_or_404(db, rule_id=rule_id)
    db.execute(AutomationLog.__table__.delete().where(AutomationLog.rule_id == rule.id))
    db.delete(rule)
    db.commit()
    log_event(logger, "automation.rule.delete", actor_user_id=actor.id, rule_id=rule_id)
    return None


@router.get(
    "/logs",
    response_model=AutomationLogListOut,
    summary="List automation execution logs",
    responses=error_responses(401, 403, 422, 500, path="/automation/logs"),
)
def list_logs(
    rule_id: str | None = Query(default=None),
    status_filter: AutomationLogStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("automation.logs.view")),
):
    count_stmt = select(func.count(AutomationLog.id))
    stmt = select(AutomationLog)
    normalized_rule_id = rule_id.strip() if rule_id else None
    if normalized_rule_id:
        count_stmt = count_stmt.where(AutomationLog.rule_id == normalized_rule_id)
        stmt = stmt.where(AutomationLog.rule_id == normalized_rule_id)
    if status_filter is not None:
        count_stmt = count_stmt.where(AutomationLog.status == status_filter.value)
        stmt = stmt.where(AutomationLog.status == status_filter.value)

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(AutomationLog.created_at.desc(), AutomationLog.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    items = [_log_out(row) for row in rows]
    count = len(items)
    return AutomationLogListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
        rule_id=normalized_rule_id,
        status=status_filter,
    )


@router.get(
    "/email-templates",
    response_model=EmailTemplateListOut,
    summary="List email templates",
    responses=error_responses(401, 403, 500, path="/automation/email-templates"),
)
def list_email_templates(
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("automation.templates.manage")),
):
    rows = db.execute(select(EmailTemplate).order_by(EmailTemplate.name.asc())).scalars().all()
    return EmailTemplateListOut(items=[_template_out(row) for row in rows])


@router.put(
    "/email-templates/{name}",
    response_model=EmailTemplateOut,
    summary="Update email template by name",
    responses=error_responses(401, 403, 404, 422, 500, path="/automation/email-templates/{name}", not_found="Email template not found"),
)
def update_email_template(
    name: str,
    payload: EmailTemplateUpdateIn,
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("automation.templates.manage")),
):
    template = _template_or_404(db, name=name)
    if payload.subject is not None:
        template.subject = payload.subject
    if payload.html_content is not None:
        template.html_content = payload.html_content
    if "text_content" in payload.model_fields_set:
        template.text_content = payload.text_content
    if payload.variables is not None:
        template.variables = payload.variables
    if payload.is_active is not None:
        template.is_active = payload.is_active

    db.commit()
    db.refresh(template)
    log_event(logger, "automation.template.update", actor_user_id=actor.id, template=template.name)
    return _template_out(template)


@router.post(
    "/deadlines/check",
    response_model=DeadlineCheckOut,
    summary="Run the deadline check now",
    responses=error_responses(401, 403, 500, path="/automation/deadlines/check"),
)
def run_deadline_check_now(
    db: Session = Depends(get_db),
    actor: User = Depends(require_permission("automation.deadlines.run")),
):
    summary = check_deadlines(db, engine=get_automation_engine(db))
    db.commit()
    log_event(logger, "automation.deadlines.check", actor_user_id=actor.id, checked=summary.checked)
    return DeadlineCheckOut(
        checked=summary.checked,
        warnings=summary.warnings,
        escalations=summary.escalations,
        overdue=summary.overdue,
        failed=summary.failed,
    )
