from sqlalchemy import select

from gscms.models.automation import AutomationLog
from gscms.models.notification import Notification
from gscms.services import automation_hooks as hooks
from gscms.services.automation_service import RuleResult


class RecordingEngine:
    def __init__(self, error=None):
        self.executions = []
        self.error = error

    def execute_rules_for_trigger(self, execution):
        if self.error:
            raise self.error
        self.executions.append(execution)
        return [RuleResult(rule_id="r-1", success=True)]


def _inquiry(db, seed, **fields):
    creator = seed.user(db, role="SALES", name="Sally")
    customer = seed.customer(db, name="Northwind")
    return seed.inquiry(db, customer=customer, created_by=creator, **fields), creator


def test_inquiry_created_context(db_session, seed):
    inquiry, creator = _inquiry(db_session, seed, priority="HIGH")
    engine = RecordingEngine()

    results = hooks.on_inquiry_created(db_session, inquiry, user_id=creator.id, engine=engine)

    assert results == [RuleResult(rule_id="r-1", success=True)]
    execution = engine.executions[0]
    assert execution.trigger.value == "INQUIRY_CREATED"
    assert execution.user_id == creator.id
    assert execution.context["inquiry_id"] == inquiry.id
    assert execution.context["priority"] == "HIGH"
    assert execution.context["customer_name"] == "Northwind"
    assert execution.context["creator_name"] == "Sally"
    assert execution.context["inquiry"]["title"] == "Steel brackets"


def test_status_changed_context(db_session, seed):
    inquiry, _ = _inquiry(db_session, seed, status="IN_REVIEW")
    engine = RecordingEngine()

    hooks.on_inquiry_status_changed(db_session, inquiry, "SUBMITTED", "IN_REVIEW", engine=engine)

    context = engine.executions[0].context
    assert engine.executions[0].trigger.value == "INQUIRY_STATUS_CHANGED"
    assert (context["old_status"], context["new_status"]) == ("SUBMITTED", "IN_REVIEW")
    assert context["assignee_name"] is None


def test_item_assigned_context(db_session, seed):
    inquiry, _ = _inquiry(db_session, seed)
    tech = seed.user(db_session, role="TECH", name="Tia")
    item = seed.item(db_session, inquiry=inquiry, assigned_to_id=tech.id)
    engine = RecordingEngine()

    hooks.on_item_assigned(db_session, item, tech.id, engine=engine)

    context = engine.executions[0].context
    assert context["inquiry_item_id"] == item.id
    assert context["item_name"] == "Bracket A-12"
    assert context["inquiry_title"] == "Steel brackets"
    assert context["assignee_name"] == "Tia"
    assert context["assignee_email"] == tech.email
    assert context["status"] == "PENDING"


def test_cost_and_approval_contexts(db_session, seed):
    inquiry, _ = _inquiry(db_session, seed)
    tech = seed.user(db_session, role="TECH", name="Tia")
    manager = seed.user(db_session, role="MANAGER", name="Max")
    item = seed.item(db_session, inquiry=inquiry)
    calculation = seed.cost(db_session, item=item, calculated_by=tech, total="1250.50")
    approval = seed.approval(db_session, calculation=calculation, approver=manager)
    engine = RecordingEngine()

    hooks.on_cost_calculated(db_session, calculation, engine=engine)
    hooks.on_approval_required(db_session, approval, "cost_calculation", calculation, engine=engine)

    cost_context, approval_context = (item.context for item in engine.executions)
    assert cost_context["total_cost"] == 1250.5
    assert cost_context["calculated_by_name"] == "Tia"
    assert cost_context["item_name"] == "Bracket A-12"
    assert approval_context["approver_email"] == manager.email
    assert approval_context["entity_type"] == "cost_calculation"
    assert approval_context["entity"]["total_cost"] == 1250.5


def test_quote_and_production_order_contexts(db_session, seed):
    inquiry, creator = _inquiry(db_session, seed)
    quote = seed.quote(db_session, inquiry=inquiry, created_by=creator, total="4200.00")
    order = seed.production_order(db_session, quote=quote, total="4200.00")
    engine = RecordingEngine()

    hooks.on_quote_created(db_session, quote, engine=engine)
    hooks.on_production_order_created(db_session, order, engine=engine)

    quote_context, order_context = (item.context for item in engine.executions)
    assert quote_context["quote_number"] == quote.quote_number
    assert quote_context["total_value"] == 4200.0
    assert quote_context["customer_name"] == "Northwind"
    assert order_context["order_number"] == order.order_number
    assert order_context["quote_id"] == quote.id
    assert order_context["customer_name"] == "Northwind"


def test_workload_balance_context(db_session, seed):
    tech = seed.user(db_session, role="TECH")
    engine = RecordingEngine()

    hooks.check_workload_balance(db_session, "TECH", engine=engine)

    context = engine.executions[0].context
    assert engine.executions[0].trigger.value == "WORKLOAD_THRESHOLD"
    assert context["workloads"] == [
        {"user_id": tech.id, "role": "TECH", "active_items": 0, "pending_costs": 0, "total_workload": 0}
    ]


def test_hook_swallows_engine_errors(db_session, seed):
    inquiry, _ = _inquiry(db_session, seed)

    results = hooks.on_inquiry_created(db_session, inquiry, engine=RecordingEngine(error=RuntimeError("boom")))

    assert results == []


def test_hook_runs_real_rules_end_to_end(db_session, seed):
    inquiry, creator = _inquiry(db_session, seed, priority="URGENT")
    manager = seed.user(db_session, role="MANAGER")
    seed.rule(
        db_session,
        trigger="INQUIRY_CREATED",
        conditions=[{"field": "priority", "operator": "in", "value": ["HIGH", "URGENT"]}],
        actions=[{"type": "ESCALATE", "params": {"message": "Urgent inquiry received"}}],
    )

    results = hooks.on_inquiry_created(db_session, inquiry, user_id=creator.id)

    assert [item.success for item in results] == [True]
    notification = db_session.execute(select(Notification)).scalar_one()
    assert notification.user_id == manager.id
    assert notification.message == "Urgent inquiry received"
    log = db_session.execute(select(AutomationLog)).scalar_one()
    assert log.executed_by_id == creator.id
    assert log.triggered_data["customer_name"] == "Northwind"
