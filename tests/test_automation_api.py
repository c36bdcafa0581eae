from datetime import timedelta

from sqlalchemy import select

from gscms.core.time_utils import utcnow
from gscms.models.automation import AutomationLog, AutomationRule
from gscms.models.deadline import Deadline
from gscms.models.notification import Notification
from gscms.services.deadline_service import create_deadline


def _rule_payload(**overrides):
    payload = {
        "name": "Route urgent inquiries",
        "trigger": "INQUIRY_CREATED",
        "conditions": [{"field": "priority", "operator": "equals", "value": "URGENT", "logic": None}],
        "actions": [
            {"type": "ASSIGN_TO_USER", "params": {"userId": "user-1", "entityType": "inquiry"}},
            {"type": "ESCALATE"},
        ],
        "priority": 5,
    }
    payload.update(overrides)
    return payload


def test_requests_without_token_get_error_envelope(test_context):
    client, _ = test_context

    res = client.get("/automation/rules")

    assert res.status_code == 401
    body = res.json()["error"]
    assert body["code"] == "unauthorized"
    assert body["path"] == "/automation/rules"
    assert res.headers["X-Request-ID"]


def test_auth_me_lists_role_permissions(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        admin = seed.user(db, role="ADMIN", name="Ada")
        headers = seed.auth_headers(admin)

    res = client.get("/auth/me", headers=headers)

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["name"] == "Ada"
    assert "automation.rules.manage" in body["permissions"]
    assert "automation.rules.delete" not in body["permissions"]
    assert body["permissions"] == sorted(body["permissions"])


def test_inactive_user_is_rejected(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        headers = seed.auth_headers(seed.user(db, role="ADMIN", is_active=False))

    assert client.get("/auth/me", headers=headers).status_code == 403


def test_manager_cannot_manage_rules(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        headers = seed.auth_headers(seed.user(db, role="MANAGER"))

    assert client.get("/automation/rules", headers=headers).status_code == 403
    assert client.post("/automation/rules", json=_rule_payload(), headers=headers).status_code == 403
    assert client.get("/automation/logs", headers=headers).status_code == 200


def test_create_rule_stores_snake_case_actions(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        admin = seed.user(db, role="ADMIN")
        headers = seed.auth_headers(admin)

    res = client.post("/automation/rules", json=_rule_payload(), headers=headers)

    assert res.status_code == 201, res.text
    body = res.json()
    assert body["created_by_id"] == admin.id
    assert body["actions"][0] == {
        "type": "ASSIGN_TO_USER",
        "params": {"user_id": "user-1", "entity_type": "inquiry"},
    }
    assert body["actions"][1] == {"type": "ESCALATE", "params": {}}
    assert body["conditions"][0]["operator"] == "equals"
    with session_local() as db:
        stored = db.get(AutomationRule, body["id"])
        assert stored.actions_json == body["actions"]


def test_create_rule_validates_actions_and_conditions(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        headers = seed.auth_headers(seed.user(db, role="ADMIN"))

    unknown_action = _rule_payload(actions=[{"type": "LAUNCH_ROCKET", "params": {}}])
    bad_status = _rule_payload(
        actions=[{"type": "UPDATE_STATUS", "params": {"entity_type": "inquiryItem", "status": "SUBMITTED"}}]
    )
    bad_operator = _rule_payload(conditions=[{"field": "priority", "operator": "like", "value": "U"}])
    bad_trigger = _rule_payload(trigger="INVOICE_PAID")

    for payload in (unknown_action, bad_status, bad_operator, bad_trigger):
        res = client.post("/automation/rules", json=payload, headers=headers)
        assert res.status_code == 422, payload
        assert res.json()["error"]["code"] == "validation_error"


def test_list_rules_orders_and_filters(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        headers = seed.auth_headers(seed.user(db, role="ADMIN"))
        low = seed.rule(db, trigger="INQUIRY_CREATED", actions=[], priority=1)
        high = seed.rule(db, trigger="INQUIRY_CREATED", actions=[], priority=9)
        other = seed.rule(db, trigger="QUOTE_CREATED", actions=[], priority=5, is_active=False)

    res = client.get("/automation/rules", headers=headers)
    assert res.status_code == 200, res.text
    assert [item["id"] for item in res.json()["items"]] == [high.id, other.id, low.id]
    assert res.json()["pagination"]["total"] == 3

    res = client.get("/automation/rules", params={"trigger": "INQUIRY_CREATED", "limit": 1}, headers=headers)
    body = res.json()
    assert [item["id"] for item in body["items"]] == [high.id]
    assert body["pagination"] == {"total": 2, "limit": 1, "offset": 0, "count": 1, "has_next": True}

    res = client.get("/automation/rules", params={"is_active": "false"}, headers=headers)
    assert [item["id"] for item in res.json()["items"]] == [other.id]


def test_rule_detail_update_and_delete(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        admin_headers = seed.auth_headers(seed.user(db, role="ADMIN"))
        root_headers = seed.auth_headers(seed.user(db, role="SUPERUSER"))
        rule = seed.rule(db, trigger="INQUIRY_CREATED", actions=[])
        for index in range(12):
            db.add(
                AutomationLog(
                    rule_id=rule.id,
                    status="SUCCESS",
                    message="Executed 0 actions",
                    created_at=utcnow() - timedelta(minutes=index),
                )
            )
        db.commit()
        rule_id = rule.id

    res = client.get(f"/automation/rules/{rule_id}", headers=admin_headers)
    assert res.status_code == 200, res.text
    logs = res.json()["recent_logs"]
    assert len(logs) == 10
    assert logs[0]["created_at"] >= logs[-1]["created_at"]

    res = client.patch(
        f"/automation/rules/{rule_id}",
        json={"is_active": False, "priority": 3, "description": "paused"},
        headers=admin_headers,
    )
    assert res.status_code == 200, res.text
    assert (res.json()["is_active"], res.json()["priority"], res.json()["description"]) == (False, 3, "paused")

    assert client.patch(f"/automation/rules/{rule_id}", json={}, headers=admin_headers).status_code == 422
    assert client.patch("/automation/rules/missing", json={"priority": 1}, headers=admin_headers).status_code == 404

    assert client.delete(f"/automation/rules/{rule_id}", headers=admin_headers).status_code == 403
    assert client.delete(f"/automation/rules/{rule_id}", headers=root_headers).status_code == 204
    assert client.get(f"/automation/rules/{rule_id}", headers=admin_headers).status_code == 404
    with session_local() as db:
        assert db.execute(select(AutomationLog)).scalars().all() == []


def test_logs_filter_by_rule_and_status(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        headers = seed.auth_headers(seed.user(db, role="ADMIN"))
        first = seed.rule(db, trigger="INQUIRY_CREATED", actions=[])
        second = seed.rule(db, trigger="QUOTE_CREATED", actions=[])
        db.add_all(
            [
                AutomationLog(rule_id=first.id, status="SUCCESS", message="ok"),
                AutomationLog(rule_id=first.id, status="FAILED", message="boom", error_details="boom"),
                AutomationLog(rule_id=second.id, status="FAILED", message="boom"),
            ]
        )
        db.commit()
        first_id = first.id

    res = client.get("/automation/logs", params={"rule_id": first_id, "status": "FAILED"}, headers=headers)

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["pagination"]["total"] == 1
    assert body["items"][0]["error_details"] == "boom"
    assert (body["rule_id"], body["status"]) == (first_id, "FAILED")
    assert client.get("/automation/logs", params={"status": "MAYBE"}, headers=headers).status_code == 422


def test_email_templates_list_and_update(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        headers = seed.auth_headers(seed.user(db, role="ADMIN"))
        seed.template(db, name="status_changed")

    res = client.get("/automation/email-templates", headers=headers)
    assert [item["name"] for item in res.json()["items"]] == ["status_changed"]

    res = client.put(
        "/automation/email-templates/status_changed",
        json={"subject": "Update: {{entity_name}}", "is_active": False},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["subject"] == "Update: {{entity_name}}"
    assert res.json()["is_active"] is False
    assert res.json()["html_content"] == "<p>Hello {{name}}</p>"

    assert client.put("/automation/email-templates/nope", json={"subject": "x"}, headers=headers).status_code == 404
    assert client.put("/automation/email-templates/status_changed", json={}, headers=headers).status_code == 422


def test_deadline_check_endpoint_runs_sweep(test_context, seed):
    client, session_local = test_context
    with session_local() as db:
        headers = seed.auth_headers(seed.user(db, role="ADMIN"))
        manager = seed.user(db, role="MANAGER")
        seed.rule(db, trigger="DEADLINE_APPROACHING", actions=[{"type": "ESCALATE", "params": {}}])
        create_deadline(db, entity_type="QUOTE", entity_id="q-1", due_date=utcnow() - timedelta(days=1))
        db.commit()

    res = client.post("/automation/deadlines/check", headers=headers)

    assert res.status_code == 200, res.text
    assert res.json() == {"checked": 1, "warnings": 0, "escalations": 0, "overdue": 1, "failed": 0}
    with session_local() as db:
        assert db.execute(select(Deadline)).scalar_one().status == "OVERDUE"
        log = db.execute(select(AutomationLog)).scalar_one()
        assert log.status == "SUCCESS"
        assert log.triggered_data["is_overdue"] is True
        notification = db.execute(select(Notification)).scalar_one()
        assert notification.user_id == manager.id
