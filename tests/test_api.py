"""
HTTP API tests through httpx ASGITransport.
"""
import pytest

ACTOR = {"X-Actor-Id": "user-sales-1", "X-Actor-Roles": "sales"}


async def _create_case(client, **overrides):
    payload = {
        "client_id": "client-001",
        "project_name": "Conveyor retrofit",
        "priority": "high",
        "assigned_to": "user-eng-7",
    }
    payload.update(overrides)
    response = await client.post("/cases", json=payload, headers=ACTOR)
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Cases
# =============================================================================

@pytest.mark.asyncio
async def test_create_case(client):
    body = await _create_case(client)

    assert body["case_number"] == "VESPL/C/2526/001"
    assert body["current_state"] == "enquiry"
    assert body["status"] == "active"
    assert body["created_by"] == "user-sales-1"
    assert body["allowed_transitions"] == ["estimation"]
    assert body["sla"]["status"] == "on_track"
    assert body["sla"]["hours_until_deadline"] == 24


@pytest.mark.asyncio
async def test_create_case_requires_actor(client):
    response = await client.post("/cases", json={"client_id": "c", "project_name": "p"})

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationException"


@pytest.mark.asyncio
async def test_transition_and_history(client):
    case = await _create_case(client)

    rejected = await client.post(
        f"/cases/{case['id']}/transitions", json={"to_state": "quotation"}, headers=ACTOR
    )
    assert rejected.status_code == 409
    assert rejected.json()["details"]["allowed"] == ["estimation"]

    moved = await client.post(
        f"/cases/{case['id']}/transitions",
        json={"to_state": "estimation", "note": "Drawings received"},
        headers=ACTOR,
    )
    assert moved.status_code == 200
    assert moved.json()["from_state"] == "enquiry"

    detail = (await client.get(f"/cases/{case['id']}")).json()
    assert detail["current_state"] == "estimation"
    assert detail["allowed_transitions"] == ["quotation"]

    history = (await client.get(f"/cases/{case['id']}/history")).json()
    assert [h["to_state"] for h in history] == ["enquiry", "estimation"]
    assert history[1]["note"] == "Drawings received"


@pytest.mark.asyncio
async def test_unknown_target_state_is_unprocessable(client):
    case = await _create_case(client)

    response = await client.post(
        f"/cases/{case['id']}/transitions", json={"to_state": "archived"}, headers=ACTOR
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_case_is_not_found(client):
    response = await client.get("/cases/00000000-0000-4000-8000-000000000000")

    assert response.status_code == 404
    assert response.json()["error"] == "CaseNotFoundException"


@pytest.mark.asyncio
async def test_documents_and_document_history(client):
    case = await _create_case(client)

    created = await client.post(
        f"/cases/{case['id']}/documents", json={"reference_type": "quotation"}, headers=ACTOR
    )
    assert created.status_code == 201
    document = created.json()
    assert document["document_number"] == "VESPL/QT/2526/001"

    note = await client.post(
        f"/cases/{case['id']}/history",
        json={"status_label": "Sent to client", "reference_type": "quotation", "reference_id": document["id"]},
        headers=ACTOR,
    )
    assert note.status_code == 201

    history = (await client.get(f"/cases/{case['id']}/documents/{document['id']}/history")).json()
    assert [h["status_label"] for h in history][-1] == "Sent to client"

    documents = (await client.get(f"/cases/{case['id']}/documents")).json()
    assert [d["reference_type"] for d in documents] == ["enquiry", "quotation"]


@pytest.mark.asyncio
async def test_list_cases_by_query(client):
    await _create_case(client, client_id="a")
    second = await _create_case(client, client_id="b")
    await client.post(f"/cases/{second['id']}/cancel", json={"note": "Lost"}, headers=ACTOR)

    everything = (await client.get("/cases")).json()
    active = (await client.get("/cases", params={"query": "active"})).json()

    assert everything["count"] == 2
    assert [c["client_id"] for c in active["cases"]] == ["a"]


# =============================================================================
# SLA, escalation, notifications
# =============================================================================

@pytest.mark.asyncio
async def test_dashboard_after_breach(client, clock):
    case = await _create_case(client)
    clock.advance(hours=26)

    sweep = await client.post("/scheduler/tasks/sla_sweep/run")
    assert sweep.status_code == 200
    assert sweep.json()["result"]["sla"]["breached"] == 1

    dashboard = (await client.get("/sla/dashboard")).json()
    assert dashboard["total_active"] == 1
    assert dashboard["breached"] == 1
    assert dashboard["breach_rate"] == 100.0
    assert dashboard["breached_cases"][0]["case_number"] == case["case_number"]
    assert dashboard["breached_cases"][0]["hours_overdue"] == 2

    escalations = (await client.get(f"/cases/{case['id']}/escalations")).json()
    assert escalations["total_count"] == 1
    assert escalations["escalations"][0]["escalated_to_role"] == "manager"

    breached = (await client.get("/cases", params={"query": "breached"})).json()
    assert breached["count"] == 1


@pytest.mark.asyncio
async def test_sla_config_and_rules(client):
    config = (await client.get("/sla/config")).json()
    rules = (await client.get("/escalation/rules")).json()

    assert config["version"] == 1
    assert config["state_sla_hours"]["manufacturing"] == 168
    assert "SLA Breach Alert" in config["templates"]
    assert sorted(r["name"] for r in rules["rules"]) == sorted(config["escalation_rules"])


@pytest.mark.asyncio
async def test_manual_escalation(client):
    case = await _create_case(client)

    response = await client.post(
        f"/cases/{case['id']}/escalations",
        json={"role": "director", "reason": "Client complaint"},
        headers=ACTOR,
    )

    assert response.status_code == 201
    assert response.json()["triggered_by"] == "manual"
    assert response.json()["created_by"] == "user-sales-1"

    queued = (await client.get("/notifications", params={"case_id": case["id"]})).json()
    assert [n["trigger_event"] for n in queued["notifications"]] == ["manual_escalation"]


@pytest.mark.asyncio
async def test_enqueue_notification_with_dedup(client):
    case = await _create_case(client)
    payload = {
        "case_id": case["id"],
        "template_name": "SLA Warning - 2 Hours",
        "recipient_user_id": "user-eng-7",
        "trigger_event": "manual",
        "dedup_hours": 2,
    }

    first = await client.post("/notifications", json=payload)
    second = await client.post("/notifications", json=payload)

    assert first.status_code == 201
    assert first.json()["status"] == "pending"
    assert second.status_code == 409

    pending = (await client.get("/notifications", params={"status": "pending"})).json()
    assert pending["total_count"] == 1


@pytest.mark.asyncio
async def test_enqueue_notification_needs_one_recipient(client):
    response = await client.post(
        "/notifications",
        json={"template_name": "SLA Breach Alert", "recipient_user_id": "u", "recipient_role": "manager"},
    )

    assert response.status_code == 422


# =============================================================================
# Sequences, scheduler, health
# =============================================================================

@pytest.mark.asyncio
async def test_issue_document_numbers(client):
    first = await client.post("/sequences/enquiry/next")
    second = await client.post("/sequences/enquiry/next")
    unknown = await client.post("/sequences/brochure/next")

    assert first.json() == {"document_type": "ENQUIRY", "document_number": "VESPL/EQ/2526/001"}
    assert second.json()["document_number"] == "VESPL/EQ/2526/002"
    assert unknown.status_code == 422


@pytest.mark.asyncio
async def test_scheduler_status_and_unknown_task(client):
    status = (await client.get("/scheduler/status")).json()
    unknown = await client.post("/scheduler/tasks/reindex/run")

    assert status["running"] is False
    assert status["active_task_count"] == 0
    assert set(status["tasks"]) == {"sla_sweep", "notification_drain", "metrics_rollup", "retention_cleanup"}
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"]["sla_config"] == "loaded (v1)"
    assert response.json()["checks"]["delivery_channel"] == "recording"
    assert "X-Correlation-ID" in response.headers
