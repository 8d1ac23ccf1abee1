import pytest
from fastapi.testclient import TestClient

from app_fastapi import create_app
from services.conversation_store import InMemoryConversationStore
from triage import build_engine
from triage.errors import ConversationStoreError


@pytest.fixture
def client(engine_ctx):
    app = create_app(engine=engine_ctx.engine, queue=engine_ctx.queue)
    return TestClient(app)


def _missed_call(client, phone="+359888123456"):
    resp = client.post("/api/calls/missed", json={"phone_number": phone, "preferred_channel": "viber"})
    assert resp.status_code == 200
    return resp.json()


def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["queue"] == {"pending": 0, "failed": 0, "completed": 0}


def test_missed_call_then_message(client):
    started = _missed_call(client)
    assert started["created"] is True
    assert started["initial_message"].startswith("Здравейте!")
    assert started["status"] == "waiting_response"

    conv_id = started["conversation_id"]
    resp = client.post(
        f"/api/conversations/{conv_id}/messages",
        json={"text": "Здравейте, имам проблем с контакта в кухнята"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "FOLLOW_UP_QUESTIONS"
    assert body["reply"]
    assert body["analysis"]["problem_type"] == "electrical_outlet"


def test_emergency_message_is_escalated(client):
    conv_id = _missed_call(client)["conversation_id"]
    resp = client.post(f"/api/conversations/{conv_id}/messages", json={"text": "Контактът в хола искри"})

    body = resp.json()
    assert body["escalated"] is True
    assert body["status"] == "escalated"
    assert body["analysis"]["risk_assessment"]["level"] == "critical"


def test_unknown_conversation_returns_404(client):
    assert client.post("/api/conversations/missing/messages", json={"text": "Здравейте"}).status_code == 404
    assert client.get("/api/conversations/missing").status_code == 404
    assert client.get("/api/conversations/missing/analysis").status_code == 404
    assert client.post("/api/conversations/missing/close").status_code == 404


def test_closed_conversation_returns_409(client):
    conv_id = _missed_call(client)["conversation_id"]
    resp = client.post(f"/api/conversations/{conv_id}/close", json={"reason": "manual"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "closed"

    resp = client.post(f"/api/conversations/{conv_id}/messages", json={"text": "Още нещо"})
    assert resp.status_code == 409


def test_list_stats_detail_and_analysis(client):
    conv_id = _missed_call(client)["conversation_id"]
    client.post(f"/api/conversations/{conv_id}/messages", json={"text": "Тече вода в банята"})

    listed = client.get("/api/conversations").json()["conversations"]
    assert [c["conversation_id"] for c in listed] == [conv_id]
    assert listed[0]["problem_type"] == "plumbing_leak"

    stats = client.get("/api/conversations/stats").json()
    assert stats["total"] == 1
    assert stats["active"] == 1

    detail = client.get(f"/api/conversations/{conv_id}").json()
    assert detail["channel"] == "viber"
    assert [m["sender"] for m in detail["messages"]] == ["agent", "customer", "agent"]

    analysis = client.get(f"/api/conversations/{conv_id}/analysis").json()
    assert analysis["risk_level"] == "medium"
    assert analysis["analysis"]["problem_type"] == "plumbing_leak"


def test_invalid_channel_is_rejected(client):
    resp = client.post("/api/calls/missed", json={"phone_number": "+359888123456", "preferred_channel": "fax"})
    assert resp.status_code == 422


class UnavailableStore(InMemoryConversationStore):
    def _down(self, *args, **kwargs):
        raise ConversationStoreError("db down")

    get = put = list_all = list_active = find_open_by_phone = _down


def test_store_outage_returns_503_everywhere(engine_ctx):
    engine = build_engine(store=UnavailableStore(), queue=engine_ctx.queue, scheduler=engine_ctx.scheduler)
    client = TestClient(create_app(engine=engine, queue=engine_ctx.queue))

    assert client.post("/api/calls/missed", json={"phone_number": "+359888123456"}).status_code == 503
    assert client.post("/api/conversations/c1/messages", json={"text": "Здравейте"}).status_code == 503
    assert client.post("/api/conversations/c1/close").status_code == 503
    assert client.get("/api/conversations/c1").status_code == 503
    assert client.get("/api/conversations/c1/analysis").status_code == 503
    assert client.get("/api/conversations").status_code == 503
    assert client.get("/api/conversations/stats").status_code == 503
