import pytest
from fastapi.testclient import TestClient

from powerlunch.database import SessionLocal
from powerlunch.main import app, get_matching_strategy, get_push_sender, get_store, settings
from powerlunch.models import AuditLog
from powerlunch.services.errors import OracleTransportFailure
from powerlunch.services.notifications import MulticastResult
from scripts.seed_data import SEED_CONFERENCE_ID, seed

LUNCH_DATE = "2026-11-04"


class SilentSender:
    def __init__(self):
        self.calls = []

    def send_multicast(self, tokens, title, body, data=None):
        self.calls.append(tokens)
        return MulticastResult(success_count=len(tokens))


@pytest.fixture
def client():
    seed()
    app.dependency_overrides[get_push_sender] = SilentSender
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth():
    return {"x-admin-api-key": settings.admin_api_key}


def _pending_ids():
    return [r.id for r in get_store().fetch_pending(SEED_CONFERENCE_ID, LUNCH_DATE)]


def _use_strategy(strategy):
    app.dependency_overrides[get_matching_strategy] = lambda: strategy


def test_admin_routes_require_api_key(client):
    assert client.get("/v1/admin/match-lunches").status_code == 401
    resp = client.post(
        "/v1/admin/match-lunches",
        json={"conferenceId": SEED_CONFERENCE_ID, "lunchDate": LUNCH_DATE},
        headers={"x-admin-api-key": "wrong-key"},
    )
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Unauthorized"}


def test_auth_is_checked_before_body_validation(client):
    resp = client.post("/v1/admin/match-lunches", json={"lunchDate": "tomorrow"})
    assert resp.status_code == 401


def test_usage_document(client):
    resp = client.get("/v1/admin/match-lunches", headers=_auth())
    assert resp.status_code == 200
    body = resp.json()
    assert body["method"] == "POST"
    assert "conferenceId" in body["body"]
    assert resp.headers["x-content-type-options"] == "nosniff"


@pytest.mark.parametrize(
    "payload,field",
    [
        ({"lunchDate": LUNCH_DATE}, "conferenceId"),
        ({"conferenceId": SEED_CONFERENCE_ID}, "lunchDate"),
        ({"conferenceId": SEED_CONFERENCE_ID, "lunchDate": "11/04/2026"}, "lunchDate"),
        ({"conferenceId": SEED_CONFERENCE_ID, "lunchDate": "2026-02-30"}, "lunchDate"),
        ({"conferenceId": "   ", "lunchDate": LUNCH_DATE}, "conferenceId"),
    ],
)
def test_invalid_body_is_rejected_with_400(client, payload, field):
    resp = client.post("/v1/admin/match-lunches", json=payload, headers=_auth())
    assert resp.status_code == 400
    assert field in resp.json()["detail"]


def test_match_lunches_commits_groups_and_notifies(client, stub_strategy, make_proposal):
    ids = _pending_ids()
    _use_strategy(stub_strategy(make_proposal([ids[:3]], unmatched=ids[3:], notes="One table of AI folks")))

    resp = client.post(
        "/v1/admin/match-lunches",
        json={"conferenceId": SEED_CONFERENCE_ID, "lunchDate": LUNCH_DATE},
        headers=_auth(),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["conferenceId"] == SEED_CONFERENCE_ID
    assert body["lunchDate"] == LUNCH_DATE
    assert len(body["groups"]) == 1
    assert body["groups"][0]["memberCount"] == 3
    assert body["stats"] == {
        "totalRegistrations": 6,
        "matchedRegistrations": 3,
        "unmatchedRegistrations": 3,
        "groupsCreated": 1,
        "averageGroupSize": 3.0,
    }
    assert sorted(body["unmatchedRegistrationIds"]) == sorted(ids[3:])
    assert body["matchingNotes"] == "One table of AI folks"
    # seeded attendees have no device tokens
    assert body["notifications"] == {"sent": 0, "failed": 0, "total": 0}
    assert sorted(_pending_ids()) == sorted(ids[3:])

    group_id = body["groups"][0]["id"]
    detail = client.get(f"/v1/admin/conferences/{SEED_CONFERENCE_ID}/groups/{group_id}", headers=_auth())
    assert detail.status_code == 200
    assert sorted(m["id"] for m in detail.json()["members"]) == sorted(ids[:3])
    assert all(m["status"] == "matched" for m in detail.json()["members"])

    listing = client.get(
        f"/v1/admin/conferences/{SEED_CONFERENCE_ID}/groups", params={"lunch_date": LUNCH_DATE}, headers=_auth()
    )
    assert [g["id"] for g in listing.json()["groups"]] == [group_id]

    db = SessionLocal()
    try:
        entry = db.query(AuditLog).filter(AuditLog.action == "match_lunches").one()
        assert entry.status == "success"
    finally:
        db.close()


def test_notifications_can_be_skipped(client, stub_strategy, make_proposal):
    ids = _pending_ids()
    _use_strategy(stub_strategy(make_proposal([ids[:3]], unmatched=ids[3:])))

    resp = client.post(
        "/v1/admin/match-lunches",
        json={"conferenceId": SEED_CONFERENCE_ID, "lunchDate": LUNCH_DATE, "sendNotifications": False},
        headers=_auth(),
    )

    assert resp.status_code == 200
    assert "notifications" not in resp.json()


def test_oracle_failure_returns_500(client, stub_strategy):
    _use_strategy(stub_strategy(error=OracleTransportFailure("upstream timed out")))

    resp = client.post(
        "/v1/admin/match-lunches",
        json={"conferenceId": SEED_CONFERENCE_ID, "lunchDate": LUNCH_DATE},
        headers=_auth(),
    )

    assert resp.status_code == 500
    assert resp.json()["detail"].startswith("Matching failed:")
    assert "upstream timed out" in resp.json()["detail"]
    assert len(_pending_ids()) == 6


def test_no_registrations_returns_empty_success(client, stub_strategy):
    _use_strategy(stub_strategy())

    resp = client.post(
        "/v1/admin/match-lunches",
        json={"conferenceId": "empty-conf", "lunchDate": LUNCH_DATE},
        headers=_auth(),
    )

    assert resp.status_code == 200
    assert resp.json()["groups"] == []
    assert resp.json()["stats"]["totalRegistrations"] == 0
    assert "notifications" not in resp.json()


def test_reminder_for_unknown_group_is_404(client):
    resp = client.post(
        "/v1/admin/match-lunches/reminders",
        json={"conferenceId": SEED_CONFERENCE_ID, "groupId": "missing"},
        headers=_auth(),
    )
    assert resp.status_code == 404


def test_missing_group_detail_is_404(client):
    resp = client.get(f"/v1/admin/conferences/{SEED_CONFERENCE_ID}/groups/missing", headers=_auth())
    assert resp.status_code == 404


def test_create_registration(client):
    resp = client.post(
        f"/v1/admin/conferences/{SEED_CONFERENCE_ID}/registrations",
        json={
            "userId": "u-100",
            "userName": "Noor Haddad",
            "userEmail": "noor@example.com",
            "lunchDate": LUNCH_DATE,
            "topics": ["robotics"],
            "fcmToken": "device-token",
        },
        headers=_auth(),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "pending"
    assert body["groupId"] is None
    assert body["hasPushToken"] is True
    assert "device-token" not in str(body)
    assert body["id"] in _pending_ids()


def test_create_registration_requires_topics(client):
    resp = client.post(
        f"/v1/admin/conferences/{SEED_CONFERENCE_ID}/registrations",
        json={"userId": "u-101", "userName": "X", "userEmail": "x@example.com", "lunchDate": LUNCH_DATE, "topics": []},
        headers=_auth(),
    )
    assert resp.status_code == 400


def test_networking_suggestions(client):
    resp = client.get(
        f"/v1/conferences/{SEED_CONFERENCE_ID}/networking-suggestions", params={"interests": "AI,NLP", "limit": 2}
    )
    assert resp.status_code == 200
    suggestions = resp.json()["suggestions"]
    assert len(suggestions) == 2
    assert suggestions[0]["name"] == "Mei Chen"

    assert client.get(f"/v1/conferences/{SEED_CONFERENCE_ID}/networking-suggestions").status_code == 400


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
