"""End-to-end tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from tests.conftest import make_admin, make_org

from api.deps import create_access_token
from database import get_db, settings
from main import app


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(email):
    return {"Authorization": f"Bearer {create_access_token(f'user-{email}', email)}"}


@pytest.fixture
def host(db):
    org = make_org(db, "Home")
    make_admin(db, org, "host@example.com")
    return auth("host@example.com")


def create_event(client, headers, **payload):
    payload.setdefault("name", "Spring Tasting")
    response = client.post("/api/events", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestBasics:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").json()["status"] == "ok"

    def test_missing_token(self, client):
        assert client.get("/api/events").status_code == 401

    def test_bad_token(self, client):
        response = client.get("/api/events", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_not_an_admin(self, client, db):
        response = client.get("/api/events", headers=auth("random@example.com"))
        assert response.status_code == 403

    def test_me(self, client, host):
        body = client.get("/api/me", headers=host).json()
        assert body["admin"]["email"] == "host@example.com"
        assert body["scope"] == "organization"
        assert body["scope_model"] == "organization"

    def test_invite_links_on_first_login(self, client, db, host):
        response = client.post("/api/admins", json={"email": "Guest@Example.com"}, headers=host)
        assert response.status_code == 201
        assert response.json()["linked"] is False

        me = client.get("/api/me", headers=auth("guest@example.com"))
        assert me.status_code == 200
        assert me.json()["admin"]["linked"] is True


class TestEventFlow:
    def test_full_ceremony(self, client, host):
        event = create_event(client, host, max_points=5)
        code = event["event_code"]
        assert event["manage_code"]
        assert event["reveal_stage"] == 0

        beer = client.post(f"/api/events/{code}/beers", json={"name": "Pale", "brewer": "Ana"}, headers=host)
        assert beer.status_code == 201
        pale = beer.json()
        assert pale["brewer_code"]

        manage_beer = client.post(f"/api/manage/{event['manage_code']}/beers", json={"name": "Dark"})
        assert manage_beer.status_code == 201
        dark_id = manage_beer.json()["id"]

        voters = client.post(f"/api/events/{code}/voters", json={"count": 2}, headers=host).json()
        assert voters["event_code"] == code
        first, second = voters["voter_codes"]

        ballot = client.get(f"/api/vote/{code}/{first}").json()
        assert [b["label"] for b in ballot["beers"]] == ["Pale", "Dark"]
        assert ballot["points_remaining"] == 5

        voted = client.put(f"/api/vote/{code}/{first}/beers/{pale['id']}", json={"points": 3})
        assert voted.status_code == 200
        assert voted.json()["points_remaining"] == 2

        over_budget = client.put(f"/api/vote/{code}/{first}/beers/{dark_id}", json={"points": 3})
        assert over_budget.status_code == 400

        client.put(f"/api/vote/{code}/{second}/beers/{dark_id}", json={"points": 5})
        client.put(
            f"/api/vote/{code}/{second}/beers/{pale['id']}/feedback",
            json={"notes": "Crisp", "share_with_brewer": True},
        )

        hidden = client.get(f"/api/results/{code}").json()
        assert hidden["results_visible"] is False
        assert hidden["ranking"] is None
        assert hidden["stats"]["total_points_cast"] == 8

        stage = client.post(f"/api/events/{code}/reveal/advance", headers=host).json()
        assert stage == {"event_id": event["id"], "reveal_stage": 1, "voting_open": False}

        closed = client.put(f"/api/vote/{code}/{first}/beers/{dark_id}", json={"points": 1})
        assert closed.status_code == 409

        results = client.get(f"/api/results/{code}").json()
        assert [(r["name"], r["rank"]) for r in results["ranking"]] == [("Dark", 1), ("Pale", 2)]
        assert results["stats"]["registered_voters"] == 2

        for _ in range(3):
            client.post(f"/api/events/{code}/reveal/advance", headers=host)
        done = client.post(f"/api/events/{code}/reveal/advance", headers=host)
        assert done.status_code == 409

        reset = client.post(f"/api/events/{code}/reveal/reset", headers=host).json()
        assert reset["reveal_stage"] == 0

        brewer = client.get(f"/api/brewer/{pale['brewer_code']}").json()
        assert brewer["beer_name"] == "Pale"
        assert [f["notes"] for f in brewer["feedback"]] == ["Crisp"]

    def test_blind_tasting_hides_names(self, client, host):
        event = create_event(client, host, blind_tasting=True)
        code = event["event_code"]
        client.post(f"/api/events/{code}/beers", json={"name": "Mystery", "brewer": "X"}, headers=host)
        voter = client.post(f"/api/events/{code}/test-voter", headers=host).json()["voter_codes"][0]

        beers = client.get(f"/api/vote/{code}/{voter}").json()["beers"]

        assert beers[0]["label"] == "Beer #1"
        assert beers[0]["name"] is None
        assert beers[0]["brewer"] is None

    def test_dashboard_and_delete(self, client, host):
        event = create_event(client, host)
        code = event["event_code"]

        dashboard = client.get(f"/api/events/{code}", headers=host)
        assert dashboard.status_code == 200
        assert client.get(f"/api/events/{event['id']}", headers=host).status_code == 200

        assert client.delete(f"/api/events/{code}", headers=host).status_code == 204
        assert client.get(f"/api/events/{code}", headers=host).status_code == 404
        assert client.get(f"/api/results/{code}").status_code == 404

    def test_voter_batch_limits(self, client, host):
        code = create_event(client, host)["event_code"]

        too_many = client.post(f"/api/events/{code}/voters", json={"count": settings.max_voter_batch + 1}, headers=host)
        assert too_many.status_code == 400
        assert client.post(f"/api/events/{code}/voters", json={"count": 0}, headers=host).status_code == 422

    def test_update_event(self, client, host):
        code = create_event(client, host)["event_code"]

        response = client.patch(f"/api/events/{code}", json={"name": "Renamed", "max_points": 8}, headers=host)

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["max_points"] == 8

    def test_out_of_range_points_are_400(self, client, host):
        code = create_event(client, host, max_points=5)["event_code"]
        beer = client.post(f"/api/events/{code}/beers", json={"name": "Pils"}, headers=host).json()
        voter = client.post(f"/api/events/{code}/test-voter", headers=host).json()["voter_codes"][0]

        for points in (-1, 6):
            response = client.put(f"/api/vote/{code}/{voter}/beers/{beer['id']}", json={"points": points})
            assert response.status_code == 400, points
        assert client.put(
            f"/api/vote/{code}/{voter}/beers/{beer['id']}", json={"points": "many"}
        ).status_code == 422

    def test_unknown_codes_are_404(self, client, host):
        assert client.get("/api/results/zzzzzzzz").status_code == 404
        assert client.get("/api/manage/zzzzzzzz").status_code == 404
        assert client.get("/api/brewer/zzzzzzzz").status_code == 404
        assert client.get("/api/vote/zzzzzzzz/yyyyyyyy").status_code == 404


class TestCrossOrganization:
    def test_other_org_gets_403(self, client, db, host):
        other = make_org(db, "Other")
        make_admin(db, other, "rival@example.com")
        rival = auth("rival@example.com")
        code = create_event(client, host)["event_code"]

        assert client.delete(f"/api/events/{code}", headers=rival).status_code == 403
        assert client.post(f"/api/events/{code}/reveal/advance", headers=rival).status_code == 403
        assert client.get(f"/api/events/{code}", headers=host).status_code == 200
        assert client.get("/api/events", headers=rival).json() == []

    def test_organizations_super_only(self, client, db, host):
        assert client.post("/api/organizations", json={"name": "New"}, headers=host).status_code == 403

        make_admin(db, make_org(db, "HQ"), "root@example.com", is_super=True)
        root = auth("root@example.com")

        created = client.post("/api/organizations", json={"name": "New"}, headers=root)
        assert created.status_code == 201
        assert client.post("/api/organizations", json={"name": "New"}, headers=root).status_code == 409
        assert client.delete(f"/api/organizations/{created.json()['id']}", headers=root).status_code == 204
        assert len(client.get("/api/organizations", headers=root).json()) == 2


class TestEventScopeModel:
    def test_event_admin_assignment(self, client, db, monkeypatch):
        monkeypatch.setattr(settings, "scope_model", "event")
        org = make_org(db, "Home")
        make_admin(db, org, "owner@example.com")
        owner = auth("owner@example.com")

        code = create_event(client, owner)["event_code"]
        me = client.get("/api/me", headers=owner).json()
        assert me["scope"] == "event"

        admins = client.get(f"/api/events/{code}/admins", headers=owner).json()
        assert [a["email"] for a in admins] == ["owner@example.com"]

        last = client.delete(f"/api/events/{code}/admins/{admins[0]['id']}", headers=owner)
        assert last.status_code == 409

        helper = client.post(f"/api/events/{code}/admins", json={"email": "helper@example.com"}, headers=owner)
        assert helper.status_code == 201
        assert client.get(f"/api/events/{code}", headers=auth("helper@example.com")).status_code == 200
