"""Tests for relationship, family-unit and tree API endpoints.

Requirements tested:
- REQ-F2: Re-running the builder with the same input creates nothing new
- REQ-F4: A spouse already paired elsewhere answers 409 with the current spouse
- REQ-F6: Only tenant admins may run the builder
"""

BASE = "/api/t/tenant-a"


def _build(client, person_id, parents=(), children=(), spouse=""):
    return client.post(f"{BASE}/relationships/builder", json={
        "personId": person_id, "parentIds": list(parents), "childIds": list(children), "spouseId": spouse,
    })


class TestBuilder:
    def test_creates_edges(self, admin_client):
        resp = _build(admin_client, "p1", parents=["p2", "p3"])
        assert resp.status_code == 200
        body = resp.json()
        assert body["ok"] is True
        assert body["edges_created"] == 2
        assert body["parent_ids"] == ["p2", "p3"]

        rels = admin_client.get(f"{BASE}/relationships").json()["relationships"]
        assert {(r["from_person_id"], r["to_person_id"]) for r in rels} == {("p2", "p1"), ("p3", "p1")}

    def test_idempotent(self, admin_client):
        _build(admin_client, "p1", parents=["p2"], spouse="p4")
        body = _build(admin_client, "p1", parents=["p2"], spouse="p4").json()
        assert body["edges_created"] == 0
        assert body["edges_deleted"] == 0
        assert len(admin_client.get(f"{BASE}/relationships").json()["relationships"]) == 1
        assert len(admin_client.get(f"{BASE}/family-units").json()["family_units"]) == 1

    def test_snake_case_body_accepted(self, admin_client):
        resp = admin_client.post(f"{BASE}/relationships/builder", json={"person_id": "p1", "child_ids": ["p6"]})
        assert resp.json()["child_ids"] == ["p6"]

    def test_spouse_conflict(self, admin_client):
        _build(admin_client, "p4", spouse="p5")
        resp = _build(admin_client, "p6", spouse="p4")
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "spouse_unavailable"
        assert body["spouseId"] == "p4"
        assert body["currentSpouseId"] == "p5"

    def test_person_required(self, admin_client):
        assert admin_client.post(f"{BASE}/relationships/builder", json={"parentIds": ["p2"]}).status_code == 422

    def test_blank_person(self, admin_client):
        resp = _build(admin_client, "   ", parents=["p2"])
        assert resp.status_code == 400

    def test_user_forbidden(self, user_client, sheets):
        assert _build(user_client, "p2", parents=["p1"]).status_code == 403
        assert sheets.records("Relationships") == []


class TestSuggestCoParent:
    def test_spouse_suggested(self, admin_client, user_client):
        _build(admin_client, "p4", spouse="p5")
        resp = user_client.get(f"{BASE}/relationships/suggest-co-parent", params={"parentId": "p5"})
        assert resp.json() == {"parent_id": "p5", "suggested_parent_id": "p4"}

    def test_none(self, user_client):
        resp = user_client.get(f"{BASE}/relationships/suggest-co-parent", params={"parentId": "p1"})
        assert resp.json()["suggested_parent_id"] is None

    def test_parent_required(self, user_client):
        assert user_client.get(f"{BASE}/relationships/suggest-co-parent").status_code == 422


class TestTree:
    def test_counts_and_edges(self, admin_client, user_client):
        _build(admin_client, "p1", parents=["p2", "p3"], spouse="p4")
        tree = user_client.get(f"{BASE}/tree").json()
        assert tree["people_count"] == 6
        assert tree["relationships_count"] == 2
        assert tree["family_units_count"] == 1
        assert sorted(e["data"]["type"] for e in tree["edges"]) == ["parent", "parent", "spouse"]

    def test_other_tenant_sees_nothing(self, admin_client, make_client):
        _build(admin_client, "p1", parents=["p2"])
        tree = make_client("carol@example.com").get("/api/t/tenant-b/tree").json()
        assert tree["relationships_count"] == 0
