"""
CaseVault
Tests - Projects and versioned composites over HTTP.

Covers:
    - Projects CRUD
    - Test cases / fixtures CRUD, scoped to their project
    - Step add / update / delete / reorder / duplicate
    - Version history, snapshot detail, diff
    - Revert and clone
    - Error envelope and status codes
    - Health endpoints
"""

import pytest

from casevault.core.exceptions import ConcurrentModificationError
from casevault.services import versioned_store


# ── Helpers ─────────────────────────────────────────────────────────────────

def _create_project(client, name="Web Shop"):
    res = client.post("/api/v1/projects", json={"name": name})
    assert res.status_code == 201
    return res.get_json()


def _base(pid, kind="test-cases"):
    return f"/api/v1/projects/{pid}/{kind}"


def _create_parent(client, pid, kind="test-cases", **overrides):
    payload = {"name": "Login flow"}
    payload.update(overrides)
    res = client.post(_base(pid, kind), json=payload)
    assert res.status_code == 201
    body = res.get_json()
    return body["test_case" if kind == "test-cases" else "fixture"]


def _add_step(client, pid, parent_id, kind="test-cases", **fields):
    payload = {"action": "click"}
    payload.update(fields)
    res = client.post(f"{_base(pid, kind)}/{parent_id}/steps", json=payload)
    assert res.status_code == 201
    return res.get_json()


def _versions(client, pid, parent_id, kind="test-cases"):
    res = client.get(f"{_base(pid, kind)}/{parent_id}/versions")
    assert res.status_code == 200
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════

class TestProjects:
    def test_create_and_get(self, client):
        p = _create_project(client)
        res = client.get(f"/api/v1/projects/{p['id']}")
        assert res.status_code == 200
        data = res.get_json()
        assert data["name"] == "Web Shop"
        assert data["test_case_count"] == 0

    def test_create_requires_name(self, client):
        res = client.post("/api/v1/projects", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_list(self, client):
        _create_project(client, "A")
        _create_project(client, "B")
        res = client.get("/api/v1/projects")
        data = res.get_json()
        assert data["total"] == 2
        assert {p["name"] for p in data["items"]} == {"A", "B"}

    def test_delete_cascades(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        res = client.delete(f"/api/v1/projects/{p['id']}")
        assert res.status_code == 200
        assert client.get(f"/api/v1/projects/{p['id']}").status_code == 404
        assert client.get(f"{_base(p['id'])}/{tc['id']}").status_code == 404

    def test_get_not_found(self, client):
        res = client.get("/api/v1/projects/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# PARENTS
# ═════════════════════════════════════════════════════════════════════════════

class TestParents:
    def test_create_test_case(self, client):
        p = _create_project(client)
        res = client.post(
            _base(p["id"]), json={"name": "Checkout", "tags": ["smoke", "cart"]},
            headers={"X-User": "ana"},
        )
        assert res.status_code == 201
        data = res.get_json()
        assert data["version"] == "1.0.0"
        tc = data["test_case"]
        assert tc["version"] == "1.0.0"
        assert tc["steps"] == []
        assert tc["tags"] == ["smoke", "cart"]
        assert tc["created_by"] == "ana"

    def test_create_fixture(self, client):
        p = _create_project(client)
        fx = _create_parent(client, p["id"], "fixtures", name="Seed", fixture_type="setup")
        assert fx["fixture_type"] == "setup"
        assert fx["version"] == "1.0.0"

    def test_create_validation(self, client):
        p = _create_project(client)
        res = client.post(_base(p["id"]), json={"name": "  "})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"name": "required"}

        res = client.post(_base(p["id"]), json={"name": "X", "colour": "red"})
        assert res.status_code == 422

        res = client.post(_base(p["id"]), json={"name": "X", "status": "bogus"})
        assert res.status_code == 422

    def test_create_in_unknown_project(self, client):
        res = client.post(_base(999), json={"name": "Orphan"})
        assert res.status_code == 404

    def test_list_and_search(self, client):
        p = _create_project(client)
        _create_parent(client, p["id"], name="Login ok")
        _create_parent(client, p["id"], name="Login locked")
        _create_parent(client, p["id"], name="Checkout")

        data = client.get(_base(p["id"])).get_json()
        assert data["total"] == 3

        data = client.get(f"{_base(p['id'])}?search=login").get_json()
        assert sorted(i["name"] for i in data["items"]) == ["Login locked", "Login ok"]

    def test_update_creates_version(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        res = client.put(f"{_base(p['id'])}/{tc['id']}", json={"name": "Renamed", "status": "ready"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["version"] == "1.0.1"
        assert data["test_case"]["name"] == "Renamed"
        assert data["test_case"]["status"] == "ready"

    def test_update_empty_body(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        res = client.put(f"{_base(p['id'])}/{tc['id']}", json={})
        assert res.status_code == 422

    def test_delete(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        res = client.delete(f"{_base(p['id'])}/{tc['id']}")
        assert res.status_code == 200
        assert res.get_json()["message"] == "TestCase deleted"
        assert client.get(f"{_base(p['id'])}/{tc['id']}").status_code == 404

    def test_list_is_paged(self, client):
        p = _create_project(client)
        for name in ("A", "B", "C"):
            _create_parent(client, p["id"], name=name)

        data = client.get(f"{_base(p['id'])}?limit=2&offset=1").get_json()
        assert [i["name"] for i in data["items"]] == ["B", "C"]
        assert (data["total"], data["limit"], data["offset"]) == (3, 2, 1)

        data = client.get(f"{_base(p['id'])}?limit=0&offset=-4").get_json()
        assert (data["limit"], data["offset"]) == (1, 0)
        assert [i["name"] for i in data["items"]] == ["A"]

        data = client.get(f"{_base(p['id'])}?limit=abc").get_json()
        assert data["limit"] == 100
        assert len(data["items"]) == 3

    def test_wrong_project_is_not_found(self, client):
        p1 = _create_project(client, "One")
        p2 = _create_project(client, "Two")
        tc = _create_parent(client, p1["id"])

        assert client.get(f"{_base(p2['id'])}/{tc['id']}").status_code == 404
        res = client.post(f"{_base(p2['id'])}/{tc['id']}/steps", json={"action": "x"})
        assert res.status_code == 404
        assert client.delete(f"{_base(p2['id'])}/{tc['id']}").status_code == 404

    def test_wrong_kind_is_not_found(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        assert client.get(f"{_base(p['id'], 'fixtures')}/{tc['id']}").status_code == 404

    def test_unknown_kind_segment(self, client):
        p = _create_project(client)
        assert client.get(f"/api/v1/projects/{p['id']}/widgets").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# STEPS
# ═════════════════════════════════════════════════════════════════════════════

class TestSteps:
    def test_add_and_list(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        data = _add_step(client, p["id"], tc["id"], action="open", data="/login")
        assert data["version"] == "1.0.1"
        assert [s["action"] for s in data["test_case"]["steps"]] == ["open"]

        res = client.get(f"{_base(p['id'])}/{tc['id']}/steps")
        assert res.status_code == 200
        steps = res.get_json()
        assert steps[0]["order"] == 0
        assert steps[0]["data"] == "/login"

    def test_add_at_position(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        _add_step(client, p["id"], tc["id"], action="a")
        _add_step(client, p["id"], tc["id"], action="c")
        data = _add_step(client, p["id"], tc["id"], action="b", position=1)
        steps = data["test_case"]["steps"]
        assert [(s["order"], s["action"]) for s in steps] == [(0, "a"), (1, "b"), (2, "c")]

    def test_add_requires_action(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        res = client.post(f"{_base(p['id'])}/{tc['id']}/steps", json={"data": "x"})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert _versions(client, p["id"], tc["id"])[0]["version"] == "1.0.0"

    def test_add_with_fixture_reference(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        fx = _create_parent(client, p["id"], "fixtures", name="Auth")
        data = _add_step(client, p["id"], tc["id"], action="use auth", referenced_fixture_id=fx["id"])
        assert data["test_case"]["steps"][0]["referenced_fixture_id"] == fx["id"]

    def test_fixture_reference_from_other_project(self, client):
        p1 = _create_project(client, "One")
        p2 = _create_project(client, "Two")
        tc = _create_parent(client, p1["id"])
        fx = _create_parent(client, p2["id"], "fixtures", name="Elsewhere")
        res = client.post(
            f"{_base(p1['id'])}/{tc['id']}/steps",
            json={"action": "x", "referenced_fixture_id": fx["id"]},
        )
        assert res.status_code == 422

    def test_update_step(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        step = _add_step(client, p["id"], tc["id"])["test_case"]["steps"][0]
        res = client.put(
            f"{_base(p['id'])}/{tc['id']}/steps/{step['id']}",
            json={"expected": "dashboard shown", "disabled": True},
            headers={"X-User": "bo"},
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["version"] == "1.0.2"
        updated = data["test_case"]["steps"][0]
        assert updated["expected"] == "dashboard shown"
        assert updated["disabled"] is True
        assert updated["updated_by"] == "bo"

    def test_update_step_rejects_order(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        step = _add_step(client, p["id"], tc["id"])["test_case"]["steps"][0]
        res = client.put(f"{_base(p['id'])}/{tc['id']}/steps/{step['id']}", json={"order": 3})
        assert res.status_code == 422

    def test_step_of_other_parent_is_not_found(self, client):
        p = _create_project(client)
        a = _create_parent(client, p["id"], name="A")
        b = _create_parent(client, p["id"], name="B")
        step = _add_step(client, p["id"], a["id"])["test_case"]["steps"][0]
        res = client.put(f"{_base(p['id'])}/{b['id']}/steps/{step['id']}", json={"action": "x"})
        assert res.status_code == 404
        res = client.delete(f"{_base(p['id'])}/{b['id']}/steps/{step['id']}")
        assert res.status_code == 404

    def test_delete_step_renumbers(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        for action in ("a", "b", "c"):
            data = _add_step(client, p["id"], tc["id"], action=action)
        middle = data["test_case"]["steps"][1]
        res = client.delete(f"{_base(p['id'])}/{tc['id']}/steps/{middle['id']}")
        assert res.status_code == 200
        steps = res.get_json()["test_case"]["steps"]
        assert [(s["order"], s["action"]) for s in steps] == [(0, "a"), (1, "c")]

    def test_reorder(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        for action in ("a", "b", "c"):
            data = _add_step(client, p["id"], tc["id"], action=action)
        ids = [s["id"] for s in data["test_case"]["steps"]]
        res = client.post(
            f"{_base(p['id'])}/{tc['id']}/steps/reorder",
            json={"step_ids": [ids[2], ids[0], ids[1]]},
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["version"] == "1.0.4"
        assert [s["action"] for s in data["test_case"]["steps"]] == ["c", "a", "b"]

    def test_reorder_rejects_non_permutation(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        for action in ("a", "b"):
            data = _add_step(client, p["id"], tc["id"], action=action)
        ids = [s["id"] for s in data["test_case"]["steps"]]
        res = client.post(
            f"{_base(p['id'])}/{tc['id']}/steps/reorder",
            json={"step_ids": [ids[0], ids[0]]},
        )
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_ORDER"
        assert body["details"]["missing"] == [ids[1]]
        assert body["details"]["duplicates"] == [ids[0]]
        assert _versions(client, p["id"], tc["id"])[0]["version"] == "1.0.2"

    def test_reorder_requires_step_ids(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        res = client.post(f"{_base(p['id'])}/{tc['id']}/steps/reorder", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_duplicate_step(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        _add_step(client, p["id"], tc["id"], action="a", data="x")
        data = _add_step(client, p["id"], tc["id"], action="b")
        first = data["test_case"]["steps"][0]
        res = client.post(f"{_base(p['id'])}/{tc['id']}/steps/{first['id']}/duplicate")
        assert res.status_code == 201
        steps = res.get_json()["test_case"]["steps"]
        assert [(s["action"], s["data"]) for s in steps] == [("a", "x"), ("a", "x"), ("b", "")]
        assert steps[1]["id"] != first["id"]

    def test_concurrent_modification_is_conflict(self, client, monkeypatch):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])

        def lost_race(*args, **kwargs):
            raise ConcurrentModificationError("TestCase", tc["id"], expected="1.0.0")

        monkeypatch.setattr(versioned_store, "add_step", lost_race)
        res = client.post(f"{_base(p['id'])}/{tc['id']}/steps", json={"action": "x"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_CONCURRENT"


# ═════════════════════════════════════════════════════════════════════════════
# HISTORY, REVERT, CLONE
# ═════════════════════════════════════════════════════════════════════════════

class TestHistory:
    def test_lifecycle_with_revert(self, client):
        p = _create_project(client)
        base = _base(p["id"])
        tc = _create_parent(client, p["id"], name="Login")
        _add_step(client, p["id"], tc["id"], action="click login")
        data = _add_step(client, p["id"], tc["id"], action="enter password")
        assert data["version"] == "1.0.2"

        first = data["test_case"]["steps"][0]
        res = client.delete(f"{base}/{tc['id']}/steps/{first['id']}")
        assert res.get_json()["version"] == "1.0.3"

        history = _versions(client, p["id"], tc["id"])
        assert [v["version"] for v in history] == ["1.0.3", "1.0.2", "1.0.1", "1.0.0"]
        target = next(v for v in history if v["version"] == "1.0.1")

        res = client.post(f"{base}/{tc['id']}/revert/{target['id']}", headers={"X-User": "cy"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["version"] == "1.0.4"
        assert [s["action"] for s in data["test_case"]["steps"]] == ["click login"]

        newest = _versions(client, p["id"], tc["id"])[0]
        assert newest["reverted_from_id"] == target["id"]
        assert newest["created_by"] == "cy"

    def test_version_detail_and_steps(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        _add_step(client, p["id"], tc["id"], action="a")
        v = _versions(client, p["id"], tc["id"])[0]

        res = client.get(f"{_base(p['id'])}/{tc['id']}/versions/{v['id']}")
        assert res.status_code == 200
        detail = res.get_json()
        assert detail["version"] == "1.0.1"
        assert detail["step_count"] == 1
        assert detail["steps"][0]["action"] == "a"

        res = client.get(f"{_base(p['id'])}/{tc['id']}/versions/{v['id']}/steps")
        assert [s["action"] for s in res.get_json()] == ["a"]

    def test_version_of_other_parent_is_not_found(self, client):
        p = _create_project(client)
        a = _create_parent(client, p["id"], name="A")
        b = _create_parent(client, p["id"], name="B")
        b_version = _versions(client, p["id"], b["id"])[0]
        base = _base(p["id"])
        assert client.get(f"{base}/{a['id']}/versions/{b_version['id']}").status_code == 404
        assert client.post(f"{base}/{a['id']}/revert/{b_version['id']}").status_code == 404

    def test_diff(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        _add_step(client, p["id"], tc["id"], action="a")
        client.put(f"{_base(p['id'])}/{tc['id']}", json={"name": "Login flow v2"})
        _add_step(client, p["id"], tc["id"], action="b")
        history = _versions(client, p["id"], tc["id"])
        newest, oldest = history[0], history[-1]

        res = client.get(
            f"{_base(p['id'])}/{tc['id']}/versions/diff?from={oldest['id']}&to={newest['id']}",
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["test_case_id"] == tc["id"]
        assert data["from"]["version"] == "1.0.0"
        assert data["to"]["version"] == "1.0.3"
        diff = data["diff"]
        assert [c["field"] for c in diff["field_changes"]] == ["name"]
        assert [s["to"]["action"] for s in diff["steps"]["added"]] == ["a", "b"]
        assert diff["summary"]["step_added_count"] == 2

    def test_diff_requires_params(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"])
        res = client.get(f"{_base(p['id'])}/{tc['id']}/versions/diff?from=1")
        assert res.status_code == 400

    def test_fixture_history(self, client):
        p = _create_project(client)
        fx = _create_parent(client, p["id"], "fixtures", name="Seed")
        _add_step(client, p["id"], fx["id"], "fixtures", action="insert users")
        history = _versions(client, p["id"], fx["id"], "fixtures")
        assert [v["version"] for v in history] == ["1.0.1", "1.0.0"]
        assert history[0]["fixture_id"] == fx["id"]

    def test_clone(self, client):
        p = _create_project(client)
        tc = _create_parent(client, p["id"], name="Cart")
        _add_step(client, p["id"], tc["id"], action="add item")
        _add_step(client, p["id"], tc["id"], action="checkout")

        res = client.post(f"{_base(p['id'])}/{tc['id']}/clone", headers={"X-User": "dee"})
        assert res.status_code == 201
        data = res.get_json()
        copy = data["test_case"]
        assert data["version"] == "1.0.0"
        assert copy["name"] == "Cart - Copy"
        assert copy["cloned_from_id"] == tc["id"]
        assert copy["created_by"] == "dee"
        assert [s["action"] for s in copy["steps"]] == ["add item", "checkout"]
        assert len(_versions(client, p["id"], copy["id"])) == 1

        res = client.post(f"{_base(p['id'])}/{tc['id']}/clone")
        assert res.get_json()["test_case"]["name"] == "Cart - Copy 2"


# ═════════════════════════════════════════════════════════════════════════════
# HEALTH
# ═════════════════════════════════════════════════════════════════════════════

class TestHealth:
    @pytest.mark.parametrize("path", ["/api/v1/health", "/api/v1/health/ready", "/api/v1/health/live"])
    def test_ok(self, client, path):
        res = client.get(path)
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
