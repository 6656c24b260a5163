"""
tests/test_inventory_routes.py -- Integration tests for /api/inventory and /api/locations.

Covers:
  - Every route requires a token (401 without one)
  - Create / read / update / delete round trip for items and locations
  - filterColumn / searchValue / exactMatch query parameters
  - 400 for unknown filter columns and empty updates, 404 for unknown ids
  - Writes land in the audit trail with the acting username
"""

from __future__ import annotations

import pytest

from conftest import ApiContext, auth_header, drain_audit


def _create_item(ctx: ApiContext, **fields) -> str:
    resp = ctx.client.post("/api/inventory", json=fields, headers=auth_header(ctx.editor_token))
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


class TestRequiresToken:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/inventory"),
            ("post", "/api/inventory"),
            ("put", "/api/inventory/abc"),
            ("delete", "/api/inventory/abc"),
            ("get", "/api/locations"),
            ("post", "/api/locations"),
        ],
    )
    def test_no_token_is_401(self, api_client: ApiContext, method: str, path: str) -> None:
        resp = getattr(api_client.client, method)(path)
        assert resp.status_code == 401


class TestItems:
    def test_create_and_list(self, api_client: ApiContext) -> None:
        item_id = _create_item(api_client, Name="Torque Wrench", Quantity=1, Bin="B4")
        resp = api_client.client.get("/api/inventory", headers=auth_header(api_client.viewer_token))
        assert resp.status_code == 200
        match = [row for row in resp.json() if row["ID"] == item_id]
        assert match and match[0]["Name"] == "Torque Wrench"
        assert match[0]["Bin"] == "B4"

    def test_snake_case_body_accepted(self, api_client: ApiContext) -> None:
        item_id = _create_item(api_client, name="Level", quantity=2)
        rows = api_client.client.get(
            "/api/inventory",
            params={"filterColumn": "ID", "searchValue": item_id, "exactMatch": "true"},
            headers=auth_header(api_client.viewer_token),
        ).json()
        assert [r["Quantity"] for r in rows] == [2]

    def test_substring_and_exact_search(self, api_client: ApiContext) -> None:
        _create_item(api_client, Name="Socket Set")
        _create_item(api_client, Name="Socket")
        headers = auth_header(api_client.viewer_token)

        fuzzy = api_client.client.get(
            "/api/inventory", params={"filterColumn": "Name", "searchValue": "socket"}, headers=headers
        ).json()
        assert {"Socket Set", "Socket"} <= {r["Name"] for r in fuzzy}

        exact = api_client.client.get(
            "/api/inventory",
            params={"filterColumn": "Name", "searchValue": "Socket", "exactMatch": "true"},
            headers=headers,
        ).json()
        assert [r["Name"] for r in exact] == ["Socket"]

    def test_unknown_filter_column_is_400(self, api_client: ApiContext) -> None:
        resp = api_client.client.get(
            "/api/inventory",
            params={"filterColumn": "PasswordHash", "searchValue": "x"},
            headers=auth_header(api_client.viewer_token),
        )
        assert resp.status_code == 400

    def test_create_requires_name(self, api_client: ApiContext) -> None:
        resp = api_client.client.post("/api/inventory", json={"Quantity": 3}, headers=auth_header(api_client.editor_token))
        assert resp.status_code == 422

    def test_update_and_delete(self, api_client: ApiContext) -> None:
        item_id = _create_item(api_client, Name="Stud Finder")
        headers = auth_header(api_client.editor_token)

        resp = api_client.client.put(f"/api/inventory/{item_id}", json={"Location": "Garage"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "id": item_id}

        assert api_client.client.delete(f"/api/inventory/{item_id}", headers=headers).status_code == 200
        assert api_client.client.delete(f"/api/inventory/{item_id}", headers=headers).status_code == 404

    def test_empty_update_is_400(self, api_client: ApiContext) -> None:
        item_id = _create_item(api_client, Name="Clamp")
        resp = api_client.client.put(f"/api/inventory/{item_id}", json={}, headers=auth_header(api_client.editor_token))
        assert resp.status_code == 400

    def test_update_unknown_item_is_404(self, api_client: ApiContext) -> None:
        resp = api_client.client.put(
            "/api/inventory/no-such-item", json={"Name": "x"}, headers=auth_header(api_client.editor_token)
        )
        assert resp.status_code == 404

    def test_writes_are_audited(self, api_client: ApiContext) -> None:
        item_id = _create_item(api_client, Name="Audited Saw")
        drain_audit(api_client.client)
        rows = api_client.store.execute_query(
            "Transactions", "READ", {"Route": f"POST /api/inventory/{item_id}"}
        )
        assert len(rows) == 1
        assert rows[0]["AuthenticatedUsername"] == "testeditor"
        assert "Audited Saw" in rows[0]["RequestPayload"]

    def test_reads_not_audited_at_normal_verbosity(self, api_client: ApiContext) -> None:
        api_client.client.get("/api/inventory", headers=auth_header(api_client.viewer_token))
        drain_audit(api_client.client)
        rows = api_client.store.execute_query("Transactions", "READ", {"Route": "GET /api/inventory"})
        assert rows == []


class TestLocations:
    def test_location_round_trip(self, api_client: ApiContext) -> None:
        headers = auth_header(api_client.editor_token)
        resp = api_client.client.post(
            "/api/locations", json={"Name": "Basement", "Building": "House"}, headers=headers
        )
        assert resp.status_code == 201
        location_id = resp.json()["id"]

        rows = api_client.client.get(
            "/api/locations", params={"filterColumn": "Building", "searchValue": "House"}, headers=headers
        ).json()
        assert location_id in {r["ID"] for r in rows}

        update = api_client.client.put(f"/api/locations/{location_id}", json={"Owner": "alice"}, headers=headers)
        assert update.status_code == 200
        assert api_client.client.delete(f"/api/locations/{location_id}", headers=headers).status_code == 200
