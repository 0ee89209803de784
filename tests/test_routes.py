"""
Tests for the HTTP surface, run through the Flask test client.
"""

import pytest

from run_fields import ALLOVER_FIELDS, DTF_FIELDS


# Fixtures

@pytest.fixture
def order(client):
    response = client.post("/orders", json={
        "quantity": 100,
        "code": "<b>ORD1/26-27</b>",
        "processes": ["Allover Sublimation", "DTF"],
    })
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def configured_order(client, order):
    """The order with one saved run per process."""
    fields = {"Allover Sublimation": ALLOVER_FIELDS, "DTF": DTF_FIELDS}
    for process in order["processes"]:
        base = f"/orders/{order['id']}/processes/{process['id']}/runs"
        run = client.post(base).get_json()
        response = client.post(f"{base}/{run['id']}/configure", json={"fields": fields[process["name"]]})
        assert response.status_code == 200
    return client.get(f"/orders/{order['id']}").get_json()


@pytest.fixture
def group(client, configured_order):
    response = client.post("/billing/contexts", json={"orderIds": [configured_order["id"]]})
    assert response.status_code == 201
    return response.get_json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"
    assert response.get_json()["environment"] == "testing"


class TestOrderRoutes:

    def test_create_order_sanitizes_code(self, order):
        assert order["code"] == "ORD1/26-27"
        assert [p["name"] for p in order["processes"]] == ["Allover Sublimation", "DTF"]

    def test_invalid_quantity(self, client):
        response = client.post("/orders", json={"quantity": "lots"})

        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_missing_order_is_404(self, client):
        response = client.get("/orders/missing")

        assert response.status_code == 404
        assert response.get_json()["error"] == "Order not found: missing"


class TestRunRoutes:

    def test_configure_and_read_run(self, client, configured_order):
        run = configured_order["processes"][1]["runs"][0]

        response = client.get(f"/runs/{run['id']}")

        assert response.status_code == 200
        assert response.get_json()["configStatus"] == "COMPLETE"
        assert response.get_json()["values"]["Actual Total"] == 10580.0

    def test_configure_validation_error(self, client, order):
        process = order["processes"][1]
        base = f"/orders/{order['id']}/processes/{process['id']}/runs"
        run = client.post(base).get_json()

        response = client.post(f"{base}/{run['id']}/configure", json={"fields": {"pcs": 0}})

        assert response.status_code == 400
        assert "PCS must be greater than 0" in response.get_json()["details"]["errors"]

    def test_configure_strips_markup(self, client, order):
        process = order["processes"][1]
        base = f"/orders/{order['id']}/processes/{process['id']}/runs"
        run = client.post(base).get_json()

        fields = dict(DTF_FIELDS, particulars="<script>x</script>Logo")
        response = client.post(f"{base}/{run['id']}/configure", json={"fields": fields})

        assert "<script>" not in response.get_json()["values"]["particulars"]

    def test_delete_run(self, client, order):
        process = order["processes"][0]
        base = f"/orders/{order['id']}/processes/{process['id']}/runs"
        run = client.post(base).get_json()

        assert client.delete(f"{base}/{run['id']}").status_code == 200
        assert client.get(f"/runs/{run['id']}").status_code == 404

    def test_stale_configure_is_409(self, client, configured_order):
        process = configured_order["processes"][1]
        run = process["runs"][0]
        url = f"/orders/{configured_order['id']}/processes/{process['id']}/runs/{run['id']}/configure"

        response = client.post(url, json={"fields": DTF_FIELDS, "expectedRevision": 0})

        assert run["revision"] == 1
        assert response.status_code == 409
        assert response.get_json()["details"]["actual_revision"] == 1

    def test_preview(self, client):
        response = client.post("/runs/preview", json={"processName": "DTF", "fields": DTF_FIELDS})

        assert response.status_code == 200
        assert response.get_json()["values"]["Total Layouts"] == 10

    def test_preview_unknown_process(self, client):
        response = client.post("/runs/preview", json={"processName": "Screen Print", "fields": {}})

        assert response.status_code == 400


class TestBillingRoutes:

    def test_create_and_get_group(self, client, group):
        response = client.get(f"/billing/contexts/{group['id']}")

        body = response.get_json()
        assert response.status_code == 200
        assert body["latestSnapshot"]["isDraft"] is True
        assert body["orders"][0]["billing"]["result"] == 11080.0

    def test_list_groups(self, client, group):
        body = client.get("/billing/contexts?page=1&limit=5").get_json()

        assert body["meta"]["total"] == 1
        assert body["meta"]["limit"] == 5
        assert body["data"][0]["name"] == group["name"]

    def test_finalize_group(self, client, group, configured_order):
        run_id = configured_order["processes"][0]["runs"][0]["id"]

        response = client.post("/billing/finalize/group", json={
            "billingContextId": group["id"],
            "inputs": {configured_order["id"]: {run_id: {"new_rate": 120}}},
            "expectedVersion": 1,
        })

        body = response.get_json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["context"]["latestSnapshot"]["result"] == 11180.0

    def test_stale_finalize_is_409(self, client, group):
        payload = {"billingContextId": group["id"], "inputs": {}, "expectedVersion": 1}
        client.post("/billing/finalize/group", json=payload)

        response = client.post("/billing/finalize/group", json=payload)

        assert response.status_code == 409
        assert response.get_json()["details"]["actual_version"] == 2

    def test_finalize_requires_context_id(self, client):
        assert client.post("/billing/finalize/group", json={"inputs": {}}).status_code == 400

    def test_finalize_order(self, client, configured_order):
        run_id = configured_order["processes"][0]["runs"][0]["id"]

        response = client.post("/billing/finalize/order", json={
            "orderId": configured_order["id"],
            "inputs": {run_id: {"new_rate": 110}},
        })

        assert response.status_code == 200
        assert response.get_json()["snapshot"]["result"] == 11130.0

    def test_preview_group(self, client, group, configured_order):
        run_id = configured_order["processes"][0]["runs"][0]["id"]

        body = client.post(f"/billing/contexts/{group['id']}/preview", json={
            "inputs": {configured_order["id"]: {run_id: {"new_rate": "200"}}},
        }).get_json()

        assert body["result"] == 11080.0
        assert body["preview"] == 11580.0

    def test_membership_routes(self, client, group, configured_order):
        other = client.post("/orders", json={"quantity": 10, "processes": ["DTF"]}).get_json()
        process = other["processes"][0]
        base = f"/orders/{other['id']}/processes/{process['id']}/runs"
        run = client.post(base).get_json()
        client.post(f"{base}/{run['id']}/configure", json={"fields": DTF_FIELDS})

        added = client.post(f"/billing/contexts/{group['id']}/orders", json={"orderIds": [other["id"]]})
        removed = client.delete(f"/billing/contexts/{group['id']}/orders/{other['id']}")

        assert added.get_json() == {"added": 1}
        assert removed.status_code == 200

    def test_latest_snapshot(self, client, group, configured_order):
        body = client.post("/billing/snapshots/latest", json={"orderId": configured_order["id"]}).get_json()

        assert body["snapshot"]["result"] == 11080.0

    def test_unknown_context_is_404(self, client):
        assert client.get("/billing/contexts/missing").status_code == 404

    def test_preview_rejects_malformed_order_entry(self, client, group, configured_order):
        response = client.post(f"/billing/contexts/{group['id']}/preview", json={
            "inputs": {configured_order["id"]: ["x"]},
        })

        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_stale_order_save_is_409(self, client, configured_order):
        run_id = configured_order["processes"][0]["runs"][0]["id"]
        payload = {"orderId": configured_order["id"], "inputs": {run_id: {"new_rate": 110}}, "expectedVersion": 0}
        client.post("/billing/finalize/order", json=payload)

        response = client.post("/billing/finalize/order", json=payload)

        assert response.status_code == 409
        assert response.get_json()["details"]["actual_version"] == 1

    def test_non_integer_expected_version_is_400(self, client, group):
        response = client.post("/billing/finalize/group", json={
            "billingContextId": group["id"], "inputs": {}, "expectedVersion": "latest",
        })

        assert response.status_code == 400
