from uuid import uuid4


async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Healthy"
    assert resp.headers["X-Correlation-ID"]


async def test_not_found_uses_error_envelope(client):
    resp = await client.get(f"/api/v1/materials/{uuid4()}", headers={"X-Correlation-ID": "corr-1"})

    assert resp.status_code == 404
    body = resp.json()
    assert body["status"] == 404
    assert body["error"]["type"] == "not_found"
    assert body["correlation_id"] == "corr-1"
    assert body["method"] == "GET"
    assert body["path"].startswith("/api/v1/materials/")


async def test_request_validation_envelope(client):
    resp = await client.post("/api/v1/mrp/demands", json={"material_id": "not-a-uuid", "quantity": -1})

    assert resp.status_code == 422
    body = resp.json()
    assert body["error"]["type"] == "validation_error"
    assert isinstance(body["error"]["details"], list)


async def test_hierarchy_violation_is_422(client):
    bin_resp = await client.post("/api/v1/locations", json={"code": "B1", "name": "Bin", "type": "bin"})
    assert bin_resp.status_code == 201

    resp = await client.post(
        "/api/v1/locations",
        json={"code": "W1", "name": "Warehouse", "type": "warehouse", "parent_id": bin_resp.json()["id"]},
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "hierarchy_violation"


async def test_receive_consume_and_plan(client):
    loc = await client.post("/api/v1/locations", json={"code": "WH1", "name": "Main", "type": "warehouse"})
    assert loc.status_code == 201

    mat = await client.put(
        "/api/v1/materials",
        json={
            "code": "M1",
            "name": "Aluminum Rod",
            "uom": "KG",
            "price": "10",
            "lead_time_days": 5,
            "safety_stock": "20",
            "economic_order_quantity": "100",
            "default_location_id": loc.json()["id"],
        },
    )
    assert mat.status_code == 200
    material_id = mat.json()["id"]

    lot = await client.post(
        "/api/v1/lots",
        json={"material_id": material_id, "quantity": "50", "unit_cost": "10", "received_date": "2024-03-01"},
    )
    assert lot.status_code == 201
    assert lot.json()["location_id"] == loc.json()["id"]

    consumed = await client.post(f"/api/v1/lots/{lot.json()['id']}/consume", json={"quantity": "10"})
    assert consumed.status_code == 200
    assert consumed.json()["remaining_quantity"] == 40

    too_much = await client.post(f"/api/v1/lots/{lot.json()['id']}/consume", json={"quantity": "41"})
    assert too_much.status_code == 409
    assert too_much.json()["error"]["type"] == "insufficient_quantity"

    demand = await client.post(
        "/api/v1/mrp/demands",
        json={"material_id": material_id, "quantity": "80", "need_date": "2024-03-10", "source_type": "sales_order"},
    )
    assert demand.status_code == 201

    run = await client.post(
        "/api/v1/mrp/runs",
        json={"run_date": "2024-03-01", "horizon_start": "2024-03-01", "horizon_end": "2024-03-31"},
    )
    assert run.status_code == 201
    assert run.json()["status"] == "completed"
    assert run.json()["requirements_created"] == 1

    reqs = await client.get("/api/v1/mrp/requirements", params={"material_id": material_id})
    assert reqs.status_code == 200
    [req] = reqs.json()
    assert req["net_requirement"] == 60
    assert req["planned_order_quantity"] == 100
    assert req["planned_release_date"] == "2024-03-05"

    converted = await client.post(
        f"/api/v1/mrp/requirements/{req['id']}/convert", json={"order_type": "purchase", "order_id": "PO-1"}
    )
    assert converted.status_code == 200
    assert converted.json()["status"] == "converted"

    cancelled = await client.post(f"/api/v1/mrp/requirements/{req['id']}/cancel")
    assert cancelled.status_code == 409


async def test_inverted_horizon_is_rejected(client):
    resp = await client.post(
        "/api/v1/mrp/runs", json={"horizon_start": "2024-03-10", "horizon_end": "2024-03-01"}
    )
    assert resp.status_code == 422


async def test_reports_export_csv(client):
    mat = await client.put("/api/v1/materials", json={"code": "M9", "name": "Washer", "price": "0.5"})
    await client.post(
        "/api/v1/lots",
        json={"material_id": mat.json()["id"], "quantity": "100", "unit_cost": "0.4", "received_date": "2024-03-01"},
    )

    valuation = await client.get("/api/v1/reports/inventory-valuation", params={"format": "csv"})
    assert valuation.status_code == 200
    assert valuation.headers["content-type"].startswith("text/csv")
    assert "M9" in valuation.text

    requirements = await client.get("/api/v1/reports/requirements", params={"format": "csv"})
    assert requirements.status_code == 200
    assert requirements.headers["content-type"].startswith("text/csv")


def test_openapi_dump(tmp_path):
    import json

    from src.api.generate_openapi import main as dump_openapi

    path = dump_openapi([str(tmp_path / "interfaces" / "openapi.json")])

    with open(path) as f:
        schema = json.load(f)
    assert "/api/v1/mrp/runs" in schema["paths"]
    assert "/api/v1/lots/{lot_id}/consume" in schema["paths"]
    assert {t["name"] for t in schema["tags"]} >= {"Lots", "MRP", "Reports"}
