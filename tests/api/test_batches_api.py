"""
HTTP tests for the processing, packaging and labeling endpoints.
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

ACTOR = "3f2b8c1e-9a77-4d3c-8f2e-0c9a5b6d7e81"


def _create(client, product_type="sap", **body):
    response = client.post("/batches", json={"productType": product_type, **body})
    assert response.status_code == 201, response.text
    return response.json()


def _complete_processing(client, batch_id):
    response = client.post(f"/batches/{batch_id}/submit")
    assert response.status_code == 200, response.text
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["database"] == "up"


class TestProcessingBatches:
    def test_create(self, client):
        body = _create(client, "treacle", notes="kettle 1")

        assert body["batchNumber"] == "01"
        assert body["productType"] == "treacle"
        assert body["status"] == "in-progress"
        assert body["scheduledDate"] == "2024-06-01"
        assert body["unitIds"] == []
        assert body["notes"] == "kettle 1"

    def test_create_unknown_product_type(self, client):
        response = client.post("/batches", json={"productType": "honey"})

        assert response.status_code == 400
        assert response.json()["error"] == "UNKNOWN_PRODUCT_LINE"

    def test_create_missing_product_type(self, client):
        response = client.post("/batches", json={})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["field"] == "productType"

    def test_unknown_body_field(self, client):
        response = client.post("/batches", json={"productType": "sap", "colour": "amber"})

        assert response.status_code == 400

    def test_list_filters(self, client):
        _create(client, "sap")
        done = _create(client, "sap")
        _complete_processing(client, done["id"])
        _create(client, "treacle")

        sap = client.get("/batches", params={"productType": "sap"}).json()["batches"]
        completed = client.get(
            "/batches", params={"productType": "sap", "status": "completed"}
        ).json()["batches"]

        assert len(sap) == 2
        assert [b["id"] for b in completed] == [done["id"]]

    def test_get_unknown_and_malformed(self, client):
        assert client.get(f"/batches/{uuid4()}").status_code == 404
        response = client.get("/batches/not-an-id")
        assert response.status_code == 404
        assert response.json()["error"] == "BATCH_NOT_FOUND"

    def test_patch_measurements(self, client):
        batch = _create(client)

        response = client.patch(
            f"/batches/{batch['id']}",
            json={"totalOutput": "120.5", "gasCost": 450, "notes": "good run"},
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert Decimal(body["totalOutput"]) == Decimal("120.5")
        assert Decimal(body["gasCost"]) == Decimal("450")
        assert body["notes"] == "good run"

    def test_patch_negative(self, client):
        batch = _create(client)

        response = client.patch(f"/batches/{batch['id']}", json={"laborCost": "-3"})

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "labor_cost"

    @pytest.mark.parametrize("body,field", [
        ({"gasCost": "1.239"}, "gas_cost"),
        ({"totalOutput": "123456789012345678.5"}, "total_output"),
    ])
    def test_patch_out_of_range(self, client, body, field):
        batch = _create(client)

        response = client.patch(f"/batches/{batch['id']}", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert response.json()["details"]["field"] == field
        stored = client.get(f"/batches/{batch['id']}").json()
        assert stored["gasCost"] is None
        assert stored["totalOutput"] is None

    def test_patch_product_type_change_refused(self, client):
        batch = _create(client, "sap")

        response = client.patch(f"/batches/{batch['id']}", json={"productType": "treacle"})

        assert response.status_code == 400

    def test_patch_status_completed(self, client):
        batch = _create(client)

        response = client.patch(f"/batches/{batch['id']}", json={"status": "completed"})

        assert response.json()["status"] == "completed"

    def test_submit_idempotent(self, client):
        batch = _create(client)
        _complete_processing(client, batch["id"])

        again = client.post(f"/batches/{batch['id']}/submit")

        assert again.status_code == 200
        assert again.json()["status"] == "completed"

    def test_reopen_in_progress_refused(self, client):
        batch = _create(client)

        response = client.post(f"/batches/{batch['id']}/reopen")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_TRANSITION"
        assert body["details"]["currentStatus"] == "in-progress"

    def test_delete(self, client):
        batch = _create(client)

        assert client.delete(f"/batches/{batch['id']}").status_code == 204
        assert client.get(f"/batches/{batch['id']}").status_code == 404


class TestUnitAssignment:
    def test_set_units_and_list_free(self, client, seed_units):
        codes = seed_units(3)
        batch = _create(client)

        response = client.put(f"/batches/{batch['id']}/units", json={"unitIds": codes[:2]})

        assert response.status_code == 200, response.text
        assert response.json()["unitIds"] == sorted(codes[:2])
        assert response.json()["unitCount"] == 2
        free = client.get("/units", params={"productType": "sap"}).json()["units"]
        assert [u["id"] for u in free] == [codes[2]]
        editing = client.get(
            "/units", params={"productType": "sap", "forBatch": batch["id"]}
        ).json()["units"]
        assert {u["id"] for u in editing} == set(codes)

    def test_conflict_reports_offending_units(self, client, seed_units):
        codes = seed_units(3)
        first = _create(client)
        second = _create(client)
        client.put(f"/batches/{first['id']}/units", json={"unitIds": codes[:1]})

        response = client.put(f"/batches/{second['id']}/units", json={"unitIds": codes})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "UNIT_CONFLICT"
        assert body["details"]["unitIds"] == codes[:1]
        # Nothing was claimed by the refused request.
        assert client.get(f"/batches/{second['id']}").json()["unitIds"] == []

    def test_unknown_units(self, client, seed_units):
        seed_units(1)
        batch = _create(client)

        response = client.put(f"/batches/{batch['id']}/units", json={"unitIds": ["GHOST-1"]})

        assert response.status_code == 400
        assert response.json()["error"] == "UNITS_NOT_FOUND"
        assert response.json()["details"]["unitIds"] == ["GHOST-1"]

    def test_limit(self, client):
        batch = _create(client)

        response = client.put(
            f"/batches/{batch['id']}/units",
            json={"unitIds": [f"U-{i}" for i in range(16)]},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "UNIT_LIMIT_EXCEEDED"

    def test_units_must_be_a_list(self, client):
        batch = _create(client)

        response = client.put(f"/batches/{batch['id']}/units", json={"unitIds": "S-1"})

        assert response.status_code == 400

    def test_free_units_require_product_type(self, client):
        response = client.get("/units")

        assert response.status_code == 400

    def test_for_unknown_batch(self, client):
        response = client.get("/units", params={"productType": "sap", "forBatch": str(uuid4())})

        assert response.status_code == 404


class TestDerivedBatches:
    def _completed_processing(self, client, seed_units, product_type="sap"):
        codes = seed_units(2, product_type)
        batch = _create(client, product_type)
        client.put(f"/batches/{batch['id']}/units", json={"unitIds": codes})
        client.patch(f"/batches/{batch['id']}", json={"totalOutput": "50"})
        return _complete_processing(client, batch["id"])

    def test_full_pipeline_and_reopen_cascade(self, client, seed_units):
        processing = self._completed_processing(client, seed_units)

        eligible = client.get(
            "/packaging-batches/eligible-sources", params={"productType": "sap"}
        ).json()["batches"]
        assert [e["id"] for e in eligible] == [processing["id"]]

        packaging = client.post(
            "/packaging-batches", json={"sourceBatchId": processing["id"]}
        )
        assert packaging.status_code == 201, packaging.text
        packaging = packaging.json()
        assert packaging["status"] == "pending"
        assert packaging["sourceBatchNumber"] == processing["batchNumber"]
        assert set(packaging["materials"]) == {"bottle", "lid"}

        response = client.patch(
            f"/packaging-batches/{packaging['id']}",
            json={
                "finishedQuantity": 48,
                "bottleQuantity": 48,
                "lidQuantity": 48,
                "bottleCost": "96.00",
                "status": "completed",
            },
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "completed"

        labeling = client.post("/labeling-batches", json={"sourceBatchId": packaging["id"]})
        assert labeling.status_code == 201
        labeling_id = labeling.json()["id"]

        reopened = client.post(f"/batches/{processing['id']}/reopen")
        assert reopened.status_code == 200
        assert reopened.json()["status"] == "in-progress"
        assert client.get(f"/packaging-batches/{packaging['id']}").status_code == 404
        assert client.get(f"/labeling-batches/{labeling_id}").status_code == 404

    def test_duplicate_derivation(self, client, seed_units):
        processing = self._completed_processing(client, seed_units)
        client.post("/packaging-batches", json={"sourceBatchId": processing["id"]})

        response = client.post("/packaging-batches", json={"sourceBatchId": processing["id"]})

        assert response.status_code == 400
        assert response.json()["error"] == "DUPLICATE_DERIVATION"

    def test_derive_from_incomplete_source(self, client):
        batch = _create(client)

        response = client.post("/packaging-batches", json={"sourceBatchId": batch["id"]})

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_TRANSITION"

    def test_guard_failure_lists_missing_fields(self, client, seed_units):
        processing = self._completed_processing(client, seed_units, "treacle")
        packaging = client.post(
            "/packaging-batches", json={"sourceBatchId": processing["id"]}
        ).json()

        response = client.post(f"/packaging-batches/{packaging['id']}/submit")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "STAGE_GUARD_FAILED"
        assert body["details"]["missingFields"] == [
            "finished_quantity",
            "alufoil_quantity",
            "vacuum_bag_quantity",
            "parchment_paper_quantity",
        ]

    @pytest.mark.parametrize("action,expected", [("hold", "on-hold"), ("resume", "in-progress")])
    def test_hold_and_resume(self, client, seed_units, action, expected):
        processing = self._completed_processing(client, seed_units)
        packaging = client.post(
            "/packaging-batches", json={"sourceBatchId": processing["id"]}
        ).json()

        response = client.post(f"/packaging-batches/{packaging['id']}/{action}")

        assert response.status_code == 200
        assert response.json()["status"] == expected

    def test_delete_packaging_frees_source(self, client, seed_units):
        processing = self._completed_processing(client, seed_units)
        packaging = client.post(
            "/packaging-batches", json={"sourceBatchId": processing["id"]}
        ).json()

        assert client.delete(f"/packaging-batches/{packaging['id']}").status_code == 204

        eligible = client.get("/packaging-batches/eligible-sources").json()["batches"]
        assert [e["id"] for e in eligible] == [processing["id"]]

    def test_unused_material_rejected(self, client, seed_units):
        processing = self._completed_processing(client, seed_units, "treacle")
        packaging = client.post(
            "/packaging-batches", json={"sourceBatchId": processing["id"]}
        ).json()

        response = client.patch(
            f"/packaging-batches/{packaging['id']}", json={"bottleQuantity": 5}
        )

        assert response.status_code == 400


class TestHeaders:
    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "req-42"})

        assert response.headers["X-Request-Id"] == "req-42"

    def test_actor_recorded(self, client, session):
        from harvest_kernel.models.processing_batch import ProcessingBatch

        body = client.post(
            "/batches", json={"productType": "sap"}, headers={"X-Actor-Id": ACTOR}
        ).json()

        row = session.get(ProcessingBatch, UUID(body["id"]))
        assert str(row.created_by_id) == ACTOR

    def test_actor_and_request_on_log_records(self, client, captured_logs):
        client.post(
            "/batches",
            json={"productType": "sap"},
            headers={"X-Actor-Id": ACTOR, "X-Request-Id": "req-7"},
        )

        created = [r for r in captured_logs() if r["message"] == "batch_created"]
        assert len(created) == 1
        assert created[0]["actor_id"] == ACTOR
        assert created[0]["request_id"] == "req-7"

    def test_default_actor_logged(self, client, captured_logs, api_config):
        client.post("/batches", json={"productType": "treacle"})

        (created,) = [r for r in captured_logs() if r["message"] == "batch_created"]
        assert created["actor_id"] == str(api_config.api.default_actor_id)

    def test_bad_actor(self, client):
        response = client.post(
            "/batches", json={"productType": "sap"}, headers={"X-Actor-Id": "bob"}
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "X-Actor-Id"
