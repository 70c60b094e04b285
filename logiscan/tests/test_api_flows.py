import unittest

from fastapi.testclient import TestClient

from logiscan.tests.support import make_session_factory, seed_event, seed_quote_item, seed_stock, seed_truck

import logiscan.app as app_module
from logiscan.models.logistics_models import AuditLog, TodoTask
from logiscan.services.repositories import find_scan_lists_by_event


class ApiFlowTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        app_module.app.dependency_overrides[app_module.get_db] = lambda: self.db
        self.client = TestClient(app_module.app)
        seed_stock(self.db, "SPK", 3)
        seed_truck(self.db, "TRK1")

    def tearDown(self):
        app_module.app.dependency_overrides.clear()
        self.db.close()

    def test_health_endpoints(self):
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})
        self.assertEqual(self.client.get("/api/healthz").status_code, 200)

    def test_availability_reports_severity(self):
        seed_event(self.db, "E1", 1, 5)
        response = self.client.get("/api/events/E1/availability", params={"sku": "SPK", "quantity": 2})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["availableQuantity"], 3)
        self.assertTrue(body["canFulfill"])
        self.assertEqual(body["sku"], "SPK")

    def test_availability_for_unknown_event_is_404(self):
        response = self.client.get("/api/events/NOPE/availability", params={"sku": "SPK"})
        self.assertEqual(response.status_code, 404)

    def test_batch_availability_lists_unknown_skus(self):
        seed_event(self.db, "E1", 1, 5)
        response = self.client.post("/api/events/E1/availability/batch", json={"quantities": {"SPK": 1, "FOG": 2}})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["unknownSkus"], ["FOG"])
        self.assertFalse(body["canFulfillAll"])
        self.assertIn("SPK", body["results"])

    def test_adjust_quote_item_grows_and_rejects_overbooking(self):
        seed_event(self.db, "E1", 1, 5)
        line = seed_quote_item(self.db, "E1", "SPK", 1)
        headers = {"X-Actor-User-ID": "planner"}

        grown = self.client.post(f"/api/events/E1/quote-items/{line.QuoteItemID}/adjust", json={"quantity": 2}, headers=headers)
        self.assertEqual(grown.status_code, 200)
        self.assertEqual(len(grown.json()["assignedAssets"]), 2)
        self.assertEqual(grown.json()["quantity"], 2)

        too_many = self.client.post(f"/api/events/E1/quote-items/{line.QuoteItemID}/adjust", json={"quantity": 9}, headers=headers)
        self.assertEqual(too_many.status_code, 409)
        self.assertEqual(too_many.json()["detail"]["code"], "insufficient_stock")

        audit = self.db.query(AuditLog).filter(AuditLog.Action == "AdjustReservations").all()
        self.assertEqual([a.UserID for a in audit], ["planner"])

    def test_release_one_and_delete_line(self):
        seed_event(self.db, "E1", 1, 5)
        line = seed_quote_item(self.db, "E1", "SPK", 2)
        self.client.post(f"/api/events/E1/quote-items/{line.QuoteItemID}/adjust", json={"quantity": 2})

        released = self.client.post(f"/api/events/E1/quote-items/{line.QuoteItemID}/release-one")
        self.assertEqual(released.status_code, 200)
        self.assertIsNotNone(released.json()["releasedAssetID"])
        self.assertEqual(released.json()["quoteItem"]["quantity"], 1)

        removed = self.client.delete(f"/api/events/E1/quote-items/{line.QuoteItemID}")
        self.assertEqual(removed.status_code, 200)
        self.assertEqual(removed.json()["releasedCount"], 1)
        missing = self.client.delete(f"/api/events/E1/quote-items/{line.QuoteItemID}")
        self.assertEqual(missing.status_code, 404)

    def test_validate_quote_rejects_truck_conflict(self):
        seed_event(self.db, "E1", 1, 5, truck_id="TRK1")
        seed_event(self.db, "E2", 3, 7, truck_id="TRK1")
        response = self.client.post("/api/events/E2/validate-quote", json={})
        self.assertEqual(response.status_code, 409)
        detail = response.json()["detail"]
        self.assertEqual(detail["code"], "truck_unavailable")
        self.assertEqual(detail["conflictingEvent"], "E1")

    def test_full_round_through_scan_list_and_tasks(self):
        seed_event(self.db, "E1", 1, 5, truck_id="TRK1")
        seed_quote_item(self.db, "E1", "SPK", 2)

        validated = self.client.post(
            "/api/events/E1/validate-quote",
            json={"operatorUserID": "planner"},
        )
        self.assertEqual(validated.status_code, 200)
        body = validated.json()
        self.assertEqual(len(body["scanLists"]), 4)
        self.assertEqual(len(body["taskIDs"]), 4)

        loading = next(sl for sl in find_scan_lists_by_event(self.db, "E1") if sl.Direction == "StockToTruck")
        asset_id = next(iter(body["assignedAssets"].values()))[0]
        scanned = self.client.post(f"/api/scan-lists/{loading.ScanListID}/scan", json={"assetID": asset_id})
        self.assertEqual(scanned.status_code, 200)
        self.assertEqual(scanned.json()["asset"]["status"], "InTransitToEvent")

        completed = self.client.post(f"/api/scan-lists/{loading.ScanListID}/complete", headers={"X-Actor-User-ID": "crew"})
        self.assertEqual(completed.status_code, 200)
        self.assertEqual(completed.json()["scanList"]["status"], "Completed")
        self.assertEqual(completed.json()["notificationsQueued"], 2)

        truck = self.client.get("/api/trucks/TRK1/status")
        self.assertEqual(truck.json()["status"], "EnRoute")

        pending = self.client.get("/api/notifications/pending", params={"recipientUserID": "planner"})
        self.assertEqual(sorted(n["type"] for n in pending.json()), ["TaskAvailable", "TaskCompleted"])

        next_task_id = body["taskIDs"][1]
        started = self.client.post(f"/api/tasks/{next_task_id}/start", headers={"X-Actor-User-ID": "driver"})
        self.assertEqual(started.status_code, 200)
        self.assertEqual(started.json()["status"], "InProgress")
        self.assertEqual(started.json()["assignedUserID"], "driver")

    def test_scan_of_unreserved_asset_and_second_completion_are_conflicts(self):
        seed_event(self.db, "E1", 1, 5, directions=["TruckToEvent"])
        seed_quote_item(self.db, "E1", "SPK", 1)
        body = self.client.post("/api/events/E1/validate-quote", json={"operatorUserID": "planner"}).json()
        held = next(iter(body["assignedAssets"].values()))[0]
        spare = next(a for a in ("SPK-01", "SPK-02", "SPK-03") if a != held)
        unloading = body["scanLists"][0]["scanListID"]

        rejected = self.client.post(f"/api/scan-lists/{unloading}/scan", json={"assetID": spare})
        self.assertEqual(rejected.status_code, 409)
        self.assertEqual(rejected.json()["detail"]["code"], "asset_not_expected")

        self.assertEqual(self.client.post(f"/api/scan-lists/{unloading}/scan", json={"assetID": held}).status_code, 200)
        repeated = self.client.post(f"/api/scan-lists/{unloading}/scan", json={"assetID": held})
        self.assertEqual(repeated.json()["detail"]["code"], "asset_already_scanned")

        self.assertEqual(self.client.post(f"/api/scan-lists/{unloading}/complete").status_code, 200)
        again = self.client.post(f"/api/scan-lists/{unloading}/complete")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["detail"]["code"], "scan_list_already_completed")

    def test_task_chain_endpoints(self):
        seed_event(self.db, "E1", 1, 5)
        created = self.client.post(
            "/api/events/E1/task-chain",
            json={"tasks": [{"title": "Pack"}, {"title": "Ship", "assignedUserID": "driver"}]},
            headers={"X-Actor-User-ID": "planner"},
        )
        self.assertEqual(created.status_code, 200)
        first, second = created.json()
        self.assertEqual([first["status"], second["status"]], ["Pending", "Blocked"])

        blocked = self.client.post(f"/api/tasks/{second['taskID']}/complete")
        self.assertEqual(blocked.status_code, 400)
        self.assertEqual(blocked.json()["detail"]["code"], "invalid_task_transition")

        done = self.client.post(f"/api/tasks/{first['taskID']}/complete")
        self.assertEqual(done.status_code, 200)
        self.assertEqual(done.json()["notificationsQueued"], 1)
        self.assertEqual(self.db.get(TodoTask, second["taskID"]).Status, "Pending")

        cancelled = self.client.post(f"/api/tasks/{second['taskID']}/cancel", json={"reason": "Rain"})
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["status"], "Cancelled")

        self.assertEqual(self.client.post("/api/tasks/missing/complete").status_code, 404)

    def test_empty_task_chain_is_rejected(self):
        seed_event(self.db, "E1", 1, 5)
        response = self.client.post("/api/events/E1/task-chain", json={"tasks": []})
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
