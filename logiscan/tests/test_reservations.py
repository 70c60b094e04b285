import unittest

from sqlalchemy import select

from logiscan.tests.support import make_session_factory, seed_event, seed_quote_item, seed_stock
from logiscan.models.logistics_models import Asset, AssetReservation
from logiscan.services.errors import ConflictDetected, InsufficientStock, ReservationFailed
from logiscan.services import locks
from logiscan.services.repositories import (
    find_all_reservations,
    find_assets_by_sku,
    find_reservations_by_event,
    find_stock_item,
    get_assigned_assets,
)
from logiscan.services.reservation_service import (
    adjust_reservations,
    release_one_asset,
    release_reservations,
    reserve_assets,
)


class ReservationFlowTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        seed_stock(self.db, "LED", 4, values=[40, 10, 30, 20])
        self.stock_item = find_stock_item(self.db, "LED")
        self.event = seed_event(self.db, "E1", 10, 12)

    def tearDown(self):
        self.db.close()

    def _reserve(self, quote_item, event=None, reservations=None):
        event = event or self.event
        return reserve_assets(
            self.db,
            quote_item,
            self.stock_item,
            event,
            find_assets_by_sku(self.db, "LED"),
            find_all_reservations(self.db) if reservations is None else reservations,
        )

    def _adjust(self, quote_item, quantity):
        return adjust_reservations(
            self.db,
            quote_item,
            self.stock_item,
            quantity,
            self.event,
            find_assets_by_sku(self.db, "LED"),
            find_all_reservations(self.db),
        )

    def _stage_duplicate(self, asset_id):
        # Unflushed second row for (asset, event); the next flush violates the unique constraint.
        self.db.add(
            AssetReservation(
                ReservationID=f"dup-{asset_id}",
                AssetID=asset_id,
                EventID=self.event.EventID,
                StartDate=self.event.StartDate,
                EndDate=self.event.EndDate,
                Status="Pending",
            )
        )

    def test_reserve_picks_cheapest_assets_and_marks_them_reserved(self):
        line = seed_quote_item(self.db, "E1", "LED", 2)
        assigned = self._reserve(line)
        self.db.commit()

        self.assertEqual(assigned, ["LED-02", "LED-04"])
        self.assertEqual(get_assigned_assets(line), assigned)
        reservations = find_reservations_by_event(self.db, "E1")
        self.assertEqual(sorted(r.AssetID for r in reservations), assigned)
        self.assertTrue(all(r.Status == "Pending" for r in reservations))
        self.assertEqual(self.db.get(Asset, "LED-02").Status, "Reserved")
        self.assertEqual(self.db.get(Asset, "LED-01").Status, "Available")

    def test_insufficient_stock_writes_nothing(self):
        line = seed_quote_item(self.db, "E1", "LED", 5)
        with self.assertRaises(InsufficientStock) as ctx:
            self._reserve(line)

        self.assertEqual(ctx.exception.available, 4)
        self.assertEqual(ctx.exception.requested, 5)
        self.assertEqual(ctx.exception.to_detail()["sku"], "LED")
        self.assertEqual(find_all_reservations(self.db), [])
        self.assertEqual(get_assigned_assets(line), [])

    def test_overlapping_event_cannot_take_held_assets(self):
        self._reserve(seed_quote_item(self.db, "E1", "LED", 3))
        self.db.commit()
        other = seed_event(self.db, "E2", 11, 13)

        with self.assertRaises(InsufficientStock) as ctx:
            self._reserve(seed_quote_item(self.db, "E2", "LED", 2), event=other)
        self.assertEqual(ctx.exception.available, 1)

    def test_disjoint_event_can_reuse_assets(self):
        self._reserve(seed_quote_item(self.db, "E1", "LED", 4))
        self.db.commit()
        later = seed_event(self.db, "E3", 12, 14)

        assigned = self._reserve(seed_quote_item(self.db, "E3", "LED", 4), event=later)
        self.db.commit()
        self.assertEqual(len(assigned), 4)
        self.assertEqual(len(find_all_reservations(self.db)), 8)

    def test_stale_reservation_snapshot_is_caught_by_store_check(self):
        self._reserve(seed_quote_item(self.db, "E1", "LED", 4))
        self.db.commit()
        other = seed_event(self.db, "E2", 11, 13)

        with self.assertRaises(ConflictDetected) as ctx:
            self._reserve(seed_quote_item(self.db, "E2", "LED", 1), event=other, reservations=[])
        self.assertTrue(ctx.exception.asset_ids)
        self.assertEqual(find_reservations_by_event(self.db, "E2"), [])

    def test_write_failure_on_reserve_leaves_no_rows_behind(self):
        line = seed_quote_item(self.db, "E1", "LED", 2)

        self._stage_duplicate("LED-02")
        with self.assertRaises(ReservationFailed):
            self._reserve(line)

        self.assertEqual(find_reservations_by_event(self.db, "E1"), [])
        self.assertEqual(get_assigned_assets(line), [])
        self.assertEqual(self.db.get(Asset, "LED-02").Status, "Available")

    def test_write_failure_on_grow_keeps_previous_assignment(self):
        line = seed_quote_item(self.db, "E1", "LED", 1)
        assigned = self._reserve(line)
        self.db.commit()

        self._stage_duplicate("LED-04")
        with self.assertRaises(ReservationFailed):
            self._adjust(line, 3)

        self.assertEqual(get_assigned_assets(line), assigned)
        self.assertEqual([r.AssetID for r in find_reservations_by_event(self.db, "E1")], assigned)
        self.assertEqual(sum(1 for a in find_assets_by_sku(self.db, "LED") if a.Status == "Reserved"), 1)

    def test_shrinking_keeps_head_and_deletes_tail_reservations(self):
        line = seed_quote_item(self.db, "E1", "LED", 3)
        first, second, third = self._reserve(line)
        self.db.commit()

        kept = self._adjust(line, 1)
        self.db.commit()

        self.assertEqual(kept, [first])
        remaining = {r.AssetID for r in find_reservations_by_event(self.db, "E1")}
        self.assertEqual(remaining, {first})
        self.assertEqual(self.db.get(Asset, second).Status, "Available")
        self.assertEqual(self.db.get(Asset, third).Status, "Available")

    def test_adjust_to_current_quantity_changes_nothing(self):
        line = seed_quote_item(self.db, "E1", "LED", 2)
        assigned = self._reserve(line)
        self.db.commit()

        again = self._adjust(line, 2)
        self.assertEqual(again, assigned)
        self.assertEqual(len(find_reservations_by_event(self.db, "E1")), 2)

    def test_growing_appends_new_assets(self):
        line = seed_quote_item(self.db, "E1", "LED", 1)
        assigned = self._reserve(line)
        self.db.commit()

        grown = self._adjust(line, 3)
        self.db.commit()
        self.assertEqual(grown[:1], assigned)
        self.assertEqual(len(set(grown)), 3)
        self.assertEqual(len(find_reservations_by_event(self.db, "E1")), 3)

    def test_growing_past_stock_raises(self):
        line = seed_quote_item(self.db, "E1", "LED", 2)
        self._reserve(line)
        self.db.commit()

        with self.assertRaises(InsufficientStock) as ctx:
            self._adjust(line, 7)
        self.assertEqual(ctx.exception.requested, 5)
        self.assertEqual(ctx.exception.available, 2)

    def test_release_one_is_last_in_first_out(self):
        line = seed_quote_item(self.db, "E1", "LED", 3)
        assigned = self._reserve(line)
        self.db.commit()

        released = release_one_asset(self.db, line, self.event)
        self.db.commit()
        self.assertEqual(released, assigned[-1])
        self.assertEqual(get_assigned_assets(line), assigned[:-1])

    def test_release_one_on_empty_line_returns_none(self):
        line = seed_quote_item(self.db, "E1", "LED", 1)
        self.assertIsNone(release_one_asset(self.db, line, self.event))

    def test_release_all_restores_availability(self):
        line = seed_quote_item(self.db, "E1", "LED", 2)
        assigned = self._reserve(line)
        self.db.commit()

        count = release_reservations(self.db, line, self.event)
        self.db.commit()

        self.assertEqual(count, 2)
        self.assertEqual(get_assigned_assets(line), [])
        self.assertEqual(release_reservations(self.db, line, self.event), 0)
        self.assertEqual(self.db.execute(select(AssetReservation)).scalars().all(), [])
        for asset_id in assigned:
            self.assertEqual(self.db.get(Asset, asset_id).Status, "Available")


class LockRegistryTests(unittest.TestCase):
    def test_reservation_lock_nests_inside_event_lock_and_is_dropped_after(self):
        with locks.event_lock("LOCK-E1"):
            with locks.reservation_lock("LOCK-E1", "LOCK-SKU"):
                self.assertIn("LOCK-E1", locks._EVENT_LOCKS)
                self.assertIn("LOCK-SKU", locks._SKU_LOCKS)
        self.assertNotIn("LOCK-E1", locks._EVENT_LOCKS)
        self.assertNotIn("LOCK-SKU", locks._SKU_LOCKS)


if __name__ == "__main__":
    unittest.main()
