from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logiscan.models.logistics_models import Asset, Event, QuoteItem, ScanList
from logiscan.models.statuses import (
    ASSET_AVAILABLE,
    ASSET_IN_TRANSIT_TO_EVENT,
    ASSET_IN_TRANSIT_TO_STOCK,
    ASSET_IN_USE,
    EVENT_COMPLETED,
    EVENT_TO_TRUCK,
    INACTIVE_RESERVATION_STATES,
    QUOTE_FINALIZED,
    RESERVATION_CONFIRMED,
    RESERVATION_PENDING,
    RESERVATION_RETURNED,
    SCAN_DIRECTIONS,
    SCAN_LIST_CANCELLED,
    SCAN_LIST_COMPLETED,
    SCAN_LIST_IN_PROGRESS,
    SCAN_LIST_PENDING,
    STOCK_TO_TRUCK,
    TRUCK_TO_EVENT,
    TRUCK_TO_STOCK,
)
from logiscan.services.dates import overlaps
from logiscan.services.errors import (
    AssetAlreadyScanned,
    AssetNotExpected,
    InvalidTaskTransition,
    LogisticsError,
    QuantityExceeded,
    ReservationFailed,
    ScanListAlreadyCompleted,
    ScanListNotActive,
    TruckNotFound,
    TruckUnavailable,
)
from logiscan.services.locks import event_lock
from logiscan.services.notification_service import NotificationIntent
from logiscan.services.repositories import (
    find_all_assets,
    find_all_reservations,
    find_assets_by_ids,
    find_event,
    find_events_by_truck,
    find_quote_items_by_event,
    find_reservations_by_event,
    find_scan_lists_by_event,
    find_stock_item,
    find_task_by_scan_list,
    find_truck,
    get_assigned_assets,
    get_scanned_assets,
    get_selected_scan_directions,
    set_scanned_assets,
)
from logiscan.services.reservation_service import adjust_reservations, reserve_assets
from logiscan.services.task_service import TaskSpec, build_task_chain, complete_task


LOGGER = logging.getLogger("logiscan.lifecycle")

ASSET_STATUS_BY_DIRECTION = {
    STOCK_TO_TRUCK: ASSET_IN_TRANSIT_TO_EVENT,
    TRUCK_TO_EVENT: ASSET_IN_USE,
    EVENT_TO_TRUCK: ASSET_IN_TRANSIT_TO_STOCK,
    TRUCK_TO_STOCK: ASSET_AVAILABLE,
}

TASK_TYPE_BY_DIRECTION = {
    STOCK_TO_TRUCK: "load_truck_from_stock",
    TRUCK_TO_EVENT: "unload_truck_at_event",
    EVENT_TO_TRUCK: "load_truck_at_event",
    TRUCK_TO_STOCK: "unload_truck_at_stock",
}

TITLE_BY_DIRECTION = {
    STOCK_TO_TRUCK: "Stock → Truck",
    TRUCK_TO_EVENT: "Truck → Event",
    EVENT_TO_TRUCK: "Event → Truck",
    TRUCK_TO_STOCK: "Truck → Stock",
}


@dataclass
class ValidationOutcome:
    event_id: str
    assigned_by_line: dict[int, list[str]] = field(default_factory=dict)
    skipped_skus: list[str] = field(default_factory=list)
    scan_lists: list[ScanList] = field(default_factory=list)
    task_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "eventID": self.event_id,
            "assignedAssets": {str(line_id): ids for line_id, ids in self.assigned_by_line.items()},
            "skippedSkus": self.skipped_skus,
            "scanLists": [serialize_scan_list(scan_list) for scan_list in self.scan_lists],
            "taskIDs": self.task_ids,
        }


def asset_status_for_direction(direction: str) -> str:
    try:
        return ASSET_STATUS_BY_DIRECTION[direction]
    except KeyError:
        raise ValueError(f"Unknown scan direction: {direction}") from None


def task_location_for_direction(direction: str) -> str:
    if direction in {STOCK_TO_TRUCK, TRUCK_TO_STOCK}:
        return "Stock"
    return "Event"


def verify_truck_availability(db: Session, event: Event) -> None:
    truck_id = event.AssignedTruckID
    if not truck_id:
        LOGGER.info("No truck assigned to event %s, truck check skipped", event.EventID)
        return

    truck = find_truck(db, truck_id)
    if truck is None:
        raise TruckNotFound(truck_id)

    for other in find_events_by_truck(db, truck_id, exclude_event_id=event.EventID):
        if overlaps(event.StartDate, event.EndDate, other.StartDate, other.EndDate):
            LOGGER.warning("Truck %s conflicts with event %s", truck_id, other.EventID)
            raise TruckUnavailable(
                truck_name=truck.Name or truck.LicensePlate or truck.TruckID,
                conflicting_event=other.Name,
            )


def _reserve_quote_items(db: Session, event: Event, quote_items: list[QuoteItem], outcome: ValidationOutcome) -> None:
    all_assets = find_all_assets(db)
    for quote_item in quote_items:
        stock_item = find_stock_item(db, quote_item.SKU)
        if stock_item is None:
            LOGGER.warning("Stock item %s not found, quote item %s skipped", quote_item.SKU, quote_item.QuoteItemID)
            outcome.skipped_skus.append(quote_item.SKU)
            continue

        # Re-read after each line so lines sharing a SKU see each other's reservations.
        reservations = find_all_reservations(db)
        if get_assigned_assets(quote_item):
            assigned = adjust_reservations(
                db,
                quote_item,
                stock_item,
                int(quote_item.Quantity or 0),
                event,
                all_assets,
                reservations,
            )
        else:
            assigned = reserve_assets(db, quote_item, stock_item, event, all_assets, reservations)
        outcome.assigned_by_line[quote_item.QuoteItemID] = assigned


def generate_scan_lists(
    db: Session,
    event: Event,
    quote_items: list[QuoteItem],
    actor_user_id: str,
    generate_tasks: bool = True,
) -> tuple[list[ScanList], list[str]]:
    if find_scan_lists_by_event(db, event.EventID):
        LOGGER.info("Event %s already has scan lists, generation skipped", event.EventID)
        return [], []

    directions = [direction for direction in get_selected_scan_directions(event) if direction in SCAN_DIRECTIONS]
    if not directions:
        LOGGER.warning("No scan direction selected for event %s", event.EventID)
        return [], []

    total_items = sum(int(item.Quantity or 0) for item in quote_items)
    scan_lists = []
    for direction in directions:
        scan_list = ScanList(
            ScanListID=str(uuid.uuid4()),
            EventID=event.EventID,
            Direction=direction,
            Status=SCAN_LIST_PENDING,
            TotalItems=total_items,
            ScannedItems=0,
        )
        db.add(scan_list)
        scan_lists.append(scan_list)
    db.flush()

    task_ids: list[str] = []
    if generate_tasks:
        specs = [
            TaskSpec(
                title=f"{event.Name}: {TITLE_BY_DIRECTION[scan_list.Direction]}",
                task_type=TASK_TYPE_BY_DIRECTION[scan_list.Direction],
                description=f"Scan list {TITLE_BY_DIRECTION[scan_list.Direction]}",
                scan_list_id=scan_list.ScanListID,
                truck_id=event.AssignedTruckID,
                location=task_location_for_direction(scan_list.Direction),
                trigger_notification=True,
            )
            for scan_list in scan_lists
        ]
        task_ids = [task.TaskID for task in build_task_chain(db, event.EventID, specs, created_by=actor_user_id)]

    LOGGER.info("Generated %s scan list(s) and %s task(s) for event %s", len(scan_lists), len(task_ids), event.EventID)
    return scan_lists, task_ids


def validate_quote(
    db: Session,
    event: Event,
    actor_user_id: str,
    with_scan_lists: bool = True,
    generate_tasks: bool = True,
    clock: Callable[[], datetime] = datetime.now,
) -> ValidationOutcome:
    event_id = event.EventID
    outcome = ValidationOutcome(event_id=event_id)
    with event_lock(event_id):
        try:
            verify_truck_availability(db, event)
            quote_items = find_quote_items_by_event(db, event_id)
            _reserve_quote_items(db, event, quote_items, outcome)

            event.QuoteStatus = QUOTE_FINALIZED
            event.UpdatedDate = clock()

            if with_scan_lists:
                outcome.scan_lists, outcome.task_ids = generate_scan_lists(
                    db,
                    event,
                    quote_items,
                    actor_user_id,
                    generate_tasks=generate_tasks,
                )
            db.commit()
        except LogisticsError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception("Quote validation for event %s could not be committed", event_id)
            raise ReservationFailed("Quote validation could not be committed") from exc
    LOGGER.info("Quote for event %s validated by %s", event_id, actor_user_id)
    return outcome


def _set_asset_statuses(db: Session, asset_ids: list[str], status: str, now: datetime) -> int:
    updated = 0
    for asset in find_assets_by_ids(db, asset_ids):
        asset.Status = status
        asset.UpdatedDate = now
        updated += 1
    return updated


def _event_asset_ids(db: Session, event_id: str) -> list[str]:
    return [
        reservation.AssetID
        for reservation in find_reservations_by_event(db, event_id)
        if reservation.Status not in INACTIVE_RESERVATION_STATES
    ]


def freeze_after_loading(db: Session, event: Event, scan_list: ScanList) -> int:
    if scan_list.Direction != STOCK_TO_TRUCK:
        LOGGER.warning("Scan list %s is not a loading list, freeze skipped", scan_list.ScanListID)
        return 0

    frozen = 0
    for reservation in find_reservations_by_event(db, event.EventID):
        if reservation.Status == RESERVATION_PENDING:
            reservation.Status = RESERVATION_CONFIRMED
            frozen += 1
    db.flush()
    LOGGER.info("Froze %s reservation(s) for event %s", frozen, event.EventID)
    return frozen


def release_after_return(
    db: Session,
    event: Event,
    scan_list: ScanList,
    clock: Callable[[], datetime] = datetime.now,
) -> int:
    if scan_list.Direction != TRUCK_TO_STOCK:
        LOGGER.warning("Scan list %s is not a stock return list, release skipped", scan_list.ScanListID)
        return 0

    now = clock()
    reservations = find_reservations_by_event(db, event.EventID)
    returned_ids = []
    for reservation in reservations:
        if reservation.Status in INACTIVE_RESERVATION_STATES:
            continue
        reservation.Status = RESERVATION_RETURNED
        returned_ids.append(reservation.AssetID)
    _set_asset_statuses(db, returned_ids, ASSET_AVAILABLE, now)

    event.Status = EVENT_COMPLETED
    event.UpdatedDate = now
    db.flush()
    LOGGER.info("Released %s asset(s) after return, event %s completed", len(returned_ids), event.EventID)
    return len(returned_ids)


def record_asset_scan(
    db: Session,
    scan_list: ScanList,
    asset: Asset,
    clock: Callable[[], datetime] = datetime.now,
) -> Asset:
    """Record one scanned asset on an open list and move the asset to the list's custody status.

    Only assets actively held by the list's event are accepted, each at
    most once, and never more than the list's TotalItems.
    """
    _require_open(scan_list)
    with event_lock(scan_list.EventID):
        if asset.AssetID not in _event_asset_ids(db, scan_list.EventID):
            raise AssetNotExpected(scan_list.ScanListID, asset.AssetID)
        scanned = get_scanned_assets(scan_list)
        if asset.AssetID in scanned:
            raise AssetAlreadyScanned(scan_list.ScanListID, asset.AssetID)
        total_items = int(scan_list.TotalItems or 0)
        if len(scanned) >= total_items:
            raise QuantityExceeded(scan_list.ScanListID, total_items)

        asset.Status = asset_status_for_direction(scan_list.Direction)
        asset.UpdatedDate = clock()
        scanned.append(asset.AssetID)
        set_scanned_assets(scan_list, scanned)
        scan_list.ScannedItems = len(scanned)
        if scan_list.Status == SCAN_LIST_PENDING:
            scan_list.Status = SCAN_LIST_IN_PROGRESS
        db.flush()
    return asset


def _require_open(scan_list: ScanList) -> None:
    if scan_list.Status == SCAN_LIST_COMPLETED:
        raise ScanListAlreadyCompleted(scan_list.ScanListID)
    if scan_list.Status == SCAN_LIST_CANCELLED:
        raise ScanListNotActive(scan_list.ScanListID, scan_list.Status)


def complete_scan_list(
    db: Session,
    scan_list: ScanList,
    clock: Callable[[], datetime] = datetime.now,
) -> list[NotificationIntent]:
    event = find_event(db, scan_list.EventID)
    if event is None:
        raise ValueError(f"Event {scan_list.EventID} not found for scan list {scan_list.ScanListID}")

    intents: list[NotificationIntent] = []
    with event_lock(event.EventID):
        _require_open(scan_list)
        now = clock()
        scan_list.Status = SCAN_LIST_COMPLETED
        scan_list.CompletedAt = now

        direction = scan_list.Direction
        if direction == TRUCK_TO_STOCK:
            release_after_return(db, event, scan_list, clock=clock)
        elif event.Status == EVENT_COMPLETED:
            # Assets are back in stock; a late leg must not move them again.
            LOGGER.warning("Event %s already completed, asset statuses left unchanged by %s", event.EventID, direction)
        elif direction == STOCK_TO_TRUCK:
            freeze_after_loading(db, event, scan_list)
            _set_asset_statuses(db, _event_asset_ids(db, event.EventID), ASSET_IN_TRANSIT_TO_EVENT, now)
        else:
            _set_asset_statuses(db, _event_asset_ids(db, event.EventID), asset_status_for_direction(direction), now)

        task = find_task_by_scan_list(db, scan_list.ScanListID)
        if task is None:
            LOGGER.warning("Scan list %s completed without a linked task", scan_list.ScanListID)
        else:
            try:
                intents = complete_task(db, task, clock=clock)
            except InvalidTaskTransition as exc:
                LOGGER.warning("Linked task not completed: %s", exc)

        db.flush()
    LOGGER.info("Scan list %s (%s) completed for event %s", scan_list.ScanListID, direction, event.EventID)
    return intents


def serialize_scan_list(scan_list: ScanList) -> dict:
    return {
        "scanListID": scan_list.ScanListID,
        "eventID": scan_list.EventID,
        "direction": scan_list.Direction,
        "status": scan_list.Status,
        "totalItems": scan_list.TotalItems,
        "scannedItems": scan_list.ScannedItems,
        "scannedAssets": get_scanned_assets(scan_list),
        "completedAt": scan_list.CompletedAt,
    }

