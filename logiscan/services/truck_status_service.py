from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from logiscan.models.logistics_models import ScanList, Truck
from logiscan.models.statuses import (
    EVENT_TO_TRUCK,
    QUOTE_FINALIZED,
    SCAN_LIST_CANCELLED,
    SCAN_LIST_COMPLETED,
    SCAN_LIST_IN_PROGRESS,
    STOCK_TO_TRUCK,
    TRUCK_AVAILABLE,
    TRUCK_EN_ROUTE,
    TRUCK_LOADING,
    TRUCK_MAINTENANCE,
    TRUCK_ON_SITE,
    TRUCK_RETURNING,
    TRUCK_TO_EVENT,
    TRUCK_TO_STOCK,
)
from logiscan.services.repositories import find_active_events_by_truck, find_scan_lists_by_event


LOGGER = logging.getLogger("logiscan.trucks")


def determine_truck_status(scan_lists: Iterable[ScanList]) -> str:
    """Derive where a truck is in the custody round trip from its events' scan lists.

    Any list being scanned means the truck is being (un)loaded. Otherwise the most
    advanced completed leg decides: loaded at stock and not yet unloaded means en
    route, unloaded at the event means on site, reloaded at the event means returning.
    """
    in_progress: set[str] = set()
    completed: set[str] = set()
    for scan_list in scan_lists:
        if scan_list.Status == SCAN_LIST_CANCELLED:
            continue
        if scan_list.Status == SCAN_LIST_IN_PROGRESS:
            in_progress.add(scan_list.Direction)
        elif scan_list.Status == SCAN_LIST_COMPLETED:
            completed.add(scan_list.Direction)

    if in_progress:
        return TRUCK_LOADING
    if TRUCK_TO_STOCK in completed:
        return TRUCK_AVAILABLE
    if EVENT_TO_TRUCK in completed:
        return TRUCK_RETURNING
    if TRUCK_TO_EVENT in completed:
        return TRUCK_ON_SITE
    if STOCK_TO_TRUCK in completed:
        return TRUCK_EN_ROUTE
    return TRUCK_AVAILABLE


def update_truck_status(
    db: Session,
    truck: Truck,
    clock: Callable[[], datetime] = datetime.now,
) -> str:
    if truck.Status == TRUCK_MAINTENANCE:
        return truck.Status

    active_events = [event for event in find_active_events_by_truck(db, truck.TruckID) if event.QuoteStatus == QUOTE_FINALIZED]
    scan_lists: list[ScanList] = []
    for event in active_events:
        scan_lists.extend(find_scan_lists_by_event(db, event.EventID))

    new_status = determine_truck_status(scan_lists) if active_events else TRUCK_AVAILABLE
    if truck.Status != new_status:
        LOGGER.info("Truck %s status %s -> %s", truck.TruckID, truck.Status, new_status)
        truck.Status = new_status
        truck.UpdatedDate = clock()
        db.flush()
    return new_status
